"""Protocol messages relayed back to the generator."""
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

FENCE = "```"


def _fenced(body: str, lang: str = "") -> str:
    return f"{FENCE}{lang}\n{body}\n{FENCE}"


def truncated_message(resume_point: str) -> str:
    return f"""Output was truncated due to length limits. Use the append_diagram tool to continue.

Your output ended with:
{_fenced(resume_point)}

NEXT STEP: Call append_diagram with the continuation XML.
- Do NOT include wrapper tags or root cells (id="0", id="1")
- Start from EXACTLY where you stopped
- Complete all remaining mxCell elements"""


def still_incomplete_message(resume_point: str, rounds: int, max_rounds: int) -> str:
    return f"""XML still incomplete (mxCell not closed). Call append_diagram again to continue.
Continuation round {rounds} of {max_rounds}.

Current ending:
{_fenced(resume_point)}

Continue from EXACTLY where you stopped."""


def fresh_start_message(resume_point: str) -> str:
    return f"""ERROR: You started fresh with wrapper tags. Do NOT include wrapper tags or root cells (id="0", id="1").

Continue from EXACTLY where the partial ended:
{_fenced(resume_point)}

Start your continuation with the NEXT character after where it stopped."""


def abandoned_message(rounds: int) -> str:
    return (
        f"Diagram assembly abandoned after {rounds} rounds without a complete document. "
        "The partial XML has been discarded; call display_diagram with a smaller, complete diagram."
    )


def no_pending_message() -> str:
    return (
        "There is no truncated diagram to continue. "
        "Call display_diagram with the complete diagram XML instead of append_diagram."
    )


def malformed_message(detail: str, xml: str) -> str:
    return f"""{detail}

Please fix the XML issues and call display_diagram again with corrected XML.

Your failed XML:
{_fenced(xml, "xml")}"""


def assembly_validation_message(detail: str, assembled: str, echo_chars: int) -> str:
    return f"""Validation error after assembly: {detail}

Assembled XML:
{_fenced(assembled[:echo_chars] + "...", "xml")}

Please use display_diagram with corrected XML."""


def operation_errors_message(errors: Iterable[object], current_xml: str) -> str:
    lines = "\n".join(f"- {error}" for error in errors)
    return f"""Some operations failed:
{lines}

Current diagram XML:
{_fenced(current_xml, "xml")}

Please check the cell IDs and retry."""


def edit_validation_message(detail: str, current_xml: str) -> str:
    return f"""Edit produced invalid XML: {detail}

Current diagram XML:
{_fenced(current_xml, "xml")}

Please fix the operations to avoid structural issues."""


def edit_failed_message(detail: str, current_xml: Optional[str]) -> str:
    return f"""Edit failed: {detail}

Current diagram XML:
{_fenced(current_xml or "No XML available", "xml")}

Please check cell IDs and retry, or use display_diagram to regenerate."""


def unresolved_note(references: Sequence[object]) -> str:
    if not references:
        return ""
    names = ", ".join(str(getattr(ref, "token", ref)) for ref in references)
    return f"\nNote: {len(references)} cached image reference(s) could not be resolved and were left as-is: {names}"


def describe_cached_regions(
    cache_key: str,
    regions: Sequence[dict],
    cell_snippets: Sequence[str],
    warnings: Optional[List[str]] = None,
) -> str:
    """Summary returned after caching cropped regions; never includes payloads."""
    lines = []
    if warnings:
        lines.append("COORDINATE ADJUSTMENTS DETECTED:")
        lines.extend(f"  - {warning}" for warning in warnings)
        lines.append("")
    lines.append(f"{len(regions)} regions cached (Cache:{cache_key})")
    for region in regions:
        size = ""
        if region.get("width") and region.get("height"):
            size = f": {region['width']}x{region['height']}px"
        lines.append(f"  - {region['name']}{size}")
    lines.append("")
    lines.append("In display_diagram, use this XML format for EACH region:")
    lines.extend(cell_snippets)
    lines.append("")
    lines.append("Names: " + ", ".join(region["name"] for region in regions))
    return "\n".join(lines)
