"""Recover tool-call arguments that were cut off mid-JSON."""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional

from json_repair import repair_json

logger = logging.getLogger(__name__)

_PLACEHOLDERS: Dict[str, Dict[str, Any]] = {
    "edit_diagram": {"operations": [], "_error": "JSON repair failed - no operations to apply"},
    "display_diagram": {"xml": "", "_error": "JSON repair failed - empty diagram"},
}


def _preprocess(raw: str) -> str:
    # Common generator slips that the repair pass cannot undo on its own.
    text = raw.replace(":=", ": ")
    return re.sub(r'=\s*"', ': "', text)


def repair_tool_input(tool_name: str, raw: str) -> Optional[Dict[str, Any]]:
    """Return the repaired argument object, a placeholder, or ``None``."""
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    try:
        repaired = json.loads(repair_json(_preprocess(raw or "")))
    except (TypeError, ValueError):
        repaired = None

    if isinstance(repaired, dict) and repaired:
        logger.info("Repaired truncated tool input", extra={"tool": tool_name})
        return repaired

    logger.warning("Failed to repair tool input", extra={"tool": tool_name})
    placeholder = _PLACEHOLDERS.get(tool_name)
    return dict(placeholder) if placeholder is not None else None
