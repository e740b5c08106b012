"""CLI interface."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer

from diagram_stream.errors import DiagramEngineError, StructuralValidationFailed
from diagram_stream.services.region_store import region_store
from diagram_stream.tools.cell_parser import parse_document
from diagram_stream.tools.completeness import check_completeness
from diagram_stream.tools.document import finalize_document, unwrap_document, validate_cells
from diagram_stream.tools.patch_engine import apply_operations, parse_operations
from diagram_stream.tools.region_resolver import resolve_cell_references
from diagram_stream.utils.config import settings

app = typer.Typer(add_completion=False)


@app.callback()
def main() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise typer.BadParameter(f"Cannot read {path}: {exc}")


def _fail(payload: dict) -> None:
    typer.echo(json.dumps(payload, indent=2))
    raise typer.Exit(code=1)


@app.command()
def check(file: Path = typer.Argument(..., help="Fragment or document markup to inspect.")):
    """Report whether the markup is a complete, well-nested element sequence."""
    status = check_completeness(_read(file))
    typer.echo(json.dumps({"file": str(file), "completeness": status.value}, indent=2))
    if status.value != "complete":
        raise typer.Exit(code=1)


@app.command()
def apply(
    document: Path = typer.Argument(..., help="Current diagram document."),
    operations: Path = typer.Argument(..., help="JSON file holding the operation batch."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the patched document here."),
):
    """Apply an add/update/delete batch to a document."""
    try:
        raw_operations = json.loads(_read(operations))
    except ValueError as exc:
        raise typer.BadParameter(f"{operations} is not valid JSON: {exc}")

    try:
        batch = parse_operations(raw_operations)
        current = parse_document(_read(document))
    except DiagramEngineError as exc:
        _fail({"errors": [exc.to_dict()]})

    result = apply_operations(current, batch)
    if not result.ok:
        _fail({"errors": [error.to_dict() for error in result.errors]})

    resolution = resolve_cell_references(result.document.cells(), region_store)
    try:
        xml = finalize_document(resolution.cells)
    except StructuralValidationFailed as exc:
        _fail(exc.to_dict())

    if output is None:
        typer.echo(xml)
        return
    output.write_text(xml, encoding="utf-8")
    typer.echo(
        json.dumps(
            {
                "output": str(output),
                "cells": len(resolution.cells),
                "removed": result.removed_ids,
                "unresolved": [ref.to_dict() for ref in resolution.unresolved],
            },
            indent=2,
        )
    )


@app.command()
def validate(file: Path = typer.Argument(..., help="Document or fragment markup to validate.")):
    """List structural violations of a document."""
    try:
        cells = unwrap_document(_read(file))
    except DiagramEngineError as exc:
        _fail({"valid": False, "violations": [exc.to_dict()]})

    violations = validate_cells(cells)
    payload = {"valid": not violations, "cells": len(cells), "violations": [v.to_dict() for v in violations]}
    if violations:
        _fail(payload)
    typer.echo(json.dumps(payload, indent=2))


if __name__ == "__main__":
    app()
