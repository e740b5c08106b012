"""Generator tool orchestration: display, append and edit diagram documents."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session as DbSession

from diagram_stream.db_models import DiagramSession
from diagram_stream.errors import DiagramEngineError, MalformedFragment, StructuralValidationFailed
from diagram_stream.models.cell import Cell
from diagram_stream.services import document_store, tool_messages
from diagram_stream.services.assembly import AssemblyStatus, FragmentAssembler, assembler as default_assembler
from diagram_stream.services.region_store import RegionPayloadStore, region_store as default_region_store
from diagram_stream.tools.cell_parser import parse_cells, parse_document
from diagram_stream.tools.document import validate_document, wrap_cells
from diagram_stream.tools.patch_engine import apply_operations, parse_operations
from diagram_stream.tools.region_resolver import CacheReference, RegionLookup, build_region_cell, resolve_cell_references
from diagram_stream.utils.config import settings

logger = logging.getLogger(__name__)

OUTPUT_AVAILABLE = "output-available"
OUTPUT_ERROR = "output-error"


@dataclass
class ToolOutput:
    tool: str
    state: str
    status: str
    output: Optional[str] = None
    error_text: Optional[str] = None
    document: Optional[str] = None
    version: Optional[int] = None
    resume_point: Optional[str] = None
    cache_key: Optional[str] = None
    errors: List[Dict[str, Any]] = field(default_factory=list)
    unresolved: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state == OUTPUT_AVAILABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool": self.tool,
            "state": self.state,
            "status": self.status,
            "output": self.output,
            "error_text": self.error_text,
            "document": self.document,
            "version": self.version,
            "resume_point": self.resume_point,
            "cache_key": self.cache_key,
            "errors": list(self.errors),
            "unresolved": list(self.unresolved),
        }


@dataclass
class FinalizedDocument:
    xml: str
    cells: List[Cell]
    unresolved: List[CacheReference] = field(default_factory=list)


def finalize_cells(cells: Sequence[Cell], store: RegionLookup) -> FinalizedDocument:
    """Resolve cached regions, validate and wrap. Raises on structural failure."""
    resolution = resolve_cell_references(cells, store)
    validated = validate_document(resolution.cells)
    return FinalizedDocument(xml=wrap_cells(validated), cells=validated, unresolved=resolution.unresolved)


def finalize_fragment(text: str, store: RegionLookup) -> FinalizedDocument:
    return finalize_cells(parse_cells(text), store)


def _error(tool: str, status: str, error_text: str, **kwargs: Any) -> ToolOutput:
    return ToolOutput(tool=tool, state=OUTPUT_ERROR, status=status, error_text=error_text, **kwargs)


def _error_payload(exc: DiagramEngineError) -> List[Dict[str, Any]]:
    if isinstance(exc, StructuralValidationFailed):
        return [v.to_dict() for v in exc.violations]
    return [exc.to_dict()]


class DiagramService:
    def __init__(
        self,
        assembler: Optional[FragmentAssembler] = None,
        store: Optional[RegionPayloadStore] = None,
        echo_chars: Optional[int] = None,
    ) -> None:
        self.assembler = assembler or default_assembler
        self.store = store or default_region_store
        self.echo_chars = settings.assembled_echo_chars if echo_chars is None else echo_chars

    def current_xml(self, db: DbSession, session: DiagramSession) -> str:
        record = document_store.latest_version(db, session.id)
        return record.xml if record else wrap_cells([])

    def _accept(
        self,
        db: DbSession,
        session: DiagramSession,
        tool: str,
        text: str,
        success_message: str,
        assembled: bool,
    ) -> ToolOutput:
        try:
            finalized = finalize_fragment(text, self.store)
        except DiagramEngineError as exc:
            logger.warning(
                "Generated diagram rejected",
                extra={"session_id": str(session.id), "tool": tool, "error": exc.message},
            )
            if assembled:
                error_text = tool_messages.assembly_validation_message(exc.message, text, self.echo_chars)
            else:
                error_text = tool_messages.malformed_message(exc.message, text)
            status = "malformed" if isinstance(exc, MalformedFragment) else "invalid"
            return _error(tool, status, error_text, errors=_error_payload(exc))

        record = document_store.save_version(db, session, finalized.xml, reason=tool)
        return ToolOutput(
            tool=tool,
            state=OUTPUT_AVAILABLE,
            status="accepted",
            output=success_message + tool_messages.unresolved_note(finalized.unresolved),
            document=finalized.xml,
            version=record.version,
            unresolved=[ref.to_dict() for ref in finalized.unresolved],
        )

    def display_diagram(self, db: DbSession, session: DiagramSession, xml: str) -> ToolOutput:
        tool = "display_diagram"
        outcome = self.assembler.start(str(session.id), xml or "")
        if not outcome.complete:
            return _error(tool, outcome.status.value, outcome.message or "", resume_point=outcome.resume_point)
        return self._accept(db, session, tool, outcome.text or "", "Successfully displayed the diagram.", assembled=False)

    def append_diagram(self, db: DbSession, session: DiagramSession, xml: str) -> ToolOutput:
        tool = "append_diagram"
        outcome = self.assembler.resume(str(session.id), xml or "")
        if outcome.status is AssemblyStatus.COMPLETE:
            return self._accept(
                db,
                session,
                tool,
                outcome.text or "",
                "Diagram assembly complete and displayed successfully.",
                assembled=True,
            )
        errors = [outcome.error.to_dict()] if outcome.error is not None else []
        return _error(
            tool,
            outcome.status.value,
            outcome.message or "",
            resume_point=outcome.resume_point,
            errors=errors,
        )

    def edit_diagram(
        self,
        db: DbSession,
        session: DiagramSession,
        operations: Any,
        base_xml: Optional[str] = None,
    ) -> ToolOutput:
        tool = "edit_diagram"
        current_xml = base_xml if base_xml else self.current_xml(db, session)
        try:
            batch = parse_operations(operations)
            document = parse_document(current_xml)
        except DiagramEngineError as exc:
            logger.warning("Edit rejected before application", extra={"session_id": str(session.id), "error": exc.message})
            return _error(
                tool,
                "invalid_batch",
                tool_messages.edit_failed_message(exc.message, current_xml),
                errors=_error_payload(exc),
            )

        result = apply_operations(document, batch)
        if not result.ok:
            return _error(
                tool,
                "rejected",
                tool_messages.operation_errors_message(result.errors, current_xml),
                errors=[e.to_dict() for e in result.errors],
            )

        try:
            finalized = finalize_cells(result.document.cells(), self.store)
        except StructuralValidationFailed as exc:
            logger.warning("Edit produced an invalid document", extra={"session_id": str(session.id), "error": exc.message})
            return _error(
                tool,
                "invalid",
                tool_messages.edit_validation_message(exc.message, current_xml),
                errors=_error_payload(exc),
            )

        record = document_store.save_version(db, session, finalized.xml, reason=tool)
        message = f"Successfully applied {len(batch)} operation(s) to the diagram."
        return ToolOutput(
            tool=tool,
            state=OUTPUT_AVAILABLE,
            status="accepted",
            output=message + tool_messages.unresolved_note(finalized.unresolved),
            document=finalized.xml,
            version=record.version,
            unresolved=[ref.to_dict() for ref in finalized.unresolved],
        )

    def cache_regions(self, regions: Sequence[Dict[str, Any]], warnings: Optional[List[str]] = None) -> ToolOutput:
        """Store already-cropped region payloads and describe how to reference them."""
        tool = "cache_image_regions"
        usable = [r for r in regions if r.get("name") and r.get("data_url") and not r.get("error")]
        if not usable:
            return _error(tool, "empty", "No usable regions were supplied; nothing was cached.")

        cache_key = self.store.put(self.store.new_key(), {r["name"]: r["data_url"] for r in usable})
        snippets = [
            build_region_cell(cache_key, r["name"], r.get("width") or 100, r.get("height") or 100)
            for r in usable
        ]
        summary = tool_messages.describe_cached_regions(cache_key, usable, snippets, warnings)
        return ToolOutput(tool=tool, state=OUTPUT_AVAILABLE, status="cached", output=summary, cache_key=cache_key)


diagram_service = DiagramService()
