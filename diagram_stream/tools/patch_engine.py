"""Atomic id-addressed patch engine for diagram documents."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Sequence, Set, Union

from jsonschema import Draft202012Validator

from diagram_stream.errors import DiagramEngineError, DuplicateId, InvalidOperationBatch, UnknownCell
from diagram_stream.models.cell import SCAFFOLD_IDS, Document
from diagram_stream.tools.cell_parser import parse_single_cell

logger = logging.getLogger(__name__)


OPERATION_BATCH_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "array",
    "items": {
        "type": "object",
        "required": ["operation", "cell_id"],
        "properties": {
            "operation": {"type": "string", "enum": ["add", "update", "delete"]},
            "cell_id": {"type": "string", "pattern": "\\S"},
            "new_xml": {"type": "string"},
        },
        "allOf": [
            {
                "if": {"properties": {"operation": {"enum": ["add", "update"]}}, "required": ["operation"]},
                "then": {"required": ["new_xml"], "properties": {"new_xml": {"minLength": 1}}},
            }
        ],
        "additionalProperties": True,
    },
}

_batch_validator = Draft202012Validator(OPERATION_BATCH_SCHEMA)


@dataclass(frozen=True)
class AddOperation:
    name: ClassVar[str] = "add"
    cell_id: str
    payload: str

    def to_dict(self) -> dict:
        return {"operation": self.name, "cell_id": self.cell_id, "new_xml": self.payload}


@dataclass(frozen=True)
class UpdateOperation:
    name: ClassVar[str] = "update"
    cell_id: str
    payload: str

    def to_dict(self) -> dict:
        return {"operation": self.name, "cell_id": self.cell_id, "new_xml": self.payload}


@dataclass(frozen=True)
class DeleteOperation:
    name: ClassVar[str] = "delete"
    cell_id: str

    def to_dict(self) -> dict:
        return {"operation": self.name, "cell_id": self.cell_id}


Operation = Union[AddOperation, UpdateOperation, DeleteOperation]


@dataclass(frozen=True)
class OperationError:
    index: int
    operation: str
    cell_id: str
    code: str
    message: str

    def __str__(self) -> str:
        return f'{self.code} on cell_id="{self.cell_id}": {self.message}'

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "operation": self.operation,
            "cell_id": self.cell_id,
            "code": self.code,
            "message": self.message,
        }


@dataclass
class PatchResult:
    document: Document
    errors: List[OperationError] = field(default_factory=list)
    removed_ids: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def parse_operations(raw: Any) -> List[Operation]:
    """Validate a raw operation batch and convert it to typed operations."""
    problems = []
    for error in sorted(_batch_validator.iter_errors(raw), key=lambda e: list(e.absolute_path)):
        location = "".join(f"[{part}]" if isinstance(part, int) else f".{part}" for part in error.absolute_path)
        problems.append(f"operations{location}: {error.message}")
    if problems:
        raise InvalidOperationBatch("; ".join(problems))

    operations: List[Operation] = []
    for item in raw:
        kind = item["operation"]
        cell_id = item["cell_id"].strip()
        if kind == "add":
            operations.append(AddOperation(cell_id=cell_id, payload=item["new_xml"]))
        elif kind == "update":
            operations.append(UpdateOperation(cell_id=cell_id, payload=item["new_xml"]))
        else:
            operations.append(DeleteOperation(cell_id=cell_id))
    return operations


def cascade_ids(document: Document, root_id: str) -> Set[str]:
    """Return ``root_id`` plus every cell reachable via parent or edge endpoints.

    Computed as a fixed point over id sets so reference cycles terminate.
    """
    to_delete = {root_id}
    changed = True
    while changed:
        changed = False
        for cell in document:
            if cell.id in to_delete:
                continue
            if cell.parent in to_delete or (
                cell.is_edge and (cell.source in to_delete or cell.target in to_delete)
            ):
                to_delete.add(cell.id)
                changed = True
    return to_delete


def _apply_one(snapshot: Document, working: Document, operation: Operation) -> List[str]:
    cell_id = operation.cell_id
    if isinstance(operation, AddOperation):
        if cell_id in working or cell_id in SCAFFOLD_IDS:
            raise DuplicateId(f"Cell id '{cell_id}' already exists", cell_id=cell_id)
        working.insert(parse_single_cell(operation.payload, expected_id=cell_id))
        return []

    if isinstance(operation, UpdateOperation):
        if cell_id not in working:
            raise UnknownCell(f"Cell id '{cell_id}' not found", cell_id=cell_id)
        working.replace(parse_single_cell(operation.payload, expected_id=cell_id))
        return []

    if cell_id in snapshot:
        doomed = cascade_ids(snapshot, cell_id)
    elif cell_id in working:
        doomed = cascade_ids(working, cell_id)
    else:
        raise UnknownCell(f"Cell id '{cell_id}' not found", cell_id=cell_id)
    return working.remove(doomed)


def apply_operations(document: Document, operations: Sequence[Operation]) -> PatchResult:
    """Apply ``operations`` to ``document`` atomically.

    The input document is never mutated. When any operation fails the result
    carries the original document and one diagnostic per failing operation.
    Delete cascades are computed against the pre-batch snapshot.
    """
    working = document.copy()
    errors: List[OperationError] = []
    removed: List[str] = []

    for index, operation in enumerate(operations):
        try:
            removed.extend(_apply_one(document, working, operation))
        except DiagramEngineError as exc:
            errors.append(
                OperationError(
                    index=index,
                    operation=operation.name,
                    cell_id=operation.cell_id,
                    code=exc.code,
                    message=exc.message,
                )
            )

    if errors:
        logger.warning(
            "Operation batch rejected",
            extra={"operations": len(operations), "errors": [str(e) for e in errors]},
        )
        return PatchResult(document=document, errors=errors)

    logger.debug("Applied %d operation(s); removed %s", len(operations), removed)
    return PatchResult(document=working, removed_ids=removed)
