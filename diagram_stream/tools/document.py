"""Document scaffold wrapper and structural validator."""
from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from diagram_stream.errors import StructuralValidationFailed
from diagram_stream.models.cell import LAYER_ID, ROOT_ID, SCAFFOLD_IDS, Cell
from diagram_stream.tools.cell_parser import cell_to_element, parse_document_cells

PAGE_NAME = "Page-1"
PAGE_ID = "page-1"


@dataclass(frozen=True)
class Violation:
    code: str
    message: str
    cell_id: Optional[str] = None
    related_id: Optional[str] = None

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "cell_id": self.cell_id,
            "related_id": self.related_id,
        }


def _parent_cycles(cells_by_id: Dict[str, Cell]) -> List[List[str]]:
    state: Dict[str, int] = {}
    cycles: List[List[str]] = []
    for start in cells_by_id:
        path: List[str] = []
        current: Optional[str] = start
        while current in cells_by_id and state.get(current, 0) == 0:
            state[current] = 1
            path.append(current)
            current = cells_by_id[current].parent
        if current in cells_by_id and state.get(current) == 1:
            cycles.append(path[path.index(current):])
        for cell_id in path:
            state[cell_id] = 2
    return cycles


def validate_cells(cells: Sequence[Cell]) -> List[Violation]:
    """Return every structural violation in ``cells`` (empty when valid)."""
    violations: List[Violation] = []
    cells_by_id: Dict[str, Cell] = {}

    for cell in cells:
        if cell.id in SCAFFOLD_IDS:
            violations.append(
                Violation("DuplicateId", f"Cell id '{cell.id}' is reserved for the document scaffold", cell.id)
            )
        elif cell.id in cells_by_id:
            violations.append(Violation("DuplicateId", f"Duplicate cell id '{cell.id}'", cell.id))
        else:
            cells_by_id[cell.id] = cell

    known = set(cells_by_id) | SCAFFOLD_IDS
    for cell in cells:
        if cell.nested_in is not None:
            violations.append(
                Violation(
                    "NestedCell",
                    f"Cell '{cell.id}' is nested inside cell '{cell.nested_in}'; "
                    "cells must be siblings linked by the parent attribute",
                    cell.id,
                    cell.nested_in,
                )
            )

        parent = cell.parent
        if not parent:
            violations.append(
                Violation("InvalidParentReference", f"Cell '{cell.id}' has no parent attribute", cell.id)
            )
        elif parent not in known:
            violations.append(
                Violation(
                    "InvalidParentReference",
                    f"Cell '{cell.id}' references missing parent '{parent}'",
                    cell.id,
                    parent,
                )
            )

        if cell.is_edge:
            for attr in ("source", "target"):
                ref = cell.attributes.get(attr)
                if ref and ref not in known:
                    violations.append(
                        Violation(
                            "InvalidEdgeEndpoint",
                            f"Edge '{cell.id}' {attr} references missing cell '{ref}'",
                            cell.id,
                            ref,
                        )
                    )

    for cycle in _parent_cycles(cells_by_id):
        chain = " -> ".join(cycle + [cycle[0]])
        violations.append(
            Violation("InvalidParentReference", f"Parent cycle detected: {chain}", cycle[0], cycle[-1])
        )
    return violations


def validate_document(cells: Sequence[Cell]) -> List[Cell]:
    """Validate ``cells`` and return them unchanged, or raise."""
    violations = validate_cells(cells)
    if violations:
        raise StructuralValidationFailed(violations)
    return list(cells)


def wrap_cells(cells: Iterable[Cell]) -> str:
    """Wrap a flat cell sequence with the mxfile scaffold and root/layer cells."""
    mxfile = ET.Element("mxfile")
    diagram = ET.SubElement(mxfile, "diagram", {"name": PAGE_NAME, "id": PAGE_ID})
    model = ET.SubElement(diagram, "mxGraphModel")
    root = ET.SubElement(model, "root")
    ET.SubElement(root, "mxCell", {"id": ROOT_ID})
    ET.SubElement(root, "mxCell", {"id": LAYER_ID, "parent": ROOT_ID})
    for cell in cells:
        root.append(cell_to_element(cell))
    return ET.tostring(mxfile, encoding="unicode")


def finalize_document(cells: Sequence[Cell]) -> str:
    return wrap_cells(validate_document(cells))


def unwrap_document(text: str) -> List[Cell]:
    return parse_document_cells(text)
