"""Typed representation of diagram cells and the id-indexed document arena."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Iterator, List, Optional

from diagram_stream.errors import DuplicateId, UnknownCell

ROOT_ID = "0"
LAYER_ID = "1"
SCAFFOLD_IDS = frozenset({ROOT_ID, LAYER_ID})

VERTEX = "vertex"
EDGE = "edge"


def _as_float(value: Optional[str]) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        return None


@dataclass
class Geometry:
    """The single ``mxGeometry`` leaf of a cell.

    ``children`` keeps nested geometry markup (waypoints, offsets) verbatim.
    """

    attributes: Dict[str, str] = field(default_factory=dict)
    children: List[str] = field(default_factory=list)

    @property
    def x(self) -> Optional[float]:
        return _as_float(self.attributes.get("x"))

    @property
    def y(self) -> Optional[float]:
        return _as_float(self.attributes.get("y"))

    @property
    def width(self) -> Optional[float]:
        return _as_float(self.attributes.get("width"))

    @property
    def height(self) -> Optional[float]:
        return _as_float(self.attributes.get("height"))

    @property
    def relative(self) -> bool:
        return self.attributes.get("relative") == "1"


@dataclass
class Cell:
    id: str
    kind: str
    attributes: Dict[str, str] = field(default_factory=dict)
    geometry: Optional[Geometry] = None
    nested_in: Optional[str] = None

    @property
    def parent(self) -> Optional[str]:
        return self.attributes.get("parent")

    @property
    def source(self) -> Optional[str]:
        return self.attributes.get("source")

    @property
    def target(self) -> Optional[str]:
        return self.attributes.get("target")

    @property
    def style(self) -> Optional[str]:
        return self.attributes.get("style")

    @property
    def value(self) -> Optional[str]:
        return self.attributes.get("value")

    @property
    def is_edge(self) -> bool:
        return self.kind == EDGE

    def references(self) -> Dict[str, str]:
        """Return the relational attributes that point at other cells."""
        refs = {}
        for name in ("parent", "source", "target"):
            value = self.attributes.get(name)
            if value:
                refs[name] = value
        return refs

    def with_attributes(self, **updates: str) -> "Cell":
        attributes = dict(self.attributes)
        attributes.update(updates)
        return replace(self, attributes=attributes)


class Document:
    """Ordered arena of cells addressed by id.

    The scaffold cells are implicit and never stored.
    """

    def __init__(self, cells: Iterable[Cell] = ()):
        self._cells: Dict[str, Cell] = {}
        for cell in cells:
            self.insert(cell)

    def __contains__(self, cell_id: object) -> bool:
        return cell_id in self._cells

    def __iter__(self) -> Iterator[Cell]:
        return iter(list(self._cells.values()))

    def __len__(self) -> int:
        return len(self._cells)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Document):
            return NotImplemented
        return list(self._cells.items()) == list(other._cells.items())

    def __repr__(self) -> str:
        return f"Document(ids={self.ids()!r})"

    def get(self, cell_id: str) -> Optional[Cell]:
        return self._cells.get(cell_id)

    def ids(self) -> List[str]:
        return list(self._cells.keys())

    def cells(self) -> List[Cell]:
        return list(self._cells.values())

    def copy(self) -> "Document":
        clone = Document()
        clone._cells = dict(self._cells)
        return clone

    def insert(self, cell: Cell) -> None:
        if cell.id in self._cells or cell.id in SCAFFOLD_IDS:
            raise DuplicateId(f"Cell id '{cell.id}' already exists", cell_id=cell.id)
        self._cells[cell.id] = cell

    def replace(self, cell: Cell) -> None:
        if cell.id not in self._cells:
            raise UnknownCell(f"Cell id '{cell.id}' not found", cell_id=cell.id)
        self._cells[cell.id] = cell

    def remove(self, cell_ids: Iterable[str]) -> List[str]:
        removed = []
        for cell_id in cell_ids:
            if self._cells.pop(cell_id, None) is not None:
                removed.append(cell_id)
        return removed
