"""Resolve ``image=data:cache/<key>/<region>`` references into literal payloads."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Protocol, Sequence, Tuple
from xml.sax.saxutils import escape

from diagram_stream.errors import UnresolvedReference
from diagram_stream.models.cell import LAYER_ID, VERTEX, Cell, Geometry
from diagram_stream.tools.cell_parser import serialize_cell

logger = logging.getLogger(__name__)

CACHE_REFERENCE_PATTERN = re.compile(r"image=data:cache/([^/;\"'\s&<>]+)/([^;\"'\s&<>]+)")
STYLE_SEPARATOR = ";"
ENCODED_SEPARATOR = "%3B"

REGION_IMAGE_STYLE = "shape=image;verticalLabelPosition=bottom;verticalAlign=top;imageAspect=0;aspect=fixed;"


class RegionLookup(Protocol):
    def get(self, key: str) -> Optional[Mapping[str, str]]:
        ...


@dataclass(frozen=True)
class CacheReference:
    cache_key: str
    region_name: str
    cell_id: Optional[str] = None

    @property
    def token(self) -> str:
        return cache_reference(self.cache_key, self.region_name)

    def to_error(self) -> UnresolvedReference:
        where = f" in cell '{self.cell_id}'" if self.cell_id else ""
        return UnresolvedReference(
            f"Cached region '{self.region_name}' under key '{self.cache_key}'{where} "
            "is unknown or expired",
            cell_id=self.cell_id,
        )

    def to_dict(self) -> dict:
        return {"cache_key": self.cache_key, "region_name": self.region_name, "cell_id": self.cell_id}


@dataclass
class ResolutionResult:
    text: str
    unresolved: List[CacheReference] = field(default_factory=list)
    substituted: int = 0


@dataclass
class CellResolution:
    cells: List[Cell]
    unresolved: List[CacheReference] = field(default_factory=list)
    substituted: int = 0


def cache_reference(cache_key: str, region_name: str) -> str:
    return f"image=data:cache/{cache_key}/{region_name}"


def encode_payload(payload: str) -> str:
    """Percent-encode style separators so the payload stays one style value."""
    return payload.replace(STYLE_SEPARATOR, ENCODED_SEPARATOR)


def find_references(text: str) -> List[CacheReference]:
    return [CacheReference(m.group(1), m.group(2)) for m in CACHE_REFERENCE_PATTERN.finditer(text or "")]


def _substitute(
    value: str,
    store: RegionLookup,
    cell_id: Optional[str] = None,
    xml_escape: bool = False,
) -> Tuple[str, List[CacheReference], int]:
    unresolved: List[CacheReference] = []
    count = 0

    def _replace(match: re.Match) -> str:
        nonlocal count
        cache_key, region_name = match.group(1), match.group(2)
        regions = store.get(cache_key)
        payload = regions.get(region_name) if regions is not None else None
        if payload is None:
            unresolved.append(CacheReference(cache_key, region_name, cell_id))
            return match.group(0)
        count += 1
        encoded = encode_payload(payload)
        if xml_escape:
            encoded = escape(encoded, {'"': "&quot;", "'": "&apos;"})
        return f"image={encoded}"

    return CACHE_REFERENCE_PATTERN.sub(_replace, value), unresolved, count


def resolve_references(text: str, store: RegionLookup) -> ResolutionResult:
    """Substitute every resolvable reference in raw document text.

    Unresolvable references are left in place and reported individually.
    """
    resolved, unresolved, count = _substitute(text or "", store, xml_escape=True)
    if unresolved:
        logger.warning(
            "Unresolved cached region references",
            extra={"references": [ref.token for ref in unresolved]},
        )
    return ResolutionResult(text=resolved, unresolved=unresolved, substituted=count)


def resolve_cell_references(cells: Sequence[Cell], store: RegionLookup) -> CellResolution:
    """Substitute references inside the attribute values of parsed cells."""
    result = CellResolution(cells=[])
    for cell in cells:
        updates = {}
        for name, value in cell.attributes.items():
            if "data:cache/" not in value:
                continue
            resolved, unresolved, count = _substitute(value, store, cell_id=cell.id)
            result.unresolved.extend(unresolved)
            result.substituted += count
            if count:
                updates[name] = resolved
        result.cells.append(cell.with_attributes(**updates) if updates else cell)
    if result.unresolved:
        logger.warning(
            "Unresolved cached region references",
            extra={"references": [ref.token for ref in result.unresolved]},
        )
    return result


def build_region_cell(
    cache_key: str,
    region_name: str,
    width: float,
    height: float,
    x: float = 0,
    y: float = 0,
) -> str:
    """Render the image cell a generator embeds to place a cached region."""

    def _num(value: float) -> str:
        return str(int(value)) if float(value).is_integer() else str(value)

    cell = Cell(
        id=region_name,
        kind=VERTEX,
        attributes={
            "id": region_name,
            "value": "",
            "style": f"{REGION_IMAGE_STYLE}{cache_reference(cache_key, region_name)};",
            "vertex": "1",
            "parent": LAYER_ID,
        },
        geometry=Geometry(
            attributes={
                "x": _num(x),
                "y": _num(y),
                "width": _num(width),
                "height": _num(height),
                "as": "geometry",
            }
        ),
    )
    return serialize_cell(cell)
