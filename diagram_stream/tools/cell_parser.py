"""Tokenizer for mxCell fragment markup.

Fragments are sequences of sibling ``<mxCell>`` elements, each with at most one
``<mxGeometry>`` leaf. Callers are expected to have confirmed completeness with
:mod:`diagram_stream.tools.completeness` first; anything that still cannot be
resolved into cells raises :class:`MalformedFragment`.
"""
from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from typing import Iterable, List, Optional

from diagram_stream.errors import MalformedFragment
from diagram_stream.models.cell import EDGE, SCAFFOLD_IDS, VERTEX, Cell, Document, Geometry

CELL_TAG = "mxCell"
GEOMETRY_TAG = "mxGeometry"
WRAPPER_TAGS = ("mxfile", "diagram", "mxGraphModel", "root")

_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>", re.IGNORECASE)


def _local_name(tag: str) -> str:
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _has_text(value: Optional[str]) -> bool:
    return bool(value and value.strip())


def _fromstring(markup: str) -> ET.Element:
    try:
        return ET.fromstring(f"<cells>{markup}</cells>")
    except ET.ParseError as exc:
        raise MalformedFragment(f"Invalid cell markup: {exc}") from exc


def _parse_geometry(elem: ET.Element) -> Geometry:
    children = []
    for child in elem:
        child.tail = None
        children.append(ET.tostring(child, encoding="unicode"))
    return Geometry(attributes=dict(elem.attrib), children=children)


def _parse_cell(elem: ET.Element, out: List[Cell], nested_in: Optional[str] = None) -> None:
    attributes = dict(elem.attrib)
    cell_id = attributes.get("id")
    if not cell_id:
        raise MalformedFragment("mxCell is missing an id attribute")

    is_vertex = attributes.get("vertex") == "1"
    is_edge = attributes.get("edge") == "1"
    if is_vertex == is_edge:
        raise MalformedFragment(
            f"Cell '{cell_id}' must carry exactly one of vertex=\"1\" or edge=\"1\"",
            cell_id=cell_id,
        )
    if _has_text(elem.text):
        raise MalformedFragment(f"Unexpected text inside cell '{cell_id}'", cell_id=cell_id)

    geometry = None
    nested: List[ET.Element] = []
    for child in elem:
        tag = _local_name(child.tag)
        if tag == GEOMETRY_TAG:
            if geometry is not None:
                raise MalformedFragment(f"Cell '{cell_id}' has more than one geometry", cell_id=cell_id)
            geometry = _parse_geometry(child)
        elif tag == CELL_TAG:
            nested.append(child)
        else:
            raise MalformedFragment(f"Unexpected element <{tag}> inside cell '{cell_id}'", cell_id=cell_id)
        if _has_text(child.tail):
            raise MalformedFragment(f"Unexpected text inside cell '{cell_id}'", cell_id=cell_id)

    out.append(
        Cell(
            id=cell_id,
            kind=EDGE if is_edge else VERTEX,
            attributes=attributes,
            geometry=geometry,
            nested_in=nested_in,
        )
    )
    # Illegally nested cells are flattened and flagged for the validator.
    for child in nested:
        _parse_cell(child, out, nested_in=cell_id)


def _parse_siblings(container: ET.Element) -> List[Cell]:
    cells: List[Cell] = []
    if _has_text(container.text):
        raise MalformedFragment("Unexpected text between cells")
    for elem in container:
        tag = _local_name(elem.tag)
        if tag != CELL_TAG:
            raise MalformedFragment(f"Unexpected element <{tag}>; expected <{CELL_TAG}>")
        _parse_cell(elem, cells)
        if _has_text(elem.tail):
            raise MalformedFragment("Unexpected text between cells")
    return cells


def parse_cells(text: str) -> List[Cell]:
    """Parse a bare fragment of sibling cells."""
    return _parse_siblings(_fromstring(text or ""))


def parse_single_cell(text: str, expected_id: Optional[str] = None) -> Cell:
    """Parse an operation payload that must hold exactly one complete cell."""
    cells = parse_cells(text)
    if len(cells) != 1:
        raise MalformedFragment(
            f"Payload must contain exactly one mxCell, found {len(cells)}", cell_id=expected_id
        )
    cell = cells[0]
    if expected_id is not None and cell.id != expected_id:
        raise MalformedFragment(
            f"Payload id '{cell.id}' does not match cell_id '{expected_id}'", cell_id=expected_id
        )
    return cell


def _find_cell_container(root: ET.Element) -> ET.Element:
    container = root
    for tag in WRAPPER_TAGS:
        children = list(container)
        if len(children) == 1 and _local_name(children[0].tag) == tag:
            container = children[0]
            if tag == "diagram" and _has_text(container.text) and not len(container):
                raise MalformedFragment("Compressed diagram payloads are not supported")
    return container


def parse_document_cells(text: str) -> List[Cell]:
    """Parse wrapped or bare document markup, dropping the scaffold cells."""
    markup = _XML_DECLARATION.sub("", text or "", count=1)
    container = _find_cell_container(_fromstring(markup))
    scaffold_free = [
        elem
        for elem in container
        if not (_local_name(elem.tag) == CELL_TAG and elem.attrib.get("id") in SCAFFOLD_IDS)
    ]
    for elem in list(container):
        container.remove(elem)
    container.extend(scaffold_free)
    return _parse_siblings(container)


def parse_document(text: str) -> Document:
    """Parse markup into an id-indexed :class:`Document`.

    Raises :class:`DuplicateId` if the markup repeats an id.
    """
    return Document(parse_document_cells(text))


def cell_to_element(cell: Cell) -> ET.Element:
    elem = ET.Element(CELL_TAG, dict(cell.attributes))
    if cell.geometry is not None:
        geometry = ET.SubElement(elem, GEOMETRY_TAG, dict(cell.geometry.attributes))
        for raw in cell.geometry.children:
            geometry.append(ET.fromstring(raw))
    return elem


def serialize_cell(cell: Cell) -> str:
    return ET.tostring(cell_to_element(cell), encoding="unicode")


def serialize_cells(cells: Iterable[Cell]) -> str:
    return "\n".join(serialize_cell(cell) for cell in cells)
