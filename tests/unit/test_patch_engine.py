import pytest

from diagram_stream.errors import InvalidOperationBatch
from diagram_stream.tools.cell_parser import parse_document
from diagram_stream.tools.patch_engine import (
    AddOperation,
    DeleteOperation,
    UpdateOperation,
    apply_operations,
    cascade_ids,
    parse_operations,
)

BASE = (
    '<mxCell id="P" value="Parent" vertex="1" parent="1"/>'
    '<mxCell id="C" value="Child" vertex="1" parent="P"/>'
    '<mxCell id="X" value="Other" vertex="1" parent="1"/>'
    '<mxCell id="E" edge="1" parent="1" source="C" target="X"/>'
)


@pytest.fixture
def document():
    return parse_document(BASE)


# ── boundary validation ────────────────────────────────────────────────

def test_parse_operations_builds_typed_variants():
    ops = parse_operations(
        [
            {"operation": "add", "cell_id": "n", "new_xml": '<mxCell id="n" vertex="1" parent="1"/>'},
            {"operation": "update", "cell_id": "P", "new_xml": '<mxCell id="P" vertex="1" parent="1"/>'},
            {"operation": "delete", "cell_id": "X"},
        ]
    )
    assert [type(op) for op in ops] == [AddOperation, UpdateOperation, DeleteOperation]
    assert ops[2].to_dict() == {"operation": "delete", "cell_id": "X"}


@pytest.mark.parametrize(
    "raw, fragment",
    [
        ({"operation": "delete"}, "is not of type 'array'"),
        ([{"operation": "add", "cell_id": "n"}], "operations[0]"),
        ([{"operation": "update", "cell_id": "n", "new_xml": ""}], "operations[0].new_xml"),
        ([{"operation": "rename", "cell_id": "n"}], "operations[0].operation"),
        ([{"operation": "delete"}], "'cell_id' is a required property"),
        ([{"operation": "delete", "cell_id": "  "}], "operations[0].cell_id"),
    ],
)
def test_parse_operations_rejects_malformed_batches(raw, fragment):
    with pytest.raises(InvalidOperationBatch) as excinfo:
        parse_operations(raw)
    assert fragment in str(excinfo.value)


# ── cascade ────────────────────────────────────────────────────────────

def test_cascade_follows_parents_and_edge_endpoints(document):
    assert cascade_ids(document, "P") == {"P", "C", "E"}
    assert cascade_ids(document, "X") == {"X", "E"}


def test_cascade_terminates_on_reference_cycle():
    cyclic = parse_document(
        '<mxCell id="a" vertex="1" parent="b"/>'
        '<mxCell id="b" vertex="1" parent="a"/>'
        '<mxCell id="c" vertex="1" parent="1"/>'
    )
    assert cascade_ids(cyclic, "a") == {"a", "b"}


def test_delete_removes_cascade_and_keeps_unrelated_cells(document):
    result = apply_operations(document, [DeleteOperation("P")])

    assert result.ok
    assert result.document.ids() == ["X"]
    assert set(result.removed_ids) == {"P", "C", "E"}
    assert document.ids() == ["P", "C", "X", "E"]


def test_edge_labels_are_removed_with_their_edge():
    doc = parse_document(
        '<mxCell id="a" vertex="1" parent="1"/>'
        '<mxCell id="b" vertex="1" parent="1"/>'
        '<mxCell id="e" edge="1" parent="1" source="a" target="b"/>'
        '<mxCell id="label" value="calls" vertex="1" parent="e"/>'
    )
    result = apply_operations(doc, [DeleteOperation("a")])
    assert result.document.ids() == ["b"]


def test_operation_on_cascaded_cell_rejects_whole_batch(document):
    ops = [
        DeleteOperation("P"),
        UpdateOperation("C", '<mxCell id="C" value="renamed" vertex="1" parent="1"/>'),
    ]
    result = apply_operations(document, ops)

    assert not result.ok
    assert result.document == document
    assert result.document.ids() == ["P", "C", "X", "E"]
    assert [(e.index, e.code, e.cell_id) for e in result.errors] == [(1, "UnknownCell", "C")]


def test_overlapping_deletes_union_their_cascades(document):
    result = apply_operations(document, [DeleteOperation("P"), DeleteOperation("C")])

    assert result.ok
    assert result.document.ids() == ["X"]


def test_delete_of_cell_added_in_same_batch(document):
    ops = [
        AddOperation("n", '<mxCell id="n" vertex="1" parent="1"/>'),
        AddOperation("m", '<mxCell id="m" vertex="1" parent="n"/>'),
        DeleteOperation("n"),
    ]
    result = apply_operations(document, ops)

    assert result.ok
    assert "n" not in result.document and "m" not in result.document


# ── atomicity ──────────────────────────────────────────────────────────

def test_add_then_unknown_update_leaves_document_unchanged(document):
    ops = [
        AddOperation("new", '<mxCell id="new" value="New" vertex="1" parent="1"/>'),
        UpdateOperation("unknown_id", '<mxCell id="unknown_id" vertex="1" parent="1"/>'),
    ]
    result = apply_operations(document, ops)

    assert result.document == document
    assert "new" not in result.document
    assert len(result.errors) == 1
    assert result.errors[0].code == "UnknownCell"
    assert str(result.errors[0]) == 'UnknownCell on cell_id="unknown_id": Cell id \'unknown_id\' not found'


def test_every_failing_operation_is_reported(document):
    ops = [
        AddOperation("P", '<mxCell id="P" vertex="1" parent="1"/>'),
        DeleteOperation("ghost"),
        AddOperation("0", '<mxCell id="0" vertex="1" parent="1"/>'),
        UpdateOperation("X", '<mxCell id="Y" vertex="1" parent="1"/>'),
        AddOperation("bad", '<mxCell id="bad" vertex="1" parent="1">'),
    ]
    result = apply_operations(document, ops)

    assert [(e.index, e.code) for e in result.errors] == [
        (0, "DuplicateId"),
        (1, "UnknownCell"),
        (2, "DuplicateId"),
        (3, "MalformedFragment"),
        (4, "MalformedFragment"),
    ]
    assert result.document == document


def test_update_fully_replaces_cell(document):
    result = apply_operations(
        document,
        [UpdateOperation("X", '<mxCell id="X" value="Replaced" vertex="1" parent="P"/>')],
    )

    replaced = result.document.get("X")
    assert replaced.value == "Replaced"
    assert replaced.parent == "P"
    assert result.document.ids() == ["P", "C", "X", "E"]
