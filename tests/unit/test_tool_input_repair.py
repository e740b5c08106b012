from diagram_stream.tools.tool_input_repair import repair_tool_input


def test_valid_json_object_is_returned_as_is():
    assert repair_tool_input("display_diagram", '{"xml": "<mxCell/>"}') == {"xml": "<mxCell/>"}


def test_truncated_object_is_repaired():
    raw = '{"operations": [{"operation": "delete", "cell_id": "a"}'
    repaired = repair_tool_input("edit_diagram", raw)

    assert repaired == {"operations": [{"operation": "delete", "cell_id": "a"}]}


def test_assignment_slips_are_normalised_before_repair():
    repaired = repair_tool_input("display_diagram", '{"xml"= "<mxCell id=\\"a\\"/>"}')
    assert repaired == {"xml": '<mxCell id="a"/>'}


def test_unrepairable_input_falls_back_to_placeholders():
    edit = repair_tool_input("edit_diagram", "")
    display = repair_tool_input("display_diagram", "")

    assert edit["operations"] == [] and "_error" in edit
    assert display["xml"] == "" and "_error" in display
    assert repair_tool_input("append_diagram", "") is None
