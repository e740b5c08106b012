import json

from typer.testing import CliRunner

from diagram_stream.cli import app

runner = CliRunner()

DOCUMENT = (
    '<mxfile><diagram name="Page-1" id="page-1"><mxGraphModel><root>'
    '<mxCell id="0"/><mxCell id="1" parent="0"/>'
    '<mxCell id="P" vertex="1" parent="1"/>'
    '<mxCell id="C" vertex="1" parent="P"/>'
    '<mxCell id="X" vertex="1" parent="1"/>'
    '<mxCell id="E" edge="1" parent="1" source="C" target="X"/>'
    "</root></mxGraphModel></diagram></mxfile>"
)


def test_check_reports_completeness(tmp_path):
    complete = tmp_path / "complete.xml"
    complete.write_text('<mxCell id="a" vertex="1" parent="1"/>')
    truncated = tmp_path / "truncated.xml"
    truncated.write_text('<mxCell id="a" vertex="1" par')

    ok = runner.invoke(app, ["check", str(complete)])
    assert ok.exit_code == 0
    assert json.loads(ok.stdout)["completeness"] == "complete"

    bad = runner.invoke(app, ["check", str(truncated)])
    assert bad.exit_code == 1
    assert json.loads(bad.stdout)["completeness"] == "incomplete"


def test_apply_writes_patched_document(tmp_path):
    document = tmp_path / "doc.xml"
    document.write_text(DOCUMENT)
    operations = tmp_path / "ops.json"
    operations.write_text(json.dumps([{"operation": "delete", "cell_id": "P"}]))
    output = tmp_path / "out.xml"

    result = runner.invoke(app, ["apply", str(document), str(operations), "--output", str(output)])

    assert result.exit_code == 0
    summary = json.loads(result.stdout)
    assert sorted(summary["removed"]) == ["C", "E", "P"]
    assert '<mxCell id="X"' in output.read_text()
    assert '<mxCell id="P"' not in output.read_text()


def test_apply_rejects_failing_batch(tmp_path):
    document = tmp_path / "doc.xml"
    document.write_text(DOCUMENT)
    operations = tmp_path / "ops.json"
    operations.write_text(json.dumps([{"operation": "delete", "cell_id": "ghost"}]))

    result = runner.invoke(app, ["apply", str(document), str(operations)])

    assert result.exit_code == 1
    assert json.loads(result.stdout)["errors"][0]["code"] == "UnknownCell"


def test_validate_lists_violations(tmp_path):
    good = tmp_path / "good.xml"
    good.write_text(DOCUMENT)
    bad = tmp_path / "bad.xml"
    bad.write_text('<mxCell id="e" edge="1" parent="1" source="a" target="b"/>')

    assert runner.invoke(app, ["validate", str(good)]).exit_code == 0

    result = runner.invoke(app, ["validate", str(bad)])
    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["valid"] is False
    assert [v["code"] for v in payload["violations"]] == ["InvalidEdgeEndpoint", "InvalidEdgeEndpoint"]
