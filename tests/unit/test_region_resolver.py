import re

import pytest

from diagram_stream.services.region_store import RegionPayloadStore
from diagram_stream.tools.cell_parser import parse_cells
from diagram_stream.tools.region_resolver import (
    build_region_cell,
    cache_reference,
    encode_payload,
    find_references,
    resolve_cell_references,
    resolve_references,
)

PAYLOAD = "data:image/png;base64,iVBORw0KGgo="


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    store = RegionPayloadStore(ttl_seconds=600, clock=clock)
    store.put("extract_1_abc", {"logo": PAYLOAD})
    return store


# ── store ──────────────────────────────────────────────────────────────

def test_store_entries_expire_after_ttl(store, clock):
    assert store.get("extract_1_abc")["logo"] == PAYLOAD
    clock.now += 599
    assert store.get("extract_1_abc") is not None
    clock.now += 1
    assert store.get("extract_1_abc") is None
    assert len(store) == 0


def test_store_reads_do_not_remove_entries(store):
    for _ in range(3):
        assert store.get("extract_1_abc") is not None
    assert len(store) == 1


def test_store_allows_single_insert_per_live_key(store, clock):
    with pytest.raises(ValueError):
        store.put("extract_1_abc", {"other": PAYLOAD})
    clock.now += 601
    assert store.put("extract_1_abc", {"other": PAYLOAD}) == "extract_1_abc"


def test_store_returns_read_only_mapping(store):
    regions = store.get("extract_1_abc")
    with pytest.raises(TypeError):
        regions["logo"] = "changed"


def test_store_rejects_keys_that_break_the_reference_format():
    store = RegionPayloadStore(ttl_seconds=60)
    with pytest.raises(ValueError):
        store.put("", {"a": PAYLOAD})
    with pytest.raises(ValueError):
        store.put("a/b", {"a": PAYLOAD})


def test_sweep_removes_only_expired_entries(store, clock):
    clock.now += 300
    store.put("extract_2_def", {"chart": PAYLOAD})
    clock.now += 400
    assert store.sweep() == 1
    assert store.get("extract_2_def") is not None


def test_new_key_format():
    assert re.fullmatch(r"extract_\d+_[0-9a-z]{9}", RegionPayloadStore.new_key())


# ── resolver ───────────────────────────────────────────────────────────

def test_resolve_references_substitutes_known_and_reports_unknown(store):
    text = (
        '<mxCell id="a" style="shape=image;image=data:cache/extract_1_abc/logo;" vertex="1" parent="1"/>'
        '<mxCell id="b" style="shape=image;image=data:cache/extract_1_abc/missing;" vertex="1" parent="1"/>'
    )
    result = resolve_references(text, store)

    assert "image=data:image/png%3Bbase64,iVBORw0KGgo=;" in result.text
    assert "image=data:cache/extract_1_abc/missing" in result.text
    assert result.substituted == 1
    assert len(result.unresolved) == 1
    assert result.unresolved[0].cache_key == "extract_1_abc"
    assert result.unresolved[0].region_name == "missing"


def test_resolve_cell_references_names_the_cell(store):
    cells = parse_cells(
        '<mxCell id="a" style="image=data:cache/extract_1_abc/logo;" vertex="1" parent="1"/>'
        '<mxCell id="b" style="image=data:cache/gone/logo;" vertex="1" parent="1"/>'
    )
    result = resolve_cell_references(cells, store)

    assert result.cells[0].style == f"image={encode_payload(PAYLOAD)};"
    assert result.cells[1].style == "image=data:cache/gone/logo;"
    assert [ref.cell_id for ref in result.unresolved] == ["b"]
    error = result.unresolved[0].to_error()
    assert error.code == "UnresolvedReference"
    assert error.cell_id == "b"


def test_expired_key_is_unresolved(store, clock):
    clock.now += 601
    result = resolve_references("image=data:cache/extract_1_abc/logo", store)
    assert result.substituted == 0
    assert result.unresolved[0].token == cache_reference("extract_1_abc", "logo")


def test_text_resolution_escapes_payload_for_attributes():
    store = RegionPayloadStore(ttl_seconds=60)
    store.put("k", {"svg": 'data:image/svg+xml,<svg a="1"/>'})
    result = resolve_references('style="image=data:cache/k/svg;"', store)
    assert result.text == 'style="image=data:image/svg+xml,&lt;svg a=&quot;1&quot;/&gt;;"'


def test_find_references_and_region_cell_snippet():
    snippet = build_region_cell("extract_1_abc", "logo", 120, 80.5)

    assert [(r.cache_key, r.region_name) for r in find_references(snippet)] == [("extract_1_abc", "logo")]
    cell = parse_cells(snippet)[0]
    assert cell.id == "logo"
    assert cell.parent == "1"
    assert cell.geometry.width == 120
    assert cell.geometry.attributes["height"] == "80.5"


def test_single_quoted_style_reference_is_resolved(store):
    text = "<mxCell id='a' style='shape=image;image=data:cache/extract_1_abc/logo' vertex='1' parent='1'/>"
    result = resolve_references(text, store)

    assert result.substituted == 1
    assert result.unresolved == []
    assert "style='shape=image;image=data:image/png%3Bbase64,iVBORw0KGgo='" in result.text


def test_reference_stops_at_markup_characters():
    refs = find_references("image=data:cache/k&amp;x/logo<b>image=data:cache/k2/r&gt;")

    assert [(r.cache_key, r.region_name) for r in refs] == [("k2", "r")]


def test_single_quote_in_payload_is_escaped_for_text_form():
    store = RegionPayloadStore(ttl_seconds=60)
    store.put("k", {"svg": "data:image/svg+xml,<svg a='1'/>"})
    result = resolve_references("style='image=data:cache/k/svg'", store)
    assert result.text == "style='image=data:image/svg+xml,&lt;svg a=&apos;1&apos;/&gt;'"
