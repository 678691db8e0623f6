"""
Unit tests for the template expansion engine.

Tests cover:
- Scalar tokens: escaping, dotted paths, missing names, value rendering
- Blocks: presence arrays, record arrays, scope chaining, dict values
- Same-name adjacency and nesting
- Repair of unmatched close tags and unclosed blocks (and strict mode)
- Nesting depth limit
- Image slots and legacy double-brace tokens
"""

import pytest

from proposal_engine.config.errors import ErrorCode, TemplateError
from proposal_engine.services.template_engine import (
    IMAGE_TAG,
    Block,
    Scalar,
    TemplateEngine,
    Text,
    find_residual_tokens,
    render_template,
    to_text,
)


@pytest.fixture
def engine():
    return TemplateEngine()


# =============================================================================
# Scalars
# =============================================================================


def test_scalar_substitution():
    assert render_template("Hi {name}!", {"name": "Ann"}) == "Hi Ann!"


def test_scalar_is_escaped():
    """Payload text is HTML-escaped."""
    assert render_template("{name}", {"name": "<b>Tom & Co</b>"}) == "&lt;b&gt;Tom &amp; Co&lt;/b&gt;"


def test_missing_scalar_renders_empty():
    assert render_template("[{nope}]", {}) == "[]"


def test_dotted_path():
    payload = {"scope": {"asphalt": {"dripEdgeColor": "White"}}}
    assert render_template("{scope.asphalt.dripEdgeColor}", payload) == "White"
    assert render_template("{scope.cedar.dripEdgeColor}", payload) == ""


@pytest.mark.parametrize("value,expected", [
    (5.0, "5"),
    (2.5, "2.5"),
    (True, "true"),
    (False, "false"),
    (0, "0"),
    (None, ""),
    ([{}], ""),
    ({"a": 1}, ""),
])
def test_to_text(value, expected):
    assert to_text(value) == expected


def test_legacy_double_brace_token():
    """{{ name }} resolves like {name}."""
    assert render_template("Dear {{ customer_name }},", {"customer_name": "Jane"}) == "Dear Jane,"


# =============================================================================
# Blocks
# =============================================================================


def test_presence_array_shows_block():
    template = "{#show_asphalt}Asphalt{/show_asphalt}"
    assert render_template(template, {"show_asphalt": [{}]}) == "Asphalt"
    assert render_template(template, {"show_asphalt": []}) == ""
    assert render_template(template, {}) == ""


def test_record_array_repeats_block():
    template = "{#items}[{n}]{/items}"
    assert render_template(template, {"items": [{"n": 1}, {"n": 2}]}) == "[1][2]"


def test_outer_scope_visible_inside_block():
    template = "{#items}{title}-{n};{/items}"
    payload = {"title": "T", "items": [{"n": 1}, {"n": 2}]}
    assert render_template(template, payload) == "T-1;T-2;"


def test_item_shadows_outer_name():
    template = "{#items}{name}{/items}{name}"
    assert render_template(template, {"name": "outer", "items": [{"name": "inner"}]}) == "innerouter"


def test_dict_value_renders_once_against_outer_scope():
    payload = {"cfg": {"v": 1}, "v": "outer"}
    assert render_template("{#cfg}{v}{/cfg}", payload) == "outer"


@pytest.mark.parametrize("value", [False, 0, "", None])
def test_falsy_values_hide_block(value):
    assert render_template("{#x}shown{/x}", {"x": value}) == ""


def test_truthy_scalar_shows_block():
    assert render_template("{#x}shown{/x}", {"x": "yes"}) == "shown"


def test_dotted_block_name():
    payload = {"windows_and_doors": {"row": [{}]}}
    assert render_template("{#windows_and_doors.row}ok{/windows_and_doors.row}", payload) == "ok"


def test_adjacent_same_name_blocks_are_siblings(engine):
    """A close tag ends the nearest open block, so adjacent blocks do not nest."""
    nodes = engine.parse("{#a}x{/a}{#a}y{/a}")
    assert len(nodes) == 2
    assert all(isinstance(node, Block) for node in nodes)
    assert engine.render("{#a}x{/a}{#a}y{/a}", {"a": [{}]}) == "xy"


def test_nested_same_name_blocks(engine):
    template = "{#a}1{#a}2{/a}3{/a}"
    nodes = engine.parse(template)
    assert len(nodes) == 1
    outer = nodes[0]
    assert isinstance(outer.children[1], Block)
    assert engine.render(template, {"a": [{}]}) == "123"


def test_parse_builds_expected_nodes(engine):
    nodes = engine.parse("Hi {name}")
    assert nodes == [Text("Hi "), Scalar("name")]


# =============================================================================
# Structural repair
# =============================================================================


def test_unmatched_close_is_dropped(engine):
    """A stray close tag is dropped and reported."""
    assert engine.render("a{/x}b", {}) == "ab"
    assert engine.report.unmatched_closes == ["x"]
    assert engine.report.warnings == ["unmatched close tag {/x}"]


def test_unmatched_close_strict(engine):
    with pytest.raises(TemplateError) as exc_info:
        engine.render("a{/x}b", {}, strict=True)
    assert exc_info.value.code == ErrorCode.TEMPLATE_UNBALANCED
    assert exc_info.value.details["token"] == "x"
    assert exc_info.value.details["position"] == 1


def test_unclosed_photo_loop_ends_after_image(engine):
    """An unclosed loop ends right after its image slot."""
    template = "{#photos}{%image}<p>after</p>"
    payload = {"photos": [{"image": "a.png"}, {"image": "b.png"}]}
    expected = IMAGE_TAG.format(src="a.png") + IMAGE_TAG.format(src="b.png") + "<p>after</p>"
    assert engine.render(template, payload) == expected
    assert engine.report.repaired_blocks == ["photos"]


def test_unclosed_block_without_image_is_unwrapped(engine):
    """Without an image slot, the block's content is kept in place."""
    assert engine.render("{#flag}text", {"flag": []}) == "text"
    assert engine.report.repaired_blocks == ["flag"]


def test_unclosed_inner_block_closed_by_outer(engine):
    template = "{#outer}a{#inner}b{/outer}c"
    assert engine.render(template, {"outer": [{}], "inner": []}) == "abc"
    assert engine.report.repaired_blocks == ["inner"]


def test_unclosed_block_strict(engine):
    with pytest.raises(TemplateError) as exc_info:
        engine.parse("{#flag}text", strict=True)
    assert exc_info.value.code == ErrorCode.TEMPLATE_UNBALANCED
    assert exc_info.value.details["token"] == "flag"


def test_balanced_template_has_no_warnings(engine):
    engine.render("{#a}{b}{/a}", {"a": [{}], "b": 1})
    assert engine.report.warnings == []


# =============================================================================
# Depth limit
# =============================================================================


def test_too_deep_block_renders_empty():
    engine = TemplateEngine(max_depth=2)
    template = "{#a}A{#b}B{#c}deep{/c}{/b}{/a}"
    payload = {"a": [{}], "b": [{}], "c": [{}]}
    assert engine.render(template, payload) == "AB"
    assert engine.report.too_deep == ["c"]


def test_too_deep_strict():
    engine = TemplateEngine(max_depth=1)
    with pytest.raises(TemplateError) as exc_info:
        engine.parse("{#a}{#b}x{/b}{/a}", strict=True)
    assert exc_info.value.code == ErrorCode.TEMPLATE_TOO_DEEP


def test_depth_limit_from_settings(mock_settings, monkeypatch):
    monkeypatch.setattr(mock_settings, "max_block_depth", 3)
    assert TemplateEngine().max_depth == 3


# =============================================================================
# Images
# =============================================================================


def test_image_outside_block_renders_empty():
    assert render_template("x{%image}y", {"image": "a.png"}) == "xy"


def test_image_source_is_escaped():
    out = render_template("{#p}{%image}{/p}", {"p": [{"image": 'a.png" onerror="x'}]})
    assert 'onerror="x' not in out
    assert "&#34;" in out


def test_image_without_source_renders_empty():
    assert render_template("{#p}{%image}{/p}", {"p": [{"name": "no image"}]}) == ""


# =============================================================================
# Residual tokens
# =============================================================================


def test_find_residual_tokens():
    assert find_residual_tokens("x {foo} {#bar} {%image} {{ baz }}") == ["{foo}", "{#bar}", "{%image}", "{{ baz }}"]
    assert find_residual_tokens("<style>p { margin: 0 }</style>") == []
    assert find_residual_tokens("") == []
