"""
Unit tests for markup normalization.

Tests cover:
- Token defragmentation
- Empty row and empty paragraph collapsing
- Line-item row spacing and paragraph margins
- Table border normalization
- Asset URL rewriting
- Fill-in-the-blank widening
- Idempotence of the full pipeline
"""

import pytest

from proposal_engine.services.markup_normalizer import (
    BLANK_STYLE,
    CELL_SPACING,
    LINE_ITEM_P_MARGINS,
    PARAGRAPH_SPACING,
    TABLE_SPACING,
    build_passes,
    collapse_empty_blocks,
    defragment_tokens,
    enforce_row_spacing,
    normalize_markup,
    normalize_tables,
    restyle,
    rewrite_asset_urls,
    visible_text,
    widen_fill_in_blank,
)
from tests.fixtures.sample_templates import COLOR_BLANK, EXPORTED_FRAGMENT, LINE_ITEM_TABLE


# =============================================================================
# Helpers
# =============================================================================


def test_visible_text():
    assert visible_text("<td><p>&nbsp;Hello\n  <b>world</b></p></td>") == "Hello world"


def test_restyle_drops_and_appends():
    assert restyle("color:red; margin-top:12px", ("margin-top",), "margin:0;") == "color:red; margin:0;"
    assert restyle("", ("margin",), "margin:0;") == "margin:0;"


def test_restyle_keeps_semicolons_inside_urls():
    style = "background:url(data:image/png;base64,AA); margin:4px"
    assert restyle(style, ("margin",), "margin:0;") == "background:url(data:image/png;base64,AA); margin:0;"


# =============================================================================
# Pass 1: defragmentation
# =============================================================================


@pytest.mark.parametrize("fragment,expected", [
    ("{cust<span>omer_</span>name}", "{customer_name}"),
    ('{#<span lang="EN">show_</span>asphalt}', "{#show_asphalt}"),
    ("{/show_<b>asphalt</b>}", "{/show_asphalt}"),
    ("{<span>%</span> image}", "{%image}"),
    ("{scope.<i>asphalt</i>.color}", "{scope.asphalt.color}"),
])
def test_defragment_tokens(fragment, expected):
    assert defragment_tokens(fragment) == expected


def test_defragment_leaves_css_alone():
    css = "<style>p { margin: 0; }</style>"
    assert defragment_tokens(css) == css


def test_defragment_leaves_intact_tokens_alone():
    assert defragment_tokens("<p>{customer_name}</p>") == "<p>{customer_name}</p>"


# =============================================================================
# Pass 2: empty blocks
# =============================================================================


def test_collapse_drops_label_rows_without_content():
    """A label row whose value cells are blank is removed."""
    html = (
        "<table>"
        "<tr><td>Supply and install</td><td><p>&nbsp;</p></td></tr>"
        "<tr><td>Area:</td><td>Front</td></tr>"
        "</table>"
    )
    assert collapse_empty_blocks(html) == "<table><tr><td>Area:</td><td>Front</td></tr></table>"


def test_collapse_drops_all_blank_rows():
    html = "<table><tr><td>&nbsp;</td><td>-</td></tr><tr><td>Kept</td><td></td></tr></table>"
    assert collapse_empty_blocks(html) == "<table><tr><td>Kept</td><td></td></tr></table>"


def test_collapse_keeps_rows_with_images():
    html = '<table><tr><td></td><td><img src="x.png"></td></tr></table>'
    assert collapse_empty_blocks(html) == html


def test_collapse_keeps_single_cell_rows():
    html = "<table><tr><td>&nbsp;</td></tr></table>"
    assert collapse_empty_blocks(html) == html


def test_collapse_runs_of_empty_paragraphs():
    assert collapse_empty_blocks("a<p></p><p> </p>\n<p></p>b") == "a<p></p>b"
    assert collapse_empty_blocks("a<p></p><p></p>b") == "a<p></p><p></p>b"


# =============================================================================
# Pass 3: spacing
# =============================================================================


def test_line_item_row_spacing():
    """Line-item cells get uniform padding; content cells lose stray breaks."""
    row = "<tr><td>Notes:</td><td><br><p>Hello</p><br><br></td></tr>"
    expected = (
        f'<tr><td style="{CELL_SPACING}">Notes:</td>'
        f'<td style="{CELL_SPACING}"><p style="{LINE_ITEM_P_MARGINS}">Hello</p></td></tr>'
    )
    assert enforce_row_spacing(row) == expected


def test_line_item_label_cell_paragraph_spacing():
    """Paragraphs in the label cell keep the standard margin; content cells get zero margins."""
    row = "<tr><td><p>Supply and install</p></td><td><p>Shingles</p></td></tr>"
    expected = (
        f'<tr><td style="{CELL_SPACING}"><p style="{PARAGRAPH_SPACING}">Supply and install</p></td>'
        f'<td style="{CELL_SPACING}"><p style="{LINE_ITEM_P_MARGINS}">Shingles</p></td></tr>'
    )
    assert enforce_row_spacing(row) == expected
    assert enforce_row_spacing(expected) == expected


def test_line_item_row_drops_filler_paragraphs():
    row = "<tr><td>Area:</td><td><p>&nbsp;</p><p>-</p><p>Back slope</p></td></tr>"
    out = enforce_row_spacing(row)
    assert out.count("<p") == 1
    assert "Back slope" in out


def test_paragraph_spacing_outside_rows():
    assert enforce_row_spacing("<p>Hi</p>") == f'<p style="{PARAGRAPH_SPACING}">Hi</p>'
    assert enforce_row_spacing("<p> </p>") == "<p> </p>"


def test_paragraph_spacing_replaces_existing_margins():
    html = '<p style="color:red; margin-top:12px">Hi</p>'
    assert enforce_row_spacing(html) == f'<p style="color:red; {PARAGRAPH_SPACING}">Hi</p>'


def test_non_line_item_rows_get_paragraph_spacing():
    row = "<tr><td>Color</td><td><p>Black</p></td></tr>"
    assert enforce_row_spacing(row) == f'<tr><td>Color</td><td><p style="{PARAGRAPH_SPACING}">Black</p></td></tr>'


# =============================================================================
# Pass 4: tables
# =============================================================================


def test_normalize_tables():
    assert normalize_tables('<table class="x">') == f'<table class="x" style="{TABLE_SPACING}">'
    assert normalize_tables('<table style="border-spacing:4px; width:100%">') == (
        f'<table style="width:100%; {TABLE_SPACING}">'
    )


# =============================================================================
# Pass 5: assets
# =============================================================================


@pytest.mark.parametrize("html,expected", [
    ('<img src="images/logo.png">', '<img src="/templates/proposal/images/logo.png">'),
    ('<img src="./x.png">', '<img src="/templates/proposal/x.png">'),
    ('<img src="Proposal.fld/image001.png">', '<img src="/templates/proposal/assets/image001.png">'),
    ('<a href="https://example.com/a.pdf">', '<a href="https://example.com/a.pdf">'),
    ('<img src="data:image/png;base64,AA">', '<img src="data:image/png;base64,AA">'),
    ('<a href="mailto:a@b.c">', '<a href="mailto:a@b.c">'),
    ('<a href="#top">', '<a href="#top">'),
    ('<img src="/static/a.png">', '<img src="/static/a.png">'),
    ("<div style=\"background:url('bg.png')\">", "<div style=\"background:url('/templates/proposal/bg.png')\">"),
    ('<img data-src="lazy.png" src="a.png">', '<img data-src="lazy.png" src="/templates/proposal/a.png">'),
    ('<a data-href="x.html">', '<a data-href="x.html">'),
])
def test_rewrite_asset_urls(html, expected):
    assert rewrite_asset_urls(html) == expected


def test_rewrite_asset_urls_custom_base():
    assert rewrite_asset_urls('<img src="x.png">', "/cdn/") == '<img src="/cdn/x.png">'


def test_rewrite_asset_base_from_settings(mock_settings, monkeypatch):
    monkeypatch.setattr(mock_settings, "asset_base_path", "/assets/v2")
    assert rewrite_asset_urls('<img src="x.png">') == '<img src="/assets/v2/x.png">'


# =============================================================================
# Pass 6: fill-in-the-blank
# =============================================================================


def test_widen_highlighted_blank():
    html = '<p>COLOR_ <span style="background:yellow">Red</span></p>'
    expected = f'<p>COLOR_ <span style="background:yellow; {BLANK_STYLE}">Red</span></p>'
    assert widen_fill_in_blank(html) == expected


def test_widen_empty_blank_gets_nbsp():
    assert widen_fill_in_blank(COLOR_BLANK).endswith(">&nbsp;</span></p>")


def test_widen_skips_underscore_blank():
    html = '<p>COLOR_ <span style="background:yellow">______</span></p>'
    assert widen_fill_in_blank(html) == html


def test_widen_skips_unhighlighted_span():
    html = '<p>COLOR_ <span style="font-weight:bold">Red</span></p>'
    assert widen_fill_in_blank(html) == html


def test_widen_only_first_match():
    html = (
        '<p>COLOR_ <span style="background:yellow">A</span></p>'
        '<p>COLOR_ <span style="background:yellow">B</span></p>'
    )
    out = widen_fill_in_blank(html)
    assert out.count("min-width:320px") == 1


# =============================================================================
# Pipeline
# =============================================================================


def test_pass_order():
    assert [name for name, _ in build_passes()] == [
        "defragment_tokens",
        "collapse_empty_blocks",
        "enforce_row_spacing",
        "normalize_tables",
        "rewrite_asset_urls",
        "widen_fill_in_blank",
    ]


def test_normalize_full_fragment():
    out = normalize_markup(EXPORTED_FRAGMENT)
    assert "Notes:" not in out
    assert f'<p style="{LINE_ITEM_P_MARGINS}">GAF Timberline HDZ</p>' in out
    assert "/templates/proposal/assets/image001.png" in out
    assert "url('/templates/proposal/bg.png')" in out
    assert "min-width:320px" in out
    assert out.count("<p></p>") == 1
    assert TABLE_SPACING in out


@pytest.mark.parametrize("html", [EXPORTED_FRAGMENT, LINE_ITEM_TABLE, COLOR_BLANK, "", "plain text"])
def test_normalize_is_idempotent(html):
    """Normalizing twice gives the same result as normalizing once."""
    once = normalize_markup(html)
    assert normalize_markup(once) == once


def test_normalize_is_idempotent_with_custom_base():
    once = normalize_markup(EXPORTED_FRAGMENT, "/cdn")
    assert normalize_markup(once, "/cdn") == once


def test_normalize_noop_without_targets():
    assert normalize_markup("plain text") == "plain text"
