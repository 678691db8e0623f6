"""
Markup normalization for rendered proposals.

Templates are exported from a word processor, so the expanded HTML carries
artifacts: tokens split by formatting tags, empty label rows, inconsistent
paragraph/cell spacing, table border-spacing gaps and relative asset paths.
normalize_markup() runs a fixed, ordered pipeline of passes to clean them.

Every pass is idempotent and a no-op on input without its target pattern,
so normalize_markup(normalize_markup(x)) == normalize_markup(x). Style
attributes are rewritten by first dropping the properties a pass sets and
then appending them in canonical form.

Architecture:
- defragment_tokens(): repair {tokens} split by inline tags
- collapse_empty_blocks(): drop empty label rows and runs of empty paragraphs
- enforce_row_spacing(): line-item row padding + paragraph margins
- normalize_tables(): collapse table borders/spacing
- rewrite_asset_urls(): relative src/href/url() -> absolute under a base path
- widen_fill_in_blank(): make the highlighted COLOR_ blank visibly wide
"""

import re
from typing import Callable, Iterable, List, Optional, Tuple

import structlog

from proposal_engine.config.settings import settings

logger = structlog.get_logger(__name__)

_FLAGS = re.IGNORECASE | re.DOTALL

# Rows whose first cell is one of these labels are "line-item" rows
LINE_ITEM_LABELS = ("supply and install", "clean and remove", "area:", "notes:")

CELL_SPACING = "padding-top:0; padding-bottom:8px; line-height:1.25;"
CELL_SPACING_PROPS = ("padding-top", "padding-bottom", "line-height")
LINE_ITEM_P_MARGINS = "margin-top:0; margin-bottom:0;"
PARAGRAPH_SPACING = "margin:0 0 6px 0;"
MARGIN_PROPS = ("margin", "margin-top", "margin-bottom")
TABLE_SPACING = "border-collapse:collapse; border-spacing:0;"
TABLE_SPACING_PROPS = ("border-collapse", "border-spacing")
BLANK_STYLE = (
    "display:inline-block; min-width:320px; border-bottom:2px solid #0a0a0a; "
    "height:1.1em; line-height:1.1; background-color:#ffff00;"
)
BLANK_STYLE_PROPS = ("display", "min-width", "border-bottom", "height", "line-height", "background-color")

_TAG_RE = re.compile(r"<[^>]*>")
_STYLE_ATTR_RE = re.compile(r"""\sstyle\s*=\s*(["'])(.*?)\1""", _FLAGS)
_ROW_RE = re.compile(r"<tr(?:\s[^>]*)?>.*?</tr>", _FLAGS)
_CELL_RE = re.compile(r"<td\b[^>]*>.*?</td>", _FLAGS)
_CELL_OPEN_RE = re.compile(r"<td\b[^>]*>", re.IGNORECASE)
_PARAGRAPH_RE = re.compile(r"<p(\s[^>]*)?>(.*?)</p>", _FLAGS)
_IMG_RE = re.compile(r"<img\b", re.IGNORECASE)
_BLANK_TEXT_RE = re.compile(r"^[\-–—•_,.;:()\[\]\s\u00a0]*$")


# =============================================================================
# Helpers
# =============================================================================


def visible_text(markup: str) -> str:
    """Text content with tags removed, &nbsp; as space and whitespace collapsed."""
    text = _TAG_RE.sub(" ", markup).replace("&nbsp;", " ").replace("\u00a0", " ")
    return re.sub(r"\s+", " ", text).strip()


def _is_blank(text: str) -> bool:
    """Empty or punctuation-only filler (a lone dash left by an empty field)."""
    return bool(_BLANK_TEXT_RE.match(text))


def _split_declarations(style: str) -> List[str]:
    """Split a style value on ';' outside parentheses (data: URLs contain ';')."""
    parts, depth, current = [], 0, []
    for char in style:
        if char == "(":
            depth += 1
        elif char == ")" and depth:
            depth -= 1
        if char == ";" and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return [p.strip() for p in parts if p.strip()]


def restyle(style: str, drop: Iterable[str], append: str) -> str:
    """Remove the named properties from a style value and append new rules."""
    dropped = {name.lower() for name in drop}
    kept = [d for d in _split_declarations(style) if d.split(":", 1)[0].strip().lower() not in dropped]
    prefix = "; ".join(kept) + "; " if kept else ""
    return prefix + append


def _with_style(open_tag: str, drop: Iterable[str], append: str) -> str:
    """Rewrite (or add) the style attribute of a single opening tag."""
    match = _STYLE_ATTR_RE.search(open_tag)
    if match:
        quote = match.group(1)
        value = restyle(match.group(2), drop, append)
        return f"{open_tag[:match.start()]} style={quote}{value}{quote}{open_tag[match.end():]}"
    if open_tag.endswith("/>"):
        return f'{open_tag[:-2].rstrip()} style="{append}" />'
    return f'{open_tag[:-1]} style="{append}">'


def _cells(row: str) -> List[re.Match]:
    return list(_CELL_RE.finditer(row))


def _is_label(text: str) -> bool:
    lowered = text.lower()
    return any(lowered == label or lowered.startswith(label) for label in LINE_ITEM_LABELS)


def _is_line_item_row(cells: List[re.Match]) -> bool:
    return len(cells) >= 2 and _is_label(visible_text(cells[0].group(0)))


# =============================================================================
# Pass 1: token defragmentation
# =============================================================================

_FRAGMENTED_TOKEN_RE = re.compile(r"\{(?:[^{}<]|<[^>]*>)*\}")
_FRAGMENTED_IMAGE_RE = re.compile(r"\{(?:[^{}<]|<[^>]*>)*%\s*image(?:[^{}<]|<[^>]*>)*\}", re.IGNORECASE)
_TOKEN_NAME_RE = re.compile(r"^[#/]?[A-Za-z0-9_.]+$")
_PERCENT_TOKEN_RE = re.compile(r"^%[A-Za-z0-9_]+$")


def defragment_tokens(html: str) -> str:
    """
    Repair tokens whose name was split by interleaved formatting tags.

    ``{cust<span>omer_</span>name}`` becomes ``{customer_name}``. Braced text
    that does not reduce to a valid token name is left untouched.
    """
    def _repair(match: re.Match) -> str:
        inner = match.group(0)[1:-1]
        compact = re.sub(r"\s+", "", _TAG_RE.sub("", inner).replace("&nbsp;", " "))
        if _TOKEN_NAME_RE.match(compact) or _PERCENT_TOKEN_RE.match(compact):
            return "{" + compact + "}"
        return match.group(0)

    out = _FRAGMENTED_TOKEN_RE.sub(_repair, html)
    return _FRAGMENTED_IMAGE_RE.sub("{%image}", out)


# =============================================================================
# Pass 2: empty block collapsing
# =============================================================================

_EMPTY_PARAGRAPH_RUN_RE = re.compile(r"(?:\s*<p(?:\s[^>]*)?>\s*</p>\s*){3,}", re.IGNORECASE)


def collapse_empty_blocks(html: str) -> str:
    """
    Remove structurally empty rows and collapse runs of empty paragraphs.

    A row (2+ cells) is dropped when its first cell is a fixed label and
    every other cell is blank, or when every cell is blank. Rows containing
    an image are always kept. Three or more consecutive empty paragraphs
    become one.
    """
    def _row(match: re.Match) -> str:
        row = match.group(0)
        cells = _cells(row)
        if len(cells) < 2 or _IMG_RE.search(row):
            return row
        texts = [visible_text(cell.group(0)) for cell in cells]
        if _is_label(texts[0]) and all(_is_blank(t) for t in texts[1:]):
            return ""
        if all(_is_blank(t) for t in texts):
            return ""
        return row

    out = _ROW_RE.sub(_row, html)
    return _EMPTY_PARAGRAPH_RUN_RE.sub("<p></p>", out)


# =============================================================================
# Pass 3: row and paragraph spacing
# =============================================================================

_EMPTY_P_RE = re.compile(r"<p(?:\s[^>]*)?>\s*(?:&nbsp;|\s|<br\s*/?\s*>)*</p>", re.IGNORECASE)
_BR_RUN_RE = re.compile(r"(?:<br\s*/?\s*>\s*){2,}", re.IGNORECASE)
_TRAILING_BREAKS_RE = re.compile(r"(?:<br\s*/?\s*>|&nbsp;|\s)+(?=</td>)", re.IGNORECASE)
_LEADING_BREAKS_RE = re.compile(r"(<td\b[^>]*>)(?:\s|&nbsp;|<br\s*/?\s*>)+", re.IGNORECASE)
_PUNCT_P_RE = re.compile(r"<p(?:\s[^>]*)?>[\s\u00a0]*[\-–—•][\s\u00a0]*</p>", re.IGNORECASE)


def _space_paragraphs(markup: str) -> str:
    """Give every non-empty paragraph the standard bottom margin."""
    def _paragraph(match: re.Match) -> str:
        attrs, inner = match.group(1) or "", match.group(2)
        if not visible_text(inner):
            return match.group(0)
        return _with_style(f"<p{attrs}>", MARGIN_PROPS, PARAGRAPH_SPACING) + inner + "</p>"

    return _PARAGRAPH_RE.sub(_paragraph, markup)


def _clean_content_cell(cell: str) -> str:
    cell = _EMPTY_P_RE.sub("", cell)
    cell = _BR_RUN_RE.sub("<br/>", cell)
    cell = _TRAILING_BREAKS_RE.sub("", cell)
    cell = _PUNCT_P_RE.sub("", cell)
    cell = _LEADING_BREAKS_RE.sub(r"\1", cell)

    def _paragraph(match: re.Match) -> str:
        attrs, inner = match.group(1) or "", match.group(2)
        if not _IMG_RE.search(inner) and _is_blank(visible_text(inner)):
            return ""
        return _with_style(f"<p{attrs}>", MARGIN_PROPS, LINE_ITEM_P_MARGINS) + inner + "</p>"

    return _PARAGRAPH_RE.sub(_paragraph, cell)


def _space_line_item_row(row: str, cells: List[re.Match]) -> str:
    pieces, cursor = [], 0
    for index, match in enumerate(cells):
        pieces.append(row[cursor:match.start()])
        cell = _CELL_OPEN_RE.sub(
            lambda m: _with_style(m.group(0), CELL_SPACING_PROPS, CELL_SPACING), match.group(0), count=1
        )
        if index > 0:
            cell = _clean_content_cell(cell)
        else:
            cell = _space_paragraphs(cell)
        pieces.append(cell)
        cursor = match.end()
    pieces.append(row[cursor:])
    return "".join(pieces)


def enforce_row_spacing(html: str) -> str:
    """
    Normalize spacing of line-item rows and paragraphs.

    Line-item rows (2+ cells, first cell a fixed label): every cell gets the
    same padding/line-height; content cells lose empty and filler
    paragraphs, repeated and edge line breaks, and their paragraphs get
    zero margins. Everywhere else, non-empty paragraphs get a uniform
    bottom margin.
    """
    pieces, cursor = [], 0
    for match in _ROW_RE.finditer(html):
        pieces.append(_space_paragraphs(html[cursor:match.start()]))
        row = match.group(0)
        cells = _cells(row)
        if _is_line_item_row(cells):
            pieces.append(_space_line_item_row(row, cells))
        else:
            pieces.append(_space_paragraphs(row))
        cursor = match.end()
    pieces.append(_space_paragraphs(html[cursor:]))
    return "".join(pieces)


# =============================================================================
# Pass 4: table normalization
# =============================================================================

_TABLE_OPEN_RE = re.compile(r"<table\b[^>]*>", re.IGNORECASE)


def normalize_tables(html: str) -> str:
    """Force collapsed borders and zero border-spacing on every table."""
    return _TABLE_OPEN_RE.sub(lambda m: _with_style(m.group(0), TABLE_SPACING_PROPS, TABLE_SPACING), html)


# =============================================================================
# Pass 5: asset path rewriting
# =============================================================================

_SKIP_SCHEMES = ("http://", "https://", "data:", "mailto:", "tel:", "cid:", "javascript:")
_SRC_HREF_RE = re.compile(r"""(?<![\w-])(src|href)=(["'])([^"']+)\2""", re.IGNORECASE)
_CSS_URL_RE = re.compile(r"""url\(\s*(["']?)([^"')]+)\1\s*\)""", re.IGNORECASE)


def _needs_rewrite(url: str, base: str) -> bool:
    value = url.strip()
    if not value or value.startswith(("#", "/", "{")):
        return False
    if value.lower().startswith(_SKIP_SCHEMES):
        return False
    return not value.startswith(base + "/")


def _absolute(url: str, base: str) -> str:
    clean = url.strip()
    if clean.startswith("./"):
        clean = clean[2:]
    # Word "Save as HTML" puts images in "<name>.fld/"; they are published under assets/
    marker = clean.find(".fld/")
    if marker != -1:
        clean = "assets/" + clean[marker + len(".fld/"):]
    return f"{base}/{clean}"


def rewrite_asset_urls(html: str, base: Optional[str] = None) -> str:
    """
    Rewrite relative src/href/url() references to absolute paths under base.

    Remote (http/https), embedded (data:), mail/tel links, fragments,
    site-absolute paths and paths already under base are left unchanged.
    """
    base = (base if base is not None else settings.asset_base_path).rstrip("/")

    def _attr(match: re.Match) -> str:
        name, quote, value = match.groups()
        if not _needs_rewrite(value, base):
            return match.group(0)
        return f"{name}={quote}{_absolute(value, base)}{quote}"

    def _css(match: re.Match) -> str:
        quote, value = match.groups()
        if not _needs_rewrite(value, base):
            return match.group(0)
        return f"url({quote}{_absolute(value, base)}{quote})"

    out = _SRC_HREF_RE.sub(_attr, html)
    return _CSS_URL_RE.sub(_css, out)


# =============================================================================
# Pass 6: fill-in-the-blank widening
# =============================================================================

_COLOR_BLANK_RE = re.compile(
    r"(COLOR_.{0,240}?)(<span\b([^>]*?)\sstyle=([\"'])([^\"']*)\4([^>]*)>)(.*?)(</span>)", _FLAGS
)
_YELLOW_RE = re.compile(r"(?:background(?:-color)?|mso-highlight)\s*:\s*(?:#?ffff00|yellow)", re.IGNORECASE)
_UNDERSCORE_RUN_RE = re.compile(r"_{3,}")


def widen_fill_in_blank(html: str) -> str:
    """
    Widen the yellow-highlighted blank that follows the literal ``COLOR_``.

    The highlighted span gets a fixed minimum width and an underline so an
    empty value still prints as a visible blank. Spans that already hold a
    run of underscores (the ``COLOR:`` ______ variant) are left alone. Only
    the first match is touched.
    """
    def _widen(match: re.Match) -> str:
        prefix, span_open, _, quote, style, _, inner, span_close = match.groups()
        if not _YELLOW_RE.search(style):
            return match.group(0)
        text = _TAG_RE.sub("", inner).strip()
        if _UNDERSCORE_RUN_RE.search(text):
            return match.group(0)
        new_open = _with_style(span_open, BLANK_STYLE_PROPS, BLANK_STYLE)
        new_inner = text if text and not re.fullmatch(r"_+", text) else "&nbsp;"
        return prefix + new_open + new_inner + span_close

    return _COLOR_BLANK_RE.sub(_widen, html, count=1)


# =============================================================================
# Pipeline
# =============================================================================

Pass = Callable[[str], str]


def build_passes(asset_base: Optional[str] = None) -> Tuple[Tuple[str, Pass], ...]:
    """The ordered normalization pipeline."""
    return (
        ("defragment_tokens", defragment_tokens),
        ("collapse_empty_blocks", collapse_empty_blocks),
        ("enforce_row_spacing", enforce_row_spacing),
        ("normalize_tables", normalize_tables),
        ("rewrite_asset_urls", lambda html: rewrite_asset_urls(html, asset_base)),
        ("widen_fill_in_blank", widen_fill_in_blank),
    )


def normalize_markup(html: str, asset_base: Optional[str] = None) -> str:
    """
    Run every normalization pass in order.

    Args:
        html: Expanded markup
        asset_base: Absolute base path for relative assets (defaults to
            settings.asset_base_path)

    Returns:
        Normalized markup; normalizing it again returns it unchanged
    """
    out = str(html or "")
    for name, run in build_passes(asset_base):
        before = len(out)
        out = run(out)
        logger.debug("normalize_pass", step=name, size_before=before, size_after=len(out))
    return out
