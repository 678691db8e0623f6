"""
Template expansion engine.

Expands proposal templates against a payload. The token vocabulary is
deliberately small:

- ``{name}`` / ``{a.b}``: scalar, HTML-escaped
- ``{#name}...{/name}``: block, repeated per array item, shown once for a
  truthy value, dropped for a falsy or missing one
- ``{%image}``: image slot, only meaningful inside a block iteration
- ``{{ name }}``: legacy double-brace scalar, resolved like ``{name}``

Architecture:
- _tokenize(): regex lexer producing TEXT/SCALAR/OPEN/CLOSE/IMAGE/LEGACY tokens
- TemplateEngine.parse(): stack-based parser building a small AST
  (Text, Scalar, Image, Block); a close tag always closes the innermost open
  block of the same name, so adjacent same-name blocks are siblings
- TemplateEngine.render(): walks the AST with a scope chain
- find_residual_tokens(): diagnostics for anything left unresolved
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Union

import structlog
from markupsafe import escape

from proposal_engine.config.errors import ErrorCode, TemplateError
from proposal_engine.config.settings import settings

logger = structlog.get_logger(__name__)

IMAGE_TAG = '<img class="proposal-photo" src="{src}" alt="Photo" style="max-width:100%;height:auto;" />'

_TOKEN_RE = re.compile(
    r"\{\{\s*(?P<legacy>[A-Za-z0-9_.]+)\s*\}\}"
    r"|\{(?P<sigil>[#/])(?P<block>[A-Za-z0-9_.]+)\}"
    r"|\{%(?P<image>image)\}"
    r"|\{(?P<scalar>[A-Za-z0-9_.]+)\}"
)
_RESIDUAL_RE = re.compile(r"\{\{\s*[A-Za-z0-9_.]+\s*\}\}|\{[#/%]?[A-Za-z0-9_.]+\}")


# =============================================================================
# AST
# =============================================================================


@dataclass
class Text:
    value: str


@dataclass
class Scalar:
    name: str


@dataclass
class Image:
    pass


@dataclass
class Block:
    name: str
    children: List["Node"] = field(default_factory=list)
    position: int = 0


Node = Union[Text, Scalar, Image, Block]


@dataclass
class _Token:
    kind: str
    value: str
    position: int


def _tokenize(template: str) -> Iterator[_Token]:
    cursor = 0
    for match in _TOKEN_RE.finditer(template):
        if match.start() > cursor:
            yield _Token("TEXT", template[cursor:match.start()], cursor)
        if match.group("legacy"):
            yield _Token("LEGACY", match.group("legacy"), match.start())
        elif match.group("block"):
            kind = "OPEN" if match.group("sigil") == "#" else "CLOSE"
            yield _Token(kind, match.group("block"), match.start())
        elif match.group("image"):
            yield _Token("IMAGE", "image", match.start())
        else:
            yield _Token("SCALAR", match.group("scalar"), match.start())
        cursor = match.end()
    if cursor < len(template):
        yield _Token("TEXT", template[cursor:], cursor)


# =============================================================================
# Value helpers
# =============================================================================


def resolve(scope: Dict[str, Any], path: str) -> Any:
    """Look up a plain or dotted name; any missing segment resolves to None."""
    if not isinstance(scope, dict):
        return None
    if "." not in path:
        return scope.get(path)
    current: Any = scope
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def to_text(value: Any) -> str:
    """String form of a payload scalar; containers and missing values render empty."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return ""
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, (dict, list, tuple)):
        return ""
    return str(value)


def _is_truthy(value: Any) -> bool:
    if isinstance(value, dict):
        return True
    return bool(value)


# =============================================================================
# Engine
# =============================================================================


@dataclass
class ExpansionReport:
    """Structural problems found while parsing a template."""

    unmatched_closes: List[str] = field(default_factory=list)
    repaired_blocks: List[str] = field(default_factory=list)
    too_deep: List[str] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        messages = [f"unmatched close tag {{/{name}}}" for name in self.unmatched_closes]
        messages += [f"unclosed block {{#{name}}} repaired" for name in self.repaired_blocks]
        messages += [f"block {{#{name}}} exceeds the nesting limit" for name in self.too_deep]
        return messages


class TemplateEngine:
    """Parses and renders proposal templates. Performs no I/O."""

    def __init__(self, max_depth: Optional[int] = None):
        self.max_depth = max_depth if max_depth is not None else settings.max_block_depth
        self.report = ExpansionReport()

    # -------------------------------------------------------------------------
    # Parsing
    # -------------------------------------------------------------------------

    def parse(self, template: str, strict: bool = False) -> List[Node]:
        """
        Build the AST for a template.

        Args:
            template: Markup containing tokens
            strict: Raise TemplateError on structural problems instead of
                repairing them

        Returns:
            Top-level node list
        """
        self.report = ExpansionReport()
        root = Block(name="", position=0)
        stack: List[Block] = [root]

        for token in _tokenize(str(template or "")):
            parent = stack[-1]
            if token.kind == "TEXT":
                parent.children.append(Text(token.value))
            elif token.kind in ("SCALAR", "LEGACY"):
                parent.children.append(Scalar(token.value))
            elif token.kind == "IMAGE":
                parent.children.append(Image())
            elif token.kind == "OPEN":
                block = Block(name=token.value, position=token.position)
                parent.children.append(block)
                stack.append(block)
            else:
                self._close(stack, token, strict)

        while len(stack) > 1:
            block = stack.pop()
            if strict:
                raise TemplateError(
                    f"Unclosed block {{#{block.name}}}",
                    code=ErrorCode.TEMPLATE_UNBALANCED,
                    token=block.name,
                    position=block.position,
                )
            self._repair_unclosed(block, stack[-1])

        self._enforce_depth(root.children, 1, strict)
        return root.children

    def _close(self, stack: List[Block], token: _Token, strict: bool) -> None:
        depth = next((i for i in range(len(stack) - 1, 0, -1) if stack[i].name == token.value), None)
        if depth is None:
            if strict:
                raise TemplateError(
                    f"Close tag {{/{token.value}}} has no matching open tag",
                    code=ErrorCode.TEMPLATE_UNBALANCED,
                    token=token.value,
                    position=token.position,
                )
            self.report.unmatched_closes.append(token.value)
            logger.warning("template_unmatched_close", token=token.value, position=token.position)
            return
        # Blocks opened after the matching one were never closed
        while len(stack) - 1 > depth:
            inner = stack.pop()
            if strict:
                raise TemplateError(
                    f"Unclosed block {{#{inner.name}}}",
                    code=ErrorCode.TEMPLATE_UNBALANCED,
                    token=inner.name,
                    position=inner.position,
                )
            self._repair_unclosed(inner, stack[-1])
        stack.pop()

    def _repair_unclosed(self, block: Block, parent: Block) -> None:
        """
        Repair a block whose close tag is missing.

        Exported templates sometimes lose the close tag of a photo loop
        (``{#photos_x}{%image}``); such a block ends right after its first
        image slot. Otherwise the open tag is dropped and its children are
        spliced into the parent in place.
        """
        self.report.repaired_blocks.append(block.name)
        logger.warning("template_unclosed_block", token=block.name, position=block.position)
        index = next(i for i, child in enumerate(parent.children) if child is block)
        image_at = next((i for i, child in enumerate(block.children) if isinstance(child, Image)), None)
        if image_at is None:
            parent.children[index:index + 1] = block.children
            return
        trailing = block.children[image_at + 1:]
        block.children = block.children[:image_at + 1]
        parent.children[index + 1:index + 1] = trailing

    def _enforce_depth(self, nodes: List[Node], depth: int, strict: bool) -> None:
        for i, node in enumerate(nodes):
            if not isinstance(node, Block):
                continue
            if depth > self.max_depth:
                if strict:
                    raise TemplateError(
                        f"Block {{#{node.name}}} nested deeper than {self.max_depth}",
                        code=ErrorCode.TEMPLATE_TOO_DEEP,
                        token=node.name,
                        position=node.position,
                    )
                self.report.too_deep.append(node.name)
                logger.warning("template_block_too_deep", token=node.name, depth=depth, limit=self.max_depth)
                nodes[i] = Text("")
                continue
            self._enforce_depth(node.children, depth + 1, strict)

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def render(self, template: str, payload: Dict[str, Any], strict: bool = False) -> str:
        """
        Expand a template against a payload.

        Missing names render as empty strings; scalar output is escaped.

        Args:
            template: Markup string (already fetched; no I/O happens here)
            payload: Nested payload map
            strict: Raise TemplateError on structural problems

        Returns:
            Expanded markup
        """
        nodes = self.parse(template, strict=strict)
        out: List[str] = []
        self._render_nodes(nodes, dict(payload or {}), out, in_block=False)
        return "".join(out)

    def _render_nodes(self, nodes: List[Node], scope: Dict[str, Any], out: List[str], in_block: bool) -> None:
        for node in nodes:
            if isinstance(node, Text):
                out.append(node.value)
            elif isinstance(node, Scalar):
                out.append(str(escape(to_text(resolve(scope, node.name)))))
            elif isinstance(node, Image):
                out.append(self._render_image(scope) if in_block else "")
            else:
                self._render_block(node, scope, out)

    def _render_block(self, block: Block, scope: Dict[str, Any], out: List[str]) -> None:
        value = resolve(scope, block.name)
        if isinstance(value, (list, tuple)):
            for item in value:
                inner = {**scope, **item} if isinstance(item, dict) else scope
                self._render_nodes(block.children, inner, out, in_block=True)
        elif _is_truthy(value):
            self._render_nodes(block.children, scope, out, in_block=True)

    @staticmethod
    def _render_image(scope: Dict[str, Any]) -> str:
        source = to_text(scope.get("image"))
        if not source:
            return ""
        return IMAGE_TAG.format(src=escape(source))


def find_residual_tokens(markup: str) -> List[str]:
    """Tokens still present in rendered markup (should be empty for a well-wired payload)."""
    return _RESIDUAL_RE.findall(str(markup or ""))


def render_template(template: str, payload: Dict[str, Any]) -> str:
    """Convenience wrapper: expand with default settings."""
    return TemplateEngine().render(template, payload)
