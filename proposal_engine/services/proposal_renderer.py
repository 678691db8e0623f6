"""
Proposal rendering pipeline.

Expands a proposal template for a configuration and, optionally, packages
the result as a printable document.

Architecture:
- render_proposal(): totals -> payload -> defragment -> expand -> normalize
- load_template(): the only file I/O on the render path, kept separate
- build_document_html(): Jinja2 HTML shell around the final markup
- DocumentPackager / WeasyPrintPackager: HTML to PDF (optional ``pdf`` extra)
"""

import mimetypes
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape
from markupsafe import Markup

from proposal_engine.config.errors import ErrorCode, PackagingError, TemplateError
from proposal_engine.models.configuration import ProposalConfiguration
from proposal_engine.services.markup_normalizer import defragment_tokens, normalize_markup
from proposal_engine.services.payload_mapper import build_payload
from proposal_engine.services.pricing_engine import compute_derived_totals
from proposal_engine.services.template_engine import TemplateEngine, find_residual_tokens

logger = structlog.get_logger(__name__)

# Template directory
TEMPLATE_DIR = Path(__file__).parent.parent / "templates"
DOCUMENT_TEMPLATE = "proposal_document.html"


@dataclass
class RenderResult:
    """
    Result of rendering a proposal.

    Attributes:
        markup: Expanded and normalized HTML
        grand_total: Grand total the markup was rendered with
        residual_tokens: Tokens still present after expansion (diagnostic)
        warnings: Structural template problems that were repaired
        rendered_at: ISO timestamp
    """

    markup: str
    grand_total: float
    residual_tokens: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    rendered_at: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def ok(self) -> bool:
        """True when nothing had to be repaired and no token was left behind."""
        return not self.residual_tokens and not self.warnings


# =============================================================================
# Rendering
# =============================================================================


def load_template(path: Union[str, Path]) -> str:
    """
    Read a proposal template from disk.

    Raises:
        TemplateError: If the file cannot be read (code TEMPLATE_NOT_FOUND)
    """
    template_path = Path(path)
    try:
        return template_path.read_text(encoding="utf-8")
    except OSError as e:
        raise TemplateError(
            f"Template not found: {template_path}",
            code=ErrorCode.TEMPLATE_NOT_FOUND,
            token=str(template_path),
        ) from e


def render_proposal(
    template: str,
    config: Union[ProposalConfiguration, Dict[str, Any]],
    asset_base: Optional[str] = None,
    strict: bool = False,
) -> RenderResult:
    """
    Render a proposal template for a configuration.

    Totals are recomputed from the configuration on every call, so the
    output always reflects the latest state.

    Args:
        template: Template markup (already loaded)
        config: Live configuration or snapshot dict
        asset_base: Base path for relative assets (defaults to settings)
        strict: Raise TemplateError on structural template problems

    Returns:
        RenderResult with the final markup and diagnostics
    """
    start_time = time.perf_counter()
    if not isinstance(config, ProposalConfiguration):
        config = ProposalConfiguration.from_snapshot(config)

    totals = compute_derived_totals(config)
    payload = build_payload(config, totals)

    engine = TemplateEngine()
    expanded = engine.render(defragment_tokens(template), payload, strict=strict)
    markup = normalize_markup(expanded, asset_base)

    residual = find_residual_tokens(markup)
    warnings = engine.report.warnings
    if residual:
        logger.warning("proposal_residual_tokens", tokens=residual[:20], count=len(residual))

    logger.info(
        "proposal_rendered",
        grand_total=totals.grand_total,
        size_bytes=len(markup),
        warnings=len(warnings),
        residual_tokens=len(residual),
        duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
    )

    return RenderResult(
        markup=markup,
        grand_total=totals.grand_total,
        residual_tokens=residual,
        warnings=warnings,
    )


# =============================================================================
# Document packaging
# =============================================================================


def _get_jinja_env() -> Environment:
    """
    Create and configure Jinja2 environment.

    Returns:
        Configured Jinja2 Environment
    """
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html", "xml"]),
    )
    return env


def build_document_html(markup: str, title: str = "Proposal") -> str:
    """
    Wrap rendered proposal markup in a complete HTML document.

    The markup is trusted (already expanded and escaped); the title is
    escaped by the template.
    """
    template = _get_jinja_env().get_template(DOCUMENT_TEMPLATE)
    return template.render(
        title=title,
        body=Markup(markup),
        generated_at=datetime.now().isoformat(),
    )


class DocumentPackager(Protocol):
    """Turns final proposal markup (plus binary assets) into a document."""

    def package(self, markup: str, assets: Optional[Mapping[str, bytes]] = None) -> bytes:
        ...


class WeasyPrintPackager:
    """
    HTML to PDF packager backed by WeasyPrint.

    WeasyPrint is imported lazily so the rest of the engine works without
    it (and without its native libraries).
    """

    backend = "weasyprint"

    def __init__(self, title: str = "Proposal", base_url: Optional[str] = None):
        self.title = title
        self.base_url = base_url or str(TEMPLATE_DIR)

    def package(self, markup: str, assets: Optional[Mapping[str, bytes]] = None) -> bytes:
        """
        Render markup to PDF bytes.

        Args:
            markup: Final proposal markup (body content)
            assets: Optional binary assets keyed by relative path; a URL in
                the document whose path ends with a key is served from here

        Raises:
            PackagingError: If WeasyPrint or its native dependencies are missing
        """
        try:
            from weasyprint import HTML, default_url_fetcher
        except (ImportError, OSError) as e:
            raise PackagingError(
                "WeasyPrint is not available; install the 'pdf' extra",
                backend=self.backend,
                details={"error": str(e)},
            ) from e

        provided = dict(assets or {})

        def _fetch(url: str, *args: Any, **kwargs: Any) -> Dict[str, Any]:
            for name, data in provided.items():
                if url == name or url.endswith("/" + name.lstrip("/")):
                    mime_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
                    return {"string": data, "mime_type": mime_type}
            return default_url_fetcher(url, *args, **kwargs)

        start_time = time.perf_counter()
        html = build_document_html(markup, self.title)
        pdf_bytes = HTML(string=html, base_url=self.base_url, url_fetcher=_fetch).write_pdf()

        logger.info(
            "proposal_packaged",
            backend=self.backend,
            file_size_kb=round(len(pdf_bytes) / 1024, 2),
            assets=len(provided),
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        return pdf_bytes
