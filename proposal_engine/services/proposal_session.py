"""
Proposal editing session.

A ProposalSession owns one live configuration plus its auto-fill state and
is the single mutation entry point a UI or API layer talks to.

Measurement and flag changes re-arm the debounced auto-fill rules; a
debounced session must therefore be driven from a running asyncio loop.
Pass ``debounce=False`` to apply auto-fill synchronously instead.
"""

import asyncio
from typing import Any, Dict, List, Optional

import structlog

from proposal_engine.config.errors import ErrorCode, ValidationError
from proposal_engine.config.settings import settings
from proposal_engine.models.configuration import ProposalConfiguration
from proposal_engine.models.totals import DerivedTotals
from proposal_engine.services.auto_fill import (
    DEFAULT_RULES,
    AutoFillScheduler,
    AutoFillTracker,
    apply_rule,
    record_manual_edit,
    set_woven_caps_ridges,
)
from proposal_engine.services.pricing_engine import compute_derived_totals
from proposal_engine.services.proposal_renderer import RenderResult, render_proposal
from proposal_engine.utils.paths import has_path

logger = structlog.get_logger(__name__)

ROOF_SYSTEMS = ("asphalt", "davinci", "cedar", "rubber")


class ProposalSession:
    """Live configuration, auto-fill tracking and rendering for one proposal."""

    def __init__(
        self,
        config: Optional[ProposalConfiguration] = None,
        debounce: bool = True,
        rules=DEFAULT_RULES,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.config = config or ProposalConfiguration()
        self.tracker = AutoFillTracker()
        self.rules = rules
        self.scheduler: Optional[AutoFillScheduler] = None
        if debounce:
            self.scheduler = AutoFillScheduler(lambda: self.config, self.tracker, rules, loop=loop)

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def set_measurement(self, name: str, value: Any) -> List[str]:
        """
        Update a raw measurement and re-arm the rules that derive from it.

        Args:
            name: Measurement field ("feet_eaves") or full path ("measure.feet_eaves")

        Returns:
            Names of the rules scheduled (or applied, when not debounced)

        Raises:
            ValidationError: If the measurement does not exist
            RuntimeError: If debounced and no event loop is running; nothing is changed
        """
        path = name if name.startswith("measure.") else f"measure.{name}"
        if not has_path(self.config, path):
            raise ValidationError(f"Unknown measurement: {name}", field=path, code=ErrorCode.UNKNOWN_FIELD)
        return self._commit(path, value)

    def edit_field(self, path: str, value: Any) -> List[str]:
        """
        Commit a direct user edit to any configuration field.

        The field's auto tag is cleared first, so auto-fill never overwrites
        the edited value afterwards.

        Raises:
            ValidationError: For an unknown path or a rejected value
        """
        return self._commit(path, value)

    def set_ice_area(self, system: str, area: str, on: bool) -> bool:
        """Toggle an ice & water area; returns False if exclusivity rejected it."""
        if system not in ROOF_SYSTEMS:
            raise ValidationError(f"Unknown roof system: {system}", field="system", code=ErrorCode.UNKNOWN_FIELD)
        applied = getattr(self.config.scope, system).ice_areas.set_area(area, on)
        if not applied:
            logger.info("ice_area_rejected", system=system, area=area, reason="full_coverage_selected")
        return applied

    def toggle_woven_caps_ridges(self, on: bool) -> List[str]:
        self._require_loop("pricing.cedar_woven_caps_ridges")
        set_woven_caps_ridges(self.config, self.tracker, on)
        return self._changed("pricing.cedar_woven_caps_ridges")

    def _require_loop(self, path: str) -> None:
        # Must run before any write
        if self.scheduler is not None and self.scheduler.triggered_by(path):
            self.scheduler.ensure_loop()

    def _commit(self, path: str, value: Any) -> List[str]:
        self._require_loop(path)
        record_manual_edit(self.config, self.tracker, path, value)
        return self._changed(path)

    def _changed(self, path: str) -> List[str]:
        if self.scheduler is not None:
            return self.scheduler.notify_change(path)
        return [
            rule.name for rule in self.rules
            if path in rule.sources and apply_rule(self.config, self.tracker, rule)
        ]

    async def settle(self) -> None:
        """Wait until every pending auto-fill timer has fired."""
        if self.scheduler is None:
            return
        longest = max((settings.debounce_seconds(rule.delay_ms) for rule in self.rules), default=0.0)
        while self.scheduler.pending():
            await asyncio.sleep(longest)

    # -------------------------------------------------------------------------
    # Derived views
    # -------------------------------------------------------------------------

    def totals(self) -> DerivedTotals:
        """Totals computed from the live configuration."""
        return compute_derived_totals(self.config)

    def render(self, template: str, asset_base: Optional[str] = None, strict: bool = False) -> RenderResult:
        return render_proposal(template, self.config, asset_base=asset_base, strict=strict)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """Opaque camelCase snapshot of the configuration (auto tags are not included)."""
        return self.config.to_snapshot()

    def restore(self, snapshot: Dict[str, Any]) -> None:
        """Replace the configuration with a snapshot, dropping pending timers and auto tags."""
        if self.scheduler is not None:
            self.scheduler.cancel_all()
        self.tracker.reset()
        self.config = ProposalConfiguration.from_snapshot(snapshot)
        logger.info("session_restored", grand_total=compute_derived_totals(self.config).grand_total)

    def close(self) -> None:
        if self.scheduler is not None:
            self.scheduler.cancel_all()
