"""
Unit tests for auto-fill rules and debounced scheduling.

Tests cover:
- Anti-clobber writes (zero or auto-tagged targets only)
- Manual edits clearing the auto tag
- Guards and side effects (copper valleys, woven caps)
- Woven ridge caps replacing cedar ridge boards
- Debounce: repeated changes collapse into one write at fire time
"""

import asyncio

import pytest

from proposal_engine.config.errors import ErrorCode, ValidationError
from proposal_engine.models.configuration import ProposalConfiguration
from proposal_engine.services.auto_fill import (
    DEFAULT_RULES,
    AutoFillRule,
    AutoFillScheduler,
    apply_all,
    apply_rule,
    record_manual_edit,
    set_woven_caps_ridges,
)


def _rule(name: str) -> AutoFillRule:
    return next(rule for rule in DEFAULT_RULES if rule.name == name)


# =============================================================================
# Anti-clobber
# =============================================================================


def test_trim_follows_eaves_while_auto(tracker):
    """An auto-tagged target keeps tracking its measurement."""
    config = ProposalConfiguration()
    config.measure.feet_eaves = 120
    assert apply_rule(config, tracker, _rule("trim_soffit")) is True
    assert config.pricing.trim.feet.soffit == 120
    assert tracker.is_auto("pricing.trim.feet.soffit")

    config.measure.feet_eaves = 150
    assert apply_rule(config, tracker, _rule("trim_soffit")) is True
    assert config.pricing.trim.feet.soffit == 150


def test_manual_edit_is_never_clobbered(tracker):
    """After a direct edit, measurement changes leave the field alone."""
    config = ProposalConfiguration()
    config.measure.feet_eaves = 120
    apply_rule(config, tracker, _rule("trim_soffit"))

    record_manual_edit(config, tracker, "pricing.trim.feet.soffit", 80)
    config.measure.feet_eaves = 200
    assert apply_rule(config, tracker, _rule("trim_soffit")) is False
    assert config.pricing.trim.feet.soffit == 80
    assert not tracker.is_auto("pricing.trim.feet.soffit")


def test_nonzero_untagged_value_is_kept(tracker):
    """A value restored from a snapshot (no tag) is treated as manual."""
    config = ProposalConfiguration()
    config.pricing.trim.feet.fascias = 33
    config.measure.feet_eaves = 120
    assert apply_rule(config, tracker, _rule("trim_fascias")) is False
    assert config.pricing.trim.feet.fascias == 33


def test_manual_zero_can_be_refilled(tracker):
    """Clearing a field to zero makes it eligible again."""
    config = ProposalConfiguration()
    config.measure.feet_eaves = 90
    record_manual_edit(config, tracker, "pricing.trim.feet.frieze", 0)
    assert apply_rule(config, tracker, _rule("trim_frieze")) is True
    assert config.pricing.trim.feet.frieze == 90


def test_rake_boards_double_the_rakes(tracker):
    config = ProposalConfiguration()
    config.measure.feet_rakes = 30
    apply_rule(config, tracker, _rule("trim_rake_boards"))
    assert config.pricing.trim.feet.rake_boards == 60


def test_apply_all_reports_written_rules(tracker):
    config = ProposalConfiguration()
    config.measure.feet_eaves = 100
    written = apply_all(config, tracker)
    assert written == ["trim_soffit", "trim_fascias", "trim_frieze", "trim_molding"]


# =============================================================================
# Guards and side effects
# =============================================================================


def test_copper_valleys_skipped_without_valleys(tracker):
    """The guard skips the rule entirely, side effect included."""
    config = ProposalConfiguration()
    assert apply_rule(config, tracker, _rule("cedar_copper_valleys")) is False
    assert config.scope.cedar.include_copper_valleys is False


def test_copper_valleys_enable_inclusion(tracker):
    config = ProposalConfiguration()
    config.measure.feet_valleys = 40
    apply_rule(config, tracker, _rule("cedar_copper_valleys"))
    assert config.pricing.cedar_copper_valley_feet == 40
    assert config.scope.cedar.include_copper_valleys is True
    assert config.scope.davinci.include_copper_valleys is True


def test_copper_valleys_side_effect_runs_even_for_manual_target(tracker):
    config = ProposalConfiguration()
    config.measure.feet_valleys = 40
    record_manual_edit(config, tracker, "pricing.davinci_copper_valley_feet", 12)
    assert apply_rule(config, tracker, _rule("davinci_copper_valleys")) is False
    assert config.pricing.davinci_copper_valley_feet == 12
    assert config.scope.davinci.include_copper_valleys is True


class TestWovenCaps:
    """Woven caps feet follow the selected hips and ridges."""

    def test_requires_inclusion(self, tracker):
        """Nothing happens unless woven caps are included."""
        config = ProposalConfiguration()
        config.measure.feet_hips = 30
        config.pricing.cedar_woven_caps_hips = True
        assert apply_rule(config, tracker, _rule("cedar_woven_caps")) is False

    def test_sums_selected_sources(self, tracker):
        """Only the selected sources contribute."""
        config = ProposalConfiguration()
        config.measure.feet_hips = 30
        config.measure.feet_ridge = 20
        config.pricing.cedar_include_woven_caps = True
        config.pricing.cedar_woven_caps_hips = True
        apply_rule(config, tracker, _rule("cedar_woven_caps"))
        assert config.pricing.cedar_woven_caps_feet == 30

        set_woven_caps_ridges(config, tracker, True)
        apply_rule(config, tracker, _rule("cedar_woven_caps"))
        assert config.pricing.cedar_woven_caps_feet == 50

    def test_ridges_replace_ridge_boards(self, tracker):
        """Woven ridge caps turn ridge boards off and restore them afterwards."""
        config = ProposalConfiguration()
        assert config.scope.cedar.cedar_ridge_boards is True
        set_woven_caps_ridges(config, tracker, True)
        assert config.scope.cedar.cedar_ridge_boards is False
        set_woven_caps_ridges(config, tracker, False)
        assert config.scope.cedar.cedar_ridge_boards is True

    def test_restores_previous_off_state(self, tracker):
        config = ProposalConfiguration()
        config.scope.cedar.cedar_ridge_boards = False
        set_woven_caps_ridges(config, tracker, True)
        set_woven_caps_ridges(config, tracker, False)
        assert config.scope.cedar.cedar_ridge_boards is False


# =============================================================================
# Manual edits
# =============================================================================


def test_manual_edit_unknown_path(tracker):
    config = ProposalConfiguration()
    with pytest.raises(ValidationError) as exc_info:
        record_manual_edit(config, tracker, "pricing.trim.feet.gables", 10)
    assert exc_info.value.code == ErrorCode.UNKNOWN_FIELD
    assert exc_info.value.details["field"] == "pricing.trim.feet.gables"


def test_manual_edit_rejected_value(tracker):
    config = ProposalConfiguration()
    with pytest.raises(ValidationError) as exc_info:
        record_manual_edit(config, tracker, "pricing.plywood.rate_by_mode", 5)
    assert exc_info.value.code == ErrorCode.INVALID_FIELD
    assert exc_info.value.details["errors"]


# =============================================================================
# Debounced scheduling
# =============================================================================


@pytest.mark.asyncio
async def test_scheduler_collapses_repeated_changes(tracker):
    """Only the latest change fires; the value is read at fire time."""
    config = ProposalConfiguration()
    calls = []

    def derive(cfg):
        calls.append(cfg.measure.feet_eaves)
        return cfg.measure.feet_eaves

    rule = AutoFillRule(
        name="count_eaves",
        target="pricing.trim.feet.soffit",
        sources=("measure.feet_eaves",),
        delay_ms=100,
        derive=derive,
    )
    scheduler = AutoFillScheduler(lambda: config, tracker, (rule,))

    for feet in (10, 20, 30):
        config.measure.feet_eaves = feet
        assert scheduler.notify_change("measure.feet_eaves") == ["count_eaves"]
    assert scheduler.pending() == ["count_eaves"]

    await asyncio.sleep(0.05)
    assert scheduler.pending() == []
    assert calls == [30]
    assert config.pricing.trim.feet.soffit == 30


@pytest.mark.asyncio
async def test_scheduler_ignores_unrelated_paths(tracker):
    scheduler = AutoFillScheduler(ProposalConfiguration, tracker)
    assert scheduler.notify_change("customer.name") == []
    assert scheduler.pending() == []


@pytest.mark.asyncio
async def test_manual_edit_before_fire_wins(tracker):
    """A direct edit made while a timer is pending is not overwritten."""
    config = ProposalConfiguration()
    scheduler = AutoFillScheduler(lambda: config, tracker)
    config.measure.feet_eaves = 100
    scheduler.notify_change("measure.feet_eaves")
    record_manual_edit(config, tracker, "pricing.trim.feet.soffit", 55)

    await asyncio.sleep(0.05)
    assert config.pricing.trim.feet.soffit == 55
    assert config.pricing.trim.feet.fascias == 100


@pytest.mark.asyncio
async def test_cancel_all(tracker):
    config = ProposalConfiguration()
    scheduler = AutoFillScheduler(lambda: config, tracker)
    config.measure.feet_eaves = 100
    scheduler.notify_change("measure.feet_eaves")
    scheduler.cancel_all()

    await asyncio.sleep(0.05)
    assert scheduler.pending() == []
    assert config.pricing.trim.feet.soffit == 0


def test_debounce_seconds_scaled(mock_settings):
    """Delays scale with the configured factor."""
    assert mock_settings.debounce_seconds(350) == pytest.approx(0.0035)
    mock_settings.auto_fill_debounce_scale = 1.0
    assert mock_settings.debounce_seconds(200) == pytest.approx(0.2)


def test_scheduler_needs_a_loop(tracker):
    """Outside a running loop, resolving the loop fails before anything is armed."""
    scheduler = AutoFillScheduler(ProposalConfiguration, tracker)
    assert [rule.name for rule in scheduler.triggered_by("measure.feet_rakes")] == ["trim_rake_boards"]
    with pytest.raises(RuntimeError):
        scheduler.ensure_loop()
    with pytest.raises(RuntimeError):
        scheduler.notify_change("measure.feet_rakes")
    assert scheduler.pending() == []
