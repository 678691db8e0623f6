"""
Auto-fill of derived configuration fields from raw measurements.

Some pricing fields default to a value taken from a measurement (trim
feet from eaves/rakes, copper valley feet from valleys, woven caps feet
from hips/ridges). A field may be overwritten only while it is zero or
still tagged "auto"; a direct user edit clears the tag first, so later
measurement changes never clobber it.

Architecture:
- AutoFillTracker: per-field "auto" tags plus remembered values, never serialized
- AutoFillRule: target path, trigger paths, debounce, guard and derive callables
- apply_rule(): the anti-clobber write, evaluated at fire time
- record_manual_edit(): clears the tag, then commits the user's value
- AutoFillScheduler: one asyncio TimerHandle per rule, re-armed on each change
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog
from pydantic import ValidationError as PydanticValidationError

from proposal_engine.config.errors import ErrorCode, ValidationError
from proposal_engine.config.settings import settings
from proposal_engine.models.configuration import ProposalConfiguration
from proposal_engine.services.money import to_number
from proposal_engine.utils.paths import get_path, set_path

logger = structlog.get_logger(__name__)

RIDGE_BOARDS_PATH = "scope.cedar.cedar_ridge_boards"


# =============================================================================
# Tracking state
# =============================================================================


class AutoFillTracker:
    """Which configuration fields currently hold an auto-populated value."""

    def __init__(self) -> None:
        self._auto: Dict[str, bool] = {}
        self._remembered: Dict[str, Any] = {}

    def is_auto(self, path: str) -> bool:
        return self._auto.get(path, False)

    def mark_auto(self, path: str) -> None:
        self._auto[path] = True

    def clear(self, path: str) -> None:
        self._auto.pop(path, None)

    def auto_fields(self) -> List[str]:
        return sorted(path for path, flag in self._auto.items() if flag)

    def remember(self, key: str, value: Any) -> None:
        self._remembered[key] = value

    def has_remembered(self, key: str) -> bool:
        return key in self._remembered

    def recall(self, key: str) -> Any:
        return self._remembered.pop(key, None)

    def reset(self) -> None:
        """Forget every tag and remembered value."""
        self._auto.clear()
        self._remembered.clear()


# =============================================================================
# Rules
# =============================================================================


@dataclass(frozen=True)
class AutoFillRule:
    """
    One auto-populated field.

    Attributes:
        name: Unique rule name (one pending timer per name)
        target: Dotted configuration path written by the rule
        sources: Paths whose change re-arms the rule
        delay_ms: Debounce before the rule fires
        derive: Computes the value from the configuration
        guard: The rule is skipped entirely unless this returns True
        side_effect: Applied whenever the guard passes, before the write
    """

    name: str
    target: str
    sources: Tuple[str, ...]
    delay_ms: int
    derive: Callable[[ProposalConfiguration], float]
    guard: Callable[[ProposalConfiguration], bool] = lambda config: True
    side_effect: Optional[Callable[[ProposalConfiguration], None]] = field(default=None, compare=False)


def _valleys_positive(config: ProposalConfiguration) -> bool:
    return config.measure.feet_valleys > 0


def _enable_copper_valleys(config: ProposalConfiguration) -> None:
    config.scope.cedar.include_copper_valleys = True
    config.scope.davinci.include_copper_valleys = True


def _woven_caps_feet(config: ProposalConfiguration) -> float:
    pricing = config.pricing
    measure = config.measure
    return (measure.feet_hips if pricing.cedar_woven_caps_hips else 0.0) + (
        measure.feet_ridge if pricing.cedar_woven_caps_ridges else 0.0
    )


def _woven_caps_ready(config: ProposalConfiguration) -> bool:
    pricing = config.pricing
    if not pricing.cedar_include_woven_caps:
        return False
    if not (pricing.cedar_woven_caps_hips or pricing.cedar_woven_caps_ridges):
        return False
    return _woven_caps_feet(config) > 0


VALLEY_DELAY_MS = 350
TRIM_DELAY_MS = 350
WOVEN_CAPS_DELAY_MS = 200

_EAVE_TRIM_FIELDS = ("soffit", "fascias", "frieze", "molding")
_WOVEN_CAPS_SOURCES = (
    "measure.feet_hips",
    "measure.feet_ridge",
    "pricing.cedar_include_woven_caps",
    "pricing.cedar_woven_caps_hips",
    "pricing.cedar_woven_caps_ridges",
)


def _build_default_rules() -> Tuple[AutoFillRule, ...]:
    rules: List[AutoFillRule] = []
    for system in ("cedar", "davinci"):
        rules.append(AutoFillRule(
            name=f"{system}_copper_valleys",
            target=f"pricing.{system}_copper_valley_feet",
            sources=("measure.feet_valleys",),
            delay_ms=VALLEY_DELAY_MS,
            derive=lambda config: config.measure.feet_valleys,
            guard=_valleys_positive,
            side_effect=_enable_copper_valleys,
        ))
    for name in _EAVE_TRIM_FIELDS:
        rules.append(AutoFillRule(
            name=f"trim_{name}",
            target=f"pricing.trim.feet.{name}",
            sources=("measure.feet_eaves",),
            delay_ms=TRIM_DELAY_MS,
            derive=lambda config: config.measure.feet_eaves,
            guard=lambda config: config.measure.feet_eaves > 0,
        ))
    # Rake boards run both sides of each rake
    rules.append(AutoFillRule(
        name="trim_rake_boards",
        target="pricing.trim.feet.rake_boards",
        sources=("measure.feet_rakes",),
        delay_ms=TRIM_DELAY_MS,
        derive=lambda config: config.measure.feet_rakes * 2,
        guard=lambda config: config.measure.feet_rakes > 0,
    ))
    rules.append(AutoFillRule(
        name="cedar_woven_caps",
        target="pricing.cedar_woven_caps_feet",
        sources=_WOVEN_CAPS_SOURCES,
        delay_ms=WOVEN_CAPS_DELAY_MS,
        derive=_woven_caps_feet,
        guard=_woven_caps_ready,
    ))
    return tuple(rules)


DEFAULT_RULES = _build_default_rules()


# =============================================================================
# Anti-clobber writes
# =============================================================================


def apply_rule(config: ProposalConfiguration, tracker: AutoFillTracker, rule: AutoFillRule) -> bool:
    """
    Apply one rule against the current configuration.

    The target is written only when the guard passes and the target is
    currently zero or tagged auto. The tag is checked here, at fire time.

    Returns:
        True if the target was (re)written.
    """
    if not rule.guard(config):
        return False
    if rule.side_effect is not None:
        rule.side_effect(config)
    current = to_number(get_path(config, rule.target, 0))
    if current != 0 and not tracker.is_auto(rule.target):
        logger.debug("auto_fill_skipped_manual", rule=rule.name, target=rule.target, current=current)
        return False
    value = to_number(rule.derive(config))
    set_path(config, rule.target, value)
    tracker.mark_auto(rule.target)
    logger.debug("auto_fill_applied", rule=rule.name, target=rule.target, value=value)
    return True


def apply_all(config: ProposalConfiguration, tracker: AutoFillTracker, rules=DEFAULT_RULES) -> List[str]:
    """Apply every rule immediately (no debounce). Returns the names of rules that wrote."""
    return [rule.name for rule in rules if apply_rule(config, tracker, rule)]


def record_manual_edit(config: ProposalConfiguration, tracker: AutoFillTracker, path: str, value: Any) -> None:
    """
    Commit a direct user edit.

    The auto tag is cleared before the value is written so no pending or
    future auto-fill will overwrite it.

    Raises:
        ValidationError: If the path does not exist or the value is rejected.
    """
    tracker.clear(path)
    try:
        set_path(config, path, value)
    except KeyError:
        raise ValidationError(f"Unknown configuration field: {path}", field=path, code=ErrorCode.UNKNOWN_FIELD)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid value for {path}",
            field=path,
            code=ErrorCode.INVALID_FIELD,
            details={"errors": e.errors(include_url=False)},
        )
    logger.debug("manual_edit_recorded", field=path)


def set_woven_caps_ridges(config: ProposalConfiguration, tracker: AutoFillTracker, on: bool) -> None:
    """
    Toggle woven caps on ridges.

    Woven ridge caps replace cedar ridge boards: enabling clears the ridge
    boards inclusion and remembers its previous state; disabling restores it.
    """
    config.pricing.cedar_woven_caps_ridges = on
    cedar = config.scope.cedar
    if on:
        if not tracker.has_remembered(RIDGE_BOARDS_PATH):
            tracker.remember(RIDGE_BOARDS_PATH, cedar.cedar_ridge_boards)
        cedar.cedar_ridge_boards = False
    elif tracker.has_remembered(RIDGE_BOARDS_PATH):
        cedar.cedar_ridge_boards = bool(tracker.recall(RIDGE_BOARDS_PATH))


# =============================================================================
# Debounced scheduling
# =============================================================================


class AutoFillScheduler:
    """
    Debounced auto-fill on the running asyncio loop.

    Each rule has at most one pending TimerHandle; scheduling a rule again
    cancels the previous handle, so only the latest change fires.
    """

    def __init__(
        self,
        config_source: Callable[[], ProposalConfiguration],
        tracker: AutoFillTracker,
        rules: Tuple[AutoFillRule, ...] = DEFAULT_RULES,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._config_source = config_source
        self._tracker = tracker
        self._rules = rules
        self._loop = loop
        self._handles: Dict[str, asyncio.TimerHandle] = {}

    def ensure_loop(self) -> asyncio.AbstractEventLoop:
        """
        The loop timers are scheduled on.

        Raises:
            RuntimeError: If no loop was given and none is running
        """
        return self._loop or asyncio.get_running_loop()

    def triggered_by(self, path: str) -> List[AutoFillRule]:
        return [rule for rule in self._rules if path in rule.sources]

    def schedule(self, rule: AutoFillRule) -> None:
        loop = self.ensure_loop()
        previous = self._handles.pop(rule.name, None)
        if previous is not None:
            previous.cancel()
        delay = settings.debounce_seconds(rule.delay_ms)
        self._handles[rule.name] = loop.call_later(delay, self._fire, rule)

    def notify_change(self, path: str) -> List[str]:
        """Re-arm every rule triggered by a change at path. Returns the rule names."""
        triggered = self.triggered_by(path)
        for rule in triggered:
            self.schedule(rule)
        return [rule.name for rule in triggered]

    def pending(self) -> List[str]:
        return sorted(self._handles)

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def _fire(self, rule: AutoFillRule) -> None:
        self._handles.pop(rule.name, None)
        apply_rule(self._config_source(), self._tracker, rule)
