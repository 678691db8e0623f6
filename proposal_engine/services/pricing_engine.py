"""
Pricing and derivation engine.

Computes DerivedTotals from a ProposalConfiguration. Every function here is
pure: it reads the configuration and returns numbers, never mutating state
and never raising on bad input (numeric fields already degrade to zero).

Architecture:
- effective_squares(): measured squares adjusted for waste
- one *_base() function per primary section (asphalt tiers, DaVinci, cedar,
  rubber, siding categories, decking)
- asphalt_tier_total(): displayed tier total, base plus plywood surcharge
- one *_total() function per extras line item
- compute_derived_totals(): gates sections by work domain and sums
"""

from typing import Dict

import structlog

from proposal_engine.models.configuration import (
    SIDING_PRODUCTS,
    AsphaltTier,
    CalcMode,
    DripEdgeType,
    PlywoodCondition,
    ProposalConfiguration,
    RoofScope,
    SidingCategoryPricing,
    SidingPricing,
)
from proposal_engine.models.totals import DerivedTotals
from proposal_engine.services.money import round2, to_number

logger = structlog.get_logger(__name__)


# Rates that are fixed by the business rather than configurable per proposal
PLYWOOD_CONDITION_RATES = {
    PlywoodCondition.REPLACE.value: 360,
    PlywoodCondition.NEW_OVER_BOARDS.value: 330,
}
SOLAR_AREA_RATE = 100
FULL_COVERAGE_RATE = 100
COPPER_DRIP_EDGE_RATE = 10
COPPER_VALLEY_RATE = 25
WOVEN_CAPS_RATE = 45
WOVEN_CORNERS_RATE = 45
CURB_SKYLIGHT_RATE = 500
TRIM_NEW_INSTALL_DISCOUNT = 2
GUTTER_MODE_ADJUSTMENTS = {"new": -2, "angled_fascia": 4}
WINDOW_UNIT_PRICES = {
    "windows_count": 500,
    "doors_count": 900,
    "slider6_count": 1000,
    "slider8_count": 1200,
}
INSIDE_CASING_RATE = 17
OUTSIDE_TRIM_RATE = 19

# Decking: later entries win when several boxes are checked
DECKING_MATERIAL_RATES = (("pt", 25), ("mahogany", 43), ("trex", 47), ("azek", 55), ("wolf", 55))
DECKING_RAILING_RATES = (("pt", 85), ("azek", 120), ("intex", 150), ("cable", 275))
DECKING_GROUND_FRAMING_RATE = 25
DECKING_SECOND_STORY_FRAMING_RATE = 35
DECKING_SONOTUBE_PRICE = 500
DECKING_LANDING_RATE = 100
DECKING_SKIRT_TRIM_RATE = 19


# =============================================================================
# Shared terms
# =============================================================================


def effective_squares(config: ProposalConfiguration) -> float:
    """Roof squares including the waste percentage, rounded to cents."""
    measure = config.measure
    return round2(measure.roof_squares * (1 + to_number(measure.waste_pct) / 100))


def plywood_surcharge(scope: RoofScope, squares: float) -> float:
    """Per-section plywood surcharge; inspect/re-nail (or unknown) adds nothing."""
    rate = PLYWOOD_CONDITION_RATES.get(scope.plywood_condition, 0)
    return rate * to_number(squares)


def copper_drip_edge_cost(scope: RoofScope, feet: float) -> float:
    """Copper drip edge adder, applied when either eaves or rakes are copper."""
    copper = DripEdgeType.COPPER_5.value
    if scope.drip_edge_type == copper or scope.rake_drip_edge_type == copper:
        return to_number(feet) * COPPER_DRIP_EDGE_RATE
    return 0.0


def copper_valley_cost(scope: RoofScope, feet: float) -> float:
    if not scope.include_copper_valleys:
        return 0.0
    return to_number(feet) * COPPER_VALLEY_RATE


# =============================================================================
# Primary sections
# =============================================================================


def asphalt_tier_base(config: ProposalConfiguration, tier: str) -> float:
    """
    Base cost for one asphalt tier.

    By square: effective squares x tier rate, plus the solar-area adder
    (solar squares x 100) and the full-coverage adder (effective squares x
    100). Manual: the tier's manual price. An empty or unknown tier costs
    nothing. The plywood surcharge is not part of the base; see
    asphalt_tier_total().
    """
    if tier not in (t.value for t in AsphaltTier):
        return 0.0
    pricing = config.pricing
    scope = config.scope.asphalt
    if pricing.asphalt_calc_mode == CalcMode.MANUAL.value:
        base = pricing.manual_price.for_tier(tier)
    else:
        eff = effective_squares(config)
        base = round2(eff * pricing.unit_price.for_tier(tier))
        ice = scope.ice_areas
        if ice.solar_areas and ice.solar_squares > 0:
            base = round2(base + ice.solar_squares * SOLAR_AREA_RATE)
        if ice.full_coverage:
            base = round2(base + eff * FULL_COVERAGE_RATE)
    return round2(base)


def asphalt_tier_total(config: ProposalConfiguration, tier: str) -> float:
    """Displayed tier total: the tier base plus the asphalt plywood surcharge."""
    if tier not in (t.value for t in AsphaltTier):
        return 0.0
    surcharge = plywood_surcharge(config.scope.asphalt, config.pricing.asphalt_plywood_squares)
    return round2(asphalt_tier_base(config, tier) + surcharge)


def davinci_base(config: ProposalConfiguration) -> float:
    pricing = config.pricing
    scope = config.scope.davinci
    if pricing.davinci_mode == CalcMode.MANUAL.value:
        return round2(pricing.davinci_manual)
    base = round2(effective_squares(config) * pricing.davinci_unit)
    return round2(
        base
        + plywood_surcharge(scope, pricing.davinci_plywood_squares)
        + copper_drip_edge_cost(scope, pricing.davinci_copper_drip_edge_feet)
        + copper_valley_cost(scope, pricing.davinci_copper_valley_feet)
    )


def woven_caps_cost(config: ProposalConfiguration) -> float:
    pricing = config.pricing
    if not pricing.cedar_include_woven_caps:
        return 0.0
    return WOVEN_CAPS_RATE * pricing.cedar_woven_caps_feet


def cedar_base(config: ProposalConfiguration) -> float:
    """Cedar shake base. Copper adders only apply when priced by square."""
    pricing = config.pricing
    scope = config.scope.cedar
    plywood = plywood_surcharge(scope, pricing.cedar_plywood_squares)
    if pricing.cedar_mode == CalcMode.MANUAL.value:
        return round2(pricing.cedar_manual + woven_caps_cost(config) + plywood)
    base = round2(effective_squares(config) * pricing.cedar_unit)
    return round2(
        base
        + woven_caps_cost(config)
        + plywood
        + copper_drip_edge_cost(scope, pricing.cedar_copper_drip_edge_feet)
        + copper_valley_cost(scope, pricing.cedar_copper_valley_feet)
    )


def rubber_base(config: ProposalConfiguration) -> float:
    """Flat (EPDM) roof base, priced on flat roof squares without waste."""
    pricing = config.pricing
    scope = config.scope.rubber
    if pricing.rubber_mode == CalcMode.MANUAL.value:
        base = pricing.rubber_manual
    else:
        base = round2(config.measure.flat_roof_squares * pricing.rubber_unit)
    skylights = CURB_SKYLIGHT_RATE * pricing.rubber_curb_skylights if scope.curb_skylights else 0.0
    return round2(base + plywood_surcharge(scope, pricing.rubber_plywood_squares) + skylights)


def siding_unit_rate(siding: SidingPricing, category: str, cat_pricing: SidingCategoryPricing) -> float:
    """
    Unit rate for a siding category.

    Falls back through: explicit per-category unit -> rate table lookup by
    category and product (the category's first product when none is
    selected) -> 0.
    """
    if cat_pricing.unit:
        return cat_pricing.unit
    product = cat_pricing.product
    if not product:
        options = SIDING_PRODUCTS.get(category) or []
        product = options[0][0] if options else ""
    return to_number((siding.rates.get(category) or {}).get(product, 0))


def siding_category_subtotal(siding: SidingPricing, category: str) -> float:
    cat_pricing = siding.category(category)
    if cat_pricing.calc_mode == CalcMode.MANUAL.value:
        subtotal = cat_pricing.manual_total
    else:
        subtotal = round2(cat_pricing.squares * siding_unit_rate(siding, category, cat_pricing))
    if cat_pricing.woven_corners.include:
        subtotal += round2(WOVEN_CORNERS_RATE * cat_pricing.woven_corners.feet)
    return round2(subtotal)


def siding_breakdown(config: ProposalConfiguration) -> Dict[str, float]:
    """Subtotal per active siding category (empty when siding is off)."""
    if not config.work_domain.siding:
        return {}
    siding = config.pricing.siding
    breakdown: Dict[str, float] = {}
    for category in config.selected_work.siding_categories:
        breakdown[category] = siding_category_subtotal(siding, category)
    return breakdown


def _last_checked_rate(flags, table) -> float:
    rate = 0
    for name, value in table:
        if getattr(flags, name, False):
            rate = value
    return rate


def decking_base(config: ProposalConfiguration) -> float:
    """Decking total: material, railing, framing, concrete and skirt trim terms."""
    decking = config.pricing.decking
    material = decking.material_sqft * _last_checked_rate(decking.materials, DECKING_MATERIAL_RATES)
    railing = decking.railing_linear_ft * _last_checked_rate(decking.railing, DECKING_RAILING_RATES)
    framing = (
        decking.framing.ground_level_sqft * DECKING_GROUND_FRAMING_RATE
        + decking.framing.second_story_sqft * DECKING_SECOND_STORY_FRAMING_RATE
    )
    concrete = (
        decking.concrete.sono_tubes_count * DECKING_SONOTUBE_PRICE
        + decking.concrete.landing_sqft * DECKING_LANDING_RATE
    )
    skirt = decking.skirt_trim.linear_ft * DECKING_SKIRT_TRIM_RATE
    return round2(material + railing + framing + concrete + skirt)


# =============================================================================
# Extras
# =============================================================================


def plywood_total(config: ProposalConfiguration) -> float:
    plywood = config.pricing.plywood
    if not plywood.selected:
        return 0.0
    return round2(plywood.squares * to_number(plywood.rate_by_mode.get(plywood.mode, 0)))


def chimney_total(config: ProposalConfiguration) -> float:
    chimney = config.pricing.chimney
    if not chimney.selected:
        return 0.0
    base = to_number(chimney.prices.get(chimney.size, 0))
    cricket = chimney.cricket_price if chimney.cricket else 0.0
    return round2(base + cricket)


def trim_total(config: ProposalConfiguration) -> float:
    """Sum of every trim linear-foot field x (material rate - new-install discount)."""
    trim = config.pricing.trim
    if not trim.selected:
        return 0.0
    material = "cedar" if trim.material == "cedar" else "azek"
    rate = to_number(trim.rates.get(material, 0))
    if trim.install_mode == "new":
        rate -= TRIM_NEW_INSTALL_DISCOUNT
    feet = sum(to_number(v) for v in trim.feet.model_dump().values())
    return round2(rate * feet)


def gutters_total(config: ProposalConfiguration) -> float:
    """Gutter run + downspouts + optional flat-priced leaf guards."""
    gutters = config.pricing.gutters
    if not gutters.selected:
        return 0.0
    rate = to_number(gutters.rates.get(gutters.type, 0)) + GUTTER_MODE_ADJUSTMENTS.get(gutters.install_mode, 0)
    base = round2(rate * gutters.feet)
    downspouts = gutters.downspouts
    ds_base = round2(to_number(downspouts.rates.get(downspouts.type, 0)) * downspouts.feet)
    leaf_guards = gutters.leaf_guards.price if gutters.leaf_guards.selected else 0.0
    return round2(base + ds_base + leaf_guards)


def windows_and_doors_total(config: ProposalConfiguration) -> float:
    wd = config.pricing.windows_and_doors
    if not wd.selected:
        return 0.0
    total = sum(getattr(wd, field) * price for field, price in WINDOW_UNIT_PRICES.items())
    if wd.custom:
        total += wd.custom_price
    if wd.include_inside_casing:
        total += wd.inside_casing_feet * INSIDE_CASING_RATE
    if wd.include_outside_trim:
        total += wd.outside_trim_feet * OUTSIDE_TRIM_RATE
    return round2(total)


def custom_add_total(config: ProposalConfiguration) -> float:
    """Custom line item counts only when selected, labelled and priced."""
    custom = config.pricing.custom_add
    if custom.selected and custom.label.strip() and custom.price:
        return round2(custom.price)
    return 0.0


def skylight_prices(config: ProposalConfiguration) -> Dict[str, float]:
    skylights = config.pricing.skylights
    adder = to_number(skylights.adders.get(skylights.complexity, 0))
    base = skylights.base
    return {
        "fixed": round2(base.fixed + adder),
        "manual": round2(base.manual + adder),
        "solar": round2(base.solar + adder),
    }


def detached_tier_totals(config: ProposalConfiguration) -> Dict[str, float]:
    squares = config.pricing.detached.squares
    prices = config.pricing.unit_price
    return {tier.value: round2(squares * prices.for_tier(tier.value)) for tier in AsphaltTier}


EXTRAS = (
    ("plywood", plywood_total),
    ("chimney", chimney_total),
    ("trim", trim_total),
    ("gutters", gutters_total),
    ("windows_and_doors", windows_and_doors_total),
    ("custom", custom_add_total),
)


# =============================================================================
# Aggregation
# =============================================================================


def compute_derived_totals(config: ProposalConfiguration) -> DerivedTotals:
    """
    Compute every derived value from the configuration.

    A primary section contributes only when its work domain is enabled and
    (for roofing) its system is selected; siding needs at least one active
    category. Extras contribute only when selected.

    Args:
        config: The live configuration (always pass the latest one)

    Returns:
        A fresh DerivedTotals record
    """
    domain = config.work_domain
    selected = config.selected_work
    roofing = domain.roofing

    tiers = {tier.value: asphalt_tier_base(config, tier.value) for tier in AsphaltTier}
    tier_totals = {tier.value: asphalt_tier_total(config, tier.value) for tier in AsphaltTier}
    siding = siding_breakdown(config)

    primary = {
        "asphalt": tiers.get(config.pricing.asphalt_selected, 0.0) if roofing and selected.asphalt else 0.0,
        "davinci": davinci_base(config) if roofing and selected.davinci else 0.0,
        "cedar": cedar_base(config) if roofing and selected.cedar else 0.0,
        "rubber": rubber_base(config) if roofing and selected.rubber else 0.0,
        "siding": round2(sum(siding.values())) if siding else 0.0,
        "decking": decking_base(config) if domain.decking else 0.0,
    }
    extras = {name: compute(config) for name, compute in EXTRAS}
    extras_total = round2(sum(extras.values()))
    grand_total = round2(sum(primary.values()) + extras_total)

    logger.debug(
        "totals_computed",
        grand_total=grand_total,
        extras_total=extras_total,
        active_sections=[name for name, value in primary.items() if value],
    )

    return DerivedTotals(
        effective_squares=effective_squares(config),
        asphalt_tiers=tiers,
        asphalt_tier_totals=tier_totals,
        primary=primary,
        siding_categories=siding,
        extras=extras,
        extras_total=extras_total,
        skylight_prices=skylight_prices(config),
        detached_tiers=detached_tier_totals(config),
        grand_total=grand_total,
    )
