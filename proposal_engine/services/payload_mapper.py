"""
Template data mapper.

Turns a ProposalConfiguration (plus its DerivedTotals) into the payload a
proposal template is expanded against. Payload values are one of:

- scalars (labels, formatted money, counts)
- presence arrays: [{}] shows a block, [] hides it (see show())
- arrays of records: one block iteration per record (photo galleries)
- nested dicts reached through dotted tokens (the ``scope`` mirror)

Mapping never raises on bad data; every lookup degrades to "" or 0.

Architecture:
- *_LABELS tables: internal values -> printed text, each with a fallback
- FALLBACKS / first_present(): ordered accessors for fields with several
  source locations
- one _*_fields() builder per proposal section, merged by build_payload()
- ALIASES: alternate spellings copied in last so templates may use either
"""

from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

import structlog
from pydantic.alias_generators import to_camel

from proposal_engine.models.configuration import (
    SIDING_PRODUCTS,
    AsphaltTier,
    CalcMode,
    DripEdgeType,
    IceArea,
    ProposalConfiguration,
    RoofScope,
    SidingCategory,
)
from proposal_engine.models.totals import DerivedTotals
from proposal_engine.services.money import (
    format_currency,
    format_date,
    format_maybe,
    format_phone,
    round2,
    to_number,
)
from proposal_engine.services.pricing_engine import (
    COPPER_VALLEY_RATE,
    DECKING_SONOTUBE_PRICE,
    WOVEN_CAPS_RATE,
    WOVEN_CORNERS_RATE,
    compute_derived_totals,
    siding_unit_rate,
)

logger = structlog.get_logger(__name__)

Accessor = Callable[[ProposalConfiguration], Any]

CHECKED = "☒"
UNCHECKED = "☐"


def show(cond: Any) -> List[Dict]:
    """Presence array: [{}] renders a block once, [] hides it."""
    return [{}] if cond else []


# =============================================================================
# Label tables
# =============================================================================

COLOR_LABELS = {"white": "White", "mill": "Mill Finish", "brown": "Brown", "black": "Black"}

PLYWOOD_SENTENCES = {
    "inspectRenail": "Inspect and Re-Nail any loose or popped plywood or boards on the Entire Roof Deck Area of the House.",
    "replace": "Replace the existing plywood on the Entire Roof Deck Area of the House.",
    "newOverBoards": "Install new plywood over the existing roof boards on the Entire Roof Deck Area of the House.",
}

GUTTER_LABELS = {
    "aluminum5": '5" Seamless Aluminum Gutters',
    "aluminum6": '6" Seamless Aluminum Gutters (Commercial)',
    "copper_k5": '5" K-Style Copper',
    "copper_h6": '6" half round copper',
}

GUTTER_INSTALL_MODE_LABELS = {"new": "Install new", "angled_fascia": "Angled Fascia"}

DOWNSPOUT_LABELS = {
    "down5": '5" Downspouts',
    "down6": '6" Downspouts',
    "copper_round": "Copper Round Downspouts",
    "aluminum_round": "Aluminum Round Downspouts",
}

SIDING_CATEGORY_LABELS = {
    SidingCategory.CEDAR_SHAKE.value: "Cedar Shake",
    SidingCategory.SYNTHETIC.value: "Synthetic",
    SidingCategory.VINYL.value: "Vinyl",
    SidingCategory.CLAP_BOARD.value: "Clap Board",
}

# Payload key prefix per siding category
SIDING_PREFIXES = {
    SidingCategory.CEDAR_SHAKE.value: "siding_cedar",
    SidingCategory.SYNTHETIC.value: "siding_synthetic",
    SidingCategory.VINYL.value: "siding_vinyl",
    SidingCategory.CLAP_BOARD.value: "siding_clap",
}

CEDAR_TYPE_LABELS = {"red": "Red Cedar", "yellow": "Yellow Cedar", "ptred": "P.T Red Cedar"}

EPDM_LABELS = {
    ".060_black": ".060 Black EPDM",
    ".090_black": ".090 Black EPDM",
    ".060_white": ".060 White EPDM",
    ".090_white": ".090 White EPDM",
}

DETACHED_TYPE_LABELS = {"garage": "Garage", "shed": "Shed", "barn": "Barn"}

TRIM_MATERIAL_LABELS = {
    "azek": "AZEK maintenenance free PVC trim installed using the CORTEX screw and plug invisible fastening system.",
    "cedar": "Clear Western Red Cedar trim boards installed using counter-sunken stainless steel trim screws.",
}

TRIM_INSTALL_MODE_LABELS = {"new": "Install new", "replace": "Replace existing"}

DAVINCI_PRODUCT_LABELS = {"shake": "Multi-width Shake", "slate": "Multi-width Slate"}

PLYWOOD_MODE_LABELS = {
    "replace": "replacing the existing plywood",
    "overlay": "installing over the existing roof boards",
    "new": "installing new over the existing boards",
}

SKYLIGHT_FRAMING_MODES = ("framing_new", "framing_new_complex")

TIER_KEYS = (
    ("good", AsphaltTier.LANDMARK.value),
    ("better", AsphaltTier.PRO.value),
    ("best", AsphaltTier.NORTHGATE.value),
)

DECKING_MATERIAL_ORDER = ("azek", "wolf", "trex", "mahogany", "pt")
DECKING_RAILING_ORDER = ("intex", "azek", "pt", "cable")

PHOTO_GALLERIES = (
    "roofing_asphalt",
    "roofing_davinci",
    "roofing_cedar",
    "roofing_rubber",
    "siding_cedarShake",
    "siding_synthetic",
    "siding_vinyl",
    "siding_clapBoard",
    "decking",
    "extra_plywood",
    "extra_chimney",
    "extra_skylights",
    "extra_trim",
    "extra_gutters",
    "extra_detached",
    "extra_windows_and_doors",
    "extra_custom",
)

# Older snapshots stored photos under these keys; merged after the gallery id
PHOTO_GALLERY_ALIASES: Dict[str, Tuple[str, ...]] = {
    "roofing_asphalt": ("asphalt",),
    "roofing_davinci": ("davinci",),
    "roofing_cedar": ("cedar",),
    "roofing_rubber": ("rubber",),
    "siding_synthetic": ("siding",),
    "extra_plywood": ("plywood",),
    "extra_chimney": ("chimney",),
    "extra_skylights": ("skylights",),
    "extra_trim": ("trim",),
    "extra_gutters": ("gutters",),
    "extra_detached": ("detached",),
    "extra_windows_and_doors": ("windows_doors", "windows_and_doors"),
    "extra_custom": ("custom",),
}

# Attachment fields that may carry the image source, in priority order
PHOTO_SOURCE_FIELDS = ("image", "dataUrl", "dataURL", "data", "url", "base64")

# Alternate spellings templates are known to use; copied after everything else
ALIASES: Dict[str, Tuple[str, ...]] = {
    "siding_synthetic_subtotal": ("siding_synthetic_subTotal",),
    "siding_cedar_total": ("siding_cedarShake_total",),
    "siding_cedar_subtotal": ("siding_cedar_subTotal",),
    "asphalt_rakeDrip_color_label": ("asphalt_rakeDripEdge_color_label",),
    "custom_price": ("custom_price_formatted", "custom_total"),
    "grand_total": ("grand_total_usd",),
    "extras_total": ("extras_total_usd",),
    "decking_total": ("decking_total_usd",),
    "leafguards_total": ("gutters_leafguards_total",),
}


def label_for(table: Dict[str, str], value: Any, fallback: Optional[str] = None) -> str:
    """Look a value up in a label table; fallback defaults to the raw value."""
    raw = "" if value is None else str(value)
    if raw in table:
        return table[raw]
    return raw if fallback is None else fallback


def drip_edge_label(edge_type: str, color: str) -> str:
    if edge_type == DripEdgeType.HICKS_VENT.value:
        return "Hicks Vent"
    if edge_type == DripEdgeType.ALUMINUM_8.value:
        return f'8" Aluminum ({(color or "White").title()})'
    if edge_type == DripEdgeType.COPPER_5.value:
        return '5" Copper'
    return ""


def siding_product_label(category: str, product: str) -> str:
    for value, label in SIDING_PRODUCTS.get(category, []):
        if value == product:
            return label
    return product or ""


def plywood_priority_label(priority: str) -> str:
    if priority == "maybe":
        return "Might be Required"
    return (priority or "").upper()


def selected_work_title(config: ProposalConfiguration) -> str:
    """Header title built from the selected trades, e.g. "Roofing & Siding Proposal"."""
    domain = config.work_domain
    work = config.selected_work
    buckets = []
    if domain.roofing and (work.asphalt or work.davinci or work.cedar or work.rubber):
        buckets.append("Roofing")
    if domain.siding and work.siding_categories:
        buckets.append("Siding")
    if domain.decking:
        buckets.append("Decking")
    if config.pricing.windows_and_doors.selected:
        buckets.append("Windows & Doors")
    if not buckets:
        return "Proposal"
    if len(buckets) == 1:
        return f"{buckets[0]} Proposal"
    return f"{', '.join(buckets[:-1])} & {buckets[-1]} Proposal"


# =============================================================================
# Fallback chains
# =============================================================================

FALLBACKS: Dict[str, Tuple[Accessor, ...]] = {
    "provided_on": (
        lambda c: c.customer.provided_on,
        lambda c: date.today().isoformat(),
    ),
    "cedar_type": (
        lambda c: c.scope.cedar.cedar_type,
        lambda c: "red",
    ),
    "davinci_product_type": (
        lambda c: c.scope.davinci.product_type,
        lambda c: "shake",
    ),
    "rubber_epdm_type": (
        lambda c: c.scope.rubber.epdm_type,
        lambda c: ".060_black",
    ),
    "detached_type_label": (
        lambda c: DETACHED_TYPE_LABELS[c.pricing.detached.type],
        lambda c: c.pricing.detached.other_label if c.pricing.detached.type == "other" else None,
        lambda c: "Other" if c.pricing.detached.type == "other" else c.pricing.detached.type,
    ),
}


def siding_fallbacks(category: str) -> Dict[str, Tuple[Accessor, ...]]:
    """Per-category siding fields fall back to the shared siding values."""
    return {
        "areas": (
            lambda c: c.pricing.siding.by_category[category].areas,
            lambda c: c.pricing.siding.areas,
        ),
        "exposure": (
            lambda c: c.pricing.siding.by_category[category].exposure,
            lambda c: c.pricing.siding.exposure,
        ),
        "color": (
            lambda c: c.pricing.siding.by_category[category].color,
            lambda c: c.scope.siding.color,
        ),
    }


def first_present(config: ProposalConfiguration, accessors: Iterable[Accessor], default: Any = "") -> Any:
    """
    Return the first accessor result that is present.

    None and blank strings count as absent, as does an accessor raising
    AttributeError, KeyError, IndexError or TypeError. Strings are stripped.
    """
    for accessor in accessors:
        try:
            value = accessor(config)
        except (AttributeError, KeyError, IndexError, TypeError):
            continue
        if value is None:
            continue
        if isinstance(value, str):
            if not value.strip():
                continue
            return value.strip()
        return value
    return default


# =============================================================================
# Section builders
# =============================================================================


class _Money:
    """Formats money keys; *_total keys honour hide_totals_in_print."""

    def __init__(self, hide: bool):
        self.hide = hide

    def total(self, key: str, value: Any) -> Dict[str, Any]:
        number = round2(value)
        return {key: format_maybe(self.hide, number), f"{key}_num": number}

    @staticmethod
    def price(key: str, value: Any) -> Dict[str, Any]:
        number = round2(value)
        return {key: format_currency(number), f"{key}_num": number}


def _party_fields(config: ProposalConfiguration) -> Dict[str, Any]:
    company = config.company
    customer = config.customer
    return {
        "company_name": company.name,
        "company_address": company.address,
        "company_phone": format_phone(company.phone),
        "company_email": company.email,
        "company_notes": company.notes,
        "hic": company.hic,
        "csl": company.csl,
        "provided_on": format_date(first_present(config, FALLBACKS["provided_on"])),
        "customer_name": customer.name,
        "customer_tel": format_phone(customer.tel),
        "customer_cell": format_phone(customer.cell),
        "customer_email": customer.email,
        "customer_street": customer.street,
        "customer_city": customer.city,
        "customer_state": customer.state,
        "customer_zip": customer.zip,
        "notes": config.scope.notes,
        "row_notes": show(config.scope.notes.strip()),
        "selected_work_title": selected_work_title(config),
    }


def _visibility_fields(config: ProposalConfiguration) -> Dict[str, Any]:
    domain = config.work_domain
    work = config.selected_work
    pricing = config.pricing
    custom = pricing.custom_add
    data = {
        "show_asphalt": show(domain.roofing and work.asphalt),
        "show_davinci": show(domain.roofing and work.davinci),
        "show_cedar": show(domain.roofing and work.cedar),
        "show_rubber": show(domain.roofing and work.rubber),
        "show_decking": show(domain.decking),
        "row_plywood": show(pricing.plywood.selected),
        "row_chimney": show(pricing.chimney.selected),
        "row_trim": show(pricing.trim.selected),
        "row_gutters": show(pricing.gutters.selected),
        "row_gutters_leafguards": show(pricing.gutters.leaf_guards.selected),
        "row_skylights": show(pricing.skylights.selected),
        "row_detached": show(pricing.detached.selected),
        "row_custom": show(custom.selected and custom.label.strip() and custom.price),
        "show_extra_options": show(
            pricing.plywood.selected
            or pricing.chimney.selected
            or pricing.trim.selected
            or pricing.gutters.selected
            or pricing.skylights.selected
            or pricing.detached.selected
            or (custom.selected and (custom.label.strip() or custom.price))
        ),
    }
    for category in SIDING_PREFIXES:
        data[f"show_siding_{category}"] = show(domain.siding and category in work.siding_categories)
    return data


def _ice_area_fields(prefix: str, scope: RoofScope) -> Dict[str, Any]:
    ice = scope.ice_areas
    data = {f"{prefix}_iw_{to_camel(area.value)}": show(getattr(ice, area.value)) for area in IceArea}
    data[f"{prefix}_iw_solarSquares"] = ice.solar_squares
    data[f"row_{prefix}_iw_any"] = show(ice.active())
    return data


def _drip_edge_fields(prefix: str, scope: RoofScope) -> Dict[str, Any]:
    eave, rake = scope.drip_edge_type, scope.rake_drip_edge_type
    data = {
        f"{prefix}_drip_eave_label": drip_edge_label(eave, scope.drip_edge_color),
        f"{prefix}_drip_rake_label": drip_edge_label(rake, scope.rake_drip_edge_color),
        f"{prefix}_dripEdge_color_label": label_for(COLOR_LABELS, scope.drip_edge_color.lower(), ""),
        f"{prefix}_rakeDrip_color_label": label_for(COLOR_LABELS, scope.rake_drip_edge_color.lower(), ""),
        f"row_{prefix}_drip_eave": show(eave),
        f"row_{prefix}_drip_rake": show(rake),
        f"{prefix}_copperDrip_any": show(DripEdgeType.COPPER_5.value in (eave, rake)),
    }
    for suffix, edge in (("hicks", DripEdgeType.HICKS_VENT), ("aluminum8", DripEdgeType.ALUMINUM_8),
                         ("copper5", DripEdgeType.COPPER_5)):
        data[f"{prefix}_dripEdge_{suffix}"] = show(eave == edge.value)
        data[f"{prefix}_rakeDrip_{suffix}"] = show(rake == edge.value)
    return data


def _inclusion_fields(prefix: str, scope: RoofScope) -> Dict[str, Any]:
    """Row flags and labels shared by every pitched roof system."""
    flange = scope.pipe_flange
    vents = scope.roof_fan_vents
    return {
        f"{prefix}_plywood_sentence": label_for(PLYWOOD_SENTENCES, scope.plywood_condition, ""),
        f"{prefix}_pipe_flange_label": "Copper" if flange.copper else ("Aluminum" if flange.aluminum else ""),
        f"{prefix}_roof_fan_vents_label": "Copper" if vents.copper else ("Black Aluminum" if vents.black_aluminum else ""),
        f"row_{prefix}_ice_full": show(scope.ice_water_full),
        f"row_{prefix}_ridgeVent": show(scope.ridge_vent),
        f"row_{prefix}_hipRidgeCaps": show(scope.hip_ridge_caps),
        f"row_{prefix}_pipeFlashings": show(scope.pipe_flashings),
        f"row_{prefix}_pipeFlange": show(flange.aluminum or flange.copper),
        f"row_{prefix}_roofFanVents": show(vents.black_aluminum or vents.copper),
        f"row_{prefix}_cleanup": show(scope.cleanup),
    }


def _asphalt_fields(config: ProposalConfiguration, totals: DerivedTotals, money: _Money) -> Dict[str, Any]:
    scope = config.scope.asphalt
    pricing = config.pricing
    data: Dict[str, Any] = {
        "asphalt_areas": scope.areas,
        "asphalt_syntheticUnderlayment": show(scope.synthetic_underlayment),
        "asphalt_starterStrips": show(scope.starter_strips),
        "asphalt_ridgeVent": show(scope.ridge_vent),
        "asphalt_hipRidgeCaps": show(scope.hip_ridge_caps),
        "asphalt_pipeFlashings": show(scope.pipe_flashings),
        "asphalt_cleanup": show(scope.cleanup),
        "asphalt_color": show(scope.color.strip()),
        "asphalt_color_name": scope.color.strip(),
        "asphalt_copper_drip_edge_feet": pricing.asphalt_copper_drip_edge_feet,
        "asphalt_plywood_hidden": (
            "Inspect and Re-nail Any loose or popped plywood or boards"
            if scope.plywood_condition == "inspectRenail" else ""
        ),
    }
    data.update(_inclusion_fields("asphalt", scope))
    data.update(_drip_edge_fields("asphalt", scope))
    data.update(_ice_area_fields("asphalt", scope))
    for name, tier in TIER_KEYS:
        data.update(money.total(f"asphalt_{name}_total", totals.asphalt_tier_totals.get(tier, 0.0)))
        data[f"asphalt_check_{name}"] = CHECKED if pricing.asphalt_selected == tier else UNCHECKED
    data.update(money.total("asphalt_selected_total", totals.asphalt_tiers.get(pricing.asphalt_selected, 0.0)))
    return data


def _davinci_fields(config: ProposalConfiguration, totals: DerivedTotals, money: _Money) -> Dict[str, Any]:
    scope = config.scope.davinci
    pricing = config.pricing
    product = first_present(config, FALLBACKS["davinci_product_type"])
    valley_feet = pricing.davinci_copper_valley_feet
    drip_feet = pricing.davinci_copper_drip_edge_feet
    data: Dict[str, Any] = {
        "davinci_areas": scope.areas,
        "davinci_product_label": label_for(DAVINCI_PRODUCT_LABELS, product, ""),
        "davinci_copper_valleys_feet": valley_feet,
        "davinci_copper_drip_edge_feet": drip_feet,
        "davinci_iw_full": show(scope.ice_water_full),
        "row_davinci_starter": show(scope.davinci_starter),
        "row_davinci_copper_valleys": show(scope.include_copper_valleys and valley_feet > 0),
        "row_davinci_copper_drip_edge": show(drip_feet > 0),
    }
    data.update(_inclusion_fields("davinci", scope))
    data.update(_drip_edge_fields("davinci", scope))
    data.update(money.total("davinci_total", totals.section("davinci")))
    return data


def _cedar_fields(config: ProposalConfiguration, totals: DerivedTotals, money: _Money) -> Dict[str, Any]:
    scope = config.scope.cedar
    pricing = config.pricing
    measure = config.measure
    valley_feet = pricing.cedar_copper_valley_feet
    valley_cost = round2(COPPER_VALLEY_RATE * valley_feet)
    caps_feet = pricing.cedar_woven_caps_feet
    data: Dict[str, Any] = {
        "cedar_areas": scope.areas,
        "cedar_type_label": label_for(CEDAR_TYPE_LABELS, first_present(config, FALLBACKS["cedar_type"]), "Red Cedar"),
        "row_cedar_cedarBreather": show(scope.cedar_breather),
        "row_cedar_ridgeBoards": show(scope.cedar_ridge_boards),
        "row_cedar_cedarRidgeBoards": show(scope.cedar_ridge_boards),
        "row_cedar_deckArmor": show(scope.ice_water_full),
        "row_cedar_copperValleys": (
            [{"cedar_copper_valley_feet": valley_feet, "cedar_copper_valley_cost": format_currency(valley_cost)}]
            if scope.include_copper_valleys else []
        ),
        "cedar_copper_valley_feet": valley_feet,
        "cedar_woven_caps_feet": caps_feet,
        "row_cedar_woven_caps": show(caps_feet > 0),
        "cedar_woven_caps_hips": show(pricing.cedar_woven_caps_hips),
        "cedar_woven_caps_ridges": show(pricing.cedar_woven_caps_ridges),
        "cedar_woven_caps_hips_feet": measure.feet_hips if pricing.cedar_woven_caps_hips else 0.0,
        "cedar_woven_caps_ridges_feet": measure.feet_ridge if pricing.cedar_woven_caps_ridges else 0.0,
    }
    data.update(money.price("cedar_copper_valley_cost", valley_cost))
    data.update(money.price("cedar_woven_caps_cost", WOVEN_CAPS_RATE * caps_feet))
    data.update(_inclusion_fields("cedar", scope))
    data.update(_drip_edge_fields("cedar", scope))
    data.update(_ice_area_fields("cedar", scope))
    data.update(money.total("cedar_total", totals.section("cedar")))
    return data


def _rubber_fields(config: ProposalConfiguration, totals: DerivedTotals, money: _Money) -> Dict[str, Any]:
    scope = config.scope.rubber
    epdm = first_present(config, FALLBACKS["rubber_epdm_type"])
    data = {
        "rubber_areas": scope.areas,
        "rubber_epdm_type": label_for(EPDM_LABELS, epdm, ""),
        "rubber_epdm_type_label": label_for(EPDM_LABELS, epdm, "EPDM"),
        "rubber_plywood_sentence": label_for(PLYWOOD_SENTENCES, scope.plywood_condition, ""),
        "rubber_curb_skylights_count": config.pricing.rubber_curb_skylights,
        "row_rubber_curbSkylights": show(scope.curb_skylights),
        "row_rubber_cleanup": show(scope.cleanup),
    }
    data.update(money.total("rubber_total", totals.section("rubber")))
    return data


def _siding_fields(config: ProposalConfiguration, totals: DerivedTotals, money: _Money) -> Dict[str, Any]:
    siding = config.pricing.siding
    scope = config.scope.siding
    active = config.work_domain.siding
    data: Dict[str, Any] = {
        "siding_areas": siding.areas.strip(),
        "siding_categories_label": ", ".join(
            label_for(SIDING_CATEGORY_LABELS, c) for c in config.selected_work.siding_categories
        ),
        "row_siding_typar": show(scope.typar),
        "row_siding_vycorTape": show(scope.vycor_tape),
        "row_siding_stainlessStaples": show(scope.stainless_staples),
        "row_siding_dripCaps": show(scope.drip_caps),
        "row_siding_azekBlocks": show(scope.azek_blocks),
        "row_siding_wireHangers": show(scope.wire_hangers),
        "row_siding_cleanup": show(scope.cleanup),
    }
    data.update(money.total("siding_total", totals.section("siding")))

    for category, prefix in SIDING_PREFIXES.items():
        on = active and category in config.selected_work.siding_categories
        cat = siding.category(category)
        chain = siding_fallbacks(category)
        by_square = cat.calc_mode != CalcMode.MANUAL.value
        unit = siding_unit_rate(siding, category, cat)
        subtotal = totals.siding_categories.get(category, 0.0)
        corners = cat.woven_corners
        corners_cost = round2(WOVEN_CORNERS_RATE * corners.feet) if corners.include else 0.0
        product_label = siding_product_label(category, cat.product)
        exposure = first_present(config, chain["exposure"])

        data.update({
            f"row_siding_{category}": show(on),
            f"{prefix}_areas": first_present(config, chain["areas"]),
            f"{prefix}_product_label": product_label,
            f"{prefix}_exposure": exposure,
            f"{prefix}_color": first_present(config, chain["color"]),
            f"{prefix}_calc_mode_label": "By Square" if by_square else "Manual Total",
            f"{prefix}_unit_rate": unit,
            f"{prefix}_squares": cat.squares,
            f"row_{prefix}_product": show(on and product_label),
            f"row_{prefix}_exposure": show(on and exposure),
            f"row_{prefix}_unit": show(on and by_square),
            f"row_{prefix}_squares": show(on and by_square),
            f"row_{prefix}_subtotal": show(on),
            f"row_{prefix}_total": show(on),
        })
        data.update(money.price(f"{prefix}_subtotal", round2(subtotal - corners_cost)))
        data.update(money.total(f"{prefix}_total", subtotal))
        if category == SidingCategory.CEDAR_SHAKE.value:
            data[f"{prefix}_wovenCorners_feet"] = corners.feet
            data.update(money.price(f"{prefix}_wovenCorners_cost", corners_cost))
            data[f"row_{prefix}_wovenCorners"] = show(on and corners.include and corners.feet > 0)
    # Older templates used a dedicated key for the synthetic product row
    data["row_siding_synth_product"] = data["row_siding_synthetic_product"]
    return data


def _decking_fields(config: ProposalConfiguration, totals: DerivedTotals, money: _Money) -> Dict[str, Any]:
    decking = config.pricing.decking
    framing = decking.framing
    concrete = decking.concrete
    skirt = decking.skirt_trim
    materials = [
        "PT" if name == "pt" else name.capitalize()
        for name in DECKING_MATERIAL_ORDER if getattr(decking.materials, name)
    ]
    railings = [name.capitalize() for name in DECKING_RAILING_ORDER if getattr(decking.railing, name)]
    data = {
        "decking_areas": decking.areas.strip(),
        "decking_material_label": " / ".join(materials) or "Selected",
        "decking_railing_label": " / ".join(railings),
        "row_decking_framing_ground": show(framing.ground_level and framing.ground_level_sqft > 0),
        "decking_framing_ground_sqft": framing.ground_level_sqft,
        "row_decking_framing_second": show(framing.second_story and framing.second_story_sqft > 0),
        "decking_framing_second_sqft": framing.second_story_sqft,
        "row_decking_replacing_decking": show(decking.replacing.decking),
        "row_decking_replacing_framing": show(decking.replacing.framing),
        "row_decking_replacing_railings": show(decking.replacing.railings),
        "row_decking_build_new": show(decking.work_modes.build_new.selected),
        "row_decking_resurfacing": show(decking.work_modes.resurfacing.selected),
        "row_decking_sonotubes": show(concrete.sono_tubes and concrete.sono_tubes_count > 0),
        "decking_sonotubes_count": concrete.sono_tubes_count,
        "row_decking_landing": show(concrete.landing and concrete.landing_sqft > 0),
        "decking_landing_sqft": concrete.landing_sqft,
        "row_decking_skirttrim_azek": show(skirt.azek and skirt.linear_ft > 0),
        "decking_skirttrim_linearft": skirt.linear_ft,
    }
    data.update(money.price("decking_sonotubes_price", DECKING_SONOTUBE_PRICE * concrete.sono_tubes_count))
    data.update(money.total("decking_total", totals.section("decking")))
    return data


def _extras_fields(config: ProposalConfiguration, totals: DerivedTotals, money: _Money) -> Dict[str, Any]:
    pricing = config.pricing
    plywood = pricing.plywood
    chimney = pricing.chimney
    trim = pricing.trim
    gutters = pricing.gutters
    downspouts = gutters.downspouts
    skylights = pricing.skylights
    detached = pricing.detached
    custom = pricing.custom_add

    data: Dict[str, Any] = {
        # Plywood
        "plywood_priority": plywood_priority_label(plywood.priority),
        "plywood_mode_label": label_for(PLYWOOD_MODE_LABELS, plywood.mode),
        "plywood_areas": plywood.areas.strip(),
        "plywood_squares": plywood.squares,
        # Chimney
        "chimney_size": chimney.size,
        "chimney_areas": chimney.areas,
        "chimney_cricket_on": show(chimney.cricket),
        # Trim
        "trim_material_label": label_for(TRIM_MATERIAL_LABELS, trim.material, TRIM_MATERIAL_LABELS["azek"]),
        "trim_install_mode_label": label_for(TRIM_INSTALL_MODE_LABELS, trim.install_mode, "Replace existing"),
        "trim_areas": trim.areas,
        # Gutters
        "gutters_areas": gutters.areas.strip(),
        "gutters_feet": gutters.feet,
        "gutters_type_label": label_for(GUTTER_LABELS, gutters.type),
        "gutters_install_mode_label": label_for(GUTTER_INSTALL_MODE_LABELS, gutters.install_mode, "Replace existing"),
        "gutters_downspouts_type": label_for(DOWNSPOUT_LABELS, downspouts.type),
        "gutters_downspouts_type_label": label_for(DOWNSPOUT_LABELS, downspouts.type),
        "gutters_downspouts_feet": downspouts.feet,
        "gutters_leafguards_on": gutters.leaf_guards.selected,
        # Skylights (reference prices only)
        "skylights_installMode_label": (
            "Framing in new" if skylights.complexity in SKYLIGHT_FRAMING_MODES else "Replacing existing"
        ),
        "skylights_areas": skylights.areas.strip(),
        # Detached structure
        "detached_type": "" if detached.type == "other" else detached.type,
        "detached_type_label": first_present(config, FALLBACKS["detached_type_label"]),
        "detached_other_label": detached.other_label,
        "detached_squares": detached.squares,
        # Custom line item
        "custom_label": custom.label.strip(),
        "custom_price_raw": custom.price,
    }
    for key, rate in (
        ("gutters_rate_per_ft", gutters.rates.get(gutters.type, 0)),
        ("gutters_downspouts_rate_per_ft", downspouts.rates.get(downspouts.type, 0)),
        ("gutters_downspouts_price", to_number(downspouts.rates.get(downspouts.type, 0)) * downspouts.feet),
        ("leafguards_price", gutters.leaf_guards.price if gutters.leaf_guards.selected else 0),
        ("custom_price", custom.price),
    ):
        data.update(money.price(key, rate))

    prices = totals.skylight_prices if skylights.selected else {}
    for kind in ("fixed", "manual", "solar"):
        data.update(money.price(f"skylights_{kind}", prices.get(kind, 0.0)))

    for name, tier in (("landmark", "landmark"), ("pro", "pro"), ("best", "northgate")):
        data.update(money.total(f"detached_{name}_total", totals.detached_tiers.get(tier, 0.0)))

    feet = trim.feet
    for field in type(feet).model_fields:
        value = getattr(feet, field)
        data[f"trim_feet_{to_camel(field)}"] = value
        data[f"row_trim_{to_camel(field)}"] = show(value > 0)

    for name in ("plywood", "chimney", "trim", "gutters"):
        data.update(money.total(f"{name}_total", totals.extras.get(name, 0.0)))
    data.update(money.total("leafguards_total", gutters.leaf_guards.price if gutters.leaf_guards.selected else 0))
    data.update(money.total("extras_total", totals.extras_total))
    return data


def _windows_fields(config: ProposalConfiguration, totals: DerivedTotals, money: _Money) -> Dict[str, Any]:
    wd = config.pricing.windows_and_doors
    data: Dict[str, Any] = {
        "row_windows_and_doors": show(wd.selected),
        "row_windows": show(wd.windows),
        "row_doors": show(wd.doors),
        "row_slider6": show(wd.slider6),
        "row_slider8": show(wd.slider8),
        "row_windows_custom": show(wd.custom),
        "row_include_outside_trim": show(wd.include_outside_trim),
        "row_include_inside_casing": show(wd.include_inside_casing),
        "include_outside_trim": wd.include_outside_trim,
        "outside_trim_feet": wd.outside_trim_feet,
        "include_inside_casing": wd.include_inside_casing,
        "inside_casing_feet": wd.inside_casing_feet,
        "custom_desc": wd.custom_desc,
    }
    for item in ("windows", "doors", "slider6", "slider8"):
        count = getattr(wd, f"{item}_count")
        data[f"{item}_count"] = count
        data[f"{item}_desc"] = getattr(wd, f"{item}_desc")
        data[f"row_{item}_count"] = show(count > 0)
    data.update(money.total("windows_and_doors_total", totals.extras.get("windows_and_doors", 0.0)))
    # Scoped copy so {#row_windows_custom}{windows_and_doors.custom_price} resolves
    data["windows_and_doors"] = money.price("custom_price", wd.custom_price)
    return data


def _photo_source(item: Dict[str, Any]) -> str:
    source = first_present(item, (lambda p, f=f: p[f] for f in PHOTO_SOURCE_FIELDS))
    return source if isinstance(source, str) else ""


def _gallery_items(config: ProposalConfiguration, gallery: str) -> List[Dict[str, Any]]:
    """Photos stored under the gallery id and its legacy keys, first occurrence of each source."""
    items: List[Dict[str, Any]] = []
    seen = set()
    for key in (gallery,) + PHOTO_GALLERY_ALIASES.get(gallery, ()):
        for item in config.photos.get(key) or []:
            source = _photo_source(item)
            if not source or source in seen:
                continue
            seen.add(source)
            items.append(item)
    return items


def _photo_fields(config: ProposalConfiguration) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for gallery in PHOTO_GALLERIES:
        records = []
        for index, item in enumerate(_gallery_items(config, gallery), start=1):
            records.append({
                "i": index,
                "name": item.get("name") or f"Photo {index}",
                "image": _photo_source(item),
            })
        data[f"photos_{gallery}"] = records
        data[f"row_photos_{gallery}"] = show(records)
    return data


def _scope_mirror(config: ProposalConfiguration) -> Dict[str, Any]:
    """camelCase copy of the scope for dotted tokens like {scope.asphalt.dripEdgeColor}."""
    mirror: Dict[str, Any] = {}
    for system in ("asphalt", "davinci", "cedar", "rubber"):
        scope: RoofScope = getattr(config.scope, system)
        record = scope.model_dump(by_alias=True, mode="json")
        record["dripEdgeColor"] = label_for(COLOR_LABELS, scope.drip_edge_color.lower(), scope.drip_edge_color)
        record["rakeDripEdgeColor"] = label_for(
            COLOR_LABELS, scope.rake_drip_edge_color.lower(), scope.rake_drip_edge_color
        )
        record["copperValleys"] = scope.include_copper_valleys
        mirror[system] = record
    mirror["siding"] = config.scope.siding.model_dump(by_alias=True, mode="json")
    mirror["notes"] = config.scope.notes
    return mirror


# =============================================================================
# Entry point
# =============================================================================

_SECTION_BUILDERS = (
    _asphalt_fields,
    _davinci_fields,
    _cedar_fields,
    _rubber_fields,
    _siding_fields,
    _decking_fields,
    _extras_fields,
    _windows_fields,
)


def build_payload(
    config: Union[ProposalConfiguration, Dict[str, Any]],
    totals: Optional[DerivedTotals] = None,
) -> Dict[str, Any]:
    """
    Build the template payload for a configuration.

    Args:
        config: Live configuration, or a snapshot dict
        totals: Precomputed totals; computed fresh from config when omitted

    Returns:
        Payload dict (new on every call)
    """
    if not isinstance(config, ProposalConfiguration):
        config = ProposalConfiguration.from_snapshot(config)
    if totals is None:
        totals = compute_derived_totals(config)
    money = _Money(config.pricing.hide_totals_in_print)

    payload: Dict[str, Any] = {}
    payload.update(_party_fields(config))
    payload.update(_visibility_fields(config))
    for builder in _SECTION_BUILDERS:
        payload.update(builder(config, totals, money))
    payload.update(_photo_fields(config))
    payload.update(money.total("grand_total", totals.grand_total))
    payload["scope"] = _scope_mirror(config)

    for key, aliases in ALIASES.items():
        for alias in aliases:
            payload.setdefault(alias, payload.get(key, ""))

    logger.debug("payload_built", keys=len(payload), grand_total=totals.grand_total)
    return payload
