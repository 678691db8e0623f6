"""Proposal configuration models.

Pydantic models for the mutable configuration aggregate a salesperson
edits while building a proposal: measurements, selected roofing/siding/
decking systems, scope toggles, the extras catalog and customer/company
metadata.

Every numeric field uses the ``Number`` type, which runs ``to_number``
before validation so absent or non-numeric input degrades to zero.
Enumerated choices are kept as plain strings (the enums below name the
known values) so an unrecognized snapshot value is carried, not rejected.
Snapshots use camelCase keys; Python attributes are snake_case.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from proposal_engine.services.money import to_number

Number = Annotated[float, BeforeValidator(to_number)]


def _to_flag(value: Any) -> bool:
    """Coerce loose truthy input ("", None, 0, "false") to a bool."""
    if isinstance(value, str):
        return value.strip().lower() not in ("", "0", "false", "no", "off")
    return bool(value)


def _to_text(value: Any) -> str:
    return "" if value is None else str(value)


Flag = Annotated[bool, BeforeValidator(_to_flag)]
Text = Annotated[str, BeforeValidator(_to_text)]


class ConfigModel(BaseModel):
    """Base for configuration records: camelCase snapshots, validated mutation."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
        extra="ignore",
    )


# =============================================================================
# ENUMS
# =============================================================================


class CalcMode(str, Enum):
    """How a section is priced."""

    BY_SQUARE = "bySquare"
    MANUAL = "manual"


class AsphaltTier(str, Enum):
    """Asphalt shingle tiers (good / better / best)."""

    LANDMARK = "landmark"
    PRO = "pro"
    NORTHGATE = "northgate"


class PlywoodCondition(str, Enum):
    """Roof deck condition driving the per-section plywood surcharge."""

    INSPECT_RENAIL = "inspectRenail"
    REPLACE = "replace"
    NEW_OVER_BOARDS = "newOverBoards"


class DripEdgeType(str, Enum):
    """Drip edge material for eaves and rakes."""

    HICKS_VENT = "hicks_vent"
    ALUMINUM_8 = "aluminum_8"
    COPPER_5 = "copper_5"


class SidingCategory(str, Enum):
    """Siding categories; several may be active at once."""

    CEDAR_SHAKE = "cedarShake"
    SYNTHETIC = "synthetic"
    VINYL = "vinyl"
    CLAP_BOARD = "clapBoard"


class IceArea(str, Enum):
    """Ice & water shield areas. FULL_COVERAGE excludes every sibling."""

    EAVES3 = "eaves3"
    VALLEYS = "valleys"
    PIPES_VENTS = "pipes_vents"
    STEP_FLASH = "step_flash"
    CHIMNEY = "chimney"
    SKYLIGHTS = "skylights"
    LOW_PITCH = "low_pitch"
    SOLAR_AREAS = "solar_areas"
    FULL_COVERAGE = "full_coverage"


# Product options per siding category, in display order. The first entry is
# the fallback product when a category has none selected.
SIDING_PRODUCTS: Dict[str, List[tuple]] = {
    SidingCategory.CEDAR_SHAKE.value: [
        ("whiteCedar", "White Cedar"),
        ("maibec1", "Maibec Single Coated Cedar"),
        ("maibec2", "Maibec Double Coated Cedar"),
        ("redCedar", "Red Cedar"),
    ],
    SidingCategory.SYNTHETIC.value: [
        ("hardiPlankCedarMill", "HardiePlank CedarMill"),
        ("hardiStraightEdgeShingle", "Hardie Straight Edge Shingle"),
        ("hardiPanelSierra9", "HardiePanel Sierra 9"),
    ],
    SidingCategory.VINYL.value: [
        ("monogram", "CertainTeed Monogram"),
        ("mainStreet", "CertainTeed MainStreet"),
        ("cedarImpressions", "CertainTeed Cedar Impressions"),
        ("everlast", "Everlast"),
    ],
    SidingCategory.CLAP_BOARD.value: [
        ("primedRedCedar", "Primed Red Cedar Clapboard"),
        ("clearRedCedar", "Clear Red Cedar Clapboard"),
    ],
}


def _default_siding_rates() -> Dict[str, Dict[str, float]]:
    return {
        "cedarShake": {"whiteCedar": 1650, "maibec1": 1750, "maibec2": 1850, "redCedar": 2600},
        "synthetic": {"hardiPlankCedarMill": 1800, "hardiStraightEdgeShingle": 1950, "hardiPanelSierra9": 950},
        "vinyl": {"monogram": 1100, "mainStreet": 900, "cedarImpressions": 2950, "everlast": 1850},
        "clapBoard": {"primedRedCedar": 1150, "clearRedCedar": 2250},
    }


# =============================================================================
# PARTIES AND MEASUREMENTS
# =============================================================================


class Company(ConfigModel):
    """Contractor details printed in the proposal header."""

    name: Text = ""
    address: Text = ""
    phone: Text = ""
    email: Text = ""
    hic: Text = ""
    csl: Text = ""
    notes: Text = ""


class Customer(ConfigModel):
    """Customer details; provided_on is an ISO date string."""

    name: Text = ""
    provided_on: Text = ""
    tel: Text = ""
    cell: Text = ""
    email: Text = ""
    street: Text = ""
    city: Text = ""
    state: Text = ""
    zip: Text = ""


class Measurements(ConfigModel):
    """Raw measurements taken on site (squares and linear feet)."""

    roof_squares: Number = 0
    waste_pct: Number = 10
    flat_roof_squares: Number = 0
    wall_squares: Number = 0
    feet_rakes: Number = 0
    feet_eaves: Number = 0
    feet_ridge: Number = 0
    feet_hips: Number = 0
    feet_valleys: Number = 0
    feet_flashing: Number = 0


class WorkDomain(ConfigModel):
    """Which trades the proposal covers."""

    roofing: Flag = False
    siding: Flag = False
    decking: Flag = False


class SelectedWork(ConfigModel):
    """Selected roofing systems and active siding categories."""

    asphalt: Flag = False
    davinci: Flag = False
    cedar: Flag = False
    rubber: Flag = False
    siding_categories: List[str] = Field(default_factory=list)

    @field_validator("siding_categories", mode="before")
    @classmethod
    def _coerce_categories(cls, v: Any) -> List[str]:
        if not v:
            return []
        if isinstance(v, str):
            return [v]
        return [str(c) for c in v if c]


# =============================================================================
# SCOPE
# =============================================================================


class IceAreas(ConfigModel):
    """Ice & water shield areas for one roof system.

    ``full_coverage`` is mutually exclusive with every sibling area; use
    ``set_area`` to change selections so the rule is enforced.
    """

    eaves3: Flag = False
    valleys: Flag = False
    pipes_vents: Flag = False
    step_flash: Flag = False
    chimney: Flag = False
    skylights: Flag = False
    low_pitch: Flag = False
    solar_areas: Flag = False
    full_coverage: Flag = False
    solar_squares: Number = 0

    def set_area(self, area: str, on: bool) -> bool:
        """Toggle one area, honouring full-coverage exclusivity.

        Args:
            area: IceArea value (snake_case or camelCase spelling)
            on: Desired state

        Returns:
            True if the change was applied, False if it was rejected.
        """
        name = _area_attr(area)
        if name is None:
            return False
        if name == IceArea.FULL_COVERAGE.value:
            if on:
                for sibling in IceArea:
                    if sibling is not IceArea.FULL_COVERAGE:
                        setattr(self, sibling.value, False)
                self.solar_squares = 0
            self.full_coverage = on
            return True
        if self.full_coverage:
            return False
        setattr(self, name, on)
        return True

    def active(self) -> List[str]:
        """Names of the currently selected areas."""
        return [a.value for a in IceArea if getattr(self, a.value)]


def _area_attr(area: str) -> Optional[str]:
    for candidate in IceArea:
        if area in (candidate.value, to_camel(candidate.value)):
            return candidate.value
    return None


class PipeFlange(ConfigModel):
    aluminum: Flag = False
    copper: Flag = False


class RoofFanVents(ConfigModel):
    black_aluminum: Flag = False
    copper: Flag = False


class RoofScope(ConfigModel):
    """Scope of work for one roofing system (asphalt, DaVinci, cedar or rubber).

    Flags that only apply to one system (``davinci_starter``, ``cedar_breather``,
    ``curb_skylights`` ...) are simply left False on the others.
    """

    areas: Text = "the entire roof deck area of the house"
    plywood_condition: Text = PlywoodCondition.INSPECT_RENAIL.value
    color: Text = ""

    drip_edge_type: Text = ""
    drip_edge_color: Text = ""
    rake_drip_edge_type: Text = ""
    rake_drip_edge_color: Text = ""

    ice_areas: IceAreas = Field(default_factory=IceAreas)
    ice_water_full: Flag = False
    include_copper_valleys: Flag = False

    synthetic_underlayment: Flag = False
    starter_strips: Flag = False
    ridge_vent: Flag = False
    hip_ridge_caps: Flag = False
    pipe_flashings: Flag = False
    cleanup: Flag = False
    pipe_flange: PipeFlange = Field(default_factory=PipeFlange)
    roof_fan_vents: RoofFanVents = Field(default_factory=RoofFanVents)

    davinci_starter: Flag = False
    product_type: Text = ""
    cedar_breather: Flag = False
    cedar_ridge_boards: Flag = False
    cedar_type: Text = ""
    epdm_type: Text = ""
    curb_skylights: Flag = False


class SidingScope(ConfigModel):
    """Siding inclusions shared across categories."""

    color: Text = ""
    typar: Flag = True
    vycor_tape: Flag = True
    stainless_staples: Flag = True
    drip_caps: Flag = True
    azek_blocks: Flag = True
    wire_hangers: Flag = True
    cleanup: Flag = True


def _asphalt_scope() -> RoofScope:
    return RoofScope(
        synthetic_underlayment=True, starter_strips=True, ridge_vent=True,
        hip_ridge_caps=True, pipe_flashings=True, cleanup=True,
        drip_edge_type=DripEdgeType.HICKS_VENT.value, drip_edge_color="white",
        rake_drip_edge_type=DripEdgeType.ALUMINUM_8.value, rake_drip_edge_color="white",
        ice_areas=IceAreas(eaves3=True), pipe_flange=PipeFlange(aluminum=True),
    )


def _davinci_scope() -> RoofScope:
    return RoofScope(
        ice_water_full=True, davinci_starter=True, ridge_vent=True, hip_ridge_caps=True,
        pipe_flashings=True, cleanup=True, product_type="shake",
        drip_edge_type=DripEdgeType.COPPER_5.value, rake_drip_edge_type=DripEdgeType.COPPER_5.value,
    )


def _cedar_scope() -> RoofScope:
    return RoofScope(
        ice_water_full=True, cedar_breather=True, ridge_vent=True, cedar_ridge_boards=True,
        pipe_flashings=True, cleanup=True, cedar_type="red",
        drip_edge_type=DripEdgeType.COPPER_5.value, rake_drip_edge_type=DripEdgeType.COPPER_5.value,
        rake_drip_edge_color="white",
    )


def _rubber_scope() -> RoofScope:
    return RoofScope(areas="the entire low pitched roof section", epdm_type=".060_black", cleanup=True)


class Scope(ConfigModel):
    asphalt: RoofScope = Field(default_factory=_asphalt_scope)
    davinci: RoofScope = Field(default_factory=_davinci_scope)
    cedar: RoofScope = Field(default_factory=_cedar_scope)
    rubber: RoofScope = Field(default_factory=_rubber_scope)
    siding: SidingScope = Field(default_factory=SidingScope)
    notes: Text = ""


# =============================================================================
# PRICING: PRIMARY SYSTEMS
# =============================================================================


class TierPrices(ConfigModel):
    """A price per asphalt tier."""

    landmark: Number = 0
    pro: Number = 0
    northgate: Number = 0

    def for_tier(self, tier: str) -> float:
        if tier not in (t.value for t in AsphaltTier):
            return 0.0
        return getattr(self, tier)


class WovenCorners(ConfigModel):
    include: Flag = False
    feet: Number = 0


class SidingCategoryPricing(ConfigModel):
    """Pricing inputs for one siding category.

    ``unit`` of 0 means "use the rate table for the selected product".
    """

    product: Text = ""
    unit: Number = 0
    squares: Number = 0
    calc_mode: Text = CalcMode.BY_SQUARE.value
    manual_total: Number = 0
    areas: Text = ""
    exposure: Text = ""
    color: Text = ""
    woven_corners: WovenCorners = Field(default_factory=WovenCorners)


class SidingPricing(ConfigModel):
    rates: Dict[str, Dict[str, Number]] = Field(default_factory=_default_siding_rates)
    by_category: Dict[str, SidingCategoryPricing] = Field(default_factory=dict)
    areas: Text = ""
    exposure: Text = ""

    def category(self, name: str) -> SidingCategoryPricing:
        """Pricing for a category, or defaults when it was never configured."""
        return self.by_category.get(name) or SidingCategoryPricing()


# =============================================================================
# PRICING: EXTRAS CATALOG
# =============================================================================


class PlywoodExtra(ConfigModel):
    selected: Flag = False
    areas: Text = ""
    squares: Number = 0
    mode: Text = "replace"
    rate_by_mode: Dict[str, Number] = Field(
        default_factory=lambda: {"replace": 360, "overlay": 330, "new": 300}
    )
    priority: Text = "optional"


class ChimneyExtra(ConfigModel):
    selected: Flag = False
    size: Text = ""
    prices: Dict[str, Number] = Field(
        default_factory=lambda: {"repair": 400, "small": 800, "medium": 1200, "large": 1600, "xl": 2000}
    )
    cricket: Flag = False
    cricket_price: Number = 450
    areas: Text = ""


class SkylightBase(ConfigModel):
    fixed: Number = 1550
    manual: Number = 2150
    solar: Number = 2900


class SkylightsExtra(ConfigModel):
    selected: Flag = False
    complexity: Text = "replacing"
    base: SkylightBase = Field(default_factory=SkylightBase)
    adders: Dict[str, Number] = Field(
        default_factory=lambda: {
            "replacing": 0,
            "replacing_complex": 650,
            "framing_new": 1000,
            "framing_new_complex": 2000,
        }
    )
    areas: Text = ""


class TrimFeet(ConfigModel):
    soffit: Number = 0
    fascias: Number = 0
    frieze: Number = 0
    molding: Number = 0
    corner_boards: Number = 0
    window_door: Number = 0
    rake_boards: Number = 0
    water_table: Number = 0


class TrimExtra(ConfigModel):
    selected: Flag = False
    material: Text = "azek"
    rates: Dict[str, Number] = Field(default_factory=lambda: {"azek": 19, "cedar": 28})
    install_mode: Text = "replace"
    areas: Text = ""
    feet: TrimFeet = Field(default_factory=TrimFeet)


class LeafGuards(ConfigModel):
    selected: Flag = False
    price: Number = 0


class Downspouts(ConfigModel):
    type: Text = "down5"
    feet: Number = 0
    rates: Dict[str, Number] = Field(
        default_factory=lambda: {"down5": 19, "down6": 22, "copper_round": 45, "aluminum_round": 36}
    )


class GuttersExtra(ConfigModel):
    selected: Flag = False
    type: Text = "aluminum5"
    feet: Number = 0
    rates: Dict[str, Number] = Field(
        default_factory=lambda: {"aluminum5": 19, "aluminum6": 22, "copper_k5": 45, "copper_h6": 52}
    )
    install_mode: Text = "replace"
    areas: Text = ""
    leaf_guards: LeafGuards = Field(default_factory=LeafGuards)
    downspouts: Downspouts = Field(default_factory=Downspouts)


class DetachedExtra(ConfigModel):
    selected: Flag = False
    squares: Number = 0
    type: Text = "garage"
    other_label: Text = ""


class WindowsAndDoors(ConfigModel):
    selected: Flag = False
    windows: Flag = False
    windows_desc: Text = ""
    windows_count: Number = 0
    doors: Flag = False
    doors_desc: Text = ""
    doors_count: Number = 0
    slider6: Flag = False
    slider6_desc: Text = ""
    slider6_count: Number = 0
    slider8: Flag = False
    slider8_desc: Text = ""
    slider8_count: Number = 0
    custom: Flag = False
    custom_desc: Text = ""
    custom_price: Number = 0
    include_outside_trim: Flag = False
    outside_trim_feet: Number = 0
    include_inside_casing: Flag = False
    inside_casing_feet: Number = 0


class CustomAdd(ConfigModel):
    selected: Flag = False
    label: Text = ""
    price: Number = 0


# =============================================================================
# PRICING: DECKING
# =============================================================================


class DeckingMaterials(ConfigModel):
    azek: Flag = False
    wolf: Flag = False
    pt: Flag = False
    mahogany: Flag = False
    trex: Flag = False


class DeckingRailing(ConfigModel):
    intex: Flag = False
    azek: Flag = False
    pt: Flag = False
    cable: Flag = False


class DeckingFraming(ConfigModel):
    ground_level: Flag = False
    ground_level_sqft: Number = 0
    second_story: Flag = False
    second_story_sqft: Number = 0


class DeckingConcrete(ConfigModel):
    sono_tubes: Flag = False
    sono_tubes_count: Number = 0
    landing: Flag = False
    landing_sqft: Number = 0


class DeckingSkirtTrim(ConfigModel):
    azek: Flag = False
    linear_ft: Number = 0


class DeckingReplacing(ConfigModel):
    decking: Flag = False
    framing: Flag = False
    railings: Flag = False


class DeckingWorkMode(ConfigModel):
    selected: Flag = False
    sqft: Number = 0


class DeckingWorkModes(ConfigModel):
    build_new: DeckingWorkMode = Field(default_factory=DeckingWorkMode)
    resurfacing: DeckingWorkMode = Field(default_factory=DeckingWorkMode)


class DeckingPricing(ConfigModel):
    areas: Text = ""
    materials: DeckingMaterials = Field(default_factory=DeckingMaterials)
    material_sqft: Number = 0
    railing: DeckingRailing = Field(default_factory=DeckingRailing)
    railing_linear_ft: Number = 0
    framing: DeckingFraming = Field(default_factory=DeckingFraming)
    concrete: DeckingConcrete = Field(default_factory=DeckingConcrete)
    skirt_trim: DeckingSkirtTrim = Field(default_factory=DeckingSkirtTrim)
    replacing: DeckingReplacing = Field(default_factory=DeckingReplacing)
    work_modes: DeckingWorkModes = Field(default_factory=DeckingWorkModes)


class Pricing(ConfigModel):
    """All pricing inputs: primary systems, siding, decking and extras."""

    # Asphalt
    asphalt_selected: Text = ""
    asphalt_calc_mode: Text = CalcMode.BY_SQUARE.value
    unit_price: TierPrices = Field(default_factory=lambda: TierPrices(landmark=700, pro=720, northgate=800))
    manual_price: TierPrices = Field(default_factory=TierPrices)
    asphalt_plywood_squares: Number = 0
    asphalt_copper_drip_edge_feet: Number = 0

    # DaVinci
    davinci_mode: Text = CalcMode.BY_SQUARE.value
    davinci_unit: Number = 2750
    davinci_manual: Number = 27500
    davinci_plywood_squares: Number = 0
    davinci_copper_drip_edge_feet: Number = 0
    davinci_copper_valley_feet: Number = 0

    # Cedar
    cedar_mode: Text = CalcMode.BY_SQUARE.value
    cedar_unit: Number = 3050
    cedar_manual: Number = 30500
    cedar_plywood_squares: Number = 0
    cedar_copper_drip_edge_feet: Number = 0
    cedar_copper_valley_feet: Number = 0
    cedar_include_woven_caps: Flag = False
    cedar_woven_caps_feet: Number = 0
    cedar_woven_caps_hips: Flag = False
    cedar_woven_caps_ridges: Flag = False

    # Rubber
    rubber_mode: Text = CalcMode.BY_SQUARE.value
    rubber_unit: Number = 1150
    rubber_manual: Number = 6750
    rubber_plywood_squares: Number = 0
    rubber_curb_skylights: Number = 0

    siding: SidingPricing = Field(default_factory=SidingPricing)
    decking: DeckingPricing = Field(default_factory=DeckingPricing)

    # Extras
    plywood: PlywoodExtra = Field(default_factory=PlywoodExtra)
    chimney: ChimneyExtra = Field(default_factory=ChimneyExtra)
    skylights: SkylightsExtra = Field(default_factory=SkylightsExtra)
    trim: TrimExtra = Field(default_factory=TrimExtra)
    gutters: GuttersExtra = Field(default_factory=GuttersExtra)
    detached: DetachedExtra = Field(default_factory=DetachedExtra)
    windows_and_doors: WindowsAndDoors = Field(default_factory=WindowsAndDoors)
    custom_add: CustomAdd = Field(default_factory=CustomAdd)

    hide_totals_in_print: Flag = True


# =============================================================================
# AGGREGATE
# =============================================================================


class ProposalConfiguration(ConfigModel):
    """The full proposal configuration aggregate.

    Created with defaults at session start, mutated incrementally, and
    persisted/restored as an opaque camelCase snapshot.
    """

    company: Company = Field(default_factory=Company)
    customer: Customer = Field(default_factory=Customer)
    measure: Measurements = Field(default_factory=Measurements)
    work_domain: WorkDomain = Field(default_factory=WorkDomain)
    selected_work: SelectedWork = Field(default_factory=SelectedWork)
    scope: Scope = Field(default_factory=Scope)
    pricing: Pricing = Field(default_factory=Pricing)
    photos: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)

    @field_validator("photos", mode="before")
    @classmethod
    def _coerce_photos(cls, v: Any) -> Dict[str, List[Dict[str, Any]]]:
        if not isinstance(v, dict):
            return {}
        return {
            str(key): [item for item in (items or []) if isinstance(item, dict)]
            for key, items in v.items()
            if isinstance(items, (list, tuple))
        }

    @classmethod
    def from_snapshot(cls, snapshot: Dict[str, Any]) -> "ProposalConfiguration":
        """Restore a configuration from a persisted snapshot (camelCase or snake_case keys)."""
        return cls.model_validate(snapshot or {})

    def to_snapshot(self) -> Dict[str, Any]:
        """Serialize to an opaque camelCase snapshot."""
        return self.model_dump(by_alias=True, mode="json")
