"""Derived totals model.

Read-only projection of a ProposalConfiguration produced by the pricing
engine. It is recreated on every computation and never mutated.
"""

from typing import Dict

from pydantic import BaseModel, ConfigDict, Field


class DerivedTotals(BaseModel):
    """Per-section bases, extras subtotals and the grand total."""

    model_config = ConfigDict(frozen=True)

    effective_squares: float = Field(0.0, description="Roof squares including waste")
    asphalt_tiers: Dict[str, float] = Field(
        default_factory=dict,
        description="Asphalt base per tier (landmark/pro/northgate); the selected one enters the grand total"
    )
    asphalt_tier_totals: Dict[str, float] = Field(
        default_factory=dict,
        description="Displayed tier totals: tier base plus the asphalt plywood surcharge"
    )
    primary: Dict[str, float] = Field(
        default_factory=dict,
        description="Active section bases: asphalt, davinci, cedar, rubber, siding, decking"
    )
    siding_categories: Dict[str, float] = Field(
        default_factory=dict,
        description="Subtotal per active siding category"
    )
    extras: Dict[str, float] = Field(
        default_factory=dict,
        description="Subtotal per selected extras line item"
    )
    extras_total: float = 0.0
    skylight_prices: Dict[str, float] = Field(
        default_factory=dict,
        description="Reference skylight prices (fixed/manual/solar), not added to the total"
    )
    detached_tiers: Dict[str, float] = Field(
        default_factory=dict,
        description="Detached structure reference totals per asphalt tier, not added to the total"
    )
    grand_total: float = 0.0

    def section(self, name: str) -> float:
        """Base for one primary section, 0 when inactive."""
        return self.primary.get(name, 0.0)

    @property
    def primary_total(self) -> float:
        return sum(self.primary.values())
