"""Proposal data models: the editable configuration and its derived totals."""

from proposal_engine.models.configuration import ProposalConfiguration
from proposal_engine.models.totals import DerivedTotals

__all__ = ["ProposalConfiguration", "DerivedTotals"]
