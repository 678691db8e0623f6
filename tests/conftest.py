"""Pytest configuration and shared fixtures for proposal engine tests."""

import os
import sys

import pytest


# ============================================================================
# Ensure local imports work (proposal_engine/, tests/fixtures/)
# ============================================================================
#
# Tests import `proposal_engine` and `tests.fixtures.*` absolutely; make the
# repository root importable even when the package is not installed.
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from proposal_engine.config.settings import settings  # noqa: E402
from proposal_engine.models.configuration import ProposalConfiguration  # noqa: E402
from proposal_engine.services.auto_fill import AutoFillTracker  # noqa: E402
from tests.fixtures.sample_configurations import (  # noqa: E402
    get_asphalt_snapshot,
    get_full_snapshot,
)


# ============================================================================
# Environment Setup
# ============================================================================

@pytest.fixture(autouse=True)
def mock_settings(monkeypatch):
    """Pin settings for all tests (short debounce so timers fire quickly)."""
    monkeypatch.setattr(settings, "asset_base_path", "/templates/proposal")
    monkeypatch.setattr(settings, "max_block_depth", 50)
    monkeypatch.setattr(settings, "auto_fill_debounce_scale", 0.01)
    monkeypatch.setattr(settings, "hidden_total_placeholder", "TBD")
    monkeypatch.setattr(settings, "currency_symbol", "$")
    monkeypatch.setattr(settings, "log_level", "INFO")
    monkeypatch.setattr(settings, "log_format", "console")
    yield settings


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def default_config() -> ProposalConfiguration:
    """Configuration with every default (nothing selected)."""
    return ProposalConfiguration()


@pytest.fixture
def asphalt_config() -> ProposalConfiguration:
    """Asphalt-only roofing proposal: 20 squares, 10% waste, landmark tier."""
    return ProposalConfiguration.from_snapshot(get_asphalt_snapshot())


@pytest.fixture
def full_config() -> ProposalConfiguration:
    """Roofing, siding and decking with several extras selected."""
    return ProposalConfiguration.from_snapshot(get_full_snapshot())


@pytest.fixture
def tracker() -> AutoFillTracker:
    return AutoFillTracker()
