"""Utility modules for the proposal engine."""

from proposal_engine.utils.logging import configure_logging
from proposal_engine.utils.paths import get_path, has_path, set_path

__all__ = ["configure_logging", "get_path", "has_path", "set_path"]
