"""Proposal engine configuration.

This package contains:
- settings: Environment variables and configuration
- errors: Custom exceptions and error codes
"""

from proposal_engine.config.settings import settings
from proposal_engine.config.errors import (
    ErrorCode,
    PackagingError,
    ProposalError,
    TemplateError,
    ValidationError,
)

__all__ = [
    "settings",
    "ErrorCode",
    "ProposalError",
    "ValidationError",
    "TemplateError",
    "PackagingError",
]
