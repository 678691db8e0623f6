"""Proposal engine error handling.

Custom exceptions and error codes. Pricing and payload mapping never raise
on bad input; these are used at the mutation and structural boundaries.
"""

from typing import Any, Dict, Optional


# Error Codes
class ErrorCode:
    """Error code constants."""

    # Validation Errors (1xxx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNKNOWN_FIELD = "UNKNOWN_FIELD"
    INVALID_FIELD = "INVALID_FIELD"

    # Template Errors (2xxx)
    TEMPLATE_ERROR = "TEMPLATE_ERROR"
    TEMPLATE_UNBALANCED = "TEMPLATE_UNBALANCED"
    TEMPLATE_TOO_DEEP = "TEMPLATE_TOO_DEEP"
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"

    # Packaging Errors (3xxx)
    PACKAGING_UNAVAILABLE = "PACKAGING_UNAVAILABLE"


class ProposalError(Exception):
    """Base exception for proposal engine errors.

    Provides structured error information for callers that report errors
    back to a UI or API layer.

    Attributes:
        code: Error code from ErrorCode constants
        message: Human-readable error message
        details: Additional error context
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """Initialize ProposalError.

        Args:
            code: Error code from ErrorCode constants
            message: Human-readable error message
            details: Additional error context
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for API response.

        Returns:
            Dictionary with code, message, and details.
        """
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }

    def __repr__(self) -> str:
        return f"ProposalError(code={self.code!r}, message={self.message!r})"


class ValidationError(ProposalError):
    """Configuration validation error (unknown path, rejected value)."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        code: str = ErrorCode.VALIDATION_ERROR,
        details: Optional[Dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            details={**(details or {}), "field": field} if field else details
        )


class TemplateError(ProposalError):
    """Structural template error, raised only in strict parsing mode."""

    def __init__(
        self,
        message: str,
        code: str = ErrorCode.TEMPLATE_ERROR,
        token: Optional[str] = None,
        position: Optional[int] = None,
    ):
        details: Dict[str, Any] = {}
        if token is not None:
            details["token"] = token
        if position is not None:
            details["position"] = position
        super().__init__(code=code, message=message, details=details)


class PackagingError(ProposalError):
    """Document packaging backend is not available."""

    def __init__(self, message: str, backend: str, details: Optional[Dict] = None):
        super().__init__(
            code=ErrorCode.PACKAGING_UNAVAILABLE,
            message=message,
            details={**(details or {}), "backend": backend}
        )
        self.backend = backend
