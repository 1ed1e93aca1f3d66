"""BuildBid error handling.

Error codes and the exception hierarchy used across the quote engine.
Domain failures (validation, not-found, duplicates) are returned as data;
exceptions are reserved for infrastructure faults and malformed requests.
"""

from typing import Optional, Dict, Any


class ErrorCode:
    """Error code constants."""

    # Field validation
    REQUIRED_FIELD = "REQUIRED_FIELD"
    INVALID_VALUE = "INVALID_VALUE"
    CALCULATION_ERROR = "CALCULATION_ERROR"
    TIMELINE_CONFLICT = "TIMELINE_CONFLICT"
    MISSING_NRM2_ELEMENTS = "MISSING_NRM2_ELEMENTS"
    PAYMENT_SCHEDULE_ERROR = "PAYMENT_SCHEDULE_ERROR"
    INVALID_DATE = "INVALID_DATE"

    # Request errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_SCHEMA = "INVALID_SCHEMA"

    # Domain lookups and conflicts
    SOW_NOT_FOUND = "SOW_NOT_FOUND"
    QUOTE_NOT_FOUND = "QUOTE_NOT_FOUND"
    NO_QUOTES_FOUND = "NO_QUOTES_FOUND"
    DUPLICATE_QUOTE = "DUPLICATE_QUOTE"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    QUOTE_NOT_MODIFIABLE = "QUOTE_NOT_MODIFIABLE"
    QUOTE_SUPERSEDED = "QUOTE_SUPERSEDED"
    DISTRIBUTION_NOT_FOUND = "DISTRIBUTION_NOT_FOUND"
    BUILDER_NOT_INVITED = "BUILDER_NOT_INVITED"
    INVALID_RESPONSE_TRANSITION = "INVALID_RESPONSE_TRANSITION"

    # Infrastructure
    DOCUMENT_STORE_ERROR = "DOCUMENT_STORE_ERROR"
    DOCUMENT_STORE_WRITE_FAILED = "DOCUMENT_STORE_WRITE_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class BuildBidError(Exception):
    """Base exception for BuildBid errors.

    Provides structured error information for API responses.

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
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for API response."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }

    def __repr__(self) -> str:
        return f"BuildBidError(code={self.code!r}, message={self.message!r})"


class RequestValidationError(BuildBidError):
    """Malformed request payload (bad JSON, schema mismatch)."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict] = None):
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            details={**(details or {}), "field": field} if field else details
        )


class DocumentStoreError(BuildBidError):
    """Failure raised by the document store collaborator."""

    def __init__(
        self,
        code: str,
        message: str,
        operation: str,
        details: Optional[Dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            details={**(details or {}), "operation": operation}
        )
        self.operation = operation
