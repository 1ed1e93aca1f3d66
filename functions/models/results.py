"""Result envelopes returned by the quote service.

Domain failures travel in these envelopes rather than as exceptions, so
callers branch on ``success`` and ``error.code``.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from models.quote import FieldError


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class ServiceResponse(BaseModel):
    success: bool
    data: Any = None
    error: Optional[ErrorDetail] = None

    @classmethod
    def ok(cls, data: Any) -> "ServiceResponse":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ServiceResponse":
        return cls(success=False, error=ErrorDetail(code=code, message=message, details=details or {}))

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class SubmissionResult(BaseModel):
    success: bool
    quote_id: Optional[str] = Field(default=None, alias="quoteId")
    quote: Optional[Dict[str, Any]] = None
    validation_errors: List[FieldError] = Field(default_factory=list, alias="validationErrors")
    warnings: List[str] = Field(default_factory=list)
    estimated_processing_time: Optional[int] = Field(default=None, alias="estimatedProcessingTime")

    class Config:
        populate_by_name = True

    @property
    def error_codes(self) -> List[str]:
        return [e.code for e in self.validation_errors]

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
