"""Builder communication models for BuildBid.

Clarification requests and queries exchanged between a homeowner and a
builder while a scope of work is out for quotes.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Literal
from uuid import uuid4

from pydantic import BaseModel, Field

from models.quote import utc_now


class CommunicationType(str, Enum):
    CLARIFICATION_REQUEST = "clarification-request"
    SPECIFICATION_QUERY = "specification-query"
    SITE_ACCESS_REQUEST = "site-access-request"
    VARIATION_PROPOSAL = "variation-proposal"
    GENERAL_INQUIRY = "general-inquiry"
    RESPONSE = "response"


class CommunicationStatus(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    RESPONDED = "responded"
    CLOSED = "closed"


class BuilderCommunication(BaseModel):
    """Stored under PK ``SOW#{sowId}`` / SK ``COMMUNICATION#{id}``, indexed by builder on GSI7."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    sow_id: str = Field(..., alias="sowId")
    builder_id: str = Field(..., alias="builderId")
    homeowner_id: str = Field(..., alias="homeownerId")
    type: CommunicationType
    subject: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=5000)
    status: CommunicationStatus = Field(default=CommunicationStatus.SENT)
    priority: Literal["low", "medium", "high", "urgent"] = "medium"
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")

    class Config:
        populate_by_name = True
        use_enum_values = True

    def to_response_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    def to_record(self) -> Dict[str, Any]:
        record = self.to_response_dict()
        record.update({
            "PK": f"SOW#{self.sow_id}",
            "SK": f"COMMUNICATION#{self.id}",
            "GSI7PK": self.builder_id,
            "GSI7SK": self.created_at.isoformat(),
            "entityType": "communication",
        })
        return record
