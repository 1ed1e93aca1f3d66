"""Quote distribution models for BuildBid.

A distribution records which builders were invited to quote on a scope of
work and where each invitation stands.

Response state machine:
    invited -> viewed -> {quoted, declined}
    invited -> {quoted, declined}
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from models.quote import utc_now


class DistributionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    RESPONSES_RECEIVED = "responses-received"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ResponseStatus(str, Enum):
    INVITED = "invited"
    VIEWED = "viewed"
    QUOTED = "quoted"
    DECLINED = "declined"
    NO_RESPONSE = "no-response"


RESPONSE_TRANSITIONS = {
    ResponseStatus.INVITED: (ResponseStatus.VIEWED, ResponseStatus.QUOTED, ResponseStatus.DECLINED),
    ResponseStatus.VIEWED: (ResponseStatus.QUOTED, ResponseStatus.DECLINED),
}


class _DistributionModel(BaseModel):
    class Config:
        populate_by_name = True
        use_enum_values = True


class DistributionResponse(_DistributionModel):
    builder_id: str = Field(..., alias="builderId")
    status: ResponseStatus = Field(default=ResponseStatus.INVITED)
    viewed_at: Optional[datetime] = Field(default=None, alias="viewedAt")
    responded_at: Optional[datetime] = Field(default=None, alias="respondedAt")
    quote_id: Optional[str] = Field(default=None, alias="quoteId")
    decline_reason: Optional[str] = Field(default=None, alias="declineReason")


class DistributionSettings(_DistributionModel):
    max_quotes: int = Field(..., alias="maxQuotes")
    response_deadline: str = Field(..., alias="responseDeadline")
    allow_questions: bool = Field(default=True, alias="allowQuestions")
    require_certifications: List[str] = Field(default_factory=list, alias="requireCertifications")
    anonymize_homeowner: bool = Field(default=False, alias="anonymizeHomeowner")


class QuoteDistribution(_DistributionModel):
    """Invitation of builders to quote on a scope of work.

    Stored under PK ``SOW#{sowId}`` / SK ``DISTRIBUTION#{id}``, indexed by
    homeowner on GSI6.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    sow_id: str = Field(..., alias="sowId")
    project_id: Optional[str] = Field(default=None, alias="projectId")
    homeowner_id: str = Field(..., alias="homeownerId")
    selected_builders: List[str] = Field(default_factory=list, alias="selectedBuilders")
    distributed_at: datetime = Field(default_factory=utc_now, alias="distributedAt")
    due_date: str = Field(..., alias="dueDate")
    status: DistributionStatus = Field(default=DistributionStatus.ACTIVE)
    responses: List[DistributionResponse] = Field(default_factory=list)
    settings: DistributionSettings

    def response_for(self, builder_id: str) -> Optional[DistributionResponse]:
        return next((r for r in self.responses if r.builder_id == builder_id), None)

    def all_responded(self) -> bool:
        finished = (ResponseStatus.QUOTED, ResponseStatus.DECLINED)
        return all(r.status in finished for r in self.responses)

    def to_response_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)

    def to_record(self) -> Dict[str, Any]:
        record = self.to_response_dict()
        record.update({
            "PK": f"SOW#{self.sow_id}",
            "SK": f"DISTRIBUTION#{self.id}",
            "GSI6PK": self.homeowner_id,
            "GSI6SK": self.distributed_at.isoformat(),
            "entityType": "distribution",
        })
        return record


def can_transition_response(current: str, target: str) -> bool:
    allowed = RESPONSE_TRANSITIONS.get(ResponseStatus(current), ())
    return ResponseStatus(target) in allowed
