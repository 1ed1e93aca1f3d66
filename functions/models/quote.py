"""Quote Pydantic models for BuildBid.

This module defines the competitive quote a builder submits against a
scope of work: cost breakdown tree, schedule, warranty, payment terms and
compliance statement, plus the factory that turns a submission into a
draft quote and the record helpers used by the document store.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from config.settings import settings


# =============================================================================
# ENUMS & CONSTANTS
# =============================================================================


class QuoteStatus(str, Enum):
    """Lifecycle status of a quote."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under-review"
    CLARIFICATION_REQUESTED = "clarification-requested"
    REVISED = "revised"
    SELECTED = "selected"
    WITHDRAWN = "withdrawn"
    EXPIRED = "expired"


class Methodology(str, Enum):
    """Cost breakdown methodology."""

    NRM1 = "NRM1"
    NRM2 = "NRM2"


class ResourceType(str, Enum):
    """Resource requirement types on a timeline phase."""

    LABOUR = "labour"
    EQUIPMENT = "equipment"
    MATERIALS = "materials"
    SUBCONTRACTOR = "subcontractor"


class ResourceAvailability(str, Enum):
    CONFIRMED = "confirmed"
    PROVISIONAL = "provisional"
    TO_BE_CONFIRMED = "to-be-confirmed"


# Categories an NRM2 breakdown must cover
NRM2_REQUIRED_ELEMENTS = (
    "substructure",
    "superstructure",
    "internal-finishes",
    "services",
    "preliminaries",
)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _QuoteModel(BaseModel):
    """Shared config: camelCase aliases on the wire, snake_case in code."""

    class Config:
        populate_by_name = True
        use_enum_values = True


# =============================================================================
# COST BREAKDOWN
# =============================================================================


class BreakdownItem(_QuoteModel):
    """One line of the cost breakdown. Sub-items form a tree."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="Line item ID")
    category: str = Field(..., description="Cost category (NRM2 element name for NRM2 quotes)")
    description: str = Field(default="", description="What the line covers")
    specification: str = Field(default="", description="Specification reference")
    quantity: float = Field(default=0.0, description="Measured quantity")
    unit: str = Field(default="item", description="Unit of measure")
    unit_rate: float = Field(default=0.0, alias="unitRate", description="Rate per unit")
    total_cost: float = Field(default=0.0, alias="totalCost", description="Line total")
    labour_cost: float = Field(default=0.0, alias="labourCost")
    material_cost: float = Field(default=0.0, alias="materialCost")
    equipment_cost: float = Field(default=0.0, alias="equipmentCost")
    overhead_percentage: float = Field(default=0.0, alias="overheadPercentage")
    profit_percentage: float = Field(default=0.0, alias="profitPercentage")
    notes: Optional[str] = Field(default=None)
    sub_items: List["BreakdownItem"] = Field(
        default_factory=list, alias="subItems", description="Nested breakdown lines"
    )


BreakdownItem.model_rebuild()


# =============================================================================
# TIMELINE
# =============================================================================


class _ResourceBase(_QuoteModel):
    description: str = Field(..., description="Resource description")
    quantity: float = Field(default=0.0, description="Days for labour/equipment, units otherwise")
    unit: str = Field(default="days")
    daily_rate: Optional[float] = Field(default=None, alias="dailyRate")
    total_cost: float = Field(default=0.0, alias="totalCost")
    availability: ResourceAvailability = Field(default=ResourceAvailability.TO_BE_CONFIRMED)
    critical: bool = Field(default=False, description="Resource gates the phase")


class LabourResource(_ResourceBase):
    type: Literal["labour"] = "labour"


class EquipmentResource(_ResourceBase):
    type: Literal["equipment"] = "equipment"


class MaterialsResource(_ResourceBase):
    type: Literal["materials"] = "materials"


class SubcontractorResource(_ResourceBase):
    type: Literal["subcontractor"] = "subcontractor"


QuoteResource = Annotated[
    Union[LabourResource, EquipmentResource, MaterialsResource, SubcontractorResource],
    Field(discriminator="type"),
]


class QuoteMilestone(_QuoteModel):
    name: str
    day: int = Field(default=0, description="Day offset from project start")
    description: str = ""
    payment_trigger: bool = Field(default=False, alias="paymentTrigger")
    inspection_required: bool = Field(default=False, alias="inspectionRequired")


class QuotePhase(_QuoteModel):
    """A scheduled phase of work."""

    id: str = Field(..., description="Phase ID referenced by dependencies")
    name: str = Field(..., description="Phase name")
    description: str = ""
    start_day: int = Field(default=0, alias="startDay", description="Day offset from project start")
    duration: int = Field(default=0, description="Working days")
    dependencies: List[str] = Field(default_factory=list, description="IDs of phases this one waits on")
    resources: List[QuoteResource] = Field(default_factory=list)
    deliverables: List[str] = Field(default_factory=list)
    milestones: List[QuoteMilestone] = Field(default_factory=list)

    @property
    def end_day(self) -> int:
        return self.start_day + self.duration


class QuoteTimeline(_QuoteModel):
    total_duration: int = Field(..., alias="totalDuration", description="Working days")
    phases: List[QuotePhase] = Field(default_factory=list)
    critical_path: List[str] = Field(default_factory=list, alias="criticalPath")
    buffer_days: int = Field(default=0, alias="bufferDays")
    weather_dependency: bool = Field(default=False, alias="weatherDependency")
    seasonal_factors: List[str] = Field(default_factory=list, alias="seasonalFactors")


# =============================================================================
# WARRANTY, CERTIFICATIONS, TERMS, COMPLIANCE
# =============================================================================


class WarrantyPeriod(_QuoteModel):
    duration: int = Field(..., description="Length of cover")
    unit: Literal["months", "years"] = "months"
    coverage: str = ""
    limitations: List[str] = Field(default_factory=list)


class WarrantyDetails(_QuoteModel):
    workmanship_warranty: WarrantyPeriod = Field(..., alias="workmanshipWarranty")
    materials_warranty: WarrantyPeriod = Field(..., alias="materialsWarranty")
    structural_warranty: Optional[WarrantyPeriod] = Field(default=None, alias="structuralWarranty")
    exclusions: List[str] = Field(default_factory=list)
    conditions: List[str] = Field(default_factory=list)
    insurance_backed: bool = Field(default=False, alias="insuranceBacked")
    insurance_provider: Optional[str] = Field(default=None, alias="insuranceProvider")
    claims_process: str = Field(default="", alias="claimsProcess")


class BuilderCertification(_QuoteModel):
    name: str
    issuing_body: str = Field(..., alias="issuingBody")
    certificate_number: str = Field(default="", alias="certificateNumber")
    issue_date: Optional[str] = Field(default=None, alias="issueDate")
    expiry_date: Optional[str] = Field(default=None, alias="expiryDate")
    scope: str = ""
    verified: bool = False


class PaymentMilestone(_QuoteModel):
    milestone: str
    percentage: float
    amount: float = 0.0
    trigger: str = ""
    documentation: List[str] = Field(default_factory=list)


class PaymentSchedule(_QuoteModel):
    type: Literal["milestone", "monthly", "weekly", "completion"] = "milestone"
    schedule: List[PaymentMilestone] = Field(default_factory=list)
    retention_held: float = Field(default=0.0, alias="retentionHeld")
    payment_terms: int = Field(default=30, alias="paymentTerms", description="Days to pay")


class QuoteTerms(_QuoteModel):
    payment_schedule: PaymentSchedule = Field(..., alias="paymentSchedule")
    variation_policy: str = Field(default="", alias="variationPolicy")
    cancellation_policy: str = Field(default="", alias="cancellationPolicy")
    retention_percentage: float = Field(default=0.0, alias="retentionPercentage")
    retention_period: int = Field(default=0, alias="retentionPeriod", description="Months")
    dispute_resolution: str = Field(default="", alias="disputeResolution")
    governing_law: str = Field(default="England and Wales", alias="governingLaw")
    additional_terms: List[str] = Field(default_factory=list, alias="additionalTerms")


class ComplianceStatement(_QuoteModel):
    """Builder's statement of compliance against industry standards."""

    riba_compliance: bool = Field(default=False, alias="ribaCompliance")
    riba_stages_addressed: List[int] = Field(default_factory=list, alias="ribaStagesAddressed")
    nrm_compliance: bool = Field(default=False, alias="nrmCompliance")
    nhbc_compliance: bool = Field(default=False, alias="nhbcCompliance")
    nhbc_chapters: List[str] = Field(default_factory=list, alias="nhbcChapters")
    rics_compliance: bool = Field(default=False, alias="ricsCompliance")
    rics_standards: List[str] = Field(default_factory=list, alias="ricsStandards")
    building_regulations_compliance: bool = Field(default=False, alias="buildingRegulationsCompliance")
    regulations_addressed: List[str] = Field(default_factory=list, alias="regulationsAddressed")
    additional_standards: List[str] = Field(default_factory=list, alias="additionalStandards")
    compliance_notes: str = Field(default="", alias="complianceNotes")

    def flags(self) -> Dict[str, bool]:
        """The five scored compliance booleans."""
        return {
            "riba": self.riba_compliance,
            "nrm": self.nrm_compliance,
            "nhbc": self.nhbc_compliance,
            "rics": self.rics_compliance,
            "buildingRegulations": self.building_regulations_compliance,
        }


class BuilderProfile(_QuoteModel):
    company_name: str = Field(..., alias="companyName")
    trading_name: Optional[str] = Field(default=None, alias="tradingName")
    registration_number: Optional[str] = Field(default=None, alias="registrationNumber")
    contact_email: Optional[str] = Field(default=None, alias="contactEmail")
    specializations: List[str] = Field(default_factory=list)
    service_areas: List[str] = Field(default_factory=list, alias="serviceAreas")
    rating: Optional[float] = Field(default=None, ge=0, le=5)


# =============================================================================
# QUOTE
# =============================================================================


class QuoteSortKeys(BaseModel):
    """Index keys derived for the document store. Not domain state."""

    builder_key: str = ""
    builder_sort: str = ""
    sow_key: str = ""
    price_sort: str = ""


class QuoteInput(_QuoteModel):
    """Quote body supplied by a builder on submission."""

    builder_profile: Optional[BuilderProfile] = Field(default=None, alias="builderProfile")
    total_price: float = Field(..., alias="totalPrice")
    currency: str = Field(default_factory=lambda: settings.default_currency)
    breakdown: List[BreakdownItem] = Field(default_factory=list)
    timeline: QuoteTimeline
    warranty: WarrantyDetails
    certifications: List[BuilderCertification] = Field(default_factory=list)
    terms: QuoteTerms
    methodology: Methodology = Methodology.NRM2
    compliance_statement: ComplianceStatement = Field(
        default_factory=ComplianceStatement, alias="complianceStatement"
    )
    valid_until: datetime = Field(..., alias="validUntil")

    @field_validator("valid_until")
    @classmethod
    def _valid_until_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class Quote(QuoteInput):
    """A builder's quote against a scope of work.

    Stored in the records collection under PK ``SOW#{sowId}`` / SK
    ``QUOTE#{id}``. Each revision is a separate record.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    sow_id: str = Field(..., alias="sowId")
    builder_id: str = Field(..., alias="builderId")
    status: QuoteStatus = Field(default=QuoteStatus.DRAFT)
    submitted_at: datetime = Field(default_factory=utc_now, alias="submittedAt")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt")
    version: int = Field(default=1, ge=1)
    keys: QuoteSortKeys = Field(default_factory=QuoteSortKeys, exclude=True)

    @field_validator("submitted_at", "updated_at")
    @classmethod
    def _timestamps_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def partition_key(self) -> str:
        return f"SOW#{self.sow_id}"

    @property
    def sort_key(self) -> str:
        return f"QUOTE#{self.id}"

    def to_response_dict(self) -> Dict[str, Any]:
        """Public representation; index keys are stripped."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)

    def to_record(self) -> Dict[str, Any]:
        """Convert to a document store record with index attributes."""
        record = self.to_response_dict()
        record.update({
            "PK": self.partition_key,
            "SK": self.sort_key,
            "GSI3PK": self.keys.builder_key,
            "GSI3SK": self.keys.builder_sort,
            "GSI4PK": self.sort_key,
            "GSI4SK": f"VERSION#{self.version:04d}",
            "GSI5PK": self.keys.sow_key,
            "GSI5SK": self.keys.price_sort,
            "entityType": "quote",
        })
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Quote":
        quote = cls.model_validate(record)
        quote.keys = QuoteSortKeys(
            builder_key=record.get("GSI3PK", quote.builder_id),
            builder_sort=record.get("GSI3SK", ""),
            sow_key=record.get("GSI5PK", quote.sow_id),
            price_sort=record.get("GSI5SK", price_sort_key(quote.total_price)),
        )
        return quote


class QuoteSubmissionRequest(_QuoteModel):
    sow_id: str = Field(..., alias="sowId")
    builder_id: str = Field(..., alias="builderId")
    quote: QuoteInput


class FieldError(_QuoteModel):
    """A single validation failure, renderable field-by-field."""

    field: str
    message: str
    code: str


# =============================================================================
# FACTORY & KEYS
# =============================================================================


def price_sort_key(price: float) -> str:
    """Zero-padded price so lexical order matches numeric order.

    The field is 18 characters wide, which keeps the ordering exact for
    prices below 1e15.
    """
    return f"{max(price, 0.0):018.2f}"


def derive_sort_keys(
    builder_id: str,
    sow_id: str,
    status: str,
    stamp: datetime,
    total_price: float,
) -> QuoteSortKeys:
    return QuoteSortKeys(
        builder_key=builder_id,
        builder_sort=f"{status}#{stamp.isoformat()}",
        sow_key=sow_id,
        price_sort=price_sort_key(total_price),
    )


def create_quote(
    sow_id: str,
    builder_id: str,
    quote_input: QuoteInput,
    now: Optional[datetime] = None,
) -> Quote:
    """Build a draft quote from a submission.

    Assigns identity, timestamps and index keys. Does not validate: drafts
    may be incomplete until ``validate_quote`` is called explicitly.
    """
    now = ensure_utc(now) if now else utc_now()
    data = quote_input.model_dump(by_alias=True)
    quote = Quote.model_validate({
        **data,
        "id": str(uuid4()),
        "sowId": sow_id,
        "builderId": builder_id,
        "status": QuoteStatus.DRAFT,
        "submittedAt": now,
        "updatedAt": now,
        "version": 1,
    })
    quote.keys = derive_sort_keys(builder_id, sow_id, QuoteStatus.DRAFT.value, now, quote.total_price)
    return quote
