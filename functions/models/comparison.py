"""Quote comparison models for BuildBid.

Cross-quote metrics, rankings, risk analysis and recommendations returned
to the homeowner when comparing bids on one scope of work.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from models.quote import utc_now


class RecommendationType(str, Enum):
    BEST_VALUE = "best-value"
    LOWEST_PRICE = "lowest-price"
    FASTEST = "fastest"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class _ComparisonModel(BaseModel):
    class Config:
        populate_by_name = True
        use_enum_values = True


class PriceRange(_ComparisonModel):
    lowest: float
    highest: float
    average: float
    median: float


class DurationRange(_ComparisonModel):
    shortest: float
    longest: float
    average: float


class ScoreRange(_ComparisonModel):
    highest: float
    lowest: float
    average: float


class WarrantyComparison(_ComparisonModel):
    workmanship_range: DurationRange = Field(..., alias="workmanshipRange")
    materials_range: DurationRange = Field(..., alias="materialsRange")
    insurance_backed_count: int = Field(..., alias="insuranceBackedCount")


class ComparisonMetrics(_ComparisonModel):
    price_range: PriceRange = Field(..., alias="priceRange")
    timeline_range: DurationRange = Field(..., alias="timelineRange")
    quality_scores: ScoreRange = Field(..., alias="qualityScores")
    compliance_scores: ScoreRange = Field(..., alias="complianceScores")
    warranty_comparison: WarrantyComparison = Field(..., alias="warrantyComparison")


class RankedValue(_ComparisonModel):
    """One quote's position on a single comparison dimension (1 = best)."""

    quote_id: str = Field(..., alias="quoteId")
    value: float
    rank: int = Field(..., ge=1)


class QuoteRankings(_ComparisonModel):
    price: List[RankedValue] = Field(default_factory=list)
    timeline: List[RankedValue] = Field(default_factory=list)
    compliance: List[RankedValue] = Field(default_factory=list)
    warranty: List[RankedValue] = Field(default_factory=list)


class Recommendation(_ComparisonModel):
    type: RecommendationType
    quote_id: str = Field(..., alias="quoteId")
    reason: str
    score: int = Field(..., ge=0, le=100)
    pros: List[str] = Field(default_factory=list)
    cons: List[str] = Field(default_factory=list)
    risk_level: RiskLevel = Field(default=RiskLevel.LOW, alias="riskLevel")


class QuoteRisk(_ComparisonModel):
    quote_id: str = Field(..., alias="quoteId")
    risk: str
    severity: RiskLevel
    mitigation: str = ""


class RiskAnalysis(_ComparisonModel):
    overall_risk: RiskLevel = Field(default=RiskLevel.LOW, alias="overallRisk")
    price_risks: List[QuoteRisk] = Field(default_factory=list, alias="priceRisks")
    timeline_risks: List[QuoteRisk] = Field(default_factory=list, alias="timelineRisks")
    compliance_risks: List[QuoteRisk] = Field(default_factory=list, alias="complianceRisks")
    recommendations: List[str] = Field(default_factory=list)


class QuoteComparison(_ComparisonModel):
    sow_id: str = Field(..., alias="sowId")
    quotes: List[Dict[str, Any]] = Field(default_factory=list)
    comparison_metrics: ComparisonMetrics = Field(..., alias="comparisonMetrics")
    rankings: QuoteRankings = Field(default_factory=QuoteRankings)
    recommendations: List[Recommendation] = Field(default_factory=list)
    risk_analysis: RiskAnalysis = Field(default_factory=RiskAnalysis, alias="riskAnalysis")
    generated_at: datetime = Field(default_factory=utc_now, alias="generatedAt")

    def to_response_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
