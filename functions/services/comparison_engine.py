"""Quote comparison engine for BuildBid.

Given every quote for one scope of work, computes range/average/median
metrics, per-dimension rankings, risk flags and the three named
recommendations (best value, lowest price, fastest).
"""

from statistics import mean
from typing import Callable, List, Sequence

import structlog

from models.comparison import (
    ComparisonMetrics,
    DurationRange,
    PriceRange,
    QuoteComparison,
    QuoteRankings,
    QuoteRisk,
    RankedValue,
    Recommendation,
    RecommendationType,
    RiskAnalysis,
    RiskLevel,
    ScoreRange,
    WarrantyComparison,
)
from models.quote import Quote

logger = structlog.get_logger()

COMPLIANCE_POINTS = 20  # per satisfied standard, five standards
BELOW_AVERAGE_THRESHOLD = 0.8
LOW_COMPLIANCE_SCORE = 60
CRITICAL_COMPLIANCE_SCORE = 40

CURRENCY_SYMBOLS = {"GBP": "£", "EUR": "€", "USD": "$"}


# =============================================================================
# Per-quote scores
# =============================================================================


def compliance_score(quote: Quote) -> int:
    """20 points for each satisfied standard, out of 100."""
    flags = quote.compliance_statement.flags()
    max_score = COMPLIANCE_POINTS * len(flags)
    score = sum(COMPLIANCE_POINTS for satisfied in flags.values() if satisfied)
    return round(score / max_score * 100) if max_score else 0


def median(values: Sequence[float]) -> float:
    """Middle value; mean of the two middle values for even counts."""
    if not values:
        raise ValueError("median of empty sequence")
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def _normalised_inverse(value: float, lowest: float, highest: float) -> float:
    """0-100 where the lowest value scores 100. A zero-width range scores 100."""
    if highest == lowest:
        return 100.0
    return (highest - value) / (highest - lowest) * 100


def _format_price(quote: Quote) -> str:
    symbol = CURRENCY_SYMBOLS.get(quote.currency, f"{quote.currency} ")
    return f"{symbol}{quote.total_price:,.2f}"


# =============================================================================
# Metrics & rankings
# =============================================================================


def _duration_range(values: List[float]) -> DurationRange:
    return DurationRange(shortest=min(values), longest=max(values), average=mean(values))


def _score_range(values: List[float]) -> ScoreRange:
    return ScoreRange(highest=max(values), lowest=min(values), average=mean(values))


def calculate_metrics(quotes: List[Quote]) -> ComparisonMetrics:
    """Aggregate price, timeline, compliance and warranty ranges.

    Raises:
        ValueError: If ``quotes`` is empty.
    """
    if not quotes:
        raise ValueError("cannot compare an empty set of quotes")

    prices = [q.total_price for q in quotes]
    durations = [q.timeline.total_duration for q in quotes]
    scores = [compliance_score(q) for q in quotes]

    return ComparisonMetrics(
        price_range=PriceRange(
            lowest=min(prices),
            highest=max(prices),
            average=mean(prices),
            median=median(prices),
        ),
        timeline_range=_duration_range(durations),
        quality_scores=_score_range(scores),
        compliance_scores=_score_range(scores),
        warranty_comparison=WarrantyComparison(
            workmanship_range=_duration_range([q.warranty.workmanship_warranty.duration for q in quotes]),
            materials_range=_duration_range([q.warranty.materials_warranty.duration for q in quotes]),
            insurance_backed_count=sum(1 for q in quotes if q.warranty.insurance_backed),
        ),
    )


def _rank(quotes: List[Quote], value: Callable[[Quote], float], descending: bool = False) -> List[RankedValue]:
    ordered = sorted(quotes, key=value, reverse=descending)
    return [
        RankedValue(quote_id=q.id, value=value(q), rank=index + 1)
        for index, q in enumerate(ordered)
    ]


def rank_quotes(quotes: List[Quote]) -> QuoteRankings:
    """Rank on each dimension independently; ties keep input order."""
    return QuoteRankings(
        price=_rank(quotes, lambda q: q.total_price),
        timeline=_rank(quotes, lambda q: q.timeline.total_duration),
        compliance=_rank(quotes, compliance_score, descending=True),
        warranty=_rank(
            quotes,
            lambda q: q.warranty.workmanship_warranty.duration + q.warranty.materials_warranty.duration,
            descending=True,
        ),
    )


# =============================================================================
# Recommendations
# =============================================================================


def value_score(quote: Quote, metrics: ComparisonMetrics) -> float:
    """Mean of normalised price, timeline and compliance scores (0-100)."""
    price_score = _normalised_inverse(
        quote.total_price, metrics.price_range.lowest, metrics.price_range.highest
    )
    timeline_score = _normalised_inverse(
        quote.timeline.total_duration, metrics.timeline_range.shortest, metrics.timeline_range.longest
    )
    return (price_score + timeline_score + compliance_score(quote)) / 3


def generate_recommendations(quotes: List[Quote], metrics: ComparisonMetrics) -> List[Recommendation]:
    """Best value, lowest price and fastest, in that order."""
    recommendations: List[Recommendation] = []

    # Best value: first maximum wins on ties
    best_value = max(quotes, key=lambda q: value_score(q, metrics))
    recommendations.append(Recommendation(
        type=RecommendationType.BEST_VALUE,
        quote_id=best_value.id,
        reason="Best balance of price, timeline, and compliance",
        score=round(value_score(best_value, metrics)),
        pros=[
            f"Competitive price: {_format_price(best_value)}",
            f"Reasonable timeline: {best_value.timeline.total_duration} days",
            f"Good compliance score: {compliance_score(best_value)}%",
        ],
        cons=[],
        risk_level=RiskLevel.LOW,
    ))

    lowest = min(quotes, key=lambda q: q.total_price)
    underpriced = lowest.total_price < metrics.price_range.average * BELOW_AVERAGE_THRESHOLD
    recommendations.append(Recommendation(
        type=RecommendationType.LOWEST_PRICE,
        quote_id=lowest.id,
        reason="Most cost-effective option",
        score=100,
        pros=[f"Lowest price: {_format_price(lowest)}"],
        cons=["Significantly below average - verify quality"] if underpriced else [],
        risk_level=RiskLevel.MEDIUM if underpriced else RiskLevel.LOW,
    ))

    fastest = min(quotes, key=lambda q: q.timeline.total_duration)
    rushed = fastest.timeline.total_duration < metrics.timeline_range.average * BELOW_AVERAGE_THRESHOLD
    recommendations.append(Recommendation(
        type=RecommendationType.FASTEST,
        quote_id=fastest.id,
        reason="Shortest completion time",
        score=100,
        pros=[f"Fastest completion: {fastest.timeline.total_duration} days"],
        cons=["Aggressive timeline - verify feasibility"] if rushed else [],
        risk_level=RiskLevel.MEDIUM if rushed else RiskLevel.LOW,
    ))

    return recommendations


# =============================================================================
# Risk analysis
# =============================================================================


def analyse_risks(quotes: List[Quote], metrics: ComparisonMetrics) -> RiskAnalysis:
    """Flag quotes tripping the below-average and low-compliance heuristics."""
    analysis = RiskAnalysis()
    price_floor = metrics.price_range.average * BELOW_AVERAGE_THRESHOLD
    duration_floor = metrics.timeline_range.average * BELOW_AVERAGE_THRESHOLD

    for quote in quotes:
        if quote.total_price < price_floor:
            analysis.price_risks.append(QuoteRisk(
                quote_id=quote.id,
                risk="Price significantly below average; scope may be incomplete",
                severity=RiskLevel.MEDIUM,
                mitigation="Check every breakdown line against the scope of work",
            ))
        if quote.timeline.total_duration < duration_floor:
            analysis.timeline_risks.append(QuoteRisk(
                quote_id=quote.id,
                risk="Timeline significantly shorter than average",
                severity=RiskLevel.MEDIUM,
                mitigation="Ask the builder to confirm resourcing for each phase",
            ))
        score = compliance_score(quote)
        if score < LOW_COMPLIANCE_SCORE:
            analysis.compliance_risks.append(QuoteRisk(
                quote_id=quote.id,
                risk=f"Compliance score of {score}%",
                severity=RiskLevel.HIGH if score < CRITICAL_COMPLIANCE_SCORE else RiskLevel.MEDIUM,
                mitigation="Request evidence of building regulations and standards compliance",
            ))

    severities = [
        RiskLevel(risk.severity)
        for risk in analysis.price_risks + analysis.timeline_risks + analysis.compliance_risks
    ]
    if RiskLevel.HIGH in severities:
        analysis.overall_risk = RiskLevel.HIGH
    elif RiskLevel.MEDIUM in severities:
        analysis.overall_risk = RiskLevel.MEDIUM

    if analysis.price_risks:
        analysis.recommendations.append("Request itemised clarification from builders priced well below average")
    if analysis.timeline_risks:
        analysis.recommendations.append("Verify programme feasibility before accepting short timelines")
    if analysis.compliance_risks:
        analysis.recommendations.append("Prefer builders who can evidence compliance with recognised standards")

    return analysis


def build_comparison(sow_id: str, quotes: List[Quote]) -> QuoteComparison:
    """Full comparison document for one scope of work.

    Raises:
        ValueError: If ``quotes`` is empty.
    """
    metrics = calculate_metrics(quotes)
    comparison = QuoteComparison(
        sow_id=sow_id,
        quotes=[q.to_response_dict() for q in quotes],
        comparison_metrics=metrics,
        rankings=rank_quotes(quotes),
        recommendations=generate_recommendations(quotes, metrics),
        risk_analysis=analyse_risks(quotes, metrics),
    )
    logger.info(
        "quotes_compared",
        sow_id=sow_id,
        quote_count=len(quotes),
        overall_risk=comparison.risk_analysis.overall_risk,
    )
    return comparison
