"""Quote consistency rules.

Pure checks a reviewer would otherwise do by hand. Every check runs
independently so one call reports all simultaneous defects; nothing is
auto-corrected.
"""

from datetime import datetime
from typing import List, Optional

import structlog

from config.errors import ErrorCode
from config.settings import settings
from models.quote import (
    FieldError,
    Methodology,
    NRM2_REQUIRED_ELEMENTS,
    Quote,
    ensure_utc,
    utc_now,
)
from services.breakdown_calculator import calculate_totals, iter_items, max_depth
from services.schedule_analyzer import find_phase_overlaps

logger = structlog.get_logger(__name__)

BREAKDOWN_TOLERANCE = 0.01  # fraction of total price
PAYMENT_TOLERANCE = 0.01  # percentage points


def _check_required(quote: Quote) -> List[FieldError]:
    errors = []
    if not quote.sow_id:
        errors.append(FieldError(field="sowId", message="SoW ID is required", code=ErrorCode.REQUIRED_FIELD))
    if not quote.builder_id:
        errors.append(FieldError(field="builderId", message="Builder ID is required", code=ErrorCode.REQUIRED_FIELD))
    return errors


def _check_price(quote: Quote) -> List[FieldError]:
    if quote.total_price <= 0:
        return [FieldError(
            field="totalPrice",
            message="Total price must be greater than 0",
            code=ErrorCode.INVALID_VALUE,
        )]
    return []


def _check_breakdown_total(quote: Quote, max_breakdown_depth: int) -> List[FieldError]:
    depth = max_depth(quote.breakdown)
    if depth > max_breakdown_depth:
        # Too deep to trust the sum; report depth instead
        return [FieldError(
            field="breakdown",
            message=f"Breakdown nesting depth {depth} exceeds limit of {max_breakdown_depth}",
            code=ErrorCode.INVALID_VALUE,
        )]

    breakdown_total = calculate_totals(quote.breakdown).total_cost
    tolerance = abs(quote.total_price) * BREAKDOWN_TOLERANCE
    if abs(breakdown_total - quote.total_price) > tolerance:
        return [FieldError(
            field="breakdown",
            message=(
                f"Breakdown total {breakdown_total:.2f} does not match quote total price "
                f"{quote.total_price:.2f}"
            ),
            code=ErrorCode.CALCULATION_ERROR,
        )]
    return []


def _check_timeline(quote: Quote) -> List[FieldError]:
    errors = []
    if quote.timeline.total_duration <= 0:
        errors.append(FieldError(
            field="timeline.totalDuration",
            message="Timeline duration must be greater than 0",
            code=ErrorCode.INVALID_VALUE,
        ))

    for phase, earlier in find_phase_overlaps(quote.timeline.phases):
        errors.append(FieldError(
            field="timeline.phases",
            message=f'Phase "{phase.name}" overlaps with phase "{earlier.name}"',
            code=ErrorCode.TIMELINE_CONFLICT,
        ))
    return errors


def _check_warranty(quote: Quote) -> List[FieldError]:
    if quote.warranty.workmanship_warranty.duration <= 0:
        return [FieldError(
            field="warranty.workmanshipWarranty.duration",
            message="Workmanship warranty duration must be greater than 0",
            code=ErrorCode.INVALID_VALUE,
        )]
    return []


def _check_valid_until(quote: Quote, now: datetime) -> List[FieldError]:
    if quote.valid_until <= now:
        return [FieldError(
            field="validUntil",
            message="Valid until date must be in the future",
            code=ErrorCode.INVALID_DATE,
        )]
    return []


def missing_nrm2_elements(quote: Quote) -> List[str]:
    """Required NRM2 categories absent from the breakdown tree, in canonical order."""
    provided = {item.category for item in iter_items(quote.breakdown)}
    return [element for element in NRM2_REQUIRED_ELEMENTS if element not in provided]


def _check_nrm2(quote: Quote) -> List[FieldError]:
    if quote.methodology != Methodology.NRM2:
        return []
    missing = missing_nrm2_elements(quote)
    if missing:
        return [FieldError(
            field="breakdown",
            message=f"Missing required NRM2 elements: {', '.join(missing)}",
            code=ErrorCode.MISSING_NRM2_ELEMENTS,
        )]
    return []


def _check_payment_schedule(quote: Quote) -> List[FieldError]:
    total = sum(m.percentage for m in quote.terms.payment_schedule.schedule)
    if abs(total - 100) > PAYMENT_TOLERANCE:
        return [FieldError(
            field="terms.paymentSchedule",
            message=f"Payment schedule percentages must total 100% (got {total:g}%)",
            code=ErrorCode.PAYMENT_SCHEDULE_ERROR,
        )]
    return []


def validate_quote(
    quote: Quote,
    now: Optional[datetime] = None,
    max_breakdown_depth: Optional[int] = None,
) -> List[FieldError]:
    """Run every quote rule and collect the failures.

    No side effects; deterministic for a given ``now``.

    Args:
        quote: Quote to check.
        now: Reference time for the expiry rule (defaults to current UTC).
        max_breakdown_depth: Nesting limit for the breakdown tree.

    Returns:
        List of FieldError, empty when the quote is clean.
    """
    now = ensure_utc(now) if now else utc_now()
    depth_limit = max_breakdown_depth or settings.max_breakdown_depth

    errors: List[FieldError] = []
    errors.extend(_check_required(quote))
    errors.extend(_check_price(quote))
    errors.extend(_check_breakdown_total(quote, depth_limit))
    errors.extend(_check_timeline(quote))
    errors.extend(_check_warranty(quote))
    errors.extend(_check_valid_until(quote, now))
    errors.extend(_check_nrm2(quote))
    errors.extend(_check_payment_schedule(quote))

    if errors:
        logger.debug(
            "quote_validation_failed",
            quote_id=quote.id,
            codes=[e.code for e in errors],
        )
    return errors
