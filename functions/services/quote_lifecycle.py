"""Quote lifecycle management for BuildBid.

Status transforms, revisions and the guards callers use to gate actions.
All functions are pure: they return new Quote objects and never write.

State machine:
    draft -> submitted -> {under-review, clarification-requested}
          -> {selected, withdrawn}
    clarification-requested --create_revision--> new record, version + 1, revised

``expired`` is never transitioned to. It is an overlay computed on read
from ``valid_until``.
"""

from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional
from uuid import uuid4

from models.quote import (
    Quote,
    QuoteStatus,
    derive_sort_keys,
    ensure_utc,
    utc_now,
)

MODIFIABLE_STATUSES: FrozenSet[QuoteStatus] = frozenset({
    QuoteStatus.DRAFT,
    QuoteStatus.CLARIFICATION_REQUESTED,
})
WITHDRAWABLE_STATUSES: FrozenSet[QuoteStatus] = frozenset({
    QuoteStatus.SUBMITTED,
    QuoteStatus.UNDER_REVIEW,
    QuoteStatus.CLARIFICATION_REQUESTED,
    QuoteStatus.REVISED,
})
TERMINAL_STATUSES: FrozenSet[QuoteStatus] = frozenset({QuoteStatus.SELECTED, QuoteStatus.WITHDRAWN})

# Legal externally-triggered transitions, enforced by QuoteService.
# ``revised`` is never a target: only create_revision produces it, as a new record.
ALLOWED_TRANSITIONS: Dict[QuoteStatus, FrozenSet[QuoteStatus]] = {
    QuoteStatus.DRAFT: frozenset({QuoteStatus.SUBMITTED, QuoteStatus.WITHDRAWN}),
    QuoteStatus.SUBMITTED: frozenset({
        QuoteStatus.UNDER_REVIEW,
        QuoteStatus.CLARIFICATION_REQUESTED,
        QuoteStatus.SELECTED,
        QuoteStatus.WITHDRAWN,
    }),
    QuoteStatus.UNDER_REVIEW: frozenset({
        QuoteStatus.CLARIFICATION_REQUESTED,
        QuoteStatus.SELECTED,
        QuoteStatus.WITHDRAWN,
    }),
    QuoteStatus.CLARIFICATION_REQUESTED: frozenset({QuoteStatus.UNDER_REVIEW, QuoteStatus.WITHDRAWN}),
    QuoteStatus.REVISED: frozenset({
        QuoteStatus.UNDER_REVIEW,
        QuoteStatus.CLARIFICATION_REQUESTED,
        QuoteStatus.SELECTED,
        QuoteStatus.WITHDRAWN,
    }),
    QuoteStatus.SELECTED: frozenset(),
    QuoteStatus.WITHDRAWN: frozenset(),
    QuoteStatus.EXPIRED: frozenset(),
}


def _now(now: Optional[datetime]) -> datetime:
    return ensure_utc(now) if now else utc_now()


def is_expired(quote: Quote, now: Optional[datetime] = None) -> bool:
    """True once ``valid_until`` has been reached (equality counts)."""
    return quote.valid_until <= _now(now)


def effective_status(quote: Quote, now: Optional[datetime] = None) -> QuoteStatus:
    """Stored status with the expiry overlay applied to non-terminal quotes."""
    status = QuoteStatus(quote.status)
    if status not in TERMINAL_STATUSES and is_expired(quote, now):
        return QuoteStatus.EXPIRED
    return status


def can_be_modified(quote: Quote, now: Optional[datetime] = None) -> bool:
    return QuoteStatus(quote.status) in MODIFIABLE_STATUSES and not is_expired(quote, now)


def can_be_withdrawn(quote: Quote, now: Optional[datetime] = None) -> bool:
    return QuoteStatus(quote.status) in WITHDRAWABLE_STATUSES and not is_expired(quote, now)


def can_transition(current: str, target: str) -> bool:
    """Whether ``current -> target`` is in the transition table."""
    return QuoteStatus(target) in ALLOWED_TRANSITIONS.get(QuoteStatus(current), frozenset())


def update_status(quote: Quote, status: str, now: Optional[datetime] = None) -> Quote:
    """Return a copy with the new status and re-derived builder sort key.

    Accepts any status value; transition legality is checked by callers
    via ``can_transition``.
    """
    status = QuoteStatus(status)
    updated = quote.model_copy(deep=True)
    updated.status = status.value
    updated.updated_at = _now(now)
    updated.keys = derive_sort_keys(
        quote.builder_id, quote.sow_id, status.value, quote.submitted_at, quote.total_price
    )
    return updated


def _to_alias(field_name: str) -> str:
    info = Quote.model_fields.get(field_name)
    if info is not None and info.alias:
        return info.alias
    return field_name


def create_revision(
    quote: Quote,
    updates: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Quote:
    """Produce a new quote record superseding ``quote``.

    New id, ``version + 1``, status forced to ``revised``. Identity and
    lifecycle fields in ``updates`` are ignored; the rest (snake_case or
    camelCase) override the previous values. The input quote is untouched.
    """
    now = _now(now)
    protected = {"id", "sowId", "builderId", "version", "status", "submittedAt", "updatedAt"}

    data = quote.model_dump(by_alias=True)
    for key, value in (updates or {}).items():
        alias = _to_alias(key)
        if alias in protected:
            continue
        data[alias] = value

    data.update({
        "id": str(uuid4()),
        "version": quote.version + 1,
        "status": QuoteStatus.REVISED.value,
        "updatedAt": now,
    })
    revision = Quote.model_validate(data)
    revision.keys = derive_sort_keys(
        revision.builder_id, revision.sow_id, QuoteStatus.REVISED.value, now, revision.total_price
    )
    return revision
