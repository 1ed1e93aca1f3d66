"""Quote service for BuildBid.

Entry point for quote submission, lookup, status changes, revisions,
distribution to builders, builder communications and comparison.

Domain failures (validation, not-found, duplicates, illegal transitions)
are returned as ``SubmissionResult`` / ``ServiceResponse`` values.
``DocumentStoreError`` from the store propagates unmodified; nothing here
retries or compensates.
"""

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from config.errors import ErrorCode
from config.settings import settings
from models.communication import BuilderCommunication
from models.distribution import (
    DistributionSettings,
    DistributionStatus,
    QuoteDistribution,
    ResponseStatus,
    can_transition_response,
)
from models.quote import (
    Quote,
    QuoteStatus,
    QuoteSubmissionRequest,
    create_quote,
    ensure_utc,
    utc_now,
)
from models.results import ServiceResponse, SubmissionResult
from services import quote_lifecycle
from services.breakdown_calculator import generate_reference
from services.comparison_engine import build_comparison
from services.document_store import DocumentStore, FirestoreDocumentStore
from validators.quote_validator import validate_quote

logger = structlog.get_logger()

INDEX_BUILDER_QUOTES = "GSI3"
INDEX_QUOTE_ID = "GSI4"
INDEX_HOMEOWNER_DISTRIBUTIONS = "GSI6"
INDEX_BUILDER_COMMUNICATIONS = "GSI7"

ScopeOfWorkLookup = Callable[[str], Awaitable[Optional[Dict[str, Any]]]]


def sow_partition(sow_id: str) -> str:
    return f"SOW#{sow_id}"


class QuoteService:
    """Quote workflows over a DocumentStore.

    Records live in one table: quotes, uniqueness claims, distributions and
    communications share the ``SOW#{sowId}`` partition; the scope of work
    itself is ``SOW#{sowId}`` / ``METADATA``.
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        sow_lookup: Optional[ScopeOfWorkLookup] = None,
    ):
        """Initialize QuoteService.

        Args:
            store: Document store. Defaults to Firestore.
            sow_lookup: Async callable returning the scope of work or None.
                Defaults to reading the METADATA record from the store.
        """
        self.store = store or FirestoreDocumentStore()
        self._sow_lookup = sow_lookup

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def get_scope_of_work(self, sow_id: str) -> Optional[Dict[str, Any]]:
        if self._sow_lookup is not None:
            return await self._sow_lookup(sow_id)
        return await self.store.get(sow_partition(sow_id), "METADATA")

    @staticmethod
    def present(quote: Quote, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Response shape: stored fields plus reference and expiry overlay."""
        data = quote.to_response_dict()
        data["reference"] = generate_reference(quote)
        data["effectiveStatus"] = quote_lifecycle.effective_status(quote, now).value
        return data

    async def _load_quote(self, quote_id: str) -> Optional[Quote]:
        items = await self.store.query_by_index(INDEX_QUOTE_ID, f"QUOTE#{quote_id}")
        if not items:
            return None
        return Quote.from_record(items[0])

    @staticmethod
    def _quote_not_found(quote_id: str) -> ServiceResponse:
        return ServiceResponse.fail(ErrorCode.QUOTE_NOT_FOUND, "Quote not found", {"quoteId": quote_id})

    async def _load_claim(self, quote: Quote) -> Optional[Dict[str, Any]]:
        """Builder claim record; its ``quoteId`` is the builder's latest version."""
        return await self.store.get(sow_partition(quote.sow_id), f"BUILDER#{quote.builder_id}")

    @staticmethod
    def _is_superseded(quote: Quote, claim: Optional[Dict[str, Any]]) -> bool:
        return bool(claim) and claim.get("quoteId") not in (None, quote.id)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit_quote(
        self,
        request: QuoteSubmissionRequest,
        now: Optional[datetime] = None,
    ) -> SubmissionResult:
        """Validate and persist a builder's quote.

        Validation is pure and runs first; only a clean quote touches the
        store. Builder uniqueness per scope of work is claimed atomically
        before the quote record is written.
        """
        now = ensure_utc(now) if now else utc_now()
        logger.info("quote_submission_received", sow_id=request.sow_id, builder_id=request.builder_id)

        quote = create_quote(request.sow_id, request.builder_id, request.quote, now=now)
        validation_errors = validate_quote(quote, now=now)
        if validation_errors:
            logger.info(
                "quote_submission_invalid",
                sow_id=request.sow_id,
                builder_id=request.builder_id,
                codes=[e.code for e in validation_errors],
            )
            return SubmissionResult(success=False, validation_errors=validation_errors)

        sow = await self.get_scope_of_work(request.sow_id)
        if not sow:
            return SubmissionResult(success=False, validation_errors=[{
                "field": "sowId",
                "message": "SoW not found or not available for quoting",
                "code": ErrorCode.SOW_NOT_FOUND,
            }])

        claimed = await self.store.put_if_absent({
            "PK": sow_partition(request.sow_id),
            "SK": f"BUILDER#{request.builder_id}",
            "quoteId": quote.id,
            "version": quote.version,
            "claimedAt": now.isoformat(),
            "entityType": "quote-claim",
        })
        if not claimed:
            logger.info("quote_submission_duplicate", sow_id=request.sow_id, builder_id=request.builder_id)
            return SubmissionResult(success=False, validation_errors=[{
                "field": "builderId",
                "message": "Builder already has a quote for this SoW",
                "code": ErrorCode.DUPLICATE_QUOTE,
            }])

        submitted = quote_lifecycle.update_status(quote, QuoteStatus.SUBMITTED, now=now)
        await self.store.put(submitted.to_record())

        logger.info("quote_submitted", quote_id=submitted.id, sow_id=submitted.sow_id, price=submitted.total_price)

        return SubmissionResult(
            success=True,
            quote_id=submitted.id,
            quote=self.present(submitted, now),
            warnings=_submission_warnings(submitted, sow),
            estimated_processing_time=settings.estimated_processing_hours,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_quote(self, quote_id: str) -> ServiceResponse:
        quote = await self._load_quote(quote_id)
        if quote is None:
            return self._quote_not_found(quote_id)
        return ServiceResponse.ok(self.present(quote))

    async def _quotes_for_sow(self, sow_id: str) -> List[Quote]:
        items = await self.store.query_by_partition_prefix(sow_partition(sow_id), "QUOTE#")
        return [Quote.from_record(item) for item in items]

    async def _latest_quotes_for_sow(self, sow_id: str) -> List[Quote]:
        """One quote per builder: the highest version stored."""
        latest: Dict[str, Quote] = {}
        for quote in await self._quotes_for_sow(sow_id):
            seen = latest.get(quote.builder_id)
            if seen is None or quote.version > seen.version:
                latest[quote.builder_id] = quote
        return list(latest.values())

    async def get_quotes_for_sow(self, sow_id: str) -> ServiceResponse:
        quotes = await self._quotes_for_sow(sow_id)
        return ServiceResponse.ok([self.present(q) for q in quotes])

    async def get_builder_quotes(self, builder_id: str, status: Optional[str] = None) -> ServiceResponse:
        sort_prefix = f"{QuoteStatus(status).value}#" if status else None
        items = await self.store.query_by_index(INDEX_BUILDER_QUOTES, builder_id, sort_prefix)
        return ServiceResponse.ok([self.present(Quote.from_record(item)) for item in items])

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def update_quote_status(self, quote_id: str, status: str) -> ServiceResponse:
        """Apply an externally triggered status change.

        Transitions outside the lifecycle table are rejected with
        INVALID_STATUS_TRANSITION. Expired quotes accept no transitions.
        """
        target = QuoteStatus(status)
        quote = await self._load_quote(quote_id)
        if quote is None:
            return self._quote_not_found(quote_id)
        if self._is_superseded(quote, await self._load_claim(quote)):
            return ServiceResponse.fail(
                ErrorCode.QUOTE_SUPERSEDED,
                "Quote has been replaced by a newer version",
                {"quoteId": quote_id, "version": quote.version},
            )

        current = quote_lifecycle.effective_status(quote)
        if not quote_lifecycle.can_transition(current, target):
            return ServiceResponse.fail(
                ErrorCode.INVALID_STATUS_TRANSITION,
                f"Cannot move quote from {current.value} to {target.value}",
                {"quoteId": quote_id, "from": current.value, "to": target.value},
            )

        updated = quote_lifecycle.update_status(quote, target)
        await self.store.put(updated.to_record())
        logger.info("quote_status_updated", quote_id=quote_id, status=target.value)
        return ServiceResponse.ok(self.present(updated))

    async def revise_quote(self, quote_id: str, updates: Dict[str, Any]) -> SubmissionResult:
        """Store a new version of a quote that is open for modification.

        Only the builder's latest version can be revised. Once the revision
        is written the claim record points at it, so the previous version
        is frozen and versions for a builder only ever go up.
        """
        quote = await self._load_quote(quote_id)
        if quote is None:
            return SubmissionResult(success=False, validation_errors=[{
                "field": "quoteId", "message": "Quote not found", "code": ErrorCode.QUOTE_NOT_FOUND,
            }])
        claim = await self._load_claim(quote)
        if self._is_superseded(quote, claim):
            return SubmissionResult(success=False, validation_errors=[{
                "field": "quoteId",
                "message": f"Quote version {quote.version} has been replaced by a newer version",
                "code": ErrorCode.QUOTE_SUPERSEDED,
            }])
        if not quote_lifecycle.can_be_modified(quote):
            return SubmissionResult(success=False, validation_errors=[{
                "field": "status",
                "message": f"Quote in status {quote.status} cannot be revised",
                "code": ErrorCode.QUOTE_NOT_MODIFIABLE,
            }])

        revision = quote_lifecycle.create_revision(quote, updates)
        validation_errors = validate_quote(revision)
        if validation_errors:
            return SubmissionResult(success=False, validation_errors=validation_errors)

        await self.store.put(revision.to_record())
        await self.store.put({
            **(claim or {
                "PK": sow_partition(quote.sow_id),
                "SK": f"BUILDER#{quote.builder_id}",
                "claimedAt": quote.submitted_at.isoformat(),
                "entityType": "quote-claim",
            }),
            "quoteId": revision.id,
            "version": revision.version,
        })
        logger.info("quote_revised", quote_id=revision.id, previous_id=quote.id, version=revision.version)
        return SubmissionResult(success=True, quote_id=revision.id, quote=self.present(revision))

    # ------------------------------------------------------------------
    # Distribution
    # ------------------------------------------------------------------

    async def distribute_to_builders(
        self,
        sow_id: str,
        homeowner_id: str,
        builder_ids: List[str],
        due_date: str,
    ) -> ServiceResponse:
        """Invite builders to quote; one ``invited`` response slot each."""
        sow = await self.get_scope_of_work(sow_id)
        if not sow:
            return ServiceResponse.fail(
                ErrorCode.SOW_NOT_FOUND, "SoW not found or not approved for distribution", {"sowId": sow_id}
            )

        builders = list(dict.fromkeys(builder_ids))
        distribution = QuoteDistribution(
            sow_id=sow_id,
            project_id=sow.get("projectId"),
            homeowner_id=homeowner_id,
            selected_builders=builders,
            due_date=due_date,
            status=DistributionStatus.ACTIVE,
            responses=[{"builderId": b, "status": ResponseStatus.INVITED} for b in builders],
            settings=DistributionSettings(
                max_quotes=len(builders),
                response_deadline=due_date,
                allow_questions=True,
                require_certifications=[],
                anonymize_homeowner=False,
            ),
        )
        await self.store.put(distribution.to_record())
        logger.info("sow_distributed", distribution_id=distribution.id, sow_id=sow_id, builder_count=len(builders))
        return ServiceResponse.ok(distribution.to_response_dict())

    async def record_builder_response(
        self,
        sow_id: str,
        distribution_id: str,
        builder_id: str,
        status: str,
        quote_id: Optional[str] = None,
        decline_reason: Optional[str] = None,
    ) -> ServiceResponse:
        """Move a builder's invitation to viewed, quoted or declined."""
        record = await self.store.get(sow_partition(sow_id), f"DISTRIBUTION#{distribution_id}")
        if not record:
            return ServiceResponse.fail(
                ErrorCode.DISTRIBUTION_NOT_FOUND, "Distribution not found", {"distributionId": distribution_id}
            )

        distribution = QuoteDistribution.model_validate(record)
        response = distribution.response_for(builder_id)
        if response is None:
            return ServiceResponse.fail(
                ErrorCode.BUILDER_NOT_INVITED, "Builder was not invited", {"builderId": builder_id}
            )

        target = ResponseStatus(status)
        if not can_transition_response(response.status, target):
            return ServiceResponse.fail(
                ErrorCode.INVALID_RESPONSE_TRANSITION,
                f"Cannot move response from {response.status} to {target.value}",
                {"builderId": builder_id},
            )

        now = utc_now()
        response.status = target.value
        if target == ResponseStatus.VIEWED:
            response.viewed_at = now
        else:
            response.responded_at = now
            response.quote_id = quote_id if target == ResponseStatus.QUOTED else None
            response.decline_reason = decline_reason if target == ResponseStatus.DECLINED else None

        if distribution.all_responded():
            distribution.status = DistributionStatus.RESPONSES_RECEIVED.value

        await self.store.put(distribution.to_record())
        logger.info("builder_response_recorded", distribution_id=distribution_id, builder_id=builder_id, status=target.value)
        return ServiceResponse.ok(distribution.to_response_dict())

    # ------------------------------------------------------------------
    # Communications
    # ------------------------------------------------------------------

    async def create_communication(
        self,
        sow_id: str,
        builder_id: str,
        homeowner_id: str,
        type: str,
        subject: str,
        message: str,
    ) -> ServiceResponse:
        communication = BuilderCommunication(
            sow_id=sow_id,
            builder_id=builder_id,
            homeowner_id=homeowner_id,
            type=type,
            subject=subject,
            message=message,
        )
        await self.store.put(communication.to_record())
        logger.info("communication_created", communication_id=communication.id, type=communication.type, sow_id=sow_id)
        return ServiceResponse.ok(communication.to_response_dict())

    async def get_communications(self, sow_id: str) -> ServiceResponse:
        items = await self.store.query_by_partition_prefix(sow_partition(sow_id), "COMMUNICATION#")
        return ServiceResponse.ok([
            BuilderCommunication.model_validate(item).to_response_dict() for item in items
        ])

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    async def compare_quotes(self, sow_id: str) -> ServiceResponse:
        quotes = await self._latest_quotes_for_sow(sow_id)
        if not quotes:
            return ServiceResponse.fail(
                ErrorCode.NO_QUOTES_FOUND, "No quotes found for comparison", {"sowId": sow_id}
            )
        comparison = build_comparison(sow_id, quotes)
        return ServiceResponse.ok(comparison.to_response_dict())


def _submission_warnings(quote: Quote, sow: Dict[str, Any]) -> List[str]:
    """Non-blocking observations on an accepted quote."""
    warnings = []
    estimate = sow.get("estimatedCost")
    budget = estimate.get("totalCost") if isinstance(estimate, dict) else None
    if budget and quote.total_price > budget * 1.2:
        warnings.append("Quote is more than 20% above the scope of work cost estimate")
    if not quote.certifications:
        warnings.append("No builder certifications supplied")
    if not quote.warranty.insurance_backed:
        warnings.append("Warranty is not insurance backed")
    return warnings
