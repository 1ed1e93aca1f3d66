"""Unit tests for QuoteService."""

from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock

from config.errors import DocumentStoreError, ErrorCode
from models.quote import QuoteStatus, QuoteSubmissionRequest
from services.quote_service import QuoteService
from tests.fixtures.mock_quote_data import get_breakdown, get_submission


def submission(**kwargs) -> QuoteSubmissionRequest:
    return QuoteSubmissionRequest.model_validate(get_submission(**kwargs))


async def submit(service, **kwargs):
    result = await service.submit_quote(submission(**kwargs))
    assert result.success, result.validation_errors
    return result


class TestSubmitQuote:
    """Tests for QuoteService.submit_quote."""

    @pytest.mark.asyncio
    async def test_successful_submission(self, quote_service, memory_store):
        result = await quote_service.submit_quote(submission())

        assert result.success
        assert result.quote_id
        assert result.estimated_processing_time == 24
        assert result.quote["status"] == "submitted"
        assert result.quote["effectiveStatus"] == "submitted"
        assert result.quote["reference"].startswith("Q")
        assert result.warnings == []

        stored = await memory_store.get("SOW#sow-001", f"QUOTE#{result.quote_id}")
        assert stored["status"] == "submitted"
        assert stored["GSI3SK"].startswith("submitted#")

    @pytest.mark.asyncio
    async def test_validation_errors_skip_store(self, quote_service, memory_store):
        writes_before = len(memory_store.writes)

        result = await quote_service.submit_quote(submission(breakdown=get_breakdown(30000.0)))

        assert not result.success
        assert result.error_codes == [ErrorCode.CALCULATION_ERROR]
        assert len(memory_store.writes) == writes_before

    @pytest.mark.asyncio
    async def test_expired_submission_rejected(self, quote_service):
        past = datetime.now(timezone.utc) - timedelta(days=1)

        result = await quote_service.submit_quote(submission(valid_until=past))

        assert result.error_codes == [ErrorCode.INVALID_DATE]

    @pytest.mark.asyncio
    async def test_unknown_sow(self, quote_service):
        result = await quote_service.submit_quote(submission(sow_id="sow-missing"))

        assert not result.success
        assert result.error_codes == [ErrorCode.SOW_NOT_FOUND]
        assert result.validation_errors[0].field == "sowId"

    @pytest.mark.asyncio
    async def test_duplicate_builder_quote(self, quote_service, memory_store):
        await submit(quote_service)

        result = await quote_service.submit_quote(submission())

        assert not result.success
        assert result.error_codes == [ErrorCode.DUPLICATE_QUOTE]
        quotes = await memory_store.query_by_partition_prefix("SOW#sow-001", "QUOTE#")
        assert len(quotes) == 1

    @pytest.mark.asyncio
    async def test_different_builders_can_quote(self, quote_service):
        await submit(quote_service, builder_id="builder-001")
        await submit(quote_service, builder_id="builder-002")

        response = await quote_service.get_quotes_for_sow("sow-001")

        assert {q["builderId"] for q in response.data} == {"builder-001", "builder-002"}

    @pytest.mark.asyncio
    async def test_submission_warnings(self, quote_service):
        result = await submit(quote_service, total_price=30000.0, certifications=[])

        assert "Quote is more than 20% above the scope of work cost estimate" in result.warnings
        assert "No builder certifications supplied" in result.warnings

    @pytest.mark.asyncio
    async def test_custom_sow_lookup(self, memory_store):
        lookup = AsyncMock(return_value={"id": "sow-ext"})
        service = QuoteService(store=memory_store, sow_lookup=lookup)

        result = await service.submit_quote(submission(sow_id="sow-ext"))

        assert result.success
        lookup.assert_awaited_once_with("sow-ext")

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, memory_store):
        memory_store.put = AsyncMock(side_effect=DocumentStoreError(
            code=ErrorCode.DOCUMENT_STORE_WRITE_FAILED, message="down", operation="put"
        ))
        service = QuoteService(store=memory_store)

        with pytest.raises(DocumentStoreError):
            await service.submit_quote(submission())


class TestQuoteReads:
    """Tests for quote lookups."""

    @pytest.mark.asyncio
    async def test_get_quote(self, quote_service):
        submitted = await submit(quote_service)

        response = await quote_service.get_quote(submitted.quote_id)

        assert response.success
        assert response.data["id"] == submitted.quote_id
        assert not any(key.startswith("GSI") or key in ("PK", "SK") for key in response.data)

    @pytest.mark.asyncio
    async def test_get_quote_not_found(self, quote_service):
        response = await quote_service.get_quote("nope")

        assert not response.success
        assert response.error.code == ErrorCode.QUOTE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_get_builder_quotes_by_status(self, quote_service):
        first = await submit(quote_service, builder_id="builder-001")
        await quote_service.update_quote_status(first.quote_id, "under-review")
        await submit(quote_service, sow_id="sow-001", builder_id="builder-009")

        submitted = await quote_service.get_builder_quotes("builder-001", "submitted")
        reviewing = await quote_service.get_builder_quotes("builder-001", "under-review")
        everything = await quote_service.get_builder_quotes("builder-001")

        assert submitted.data == []
        assert [q["id"] for q in reviewing.data] == [first.quote_id]
        assert len(everything.data) == 1


class TestUpdateQuoteStatus:
    """Tests for QuoteService.update_quote_status."""

    @pytest.mark.asyncio
    async def test_legal_transition(self, quote_service):
        submitted = await submit(quote_service)

        response = await quote_service.update_quote_status(submitted.quote_id, "under-review")

        assert response.success
        assert response.data["status"] == "under-review"

    @pytest.mark.asyncio
    async def test_illegal_transition(self, quote_service):
        submitted = await submit(quote_service)
        await quote_service.update_quote_status(submitted.quote_id, "selected")

        response = await quote_service.update_quote_status(submitted.quote_id, "withdrawn")

        assert not response.success
        assert response.error.code == ErrorCode.INVALID_STATUS_TRANSITION
        assert response.error.details["from"] == "selected"

    @pytest.mark.asyncio
    async def test_expired_quote_is_frozen(self, quote_service, memory_store):
        submitted = await submit(quote_service)
        key = ("SOW#sow-001", f"QUOTE#{submitted.quote_id}")
        memory_store.records[key]["validUntil"] = "2020-01-01T00:00:00+00:00"

        response = await quote_service.update_quote_status(submitted.quote_id, "withdrawn")

        assert response.error.code == ErrorCode.INVALID_STATUS_TRANSITION
        assert response.error.details["from"] == "expired"

    @pytest.mark.asyncio
    async def test_revised_status_cannot_be_set_directly(self, quote_service, memory_store):
        submitted = await submit(quote_service)
        await quote_service.update_quote_status(submitted.quote_id, "clarification-requested")

        response = await quote_service.update_quote_status(submitted.quote_id, "revised")

        assert not response.success
        assert response.error.code == ErrorCode.INVALID_STATUS_TRANSITION
        stored = await memory_store.get("SOW#sow-001", f"QUOTE#{submitted.quote_id}")
        assert stored["status"] == "clarification-requested"
        assert stored["version"] == 1

    @pytest.mark.asyncio
    async def test_unknown_quote(self, quote_service):
        response = await quote_service.update_quote_status("nope", "withdrawn")
        assert response.error.code == ErrorCode.QUOTE_NOT_FOUND


class TestReviseQuote:
    """Tests for QuoteService.revise_quote."""

    @pytest.mark.asyncio
    async def test_revision_after_clarification(self, quote_service, memory_store):
        submitted = await submit(quote_service)
        await quote_service.update_quote_status(submitted.quote_id, "clarification-requested")

        result = await quote_service.revise_quote(
            submitted.quote_id,
            {"totalPrice": 24000.0, "breakdown": get_breakdown(24000.0)},
        )

        assert result.success
        assert result.quote_id != submitted.quote_id
        assert result.quote["version"] == 2
        assert result.quote["status"] == QuoteStatus.REVISED.value
        quotes = await memory_store.query_by_partition_prefix("SOW#sow-001", "QUOTE#")
        assert len(quotes) == 2

    @pytest.mark.asyncio
    async def test_second_revision_of_same_version_rejected(self, quote_service, memory_store):
        submitted = await submit(quote_service)
        await quote_service.update_quote_status(submitted.quote_id, "clarification-requested")
        updates = {"totalPrice": 24000.0, "breakdown": get_breakdown(24000.0)}
        first = await quote_service.revise_quote(submitted.quote_id, updates)

        second = await quote_service.revise_quote(submitted.quote_id, updates)

        assert first.success
        assert second.error_codes == [ErrorCode.QUOTE_SUPERSEDED]
        quotes = await memory_store.query_by_partition_prefix("SOW#sow-001", "QUOTE#")
        assert sorted(q["version"] for q in quotes) == [1, 2]
        claim = await memory_store.get("SOW#sow-001", "BUILDER#builder-001")
        assert claim["quoteId"] == first.quote_id

    @pytest.mark.asyncio
    async def test_revisions_continue_from_latest_version(self, quote_service):
        submitted = await submit(quote_service)
        await quote_service.update_quote_status(submitted.quote_id, "clarification-requested")
        first = await quote_service.revise_quote(
            submitted.quote_id, {"totalPrice": 24000.0, "breakdown": get_breakdown(24000.0)}
        )
        await quote_service.update_quote_status(first.quote_id, "clarification-requested")

        second = await quote_service.revise_quote(
            first.quote_id, {"totalPrice": 23000.0, "breakdown": get_breakdown(23000.0)}
        )

        assert second.success
        assert second.quote["version"] == 3

    @pytest.mark.asyncio
    async def test_superseded_quote_status_frozen(self, quote_service):
        submitted = await submit(quote_service)
        await quote_service.update_quote_status(submitted.quote_id, "clarification-requested")
        await quote_service.revise_quote(
            submitted.quote_id, {"totalPrice": 24000.0, "breakdown": get_breakdown(24000.0)}
        )

        response = await quote_service.update_quote_status(submitted.quote_id, "under-review")

        assert not response.success
        assert response.error.code == ErrorCode.QUOTE_SUPERSEDED

    @pytest.mark.asyncio
    async def test_submitted_quote_not_modifiable(self, quote_service):
        submitted = await submit(quote_service)

        result = await quote_service.revise_quote(submitted.quote_id, {"totalPrice": 24000.0})

        assert result.error_codes == [ErrorCode.QUOTE_NOT_MODIFIABLE]

    @pytest.mark.asyncio
    async def test_invalid_revision_not_stored(self, quote_service, memory_store):
        submitted = await submit(quote_service)
        await quote_service.update_quote_status(submitted.quote_id, "clarification-requested")

        result = await quote_service.revise_quote(submitted.quote_id, {"totalPrice": 24000.0})

        assert result.error_codes == [ErrorCode.CALCULATION_ERROR]
        quotes = await memory_store.query_by_partition_prefix("SOW#sow-001", "QUOTE#")
        assert len(quotes) == 1


class TestCompareQuotes:
    """Tests for QuoteService.compare_quotes."""

    @pytest.mark.asyncio
    async def test_no_quotes(self, quote_service):
        response = await quote_service.compare_quotes("sow-001")

        assert not response.success
        assert response.error.code == ErrorCode.NO_QUOTES_FOUND

    @pytest.mark.asyncio
    async def test_comparison(self, quote_service):
        await submit(quote_service, builder_id="builder-a", total_price=3000.0)
        await submit(quote_service, builder_id="builder-b", total_price=4000.0)
        await submit(quote_service, builder_id="builder-c", total_price=5000.0)

        response = await quote_service.compare_quotes("sow-001")

        assert response.success
        price_range = response.data["comparisonMetrics"]["priceRange"]
        assert (price_range["lowest"], price_range["highest"], price_range["median"]) == (3000, 5000, 4000)
        assert len(response.data["recommendations"]) == 3

    @pytest.mark.asyncio
    async def test_comparison_uses_latest_version_per_builder(self, quote_service):
        submitted = await submit(quote_service, builder_id="builder-a", total_price=5000.0)
        await submit(quote_service, builder_id="builder-b", total_price=4000.0)
        await quote_service.update_quote_status(submitted.quote_id, "clarification-requested")
        revised = await quote_service.revise_quote(
            submitted.quote_id, {"totalPrice": 3000.0, "breakdown": get_breakdown(3000.0)}
        )

        response = await quote_service.compare_quotes("sow-001")

        ids = {q["id"] for q in response.data["quotes"]}
        assert revised.quote_id in ids
        assert submitted.quote_id not in ids
        assert len(response.data["quotes"]) == 2
        assert response.data["comparisonMetrics"]["priceRange"]["lowest"] == 3000
        assert response.data["comparisonMetrics"]["priceRange"]["highest"] == 4000


class TestCommunications:
    """Tests for builder communications."""

    @pytest.mark.asyncio
    async def test_create_and_list(self, quote_service):
        created = await quote_service.create_communication(
            sow_id="sow-001",
            builder_id="builder-001",
            homeowner_id="owner-1",
            type="clarification-request",
            subject="Kitchen wall",
            message="Is the wall between kitchen and dining room load bearing?",
        )

        listed = await quote_service.get_communications("sow-001")

        assert created.data["status"] == "sent"
        assert [c["id"] for c in listed.data] == [created.data["id"]]
        assert "GSI7PK" not in listed.data[0]
