"""Unit tests for quote validation rules."""

from datetime import timedelta

import pytest

from config.errors import ErrorCode
from models.quote import BreakdownItem
from tests.fixtures.mock_quote_data import get_breakdown
from validators.quote_validator import missing_nrm2_elements, validate_quote


def codes(errors):
    return [e.code for e in errors]


class TestValidateQuote:
    """Tests for validate_quote."""

    def test_clean_quote_has_no_errors(self, sample_quote, fixed_now):
        assert validate_quote(sample_quote, now=fixed_now) == []

    def test_non_positive_price(self, make_quote, fixed_now):
        quote = make_quote(total_price=25000.0)
        quote.total_price = 0

        errors = validate_quote(quote, now=fixed_now)

        price_errors = [e for e in errors if e.field == "totalPrice"]
        assert len(price_errors) == 1
        assert price_errors[0].code == ErrorCode.INVALID_VALUE

    def test_breakdown_within_tolerance(self, make_quote, fixed_now):
        # 0.8% off the breakdown total
        quote = make_quote(breakdown=get_breakdown(25200.0))
        assert ErrorCode.CALCULATION_ERROR not in codes(validate_quote(quote, now=fixed_now))

    def test_breakdown_outside_tolerance(self, make_quote, fixed_now):
        quote = make_quote(breakdown=get_breakdown(26000.0))

        errors = validate_quote(quote, now=fixed_now)

        assert codes(errors) == [ErrorCode.CALCULATION_ERROR]
        assert errors[0].field == "breakdown"

    def test_overlapping_phases(self, make_quote, fixed_now):
        quote = make_quote()
        quote.timeline.phases[1].start_day = 5

        errors = validate_quote(quote, now=fixed_now)

        assert codes(errors) == [ErrorCode.TIMELINE_CONFLICT]
        assert "Shell" in errors[0].message
        assert "Groundworks" in errors[0].message

    def test_overlap_with_non_adjacent_phase(self, make_quote, fixed_now):
        quote = make_quote()
        # Groundworks runs 0-40, so both later phases collide with it
        quote.timeline.phases[0].duration = 40

        errors = validate_quote(quote, now=fixed_now)

        assert codes(errors) == [ErrorCode.TIMELINE_CONFLICT, ErrorCode.TIMELINE_CONFLICT]

    def test_zero_duration_timeline(self, make_quote, fixed_now):
        quote = make_quote(duration=0)
        assert ErrorCode.INVALID_VALUE in codes(validate_quote(quote, now=fixed_now))

    def test_zero_workmanship_warranty(self, sample_quote, fixed_now):
        sample_quote.warranty.workmanship_warranty.duration = 0

        errors = validate_quote(sample_quote, now=fixed_now)

        assert [e.field for e in errors] == ["warranty.workmanshipWarranty.duration"]

    def test_valid_until_equal_to_now_is_invalid(self, sample_quote, fixed_now):
        sample_quote.valid_until = fixed_now
        assert codes(validate_quote(sample_quote, now=fixed_now)) == [ErrorCode.INVALID_DATE]

    def test_valid_until_in_future_is_valid(self, sample_quote, fixed_now):
        sample_quote.valid_until = fixed_now + timedelta(seconds=1)
        assert validate_quote(sample_quote, now=fixed_now) == []

    def test_missing_nrm2_elements(self, make_quote, fixed_now):
        breakdown = [
            {"category": "substructure", "totalCost": 12500},
            {"category": "superstructure", "totalCost": 12500},
        ]
        quote = make_quote(breakdown=breakdown)

        errors = validate_quote(quote, now=fixed_now)

        assert codes(errors) == [ErrorCode.MISSING_NRM2_ELEMENTS]
        assert errors[0].message == (
            "Missing required NRM2 elements: internal-finishes, services, preliminaries"
        )

    def test_nrm1_skips_element_check(self, make_quote, fixed_now):
        quote = make_quote(
            methodology="NRM1",
            breakdown=[{"category": "building-works", "totalCost": 25000}],
        )
        assert validate_quote(quote, now=fixed_now) == []

    def test_payment_schedule_must_total_100(self, sample_quote, fixed_now):
        sample_quote.terms.payment_schedule.schedule[2].percentage = 30

        errors = validate_quote(sample_quote, now=fixed_now)

        assert codes(errors) == [ErrorCode.PAYMENT_SCHEDULE_ERROR]
        assert "90%" in errors[0].message

    def test_reports_every_failure(self, make_quote, fixed_now):
        quote = make_quote(duration=0)
        quote.valid_until = fixed_now - timedelta(days=1)
        quote.terms.payment_schedule.schedule = []

        errors = validate_quote(quote, now=fixed_now)

        assert set(codes(errors)) == {
            ErrorCode.INVALID_VALUE,
            ErrorCode.INVALID_DATE,
            ErrorCode.PAYMENT_SCHEDULE_ERROR,
        }

    def test_missing_identity(self, sample_quote, fixed_now):
        sample_quote.sow_id = ""

        errors = validate_quote(sample_quote, now=fixed_now)

        assert [(e.field, e.code) for e in errors] == [("sowId", ErrorCode.REQUIRED_FIELD)]

    def test_breakdown_too_deep(self, sample_quote, fixed_now):
        sample_quote.breakdown[0].sub_items = [
            BreakdownItem(category="preliminaries", sub_items=[BreakdownItem(category="preliminaries")])
        ]

        errors = validate_quote(sample_quote, now=fixed_now, max_breakdown_depth=2)

        assert codes(errors) == [ErrorCode.INVALID_VALUE]
        assert errors[0].field == "breakdown"

    def test_validation_is_pure(self, sample_quote, fixed_now):
        before = sample_quote.model_dump()
        validate_quote(sample_quote, now=fixed_now)
        assert sample_quote.model_dump() == before


class TestMissingNrm2Elements:
    """Tests for NRM2 element detection."""

    def test_nested_categories_count(self, sample_quote):
        services = sample_quote.breakdown.pop()
        sample_quote.breakdown[0].sub_items.append(services)
        assert missing_nrm2_elements(sample_quote) == []

    @pytest.mark.parametrize("dropped", ["substructure", "preliminaries"])
    def test_reports_dropped_category(self, sample_quote, dropped):
        sample_quote.breakdown = [i for i in sample_quote.breakdown if i.category != dropped]
        assert missing_nrm2_elements(sample_quote) == [dropped]

    def test_three_of_five_elements(self, make_quote, fixed_now):
        quote = make_quote(breakdown=[
            {"category": "substructure", "totalCost": 10000},
            {"category": "services", "totalCost": 10000},
            {"category": "preliminaries", "totalCost": 5000},
        ])

        errors = validate_quote(quote, now=fixed_now)

        assert codes(errors) == [ErrorCode.MISSING_NRM2_ELEMENTS]
        assert errors[0].message.endswith("superstructure, internal-finishes")
