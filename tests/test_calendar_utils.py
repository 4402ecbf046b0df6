"""
Test suite for calendar utilities

Due-day clamping, month-end capping and month-key arithmetic.
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from peer_lending.calendar_utils import (
    clamp_due_day, resolve_due_date, add_months, month_key, month_key_for,
    parse_month_key, month_index, to_date, start_of_day_utc, days_in_month,
    parse_iso_day, parse_iso_timestamp
)


class TestClampDueDay:
    """Test due-day coercion into 1..30"""

    def test_in_range_values_pass_through(self):
        assert clamp_due_day(1) == 1
        assert clamp_due_day(15) == 15
        assert clamp_due_day(30) == 30

    def test_out_of_range_values_are_clamped(self):
        assert clamp_due_day(0) == 1
        assert clamp_due_day(-5) == 1
        assert clamp_due_day(31) == 30
        assert clamp_due_day(1000) == 30

    def test_fractions_are_truncated(self):
        assert clamp_due_day(15.9) == 15
        assert clamp_due_day("12.7") == 12
        assert clamp_due_day(Decimal("29.99")) == 29

    def test_non_numeric_and_non_finite_become_one(self):
        """Garbage input never raises"""
        assert clamp_due_day(None) == 1
        assert clamp_due_day("abc") == 1
        assert clamp_due_day(float("nan")) == 1
        assert clamp_due_day(float("inf")) == 1
        assert clamp_due_day(True) == 1


class TestResolveDueDate:
    """Test due dates capped at the month's last day"""

    def test_regular_month(self):
        assert resolve_due_date(15, 2024, 3) == date(2024, 3, 15)

    def test_day_30_in_leap_february(self):
        assert resolve_due_date(30, 2024, 2) == date(2024, 2, 29)

    def test_day_30_in_common_february(self):
        assert resolve_due_date(30, 2023, 2) == date(2023, 2, 28)

    def test_day_30_in_thirty_day_month(self):
        assert resolve_due_date(30, 2024, 4) == date(2024, 4, 30)

    def test_invalid_due_day_is_clamped_first(self):
        assert resolve_due_date(45, 2024, 1) == date(2024, 1, 30)
        assert resolve_due_date("x", 2024, 1) == date(2024, 1, 1)

    def test_days_in_month(self):
        assert days_in_month(2024, 2) == 29
        assert days_in_month(2023, 12) == 31


class TestMonthArithmetic:
    """Test month keys and month shifting"""

    def test_add_months_within_year(self):
        assert add_months(2024, 1, 1) == (2024, 2)

    def test_add_months_across_year_end(self):
        assert add_months(2024, 12, 1) == (2025, 1)
        assert add_months(2024, 11, 14) == (2026, 1)

    def test_subtract_months(self):
        assert add_months(2024, 1, -1) == (2023, 12)

    def test_month_keys(self):
        assert month_key(date(2024, 2, 9)) == "2024-02"
        assert month_key_for(2025, 11) == "2025-11"

    def test_parse_month_key(self):
        assert parse_month_key("2024-02") == (2024, 2)

    def test_parse_invalid_month_key(self):
        with pytest.raises(ValueError):
            parse_month_key("2024-13")
        with pytest.raises(ValueError):
            parse_month_key("February")

    def test_month_index_orders_months(self):
        assert month_index(date(2023, 12, 31)) + 1 == month_index(date(2024, 1, 1))


class TestDateHelpers:
    """Test date reduction helpers"""

    def test_to_date_strips_time(self):
        value = datetime(2024, 2, 15, 23, 59, tzinfo=timezone.utc)
        assert to_date(value) == date(2024, 2, 15)
        assert to_date(date(2024, 2, 15)) == date(2024, 2, 15)

    def test_start_of_day_utc(self):
        result = start_of_day_utc(date(2024, 2, 15))
        assert result == datetime(2024, 2, 15, tzinfo=timezone.utc)
        assert result.tzinfo is timezone.utc


class TestIsoParsing:
    """Test strict day and timestamp parsing"""

    def test_parse_iso_day(self):
        assert parse_iso_day(" 2024-02-15 ") == date(2024, 2, 15)

    @pytest.mark.parametrize("text", ["20240215", "2024-W07-4", "2024-2-5", "2024-02-30", "15/02/2024"])
    def test_parse_iso_day_rejects_other_shapes(self, text):
        with pytest.raises(ValueError):
            parse_iso_day(text)

    def test_trailing_z_is_utc(self):
        result = parse_iso_timestamp("2024-02-20T10:00:00.000Z")
        assert result == datetime(2024, 2, 20, 10, 0, tzinfo=timezone.utc)

    def test_offset_is_kept(self):
        result = parse_iso_timestamp("2024-02-20T10:00:00+05:30")
        assert result.utcoffset().total_seconds() == 5.5 * 3600

    def test_bare_day_is_utc_midnight(self):
        assert parse_iso_timestamp("2024-02-20") == datetime(2024, 2, 20, tzinfo=timezone.utc)
