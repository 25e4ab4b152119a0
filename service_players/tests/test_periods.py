"""
Tests for rating period helpers.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from service_players.app.periods import (
    expand,
    format_date,
    months_between,
    next_period,
    normalize,
    parse_date,
    shift_months,
)
from shared.errors import InvalidInputError


class TestNormalize:
    """Test cases for normalize."""

    def test_first_of_month(self):
        assert normalize(date(2024, 6, 15)) == date(2024, 6, 1)
        assert normalize(date(2024, 6, 1)) == date(2024, 6, 1)

    def test_idempotent(self):
        period = normalize(date(2024, 2, 29))
        assert normalize(period) == period

    def test_aware_datetime_uses_utc(self):
        """Test that an aware datetime is moved to UTC before truncating."""
        stockholm = timezone(timedelta(hours=2))
        value = datetime(2024, 7, 1, 0, 30, tzinfo=stockholm)

        assert normalize(value) == date(2024, 6, 1)

    def test_naive_datetime(self):
        assert normalize(datetime(2024, 12, 31, 23, 59)) == date(2024, 12, 1)


class TestExpand:
    """Test cases for expand."""

    def test_inclusive_ascending(self):
        assert expand(date(2024, 1, 15), date(2024, 3, 10)) == [
            date(2024, 1, 1),
            date(2024, 2, 1),
            date(2024, 3, 1),
        ]

    def test_crosses_year(self):
        assert expand(date(2023, 11, 30), date(2024, 2, 1)) == [
            date(2023, 11, 1),
            date(2023, 12, 1),
            date(2024, 1, 1),
            date(2024, 2, 1),
        ]

    def test_same_month(self):
        assert expand(date(2024, 5, 2), date(2024, 5, 30)) == [date(2024, 5, 1)]

    def test_reversed_is_empty(self):
        assert expand(date(2024, 3, 1), date(2024, 1, 1)) == []

    def test_months_between_matches_expand(self):
        start, end = date(2021, 4, 9), date(2024, 2, 3)
        assert months_between(start, end) == len(expand(start, end)) == 35
        assert months_between(end, start) == 0


class TestShiftMonths:
    """Test cases for shift_months."""

    def test_back_one_year(self):
        assert shift_months(date(2024, 6, 15), -12) == date(2023, 6, 15)

    def test_clamps_day(self):
        assert shift_months(date(2024, 3, 31), -1) == date(2024, 2, 29)
        assert shift_months(date(2023, 3, 31), -1) == date(2023, 2, 28)

    def test_forward_across_year(self):
        assert shift_months(date(2024, 11, 30), 3) == date(2025, 2, 28)


class TestParseDate:
    """Test cases for parse_date."""

    def test_full_date(self):
        assert parse_date("2024-06-15", date(2000, 1, 1)) == date(2024, 6, 15)

    def test_year_month(self):
        assert parse_date("2024-06", date(2000, 1, 1)) == date(2024, 6, 1)

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_empty_uses_default(self, text):
        assert parse_date(text, date(2024, 1, 1)) == date(2024, 1, 1)

    @pytest.mark.parametrize("text", ["yesterday", "2024-13-01", "2024/06/01", "15-06-2024"])
    def test_malformed_rejected(self, text):
        with pytest.raises(InvalidInputError) as exc_info:
            parse_date(text, date(2024, 1, 1))

        assert exc_info.value.details["expected"] == "YYYY-MM-DD or YYYY-MM"

    def test_format_date(self):
        assert format_date(date(2024, 6, 1)) == "2024-06-01"
        assert format_date(datetime(2024, 6, 9, 10, 0)) == "2024-06-09"


class TestYearBounds:
    """Test cases for dates at the edge of the supported calendar."""

    def test_expand_through_last_month(self):
        periods = expand(date(9999, 11, 1), date(9999, 12, 31))

        assert periods == [date(9999, 11, 1), date(9999, 12, 1)]

    def test_next_period_past_last_month(self):
        with pytest.raises(InvalidInputError):
            next_period(date(9999, 12, 1))

    def test_shift_months_before_first_year(self):
        with pytest.raises(InvalidInputError):
            shift_months(date(2024, 6, 15), -30000)

    def test_shift_months_to_last_month(self):
        assert shift_months(date(9999, 10, 31), 2) == date(9999, 12, 31)
