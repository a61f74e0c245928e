"""Unit tests for month keys (payroll_kernel.domain.periods)."""

from datetime import date

import pytest

from payroll_kernel.domain.periods import (
    current_month,
    days_in_month,
    is_future_month,
    month_end,
    month_of,
    month_start,
    parse_month,
)
from payroll_kernel.exceptions import ValidationError


class TestParseMonth:

    def test_valid(self):
        assert parse_month("2025-01") == (2025, 1)

    @pytest.mark.parametrize("raw", ["2025-13", "2025-00", "2025-1", "25-01", "", "2025/01"])
    def test_invalid(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            parse_month(raw)
        assert exc_info.value.field == "month"


class TestMonthBounds:

    def test_days_in_month(self):
        assert days_in_month("2025-01") == 31
        assert days_in_month("2025-04") == 30
        assert days_in_month("2025-02") == 28

    def test_leap_february(self):
        assert days_in_month("2024-02") == 29
        assert month_end("2024-02") == date(2024, 2, 29)

    def test_month_start(self):
        assert month_start("2025-03") == date(2025, 3, 1)

    def test_month_of(self):
        assert month_of(date(2025, 1, 10)) == "2025-01"
        assert current_month(date(2025, 12, 31)) == "2025-12"


class TestIsFutureMonth:

    def test_current_month_is_not_future(self):
        assert not is_future_month("2025-06", date(2025, 6, 15))

    def test_past_month(self):
        assert not is_future_month("2024-12", date(2025, 6, 15))

    def test_next_month(self):
        assert is_future_month("2025-07", date(2025, 6, 30))

    def test_year_rollover(self):
        assert is_future_month("2026-01", date(2025, 12, 31))
        assert not is_future_month("2025-12", date(2026, 1, 1))
