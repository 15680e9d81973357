"""Tests for calendar arithmetic (rental_kernel/domain/dates.py)."""

from datetime import date

import pytest

from rental_kernel.domain.dates import (
    add_months,
    add_years,
    days_in_month,
    default_term_end,
    first_of_month,
    month_label,
    rental_month_key,
)


class TestAddMonths:
    """Calendar-month addition with day clamping."""

    @pytest.mark.parametrize(
        "start, months, expected",
        [
            (date(2025, 1, 15), 1, date(2025, 2, 15)),
            (date(2025, 1, 31), 1, date(2025, 2, 28)),
            (date(2024, 1, 31), 1, date(2024, 2, 29)),
            (date(2025, 3, 31), 1, date(2025, 4, 30)),
            (date(2025, 12, 10), 1, date(2026, 1, 10)),
            (date(2025, 3, 31), -1, date(2025, 2, 28)),
            (date(2025, 1, 1), 24, date(2027, 1, 1)),
        ],
    )
    def test_clamps_to_month_length(self, start, months, expected):
        assert add_months(start, months) == expected

    def test_day_of_month_override(self):
        """An explicit day snaps the result, still clamped."""
        assert add_months(date(2025, 1, 5), 1, day_of_month=31) == date(2025, 2, 28)
        assert add_months(date(2025, 2, 28), 1, day_of_month=31) == date(2025, 3, 31)

    def test_zero_months_with_day_moves_within_month(self):
        assert add_months(date(2025, 2, 1), 0, day_of_month=30) == date(2025, 2, 28)

    def test_add_years_leap_day(self):
        assert add_years(date(2024, 2, 29), 1) == date(2025, 2, 28)


class TestTermHelpers:

    def test_default_term_is_one_year_less_a_day(self):
        assert default_term_end(date(2025, 1, 1)) == date(2025, 12, 31)
        assert default_term_end(date(2025, 3, 15)) == date(2026, 3, 14)

    def test_default_term_custom_length(self):
        assert default_term_end(date(2025, 1, 1), months=6) == date(2025, 6, 30)

    def test_days_in_month(self):
        assert days_in_month(2025, 2) == 28
        assert days_in_month(2024, 2) == 29
        assert days_in_month(2025, 12) == 31


class TestMonthKeys:

    def test_rental_month_key(self):
        assert rental_month_key(date(2025, 3, 31)) == "2025-03"
        assert rental_month_key(date(2025, 11, 1)) == "2025-11"

    def test_month_label(self):
        assert month_label(date(2025, 3, 15)) == "March 2025"
        assert month_label(date(2025, 3, 15), "%b %Y") == "Mar 2025"

    def test_first_of_month(self):
        assert first_of_month(date(2025, 3, 15)) == date(2025, 3, 1)
