from datetime import date, datetime, timezone as dt_timezone

import pytest

from invoicing.exceptions import ValidationError
from invoicing.services.dates import as_date, calculate_due_date, calculate_next_run_date, current_date


class TestDueDate:
    @pytest.mark.parametrize("terms,expected", [
        ("due_on_receipt", date(2025, 1, 15)),
        ("net_7", date(2025, 1, 22)),
        ("net_30", date(2025, 2, 14)),
        ("net_60", date(2025, 3, 16)),
    ])
    def test_terms_table(self, terms, expected):
        assert calculate_due_date(date(2025, 1, 15), terms) == expected

    def test_custom_terms_use_given_date(self):
        assert calculate_due_date(date(2025, 1, 15), "custom", date(2025, 4, 1)) == date(2025, 4, 1)

    def test_unknown_terms_default_to_thirty_days(self):
        assert calculate_due_date(date(2025, 1, 1), None) == date(2025, 1, 31)


class TestNextRunDate:
    def test_month_end_anchor_clamps_then_restores(self):
        feb = calculate_next_run_date(date(2025, 1, 31), "monthly", anchor_day=31)
        assert feb == date(2025, 2, 28)
        assert calculate_next_run_date(feb, "monthly", anchor_day=31) == date(2025, 3, 31)

    def test_leap_year(self):
        assert calculate_next_run_date(date(2024, 1, 31), "monthly", anchor_day=31) == date(2024, 2, 29)

    def test_weekly_interval(self):
        assert calculate_next_run_date(date(2025, 1, 1), "weekly", interval_count=2) == date(2025, 1, 15)

    def test_quarterly_and_annual(self):
        assert calculate_next_run_date(date(2025, 11, 30), "quarterly", anchor_day=30) == date(2026, 2, 28)
        assert calculate_next_run_date(date(2024, 2, 29), "annual") == date(2025, 2, 28)

    def test_unknown_frequency_rejected(self):
        with pytest.raises(ValidationError) as exc:
            calculate_next_run_date(date(2025, 1, 1), "fortnightly")
        assert "frequency" in exc.value.errors

    def test_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            calculate_next_run_date(date(2025, 1, 1), "daily", interval_count=-1)


def test_as_date_accepts_iso_strings_and_datetimes():
    assert as_date("2025-03-04") == date(2025, 3, 4)
    assert as_date(datetime(2025, 3, 4, 9)) == date(2025, 3, 4)
    assert as_date(None) is None
    with pytest.raises(ValidationError):
        as_date("04/03/2025")


def test_current_date_from_aware_clock():
    assert current_date(lambda: datetime(2025, 6, 1, 23, tzinfo=dt_timezone.utc)) == date(2025, 6, 1)
