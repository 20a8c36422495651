from datetime import date, datetime, timedelta, timezone

import pytest

import finreco.periods as periods
from finreco.models import Transaction


def test_filter_transactions_by_period_skips_undated() -> None:
    txs = [
        Transaction.from_mapping({"id": 1, "date": "2024-02-10", "amount": 1}),
        Transaction.from_mapping({"id": 2, "date": None, "amount": 1}),
        Transaction.from_mapping({"id": 3, "date": "2024-03-01", "amount": 1}),
    ]
    kept = periods.filter_transactions_by_period(txs, periods.period_month(2024, 2))
    assert [t.id for t in kept] == [1]


def test_period_month_handles_leap_year() -> None:
    p = periods.period_month(2024, 2)
    assert p.start == date(2024, 2, 1)
    assert p.end == date(2024, 2, 29)
    assert p.label == "February 2024"


def test_period_quarter_bounds_and_validation() -> None:
    q4 = periods.period_quarter(2024, 4)
    assert q4.start == date(2024, 10, 1)
    assert q4.end == date(2024, 12, 31)

    with pytest.raises(ValueError):
        periods.period_quarter(2024, 5)


def test_periods_for_year() -> None:
    assert len(periods.periods_for_year(2024, "monthly")) == 12
    assert [p.label for p in periods.periods_for_year(2024, "quarterly")] == [
        "Q1 2024",
        "Q2 2024",
        "Q3 2024",
        "Q4 2024",
    ]
    with pytest.raises(ValueError):
        periods.periods_for_year(2024, "weekly")


@pytest.mark.parametrize(
    "year, month, expected",
    [
        (2024, 1, date(2024, 2, 17)),
        (2024, 11, date(2024, 12, 17)),
        (2024, 12, date(2025, 1, 17)),
    ],
)
def test_tax_due_date_is_17th_of_next_month(year: int, month: int, expected: date) -> None:
    assert periods.tax_due_date(year, month) == expected


def test_quarterly_and_annual_due_dates() -> None:
    assert periods.quarterly_due_date(2024, 1) == date(2024, 4, 17)
    assert periods.quarterly_due_date(2024, 4) == date(2025, 1, 17)
    assert periods.annual_declaration_due_date(2024) == date(2025, 4, 30)


def test_tax_payment_calendar() -> None:
    calendar = periods.tax_payment_calendar(2024)

    assert len(calendar) == 13
    assert calendar[0]["payment_date"] == date(2024, 2, 17)
    assert calendar[-1]["payment_type"] == "Annual declaration"
    assert calendar[-1]["payment_date"] == date(2025, 4, 30)


def test_add_months_and_month_key() -> None:
    assert periods.add_months(2024, 11, 3) == (2025, 2)
    assert periods.add_months(2024, 1, -1) == (2023, 12)
    assert periods.month_key(date(2024, 3, 9)) == "2024-03"


def test_hours_between_mixes_dates_and_datetimes() -> None:
    assert periods.hours_between(date(2024, 1, 10), datetime(2024, 1, 10, 12)) == 12.0
    assert periods.days_between(date(2024, 1, 10), date(2024, 1, 7)) == 3.0


def test_hours_between_compares_aware_and_naive_datetimes() -> None:
    aware = datetime(2024, 1, 10, 4, tzinfo=timezone(timedelta(hours=-6)))
    assert periods.hours_between(aware, datetime(2024, 1, 10, 12)) == 2.0
    assert periods.as_datetime(aware) == datetime(2024, 1, 10, 10)
