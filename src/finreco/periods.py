# FinReco - Reconciliation & Fiscal Analytics engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Period helpers for FinReco.

This module defines a Period value object and helpers to derive the
fiscal periods used by Mexican provisional payments (calendar months and
quarters), their SAT due dates, and a filter restricting transactions to a
period.

SAT calendar rules implemented here:
- monthly / quarterly provisional payments are due on the 17th of the
  month following the end of the period,
- the annual declaration is due on 30 April of the following year.
"""

from calendar import monthrange
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime

from .models import Transaction, naive_utc

MONTH_NAMES: tuple[str, ...] = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

PAYMENT_DUE_DAY = 17


@dataclass
class Period:
    """Represents a reporting period with a human-readable label."""

    start: date
    end: date
    label: str

    def contains(self, day: date) -> bool:
        if isinstance(day, datetime):
            day = day.date()
        return self.start <= day <= self.end


def month_key(day: date) -> str:
    """Return the 'YYYY-MM' bucket key of a date."""
    return f"{day.year:04d}-{day.month:02d}"


def add_months(year: int, month: int, offset: int) -> tuple[int, int]:
    """Shift a (year, month) pair by ``offset`` months."""
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def period_month(year: int, month: int) -> Period:
    """Full calendar month."""
    last_day = monthrange(year, month)[1]
    return Period(
        start=date(year, month, 1),
        end=date(year, month, last_day),
        label=f"{MONTH_NAMES[month - 1]} {year}",
    )


def period_quarter(year: int, quarter: int) -> Period:
    """Calendar quarter (1..4)."""
    if quarter not in (1, 2, 3, 4):
        raise ValueError(f"Unknown quarter: {quarter!r}")
    first_month = 3 * (quarter - 1) + 1
    last_month = first_month + 2
    return Period(
        start=date(year, first_month, 1),
        end=date(year, last_month, monthrange(year, last_month)[1]),
        label=f"Q{quarter} {year}",
    )


def periods_for_year(year: int, frequency: str = "monthly") -> list[Period]:
    """
    All provisional-payment periods of a fiscal year.

    Args:
        year: Fiscal (calendar) year.
        frequency: 'monthly' (12 periods) or 'quarterly' (4 periods).
    """
    if frequency == "monthly":
        return [period_month(year, m) for m in range(1, 13)]
    if frequency == "quarterly":
        return [period_quarter(year, q) for q in range(1, 5)]
    raise ValueError(f"Unknown frequency: {frequency!r}")


def tax_due_date(year: int, month: int) -> date:
    """Due date of the provisional payment for ``month``: the 17th of the next month."""
    due_year, due_month = add_months(year, month, 1)
    return date(due_year, due_month, PAYMENT_DUE_DAY)


def quarterly_due_date(year: int, quarter: int) -> date:
    """Due date of a quarterly payment (17th of the month after quarter end)."""
    return tax_due_date(year, period_quarter(year, quarter).end.month)


def annual_declaration_due_date(year: int) -> date:
    """The annual declaration for ``year`` is due on 30 April of the next year."""
    return date(year + 1, 4, 30)


def tax_payment_calendar(year: int) -> list[dict[str, object]]:
    """
    SAT payment calendar of a year: twelve provisional payments plus the
    annual declaration.
    """
    calendar = [
        {
            "month": month,
            "period": f"{MONTH_NAMES[month - 1]} {year}",
            "payment_date": tax_due_date(year, month),
            "payment_type": "Provisional ISR & IVA",
        }
        for month in range(1, 13)
    ]
    calendar.append(
        {
            "month": 13,
            "period": f"Year {year}",
            "payment_date": annual_declaration_due_date(year),
            "payment_type": "Annual declaration",
        }
    )
    return calendar


def as_datetime(day: date) -> datetime:
    """Promote a date to a datetime at midnight (aware datetimes become naive UTC)."""
    if isinstance(day, datetime):
        return naive_utc(day)
    return datetime(day.year, day.month, day.day)


def hours_between(a: date, b: date) -> float:
    """Absolute elapsed time between two dates or datetimes, in hours."""
    return abs((as_datetime(a) - as_datetime(b)).total_seconds()) / 3600.0


def days_between(a: date, b: date) -> float:
    return hours_between(a, b) / 24.0


def filter_transactions_by_period(
    transactions: Iterable[Transaction], period: Period
) -> list[Transaction]:
    """Keep dated transactions falling in [start, end] (inclusive)."""
    return [t for t in transactions if t.date is not None and period.contains(t.date)]

