# FinReco - Reconciliation & Fiscal Analytics engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Cash-flow forecasting for FinReco.

Historical transactions are aggregated into calendar months
(``aggregate_by_month``). Two ordinary-least-squares lines are fitted
over the monthly series, income vs. month index and expenses vs. month
index, and extended over the next ``periods`` months:

    projected_income   = max(0, slope_income   * idx + intercept_income)
    projected_expenses = max(0, slope_expense  * idx + intercept_expense)
    net_cash_flow      = projected_income - projected_expenses
    projected_balance  = previous balance + net_cash_flow

The running balance starts from ``opening_balance`` when given, otherwise
from the net result of the last historical month.

Confidence per projected month i (1-based):

    max(0.3, 0.9 - min(0.4, cv * 0.5) - (i - 1) * 0.1)

where ``cv`` is the coefficient of variation (population standard
deviation / mean) of the monthly income + expenses totals, 1 when the
mean is not positive. It is reported as an integer percentage and never
increases with the horizon.

Trend: 'improving' when the income slope exceeds the expense slope,
'declining' when it is lower, 'stable' otherwise. Fewer than two months
of history give 'insufficient_data' and no forecast.
"""

import logging
from collections.abc import Sequence
from datetime import date
from typing import Any, Optional

import pandas as pd

from .io import transactions_to_frame
from .metrics import ComputationMetrics, measured
from .models import CashFlowForecast, ForecastPeriod, normalize_transactions
from .periods import add_months, month_key

logger = logging.getLogger(__name__)

DEFAULT_PERIODS = 3
BASE_CONFIDENCE = 0.9
MIN_CONFIDENCE = 0.3
MAX_VARIABILITY_PENALTY = 0.4
DISTANCE_PENALTY = 0.1

MONTHLY_COLUMNS = ["month", "income", "expenses", "balance"]


def aggregate_by_month(transactions: Any) -> pd.DataFrame:
    """
    Monthly income / expenses / net balance, sorted chronologically.

    Returns:
        DataFrame with columns month ('YYYY-MM'), income, expenses and
        balance (income - expenses of the month). Undated transactions are
        ignored.
    """
    frame = transactions_to_frame(normalize_transactions(transactions))
    frame = frame.dropna(subset=["date"])
    if frame.empty:
        return pd.DataFrame(columns=MONTHLY_COLUMNS)

    frame = frame.assign(
        month=frame["date"].map(month_key),
        income=frame["amount"].clip(lower=0.0),
        expenses=(-frame["amount"]).clip(lower=0.0),
    )
    monthly = (
        frame.groupby("month", sort=True)[["income", "expenses"]].sum().reset_index()
    )
    monthly["balance"] = monthly["income"] - monthly["expenses"]
    return monthly[MONTHLY_COLUMNS]


def linear_regression(
    xs: Sequence[float], ys: Sequence[float]
) -> tuple[float, float]:
    """
    Ordinary least squares fit of ``y = slope * x + intercept``.

    Returns (0, 0) for an empty series; a series whose x values are all
    equal gets a zero slope and the mean of y as intercept.
    """
    n = len(xs)
    if n == 0:
        return 0.0, 0.0

    sum_x = float(sum(xs))
    sum_y = float(sum(ys))
    sum_xy = float(sum(x * y for x, y in zip(xs, ys)))
    sum_x2 = float(sum(x * x for x in xs))

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return 0.0, sum_y / n

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n
    return slope, intercept


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Population standard deviation over mean (1.0 when the mean is <= 0)."""
    series = pd.Series(list(values), dtype=float)
    if series.empty:
        return 1.0
    mean = series.mean()
    if mean <= 0:
        return 1.0
    return float(series.std(ddof=0) / mean)


def forecast_confidence(cv: float, periods_ahead: int) -> float:
    """Confidence (0..1) of the projection ``periods_ahead`` months out."""
    variability_penalty = min(MAX_VARIABILITY_PENALTY, cv * 0.5)
    distance_penalty = (periods_ahead - 1) * DISTANCE_PENALTY
    return max(MIN_CONFIDENCE, BASE_CONFIDENCE - variability_penalty - distance_penalty)


def _next_month_label(last_month: str, offset: int) -> str:
    year, month = (int(part) for part in last_month.split("-"))
    year, month = add_months(year, month, offset)
    return month_key(date(year, month, 1))


def forecast_cash_flow(
    transactions: Any,
    periods: int = DEFAULT_PERIODS,
    opening_balance: Optional[float] = None,
    metrics: Optional[ComputationMetrics] = None,
) -> CashFlowForecast:
    """
    Project income, expenses and balance for the next ``periods`` months.

    Args:
        transactions: Historical transactions (or raw records).
        periods: Number of future months to project.
        opening_balance: Balance the projection starts from. Defaults to
            the net result of the last historical month.
        metrics: Optional metrics context.

    Raises:
        ValueError: If ``periods`` is negative.
    """
    if periods < 0:
        raise ValueError(f"periods must be >= 0, got {periods}")

    with measured(metrics, "forecast.cash_flow"):
        monthly = aggregate_by_month(transactions)

        if len(monthly) < 2:
            logger.info(
                "Cash-flow forecast needs at least 2 months of history, got %d",
                len(monthly),
            )
            return CashFlowForecast(forecasts=[], trend="insufficient_data")

        xs = list(range(len(monthly)))
        income_slope, income_intercept = linear_regression(
            xs, monthly["income"].tolist()
        )
        expense_slope, expense_intercept = linear_regression(
            xs, monthly["expenses"].tolist()
        )
        cv = coefficient_of_variation(
            (monthly["income"] + monthly["expenses"]).tolist()
        )

        last_index = len(monthly) - 1
        last_month = str(monthly["month"].iloc[-1])
        balance = (
            float(monthly["balance"].iloc[-1])
            if opening_balance is None
            else float(opening_balance)
        )

        forecasts: list[ForecastPeriod] = []
        for i in range(1, periods + 1):
            index = last_index + i
            income = max(0.0, income_slope * index + income_intercept)
            expenses = max(0.0, expense_slope * index + expense_intercept)
            net = income - expenses
            balance += net

            forecasts.append(
                ForecastPeriod(
                    period_index=i,
                    month=_next_month_label(last_month, i),
                    projected_income=round(income, 2),
                    projected_expenses=round(expenses, 2),
                    net_cash_flow=round(net, 2),
                    projected_balance=round(balance, 2),
                    confidence=round(forecast_confidence(cv, i) * 100),
                )
            )

        if income_slope > expense_slope:
            trend = "improving"
        elif income_slope < expense_slope:
            trend = "declining"
        else:
            trend = "stable"

        logger.debug(
            "Cash-flow forecast over %d months of history: trend=%s cv=%.3f",
            len(monthly),
            trend,
            cv,
        )

        return CashFlowForecast(
            forecasts=forecasts,
            trend=trend,
            trend_strength=round(abs(income_slope - expense_slope), 2),
            historical_average={
                "income": round(float(monthly["income"].mean()), 2),
                "expenses": round(float(monthly["expenses"].mean()), 2),
            },
        )
