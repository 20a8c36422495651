# FinReco - Reconciliation & Fiscal Analytics engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
Financial health scoring and business KPIs for FinReco.

1. Health score
   ------------
   ``calculate_financial_health_score(snapshot)`` turns a
   ``FinancialSnapshot`` (balance sheet and income figures of a period,
   plus the previous period's revenue and net income) into a 0..100
   score made of five dimensions:

       liquidity      30 pts  current ratio, cash ratio
       profitability  25 pts  net margin, return on assets
       solvency       20 pts  debt-to-equity, debt-to-assets
       efficiency     15 pts  receivables turnover, asset turnover
       growth         10 pts  revenue growth, profit growth

   Each sub-metric is scored with an ordered ladder of breakpoints. The
   total is rounded and capped at 100, then rated:

       >= 80 excellent, >= 60 good, >= 40 acceptable, else needs attention

2. Recommendations
   ---------------
   ``generate_recommendations`` inspects the raw (unrounded) dimension
   scores and emits a recommendation for every weak dimension, plus a
   critical liquidity-risk item when the current ratio is below 1.

3. KPIs and profitability
   ----------------------
   ``calculate_business_kpis`` returns a flat list of ``KPI`` records
   (value, unit, benchmark) grouped by family, and
   ``analyze_profitability`` breaks a transaction list down by category,
   account or flow type.

Neutral defaults
----------------
Ratios whose denominator is zero fall back to neutral values instead of
failing: current and cash ratio 1 when there are no current liabilities,
debt-to-equity 5 when equity is not positive, debt-to-assets 1 and asset
turnover 1 without assets, receivables turnover 12 without revenue or
receivables, growth 0 when the previous figure is not positive.
"""

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

from .io import transactions_to_frame
from .models import (
    DimensionScore,
    HealthScore,
    Recommendation,
    normalize_transactions,
    to_float,
)

logger = logging.getLogger(__name__)

MAX_SCORES: dict[str, int] = {
    "liquidity": 30,
    "profitability": 25,
    "solvency": 20,
    "efficiency": 15,
    "growth": 10,
}

# Dimension score below which a recommendation is emitted.
RECOMMENDATION_THRESHOLDS: dict[str, float] = {
    "liquidity": 20,
    "profitability": 15,
    "solvency": 12,
    "efficiency": 10,
    "growth": 5,
}

RATINGS: tuple[tuple[int, str, str], ...] = (
    (80, "excellent", "The business shows exceptional financial health."),
    (60, "good", "The business has solid financial health."),
    (40, "acceptable", "The business has room for improvement in financial health."),
    (0, "needs attention", "The business needs urgent financial improvements."),
)

PROFITABILITY_GROUPS: tuple[str, ...] = ("category", "account", "type", "transaction_type")


@dataclass(frozen=True)
class FinancialSnapshot:
    """
    Financial figures of one period.

    Attributes are plain amounts in the reporting currency. ``previous_*``
    describe the prior period and drive the growth dimension.
    """

    current_assets: float = 0.0
    current_liabilities: float = 0.0
    total_assets: float = 0.0
    total_liabilities: float = 0.0
    revenue: float = 0.0
    expenses: float = 0.0
    net_income: float = 0.0
    cash_reserves: float = 0.0
    accounts_receivable: float = 0.0
    accounts_payable: float = 0.0
    previous_revenue: float = 0.0
    previous_net_income: float = 0.0
    previous_expenses: float = 0.0
    employee_count: int = 1
    customer_count: int = 0

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "FinancialSnapshot":
        """
        Build a snapshot from a mapping with snake_case or camelCase keys.

        Unknown keys are ignored and missing values default to 0.
        """
        values: dict[str, Any] = {}
        for f in fields(cls):
            camel = _camel(f.name)
            if f.name in raw:
                value = raw[f.name]
            elif camel in raw:
                value = raw[camel]
            else:
                continue
            number = to_float(value)
            values[f.name] = int(number) if f.type in (int, "int") else number
        return cls(**values)


@dataclass(frozen=True)
class KPI:
    """
    Business performance indicator.

    Attributes:
        group: KPI family ('financial', 'liquidity', 'efficiency', ...).
        key: Internal identifier (e.g. 'profit_margin').
        label: Human-readable label.
        value: Computed value.
        unit: Unit hint ('percent', 'ratio', 'times', 'days', 'amount').
        benchmark: Reference value for a healthy small business.
    """

    group: str
    key: str
    label: str
    value: float
    unit: str
    benchmark: float


def _camel(name: str) -> str:
    head, *tail = name.split("_")
    return head + "".join(part.capitalize() for part in tail)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _pct_growth(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return (current - previous) / previous * 100.0


# ---------------------------------------------------------------------------
# Sub-metric ladders
# ---------------------------------------------------------------------------


def _score_current_ratio(ratio: float) -> float:
    if ratio >= 2:
        return 15
    if ratio >= 1.5:
        return 12
    if ratio >= 1:
        return 8
    return max(0.0, ratio * 5)


def _score_cash_ratio(ratio: float) -> float:
    if ratio >= 0.5:
        return 15
    if ratio >= 0.3:
        return 12
    if ratio >= 0.1:
        return 8
    return max(0.0, ratio * 20)


def _score_profit_margin(margin_pct: float) -> float:
    if margin_pct >= 20:
        return 15
    if margin_pct >= 10:
        return 12
    if margin_pct >= 5:
        return 8
    if margin_pct > 0:
        return 5
    return 0


def _score_return_on_assets(roa_pct: float) -> float:
    if roa_pct >= 15:
        return 10
    if roa_pct >= 10:
        return 8
    if roa_pct >= 5:
        return 5
    if roa_pct > 0:
        return 3
    return 0


def _score_debt_to_equity(ratio: float) -> float:
    if ratio <= 0.5:
        return 12
    if ratio <= 1:
        return 10
    if ratio <= 2:
        return 6
    return max(0.0, 10 - ratio)


def _score_debt_to_assets(ratio: float) -> float:
    if ratio <= 0.3:
        return 8
    if ratio <= 0.5:
        return 6
    if ratio <= 0.7:
        return 4
    return max(0.0, 10 - ratio * 10)


def _score_receivables_turnover(turnover: float) -> float:
    if turnover >= 10:
        return 8
    if turnover >= 6:
        return 6
    if turnover >= 4:
        return 4
    return max(0.0, turnover)


def _score_asset_turnover(turnover: float) -> float:
    if turnover >= 2:
        return 7
    if turnover >= 1:
        return 5
    if turnover >= 0.5:
        return 3
    return max(0.0, turnover * 3)


def _score_growth(growth_pct: float) -> float:
    if growth_pct >= 20:
        return 5
    if growth_pct >= 10:
        return 4
    if growth_pct >= 5:
        return 3
    if growth_pct > 0:
        return 2
    return 0


# ---------------------------------------------------------------------------
# Health score
# ---------------------------------------------------------------------------


def compute_health_metrics(snapshot: FinancialSnapshot) -> dict[str, float]:
    """Ratios feeding the health score, with neutral defaults."""
    s = snapshot
    equity = s.total_assets - s.total_liabilities

    return {
        "current_ratio": (
            s.current_assets / s.current_liabilities if s.current_liabilities > 0 else 1.0
        ),
        "cash_ratio": (
            s.cash_reserves / s.current_liabilities if s.current_liabilities > 0 else 1.0
        ),
        "profit_margin": s.net_income / s.revenue * 100.0 if s.revenue > 0 else 0.0,
        "return_on_assets": (
            s.net_income / s.total_assets * 100.0 if s.total_assets > 0 else 0.0
        ),
        "debt_to_equity": s.total_liabilities / equity if equity > 0 else 5.0,
        "debt_to_assets": (
            s.total_liabilities / s.total_assets if s.total_assets > 0 else 1.0
        ),
        "receivables_turnover": (
            s.revenue / s.accounts_receivable
            if s.revenue > 0 and s.accounts_receivable > 0
            else 12.0
        ),
        "asset_turnover": s.revenue / s.total_assets if s.total_assets > 0 else 1.0,
        "revenue_growth": _pct_growth(s.revenue, s.previous_revenue),
        "profit_growth": _pct_growth(s.net_income, s.previous_net_income),
    }


def score_dimensions(metrics: Mapping[str, float]) -> dict[str, float]:
    """Raw (unrounded) score of each dimension."""
    return {
        "liquidity": _score_current_ratio(metrics["current_ratio"])
        + _score_cash_ratio(metrics["cash_ratio"]),
        "profitability": _score_profit_margin(metrics["profit_margin"])
        + _score_return_on_assets(metrics["return_on_assets"]),
        "solvency": _score_debt_to_equity(metrics["debt_to_equity"])
        + _score_debt_to_assets(metrics["debt_to_assets"]),
        "efficiency": _score_receivables_turnover(metrics["receivables_turnover"])
        + _score_asset_turnover(metrics["asset_turnover"]),
        "growth": _score_growth(metrics["revenue_growth"])
        + _score_growth(metrics["profit_growth"]),
    }


_DIMENSION_METRICS: dict[str, tuple[str, str]] = {
    "liquidity": ("current_ratio", "cash_ratio"),
    "profitability": ("profit_margin", "return_on_assets"),
    "solvency": ("debt_to_equity", "debt_to_assets"),
    "efficiency": ("receivables_turnover", "asset_turnover"),
    "growth": ("revenue_growth", "profit_growth"),
}


def rate_score(score: int) -> tuple[str, str]:
    """Return (rating, message) for a total score."""
    for floor, rating, message in RATINGS:
        if score >= floor:
            return rating, message
    return RATINGS[-1][1], RATINGS[-1][2]


def calculate_financial_health_score(snapshot: FinancialSnapshot) -> HealthScore:
    """
    Composite financial health score (0..100) with breakdown and
    recommendations.
    """
    metrics = compute_health_metrics(snapshot)
    raw_scores = score_dimensions(metrics)

    total = min(100, _round_half_up(sum(raw_scores.values())))
    rating, message = rate_score(total)

    breakdown = {
        name: DimensionScore(
            score=_round_half_up(raw_scores[name]),
            max_score=MAX_SCORES[name],
            metrics={key: round(metrics[key], 2) for key in _DIMENSION_METRICS[name]},
        )
        for name in MAX_SCORES
    }

    logger.debug(
        "Health score %d (%s): %s",
        total,
        rating,
        ", ".join(f"{k}={v:.1f}" for k, v in raw_scores.items()),
    )

    return HealthScore(
        score=total,
        rating=rating,
        message=message,
        breakdown=breakdown,
        recommendations=generate_recommendations(raw_scores, metrics["current_ratio"]),
    )


_RECOMMENDATIONS: dict[str, tuple[str, str, str, list[str]]] = {
    "liquidity": (
        "liquidity",
        "high",
        "Improve liquidity by cutting expenses or building cash reserves.",
        [
            "Negotiate better payment terms with suppliers",
            "Speed up collection of receivables",
            "Consider an emergency line of credit",
        ],
    ),
    "profitability": (
        "profitability",
        "high",
        "Increase profitability by optimizing costs and pricing.",
        [
            "Review and optimize operating costs",
            "Evaluate the pricing strategy",
            "Identify the most profitable products and services",
        ],
    ),
    "solvency": (
        "solvency",
        "high",
        "Reduce indebtedness to improve solvency.",
        [
            "Prioritize paying off high-interest debt",
            "Avoid taking on unnecessary new debt",
            "Consider refinancing expensive debt",
        ],
    ),
    "efficiency": (
        "efficiency",
        "medium",
        "Improve the operating efficiency of the business.",
        [
            "Put more effective collection processes in place",
            "Make better use of assets",
            "Automate repetitive processes",
        ],
    ),
    "growth": (
        "growth",
        "medium",
        "Focus on sustainable growth strategies.",
        [
            "Develop new product or service lines",
            "Invest in marketing and sales",
            "Explore new markets or segments",
        ],
    ),
}


def generate_recommendations(
    dimension_scores: Mapping[str, float], current_ratio: float
) -> list[Recommendation]:
    """
    Rule-based recommendations from raw dimension scores.

    Args:
        dimension_scores: Raw score per dimension (see ``score_dimensions``).
        current_ratio: Current assets / current liabilities.
    """
    recommendations = []
    for name, threshold in RECOMMENDATION_THRESHOLDS.items():
        if dimension_scores.get(name, 0.0) < threshold:
            category, priority, message, actions = _RECOMMENDATIONS[name]
            recommendations.append(
                Recommendation(
                    category=category,
                    priority=priority,
                    message=message,
                    actions=list(actions),
                )
            )

    if current_ratio < 1:
        recommendations.append(
            Recommendation(
                category="risk",
                priority="critical",
                message="The current ratio is low: short-term insolvency risk.",
                actions=[
                    "Review all non-essential expenses immediately",
                    "Look for emergency financing",
                    "Speed up the conversion of inventory to cash",
                ],
            )
        )

    return recommendations


# ---------------------------------------------------------------------------
# KPIs
# ---------------------------------------------------------------------------


def calculate_business_kpis(
    snapshot: FinancialSnapshot, transaction_count: int = 0
) -> list[KPI]:
    """
    Business KPIs of a period with their benchmarks.

    Args:
        snapshot: Financial figures of the period.
        transaction_count: Number of transactions of the period, used for
            the per-customer indicator.

    Returns:
        A list of KPI records, grouped (in order) as financial, liquidity,
        efficiency, growth, customer and employee indicators.
    """
    s = snapshot
    equity = s.total_assets - s.total_liabilities

    def ratio(numerator: float, denominator: float, default: float) -> float:
        return numerator / denominator if denominator > 0 else default

    profit_margin = ratio(s.net_income, s.revenue, 0.0) * 100.0
    receivables_turnover = ratio(s.revenue, s.accounts_receivable, 12.0)
    payables_turnover = ratio(s.expenses, s.accounts_payable, 12.0)

    rows: list[tuple[str, str, str, float, str, float]] = [
        ("financial", "profit_margin", "Profit margin", profit_margin, "percent", 10),
        (
            "financial",
            "gross_margin",
            "Gross margin",
            ratio(s.revenue - s.expenses, s.revenue, 0.0) * 100.0,
            "percent",
            30,
        ),
        (
            "financial",
            "return_on_assets",
            "Return on assets",
            ratio(s.net_income, s.total_assets, 0.0) * 100.0,
            "percent",
            10,
        ),
        (
            "financial",
            "return_on_equity",
            "Return on equity",
            ratio(s.net_income, equity, 0.0) * 100.0,
            "percent",
            20,
        ),
        (
            "liquidity",
            "current_ratio",
            "Current ratio",
            ratio(s.current_assets, s.current_liabilities, 1.0),
            "ratio",
            2,
        ),
        (
            "liquidity",
            "quick_ratio",
            "Quick ratio",
            ratio(s.cash_reserves + s.accounts_receivable, s.current_liabilities, 1.0),
            "ratio",
            1,
        ),
        (
            "liquidity",
            "cash_ratio",
            "Cash ratio",
            ratio(s.cash_reserves, s.current_liabilities, 1.0),
            "ratio",
            0.5,
        ),
        (
            "efficiency",
            "asset_turnover",
            "Asset turnover",
            ratio(s.revenue, s.total_assets, 0.0),
            "times",
            1,
        ),
        (
            "efficiency",
            "receivables_turnover",
            "Receivables turnover",
            receivables_turnover,
            "times",
            8,
        ),
        (
            "efficiency",
            "days_receivable_outstanding",
            "Days receivable outstanding",
            365.0 / receivables_turnover if receivables_turnover > 0 else 30.0,
            "days",
            45,
        ),
        (
            "efficiency",
            "payables_turnover",
            "Payables turnover",
            payables_turnover,
            "times",
            8,
        ),
        (
            "efficiency",
            "days_payable_outstanding",
            "Days payable outstanding",
            365.0 / payables_turnover if payables_turnover > 0 else 30.0,
            "days",
            45,
        ),
        (
            "growth",
            "revenue_growth",
            "Revenue growth",
            _pct_growth(s.revenue, s.previous_revenue),
            "percent",
            10,
        ),
        (
            "growth",
            "expense_growth",
            "Expense growth",
            _pct_growth(s.expenses, s.previous_expenses),
            "percent",
            5,
        ),
        (
            "customer",
            "revenue_per_customer",
            "Revenue per customer",
            ratio(s.revenue, s.customer_count, 0.0),
            "amount",
            10000,
        ),
        (
            "customer",
            "transactions_per_customer",
            "Transactions per customer",
            ratio(transaction_count, s.customer_count, 0.0),
            "ratio",
            5,
        ),
        (
            "employee",
            "revenue_per_employee",
            "Revenue per employee",
            ratio(s.revenue, s.employee_count, s.revenue),
            "amount",
            100000,
        ),
        (
            "employee",
            "profit_per_employee",
            "Profit per employee",
            ratio(s.net_income, s.employee_count, s.net_income),
            "amount",
            20000,
        ),
    ]

    return [
        KPI(
            group=group,
            key=key,
            label=label,
            value=round(float(value), 2),
            unit=unit,
            benchmark=float(benchmark),
        )
        for group, key, label, value, unit, benchmark in rows
    ]


# ---------------------------------------------------------------------------
# Profitability
# ---------------------------------------------------------------------------


def analyze_profitability(transactions: Any, group_by: str = "category") -> dict[str, Any]:
    """
    Revenue, expenses, profit and margin per group of transactions.

    Args:
        transactions: Transactions (or raw records).
        group_by: 'category', 'account', 'type' or 'transaction_type'.
            Transactions with an empty key are grouped as 'Unclassified'.

    Returns:
        {'groups': [...], 'total_revenue', 'total_expenses', 'total_profit',
        'total_margin', 'summary': {...}} with groups sorted by profit,
        highest first.

    Raises:
        ValueError: On an unsupported ``group_by``.
    """
    if group_by not in PROFITABILITY_GROUPS:
        raise ValueError(
            f"Unsupported group_by {group_by!r}; expected one of {PROFITABILITY_GROUPS}"
        )

    frame = transactions_to_frame(normalize_transactions(transactions))
    if frame.empty:
        return {
            "groups": [],
            "total_revenue": 0.0,
            "total_expenses": 0.0,
            "total_profit": 0.0,
            "total_margin": 0.0,
            "summary": {},
        }

    frame = frame.assign(
        key=frame[group_by].replace("", "Unclassified"),
        revenue=frame["amount"].clip(lower=0.0),
        expenses=(-frame["amount"]).clip(lower=0.0),
    )
    grouped = frame.groupby("key", sort=False).agg(
        revenue=("revenue", "sum"),
        expenses=("expenses", "sum"),
        transactions=("amount", "size"),
    )

    total_revenue = float(grouped["revenue"].sum())
    total_expenses = float(grouped["expenses"].sum())
    grouped["profit"] = grouped["revenue"] - grouped["expenses"]
    grouped = grouped.sort_values("profit", ascending=False, kind="stable")

    groups = []
    for name, row in grouped.iterrows():
        revenue = float(row["revenue"])
        expenses = float(row["expenses"])
        profit = float(row["profit"])
        groups.append(
            {
                "name": str(name),
                "revenue": round(revenue, 2),
                "expenses": round(expenses, 2),
                "transactions": int(row["transactions"]),
                "profit": round(profit, 2),
                "margin": round(profit / revenue * 100.0, 2) if revenue > 0 else 0.0,
                "revenue_share": (
                    round(revenue / total_revenue * 100.0, 2) if total_revenue > 0 else 0.0
                ),
                "expense_share": (
                    round(expenses / total_expenses * 100.0, 2)
                    if total_expenses > 0
                    else 0.0
                ),
            }
        )

    total_profit = total_revenue - total_expenses
    return {
        "groups": groups,
        "total_revenue": round(total_revenue, 2),
        "total_expenses": round(total_expenses, 2),
        "total_profit": round(total_profit, 2),
        "total_margin": (
            round(total_profit / total_revenue * 100.0, 2) if total_revenue > 0 else 0.0
        ),
        "summary": {
            "top_performer": groups[0]["name"],
            "top_performer_profit": groups[0]["profit"],
            "worst_performer": groups[-1]["name"],
            "worst_performer_profit": groups[-1]["profit"],
            "average_margin": round(sum(g["margin"] for g in groups) / len(groups), 2),
        },
    }
