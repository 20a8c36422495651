# FinReco - Reconciliation & Fiscal Analytics engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Mexican tax calculations (ISR / IVA) for FinReco.

This module implements:
- progressive ISR over an ordered bracket table,
- provisional payments with the cumulative-subtraction method,
- IVA charged / creditable / payable with credit balance,
- tax summaries built from raw figures or from a transaction list,
- a yearly provisional payment schedule with SAT due dates,
- validation and export of ISR bracket tables.

Rounding
--------
Every monetary figure is rounded to 2 decimals at the end of each named
operation (not only on final output), so that chained computations give
the same figures as the bookkeeping product they feed.

Bracket coverage
----------------
An income above the top finite bound of the table is handled according
to ``BracketPolicy``:

- EXTRAPOLATE (default): the last bracket's fee, lower limit and rate
  apply,
- STRICT: ``BracketCoverageError`` is raised.

A valid table (see ``validate_brackets``) ends with an unbounded bracket,
so both policies agree on it.
"""

import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Optional

from .io import transactions_to_frame
from .metrics import ComputationMetrics, measured
from .models import (
    DEFAULT_ISR_BRACKETS_2024,
    DEFAULT_IVA_RATE,
    AnnualISR,
    BracketPolicy,
    FiscalConfig,
    IVAResult,
    ProvisionalPayment,
    ScheduleEntry,
    TaxBracket,
    TaxSummary,
    Transaction,
    ValidationResult,
    normalize_transactions,
)
from .periods import filter_transactions_by_period, periods_for_year, tax_due_date

logger = logging.getLogger(__name__)

# Tolerance used when checking that bracket bounds line up. SAT tables are
# published with ``lower_limit = previous limit + 0.01``.
BRACKET_TOLERANCE = 0.01

TAX_SCENARIOS: tuple[tuple[str, float], ...] = (
    ("No deductions", 0.0),
    ("Minimum deductions (20%)", 0.20),
    ("Moderate deductions (30%)", 0.30),
    ("Optimal deductions (40%)", 0.40),
)


class BracketCoverageError(ValueError):
    """Raised under the STRICT policy when no bracket covers an income."""


def _round2(value: float) -> float:
    return round(float(value), 2)


# ---------------------------------------------------------------------------
# ISR
# ---------------------------------------------------------------------------


def find_bracket(
    income: float,
    brackets: Sequence[TaxBracket] = DEFAULT_ISR_BRACKETS_2024,
    policy: BracketPolicy = BracketPolicy.EXTRAPOLATE,
) -> TaxBracket:
    """
    Return the bracket applying to ``income``.

    Brackets are scanned in ascending order and the first one whose
    ``[lower_limit, limit]`` contains the income wins (a boundary value
    therefore belongs to the lower bracket).

    Raises:
        ValueError: If the table is empty.
        BracketCoverageError: Under the STRICT policy, if no bracket
            contains the income.
    """
    if not brackets:
        raise ValueError("ISR bracket table is empty.")

    for bracket in brackets:
        if bracket.contains(income):
            return bracket

    if policy is BracketPolicy.STRICT:
        raise BracketCoverageError(
            f"No ISR bracket covers an income of {income:.2f} "
            f"(table ends at {brackets[-1].upper_bound})."
        )

    # Extrapolate: highest bracket starting at or below the income.
    applicable = brackets[0]
    for bracket in brackets:
        if income >= bracket.lower_limit:
            applicable = bracket
    logger.debug(
        "Income %.2f outside the ISR table, using bracket starting at %.2f",
        income,
        applicable.lower_limit,
    )
    return applicable


def calculate_isr(
    taxable_income: float,
    brackets: Sequence[TaxBracket] = DEFAULT_ISR_BRACKETS_2024,
    policy: BracketPolicy = BracketPolicy.EXTRAPOLATE,
) -> float:
    """
    Progressive ISR on a taxable base.

    tax = fixed_fee + (income - lower_limit) * rate, floored at 0.

    Args:
        taxable_income: Taxable base (income minus deductions).
        brackets: Ordered ISR table.
        policy: Behaviour above the top finite bound.

    Returns:
        The tax, rounded to 2 decimals. A base <= 0 gives 0.
    """
    if taxable_income <= 0:
        return 0.0

    bracket = find_bracket(taxable_income, brackets, policy)
    tax = bracket.fixed_fee + (taxable_income - bracket.lower_limit) * bracket.rate
    return _round2(max(0.0, tax))


def calculate_effective_rate(total_tax: float, total_income: float) -> float:
    """Tax as a percentage of income (0 when income <= 0)."""
    if total_income <= 0:
        return 0.0
    return _round2(total_tax / total_income * 100.0)


def calculate_provisional_isr(
    period_income: float,
    period_deductions: float,
    accumulated_income: float = 0.0,
    accumulated_deductions: float = 0.0,
    brackets: Sequence[TaxBracket] = DEFAULT_ISR_BRACKETS_2024,
    policy: BracketPolicy = BracketPolicy.EXTRAPOLATE,
    metrics: Optional[ComputationMetrics] = None,
) -> ProvisionalPayment:
    """
    Provisional ISR payment with the cumulative-subtraction method.

    The year-to-date taxable base (previous periods plus the current one)
    is taxed, the tax on the previous year-to-date base is subtracted, and
    the non-negative difference is the payment due for the period. Income
    already taxed in earlier periods is therefore never taxed twice.

    ``effective_rate`` is the year-to-date ISR as a percentage of the
    year-to-date taxable base, not the period payment over period income.

    Args:
        period_income: Income of the current period.
        period_deductions: Deductible expenses of the current period.
        accumulated_income: Income of the previous periods of the year.
        accumulated_deductions: Deductions of the previous periods.
        brackets: Ordered ISR table.
        policy: Behaviour above the top finite bound.
        metrics: Optional metrics context.
    """
    with measured(metrics, "tax.provisional_isr"):
        previous_taxable = max(0.0, accumulated_income - accumulated_deductions)
        cumulative_income = accumulated_income + period_income
        cumulative_deductions = accumulated_deductions + period_deductions
        cumulative_taxable = max(0.0, cumulative_income - cumulative_deductions)

        cumulative_isr = calculate_isr(cumulative_taxable, brackets, policy)
        previous_isr = calculate_isr(previous_taxable, brackets, policy)
        payment = _round2(max(0.0, cumulative_isr - previous_isr))

        return ProvisionalPayment(
            period_income=_round2(period_income),
            period_deductions=_round2(period_deductions),
            period_taxable=_round2(max(0.0, period_income - period_deductions)),
            cumulative_income=_round2(cumulative_income),
            cumulative_deductions=_round2(cumulative_deductions),
            cumulative_taxable=_round2(cumulative_taxable),
            cumulative_isr=cumulative_isr,
            previous_isr=previous_isr,
            payment=payment,
            effective_rate=calculate_effective_rate(cumulative_isr, cumulative_taxable),
        )


def calculate_monthly_isr(
    monthly_income: float,
    monthly_deductions: float,
    accumulated_income: float = 0.0,
    accumulated_deductions: float = 0.0,
    brackets: Sequence[TaxBracket] = DEFAULT_ISR_BRACKETS_2024,
    policy: BracketPolicy = BracketPolicy.EXTRAPOLATE,
    metrics: Optional[ComputationMetrics] = None,
) -> ProvisionalPayment:
    """Monthly provisional ISR (``accumulated_*`` cover January..previous month)."""
    return calculate_provisional_isr(
        monthly_income,
        monthly_deductions,
        accumulated_income,
        accumulated_deductions,
        brackets,
        policy,
        metrics,
    )


def calculate_quarterly_isr(
    quarterly_income: float,
    quarterly_deductions: float,
    accumulated_income: float = 0.0,
    accumulated_deductions: float = 0.0,
    brackets: Sequence[TaxBracket] = DEFAULT_ISR_BRACKETS_2024,
    policy: BracketPolicy = BracketPolicy.EXTRAPOLATE,
    metrics: Optional[ComputationMetrics] = None,
) -> ProvisionalPayment:
    """Quarterly provisional ISR (``accumulated_*`` cover the previous quarters)."""
    return calculate_provisional_isr(
        quarterly_income,
        quarterly_deductions,
        accumulated_income,
        accumulated_deductions,
        brackets,
        policy,
        metrics,
    )


def calculate_annualized_monthly_isr(
    monthly_income: float,
    monthly_deductions: float,
    brackets: Sequence[TaxBracket] = DEFAULT_ISR_BRACKETS_2024,
    policy: BracketPolicy = BracketPolicy.EXTRAPOLATE,
) -> float:
    """
    Monthly ISR estimate: annualize the month, tax it, divide by 12.

    Useful for a quick monthly estimate when no year-to-date figures are
    available.
    """
    annual_base = max(0.0, monthly_income * 12 - monthly_deductions * 12)
    return _round2(calculate_isr(annual_base, brackets, policy) / 12)


def calculate_annual_isr(
    income: float,
    deductions: float,
    brackets: Sequence[TaxBracket] = DEFAULT_ISR_BRACKETS_2024,
    policy: BracketPolicy = BracketPolicy.EXTRAPOLATE,
) -> AnnualISR:
    taxable_base = max(0.0, income - deductions)
    isr = calculate_isr(taxable_base, brackets, policy)
    return AnnualISR(
        income=_round2(income),
        deductions=_round2(deductions),
        taxable_base=_round2(taxable_base),
        isr=isr,
        effective_rate=calculate_effective_rate(isr, income),
    )


# ---------------------------------------------------------------------------
# IVA
# ---------------------------------------------------------------------------


def calculate_iva(
    income: float, deductible_expenses: float, rate: float = DEFAULT_IVA_RATE
) -> IVAResult:
    """
    IVA charged on income minus IVA creditable on deductible expenses.

    When the creditable IVA exceeds the charged IVA, ``payable`` is 0 and
    the excess is reported as ``credit_balance``.
    """
    charged = _round2(income * rate)
    creditable = _round2(deductible_expenses * rate)
    return IVAResult(
        charged=charged,
        creditable=creditable,
        payable=_round2(max(0.0, charged - creditable)),
        credit_balance=_round2(max(0.0, creditable - charged)),
        rate=rate,
    )


def calculate_iva_retention(
    amount: float,
    rate: Optional[float] = None,
    fiscal_config: Optional[FiscalConfig] = None,
) -> float:
    """
    IVA withheld by a corporate client on an invoiced amount.

    Without an explicit ``rate`` the configured
    ``FiscalConfig.iva_retention_rate`` applies (0.1067 by default).
    """
    if rate is None:
        rate = (fiscal_config or FiscalConfig()).iva_retention_rate
    return _round2(amount * rate)


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


def calculate_tax_summary(
    income: float,
    deductions: float,
    fiscal_config: Optional[FiscalConfig] = None,
    metrics: Optional[ComputationMetrics] = None,
) -> TaxSummary:
    """
    Headline tax figures for a period.

    ISR is computed on ``max(0, income - deductions)`` and IVA payable on
    income vs. deductions; the total tax is their sum.
    """
    config = fiscal_config or FiscalConfig()
    with measured(metrics, "tax.summary"):
        taxable_base = max(0.0, income - deductions)
        isr = calculate_isr(taxable_base, config.isr_brackets, config.bracket_policy)
        iva = calculate_iva(income, deductions, config.iva_rate).payable
        total_tax = _round2(isr + iva)

        return TaxSummary(
            income=_round2(income),
            deductions=_round2(deductions),
            taxable_base=_round2(taxable_base),
            isr=isr,
            iva=iva,
            total_tax=total_tax,
            effective_rate=calculate_effective_rate(total_tax, income),
            net_income=_round2(income - total_tax),
        )


def split_income_and_deductions(
    transactions: Iterable[Transaction],
) -> tuple[float, float]:
    """
    Return (income, deductible expenses) of a transaction list.

    Transfers between own accounts are neither income nor deductions.
    """
    income = 0.0
    deductions = 0.0
    for tx in transactions:
        if tx.is_transfer:
            continue
        if tx.is_income:
            income += tx.abs_amount
        elif tx.is_deductible:
            deductions += tx.abs_amount
    return income, deductions


def summarize_transactions(
    transactions: Any,
    fiscal_config: Optional[FiscalConfig] = None,
    metrics: Optional[ComputationMetrics] = None,
) -> TaxSummary:
    """Build the TaxSummary of a transaction list."""
    txs = normalize_transactions(transactions)
    income, deductions = split_income_and_deductions(txs)
    logger.debug(
        "Tax summary over %d transactions: income=%.2f deductions=%.2f",
        len(txs),
        income,
        deductions,
    )
    return calculate_tax_summary(income, deductions, fiscal_config, metrics)


def provisional_schedule(
    transactions: Any,
    fiscal_config: Optional[FiscalConfig],
    year: int,
    frequency: str = "monthly",
    metrics: Optional[ComputationMetrics] = None,
) -> list[ScheduleEntry]:
    """
    Provisional payment schedule of a fiscal year.

    For each period of ``year`` (12 months or 4 quarters), the ISR payment
    is computed with the cumulative-subtraction method over the income and
    deductions accumulated since January, and the IVA payable of the period
    is added. Each entry carries its SAT due date.

    Raises:
        ValueError: On an unknown ``frequency``.
    """
    config = fiscal_config or FiscalConfig()
    periods = periods_for_year(year, frequency)
    txs = normalize_transactions(transactions)

    undated = sum(1 for t in txs if t.date is None)
    if undated:
        logger.warning("Skipping %d undated transaction(s) in schedule", undated)

    schedule: list[ScheduleEntry] = []
    accumulated_income = 0.0
    accumulated_deductions = 0.0

    with measured(metrics, f"tax.schedule.{frequency}", len(txs)):
        for period in periods:
            income, deductions = split_income_and_deductions(
                filter_transactions_by_period(txs, period)
            )
            payment = calculate_provisional_isr(
                income,
                deductions,
                accumulated_income,
                accumulated_deductions,
                config.isr_brackets,
                config.bracket_policy,
            )
            iva = calculate_iva(income, deductions, config.iva_rate).payable
            accumulated_income += income
            accumulated_deductions += deductions

            schedule.append(
                ScheduleEntry(
                    period=period.label,
                    start=period.start,
                    end=period.end,
                    due_date=tax_due_date(period.end.year, period.end.month),
                    income=_round2(income),
                    deductions=_round2(deductions),
                    isr=payment.payment,
                    iva=iva,
                    total=_round2(payment.payment + iva),
                    cumulative_income=payment.cumulative_income,
                    cumulative_taxable=payment.cumulative_taxable,
                )
            )

    return schedule


def calculate_tax_savings(
    income_with_deductions: float,
    income_without_deductions: float,
    brackets: Sequence[TaxBracket] = DEFAULT_ISR_BRACKETS_2024,
    policy: BracketPolicy = BracketPolicy.EXTRAPOLATE,
) -> dict[str, float]:
    """
    ISR saved thanks to deductions.

    Args:
        income_with_deductions: Taxable base after deductions.
        income_without_deductions: Taxable base without any deduction.

    Returns:
        {'savings': ..., 'savings_percent': ...} where the percentage is
        relative to ``income_without_deductions``.
    """
    with_deductions = calculate_isr(income_with_deductions, brackets, policy)
    without_deductions = calculate_isr(income_without_deductions, brackets, policy)
    savings = without_deductions - with_deductions
    percent = (
        savings / income_without_deductions * 100.0
        if income_without_deductions > 0
        else 0.0
    )
    return {"savings": _round2(savings), "savings_percent": _round2(percent)}


def calculate_tax_scenarios(
    base_income: float, fiscal_config: Optional[FiscalConfig] = None
) -> list[dict[str, Any]]:
    """Tax summaries of ``base_income`` at 0 / 20 / 30 / 40 % deduction rates."""
    scenarios = []
    for name, deduction_rate in TAX_SCENARIOS:
        summary = calculate_tax_summary(
            base_income, base_income * deduction_rate, fiscal_config
        )
        scenarios.append(
            {
                "name": name,
                "deduction_rate": round(deduction_rate * 100),
                **summary.to_dict(),
            }
        )
    return scenarios


def calculate_deduction_percentage(
    total_expenses: float, deductible_expenses: float
) -> float:
    """Share of expenses that are deductible, in percent."""
    if total_expenses <= 0:
        return 0.0
    return _round2(deductible_expenses / total_expenses * 100.0)


def expense_breakdown(transactions: Any) -> list[dict[str, Any]]:
    """
    Expenses grouped by category, largest total first.

    Each row: category, total, deductible (deductible part of the total),
    count, is_deductible (True if any expense of the category is).
    Expenses without a category are grouped under 'Uncategorized'.
    """
    frame = transactions_to_frame(normalize_transactions(transactions))
    expenses = frame.loc[frame["type"] == "expense"].copy()
    if expenses.empty:
        return []

    expenses["category"] = expenses["category"].replace("", "Uncategorized")
    expenses["abs_amount"] = expenses["amount"].abs()
    expenses["deductible_amount"] = expenses["abs_amount"].where(
        expenses["is_deductible"], 0.0
    )

    grouped = expenses.groupby("category", sort=False).agg(
        total=("abs_amount", "sum"),
        deductible=("deductible_amount", "sum"),
        count=("abs_amount", "size"),
        is_deductible=("is_deductible", "any"),
    )
    grouped = grouped.sort_values("total", ascending=False, kind="stable")

    return [
        {
            "category": str(category),
            "total": _round2(row["total"]),
            "deductible": _round2(row["deductible"]),
            "count": int(row["count"]),
            "is_deductible": bool(row["is_deductible"]),
        }
        for category, row in grouped.iterrows()
    ]


# ---------------------------------------------------------------------------
# Bracket table validation
# ---------------------------------------------------------------------------

# Accepted spellings of each bracket field (snake_case and camelCase).
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "lower_limit": ("lower_limit", "lowerLimit"),
    "limit": ("limit",),
    "fixed_fee": ("fixed_fee", "fixedFee"),
    "rate": ("rate",),
}


def _lookup(raw: Mapping[str, Any], field: str) -> tuple[bool, Any]:
    for key in _FIELD_ALIASES[field]:
        if key in raw:
            return True, raw[key]
    return False, None


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and not math.isnan(value)
    )


def _parse_bracket(
    raw: Any, position: int, errors: list[str]
) -> Optional[TaxBracket]:
    """Parse one raw bracket, appending messages to ``errors`` on failure."""
    if isinstance(raw, TaxBracket):
        raw = {
            "lower_limit": raw.lower_limit,
            "limit": raw.limit,
            "fixed_fee": raw.fixed_fee,
            "rate": raw.rate,
        }
    if not isinstance(raw, Mapping):
        errors.append(f"Bracket {position}: must be a mapping")
        return None

    before = len(errors)
    values: dict[str, Any] = {}

    for field in ("lower_limit", "fixed_fee", "rate"):
        present, value = _lookup(raw, field)
        if not present or value is None:
            errors.append(f"Bracket {position}: {field} is required")
        elif not _is_number(value):
            errors.append(f"Bracket {position}: {field} must be a number")
        else:
            values[field] = float(value)

    # A missing / None / infinite limit marks the unbounded top bracket.
    _, limit = _lookup(raw, "limit")
    if limit is not None and not _is_number(limit):
        errors.append(f"Bracket {position}: limit must be a number")
    elif limit is not None and not math.isinf(limit):
        values["limit"] = float(limit)
    else:
        values["limit"] = None

    rate = values.get("rate")
    if rate is not None and not 0.0 <= rate <= 1.0:
        errors.append(f"Bracket {position}: rate must be between 0 and 1")
    fee = values.get("fixed_fee")
    if fee is not None and fee < 0:
        errors.append(f"Bracket {position}: fixed_fee cannot be negative")
    lower = values.get("lower_limit")
    if lower is not None and lower < 0:
        errors.append(f"Bracket {position}: lower_limit cannot be negative")
    if lower is not None and values["limit"] is not None and values["limit"] < lower:
        errors.append(
            f"Bracket {position}: limit must be greater than or equal to lower_limit"
        )

    if len(errors) > before:
        return None
    return TaxBracket(
        lower_limit=values["lower_limit"],
        limit=values["limit"],
        fixed_fee=values["fixed_fee"],
        rate=values["rate"],
    )


def _check_table(brackets: list[TaxBracket], errors: list[str]) -> None:
    """Ordering / contiguity / coverage checks over parsed brackets."""
    first = brackets[0]
    if abs(first.lower_limit) > BRACKET_TOLERANCE:
        errors.append("Bracket 1: lower_limit must be 0")

    for position, (prev, current) in enumerate(
        zip(brackets, brackets[1:]), start=2
    ):
        if prev.limit is None:
            errors.append(
                f"Bracket {position - 1}: only the last bracket may be unbounded"
            )
            continue
        if current.lower_limit < prev.lower_limit:
            errors.append(
                f"Bracket {position}: brackets must be ordered by lower_limit "
                "ascending"
            )
        elif round(abs(current.lower_limit - prev.limit), 2) > BRACKET_TOLERANCE:
            errors.append(
                f"Bracket {position}: lower_limit {current.lower_limit:.2f} does "
                f"not continue the previous limit {prev.limit:.2f}"
            )

    if brackets[-1].limit is not None:
        errors.append(
            f"Bracket {len(brackets)}: the last bracket must be unbounded "
            "(omit its limit)"
        )


def validate_brackets(raw: Any) -> ValidationResult:
    """
    Validate an ISR bracket table.

    Accepts a list of ``TaxBracket`` objects or of mappings using either
    snake_case (``lower_limit``, ``fixed_fee``) or camelCase
    (``lowerLimit``, ``fixedFee``) keys. An omitted, None or infinite
    ``limit`` marks the unbounded top bracket.

    Checks per bracket: required numeric fields, rate in [0, 1],
    non-negative fixed fee and lower limit, limit >= lower_limit.
    Checks over the table: first lower limit 0, ascending order,
    contiguity (one-cent tolerance), only the last bracket unbounded.

    The function never raises: problems are reported in
    ``ValidationResult.errors``. ``brackets`` is filled only when the
    table is valid.
    """
    if not isinstance(raw, (list, tuple)):
        return ValidationResult(is_valid=False, errors=["ISR brackets must be a list"])
    if len(raw) == 0:
        return ValidationResult(
            is_valid=False, errors=["ISR brackets cannot be empty"]
        )

    errors: list[str] = []
    parsed = [_parse_bracket(item, i, errors) for i, item in enumerate(raw, start=1)]

    if not errors:
        _check_table([b for b in parsed if b is not None], errors)

    if errors:
        logger.debug("ISR bracket table rejected: %s", "; ".join(errors))
        return ValidationResult(is_valid=False, errors=errors)

    return ValidationResult(
        is_valid=True, errors=[], brackets=tuple(b for b in parsed if b is not None)
    )


def brackets_to_records(brackets: Iterable[TaxBracket]) -> list[dict[str, Any]]:
    """
    Export a bracket table as plain records.

    ``validate_brackets(brackets_to_records(table))`` is valid and yields
    the same values for any valid table.
    """
    return [
        {
            "lower_limit": b.lower_limit,
            "limit": b.limit,
            "fixed_fee": b.fixed_fee,
            "rate": b.rate,
        }
        for b in brackets
    ]
