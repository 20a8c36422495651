# FinReco - Reconciliation & Fiscal Analytics engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Data model shared by every FinReco component.

This module defines:
- the normalized ledger ``Transaction`` consumed by all components,
- the fiscal inputs (``TaxBracket``, ``FiscalConfig``),
- the plain result records produced by the engine (matches, duplicate
  groups, forecasts, health scores, anomalies, tax figures).

Transactions
------------
Upstream collaborators use two conventions:

1) Signed amount
       amount > 0  → income
       amount < 0  → expense

2) Unsigned amount + flow type
       amount = 1500.0, type = "expense"

``Transaction.from_mapping()`` accepts both (Spanish labels ``ingreso``,
``gasto`` and ``egreso`` included) and always produces a transaction whose
signed ``amount`` agrees with its ``type``. The engine never mutates a
transaction once built.

Malformed records are tolerated: a missing or invalid amount becomes 0.0
and a missing or invalid date becomes ``None``. Date-based components skip
undated transactions instead of failing the whole computation.

Results
-------
All result records are frozen dataclasses exposing ``to_dict()``, which
returns a JSON-serializable structure (dates rendered as ISO strings).
"""

import math
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

import pandas as pd


class FlowType(str, Enum):
    """Direction of a money movement."""

    INCOME = "income"
    EXPENSE = "expense"


# Labels found in upstream data, mapped to the canonical flow type.
_FLOW_ALIASES: dict[str, FlowType] = {
    "income": FlowType.INCOME,
    "ingreso": FlowType.INCOME,
    "credit": FlowType.INCOME,
    "expense": FlowType.EXPENSE,
    "gasto": FlowType.EXPENSE,
    "egreso": FlowType.EXPENSE,
    "debit": FlowType.EXPENSE,
}


def parse_flow_type(value: Any) -> Optional[FlowType]:
    """Return the FlowType for a raw label, or None if it is not recognized."""
    if isinstance(value, FlowType):
        return value
    if value is None:
        return None
    return _FLOW_ALIASES.get(str(value).strip().lower())


def to_float(value: Any) -> float:
    """Best-effort float conversion; invalid or missing values become 0.0."""
    if value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def naive_utc(value: datetime) -> datetime:
    """Convert a timezone-aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is None or value.utcoffset() is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _to_date(value: Any) -> Optional[date]:
    """
    Best-effort date conversion.

    ``datetime`` values are kept (sub-day precision is used by the
    duplicate detector), ``date`` values are returned unchanged and strings
    are parsed with pandas. Timezone-aware values are converted to naive
    UTC so that every date of a ledger compares with every other one.
    Anything unparseable, pandas' ``NaT`` included, becomes None.
    """
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, datetime):
        return naive_utc(value)
    if isinstance(value, date):
        return value
    try:
        ts = pd.to_datetime(str(value), errors="raise")
    except (TypeError, ValueError):
        return None
    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    if ts.hour or ts.minute or ts.second or ts.microsecond:
        return ts.to_pydatetime()
    return ts.date()


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "si", "sí"}
    if value is None:
        return False
    try:
        return bool(value) and not (isinstance(value, float) and math.isnan(value))
    except (TypeError, ValueError):
        return False


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value)


def _jsonable(value: Any) -> Any:
    """Recursively convert a structure produced by ``asdict`` to JSON types."""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, float) and math.isinf(value):
        return None
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class _Record:
    """Mixin giving result dataclasses a JSON-friendly ``to_dict()``."""

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))  # type: ignore[call-overload]


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Transaction(_Record):
    """
    Normalized ledger transaction.

    Attributes:
        id: Identifier assigned by the persistence layer.
        date: Calendar date (or datetime) of the movement, None if unknown.
        amount: Signed amount (positive = income, negative = expense).
        type: Flow direction, always consistent with the sign of ``amount``
            (a zero amount keeps the declared type, income by default).
        category: Free-form category label.
        account: Account the movement was booked on.
        description: Bank or user description.
        is_deductible: Whether the expense is tax deductible.
        transaction_type: Optional tag ('transfer', 'business', 'personal').
        linked_transaction_id: Id of the other leg of a confirmed transfer.
    """

    id: Any
    date: Optional[date]
    amount: float
    type: FlowType
    category: str = ""
    account: str = ""
    description: str = ""
    is_deductible: bool = False
    transaction_type: str = ""
    linked_transaction_id: Any = None

    @property
    def abs_amount(self) -> float:
        return abs(self.amount)

    @property
    def is_income(self) -> bool:
        return self.type is FlowType.INCOME

    @property
    def is_transfer(self) -> bool:
        return self.transaction_type.lower() == "transfer"

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "Transaction":
        """
        Build a Transaction from a raw record using either sign convention.

        Recognized keys: id, date, amount, type, category, account,
        description, is_deductible, transaction_type, linked_transaction_id.
        ``category_name`` and ``account_name`` are accepted as aliases.

        When ``type`` is present and recognized, the sign of ``amount`` is
        forced to agree with it. Otherwise the sign of ``amount`` decides.
        """
        amount = to_float(raw.get("amount"))
        flow = parse_flow_type(raw.get("type"))

        if flow is None:
            flow = FlowType.EXPENSE if amount < 0 else FlowType.INCOME
        elif flow is FlowType.EXPENSE:
            amount = -abs(amount)
        else:
            amount = abs(amount)

        category = raw.get("category")
        if category is None:
            category = raw.get("category_name")
        account = raw.get("account")
        if account is None:
            account = raw.get("account_name")

        return cls(
            id=raw.get("id"),
            date=_to_date(raw.get("date")),
            amount=amount,
            type=flow,
            category=_text(category),
            account=_text(account),
            description=_text(raw.get("description")),
            is_deductible=_to_bool(raw.get("is_deductible")),
            transaction_type=_text(raw.get("transaction_type")),
            linked_transaction_id=raw.get("linked_transaction_id"),
        )


def normalize_transactions(records: Any) -> list[Transaction]:
    """
    Normalize a sequence of raw records into Transaction objects.

    Items that already are Transaction instances are kept unchanged.
    ``None`` input yields an empty list.
    """
    if records is None:
        return []
    out: list[Transaction] = []
    for item in records:
        if isinstance(item, Transaction):
            out.append(item)
        elif isinstance(item, Mapping):
            out.append(Transaction.from_mapping(item))
        else:
            raise TypeError(
                f"Unsupported transaction record type: {type(item).__name__}"
            )
    return out


# ---------------------------------------------------------------------------
# Fiscal inputs
# ---------------------------------------------------------------------------


class BracketPolicy(str, Enum):
    """
    How ISR is computed for an income above the top finite bracket bound.

    - EXTRAPOLATE: apply the last bracket's fee, lower limit and rate.
    - STRICT: the table must end with an unbounded bracket; an income that
      falls outside every bracket is an error.
    """

    EXTRAPOLATE = "extrapolate"
    STRICT = "strict"


@dataclass(frozen=True)
class TaxBracket(_Record):
    """
    One ISR tier.

    Attributes:
        lower_limit: Lower bound of the tier (income above it is taxed at rate).
        limit: Upper bound, None for the unbounded top tier.
        fixed_fee: Fixed fee ("cuota fija") owed at the lower bound.
        rate: Marginal rate applied to the excess over lower_limit (0..1).
    """

    lower_limit: float
    limit: Optional[float]
    fixed_fee: float
    rate: float

    @property
    def upper_bound(self) -> float:
        return math.inf if self.limit is None else float(self.limit)

    def contains(self, income: float) -> bool:
        return self.lower_limit <= income <= self.upper_bound


def _bracket(lower: float, limit: Optional[float], fee: float, rate: float):
    return TaxBracket(lower_limit=lower, limit=limit, fixed_fee=fee, rate=rate)


# SAT annual ISR table for individuals with business activity (2024).
DEFAULT_ISR_BRACKETS_2024: tuple[TaxBracket, ...] = (
    _bracket(0.00, 7735.00, 0.00, 0.0192),
    _bracket(7735.00, 65651.07, 148.51, 0.0640),
    _bracket(65651.07, 115375.90, 3855.14, 0.1088),
    _bracket(115375.90, 134119.41, 9265.20, 0.1600),
    _bracket(134119.41, 160577.65, 12264.16, 0.1792),
    _bracket(160577.65, 323862.00, 17005.47, 0.2136),
    _bracket(323862.00, 510451.00, 51883.01, 0.2352),
    _bracket(510451.00, 974535.03, 95768.74, 0.3000),
    _bracket(974535.03, 1299380.04, 234993.95, 0.3200),
    _bracket(1299380.04, 3898140.12, 338944.34, 0.3400),
    _bracket(3898140.12, None, 1222522.76, 0.3500),
)

DEFAULT_IVA_RATE = 0.16
DEFAULT_IVA_RETENTION_RATE = 0.1067


@dataclass(frozen=True)
class FiscalConfig:
    """
    Fiscal parameters for one computation.

    Attributes:
        isr_brackets: Ordered ISR table.
        iva_rate: General IVA rate (0.16 in Mexico).
        iva_retention_rate: IVA withheld by corporate clients (0.1067).
        bracket_policy: Behaviour above the top finite bracket bound.
    """

    isr_brackets: tuple[TaxBracket, ...] = DEFAULT_ISR_BRACKETS_2024
    iva_rate: float = DEFAULT_IVA_RATE
    iva_retention_rate: float = DEFAULT_IVA_RETENTION_RATE
    bracket_policy: BracketPolicy = BracketPolicy.EXTRAPOLATE


@dataclass(frozen=True)
class ValidationResult(_Record):
    """Outcome of a bracket-table validation."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    brackets: tuple[TaxBracket, ...] = ()


# ---------------------------------------------------------------------------
# Tax results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProvisionalPayment(_Record):
    """
    Provisional ISR payment computed with the cumulative method.

    ``effective_rate`` is cumulative_isr over cumulative_taxable, in percent.
    """

    period_income: float
    period_deductions: float
    period_taxable: float
    cumulative_income: float
    cumulative_deductions: float
    cumulative_taxable: float
    cumulative_isr: float
    previous_isr: float
    payment: float
    effective_rate: float


@dataclass(frozen=True)
class AnnualISR(_Record):
    income: float
    deductions: float
    taxable_base: float
    isr: float
    effective_rate: float


@dataclass(frozen=True)
class IVAResult(_Record):
    """IVA charged on income vs. creditable IVA on deductible expenses."""

    charged: float
    creditable: float
    payable: float
    credit_balance: float
    rate: float


@dataclass(frozen=True)
class TaxSummary(_Record):
    """Headline tax figures for a period, rounded to 2 decimals."""

    income: float
    deductions: float
    taxable_base: float
    isr: float
    iva: float
    total_tax: float
    effective_rate: float
    net_income: float


@dataclass(frozen=True)
class ScheduleEntry(_Record):
    """One row of a provisional payment schedule."""

    period: str
    start: date
    end: date
    due_date: date
    income: float
    deductions: float
    isr: float
    iva: float
    total: float
    cumulative_income: float
    cumulative_taxable: float


# ---------------------------------------------------------------------------
# Reconciliation results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MatchCandidate(_Record):
    """Two transactions believed to be both legs of one transfer."""

    tx1: Transaction
    tx2: Transaction
    amount_diff: float
    days_diff: float
    confidence: float
    kind: str = "transfer"


@dataclass(frozen=True)
class DuplicateCandidate(_Record):
    transaction: Transaction
    confidence: float
    similarity: float
    time_delta_hours: float


@dataclass(frozen=True)
class DuplicateGroup(_Record):
    """An original transaction and the likely re-entries of it."""

    original: Transaction
    duplicates: list[DuplicateCandidate]


@dataclass(frozen=True)
class BalanceReconciliation(_Record):
    account: str
    calculated_balance: float
    expected_balance: float
    discrepancy: float
    is_reconciled: bool
    status: str
    percent_diff: float


# ---------------------------------------------------------------------------
# Forecast results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ForecastPeriod(_Record):
    period_index: int
    month: str
    projected_income: float
    projected_expenses: float
    net_cash_flow: float
    projected_balance: float
    confidence: int


@dataclass(frozen=True)
class CashFlowForecast(_Record):
    """
    Cash-flow projection.

    ``trend`` is one of 'improving', 'declining', 'stable' or
    'insufficient_data' (in which case ``forecasts`` is empty).
    """

    forecasts: list[ForecastPeriod]
    trend: str
    trend_strength: float = 0.0
    historical_average: dict[str, float] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Health score results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Recommendation(_Record):
    category: str
    priority: str
    message: str
    actions: list[str]


@dataclass(frozen=True)
class DimensionScore(_Record):
    score: int
    max_score: int
    metrics: dict[str, float]


@dataclass(frozen=True)
class HealthScore(_Record):
    score: int
    rating: str
    message: str
    breakdown: dict[str, DimensionScore]
    recommendations: list[Recommendation]


# ---------------------------------------------------------------------------
# Anomalies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AnomalyRecord(_Record):
    """
    A transaction flagged as unusual.

    ``kind`` is 'unusually_high', 'unusually_low' or 'potential_duplicate';
    ``severity`` is 'low', 'medium' or 'high'.
    """

    transaction: Transaction
    kind: str
    severity: str
    message: str
    expected_range: Optional[tuple[float, float]] = None
    original: Optional[Transaction] = None
