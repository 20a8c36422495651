# FinReco - Reconciliation & Fiscal Analytics engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Anomaly detection for FinReco.

Two independent detectors are combined by ``detect_anomalies``:

1) Statistical outliers (``detect_outliers``)
   Transactions are grouped by category (empty category: 'uncategorized').
   For each category with at least 5 transactions, Q1 and Q3 of the
   absolute amounts are taken by index on the sorted values (no
   interpolation), and amounts outside [Q1 - 1.5 IQR, Q3 + 1.5 IQR] are
   flagged:
   - above the upper bound: 'unusually_high', severity 'high' when more
     than twice the bound, 'medium' otherwise,
   - positive and below the lower bound: 'unusually_low', severity 'low'.

2) Exact repeats (``detect_exact_duplicates``)
   A transaction whose (date, amount, description) equals an earlier
   transaction's is flagged 'potential_duplicate' (severity 'medium') and
   points to that earlier transaction.

The exact-repeat detector is not the fuzzy detector of
``finreco.duplicates``; the two can flag different transactions.
"""

import logging
import math
from typing import Any, Optional

from .metrics import ComputationMetrics, measured
from .models import AnomalyRecord, Transaction, normalize_transactions

logger = logging.getLogger(__name__)

MIN_CATEGORY_SIZE = 5
IQR_FACTOR = 1.5
UNCATEGORIZED = "uncategorized"


def index_quartiles(values: list[float]) -> tuple[float, float]:
    """Q1 and Q3 as ``sorted[floor(n * 0.25)]`` and ``sorted[floor(n * 0.75)]``."""
    ordered = sorted(values)
    n = len(ordered)
    return ordered[math.floor(n * 0.25)], ordered[math.floor(n * 0.75)]


def detect_outliers(transactions: Any) -> list[AnomalyRecord]:
    """Per-category IQR outliers, in input order."""
    txs = normalize_transactions(transactions)

    amounts_by_category: dict[str, list[float]] = {}
    for tx in txs:
        amounts_by_category.setdefault(tx.category or UNCATEGORIZED, []).append(
            tx.abs_amount
        )

    bounds: dict[str, tuple[float, float]] = {}
    for category, amounts in amounts_by_category.items():
        if len(amounts) < MIN_CATEGORY_SIZE:
            continue
        q1, q3 = index_quartiles(amounts)
        iqr = q3 - q1
        bounds[category] = (q1 - IQR_FACTOR * iqr, q3 + IQR_FACTOR * iqr)

    anomalies: list[AnomalyRecord] = []
    for tx in txs:
        category = tx.category or UNCATEGORIZED
        if category not in bounds:
            continue
        lower, upper = bounds[category]
        amount = tx.abs_amount

        if amount > upper:
            anomalies.append(
                AnomalyRecord(
                    transaction=tx,
                    kind="unusually_high",
                    severity="high" if amount > upper * 2 else "medium",
                    message=f"Unusually high amount for category {category}",
                    expected_range=(lower, upper),
                )
            )
        elif 0 < amount < lower:
            anomalies.append(
                AnomalyRecord(
                    transaction=tx,
                    kind="unusually_low",
                    severity="low",
                    message=f"Unusually low amount for category {category}",
                    expected_range=(lower, upper),
                )
            )

    return anomalies


def detect_exact_duplicates(transactions: Any) -> list[AnomalyRecord]:
    """
    Flag transactions repeating an earlier (date, amount, description).

    Undated transactions are skipped.
    """
    seen: dict[tuple[Any, float, str], Transaction] = {}
    anomalies: list[AnomalyRecord] = []

    for tx in normalize_transactions(transactions):
        if tx.date is None:
            continue
        key = (tx.date, round(tx.amount, 2), tx.description)
        original = seen.get(key)
        if original is None:
            seen[key] = tx
            continue
        anomalies.append(
            AnomalyRecord(
                transaction=tx,
                kind="potential_duplicate",
                severity="medium",
                message="Potential duplicate transaction",
                original=original,
            )
        )

    return anomalies


def detect_anomalies(
    transactions: Any, metrics: Optional[ComputationMetrics] = None
) -> list[AnomalyRecord]:
    """Statistical outliers followed by exact repeats."""
    txs = normalize_transactions(transactions)
    with measured(metrics, "anomalies.detect", len(txs)):
        outliers = detect_outliers(txs)
        repeats = detect_exact_duplicates(txs)

    logger.debug(
        "Anomaly detection: %d outlier(s), %d exact repeat(s) over %d transactions",
        len(outliers),
        len(repeats),
        len(txs),
    )
    return outliers + repeats
