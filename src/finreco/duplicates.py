# FinReco - Reconciliation & Fiscal Analytics engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Fuzzy duplicate detection for FinReco.

Two transactions are considered duplicate postings of one economic event
when they have:

- the same absolute amount (compared to the cent),
- the same flow type,
- timestamps at most ``hour_tolerance`` hours apart,
- a description similarity of at least ``min_similarity`` (0.7).

Confidence = 50 + similarity * 40 + time bonus (0..10, larger as the gap
shrinks) + 20 when both are on the same account, clamped to [0, 100].

The first unclaimed transaction of a cluster (in input order) becomes the
group's original. Every transaction placed in a group is claimed and is
never considered again, neither as an original nor as a duplicate.

This detector is independent from the exact-key duplicate flag of
``finreco.anomalies``; the two may flag different sets.
"""

import logging
from typing import Any, Optional

from .metrics import ComputationMetrics, measured
from .models import (
    DuplicateCandidate,
    DuplicateGroup,
    Transaction,
    normalize_transactions,
)
from .periods import hours_between
from .similarity import string_similarity

logger = logging.getLogger(__name__)

DEFAULT_HOUR_TOLERANCE = 24
DEFAULT_MIN_SIMILARITY = 0.7


def duplicate_confidence(
    tx1: Transaction,
    tx2: Transaction,
    similarity: float,
    hours_diff: float,
    hour_tolerance: float,
) -> float:
    confidence = 50.0 + similarity * 40.0
    if hour_tolerance > 0:
        confidence += (1.0 - hours_diff / hour_tolerance) * 10.0
    if tx1.account == tx2.account:
        confidence += 20.0
    return min(100.0, max(0.0, confidence))


def find_duplicates(
    transactions: Any,
    hour_tolerance: float = DEFAULT_HOUR_TOLERANCE,
    min_similarity: float = DEFAULT_MIN_SIMILARITY,
    metrics: Optional[ComputationMetrics] = None,
) -> list[DuplicateGroup]:
    """
    Group likely duplicate postings.

    Returns:
        Groups sorted by the confidence of their best candidate, highest
        first; within a group, candidates are sorted by confidence. Sorting
        is stable, so ties keep input order.
    """
    txs = normalize_transactions(transactions)
    dated = [t for t in txs if t.date is not None]
    if len(dated) < len(txs):
        logger.warning(
            "Skipping %d undated transaction(s) in duplicate detection",
            len(txs) - len(dated),
        )

    groups: list[DuplicateGroup] = []
    claimed: set[int] = set()

    with measured(metrics, "duplicates.find_duplicates", len(dated)):
        for i, original in enumerate(dated):
            if i in claimed:
                continue

            candidates: list[tuple[int, DuplicateCandidate]] = []
            for j in range(i + 1, len(dated)):
                if j in claimed:
                    continue
                other = dated[j]

                if round(original.abs_amount, 2) != round(other.abs_amount, 2):
                    continue
                if original.type is not other.type:
                    continue
                hours_diff = hours_between(original.date, other.date)
                if hours_diff > hour_tolerance:
                    continue
                similarity = string_similarity(original.description, other.description)
                if similarity < min_similarity:
                    continue

                candidates.append(
                    (
                        j,
                        DuplicateCandidate(
                            transaction=other,
                            confidence=duplicate_confidence(
                                original, other, similarity, hours_diff, hour_tolerance
                            ),
                            similarity=similarity,
                            time_delta_hours=hours_diff,
                        ),
                    )
                )

            if not candidates:
                continue

            claimed.add(i)
            claimed.update(j for j, _ in candidates)
            duplicates = sorted(
                (c for _, c in candidates), key=lambda c: c.confidence, reverse=True
            )
            groups.append(DuplicateGroup(original=original, duplicates=duplicates))

    groups.sort(key=lambda g: g.duplicates[0].confidence, reverse=True)
    logger.debug(
        "Duplicate detection: %d transactions, %d group(s)", len(dated), len(groups)
    )
    return groups
