# FinReco - Reconciliation & Fiscal Analytics engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Account reconciliation for FinReco.

This module detects transactions booked on two different accounts that
are likely the two legs of one transfer, reconciles account balances
against a statement balance, and builds reconciliation reports.

Transfer matching
-----------------
A pair (tx1, tx2) is a candidate when:

- one leg is income and the other an expense,
- the accounts differ,
- ``| |a1| - |a2| | <= amount_tolerance * |a1|``,
- the dates are at most ``day_tolerance`` days apart.

Confidence starts at 100, loses up to 20 points for the amount tolerance
consumed and up to 20 points for the day tolerance consumed, gains up to
10 points for description similarity and 10 points if both legs are
already tagged as transfers. It is clamped to [0, 100].

Matching is greedy: transactions are scanned in input order and the first
acceptable partner of a transaction is taken. A transaction consumed by a
match is never paired again. The result is therefore not a globally
optimal assignment, and it depends on input order when candidates tie.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any, Optional

from .metrics import ComputationMetrics, measured
from .models import (
    BalanceReconciliation,
    DuplicateGroup,
    MatchCandidate,
    Transaction,
    normalize_transactions,
)
from .periods import days_between
from .similarity import string_similarity

logger = logging.getLogger(__name__)

DEFAULT_DAY_TOLERANCE = 3
DEFAULT_AMOUNT_TOLERANCE = 0.01
LINK_SUGGESTION_THRESHOLD = 70.0
RECONCILED_TOLERANCE = 0.01


def match_confidence(
    tx1: Transaction,
    tx2: Transaction,
    amount_diff: float,
    days_diff: float,
    day_tolerance: float,
    amount_tolerance: float,
) -> float:
    """Confidence (0..100) that two transactions are legs of one transfer."""
    confidence = 100.0

    max_amount_diff = tx1.abs_amount * amount_tolerance
    if max_amount_diff > 0:
        confidence -= amount_diff / max_amount_diff * 20.0

    if day_tolerance > 0:
        confidence -= days_diff / day_tolerance * 20.0

    confidence += string_similarity(tx1.description, tx2.description) * 10.0

    if tx1.is_transfer and tx2.is_transfer:
        confidence += 10.0

    return min(100.0, max(0.0, confidence))


def _is_candidate(
    tx1: Transaction,
    tx2: Transaction,
    day_tolerance: float,
    amount_tolerance: float,
) -> Optional[tuple[float, float]]:
    """Return (amount_diff, days_diff) if the pair qualifies, else None."""
    if tx1.type is tx2.type:
        return None
    if tx1.account == tx2.account:
        return None

    amount_diff = abs(tx1.abs_amount - tx2.abs_amount)
    if amount_diff > tx1.abs_amount * amount_tolerance:
        return None

    days_diff = days_between(tx1.date, tx2.date)
    if days_diff > day_tolerance:
        return None

    return amount_diff, days_diff


def match_transactions(
    transactions: Any,
    day_tolerance: float = DEFAULT_DAY_TOLERANCE,
    amount_tolerance: float = DEFAULT_AMOUNT_TOLERANCE,
    min_confidence: float = 0.0,
    metrics: Optional[ComputationMetrics] = None,
) -> list[MatchCandidate]:
    """
    Find likely inter-account transfers.

    Args:
        transactions: Transactions (or raw records) in input order.
        day_tolerance: Maximum date gap, in days.
        amount_tolerance: Maximum amount gap, as a fraction of ``|tx1|``.
        min_confidence: Matches below this confidence are left out of the
            result (they still consume their transactions).
        metrics: Optional metrics context.

    Returns:
        Matches sorted by confidence, highest first (stable for ties).
        Undated transactions are never matched.
    """
    txs = normalize_transactions(transactions)
    dated = [t for t in txs if t.date is not None]
    if len(dated) < len(txs):
        logger.warning(
            "Skipping %d undated transaction(s) in transfer matching",
            len(txs) - len(dated),
        )

    matches: list[MatchCandidate] = []
    consumed: set[int] = set()

    with measured(metrics, "matching.match_transactions", len(dated)):
        for i, tx1 in enumerate(dated):
            if i in consumed:
                continue
            for j in range(i + 1, len(dated)):
                if j in consumed:
                    continue
                tx2 = dated[j]
                diffs = _is_candidate(tx1, tx2, day_tolerance, amount_tolerance)
                if diffs is None:
                    continue

                amount_diff, days_diff = diffs
                matches.append(
                    MatchCandidate(
                        tx1=tx1,
                        tx2=tx2,
                        amount_diff=round(amount_diff, 2),
                        days_diff=days_diff,
                        confidence=match_confidence(
                            tx1,
                            tx2,
                            amount_diff,
                            days_diff,
                            day_tolerance,
                            amount_tolerance,
                        ),
                    )
                )
                consumed.add(i)
                consumed.add(j)
                break

    matches.sort(key=lambda m: m.confidence, reverse=True)
    result = [m for m in matches if m.confidence >= min_confidence]
    logger.debug(
        "Transfer matching: %d transactions, %d matches (%d above %.1f)",
        len(dated),
        len(matches),
        len(result),
        min_confidence,
    )
    return result


def suggest_transfer_links(
    matches: Iterable[MatchCandidate],
    threshold: float = LINK_SUGGESTION_THRESHOLD,
) -> list[dict[str, Any]]:
    """
    Suggest tagging high-confidence matches as linked transfers.

    Only matches strictly above ``threshold`` are suggested.
    """
    return [
        {
            "tx1_id": m.tx1.id,
            "tx2_id": m.tx2.id,
            "suggested_type": "transfer",
            "confidence": m.confidence,
            "linked_transaction_id": m.tx2.id,
        }
        for m in matches
        if m.confidence > threshold
    ]


def reconcile_account_balance(
    transactions: Any, expected_balance: float, account: str = ""
) -> BalanceReconciliation:
    """
    Compare the balance implied by ``transactions`` with a statement balance.

    The account is reconciled when the discrepancy is below one cent.
    ``percent_diff`` is relative to the expected balance (0 when it is 0).
    """
    txs = normalize_transactions(transactions)
    calculated = sum(t.abs_amount if t.is_income else -t.abs_amount for t in txs)
    discrepancy = expected_balance - calculated
    is_reconciled = abs(discrepancy) < RECONCILED_TOLERANCE
    percent_diff = discrepancy / expected_balance * 100.0 if expected_balance else 0.0

    if not is_reconciled:
        logger.info(
            "Account %r does not reconcile: expected %.2f, calculated %.2f",
            account,
            expected_balance,
            calculated,
        )

    return BalanceReconciliation(
        account=account,
        calculated_balance=round(calculated, 2),
        expected_balance=round(expected_balance, 2),
        discrepancy=round(discrepancy, 2),
        is_reconciled=is_reconciled,
        status="reconciled" if is_reconciled else "discrepancy",
        percent_diff=round(percent_diff, 2),
    )


def reconcile_accounts(
    transactions: Any, expected_balances: Mapping[str, float]
) -> list[BalanceReconciliation]:
    """Reconcile every account listed in ``expected_balances``."""
    txs = normalize_transactions(transactions)
    return [
        reconcile_account_balance(
            [t for t in txs if t.account == account], float(expected), account
        )
        for account, expected in expected_balances.items()
    ]


def reconciliation_stats(transactions: Any) -> dict[str, Any]:
    """
    Transfer / unmatched counts, overall and per account.

    A transaction is unmatched when it is neither tagged as a transfer nor
    linked to another transaction.
    """
    txs = normalize_transactions(transactions)

    def _unmatched(tx: Transaction) -> bool:
        return not tx.linked_transaction_id and not tx.is_transfer

    by_account: dict[str, dict[str, int]] = {}
    for tx in txs:
        stats = by_account.setdefault(
            tx.account or "No account", {"total": 0, "transfers": 0, "unmatched": 0}
        )
        stats["total"] += 1
        if tx.is_transfer:
            stats["transfers"] += 1
        if _unmatched(tx):
            stats["unmatched"] += 1

    total = len(txs)
    unmatched = sum(1 for t in txs if _unmatched(t))
    return {
        "total_transactions": total,
        "total_transfers": sum(1 for t in txs if t.is_transfer),
        "total_unmatched": unmatched,
        "matched_percentage": (total - unmatched) / total * 100.0 if total else 0.0,
        "account_stats": by_account,
    }


def _tx_summary(tx: Transaction, with_account: bool = True) -> dict[str, Any]:
    summary = {
        "id": tx.id,
        "date": tx.date.isoformat() if tx.date is not None else None,
        "description": tx.description,
        "amount": tx.amount,
    }
    if with_account:
        summary["account"] = tx.account
    return summary


def build_reconciliation_report(
    matches: Iterable[MatchCandidate],
    duplicate_groups: Iterable[DuplicateGroup] = (),
    balances: Iterable[BalanceReconciliation] = (),
) -> dict[str, Any]:
    """Assemble matches, duplicate groups and balance checks into one report."""
    matches = list(matches)
    groups = list(duplicate_groups)
    balances = list(balances)

    return {
        "summary": {
            "total_matches": len(matches),
            "total_duplicates": sum(len(g.duplicates) for g in groups),
            "accounts_reconciled": sum(1 for b in balances if b.is_reconciled),
            "accounts_with_discrepancy": sum(
                1 for b in balances if not b.is_reconciled
            ),
        },
        "matches": [
            {
                "tx1": _tx_summary(m.tx1),
                "tx2": _tx_summary(m.tx2),
                "confidence": m.confidence,
                "kind": m.kind,
            }
            for m in matches
        ],
        "duplicates": [
            {
                "original": _tx_summary(g.original, with_account=False),
                "duplicates": [
                    {"id": d.transaction.id, "confidence": d.confidence}
                    for d in g.duplicates
                ],
            }
            for g in groups
        ],
        "account_balances": [b.to_dict() for b in balances],
    }
