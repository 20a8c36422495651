# FinReco - Reconciliation & Fiscal Analytics engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
I/O module for FinReco.

This module reads ledger transactions from a CSV export and normalizes
them into ``Transaction`` objects, and converts transaction lists into a
pandas DataFrame for the aggregation steps of the engine.

Expected input formats
----------------------

Three input layouts are supported (column names are case-insensitive):

1) Signed amount
       date, amount, description[, category, account, ...]

2) Unsigned amount + flow type
       date, amount, type, description[, ...]
   where ``type`` is income / expense (or ingreso / gasto / egreso).

3) Debit / credit
       date, debit, credit, description[, ...]
   The signed amount is computed as ``credit - debit``.

Optional columns: id, category, account, is_deductible, transaction_type,
linked_transaction_id. When ``id`` is absent, the 1-based row number is
used. The column ``label`` is accepted as an alias for ``description``.

Malformed values
----------------
A missing structure (no date column, no amount information) raises a
ValueError. Individual malformed values do not: an unparseable amount
becomes 0.0 and an unparseable date becomes None, so a single bad row
does not abort a whole report. The number of such rows is logged.
"""

import logging
import os
from collections.abc import Iterable
from typing import Union

import pandas as pd

from .models import Transaction

logger = logging.getLogger(__name__)

FRAME_COLUMNS: tuple[str, ...] = (
    "id",
    "date",
    "amount",
    "type",
    "category",
    "account",
    "description",
    "is_deductible",
    "transaction_type",
)


def read_transactions(path: Union[str, "os.PathLike[str]"]) -> list[Transaction]:
    """
    Read ledger transactions from a CSV file and normalize them.

    Parameters
    ----------
    path:
        Path to the CSV file.

    Returns
    -------
    list[Transaction]
        One transaction per CSV row, in file order.

    Raises
    ------
    ValueError
        If the CSV does not contain a date column and amount information
        (either ``amount`` or ``debit`` + ``credit``).
    """
    df = pd.read_csv(path, dtype=str, keep_default_na=False)

    # Normalize column names to lowercase (to make the check case-insensitive)
    df.columns = [c.lower().strip() for c in df.columns]
    cols = set(df.columns)

    if "label" in cols and "description" not in cols:
        df = df.rename(columns={"label": "description"})
        cols = set(df.columns)

    if "date" not in cols:
        raise ValueError("Invalid transactions CSV: missing 'date' column.")

    if "amount" not in cols:
        if {"debit", "credit"}.issubset(cols):
            debit = pd.to_numeric(df["debit"], errors="coerce").fillna(0.0)
            credit = pd.to_numeric(df["credit"], errors="coerce").fillna(0.0)
            df["amount"] = (credit - debit).astype(float)
        else:
            raise ValueError(
                "Invalid transactions CSV structure. Expected either:\n"
                "  - date, amount, description (signed amount)\n"
                "  - date, amount, type, description\n"
                "  - date, debit, credit, description\n"
                "(column names are case-insensitive; 'label' is accepted as an "
                "alias for 'description')."
            )

    if "id" not in cols:
        df["id"] = [str(i) for i in range(1, len(df) + 1)]

    # Empty CSV cells become None so that defaults apply downstream.
    records = [
        {k: (None if v == "" else v) for k, v in row.items()}
        for row in df.to_dict(orient="records")
    ]
    transactions = [Transaction.from_mapping(r) for r in records]

    undated = sum(1 for t in transactions if t.date is None)
    if undated:
        logger.warning("%d transaction(s) in %s have no valid date", undated, path)
    logger.debug("Read %d transactions from %s", len(transactions), path)

    return transactions


def transactions_to_frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
    """
    Convert transactions to a DataFrame.

    Returns
    -------
    pandas.DataFrame
        Columns: id, date (datetime64[ns], NaT when unknown), amount (float,
        signed), type ('income' / 'expense'), category, account,
        description, is_deductible, transaction_type. Row order follows the
        input order.
    """
    rows = [
        {
            "id": t.id,
            "date": t.date,
            "amount": float(t.amount),
            "type": t.type.value,
            "category": t.category,
            "account": t.account,
            "description": t.description,
            "is_deductible": bool(t.is_deductible),
            "transaction_type": t.transaction_type,
        }
        for t in transactions
    ]
    frame = pd.DataFrame(rows, columns=list(FRAME_COLUMNS))
    frame["date"] = pd.to_datetime(frame["date"], errors="coerce")
    frame["amount"] = frame["amount"].astype(float)
    return frame
