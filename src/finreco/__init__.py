# FinReco - Reconciliation & Fiscal Analytics engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
FinReco
-------

A Python computation engine for small-business and personal bookkeeping
with Mexican tax compliance. Given a list of ledger transactions (and a
fiscal configuration for tax work) it produces plain, JSON-serializable
results.

Main capabilities:
- progressive ISR and IVA computations, provisional payments with the
  cumulative method, tax summaries and SAT payment schedules,
- ISR bracket table validation,
- inter-account transfer matching and balance reconciliation,
- fuzzy duplicate detection,
- regression-based cash-flow forecasting,
- a five-dimension financial health score with recommendations and KPIs,
- per-category outlier and exact-repeat anomaly detection,
- an optional caller-owned computation metrics context.

Every operation is a pure function over its inputs: nothing is persisted
and no state is shared between calls.


Version: 0.1.0

Usage:
    python -m finreco.cli --help
"""

__all__ = [
    "anomalies",
    "duplicates",
    "forecast",
    "health",
    "matching",
    "metrics",
    "models",
    "periods",
    "similarity",
    "tax",
]

__version__ = "0.1.0"
