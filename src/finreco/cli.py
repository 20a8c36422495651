# FinReco - Reconciliation & Fiscal Analytics engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-line interface for FinReco.

The CLI is a thin caller over the engine: it reads a transactions CSV
(see ``finreco.io``) and an optional TOML configuration (see
``finreco.config``), runs one engine operation and prints its result as
JSON on stdout. Logs go to stderr.

Usage
-----
    python -m finreco.cli [--config finreco_config.toml] [--log-level DEBUG]
                          [--log-json] [--metrics] <command> [options]

Commands
--------
    tax CSV [--year YYYY] [--with-retention]
        Tax summary (income, deductions, ISR, IVA, effective rate), plus
        the withheld IVA on request.

    schedule CSV --year YYYY [--frequency monthly|quarterly]
        Provisional ISR / IVA payment schedule with SAT due dates.

    calendar --year YYYY
        SAT payment calendar of a year.

    match CSV [--day-tolerance N] [--amount-tolerance F]
              [--min-confidence N] [--suggest-links]
        Inter-account transfer matches.

    duplicates CSV [--hour-tolerance N]
        Fuzzy duplicate groups.

    reconcile CSV --balance ACCOUNT=AMOUNT [--balance ...]
        Transfer matches, duplicate groups and balance checks in one report.

    forecast CSV [--periods N] [--opening-balance AMOUNT]
        Cash-flow forecast.

    anomalies CSV
        Statistical outliers and exact repeats.

    health SNAPSHOT_JSON [--kpis]
        Financial health score (and business KPIs) of a financial snapshot.

    validate-brackets FILE
        Validate an ISR bracket table (JSON list, or TOML with
        [[fiscal.isr_brackets]]). Exits with status 1 when invalid.

Exit status: 0 on success, 1 on invalid input or configuration.
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Optional

from . import __version__
from .anomalies import detect_anomalies
from .config import (
    DEFAULT_CONFIG_FILE,
    EngineConfig,
    load_engine_config,
    load_raw_brackets,
)
from .duplicates import find_duplicates
from .forecast import forecast_cash_flow
from .health import (
    FinancialSnapshot,
    calculate_business_kpis,
    calculate_financial_health_score,
)
from .io import read_transactions
from .logging_setup import setup_logging
from .matching import (
    build_reconciliation_report,
    match_transactions,
    reconcile_accounts,
    suggest_transfer_links,
)
from .metrics import ComputationMetrics
from .models import Transaction
from .periods import tax_payment_calendar
from .tax import (
    calculate_iva_retention,
    provisional_schedule,
    summarize_transactions,
    validate_brackets,
)

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="python -m finreco.cli",
        description=(
            "FinReco - Reconciliation & Fiscal Analytics engine for SMBs. "
            "Computes Mexican tax figures, transfer matches, duplicates, "
            "cash-flow forecasts, health scores and anomalies from a "
            "transactions CSV, and prints the result as JSON."
        ),
    )

    # Generic options
    ap.add_argument(
        "--version",
        action="version",
        version=f"finreco version {__version__}",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the TOML configuration file. If omitted, "
            f"'{DEFAULT_CONFIG_FILE}' in the current directory is used when "
            "present, otherwise the built-in defaults."
        ),
    )
    ap.add_argument(
        "--log-level",
        help="Override the log level from the configuration (e.g. DEBUG).",
    )
    ap.add_argument(
        "--log-json",
        action="store_true",
        help="Emit logs as JSON objects.",
    )
    ap.add_argument(
        "--metrics",
        action="store_true",
        help="Log a summary of computation timings at the end of the run.",
    )

    subparsers = ap.add_subparsers(dest="command", metavar="command", required=True)

    # tax
    tax_parser = subparsers.add_parser("tax", help="Tax summary of a CSV.")
    tax_parser.add_argument("csv_path", help="Transactions CSV.")
    tax_parser.add_argument(
        "--year", type=int, help="Only consider transactions of this year."
    )
    tax_parser.add_argument(
        "--with-retention",
        action="store_true",
        help="Also report the IVA withheld on the income at the configured "
        "retention rate.",
    )

    # schedule
    schedule_parser = subparsers.add_parser(
        "schedule", help="Provisional payment schedule of a year."
    )
    schedule_parser.add_argument("csv_path", help="Transactions CSV.")
    schedule_parser.add_argument("--year", type=int, required=True)
    schedule_parser.add_argument(
        "--frequency", choices=["monthly", "quarterly"], default="monthly"
    )

    # calendar
    calendar_parser = subparsers.add_parser(
        "calendar", help="SAT payment calendar of a year."
    )
    calendar_parser.add_argument("--year", type=int, required=True)

    # match
    match_parser = subparsers.add_parser("match", help="Inter-account transfer matches.")
    match_parser.add_argument("csv_path", help="Transactions CSV.")
    match_parser.add_argument("--day-tolerance", type=float)
    match_parser.add_argument("--amount-tolerance", type=float)
    match_parser.add_argument("--min-confidence", type=float)
    match_parser.add_argument(
        "--suggest-links",
        action="store_true",
        help="Output transfer link suggestions instead of raw matches.",
    )

    # duplicates
    duplicates_parser = subparsers.add_parser(
        "duplicates", help="Fuzzy duplicate groups."
    )
    duplicates_parser.add_argument("csv_path", help="Transactions CSV.")
    duplicates_parser.add_argument("--hour-tolerance", type=float)

    # reconcile
    reconcile_parser = subparsers.add_parser(
        "reconcile", help="Full reconciliation report."
    )
    reconcile_parser.add_argument("csv_path", help="Transactions CSV.")
    reconcile_parser.add_argument(
        "--balance",
        action="append",
        default=[],
        metavar="ACCOUNT=AMOUNT",
        help="Statement balance of an account (repeatable).",
    )

    # forecast
    forecast_parser = subparsers.add_parser("forecast", help="Cash-flow forecast.")
    forecast_parser.add_argument("csv_path", help="Transactions CSV.")
    forecast_parser.add_argument("--periods", type=int)
    forecast_parser.add_argument("--opening-balance", type=float)

    # anomalies
    anomalies_parser = subparsers.add_parser(
        "anomalies", help="Outliers and exact repeats."
    )
    anomalies_parser.add_argument("csv_path", help="Transactions CSV.")

    # health
    health_parser = subparsers.add_parser(
        "health", help="Financial health score of a snapshot."
    )
    health_parser.add_argument(
        "snapshot_path", help="JSON file with the financial snapshot figures."
    )
    health_parser.add_argument(
        "--kpis", action="store_true", help="Also output business KPIs."
    )

    # validate-brackets
    brackets_parser = subparsers.add_parser(
        "validate-brackets", help="Validate an ISR bracket table."
    )
    brackets_parser.add_argument(
        "brackets_path", help="JSON list of brackets or TOML config file."
    )

    return ap


def _load_config(config_path: Optional[str]) -> EngineConfig:
    if config_path:
        return load_engine_config(config_path)
    if Path(DEFAULT_CONFIG_FILE).is_file():
        return load_engine_config(DEFAULT_CONFIG_FILE)
    return EngineConfig()


def _parse_balances(values: list[str]) -> dict[str, float]:
    """Parse repeated ACCOUNT=AMOUNT arguments."""
    balances: dict[str, float] = {}
    for value in values:
        account, sep, amount = value.rpartition("=")
        if not sep or not account:
            raise ValueError(f"Invalid --balance {value!r}, expected ACCOUNT=AMOUNT.")
        try:
            balances[account] = float(amount)
        except ValueError as exc:
            raise ValueError(f"Invalid amount in --balance {value!r}.") from exc
    return balances


def _read_csv(path: str) -> list[Transaction]:
    csv_path = Path(path)
    if not csv_path.is_file():
        raise FileNotFoundError(f"Transactions CSV not found: {csv_path}")
    return read_transactions(csv_path)


def _read_json(path: str) -> Any:
    json_path = Path(path)
    if not json_path.is_file():
        raise FileNotFoundError(f"File not found: {json_path}")
    try:
        return json.loads(json_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {json_path}: {exc}") from exc


def _run(
    args: argparse.Namespace, config: EngineConfig, metrics: ComputationMetrics
) -> tuple[Any, int]:
    """Execute the selected command and return (payload, exit status)."""
    command = args.command

    if command == "tax":
        transactions = _read_csv(args.csv_path)
        if args.year is not None:
            transactions = [
                t for t in transactions if t.date is not None and t.date.year == args.year
            ]
        summary = summarize_transactions(transactions, config.fiscal, metrics)
        payload = summary.to_dict()
        if args.with_retention:
            payload["iva_retention"] = calculate_iva_retention(
                summary.income, fiscal_config=config.fiscal
            )
        return payload, 0

    if command == "schedule":
        schedule = provisional_schedule(
            _read_csv(args.csv_path),
            config.fiscal,
            args.year,
            args.frequency,
            metrics,
        )
        return [entry.to_dict() for entry in schedule], 0

    if command == "calendar":
        return [
            {**row, "payment_date": row["payment_date"].isoformat()}
            for row in tax_payment_calendar(args.year)
        ], 0

    if command == "match":
        matches = match_transactions(
            _read_csv(args.csv_path),
            day_tolerance=_pick(args.day_tolerance, config.matching.day_tolerance),
            amount_tolerance=_pick(
                args.amount_tolerance, config.matching.amount_tolerance
            ),
            min_confidence=_pick(args.min_confidence, config.matching.min_confidence),
            metrics=metrics,
        )
        if args.suggest_links:
            return suggest_transfer_links(matches), 0
        return [m.to_dict() for m in matches], 0

    if command == "duplicates":
        groups = find_duplicates(
            _read_csv(args.csv_path),
            hour_tolerance=_pick(args.hour_tolerance, config.duplicates.hour_tolerance),
            min_similarity=config.duplicates.min_similarity,
            metrics=metrics,
        )
        return [g.to_dict() for g in groups], 0

    if command == "reconcile":
        transactions = _read_csv(args.csv_path)
        balances = reconcile_accounts(transactions, _parse_balances(args.balance))
        matches = match_transactions(
            transactions,
            day_tolerance=config.matching.day_tolerance,
            amount_tolerance=config.matching.amount_tolerance,
            min_confidence=config.matching.min_confidence,
            metrics=metrics,
        )
        groups = find_duplicates(
            transactions,
            hour_tolerance=config.duplicates.hour_tolerance,
            min_similarity=config.duplicates.min_similarity,
            metrics=metrics,
        )
        return build_reconciliation_report(matches, groups, balances), 0

    if command == "forecast":
        forecast = forecast_cash_flow(
            _read_csv(args.csv_path),
            periods=_pick(args.periods, config.forecast.periods),
            opening_balance=args.opening_balance,
            metrics=metrics,
        )
        return forecast.to_dict(), 0

    if command == "anomalies":
        anomalies = detect_anomalies(_read_csv(args.csv_path), metrics=metrics)
        return [a.to_dict() for a in anomalies], 0

    if command == "health":
        raw = _read_json(args.snapshot_path)
        if not isinstance(raw, dict):
            raise ValueError("The snapshot file must contain a JSON object.")
        snapshot = FinancialSnapshot.from_mapping(raw)
        payload: dict[str, Any] = calculate_financial_health_score(snapshot).to_dict()
        if args.kpis:
            payload["kpis"] = [asdict(k) for k in calculate_business_kpis(snapshot)]
        return payload, 0

    if command == "validate-brackets":
        if Path(args.brackets_path).suffix.lower() == ".toml":
            raw_brackets = load_raw_brackets(args.brackets_path)
        else:
            raw_brackets = _read_json(args.brackets_path)
        result = validate_brackets(raw_brackets)
        return result.to_dict(), 0 if result.is_valid else 1

    raise ValueError(f"Unknown command: {command}")


def _pick(value: Any, default: Any) -> Any:
    """CLI value when given, configuration value otherwise."""
    return default if value is None else value


def main(argv: Optional[list[str]] = None) -> int:
    """
    Entry point for the FinReco CLI.

    Parses the arguments, loads the configuration, configures logging,
    runs the requested command and prints its JSON result.

    Returns:
        The process exit status.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        config = _load_config(args.config_path)
        setup_logging(
            args.log_level or config.logging.level,
            json_format=args.log_json or config.logging.format == "json",
        )
        metrics = ComputationMetrics()
        payload, status = _run(args, config, metrics)
    except (FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))

    if args.metrics:
        logger.info("Computation metrics: %s", json.dumps(metrics.summary()))

    return status


if __name__ == "__main__":
    sys.exit(main())
