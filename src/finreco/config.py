# FinReco - Reconciliation & Fiscal Analytics engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for FinReco.

This module is responsible for:
- loading the engine configuration from a TOML file,
- building the ``FiscalConfig`` (ISR table, IVA rates, bracket policy),
- exposing typed dataclasses holding the matcher / detector / forecaster
  defaults and the logging options used by the CLI.

Every section is optional; a missing section falls back to the engine
defaults. A malformed value raises a ValueError naming the offending key.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for older Python
    import tomli as tomllib  # type: ignore[import]

from .duplicates import DEFAULT_HOUR_TOLERANCE, DEFAULT_MIN_SIMILARITY
from .forecast import DEFAULT_PERIODS
from .matching import DEFAULT_AMOUNT_TOLERANCE, DEFAULT_DAY_TOLERANCE
from .models import (
    DEFAULT_IVA_RATE,
    DEFAULT_IVA_RETENTION_RATE,
    BracketPolicy,
    FiscalConfig,
)
from .tax import validate_brackets

DEFAULT_CONFIG_FILE = "finreco_config.toml"
LOG_FORMATS: tuple[str, ...] = ("text", "json")


@dataclass(frozen=True)
class MatchingConfig:
    """Transfer matcher tolerances."""

    day_tolerance: float = DEFAULT_DAY_TOLERANCE
    amount_tolerance: float = DEFAULT_AMOUNT_TOLERANCE
    min_confidence: float = 0.0


@dataclass(frozen=True)
class DuplicatesConfig:
    """Fuzzy duplicate detector tolerances."""

    hour_tolerance: float = DEFAULT_HOUR_TOLERANCE
    min_similarity: float = DEFAULT_MIN_SIMILARITY


@dataclass(frozen=True)
class ForecastConfig:
    periods: int = DEFAULT_PERIODS


@dataclass(frozen=True)
class LoggingConfig:
    """Log level name and output format ('text' or 'json')."""

    level: str = "INFO"
    format: str = "text"


@dataclass(frozen=True)
class EngineConfig:
    """
    Engine-wide configuration for FinReco.

    This aggregates:
    - the fiscal configuration (ISR table, IVA rates, bracket policy),
    - the transfer matcher and duplicate detector tolerances,
    - the forecast horizon,
    - the logging options.
    """

    fiscal: FiscalConfig = field(default_factory=FiscalConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    duplicates: DuplicatesConfig = field(default_factory=DuplicatesConfig)
    forecast: ForecastConfig = field(default_factory=ForecastConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed or is not a table.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Invalid TOML root type in {path}, expected a table.")

    return data


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, Mapping):
        raise ValueError(f"Config section [{name}] must be a table.")
    return section


def _float(section: Mapping[str, Any], key: str, default: float, where: str) -> float:
    value = section.get(key, default)
    if isinstance(value, bool):
        raise ValueError(f"Invalid value for '{where}.{key}': expected a number.")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(
            f"Invalid value for '{where}.{key}' in the configuration. "
            "Expected a number."
        ) from exc


def _int(section: Mapping[str, Any], key: str, default: int, where: str) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(
            f"Invalid value for '{where}.{key}' in the configuration. "
            "Expected an integer."
        )
    return value


def parse_fiscal_config(section: Mapping[str, Any]) -> FiscalConfig:
    """
    Build a FiscalConfig from the [fiscal] table.

    Without an ``isr_brackets`` array the 2024 SAT table is used.

    Raises:
        ValueError: if a rate or the policy is invalid, or if the bracket
            table fails validation (all validation messages are listed).
    """
    iva_rate = _float(section, "iva_rate", DEFAULT_IVA_RATE, "fiscal")
    retention_rate = _float(
        section, "iva_retention_rate", DEFAULT_IVA_RETENTION_RATE, "fiscal"
    )
    for key, rate in (("iva_rate", iva_rate), ("iva_retention_rate", retention_rate)):
        if not 0.0 <= rate <= 1.0:
            raise ValueError(f"'fiscal.{key}' must be between 0 and 1, got {rate}.")

    raw_policy = str(section.get("bracket_policy", BracketPolicy.EXTRAPOLATE.value))
    try:
        policy = BracketPolicy(raw_policy.lower())
    except ValueError as exc:
        allowed = ", ".join(p.value for p in BracketPolicy)
        raise ValueError(
            f"Invalid 'fiscal.bracket_policy' {raw_policy!r}; expected one of: {allowed}."
        ) from exc

    values: dict[str, Any] = {
        "iva_rate": iva_rate,
        "iva_retention_rate": retention_rate,
        "bracket_policy": policy,
    }

    if "isr_brackets" in section:
        result = validate_brackets(section["isr_brackets"])
        if not result.is_valid:
            raise ValueError(
                "Invalid 'fiscal.isr_brackets' table:\n  - "
                + "\n  - ".join(result.errors)
            )
        values["isr_brackets"] = result.brackets

    return FiscalConfig(**values)


def parse_engine_config(raw: Mapping[str, Any]) -> EngineConfig:
    """Build an EngineConfig from a parsed TOML document."""
    # 1) Fiscal section
    fiscal = parse_fiscal_config(_section(raw, "fiscal"))

    # 2) Matcher / detector tolerances
    matching_section = _section(raw, "matching")
    matching = MatchingConfig(
        day_tolerance=_float(
            matching_section, "day_tolerance", DEFAULT_DAY_TOLERANCE, "matching"
        ),
        amount_tolerance=_float(
            matching_section, "amount_tolerance", DEFAULT_AMOUNT_TOLERANCE, "matching"
        ),
        min_confidence=_float(matching_section, "min_confidence", 0.0, "matching"),
    )
    if matching.day_tolerance < 0 or matching.amount_tolerance < 0:
        raise ValueError("Matching tolerances cannot be negative.")
    if not 0.0 <= matching.min_confidence <= 100.0:
        raise ValueError("'matching.min_confidence' must be between 0 and 100.")

    duplicates_section = _section(raw, "duplicates")
    duplicates = DuplicatesConfig(
        hour_tolerance=_float(
            duplicates_section, "hour_tolerance", DEFAULT_HOUR_TOLERANCE, "duplicates"
        ),
        min_similarity=_float(
            duplicates_section, "min_similarity", DEFAULT_MIN_SIMILARITY, "duplicates"
        ),
    )
    if duplicates.hour_tolerance < 0:
        raise ValueError("'duplicates.hour_tolerance' cannot be negative.")
    if not 0.0 <= duplicates.min_similarity <= 1.0:
        raise ValueError("'duplicates.min_similarity' must be between 0 and 1.")

    # 3) Forecast
    forecast = ForecastConfig(
        periods=_int(_section(raw, "forecast"), "periods", DEFAULT_PERIODS, "forecast")
    )
    if forecast.periods < 1:
        raise ValueError("'forecast.periods' must be at least 1.")

    # 4) Logging
    logging_section = _section(raw, "logging")
    log_format = str(logging_section.get("format", "text")).lower()
    if log_format not in LOG_FORMATS:
        raise ValueError(
            f"Invalid 'logging.format' {log_format!r}; expected 'text' or 'json'."
        )
    logging_config = LoggingConfig(
        level=str(logging_section.get("level", "INFO")).upper(),
        format=log_format,
    )

    return EngineConfig(
        fiscal=fiscal,
        matching=matching,
        duplicates=duplicates,
        forecast=forecast,
        logging=logging_config,
    )


def load_engine_config(config_path: Optional[str] = None) -> EngineConfig:
    """
    Load the FinReco engine configuration from a TOML file.

    Expected top-level sections in the TOML file (all optional)
    ----------------------------------------------------------
    [fiscal]
        iva_rate, iva_retention_rate, bracket_policy ("extrapolate" or
        "strict") and an [[fiscal.isr_brackets]] array of tables with
        lower_limit, limit (omitted for the top bracket), fixed_fee, rate.

    [matching]
        day_tolerance, amount_tolerance, min_confidence.

    [duplicates]
        hour_tolerance, min_similarity.

    [forecast]
        periods.

    [logging]
        level, format ("text" or "json").

    Parameters
    ----------
    config_path : str, optional
        Path to the TOML file. Defaults to ``finreco_config.toml`` in the
        current directory.

    Returns
    -------
    EngineConfig
        Parsed and validated engine configuration.
    """
    if config_path is None:
        config_file = Path(DEFAULT_CONFIG_FILE).resolve()
    else:
        config_file = Path(config_path).resolve()

    return parse_engine_config(_load_toml(config_file))


def load_fiscal_config(config_path: str) -> FiscalConfig:
    """Load only the [fiscal] section of a TOML file."""
    raw = _load_toml(Path(config_path).resolve())
    return parse_fiscal_config(_section(raw, "fiscal"))


def load_raw_brackets(config_path: str) -> Any:
    """
    Return the raw ``[[fiscal.isr_brackets]]`` array of a TOML file, without
    validating it. A file without brackets yields an empty list.
    """
    raw = _load_toml(Path(config_path).resolve())
    return _section(raw, "fiscal").get("isr_brackets", [])
