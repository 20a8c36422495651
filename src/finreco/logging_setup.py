# FinReco - Reconciliation & Fiscal Analytics engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Logging configuration for FinReco.

Library modules only create ``logging.getLogger(__name__)`` loggers; the
root logger is configured here, by the CLI or by an embedding
application. Records go to stderr so that the JSON printed by the CLI on
stdout stays machine-readable.
"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any

from pythonjsonlogger.json import JsonFormatter

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class FinRecoJsonFormatter(JsonFormatter):
    """JSON formatter adding a UTC timestamp, the level and the service name."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = "finreco"


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """
    Configure the root logger.

    Args:
        level: Level name ('DEBUG', 'INFO', ...).
        json_format: Emit one JSON object per record instead of text.

    Raises:
        ValueError: On an unknown level name.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level!r}")

    root = logging.getLogger()
    root.setLevel(numeric_level)

    # Remove existing handlers
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    if json_format:
        handler.setFormatter(
            FinRecoJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
        )
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    root.addHandler(handler)
