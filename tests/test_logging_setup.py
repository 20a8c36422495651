import json
import logging

import pytest

from finreco.logging_setup import FinRecoJsonFormatter, setup_logging


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_logging_installs_single_handler() -> None:
    setup_logging("debug")
    setup_logging("WARNING")

    root = logging.getLogger()
    assert root.level == logging.WARNING
    assert len(root.handlers) == 1


def test_unknown_level_is_rejected() -> None:
    with pytest.raises(ValueError):
        setup_logging("LOUD")


def test_json_formatter_adds_service_fields() -> None:
    formatter = FinRecoJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    record = logging.LogRecord(
        name="finreco.tax",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="computed %d entries",
        args=(12,),
        exc_info=None,
    )

    payload = json.loads(formatter.format(record))

    assert payload["message"] == "computed 12 entries"
    assert payload["level"] == "INFO"
    assert payload["name"] == "finreco.tax"
    assert payload["service"] == "finreco"
    assert payload["timestamp"]
