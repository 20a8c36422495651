import json
from datetime import date, datetime, timedelta, timezone

import pandas as pd
import pytest

from finreco.models import (
    FlowType,
    Transaction,
    normalize_transactions,
    parse_flow_type,
)


def test_signed_amount_decides_type_when_no_type_given() -> None:
    income = Transaction.from_mapping({"id": 1, "date": "2024-01-10", "amount": 250})
    expense = Transaction.from_mapping({"id": 2, "date": "2024-01-10", "amount": -80})

    assert income.type is FlowType.INCOME
    assert income.amount == 250.0
    assert expense.type is FlowType.EXPENSE
    assert expense.amount == -80.0


@pytest.mark.parametrize(
    "label, expected_type, expected_amount",
    [
        ("expense", FlowType.EXPENSE, -1500.0),
        ("gasto", FlowType.EXPENSE, -1500.0),
        ("egreso", FlowType.EXPENSE, -1500.0),
        ("income", FlowType.INCOME, 1500.0),
        ("Ingreso", FlowType.INCOME, 1500.0),
    ],
)
def test_type_forces_sign_of_unsigned_amount(
    label: str, expected_type: FlowType, expected_amount: float
) -> None:
    tx = Transaction.from_mapping({"date": "2024-03-01", "amount": 1500, "type": label})
    assert tx.type is expected_type
    assert tx.amount == expected_amount


def test_type_overrides_inconsistent_sign() -> None:
    tx = Transaction.from_mapping({"amount": -200, "type": "income"})
    assert tx.amount == 200.0
    assert tx.is_income


def test_malformed_amount_and_date_fall_back_to_neutral_values() -> None:
    tx = Transaction.from_mapping({"amount": "not a number", "date": "garbage"})
    assert tx.amount == 0.0
    assert tx.date is None


def test_date_with_time_is_kept_as_datetime() -> None:
    with_time = Transaction.from_mapping({"amount": 1, "date": "2024-01-10 13:30"})
    date_only = Transaction.from_mapping({"amount": 1, "date": "2024-01-10"})

    assert with_time.date == datetime(2024, 1, 10, 13, 30)
    assert date_only.date == date(2024, 1, 10)


@pytest.mark.parametrize("value", [pd.NaT, "NaT"])
def test_missing_pandas_date_becomes_none(value: object) -> None:
    assert Transaction.from_mapping({"amount": 1, "date": value}).date is None


def test_timezone_aware_dates_become_naive_utc() -> None:
    utc = Transaction.from_mapping({"amount": 1, "date": "2024-01-10T10:00:00Z"})
    offset = Transaction.from_mapping(
        {"amount": 1, "date": "2024-01-10T00:00:00-06:00"}
    )
    aware = datetime(2024, 1, 10, 4, tzinfo=timezone(timedelta(hours=-6)))
    from_object = Transaction.from_mapping({"amount": 1, "date": aware})

    assert utc.date == datetime(2024, 1, 10, 10)
    assert utc.date.tzinfo is None
    assert offset.date == datetime(2024, 1, 10, 6)
    assert from_object.date == datetime(2024, 1, 10, 10)
    assert from_object.date.tzinfo is None


def test_aliases_and_flags() -> None:
    tx = Transaction.from_mapping(
        {
            "amount": -10,
            "category_name": "Office",
            "account_name": "Checking",
            "is_deductible": "yes",
            "transaction_type": "Transfer",
        }
    )
    assert tx.category == "Office"
    assert tx.account == "Checking"
    assert tx.is_deductible is True
    assert tx.is_transfer is True


def test_parse_flow_type_unknown_label() -> None:
    assert parse_flow_type("refund") is None
    assert parse_flow_type(None) is None


def test_normalize_transactions_keeps_instances_and_rejects_other_types() -> None:
    tx = Transaction(id=1, date=date(2024, 1, 1), amount=5.0, type=FlowType.INCOME)
    out = normalize_transactions([tx, {"amount": -3}])

    assert out[0] is tx
    assert out[1].amount == -3.0
    assert normalize_transactions(None) == []

    with pytest.raises(TypeError):
        normalize_transactions([42])


def test_to_dict_is_json_serializable() -> None:
    tx = Transaction.from_mapping({"id": "a", "date": "2024-02-01", "amount": -12.5})
    payload = tx.to_dict()

    assert payload["date"] == "2024-02-01"
    assert payload["type"] == "expense"
    json.dumps(payload)
