from datetime import date
from pathlib import Path

import pandas as pd
import pytest

import finreco.io as io
from finreco.models import FlowType


def _csv(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "transactions.csv"
    path.write_text(content.strip() + "\n", encoding="utf-8")
    return path


def test_signed_amount_layout(tmp_path: Path) -> None:
    path = _csv(
        tmp_path,
        """
date,amount,description,category,account
2024-01-05,1500.50,Invoice 12,Sales,Checking
2024-01-06,-200,Paper,Office,Checking
""",
    )

    txs = io.read_transactions(path)

    assert [t.id for t in txs] == ["1", "2"]
    assert txs[0].date == date(2024, 1, 5)
    assert txs[0].amount == 1500.5
    assert txs[0].type is FlowType.INCOME
    assert txs[1].type is FlowType.EXPENSE
    assert txs[1].category == "Office"
    assert txs[1].account == "Checking"


def test_type_layout_with_unsigned_amounts(tmp_path: Path) -> None:
    path = _csv(
        tmp_path,
        """
id,Date,Amount,Type,Description,is_deductible
a1,2024-02-01,300,gasto,Internet,yes
a2,2024-02-02,900,ingreso,Invoice,
""",
    )

    txs = io.read_transactions(path)

    assert [t.id for t in txs] == ["a1", "a2"]
    assert txs[0].amount == -300.0
    assert txs[0].is_deductible is True
    assert txs[1].amount == 900.0
    assert txs[1].is_deductible is False


def test_debit_credit_layout(tmp_path: Path) -> None:
    path = _csv(
        tmp_path,
        """
date,debit,credit,label
2024-03-01,120.00,,Card payment
2024-03-02,,450.00,Refund
""",
    )

    txs = io.read_transactions(path)

    assert [t.amount for t in txs] == [-120.0, 450.0]
    assert txs[0].description == "Card payment"


def test_malformed_values_are_tolerated(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    path = _csv(
        tmp_path,
        """
date,amount,description
not-a-date,abc,Broken row
2024-03-02,10,Fine row
""",
    )

    with caplog.at_level("WARNING", logger="finreco.io"):
        txs = io.read_transactions(path)

    assert txs[0].date is None
    assert txs[0].amount == 0.0
    assert txs[1].amount == 10.0
    assert "no valid date" in caplog.text


@pytest.mark.parametrize(
    "header",
    ["amount,description", "date,description", "date,debit,description"],
)
def test_missing_structure_raises(tmp_path: Path, header: str) -> None:
    path = _csv(tmp_path, header)
    with pytest.raises(ValueError):
        io.read_transactions(path)


def test_transactions_to_frame(tmp_path: Path) -> None:
    path = _csv(
        tmp_path,
        """
date,amount,description
2024-01-05,100,A
,-40,B
""",
    )

    frame = io.transactions_to_frame(io.read_transactions(path))

    assert list(frame.columns) == list(io.FRAME_COLUMNS)
    assert pd.api.types.is_datetime64_any_dtype(frame["date"])
    assert frame["date"].isna().tolist() == [False, True]
    assert frame["type"].tolist() == ["income", "expense"]
    assert frame["amount"].tolist() == [100.0, -40.0]


def test_empty_frame_keeps_columns() -> None:
    frame = io.transactions_to_frame([])
    assert frame.empty
    assert list(frame.columns) == list(io.FRAME_COLUMNS)
