import pandas as pd
import pytest

import finreco.duplicates as duplicates
from finreco.models import Transaction


def _tx(**fields) -> Transaction:
    return Transaction.from_mapping(fields)


def test_identical_postings_have_full_confidence() -> None:
    a = _tx(id=1, date="2024-05-02", amount=-250, account="A", description="Office rent")
    b = _tx(id=2, date="2024-05-02", amount=-250, account="A", description="Office rent")

    groups = duplicates.find_duplicates([a, b])

    assert len(groups) == 1
    assert groups[0].original.id == 1
    assert [d.transaction.id for d in groups[0].duplicates] == [2]
    assert groups[0].duplicates[0].confidence == 100.0
    assert groups[0].duplicates[0].similarity == 1.0


def test_confidence_decays_with_time_gap_on_other_account() -> None:
    a = _tx(id=1, date="2024-05-02 08:00", amount=-250, account="A", description="Rent")
    b = _tx(id=2, date="2024-05-02 20:00", amount=-250, account="B", description="Rent")

    candidate = duplicates.find_duplicates([a, b])[0].duplicates[0]

    assert candidate.time_delta_hours == pytest.approx(12.0)
    # 50 + 40 (similarity) + 5 (half the time window), no same-account bonus
    assert candidate.confidence == pytest.approx(95.0)


@pytest.mark.parametrize(
    "other",
    [
        {"date": "2024-05-02", "amount": -250.5, "description": "Office rent"},
        {"date": "2024-05-02", "amount": 250, "description": "Office rent"},
        {"date": "2024-05-04", "amount": -250, "description": "Office rent"},
        {"date": "2024-05-02", "amount": -250, "description": "Groceries"},
    ],
    ids=["amount", "type", "time", "description"],
)
def test_non_duplicates(other: dict) -> None:
    a = _tx(id=1, date="2024-05-02", amount=-250, description="Office rent")
    b = _tx(id=2, **other)
    assert duplicates.find_duplicates([a, b]) == []


def test_amounts_are_compared_to_the_cent() -> None:
    a = _tx(id=1, date="2024-05-02", amount=-19.999, description="Taxi")
    b = _tx(id=2, date="2024-05-02", amount=-20.001, description="Taxi")
    assert len(duplicates.find_duplicates([a, b])) == 1


def test_cluster_is_grouped_under_first_transaction() -> None:
    txs = [
        _tx(id=i, date="2024-05-02", amount=-80, description="Fuel")
        for i in (1, 2, 3)
    ]

    groups = duplicates.find_duplicates(txs)

    assert len(groups) == 1
    assert groups[0].original.id == 1
    assert sorted(d.transaction.id for d in groups[0].duplicates) == [2, 3]


def test_claimed_transactions_are_not_reused() -> None:
    txs = [
        _tx(id=1, date="2024-05-02", amount=-80, description="Fuel"),
        _tx(id=2, date="2024-05-02", amount=-80, description="Fuel"),
        _tx(id=3, date="2024-05-02", amount=-15, description="Coffee"),
        _tx(id=4, date="2024-05-02", amount=-15, description="Coffee"),
    ]

    groups = duplicates.find_duplicates(txs)
    ids = [g.original.id for g in groups] + [
        d.transaction.id for g in groups for d in g.duplicates
    ]

    assert len(groups) == 2
    assert sorted(ids) == [1, 2, 3, 4]


def test_groups_sorted_by_best_confidence() -> None:
    txs = [
        _tx(id=1, date="2024-05-02 00:00", amount=-80, account="A", description="Fuel"),
        _tx(id=2, date="2024-05-02 18:00", amount=-80, account="B", description="Fuel"),
        _tx(id=3, date="2024-05-03", amount=-15, account="A", description="Coffee"),
        _tx(id=4, date="2024-05-03", amount=-15, account="A", description="Coffee"),
    ]

    groups = duplicates.find_duplicates(txs)

    assert [g.original.id for g in groups] == [3, 1]


def test_undated_transactions_are_ignored() -> None:
    txs = [
        _tx(id=1, date=None, amount=-80, description="Fuel"),
        _tx(id=2, date=None, amount=-80, description="Fuel"),
    ]
    assert duplicates.find_duplicates(txs) == []


def test_missing_pandas_date_is_ignored() -> None:
    txs = [
        _tx(id=1, date=pd.NaT, amount=-80, account="A", description="Lunch"),
        _tx(id=2, date="2024-05-02", amount=-80, account="A", description="Lunch"),
    ]
    assert duplicates.find_duplicates(txs) == []


def test_mixed_timezone_postings_are_compared() -> None:
    txs = [
        _tx(id=1, date="2024-05-02T14:00:00+00:00", amount=-80, description="Lunch"),
        _tx(id=2, date="2024-05-02 16:00", amount=-80, description="Lunch"),
    ]

    groups = duplicates.find_duplicates(txs)

    assert len(groups) == 1
    assert groups[0].duplicates[0].time_delta_hours == pytest.approx(2.0)
