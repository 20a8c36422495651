import pytest

import finreco.anomalies as anomalies


def _category(name: str, amounts: list[float], start_day: int = 1) -> list[dict]:
    return [
        {
            "id": f"{name}-{i}",
            "date": f"2024-03-{start_day + i:02d}",
            "amount": -amount,
            "category": name,
            "description": f"{name} #{i}",
        }
        for i, amount in enumerate(amounts)
    ]


def test_index_quartiles_take_sorted_positions() -> None:
    assert anomalies.index_quartiles([140, 100, 120, 110, 130, 300]) == (110, 140)
    assert anomalies.index_quartiles([5, 1, 3, 2]) == (2, 5)


def test_small_categories_are_never_flagged() -> None:
    records = _category("Travel", [100, 100, 100, 50_000])
    assert anomalies.detect_outliers(records) == []


def test_far_outlier_is_high_severity() -> None:
    records = _category("Supplies", [100, 100, 100, 100, 100, 10_000])

    flagged = anomalies.detect_outliers(records)

    assert len(flagged) == 1
    assert flagged[0].transaction.id == "Supplies-5"
    assert flagged[0].kind == "unusually_high"
    assert flagged[0].severity == "high"
    assert flagged[0].expected_range == (100, 100)


def test_moderate_outlier_is_medium_severity() -> None:
    records = _category("Supplies", [100, 110, 120, 130, 140, 300])

    flagged = anomalies.detect_outliers(records)

    assert [a.severity for a in flagged] == ["medium"]
    assert flagged[0].expected_range == pytest.approx((65.0, 185.0))


def test_unusually_low_amount() -> None:
    records = _category("Utilities", [100, 110, 120, 130, 140, 10])

    flagged = anomalies.detect_outliers(records)

    assert len(flagged) == 1
    assert flagged[0].kind == "unusually_low"
    assert flagged[0].severity == "low"
    assert flagged[0].transaction.abs_amount == 10.0


def test_categories_are_scored_independently() -> None:
    records = _category("Rent", [1000] * 5) + _category("Snacks", [5, 5, 5, 5, 5, 1000])

    flagged = anomalies.detect_outliers(records)

    assert [a.transaction.category for a in flagged] == ["Snacks"]


def test_exact_repeats_point_to_first_occurrence() -> None:
    records = [
        {"id": 1, "date": "2024-04-01", "amount": -50, "description": "Lunch"},
        {"id": 2, "date": "2024-04-01", "amount": -50, "description": "Lunch"},
        {"id": 3, "date": "2024-04-01", "amount": -50, "description": "Lunch"},
        {"id": 4, "date": "2024-04-02", "amount": -50, "description": "Lunch"},
        {"id": 5, "date": None, "amount": -50, "description": "Lunch"},
        {"id": 6, "date": None, "amount": -50, "description": "Lunch"},
    ]

    flagged = anomalies.detect_exact_duplicates(records)

    assert [a.transaction.id for a in flagged] == [2, 3]
    assert all(a.original.id == 1 for a in flagged)
    assert all(a.kind == "potential_duplicate" for a in flagged)
    assert all(a.severity == "medium" for a in flagged)


def test_detect_anomalies_lists_outliers_then_repeats() -> None:
    records = _category("Supplies", [100, 100, 100, 100, 100, 10_000]) + [
        {"id": "r1", "date": "2024-04-01", "amount": -20, "description": "Taxi"},
        {"id": "r2", "date": "2024-04-01", "amount": -20, "description": "Taxi"},
    ]

    result = anomalies.detect_anomalies(records)

    assert [a.kind for a in result] == ["unusually_high", "potential_duplicate"]
    assert result[1].to_dict()["original"]["id"] == "r1"
