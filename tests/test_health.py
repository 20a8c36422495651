import pytest

import finreco.health as health
from finreco.health import FinancialSnapshot


def _healthy() -> FinancialSnapshot:
    return FinancialSnapshot(
        current_assets=300_000,
        current_liabilities=100_000,
        cash_reserves=60_000,
        revenue=1_000_000,
        expenses=750_000,
        net_income=250_000,
        total_assets=1_000_000,
        total_liabilities=166_667,
        accounts_receivable=50_000,
        previous_revenue=800_000,
        previous_net_income=200_000,
    )


def test_healthy_business_scores_excellent() -> None:
    result = health.calculate_financial_health_score(_healthy())

    assert result.score == 98
    assert result.rating == "excellent"
    assert {k: v.score for k, v in result.breakdown.items()} == {
        "liquidity": 30,
        "profitability": 25,
        "solvency": 20,
        "efficiency": 13,
        "growth": 10,
    }
    assert result.breakdown["liquidity"].metrics["current_ratio"] == 3.0
    assert result.recommendations == []


def test_empty_snapshot_uses_neutral_defaults() -> None:
    result = health.calculate_financial_health_score(FinancialSnapshot())

    assert result.score == 41
    assert result.rating == "acceptable"
    assert [r.category for r in result.recommendations] == [
        "profitability",
        "solvency",
        "growth",
    ]


def test_low_current_ratio_adds_critical_risk_item() -> None:
    snapshot = FinancialSnapshot(
        current_assets=50_000,
        current_liabilities=100_000,
        cash_reserves=5_000,
        revenue=200_000,
        net_income=-10_000,
        total_assets=150_000,
        total_liabilities=140_000,
    )

    result = health.calculate_financial_health_score(snapshot)

    assert result.breakdown["liquidity"].score == 4
    assert result.rating == "needs attention"
    categories = [r.category for r in result.recommendations]
    assert "liquidity" in categories
    assert categories[-1] == "risk"
    assert result.recommendations[-1].priority == "critical"


@pytest.mark.parametrize(
    "figures",
    [
        {},
        {"revenue": 10, "net_income": 1_000_000, "total_assets": 1},
        {"current_assets": 1e9, "current_liabilities": 1, "cash_reserves": 1e9},
        {"total_liabilities": 1e9, "total_assets": 10, "previous_revenue": 1e9},
        {
            "revenue": 5e6,
            "previous_revenue": 1,
            "net_income": 5e6,
            "previous_net_income": 1,
        },
    ],
)
def test_score_is_bounded(figures: dict) -> None:
    result = health.calculate_financial_health_score(FinancialSnapshot(**figures))
    assert 0 <= result.score <= 100
    for name, dimension in result.breakdown.items():
        assert 0 <= dimension.score <= health.MAX_SCORES[name]


def test_recommendations_use_unrounded_scores() -> None:
    scores = {
        "liquidity": 19.6,
        "profitability": 25,
        "solvency": 20,
        "efficiency": 15,
        "growth": 10,
    }
    recommendations = health.generate_recommendations(scores, current_ratio=2.0)
    assert [r.category for r in recommendations] == ["liquidity"]
    assert recommendations[0].priority == "high"


@pytest.mark.parametrize(
    "score, rating",
    [(100, "excellent"), (80, "excellent"), (79, "good"), (60, "good"),
     (40, "acceptable"), (39, "needs attention"), (0, "needs attention")],
)
def test_rate_score(score: int, rating: str) -> None:
    assert health.rate_score(score)[0] == rating


def test_snapshot_from_mapping_accepts_camel_case() -> None:
    snapshot = FinancialSnapshot.from_mapping(
        {
            "currentAssets": "300000",
            "current_liabilities": 100000,
            "employeeCount": 3,
            "unknown": 1,
        }
    )
    assert snapshot.current_assets == 300000.0
    assert snapshot.current_liabilities == 100000.0
    assert snapshot.employee_count == 3
    assert snapshot.revenue == 0.0


def test_business_kpis() -> None:
    kpis = {k.key: k for k in health.calculate_business_kpis(_healthy(), 40)}

    assert kpis["current_ratio"].value == 3.0
    assert kpis["current_ratio"].group == "liquidity"
    assert kpis["quick_ratio"].value == pytest.approx(1.1)
    assert kpis["profit_margin"].value == pytest.approx(25.0)
    assert kpis["receivables_turnover"].value == pytest.approx(20.0)
    assert kpis["days_receivable_outstanding"].value == pytest.approx(18.25)
    assert kpis["revenue_growth"].value == pytest.approx(25.0)
    assert kpis["revenue_per_employee"].value == pytest.approx(1_000_000.0)
    assert kpis["transactions_per_customer"].value == 0.0


def test_analyze_profitability_by_category() -> None:
    transactions = [
        {"date": "2024-01-01", "amount": 1000, "category": "Consulting"},
        {"date": "2024-01-02", "amount": -200, "category": "Consulting"},
        {"date": "2024-01-03", "amount": 500, "category": "Products"},
        {"date": "2024-01-04", "amount": -600, "category": "Products"},
        {"date": "2024-01-05", "amount": -50},
    ]

    result = health.analyze_profitability(transactions)

    assert [g["name"] for g in result["groups"]] == [
        "Consulting",
        "Unclassified",
        "Products",
    ]
    assert result["groups"][0]["margin"] == pytest.approx(80.0)
    assert result["groups"][0]["transactions"] == 2
    assert result["total_revenue"] == 1500.0
    assert result["total_expenses"] == 850.0
    assert result["total_margin"] == pytest.approx(43.33)
    assert result["summary"]["worst_performer"] == "Products"


def test_analyze_profitability_rejects_unknown_grouping() -> None:
    with pytest.raises(ValueError):
        health.analyze_profitability([], group_by="customer")


def test_analyze_profitability_of_empty_ledger() -> None:
    result = health.analyze_profitability([])
    assert result["groups"] == []
    assert result["total_margin"] == 0.0
