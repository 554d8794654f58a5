"""Tests for diversification scoring and volatility clustering."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from portfolio_analytics.correlation import CorrelationMatrix, CorrelationPair, CorrelationSummary
from portfolio_analytics.diversification import (
    analyze_volatility_clustering,
    calculate_concentration_risk,
    calculate_correlation_risk,
    calculate_diversification_score,
    calculate_sector_diversification,
    rolling_volatilities,
)
from portfolio_analytics.errors import InsufficientDataError
from portfolio_analytics.models import Holding, Snapshot, SnapshotValue

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def holding(symbol, value, category=""):
    return Holding(symbol, Decimal("1"), Decimal(value), Decimal(value), category=category)


def snapshots(values):
    return [
        Snapshot(timestamp=START + timedelta(days=i), value=SnapshotValue(total=Decimal(str(v))))
        for i, v in enumerate(values)
    ]


class TestConcentration:
    def test_equal_weights(self):
        holdings = [holding(s, "100") for s in "ABCD"]
        assert calculate_concentration_risk(holdings) == Decimal("0.25")

    def test_nothing_held_is_fully_concentrated(self):
        assert calculate_concentration_risk([holding("A", "0")]) == 1


class TestSectorDiversification:
    def test_groups_by_category(self):
        holdings = [
            holding("A", "50", "Tech"),
            holding("B", "25", "Tech"),
            holding("C", "25", ""),
        ]
        sectors = calculate_sector_diversification(holdings)
        assert sectors.sector_weights == {"Tech": Decimal("0.75"), "Unknown": Decimal("0.25")}
        assert sectors.herfindahl_index == Decimal("0.625")


class TestCorrelationRisk:
    def test_no_matrix(self):
        assert calculate_correlation_risk(None) == 0

    def test_only_counts_when_highly_correlated(self):
        pair = CorrelationPair("A", "B", Decimal("0.8"), "Strong")
        matrix = CorrelationMatrix(
            symbols=("A", "B"),
            matrix=((Decimal("1"), Decimal("0.8")), (Decimal("0.8"), Decimal("1"))),
            summary=CorrelationSummary(
                average_correlation=Decimal("0.8"), highly_correlated_pairs=(pair,)
            ),
        )
        assert calculate_correlation_risk(matrix) == Decimal("0.8")


class TestDiversificationScore:
    def test_single_holding(self):
        score = calculate_diversification_score([holding("BTC", "100", "Crypto")])
        assert score.overall_score == 30
        assert score.risk_level == "Very High Risk - Concentrated Portfolio"
        assert score.top_holding_weight == 1
        assert "Largest holding is 100.0% of the portfolio - reduce concentration" in score.recommendations

    def test_spread_portfolio(self):
        holdings = [
            holding("A", "100", "Tech"),
            holding("B", "100", "Health"),
            holding("C", "100", "Energy"),
            holding("D", "100", "Finance"),
        ]
        score = calculate_diversification_score(holdings)
        assert score.overall_score == Decimal("82.5")
        assert score.risk_level == "Low Risk - Well Diversified"
        assert score.effective_assets == 4
        assert score.recommendations == (
            "Low effective number of assets - portfolio may not be well diversified",
        )

    def test_no_holdings(self):
        with pytest.raises(InsufficientDataError):
            calculate_diversification_score([])


class TestVolatilityClustering:
    def test_rolling_window_too_long(self):
        assert rolling_volatilities([Decimal("1"), Decimal("2")], 7) == []

    def test_calm_then_volatile(self):
        values = [100 * 1.01 ** i for i in range(7)]
        for i in range(7):
            values.append(values[-1] * (1.3 if i % 2 == 0 else 0.7))

        result = analyze_volatility_clustering(snapshots(values))

        assert result.periods[0].cluster == "Low"
        assert result.periods[0].start == START
        assert result.current_cluster != "Low"
        assert sum(p.windows for p in result.periods) == 8
        assert 0 <= result.persistence <= 1

    def test_constant_series_is_one_normal_period(self):
        result = analyze_volatility_clustering(snapshots([100] * 12))
        assert len(result.periods) == 1
        assert result.current_cluster == "Normal"
        assert result.persistence == 1

    def test_needs_ten_snapshots(self):
        with pytest.raises(InsufficientDataError):
            analyze_volatility_clustering(snapshots([100] * 9))
