"""Tests for the comprehensive analysis report."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from portfolio_analytics.analyzer import (
    analyze_drawdowns,
    analyze_performance,
    analyze_trend_direction,
    benchmark_price_index,
    calculate_asset_class_exposure,
    calculate_concentration,
    calculate_consistency,
    calculate_overall_score,
    calculate_period_returns,
    calculate_rsi,
    calculate_sector_exposure,
    calculate_win_loss,
    generate_recommendations,
    perform_comprehensive_analysis,
)
from portfolio_analytics.errors import InsufficientDataError
from portfolio_analytics.models import Holding, Portfolio, PriceObservation, Snapshot, SnapshotValue

AS_OF = datetime(2024, 6, 1, tzinfo=timezone.utc)


def snap(when, total):
    return Snapshot(timestamp=when, value=SnapshotValue(total=Decimal(str(total))))


def daily(totals, end=AS_OF):
    start = end - timedelta(days=len(totals) - 1)
    return [snap(start + timedelta(days=i), t) for i, t in enumerate(totals)]


def make_portfolio(*holdings, cash="0"):
    return Portfolio(
        user_id="u1",
        holdings=tuple(
            Holding(symbol, Decimal("1"), Decimal(value), Decimal(value), category=category)
            for symbol, value, category in holdings
        ),
        cash=Decimal(cash),
    )


PORTFOLIO = make_portfolio(("AAPL", "600", "Tech"), ("XOM", "300", "Energy"), cash="100")


class TestPeriodReturns:
    def test_trailing_windows(self):
        snapshots = [
            snap(AS_OF - timedelta(days=400), 100),
            snap(AS_OF - timedelta(days=366), 100),
            snap(AS_OF - timedelta(days=31), 110),
            snap(AS_OF - timedelta(days=8), 120),
            snap(AS_OF - timedelta(days=2), 125),
            snap(AS_OF, 130),
        ]

        returns = calculate_period_returns(snapshots, AS_OF)

        assert returns.daily == Decimal("0.04")
        assert returns.one_year == Decimal("0.3")
        assert returns.inception == Decimal("0.3")
        assert returns.quarterly == 0
        assert returns.year_to_date == (Decimal("130") - 110) / 110

    def test_single_snapshot(self):
        assert calculate_period_returns([snap(AS_OF, 100)], AS_OF).inception == 0


class TestConsistency:
    def test_streaks(self):
        metrics = calculate_consistency(daily([100, 110, 120, 115, 115, 125]))
        assert metrics.positive_periods == 3
        assert metrics.negative_periods == 1
        assert metrics.consistency_ratio == Decimal("0.75")
        assert metrics.longest_win_streak == 2
        assert metrics.longest_loss_streak == 1
        assert metrics.average_win_streak == Decimal("1.5")

    def test_win_loss(self):
        result = calculate_win_loss(daily([100, 110, 99]))
        assert result.win_rate == Decimal("0.5")
        assert result.average_win == Decimal("0.1")
        assert result.average_loss == Decimal("0.1")
        assert result.profit_factor == 1

    def test_flat_series(self):
        assert calculate_win_loss(daily([100, 100, 100])).win_loss_ratio == 0


class TestDrawdowns:
    def test_recovered_and_open_episodes(self):
        snapshots = daily([100, 120, 90, 110, 130, 117])

        result = analyze_drawdowns(snapshots, AS_OF)

        assert result.max_drawdown == Decimal("0.25")
        assert result.current_drawdown == Decimal("0.1")
        assert result.current_drawdown_days == 1
        assert len(result.periods) == 1
        episode = result.periods[0]
        assert episode.start == snapshots[1].timestamp
        assert episode.trough == snapshots[2].timestamp
        assert episode.recovery == snapshots[4].timestamp
        assert episode.recovery_days == 2

    def test_performance_needs_two_snapshots(self):
        with pytest.raises(InsufficientDataError):
            analyze_performance([snap(AS_OF, 1)], AS_OF)


class TestExposure:
    def test_concentration(self):
        result = calculate_concentration(PORTFOLIO)
        assert result.top_holding_weight == Decimal("0.6")
        assert result.herfindahl_index == Decimal("0.45")
        assert result.concentration_score == Decimal("45")
        assert result.sector_concentration == {"Tech": Decimal("0.6"), "Energy": Decimal("0.3")}

    def test_asset_class_includes_cash(self):
        portfolio = make_portfolio(("BTC", "500", "Crypto"), ("VTI", "400", "Equity"), cash="100")
        assert calculate_asset_class_exposure(portfolio) == {
            "crypto": Decimal("0.5"),
            "equities": Decimal("0.4"),
            "cash": Decimal("0.1"),
        }

    def test_sector_exposure(self):
        assert calculate_sector_exposure(PORTFOLIO) == {
            "technology": Decimal("0.6"),
            "energy": Decimal("0.3"),
        }

    def test_empty_portfolio(self):
        assert calculate_concentration(Portfolio(user_id="u1")).herfindahl_index == 0
        assert calculate_asset_class_exposure(Portfolio(user_id="u1")) == {}


class TestTrends:
    def test_linear_rise(self):
        trend = analyze_trend_direction(daily([100 + 10 * i for i in range(10)]), 10)
        assert trend.direction == "up"
        assert trend.slope == 10
        assert trend.confidence == 100

    def test_flat(self):
        assert analyze_trend_direction(daily([100] * 5), 10).direction == "sideways"

    def test_rsi(self):
        assert calculate_rsi(daily([100 + i for i in range(15)])) == 100
        assert calculate_rsi(daily([100, 101])) == 50
        assert calculate_rsi(daily([100, 101] * 8)) == 50

    def test_benchmark_price_index(self):
        index = benchmark_price_index([Decimal("0.1"), Decimal("-0.5")])
        assert index == [Decimal("1"), Decimal("1.1"), Decimal("0.55")]


class TestScoring:
    def test_neutral_score(self):
        score = calculate_overall_score(None, None, None)
        assert score.total == 70
        assert (score.grade, score.ranking) == ("B", "Good")

    def test_concentration_recommendation(self):
        result = perform_comprehensive_analysis(PORTFOLIO, as_of=AS_OF)
        titles = [r.title for r in result.recommendations]
        assert "Reduce Position Concentration" in titles
        assert generate_recommendations(None, None, None) == []


def long_history(n=40):
    totals = [1000 + 10 * i + (15 if i % 3 == 0 else -5) for i in range(n)]
    return daily(totals)


def price_history(n=40):
    return [
        [
            PriceObservation("AAPL", Decimal(600 + 3 * i + (4 if i % 2 else 0)), str(i)),
            PriceObservation("XOM", Decimal(300 + i + (2 if i % 3 else -2)), str(i)),
        ]
        for i in range(n)
    ]


class TestComprehensiveAnalysis:
    def test_short_history_skips_sections(self):
        result = perform_comprehensive_analysis(PORTFOLIO, daily([900, 950, 920, 980, 1000]), as_of=AS_OF)

        assert result.skipped_sections == ("risk_metrics", "trend", "volatility_clustering")
        assert result.risk.metrics is None
        assert result.trend is None
        assert result.pnl is not None
        assert result.performance is not None
        assert result.optimization is not None
        assert result.diversification.correlation_matrix is None
        assert result.benchmark is None

    def test_full_inputs(self):
        benchmark = [Decimal("0.001") * (1 if i % 2 else -1) for i in range(39)]

        result = perform_comprehensive_analysis(
            PORTFOLIO,
            long_history(),
            benchmark_returns=benchmark,
            price_history=price_history(),
            as_of=AS_OF,
        )

        assert result.skipped_sections == ()
        assert result.risk.metrics.return_count == 39
        assert result.risk.profile is not None
        assert result.diversification.correlation_matrix.symbols == ("AAPL", "XOM")
        assert result.benchmark is not None
        assert result.volatility_clustering is not None
        assert sum(result.optimization.target_weights.values()) == Decimal("1")

    def test_empty_portfolio(self):
        result = perform_comprehensive_analysis(Portfolio(user_id="u1"), as_of=AS_OF)
        assert result.skipped_sections == (
            "performance",
            "risk_metrics",
            "diversification",
            "trend",
            "optimization",
            "volatility_clustering",
        )
        assert result.overall_score.grade == "B"

    def test_closely_spaced_snapshots(self):
        snapshots = [snap(AS_OF - timedelta(seconds=1), 100), snap(AS_OF, 110)]

        result = perform_comprehensive_analysis(PORTFOLIO, snapshots, as_of=AS_OF)

        assert "roi" not in result.skipped_sections
        assert result.roi.cagr == 0
        assert result.roi.annualized_roi == 0
        assert result.performance is not None

    def test_string_strategy(self):
        result = perform_comprehensive_analysis(PORTFOLIO, strategy="min_variance", as_of=AS_OF)
        assert result.optimization.strategy.value == "min_variance"

    def test_idempotent(self):
        snapshots = long_history()
        first = perform_comprehensive_analysis(PORTFOLIO, snapshots, as_of=AS_OF)
        second = perform_comprehensive_analysis(PORTFOLIO, snapshots, as_of=AS_OF)
        assert first == second
