"""Tests for risk metrics and risk profiling."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from portfolio_analytics.config import RiskConfig
from portfolio_analytics.errors import InsufficientDataError
from portfolio_analytics.models import Snapshot, SnapshotValue
from portfolio_analytics.risk import (
    RiskMetricsResult,
    assess_risk_profile,
    calculate_alpha,
    calculate_beta,
    calculate_calmar_ratio,
    calculate_cvar,
    calculate_information_ratio,
    calculate_max_drawdown,
    calculate_risk_metrics,
    calculate_sharpe_ratio,
    calculate_sortino_ratio,
    calculate_treynor_ratio,
    calculate_var,
    calculate_volatility,
)

START = datetime(2024, 1, 1, tzinfo=timezone.utc)
CONFIG = RiskConfig()


def series(*totals):
    return [
        Snapshot(timestamp=START + timedelta(days=i), value=SnapshotValue(total=Decimal(str(t))))
        for i, t in enumerate(totals)
    ]


def decimals(*values):
    return [Decimal(str(v)) for v in values]


class TestMaxDrawdown:
    def test_peak_to_trough(self):
        drawdown, periods = calculate_max_drawdown(decimals(100, 110, 99, 105))
        assert drawdown == Decimal("0.1")
        assert periods == 1

    def test_monotonic_rise(self):
        assert calculate_max_drawdown(decimals(1, 2, 3)) == (Decimal("0"), 0)

    def test_single_point(self):
        assert calculate_max_drawdown(decimals(100)) == (Decimal("0"), 0)


class TestTailRisk:
    def test_var_is_positive_loss(self):
        returns = decimals(*[x / 100 for x in range(-10, 10)])
        # 20 returns, 5% tail index is 1
        assert calculate_var(returns, Decimal("0.95")) == Decimal("0.09")

    def test_cvar_averages_tail(self):
        returns = decimals(*[x / 100 for x in range(-10, 10)])
        assert calculate_cvar(returns, Decimal("0.95")) == Decimal("0.095")

    def test_empty_returns(self):
        assert calculate_var([], Decimal("0.95")) == 0
        assert calculate_cvar([], Decimal("0.99")) == 0


class TestRatios:
    def test_constant_returns_have_zero_volatility_and_sharpe(self):
        returns = decimals(0.01, 0.01, 0.01)
        assert calculate_volatility(returns) == 0
        assert calculate_sharpe_ratio(returns) == 0

    def test_single_return(self):
        assert calculate_volatility(decimals(0.05)) == 0
        assert calculate_sortino_ratio(decimals(0.05)) == 0

    def test_sortino_without_downside(self):
        assert calculate_sortino_ratio(decimals(0.01, 0.02, 0.03)) == 0

    def test_positive_sharpe_for_rising_noisy_series(self):
        assert calculate_sharpe_ratio(decimals(0.01, 0.02, 0.005, 0.015)) > 0

    def test_beta_of_levered_series(self):
        benchmark = decimals(0.01, 0.02, -0.01)
        portfolio = [r * 2 for r in benchmark]
        assert abs(calculate_beta(portfolio, benchmark) - 2) < Decimal("1e-20")

    def test_beta_defaults_to_one_on_mismatch(self):
        assert calculate_beta(decimals(0.01, 0.02), decimals(0.01)) == 1

    @pytest.mark.parametrize(
        "ratio",
        [
            lambda: calculate_sharpe_ratio(decimals(0.01, 0.01, 0.01), CONFIG),
            lambda: calculate_sortino_ratio(decimals(0.01, 0.02, 0.03), CONFIG),
            lambda: calculate_calmar_ratio(decimals(0.01, 0.02), Decimal("0"), CONFIG),
            lambda: calculate_treynor_ratio(decimals(0.01, 0.02), Decimal("0"), CONFIG),
            lambda: calculate_treynor_ratio(decimals(0.01, 0.02), Decimal("-1"), CONFIG),
            lambda: calculate_information_ratio(decimals(0.01, 0.02), decimals(0.01, 0.02), CONFIG),
        ],
        ids=["sharpe", "sortino", "calmar", "treynor-zero-beta", "treynor-negative-beta", "information"],
    )
    def test_zero_denominator_gives_zero(self, ratio):
        assert ratio() == 0

    def test_calmar(self):
        assert calculate_calmar_ratio(decimals(0.001, 0.001), Decimal("0.126"), CONFIG) == 2

    def test_treynor(self):
        assert calculate_treynor_ratio(decimals(0.001, 0.001), Decimal("2"), CONFIG) == Decimal("0.116")

    def test_alpha_of_outperforming_series(self):
        alpha = calculate_alpha(decimals(0.002, 0.002), decimals(0.001, 0.001), Decimal("1"), CONFIG)
        assert abs(alpha - Decimal("0.252")) < Decimal("1e-20")

    def test_information_ratio_with_positive_active_return(self):
        assert calculate_information_ratio(decimals(0.02, 0.01), decimals(0.01, 0.01), CONFIG) > 0


class TestCalculateRiskMetrics:
    def test_basic_series(self):
        metrics = calculate_risk_metrics(series(100, 110, 99, 105))
        assert metrics.return_count == 3
        assert metrics.max_drawdown == Decimal("0.1")
        assert metrics.volatility_30d > 0
        assert metrics.beta == 1
        assert metrics.alpha == 0

    def test_mismatched_benchmark_is_ignored(self):
        metrics = calculate_risk_metrics(series(100, 110, 99, 105), decimals(0.01, 0.02))
        assert metrics.beta == 1
        assert metrics.information_ratio == 0

    def test_aligned_benchmark(self):
        metrics = calculate_risk_metrics(series(100, 110, 99, 105), decimals(0.05, -0.05, 0.03))
        assert metrics.beta != 1

    def test_needs_two_snapshots(self):
        with pytest.raises(InsufficientDataError) as exc:
            calculate_risk_metrics(series(100))
        assert exc.value.required == 2
        assert exc.value.actual == 1

    def test_all_zero_values(self):
        with pytest.raises(InsufficientDataError, match="No valid returns"):
            calculate_risk_metrics(series(0, 0, 0))


class TestRiskProfile:
    def test_calm_portfolio_is_conservative(self):
        profile = assess_risk_profile(RiskMetricsResult(sharpe_ratio=Decimal("1.5")))
        assert profile.level == "Conservative"
        assert profile.score == 0
        assert len(profile.recommendations) == 3

    def test_extreme_portfolio(self):
        profile = assess_risk_profile(
            RiskMetricsResult(
                volatility_30d=Decimal("1"),
                max_drawdown=Decimal("0.5"),
                var_95=Decimal("0.5"),
            )
        )
        assert profile.level == "Very Aggressive"
        assert profile.score == 85
        assert "Maximum drawdown of 50.0% is concerning" in profile.recommendations
        assert "Low Sharpe ratio indicates poor risk-adjusted returns" in profile.recommendations
