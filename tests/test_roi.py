"""Tests for return calculations."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from portfolio_analytics.config import ReturnPeriod
from portfolio_analytics.errors import InsufficientDataError, InvalidInputError
from portfolio_analytics.models import Holding, Portfolio, Snapshot, SnapshotValue, Transaction
from portfolio_analytics.roi import (
    calculate_benchmark_comparison,
    calculate_cagr,
    calculate_holding_roi,
    calculate_money_weighted_return,
    calculate_period_roi,
    calculate_portfolio_roi,
    calculate_time_weighted_return,
    snapshot_cash_flows,
    years_between,
)

START = datetime(2022, 1, 1, tzinfo=timezone.utc)
YEAR = timedelta(days=365.25)


def snap(when, total, invested="0"):
    return Snapshot(timestamp=when, value=SnapshotValue(total=Decimal(total), invested=Decimal(invested)))


class TestSnapshotReturns:
    def test_time_weighted_chains_returns(self):
        snapshots = [snap(START, "100"), snap(START + YEAR, "110"), snap(START + 2 * YEAR, "121")]
        assert calculate_time_weighted_return(snapshots) == Decimal("0.21")

    def test_years_between(self):
        assert years_between(START, START + 2 * YEAR) == 2

    def test_cagr(self):
        snapshots = [snap(START, "100"), snap(START + 2 * YEAR, "121")]
        assert abs(calculate_cagr(snapshots) - Decimal("0.1")) < Decimal("1e-20")

    def test_cagr_zero_start(self):
        assert calculate_cagr([snap(START, "0"), snap(START + YEAR, "50")]) == 0

    def test_cagr_same_timestamp(self):
        assert calculate_cagr([snap(START, "100"), snap(START, "150")]) == 0

    def test_cagr_over_seconds_long_span(self):
        snapshots = [snap(START, "100"), snap(START + timedelta(seconds=1), "110")]
        assert calculate_cagr(snapshots) == 0


class TestMoneyWeightedReturn:
    def test_single_period_irr(self):
        flows = [(START, Decimal("-100")), (START + YEAR, Decimal("110"))]
        assert abs(calculate_money_weighted_return(flows) - Decimal("0.1")) < Decimal("1e-6")

    def test_no_sign_change(self):
        flows = [(START, Decimal("100")), (START + YEAR, Decimal("110"))]
        assert calculate_money_weighted_return(flows) == 0

    def test_cash_flows_from_invested_changes(self):
        snapshots = [
            snap(START, "100", invested="100"),
            snap(START + YEAR, "160", invested="150"),
            snap(START + 2 * YEAR, "170", invested="150"),
        ]
        assert snapshot_cash_flows(snapshots) == [
            (START, Decimal("-100")),
            (START + YEAR, Decimal("-50")),
            (START + 2 * YEAR, Decimal("170")),
        ]


class TestPortfolioROI:
    def test_simple_split(self):
        portfolio = Portfolio(
            user_id="u1",
            holdings=(Holding("AAPL", Decimal("10"), Decimal("100"), Decimal("120"), realized_pnl=Decimal("50")),),
        )
        metrics = calculate_portfolio_roi(portfolio)

        assert metrics.unrealized_roi == Decimal("0.2")
        assert metrics.realized_roi == Decimal("0.05")
        assert metrics.simple_roi == Decimal("0.25")
        assert metrics.total_roi == Decimal("0.2")
        assert metrics.time_weighted_return == 0

    def test_realized_override(self):
        portfolio = Portfolio(
            user_id="u1",
            holdings=(Holding("AAPL", Decimal("10"), Decimal("100"), Decimal("100")),),
        )
        assert calculate_portfolio_roi(portfolio, realized_gains=Decimal("100")).simple_roi == Decimal("0.1")

    def test_empty_portfolio(self):
        metrics = calculate_portfolio_roi(Portfolio(user_id="u1"))
        assert metrics.simple_roi == 0

    def test_unsorted_snapshots(self):
        snapshots = [snap(START + YEAR, "110"), snap(START, "100")]
        metrics = calculate_portfolio_roi(Portfolio(user_id="u1"), snapshots)
        assert metrics.holding_period_return == Decimal("0.1")


class TestHoldingROI:
    def test_with_dividend(self):
        holding = Holding("AAPL", Decimal("10"), Decimal("100"), Decimal("110"))
        transactions = [
            Transaction("1", "AAPL", "buy", Decimal("10"), Decimal("100"), START),
            Transaction("2", "AAPL", "dividend", Decimal("1"), Decimal("5"), START + YEAR / 2),
        ]

        result = calculate_holding_roi(holding, transactions, as_of=START + YEAR)

        assert result.total_invested == Decimal("1000")
        assert result.unrealized_gains == Decimal("100")
        assert result.dividends_received == Decimal("5")
        assert result.simple_roi == Decimal("0.105")
        assert abs(result.annualized_roi - Decimal("0.105")) < Decimal("1e-20")
        assert result.first_purchase == START

    def test_without_buys(self):
        holding = Holding("AAPL", Decimal("0"), Decimal("0"), Decimal("110"))
        result = calculate_holding_roi(holding, [], as_of=START)
        assert result.simple_roi == 0
        assert result.average_holding_period is None


class TestPeriodROI:
    def test_monthly_buckets(self):
        snapshots = [
            snap(datetime(2024, 1, 1, tzinfo=timezone.utc), "100"),
            snap(datetime(2024, 1, 31, tzinfo=timezone.utc), "110"),
            snap(datetime(2024, 2, 1, tzinfo=timezone.utc), "200"),
            snap(datetime(2024, 2, 15, tzinfo=timezone.utc), "180"),
            snap(datetime(2024, 3, 1, tzinfo=timezone.utc), "190"),
        ]

        results = calculate_period_roi(snapshots, "monthly")

        assert [r.label for r in results] == ["2024-01", "2024-02"]
        assert results[0].roi == Decimal("0.1")
        assert results[1].roi == Decimal("-0.1")

    def test_unknown_period(self):
        with pytest.raises(InvalidInputError, match="Unknown return period"):
            calculate_period_roi([snap(START, "1"), snap(START + YEAR, "2")], "hourly")

    def test_needs_two_snapshots(self):
        with pytest.raises(InsufficientDataError):
            calculate_period_roi([snap(START, "1")], ReturnPeriod.DAILY)


class TestBenchmarkComparison:
    def test_outperformance(self):
        snapshots = [snap(START, "100"), snap(START + YEAR, "110")]
        result = calculate_benchmark_comparison(snapshots, [Decimal("100"), Decimal("105")])
        assert result.portfolio_roi == Decimal("0.1")
        assert result.benchmark_roi == Decimal("0.05")
        assert result.outperformance == Decimal("0.05")

    def test_mismatched_lengths(self):
        with pytest.raises(InsufficientDataError):
            calculate_benchmark_comparison([snap(START, "100"), snap(START + YEAR, "110")], [Decimal("1")])
