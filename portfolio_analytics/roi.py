"""Return calculations over snapshot histories and per-holding transaction logs."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Sequence

from scipy import optimize

from .config import CostBasisMethod, ReturnPeriod, RiskConfig
from .cost_basis import TRADE_KINDS, calculate_cost_basis
from .errors import InsufficientDataError, InvalidInputError
from .models import Holding, Portfolio, Snapshot, Transaction
from .safe_math import ONE, ZERO, annualize, safe_div, sample_std, simple_returns, to_decimal

logger = logging.getLogger(__name__)

DEFAULT_RISK_CONFIG = RiskConfig()
SECONDS_PER_DAY = Decimal("86400")

# Bracket for the money-weighted IRR root search, as annual rates.
IRR_LOWER_BOUND = -0.99
IRR_UPPER_BOUND = 10.0


@dataclass(frozen=True)
class ROIMetrics:
    simple_roi: Decimal = ZERO
    total_roi: Decimal = ZERO
    realized_roi: Decimal = ZERO
    unrealized_roi: Decimal = ZERO
    time_weighted_return: Decimal = ZERO
    money_weighted_return: Decimal = ZERO
    cagr: Decimal = ZERO
    annualized_roi: Decimal = ZERO
    holding_period_return: Decimal = ZERO


@dataclass(frozen=True)
class PeriodROI:
    period: ReturnPeriod
    label: str
    start: datetime
    end: datetime
    start_value: Decimal
    end_value: Decimal
    roi: Decimal
    annualized_roi: Decimal


@dataclass(frozen=True)
class HoldingROI:
    symbol: str
    total_invested: Decimal
    current_value: Decimal
    realized_gains: Decimal
    unrealized_gains: Decimal
    dividends_received: Decimal
    simple_roi: Decimal
    annualized_roi: Decimal
    holding_period_return: Decimal
    first_purchase: datetime | None = None
    average_holding_period: timedelta | None = None


@dataclass(frozen=True)
class BenchmarkComparison:
    portfolio_roi: Decimal
    benchmark_roi: Decimal
    outperformance: Decimal
    tracking_error: Decimal


def years_between(start: datetime, end: datetime, config: RiskConfig = DEFAULT_RISK_CONFIG) -> Decimal:
    """Elapsed time in 365.25-day years."""
    seconds = to_decimal((end - start).total_seconds())
    return seconds / SECONDS_PER_DAY / config.DAYS_PER_YEAR


def calculate_time_weighted_return(snapshots: Sequence[Snapshot]) -> Decimal:
    """Geometrically chained period returns, skipping zero-valued bases."""
    growth = ONE
    for r in simple_returns([s.total for s in snapshots]):
        growth *= ONE + r
    return growth - ONE


def calculate_cagr(snapshots: Sequence[Snapshot], config: RiskConfig = DEFAULT_RISK_CONFIG) -> Decimal:
    if len(snapshots) < 2:
        return ZERO
    start, end = snapshots[0], snapshots[-1]
    ratio = safe_div(end.total, start.total, strictly_positive=True)
    if ratio.is_degenerate:
        return ZERO
    years = years_between(start.timestamp, end.timestamp, config)
    return annualize(ratio.value, years).unwrap_or(ZERO)


def calculate_holding_period_return(snapshots: Sequence[Snapshot]) -> Decimal:
    if len(snapshots) < 2:
        return ZERO
    start, end = snapshots[0], snapshots[-1]
    return safe_div(end.total - start.total, start.total, strictly_positive=True).unwrap_or(ZERO)


def calculate_annualized_roi(snapshots: Sequence[Snapshot], config: RiskConfig = DEFAULT_RISK_CONFIG) -> Decimal:
    """Holding-period return annualized as (1 + r) ** (1 / years) - 1."""
    if len(snapshots) < 2 or snapshots[0].total <= 0:
        return ZERO
    hpr = calculate_holding_period_return(snapshots)
    years = years_between(snapshots[0].timestamp, snapshots[-1].timestamp, config)
    return annualize(ONE + hpr, years).unwrap_or(ZERO)


def snapshot_cash_flows(snapshots: Sequence[Snapshot]) -> list[tuple[datetime, Decimal]]:
    """Approximate external cash flows from the invested amount of each snapshot.

    The starting value counts as the first contribution, every change in the
    invested amount as a further contribution (or withdrawal), and the final
    value as the closing inflow. Contributions are negative.
    """
    if len(snapshots) < 2:
        return []

    flows = [(snapshots[0].timestamp, -snapshots[0].total)]
    for previous, current in zip(snapshots, snapshots[1:]):
        contributed = current.value.invested - previous.value.invested
        if contributed != 0:
            flows.append((current.timestamp, -contributed))
    flows.append((snapshots[-1].timestamp, snapshots[-1].total))
    return flows


def calculate_money_weighted_return(
    cash_flows: Sequence[tuple[datetime, Decimal]],
    config: RiskConfig = DEFAULT_RISK_CONFIG,
) -> Decimal:
    """Annualized internal rate of return of dated cash flows.

    Contributions are negative and the closing value positive. Returns 0 when
    there are fewer than two flows or no root lies in the search bracket.
    """
    if len(cash_flows) < 2:
        return ZERO

    d0 = min(when for when, _ in cash_flows)
    days_per_year = float(config.DAYS_PER_YEAR)
    terms = [((when - d0).total_seconds() / 86400 / days_per_year, float(amount)) for when, amount in cash_flows]

    if all(amount >= 0 for _, amount in terms) or all(amount <= 0 for _, amount in terms):
        return ZERO

    def npv(rate: float) -> float:
        return sum(amount / (1.0 + rate) ** t for t, amount in terms)

    try:
        rate = optimize.brentq(npv, IRR_LOWER_BOUND, IRR_UPPER_BOUND, maxiter=200)
    except (ValueError, RuntimeError) as e:
        logger.warning("Money-weighted return did not converge: %s", e)
        return ZERO

    return to_decimal(rate)


def calculate_portfolio_roi(
    portfolio: Portfolio,
    snapshots: Sequence[Snapshot] = (),
    realized_gains: Decimal | None = None,
    config: RiskConfig = DEFAULT_RISK_CONFIG,
) -> ROIMetrics:
    """Calculate portfolio-level returns.

    Args:
        portfolio: Current holdings, used for the simple/realized/unrealized split.
        snapshots: Ascending snapshots for time-weighted and annualized returns.
        realized_gains: Realized gains to attribute; defaults to the sum of the
            holdings' realized PnL.
        config: Day-count settings.
    """
    invested = portfolio.total_invested
    realized = portfolio.realized_pnl if realized_gains is None else realized_gains
    unrealized = portfolio.unrealized_pnl
    total_pnl = realized + unrealized

    def over_invested(amount: Decimal) -> Decimal:
        return safe_div(amount, invested, strictly_positive=True).unwrap_or(ZERO)

    metrics = {
        "simple_roi": over_invested(total_pnl),
        "total_roi": over_invested(portfolio.holdings_value - invested),
        "realized_roi": over_invested(realized),
        "unrealized_roi": over_invested(unrealized),
    }

    if len(snapshots) >= 2:
        ordered = sorted(snapshots, key=lambda s: s.timestamp)
        metrics.update(
            time_weighted_return=calculate_time_weighted_return(ordered),
            money_weighted_return=calculate_money_weighted_return(snapshot_cash_flows(ordered), config),
            cagr=calculate_cagr(ordered, config),
            annualized_roi=calculate_annualized_roi(ordered, config),
            holding_period_return=calculate_holding_period_return(ordered),
        )

    return ROIMetrics(**metrics)


def calculate_holding_roi(
    holding: Holding,
    transactions: Sequence[Transaction],
    method: CostBasisMethod | str = CostBasisMethod.FIFO,
    as_of: datetime | None = None,
    config: RiskConfig = DEFAULT_RISK_CONFIG,
) -> HoldingROI:
    """Return on one holding, separating realized, unrealized and dividend income.

    Realized gains are cost-basis aware: they come from replaying the trades
    through the ledger under ``method``. Unrealized gains are the current value
    less the remaining cost basis.
    """
    as_of = as_of or datetime.now(timezone.utc)
    own = [tx for tx in transactions if tx.symbol == holding.symbol]
    trades = [tx for tx in own if tx.kind in TRADE_KINDS]
    dividends = sum((tx.amount for tx in own if tx.kind == "dividend"), start=ZERO)

    buys = [tx for tx in trades if tx.kind == "buy"]
    total_bought = sum((tx.amount for tx in buys), start=ZERO)

    state = calculate_cost_basis(trades, method) if trades else None
    realized = state.realized_pnl if state else ZERO
    remaining_cost = state.total_invested if state else ZERO
    current_value = holding.current_value
    unrealized = current_value - remaining_cost if total_bought > 0 else ZERO

    gains = realized + unrealized + dividends
    simple = safe_div(gains, total_bought, strictly_positive=True).unwrap_or(ZERO)
    returned = current_value + realized + dividends
    hpr = safe_div(returned - total_bought, total_bought, strictly_positive=True).unwrap_or(ZERO)

    first_purchase = min((tx.timestamp for tx in buys), default=None)
    average_period = None
    annualized = ZERO
    if first_purchase is not None and total_bought > 0:
        held_for = as_of - first_purchase
        if held_for > timedelta(0):
            average_period = held_for / len(buys)
            ratio = returned / total_bought
            annualized = annualize(ratio, years_between(first_purchase, as_of, config)).unwrap_or(ZERO)

    if state and state.quantity != holding.quantity:
        logger.warning(
            "Holding %s quantity %s differs from its ledger quantity %s",
            holding.symbol, holding.quantity, state.quantity,
        )

    return HoldingROI(
        symbol=holding.symbol,
        total_invested=total_bought,
        current_value=current_value,
        realized_gains=realized,
        unrealized_gains=unrealized,
        dividends_received=dividends,
        simple_roi=simple,
        annualized_roi=annualized,
        holding_period_return=hpr,
        first_purchase=first_purchase,
        average_holding_period=average_period,
    )


def _period_key(moment: datetime, period: ReturnPeriod) -> str:
    if period is ReturnPeriod.WEEKLY:
        year, week, _ = moment.isocalendar()
        return f"{year}-W{week:02d}"
    if period is ReturnPeriod.MONTHLY:
        return moment.strftime("%Y-%m")
    if period is ReturnPeriod.YEARLY:
        return moment.strftime("%Y")
    return moment.strftime("%Y-%m-%d")


def calculate_period_roi(
    snapshots: Sequence[Snapshot],
    period: ReturnPeriod | str = ReturnPeriod.MONTHLY,
    config: RiskConfig = DEFAULT_RISK_CONFIG,
) -> list[PeriodROI]:
    """Return per calendar bucket (day, ISO week, month or year).

    Buckets with a single snapshot have no span and are left out.

    Raises:
        InsufficientDataError: With fewer than two snapshots.
        InvalidInputError: For an unknown period name.
    """
    if len(snapshots) < 2:
        raise InsufficientDataError(
            f"Need at least 2 snapshots for period returns, got {len(snapshots)}",
            required=2,
            actual=len(snapshots),
        )
    if not isinstance(period, ReturnPeriod):
        try:
            period = ReturnPeriod(period)
        except ValueError:
            raise InvalidInputError(f"Unknown return period: {period}") from None

    groups: dict[str, list[Snapshot]] = {}
    for snapshot in sorted(snapshots, key=lambda s: s.timestamp):
        groups.setdefault(_period_key(snapshot.timestamp, period), []).append(snapshot)

    results: list[PeriodROI] = []
    for label, members in groups.items():
        if len(members) < 2:
            continue
        first, last = members[0], members[-1]
        roi = calculate_holding_period_return(members)
        years = years_between(first.timestamp, last.timestamp, config)
        annualized = annualize(ONE + roi, years).unwrap_or(ZERO) if roi != 0 else ZERO

        results.append(
            PeriodROI(
                period=period,
                label=label,
                start=first.timestamp,
                end=last.timestamp,
                start_value=first.total,
                end_value=last.total,
                roi=roi,
                annualized_roi=annualized,
            )
        )

    return results


def calculate_tracking_error(
    returns: Sequence[Decimal], benchmark: Sequence[Decimal], config: RiskConfig = DEFAULT_RISK_CONFIG
) -> Decimal:
    """Annualized standard deviation of active returns."""
    if len(returns) != len(benchmark) or len(returns) < 2:
        return ZERO
    active = [p - b for p, b in zip(returns, benchmark)]
    return sample_std(active).unwrap_or(ZERO) * Decimal(config.TRADING_DAYS).sqrt()


def calculate_benchmark_comparison(
    snapshots: Sequence[Snapshot],
    benchmark_prices: Sequence[Decimal],
    config: RiskConfig = DEFAULT_RISK_CONFIG,
) -> BenchmarkComparison:
    """Compare the portfolio against a benchmark price series of the same length.

    Raises:
        InsufficientDataError: When the lengths differ or fewer than two points exist.
    """
    if len(snapshots) != len(benchmark_prices) or len(snapshots) < 2:
        raise InsufficientDataError(
            f"Benchmark comparison needs two aligned series of at least 2 points, "
            f"got {len(snapshots)} snapshots and {len(benchmark_prices)} benchmark prices"
        )

    portfolio_roi = calculate_holding_period_return(snapshots)
    benchmark_roi = safe_div(
        benchmark_prices[-1] - benchmark_prices[0], benchmark_prices[0], strictly_positive=True
    ).unwrap_or(ZERO)

    portfolio_returns = simple_returns([s.total for s in snapshots])
    benchmark_returns = simple_returns(list(benchmark_prices))

    return BenchmarkComparison(
        portfolio_roi=portfolio_roi,
        benchmark_roi=benchmark_roi,
        outperformance=portfolio_roi - benchmark_roi,
        tracking_error=calculate_tracking_error(portfolio_returns, benchmark_returns, config),
    )
