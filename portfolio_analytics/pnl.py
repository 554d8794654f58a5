"""Profit-and-loss calculation for holdings and whole portfolios."""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Mapping, Sequence

from .models import Holding, Portfolio, Snapshot
from .safe_math import HUNDRED, ZERO, safe_div

logger = logging.getLogger(__name__)

# Age windows [start, end) a reference snapshot must fall in, per period.
PERIOD_WINDOWS: dict[str, tuple[timedelta, timedelta]] = {
    "daily": (timedelta(hours=24), timedelta(hours=48)),
    "weekly": (timedelta(days=7), timedelta(days=14)),
    "monthly": (timedelta(days=30), timedelta(days=60)),
    "yearly": (timedelta(days=365), timedelta(days=730)),
}


@dataclass(frozen=True)
class HoldingPnL:
    symbol: str
    quantity: Decimal
    average_cost: Decimal
    current_price: Decimal
    invested: Decimal
    current_value: Decimal
    pnl: Decimal
    pnl_percentage: Decimal
    percentage_of_portfolio: Decimal = ZERO


@dataclass(frozen=True)
class PeriodChange:
    amount: Decimal = ZERO
    percentage: Decimal = ZERO
    reference_timestamp: datetime | None = None


@dataclass(frozen=True)
class PnLResult:
    total_value: Decimal
    total_invested: Decimal
    cash: Decimal
    realized_pnl: Decimal
    unrealized_pnl: Decimal
    total_pnl: Decimal
    pnl_percentage: Decimal
    holdings: tuple[HoldingPnL, ...] = ()
    daily: PeriodChange = field(default_factory=PeriodChange)
    weekly: PeriodChange = field(default_factory=PeriodChange)
    monthly: PeriodChange = field(default_factory=PeriodChange)
    yearly: PeriodChange = field(default_factory=PeriodChange)


def calculate_holding_pnl(holding: Holding, current_price: Decimal | None = None) -> HoldingPnL:
    """PnL of one holding at ``current_price`` (defaults to its cached price)."""
    price = holding.current_price if current_price is None else current_price
    current_value = holding.quantity * price
    invested = holding.quantity * holding.average_cost
    pnl = current_value - invested
    pct = safe_div(pnl, invested, strictly_positive=True).unwrap_or(ZERO) * HUNDRED

    return HoldingPnL(
        symbol=holding.symbol,
        quantity=holding.quantity,
        average_cost=holding.average_cost,
        current_price=price,
        invested=invested,
        current_value=current_value,
        pnl=pnl,
        pnl_percentage=pct,
    )


def calculate_periodic_changes(
    total_value: Decimal,
    snapshots: Sequence[Snapshot],
    as_of: datetime,
) -> dict[str, PeriodChange]:
    """Difference ``total_value`` against the newest snapshot inside each age window.

    A period with no snapshot in its window is reported as a zero change.
    """
    newest_first = sorted(snapshots, key=lambda s: s.timestamp, reverse=True)
    changes: dict[str, PeriodChange] = {}

    for period, (start, end) in PERIOD_WINDOWS.items():
        reference = next(
            (s for s in newest_first if start <= as_of - s.timestamp < end),
            None,
        )
        if reference is None:
            changes[period] = PeriodChange()
            continue

        amount = total_value - reference.total
        pct = safe_div(amount, reference.total, strictly_positive=True).unwrap_or(ZERO) * HUNDRED
        changes[period] = PeriodChange(
            amount=amount, percentage=pct, reference_timestamp=reference.timestamp
        )

    return changes


def calculate_portfolio_pnl(
    portfolio: Portfolio,
    snapshots: Sequence[Snapshot] = (),
    prices: Mapping[str, Decimal] | None = None,
    as_of: datetime | None = None,
) -> PnLResult:
    """Calculate portfolio-level PnL and periodic change.

    Args:
        portfolio: Holdings and cash to value.
        snapshots: Historical snapshots used for daily/weekly/monthly/yearly change.
        prices: Live prices by symbol. Holdings without a live price keep their
            cached price.
        as_of: Reference time for snapshot ages. Defaults to now (UTC).

    Returns:
        PnLResult with per-holding breakdown. Zero-quantity holdings are skipped.
    """
    prices = prices or {}
    as_of = as_of or datetime.now(timezone.utc)

    logger.info("Calculating portfolio PnL for user %s", portfolio.user_id)

    per_holding: list[HoldingPnL] = []
    for holding in portfolio.holdings:
        if holding.quantity == 0:
            continue

        price = prices.get(holding.symbol)
        if price is None:
            if prices:
                logger.warning("No live price for %s, using cached price %s", holding.symbol, holding.current_price)
            price = holding.current_price

        per_holding.append(calculate_holding_pnl(holding, price))

    holdings_value = sum((h.current_value for h in per_holding), start=ZERO)
    total_value = holdings_value + portfolio.cash
    total_invested = sum((h.invested for h in per_holding), start=ZERO)
    unrealized = sum((h.pnl for h in per_holding), start=ZERO)
    realized = portfolio.realized_pnl
    total_pnl = realized + unrealized

    per_holding = [
        replace(
            h,
            percentage_of_portfolio=safe_div(h.current_value, total_value, strictly_positive=True)
            .unwrap_or(ZERO) * HUNDRED,
        )
        for h in per_holding
    ]

    changes = calculate_periodic_changes(total_value, snapshots, as_of)

    result = PnLResult(
        total_value=total_value,
        total_invested=total_invested,
        cash=portfolio.cash,
        realized_pnl=realized,
        unrealized_pnl=unrealized,
        total_pnl=total_pnl,
        pnl_percentage=safe_div(total_pnl, total_invested, strictly_positive=True).unwrap_or(ZERO) * HUNDRED,
        holdings=tuple(per_holding),
        daily=changes["daily"],
        weekly=changes["weekly"],
        monthly=changes["monthly"],
        yearly=changes["yearly"],
    )

    logger.info(
        "Portfolio PnL for user %s: value=%s pnl=%s (%s%%)",
        portfolio.user_id, result.total_value, result.total_pnl, round(result.pnl_percentage, 2),
    )
    return result


def apply_pnl(portfolio: Portfolio, result: PnLResult) -> Portfolio:
    """Return a copy of ``portfolio`` carrying the prices and shares from ``result``."""
    by_symbol = {h.symbol: h for h in result.holdings}

    holdings = tuple(
        replace(
            holding,
            current_price=by_symbol[holding.symbol].current_price,
            percentage_of_portfolio=by_symbol[holding.symbol].percentage_of_portfolio,
        )
        if holding.symbol in by_symbol else holding
        for holding in portfolio.holdings
    )

    performance = replace(
        portfolio.performance,
        total_pnl=result.total_pnl,
        pnl_percentage=result.pnl_percentage,
        daily_change=result.daily.amount,
        daily_change_percentage=result.daily.percentage,
        weekly_change=result.weekly.amount,
        monthly_change=result.monthly.amount,
        yearly_change=result.yearly.amount,
    )

    return replace(portfolio, holdings=holdings, performance=performance)
