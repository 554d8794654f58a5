"""Portfolio optimization: target weights, rebalancing actions and schedules."""

import calendar
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Literal, Sequence

import numpy as np

from .config import OptimizationStrategy, OptimizerConfig, RebalanceFrequency, RiskConfig
from .errors import InvalidInputError
from .models import Holding, OptimizationConstraints, Portfolio
from .optimizers import (
    CategoryCovarianceEstimator,
    CovarianceEstimator,
    EqualWeightStrategy,
    MaxSharpeStrategy,
    MinVarianceStrategy,
    RiskParityStrategy,
)
from .roi import years_between
from .safe_math import HUNDRED, ONE, ZERO, annualize, safe_div, safe_sqrt, to_decimal

logger = logging.getLogger(__name__)

DEFAULT_RISK_CONFIG = RiskConfig()
DEFAULT_OPTIMIZER_CONFIG = OptimizerConfig()

ActionKind = Literal["buy", "sell", "hold"]

STRATEGIES = {
    OptimizationStrategy.EQUAL_WEIGHT: EqualWeightStrategy,
    OptimizationStrategy.MIN_VARIANCE: MinVarianceStrategy,
    OptimizationStrategy.MAX_SHARPE: MaxSharpeStrategy,
    OptimizationStrategy.RISK_PARITY: RiskParityStrategy,
}


@dataclass(frozen=True)
class RebalancingAction:
    symbol: str
    action: ActionKind
    current_quantity: Decimal
    target_quantity: Decimal
    delta_quantity: Decimal
    current_value: Decimal
    target_value: Decimal
    delta_value: Decimal
    priority: int = 0


@dataclass(frozen=True)
class OptimizationResult:
    strategy: OptimizationStrategy
    target_weights: dict[str, Decimal]
    current_weights: dict[str, Decimal]
    actions: tuple[RebalancingAction, ...]
    expected_return: Decimal
    expected_volatility: Decimal
    expected_sharpe: Decimal
    turnover: Decimal
    estimated_cost: Decimal
    exceeds_turnover_limit: bool
    recommendation: str


@dataclass(frozen=True)
class RebalancingTrigger:
    kind: Literal["weight_deviation", "high_volatility"]
    threshold: Decimal
    current_value: Decimal
    triggered: bool
    description: str


@dataclass(frozen=True)
class ScheduledAction:
    symbol: str
    action: ActionKind
    amount: Decimal
    reason: str


@dataclass(frozen=True)
class RebalancingSchedule:
    frequency: RebalanceFrequency
    threshold: Decimal
    immediate: bool
    next_date: datetime
    triggers: tuple[RebalancingTrigger, ...] = ()
    actions: tuple[ScheduledAction, ...] = ()


def resolve_strategy(strategy: OptimizationStrategy | str) -> OptimizationStrategy:
    if isinstance(strategy, OptimizationStrategy):
        return strategy
    try:
        return OptimizationStrategy(str(strategy).lower())
    except ValueError:
        raise InvalidInputError(f"Unknown strategy: {strategy}") from None


def resolve_frequency(frequency: RebalanceFrequency | str) -> RebalanceFrequency:
    """Accept an enum member or its value; unknown values fall back to monthly."""
    if isinstance(frequency, RebalanceFrequency):
        return frequency
    try:
        return RebalanceFrequency(str(frequency).lower())
    except ValueError:
        logger.warning("Unknown rebalance frequency %r, falling back to monthly", frequency)
        return RebalanceFrequency.MONTHLY


def estimate_expected_returns(
    holdings: Sequence[Holding],
    as_of: datetime,
    risk_config: RiskConfig = DEFAULT_RISK_CONFIG,
    config: OptimizerConfig = DEFAULT_OPTIMIZER_CONFIG,
) -> np.ndarray:
    """Annual expected return per holding from its unrealized PnL.

    A holding held for a year or more has its PnL fraction compounded down to
    an annual rate; shorter histories use the raw fraction. A holding with no
    PnL at all gets the risk-free rate plus a fixed premium.
    """
    fallback = float(risk_config.RISK_FREE_RATE + config.RISK_PREMIUM)
    estimates: list[float] = []

    for holding in holdings:
        fraction = holding.pnl_percentage / HUNDRED
        if fraction == 0:
            estimates.append(fallback)
            continue

        if holding.first_activity is not None:
            years = years_between(holding.first_activity, as_of, risk_config)
            if years >= 1:
                fraction = annualize(ONE + fraction, years).unwrap_or(fraction)

        estimates.append(float(fraction))

    return np.array(estimates)


def _build_actions(
    portfolio: Portfolio,
    current_weights: dict[str, Decimal],
    target_weights: dict[str, Decimal],
    config: OptimizerConfig,
) -> list[RebalancingAction]:
    total_value = portfolio.total_value
    actions: list[RebalancingAction] = []

    for symbol in dict.fromkeys([*current_weights, *target_weights]):
        holding = portfolio.get_holding(symbol)
        current_qty = holding.quantity if holding else ZERO
        current_value = holding.current_value if holding else ZERO
        price = holding.current_price if holding else ZERO

        target_value = target_weights.get(symbol, ZERO) * total_value
        delta_value = target_value - current_value

        action: ActionKind = "hold"
        if abs(delta_value) > config.HOLD_TOLERANCE * total_value:
            action = "buy" if delta_value > 0 else "sell"

        target_qty = safe_div(target_value, price, strictly_positive=True).unwrap_or(ZERO)
        actions.append(
            RebalancingAction(
                symbol=symbol,
                action=action,
                current_quantity=current_qty,
                target_quantity=target_qty,
                delta_quantity=target_qty - current_qty if price > 0 else ZERO,
                current_value=current_value,
                target_value=target_value,
                delta_value=delta_value,
            )
        )

    actions.sort(key=lambda a: abs(a.delta_value), reverse=True)
    return [replace(a, priority=rank) for rank, a in enumerate(actions, start=1)]


def calculate_turnover(
    current_weights: dict[str, Decimal], target_weights: dict[str, Decimal]
) -> Decimal:
    """Half the summed absolute weight change, counting new and closed positions."""
    symbols = set(current_weights) | set(target_weights)
    moved = sum(
        (abs(target_weights.get(s, ZERO) - current_weights.get(s, ZERO)) for s in symbols),
        start=ZERO,
    )
    return moved / 2


def _recommendation(
    strategy: OptimizationStrategy,
    turnover: Decimal,
    sharpe: Decimal,
    exceeds_limit: bool,
) -> str:
    if turnover < Decimal("0.05"):
        text = "Portfolio is well-balanced. Minor adjustments recommended."
    elif turnover > Decimal("0.3"):
        text = "Significant rebalancing required. "
        if sharpe > 1:
            text += "High expected Sharpe ratio justifies the rebalancing costs."
        else:
            text += "Consider the transaction costs before implementing all changes."
    elif strategy is OptimizationStrategy.MAX_SHARPE:
        text = "Rebalancing to maximize risk-adjusted returns. Monitor implementation costs."
    elif strategy is OptimizationStrategy.MIN_VARIANCE:
        text = "Conservative rebalancing to reduce portfolio risk."
    elif strategy is OptimizationStrategy.RISK_PARITY:
        text = "Risk parity allocation to balance risk contributions across holdings."
    else:
        text = "Portfolio optimization completed. Review suggested changes carefully."

    if exceeds_limit:
        text += " Turnover exceeds the configured limit; consider phasing the trades."
    return text


def optimize_portfolio(
    portfolio: Portfolio,
    strategy: OptimizationStrategy | str = OptimizationStrategy.EQUAL_WEIGHT,
    constraints: OptimizationConstraints | None = None,
    estimator: CovarianceEstimator | None = None,
    as_of: datetime | None = None,
    risk_config: RiskConfig = DEFAULT_RISK_CONFIG,
    config: OptimizerConfig = DEFAULT_OPTIMIZER_CONFIG,
) -> OptimizationResult:
    """Propose target weights and the trades that reach them.

    Args:
        portfolio: Holdings to optimize. Zero-quantity holdings are ignored.
        strategy: Weighting strategy, as an enum member or its value.
        constraints: Weight limits and cost rate. Defaults apply when omitted.
        estimator: Covariance source. Defaults to category heuristics.
        as_of: Reference time for annualizing expected returns.
        risk_config: Supplies the risk-free rate.
        config: Heuristic variances, correlations and risk premium.

    Returns:
        OptimizationResult whose target weights sum to 1.

    Raises:
        InvalidInputError: With no holdings, an unknown strategy, or every
            holding excluded.
    """
    strategy = resolve_strategy(strategy)
    constraints = constraints or OptimizationConstraints()
    estimator = estimator or CategoryCovarianceEstimator(config)
    as_of = as_of or datetime.now(timezone.utc)

    holdings = [h for h in portfolio.holdings if h.quantity > 0]
    if not holdings:
        raise InvalidInputError("Portfolio has no holdings to optimize")

    strategy_cls = STRATEGIES[strategy]

    logger.info(
        "Optimizing %d holdings for user %s with %s", len(holdings), portfolio.user_id, strategy.value
    )

    rf = float(risk_config.RISK_FREE_RATE)
    expected_returns = estimate_expected_returns(holdings, as_of, risk_config, config)
    covariance = estimator.estimate(holdings)

    target_weights = strategy_cls().target_weights(
        holdings, expected_returns, covariance, constraints, rf
    )
    current_weights = portfolio.current_allocation()

    w = np.array([float(target_weights.get(h.symbol, ZERO)) for h in holdings])
    expected_return = to_decimal(float(w @ expected_returns))
    volatility = safe_sqrt(to_decimal(float(w @ covariance @ w))).unwrap_or(ZERO)
    sharpe = safe_div(
        expected_return - risk_config.RISK_FREE_RATE, volatility, strictly_positive=True
    ).unwrap_or(ZERO)

    turnover = calculate_turnover(current_weights, target_weights)
    exceeds_limit = turnover > constraints.turnover_limit
    if exceeds_limit:
        logger.warning(
            "Turnover %s exceeds limit %s for user %s",
            round(turnover, 4), constraints.turnover_limit, portfolio.user_id,
        )

    return OptimizationResult(
        strategy=strategy,
        target_weights=target_weights,
        current_weights=current_weights,
        actions=tuple(_build_actions(portfolio, current_weights, target_weights, config)),
        expected_return=expected_return,
        expected_volatility=volatility,
        expected_sharpe=sharpe,
        turnover=turnover,
        estimated_cost=turnover * constraints.transaction_cost_rate,
        exceeds_turnover_limit=exceeds_limit,
        recommendation=_recommendation(strategy, turnover, sharpe, exceeds_limit),
    )


def calculate_rebalancing_triggers(
    portfolio: Portfolio,
    threshold: Decimal,
    config: OptimizerConfig = DEFAULT_OPTIMIZER_CONFIG,
) -> list[RebalancingTrigger]:
    """Weight-deviation triggers against equal weight plus a volatility trigger.

    ``threshold`` is the relative deviation from the equal-weight target, so
    0.25 fires when a weight is more than 25% above or below 1/n.
    """
    triggers: list[RebalancingTrigger] = []
    total = portfolio.total_value

    if total > 0 and portfolio.holdings:
        target = ONE / Decimal(len(portfolio.holdings))
        for holding in portfolio.holdings:
            deviation = abs(holding.current_value / total - target) / target
            triggers.append(
                RebalancingTrigger(
                    kind="weight_deviation",
                    threshold=threshold,
                    current_value=deviation,
                    triggered=deviation > threshold,
                    description=f"{holding.symbol} weight deviation: {deviation * HUNDRED:.2f}%",
                )
            )

    volatility = portfolio.risk.volatility_30d
    if volatility > config.VOLATILITY_TRIGGER:
        triggers.append(
            RebalancingTrigger(
                kind="high_volatility",
                threshold=config.VOLATILITY_TRIGGER,
                current_value=volatility,
                triggered=True,
                description="High portfolio volatility detected",
            )
        )

    return triggers


def add_months(moment: datetime, months: int) -> datetime:
    """Same day ``months`` later, clamped to the end of shorter months."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def next_rebalancing_date(frequency: RebalanceFrequency, as_of: datetime) -> datetime:
    if frequency is RebalanceFrequency.WEEKLY:
        return as_of + timedelta(days=7)
    if frequency is RebalanceFrequency.QUARTERLY:
        return add_months(as_of, 3)
    return add_months(as_of, 1)


def create_rebalancing_schedule(
    portfolio: Portfolio,
    frequency: RebalanceFrequency | str = RebalanceFrequency.MONTHLY,
    threshold: Decimal = Decimal("0.25"),
    as_of: datetime | None = None,
    config: OptimizerConfig = DEFAULT_OPTIMIZER_CONFIG,
) -> RebalancingSchedule:
    """Decide whether to rebalance now or when the next scheduled date falls.

    When any trigger fires, an equal-weight optimization supplies the
    immediate buy and sell actions and ``next_date`` is ``as_of``.
    """
    frequency = resolve_frequency(frequency)
    as_of = as_of or datetime.now(timezone.utc)

    triggers = calculate_rebalancing_triggers(portfolio, threshold, config)
    if not any(t.triggered for t in triggers):
        return RebalancingSchedule(
            frequency=frequency,
            threshold=threshold,
            immediate=False,
            next_date=next_rebalancing_date(frequency, as_of),
            triggers=tuple(triggers),
        )

    logger.info(
        "Rebalancing triggered for user %s (%d triggers)",
        portfolio.user_id, sum(1 for t in triggers if t.triggered),
    )
    try:
        result = optimize_portfolio(
            portfolio, OptimizationStrategy.EQUAL_WEIGHT, as_of=as_of, config=config
        )
    except InvalidInputError as e:
        logger.warning("Rebalancing triggered but no actions available: %s", e)
        return RebalancingSchedule(
            frequency=frequency,
            threshold=threshold,
            immediate=True,
            next_date=as_of,
            triggers=tuple(triggers),
        )

    actions = tuple(
        ScheduledAction(
            symbol=a.symbol,
            action=a.action,
            amount=abs(a.delta_value),
            reason="Threshold-based rebalancing",
        )
        for a in result.actions
        if a.action != "hold"
    )

    return RebalancingSchedule(
        frequency=frequency,
        threshold=threshold,
        immediate=True,
        next_date=as_of,
        triggers=tuple(triggers),
        actions=actions,
    )
