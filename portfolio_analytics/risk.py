"""Risk metrics derived from a snapshot value series.

All ratios follow the same rule: a non-positive denominator yields exactly 0.
Returns are simple period-over-period returns; annualization assumes one
snapshot per trading day.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from .config import RiskConfig
from .errors import InsufficientDataError
from .models import Snapshot
from .safe_math import (
    HUNDRED,
    ONE,
    ZERO,
    mean,
    safe_div,
    safe_sqrt,
    sample_std,
    simple_returns,
)

logger = logging.getLogger(__name__)

DEFAULT_RISK_CONFIG = RiskConfig()


@dataclass(frozen=True)
class RiskMetricsResult:
    volatility_30d: Decimal = ZERO
    volatility_90d: Decimal = ZERO
    sharpe_ratio: Decimal = ZERO
    sortino_ratio: Decimal = ZERO
    max_drawdown: Decimal = ZERO
    max_drawdown_periods: int = 0
    var_95: Decimal = ZERO
    var_99: Decimal = ZERO
    cvar_95: Decimal = ZERO
    cvar_99: Decimal = ZERO
    beta: Decimal = ONE
    alpha: Decimal = ZERO
    calmar_ratio: Decimal = ZERO
    information_ratio: Decimal = ZERO
    treynor_ratio: Decimal = ZERO
    upside_deviation: Decimal = ZERO
    downside_deviation: Decimal = ZERO
    return_count: int = 0


@dataclass(frozen=True)
class RiskProfile:
    level: str
    score: Decimal
    description: str
    recommendations: tuple[str, ...] = ()


# (upper score bound, level, description, recommendations)
RISK_LEVELS: tuple[tuple[Decimal, str, str, tuple[str, ...]], ...] = (
    (
        Decimal("20"),
        "Conservative",
        "Low risk portfolio with stable returns and minimal drawdowns",
        (
            "Portfolio shows conservative risk profile",
            "Consider increasing allocation to growth assets for higher returns",
            "Maintain current diversification strategy",
        ),
    ),
    (
        Decimal("40"),
        "Moderate",
        "Balanced risk portfolio with moderate volatility",
        (
            "Well-balanced risk/return profile",
            "Monitor correlation between holdings",
            "Consider rebalancing if concentration risk increases",
        ),
    ),
    (
        Decimal("60"),
        "Moderate-Aggressive",
        "Higher volatility with potential for greater returns",
        (
            "Above-average risk levels detected",
            "Consider reducing position sizes in volatile assets",
            "Implement stop-loss strategies",
        ),
    ),
    (
        Decimal("80"),
        "Aggressive",
        "High volatility portfolio with significant risk exposure",
        (
            "High risk portfolio requires active monitoring",
            "Consider diversifying across asset classes",
            "Implement risk management strategies",
        ),
    ),
)

VERY_AGGRESSIVE = (
    "Very Aggressive",
    "Very high risk with extreme volatility and potential for large losses",
    (
        "Extremely high risk levels detected",
        "Immediate risk reduction recommended",
        "Consider reducing portfolio concentration",
        "Implement strict risk management protocols",
    ),
)


def calculate_returns(snapshots: Sequence[Snapshot]) -> list[Decimal]:
    """Simple returns between consecutive snapshots, skipping zero-valued bases."""
    return simple_returns([s.total for s in snapshots])


def _annualization_factor(config: RiskConfig) -> Decimal:
    return Decimal(config.TRADING_DAYS).sqrt()


def calculate_volatility(returns: Sequence[Decimal], config: RiskConfig = DEFAULT_RISK_CONFIG) -> Decimal:
    """Annualized sample standard deviation; 0 with fewer than two returns."""
    return sample_std(returns).unwrap_or(ZERO) * _annualization_factor(config)


def calculate_sharpe_ratio(returns: Sequence[Decimal], config: RiskConfig = DEFAULT_RISK_CONFIG) -> Decimal:
    daily_rf = config.RISK_FREE_RATE / config.TRADING_DAYS
    excess = [r - daily_rf for r in returns]

    std = sample_std(excess).unwrap_or(ZERO)
    annual_mean = mean(excess) * config.TRADING_DAYS
    annual_std = std * _annualization_factor(config)
    return safe_div(annual_mean, annual_std, strictly_positive=True).unwrap_or(ZERO)


def calculate_sortino_ratio(returns: Sequence[Decimal], config: RiskConfig = DEFAULT_RISK_CONFIG) -> Decimal:
    """Mean excess return over downside deviation below the daily risk-free rate."""
    if len(returns) < 2:
        return ZERO

    daily_rf = config.RISK_FREE_RATE / config.TRADING_DAYS
    downside = [(r - daily_rf) ** 2 for r in returns if r < daily_rf]
    if not downside:
        return ZERO

    downside_std = safe_sqrt(mean(downside)).unwrap_or(ZERO)
    annual_mean = (mean(returns) - daily_rf) * config.TRADING_DAYS
    annual_downside = downside_std * _annualization_factor(config)
    return safe_div(annual_mean, annual_downside, strictly_positive=True).unwrap_or(ZERO)


def calculate_max_drawdown(values: Sequence[Decimal]) -> tuple[Decimal, int]:
    """Largest peak-to-trough decline and the number of periods since that peak.

    Returns:
        Tuple of (max drawdown as a fraction of the peak, periods from the
        peak to the trough).
    """
    if len(values) < 2:
        return ZERO, 0

    max_drawdown = ZERO
    periods = 0
    peak = values[0]
    peak_index = 0

    for i, value in enumerate(values):
        if value > peak:
            peak = value
            peak_index = i

        if peak > 0:
            drawdown = (peak - value) / peak
            if drawdown > max_drawdown:
                max_drawdown = drawdown
                periods = i - peak_index

    return max_drawdown, periods


def _tail_index(count: int, confidence: Decimal) -> int:
    index = int(Decimal(count) * (ONE - confidence))
    return min(index, count - 1)


def calculate_var(returns: Sequence[Decimal], confidence: Decimal) -> Decimal:
    """Historical Value-at-Risk, expressed as a positive loss."""
    if not returns:
        return ZERO
    ordered = sorted(returns)
    return -ordered[_tail_index(len(ordered), confidence)]


def calculate_cvar(returns: Sequence[Decimal], confidence: Decimal) -> Decimal:
    """Mean of the returns at or below the VaR cut-off, expressed as a positive loss."""
    if not returns:
        return ZERO
    ordered = sorted(returns)
    tail = ordered[: _tail_index(len(ordered), confidence) + 1]
    return -mean(tail)


def calculate_beta(returns: Sequence[Decimal], benchmark: Sequence[Decimal]) -> Decimal:
    """Cov(portfolio, benchmark) / Var(benchmark); 1 when undefined."""
    if len(returns) != len(benchmark) or len(returns) < 2:
        return ONE

    mean_p = mean(returns)
    mean_b = mean(benchmark)
    covariance = sum(((p - mean_p) * (b - mean_b) for p, b in zip(returns, benchmark)), start=ZERO)
    variance = sum(((b - mean_b) ** 2 for b in benchmark), start=ZERO)
    return safe_div(covariance, variance, strictly_positive=True).unwrap_or(ONE)


def calculate_alpha(
    returns: Sequence[Decimal],
    benchmark: Sequence[Decimal],
    beta: Decimal,
    config: RiskConfig = DEFAULT_RISK_CONFIG,
) -> Decimal:
    """Annualized Jensen's alpha against the benchmark."""
    if len(returns) != len(benchmark) or not returns:
        return ZERO

    daily_rf = config.RISK_FREE_RATE / config.TRADING_DAYS
    expected = daily_rf + beta * (mean(benchmark) - daily_rf)
    return (mean(returns) - expected) * config.TRADING_DAYS


def calculate_calmar_ratio(
    returns: Sequence[Decimal], max_drawdown: Decimal, config: RiskConfig = DEFAULT_RISK_CONFIG
) -> Decimal:
    if not returns:
        return ZERO
    annual_return = mean(returns) * config.TRADING_DAYS
    return safe_div(annual_return, max_drawdown, strictly_positive=True).unwrap_or(ZERO)


def calculate_treynor_ratio(
    returns: Sequence[Decimal], beta: Decimal, config: RiskConfig = DEFAULT_RISK_CONFIG
) -> Decimal:
    if not returns:
        return ZERO
    excess = mean(returns) * config.TRADING_DAYS - config.RISK_FREE_RATE
    return safe_div(excess, beta, strictly_positive=True).unwrap_or(ZERO)


def calculate_information_ratio(
    returns: Sequence[Decimal], benchmark: Sequence[Decimal], config: RiskConfig = DEFAULT_RISK_CONFIG
) -> Decimal:
    """Annualized mean active return over annualized tracking error."""
    if len(returns) != len(benchmark) or len(returns) < 2:
        return ZERO

    active = [p - b for p, b in zip(returns, benchmark)]
    tracking_error = sample_std(active).unwrap_or(ZERO) * _annualization_factor(config)
    annual_active = mean(active) * config.TRADING_DAYS
    return safe_div(annual_active, tracking_error, strictly_positive=True).unwrap_or(ZERO)


def calculate_upside_downside_deviation(
    returns: Sequence[Decimal], config: RiskConfig = DEFAULT_RISK_CONFIG
) -> tuple[Decimal, Decimal]:
    """Annualized deviation of returns above and below their mean."""
    if len(returns) < 2:
        return ZERO, ZERO

    avg = mean(returns)
    upside = [(r - avg) ** 2 for r in returns if r > avg]
    downside = [(r - avg) ** 2 for r in returns if r < avg]
    factor = _annualization_factor(config)

    up = safe_sqrt(mean(upside)).unwrap_or(ZERO) * factor
    down = safe_sqrt(mean(downside)).unwrap_or(ZERO) * factor
    return up, down


def calculate_risk_metrics(
    snapshots: Sequence[Snapshot],
    benchmark_returns: Sequence[Decimal] | None = None,
    config: RiskConfig = DEFAULT_RISK_CONFIG,
) -> RiskMetricsResult:
    """Calculate the full risk metric set for an ascending snapshot series.

    Args:
        snapshots: Snapshots ordered by timestamp, oldest first.
        benchmark_returns: Optional benchmark return series aligned with the
            portfolio return series. Beta, alpha, Treynor and information
            ratio are only computed when the lengths match.
        config: Risk-free rate, trading days and window sizes.

    Returns:
        RiskMetricsResult.

    Raises:
        InsufficientDataError: With fewer than two snapshots or no valid return.
    """
    if len(snapshots) < config.MIN_SNAPSHOTS:
        raise InsufficientDataError(
            f"Need at least {config.MIN_SNAPSHOTS} snapshots for risk metrics, got {len(snapshots)}",
            required=config.MIN_SNAPSHOTS,
            actual=len(snapshots),
        )

    returns = calculate_returns(snapshots)
    if not returns:
        raise InsufficientDataError("No valid returns: every snapshot base value is zero")

    max_drawdown, drawdown_periods = calculate_max_drawdown([s.total for s in snapshots])
    upside, downside = calculate_upside_downside_deviation(returns, config)

    beta, alpha, treynor, information = ONE, ZERO, ZERO, ZERO
    if benchmark_returns:
        if len(benchmark_returns) == len(returns):
            beta = calculate_beta(returns, benchmark_returns)
            alpha = calculate_alpha(returns, benchmark_returns, beta, config)
            treynor = calculate_treynor_ratio(returns, beta, config)
            information = calculate_information_ratio(returns, benchmark_returns, config)
        else:
            logger.warning(
                "Benchmark has %d returns but portfolio has %d; skipping benchmark metrics",
                len(benchmark_returns), len(returns),
            )

    result = RiskMetricsResult(
        volatility_30d=calculate_volatility(returns[-config.SHORT_VOLATILITY_WINDOW:], config),
        volatility_90d=calculate_volatility(returns[-config.LONG_VOLATILITY_WINDOW:], config),
        sharpe_ratio=calculate_sharpe_ratio(returns, config),
        sortino_ratio=calculate_sortino_ratio(returns, config),
        max_drawdown=max_drawdown,
        max_drawdown_periods=drawdown_periods,
        var_95=calculate_var(returns, config.VAR_CONFIDENCE),
        var_99=calculate_var(returns, config.VAR_CONFIDENCE_EXTREME),
        cvar_95=calculate_cvar(returns, config.VAR_CONFIDENCE),
        cvar_99=calculate_cvar(returns, config.VAR_CONFIDENCE_EXTREME),
        beta=beta,
        alpha=alpha,
        calmar_ratio=calculate_calmar_ratio(returns, max_drawdown, config),
        information_ratio=information,
        treynor_ratio=treynor,
        upside_deviation=upside,
        downside_deviation=downside,
        return_count=len(returns),
    )

    logger.info(
        "Risk metrics over %d returns: volatility_30d=%s sharpe=%s max_drawdown=%s",
        len(returns), round(result.volatility_30d, 4), round(result.sharpe_ratio, 4),
        round(result.max_drawdown, 4),
    )
    return result


def _normalize(value: Decimal, scale: Decimal) -> Decimal:
    return min(max(value * scale, ZERO), HUNDRED)


def assess_risk_profile(metrics: RiskMetricsResult) -> RiskProfile:
    """Score a metric set 0-100 and map it to a named risk level."""
    score = (
        _normalize(metrics.volatility_30d, HUNDRED) * Decimal("0.4")
        + _normalize(metrics.max_drawdown, HUNDRED) * Decimal("0.3")
        + _normalize(metrics.var_95, Decimal("200")) * Decimal("0.3")
    )

    level, description, recommendations = VERY_AGGRESSIVE
    for upper, name, text, advice in RISK_LEVELS:
        if score <= upper:
            level, description, recommendations = name, text, advice
            break

    extra: list[str] = []
    if metrics.max_drawdown > Decimal("0.2"):
        extra.append(f"Maximum drawdown of {metrics.max_drawdown * HUNDRED:.1f}% is concerning")
    if metrics.sharpe_ratio < Decimal("0.5"):
        extra.append("Low Sharpe ratio indicates poor risk-adjusted returns")
    if metrics.volatility_30d > Decimal("0.5"):
        extra.append("High volatility detected - consider reducing position sizes")

    return RiskProfile(
        level=level,
        score=score,
        description=description,
        recommendations=tuple(recommendations) + tuple(extra),
    )
