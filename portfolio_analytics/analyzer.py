"""Comprehensive portfolio analysis: composes every calculation into one report.

Each section runs independently. A section that fails with an engine error is
logged, left as ``None`` and listed in ``skipped_sections``; the remaining
sections still run. Sections whose optional input (benchmark, price history)
was not supplied are left as ``None`` without being reported as skipped.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Sequence, TypeVar

from .config import DiversificationConfig, OptimizationStrategy, RiskConfig
from .correlation import CorrelationMatrix, analyze_correlations
from .diversification import (
    DiversificationScore,
    VolatilityClustering,
    analyze_volatility_clustering,
    calculate_diversification_score,
)
from .errors import AnalyticsError, InsufficientDataError
from .models import Portfolio, PriceObservation, Snapshot
from .pnl import PnLResult, calculate_portfolio_pnl
from .rebalancing import OptimizationResult, optimize_portfolio
from .risk import RiskMetricsResult, RiskProfile, assess_risk_profile, calculate_risk_metrics
from .roi import BenchmarkComparison, ROIMetrics, calculate_benchmark_comparison, calculate_portfolio_roi
from .safe_math import HUNDRED, ONE, ZERO, herfindahl, mean, safe_div

logger = logging.getLogger(__name__)

DEFAULT_RISK_CONFIG = RiskConfig()
DEFAULT_DIVERSIFICATION_CONFIG = DiversificationConfig()

T = TypeVar("T")

# Age windows in whole days, relative to as_of, for the trailing period returns.
RETURN_WINDOWS: dict[str, tuple[int, int]] = {
    "daily": (1, 7),
    "weekly": (7, 14),
    "monthly": (30, 37),
    "quarterly": (90, 97),
    "one_year": (365, 372),
}

TREND_HORIZONS = {"short_term": 10, "medium_term": 30, "long_term": 90}
TREND_STRENGTH_WEIGHTS = {
    "short_term": Decimal("0.5"),
    "medium_term": Decimal("0.3"),
    "long_term": Decimal("0.2"),
}
TREND_MIN_SNAPSHOTS = 10
RSI_PERIODS = 14

ASSET_CLASSES = {
    "crypto": "crypto",
    "cryptocurrency": "crypto",
    "equity": "equities",
    "stock": "equities",
    "bond": "bonds",
    "fixed_income": "bonds",
    "commodity": "commodities",
    "real_estate": "real_estate",
    "reit": "real_estate",
    "cash": "cash",
}
SECTORS = {
    "technology": "technology",
    "tech": "technology",
    "healthcare": "healthcare",
    "health": "healthcare",
    "financial": "financials",
    "finance": "financials",
    "consumer": "consumer_discretionary",
    "communication": "communication",
    "industrial": "industrials",
    "energy": "energy",
    "materials": "materials",
    "utilities": "utilities",
    "real_estate": "real_estate",
}

SCORE_WEIGHTS = {
    "performance": Decimal("0.3"),
    "risk": Decimal("0.25"),
    "diversification": Decimal("0.25"),
    "efficiency": Decimal("0.2"),
}
NEUTRAL_SCORE = Decimal("70")

# (minimum total score, grade, ranking)
GRADES: tuple[tuple[Decimal, str, str], ...] = (
    (Decimal("90"), "A+", "Excellent"),
    (Decimal("80"), "A", "Very Good"),
    (Decimal("70"), "B", "Good"),
    (Decimal("60"), "C", "Average"),
    (Decimal("50"), "D", "Below Average"),
)


@dataclass(frozen=True)
class PeriodReturns:
    daily: Decimal = ZERO
    weekly: Decimal = ZERO
    monthly: Decimal = ZERO
    quarterly: Decimal = ZERO
    year_to_date: Decimal = ZERO
    one_year: Decimal = ZERO
    inception: Decimal = ZERO


@dataclass(frozen=True)
class ConsistencyMetrics:
    consistency_ratio: Decimal = ZERO
    positive_periods: int = 0
    negative_periods: int = 0
    longest_win_streak: int = 0
    longest_loss_streak: int = 0
    average_win_streak: Decimal = ZERO
    average_loss_streak: Decimal = ZERO


@dataclass(frozen=True)
class WinLossRatio:
    win_rate: Decimal = ZERO
    loss_rate: Decimal = ZERO
    average_win: Decimal = ZERO
    average_loss: Decimal = ZERO
    win_loss_ratio: Decimal = ZERO
    profit_factor: Decimal = ZERO
    expected_value: Decimal = ZERO


@dataclass(frozen=True)
class DrawdownPeriod:
    start: datetime
    trough: datetime
    magnitude: Decimal
    duration_days: int
    recovery: datetime | None = None
    recovery_days: int = 0


@dataclass(frozen=True)
class DrawdownAnalysis:
    current_drawdown: Decimal = ZERO
    max_drawdown: Decimal = ZERO
    average_drawdown: Decimal = ZERO
    drawdown_frequency: Decimal = ZERO
    average_recovery_days: int = 0
    max_recovery_days: int = 0
    current_drawdown_days: int = 0
    periods: tuple[DrawdownPeriod, ...] = ()


@dataclass(frozen=True)
class PerformanceAnalysis:
    returns: PeriodReturns
    consistency: ConsistencyMetrics
    win_loss: WinLossRatio
    drawdowns: DrawdownAnalysis


@dataclass(frozen=True)
class ConcentrationRisk:
    top_holding_weight: Decimal = ZERO
    top5_weight: Decimal = ZERO
    top10_weight: Decimal = ZERO
    herfindahl_index: Decimal = ZERO
    effective_assets: Decimal = ZERO
    concentration_score: Decimal = ZERO
    sector_concentration: dict[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class RiskAnalysis:
    concentration: ConcentrationRisk
    metrics: RiskMetricsResult | None = None
    profile: RiskProfile | None = None


@dataclass(frozen=True)
class DiversificationAnalysis:
    score: DiversificationScore | None
    asset_class_exposure: dict[str, Decimal]
    sector_exposure: dict[str, Decimal]
    correlation_matrix: CorrelationMatrix | None = None


@dataclass(frozen=True)
class TrendDirection:
    direction: str = "sideways"
    slope: Decimal = ZERO
    confidence: Decimal = ZERO
    periods: int = 0


@dataclass(frozen=True)
class TrendAnalysis:
    short_term: TrendDirection
    medium_term: TrendDirection
    long_term: TrendDirection
    strength: Decimal
    rsi: Decimal


@dataclass(frozen=True)
class Recommendation:
    kind: str
    priority: int
    category: str
    title: str
    description: str
    action: str
    impact: Decimal
    confidence: Decimal
    timeline: str


@dataclass(frozen=True)
class OverallScore:
    total: Decimal
    performance: Decimal
    risk: Decimal
    diversification: Decimal
    efficiency: Decimal
    grade: str
    ranking: str


@dataclass(frozen=True)
class ComprehensiveAnalysis:
    user_id: str
    as_of: datetime
    overall_score: OverallScore
    pnl: PnLResult | None = None
    performance: PerformanceAnalysis | None = None
    risk: RiskAnalysis | None = None
    diversification: DiversificationAnalysis | None = None
    trend: TrendAnalysis | None = None
    roi: ROIMetrics | None = None
    optimization: OptimizationResult | None = None
    volatility_clustering: VolatilityClustering | None = None
    benchmark: BenchmarkComparison | None = None
    recommendations: tuple[Recommendation, ...] = ()
    skipped_sections: tuple[str, ...] = ()


def _change(current: Decimal, previous: Decimal) -> Decimal | None:
    """Fractional change, or None when the base is zero."""
    if previous == 0:
        return None
    return (current - previous) / previous


def calculate_period_returns(snapshots: Sequence[Snapshot], as_of: datetime) -> PeriodReturns:
    """Trailing returns from the latest snapshot back to one inside each age window."""
    if len(snapshots) < 2:
        return PeriodReturns()

    ordered = sorted(snapshots, key=lambda s: s.timestamp)
    latest = ordered[-1].total
    returns: dict[str, Decimal] = {
        "inception": _change(latest, ordered[0].total) or ZERO,
    }

    for name, (low, high) in RETURN_WINDOWS.items():
        for snapshot in reversed(ordered):
            age = (as_of - snapshot.timestamp).days
            if low <= age <= high and snapshot.total != 0:
                returns[name] = _change(latest, snapshot.total) or ZERO
                break

    year_start = next(
        (s for s in ordered if s.timestamp.year == as_of.year and s.total != 0), None
    )
    if year_start is not None:
        returns["year_to_date"] = _change(latest, year_start.total) or ZERO

    return PeriodReturns(**returns)


def _step_changes(snapshots: Sequence[Snapshot]) -> list[Decimal]:
    totals = [s.total for s in snapshots]
    changes = (_change(cur, prev) for prev, cur in zip(totals, totals[1:]))
    return [c for c in changes if c is not None]


def calculate_consistency(snapshots: Sequence[Snapshot]) -> ConsistencyMetrics:
    """Up/down period counts and win/loss streaks. Flat periods neither extend nor break a streak."""
    changes = _step_changes(snapshots)
    streaks: dict[str, list[int]] = {"win": [], "loss": []}
    current_kind, current_length = "", 0

    for change in changes:
        if change == 0:
            continue
        kind = "win" if change > 0 else "loss"
        if kind == current_kind:
            current_length += 1
            continue
        if current_kind:
            streaks[current_kind].append(current_length)
        current_kind, current_length = kind, 1

    if current_kind:
        streaks[current_kind].append(current_length)

    positive = sum(1 for c in changes if c > 0)
    negative = sum(1 for c in changes if c < 0)

    return ConsistencyMetrics(
        consistency_ratio=safe_div(Decimal(positive), Decimal(positive + negative)).unwrap_or(ZERO),
        positive_periods=positive,
        negative_periods=negative,
        longest_win_streak=max(streaks["win"], default=0),
        longest_loss_streak=max(streaks["loss"], default=0),
        average_win_streak=mean([Decimal(s) for s in streaks["win"]]),
        average_loss_streak=mean([Decimal(s) for s in streaks["loss"]]),
    )


def calculate_win_loss(snapshots: Sequence[Snapshot]) -> WinLossRatio:
    changes = _step_changes(snapshots)
    wins = [c for c in changes if c > 0]
    losses = [-c for c in changes if c < 0]
    counted = Decimal(len(wins) + len(losses))

    win_rate = safe_div(Decimal(len(wins)), counted).unwrap_or(ZERO)
    loss_rate = safe_div(Decimal(len(losses)), counted).unwrap_or(ZERO)
    average_win, average_loss = mean(wins), mean(losses)

    return WinLossRatio(
        win_rate=win_rate,
        loss_rate=loss_rate,
        average_win=average_win,
        average_loss=average_loss,
        win_loss_ratio=safe_div(average_win, average_loss).unwrap_or(ZERO),
        profit_factor=safe_div(sum(wins, start=ZERO), sum(losses, start=ZERO)).unwrap_or(ZERO),
        expected_value=win_rate * average_win - loss_rate * average_loss,
    )


def analyze_drawdowns(snapshots: Sequence[Snapshot], as_of: datetime) -> DrawdownAnalysis:
    """Peak-to-trough episodes, each closed when a new peak is made."""
    if len(snapshots) < 2:
        return DrawdownAnalysis()

    ordered = sorted(snapshots, key=lambda s: s.timestamp)
    peak, peak_at = ordered[0].total, ordered[0].timestamp
    depths: list[Decimal] = []
    periods: list[DrawdownPeriod] = []
    open_period: DrawdownPeriod | None = None

    for snapshot in ordered:
        value, moment = snapshot.total, snapshot.timestamp
        if value > peak:
            if open_period is not None:
                periods.append(
                    DrawdownPeriod(
                        start=open_period.start,
                        trough=open_period.trough,
                        magnitude=open_period.magnitude,
                        duration_days=open_period.duration_days,
                        recovery=moment,
                        recovery_days=(moment - open_period.trough).days,
                    )
                )
                open_period = None
            peak, peak_at = value, moment
        elif value < peak and peak > 0:
            depth = (peak - value) / peak
            depths.append(depth)
            if open_period is None:
                open_period = DrawdownPeriod(
                    start=peak_at, trough=moment, magnitude=depth,
                    duration_days=(moment - peak_at).days,
                )
            else:
                deeper = depth > open_period.magnitude
                open_period = DrawdownPeriod(
                    start=open_period.start,
                    trough=moment if deeper else open_period.trough,
                    magnitude=max(depth, open_period.magnitude),
                    duration_days=(moment - open_period.start).days,
                )

    recoveries = [p.recovery_days for p in periods]
    return DrawdownAnalysis(
        current_drawdown=open_period.magnitude if open_period else ZERO,
        max_drawdown=max(depths, default=ZERO),
        average_drawdown=mean(depths),
        drawdown_frequency=Decimal(len(periods)) / Decimal(len(ordered)) if depths else ZERO,
        average_recovery_days=sum(recoveries) // len(recoveries) if recoveries else 0,
        max_recovery_days=max(recoveries, default=0),
        current_drawdown_days=(as_of - open_period.start).days if open_period else 0,
        periods=tuple(periods),
    )


def analyze_performance(snapshots: Sequence[Snapshot], as_of: datetime) -> PerformanceAnalysis:
    """Period returns, consistency, win/loss and drawdown statistics.

    Raises:
        InsufficientDataError: With fewer than two snapshots.
    """
    if len(snapshots) < 2:
        raise InsufficientDataError(
            f"Need at least 2 snapshots for performance analysis, got {len(snapshots)}",
            required=2,
            actual=len(snapshots),
        )
    ordered = sorted(snapshots, key=lambda s: s.timestamp)
    return PerformanceAnalysis(
        returns=calculate_period_returns(ordered, as_of),
        consistency=calculate_consistency(ordered),
        win_loss=calculate_win_loss(ordered),
        drawdowns=analyze_drawdowns(ordered, as_of),
    )


def calculate_concentration(portfolio: Portfolio) -> ConcentrationRisk:
    """Top-N weights, HHI and sector shares against total value including cash."""
    total = portfolio.total_value
    if total <= 0 or not portfolio.holdings:
        return ConcentrationRisk()

    weights = sorted((h.current_value / total for h in portfolio.holdings), reverse=True)
    hhi = herfindahl(weights)

    sectors: dict[str, Decimal] = {}
    for holding in portfolio.holdings:
        sector = holding.category or "Unknown"
        sectors[sector] = sectors.get(sector, ZERO) + holding.current_value / total

    return ConcentrationRisk(
        top_holding_weight=weights[0],
        top5_weight=sum(weights[:5], start=ZERO),
        top10_weight=sum(weights[:10], start=ZERO),
        herfindahl_index=hhi,
        effective_assets=safe_div(ONE, hhi).unwrap_or(ZERO),
        concentration_score=hhi * HUNDRED,
        sector_concentration=sectors,
    )


def _exposure(portfolio: Portfolio, mapping: dict[str, str], default: str) -> dict[str, Decimal]:
    total = portfolio.total_value
    exposure: dict[str, Decimal] = {}
    if total <= 0:
        return exposure
    for holding in portfolio.holdings:
        bucket = mapping.get(holding.category.lower(), default)
        exposure[bucket] = exposure.get(bucket, ZERO) + holding.current_value / total
    return exposure


def calculate_asset_class_exposure(portfolio: Portfolio) -> dict[str, Decimal]:
    exposure = _exposure(portfolio, ASSET_CLASSES, "alternatives")
    if portfolio.cash > 0 and portfolio.total_value > 0:
        exposure["cash"] = exposure.get("cash", ZERO) + portfolio.cash / portfolio.total_value
    return exposure


def calculate_sector_exposure(portfolio: Portfolio) -> dict[str, Decimal]:
    return _exposure(portfolio, SECTORS, "other")


def analyze_trend_direction(snapshots: Sequence[Snapshot], periods: int) -> TrendDirection:
    """Least-squares slope of total value over the last ``periods`` snapshots."""
    recent = list(snapshots[-periods:])
    n = len(recent)
    if n < 2:
        return TrendDirection()

    xs = [Decimal(i) for i in range(n)]
    ys = [s.total for s in recent]
    sum_x, sum_y = sum(xs, start=ZERO), sum(ys, start=ZERO)
    sum_xy = sum((x * y for x, y in zip(xs, ys)), start=ZERO)
    sum_x2 = sum((x * x for x in xs), start=ZERO)

    slope = safe_div(
        Decimal(n) * sum_xy - sum_x * sum_y, Decimal(n) * sum_x2 - sum_x * sum_x
    ).unwrap_or(ZERO)
    direction = "up" if slope > 0 else "down" if slope < 0 else "sideways"

    return TrendDirection(
        direction=direction,
        slope=slope,
        confidence=min(abs(slope) * HUNDRED, HUNDRED),
        periods=n,
    )


def calculate_rsi(snapshots: Sequence[Snapshot], periods: int = RSI_PERIODS) -> Decimal:
    """Relative strength index over the last ``periods`` changes; 50 without enough data."""
    if len(snapshots) < periods + 1:
        return Decimal("50")

    totals = [s.total for s in snapshots[-(periods + 1):]]
    changes = [cur - prev for prev, cur in zip(totals, totals[1:]) if prev != 0]
    average_gain = mean([max(c, ZERO) for c in changes])
    average_loss = mean([max(-c, ZERO) for c in changes])

    if average_loss == 0:
        return HUNDRED
    return HUNDRED - HUNDRED / (ONE + average_gain / average_loss)


def analyze_trends(snapshots: Sequence[Snapshot]) -> TrendAnalysis:
    """Raises InsufficientDataError with fewer than ten snapshots."""
    if len(snapshots) < TREND_MIN_SNAPSHOTS:
        raise InsufficientDataError(
            f"Need at least {TREND_MIN_SNAPSHOTS} snapshots for trend analysis, got {len(snapshots)}",
            required=TREND_MIN_SNAPSHOTS,
            actual=len(snapshots),
        )

    ordered = sorted(snapshots, key=lambda s: s.timestamp)
    directions = {
        name: analyze_trend_direction(ordered, periods) for name, periods in TREND_HORIZONS.items()
    }
    strength = sum(
        (directions[name].confidence / HUNDRED * weight for name, weight in TREND_STRENGTH_WEIGHTS.items()),
        start=ZERO,
    )

    return TrendAnalysis(
        short_term=directions["short_term"],
        medium_term=directions["medium_term"],
        long_term=directions["long_term"],
        strength=strength,
        rsi=calculate_rsi(ordered),
    )


def benchmark_price_index(returns: Sequence[Decimal]) -> list[Decimal]:
    """Compound a return series into a price index starting at 1."""
    index = [ONE]
    for r in returns:
        index.append(index[-1] * (ONE + r))
    return index


def generate_recommendations(
    performance: PerformanceAnalysis | None,
    risk: RiskAnalysis | None,
    diversification: DiversificationAnalysis | None,
) -> list[Recommendation]:
    recommendations: list[Recommendation] = []

    if performance is not None and performance.returns.one_year < 0:
        recommendations.append(Recommendation(
            kind="performance",
            priority=1,
            category="Underperformance",
            title="Address Negative Returns",
            description="Portfolio has negative returns over the past year",
            action="Review holdings and consider rebalancing",
            impact=Decimal("0.8"),
            confidence=Decimal("0.9"),
            timeline="immediate",
        ))

    if risk is not None and risk.concentration.top_holding_weight > Decimal("0.3"):
        recommendations.append(Recommendation(
            kind="risk",
            priority=2,
            category="Concentration Risk",
            title="Reduce Position Concentration",
            description="Top holding represents more than 30% of portfolio",
            action="Reduce largest position and diversify",
            impact=Decimal("0.7"),
            confidence=Decimal("0.8"),
            timeline="short_term",
        ))

    if (
        diversification is not None
        and diversification.score is not None
        and diversification.score.overall_score < 60
    ):
        recommendations.append(Recommendation(
            kind="diversification",
            priority=3,
            category="Poor Diversification",
            title="Improve Portfolio Diversification",
            description="Portfolio diversification score is below recommended levels",
            action="Add holdings from different sectors and asset classes",
            impact=Decimal("0.6"),
            confidence=Decimal("0.7"),
            timeline="medium_term",
        ))

    return sorted(recommendations, key=lambda r: r.priority)


def _efficiency_score(risk: RiskAnalysis | None) -> Decimal:
    if risk is None or risk.metrics is None:
        return NEUTRAL_SCORE
    sharpe = risk.metrics.sharpe_ratio
    if sharpe > 1:
        return Decimal("90")
    if sharpe > Decimal("0.5"):
        return Decimal("80")
    if sharpe < 0:
        return Decimal("50")
    return NEUTRAL_SCORE


def calculate_overall_score(
    performance: PerformanceAnalysis | None,
    risk: RiskAnalysis | None,
    diversification: DiversificationAnalysis | None,
) -> OverallScore:
    """Weighted 0-100 score with a letter grade.

    Sub-scores start at a neutral 70 and move on one-year return,
    concentration, diversification score and Sharpe ratio.
    """
    one_year = performance.returns.one_year if performance else ZERO
    performance_score = NEUTRAL_SCORE
    if one_year > Decimal("0.1"):
        performance_score = Decimal("90")
    elif one_year > 0:
        performance_score = Decimal("80")

    risk_score = NEUTRAL_SCORE
    if risk is not None and risk.concentration.concentration_score < 30:
        risk_score = Decimal("80")

    diversification_score = NEUTRAL_SCORE
    if diversification is not None and diversification.score is not None:
        diversification_score = diversification.score.overall_score

    efficiency_score = _efficiency_score(risk)

    total = (
        performance_score * SCORE_WEIGHTS["performance"]
        + risk_score * SCORE_WEIGHTS["risk"]
        + diversification_score * SCORE_WEIGHTS["diversification"]
        + efficiency_score * SCORE_WEIGHTS["efficiency"]
    )
    grade, ranking = next(
        ((g, r) for floor, g, r in GRADES if total >= floor), ("F", "Poor")
    )

    return OverallScore(
        total=total,
        performance=performance_score,
        risk=risk_score,
        diversification=diversification_score,
        efficiency=efficiency_score,
        grade=grade,
        ranking=ranking,
    )


def _run_section(name: str, skipped: list[str], compute: Callable[[], T]) -> T | None:
    try:
        return compute()
    except (AnalyticsError, ArithmeticError) as e:
        logger.warning("Skipping %s analysis: %s", name, e)
        skipped.append(name)
        return None


def perform_comprehensive_analysis(
    portfolio: Portfolio,
    snapshots: Sequence[Snapshot] = (),
    benchmark_returns: Sequence[Decimal] | None = None,
    price_history: Sequence[Sequence[PriceObservation]] | None = None,
    strategy: OptimizationStrategy | str = OptimizationStrategy.RISK_PARITY,
    as_of: datetime | None = None,
    risk_config: RiskConfig = DEFAULT_RISK_CONFIG,
    diversification_config: DiversificationConfig = DEFAULT_DIVERSIFICATION_CONFIG,
) -> ComprehensiveAnalysis:
    """Run every analysis over one portfolio and its snapshot history.

    Args:
        portfolio: Holdings and cash to analyze.
        snapshots: Snapshot history, any order.
        benchmark_returns: Benchmark period returns aligned with the snapshot
            returns. Enables beta/alpha and the benchmark comparison.
        price_history: Aligned per-period prices. Enables the correlation matrix.
        strategy: Optimizer strategy for the optimization section.
        as_of: Reference time. Defaults to now (UTC).
        risk_config: Risk-free rate and windows.
        diversification_config: Correlation and clustering thresholds.

    Returns:
        ComprehensiveAnalysis. Sections that could not be computed are None
        and named in ``skipped_sections``.
    """
    as_of = as_of or datetime.now(timezone.utc)
    ordered = sorted(snapshots, key=lambda s: s.timestamp)
    skipped: list[str] = []

    logger.info(
        "Starting comprehensive analysis for user %s (%d holdings, %d snapshots)",
        portfolio.user_id, len(portfolio.holdings), len(ordered),
    )

    pnl = _run_section("pnl", skipped, lambda: calculate_portfolio_pnl(portfolio, ordered, as_of=as_of))
    performance = _run_section("performance", skipped, lambda: analyze_performance(ordered, as_of))

    def full_risk_metrics() -> RiskMetricsResult:
        if len(ordered) < risk_config.FULL_METRICS_MIN_SNAPSHOTS:
            raise InsufficientDataError(
                f"Need at least {risk_config.FULL_METRICS_MIN_SNAPSHOTS} snapshots for risk metrics, "
                f"got {len(ordered)}",
                required=risk_config.FULL_METRICS_MIN_SNAPSHOTS,
                actual=len(ordered),
            )
        return calculate_risk_metrics(ordered, benchmark_returns, risk_config)

    metrics = _run_section("risk_metrics", skipped, full_risk_metrics)
    risk = RiskAnalysis(
        concentration=calculate_concentration(portfolio),
        metrics=metrics,
        profile=assess_risk_profile(metrics) if metrics is not None else None,
    )

    correlation_matrix = None
    if price_history:
        correlation_matrix = _run_section(
            "correlation",
            skipped,
            lambda: analyze_correlations(portfolio.holdings, price_history, diversification_config),
        )
    score = _run_section(
        "diversification",
        skipped,
        lambda: calculate_diversification_score(
            portfolio.holdings, correlation_matrix, diversification_config
        ),
    )
    diversification = DiversificationAnalysis(
        score=score,
        asset_class_exposure=calculate_asset_class_exposure(portfolio),
        sector_exposure=calculate_sector_exposure(portfolio),
        correlation_matrix=correlation_matrix,
    )

    trend = _run_section("trend", skipped, lambda: analyze_trends(ordered))
    roi = _run_section("roi", skipped, lambda: calculate_portfolio_roi(portfolio, ordered, config=risk_config))
    optimization = _run_section(
        "optimization",
        skipped,
        lambda: optimize_portfolio(portfolio, strategy, as_of=as_of, risk_config=risk_config),
    )
    clustering = _run_section(
        "volatility_clustering",
        skipped,
        lambda: analyze_volatility_clustering(ordered, config=diversification_config),
    )

    benchmark = None
    if benchmark_returns:
        benchmark = _run_section(
            "benchmark",
            skipped,
            lambda: calculate_benchmark_comparison(
                ordered, benchmark_price_index(benchmark_returns), risk_config
            ),
        )

    analysis = ComprehensiveAnalysis(
        user_id=portfolio.user_id,
        as_of=as_of,
        overall_score=calculate_overall_score(performance, risk, diversification),
        pnl=pnl,
        performance=performance,
        risk=risk,
        diversification=diversification,
        trend=trend,
        roi=roi,
        optimization=optimization,
        volatility_clustering=clustering,
        benchmark=benchmark,
        recommendations=tuple(generate_recommendations(performance, risk, diversification)),
        skipped_sections=tuple(skipped),
    )

    logger.info(
        "Analysis for user %s complete: score %s (%s), %d sections skipped",
        portfolio.user_id, round(analysis.overall_score.total, 2),
        analysis.overall_score.grade, len(skipped),
    )
    return analysis
