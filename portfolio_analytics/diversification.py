"""Diversification scoring and volatility clustering."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from .config import DiversificationConfig
from .correlation import CorrelationMatrix
from .errors import InsufficientDataError
from .models import Holding, Snapshot
from .safe_math import HUNDRED, ONE, ZERO, herfindahl, mean, safe_div, sample_std, simple_returns

logger = logging.getLogger(__name__)

DEFAULT_DIVERSIFICATION_CONFIG = DiversificationConfig()
UNKNOWN_SECTOR = "Unknown"

# (minimum overall score, label)
RISK_LEVELS: tuple[tuple[Decimal, str], ...] = (
    (Decimal("80"), "Low Risk - Well Diversified"),
    (Decimal("60"), "Moderate Risk - Adequately Diversified"),
    (Decimal("40"), "High Risk - Poorly Diversified"),
)
CONCENTRATED = "Very High Risk - Concentrated Portfolio"


@dataclass(frozen=True)
class SectorDiversification:
    sector_weights: dict[str, Decimal] = field(default_factory=dict)
    herfindahl_index: Decimal = ZERO
    effective_sectors: Decimal = ZERO


@dataclass(frozen=True)
class DiversificationScore:
    overall_score: Decimal
    concentration_risk: Decimal
    correlation_risk: Decimal
    sector_diversification: SectorDiversification
    effective_assets: Decimal
    top_holding_weight: Decimal
    risk_level: str
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True)
class VolatilityPeriod:
    start: datetime
    end: datetime
    volatility: Decimal
    cluster: str
    windows: int = 1


@dataclass(frozen=True)
class VolatilityClustering:
    periods: tuple[VolatilityPeriod, ...]
    current_cluster: str
    average_volatility: Decimal
    low_volatility_periods: int
    high_volatility_periods: int
    average_period_length: Decimal
    persistence: Decimal


def value_weights(holdings: Sequence[Holding]) -> dict[str, Decimal]:
    """Share of each holding in the combined holdings value."""
    total = sum((h.current_value for h in holdings), start=ZERO)
    if total <= 0:
        return {}
    weights: dict[str, Decimal] = {}
    for h in holdings:
        weights[h.symbol] = weights.get(h.symbol, ZERO) + h.current_value / total
    return weights


def calculate_concentration_risk(holdings: Sequence[Holding]) -> Decimal:
    """Herfindahl index of value weights; 1 (fully concentrated) when nothing is held."""
    weights = value_weights(holdings)
    if not weights:
        return ONE
    return herfindahl(weights.values())


def calculate_correlation_risk(
    correlation_matrix: CorrelationMatrix | None,
) -> Decimal:
    """Average |correlation| when any pair is highly correlated, else 0."""
    if correlation_matrix is None or not correlation_matrix.summary.highly_correlated_pairs:
        return ZERO
    return abs(correlation_matrix.summary.average_correlation)


def calculate_sector_diversification(holdings: Sequence[Holding]) -> SectorDiversification:
    total = sum((h.current_value for h in holdings), start=ZERO)
    sector_weights: dict[str, Decimal] = {}
    for h in holdings:
        sector = h.category or UNKNOWN_SECTOR
        weight = safe_div(h.current_value, total, strictly_positive=True).unwrap_or(ZERO)
        sector_weights[sector] = sector_weights.get(sector, ZERO) + weight

    hhi = herfindahl(sector_weights.values())
    return SectorDiversification(
        sector_weights=sector_weights,
        herfindahl_index=hhi,
        effective_sectors=safe_div(ONE, hhi, strictly_positive=True).unwrap_or(ZERO),
    )


def diversification_risk_level(score: Decimal) -> str:
    for floor, label in RISK_LEVELS:
        if score >= floor:
            return label
    return CONCENTRATED


def _recommendations(
    concentration: Decimal,
    correlation: Decimal,
    sectors: SectorDiversification,
    effective_assets: Decimal,
    top_weight: Decimal,
    overall: Decimal,
    config: DiversificationConfig,
) -> tuple[str, ...]:
    advice: list[str] = []

    if top_weight > config.TOP_HOLDING_LIMIT:
        advice.append(
            f"Largest holding is {top_weight * HUNDRED:.1f}% of the portfolio - reduce concentration"
        )
    if concentration > Decimal("0.4"):
        advice.append("High concentration risk detected - consider reducing position sizes")
    if concentration > Decimal("0.25"):
        advice.append("Consider adding more holdings to reduce concentration")
    if correlation > config.HIGH_CORRELATION:
        advice.append(
            "Many holdings are highly correlated - consider diversifying into different asset classes"
        )
    if len(sectors.sector_weights) < 3:
        advice.append("Limited sector diversification - consider adding holdings from different sectors")
    if effective_assets < 5:
        advice.append("Low effective number of assets - portfolio may not be well diversified")

    if overall < 50:
        advice.append("Overall diversification is poor - consider a comprehensive portfolio review")
    elif overall < 70:
        advice.append(
            "Diversification could be improved - focus on reducing concentration and correlation risks"
        )

    return tuple(advice) or ("Portfolio shows good diversification characteristics",)


def calculate_diversification_score(
    holdings: Sequence[Holding],
    correlation_matrix: CorrelationMatrix | None = None,
    config: DiversificationConfig = DEFAULT_DIVERSIFICATION_CONFIG,
) -> DiversificationScore:
    """Score diversification 0-100 from concentration, correlation and sector spread.

    Each risk in [0, 1] becomes a sub-score of 100 - 100 * risk; the overall
    score weights them 40/30/30.

    Raises:
        InsufficientDataError: With no holdings.
    """
    if not holdings:
        raise InsufficientDataError("No holdings to analyze", required=1, actual=0)

    concentration = calculate_concentration_risk(holdings)
    correlation = calculate_correlation_risk(correlation_matrix)
    sectors = calculate_sector_diversification(holdings)

    overall = (
        (HUNDRED - concentration * HUNDRED) * config.CONCENTRATION_WEIGHT
        + (HUNDRED - correlation * HUNDRED) * config.CORRELATION_WEIGHT
        + (HUNDRED - sectors.herfindahl_index * HUNDRED) * config.SECTOR_WEIGHT
    )

    weights = value_weights(holdings)
    top_weight = max(weights.values(), default=ZERO)
    effective_assets = safe_div(ONE, concentration, strictly_positive=True).unwrap_or(ZERO)

    logger.info(
        "Diversification score %s (concentration=%s correlation=%s sector_hhi=%s)",
        round(overall, 2), round(concentration, 4), round(correlation, 4),
        round(sectors.herfindahl_index, 4),
    )

    return DiversificationScore(
        overall_score=overall,
        concentration_risk=concentration,
        correlation_risk=correlation,
        sector_diversification=sectors,
        effective_assets=effective_assets,
        top_holding_weight=top_weight,
        risk_level=diversification_risk_level(overall),
        recommendations=_recommendations(
            concentration, correlation, sectors, effective_assets, top_weight, overall, config
        ),
    )


def rolling_volatilities(values: Sequence[Decimal], window: int) -> list[Decimal]:
    """Sample std of returns inside each window of ``window`` consecutive values."""
    if len(values) < window:
        return []
    return [
        sample_std(simple_returns(values[end - window + 1 : end + 1])).unwrap_or(ZERO)
        for end in range(window - 1, len(values))
    ]


def _classify(volatility: Decimal, average: Decimal, config: DiversificationConfig) -> str:
    if volatility > average * config.HIGH_VOLATILITY_FACTOR:
        return "High"
    if volatility < average * config.LOW_VOLATILITY_FACTOR:
        return "Low"
    return "Normal"


def analyze_volatility_clustering(
    snapshots: Sequence[Snapshot],
    window: int | None = None,
    config: DiversificationConfig = DEFAULT_DIVERSIFICATION_CONFIG,
) -> VolatilityClustering:
    """Group rolling-window volatility into Low/Normal/High regimes.

    Each window is labeled against 0.5x and 1.5x the mean rolling volatility,
    and consecutive windows with the same label merge into one period.

    Raises:
        InsufficientDataError: With fewer than ten snapshots.
    """
    window = window or config.CLUSTER_WINDOW
    if len(snapshots) < config.CLUSTER_MIN_SNAPSHOTS:
        raise InsufficientDataError(
            f"Need at least {config.CLUSTER_MIN_SNAPSHOTS} snapshots for volatility clustering, "
            f"got {len(snapshots)}",
            required=config.CLUSTER_MIN_SNAPSHOTS,
            actual=len(snapshots),
        )

    ordered = sorted(snapshots, key=lambda s: s.timestamp)
    volatilities = rolling_volatilities([s.total for s in ordered], window)
    average = mean(volatilities)

    periods: list[VolatilityPeriod] = []
    for i, volatility in enumerate(volatilities):
        # Window i covers snapshots i .. i + window - 1.
        start, end = ordered[i].timestamp, ordered[i + window - 1].timestamp
        cluster = _classify(volatility, average, config)

        if periods and periods[-1].cluster == cluster:
            last = periods[-1]
            periods[-1] = VolatilityPeriod(
                start=last.start,
                end=end,
                volatility=volatility,
                cluster=cluster,
                windows=last.windows + 1,
            )
        else:
            periods.append(VolatilityPeriod(start=start, end=end, volatility=volatility, cluster=cluster))

    # Share of window-to-window steps that kept the previous label.
    transitions = len(volatilities) - 1
    stayed = len(volatilities) - len(periods)
    persistence = safe_div(Decimal(stayed), Decimal(transitions), strictly_positive=True).unwrap_or(ZERO)

    return VolatilityClustering(
        periods=tuple(periods),
        current_cluster=periods[-1].cluster if periods else "Normal",
        average_volatility=average,
        low_volatility_periods=sum(1 for p in periods if p.cluster == "Low"),
        high_volatility_periods=sum(1 for p in periods if p.cluster == "High"),
        average_period_length=safe_div(
            Decimal(len(volatilities)), Decimal(len(periods)), strictly_positive=True
        ).unwrap_or(ZERO),
        persistence=persistence,
    )
