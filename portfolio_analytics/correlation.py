"""Pairwise return correlation across holdings."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Sequence

from .config import DiversificationConfig
from .errors import InsufficientDataError
from .models import Holding, PriceObservation
from .safe_math import ONE, ZERO, mean, safe_div, safe_sqrt, simple_returns

logger = logging.getLogger(__name__)

DEFAULT_DIVERSIFICATION_CONFIG = DiversificationConfig()

# Lower bound of |correlation| for each label, strongest first.
STRENGTH_BANDS: tuple[tuple[Decimal, str], ...] = (
    (Decimal("0.9"), "Very Strong"),
    (Decimal("0.7"), "Strong"),
    (Decimal("0.5"), "Moderate"),
    (Decimal("0.3"), "Weak"),
)


@dataclass(frozen=True)
class CorrelationPair:
    symbol_a: str
    symbol_b: str
    correlation: Decimal
    strength: str


@dataclass(frozen=True)
class CorrelationSummary:
    average_correlation: Decimal = ZERO
    max_correlation: Decimal = ZERO
    min_correlation: Decimal = ZERO
    highly_correlated_pairs: tuple[CorrelationPair, ...] = ()
    low_correlation_pairs: tuple[CorrelationPair, ...] = ()


@dataclass(frozen=True)
class CorrelationMatrix:
    symbols: tuple[str, ...]
    matrix: tuple[tuple[Decimal, ...], ...]
    summary: CorrelationSummary = field(default_factory=CorrelationSummary)

    @property
    def heatmap(self) -> dict[str, dict[str, Decimal]]:
        return {
            a: {b: self.matrix[i][j] for j, b in enumerate(self.symbols)}
            for i, a in enumerate(self.symbols)
        }

    def get(self, symbol_a: str, symbol_b: str) -> Decimal:
        i, j = self.symbols.index(symbol_a), self.symbols.index(symbol_b)
        return self.matrix[i][j]


def correlation_strength(correlation: Decimal) -> str:
    magnitude = abs(correlation)
    for bound, label in STRENGTH_BANDS:
        if magnitude >= bound:
            return label
    return "Very Weak"


def extract_price_series(
    symbol: str, price_history: Sequence[Sequence[PriceObservation]]
) -> list[Decimal]:
    """One price per period for ``symbol``; periods without it are skipped."""
    prices: list[Decimal] = []
    for period in price_history:
        for observation in period:
            if observation.symbol == symbol:
                prices.append(observation.price)
                break
    return prices


def pearson_correlation(x: Sequence[Decimal], y: Sequence[Decimal]) -> Decimal:
    """Pearson coefficient; 0 for mismatched or short series or zero variance."""
    if len(x) != len(y) or len(x) < 2:
        return ZERO

    mean_x, mean_y = mean(x), mean(y)
    covariance = ZERO
    sum_sq_x = ZERO
    sum_sq_y = ZERO
    for a, b in zip(x, y):
        dx, dy = a - mean_x, b - mean_y
        covariance += dx * dy
        sum_sq_x += dx * dx
        sum_sq_y += dy * dy

    denominator = sum_sq_x * sum_sq_y
    if denominator <= 0:
        return ZERO

    root = safe_sqrt(denominator).unwrap_or(ZERO)
    correlation = safe_div(covariance, root, strictly_positive=True).unwrap_or(ZERO)
    # Rounding in the square root can push a perfect correlation just past 1.
    return max(min(correlation, ONE), -ONE)


def calculate_pair_correlation(
    symbol_a: str, symbol_b: str, price_history: Sequence[Sequence[PriceObservation]]
) -> Decimal:
    prices_a = extract_price_series(symbol_a, price_history)
    prices_b = extract_price_series(symbol_b, price_history)
    if len(prices_a) != len(prices_b) or len(prices_a) < 2:
        return ZERO
    return pearson_correlation(simple_returns(prices_a), simple_returns(prices_b))


def _summarize(pairs: list[CorrelationPair], config: DiversificationConfig) -> CorrelationSummary:
    if not pairs:
        return CorrelationSummary()

    ordered = sorted(pairs, key=lambda p: p.correlation)
    return CorrelationSummary(
        average_correlation=mean([abs(p.correlation) for p in pairs]),
        max_correlation=ordered[-1].correlation,
        min_correlation=ordered[0].correlation,
        highly_correlated_pairs=tuple(
            p for p in ordered if abs(p.correlation) > config.HIGH_CORRELATION
        ),
        low_correlation_pairs=tuple(
            p for p in ordered if abs(p.correlation) < config.LOW_CORRELATION
        ),
    )


def analyze_correlations(
    holdings: Sequence[Holding],
    price_history: Sequence[Sequence[PriceObservation]],
    config: DiversificationConfig = DEFAULT_DIVERSIFICATION_CONFIG,
) -> CorrelationMatrix:
    """Build the symmetric correlation matrix of holding returns.

    Args:
        holdings: Holdings whose symbols index the matrix.
        price_history: Per-period lists of price observations, oldest first.
        config: Thresholds for highly and weakly correlated pairs.

    Returns:
        CorrelationMatrix with unit diagonal and a pair summary.

    Raises:
        InsufficientDataError: With fewer than two holdings.
    """
    if len(holdings) < 2:
        raise InsufficientDataError(
            f"Need at least 2 holdings for correlation analysis, got {len(holdings)}",
            required=2,
            actual=len(holdings),
        )

    symbols = tuple(h.symbol for h in holdings)
    n = len(symbols)
    rows = [[ONE if i == j else ZERO for j in range(n)] for i in range(n)]
    pairs: list[CorrelationPair] = []

    for i in range(n):
        for j in range(i + 1, n):
            correlation = calculate_pair_correlation(symbols[i], symbols[j], price_history)
            rows[i][j] = rows[j][i] = correlation
            pairs.append(
                CorrelationPair(symbols[i], symbols[j], correlation, correlation_strength(correlation))
            )

    summary = _summarize(pairs, config)
    logger.info(
        "Correlation matrix over %d symbols: average |corr|=%s, %d highly correlated pairs",
        n, round(summary.average_correlation, 4), len(summary.highly_correlated_pairs),
    )

    return CorrelationMatrix(
        symbols=symbols,
        matrix=tuple(tuple(row) for row in rows),
        summary=summary,
    )
