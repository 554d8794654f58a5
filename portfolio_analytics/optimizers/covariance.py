"""Covariance estimators feeding the weighting strategies.

Both estimators return an annualized covariance matrix as a float numpy
array, ordered like the holdings they were given.
"""

import logging
from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np

from ..config import OptimizerConfig
from ..correlation import extract_price_series
from ..models import Holding, PriceObservation
from ..safe_math import simple_returns

logger = logging.getLogger(__name__)


class CovarianceEstimator(ABC):
    """Abstract base class for covariance estimation."""

    @abstractmethod
    def estimate(self, holdings: Sequence[Holding]) -> np.ndarray:
        """Estimate the annualized covariance matrix of holding returns.

        Args:
            holdings: Holdings in the order rows and columns should follow.

        Returns:
            Symmetric (n, n) float array.
        """
        pass


class CategoryCovarianceEstimator(CovarianceEstimator):
    """Heuristic covariance from each holding's category.

    Annual variance is 0.16 (40% volatility), or 0.64 for high-volatility
    categories such as crypto. Off-diagonal entries assume correlation 0.6
    inside a category and 0.3 across categories.
    """

    def __init__(self, config: OptimizerConfig | None = None) -> None:
        self.config = config or OptimizerConfig()

    def variance(self, holding: Holding) -> float:
        if holding.category.lower() in self.config.HIGH_VOLATILITY_CATEGORIES:
            return float(self.config.HIGH_VOLATILITY_VARIANCE)
        return float(self.config.DEFAULT_VARIANCE)

    def estimate(self, holdings: Sequence[Holding]) -> np.ndarray:
        n = len(holdings)
        variances = np.array([self.variance(h) for h in holdings])
        correlation = np.full((n, n), float(self.config.CROSS_CATEGORY_CORRELATION))

        for i in range(n):
            for j in range(n):
                if i == j:
                    correlation[i, j] = 1.0
                elif holdings[i].category.lower() == holdings[j].category.lower():
                    correlation[i, j] = float(self.config.SAME_CATEGORY_CORRELATION)

        std = np.sqrt(variances)
        return correlation * np.outer(std, std)


class HistoricalCovarianceEstimator(CovarianceEstimator):
    """Sample covariance of per-period returns from an aligned price history.

    Falls back to ``fallback`` (category heuristics by default) when any
    holding lacks a full price series.
    """

    def __init__(
        self,
        price_history: Sequence[Sequence[PriceObservation]],
        periods_per_year: int = 252,
        fallback: CovarianceEstimator | None = None,
    ) -> None:
        self.price_history = price_history
        self.periods_per_year = periods_per_year
        self.fallback = fallback or CategoryCovarianceEstimator()

    def _return_series(self, holdings: Sequence[Holding]) -> list[list[float]] | None:
        series: list[list[float]] = []
        for holding in holdings:
            prices = extract_price_series(holding.symbol, self.price_history)
            returns = simple_returns(prices)
            if len(prices) != len(self.price_history) or len(returns) < 2:
                logger.warning(
                    "Incomplete price history for %s (%d of %d periods)",
                    holding.symbol, len(prices), len(self.price_history),
                )
                return None
            series.append([float(r) for r in returns])
        return series

    def estimate(self, holdings: Sequence[Holding]) -> np.ndarray:
        series = self._return_series(holdings)
        if series is None:
            logger.warning("Falling back to %s", type(self.fallback).__name__)
            return self.fallback.estimate(holdings)

        # np.cov treats a single row as one variable and returns a 0-d array.
        covariance = np.atleast_2d(np.cov(np.array(series)))
        return covariance * self.periods_per_year
