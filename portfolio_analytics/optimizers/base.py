"""Abstract base class for weighting strategies."""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Sequence

import numpy as np

from ..errors import InvalidInputError
from ..models import Holding, OptimizationConstraints

logger = logging.getLogger(__name__)


class WeightingStrategy(ABC):
    """Abstract base class for target-weight strategies.

    Subclasses only produce raw, non-negative weights. ``target_weights``
    applies exclusions and constraints on top and guarantees the result sums
    to 1.
    """

    @abstractmethod
    def raw_weights(
        self,
        expected_returns: np.ndarray,
        covariance: np.ndarray,
        risk_free_rate: float,
    ) -> np.ndarray:
        """Calculate unconstrained weights for each asset.

        Args:
            expected_returns: Annual expected return per asset.
            covariance: Annualized covariance matrix, same order.
            risk_free_rate: Annual risk-free rate.

        Returns:
            Non-negative weights, one per asset. They need not sum to 1.
        """
        pass

    def target_weights(
        self,
        holdings: Sequence[Holding],
        expected_returns: np.ndarray,
        covariance: np.ndarray,
        constraints: OptimizationConstraints,
        risk_free_rate: float,
    ) -> dict[str, Decimal]:
        """Constrained target weight per symbol, summing to 1.

        Raises:
            InvalidInputError: If every holding is excluded.
        """
        symbols = [h.symbol for h in holdings]
        included = np.array([s not in constraints.excluded_holdings for s in symbols])
        if not included.any():
            raise InvalidInputError("All holdings are excluded from optimization")

        raw = np.clip(self.raw_weights(expected_returns, covariance, risk_free_rate), 0.0, None)
        raw = np.where(included, raw, 0.0)
        if raw.sum() <= 0:
            logger.warning("%s produced no usable weights, using equal weight", type(self).__name__)
            raw = included.astype(float)

        weights = self._normalize(raw)
        weights = self._apply_sector_cap(weights, [h.category for h in holdings], constraints)
        weights = self._clamp(weights, constraints)
        weights = self._normalize(weights)

        targets = {
            symbol: Decimal(str(round(float(w), 10)))
            for symbol, w in zip(symbols, weights)
            if w > 0
        }
        # Rounding residue goes to the largest weight so the Decimals sum to exactly 1.
        largest = max(targets, key=targets.__getitem__)
        targets[largest] += Decimal("1") - sum(targets.values(), start=Decimal("0"))
        return targets

    def _normalize(self, weights: np.ndarray) -> np.ndarray:
        total = weights.sum()
        if total <= 0:
            return weights
        return weights / total

    def _apply_sector_cap(
        self,
        weights: np.ndarray,
        categories: list[str],
        constraints: OptimizationConstraints,
    ) -> np.ndarray:
        """Scale down every sector whose combined weight exceeds the sector limit."""
        cap = float(constraints.max_sector_weight)
        capped = weights.copy()
        for category in set(categories):
            members = np.array([c == category for c in categories])
            sector_weight = capped[members].sum()
            # A single sector holding everything cannot be capped.
            if sector_weight > cap and members.sum() < len(categories):
                capped[members] *= cap / sector_weight
        return capped

    def _clamp(self, weights: np.ndarray, constraints: OptimizationConstraints) -> np.ndarray:
        """Clamp positive weights into [min_weight, max_weight]; zeros stay excluded."""
        clamped = np.clip(weights, float(constraints.min_weight), float(constraints.max_weight))
        return np.where(weights > 0, clamped, 0.0)
