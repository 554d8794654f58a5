"""Risk-parity strategy (inverse-volatility weighting)."""

import numpy as np

from .base import WeightingStrategy


class RiskParityStrategy(WeightingStrategy):
    """Weight proportional to 1 / sigma_i, equalizing stand-alone risk contributions."""

    def raw_weights(
        self,
        expected_returns: np.ndarray,
        covariance: np.ndarray,
        risk_free_rate: float,
    ) -> np.ndarray:
        volatilities = np.sqrt(np.clip(np.diag(covariance), 0.0, None))
        inverse = np.zeros_like(volatilities)
        positive = volatilities > 0
        inverse[positive] = 1.0 / volatilities[positive]
        return inverse
