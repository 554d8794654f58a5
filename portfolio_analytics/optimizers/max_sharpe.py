"""Maximum-Sharpe strategy (excess return over variance)."""

import logging

import numpy as np

from .base import WeightingStrategy

logger = logging.getLogger(__name__)


class MaxSharpeStrategy(WeightingStrategy):
    """Weight proportional to (mu_i - rf) / sigma_i^2.

    Assets whose expected return does not beat the risk-free rate get no
    weight. When no asset qualifies the strategy falls back to equal weight.
    """

    def raw_weights(
        self,
        expected_returns: np.ndarray,
        covariance: np.ndarray,
        risk_free_rate: float,
    ) -> np.ndarray:
        variances = np.diag(covariance)
        excess = expected_returns - risk_free_rate
        qualifies = (excess > 0) & (variances > 0)

        if not qualifies.any():
            logger.warning(
                "No asset has a positive excess return over %.4f, falling back to equal weight",
                risk_free_rate,
            )
            return np.ones(len(expected_returns))

        weights = np.zeros(len(expected_returns))
        weights[qualifies] = excess[qualifies] / variances[qualifies]
        return weights
