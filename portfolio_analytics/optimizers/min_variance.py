"""Minimum-variance strategy (inverse-variance weighting).

Ignores covariances and weights each asset by 1 / sigma_i^2, which is the
exact minimum-variance portfolio when assets are uncorrelated.
"""

import numpy as np

from .base import WeightingStrategy


class MinVarianceStrategy(WeightingStrategy):
    """Weight proportional to inverse variance."""

    def raw_weights(
        self,
        expected_returns: np.ndarray,
        covariance: np.ndarray,
        risk_free_rate: float,
    ) -> np.ndarray:
        variances = np.diag(covariance)
        inverse = np.zeros_like(variances)
        positive = variances > 0
        inverse[positive] = 1.0 / variances[positive]
        return inverse
