"""Equal-weight strategy."""

import numpy as np

from .base import WeightingStrategy


class EqualWeightStrategy(WeightingStrategy):
    """1/n in every asset."""

    def raw_weights(
        self,
        expected_returns: np.ndarray,
        covariance: np.ndarray,
        risk_free_rate: float,
    ) -> np.ndarray:
        return np.ones(len(expected_returns))
