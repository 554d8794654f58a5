"""Weighting strategy and covariance estimator implementations."""

from .base import WeightingStrategy
from .covariance import (
    CategoryCovarianceEstimator,
    CovarianceEstimator,
    HistoricalCovarianceEstimator,
)
from .equal_weight import EqualWeightStrategy
from .max_sharpe import MaxSharpeStrategy
from .min_variance import MinVarianceStrategy
from .risk_parity import RiskParityStrategy

__all__ = [
    "WeightingStrategy",
    "CovarianceEstimator",
    "CategoryCovarianceEstimator",
    "HistoricalCovarianceEstimator",
    "EqualWeightStrategy",
    "MinVarianceStrategy",
    "MaxSharpeStrategy",
    "RiskParityStrategy",
]
