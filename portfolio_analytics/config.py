"""Configuration constants for the portfolio analytics engine."""

import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum

logger = logging.getLogger(__name__)

RISK_FREE_RATE_ENV = "PERFORMANCE_RISK_FREE_RATE"


class CostBasisMethod(Enum):
    """Lot accounting conventions for the cost-basis ledger."""

    FIFO = "FIFO"
    LIFO = "LIFO"
    AVERAGE = "AVERAGE"


class OptimizationStrategy(Enum):
    """Weighting strategies available to the optimizer."""

    EQUAL_WEIGHT = "equal_weight"
    MIN_VARIANCE = "min_variance"
    MAX_SHARPE = "max_sharpe"
    RISK_PARITY = "risk_parity"


class RebalanceFrequency(Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


class ReturnPeriod(Enum):
    """Calendar buckets used to group snapshots for period returns."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class RiskConfig:
    """Defaults for return, volatility and tail-risk calculations."""

    RISK_FREE_RATE: Decimal = Decimal("0.02")
    TRADING_DAYS: int = 252
    DAYS_PER_YEAR: Decimal = Decimal("365.25")
    SHORT_VOLATILITY_WINDOW: int = 30
    LONG_VOLATILITY_WINDOW: int = 90
    VAR_CONFIDENCE: Decimal = Decimal("0.95")
    VAR_CONFIDENCE_EXTREME: Decimal = Decimal("0.99")
    MIN_SNAPSHOTS: int = 2
    FULL_METRICS_MIN_SNAPSHOTS: int = 30

    @classmethod
    def from_env(cls) -> "RiskConfig":
        """Build a config whose risk-free rate may be overridden by the environment."""
        raw = os.environ.get(RISK_FREE_RATE_ENV)
        if not raw:
            return cls()
        try:
            rate = Decimal(raw)
        except InvalidOperation:
            logger.warning("Ignoring invalid %s value: %r", RISK_FREE_RATE_ENV, raw)
            return cls()
        return cls(RISK_FREE_RATE=rate)


@dataclass(frozen=True)
class DiversificationConfig:
    """Thresholds for correlation bands and diversification scoring."""

    HIGH_CORRELATION: Decimal = Decimal("0.7")
    LOW_CORRELATION: Decimal = Decimal("0.3")
    CONCENTRATION_WEIGHT: Decimal = Decimal("0.4")
    CORRELATION_WEIGHT: Decimal = Decimal("0.3")
    SECTOR_WEIGHT: Decimal = Decimal("0.3")
    TOP_HOLDING_LIMIT: Decimal = Decimal("0.4")
    CLUSTER_WINDOW: int = 7
    CLUSTER_MIN_SNAPSHOTS: int = 10
    LOW_VOLATILITY_FACTOR: Decimal = Decimal("0.5")
    HIGH_VOLATILITY_FACTOR: Decimal = Decimal("1.5")


@dataclass(frozen=True)
class OptimizerConfig:
    """Heuristic market assumptions used when no price history is available."""

    DEFAULT_VARIANCE: Decimal = Decimal("0.16")
    HIGH_VOLATILITY_VARIANCE: Decimal = Decimal("0.64")
    HIGH_VOLATILITY_CATEGORIES: tuple[str, ...] = ("crypto", "cryptocurrency")
    CROSS_CATEGORY_CORRELATION: Decimal = Decimal("0.3")
    SAME_CATEGORY_CORRELATION: Decimal = Decimal("0.6")
    RISK_PREMIUM: Decimal = Decimal("0.05")
    HOLD_TOLERANCE: Decimal = Decimal("0.0001")
    VOLATILITY_TRIGGER: Decimal = Decimal("0.4")
