"""Data models for the portfolio analytics engine."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Literal

from .errors import InvalidInputError

TransactionKind = Literal["buy", "sell", "dividend"]


@dataclass(frozen=True)
class Holding:
    """A position in one asset. Value and PnL are derived, never stored."""

    symbol: str
    quantity: Decimal
    average_cost: Decimal
    current_price: Decimal
    category: str = ""
    name: str = ""
    realized_pnl: Decimal = Decimal("0")
    percentage_of_portfolio: Decimal = Decimal("0")
    first_activity: datetime | None = None
    last_activity: datetime | None = None
    transaction_count: int = 0

    @property
    def current_value(self) -> Decimal:
        return self.quantity * self.current_price

    @property
    def invested(self) -> Decimal:
        return self.quantity * self.average_cost

    @property
    def unrealized_pnl(self) -> Decimal:
        return self.current_value - self.invested

    @property
    def pnl_percentage(self) -> Decimal:
        if self.invested == 0:
            return Decimal("0")
        return self.unrealized_pnl / self.invested * Decimal("100")

    def with_price(self, price: Decimal) -> "Holding":
        return replace(self, current_price=price)


@dataclass(frozen=True)
class Transaction:
    """A recorded buy, sell or dividend. Immutable once recorded."""

    id: str
    symbol: str
    kind: TransactionKind
    quantity: Decimal
    price: Decimal
    timestamp: datetime | None
    fee: Decimal = Decimal("0")

    @property
    def amount(self) -> Decimal:
        return self.quantity * self.price

    def __str__(self) -> str:
        return f"{self.kind.upper()} {self.quantity} {self.symbol} @ {self.price}"


@dataclass(frozen=True)
class CostBasisLot:
    """An unconsumed buy: created by a buy, shrunk or removed by sells."""

    quantity: Decimal
    unit_price: Decimal
    acquired_at: datetime | None = None
    transaction_id: str = ""

    @property
    def cost(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class SnapshotValue:
    total: Decimal
    invested: Decimal = Decimal("0")
    cash: Decimal = Decimal("0")
    profit_loss: Decimal = Decimal("0")
    profit_loss_percentage: Decimal = Decimal("0")


@dataclass(frozen=True)
class HoldingSnapshot:
    symbol: str
    quantity: Decimal
    price: Decimal
    value: Decimal
    weight: Decimal = Decimal("0")


@dataclass(frozen=True)
class SnapshotMetrics:
    volatility: Decimal = Decimal("0")
    sharpe_ratio: Decimal = Decimal("0")
    diversification_index: Decimal = Decimal("0")
    holdings_count: int = 0


@dataclass(frozen=True)
class Snapshot:
    """A point-in-time portfolio valuation."""

    timestamp: datetime
    value: SnapshotValue
    holdings: tuple[HoldingSnapshot, ...] = ()
    metrics: SnapshotMetrics = field(default_factory=SnapshotMetrics)

    @property
    def total(self) -> Decimal:
        return self.value.total


@dataclass(frozen=True)
class Performance:
    total_pnl: Decimal = Decimal("0")
    pnl_percentage: Decimal = Decimal("0")
    daily_change: Decimal = Decimal("0")
    daily_change_percentage: Decimal = Decimal("0")
    weekly_change: Decimal = Decimal("0")
    monthly_change: Decimal = Decimal("0")
    yearly_change: Decimal = Decimal("0")


@dataclass(frozen=True)
class RiskSummary:
    volatility_30d: Decimal = Decimal("0")
    sharpe_ratio: Decimal = Decimal("0")
    max_drawdown: Decimal = Decimal("0")
    beta: Decimal = Decimal("1")
    var_95: Decimal = Decimal("0")


@dataclass(frozen=True)
class DiversificationSummary:
    score: Decimal = Decimal("0")
    concentration_risk: Decimal = Decimal("0")
    effective_assets: Decimal = Decimal("0")


@dataclass(frozen=True)
class Portfolio:
    """A user's holdings and cash, treated as a value object."""

    user_id: str
    holdings: tuple[Holding, ...] = ()
    cash: Decimal = Decimal("0")
    currency: str = "USD"
    performance: Performance = field(default_factory=Performance)
    risk: RiskSummary = field(default_factory=RiskSummary)
    diversification: DiversificationSummary = field(default_factory=DiversificationSummary)

    @property
    def holdings_value(self) -> Decimal:
        return sum((h.current_value for h in self.holdings), start=Decimal("0"))

    @property
    def total_value(self) -> Decimal:
        return self.holdings_value + self.cash

    @property
    def total_invested(self) -> Decimal:
        return sum((h.invested for h in self.holdings), start=Decimal("0"))

    @property
    def unrealized_pnl(self) -> Decimal:
        return self.holdings_value - self.total_invested

    @property
    def realized_pnl(self) -> Decimal:
        return sum((h.realized_pnl for h in self.holdings), start=Decimal("0"))

    @property
    def total_pnl(self) -> Decimal:
        return self.unrealized_pnl + self.realized_pnl

    def get_holding(self, symbol: str) -> Holding | None:
        for holding in self.holdings:
            if holding.symbol == symbol:
                return holding
        return None

    def current_allocation(self) -> dict[str, Decimal]:
        """Value weight of each holding relative to holdings plus cash."""
        total = self.total_value
        if total == 0:
            return {}

        return {h.symbol: h.current_value / total for h in self.holdings}


@dataclass(frozen=True)
class PriceObservation:
    """One symbol's price in one period of an aligned price history."""

    symbol: str
    price: Decimal
    period: str = ""


@dataclass(frozen=True)
class OptimizationConstraints:
    """Per-asset and per-sector limits applied to optimizer output."""

    max_weight: Decimal = Decimal("0.4")
    min_weight: Decimal = Decimal("0.01")
    max_sector_weight: Decimal = Decimal("0.6")
    min_sector_weight: Decimal = Decimal("0.05")
    turnover_limit: Decimal = Decimal("0.5")
    transaction_cost_rate: Decimal = Decimal("0.001")
    excluded_holdings: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        for name in ("max_weight", "min_weight", "max_sector_weight", "min_sector_weight"):
            value = getattr(self, name)
            if value < 0 or value > 1:
                raise InvalidInputError(f"{name} must be between 0 and 1, got {value}")

        if self.min_weight > self.max_weight:
            raise InvalidInputError(
                f"min_weight {self.min_weight} exceeds max_weight {self.max_weight}"
            )
        if self.turnover_limit < 0:
            raise InvalidInputError(f"turnover_limit must be non-negative, got {self.turnover_limit}")
        if self.transaction_cost_rate < 0:
            raise InvalidInputError(
                f"transaction_cost_rate must be non-negative, got {self.transaction_cost_rate}"
            )
