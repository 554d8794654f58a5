"""Cost-basis ledger: replays buys and sells into quantity and average cost."""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from .config import CostBasisMethod
from .errors import InvalidInputError
from .models import CostBasisLot, Holding, Transaction

logger = logging.getLogger(__name__)

TRADE_KINDS = ("buy", "sell")


@dataclass(frozen=True)
class LedgerState:
    """Result of replaying a transaction log under one cost-basis convention."""

    method: CostBasisMethod
    quantity: Decimal
    average_cost: Decimal
    total_invested: Decimal
    realized_pnl: Decimal
    total_fees: Decimal
    lots: tuple[CostBasisLot, ...] = ()
    first_buy: datetime | None = None
    last_buy: datetime | None = None
    last_trade: datetime | None = None
    transaction_count: int = 0


def resolve_method(method: CostBasisMethod | str) -> CostBasisMethod:
    """Accept an enum member or its name; unknown names fall back to FIFO."""
    if isinstance(method, CostBasisMethod):
        return method
    try:
        return CostBasisMethod(str(method).upper())
    except ValueError:
        logger.warning("Unknown cost basis method %r, falling back to FIFO", method)
        return CostBasisMethod.FIFO


def validate_transactions(transactions: Sequence[Transaction]) -> None:
    """Reject transactions the ledger cannot replay.

    Raises:
        InvalidInputError: On a missing symbol or timestamp, a kind other than
            buy/sell, a non-positive quantity or price, or a negative fee.
    """
    for i, tx in enumerate(transactions):
        if not tx.symbol:
            raise InvalidInputError(f"Transaction {i}: symbol is required")
        if tx.kind not in TRADE_KINDS:
            raise InvalidInputError(
                f"Transaction {i}: invalid kind {tx.kind!r}, must be 'buy' or 'sell'"
            )
        if tx.quantity <= 0:
            raise InvalidInputError(f"Transaction {i}: quantity must be positive, got {tx.quantity}")
        if tx.price <= 0:
            raise InvalidInputError(f"Transaction {i}: price must be positive, got {tx.price}")
        if tx.fee < 0:
            raise InvalidInputError(f"Transaction {i}: fee must be non-negative, got {tx.fee}")
        if tx.timestamp is None:
            raise InvalidInputError(f"Transaction {i}: timestamp is required")


def consume_lots(
    lots: Sequence[CostBasisLot],
    quantity: Decimal,
    method: CostBasisMethod = CostBasisMethod.FIFO,
) -> tuple[list[CostBasisLot], Decimal]:
    """Remove ``quantity`` units from a lot list.

    FIFO takes from the oldest lot, LIFO from the most recent. A lot larger
    than what is left to sell is shrunk in place of being removed.

    Args:
        lots: Open lots, oldest first.
        quantity: Units being sold.
        method: FIFO or LIFO.

    Returns:
        Tuple of (remaining lots oldest first, cost of the consumed units).

    Raises:
        InvalidInputError: If the lots hold fewer units than ``quantity``, or
            ``method`` is not lot based.
    """
    if method is CostBasisMethod.AVERAGE:
        raise InvalidInputError("Lot consumption requires FIFO or LIFO")

    remaining = list(lots)
    position = 0 if method is CostBasisMethod.FIFO else -1
    to_sell = quantity
    consumed_cost = Decimal("0")

    while to_sell > 0 and remaining:
        lot = remaining[position]
        if lot.quantity <= to_sell:
            consumed_cost += lot.cost
            to_sell -= lot.quantity
            remaining.pop(position)
        else:
            consumed_cost += to_sell * lot.unit_price
            remaining[position] = replace(lot, quantity=lot.quantity - to_sell)
            to_sell = Decimal("0")

    if to_sell > 0:
        held = sum((lot.quantity for lot in lots), start=Decimal("0"))
        raise InvalidInputError(f"Cannot sell {quantity} units, only {held} held")

    return remaining, consumed_cost


def calculate_cost_basis(
    transactions: Sequence[Transaction],
    method: CostBasisMethod | str = CostBasisMethod.FIFO,
) -> LedgerState:
    """Replay a transaction log in timestamp order.

    Args:
        transactions: Buy and sell transactions, in any order.
        method: Cost-basis convention.

    Returns:
        LedgerState with the remaining quantity, average cost, open lots and
        realized PnL (sell proceeds minus consumed cost minus sell fees).
    """
    method = resolve_method(method)
    validate_transactions(transactions)

    ordered = sorted(transactions, key=lambda tx: tx.timestamp)

    lots: list[CostBasisLot] = []
    quantity = Decimal("0")
    total_cost = Decimal("0")
    realized = Decimal("0")
    fees = Decimal("0")
    first_buy: datetime | None = None
    last_buy: datetime | None = None
    last_trade: datetime | None = None

    for tx in ordered:
        fees += tx.fee
        last_trade = tx.timestamp

        if tx.kind == "buy":
            quantity += tx.quantity
            total_cost += tx.amount
            if method is not CostBasisMethod.AVERAGE:
                lots.append(
                    CostBasisLot(
                        quantity=tx.quantity,
                        unit_price=tx.price,
                        acquired_at=tx.timestamp,
                        transaction_id=tx.id,
                    )
                )
            first_buy = first_buy or tx.timestamp
            last_buy = tx.timestamp
            continue

        if tx.quantity > quantity:
            raise InvalidInputError(
                f"Sell of {tx.quantity} {tx.symbol} at {tx.timestamp} exceeds held quantity {quantity}"
            )

        if method is CostBasisMethod.AVERAGE:
            consumed = tx.quantity * (total_cost / quantity)
        else:
            lots, consumed = consume_lots(lots, tx.quantity, method)

        quantity -= tx.quantity
        total_cost = total_cost - consumed if quantity > 0 else Decimal("0")
        realized += tx.amount - consumed - tx.fee

    average_cost = total_cost / quantity if quantity > 0 else Decimal("0")

    logger.debug(
        "Replayed %d transactions with %s: quantity=%s average_cost=%s",
        len(ordered), method.value, quantity, average_cost,
    )

    return LedgerState(
        method=method,
        quantity=quantity,
        average_cost=average_cost,
        total_invested=quantity * average_cost,
        realized_pnl=realized,
        total_fees=fees,
        lots=tuple(lots),
        first_buy=first_buy,
        last_buy=last_buy,
        last_trade=last_trade,
        transaction_count=len(ordered),
    )


def update_holding_from_transactions(
    holding: Holding,
    transactions: Sequence[Transaction],
    method: CostBasisMethod | str = CostBasisMethod.FIFO,
) -> Holding:
    """Return a copy of ``holding`` whose position state comes from its trade log.

    Transactions for other symbols and dividends are ignored.
    """
    trades = [
        tx for tx in transactions
        if tx.symbol == holding.symbol and tx.kind in TRADE_KINDS
    ]
    state = calculate_cost_basis(trades, method)

    return replace(
        holding,
        quantity=state.quantity,
        average_cost=state.average_cost,
        realized_pnl=state.realized_pnl,
        first_activity=state.first_buy,
        last_activity=state.last_trade,
        transaction_count=state.transaction_count,
    )
