"""Loaders for importing portfolio documents from files or URLs.

A document is a JSON object::

    {
      "portfolio": {"user_id": "u1", "cash": "1000", "holdings": [...]},
      "transactions": [...],
      "snapshots": [...],
      "benchmark_returns": ["0.01", ...],
      "price_history": [[{"symbol": "BTC", "price": "50000"}, ...], ...]
    }

Only ``portfolio`` is required. Numbers may be given as strings or JSON
numbers; both go through ``Decimal(str(value))``. Timestamps are ISO 8601 and
are taken as UTC when they carry no offset.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from .errors import InvalidInputError
from .models import (
    Holding,
    HoldingSnapshot,
    Portfolio,
    PriceObservation,
    RiskSummary,
    Snapshot,
    SnapshotMetrics,
    SnapshotValue,
    Transaction,
)

URL_TIMEOUT_SECONDS = 10


@dataclass(frozen=True)
class PortfolioDocument:
    portfolio: Portfolio
    transactions: tuple[Transaction, ...] = ()
    snapshots: tuple[Snapshot, ...] = ()
    benchmark_returns: tuple[Decimal, ...] | None = None
    price_history: tuple[tuple[PriceObservation, ...], ...] | None = None


def _decimal(value: Any, name: str, default: str | None = None) -> Decimal:
    if value is None:
        if default is None:
            raise InvalidInputError(f"Missing required number: {name}")
        return Decimal(default)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise InvalidInputError(f"Invalid number for {name}: {value!r}") from None


def _timestamp(value: Any, name: str) -> datetime | None:
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise InvalidInputError(f"Invalid timestamp for {name}: {value!r}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _symbol(data: dict[str, Any], what: str) -> str:
    symbol = data.get("symbol")
    if not symbol:
        raise InvalidInputError(f"{what} is missing a symbol")
    return symbol


def parse_holding(data: dict[str, Any]) -> Holding:
    symbol = _symbol(data, "Holding")
    return Holding(
        symbol=symbol,
        quantity=_decimal(data.get("quantity"), f"{symbol}.quantity"),
        average_cost=_decimal(data.get("average_cost"), f"{symbol}.average_cost", "0"),
        current_price=_decimal(data.get("current_price"), f"{symbol}.current_price", "0"),
        category=data.get("category", ""),
        name=data.get("name", ""),
        realized_pnl=_decimal(data.get("realized_pnl"), f"{symbol}.realized_pnl", "0"),
        first_activity=_timestamp(data.get("first_activity"), f"{symbol}.first_activity"),
        last_activity=_timestamp(data.get("last_activity"), f"{symbol}.last_activity"),
    )


def parse_portfolio(data: dict[str, Any]) -> Portfolio:
    risk = data.get("risk") or {}
    return Portfolio(
        user_id=str(data.get("user_id", "")),
        holdings=tuple(parse_holding(h) for h in data.get("holdings", [])),
        cash=_decimal(data.get("cash"), "cash", "0"),
        currency=data.get("currency", "USD"),
        risk=RiskSummary(
            volatility_30d=_decimal(risk.get("volatility_30d"), "risk.volatility_30d", "0"),
            sharpe_ratio=_decimal(risk.get("sharpe_ratio"), "risk.sharpe_ratio", "0"),
            max_drawdown=_decimal(risk.get("max_drawdown"), "risk.max_drawdown", "0"),
        ),
    )


def parse_transaction(data: dict[str, Any], index: int) -> Transaction:
    return Transaction(
        id=str(data.get("id", index)),
        symbol=data.get("symbol", ""),
        kind=str(data.get("kind", data.get("type", ""))).lower(),  # type: ignore[arg-type]
        quantity=_decimal(data.get("quantity"), f"transaction {index}.quantity"),
        price=_decimal(data.get("price"), f"transaction {index}.price"),
        timestamp=_timestamp(data.get("timestamp"), f"transaction {index}.timestamp"),
        fee=_decimal(data.get("fee"), f"transaction {index}.fee", "0"),
    )


def parse_snapshot(data: dict[str, Any], index: int) -> Snapshot:
    timestamp = _timestamp(data.get("timestamp"), f"snapshot {index}.timestamp")
    if timestamp is None:
        raise InvalidInputError(f"Snapshot {index}: timestamp is required")

    # Accept either a nested "value" object or a flat "total".
    value = data.get("value") or {"total": data.get("total")}
    metrics = data.get("metrics") or {}

    holdings = []
    for h in data.get("holdings", []):
        symbol = _symbol(h, f"Snapshot {index} holding")
        holdings.append(
            HoldingSnapshot(
                symbol=symbol,
                quantity=_decimal(h.get("quantity"), f"snapshot {index}.{symbol}.quantity", "0"),
                price=_decimal(h.get("price"), f"snapshot {index}.{symbol}.price", "0"),
                value=_decimal(h.get("value"), f"snapshot {index}.{symbol}.value", "0"),
                weight=_decimal(h.get("weight"), f"snapshot {index}.{symbol}.weight", "0"),
            )
        )

    return Snapshot(
        timestamp=timestamp,
        value=SnapshotValue(
            total=_decimal(value.get("total"), f"snapshot {index}.total"),
            invested=_decimal(value.get("invested"), f"snapshot {index}.invested", "0"),
            cash=_decimal(value.get("cash"), f"snapshot {index}.cash", "0"),
            profit_loss=_decimal(value.get("profit_loss"), f"snapshot {index}.profit_loss", "0"),
            profit_loss_percentage=_decimal(
                value.get("profit_loss_percentage"), f"snapshot {index}.profit_loss_percentage", "0"
            ),
        ),
        holdings=tuple(holdings),
        metrics=SnapshotMetrics(
            volatility=_decimal(metrics.get("volatility"), "volatility", "0"),
            sharpe_ratio=_decimal(metrics.get("sharpe_ratio"), "sharpe_ratio", "0"),
            diversification_index=_decimal(
                metrics.get("diversification_index"), "diversification_index", "0"
            ),
            holdings_count=int(metrics.get("holdings_count", 0)),
        ),
    )


def parse_price_history(
    history: list[list[dict[str, Any]]],
) -> tuple[tuple[PriceObservation, ...], ...]:
    periods = []
    for i, period in enumerate(history):
        observations = []
        for o in period:
            symbol = _symbol(o, f"price_history[{i}] observation")
            observations.append(
                PriceObservation(
                    symbol=symbol,
                    price=_decimal(o.get("price"), f"price_history[{i}].{symbol}"),
                    period=str(o.get("period", i)),
                )
            )
        periods.append(tuple(observations))
    return tuple(periods)


def parse_document(data: dict[str, Any]) -> PortfolioDocument:
    """Build typed records from a decoded JSON document.

    Raises:
        InvalidInputError: If the portfolio is missing or a field is malformed.
    """
    if "portfolio" not in data:
        raise InvalidInputError("Document has no 'portfolio' object")

    benchmark = data.get("benchmark_returns")
    history = data.get("price_history")

    return PortfolioDocument(
        portfolio=parse_portfolio(data["portfolio"]),
        transactions=tuple(
            parse_transaction(t, i) for i, t in enumerate(data.get("transactions", []))
        ),
        snapshots=tuple(parse_snapshot(s, i) for i, s in enumerate(data.get("snapshots", []))),
        benchmark_returns=(
            tuple(_decimal(r, f"benchmark_returns[{i}]") for i, r in enumerate(benchmark))
            if benchmark is not None else None
        ),
        price_history=parse_price_history(history) if history is not None else None,
    )


def load_document(source: str) -> PortfolioDocument:
    """Load a portfolio document from a local path or an http(s) URL.

    Args:
        source: File path, or URL such as https://example.com/portfolio.json.

    Returns:
        Parsed PortfolioDocument.

    Raises:
        InvalidInputError: If the JSON is malformed or a field is invalid.
    """
    parsed = urlparse(source)
    if parsed.scheme in ("http", "https"):
        req = Request(source, headers={"User-Agent": "portfolio-analytics"})
        raw = urlopen(req, timeout=URL_TIMEOUT_SECONDS).read()
    else:
        raw = Path(source).read_bytes()

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidInputError(f"Malformed JSON in {source}: {e}") from None

    if not isinstance(data, dict):
        raise InvalidInputError(f"Expected a JSON object in {source}")
    return parse_document(data)
