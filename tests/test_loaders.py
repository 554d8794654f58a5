"""Tests for portfolio document loading."""

import json
import pytest
from datetime import datetime, timezone
from decimal import Decimal

from portfolio_analytics.errors import InvalidInputError
from portfolio_analytics.loaders import load_document, parse_document, parse_snapshot

DOCUMENT = {
    "portfolio": {
        "user_id": "u1",
        "cash": "250.50",
        "holdings": [
            {"symbol": "BTC", "quantity": 0.5, "average_cost": "45000", "current_price": "50000", "category": "Crypto"},
            {"symbol": "AAPL", "quantity": "10", "current_price": 190.25},
        ],
        "risk": {"volatility_30d": "0.45"},
    },
    "transactions": [
        {"id": "t1", "symbol": "AAPL", "type": "BUY", "quantity": "10", "price": "150", "timestamp": "2024-01-02T15:00:00Z"},
    ],
    "snapshots": [
        {"timestamp": "2024-01-01T00:00:00", "total": "1000"},
        {"timestamp": "2024-01-02T00:00:00+00:00", "value": {"total": "1010", "invested": "900"}},
    ],
    "benchmark_returns": ["0.01"],
    "price_history": [
        [{"symbol": "BTC", "price": "49000"}, {"symbol": "AAPL", "price": "188"}],
        [{"symbol": "BTC", "price": "50000"}, {"symbol": "AAPL", "price": "190.25"}],
    ],
}


class TestParseDocument:
    def test_full_document(self):
        doc = parse_document(DOCUMENT)

        assert doc.portfolio.user_id == "u1"
        assert doc.portfolio.cash == Decimal("250.50")
        btc, aapl = doc.portfolio.holdings
        assert btc.quantity == Decimal("0.5")
        assert btc.category == "Crypto"
        assert aapl.average_cost == 0
        assert aapl.current_price == Decimal("190.25")
        assert doc.portfolio.risk.volatility_30d == Decimal("0.45")

        assert doc.transactions[0].kind == "buy"
        assert doc.transactions[0].timestamp == datetime(2024, 1, 2, 15, tzinfo=timezone.utc)

        assert [s.total for s in doc.snapshots] == [Decimal("1000"), Decimal("1010")]
        assert doc.snapshots[1].value.invested == Decimal("900")
        assert doc.benchmark_returns == (Decimal("0.01"),)
        assert doc.price_history[1][0].price == Decimal("50000")
        assert doc.price_history[1][0].period == "1"

    def test_optional_sections_absent(self):
        doc = parse_document({"portfolio": {"user_id": "u2"}})
        assert doc.portfolio.holdings == ()
        assert doc.transactions == ()
        assert doc.benchmark_returns is None
        assert doc.price_history is None

    def test_naive_timestamp_is_utc(self):
        snapshot = parse_snapshot({"timestamp": "2024-01-01T00:00:00", "total": 1}, 0)
        assert snapshot.timestamp.tzinfo == timezone.utc

    def test_missing_portfolio(self):
        with pytest.raises(InvalidInputError, match="no 'portfolio'"):
            parse_document({})

    def test_missing_symbol(self):
        with pytest.raises(InvalidInputError, match="missing a symbol"):
            parse_document({"portfolio": {"holdings": [{"quantity": "1"}]}})

    def test_snapshot_holding_without_symbol(self):
        data = {"timestamp": "2024-01-01T00:00:00Z", "total": "1", "holdings": [{"quantity": "2"}]}
        with pytest.raises(InvalidInputError, match="Snapshot 0 holding is missing a symbol"):
            parse_snapshot(data, 0)

    def test_price_observation_without_symbol(self):
        data = {"portfolio": {}, "price_history": [[{"symbol": "A", "price": "1"}], [{"price": "2"}]]}
        with pytest.raises(InvalidInputError, match="observation is missing a symbol"):
            parse_document(data)

    def test_invalid_number(self):
        with pytest.raises(InvalidInputError, match="Invalid number for cash"):
            parse_document({"portfolio": {"cash": "lots"}})

    def test_snapshot_needs_timestamp(self):
        with pytest.raises(InvalidInputError, match="timestamp is required"):
            parse_snapshot({"total": "1"}, 3)

    def test_invalid_timestamp(self):
        with pytest.raises(InvalidInputError, match="Invalid timestamp"):
            parse_snapshot({"timestamp": "yesterday", "total": "1"}, 0)


class TestLoadDocument:
    def test_from_file(self, tmp_path):
        path = tmp_path / "portfolio.json"
        path.write_text(json.dumps(DOCUMENT))

        doc = load_document(str(path))

        assert len(doc.portfolio.holdings) == 2
        assert len(doc.snapshots) == 2

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(InvalidInputError, match="Malformed JSON"):
            load_document(str(path))

    def test_top_level_must_be_object(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[]")
        with pytest.raises(InvalidInputError, match="Expected a JSON object"):
            load_document(str(path))
