"""Tests for the command-line interface."""

import json
from decimal import Decimal

from cli import apply_transactions, main, to_json
from portfolio_analytics.loaders import parse_document

DOCUMENT = {
    "portfolio": {
        "user_id": "u1",
        "holdings": [
            {"symbol": "AAPL", "quantity": "30", "average_cost": "8", "current_price": "10", "category": "Tech"},
            {"symbol": "XOM", "quantity": "10", "average_cost": "12", "current_price": "10", "category": "Energy"},
        ],
    },
    "transactions": [
        {"symbol": "XOM", "kind": "buy", "quantity": "10", "price": "11", "timestamp": "2024-01-01T00:00:00Z"},
    ],
    "snapshots": [
        {"timestamp": "2024-01-01T00:00:00Z", "total": "380"},
        {"timestamp": "2024-01-02T00:00:00Z", "total": "400"},
    ],
}


def write_document(tmp_path):
    path = tmp_path / "portfolio.json"
    path.write_text(json.dumps(DOCUMENT))
    return str(path)


class TestApplyTransactions:
    def test_only_traded_holdings_are_rebuilt(self):
        portfolio = apply_transactions(parse_document(DOCUMENT))
        aapl, xom = portfolio.holdings
        assert aapl.average_cost == Decimal("8")
        assert xom.average_cost == Decimal("11")
        assert xom.quantity == Decimal("10")

    def test_dividend_only_holding_is_kept(self):
        document = parse_document({
            "portfolio": {
                "holdings": [{"symbol": "A", "quantity": "10", "average_cost": "50", "current_price": "55"}],
            },
            "transactions": [
                {"symbol": "A", "kind": "dividend", "quantity": "1", "price": "4",
                 "timestamp": "2024-03-01T00:00:00Z"},
            ],
        })

        (holding,) = apply_transactions(document).holdings

        assert holding.quantity == Decimal("10")
        assert holding.average_cost == Decimal("50")


class TestMain:
    def test_optimize_json(self, tmp_path, capsys):
        assert main(["optimize", write_document(tmp_path), "--json"]) == 0

        result = json.loads(capsys.readouterr().out)
        assert result["strategy"] == "equal_weight"
        weights = {k: Decimal(v) for k, v in result["target_weights"].items()}
        assert weights == {"AAPL": Decimal("0.5"), "XOM": Decimal("0.5")}

    def test_schedule_json(self, tmp_path, capsys):
        assert main(["schedule", write_document(tmp_path), "--threshold", "0.25", "--json"]) == 0

        result = json.loads(capsys.readouterr().out)
        assert result["immediate"] is True
        assert {a["action"] for a in result["actions"]} == {"buy", "sell"}

    def test_analyze_table(self, tmp_path):
        assert main(["analyze", write_document(tmp_path)]) == 0

    def test_missing_file(self, tmp_path):
        assert main(["analyze", str(tmp_path / "missing.json")]) == 1

    def test_to_json_handles_decimals(self):
        assert json.loads(to_json({"value": Decimal("1.5")})) == {"value": "1.5"}
