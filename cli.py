#!/usr/bin/env python3
"""
CLI for running portfolio analytics over a JSON portfolio document.
Usage: python cli.py COMMAND DOCUMENT [options]
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict, is_dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from portfolio_analytics import (
    AnalyticsError,
    ComprehensiveAnalysis,
    OptimizationResult,
    OptimizationStrategy,
    Portfolio,
    PortfolioDocument,
    RebalanceFrequency,
    RebalancingSchedule,
    create_rebalancing_schedule,
    load_document,
    optimize_portfolio,
    perform_comprehensive_analysis,
    update_holding_from_transactions,
)
from portfolio_analytics.cost_basis import TRADE_KINDS

logger = logging.getLogger(__name__)
console = Console()

STRATEGY_LABELS: dict[OptimizationStrategy, str] = {
    OptimizationStrategy.EQUAL_WEIGHT: "Equal Weight",
    OptimizationStrategy.MIN_VARIANCE: "Minimum Variance",
    OptimizationStrategy.MAX_SHARPE: "Maximum Sharpe",
    OptimizationStrategy.RISK_PARITY: "Risk Parity",
}
GRADE_COLORS = {"A+": "green", "A": "green", "B": "yellow", "C": "yellow", "D": "red", "F": "red"}


def _json_default(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Cannot serialize {type(value).__name__}")


def to_json(result) -> str:
    data = asdict(result) if is_dataclass(result) else result
    return json.dumps(data, indent=2, default=_json_default)


def _pct(value: Decimal) -> str:
    return f"{float(value):.2%}"


def _signed(value: Decimal) -> Text:
    style = "green" if value > 0 else "red" if value < 0 else "white"
    return Text(f"{float(value):+,.2f}", style=style)


def apply_transactions(document: PortfolioDocument) -> Portfolio:
    """Rebuild cost basis for holdings that have buys or sells in the document."""
    portfolio = document.portfolio
    traded = {tx.symbol for tx in document.transactions if tx.kind in TRADE_KINDS}
    if not traded:
        return portfolio
    holdings = tuple(
        update_holding_from_transactions(h, document.transactions) if h.symbol in traded else h
        for h in portfolio.holdings
    )
    return replace(portfolio, holdings=holdings)


def _decimal_arg(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from None


def holdings_table(analysis: ComprehensiveAnalysis) -> Table:
    """Build a Rich table of per-holding PnL."""
    t = Table(title="Holdings", box=box.ROUNDED, title_style="bold white")
    t.add_column("Symbol", style="cyan")
    t.add_column("Quantity", justify="right")
    t.add_column("Avg Cost", justify="right")
    t.add_column("Price", justify="right")
    t.add_column("Value", justify="right")
    t.add_column("PnL", justify="right")
    t.add_column("PnL %", justify="right")
    t.add_column("Weight", justify="right", style="yellow")

    pnl = analysis.pnl
    if pnl is None:
        return t

    for h in pnl.holdings:
        t.add_row(
            h.symbol,
            f"{h.quantity:,}",
            f"${h.average_cost:,.2f}",
            f"${h.current_price:,.2f}",
            f"${h.current_value:,.2f}",
            _signed(h.pnl),
            f"{float(h.pnl_percentage):+.2f}%",
            f"{float(h.percentage_of_portfolio):.1f}%",
        )

    t.add_section()
    t.add_row(
        "", "", "", "Total", f"[bold]${pnl.total_value:,.2f}[/bold]",
        _signed(pnl.total_pnl), f"{float(pnl.pnl_percentage):+.2f}%", "",
    )
    return t


def metrics_table(analysis: ComprehensiveAnalysis) -> Table:
    """Build a two-column table of headline risk and return metrics."""
    t = Table(title="Metrics", box=box.ROUNDED, title_style="bold white", show_header=False)
    t.add_column("Metric", style="cyan")
    t.add_column("Value", justify="right")

    if analysis.roi is not None:
        t.add_row("Simple ROI", _pct(analysis.roi.simple_roi))
        t.add_row("Time-weighted return", _pct(analysis.roi.time_weighted_return))
        t.add_row("Money-weighted return", _pct(analysis.roi.money_weighted_return))
        t.add_row("CAGR", _pct(analysis.roi.cagr))

    risk = analysis.risk
    if risk is not None and risk.metrics is not None:
        t.add_section()
        t.add_row("Volatility (30d)", _pct(risk.metrics.volatility_30d))
        t.add_row("Sharpe ratio", f"{float(risk.metrics.sharpe_ratio):.2f}")
        t.add_row("Sortino ratio", f"{float(risk.metrics.sortino_ratio):.2f}")
        t.add_row("Max drawdown", _pct(risk.metrics.max_drawdown))
        t.add_row("VaR 95%", _pct(risk.metrics.var_95))
    if risk is not None and risk.profile is not None:
        t.add_row("Risk profile", risk.profile.level)

    div = analysis.diversification
    if div is not None and div.score is not None:
        t.add_section()
        t.add_row("Diversification", f"{float(div.score.overall_score):.1f}")
        t.add_row("Effective assets", f"{float(div.score.effective_assets):.2f}")
        t.add_row("Risk level", div.score.risk_level)

    return t


def actions_table(result: OptimizationResult) -> Table:
    """Build a Rich table of rebalancing actions, largest first."""
    t = Table(
        title=f"Rebalancing ({STRATEGY_LABELS[result.strategy]})",
        box=box.ROUNDED,
        title_style="bold white",
        caption=result.recommendation,
        caption_style="dim",
    )
    t.add_column("#", justify="right", style="dim")
    t.add_column("Action", no_wrap=True)
    t.add_column("Symbol", style="cyan")
    t.add_column("Current", justify="right", style="yellow")
    t.add_column("Target", justify="right", style="green")
    t.add_column("Delta Qty", justify="right")
    t.add_column("Delta Value", justify="right")

    for a in result.actions:
        style = {"buy": "green", "sell": "red"}.get(a.action, "dim")
        t.add_row(
            str(a.priority),
            Text(a.action.upper(), style=f"bold {style}"),
            a.symbol,
            _pct(result.current_weights.get(a.symbol, Decimal("0"))),
            _pct(result.target_weights.get(a.symbol, Decimal("0"))),
            f"{float(a.delta_quantity):+,.4f}",
            _signed(a.delta_value),
        )

    t.add_section()
    t.add_row(
        "", "", "[bold]Turnover[/bold]", "", "", _pct(result.turnover),
        f"[dim]cost {_pct(result.estimated_cost)}[/dim]",
    )
    return t


def display_analysis(analysis: ComprehensiveAnalysis) -> None:
    score = analysis.overall_score
    color = GRADE_COLORS.get(score.grade, "white")
    console.print(
        Panel(
            f"[bold]Overall score[/bold] {float(score.total):.1f} · "
            f"[bold {color}]{score.grade}[/bold {color}] ({score.ranking})",
            box=box.DOUBLE,
        )
    )
    console.print(holdings_table(analysis))
    console.print(metrics_table(analysis))
    if analysis.optimization is not None:
        console.print(actions_table(analysis.optimization))

    for rec in analysis.recommendations:
        console.print(f"  [bold]{rec.priority}.[/bold] {rec.title}: [dim]{rec.action}[/dim]")
    if analysis.skipped_sections:
        console.print(f"  [dim]Skipped: {', '.join(analysis.skipped_sections)}[/dim]")


def display_schedule(schedule: RebalancingSchedule) -> None:
    when = "now" if schedule.immediate else schedule.next_date.date().isoformat()
    console.print(Panel(f"[bold]Next rebalance:[/bold] {when} ({schedule.frequency.value})"))

    t = Table(title="Triggers", box=box.ROUNDED, title_style="bold white")
    t.add_column("Type", style="cyan")
    t.add_column("Detail")
    t.add_column("Fired", justify="center")
    for trigger in schedule.triggers:
        fired = Text("yes", style="bold red") if trigger.triggered else Text("no", style="dim")
        t.add_row(trigger.kind, trigger.description, fired)
    console.print(t)

    for action in schedule.actions:
        console.print(f"  {action.action.upper():<4} {action.symbol:<8} ${action.amount:,.2f}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Portfolio analytics: PnL, risk, returns, diversification and rebalancing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python cli.py analyze portfolio.json
  python cli.py optimize portfolio.json --strategy max_sharpe
  python cli.py schedule portfolio.json --frequency weekly --threshold 0.2
        """,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    strategies = [s.value for s in OptimizationStrategy]

    analyze = sub.add_parser("analyze", help="Run the comprehensive analysis")
    analyze.add_argument("document", help="Path or URL of the portfolio JSON document")
    analyze.add_argument("--strategy", choices=strategies, default=OptimizationStrategy.RISK_PARITY.value)
    analyze.add_argument("--json", action="store_true", help="Print the result as JSON")

    optimize = sub.add_parser("optimize", help="Propose target weights and trades")
    optimize.add_argument("document", help="Path or URL of the portfolio JSON document")
    optimize.add_argument("--strategy", choices=strategies, default=OptimizationStrategy.EQUAL_WEIGHT.value)
    optimize.add_argument("--json", action="store_true", help="Print the result as JSON")

    schedule = sub.add_parser("schedule", help="Check rebalancing triggers")
    schedule.add_argument("document", help="Path or URL of the portfolio JSON document")
    schedule.add_argument(
        "--frequency", choices=[f.value for f in RebalanceFrequency], default=RebalanceFrequency.MONTHLY.value
    )
    schedule.add_argument("--threshold", type=_decimal_arg, default=Decimal("0.25"),
                          help="Relative weight deviation that triggers a rebalance (default: 0.25)")
    schedule.add_argument("--json", action="store_true", help="Print the result as JSON")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI application."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        with console.status("[bold]Loading portfolio...[/bold]"):
            document = load_document(args.document)
        portfolio = apply_transactions(document)

        if args.command == "analyze":
            result = perform_comprehensive_analysis(
                portfolio,
                document.snapshots,
                benchmark_returns=document.benchmark_returns,
                price_history=document.price_history,
                strategy=args.strategy,
            )
            render = display_analysis
        elif args.command == "optimize":
            result = optimize_portfolio(portfolio, args.strategy)
            render = lambda r: console.print(actions_table(r))  # noqa: E731
        else:
            result = create_rebalancing_schedule(portfolio, args.frequency, args.threshold)
            render = display_schedule
    except (AnalyticsError, OSError) as e:
        logger.debug("Command failed", exc_info=True)
        console.print(f"[red]Error:[/red] {e}")
        return 1

    if args.json:
        print(to_json(result))
    else:
        render(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
