"""
Command-Line Interface for the CPPI Options Bot

Provides CLI commands for running synthetic backtests, validating and
creating configurations, inspecting the CPPI policy and regenerating reports.

Usage:
    cppi-bot backtest --start-date 2023-01-01 --end-date 2023-06-30 --capital 25000
    cppi-bot validate --config config.yaml
    cppi-bot init --output config.yaml
    cppi-bot metrics --debit 2000 --credit 1500 --straddle 1000 --collar 4000 --hedge 500
    cppi-bot simulate --weeks 12 --seed 42
    cppi-bot cycle --date 2023-03-06
    cppi-bot report --results data/backtest_<timestamp>.json
"""

import json
import sys
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.table import Table

from cppi_backtester import __version__
from cppi_backtester.analytics.metrics import PortfolioMetrics
from cppi_backtester.analytics.report import ReportError, ReportGenerator
from cppi_backtester.cli.config_loader import generate_default_config, load_config
from cppi_backtester.cli.config_schema import BotConfig, ConfigValidationError
from cppi_backtester.cli.environment import configure_logging
from cppi_backtester.connectivity.broker import BrokerError, DatasetBroker, DryRunBroker
from cppi_backtester.data.synthetic import SyntheticMarketGenerator
from cppi_backtester.engine.backtest_engine import BacktestError, run_backtest
from cppi_backtester.policy.cppi import CPPIEngine, CPPIError
from cppi_backtester.policy.simulation import simulate_policy
from cppi_backtester.policy.sleeve_runner import (
    DEMO_SLEEVE_EQUITIES,
    STATE_FILE,
    PortfolioState,
    SleeveRunner,
    append_trade_log,
    load_portfolio_state,
    save_portfolio_state,
)
from cppi_backtester.policy.sleeves import DEFAULT_CADENCES, Sleeve, SleeveEquities

console = Console()
err_console = Console(stderr=True)


def echo(message: str, style: Optional[str] = None, err: bool = False) -> None:
    """Output message through rich."""
    (err_console if err else console).print(message, style=style)


def echo_error(message: str) -> None:
    """Output error message."""
    echo(f"[red]Error:[/red] {message}", err=True)


def echo_success(message: str) -> None:
    """Output success message."""
    echo(f"[green]{message}[/green]")


def _to_date(value: Optional[datetime]) -> Optional[date]:
    return value.date() if value is not None else None


def _split(value: Optional[str]) -> Optional[list]:
    if value is None:
        return None
    return [s.strip() for s in value.split(",") if s.strip()]


def _load(ctx: click.Context, config: Optional[Path], overrides: Optional[Dict[str, Any]] = None) -> BotConfig:
    """Resolve configuration and apply its logging settings."""
    bot_config = load_config(config, overrides=overrides)
    level = None
    if ctx.obj.get("verbose"):
        level = "DEBUG"
    elif ctx.obj.get("quiet"):
        level = "WARNING"
    configure_logging(bot_config.logging, level=level)
    return bot_config


def _fail_on_config_error(e: ConfigValidationError) -> None:
    echo_error(f"Configuration validation failed: {e}")
    for error in e.errors:
        echo(f"  - {error}", err=True)
    sys.exit(1)


def _metrics_table(title: str, metrics: PortfolioMetrics) -> Table:
    table = Table(title=title)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Total Return", f"{metrics.total_return:.2%}")
    table.add_row("Annualized Return", f"{metrics.annualized_return:.2%}")
    table.add_row("Volatility", f"{metrics.volatility:.2%}")
    table.add_row("Sharpe Ratio", f"{metrics.sharpe_ratio:.2f}")
    table.add_row("Max Drawdown", f"{metrics.max_drawdown:.2%}")
    table.add_row("Win Rate", f"{metrics.win_rate:.1%}")
    table.add_row("Profit Factor", f"{metrics.profit_factor:.2f}")
    table.add_row("Total Trades", str(metrics.total_trades))
    table.add_row("Closed Positions", str(metrics.closed_positions))
    table.add_row("Total P&L", f"${metrics.total_pnl:,.2f}")
    return table


config_option = click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration file (YAML or JSON)",
)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.version_option(version=__version__, prog_name="cppi-bot")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool) -> None:
    """CPPI Options Bot - policy tools and synthetic backtests."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet


@cli.command()
@config_option
@click.option("--start-date", type=click.DateTime(formats=["%Y-%m-%d"]), help="First simulated day")
@click.option("--end-date", type=click.DateTime(formats=["%Y-%m-%d"]), help="Last simulated day")
@click.option("--capital", type=float, help="Initial capital")
@click.option("--strategies", help="Comma-separated strategy archetypes")
@click.option("--universe", help="Comma-separated underlying symbols")
@click.option("--seed", type=int, help="Market generator seed")
@click.option("--output-dir", "-o", type=click.Path(path_type=Path), help="Directory for result files")
@click.option("--cppi-sizing", is_flag=True, help="Size orders to CPPI sleeve risk budgets")
@click.option("--plot", type=click.Path(path_type=Path), help="Save an equity curve PNG here")
@click.pass_context
def backtest(
    ctx: click.Context,
    config: Optional[Path],
    start_date: Optional[datetime],
    end_date: Optional[datetime],
    capital: Optional[float],
    strategies: Optional[str],
    universe: Optional[str],
    seed: Optional[int],
    output_dir: Optional[Path],
    cppi_sizing: bool,
    plot: Optional[Path],
) -> None:
    """Run a backtest on a synthetic market."""
    overrides: Dict[str, Any] = {
        key: value
        for key, value in {
            "start_date": _to_date(start_date),
            "end_date": _to_date(end_date),
            "initial_capital": capital,
            "strategies": _split(strategies),
            "universe": _split(universe),
            "seed": seed,
            "cppi_sizing": True if cppi_sizing else None,
        }.items()
        if value is not None
    }

    try:
        bot_config = _load(ctx, config, overrides={"backtest": overrides})
        settings = bot_config.backtest
        if not ctx.obj.get("quiet"):
            echo(
                f"Running backtest [cyan]{settings.start_date}[/cyan] to "
                f"[cyan]{settings.end_date}[/cyan] on {', '.join(settings.universe)}"
            )

        result = run_backtest(settings, cppi_config=bot_config.cppi if settings.cppi_sizing else None)

        console.print(_metrics_table("Portfolio Metrics", result.metrics))
        breakdown = Table(title="Strategy Breakdown")
        breakdown.add_column("Strategy", style="cyan")
        breakdown.add_column("Return", justify="right")
        breakdown.add_column("P&L", justify="right")
        breakdown.add_column("Trades", justify="right")
        breakdown.add_column("Win Rate", justify="right")
        for name, metrics in result.per_strategy_metrics.items():
            breakdown.add_row(
                name,
                f"{metrics.total_return:.2%}",
                f"${metrics.total_pnl:,.2f}",
                str(metrics.total_trades),
                f"{metrics.win_rate:.1%}",
            )
        console.print(breakdown)

        target_dir = output_dir or Path(bot_config.logging.data_dir)
        json_path, summary_path = ReportGenerator.save_results(result, target_dir)
        echo(f"Results saved to: {json_path}")
        echo(f"Summary saved to: {summary_path}")

        if plot:
            ReportGenerator.plot_equity_curve(result, str(plot))
            echo(f"Equity curve saved to: {plot}")

        echo_success("Backtest completed successfully!")

    except ConfigValidationError as e:
        _fail_on_config_error(e)
    except (BacktestError, CPPIError) as e:
        echo_error(f"Backtest failed: {e}")
        for error in getattr(e, "errors", []):
            echo(f"  - {error}", err=True)
        sys.exit(1)


@cli.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    required=True,
    help="Configuration file to validate",
)
def validate(config: Path) -> None:
    """Validate a configuration file (defaults + file + environment)."""
    echo(f"Validating [cyan]{config}[/cyan]...")
    try:
        bot_config = load_config(config)
    except ConfigValidationError as e:
        echo_error("Validation failed with the following errors:")
        for error in e.errors:
            echo(f"  [red]x[/red] {error}")
        sys.exit(1)
    except (FileNotFoundError, ValueError) as e:
        echo_error(str(e))
        sys.exit(1)

    enabled = ", ".join(s.id for s in bot_config.enabled_strategies)
    echo_success(f"Configuration is valid ({len(bot_config.strategies)} strategies; enabled: {enabled})")
    echo(f"Total weekly spend limit: ${bot_config.total_weekly_spend_limit:,.2f}")


@cli.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default=Path("config.yaml"),
    show_default=True,
    help="Where to write the default configuration",
)
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def init(output: Path, force: bool) -> None:
    """Write the default configuration file."""
    if output.exists() and not force:
        echo_error(f"{output} already exists (use --force to overwrite)")
        sys.exit(1)
    generate_default_config(output)
    echo_success(f"Default configuration written to {output}")


@cli.command()
@config_option
@click.option("--debit", type=float, default=DEMO_SLEEVE_EQUITIES.debit, show_default=True)
@click.option("--credit", type=float, default=DEMO_SLEEVE_EQUITIES.credit, show_default=True)
@click.option("--straddle", type=float, default=DEMO_SLEEVE_EQUITIES.straddle, show_default=True)
@click.option("--collar", type=float, default=DEMO_SLEEVE_EQUITIES.collar, show_default=True)
@click.option("--hedge", type=float, default=DEMO_SLEEVE_EQUITIES.hedge, show_default=True)
@click.option("--date", "on", type=click.DateTime(formats=["%Y-%m-%d"]), help="Observation date (today)")
@click.option("--start-date", type=click.DateTime(formats=["%Y-%m-%d"]), help="Policy start date (observation date)")
@click.option("--last-rebalance-week", type=int, default=0, show_default=True)
@click.option("--deposit", type=float, help="Deposit to allocate (configured weekly deposit)")
@click.pass_context
def metrics(
    ctx: click.Context,
    config: Optional[Path],
    debit: float,
    credit: float,
    straddle: float,
    collar: float,
    hedge: float,
    on: Optional[datetime],
    start_date: Optional[datetime],
    last_rebalance_week: int,
    deposit: Optional[float],
) -> None:
    """Show CPPI metrics, deposit allocation and risk budgets."""
    try:
        bot_config = _load(ctx, config)
    except ConfigValidationError as e:
        _fail_on_config_error(e)
        return

    observed = _to_date(on) or date.today()
    engine = CPPIEngine(bot_config.cppi, start_date=_to_date(start_date) or observed)
    equities = SleeveEquities(debit=debit, credit=credit, straddle=straddle, collar=collar, hedge=hedge)
    result = engine.compute_metrics(equities, observed, last_rebalance_week)

    summary = Table(title=f"CPPI Metrics on {observed}")
    summary.add_column("Metric", style="cyan")
    summary.add_column("Value", justify="right")
    summary.add_row("Total Equity", f"${equities.total:,.2f}")
    summary.add_row("Weeks Since Start", str(result.weeks_since_start))
    summary.add_row("Invested to Date", f"${result.invested_to_date:,.2f}")
    summary.add_row("Floor", f"${result.floor:,.2f}")
    summary.add_row("Cushion", f"${result.cushion:,.2f}")
    summary.add_row("Risky Weight", f"{result.risky_weight:.2%}")
    summary.add_row("Needs Rebalance", str(result.needs_rebalance))
    console.print(summary)

    try:
        allocation = engine.compute_contributions_allocation(result.target_weights, equities, deposit)
    except CPPIError as e:
        echo_error(str(e))
        sys.exit(1)

    sleeves = Table(title="Sleeves")
    for column in ("Sleeve", "Equity", "Current", "Target", "Deposit", "Risk Budget"):
        sleeves.add_column(column, justify="left" if column == "Sleeve" else "right")
    for sleeve in Sleeve:
        cadence = DEFAULT_CADENCES[sleeve]
        sleeves.add_row(
            f"{sleeve.value} ({cadence.value})",
            f"${equities[sleeve]:,.2f}",
            f"{result.current_weights[sleeve]:.2%}",
            f"{result.target_weights[sleeve]:.2%}",
            f"${allocation[sleeve]:,.2f}",
            f"${engine.compute_risk_budget(sleeve, equities[sleeve], cadence):,.2f}",
        )
    console.print(sleeves)


@cli.command()
@config_option
@click.option("--weeks", type=int, default=12, show_default=True, help="Weeks to simulate")
@click.option("--seed", type=int, default=42, show_default=True, help="Return-shock seed")
@click.option("--start-date", type=click.DateTime(formats=["%Y-%m-%d"]), help="First week (today)")
@click.option("--output", "-o", type=click.Path(path_type=Path), help="Also write the full table as CSV")
@click.pass_context
def simulate(
    ctx: click.Context,
    config: Optional[Path],
    weeks: int,
    seed: int,
    start_date: Optional[datetime],
    output: Optional[Path],
) -> None:
    """Walk the CPPI policy forward on stylized weekly returns."""
    try:
        bot_config = _load(ctx, config)
    except ConfigValidationError as e:
        _fail_on_config_error(e)
        return

    if weeks < 0:
        echo_error("--weeks cannot be negative")
        sys.exit(1)

    first = _to_date(start_date) or date.today()
    engine = CPPIEngine(bot_config.cppi, start_date=first)
    frame = simulate_policy(engine, DEMO_SLEEVE_EQUITIES, weeks, seed=seed)

    table = Table(title=f"CPPI Policy Simulation ({weeks} weeks, seed {seed})")
    for column in ("Week", "Date", "Total", "Floor", "Cushion", "Risky W", "Straddle Gate", "Rebalance"):
        table.add_column(column, justify="right")
    for week, row in frame.iterrows():
        table.add_row(
            str(week),
            str(row["date"]),
            f"${row['total']:,.2f}",
            f"${row['floor']:,.2f}",
            f"${row['cushion']:,.2f}",
            f"{row['risky_weight']:.1%}",
            "yes" if row["straddle_gate"] else "no",
            "yes" if row["needs_rebalance"] else "no",
        )
    console.print(table)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        frame.to_csv(output)
        echo(f"Simulation written to {output}")


@cli.command()
@config_option
@click.option("--date", "on", type=click.DateTime(formats=["%Y-%m-%d"]), required=True, help="Cycle date")
@click.option("--start-date", type=click.DateTime(formats=["%Y-%m-%d"]), help="Policy start date (cycle date)")
@click.option("--seed", type=int, default=42, show_default=True, help="Synthetic market seed")
@click.pass_context
def cycle(
    ctx: click.Context,
    config: Optional[Path],
    on: datetime,
    start_date: Optional[datetime],
    seed: int,
) -> None:
    """
    Dry-run one live sleeve cycle against a synthetic option chain.

    State is read from and written back to portfolio_state.json in the data
    directory, so consecutive runs continue the same portfolio.
    """
    try:
        bot_config = _load(ctx, config)
    except ConfigValidationError as e:
        _fail_on_config_error(e)
        return

    today = on.date()
    data_dir = Path(bot_config.logging.data_dir)
    state_path = data_dir / STATE_FILE
    state = load_portfolio_state(state_path)
    if state is None:
        echo(f"No saved state in {data_dir}; starting from the demo sleeves")
        state = PortfolioState(DEMO_SLEEVE_EQUITIES, start_date=_to_date(start_date) or today)

    symbols = bot_config.universe.symbols
    dataset = SyntheticMarketGenerator(seed=seed).generate(symbols, today - timedelta(days=1), today)
    broker = DryRunBroker(DatasetBroker(dataset, today))
    policy_start = _to_date(start_date) or state.start_date or today
    runner = SleeveRunner(bot_config, broker, start_date=policy_start)

    try:
        result = runner.run_cycle(state, today)
    except BrokerError as e:
        echo_error(f"Broker error: {e}")
        sys.exit(1)

    save_portfolio_state(result.state, state_path)
    echo(f"Portfolio state saved to: {state_path}")
    if bot_config.logging.enable_trade_logging and result.orders:
        trades_path = append_trade_log(result.orders, data_dir, today)
        echo(f"Trades logged to: {trades_path}")

    table = Table(title=f"Dry-run orders on {today}")
    for column in ("Order", "Strategy", "Sleeve", "Side", "Qty", "Symbol", "Limit", "Budget"):
        table.add_column(column)
    for order in result.orders:
        table.add_row(
            order.order_id,
            order.strategy_id,
            order.sleeve.value,
            order.side.value,
            str(order.quantity),
            order.symbol,
            f"{order.price:.2f}" if order.price is not None else "-",
            f"${order.risk_budget:,.2f}",
        )
    console.print(table)
    if result.skipped:
        echo(f"Skipped: {', '.join(result.skipped)}")


@cli.command()
@click.option(
    "--results",
    "-r",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Path to backtest results JSON file",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    help="Write the report here instead of printing it",
)
@click.option(
    "--format",
    "-f",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Report output format",
)
def report(results: Path, output: Optional[Path], format: str) -> None:
    """Regenerate a report from a saved backtest result."""
    try:
        result = ReportGenerator.load_results(results)
    except ReportError as e:
        echo_error(str(e))
        sys.exit(1)

    if format == "json":
        content = json.dumps(
            {
                "metrics": result.metrics.to_dict(),
                "per_strategy_metrics": {
                    name: m.to_dict() for name, m in result.per_strategy_metrics.items()
                },
                "final_value": result.final_value,
            },
            indent=2,
        )
    else:
        content = ReportGenerator.generate_summary_report(result)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(content)
        echo_success(f"Report generated: {output}")
    else:
        click.echo(content)


def main() -> None:
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
