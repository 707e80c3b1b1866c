#!/usr/bin/env python3
"""
Example 1: Simple Synthetic Backtest

This is a beginner-friendly example showing the basic workflow for running
a backtest on a synthetic option market.

What this example demonstrates:
    - Generating a reproducible synthetic market
    - Configuring a backtest run
    - Running the engine and reading its metrics
    - Writing the JSON result and text summary

Difficulty: Beginner
Time to run: < 10 seconds
"""

from datetime import date

from cppi_backtester.analytics.report import ReportGenerator
from cppi_backtester.data.synthetic import SyntheticMarketGenerator
from cppi_backtester.engine.backtest_engine import BacktestEngine
from cppi_backtester.engine.config import BacktestConfig


def main():
    """
    Run a simple backtest example.
    """
    print("="*70)
    print("CPPI Options Backtester - Example 1: Simple Backtest")
    print("="*70)
    print()

    # Step 1: Define backtest parameters
    print("Step 1: Defining backtest parameters...")
    config = BacktestConfig(
        start_date=date(2023, 1, 1),
        end_date=date(2023, 3, 31),
        initial_capital=25_000.0,
        universe=("US.SPY", "US.QQQ"),
        strategies=("debit_call_vertical", "credit_put_spread", "crash_hedge_put"),
        entry_every_days=7,
    )
    print(f"  Start Date: {config.start_date}")
    print(f"  End Date: {config.end_date}")
    print(f"  Initial Capital: ${config.initial_capital:,.2f}")
    print(f"  Strategies: {', '.join(config.strategies)}")
    print()

    # Step 2: Generate the market
    print("Step 2: Generating synthetic market...")
    generator = SyntheticMarketGenerator(
        seed=config.seed,
        risk_free_rate=config.risk_free_rate,
        expiry_offsets=config.expiry_offsets,
    )
    dataset = generator.generate(config.universe, config.start_date, config.end_date)
    print(f"  {len(dataset.trading_dates())} days of prices and Black-Scholes quotes")
    print()

    # Step 3: Run the engine
    print("Step 3: Running backtest...")
    result = BacktestEngine(config, dataset=dataset).run()
    print("  Backtest complete!")
    print()

    # Step 4: Display results
    print("="*70)
    print("BACKTEST RESULTS")
    print("="*70)
    print()
    print(ReportGenerator.generate_summary_table(result.metrics))
    print()
    print(f"Final Value: ${result.final_value:,.2f}")
    print()

    print("Per-strategy P&L:")
    for name, metrics in result.per_strategy_metrics.items():
        print(f"  {name:<22} ${metrics.total_pnl:>10,.2f}  ({metrics.total_trades} fills)")
    print()

    # Step 5: Persist
    json_path, summary_path = ReportGenerator.save_results(result, './data')
    print(f"Results saved to: {json_path}")
    print(f"Summary saved to: {summary_path}")
    print()

    print("="*70)
    print("Next steps:")
    print("  - Try other strategies: atm_straddle, cash_secured_put, collar_position")
    print("  - Run example_02_cppi_policy.py to see the sleeve policy")
    print("  - Use `cppi-bot backtest --cppi-sizing` to size by sleeve risk budgets")
    print("="*70)


if __name__ == '__main__':
    main()
