"""
Backtesting Engine Module

Components:
    - ExecutionModel: Seeded slippage, commissions and affordability checks
    - PositionLedger: Cash, positions, lots, expiry settlement and marks
    - BacktestConfig: Run settings and their validation
    - BacktestEngine: Day-by-day orchestrator over a synthetic market

Usage:
    from cppi_backtester.engine import run_backtest

    result = run_backtest({'start_date': '2023-01-01', 'end_date': '2023-03-31'})
    print(f"Sharpe: {result.metrics.sharpe_ratio:.2f}")

Financial Correctness:
    - Value = Cash + sum(quantity x 100 x mark)
    - Commission = Per-contract fee x Number of contracts
    - Slippage is always adverse to the trader
"""

# ExecutionModel - Order execution simulation
from cppi_backtester.engine.execution import (
    ExecutionModel,
    TradeRecord,
    ExecutionError,
    ExecutionConfigError,
    DEFAULT_COMMISSION_PER_CONTRACT,
    DEFAULT_SLIPPAGE_MIN_PCT,
    DEFAULT_SLIPPAGE_MAX_PCT,
)

# PositionLedger - Portfolio state
from cppi_backtester.engine.ledger import (
    PositionLedger,
    Lot,
    ClosedPosition,
    LedgerError,
)

# BacktestConfig - Run settings
from cppi_backtester.engine.config import (
    BacktestConfig,
    validate_backtest_config,
)

# BacktestEngine - Main orchestrator
from cppi_backtester.engine.backtest_engine import (
    BacktestEngine,
    BacktestResult,
    DailyPnL,
    BacktestError,
    BacktestConfigError,
    run_backtest,
)


__all__ = [
    # Main classes
    'BacktestEngine',
    'ExecutionModel',
    'PositionLedger',
    'run_backtest',
    'BacktestConfig',
    'validate_backtest_config',

    # Supporting classes
    'BacktestResult',
    'DailyPnL',
    'TradeRecord',
    'Lot',
    'ClosedPosition',

    # Exceptions
    'ExecutionError',
    'ExecutionConfigError',
    'LedgerError',
    'BacktestError',
    'BacktestConfigError',

    # Constants
    'DEFAULT_COMMISSION_PER_CONTRACT',
    'DEFAULT_SLIPPAGE_MIN_PCT',
    'DEFAULT_SLIPPAGE_MAX_PCT',
]
