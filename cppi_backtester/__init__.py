"""
CPPI Options Backtester Package

Allocates capital across five option sleeves with a CPPI policy and
evaluates the sleeve strategies on seeded synthetic market histories.

Modules:
    core: Black-Scholes pricing, option symbols and quotes
    data: Market dataset and synthetic market generator
    structures: Strategy leg builders
    engine: Execution model, position ledger and backtest engine
    policy: CPPI engine, sleeve value types, simulation and live cycle
    analytics: Performance metrics and result reports
    connectivity: Broker gateway boundary
    cli: Configuration and the cppi-bot command line
"""

__version__ = "1.0.0"
__author__ = "CPPI Options Bot Team"

from cppi_backtester.cli import (
    BotConfig,
    BacktestConfig,
    load_config,
    load_config_string,
)
from cppi_backtester.engine import run_backtest
from cppi_backtester.policy import (
    CPPIConfig,
    CPPIEngine,
    SleeveEquities,
    compute_cppi_metrics,
    compute_contributions_allocation,
    compute_risk_budget,
)

__all__ = [
    "__version__",
    "__author__",
    "BotConfig",
    "BacktestConfig",
    "load_config",
    "load_config_string",
    "run_backtest",
    "CPPIConfig",
    "CPPIEngine",
    "SleeveEquities",
    "compute_cppi_metrics",
    "compute_contributions_allocation",
    "compute_risk_budget",
]
