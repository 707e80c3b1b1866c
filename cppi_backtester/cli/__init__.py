"""
CLI Package for the CPPI Options Bot

Configuration schema, layered loading, logging setup and the ``cppi-bot``
command-line interface.

Usage:
    # Run a synthetic backtest
    cppi-bot backtest --start-date 2023-01-01 --end-date 2023-06-30

    # Validate a configuration
    cppi-bot validate --config config.yaml

    # Inspect the CPPI policy for given sleeve equities
    cppi-bot metrics --debit 2000 --credit 1500 --straddle 1000 --collar 4000 --hedge 500
"""

from cppi_backtester.cli.config_schema import (
    # Enums
    TradingEnvironment,
    # Config Classes
    TradingConfig,
    AccountConfig,
    StrategyParameters,
    RiskLimits,
    SleeveStrategyConfig,
    UniverseConfig,
    LoggingConfig,
    BacktestConfig,
    BotConfig,
    # Validation
    ConfigValidator,
    ConfigValidationError,
    validate_config,
)

from cppi_backtester.cli.config_loader import (
    ConfigLoader,
    generate_default_config,
    load_config,
    load_config_string,
)

from cppi_backtester.cli.environment import (
    configure_logging,
    ensure_data_dir,
)

__all__ = [
    # Schema Enums
    "TradingEnvironment",
    # Config Classes
    "TradingConfig",
    "AccountConfig",
    "StrategyParameters",
    "RiskLimits",
    "SleeveStrategyConfig",
    "UniverseConfig",
    "LoggingConfig",
    "BacktestConfig",
    "BotConfig",
    # Validation
    "ConfigValidator",
    "ConfigValidationError",
    "validate_config",
    # Loader
    "ConfigLoader",
    "generate_default_config",
    "load_config",
    "load_config_string",
    # Environment
    "configure_logging",
    "ensure_data_dir",
]
