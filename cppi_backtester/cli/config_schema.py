"""
Configuration Schema for the CPPI Options Bot

Defines the immutable configuration tree (trading connection, sleeve
strategies, universe, logging, CPPI policy, backtest run) together with the
validation rules applied once at startup.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import logging

from cppi_backtester.engine.config import BacktestConfig, validate_backtest_config
from cppi_backtester.policy.cppi import CPPIConfig, cppi_config_errors, vars_of
from cppi_backtester.policy.sleeves import (
    DEFAULT_CADENCES,
    Cadence,
    Sleeve,
    sleeve_for_strategy,
)
from cppi_backtester.structures.legs import LegParameters, StrategyArchetype

logger = logging.getLogger(__name__)


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message)


class TradingEnvironment(str, Enum):
    """Brokerage trading environment."""

    REAL = "REAL"
    SIMULATE = "SIMULATE"


# Per-strategy leg selection parameters
StrategyParameters = LegParameters

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "WARN", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class TradingConfig:
    """Broker connection settings."""

    host: str = "127.0.0.1"
    port: int = 11111
    environment: TradingEnvironment = TradingEnvironment.SIMULATE
    dry_run: bool = True


@dataclass(frozen=True)
class AccountConfig:
    """Account selection: explicit id, or index into the broker's account list."""

    id: Optional[int] = None
    index: int = 0


@dataclass(frozen=True)
class RiskLimits:
    """Per-strategy trading limits."""

    max_weekly_spend: float = 200.0
    max_position_size: int = 10
    max_daily_trades: int = 5


@dataclass(frozen=True)
class SleeveStrategyConfig:
    """One live strategy feeding a sleeve."""

    id: str
    name: str = ""
    description: str = ""
    enabled: bool = True
    sleeve: Optional[Sleeve] = None
    cadence: Optional[Cadence] = None
    account: AccountConfig = field(default_factory=AccountConfig)
    parameters: StrategyParameters = field(default_factory=StrategyParameters)
    risk_limits: RiskLimits = field(default_factory=RiskLimits)
    components: Tuple[StrategyArchetype, ...] = ()

    @property
    def resolved_sleeve(self) -> Optional[Sleeve]:
        """Explicit sleeve, else the sleeve implied by the strategy id."""
        return self.sleeve or sleeve_for_strategy(self.id)

    @property
    def resolved_cadence(self) -> Cadence:
        if self.cadence is not None:
            return self.cadence
        sleeve = self.resolved_sleeve
        return DEFAULT_CADENCES[sleeve] if sleeve else Cadence.WEEKLY


@dataclass(frozen=True)
class UniverseConfig:
    """Underlyings to trade."""

    max_symbols: int = 6
    fallback_symbols: Tuple[str, ...] = ("US.SPY", "US.QQQ", "US.IWM")

    @property
    def symbols(self) -> Tuple[str, ...]:
        return self.fallback_symbols[:max(self.max_symbols, 0)]


@dataclass(frozen=True)
class LoggingConfig:
    """Logging and data directory settings."""

    level: str = "INFO"
    data_dir: str = "./data"
    log_file: Optional[str] = None
    enable_trade_logging: bool = True


def _default_strategies() -> Tuple[SleeveStrategyConfig, ...]:
    return (
        SleeveStrategyConfig(
            id="debit_spreads",
            name="Debit Call Verticals",
            description="Defined-risk bullish call verticals",
            components=(StrategyArchetype.DEBIT_CALL_VERTICAL,),
        ),
        SleeveStrategyConfig(
            id="credit_spreads",
            name="Credit Put Spreads",
            description="Premium collection with a protective long put",
            parameters=StrategyParameters(short_delta=0.22),
            components=(StrategyArchetype.CREDIT_PUT_SPREAD,),
        ),
        SleeveStrategyConfig(
            id="event_straddles",
            name="Event Straddles",
            description="Monthly at-the-money straddles",
            components=(StrategyArchetype.ATM_STRADDLE,),
        ),
        SleeveStrategyConfig(
            id="collar_equity",
            name="Equity Collar",
            description="Short call and long put around equity exposure",
            components=(StrategyArchetype.COLLAR_POSITION,),
        ),
        SleeveStrategyConfig(
            id="crash_hedge",
            name="Crash Hedge",
            description="Far out-of-the-money protective puts",
            parameters=StrategyParameters(target_delta=0.08),
            components=(StrategyArchetype.CRASH_HEDGE_PUT,),
        ),
    )


@dataclass(frozen=True)
class BotConfig:
    """Complete, resolved configuration."""

    trading: TradingConfig = field(default_factory=TradingConfig)
    strategies: Tuple[SleeveStrategyConfig, ...] = field(default_factory=_default_strategies)
    universe: UniverseConfig = field(default_factory=UniverseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    cppi: CPPIConfig = field(default_factory=CPPIConfig)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)

    @property
    def enabled_strategies(self) -> List[SleeveStrategyConfig]:
        return [s for s in self.strategies if s.enabled]

    @property
    def total_weekly_spend_limit(self) -> float:
        """Sum of max_weekly_spend over the enabled strategies."""
        return sum(s.risk_limits.max_weekly_spend for s in self.enabled_strategies)

    def get_strategy(self, strategy_id: str) -> Optional[SleeveStrategyConfig]:
        for strategy in self.strategies:
            if strategy.id == strategy_id and strategy.enabled:
                return strategy
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data form, suitable for YAML/JSON."""
        return {
            "trading": {
                "host": self.trading.host,
                "port": self.trading.port,
                "environment": self.trading.environment.value,
                "dry_run": self.trading.dry_run,
            },
            "strategies": [
                {
                    "id": s.id,
                    "name": s.name,
                    "description": s.description,
                    "enabled": s.enabled,
                    "sleeve": s.sleeve.value if s.sleeve else None,
                    "cadence": s.cadence.value if s.cadence else None,
                    "account": vars_of(s.account),
                    "parameters": vars_of(s.parameters),
                    "risk_limits": vars_of(s.risk_limits),
                    "components": [c.value for c in s.components],
                }
                for s in self.strategies
            ],
            "universe": {
                "max_symbols": self.universe.max_symbols,
                "fallback_symbols": list(self.universe.fallback_symbols),
            },
            "logging": vars_of(self.logging),
            "cppi": self.cppi.to_dict(),
            "backtest": self.backtest.to_dict(),
        }


class ConfigValidator:
    """Validates the bot configuration."""

    @classmethod
    def validate(cls, config: BotConfig) -> List[str]:
        """
        Validate a bot configuration.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        errors.extend(cls._validate_trading(config.trading))

        if not config.strategies:
            errors.append("At least one strategy must be configured")

        seen = set()
        for strategy in config.strategies:
            if strategy.id in seen:
                errors.append(f"Duplicate strategy ID: {strategy.id}")
            seen.add(strategy.id)
            errors.extend(cls._validate_strategy(strategy))

        if config.universe.max_symbols <= 0:
            errors.append("Universe max_symbols must be positive")

        if config.logging.level.upper() not in VALID_LOG_LEVELS:
            errors.append(f"Invalid logging level: {config.logging.level}")

        errors.extend(cppi_config_errors(config.cppi))
        errors.extend(validate_backtest_config(config.backtest))

        return errors

    @classmethod
    def _validate_trading(cls, trading: TradingConfig) -> List[str]:
        errors = []
        if not trading.host:
            errors.append("Trading host is required")
        if not 0 < trading.port < 65536:
            errors.append(f"Trading port must be in 1-65535, got {trading.port}")
        return errors

    @classmethod
    def _validate_strategy(cls, strategy: SleeveStrategyConfig) -> List[str]:
        """Validate one strategy's parameters and wiring."""
        errors = []
        prefix = f"Strategy {strategy.id}"
        params = strategy.parameters

        if not strategy.id:
            errors.append("Strategy id is required")
        if params.contracts <= 0:
            errors.append(f"{prefix}: contracts must be positive")
        if params.dte_min >= params.dte_max:
            errors.append(f"{prefix}: dte_min must be less than dte_max")
        if not 0 < params.target_delta < 1:
            errors.append(f"{prefix}: target_delta must be in (0, 1)")
        if not 0 < params.short_delta < 1:
            errors.append(f"{prefix}: short_delta must be in (0, 1)")
        if params.width <= 0:
            errors.append(f"{prefix}: width must be positive")
        if strategy.enabled and strategy.resolved_sleeve is None:
            errors.append(f"{prefix}: no sleeve configured and none implied by its id")
        if strategy.enabled and not strategy.components:
            errors.append(f"{prefix}: at least one component is required")
        limits = strategy.risk_limits
        if limits.max_position_size <= 0:
            errors.append(f"{prefix}: max_position_size must be positive")
        if limits.max_weekly_spend <= 0:
            errors.append(f"{prefix}: max_weekly_spend must be positive")
        if limits.max_daily_trades <= 0:
            errors.append(f"{prefix}: max_daily_trades must be positive")

        return errors


def validate_config(config: BotConfig) -> None:
    """
    Validate configuration and raise exception if invalid.

    Raises:
        ConfigValidationError: If validation fails
    """
    errors = ConfigValidator.validate(config)
    if errors:
        raise ConfigValidationError(
            f"Configuration validation failed with {len(errors)} error(s)",
            errors=errors,
        )
