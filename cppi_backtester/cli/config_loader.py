"""
Configuration Loader for the CPPI Options Bot

Resolves the configuration once, in layers:

    defaults -> YAML/JSON file -> environment variables -> CLI overrides

and returns a validated, immutable BotConfig. Keys may be written in
snake_case or camelCase in files and override mappings.
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union
import logging

import yaml

from cppi_backtester.cli.config_schema import (
    AccountConfig,
    BacktestConfig,
    BotConfig,
    ConfigValidationError,
    ConfigValidator,
    LoggingConfig,
    RiskLimits,
    SleeveStrategyConfig,
    StrategyParameters,
    TradingConfig,
    TradingEnvironment,
    UniverseConfig,
)
from cppi_backtester.policy.cppi import BaseRiskPct, CPPIConfig, MinTickets, RiskySplit
from cppi_backtester.policy.sleeves import Cadence, Sleeve
from cppi_backtester.structures.legs import LegBuilderError, parse_archetype

logger = logging.getLogger(__name__)

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])([A-Z])")


def _snake(key: str) -> str:
    return _CAMEL_RE.sub(r"_\1", key).lower()


def normalize_keys(data: Any) -> Any:
    """Recursively convert camelCase mapping keys to snake_case."""
    if isinstance(data, Mapping):
        return {_snake(str(k)): normalize_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [normalize_keys(v) for v in data]
    return data


def deep_merge(base: Dict[str, Any], update: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge ``update`` into a copy of ``base``; lists and scalars replace."""
    merged = dict(base)
    for key, value in update.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(dict(merged[key]), value)
        else:
            merged[key] = value
    return merged


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


class ConfigLoader:
    """Loads, layers and validates the bot configuration."""

    @classmethod
    def load(
        cls,
        path: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
        overrides: Optional[Mapping[str, Any]] = None
    ) -> BotConfig:
        """
        Resolve the configuration.

        Args:
            path: Optional YAML or JSON configuration file
            environ: Environment mapping (os.environ when None)
            overrides: Nested mapping applied last, e.g. from CLI options

        Returns:
            Validated BotConfig

        Raises:
            FileNotFoundError: If a given config file doesn't exist
            ConfigValidationError: If the configuration is invalid
            ValueError: If the file format is unsupported
        """
        data = BotConfig().to_dict()

        if path is not None:
            path = Path(path)
            if not path.exists():
                raise FileNotFoundError(f"Configuration file not found: {path}")
            data = deep_merge(data, normalize_keys(cls._load_file(path) or {}))
            logger.info(f"Loaded configuration file {path}")

        data = cls._apply_environment(data, os.environ if environ is None else environ)

        if overrides:
            data = deep_merge(data, normalize_keys(overrides))

        config = cls._parse_and_validate(data, source=str(path) if path else "defaults")
        return config

    @classmethod
    def load_from_string(
        cls,
        content: str,
        format: str = "yaml",
        environ: Optional[Mapping[str, str]] = None
    ) -> BotConfig:
        """
        Load configuration from string content, layered over the defaults.

        Args:
            content: YAML or JSON string
            format: "yaml" or "json"
            environ: Environment mapping; no environment overrides when None
        """
        if format.lower() == "yaml":
            raw_data = yaml.safe_load(content)
        elif format.lower() == "json":
            raw_data = json.loads(content)
        else:
            raise ValueError(f"Unsupported format: {format}")

        data = deep_merge(BotConfig().to_dict(), normalize_keys(raw_data or {}))
        if environ is not None:
            data = cls._apply_environment(data, environ)
        return cls._parse_and_validate(data, source="string")

    @classmethod
    def _parse_and_validate(cls, data: Dict[str, Any], source: str) -> BotConfig:
        try:
            config = cls._parse_config(data)
        except (KeyError, TypeError, ValueError, LegBuilderError) as e:
            raise ConfigValidationError(
                f"Configuration could not be parsed: {source}", errors=[str(e)]
            ) from e

        errors = ConfigValidator.validate(config)
        if errors:
            raise ConfigValidationError(
                f"Configuration validation failed: {source}", errors=errors
            )
        return config

    @classmethod
    def _load_file(cls, path: Path) -> Dict[str, Any]:
        """Load raw data from file."""
        suffix = path.suffix.lower()

        with open(path, "r") as f:
            if suffix in (".yaml", ".yml"):
                return yaml.safe_load(f)
            elif suffix == ".json":
                return json.load(f)
            else:
                raise ValueError(f"Unsupported file format: {suffix}")

    # =========================================================================
    # Environment layer
    # =========================================================================

    @classmethod
    def _apply_environment(
        cls,
        data: Dict[str, Any],
        environ: Mapping[str, str]
    ) -> Dict[str, Any]:
        """Apply environment variable overrides to the plain-data config."""
        data = deep_merge(data, {})
        trading = dict(data.get("trading", {}))
        logging_cfg = dict(data.get("logging", {}))
        universe = dict(data.get("universe", {}))

        if environ.get("BROKER_HOST"):
            trading["host"] = environ["BROKER_HOST"]
        if environ.get("BROKER_PORT"):
            trading["port"] = int(environ["BROKER_PORT"])
        if environ.get("TRD_ENV"):
            trading["environment"] = environ["TRD_ENV"].upper()
        if "DRY_RUN" in environ:
            trading["dry_run"] = _as_bool(environ["DRY_RUN"])

        strategies = []
        for index, raw in enumerate(data.get("strategies", [])):
            strategy = dict(raw)
            account = dict(strategy.get("account") or {})
            prefix = str(strategy.get("id", "")).upper()

            acc_id = environ.get(f"{prefix}_ACC_ID") or environ.get(f"ACC_ID_{index + 1}")
            if acc_id:
                account["id"] = int(acc_id)
            acc_index = (
                environ.get(f"{prefix}_ACC_INDEX") or environ.get(f"ACC_INDEX_{index + 1}")
            )
            if acc_index:
                account["index"] = int(acc_index)

            strategy["account"] = account
            strategies.append(strategy)

        if environ.get("DATA_DIR"):
            logging_cfg["data_dir"] = environ["DATA_DIR"]
        if environ.get("LOG_FILE"):
            logging_cfg["log_file"] = environ["LOG_FILE"]
        if environ.get("LOG_LEVEL"):
            logging_cfg["level"] = environ["LOG_LEVEL"].upper()
        if environ.get("UNIVERSE_MAX"):
            universe["max_symbols"] = int(environ["UNIVERSE_MAX"])

        data["trading"] = trading
        data["strategies"] = strategies
        data["logging"] = logging_cfg
        data["universe"] = universe
        return data

    # =========================================================================
    # Parsing
    # =========================================================================

    @classmethod
    def _parse_config(cls, data: Dict[str, Any]) -> BotConfig:
        """Parse a fully layered dictionary into BotConfig."""
        return BotConfig(
            trading=cls._parse_trading(data.get("trading", {})),
            strategies=tuple(cls._parse_strategy(s) for s in data.get("strategies", [])),
            universe=cls._parse_universe(data.get("universe", {})),
            logging=LoggingConfig(**data.get("logging", {})),
            cppi=cls._parse_cppi(data.get("cppi", {})),
            backtest=BacktestConfig.from_dict(data.get("backtest", {})),
        )

    @classmethod
    def _parse_trading(cls, data: Dict[str, Any]) -> TradingConfig:
        environment = data.get("environment", TradingEnvironment.SIMULATE.value)
        return TradingConfig(
            host=str(data.get("host", "127.0.0.1")),
            port=int(data.get("port", 11111)),
            environment=TradingEnvironment(str(environment).upper()),
            dry_run=_as_bool(data.get("dry_run", True)),
        )

    @classmethod
    def _parse_strategy(cls, data: Dict[str, Any]) -> SleeveStrategyConfig:
        """Parse single strategy configuration."""
        account = data.get("account") or {}
        sleeve = data.get("sleeve")
        cadence = data.get("cadence")
        components: List[Any] = data.get("components") or []

        return SleeveStrategyConfig(
            id=str(data["id"]),
            name=data.get("name") or str(data["id"]),
            description=data.get("description") or "",
            enabled=_as_bool(data.get("enabled", True)),
            sleeve=Sleeve(sleeve) if sleeve else None,
            cadence=Cadence(cadence) if cadence else None,
            account=AccountConfig(
                id=int(account["id"]) if account.get("id") is not None else None,
                index=int(account.get("index", 0)),
            ),
            parameters=StrategyParameters(**(data.get("parameters") or {})),
            risk_limits=RiskLimits(**(data.get("risk_limits") or {})),
            components=tuple(parse_archetype(c) for c in components),
        )

    @classmethod
    def _parse_universe(cls, data: Dict[str, Any]) -> UniverseConfig:
        symbols = data.get("fallback_symbols", UniverseConfig().fallback_symbols)
        if isinstance(symbols, str):
            symbols = [s.strip() for s in symbols.split(",") if s.strip()]
        return UniverseConfig(
            max_symbols=int(data.get("max_symbols", 6)),
            fallback_symbols=tuple(symbols),
        )

    @classmethod
    def _parse_cppi(cls, data: Dict[str, Any]) -> CPPIConfig:
        """Parse CPPI policy configuration."""
        kwargs = {
            k: v for k, v in data.items()
            if k not in ("risky_split", "base_risk_pct", "min_tickets")
        }
        return CPPIConfig(
            risky_split=RiskySplit(**(data.get("risky_split") or {})),
            base_risk_pct=BaseRiskPct(**(data.get("base_risk_pct") or {})),
            min_tickets=MinTickets(**(data.get("min_tickets") or {})),
            **kwargs,
        )


def generate_default_config(path: Union[str, Path]) -> Path:
    """
    Write the default configuration to ``path`` (YAML unless it ends in .json).

    Returns:
        The written path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = BotConfig().to_dict()

    with open(path, "w") as f:
        if path.suffix.lower() == ".json":
            json.dump(data, f, indent=2)
        else:
            yaml.safe_dump(data, f, sort_keys=False)

    logger.info(f"Wrote default configuration to {path}")
    return path


def load_config(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None
) -> BotConfig:
    """
    Convenience function to resolve the configuration.

    Returns:
        Validated BotConfig
    """
    return ConfigLoader.load(path, environ=environ, overrides=overrides)


def load_config_string(content: str, format: str = "yaml") -> BotConfig:
    """
    Convenience function to load configuration from string.

    Returns:
        Validated BotConfig
    """
    return ConfigLoader.load_from_string(content, format)
