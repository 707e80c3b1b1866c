"""
Tests for the configuration schema, loader layers and environment setup.
"""

import json
import logging
from datetime import date
from pathlib import Path

import pytest
import yaml

from cppi_backtester.cli.config_loader import (
    ConfigLoader,
    deep_merge,
    generate_default_config,
    load_config,
    load_config_string,
    normalize_keys,
)
from cppi_backtester.cli.config_schema import (
    AccountConfig,
    BotConfig,
    ConfigValidationError,
    ConfigValidator,
    RiskLimits,
    SleeveStrategyConfig,
    TradingEnvironment,
    LoggingConfig,
    UniverseConfig,
    validate_config,
)
from cppi_backtester.cli.environment import configure_logging, ensure_data_dir
from cppi_backtester.engine.config import BacktestConfig, validate_backtest_config
from cppi_backtester.policy.sleeves import Cadence, Sleeve
from cppi_backtester.structures.legs import StrategyArchetype


class TestSchema:
    """Tests for the configuration schema and validator."""

    def test_defaults_validate(self):
        """Test that the default configuration validates."""
        assert ConfigValidator.validate(BotConfig()) == []

    def test_default_strategies(self):
        """Test the default strategy set."""
        config = BotConfig()
        assert [s.id for s in config.strategies] == [
            'debit_spreads', 'credit_spreads', 'event_straddles', 'collar_equity', 'crash_hedge'
        ]
        assert config.get_strategy('credit_spreads').parameters.short_delta == 0.22
        assert config.get_strategy('crash_hedge').parameters.target_delta == 0.08
        assert config.get_strategy('missing') is None

    def test_resolved_sleeve_and_cadence(self):
        """Test sleeve and cadence resolution."""
        straddles = BotConfig().get_strategy('event_straddles')
        assert straddles.resolved_sleeve is Sleeve.STRADDLE
        assert straddles.resolved_cadence is Cadence.MONTHLY
        custom = SleeveStrategyConfig(id='x', sleeve=Sleeve.DEBIT, cadence=Cadence.MONTHLY)
        assert custom.resolved_sleeve is Sleeve.DEBIT
        assert custom.resolved_cadence is Cadence.MONTHLY
        assert SleeveStrategyConfig(id='x').resolved_cadence is Cadence.WEEKLY

    def test_universe_symbols_capped(self):
        """Test that universe symbols are capped at max_symbols."""
        assert UniverseConfig(max_symbols=2).symbols == ('US.SPY', 'US.QQQ')

    def test_duplicate_ids_and_bad_parameters(self):
        """Test that duplicate strategy ids are reported."""
        bad = SleeveStrategyConfig(
            id='debit_spreads', components=(StrategyArchetype.DEBIT_CALL_VERTICAL,)
        )
        config = BotConfig(strategies=(bad, bad))
        errors = ConfigValidator.validate(config)
        assert "Duplicate strategy ID: debit_spreads" in errors

    def test_strategy_without_sleeve_or_components(self):
        """Test a strategy with no sleeve and no components."""
        errors = ConfigValidator._validate_strategy(SleeveStrategyConfig(id='mystery'))
        assert any("no sleeve" in e for e in errors)
        assert any("component" in e for e in errors)

    def test_disabled_strategy_needs_no_sleeve(self):
        """Test that a disabled strategy is not validated."""
        assert ConfigValidator._validate_strategy(SleeveStrategyConfig(id='mystery', enabled=False)) == []

    def test_validate_config_raises(self):
        """Test that validate_config raises with the collected errors."""
        config = BotConfig(universe=UniverseConfig(max_symbols=0))
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_config(config)
        assert "Universe max_symbols must be positive" in exc_info.value.errors

    def test_backtest_config_from_dict(self):
        """Test BacktestConfig parsing from a mapping."""
        config = BacktestConfig.from_dict({
            'start_date': '2023/02/01',
            'end_date': '03/31/2023',
            'universe': 'US.SPY, US.QQQ',
            'strategies': ['atm_straddle'],
        })
        assert config.start_date == date(2023, 2, 1)
        assert config.end_date == date(2023, 3, 31)
        assert config.universe == ('US.SPY', 'US.QQQ')
        assert BacktestConfig.from_dict(config.to_dict()) == config

    def test_backtest_config_rejects_unknown_keys(self):
        """Test that unknown backtest keys are rejected."""
        with pytest.raises(ValueError):
            BacktestConfig.from_dict({'margin': True})

    def test_backtest_config_rejects_bad_dates(self):
        """Test that unparseable backtest dates are rejected."""
        with pytest.raises(ValueError):
            BacktestConfig.from_dict({'start_date': 'yesterday'})

    def test_backtest_section_uses_engine_validator(self):
        """Test that the backtest section is checked by the engine's validator."""
        backtest = BacktestConfig(commission_per_contract=-1.0)
        errors = ConfigValidator.validate(BotConfig(backtest=backtest))
        assert errors == validate_backtest_config(backtest)
        assert errors == ["Commission cannot be negative"]

    def test_risk_limits_must_be_positive(self):
        """Test that weekly spend and daily trade limits must be positive."""
        strategy = SleeveStrategyConfig(
            id='debit_spreads',
            components=(StrategyArchetype.DEBIT_CALL_VERTICAL,),
            risk_limits=RiskLimits(max_weekly_spend=0.0, max_daily_trades=0),
        )
        errors = ConfigValidator._validate_strategy(strategy)
        assert "Strategy debit_spreads: max_weekly_spend must be positive" in errors
        assert "Strategy debit_spreads: max_daily_trades must be positive" in errors

    def test_total_weekly_spend_limit(self):
        """Test the weekly spend limit summed over enabled strategies."""
        config = BotConfig()
        assert config.total_weekly_spend_limit == pytest.approx(5 * 200.0)
        strategies = (
            SleeveStrategyConfig(
                id='debit_spreads',
                components=(StrategyArchetype.DEBIT_CALL_VERTICAL,),
                risk_limits=RiskLimits(max_weekly_spend=120.0),
            ),
            SleeveStrategyConfig(id='crash_hedge', enabled=False),
        )
        assert BotConfig(strategies=strategies).total_weekly_spend_limit == pytest.approx(120.0)


class TestUtilities:
    """Tests for configuration helpers."""

    def test_normalize_keys(self):
        """Test camelCase key normalization."""
        assert normalize_keys({'dryRun': True, 'riskLimits': {'maxPositionSize': 3}}) == {
            'dry_run': True, 'risk_limits': {'max_position_size': 3}
        }

    def test_deep_merge(self):
        """Test deep merging without mutating the base."""
        base = {'a': {'x': 1, 'y': 2}, 'b': [1, 2]}
        merged = deep_merge(base, {'a': {'y': 3}, 'b': [9]})
        assert merged == {'a': {'x': 1, 'y': 3}, 'b': [9]}
        assert base['a']['y'] == 2


class TestConfigLoader:
    """Tests for the layered configuration loader."""

    def test_defaults_only(self):
        """Test loading defaults alone."""
        config = ConfigLoader.load(environ={})
        assert config == BotConfig()

    def test_yaml_file_layer(self, tmp_path):
        """Test the YAML file layer."""
        path = tmp_path / 'config.yaml'
        path.write_text(yaml.safe_dump({
            'trading': {'port': 22222, 'dryRun': False},
            'cppi': {'floorPct': 0.9, 'riskySplit': {'debit': 0.5, 'credit': 0.25, 'straddle': 0.25}},
        }))
        config = ConfigLoader.load(path, environ={})
        assert config.trading.port == 22222
        assert config.trading.dry_run is False
        assert config.cppi.floor_pct == 0.9
        assert config.cppi.risky_split.debit == 0.5
        assert config.cppi.risky_split.hedge_fixed == 0.02

    def test_json_file_layer(self, tmp_path):
        """Test the JSON file layer."""
        path = tmp_path / 'config.json'
        path.write_text(json.dumps({'universe': {'fallback_symbols': ['US.AAPL']}}))
        config = ConfigLoader.load(path, environ={})
        assert config.universe.symbols == ('US.AAPL',)

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises."""
        with pytest.raises(FileNotFoundError):
            ConfigLoader.load(tmp_path / 'nope.yaml', environ={})

    def test_unsupported_suffix(self, tmp_path):
        """Test that an unsupported file suffix raises."""
        path = tmp_path / 'config.toml'
        path.write_text('x = 1')
        with pytest.raises(ValueError):
            ConfigLoader.load(path, environ={})

    def test_environment_layer(self):
        """Test the environment variable layer."""
        config = ConfigLoader.load(environ={
            'BROKER_HOST': '10.0.0.5',
            'BROKER_PORT': '12345',
            'TRD_ENV': 'real',
            'DRY_RUN': 'false',
            'CREDIT_SPREADS_ACC_ID': '777',
            'ACC_INDEX_1': '2',
            'DATA_DIR': '/tmp/bot-data',
            'LOG_LEVEL': 'debug',
            'UNIVERSE_MAX': '1',
        })
        assert config.trading.host == '10.0.0.5'
        assert config.trading.port == 12345
        assert config.trading.environment is TradingEnvironment.REAL
        assert config.trading.dry_run is False
        assert config.get_strategy('credit_spreads').account == AccountConfig(id=777, index=0)
        assert config.get_strategy('debit_spreads').account.index == 2
        assert config.logging.data_dir == '/tmp/bot-data'
        assert config.logging.level == 'DEBUG'
        assert config.universe.symbols == ('US.SPY',)

    def test_overrides_applied_last(self, tmp_path):
        """Test that explicit overrides win."""
        path = tmp_path / 'config.yaml'
        path.write_text(yaml.safe_dump({'backtest': {'initial_capital': 5000}}))
        config = ConfigLoader.load(
            path,
            environ={},
            overrides={'backtest': {'initialCapital': 25000.0, 'start_date': date(2023, 6, 1)}},
        )
        assert config.backtest.initial_capital == 25000.0
        assert config.backtest.start_date == date(2023, 6, 1)
        assert config.backtest.end_date == date(2023, 12, 31)

    def test_invalid_values_collected(self):
        """Test that invalid values are collected as errors."""
        with pytest.raises(ConfigValidationError) as exc_info:
            ConfigLoader.load(environ={}, overrides={'trading': {'port': 0}, 'cppi': {'multiplier': -1}})
        errors = exc_info.value.errors
        assert any('port' in e for e in errors)
        assert any('multiplier' in e for e in errors)

    def test_unparseable_values(self):
        """Test that unparseable values raise."""
        with pytest.raises(ConfigValidationError):
            load_config_string("strategies:\n  - id: x\n    components: [iron_condor]\n")
        with pytest.raises(ConfigValidationError):
            load_config_string("trading:\n  environment: PAPER\n")

    def test_component_aliases(self):
        """Test component name aliases."""
        config = load_config_string(
            "strategies:\n  - id: crash_hedge\n    components: [crash_hedge]\n"
        )
        assert config.strategies[0].components == (StrategyArchetype.CRASH_HEDGE_PUT,)

    def test_load_from_json_string(self):
        """Test loading from a JSON string."""
        config = ConfigLoader.load_from_string('{"logging": {"level": "WARNING"}}', format='json')
        assert config.logging.level == 'WARNING'

    def test_unsupported_string_format(self):
        """Test that an unsupported string format raises."""
        with pytest.raises(ValueError):
            ConfigLoader.load_from_string('x', format='ini')

    def test_shipped_sample_matches_defaults(self):
        """Test that the shipped sample matches the defaults."""
        path = Path(__file__).parent.parent / 'config' / 'default.yaml'
        config = load_config(path, environ={})
        defaults = BotConfig()
        assert config.trading == defaults.trading
        assert config.cppi == defaults.cppi
        assert config.backtest == defaults.backtest
        assert config.universe == defaults.universe
        assert [s.id for s in config.strategies] == [s.id for s in defaults.strategies]
        assert [s.parameters for s in config.strategies] == [s.parameters for s in defaults.strategies]

    @pytest.mark.parametrize("name", ["config.yaml", "config.json"])
    def test_generated_default_round_trips(self, tmp_path, name):
        """Test that a generated default file loads back to the defaults."""
        path = generate_default_config(tmp_path / name)
        assert load_config(path, environ={}) == BotConfig()


class TestEnvironment:
    """Tests for data directory and logging setup."""

    def test_ensure_data_dir(self, tmp_path):
        """Test data directory creation."""
        target = tmp_path / 'nested' / 'data'
        assert ensure_data_dir(LoggingConfig(data_dir=str(target))) == target
        assert target.is_dir()

    def test_file_handler_added_once(self, tmp_path):
        """Test that the log file handler is added only once."""
        log_file = tmp_path / 'logs' / 'bot.log'
        settings = LoggingConfig(level='WARNING', log_file=str(log_file))
        root = logging.getLogger()
        before = list(root.handlers)
        try:
            configure_logging(settings)
            configure_logging(settings)
            file_handlers = [
                h for h in root.handlers
                if isinstance(h, logging.FileHandler) and h not in before
            ]
            assert len(file_handlers) == 1
            assert root.level == logging.WARNING
            assert log_file.parent.is_dir()
        finally:
            for handler in root.handlers[:]:
                if handler not in before:
                    root.removeHandler(handler)
                    handler.close()

    def test_level_override(self):
        """Test the log level override."""
        root = logging.getLogger()
        previous = root.level
        before = list(root.handlers)
        try:
            configure_logging(LoggingConfig(level='ERROR'), level='debug')
            assert root.level == logging.DEBUG
        finally:
            root.setLevel(previous)
            for handler in root.handlers[:]:
                if handler not in before:
                    root.removeHandler(handler)
