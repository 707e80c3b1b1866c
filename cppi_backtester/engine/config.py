"""
Backtest Run Configuration

``BacktestConfig`` describes one synthetic backtest: date range, capital,
universe, strategy archetypes, costs and seeds. It lives beside the engine
so the engine never reaches into the command line layer; the bot
configuration embeds it as its ``backtest`` section.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from cppi_backtester.policy.cppi import vars_of
from cppi_backtester.structures.legs import StrategyArchetype

DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y")


def parse_date(date_value: Union[str, date, datetime]) -> Optional[date]:
    """Parse various date formats; None when the value is not a date."""
    if isinstance(date_value, datetime):
        return date_value.date()
    if isinstance(date_value, date):
        return date_value
    if isinstance(date_value, str):
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(date_value, fmt).date()
            except ValueError:
                continue
    return None


def _as_str_tuple(value: Union[str, List[str], Tuple[str, ...]]) -> Tuple[str, ...]:
    if isinstance(value, str):
        return tuple(s.strip() for s in value.split(",") if s.strip())
    return tuple(str(s) for s in value)


@dataclass(frozen=True)
class BacktestConfig:
    """Backtest run configuration."""

    start_date: date = date(2023, 1, 1)
    end_date: date = date(2023, 12, 31)
    initial_capital: float = 10000.0
    universe: Tuple[str, ...] = ("US.SPY", "US.QQQ", "US.IWM")
    strategies: Tuple[str, ...] = (
        "debit_call_vertical",
        "credit_put_spread",
        "atm_straddle",
    )
    risk_free_rate: float = 0.05
    commission_per_contract: float = 1.50
    seed: int = 42
    execution_seed: int = 123456789
    slippage_min_pct: float = 0.005
    slippage_max_pct: float = 0.02
    expiry_offsets: Tuple[int, ...] = (7, 14, 21, 30, 45)
    entry_every_days: int = 1
    cppi_sizing: bool = False
    model_marks: bool = True

    def to_dict(self) -> Dict[str, Any]:
        data = vars_of(self)
        data['start_date'] = self.start_date.isoformat()
        data['end_date'] = self.end_date.isoformat()
        data['universe'] = list(self.universe)
        data['strategies'] = list(self.strategies)
        data['expiry_offsets'] = list(self.expiry_offsets)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BacktestConfig":
        kwargs = dict(data)
        for key in ('start_date', 'end_date'):
            if key in kwargs:
                parsed = parse_date(kwargs[key])
                if parsed is None:
                    raise ValueError(f"Invalid {key}: {kwargs[key]!r}")
                kwargs[key] = parsed
        for key in ('universe', 'strategies'):
            if key in kwargs:
                kwargs[key] = _as_str_tuple(kwargs[key])
        if 'expiry_offsets' in kwargs:
            kwargs['expiry_offsets'] = tuple(int(d) for d in kwargs['expiry_offsets'])
        unknown = set(kwargs) - set(cls.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown backtest keys: {sorted(unknown)}")
        return cls(**kwargs)


def validate_backtest_config(backtest: BacktestConfig) -> List[str]:
    """
    Validate a backtest configuration.

    Returns:
        List of error messages (empty if valid)
    """
    errors = []

    if backtest.start_date > backtest.end_date:
        errors.append("backtest start_date must not be after end_date")
    if backtest.initial_capital <= 0:
        errors.append("Initial capital must be positive")
    if backtest.commission_per_contract < 0:
        errors.append("Commission cannot be negative")
    if not 0 <= backtest.slippage_min_pct <= backtest.slippage_max_pct < 1:
        errors.append("Slippage band must satisfy 0 <= min <= max < 1")
    if not backtest.universe:
        errors.append("Backtest universe cannot be empty")
    if not backtest.strategies:
        errors.append("Backtest needs at least one strategy")
    for name in backtest.strategies:
        try:
            StrategyArchetype(name)
        except ValueError:
            errors.append(f"Unknown backtest strategy: {name}")
    if not backtest.expiry_offsets or any(d <= 0 for d in backtest.expiry_offsets):
        errors.append("Expiry offsets must be positive day counts")
    if backtest.entry_every_days < 1:
        errors.append("entry_every_days must be at least 1")

    return errors


__all__ = [
    'DATE_FORMATS',
    'parse_date',
    'BacktestConfig',
    'validate_backtest_config',
]
