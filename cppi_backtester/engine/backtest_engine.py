"""
BacktestEngine Class for Synthetic Options Backtesting

This module provides the BacktestEngine class that orchestrates a backtest
over a synthetic market. It coordinates the SyntheticMarketGenerator, the
strategy leg builders, the ExecutionModel and the PositionLedger, and hands
the resulting P&L streams to PerformanceMetrics.

Key Features:
    - Deterministic runs: market, underlying choice and slippage all come
      from seeded generators
    - Day-by-day event loop with expiry settlement and mark-to-market
    - Per-trade P&L from closed ledger lots only
    - Per-strategy breakdown from each strategy's own cash flows and marks
    - Optional CPPI sizing of every order against its sleeve's risk budget

Event Loop Architecture:
    For each date in the generated history:
    1. Mark the portfolio (settling contracts that expired before today)
    2. On entry days, for each configured strategy:
       pick an underlying, build legs on its surface, optionally scale them
       to the sleeve risk budget, and execute each leg
    3. Mark the portfolio again; daily P&L = end value - previous end value
    4. Record each strategy's cumulative P&L

Usage:
    from cppi_backtester.engine.config import BacktestConfig
    from cppi_backtester.engine.backtest_engine import run_backtest

    result = run_backtest(BacktestConfig(start_date=date(2023, 1, 1),
                                         end_date=date(2023, 3, 31)))
    print(f"Total Return: {result.metrics.total_return:.2%}")
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from cppi_backtester.analytics.metrics import PerformanceMetrics, PortfolioMetrics
from cppi_backtester.engine.config import BacktestConfig, validate_backtest_config
from cppi_backtester.data.market_data import MarketDataset
from cppi_backtester.data.synthetic import SyntheticMarketGenerator
from cppi_backtester.engine.execution import ExecutionModel, TradeRecord
from cppi_backtester.engine.ledger import ClosedPosition, PositionLedger
from cppi_backtester.policy.cppi import CPPIConfig, CPPIEngine
from cppi_backtester.policy.sleeves import (
    ARCHETYPE_SLEEVES,
    DEFAULT_CADENCES,
    Cadence,
    SleeveEquities,
)
from cppi_backtester.structures.legs import (
    DEFAULT_ARCHETYPE_PARAMETERS,
    Leg,
    StrategyArchetype,
    build_legs,
    parse_archetype,
    scale_legs_to_budget,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Log a progress line every this many simulated days
PROGRESS_EVERY_DAYS = 30


# =============================================================================
# Exceptions
# =============================================================================

class BacktestError(Exception):
    """Base exception for backtest errors."""
    pass


class BacktestConfigError(BacktestError):
    """Exception raised for configuration errors."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message)


# =============================================================================
# Result Types
# =============================================================================

@dataclass(frozen=True)
class DailyPnL:
    """One day of portfolio P&L."""

    date: date
    pnl: float
    cum_pnl: float
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date.isoformat(),
            'pnl': self.pnl,
            'cum_pnl': self.cum_pnl,
            'value': self.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DailyPnL":
        return cls(
            date=date.fromisoformat(data['date']),
            pnl=float(data['pnl']),
            cum_pnl=float(data['cum_pnl']),
            value=float(data['value']),
        )


@dataclass(frozen=True)
class BacktestResult:
    """
    Everything a backtest run produces.

    Attributes:
        config: The configuration that was run
        trades: Executed fills in order
        daily_pnl: One entry per simulated day
        metrics: Portfolio metrics
        per_strategy_metrics: Metrics of each strategy's own P&L stream
        closed_positions: Realized lots, the source of per-trade P&L
    """

    config: BacktestConfig
    trades: Tuple[TradeRecord, ...] = ()
    daily_pnl: Tuple[DailyPnL, ...] = ()
    metrics: PortfolioMetrics = field(default_factory=PortfolioMetrics)
    per_strategy_metrics: Dict[str, PortfolioMetrics] = field(default_factory=dict)
    closed_positions: Tuple[ClosedPosition, ...] = ()

    @property
    def final_value(self) -> float:
        if not self.daily_pnl:
            return self.config.initial_capital
        return self.daily_pnl[-1].value

    def daily_pnl_frame(self) -> pd.DataFrame:
        """Daily P&L as a DataFrame indexed by date."""
        frame = pd.DataFrame([d.to_dict() for d in self.daily_pnl],
                             columns=['date', 'pnl', 'cum_pnl', 'value'])
        if not frame.empty:
            frame['date'] = pd.to_datetime(frame['date'])
            frame = frame.set_index('date')
        return frame

    def trades_frame(self) -> pd.DataFrame:
        return pd.DataFrame([t.to_dict() for t in self.trades])

    def top_positions(self, count: int = 5) -> List[ClosedPosition]:
        """The ``count`` most profitable closed positions."""
        return sorted(self.closed_positions, key=lambda p: p.realized_pnl, reverse=True)[:count]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'config': self.config.to_dict(),
            'trades': [t.to_dict() for t in self.trades],
            'daily_pnl': [d.to_dict() for d in self.daily_pnl],
            'metrics': self.metrics.to_dict(),
            'per_strategy_metrics': {
                name: m.to_dict() for name, m in self.per_strategy_metrics.items()
            },
            'closed_positions': [p.to_dict() for p in self.closed_positions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BacktestResult":
        return cls(
            config=BacktestConfig.from_dict(data['config']),
            trades=tuple(TradeRecord.from_dict(t) for t in data.get('trades', [])),
            daily_pnl=tuple(DailyPnL.from_dict(d) for d in data.get('daily_pnl', [])),
            metrics=PortfolioMetrics.from_dict(data.get('metrics', {})),
            per_strategy_metrics={
                name: PortfolioMetrics.from_dict(m)
                for name, m in data.get('per_strategy_metrics', {}).items()
            },
            closed_positions=tuple(
                ClosedPosition.from_dict(p) for p in data.get('closed_positions', [])
            ),
        )


# =============================================================================
# BacktestEngine Class
# =============================================================================

class BacktestEngine:
    """
    Day-by-day synthetic backtest.

    Attributes:
        config (BacktestConfig): Run configuration
        dataset (MarketDataset): Market history being traded
        ledger (PositionLedger): Portfolio state
        execution_model (ExecutionModel): Fill simulator
        cppi (Optional[CPPIEngine]): Sizing policy when cppi_sizing is on

    Example:
        >>> engine = BacktestEngine(BacktestConfig(end_date=date(2023, 1, 31)))
        >>> result = engine.run()
        >>> len(result.daily_pnl)
        31
    """

    __slots__ = (
        '_config',
        '_dataset',
        '_archetypes',
        '_ledger',
        '_execution_model',
        '_selection_rng',
        '_cppi',
        '_has_run',
    )

    def __init__(
        self,
        config: BacktestConfig,
        dataset: Optional[MarketDataset] = None,
        cppi_config: Optional[CPPIConfig] = None
    ) -> None:
        """
        Initialize the BacktestEngine.

        Args:
            config: Backtest configuration
            dataset: Market history to trade; generated from the config when None
            cppi_config: Policy used when ``config.cppi_sizing`` is set.
                Defaults to the standard policy on the run's capital with no
                weekly deposits.

        Raises:
            BacktestConfigError: If the configuration is invalid
        """
        errors = validate_backtest_config(config)
        if errors:
            raise BacktestConfigError(
                f"Backtest configuration invalid with {len(errors)} error(s)", errors=errors
            )
        self._config = config
        self._archetypes = [parse_archetype(s) for s in config.strategies]

        if dataset is None:
            generator = SyntheticMarketGenerator(
                seed=config.seed,
                risk_free_rate=config.risk_free_rate,
                expiry_offsets=config.expiry_offsets,
            )
            dataset = generator.generate(config.universe, config.start_date, config.end_date)
        self._dataset = dataset

        self._ledger = PositionLedger(
            config.initial_capital, config.risk_free_rate, model_marks=config.model_marks
        )
        self._execution_model = ExecutionModel(
            commission_per_contract=config.commission_per_contract,
            slippage_min_pct=config.slippage_min_pct,
            slippage_max_pct=config.slippage_max_pct,
            seed=config.execution_seed,
        )
        self._selection_rng = np.random.default_rng(config.seed)

        self._cppi: Optional[CPPIEngine] = None
        if config.cppi_sizing:
            self._cppi = CPPIEngine(
                cppi_config or CPPIConfig(
                    initial_capital=config.initial_capital, weekly_deposit=0.0
                ),
                start_date=config.start_date,
            )
        self._has_run = False

        logger.info(
            f"BacktestEngine initialized: strategies={[a.value for a in self._archetypes]}, "
            f"universe={list(config.universe)}, capital=${config.initial_capital:,.2f}, "
            f"cppi_sizing={config.cppi_sizing}"
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def config(self) -> BacktestConfig:
        return self._config

    @property
    def dataset(self) -> MarketDataset:
        return self._dataset

    @property
    def ledger(self) -> PositionLedger:
        return self._ledger

    @property
    def execution_model(self) -> ExecutionModel:
        return self._execution_model

    @property
    def cppi(self) -> Optional[CPPIEngine]:
        return self._cppi

    # =========================================================================
    # Main Run Method
    # =========================================================================

    def run(self) -> BacktestResult:
        """
        Run the full backtest.

        Returns:
            BacktestResult

        Raises:
            BacktestError: If the engine has already run
        """
        if self._has_run:
            raise BacktestError("BacktestEngine instances run once; create a new engine")
        self._has_run = True

        config = self._config
        ledger = self._ledger
        dates = [
            d for d in self._dataset.trading_dates()
            if config.start_date <= d <= config.end_date
        ]
        names = list(dict.fromkeys(a.value for a in self._archetypes))
        strategy_daily: Dict[str, List[float]] = {name: [] for name in names}
        strategy_prev: Dict[str, float] = {name: 0.0 for name in names}

        logger.info(f"Running backtest from {config.start_date} to {config.end_date} ({len(dates)} days)")

        daily: List[DailyPnL] = []
        prev_value = config.initial_capital
        cum_pnl = 0.0

        for index, day in enumerate(dates):
            start_value = ledger.mark_to_market(day, self._dataset)

            if index % config.entry_every_days == 0:
                for archetype in self._archetypes:
                    self._execute_strategy(archetype, day, start_value)

            end_value = ledger.mark_to_market(day, self._dataset)
            pnl = end_value - prev_value
            prev_value = end_value
            cum_pnl += pnl
            daily.append(DailyPnL(date=day, pnl=pnl, cum_pnl=cum_pnl, value=end_value))

            for name in names:
                cumulative = ledger.strategy_pnl(name, day, self._dataset)
                strategy_daily[name].append(cumulative - strategy_prev[name])
                strategy_prev[name] = cumulative

            if index % PROGRESS_EVERY_DAYS == 0:
                logger.info(
                    f"Progress: {day}, Portfolio Value: ${end_value:,.2f}, PnL: ${cum_pnl:,.2f}"
                )

        result = self._generate_results(daily, strategy_daily)
        logger.info(
            f"Backtest completed: Final Value=${result.final_value:,.2f}, "
            f"Return={result.metrics.total_return:.2%}, Trades={len(result.trades)}, "
            f"skipped buys={self._execution_model.num_skipped}"
        )
        return result

    # =========================================================================
    # Event Loop Components
    # =========================================================================

    def _execute_strategy(
        self,
        archetype: StrategyArchetype,
        day: date,
        portfolio_value: float
    ) -> List[TradeRecord]:
        """Build and execute one strategy's legs for ``day``."""
        universe = self._config.universe
        underlying = universe[int(self._selection_rng.integers(len(universe)))]

        surface = self._dataset.surface(underlying, day)
        if not surface:
            logger.debug(f"{archetype.value}: no surface for {underlying} on {day}, skipping")
            return []

        legs = build_legs(archetype, surface, DEFAULT_ARCHETYPE_PARAMETERS[archetype])
        if not legs:
            return []

        if self._cppi is not None:
            legs = self._size_with_cppi(archetype, legs, day, portfolio_value)

        fills = []
        for leg in legs:
            price = leg.limit_price
            if price is None:
                quote = surface.get(leg.symbol)
                if quote is None:
                    logger.debug(f"No quote for leg {leg.symbol} on {day}, skipping leg")
                    continue
                price = quote.price
            trade = self._execution_model.execute(
                self._ledger, leg.symbol, leg.side, leg.quantity, price, archetype.value, day
            )
            if trade is not None:
                fills.append(trade)
        return fills

    def _size_with_cppi(
        self,
        archetype: StrategyArchetype,
        legs: List[Leg],
        day: date,
        portfolio_value: float
    ) -> List[Leg]:
        """
        Scale legs to the archetype's sleeve risk budget.

        Sleeve equity is estimated as portfolio value x the sleeve's target
        weight. Monthly sleeves return no legs off their gate week.
        """
        sleeve = ARCHETYPE_SLEEVES[archetype]
        cadence = DEFAULT_CADENCES[sleeve]
        metrics = self._cppi.compute_metrics(SleeveEquities(collar=portfolio_value), day)

        if cadence is Cadence.MONTHLY and not self._cppi.is_cadence_week(metrics.weeks_since_start):
            logger.debug(f"{archetype.value}: {sleeve.value} sleeve off its monthly gate on {day}")
            return []

        sleeve_equity = portfolio_value * metrics.target_weights[sleeve]
        budget = self._cppi.compute_risk_budget(sleeve, sleeve_equity, cadence)
        return scale_legs_to_budget(legs, budget)

    # =========================================================================
    # Results
    # =========================================================================

    def _generate_results(
        self,
        daily: List[DailyPnL],
        strategy_daily: Dict[str, List[float]]
    ) -> BacktestResult:
        config = self._config
        ledger = self._ledger
        closed = ledger.closed_positions
        trades = ledger.trades

        metrics = PortfolioMetrics()
        if daily:
            metrics = PerformanceMetrics.calculate_all_metrics(
                daily_pnl=[d.pnl for d in daily],
                trade_pnl=[p.realized_pnl for p in closed],
                initial_capital=config.initial_capital,
                risk_free_rate=config.risk_free_rate,
                total_trades=len(trades),
            )

        per_strategy: Dict[str, PortfolioMetrics] = {}
        for name, pnl_series in strategy_daily.items():
            if not pnl_series:
                per_strategy[name] = PortfolioMetrics()
                continue
            per_strategy[name] = PerformanceMetrics.calculate_all_metrics(
                daily_pnl=pnl_series,
                trade_pnl=[p.realized_pnl for p in closed if p.strategy == name],
                initial_capital=config.initial_capital,
                risk_free_rate=config.risk_free_rate,
                total_trades=sum(1 for t in trades if t.strategy == name),
            )

        return BacktestResult(
            config=config,
            trades=trades,
            daily_pnl=tuple(daily),
            metrics=metrics,
            per_strategy_metrics=per_strategy,
            closed_positions=closed,
        )

    def __repr__(self) -> str:
        return (
            f"BacktestEngine(strategies={[a.value for a in self._archetypes]}, "
            f"{self._config.start_date} to {self._config.end_date}, "
            f"capital=${self._config.initial_capital:,.2f})"
        )


# =============================================================================
# Convenience Function
# =============================================================================

def run_backtest(
    config: Union[BacktestConfig, Mapping[str, Any], None] = None,
    dataset: Optional[MarketDataset] = None,
    cppi_config: Optional[CPPIConfig] = None
) -> BacktestResult:
    """
    Run one backtest.

    Args:
        config: BacktestConfig or a plain mapping of its fields (defaults when None)
        dataset: Optional pre-built market history
        cppi_config: Optional sizing policy for ``cppi_sizing`` runs

    Returns:
        BacktestResult with trades, daily_pnl, metrics and per_strategy_metrics
    """
    if config is None:
        config = BacktestConfig()
    elif not isinstance(config, BacktestConfig):
        try:
            config = BacktestConfig.from_dict(dict(config))
        except (TypeError, ValueError) as e:
            raise BacktestConfigError(f"Invalid backtest configuration: {e}", errors=[str(e)]) from e
    return BacktestEngine(config, dataset=dataset, cppi_config=cppi_config).run()


__all__ = [
    'PROGRESS_EVERY_DAYS',
    'BacktestError',
    'BacktestConfigError',
    'DailyPnL',
    'BacktestResult',
    'BacktestEngine',
    'run_backtest',
]
