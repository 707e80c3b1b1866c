"""
Live Sleeve Cycle

One run of the CPPI bot against a broker gateway:

    1. compute policy metrics; if a week has passed since the last update,
       route the weekly deposit into the sleeves (no-sell rule) and recompute
    2. if the drift band is breached and the rebalance interval has elapsed,
       log current vs target weights and advance the rebalance week
    3. for every enabled strategy: resolve its sleeve, honor the monthly
       cadence gate, size a risk budget, build legs from broker quotes, scale
       them to the budget and submit each leg

The runner holds no portfolio state of its own. ``run_cycle`` takes a
``PortfolioState`` and returns the next one, so callers decide where state
lives (see ``load_portfolio_state`` / ``save_portfolio_state``). The command
line keeps it in ``<data_dir>/portfolio_state.json`` and appends accepted
orders to ``<data_dir>/trades_<YYYY-MM-DD>.json``.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from cppi_backtester.cli.config_schema import BotConfig, SleeveStrategyConfig
from cppi_backtester.connectivity.broker import BrokerGateway
from cppi_backtester.core.option import OrderSide
from cppi_backtester.data.market_data import OptionSurface
from cppi_backtester.policy.cppi import CPPIEngine, CPPIMetrics
from cppi_backtester.policy.sleeves import Cadence, Sleeve, SleeveEquities
from cppi_backtester.structures.legs import Leg, build_legs, scale_legs_to_budget

# Configure module logger
logger = logging.getLogger(__name__)

DEPOSIT_INTERVAL_DAYS = 7

STATE_FILE = 'portfolio_state.json'

# Starting equities used when no saved state exists
DEMO_SLEEVE_EQUITIES = SleeveEquities(
    debit=2000.0, credit=1500.0, straddle=1000.0, collar=4000.0, hedge=500.0
)


# =============================================================================
# State
# =============================================================================

@dataclass(frozen=True)
class PortfolioState:
    """Sleeve equities plus the bookkeeping the cycle carries forward."""

    sleeve_equities: SleeveEquities
    last_rebalance_week: int = 0
    last_update: Optional[date] = None
    start_date: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sleeve_equities': self.sleeve_equities.to_dict(),
            'last_rebalance_week': self.last_rebalance_week,
            'last_update': self.last_update.isoformat() if self.last_update else None,
            'start_date': self.start_date.isoformat() if self.start_date else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PortfolioState":
        return cls(
            sleeve_equities=SleeveEquities.from_dict(data['sleeve_equities']),
            last_rebalance_week=int(data.get('last_rebalance_week', 0)),
            last_update=_parse_day(data.get('last_update')),
            start_date=_parse_day(data.get('start_date')),
        )


def _parse_day(value: Any) -> Optional[date]:
    if isinstance(value, str):
        return datetime.fromisoformat(value).date()
    return value


@dataclass(frozen=True)
class PlacedOrder:
    """A leg the broker accepted during a cycle."""

    strategy_id: str
    sleeve: Sleeve
    order_id: str
    symbol: str
    side: OrderSide
    quantity: int
    price: Optional[float]
    risk_budget: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'strategy_id': self.strategy_id,
            'sleeve': self.sleeve.value,
            'order_id': self.order_id,
            'symbol': self.symbol,
            'side': self.side.value,
            'quantity': self.quantity,
            'price': self.price,
            'risk_budget': self.risk_budget,
        }


@dataclass(frozen=True)
class CycleResult:
    """Outcome of one cycle."""

    state: PortfolioState
    metrics: CPPIMetrics
    deposit_allocated: bool = False
    rebalanced: bool = False
    orders: Tuple[PlacedOrder, ...] = ()
    skipped: Tuple[str, ...] = field(default_factory=tuple)


def load_portfolio_state(path: Union[str, Path]) -> Optional[PortfolioState]:
    """Read a saved state, or None when the file doesn't exist."""
    path = Path(path)
    if not path.exists():
        return None
    with open(path) as f:
        state = PortfolioState.from_dict(json.load(f))
    logger.info(f"Loaded portfolio state from {path}")
    return state


def save_portfolio_state(state: PortfolioState, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(state.to_dict(), f, indent=2)
    logger.info(f"Saved portfolio state to {path}")
    return path


def append_trade_log(
    orders: Sequence[PlacedOrder],
    data_dir: Union[str, Path],
    day: date,
    timestamp: Optional[datetime] = None
) -> Path:
    """
    Append accepted orders to the day's trade log.

    The log is a JSON list in ``<data_dir>/trades_<YYYY-MM-DD>.json``; each
    entry is the order's fields plus the time it was recorded.

    Returns:
        Path of the trade log
    """
    path = Path(data_dir) / f"trades_{day.isoformat()}.json"
    path.parent.mkdir(parents=True, exist_ok=True)

    entries: List[Dict[str, Any]] = []
    if path.exists():
        with open(path) as f:
            entries = json.load(f)

    stamp = (timestamp or datetime.now()).isoformat()
    entries.extend(dict(order.to_dict(), timestamp=stamp) for order in orders)

    with open(path, 'w') as f:
        json.dump(entries, f, indent=2)
    logger.info(f"Logged {len(orders)} orders to {path}")
    return path


# =============================================================================
# SleeveRunner Class
# =============================================================================

class SleeveRunner:
    """
    Drives one CPPI cycle through a broker gateway.

    Attributes:
        config (BotConfig): Resolved configuration
        broker (BrokerGateway): Quote source and order sink
        engine (CPPIEngine): Policy engine

    Example:
        >>> runner = SleeveRunner(config, DryRunBroker(DatasetBroker(dataset, today)),
        ...                       start_date=date(2023, 1, 2))
        >>> result = runner.run_cycle(PortfolioState(DEMO_SLEEVE_EQUITIES, 0, today), today)
    """

    def __init__(
        self,
        config: BotConfig,
        broker: BrokerGateway,
        start_date: Optional[date] = None,
        engine: Optional[CPPIEngine] = None
    ) -> None:
        self.config = config
        self.broker = broker
        self.engine = engine or CPPIEngine(config.cppi, start_date=start_date)

    def run_cycle(self, state: PortfolioState, today: date) -> CycleResult:
        """
        Run one cycle.

        Returns:
            CycleResult with the next state and every order placed

        Raises:
            BrokerError: Propagated from the gateway
        """
        engine = self.engine
        equities = state.sleeve_equities
        last_rebalance_week = state.last_rebalance_week

        metrics = engine.compute_metrics(equities, today, last_rebalance_week)
        logger.info(
            f"CPPI: invested ${metrics.invested_to_date:,.2f}, floor ${metrics.floor:,.2f}, "
            f"cushion ${metrics.cushion:,.2f}, risky weight {metrics.risky_weight:.1%}, "
            f"needs rebalance {metrics.needs_rebalance}"
        )

        deposit_allocated = False
        if state.last_update is None or (today - state.last_update).days >= DEPOSIT_INTERVAL_DAYS:
            allocation = engine.compute_contributions_allocation(metrics.target_weights, equities)
            logger.info(
                f"Allocating weekly deposit of ${engine.config.weekly_deposit:,.2f}: "
                + ", ".join(f"{s.value} ${allocation[s]:,.2f}" for s in Sleeve)
            )
            equities = equities.add(allocation)
            metrics = engine.compute_metrics(equities, today, last_rebalance_week)
            deposit_allocated = True

        rebalanced = False
        if metrics.needs_rebalance:
            logger.info(
                "Drift-band rebalance, current vs target: "
                + ", ".join(
                    f"{s.value} {metrics.current_weights[s]:.1%} vs {metrics.target_weights[s]:.1%}"
                    for s in Sleeve
                )
            )
            last_rebalance_week = engine.mark_rebalanced(metrics)
            rebalanced = True

        orders: List[PlacedOrder] = []
        skipped: List[str] = []
        symbols = self.config.universe.symbols
        for strategy in self.config.enabled_strategies:
            if not symbols:
                skipped.append(strategy.id)
                logger.warning("Universe is empty; no strategy can trade")
                continue
            placed = self._run_strategy(strategy, symbols[0], equities, metrics, today)
            if placed is None:
                skipped.append(strategy.id)
            else:
                orders.extend(placed)

        next_state = PortfolioState(
            sleeve_equities=equities,
            last_rebalance_week=last_rebalance_week,
            last_update=today,
            start_date=state.start_date or engine.start_date,
        )
        return CycleResult(
            state=next_state,
            metrics=metrics,
            deposit_allocated=deposit_allocated,
            rebalanced=rebalanced,
            orders=tuple(orders),
            skipped=tuple(skipped),
        )

    def _run_strategy(
        self,
        strategy: SleeveStrategyConfig,
        underlying: str,
        equities: SleeveEquities,
        metrics: CPPIMetrics,
        today: date
    ) -> Optional[List[PlacedOrder]]:
        """Place one strategy's legs; None when the strategy is skipped."""
        sleeve = strategy.resolved_sleeve
        if sleeve is None:
            logger.warning(f"Unknown sleeve for strategy {strategy.id}, skipping")
            return None

        cadence = strategy.resolved_cadence
        if cadence is Cadence.MONTHLY and not self.engine.is_cadence_week(metrics.weeks_since_start):
            logger.info(f"{strategy.id}: monthly cadence gate, skipping this week")
            return None

        budget = self.engine.compute_risk_budget(sleeve, equities[sleeve], cadence)
        weekly_cap = strategy.risk_limits.max_weekly_spend
        if budget > weekly_cap:
            logger.info(f"{strategy.id}: risk budget ${budget:,.2f} capped at weekly spend ${weekly_cap:,.2f}")
            budget = weekly_cap
        logger.info(
            f"{strategy.id}: sleeve {sleeve.value}, equity ${equities[sleeve]:,.2f}, "
            f"risk budget ${budget:,.2f}"
        )

        params = strategy.parameters
        account = self.broker.resolve_account(strategy.account)
        quotes = self.broker.get_option_quotes(underlying, params.dte_min, params.dte_max)
        spot = self.broker.get_spot(underlying)
        surface = OptionSurface(underlying, today, spot, tuple(quotes))

        legs: List[Leg] = []
        for component in strategy.components:
            built = build_legs(component, surface, params)
            if built:
                logger.debug(f"{strategy.id}: built {len(built)} legs for {component.value}")
            legs.extend(built)

        if not legs:
            logger.info(f"{strategy.id}: no suitable legs for {underlying}")
            return None

        max_trades = strategy.risk_limits.max_daily_trades
        if len(legs) > max_trades:
            logger.warning(
                f"{strategy.id}: {len(legs)} legs exceed max_daily_trades={max_trades}, skipping"
            )
            return None

        max_size = strategy.risk_limits.max_position_size
        legs = [
            leg.with_quantity(min(leg.quantity, max_size))
            for leg in scale_legs_to_budget(legs, budget)
        ]

        placed = []
        for leg in legs:
            order_id = self.broker.submit_leg(
                leg.symbol, leg.side, leg.quantity, leg.limit_price, account
            )
            placed.append(PlacedOrder(
                strategy_id=strategy.id,
                sleeve=sleeve,
                order_id=order_id,
                symbol=leg.symbol,
                side=leg.side,
                quantity=leg.quantity,
                price=leg.limit_price,
                risk_budget=budget,
            ))
        return placed


__all__ = [
    'DEPOSIT_INTERVAL_DAYS',
    'DEMO_SLEEVE_EQUITIES',
    'STATE_FILE',
    'PortfolioState',
    'PlacedOrder',
    'CycleResult',
    'load_portfolio_state',
    'save_portfolio_state',
    'append_trade_log',
    'SleeveRunner',
]
