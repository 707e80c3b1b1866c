"""
Strategy Leg Builders

This module turns an option surface into the order legs of one strategy
archetype. Builders are pure functions of ``(surface, parameters)``: they
never touch the ledger or the broker, so the live sleeve cycle and the
backtester share them unchanged.

Archetypes:

    Debit Call Vertical:
        - Buy the call whose |delta| is nearest target_delta
        - Sell the call struck exactly ``width`` above it
        - Use: Moderately bullish, defined risk

    Credit Put Spread:
        - Sell the put whose |delta| is nearest short_delta
        - Buy the put struck exactly ``width`` below it
        - Use: Collect premium, defined risk

    ATM Straddle:
        - Buy the call and the put whose strikes are nearest spot
        - Use: Long volatility around events

    Cash-Secured Put:
        - Sell one put with |delta| strictly inside (0.20, 0.30)

    Crash Hedge Put:
        - Buy the put whose |delta| is nearest target_delta (far OTM)

    Collar Position:
        - Sell the call nearest target_delta, buy the put nearest short_delta
        - Either leg may be absent if its class has no quotes

Selection:
    Nearest-by-metric selection keeps the first contract on ties, in surface
    order. A builder returns an empty list when a required contract is
    missing; that means "skip this period", never an error.

Usage:
    from cppi_backtester.structures.legs import StrategyArchetype, build_legs

    legs = build_legs(StrategyArchetype.DEBIT_CALL_VERTICAL, surface, params)
    for leg in legs:
        print(leg.side, leg.quantity, leg.symbol)
"""

import logging
import math
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from cppi_backtester.core.option import CONTRACT_MULTIPLIER, OptionQuote, OrderSide
from cppi_backtester.data.market_data import OptionSurface

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Strike matching tolerance for the fixed-width wing of a vertical
STRIKE_TOLERANCE = 1e-6

# |delta| band for cash-secured puts (exclusive bounds)
CSP_DELTA_MIN = 0.20
CSP_DELTA_MAX = 0.30

# Per-share price assumed for legs without a limit when sizing notional
UNPRICED_LEG_PRICE = 100.0


# =============================================================================
# Exceptions
# =============================================================================

class LegBuilderError(Exception):
    """Exception raised for an unknown archetype or invalid leg parameters."""
    pass


# =============================================================================
# Types
# =============================================================================

class StrategyArchetype(str, Enum):
    """Closed set of strategy shapes a sleeve can trade."""

    DEBIT_CALL_VERTICAL = "debit_call_vertical"
    CREDIT_PUT_SPREAD = "credit_put_spread"
    ATM_STRADDLE = "atm_straddle"
    CASH_SECURED_PUT = "cash_secured_put"
    CRASH_HEDGE_PUT = "crash_hedge_put"
    COLLAR_POSITION = "collar_position"

    @classmethod
    def _missing_(cls, value):
        aliases = {
            'crash_hedge': cls.CRASH_HEDGE_PUT,
            'collar': cls.COLLAR_POSITION,
            'straddle': cls.ATM_STRADDLE,
        }
        if isinstance(value, str):
            return aliases.get(value.strip().lower())
        return None


@dataclass(frozen=True)
class LegParameters:
    """
    Selection parameters shared by all builders.

    Attributes:
        target_delta: |delta| of the primary leg (long call, hedge put, collar call)
        short_delta: |delta| of the short put / collar put
        width: Strike distance of the vertical's second leg
        contracts: Quantity per leg
        dte_target: Preferred days to expiry
        dte_min: Minimum acceptable days to expiry
        dte_max: Maximum acceptable days to expiry
    """

    target_delta: float = 0.30
    short_delta: float = 0.20
    width: float = 5.0
    contracts: int = 1
    dte_target: int = 28
    dte_min: int = 21
    dte_max: int = 45


@dataclass(frozen=True)
class Leg:
    """One order leg: contract, side, quantity and optional limit price."""

    symbol: str
    side: OrderSide
    quantity: int
    limit_price: Optional[float] = None

    @property
    def notional(self) -> float:
        """Premium at risk for sizing: price x quantity x multiplier."""
        price = self.limit_price if self.limit_price is not None else UNPRICED_LEG_PRICE
        return price * self.quantity * CONTRACT_MULTIPLIER

    def with_quantity(self, quantity: int) -> "Leg":
        return replace(self, quantity=quantity)

    def to_dict(self) -> Dict:
        return {
            'symbol': self.symbol,
            'side': self.side.value,
            'quantity': self.quantity,
            'limit_price': self.limit_price,
        }


# Defaults used when a backtest names an archetype without parameters
DEFAULT_ARCHETYPE_PARAMETERS: Dict[StrategyArchetype, LegParameters] = {
    StrategyArchetype.DEBIT_CALL_VERTICAL: LegParameters(target_delta=0.30, width=5.0),
    StrategyArchetype.CREDIT_PUT_SPREAD: LegParameters(short_delta=0.22, width=5.0),
    StrategyArchetype.ATM_STRADDLE: LegParameters(),
    StrategyArchetype.CASH_SECURED_PUT: LegParameters(),
    StrategyArchetype.CRASH_HEDGE_PUT: LegParameters(target_delta=0.08),
    StrategyArchetype.COLLAR_POSITION: LegParameters(target_delta=0.30, short_delta=0.20),
}


# =============================================================================
# Selection Helpers
# =============================================================================

def _nearest(
    quotes: Iterable[OptionQuote],
    metric: Callable[[OptionQuote], float],
    target: float
) -> Optional[OptionQuote]:
    best = None
    best_diff = math.inf
    for quote in quotes:
        diff = abs(metric(quote) - target)
        if diff < best_diff:
            best_diff = diff
            best = quote
    return best


def _with_delta(quotes: Sequence[OptionQuote]) -> List[OptionQuote]:
    return [q for q in quotes if q.delta is not None]


def _abs_delta(quote: OptionQuote) -> float:
    return abs(quote.delta)


def _at_strike(
    quotes: Sequence[OptionQuote],
    strike: float,
    expiry: date
) -> Optional[OptionQuote]:
    for quote in quotes:
        if quote.expiry == expiry and abs(quote.strike - strike) < STRIKE_TOLERANCE:
            return quote
    return None


def select_expiry(surface: OptionSurface, parameters: LegParameters) -> Optional[date]:
    """
    Pick the expiry whose DTE lies in [dte_min, dte_max] and is nearest
    dte_target; the earlier expiry wins a tie. None if nothing qualifies.
    """
    candidates = [
        expiry for expiry in surface.expiries()
        if parameters.dte_min <= (expiry - surface.date).days <= parameters.dte_max
    ]
    if not candidates:
        return None
    return min(
        candidates,
        key=lambda e: (abs((e - surface.date).days - parameters.dte_target), e),
    )


# =============================================================================
# Builders
# =============================================================================

def build_debit_call_vertical(surface: OptionSurface, parameters: LegParameters) -> List[Leg]:
    calls = _with_delta(surface.calls())
    long_call = _nearest(calls, _abs_delta, parameters.target_delta)
    if long_call is None:
        return []
    short_call = _at_strike(surface.calls(), long_call.strike + parameters.width, long_call.expiry)
    if short_call is None:
        return []
    return [
        Leg(long_call.symbol, OrderSide.BUY, parameters.contracts, long_call.price),
        Leg(short_call.symbol, OrderSide.SELL, parameters.contracts, short_call.price),
    ]


def build_credit_put_spread(surface: OptionSurface, parameters: LegParameters) -> List[Leg]:
    puts = _with_delta(surface.puts())
    short_put = _nearest(puts, _abs_delta, parameters.short_delta)
    if short_put is None:
        return []
    long_put = _at_strike(surface.puts(), short_put.strike - parameters.width, short_put.expiry)
    if long_put is None:
        return []
    return [
        Leg(short_put.symbol, OrderSide.SELL, parameters.contracts, short_put.price),
        Leg(long_put.symbol, OrderSide.BUY, parameters.contracts, long_put.price),
    ]


def build_atm_straddle(surface: OptionSurface, parameters: LegParameters) -> List[Leg]:
    if surface.spot is None:
        return []
    spot = surface.spot
    call = _nearest(surface.calls(), lambda q: abs(q.strike - spot), 0.0)
    put = _nearest(surface.puts(), lambda q: abs(q.strike - spot), 0.0)
    if call is None or put is None:
        return []
    return [
        Leg(call.symbol, OrderSide.BUY, parameters.contracts, call.price),
        Leg(put.symbol, OrderSide.BUY, parameters.contracts, put.price),
    ]


def build_cash_secured_put(surface: OptionSurface, parameters: LegParameters) -> List[Leg]:
    band = [
        q for q in _with_delta(surface.puts())
        if CSP_DELTA_MIN < abs(q.delta) < CSP_DELTA_MAX
    ]
    put = _nearest(band, _abs_delta, (CSP_DELTA_MIN + CSP_DELTA_MAX) / 2)
    if put is None:
        return []
    return [Leg(put.symbol, OrderSide.SELL, parameters.contracts, put.price)]


def build_crash_hedge_put(surface: OptionSurface, parameters: LegParameters) -> List[Leg]:
    put = _nearest(_with_delta(surface.puts()), _abs_delta, parameters.target_delta)
    if put is None:
        return []
    return [Leg(put.symbol, OrderSide.BUY, parameters.contracts, put.price)]


def build_collar_position(surface: OptionSurface, parameters: LegParameters) -> List[Leg]:
    legs = []
    short_call = _nearest(_with_delta(surface.calls()), _abs_delta, parameters.target_delta)
    if short_call is not None:
        legs.append(Leg(short_call.symbol, OrderSide.SELL, parameters.contracts, short_call.price))
    long_put = _nearest(_with_delta(surface.puts()), _abs_delta, parameters.short_delta)
    if long_put is not None:
        legs.append(Leg(long_put.symbol, OrderSide.BUY, parameters.contracts, long_put.price))
    return legs


LEG_BUILDERS: Dict[StrategyArchetype, Callable[[OptionSurface, LegParameters], List[Leg]]] = {
    StrategyArchetype.DEBIT_CALL_VERTICAL: build_debit_call_vertical,
    StrategyArchetype.CREDIT_PUT_SPREAD: build_credit_put_spread,
    StrategyArchetype.ATM_STRADDLE: build_atm_straddle,
    StrategyArchetype.CASH_SECURED_PUT: build_cash_secured_put,
    StrategyArchetype.CRASH_HEDGE_PUT: build_crash_hedge_put,
    StrategyArchetype.COLLAR_POSITION: build_collar_position,
}


def parse_archetype(value: Union[str, StrategyArchetype]) -> StrategyArchetype:
    """
    Resolve an archetype name (aliases accepted).

    Raises:
        LegBuilderError: If the name is not a known archetype
    """
    try:
        return StrategyArchetype(value)
    except ValueError:
        raise LegBuilderError(
            f"Unknown strategy archetype '{value}'. "
            f"Valid archetypes: {[a.value for a in StrategyArchetype]}"
        ) from None


def build_legs(
    archetype: Union[str, StrategyArchetype],
    surface: OptionSurface,
    parameters: Optional[LegParameters] = None
) -> List[Leg]:
    """
    Build the legs of ``archetype`` on the best expiry of ``surface``.

    The surface is first narrowed to the expiry chosen by ``select_expiry``;
    an empty list is returned when no expiry is in range or a required
    contract is missing.

    Args:
        archetype: Archetype or its name
        surface: Option surface for one underlying and date
        parameters: Selection parameters (archetype defaults when None)

    Returns:
        List of legs, possibly empty

    Raises:
        LegBuilderError: If the archetype is unknown
    """
    kind = parse_archetype(archetype)
    params = parameters or DEFAULT_ARCHETYPE_PARAMETERS[kind]

    expiry = select_expiry(surface, params)
    if expiry is None:
        logger.debug(
            f"{kind.value}: no expiry within {params.dte_min}-{params.dte_max} DTE "
            f"for {surface.underlying} on {surface.date}"
        )
        return []

    legs = LEG_BUILDERS[kind](surface.for_expiry(expiry), params)
    if not legs:
        logger.debug(f"{kind.value}: no matching contracts for {surface.underlying} on {surface.date}")
    return legs


def scale_legs_to_budget(legs: Sequence[Leg], budget: float) -> List[Leg]:
    """
    Shrink leg quantities so total notional fits ``budget``.

    When the legs' combined notional exceeds the budget every quantity is
    multiplied by budget / notional and floored, with a minimum of one
    contract. Legs within budget are returned unchanged.
    """
    total_notional = sum(leg.notional for leg in legs)
    if total_notional <= budget or total_notional <= 0:
        return list(legs)

    scale = budget / total_notional
    logger.debug(f"Scaling position size by {scale:.2f} to fit risk budget ${budget:,.2f}")
    return [leg.with_quantity(max(1, int(math.floor(leg.quantity * scale)))) for leg in legs]


__all__ = [
    'LegBuilderError',
    'StrategyArchetype',
    'LegParameters',
    'Leg',
    'DEFAULT_ARCHETYPE_PARAMETERS',
    'LEG_BUILDERS',
    'select_expiry',
    'build_debit_call_vertical',
    'build_credit_put_spread',
    'build_atm_straddle',
    'build_cash_secured_put',
    'build_crash_hedge_put',
    'build_collar_position',
    'parse_archetype',
    'build_legs',
    'scale_legs_to_budget',
]
