"""
PositionLedger Class for Options Backtesting

The ledger is the single source of truth for portfolio state during a
backtest: cash, the signed contract quantity held in each option symbol,
the append-only trade history, and per-strategy lots used for trade-level
P&L attribution.

Valuation (mark_to_market):
    value = cash + sum(quantity x 100 x mark)

    mark is resolved per symbol, in order:
        1. The symbol's quote on the valuation date
        2. Strictly after expiry: intrinsic value at the underlying's price on
           the expiry date. The position is settled: cash is credited with
           intrinsic x quantity x 100 and the position is removed.
        3. Not yet expired but unquoted, with ``model_marks`` on (the default):
           Black-Scholes model price from the underlying's price and implied
           volatility on the valuation date (intrinsic value on the expiry
           date itself)
        4. Otherwise the contribution is zero (data gap, logged at DEBUG)

    Step 3 goes beyond quote-or-zero marking on purpose. Each synthetic
    surface lists expiries at fixed offsets from its own date, so a contract
    bought on one day is usually unquoted on the next. ``model_marks=False``
    gives plain quote-or-zero marking for unexpired contracts.

Lots:
    Every (symbol, strategy) pair holds at most one open lot accumulating the
    strategy's net quantity and net cash flow in that symbol. A lot closes
    when its quantity returns to zero through trading or when it is settled
    at expiry; its realized P&L becomes one entry of the per-trade P&L
    series. Nothing else feeds that series.

Usage:
    ledger = PositionLedger(initial_cash=10_000.0)
    execution.execute(ledger, symbol, OrderSide.BUY, 1, 2.15, 'crash_hedge_put', today)
    value = ledger.mark_to_market(today, dataset)
    pnl = [p.realized_pnl for p in ledger.closed_positions]
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from cppi_backtester.core.option import (
    CONTRACT_MULTIPLIER,
    OptionSymbolError,
    decode_symbol,
)
from cppi_backtester.core.pricing import (
    DAYS_PER_YEAR,
    DEFAULT_RISK_FREE_RATE,
    black_scholes_price,
    intrinsic_value,
)
from cppi_backtester.data.market_data import MarketDataset
from cppi_backtester.engine.execution import TradeRecord

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class LedgerError(Exception):
    """Exception raised for invalid ledger operations."""
    pass


# =============================================================================
# Lot Records
# =============================================================================

class Lot:
    """
    Open holding of one strategy in one symbol.

    Attributes:
        symbol: Option symbol
        strategy: Owning strategy
        opened: Date of the first fill
        quantity: Net signed contracts
        net_cash: Net cash flow of all fills (premium and commission)
        max_quantity: Largest absolute quantity held
    """

    __slots__ = (
        'symbol',
        'strategy',
        'opened',
        'quantity',
        'net_cash',
        'max_quantity',
    )

    def __init__(self, symbol: str, strategy: str, opened: date) -> None:
        self.symbol = symbol
        self.strategy = strategy
        self.opened = opened
        self.quantity = 0
        self.net_cash = 0.0
        self.max_quantity = 0

    def add(self, signed_quantity: int, cash_flow: float) -> None:
        self.quantity += signed_quantity
        self.net_cash += cash_flow
        self.max_quantity = max(self.max_quantity, abs(self.quantity))

    def __repr__(self) -> str:
        return (
            f"Lot({self.symbol}, strategy={self.strategy!r}, qty={self.quantity}, "
            f"net_cash={self.net_cash:.2f})"
        )


@dataclass(frozen=True)
class ClosedPosition:
    """Realized outcome of one lot."""

    symbol: str
    strategy: str
    opened: date
    closed: date
    quantity: int
    realized_pnl: float
    reason: str  # 'closed' or 'expired'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'strategy': self.strategy,
            'opened': self.opened.isoformat(),
            'closed': self.closed.isoformat(),
            'quantity': self.quantity,
            'realized_pnl': self.realized_pnl,
            'reason': self.reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClosedPosition":
        return cls(
            symbol=data['symbol'],
            strategy=data['strategy'],
            opened=date.fromisoformat(data['opened']),
            closed=date.fromisoformat(data['closed']),
            quantity=int(data['quantity']),
            realized_pnl=float(data['realized_pnl']),
            reason=data['reason'],
        )


# =============================================================================
# PositionLedger Class
# =============================================================================

class PositionLedger:
    """
    Cash, positions, trades and lots of a simulated portfolio.

    Example:
        >>> ledger = PositionLedger(10_000.0)
        >>> ledger.cash
        10000.0
        >>> ledger.positions
        {}
    """

    __slots__ = (
        '_initial_cash',
        '_cash',
        '_positions',
        '_trades',
        '_lots',
        '_closed_positions',
        '_strategy_cash',
        '_risk_free_rate',
        '_model_marks',
    )

    def __init__(
        self,
        initial_cash: float,
        risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
        model_marks: bool = True
    ) -> None:
        if initial_cash < 0:
            raise LedgerError(f"initial_cash must be non-negative, got {initial_cash}")

        self._initial_cash = float(initial_cash)
        self._cash = float(initial_cash)
        self._positions: Dict[str, int] = {}
        self._trades: List[TradeRecord] = []
        self._lots: Dict[Tuple[str, str], Lot] = {}
        self._closed_positions: List[ClosedPosition] = []
        # Net cash flow per strategy across all of its fills and settlements
        self._strategy_cash: Dict[str, float] = {}
        self._risk_free_rate = risk_free_rate
        self._model_marks = model_marks

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def initial_cash(self) -> float:
        return self._initial_cash

    @property
    def cash(self) -> float:
        return self._cash

    @property
    def positions(self) -> Dict[str, int]:
        """Copy of the symbol -> signed quantity map."""
        return dict(self._positions)

    @property
    def trades(self) -> Tuple[TradeRecord, ...]:
        return tuple(self._trades)

    @property
    def closed_positions(self) -> Tuple[ClosedPosition, ...]:
        return tuple(self._closed_positions)

    @property
    def open_lots(self) -> List[Lot]:
        return list(self._lots.values())

    @property
    def strategies(self) -> List[str]:
        """Strategies that have traded, in first-trade order."""
        return list(self._strategy_cash)

    def quantity(self, symbol: str) -> int:
        return self._positions.get(symbol, 0)

    # =========================================================================
    # State transitions
    # =========================================================================

    def apply_trade(self, trade: TradeRecord) -> None:
        """
        Book a fill: position, cash, lot and trade history.

        Raises:
            LedgerError: If the trade is not a positive-quantity fill
        """
        if trade.quantity <= 0:
            raise LedgerError(f"Trade {trade.id} has non-positive quantity {trade.quantity}")

        signed = trade.side.sign * trade.quantity
        new_quantity = self._positions.get(trade.symbol, 0) + signed
        if new_quantity == 0:
            self._positions.pop(trade.symbol, None)
        else:
            self._positions[trade.symbol] = new_quantity

        self._cash += trade.cash_flow
        self._strategy_cash[trade.strategy] = (
            self._strategy_cash.get(trade.strategy, 0.0) + trade.cash_flow
        )
        self._trades.append(trade)

        key = (trade.symbol, trade.strategy)
        lot = self._lots.get(key)
        if lot is None:
            lot = Lot(trade.symbol, trade.strategy, trade.date)
            self._lots[key] = lot
        lot.add(signed, trade.cash_flow)
        if lot.quantity == 0:
            self._close_lot(key, trade.date, 0.0, 'closed')

        logger.debug(f"Booked {trade!r}; cash now ${self._cash:,.2f}")

    def _close_lot(self, key: Tuple[str, str], on: date, settlement: float, reason: str) -> None:
        lot = self._lots.pop(key)
        self._closed_positions.append(ClosedPosition(
            symbol=lot.symbol,
            strategy=lot.strategy,
            opened=lot.opened,
            closed=on,
            quantity=lot.max_quantity,
            realized_pnl=lot.net_cash + settlement,
            reason=reason,
        ))

    def settle_expired(self, on: date, dataset: MarketDataset) -> float:
        """
        Settle every contract whose expiry is strictly before ``on``.

        Each expired lot is credited with intrinsic value at the expiry-date
        price of its underlying; a missing expiry price settles at zero.
        Expired symbols are removed from the position map.

        Returns:
            Total cash credited (negative for short in-the-money contracts)
        """
        symbols = set(self._positions) | {symbol for symbol, _ in self._lots}
        credited = 0.0

        for symbol in sorted(symbols):
            terms = self._decode(symbol)
            if terms is None or on <= terms.expiry:
                continue

            point = dataset.price(terms.underlying, terms.expiry)
            if point is None:
                logger.debug(f"No price for {terms.underlying} on {terms.expiry}; {symbol} expires at zero")
                payoff = 0.0
            else:
                payoff = intrinsic_value(point.price, terms.strike, terms.option_type.pricing_name)

            for key in [k for k in self._lots if k[0] == symbol]:
                lot = self._lots[key]
                settlement = payoff * lot.quantity * CONTRACT_MULTIPLIER
                self._cash += settlement
                self._strategy_cash[lot.strategy] = (
                    self._strategy_cash.get(lot.strategy, 0.0) + settlement
                )
                credited += settlement
                self._close_lot(key, on, settlement, 'expired')

            self._positions.pop(symbol, None)

        return credited

    # =========================================================================
    # Valuation
    # =========================================================================

    def _decode(self, symbol: str):
        try:
            return decode_symbol(symbol)
        except OptionSymbolError:
            logger.warning(f"Cannot decode position symbol {symbol!r}; valued at zero")
            return None

    def mark_price(self, symbol: str, on: date, dataset: MarketDataset) -> Optional[float]:
        """
        Per-share mark of an unexpired contract, or None on a data gap.
        """
        quote = dataset.quote(symbol, on)
        if quote is not None:
            return quote.price
        if not self._model_marks:
            logger.debug(f"No quote for {symbol} on {on}; contributes zero")
            return None

        terms = self._decode(symbol)
        if terms is None:
            return None

        point = dataset.price(terms.underlying, on)
        if point is None:
            logger.debug(f"No quote or price for {symbol} on {on}; contributes zero")
            return None

        option_type = terms.option_type.pricing_name
        if on >= terms.expiry:
            return intrinsic_value(point.price, terms.strike, option_type)

        time_to_expiry = (terms.expiry - on).days / DAYS_PER_YEAR
        return black_scholes_price(
            point.price, terms.strike, time_to_expiry,
            self._risk_free_rate, point.implied_vol, option_type,
        )

    def mark_to_market(self, on: date, dataset: MarketDataset) -> float:
        """
        Settle expiries, then value the portfolio on ``on``.

        Returns:
            cash + sum of quantity x 100 x mark over open positions
        """
        self.settle_expired(on, dataset)

        value = self._cash
        for symbol, quantity in self._positions.items():
            price = self.mark_price(symbol, on, dataset)
            if price is not None:
                value += price * quantity * CONTRACT_MULTIPLIER
        return value

    def strategy_pnl(self, strategy: str, on: date, dataset: MarketDataset) -> float:
        """
        Cumulative P&L of one strategy: its net cash flows plus the marks of
        its open lots. Call after ``mark_to_market`` for the same date.
        """
        pnl = self._strategy_cash.get(strategy, 0.0)
        for (symbol, owner), lot in self._lots.items():
            if owner != strategy:
                continue
            price = self.mark_price(symbol, on, dataset)
            if price is not None:
                pnl += price * lot.quantity * CONTRACT_MULTIPLIER
        return pnl

    def __repr__(self) -> str:
        return (
            f"PositionLedger(cash=${self._cash:,.2f}, positions={len(self._positions)}, "
            f"trades={len(self._trades)}, open_lots={len(self._lots)})"
        )


__all__ = [
    'LedgerError',
    'Lot',
    'ClosedPosition',
    'PositionLedger',
]
