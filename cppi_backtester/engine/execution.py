"""
ExecutionModel Class for Options Backtesting

This module simulates the fill of a single option order against the
position ledger. It models adverse slippage and per-contract commissions and
enforces the cash constraint on purchases.

Key Features:
    - Seeded random slippage, uniform in [0.5%, 2%] of the quoted premium
    - Slippage always works against the trader (buys pay up, sells receive less)
    - Executed price floored at the $0.01 minimum tick
    - Commission = per-contract rate x quantity
    - Unaffordable buys are skipped silently (no trade, no state change)
    - Deterministic, sequential trade identifiers (T000001, T000002, ...)

Financial Correctness:
    gross = executed_price x quantity x 100
    BUY:  requires gross + commission <= cash; cash -= gross + commission
    SELL: cash += gross - commission (short premium is not margined)

Usage:
    from cppi_backtester.engine.execution import ExecutionModel

    execution = ExecutionModel(commission_per_contract=1.50, seed=7)
    trade = execution.execute(ledger, symbol, OrderSide.BUY, 2, 3.40,
                              strategy='debit_call_vertical', on=today)
    if trade is None:
        print("skipped: insufficient cash")
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional

import numpy as np

from cppi_backtester.core.option import CONTRACT_MULTIPLIER, OrderSide

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_COMMISSION_PER_CONTRACT = 1.50  # $1.50 per contract

# Slippage band as a fraction of the quoted premium
DEFAULT_SLIPPAGE_MIN_PCT = 0.005
DEFAULT_SLIPPAGE_MAX_PCT = 0.02

DEFAULT_EXECUTION_SEED = 123456789

# Minimum tick size for options
MINIMUM_TICK_SIZE = 0.01


# =============================================================================
# Exceptions
# =============================================================================

class ExecutionError(Exception):
    """Base exception for execution errors."""
    pass


class ExecutionConfigError(ExecutionError):
    """Exception raised for configuration errors."""
    pass


# =============================================================================
# Trade Record
# =============================================================================

@dataclass(frozen=True)
class TradeRecord:
    """
    Immutable record of one executed fill.

    Attributes:
        id: Sequential trade identifier
        date: Execution date
        symbol: Option symbol
        side: BUY or SELL
        quantity: Contracts filled (positive)
        price: Executed price per share, slippage included
        commission: Commission charged
        strategy: Strategy that placed the order
    """

    id: str
    date: date
    symbol: str
    side: OrderSide
    quantity: int
    price: float
    commission: float
    strategy: str

    @property
    def gross(self) -> float:
        """Premium exchanged, before commission."""
        return self.price * self.quantity * CONTRACT_MULTIPLIER

    @property
    def cash_flow(self) -> float:
        """Signed change in cash caused by this trade."""
        if self.side is OrderSide.BUY:
            return -(self.gross + self.commission)
        return self.gross - self.commission

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'date': self.date.isoformat(),
            'symbol': self.symbol,
            'side': self.side.value,
            'quantity': self.quantity,
            'price': self.price,
            'commission': self.commission,
            'strategy': self.strategy,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradeRecord":
        trade_date = data['date']
        return cls(
            id=str(data['id']),
            date=date.fromisoformat(trade_date) if isinstance(trade_date, str) else trade_date,
            symbol=data['symbol'],
            side=OrderSide(data['side']),
            quantity=int(data['quantity']),
            price=float(data['price']),
            commission=float(data['commission']),
            strategy=data['strategy'],
        )

    def __repr__(self) -> str:
        return (
            f"TradeRecord({self.id} {self.date} {self.side.value} "
            f"{self.quantity}x {self.symbol} @ ${self.price:.2f}, {self.strategy})"
        )


# =============================================================================
# ExecutionModel Class
# =============================================================================

class ExecutionModel:
    """
    Simulate fills of option orders against a ``PositionLedger``.

    Attributes:
        commission_per_contract (float): Commission per contract
        slippage_min_pct (float): Lower bound of the slippage band
        slippage_max_pct (float): Upper bound of the slippage band
        seed (int): Seed of the slippage stream

    Example:
        >>> execution = ExecutionModel(commission_per_contract=1.50, seed=1)
        >>> execution.slippage_min_pct, execution.slippage_max_pct
        (0.005, 0.02)
    """

    __slots__ = (
        '_commission_per_contract',
        '_slippage_min_pct',
        '_slippage_max_pct',
        '_seed',
        '_rng',
        '_trade_counter',
        '_skipped',
    )

    def __init__(
        self,
        commission_per_contract: float = DEFAULT_COMMISSION_PER_CONTRACT,
        slippage_min_pct: float = DEFAULT_SLIPPAGE_MIN_PCT,
        slippage_max_pct: float = DEFAULT_SLIPPAGE_MAX_PCT,
        seed: int = DEFAULT_EXECUTION_SEED
    ) -> None:
        """
        Initialize the ExecutionModel.

        Raises:
            ExecutionConfigError: If parameters are invalid
        """
        if commission_per_contract < 0:
            raise ExecutionConfigError(
                f"commission_per_contract must be non-negative, "
                f"got {commission_per_contract}"
            )
        if not 0 <= slippage_min_pct <= slippage_max_pct < 1:
            raise ExecutionConfigError(
                f"slippage band must satisfy 0 <= min <= max < 1, "
                f"got [{slippage_min_pct}, {slippage_max_pct}]"
            )

        self._commission_per_contract = float(commission_per_contract)
        self._slippage_min_pct = float(slippage_min_pct)
        self._slippage_max_pct = float(slippage_max_pct)
        self._seed = seed
        self._rng = np.random.default_rng(seed)
        self._trade_counter = 0
        self._skipped = 0

        logger.debug(
            f"ExecutionModel initialized: commission=${commission_per_contract:.2f}, "
            f"slippage=[{slippage_min_pct:.2%}, {slippage_max_pct:.2%}], seed={seed}"
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def commission_per_contract(self) -> float:
        return self._commission_per_contract

    @property
    def slippage_min_pct(self) -> float:
        return self._slippage_min_pct

    @property
    def slippage_max_pct(self) -> float:
        return self._slippage_max_pct

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def num_skipped(self) -> int:
        """Orders skipped for insufficient cash."""
        return self._skipped

    # =========================================================================
    # Execution
    # =========================================================================

    def draw_slippage(self) -> float:
        """Next slippage fraction from the seeded stream."""
        spread = self._slippage_max_pct - self._slippage_min_pct
        return self._slippage_min_pct + float(self._rng.random()) * spread

    def fill_price(self, quoted_price: float, side: OrderSide, slippage_pct: float) -> float:
        """Executed price after adverse slippage, floored at the minimum tick."""
        adjusted = quoted_price * (1.0 + side.sign * slippage_pct)
        return max(MINIMUM_TICK_SIZE, adjusted)

    def execute(
        self,
        ledger,
        symbol: str,
        side: OrderSide,
        quantity: int,
        quoted_price: float,
        strategy: str,
        on: date
    ) -> Optional[TradeRecord]:
        """
        Fill one order and apply it to ``ledger``.

        A slippage draw is consumed on every call, filled or not, so the
        stream position depends only on the number of orders attempted.

        Args:
            ledger: PositionLedger receiving the fill
            symbol: Option symbol
            side: BUY or SELL
            quantity: Contracts (positive)
            quoted_price: Quoted premium per share
            strategy: Owning strategy name
            on: Execution date

        Returns:
            The TradeRecord, or None if a buy was unaffordable

        Raises:
            ExecutionError: If quantity is not positive
        """
        if quantity <= 0:
            raise ExecutionError(f"quantity must be positive, got {quantity}")

        side = OrderSide(side)
        slippage_pct = self.draw_slippage()
        executed_price = self.fill_price(quoted_price, side, slippage_pct)
        commission = self._commission_per_contract * quantity
        gross = executed_price * quantity * CONTRACT_MULTIPLIER

        if side is OrderSide.BUY and gross + commission > ledger.cash:
            self._skipped += 1
            logger.debug(
                f"Skipping {strategy} BUY {quantity}x {symbol}: cost "
                f"${gross + commission:,.2f} exceeds cash ${ledger.cash:,.2f}"
            )
            return None

        self._trade_counter += 1
        trade = TradeRecord(
            id=f"T{self._trade_counter:06d}",
            date=on,
            symbol=symbol,
            side=side,
            quantity=int(quantity),
            price=executed_price,
            commission=commission,
            strategy=strategy,
        )
        ledger.apply_trade(trade)
        return trade

    def __repr__(self) -> str:
        return (
            f"ExecutionModel("
            f"commission=${self._commission_per_contract:.2f}, "
            f"slippage=[{self._slippage_min_pct:.2%}, {self._slippage_max_pct:.2%}], "
            f"seed={self._seed})"
        )


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    'ExecutionError',
    'ExecutionConfigError',
    'TradeRecord',
    'ExecutionModel',
    'DEFAULT_COMMISSION_PER_CONTRACT',
    'DEFAULT_SLIPPAGE_MIN_PCT',
    'DEFAULT_SLIPPAGE_MAX_PCT',
]
