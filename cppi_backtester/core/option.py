"""
Option Contract Primitives

This module defines the immutable value types shared by every layer of the
system: option classes, order sides, option quotes, and the symbol encoding
that ties a ledger position back to its contract terms.

Symbol Encoding:
    A contract is identified by ``{underlying}_{expiry}_{strike}_{TYPE}``,
    e.g. ``US.SPY_2024-03-15_450_CALL``. The strike is written without a
    trailing ``.0`` for whole-dollar strikes. Decoding splits from the right,
    so underlyings containing underscores round-trip correctly.

Usage:
    from cppi_backtester.core.option import OptionType, encode_symbol, decode_symbol

    symbol = encode_symbol('SPY', date(2024, 3, 15), 450.0, OptionType.CALL)
    terms = decode_symbol(symbol)
    print(terms.strike, terms.option_type)
"""

import logging
from dataclasses import dataclass, asdict
from datetime import date
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Standard equity option contract multiplier (shares per contract)
CONTRACT_MULTIPLIER = 100


# =============================================================================
# Exceptions
# =============================================================================

class OptionSymbolError(ValueError):
    """Exception raised when an option symbol cannot be decoded."""
    pass


# =============================================================================
# Enums
# =============================================================================

class OptionType(str, Enum):
    """Option class."""

    CALL = "CALL"
    PUT = "PUT"

    @property
    def pricing_name(self) -> str:
        """Lower-case name accepted by the pricing kernel."""
        return self.value.lower()


class OrderSide(str, Enum):
    """Order side for a leg or trade."""

    BUY = "BUY"
    SELL = "SELL"

    @property
    def sign(self) -> int:
        """+1 for buys, -1 for sells."""
        return 1 if self is OrderSide.BUY else -1


# =============================================================================
# Symbol Encoding
# =============================================================================

class ContractTerms(NamedTuple):
    """Decoded contract terms of an option symbol."""

    underlying: str
    expiry: date
    strike: float
    option_type: OptionType


def _format_strike(strike: float) -> str:
    return f"{strike:g}" if float(strike).is_integer() else f"{strike}"


def encode_symbol(
    underlying: str,
    expiry: date,
    strike: float,
    option_type: OptionType
) -> str:
    """Build the canonical symbol for a contract."""
    return f"{underlying}_{expiry.isoformat()}_{_format_strike(strike)}_{OptionType(option_type).value}"


def decode_symbol(symbol: str) -> ContractTerms:
    """
    Decode a symbol produced by ``encode_symbol``.

    Raises:
        OptionSymbolError: If the symbol is malformed
    """
    parts = symbol.rsplit('_', 3)
    if len(parts) != 4:
        raise OptionSymbolError(f"Malformed option symbol: {symbol!r}")

    underlying, expiry_str, strike_str, type_str = parts
    try:
        return ContractTerms(
            underlying=underlying,
            expiry=date.fromisoformat(expiry_str),
            strike=float(strike_str),
            option_type=OptionType(type_str),
        )
    except ValueError as e:
        raise OptionSymbolError(f"Malformed option symbol: {symbol!r} ({e})") from e


# =============================================================================
# OptionQuote
# =============================================================================

@dataclass(frozen=True)
class OptionQuote:
    """
    One quoted contract on one date.

    Attributes:
        date: Quote date
        symbol: Encoded contract symbol
        underlying: Underlying ticker
        strike: Strike price
        expiry: Expiration date
        option_type: CALL or PUT
        price: Quoted premium per share
        delta, gamma, theta, vega: Sensitivities (theta per day, vega per 1%)
        implied_vol: Volatility used to price the quote
        open_interest: Open interest in contracts
    """

    date: date
    symbol: str
    underlying: str
    strike: float
    expiry: date
    option_type: OptionType
    price: float
    delta: Optional[float] = None
    gamma: Optional[float] = None
    theta: Optional[float] = None
    vega: Optional[float] = None
    implied_vol: Optional[float] = None
    open_interest: Optional[int] = None

    @property
    def dte(self) -> int:
        """Calendar days from quote date to expiry."""
        return (self.expiry - self.date).days

    @property
    def is_call(self) -> bool:
        return self.option_type is OptionType.CALL

    @property
    def is_put(self) -> bool:
        return self.option_type is OptionType.PUT

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        data = asdict(self)
        data['date'] = self.date.isoformat()
        data['expiry'] = self.expiry.isoformat()
        data['option_type'] = self.option_type.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OptionQuote":
        """Rebuild a quote from ``to_dict`` output or a broker payload."""
        quote_date = data['date']
        expiry = data['expiry']
        return cls(
            date=date.fromisoformat(quote_date) if isinstance(quote_date, str) else quote_date,
            symbol=data['symbol'],
            underlying=data['underlying'],
            strike=float(data['strike']),
            expiry=date.fromisoformat(expiry) if isinstance(expiry, str) else expiry,
            option_type=OptionType(str(data['option_type']).upper()),
            price=float(data['price']),
            delta=data.get('delta'),
            gamma=data.get('gamma'),
            theta=data.get('theta'),
            vega=data.get('vega'),
            implied_vol=data.get('implied_vol'),
            open_interest=data.get('open_interest'),
        )

    def __repr__(self) -> str:
        return (
            f"OptionQuote({self.symbol}, price={self.price:.2f}, "
            f"delta={self.delta if self.delta is None else round(self.delta, 3)})"
        )


__all__ = [
    'CONTRACT_MULTIPLIER',
    'OptionSymbolError',
    'OptionType',
    'OrderSide',
    'ContractTerms',
    'encode_symbol',
    'decode_symbol',
    'OptionQuote',
]
