"""
Market Data Containers

This module holds the in-memory market history a backtest runs against:
underlying price points, per-day option surfaces, and the ``MarketDataset``
that indexes both for the lookups the ledger and the orchestrator need.

Lookups:
    - price(symbol, date)            -> UnderlyingPrice or None
    - surface(underlying, date)      -> OptionSurface (possibly empty)
    - quote(symbol, date)            -> OptionQuote or None
    - trading_dates()                -> sorted union of all price dates

A missing entry is a data gap, not an error: lookups return ``None`` or an
empty surface and callers decide whether to skip.

Usage:
    dataset = MarketDataset(prices, quotes)
    surface = dataset.surface('SPY', date(2024, 1, 5))
    calls = surface.calls()
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from cppi_backtester.core.option import OptionQuote, OptionType

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class MarketDataError(Exception):
    """Exception raised when market data is structurally invalid."""
    pass


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class UnderlyingPrice:
    """One daily observation of an underlying."""

    date: date
    symbol: str
    price: float
    volume: int
    implied_vol: float


@dataclass(frozen=True)
class OptionSurface:
    """
    All quotes for one underlying on one date.

    Attributes:
        underlying: Underlying ticker
        date: Surface date
        spot: Underlying price on that date (None if unknown)
        quotes: Quotes on the surface
    """

    underlying: str
    date: date
    spot: Optional[float]
    quotes: Tuple[OptionQuote, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.quotes)

    def __bool__(self) -> bool:
        return bool(self.quotes)

    def calls(self) -> List[OptionQuote]:
        return [q for q in self.quotes if q.option_type is OptionType.CALL]

    def puts(self) -> List[OptionQuote]:
        return [q for q in self.quotes if q.option_type is OptionType.PUT]

    def expiries(self) -> List[date]:
        """Distinct expiries on the surface, ascending."""
        return sorted({q.expiry for q in self.quotes})

    def for_expiry(self, expiry: date) -> "OptionSurface":
        """Restrict the surface to a single expiry."""
        return OptionSurface(
            underlying=self.underlying,
            date=self.date,
            spot=self.spot,
            quotes=tuple(q for q in self.quotes if q.expiry == expiry),
        )

    def within_dte(self, dte_min: int, dte_max: int) -> "OptionSurface":
        """Restrict the surface to quotes with dte_min <= DTE <= dte_max."""
        return OptionSurface(
            underlying=self.underlying,
            date=self.date,
            spot=self.spot,
            quotes=tuple(q for q in self.quotes if dte_min <= q.dte <= dte_max),
        )

    def get(self, symbol: str) -> Optional[OptionQuote]:
        for quote in self.quotes:
            if quote.symbol == symbol:
                return quote
        return None


# =============================================================================
# MarketDataset
# =============================================================================

class MarketDataset:
    """
    Indexed, read-only market history.

    Built once per backtest run from generated (or loaded) price points and
    option quotes. Nothing in the dataset changes after construction.

    Example:
        >>> dataset = MarketDataset(prices, quotes)
        >>> dataset.trading_dates()[:2]
        [datetime.date(2024, 1, 1), datetime.date(2024, 1, 2)]
    """

    __slots__ = (
        '_prices',
        '_surfaces',
        '_quote_index',
        '_symbols',
    )

    def __init__(
        self,
        prices: Iterable[UnderlyingPrice],
        quotes: Iterable[OptionQuote] = ()
    ) -> None:
        self._prices: Dict[Tuple[str, date], UnderlyingPrice] = {}
        symbols: List[str] = []
        for point in prices:
            key = (point.symbol, point.date)
            if key in self._prices:
                raise MarketDataError(
                    f"Duplicate price point for {point.symbol} on {point.date}"
                )
            self._prices[key] = point
            if point.symbol not in symbols:
                symbols.append(point.symbol)
        self._symbols = tuple(symbols)

        grouped: Dict[Tuple[str, date], List[OptionQuote]] = defaultdict(list)
        self._quote_index: Dict[Tuple[str, date], OptionQuote] = {}
        for quote in quotes:
            grouped[(quote.underlying, quote.date)].append(quote)
            self._quote_index[(quote.symbol, quote.date)] = quote

        self._surfaces: Dict[Tuple[str, date], OptionSurface] = {}
        for (underlying, quote_date), surface_quotes in grouped.items():
            point = self._prices.get((underlying, quote_date))
            self._surfaces[(underlying, quote_date)] = OptionSurface(
                underlying=underlying,
                date=quote_date,
                spot=point.price if point else None,
                quotes=tuple(surface_quotes),
            )

        logger.debug(
            f"MarketDataset built: {len(self._symbols)} symbols, "
            f"{len(self._prices)} price points, {len(self._quote_index)} quotes"
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def symbols(self) -> Tuple[str, ...]:
        """Underlying symbols in first-seen order."""
        return self._symbols

    @property
    def num_quotes(self) -> int:
        return len(self._quote_index)

    # =========================================================================
    # Lookups
    # =========================================================================

    def price(self, symbol: str, on: date) -> Optional[UnderlyingPrice]:
        return self._prices.get((symbol, on))

    def surface(self, underlying: str, on: date) -> OptionSurface:
        surface = self._surfaces.get((underlying, on))
        if surface is None:
            point = self._prices.get((underlying, on))
            return OptionSurface(underlying, on, point.price if point else None, ())
        return surface

    def quote(self, symbol: str, on: date) -> Optional[OptionQuote]:
        return self._quote_index.get((symbol, on))

    def trading_dates(self) -> List[date]:
        """Sorted union of all dates with at least one price point."""
        return sorted({d for (_, d) in self._prices})

    def price_history(self, symbol: str) -> pd.DataFrame:
        """Price series for one symbol as a date-indexed DataFrame."""
        rows = [
            {
                'date': p.date,
                'price': p.price,
                'volume': p.volume,
                'implied_vol': p.implied_vol,
            }
            for (s, _), p in self._prices.items() if s == symbol
        ]
        if not rows:
            return pd.DataFrame(columns=['price', 'volume', 'implied_vol'])
        return pd.DataFrame(rows).set_index('date').sort_index()

    def __repr__(self) -> str:
        return (
            f"MarketDataset(symbols={list(self._symbols)}, "
            f"price_points={len(self._prices)}, quotes={len(self._quote_index)})"
        )


__all__ = [
    'MarketDataError',
    'UnderlyingPrice',
    'OptionSurface',
    'MarketDataset',
]
