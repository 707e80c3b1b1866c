"""
Synthetic Market Generator

Produces a deterministic, self-consistent market history for backtesting:
one underlying price point per symbol per calendar day, and for every price
point a full option surface priced through the Black-Scholes kernel.

Model:
    - Starting price drawn uniformly in [100, 500)
    - Daily return r = (u - 0.48) * 0.03, i.e. uniform in [-1.44%, +1.56%)
      with a slight upward bias; the walk compounds on the unrounded price
      and the stored price is rounded to cents
    - Volume uniform in [1M, 6M), implied volatility uniform in [15%, 50%)
    - Expiries at fixed calendar offsets (default 7/14/21/30/45 days)
    - Strikes on a $5 grid, eight steps either side of floor(price / 5) * 5
    - One implied volatility per price point, flat risk-free rate

Determinism:
    Every random draw comes from a single numpy ``Generator`` seeded at
    construction. Draw order is fixed: for each symbol the starting price,
    then (return, volume, volatility) per day; after all price points, one
    open-interest draw per quote in (date, expiry, strike, class) order.
    ``generate`` reseeds before producing data, so identical seed and inputs
    give bit-identical output.

No forward leakage:
    A quote on date d is priced only from the price point dated d.

Usage:
    generator = SyntheticMarketGenerator(seed=42)
    dataset = generator.generate(['US.SPY', 'US.QQQ'],
                                 date(2023, 1, 1), date(2023, 12, 31))
"""

import logging
from datetime import date, timedelta
from typing import List, Optional, Sequence

import numpy as np

from cppi_backtester.core.option import OptionQuote, OptionType, encode_symbol
from cppi_backtester.core.pricing import (
    DAYS_PER_YEAR,
    DEFAULT_RISK_FREE_RATE,
    price_option_grid,
)
from cppi_backtester.data.market_data import (
    MarketDataError,
    MarketDataset,
    UnderlyingPrice,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_SEED = 42
DEFAULT_EXPIRY_OFFSETS = (7, 14, 21, 30, 45)

START_PRICE_MIN = 100.0
START_PRICE_RANGE = 400.0
RETURN_CENTER = 0.48
RETURN_SCALE = 0.03
VOLUME_MIN = 1_000_000
VOLUME_RANGE = 5_000_000
IV_MIN = 0.15
IV_RANGE = 0.35
OPEN_INTEREST_MIN = 100
OPEN_INTEREST_RANGE = 2000

STRIKE_STEP = 5.0
STRIKES_EACH_SIDE = 8
MIN_OPTION_PRICE = 0.01


def generate_strikes(price: float, step: float = STRIKE_STEP,
                     each_side: int = STRIKES_EACH_SIDE) -> List[float]:
    """Strike grid around ``price``; non-positive strikes are dropped."""
    base = np.floor(price / step) * step
    strikes = [float(base + i * step) for i in range(-each_side, each_side + 1)]
    return [k for k in strikes if k > 0]


class SyntheticMarketGenerator:
    """
    Seeded generator of underlying prices and option surfaces.

    Attributes:
        seed: Seed of the single random stream
        risk_free_rate: Flat rate used to price every quote
        expiry_offsets: Calendar-day offsets of the listed expiries
    """

    def __init__(
        self,
        seed: int = DEFAULT_SEED,
        risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
        expiry_offsets: Sequence[int] = DEFAULT_EXPIRY_OFFSETS
    ) -> None:
        if not expiry_offsets or any(int(d) <= 0 for d in expiry_offsets):
            raise MarketDataError(
                f"expiry_offsets must be positive day counts, got {list(expiry_offsets)}"
            )
        self.seed = seed
        self.risk_free_rate = risk_free_rate
        self.expiry_offsets = tuple(int(d) for d in expiry_offsets)
        self._rng = np.random.default_rng(seed)

    def reset(self) -> None:
        """Restart the random stream from the seed."""
        self._rng = np.random.default_rng(self.seed)

    # =========================================================================
    # Underlying prices
    # =========================================================================

    def generate_market_data(
        self,
        symbols: Sequence[str],
        start_date: date,
        end_date: date
    ) -> List[UnderlyingPrice]:
        """
        Random-walk price points for every symbol and calendar day in
        [start_date, end_date].
        """
        if end_date < start_date:
            raise MarketDataError(
                f"end_date {end_date} is before start_date {start_date}"
            )

        num_days = (end_date - start_date).days + 1
        points: List[UnderlyingPrice] = []

        for symbol in symbols:
            current_price = START_PRICE_MIN + self._rng.random() * START_PRICE_RANGE
            # (return, volume, iv) per day, consumed in that order
            draws = self._rng.random((num_days, 3))

            for offset in range(num_days):
                u_ret, u_vol, u_iv = draws[offset]
                current_price *= 1.0 + (u_ret - RETURN_CENTER) * RETURN_SCALE
                points.append(UnderlyingPrice(
                    date=start_date + timedelta(days=offset),
                    symbol=symbol,
                    price=round(float(current_price), 2),
                    volume=int(np.floor(VOLUME_MIN + u_vol * VOLUME_RANGE)),
                    implied_vol=float(IV_MIN + u_iv * IV_RANGE),
                ))

        logger.debug(
            f"Generated {len(points)} price points for {len(symbols)} symbols "
            f"({start_date} to {end_date})"
        )
        return points

    # =========================================================================
    # Option surfaces
    # =========================================================================

    def generate_option_data(
        self,
        market_data: Sequence[UnderlyingPrice]
    ) -> List[OptionQuote]:
        """Price the full expiry x strike x class surface of every point."""
        quotes: List[OptionQuote] = []
        offsets = np.array(self.expiry_offsets, dtype=np.float64)

        for point in market_data:
            strikes = generate_strikes(point.price)
            if not strikes:
                continue

            K = np.array(strikes)[np.newaxis, :]
            T = (offsets / DAYS_PER_YEAR)[:, np.newaxis]
            T = np.broadcast_to(T, (len(offsets), len(strikes)))
            K = np.broadcast_to(K, T.shape)

            grids = {
                OptionType.CALL: price_option_grid(
                    point.price, K, T, self.risk_free_rate, point.implied_vol, 'call'
                ),
                OptionType.PUT: price_option_grid(
                    point.price, K, T, self.risk_free_rate, point.implied_vol, 'put'
                ),
            }
            open_interest = self._rng.random((len(offsets), len(strikes), 2))

            for i, dte in enumerate(self.expiry_offsets):
                expiry = point.date + timedelta(days=dte)
                for j, strike in enumerate(strikes):
                    for k, option_type in enumerate((OptionType.CALL, OptionType.PUT)):
                        grid = grids[option_type]
                        quotes.append(OptionQuote(
                            date=point.date,
                            symbol=encode_symbol(point.symbol, expiry, strike, option_type),
                            underlying=point.symbol,
                            strike=strike,
                            expiry=expiry,
                            option_type=option_type,
                            price=max(MIN_OPTION_PRICE, round(float(grid['price'][i, j]), 2)),
                            delta=float(grid['delta'][i, j]),
                            gamma=float(grid['gamma'][i, j]),
                            theta=float(grid['theta'][i, j]),
                            vega=float(grid['vega'][i, j]),
                            implied_vol=point.implied_vol,
                            open_interest=int(np.floor(
                                OPEN_INTEREST_MIN + open_interest[i, j, k] * OPEN_INTEREST_RANGE
                            )),
                        ))

        logger.debug(f"Generated {len(quotes)} option quotes")
        return quotes

    def generate(
        self,
        symbols: Sequence[str],
        start_date: date,
        end_date: date,
        with_options: Optional[bool] = True
    ) -> MarketDataset:
        """Reseed, then build prices and surfaces into a ``MarketDataset``."""
        self.reset()
        prices = self.generate_market_data(symbols, start_date, end_date)
        quotes = self.generate_option_data(prices) if with_options else []
        logger.info(
            f"Synthetic market ready: {len(symbols)} symbols, "
            f"{len(prices)} price points, {len(quotes)} quotes (seed={self.seed})"
        )
        return MarketDataset(prices, quotes)


__all__ = [
    'DEFAULT_SEED',
    'DEFAULT_EXPIRY_OFFSETS',
    'generate_strikes',
    'SyntheticMarketGenerator',
]
