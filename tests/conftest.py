"""
Shared fixtures: hand-built option surfaces and a small synthetic market.
"""

from datetime import date, timedelta

import pytest

from cppi_backtester.core.option import OptionQuote, OptionType, encode_symbol
from cppi_backtester.core.pricing import DAYS_PER_YEAR, calculate_greeks
from cppi_backtester.data.market_data import MarketDataset, OptionSurface, UnderlyingPrice
from cppi_backtester.data.synthetic import SyntheticMarketGenerator

SURFACE_DATE = date(2024, 1, 2)
SURFACE_SPOT = 100.0
SURFACE_VOL = 0.25


def _make_quote(underlying, on, spot, expiry, strike, option_type, sigma=SURFACE_VOL, r=0.05):
    greeks = calculate_greeks(
        spot, strike, (expiry - on).days / DAYS_PER_YEAR, r, sigma, option_type.pricing_name
    )
    return OptionQuote(
        date=on,
        symbol=encode_symbol(underlying, expiry, strike, option_type),
        underlying=underlying,
        strike=strike,
        expiry=expiry,
        option_type=option_type,
        price=round(greeks['price'], 2),
        delta=greeks['delta'],
        gamma=greeks['gamma'],
        theta=greeks['theta'],
        vega=greeks['vega'],
        implied_vol=sigma,
        open_interest=500,
    )


@pytest.fixture
def make_quote():
    """Factory for Black-Scholes priced quotes."""
    return _make_quote


@pytest.fixture
def surface_quotes():
    """SPY quotes at 7 and 30 DTE, strikes 80-120 in $5 steps."""
    quotes = []
    for dte in (7, 30):
        expiry = SURFACE_DATE + timedelta(days=dte)
        for strike in range(80, 125, 5):
            for option_type in (OptionType.CALL, OptionType.PUT):
                quotes.append(_make_quote(
                    'SPY', SURFACE_DATE, SURFACE_SPOT, expiry, float(strike), option_type
                ))
    return quotes


@pytest.fixture
def surface(surface_quotes):
    return OptionSurface('SPY', SURFACE_DATE, SURFACE_SPOT, tuple(surface_quotes))


@pytest.fixture
def surface_dataset(surface_quotes):
    """Dataset with the hand-built surface and flat SPY prices for 40 days."""
    prices = [
        UnderlyingPrice(SURFACE_DATE + timedelta(days=i), 'SPY', SURFACE_SPOT, 1_000_000, SURFACE_VOL)
        for i in range(40)
    ]
    return MarketDataset(prices, surface_quotes)


@pytest.fixture(scope="session")
def small_market():
    """Two symbols over one month of synthetic data."""
    return SyntheticMarketGenerator(seed=7).generate(
        ['US.SPY', 'US.QQQ'], date(2023, 1, 1), date(2023, 1, 31)
    )
