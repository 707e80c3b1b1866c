"""
Data Layer Module

In-memory market history and its seeded synthetic source.

Components:
    - MarketDataset: Indexed prices, option surfaces and quotes
    - SyntheticMarketGenerator: Deterministic random-walk prices and
      Black-Scholes option surfaces

Usage:
    from cppi_backtester.data import SyntheticMarketGenerator

    dataset = SyntheticMarketGenerator(seed=42).generate(
        ['US.SPY', 'US.QQQ'], date(2023, 1, 1), date(2023, 3, 31)
    )
    surface = dataset.surface('US.SPY', date(2023, 2, 1))
"""

from cppi_backtester.data.market_data import (
    MarketDataError,
    UnderlyingPrice,
    OptionSurface,
    MarketDataset,
)

from cppi_backtester.data.synthetic import (
    DEFAULT_SEED,
    DEFAULT_EXPIRY_OFFSETS,
    generate_strikes,
    SyntheticMarketGenerator,
)

__all__ = [
    'MarketDataError',
    'UnderlyingPrice',
    'OptionSurface',
    'MarketDataset',
    'DEFAULT_SEED',
    'DEFAULT_EXPIRY_OFFSETS',
    'generate_strikes',
    'SyntheticMarketGenerator',
]
