"""
Core Module

Contract identity and closed-form pricing shared by the market generator,
the ledger and the leg builders.

Components:
    - pricing: Black-Scholes prices, Greeks and intrinsic value
    - option: Option types, order sides, symbol encoding and OptionQuote

Usage:
    from cppi_backtester.core import black_scholes_price, encode_symbol, OptionType

    price = black_scholes_price(S=100, K=100, T=0.25, r=0.05, sigma=0.20)
    symbol = encode_symbol('US.SPY', date(2024, 3, 15), 450.0, OptionType.CALL)
"""

from cppi_backtester.core.pricing import (
    PricingError,
    black_scholes_call,
    black_scholes_put,
    black_scholes_price,
    intrinsic_value,
    calculate_greeks,
    price_option_grid,
    DEFAULT_RISK_FREE_RATE,
    DAYS_PER_YEAR,
    TRADING_DAYS_PER_YEAR,
)

from cppi_backtester.core.option import (
    CONTRACT_MULTIPLIER,
    OptionSymbolError,
    OptionType,
    OrderSide,
    ContractTerms,
    encode_symbol,
    decode_symbol,
    OptionQuote,
)

__all__ = [
    # Pricing
    'PricingError',
    'black_scholes_call',
    'black_scholes_put',
    'black_scholes_price',
    'intrinsic_value',
    'calculate_greeks',
    'price_option_grid',
    'DEFAULT_RISK_FREE_RATE',
    'DAYS_PER_YEAR',
    'TRADING_DAYS_PER_YEAR',

    # Contracts
    'CONTRACT_MULTIPLIER',
    'OptionSymbolError',
    'OptionType',
    'OrderSide',
    'ContractTerms',
    'encode_symbol',
    'decode_symbol',
    'OptionQuote',
]
