"""
Strategy Leg Builders

Pure functions from an option surface and selection parameters to the legs
of one strategy archetype. Shared by the live sleeve cycle and the backtester.

Archetypes:
    - debit_call_vertical: Long call near target delta, short call +width
    - credit_put_spread:   Short put near short delta, long put -width
    - atm_straddle:        Long call and put nearest spot
    - cash_secured_put:    Short put with |delta| in (0.20, 0.30)
    - crash_hedge_put:     Long far out-of-the-money put
    - collar_position:     Short call and long put at independent deltas

Usage:
    from cppi_backtester.structures import build_legs

    legs = build_legs('credit_put_spread', surface)
"""

from cppi_backtester.structures.legs import (
    LegBuilderError,
    StrategyArchetype,
    LegParameters,
    Leg,
    DEFAULT_ARCHETYPE_PARAMETERS,
    LEG_BUILDERS,
    select_expiry,
    build_debit_call_vertical,
    build_credit_put_spread,
    build_atm_straddle,
    build_cash_secured_put,
    build_crash_hedge_put,
    build_collar_position,
    parse_archetype,
    build_legs,
    scale_legs_to_budget,
)

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
