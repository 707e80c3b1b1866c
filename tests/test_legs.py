"""
Tests for strategy leg builders, archetype parsing and budget scaling.

The shared surface is SPY at 100 with 25% vol; on its 30 DTE expiry the
105 call is nearest 0.30 delta, the 95 put nearest 0.20 delta and the 90
put nearest 0.08 delta.
"""

from datetime import date, timedelta

import pytest

from cppi_backtester.core.option import OptionType, OrderSide, decode_symbol
from cppi_backtester.data.market_data import OptionSurface
from cppi_backtester.structures.legs import (
    Leg,
    LegBuilderError,
    LegParameters,
    StrategyArchetype,
    build_legs,
    parse_archetype,
    scale_legs_to_budget,
    select_expiry,
)

EXPIRY_30 = date(2024, 2, 1)


def _strike(leg):
    return decode_symbol(leg.symbol).strike


def _type(leg):
    return decode_symbol(leg.symbol).option_type


class TestParseArchetype:
    """Tests for parse_archetype."""

    def test_canonical_names(self):
        """Test that every archetype parses from its own value."""
        for archetype in StrategyArchetype:
            assert parse_archetype(archetype.value) is archetype

    @pytest.mark.parametrize("alias,expected", [
        ('crash_hedge', StrategyArchetype.CRASH_HEDGE_PUT),
        ('collar', StrategyArchetype.COLLAR_POSITION),
        (' Straddle ', StrategyArchetype.ATM_STRADDLE),
    ])
    def test_aliases(self, alias, expected):
        """Test the accepted archetype aliases."""
        assert parse_archetype(alias) is expected

    def test_unknown_raises(self):
        """Test that an unknown archetype raises LegBuilderError."""
        with pytest.raises(LegBuilderError, match="iron_condor"):
            parse_archetype('iron_condor')


class TestSelectExpiry:
    """Tests for select_expiry."""

    def test_picks_expiry_in_window(self, surface):
        """Test picking the expiry closest to the DTE target."""
        assert select_expiry(surface, LegParameters()) == EXPIRY_30

    def test_none_when_nothing_in_window(self, surface):
        """Test that no expiry in the window gives None."""
        assert select_expiry(surface, LegParameters(dte_min=50, dte_max=60)) is None

    def test_tie_goes_to_earlier_expiry(self, make_quote):
        """Test that equally distant expiries resolve to the earlier one."""
        on = date(2024, 1, 2)
        quotes = tuple(
            make_quote('SPY', on, 100.0, on + timedelta(days=dte), 100.0, OptionType.CALL)
            for dte in (30, 26)
        )
        surface = OptionSurface('SPY', on, 100.0, quotes)
        assert select_expiry(surface, LegParameters(dte_target=28)) == on + timedelta(days=26)


class TestBuilders:
    """Tests for the strategy leg builders."""

    def test_debit_call_vertical(self, surface):
        """Test the long call and short wing of a debit vertical."""
        legs = build_legs(StrategyArchetype.DEBIT_CALL_VERTICAL, surface, LegParameters(target_delta=0.30))
        assert [leg.side for leg in legs] == [OrderSide.BUY, OrderSide.SELL]
        assert [_strike(leg) for leg in legs] == [105.0, 110.0]
        assert all(_type(leg) is OptionType.CALL for leg in legs)
        assert all(decode_symbol(leg.symbol).expiry == EXPIRY_30 for leg in legs)

    def test_debit_vertical_needs_exact_wing(self, surface):
        """Test that a missing wing strike builds no vertical."""
        narrowed = OptionSurface(
            surface.underlying, surface.date, surface.spot,
            tuple(q for q in surface.quotes if q.strike <= 105),
        )
        assert build_legs('debit_call_vertical', narrowed) == []

    def test_credit_put_spread(self, surface):
        """Test the short put and protective put of a credit spread."""
        legs = build_legs('credit_put_spread', surface, LegParameters(short_delta=0.20))
        assert [leg.side for leg in legs] == [OrderSide.SELL, OrderSide.BUY]
        assert [_strike(leg) for leg in legs] == [95.0, 90.0]
        assert all(_type(leg) is OptionType.PUT for leg in legs)

    def test_atm_straddle(self, surface):
        """Test that the straddle buys the ATM call and put."""
        legs = build_legs('atm_straddle', surface)
        assert {_type(leg) for leg in legs} == {OptionType.CALL, OptionType.PUT}
        assert all(leg.side is OrderSide.BUY and _strike(leg) == 100.0 for leg in legs)

    def test_straddle_needs_spot(self, surface):
        """Test that a surface without spot builds no straddle."""
        no_spot = OptionSurface(surface.underlying, surface.date, None, surface.quotes)
        assert build_legs('atm_straddle', no_spot) == []

    def test_cash_secured_put_inside_band(self, surface):
        """Test that the cash-secured put falls inside the delta band."""
        legs = build_legs('cash_secured_put', surface)
        assert len(legs) == 1
        assert legs[0].side is OrderSide.SELL
        quote = surface.get(legs[0].symbol)
        assert 0.20 < abs(quote.delta) < 0.30

    def test_crash_hedge_put(self, surface):
        """Test the far out-of-the-money crash hedge put."""
        legs = build_legs('crash_hedge_put', surface, LegParameters(target_delta=0.08))
        assert len(legs) == 1
        assert legs[0].side is OrderSide.BUY
        assert _strike(legs[0]) == 90.0

    def test_collar_position(self, surface):
        """Test the short call and long put of a collar."""
        legs = build_legs('collar_position', surface, LegParameters(target_delta=0.30, short_delta=0.20))
        assert [(leg.side, _type(leg), _strike(leg)) for leg in legs] == [
            (OrderSide.SELL, OptionType.CALL, 105.0),
            (OrderSide.BUY, OptionType.PUT, 95.0),
        ]

    def test_collar_with_only_puts(self, surface):
        """Test that a collar builds only the put leg without calls."""
        puts_only = OptionSurface(surface.underlying, surface.date, surface.spot, tuple(surface.puts()))
        legs = build_legs('collar_position', puts_only)
        assert len(legs) == 1
        assert legs[0].side is OrderSide.BUY

    def test_legs_carry_quote_prices_and_contracts(self, surface):
        """Test that legs carry quote prices and contract counts."""
        legs = build_legs('credit_put_spread', surface, LegParameters(contracts=3))
        for leg in legs:
            assert leg.quantity == 3
            assert leg.limit_price == surface.get(leg.symbol).price

    def test_empty_surface_builds_nothing(self):
        """Test that an empty surface builds no legs."""
        empty = OptionSurface('SPY', date(2024, 1, 2), 100.0, ())
        for archetype in StrategyArchetype:
            assert build_legs(archetype, empty) == []


class TestScaleLegsToBudget:
    """Tests for scale_legs_to_budget."""

    def test_within_budget_unchanged(self):
        """Test that legs within budget are unchanged."""
        legs = [Leg('A', OrderSide.BUY, 2, 1.0)]
        assert scale_legs_to_budget(legs, 500.0) == legs

    def test_scaled_proportionally(self):
        """Test proportional scaling to the budget."""
        legs = [Leg('A', OrderSide.BUY, 10, 2.0), Leg('B', OrderSide.SELL, 10, 1.0)]
        scaled = scale_legs_to_budget(legs, 1500.0)
        assert [leg.quantity for leg in scaled] == [5, 5]

    def test_minimum_one_contract(self):
        """Test the one-contract floor when scaling."""
        legs = [Leg('A', OrderSide.BUY, 10, 2.0), Leg('B', OrderSide.SELL, 10, 1.0)]
        assert [leg.quantity for leg in scale_legs_to_budget(legs, 100.0)] == [1, 1]

    def test_unpriced_leg_notional(self):
        """Test the notional of a leg without a price."""
        assert Leg('A', OrderSide.BUY, 2).notional == 20_000.0
