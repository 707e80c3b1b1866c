"""
Tests for sleeve value types and mappings.
"""

import pytest

from cppi_backtester.policy.sleeves import (
    ARCHETYPE_SLEEVES,
    DEFAULT_CADENCES,
    Cadence,
    Sleeve,
    SleeveEquities,
    SleeveError,
    SleeveWeights,
    sleeve_for_strategy,
)
from cppi_backtester.structures.legs import StrategyArchetype


class TestSleeveEquities:
    """Tests for SleeveEquities."""

    def test_total_and_indexing(self):
        """Test the total and indexing by sleeve or name."""
        equities = SleeveEquities(debit=1, credit=2, straddle=3, collar=4, hedge=5)
        assert equities.total == 15
        assert equities[Sleeve.STRADDLE] == 3
        assert equities['hedge'] == 5

    def test_add_returns_new_value(self):
        """Test that add returns a new value and leaves the original."""
        base = SleeveEquities(debit=10.0)
        result = base.add(SleeveEquities(debit=5.0, hedge=1.0))
        assert result == SleeveEquities(debit=15.0, hedge=1.0)
        assert base.debit == 10.0

    def test_with_sleeve(self):
        """Test replacing one sleeve's equity."""
        assert SleeveEquities().with_sleeve(Sleeve.COLLAR, 7.0).collar == 7.0

    def test_dict_includes_total(self):
        """Test that the dictionary form carries the total."""
        data = SleeveEquities(debit=1.0, collar=2.0).to_dict()
        assert data['total'] == 3.0
        assert SleeveEquities.from_dict(data) == SleeveEquities(debit=1.0, collar=2.0)

    def test_mismatched_total_rejected(self):
        """Test that a total disagreeing with the sleeves is rejected."""
        with pytest.raises(SleeveError):
            SleeveEquities.from_dict({'debit': 1.0, 'total': 5.0})

    def test_from_total(self):
        """Test splitting a total by weights."""
        weights = SleeveWeights(debit=0.5, collar=0.5)
        assert SleeveEquities.from_total(200.0, weights) == SleeveEquities(debit=100.0, collar=100.0)


class TestSleeveWeights:
    """Tests for SleeveWeights."""

    def test_is_normalized(self):
        """Test the sum-to-one check."""
        assert SleeveWeights(collar=0.98, hedge=0.02).is_normalized()
        assert not SleeveWeights(collar=0.9).is_normalized()

    def test_from_dict_defaults_missing(self):
        """Test that missing sleeves default to zero."""
        assert SleeveWeights.from_dict({'debit': 0.4}) == SleeveWeights(debit=0.4)


class TestMappings:
    """Tests for strategy, archetype and cadence mappings."""

    def test_strategy_ids(self):
        """Test sleeves implied by strategy ids."""
        assert sleeve_for_strategy('debit_spreads') is Sleeve.DEBIT
        assert sleeve_for_strategy('event_straddles') is Sleeve.STRADDLE
        assert sleeve_for_strategy('crash_hedge') is Sleeve.HEDGE
        assert sleeve_for_strategy('unknown') is None

    def test_every_archetype_has_a_sleeve(self):
        """Test that every archetype maps to a sleeve."""
        assert set(ARCHETYPE_SLEEVES) == set(StrategyArchetype)
        assert ARCHETYPE_SLEEVES[StrategyArchetype.CASH_SECURED_PUT] is Sleeve.CREDIT

    def test_only_straddles_are_monthly(self):
        """Test that only straddles trade monthly."""
        monthly = [s for s, c in DEFAULT_CADENCES.items() if c is Cadence.MONTHLY]
        assert monthly == [Sleeve.STRADDLE]
