"""
Tests for the CPPI policy engine.

Reference portfolio: sleeves 2000/1500/1000/4000/500 (total 9000) observed
on the start date with default settings, so invested = 10000, floor = 8500,
cushion = 500 and risky weight = 4 x 500 / 9000.
"""

from dataclasses import replace
from datetime import date, timedelta

import pytest

from cppi_backtester.policy.cppi import (
    CPPIConfig,
    CPPIConfigError,
    CPPIEngine,
    CPPIError,
    RiskySplit,
    compute_contributions_allocation,
    compute_cppi_metrics,
    compute_risk_budget,
    cppi_config_errors,
)
from cppi_backtester.policy.sleeves import Cadence, Sleeve, SleeveEquities, SleeveWeights

START = date(2024, 1, 1)


@pytest.fixture
def engine():
    return CPPIEngine(CPPIConfig(), start_date=START)


@pytest.fixture
def equities():
    return SleeveEquities(debit=2000, credit=1500, straddle=1000, collar=4000, hedge=500)


class TestConfig:
    """Tests for CPPIConfig validation."""

    def test_defaults_are_valid(self):
        """Test that the default policy validates."""
        assert cppi_config_errors(CPPIConfig()) == []

    def test_split_must_sum_to_one(self):
        """Test that the risky split must sum to one."""
        config = CPPIConfig(risky_split=RiskySplit(debit=0.5, credit=0.2, straddle=0.2))
        errors = cppi_config_errors(config)
        assert any("sum to 1.0" in e for e in errors)
        with pytest.raises(CPPIConfigError) as exc_info:
            CPPIEngine(config)
        assert exc_info.value.errors == errors

    @pytest.mark.parametrize("changes", [
        {'floor_pct': 0.0},
        {'floor_pct': 1.5},
        {'multiplier': 0.0},
        {'drift_band_abs': 0.0},
        {'weekly_deposit': -1.0},
        {'initial_capital': 0.0},
    ])
    def test_invalid_values(self, changes):
        """Test out-of-range policy values."""
        assert cppi_config_errors(replace(CPPIConfig(), **changes))

    def test_to_dict(self):
        """Test the nested dictionary form of the policy."""
        data = CPPIConfig().to_dict()
        assert data['floor_pct'] == 0.85
        assert data['risky_split']['hedge_fixed'] == 0.02
        assert data['min_tickets']['credit'] == 100.0


class TestMetrics:
    """Tests for CPPIEngine.compute_metrics."""

    def test_reference_portfolio(self, engine, equities):
        """Test invested capital, floor, cushion and risky weight."""
        m = engine.compute_metrics(equities, START)
        assert m.weeks_since_start == 0
        assert m.invested_to_date == pytest.approx(10_000.0)
        assert m.floor == pytest.approx(8_500.0)
        assert m.cushion == pytest.approx(500.0)
        assert m.risky_weight == pytest.approx(2 / 9)

    def test_target_weights(self, engine, equities):
        """Test target weights from the risky split."""
        target = engine.compute_metrics(equities, START).target_weights
        rw = 2 / 9
        assert target.debit == pytest.approx(rw * 0.60)
        assert target.credit == pytest.approx(rw * 0.15)
        assert target.straddle == pytest.approx(rw * 0.25)
        assert target.hedge == pytest.approx(0.02)
        assert target.collar == pytest.approx(1 - rw - 0.02)
        assert target.is_normalized()

    def test_current_weights(self, engine, equities):
        """Test current weights from sleeve equities."""
        current = engine.compute_metrics(equities, START).current_weights
        assert current.collar == pytest.approx(4000 / 9000)
        assert current.is_normalized()

    def test_deposits_raise_the_floor(self, engine, equities):
        """Test that weekly deposits raise invested capital and the floor."""
        m = engine.compute_metrics(equities, START + timedelta(days=20))
        assert m.weeks_since_start == 2
        assert m.invested_to_date == pytest.approx(10_100.0)
        assert m.floor == pytest.approx(0.85 * 10_100.0)

    def test_below_floor_has_no_risky_weight(self, engine):
        """Test that a portfolio below its floor holds no risky weight."""
        m = engine.compute_metrics(SleeveEquities(collar=8_000.0), START)
        assert m.cushion == 0.0
        assert m.risky_weight == 0.0
        assert m.target_weights.debit == 0.0
        assert m.target_weights.hedge == pytest.approx(0.02)
        assert m.target_weights.collar == pytest.approx(0.98)

    def test_empty_portfolio(self, engine):
        """Test metrics of an empty portfolio."""
        m = engine.compute_metrics(SleeveEquities(), START)
        assert m.risky_weight == 0.0
        assert m.current_weights.total == 0.0
        assert m.target_weights.is_normalized()

    def test_risky_weight_capped(self, engine):
        """Test that the risky weight is capped at one."""
        m = engine.compute_metrics(SleeveEquities(collar=100_000.0), START)
        assert m.risky_weight == 1.0
        assert m.target_weights.collar == pytest.approx(0.0)
        assert m.target_weights.is_normalized()
        assert all(m.target_weights[s] >= 0 for s in Sleeve)

    def test_total_at_floor_has_no_cushion(self, engine):
        """Test a portfolio exactly at its floor."""
        m = engine.compute_metrics(SleeveEquities(debit=1_000.0, collar=7_500.0), START)
        assert m.floor == pytest.approx(8_500.0)
        assert m.cushion == 0.0
        assert m.risky_weight == 0.0

    @pytest.mark.parametrize("total", [0.0, 5_000.0, 8_500.0, 9_000.0, 12_000.0, 50_000.0])
    def test_weights_invariants(self, engine, total):
        """Test weight bounds across portfolio sizes."""
        m = engine.compute_metrics(SleeveEquities(collar=total), START)
        assert 0.0 <= m.risky_weight <= 1.0
        assert m.target_weights.is_normalized()
        assert all(m.target_weights[s] >= 0 for s in Sleeve)


class TestRebalance:
    """Tests for the drift-band rebalance gate."""

    def test_gated_by_interval(self, engine, equities):
        """Test that rebalancing waits for the rebalance interval."""
        assert not engine.compute_metrics(equities, START).needs_rebalance
        assert engine.compute_metrics(equities, START + timedelta(weeks=4)).needs_rebalance

    def test_last_rebalance_week_resets_gate(self, engine, equities):
        """Test that the last rebalance week restarts the interval."""
        on = START + timedelta(weeks=6)
        assert not engine.compute_metrics(equities, on, last_rebalance_week=4).needs_rebalance
        assert engine.compute_metrics(equities, on, last_rebalance_week=2).needs_rebalance

    def test_within_band_no_rebalance(self, engine):
        """Test that on-target sleeves need no rebalance."""
        on = START + timedelta(weeks=8)
        m0 = engine.compute_metrics(SleeveEquities(collar=9_000.0), on)
        on_target = SleeveEquities.from_total(9_000.0, m0.target_weights)
        m = engine.compute_metrics(on_target, on)
        assert not m.needs_rebalance

    def test_mark_rebalanced_returns_week(self, engine, equities):
        """Test that mark_rebalanced returns the current week."""
        m = engine.compute_metrics(equities, START + timedelta(weeks=5))
        assert engine.mark_rebalanced(m) == 5


class TestContributionsAllocation:
    """Tests for the no-sell deposit allocation."""

    TARGET = SleeveWeights(debit=0.10, credit=0.10, straddle=0.10, collar=0.685, hedge=0.015)

    def test_scaled_when_shortfalls_exceed_deposit(self, engine):
        """Test scaling shortfalls down to the deposit."""
        equities = SleeveEquities(debit=80, credit=100, straddle=60, collar=700, hedge=10)
        allocation = engine.compute_contributions_allocation(self.TARGET, equities, 50.0)
        scale = 50 / 65
        assert allocation.debit == pytest.approx(20 * scale)
        assert allocation.debit == pytest.approx(15.38, abs=0.01)
        assert allocation.credit == 0.0
        assert allocation.straddle == pytest.approx(40 * scale)
        assert allocation.collar == 0.0
        assert allocation.hedge == pytest.approx(5 * scale)
        assert allocation.total == pytest.approx(50.0)

    def test_remainder_follows_target_share(self, engine):
        """Test that leftover deposit follows the target weights."""
        target = SleeveWeights(debit=0.25, collar=0.25)
        allocation = engine.compute_contributions_allocation(target, SleeveEquities(), 100.0)
        assert allocation.debit == pytest.approx(50.0)
        assert allocation.collar == pytest.approx(50.0)
        assert allocation.total == pytest.approx(100.0)

    def test_default_deposit_is_weekly_deposit(self, engine, equities):
        """Test that the weekly deposit is the default amount."""
        target = engine.compute_metrics(equities, START).target_weights
        allocation = engine.compute_contributions_allocation(target, equities)
        assert allocation.total == pytest.approx(50.0)

    def test_never_negative(self, engine, equities):
        """Test that no sleeve receives a negative allocation."""
        target = engine.compute_metrics(equities, START).target_weights
        allocation = engine.compute_contributions_allocation(target, equities, 500.0)
        assert all(allocation[s] >= 0 for s in Sleeve)
        assert allocation.total == pytest.approx(500.0)

    def test_zero_deposit(self, engine, equities):
        """Test allocating a zero deposit."""
        allocation = engine.compute_contributions_allocation(self.TARGET, equities, 0.0)
        assert allocation.total == 0.0

    def test_negative_deposit_raises(self, engine, equities):
        """Test that a negative deposit raises CPPIError."""
        with pytest.raises(CPPIError):
            engine.compute_contributions_allocation(self.TARGET, equities, -1.0)


class TestRiskBudget:
    """Tests for sleeve risk budgets."""

    def test_weekly_budget(self, engine):
        """Test the weekly debit budget."""
        assert engine.compute_risk_budget(Sleeve.DEBIT, 2000.0) == pytest.approx(150.0)

    def test_monthly_multiplier(self, engine):
        """Test the monthly straddle multiplier."""
        budget = engine.compute_risk_budget(Sleeve.STRADDLE, 1000.0, Cadence.MONTHLY)
        assert budget == pytest.approx(1000 * 0.04 * 1.25 * 4)

    def test_min_ticket_floor(self, engine):
        """Test the minimum ticket floor."""
        assert engine.compute_risk_budget(Sleeve.CREDIT, 1500.0) == pytest.approx(100.0)
        assert engine.compute_risk_budget(Sleeve.HEDGE, 100.0) == pytest.approx(5.0)
        assert engine.compute_risk_budget(Sleeve.HEDGE, 500.0) == pytest.approx(6.25)

    def test_collar_unscaled_without_ticket(self, engine):
        """Test that the collar has no risk budget."""
        assert engine.compute_risk_budget(Sleeve.COLLAR, 4000.0) == 0.0

    def test_accepts_names(self, engine):
        """Test sleeve and cadence given by name."""
        assert engine.compute_risk_budget('debit', 2000.0, 'weekly') == pytest.approx(150.0)


class TestCadence:
    """Tests for the monthly cadence gate."""

    @pytest.mark.parametrize("week,expected", [(0, True), (1, False), (3, False), (4, True), (8, True)])
    def test_every_fourth_week(self, engine, week, expected):
        """Test that every fourth week is a cadence week."""
        assert engine.is_cadence_week(week) is expected


class TestFunctionalInterface:
    """Tests for the module-level wrappers."""

    def test_wrappers_match_engine(self, engine, equities):
        """Test that the wrappers agree with the engine."""
        m = compute_cppi_metrics(equities, START, start_date=START)
        assert m == engine.compute_metrics(equities, START)
        assert compute_risk_budget(Sleeve.DEBIT, 2000.0) == pytest.approx(150.0)
        allocation = compute_contributions_allocation(m.target_weights, equities, 50.0)
        assert allocation.total == pytest.approx(50.0)
