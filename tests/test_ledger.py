"""
Tests for PositionLedger: booking, lots, valuation and expiry settlement.

The shared dataset holds SPY flat at 100 for 40 days from 2024-01-02 with
quotes only on the first day.
"""

from datetime import date

import pytest

from cppi_backtester.core.option import OrderSide
from cppi_backtester.core.pricing import DAYS_PER_YEAR, black_scholes_price
from cppi_backtester.engine.execution import TradeRecord
from cppi_backtester.engine.ledger import ClosedPosition, LedgerError, PositionLedger

DAY0 = date(2024, 1, 2)
EXPIRY = date(2024, 2, 1)
CALL_105 = 'SPY_2024-02-01_105_CALL'
PUT_110 = 'SPY_2024-02-01_110_PUT'


def trade(symbol, side, quantity, price, strategy='s', on=DAY0, commission=0.0, trade_id='T1'):
    return TradeRecord(trade_id, on, symbol, side, quantity, price, commission, strategy)


class TestBooking:
    """Tests for booking fills into the ledger."""

    def test_negative_initial_cash_rejected(self):
        """Test that negative starting cash is rejected."""
        with pytest.raises(LedgerError):
            PositionLedger(-1.0)

    def test_non_positive_quantity_rejected(self):
        """Test that a zero-quantity trade is rejected."""
        with pytest.raises(LedgerError):
            PositionLedger(100.0).apply_trade(trade(CALL_105, OrderSide.BUY, 0, 1.0))

    def test_round_trip_closes_lot(self):
        """Test that buying and selling the same contract closes its lot."""
        ledger = PositionLedger(10_000.0)
        ledger.apply_trade(trade(CALL_105, OrderSide.BUY, 2, 1.00, commission=3.0))
        ledger.apply_trade(trade(CALL_105, OrderSide.SELL, 2, 1.50, commission=3.0, on=date(2024, 1, 5)))

        assert ledger.positions == {}
        assert ledger.open_lots == []
        closed = ledger.closed_positions
        assert len(closed) == 1
        assert closed[0].realized_pnl == pytest.approx(100.0 - 6.0)
        assert closed[0].reason == 'closed'
        assert closed[0].quantity == 2
        assert closed[0].opened == DAY0
        assert closed[0].closed == date(2024, 1, 5)
        assert ledger.cash == pytest.approx(10_094.0)

    def test_strategies_hold_separate_lots(self):
        """Test that each strategy keeps its own lot in a symbol."""
        ledger = PositionLedger(10_000.0)
        ledger.apply_trade(trade(CALL_105, OrderSide.BUY, 1, 1.0, strategy='a'))
        ledger.apply_trade(trade(CALL_105, OrderSide.SELL, 1, 1.2, strategy='b'))
        assert ledger.positions == {}
        assert len(ledger.open_lots) == 2
        assert ledger.closed_positions == ()
        assert ledger.strategies == ['a', 'b']


class TestValuation:
    """Tests for marks and mark_to_market."""

    def test_quoted_mark(self, surface_dataset):
        """Test valuation at the day's quote."""
        ledger = PositionLedger(10_000.0)
        ledger.apply_trade(trade(CALL_105, OrderSide.BUY, 1, 1.0))
        quote = surface_dataset.quote(CALL_105, DAY0)
        assert ledger.mark_to_market(DAY0, surface_dataset) == pytest.approx(
            9_900.0 + quote.price * 100
        )

    def test_unquoted_mark_uses_model_price(self, surface_dataset):
        """Test the Black-Scholes mark for an unquoted contract."""
        on = date(2024, 1, 3)
        ledger = PositionLedger(10_000.0)
        expected = black_scholes_price(100.0, 105.0, 29 / DAYS_PER_YEAR, 0.05, 0.25, 'call')
        assert ledger.mark_price(CALL_105, on, surface_dataset) == pytest.approx(expected)

    def test_unquoted_mark_without_model_is_zero(self, surface_dataset):
        """Test quote-or-zero marking with model marks off."""
        on = date(2024, 1, 3)
        ledger = PositionLedger(10_000.0, model_marks=False)
        ledger.apply_trade(trade(CALL_105, OrderSide.BUY, 1, 1.0))
        assert ledger.mark_price(CALL_105, on, surface_dataset) is None
        assert ledger.mark_to_market(on, surface_dataset) == pytest.approx(9_900.0)

    def test_quoted_mark_ignores_model_flag(self, surface_dataset):
        """Test that a quote is used whatever the model flag."""
        ledger = PositionLedger(10_000.0, model_marks=False)
        quote = surface_dataset.quote(CALL_105, DAY0)
        assert ledger.mark_price(CALL_105, DAY0, surface_dataset) == quote.price

    def test_expiry_day_mark_is_intrinsic(self, surface_dataset):
        """Test intrinsic marks on the expiry date."""
        ledger = PositionLedger(10_000.0)
        assert ledger.mark_price(PUT_110, EXPIRY, surface_dataset) == pytest.approx(10.0)
        assert ledger.mark_price(CALL_105, EXPIRY, surface_dataset) == 0.0

    def test_data_gap_contributes_zero(self, surface_dataset):
        """Test that a contract with no data contributes zero."""
        ledger = PositionLedger(1_000.0)
        ledger.apply_trade(trade('QQQ_2024-02-01_300_CALL', OrderSide.BUY, 1, 1.0))
        assert ledger.mark_to_market(DAY0, surface_dataset) == pytest.approx(900.0)

    def test_strategy_pnl_includes_open_marks(self, surface_dataset):
        """Test that strategy P&L includes open marks."""
        ledger = PositionLedger(10_000.0)
        ledger.apply_trade(trade(CALL_105, OrderSide.BUY, 1, 1.0, strategy='debit'))
        ledger.mark_to_market(DAY0, surface_dataset)
        quote = surface_dataset.quote(CALL_105, DAY0)
        assert ledger.strategy_pnl('debit', DAY0, surface_dataset) == pytest.approx(
            -100.0 + quote.price * 100
        )
        assert ledger.strategy_pnl('other', DAY0, surface_dataset) == 0.0


class TestExpirySettlement:
    """Tests for expiry settlement."""

    def test_itm_put_settles_to_cash(self, surface_dataset):
        """Test that a long in-the-money put settles to cash."""
        ledger = PositionLedger(10_000.0)
        ledger.apply_trade(trade(PUT_110, OrderSide.BUY, 2, 9.0))
        after = date(2024, 2, 2)

        value = ledger.mark_to_market(after, surface_dataset)

        assert ledger.positions == {}
        assert value == pytest.approx(10_000.0 - 1_800.0 + 2_000.0)
        assert value == pytest.approx(ledger.cash)
        closed = ledger.closed_positions[0]
        assert closed.reason == 'expired'
        assert closed.realized_pnl == pytest.approx(200.0)
        assert closed.closed == after

    def test_short_itm_put_debits_cash(self, surface_dataset):
        """Test that a short in-the-money put debits cash."""
        ledger = PositionLedger(10_000.0)
        ledger.apply_trade(trade(PUT_110, OrderSide.SELL, 1, 9.0))
        credited = ledger.settle_expired(date(2024, 2, 2), surface_dataset)
        assert credited == pytest.approx(-1_000.0)
        assert ledger.cash == pytest.approx(9_900.0)

    def test_otm_expires_worthless(self, surface_dataset):
        """Test that an out-of-the-money option expires worthless."""
        ledger = PositionLedger(10_000.0)
        ledger.apply_trade(trade(CALL_105, OrderSide.BUY, 1, 1.0))
        assert ledger.settle_expired(date(2024, 2, 2), surface_dataset) == 0.0
        assert ledger.closed_positions[0].realized_pnl == pytest.approx(-100.0)

    def test_not_settled_on_expiry_date(self, surface_dataset):
        """Test that settlement waits until after the expiry date."""
        ledger = PositionLedger(10_000.0)
        ledger.apply_trade(trade(PUT_110, OrderSide.BUY, 1, 9.0))
        ledger.settle_expired(EXPIRY, surface_dataset)
        assert ledger.positions == {PUT_110: 1}


class TestClosedPosition:
    """Tests for ClosedPosition."""

    def test_dict_round_trip(self):
        """Test ClosedPosition serialization."""
        position = ClosedPosition(CALL_105, 's', DAY0, EXPIRY, 3, -12.5, 'expired')
        assert ClosedPosition.from_dict(position.to_dict()) == position
