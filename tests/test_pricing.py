"""
Unit Tests for the Black-Scholes Pricing Kernel

Test Categories:
    1. Known analytical values and put-call parity
    2. Degenerate inputs (expiry, zero volatility)
    3. Greeks
    4. Vectorized grid agreement with the scalar functions
"""

import numpy as np
import pytest

from cppi_backtester.core.pricing import (
    PricingError,
    black_scholes_call,
    black_scholes_price,
    black_scholes_put,
    calculate_greeks,
    intrinsic_value,
    price_option_grid,
)


class TestBlackScholes:
    """Tests for the Black-Scholes call and put prices."""

    def test_atm_call_known_value(self):
        """Test ATM call price against a known value."""
        price = black_scholes_call(S=100, K=100, T=0.25, r=0.05, sigma=0.20)
        assert price == pytest.approx(4.615, abs=1e-3)

    def test_put_call_parity(self):
        """Test put-call parity for a single contract."""
        S, K, T, r, sigma = 105.0, 100.0, 0.5, 0.03, 0.3
        call = black_scholes_call(S, K, T, r, sigma)
        put = black_scholes_put(S, K, T, r, sigma)
        assert call - put == pytest.approx(S - K * np.exp(-r * T), abs=1e-9)

    @pytest.mark.parametrize("T", [0.02, 0.1, 0.5, 1.0])
    @pytest.mark.parametrize("sigma", [0.05, 0.2, 0.6, 1.0])
    @pytest.mark.parametrize("K", [80.0, 100.0, 125.0])
    def test_put_call_parity_grid(self, T, sigma, K):
        """Test put-call parity across strikes, vols and maturities."""
        S, r = 100.0, 0.05
        call = black_scholes_call(S, K, T, r, sigma)
        put = black_scholes_put(S, K, T, r, sigma)
        assert abs(call - put - (S - K * np.exp(-r * T))) < 1e-3

    def test_dispatch_by_type(self):
        """Test black_scholes_price dispatches on the option type."""
        assert black_scholes_price(100, 95, 0.1, 0.05, 0.2, 'put') == pytest.approx(
            black_scholes_put(100, 95, 0.1, 0.05, 0.2)
        )
        assert black_scholes_price(100, 95, 0.1, 0.05, 0.2, 'C') == pytest.approx(
            black_scholes_call(100, 95, 0.1, 0.05, 0.2)
        )

    def test_unknown_type_raises(self):
        """Test that an unknown option type raises PricingError."""
        with pytest.raises(PricingError):
            black_scholes_price(100, 100, 0.1, 0.05, 0.2, 'straddle')

    def test_expired_option_is_intrinsic(self):
        """Test that an expired option prices at intrinsic value."""
        assert black_scholes_call(110, 100, 0.0, 0.05, 0.2) == pytest.approx(10.0)
        assert black_scholes_put(110, 100, 0.0, 0.05, 0.2) == 0.0

    def test_zero_volatility_is_discounted_forward_payoff(self):
        """Test the zero-volatility limit."""
        expected = 110 - 100 * np.exp(-0.05 * 0.5)
        assert black_scholes_call(110, 100, 0.5, 0.05, 0.0) == pytest.approx(expected)

    def test_prices_never_negative(self):
        """Test that deep out-of-the-money prices stay non-negative."""
        assert black_scholes_call(50, 200, 0.01, 0.05, 0.1) >= 0.0
        assert black_scholes_put(200, 50, 0.01, 0.05, 0.1) >= 0.0


class TestIntrinsicValue:
    """Tests for intrinsic_value."""

    def test_call_and_put_payoffs(self):
        """Test call and put payoffs on both sides of the strike."""
        assert intrinsic_value(105, 100, 'call') == 5.0
        assert intrinsic_value(95, 100, 'call') == 0.0
        assert intrinsic_value(95, 100, 'put') == 5.0
        assert intrinsic_value(105, 100, 'put') == 0.0


class TestGreeks:
    """Tests for calculate_greeks."""

    def test_atm_call_delta(self):
        """Test ATM call delta against a known value."""
        greeks = calculate_greeks(100, 100, 0.25, 0.05, 0.20, 'call')
        assert greeks['delta'] == pytest.approx(0.569, abs=1e-3)

    def test_put_delta_is_call_delta_minus_one(self):
        """Test put delta equals call delta minus one."""
        call = calculate_greeks(100, 95, 0.3, 0.05, 0.25, 'call')
        put = calculate_greeks(100, 95, 0.3, 0.05, 0.25, 'put')
        assert put['delta'] == pytest.approx(call['delta'] - 1.0)

    def test_gamma_and_vega_shared_by_call_and_put(self):
        """Test that calls and puts share gamma and vega."""
        call = calculate_greeks(100, 105, 0.3, 0.05, 0.25, 'call')
        put = calculate_greeks(100, 105, 0.3, 0.05, 0.25, 'put')
        assert call['gamma'] == pytest.approx(put['gamma'])
        assert call['vega'] == pytest.approx(put['vega'])

    def test_long_option_theta_negative(self):
        """Test that a long option decays."""
        assert calculate_greeks(100, 100, 0.25, 0.05, 0.2, 'call')['theta'] < 0

    def test_expired_greeks(self):
        """Test Greeks of an expired contract."""
        greeks = calculate_greeks(90, 100, 0.0, 0.05, 0.2, 'put')
        assert greeks['delta'] == -1.0
        assert greeks['gamma'] == 0.0
        assert greeks['price'] == pytest.approx(10.0)


class TestPriceOptionGrid:
    """Tests for the vectorized pricing grid."""

    @pytest.mark.parametrize("option_type", ["call", "put"])
    def test_grid_matches_scalar(self, option_type):
        """Test that grid prices and Greeks match the scalar functions."""
        K = np.array([90.0, 100.0, 110.0])
        T = np.array([0.1, 0.25, 0.5])
        grid = price_option_grid(100.0, K, T, 0.05, 0.3, option_type)
        for i in range(3):
            scalar = calculate_greeks(100.0, K[i], T[i], 0.05, 0.3, option_type)
            for key in ('price', 'delta', 'gamma', 'theta', 'vega'):
                assert grid[key][i] == pytest.approx(scalar[key])
