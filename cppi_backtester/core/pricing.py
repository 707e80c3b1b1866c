"""
Options Pricing Kernel

This module provides closed-form European option valuation and first-order
Greeks under the Black-Scholes lognormal diffusion model. It is the only
place in the system where option prices are produced: the synthetic market
generator prices every quote of its option surface here, and the position
ledger uses it to mark contracts that have no quote on a given day.

Mathematical Framework:
    The Black-Scholes model assumes:
    - European-style options (no early exercise)
    - Log-normal distribution of underlying returns
    - Constant volatility and a flat risk-free rate
    - No dividends

Key Formulas:
    Call Price: C = S*N(d1) - K*exp(-rT)*N(d2)
    Put Price:  P = K*exp(-rT)*N(-d2) - S*N(-d1)

    where:
        d1 = [ln(S/K) + (r + sigma^2/2)*T] / (sigma*sqrt(T))
        d2 = d1 - sigma*sqrt(T)
        N(x) = cumulative standard normal distribution

Numerical Notes:
    N(x) is evaluated through scipy's error-function based normal CDF, which
    is accurate to machine precision. Prices are therefore deterministic for
    identical inputs, which the seeded market generator relies on.

    The kernel does not validate its domain. Spot, strike and volatility must
    be positive; T must be positive. Contracts at or after expiry are valued
    at intrinsic value by the caller (see ``intrinsic_value``) and never reach
    the closed form. The T->0 / sigma->0 guards below only keep the formulas
    finite.

Usage:
    from cppi_backtester.core.pricing import (
        black_scholes_price,
        calculate_greeks,
        price_option_grid,
    )

    call_price = black_scholes_price(S=100, K=100, T=0.25, r=0.05, sigma=0.20)
    greeks = calculate_greeks(S=100, K=100, T=0.25, r=0.05, sigma=0.20,
                              option_type='call')

References:
    - Black, F., & Scholes, M. (1973). The Pricing of Options and Corporate
      Liabilities.
    - Hull, J. C. (2018). Options, Futures, and Other Derivatives.
"""

import logging
from typing import Dict, Tuple

import numpy as np
from scipy.stats import norm

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class PricingError(Exception):
    """Exception raised when an option cannot be priced (e.g. unknown type)."""
    pass


# =============================================================================
# Constants
# =============================================================================

# Numerical stability thresholds
MIN_TIME_TO_EXPIRY = 1e-10  # Minimum time to avoid division by zero
MIN_VOLATILITY = 1e-10      # Minimum volatility to avoid division by zero

# Default flat risk-free rate used by the synthetic market
DEFAULT_RISK_FREE_RATE = 0.05

# Annualization factors
DAYS_PER_YEAR = 365         # Calendar days for theta and time-to-expiry
TRADING_DAYS_PER_YEAR = 252 # Trading days


# =============================================================================
# Helper Functions
# =============================================================================

def _is_call(option_type: str) -> bool:
    """Normalize an option type string, raising PricingError if unknown."""
    option_type_lower = str(option_type).lower().strip()
    if option_type_lower in ('call', 'c'):
        return True
    if option_type_lower in ('put', 'p'):
        return False
    raise PricingError(f"option_type must be 'call' or 'put', got '{option_type}'")


def _calculate_d1_d2(
    S: float,
    K: float,
    T: float,
    r: float,
    sigma: float
) -> Tuple[float, float]:
    """
    Calculate d1 and d2 parameters for Black-Scholes formula.

    Formula:
        d1 = [ln(S/K) + (r + sigma^2/2)*T] / (sigma*sqrt(T))
        d2 = d1 - sigma*sqrt(T)

    Args:
        S: Spot price
        K: Strike price
        T: Time to expiration in years
        r: Risk-free rate (annualized)
        sigma: Volatility (annualized)

    Returns:
        Tuple of (d1, d2)
    """
    sqrt_T = np.sqrt(T)
    sigma_sqrt_T = sigma * sqrt_T

    d1 = (np.log(S / K) + (r + 0.5 * sigma ** 2) * T) / sigma_sqrt_T
    d2 = d1 - sigma_sqrt_T

    return float(d1), float(d2)


def intrinsic_value(spot: float, strike: float, option_type: str) -> float:
    """
    Payoff of an option exercised at ``spot``.

    Calls pay max(S - K, 0); puts pay max(K - S, 0).

    Args:
        spot: Underlying price at exercise
        strike: Strike price
        option_type: 'call' or 'put'

    Returns:
        Intrinsic value per share (non-negative)
    """
    if _is_call(option_type):
        return max(spot - strike, 0.0)
    return max(strike - spot, 0.0)


# =============================================================================
# Black-Scholes Pricing Functions
# =============================================================================

def black_scholes_call(
    S: float,
    K: float,
    T: float,
    r: float,
    sigma: float
) -> float:
    """
    Calculate European call option price using Black-Scholes formula.

    Args:
        S: Current spot price of the underlying asset.
        K: Strike price of the option.
        T: Time to expiration in years (e.g., 0.25 for 3 months).
        r: Risk-free interest rate (annualized, e.g., 0.05 for 5%).
        sigma: Volatility of the underlying (annualized, e.g., 0.20 for 20%).

    Returns:
        Call option price.

    Example:
        >>> price = black_scholes_call(S=100, K=100, T=0.25, r=0.05, sigma=0.20)
        >>> print(f"Call price: ${price:.2f}")
        Call price: $4.61
    """
    if T < MIN_TIME_TO_EXPIRY or sigma < MIN_VOLATILITY:
        return max(S - K * np.exp(-r * max(T, 0.0)), 0.0)

    d1, d2 = _calculate_d1_d2(S, K, T, r, sigma)
    call_price = S * norm.cdf(d1) - K * np.exp(-r * T) * norm.cdf(d2)

    # Ensure non-negative price (numerical precision)
    return max(float(call_price), 0.0)


def black_scholes_put(
    S: float,
    K: float,
    T: float,
    r: float,
    sigma: float
) -> float:
    """
    Calculate European put option price using Black-Scholes formula.

    Put-call parity holds for the pair returned by this module:
        C - P = S - K*exp(-rT)

    Args:
        S: Current spot price of the underlying asset.
        K: Strike price of the option.
        T: Time to expiration in years.
        r: Risk-free interest rate (annualized).
        sigma: Volatility of the underlying (annualized).

    Returns:
        Put option price.
    """
    if T < MIN_TIME_TO_EXPIRY or sigma < MIN_VOLATILITY:
        return max(K * np.exp(-r * max(T, 0.0)) - S, 0.0)

    d1, d2 = _calculate_d1_d2(S, K, T, r, sigma)
    put_price = K * np.exp(-r * T) * norm.cdf(-d2) - S * norm.cdf(-d1)

    return max(float(put_price), 0.0)


def black_scholes_price(
    S: float,
    K: float,
    T: float,
    r: float,
    sigma: float,
    option_type: str = 'call'
) -> float:
    """
    Calculate European option price, dispatching on ``option_type``.

    Raises:
        PricingError: If option_type is not 'call' or 'put'.
    """
    if _is_call(option_type):
        return black_scholes_call(S, K, T, r, sigma)
    return black_scholes_put(S, K, T, r, sigma)


# =============================================================================
# Greeks Calculations
# =============================================================================

def calculate_greeks(
    S: float,
    K: float,
    T: float,
    r: float,
    sigma: float,
    option_type: str = 'call'
) -> Dict[str, float]:
    """
    Calculate price and first-order Greeks for a European option.

    Formulas:
        Call Delta = N(d1),   Put Delta = N(d1) - 1
        Gamma = N'(d1) / (S * sigma * sqrt(T))
        Theta (per calendar day):
            Call: [-S*N'(d1)*sigma/(2*sqrt(T)) - r*K*exp(-rT)*N(d2)] / 365
            Put:  [-S*N'(d1)*sigma/(2*sqrt(T)) + r*K*exp(-rT)*N(-d2)] / 365
        Vega (per 1% vol) = S * N'(d1) * sqrt(T) / 100

    Args:
        S: Current spot price of the underlying asset.
        K: Strike price of the option.
        T: Time to expiration in years.
        r: Risk-free interest rate (annualized).
        sigma: Volatility of the underlying (annualized).
        option_type: 'call' or 'put'.

    Returns:
        Dictionary with 'price', 'delta', 'gamma', 'theta', 'vega'.

    Example:
        >>> greeks = calculate_greeks(S=100, K=100, T=0.25, r=0.05, sigma=0.20)
        >>> round(greeks['delta'], 3)
        0.569
    """
    is_call = _is_call(option_type)
    price = black_scholes_call(S, K, T, r, sigma) if is_call else black_scholes_put(S, K, T, r, sigma)

    if T < MIN_TIME_TO_EXPIRY or sigma < MIN_VOLATILITY:
        # Delta is binary and the other sensitivities vanish
        if is_call:
            delta = 1.0 if S > K else 0.0
        else:
            delta = -1.0 if S < K else 0.0
        return {'price': price, 'delta': delta, 'gamma': 0.0, 'theta': 0.0, 'vega': 0.0}

    d1, d2 = _calculate_d1_d2(S, K, T, r, sigma)
    sqrt_T = np.sqrt(T)
    pdf_d1 = norm.pdf(d1)
    discount = np.exp(-r * T)

    time_decay = -S * pdf_d1 * sigma / (2 * sqrt_T)
    if is_call:
        delta = norm.cdf(d1)
        theta_annual = time_decay - r * K * discount * norm.cdf(d2)
    else:
        delta = norm.cdf(d1) - 1.0
        theta_annual = time_decay + r * K * discount * norm.cdf(-d2)

    return {
        'price': price,
        'delta': float(delta),
        'gamma': float(pdf_d1 / (S * sigma * sqrt_T)),
        'theta': float(theta_annual / DAYS_PER_YEAR),
        'vega': float(S * pdf_d1 * sqrt_T / 100.0),
    }


# =============================================================================
# Vectorized Calculations for Performance
# =============================================================================

def price_option_grid(
    S: float,
    K: np.ndarray,
    T: np.ndarray,
    r: float,
    sigma: float,
    option_type: str = 'call'
) -> Dict[str, np.ndarray]:
    """
    Vectorized price and Greeks for many contracts on one underlying.

    The synthetic market prices a full strike x expiry grid per price point;
    doing it with one broadcasted evaluation keeps year-long multi-symbol
    runs fast. Results are identical to the scalar functions.

    Args:
        S: Spot price (scalar)
        K: Array of strike prices
        T: Array of times to expiration in years (broadcastable with K, all > 0)
        r: Risk-free rate
        sigma: Volatility (scalar, > 0)
        option_type: 'call' or 'put'

    Returns:
        Dictionary of arrays: 'price', 'delta', 'gamma', 'theta', 'vega'

    Example:
        >>> K = np.array([95.0, 100.0, 105.0])
        >>> T = np.array([0.25, 0.25, 0.25])
        >>> grid = price_option_grid(100.0, K, T, 0.05, 0.20, 'put')
    """
    is_call = _is_call(option_type)
    K = np.asarray(K, dtype=np.float64)
    T = np.asarray(T, dtype=np.float64)

    sqrt_T = np.sqrt(T)
    sigma_sqrt_T = sigma * sqrt_T
    d1 = (np.log(S / K) + (r + 0.5 * sigma ** 2) * T) / sigma_sqrt_T
    d2 = d1 - sigma_sqrt_T

    discount = np.exp(-r * T)
    pdf_d1 = norm.pdf(d1)
    time_decay = -S * pdf_d1 * sigma / (2 * sqrt_T)

    if is_call:
        price = S * norm.cdf(d1) - K * discount * norm.cdf(d2)
        delta = norm.cdf(d1)
        theta = time_decay - r * K * discount * norm.cdf(d2)
    else:
        price = K * discount * norm.cdf(-d2) - S * norm.cdf(-d1)
        delta = norm.cdf(d1) - 1.0
        theta = time_decay + r * K * discount * norm.cdf(-d2)

    return {
        'price': np.maximum(price, 0.0),
        'delta': delta,
        'gamma': pdf_d1 / (S * sigma_sqrt_T),
        'theta': theta / DAYS_PER_YEAR,
        'vega': S * pdf_d1 * sqrt_T / 100.0,
    }


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    # Exceptions
    'PricingError',

    # Pricing functions
    'black_scholes_call',
    'black_scholes_put',
    'black_scholes_price',
    'intrinsic_value',

    # Greeks functions
    'calculate_greeks',

    # Vectorized functions
    'price_option_grid',

    # Constants
    'DEFAULT_RISK_FREE_RATE',
    'DAYS_PER_YEAR',
    'TRADING_DAYS_PER_YEAR',
]
