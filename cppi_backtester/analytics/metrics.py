"""
PerformanceMetrics Class for Backtest Analytics

This module turns a backtest's daily P&L series and its per-trade realized
P&L into the standard summary statistics.

Key Features:
    - Returns-based metrics (total return, annualized return, volatility, Sharpe)
    - Drawdown from the running peak of the equity path
    - Trade-based metrics (win rate, profit factor) over closed positions

Mathematical Conventions:
    - Daily return:      r_i = pnl_i / (initial + cumPnL_{i-1})  (0 if base <= 0)
    - Total return:      R = (final - initial) / initial
    - Annualized return: (1 + R)^(252 / n) - 1, n = number of days
    - Volatility:        sqrt(population variance of r x 252)
    - Sharpe ratio:      (annualized return - rf) / volatility, 0 if volatility is 0
    - Max drawdown:      max over days of (peak - equity) / peak, where the peak
                         starts at the initial capital
    - Profit factor:     gross profit / gross loss, 0 when there are no losses

Usage:
    from cppi_backtester.analytics.metrics import PerformanceMetrics

    metrics = PerformanceMetrics.calculate_all_metrics(
        daily_pnl=[12.5, -3.0, 8.1],
        trade_pnl=[40.0, -15.0],
        initial_capital=10_000.0,
        risk_free_rate=0.05,
        total_trades=6,
    )
    print(f"Sharpe: {metrics.sharpe_ratio:.2f}")

References:
    - Sharpe, W.F. (1994). The Sharpe Ratio. Journal of Portfolio Management.
"""

import logging
from dataclasses import dataclass, fields
from typing import Any, Dict, Sequence, Union

import numpy as np
import pandas as pd

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Trading days per year (industry standard)
TRADING_DAYS_PER_YEAR = 252

ArrayLike = Union[Sequence[float], np.ndarray, pd.Series]


# =============================================================================
# Exceptions
# =============================================================================

class MetricsError(Exception):
    """Base exception for metrics calculation errors."""
    pass


class InsufficientDataError(MetricsError):
    """Exception raised when there is insufficient data for calculation."""
    pass


# =============================================================================
# Result Type
# =============================================================================

@dataclass(frozen=True)
class PortfolioMetrics:
    """Summary statistics of one equity path (portfolio or single strategy)."""

    total_return: float = 0.0
    annualized_return: float = 0.0
    volatility: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0
    win_rate: float = 0.0
    profit_factor: float = 0.0
    total_trades: int = 0
    total_pnl: float = 0.0
    closed_positions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PortfolioMetrics":
        kwargs = {}
        for f in fields(cls):
            if f.name in data:
                value = data[f.name]
                kwargs[f.name] = int(value) if f.type in (int, 'int') else float(value)
        return cls(**kwargs)


# =============================================================================
# PerformanceMetrics Class
# =============================================================================

class PerformanceMetrics:
    """
    Static calculators for backtest performance metrics.

    Example:
        >>> returns = PerformanceMetrics.calculate_daily_returns([100.0, -50.0], 10_000.0)
        >>> round(float(returns[0]), 4)
        0.01
    """

    # =========================================================================
    # Returns-Based Metrics
    # =========================================================================

    @staticmethod
    def calculate_daily_returns(daily_pnl: ArrayLike, initial_capital: float) -> np.ndarray:
        """
        Daily returns relative to the previous day's equity.

        Args:
            daily_pnl: Dollar P&L per day
            initial_capital: Starting equity

        Returns:
            Array of daily returns, one per day
        """
        pnl = np.asarray(daily_pnl, dtype=np.float64)
        if pnl.size == 0:
            return pnl
        cum_pnl = np.cumsum(pnl)
        prev_equity = initial_capital + np.concatenate(([0.0], cum_pnl[:-1]))
        with np.errstate(divide='ignore', invalid='ignore'):
            returns = np.where(prev_equity > 0, pnl / prev_equity, 0.0)
        return returns

    @staticmethod
    def calculate_total_return(daily_pnl: ArrayLike, initial_capital: float) -> float:
        """(final - initial) / initial, as a fraction."""
        if initial_capital <= 0:
            raise MetricsError(f"initial_capital must be positive, got {initial_capital}")
        return float(np.sum(np.asarray(daily_pnl, dtype=np.float64))) / initial_capital

    @staticmethod
    def calculate_annualized_return(total_return: float, num_days: int) -> float:
        """
        Compound ``total_return`` over ``num_days`` to a 252-day year.

        A total loss (1 + R <= 0) annualizes to -1.

        Raises:
            InsufficientDataError: If num_days < 1
        """
        if num_days < 1:
            raise InsufficientDataError("Need at least one day to annualize")
        growth = 1.0 + total_return
        if growth <= 0:
            return -1.0
        return float(growth ** (TRADING_DAYS_PER_YEAR / num_days) - 1.0)

    @staticmethod
    def calculate_volatility(returns: ArrayLike) -> float:
        """Annualized volatility from the population variance of daily returns."""
        r = np.asarray(returns, dtype=np.float64)
        if r.size == 0:
            return 0.0
        variance = float(np.var(r))
        return float(np.sqrt(variance * TRADING_DAYS_PER_YEAR))

    @staticmethod
    def calculate_sharpe_ratio(
        annualized_return: float,
        volatility: float,
        risk_free_rate: float = 0.0
    ) -> float:
        """(annualized return - rf) / volatility; 0 when volatility is 0."""
        if volatility <= 0:
            return 0.0
        return (annualized_return - risk_free_rate) / volatility

    # =========================================================================
    # Drawdown Metrics
    # =========================================================================

    @staticmethod
    def calculate_equity_curve(daily_pnl: ArrayLike, initial_capital: float) -> np.ndarray:
        """End-of-day equity: initial capital plus cumulative P&L."""
        return initial_capital + np.cumsum(np.asarray(daily_pnl, dtype=np.float64))

    @staticmethod
    def calculate_max_drawdown(daily_pnl: ArrayLike, initial_capital: float) -> float:
        """
        Largest peak-to-trough decline as a positive fraction of the peak.

        The running peak starts at the initial capital, so a path that only
        falls still registers its loss.
        """
        equity = PerformanceMetrics.calculate_equity_curve(daily_pnl, initial_capital)
        if equity.size == 0:
            return 0.0
        peak = np.maximum.accumulate(np.concatenate(([initial_capital], equity)))[1:]
        with np.errstate(divide='ignore', invalid='ignore'):
            drawdown = np.where(peak > 0, (peak - equity) / peak, 0.0)
        return float(max(0.0, drawdown.max()))

    # =========================================================================
    # Trade-Based Metrics
    # =========================================================================

    @staticmethod
    def calculate_win_rate(trade_pnl: ArrayLike) -> float:
        """Fraction of trade results strictly above zero (0 with no trades)."""
        pnl = np.asarray(trade_pnl, dtype=np.float64)
        if pnl.size == 0:
            return 0.0
        return float(np.count_nonzero(pnl > 0) / pnl.size)

    @staticmethod
    def calculate_profit_factor(trade_pnl: ArrayLike) -> float:
        """Gross profit over gross loss; 0 when there is no loss."""
        pnl = np.asarray(trade_pnl, dtype=np.float64)
        gross_profit = float(pnl[pnl > 0].sum())
        gross_loss = float(-pnl[pnl < 0].sum())
        if gross_loss <= 0:
            return 0.0
        return gross_profit / gross_loss

    # =========================================================================
    # Aggregate
    # =========================================================================

    @staticmethod
    def calculate_all_metrics(
        daily_pnl: ArrayLike,
        trade_pnl: ArrayLike,
        initial_capital: float,
        risk_free_rate: float = 0.0,
        total_trades: int = 0
    ) -> PortfolioMetrics:
        """
        Calculate every summary metric.

        Args:
            daily_pnl: Dollar P&L per day, chronological
            trade_pnl: Realized P&L per closed position
            initial_capital: Starting equity
            risk_free_rate: Annual risk-free rate for the Sharpe ratio
            total_trades: Number of executed fills

        Returns:
            PortfolioMetrics

        Raises:
            InsufficientDataError: If ``daily_pnl`` is empty
        """
        pnl = np.asarray(daily_pnl, dtype=np.float64)
        if pnl.size == 0:
            raise InsufficientDataError("daily_pnl is empty")
        trades = np.asarray(trade_pnl, dtype=np.float64)

        total_return = PerformanceMetrics.calculate_total_return(pnl, initial_capital)
        annualized_return = PerformanceMetrics.calculate_annualized_return(total_return, pnl.size)
        returns = PerformanceMetrics.calculate_daily_returns(pnl, initial_capital)
        volatility = PerformanceMetrics.calculate_volatility(returns)

        return PortfolioMetrics(
            total_return=total_return,
            annualized_return=annualized_return,
            volatility=volatility,
            sharpe_ratio=PerformanceMetrics.calculate_sharpe_ratio(
                annualized_return, volatility, risk_free_rate
            ),
            max_drawdown=PerformanceMetrics.calculate_max_drawdown(pnl, initial_capital),
            win_rate=PerformanceMetrics.calculate_win_rate(trades),
            profit_factor=PerformanceMetrics.calculate_profit_factor(trades),
            total_trades=int(total_trades),
            total_pnl=float(pnl.sum()),
            closed_positions=int(trades.size),
        )


__all__ = [
    'TRADING_DAYS_PER_YEAR',
    'MetricsError',
    'InsufficientDataError',
    'PortfolioMetrics',
    'PerformanceMetrics',
]
