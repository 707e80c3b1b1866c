"""
Analytics Module

Performance metrics over backtest P&L streams. Result persistence and
summary rendering live in ``cppi_backtester.analytics.report``.

Usage:
    from cppi_backtester.analytics import PerformanceMetrics

    metrics = PerformanceMetrics.calculate_all_metrics(daily_pnl, trade_pnl, 10_000.0)
"""

from cppi_backtester.analytics.metrics import (
    TRADING_DAYS_PER_YEAR,
    MetricsError,
    InsufficientDataError,
    PortfolioMetrics,
    PerformanceMetrics,
)

__all__ = [
    'TRADING_DAYS_PER_YEAR',
    'MetricsError',
    'InsufficientDataError',
    'PortfolioMetrics',
    'PerformanceMetrics',
]
