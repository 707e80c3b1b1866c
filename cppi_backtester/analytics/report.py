"""
ReportGenerator Class for Backtest Results

This module persists backtest results and renders them for people.

Key Features:
    - JSON result files that round-trip a BacktestResult losslessly
    - Plain-text summary report (configuration, metrics, strategy breakdown,
      most profitable positions)
    - Metrics tables in text or markdown
    - Equity curve chart (matplotlib)

Output Files:
    save_results writes a pair of files sharing one timestamp:
        backtest_<timestamp>.json
        backtest_summary_<timestamp>.txt
    where <timestamp> is the UTC ISO time with ':' and '.' replaced by '-'.

Usage:
    from cppi_backtester.analytics.report import ReportGenerator

    json_path, summary_path = ReportGenerator.save_results(result, './data')
    restored = ReportGenerator.load_results(json_path)
    print(ReportGenerator.generate_summary_report(restored))
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple, Union

from cppi_backtester.analytics.metrics import PortfolioMetrics
from cppi_backtester.engine.backtest_engine import BacktestResult

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_OUTPUT_DIR = "./data"
TOP_POSITIONS = 5

DEFAULT_FIGSIZE = (12, 6)
COLOR_EQUITY = '#2E86AB'
COLOR_BENCHMARK = '#6C757D'


# =============================================================================
# Exceptions
# =============================================================================

class ReportError(Exception):
    """Exception raised when a result file cannot be read or written."""
    pass


# =============================================================================
# Helper Functions
# =============================================================================

def _ensure_directory(path: str) -> None:
    """Create directory for save path if it doesn't exist."""
    directory = os.path.dirname(path)
    if directory and not os.path.exists(directory):
        os.makedirs(directory, exist_ok=True)


def result_timestamp(now: Optional[datetime] = None) -> str:
    """File-name-safe UTC timestamp, e.g. 2023-06-01T12-30-00-000Z."""
    now = now or datetime.now(timezone.utc)
    iso = now.astimezone(timezone.utc).isoformat(timespec='milliseconds')
    return iso.replace('+00:00', 'Z').replace(':', '-').replace('.', '-')


def _metric_rows(metrics: PortfolioMetrics) -> List[Tuple[str, str]]:
    return [
        ('Total Return', f'{metrics.total_return * 100:.2f}%'),
        ('Annualized Return', f'{metrics.annualized_return * 100:.2f}%'),
        ('Volatility', f'{metrics.volatility * 100:.2f}%'),
        ('Sharpe Ratio', f'{metrics.sharpe_ratio:.2f}'),
        ('Max Drawdown', f'{metrics.max_drawdown * 100:.2f}%'),
        ('Win Rate', f'{metrics.win_rate * 100:.1f}%'),
        ('Profit Factor', f'{metrics.profit_factor:.2f}'),
        ('Total Trades', f'{metrics.total_trades}'),
    ]


# =============================================================================
# ReportGenerator Class
# =============================================================================

class ReportGenerator:
    """
    Persist and render backtest results.

    Example:
        >>> text = ReportGenerator.generate_summary_report(result)
        >>> text.splitlines()[1]
        'BACKTEST SUMMARY REPORT'
    """

    # =========================================================================
    # Text
    # =========================================================================

    @staticmethod
    def generate_summary_report(result: BacktestResult) -> str:
        """Render the plain-text summary of one run."""
        config = result.config
        metrics = result.metrics

        lines = [
            "",
            "BACKTEST SUMMARY REPORT",
            "=======================",
            "",
            "Configuration:",
            f"- Start Date: {config.start_date.isoformat()}",
            f"- End Date: {config.end_date.isoformat()}",
            f"- Initial Capital: ${config.initial_capital:,.0f}",
            f"- Universe: {', '.join(config.universe)}",
            f"- Strategies: {', '.join(config.strategies)}",
            "",
            "Performance Metrics:",
        ]
        lines.extend(f"- {name}: {value}" for name, value in _metric_rows(metrics))
        lines.append(f"- Final Value: ${result.final_value:,.2f}")

        lines.extend(["", "Strategy Breakdown:"])
        for name, strategy_metrics in result.per_strategy_metrics.items():
            lines.append(
                f"- {name}: {strategy_metrics.total_return * 100:.2f}% return, "
                f"{strategy_metrics.total_trades} trades, "
                f"P&L ${strategy_metrics.total_pnl:,.2f}"
            )

        lines.extend(["", f"Top {TOP_POSITIONS} Most Profitable Positions:"])
        top = result.top_positions(TOP_POSITIONS)
        if not top:
            lines.append("(no closed positions)")
        for position in top:
            lines.append(
                f"{position.closed.isoformat()} - {position.strategy} - "
                f"{position.quantity}x {position.symbol} ({position.reason}) "
                f"P&L ${position.realized_pnl:,.2f}"
            )
        lines.append("")
        return "\n".join(lines)

    @staticmethod
    def generate_summary_table(metrics: PortfolioMetrics, format: str = 'text') -> str:
        """
        Format the metrics as a two-column table.

        Args:
            metrics: Metrics to format
            format: 'text' or 'markdown'
        """
        rows = _metric_rows(metrics)
        if format == 'markdown':
            out = ["| Metric | Value |", "|--------|-------|"]
            out.extend(f"| {name} | {value} |" for name, value in rows)
            return "\n".join(out)
        if format == 'text':
            width = max(len(name) for name, _ in rows)
            return "\n".join(f"{name:<{width}}  {value}" for name, value in rows)
        raise ValueError(f"Unsupported format: {format}. Use 'text' or 'markdown'")

    # =========================================================================
    # Files
    # =========================================================================

    @staticmethod
    def save_results(
        result: BacktestResult,
        output_dir: Union[str, Path] = DEFAULT_OUTPUT_DIR,
        timestamp: Optional[str] = None
    ) -> Tuple[Path, Path]:
        """
        Write the JSON result and the text summary.

        Returns:
            (json_path, summary_path)
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = timestamp or result_timestamp()

        json_path = output_dir / f"backtest_{timestamp}.json"
        with open(json_path, 'w') as f:
            json.dump(result.to_dict(), f, indent=2)
        logger.info(f"Results saved to: {json_path}")

        summary_path = output_dir / f"backtest_summary_{timestamp}.txt"
        with open(summary_path, 'w') as f:
            f.write(ReportGenerator.generate_summary_report(result))
        logger.info(f"Summary saved to: {summary_path}")

        return json_path, summary_path

    @staticmethod
    def load_results(path: Union[str, Path]) -> BacktestResult:
        """
        Restore a BacktestResult from a JSON result file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ReportError: If the file is not a valid result
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Results file not found: {path}")
        try:
            with open(path) as f:
                data = json.load(f)
            return BacktestResult.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise ReportError(f"Invalid results file {path}: {e}") from e

    # =========================================================================
    # Charts
    # =========================================================================

    @staticmethod
    def plot_equity_curve(
        result: BacktestResult,
        save_path: Optional[str] = None,
        title: str = 'Portfolio Equity'
    ):
        """
        Plot end-of-day portfolio value against the initial capital.

        Returns:
            matplotlib Figure (closed after saving)
        """
        import matplotlib
        matplotlib.use('Agg')
        import matplotlib.pyplot as plt

        frame = result.daily_pnl_frame()
        fig, ax = plt.subplots(figsize=DEFAULT_FIGSIZE)

        if not frame.empty:
            ax.plot(frame.index, frame['value'], color=COLOR_EQUITY, linewidth=1.5, label='Equity')
        ax.axhline(
            y=result.config.initial_capital,
            color=COLOR_BENCHMARK,
            linestyle='--',
            linewidth=1,
            alpha=0.7,
            label=f'Initial Capital (${result.config.initial_capital:,.0f})'
        )

        ax.set_title(title, fontsize=14, fontweight='bold')
        ax.set_xlabel('Date', fontsize=11)
        ax.set_ylabel('Equity ($)', fontsize=11)
        ax.legend(loc='upper left', framealpha=0.9)
        ax.grid(True, alpha=0.3)
        ax.yaxis.set_major_formatter(plt.FuncFormatter(lambda x, p: f'${x:,.0f}'))
        fig.autofmt_xdate()

        if save_path:
            _ensure_directory(save_path)
            fig.savefig(save_path, dpi=150, bbox_inches='tight')
            logger.info(f"Saved equity curve to {save_path}")
        plt.close(fig)
        return fig


# Module-level shortcuts
generate_summary_report = ReportGenerator.generate_summary_report
save_results = ReportGenerator.save_results
load_results = ReportGenerator.load_results


__all__ = [
    'ReportError',
    'ReportGenerator',
    'result_timestamp',
    'generate_summary_report',
    'save_results',
    'load_results',
]
