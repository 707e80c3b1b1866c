"""
Runtime Environment Setup

Applies the resolved configuration to the process: logging handlers and the
data directory that holds logs and backtest artifacts.
"""

from pathlib import Path
from typing import Optional
import logging

from cppi_backtester.cli.config_schema import LoggingConfig

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def ensure_data_dir(settings: LoggingConfig) -> Path:
    """Create the configured data directory if needed."""
    path = Path(settings.data_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path


def configure_logging(
    settings: Optional[LoggingConfig] = None,
    level: Optional[str] = None
) -> None:
    """
    Configure root logging from the logging settings.

    Args:
        settings: Logging configuration (defaults when None)
        level: Level name overriding ``settings.level``, e.g. from --verbose
    """
    settings = settings or LoggingConfig()

    log_level = getattr(logging, (level or settings.level).upper(), logging.INFO)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    formatter = logging.Formatter(LOG_FORMAT)

    # Console handler
    if not root_logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    # File handler (if configured)
    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        already = any(
            isinstance(h, logging.FileHandler)
            and Path(h.baseFilename) == log_path.resolve()
            for h in root_logger.handlers
        )
        if not already:
            file_handler = logging.FileHandler(log_path)
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

    logger.debug(f"Logging configured at {logging.getLevelName(log_level)}")
