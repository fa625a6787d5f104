"""
Logging configuration for WB Finance Report.

Console output is colored through colorlog, file output goes to a rotating
log file. Level, directory and verbosity are taken from the environment
(LOG_LEVEL, LOG_DIR, DEBUG_MODE) so the core modules never touch config.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional, Set

import colorlog


_CONFIGURED: Set[str] = set()


class FinanceReportLogger:
    """Builds handlers for one named logger."""

    def __init__(self, name: str = "wb_finance_report"):
        self.name = name
        self.logger = logging.getLogger(name)
        if name not in _CONFIGURED:
            self._setup_logger()
            _CONFIGURED.add(name)

    def _setup_logger(self) -> None:
        """Attach console and file handlers according to environment."""
        log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        log_dir = os.getenv("LOG_DIR", "./logs")
        debug_mode = os.getenv("DEBUG_MODE", "false").lower() == "true"

        self.logger.setLevel(getattr(logging, log_level, logging.INFO))
        self.logger.handlers.clear()

        self._setup_console_handler(debug_mode)

        # Файловый лог необязателен: read-only окружения (CI) пишут только в консоль
        try:
            Path(log_dir).mkdir(parents=True, exist_ok=True)
            self._setup_file_handler(log_dir, debug_mode)
        except OSError as e:
            self.logger.warning(f"File logging disabled, cannot write to {log_dir}: {e}")

        self.logger.propagate = False

    def _setup_console_handler(self, debug_mode: bool) -> None:
        """Setup colored console logging."""
        console_handler = colorlog.StreamHandler(sys.stderr)

        if debug_mode:
            color_format = (
                "%(log_color)s%(asctime)s [%(levelname)8s] "
                "%(name)s.%(funcName)s:%(lineno)d - %(message)s"
            )
        else:
            color_format = (
                "%(log_color)s%(asctime)s [%(levelname)8s] "
                "%(name)s - %(message)s"
            )

        formatter = colorlog.ColoredFormatter(
            color_format,
            datefmt="%Y-%m-%d %H:%M:%S",
            log_colors={
                'DEBUG': 'cyan',
                'INFO': 'green',
                'WARNING': 'yellow',
                'ERROR': 'red',
                'CRITICAL': 'red,bg_white',
            }
        )

        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

    def _setup_file_handler(self, log_dir: str, debug_mode: bool) -> None:
        """Setup rotating file logging (5MB x 5 files)."""
        log_file = os.path.join(log_dir, "wb_finance_report.log")

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=5 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        )

        if debug_mode:
            file_format = (
                "%(asctime)s [%(levelname)8s] %(name)s.%(funcName)s:%(lineno)d - "
                "%(message)s"
            )
        else:
            file_format = "%(asctime)s [%(levelname)8s] %(name)s - %(message)s"

        file_handler.setFormatter(logging.Formatter(file_format, datefmt="%Y-%m-%d %H:%M:%S"))
        self.logger.addHandler(file_handler)

    def get_logger(self) -> logging.Logger:
        """Get the configured logger instance."""
        return self.logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger instance for the given name.

    Args:
        name: Logger name. If None, uses the caller's module name.

    Returns:
        Configured logger instance.
    """
    if name is None:
        frame = sys._getframe(1)
        name = frame.f_globals.get('__name__', 'wb_finance_report')

    return FinanceReportLogger(name).get_logger()


def setup_logging(level: Optional[str] = None) -> None:
    """
    Reconfigure every logger created so far.

    Called once by the CLI after argument parsing so that ``--log-level``
    overrides LOG_LEVEL for loggers that modules created at import time.

    Args:
        level: Optional level name overriding LOG_LEVEL
    """
    if level:
        os.environ["LOG_LEVEL"] = level.upper()

    names = list(_CONFIGURED) or ["wb_finance_report"]
    _CONFIGURED.clear()
    for name in names:
        FinanceReportLogger(name)

    logger = logging.getLogger("wb_finance_report")
    logger.debug(f"Logging initialized for {len(names)} loggers")
