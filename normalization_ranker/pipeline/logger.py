"""Structured logging for evaluation runs."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from ..core.enumeration import PipelineConfiguration
from ..core.metrics import ScoreRow
from ..core.ranking import RankedResult


class ColoredFormatter(logging.Formatter):
    """Custom formatter with color support for console output."""

    def __init__(self, fmt: str, datefmt: str, colors: dict):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.colors = colors

    def format(self, record):
        # Copy so that other handlers see the plain level name
        record = logging.makeLogRecord(record.__dict__)
        levelname = record.levelname
        color = self.colors.get(levelname, self.colors["RESET"])
        record.levelname = f"{color}{levelname}{self.colors['RESET']}"
        return super().format(record)


class PipelineLogger:
    """Structured logging for evaluation runs.

    Provides file logging (detailed, persistent) and console logging
    (colored, user-friendly) with structured events for run start,
    per-configuration completion or failure, and the run summary.

    Parameters
    ----------
    log_dir : str
        Directory for log files
    log_level : str
        Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_name : str, optional
        Logger name. Default: "normalization_ranker", so that module
        loggers of the package propagate into the run log.

    Attributes
    ----------
    log_dir : Path
        Directory for log files
    log_file : Path
        Path to the run log file
    logger : logging.Logger
        Python logger instance

    Example
    -------
    >>> logger = PipelineLogger("logs/", log_level="INFO")
    >>> logger.setup()
    >>> logger.log_run_start(240, inputs.summary())
    >>> logger.log_configuration_complete(configuration, row)
    """

    COLORS = {
        "DEBUG": "\033[0;36m",  # Cyan
        "INFO": "\033[0;34m",  # Blue
        "WARNING": "\033[1;33m",  # Yellow
        "ERROR": "\033[0;31m",  # Red
        "CRITICAL": "\033[1;31m",  # Bold Red
        "RESET": "\033[0m",
    }

    def __init__(
        self,
        log_dir: str,
        log_level: str = "INFO",
        log_name: str = "normalization_ranker",
    ):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_file = self.log_dir / f"ranking_{timestamp}.log"

        self.log_level = getattr(logging, log_level.upper())
        self.logger = logging.getLogger(log_name)
        self.logger.setLevel(self.log_level)
        self.logger.handlers = []
        self._n_total = 0
        self._n_done = 0

    def setup(self, console: bool = True) -> None:
        """Configure logging handlers.

        Sets up file handler (detailed logs) and, unless ``console`` is
        False, a console handler (colored output).
        """
        file_handler = logging.FileHandler(self.log_file, mode="w")
        file_handler.setLevel(self.log_level)
        file_handler.setFormatter(self._get_file_formatter())
        self.logger.addHandler(file_handler)

        if console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(self.log_level)
            console_handler.setFormatter(self._get_console_formatter())
            self.logger.addHandler(console_handler)

    def close(self) -> None:
        """Detach and close all handlers."""
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)

    def _get_file_formatter(self) -> logging.Formatter:
        """Get formatter for file logging (detailed, no colors)."""
        return logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def _get_console_formatter(self) -> logging.Formatter:
        """Get formatter for console logging (colored, concise)."""
        return ColoredFormatter(
            fmt="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
            colors=self.COLORS,
        )

    def log_run_start(self, n_configurations: int, summary: Optional[Dict[str, Any]] = None) -> None:
        """Log the start of an evaluation run.

        Parameters
        ----------
        n_configurations : int
            Number of configurations to evaluate
        summary : Dict[str, Any], optional
            Inputs summary (see ``EvaluationInputs.summary``)
        """
        self._n_total = n_configurations
        self._n_done = 0
        separator = "=" * 80
        self.logger.info(separator)
        self.logger.info(f"Starting evaluation of {n_configurations} configurations")
        for key, value in (summary or {}).items():
            self.logger.info(f"  {key}: {value}")
        self.logger.info(separator)

    def log_configuration_complete(self, configuration: PipelineConfiguration, row: ScoreRow) -> None:
        """Log a scored configuration, or its failure."""
        self._n_done += 1
        progress = f"({self._n_done}/{self._n_total})" if self._n_total else ""
        if row.is_failed:
            self.log_configuration_failed(configuration, row.error or "")
            return
        n_unavailable = len(row.unavailable)
        extra = f", {n_unavailable} metrics unavailable" if n_unavailable else ""
        self.logger.info(
            f"{configuration.label} scored in {self.format_duration(row.duration)}{extra} {progress}"
        )

    def log_configuration_failed(self, configuration: PipelineConfiguration, error: str) -> None:
        self.logger.warning(f"{configuration.label} failed: {error}")

    def log_run_summary(self, result: RankedResult, duration: float, top_n: int = 5) -> None:
        """Log run totals and the best configurations."""
        separator = "=" * 80
        self.logger.info(separator)
        self.logger.info(
            f"Ranked {len(result)} configurations in {self.format_duration(duration)} "
            f"({len(result.failed)} failed, {len(result.skipped)} skipped)"
        )
        for entry in result.top(top_n):
            self.logger.info(f"  #{entry.rank} {entry.label} composite={entry.composite:.3f}")
        self.logger.info(separator)

    def log_info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def log_warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def log_error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    @staticmethod
    def format_duration(seconds: float) -> str:
        """Format duration in seconds to human-readable string.

        Parameters
        ----------
        seconds : float
            Duration in seconds

        Returns
        -------
        str
            Formatted string (e.g., "45.2s", "1m 23s", "2h 15m")
        """
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            mins = int(seconds // 60)
            secs = int(seconds % 60)
            return f"{mins}m {secs}s"
        else:
            hours = int(seconds // 3600)
            mins = int((seconds % 3600) // 60)
            return f"{hours}h {mins}m"
