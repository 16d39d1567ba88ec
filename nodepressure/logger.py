"""
Structured logging for nodepressure.

Provides centralized logging with console and file output, plus counters
for pressure samples, candidate selections and eviction outcomes so a
long-running watch loop can report what it did.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for monitoring the eviction loop.
    """

    def __init__(
        self,
        name: str = "nodepressure",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()  # Remove existing handlers

        self.metrics = {
            "api_calls": 0,
            "pressure_samples": 0,
            "pressure_transitions": 0,
            "selections": 0,
            "selections_empty": 0,
            "evictions_attempted": 0,
            "evictions_successful": 0,
            "evictions_failed": 0,
            "errors_by_type": {},
        }

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"nodepressure_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_api_call(self):
        self.metrics["api_calls"] += 1

    def record_pressure_sample(self, transitioned: bool = False):
        """Record one PSI sample, and whether it flipped the high/low state."""
        self.metrics["pressure_samples"] += 1
        if transitioned:
            self.metrics["pressure_transitions"] += 1

    def record_selection(self, selected: bool):
        self.metrics["selections"] += 1
        if not selected:
            self.metrics["selections_empty"] += 1

    def record_eviction_attempt(self):
        self.metrics["evictions_attempted"] += 1

    def record_eviction_success(self):
        self.metrics["evictions_successful"] += 1

    def record_eviction_failure(self, error_type: str):
        """Record a failed eviction, bucketed by error type."""
        self.metrics["evictions_failed"] += 1
        self.record_error(error_type)

    def record_error(self, error_type: str):
        errors = self.metrics["errors_by_type"]
        errors[error_type] = errors.get(error_type, 0) + 1

    def get_metrics(self) -> dict:
        """Return current metrics, with the eviction success rate filled in."""
        metrics_copy = dict(self.metrics)
        metrics_copy["errors_by_type"] = dict(self.metrics["errors_by_type"])
        attempted = metrics_copy["evictions_attempted"]
        metrics_copy["eviction_success_rate"] = (
            round(metrics_copy["evictions_successful"] / attempted, 3) if attempted > 0 else 0.0
        )
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Eviction Loop Metrics ===")
        self.info(f"API Calls: {metrics['api_calls']}")
        self.info(
            f"Pressure Samples: {metrics['pressure_samples']} "
            f"({metrics['pressure_transitions']} transitions)"
        )
        self.info(
            f"Selections: {metrics['selections']} "
            f"({metrics['selections_empty']} without eligible candidate)"
        )
        rate = metrics["eviction_success_rate"] * 100
        self.info(
            f"Evictions: {metrics['evictions_successful']}/{metrics['evictions_attempted']} "
            f"({rate:.1f}% success)"
        )

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "nodepressure",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
