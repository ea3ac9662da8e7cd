"""
Structured logging system for catalogsim.

Provides centralized logging with console and file outputs, log levels,
and metrics tracking for monitoring similarity runs.
"""

import logging
import sys
import threading
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for monitoring pair computation and catalog writes.
    """

    def __init__(
        self,
        name: str = "catalogsim",
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

        # Computer threads and flush threads both record metrics
        self._lock = threading.Lock()
        self.metrics = self._empty_metrics()

        # Console handler
        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        # File handler
        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"catalogsim_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    @staticmethod
    def _empty_metrics() -> dict:
        return {
            "records_read": 0,
            "pairs_computed": 0,
            "pairs_skipped": 0,
            "pairs_normalized": 0,
            "batches_flushed": 0,
            "batches_failed": 0,
            "errors_by_type": {},
            "phase_seconds": {},
        }

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
        """Internal logging method with context."""
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_records_read(self, count: int):
        """Add to the number of catalog records read."""
        with self._lock:
            self.metrics["records_read"] += count

    def record_pair_computed(self):
        """Increment computed pair counter."""
        with self._lock:
            self.metrics["pairs_computed"] += 1

    def record_pair_skipped(self, error_type: str):
        """Record a pair that could not be built."""
        with self._lock:
            self.metrics["pairs_skipped"] += 1
            self._count_error(error_type)

    def record_pairs_normalized(self, count: int):
        """Add to the number of pairs that received an aggregate weight."""
        with self._lock:
            self.metrics["pairs_normalized"] += count

    def record_batch_flushed(self):
        """Increment acknowledged batch counter."""
        with self._lock:
            self.metrics["batches_flushed"] += 1

    def record_batch_failed(self, error_type: str):
        """Record a write batch that was not acknowledged."""
        with self._lock:
            self.metrics["batches_failed"] += 1
            self._count_error(error_type)

    def record_phase(self, phase: str, seconds: float):
        """Record how long a run phase took."""
        with self._lock:
            self.metrics["phase_seconds"][phase] = round(seconds, 3)

    def _count_error(self, error_type: str):
        errors = self.metrics["errors_by_type"]
        errors[error_type] = errors.get(error_type, 0) + 1

    def get_metrics(self) -> dict:
        """Return a snapshot of current metrics."""
        with self._lock:
            metrics_copy = self.metrics.copy()
            metrics_copy["errors_by_type"] = dict(self.metrics["errors_by_type"])
            metrics_copy["phase_seconds"] = dict(self.metrics["phase_seconds"])

        attempted = metrics_copy["pairs_computed"] + metrics_copy["pairs_skipped"]
        if attempted > 0:
            metrics_copy["pair_success_rate"] = round(
                metrics_copy["pairs_computed"] / attempted, 3
            )
        return metrics_copy

    def reset_metrics(self):
        """Clear metrics before a new run."""
        with self._lock:
            self.metrics = self._empty_metrics()

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Similarity Run Metrics ===")
        self.info(f"Records read: {metrics['records_read']}")
        self.info(
            f"Pairs: {metrics['pairs_computed']} computed, "
            f"{metrics['pairs_skipped']} skipped, "
            f"{metrics['pairs_normalized']} normalized"
        )
        self.info(
            f"Batches: {metrics['batches_flushed']} flushed, "
            f"{metrics['batches_failed']} failed"
        )

        if metrics["phase_seconds"]:
            self.info("Phase Durations:")
            for phase, seconds in metrics["phase_seconds"].items():
                self.info(f"  {phase}: {seconds:.3f}s")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "catalogsim",
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
