"""
Structured logging for dealscout.

One process-wide StructuredLogger (see get_logger) writes to stdout and to a
daily file under logs/. Keyword arguments become a JSON context suffix:

    logger.info("Feedback recorded", scope="early", entity_id="per_001")
    # ... | INFO     | dealscout | Feedback recorded | Context: {"scope": "early", ...}

It also keeps in-memory counters for feedback and remote sync, printed by
log_metrics_summary() at the end of network-facing commands.
"""

import copy
import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"


def _new_metrics() -> dict:
    return {
        "feedback_recorded": 0,
        "feedback_replaced": 0,
        "pairs_recorded": 0,
        "sync_attempts": 0,
        "sync_successes": 0,
        "sync_failures": 0,
        "errors_by_type": {},
        "entity_type_success_rate": {},
    }


def _handler(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=DATE_FORMAT))
    return handler


class StructuredLogger:
    """Thin wrapper over a stdlib logger plus feedback/sync counters."""

    def __init__(
        self,
        name: str = "dealscout",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Args:
            name: Logger name
            level: Console level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for daily log files (default: logs/)
            enable_file: Write a dealscout_YYYYMMDD.log file at DEBUG level
            enable_console: Echo to stdout at `level`
        """
        numeric_level = getattr(logging, level.upper())
        self.logger = logging.getLogger(name)
        self.logger.setLevel(numeric_level)
        self.logger.handlers.clear()
        self.metrics = _new_metrics()

        if enable_console:
            self.logger.addHandler(_handler(logging.StreamHandler(sys.stdout), numeric_level, CONSOLE_FORMAT))

        if enable_file:
            log_dir = Path(log_dir) if log_dir is not None else Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)
            log_file = log_dir / f"dealscout_{datetime.now().strftime('%Y%m%d')}.log"
            self.logger.addHandler(
                _handler(logging.FileHandler(log_file, encoding="utf-8"), logging.DEBUG, FILE_FORMAT)
            )

    def debug(self, message: str, **context):
        self._log(logging.DEBUG, message, context)

    def info(self, message: str, **context):
        self._log(logging.INFO, message, context)

    def warning(self, message: str, **context):
        self._log(logging.WARNING, message, context)

    def error(self, message: str, **context):
        self._log(logging.ERROR, message, context)

    def critical(self, message: str, **context):
        self._log(logging.CRITICAL, message, context)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str, ensure_ascii=False)}"
        self.logger.log(level, message)

    # Metrics

    def record_feedback(self, replaced: bool = False):
        """Count one committed like/dislike; replaced means a prior record was reversed."""
        self.metrics["feedback_recorded"] += 1
        if replaced:
            self.metrics["feedback_replaced"] += 1

    def record_pair(self):
        self.metrics["pairs_recorded"] += 1

    def _entity_stats(self, entity_type: str) -> dict:
        return self.metrics["entity_type_success_rate"].setdefault(
            entity_type, {"attempts": 0, "successes": 0}
        )

    def record_sync_attempt(self, entity_type: str):
        self.metrics["sync_attempts"] += 1
        self._entity_stats(entity_type)["attempts"] += 1

    def record_sync_success(self, entity_type: str):
        self.metrics["sync_successes"] += 1
        self._entity_stats(entity_type)["successes"] += 1

    def record_sync_failure(self, entity_type: str, error_type: str):
        self.metrics["sync_failures"] += 1
        errors = self.metrics["errors_by_type"]
        errors[error_type] = errors.get(error_type, 0) + 1

    def get_metrics(self) -> dict:
        """Snapshot of the counters with a success_rate per entity type."""
        metrics = copy.deepcopy(self.metrics)
        for stats in metrics["entity_type_success_rate"].values():
            if stats["attempts"]:
                stats["success_rate"] = round(stats["successes"] / stats["attempts"], 3)
        return metrics

    def log_metrics_summary(self):
        metrics = self.get_metrics()
        attempts = metrics["sync_attempts"]
        successes = metrics["sync_successes"]
        overall = round(successes / attempts * 100, 1) if attempts else 0.0

        self.info("=== Session Metrics ===")
        self.info(
            f"Feedback: {metrics['feedback_recorded']} "
            f"({metrics['feedback_replaced']} replaced), pairs: {metrics['pairs_recorded']}"
        )
        self.info(f"Sync: {successes}/{attempts} ({overall}% success)")

        for entity_type, stats in sorted(metrics["entity_type_success_rate"].items()):
            rate = stats.get("success_rate", 0) * 100
            self.info(f"  {entity_type}: {stats['successes']}/{stats['attempts']} ({rate:.1f}%)")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in sorted(metrics["errors_by_type"].items()):
                self.info(f"  {error_type}: {count}")


_global_logger: Optional[StructuredLogger] = None


def get_logger(name: str = "dealscout", level: Optional[str] = None, **kwargs) -> StructuredLogger:
    """
    Return the process-wide logger, creating it on first use.

    Only the first call's arguments matter. Level and log directory fall back
    to DEALSCOUT_LOG_LEVEL and DEALSCOUT_LOG_DIR.
    """
    global _global_logger

    if _global_logger is None:
        level = level or os.getenv("DEALSCOUT_LOG_LEVEL", "INFO")
        if "log_dir" not in kwargs and os.getenv("DEALSCOUT_LOG_DIR"):
            kwargs["log_dir"] = Path(os.environ["DEALSCOUT_LOG_DIR"])
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Forget the process-wide logger (tests use this for fresh metrics)."""
    global _global_logger
    _global_logger = None
