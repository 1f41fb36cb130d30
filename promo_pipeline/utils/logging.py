"""Structured Logging Configuration.

JSON-per-line logging for pipeline services, clients and utilities.
Every entry carries an ``event`` name plus arbitrary keyword context, and
loggers can be bound to fixed context (job_id, scene_index) so that every
line emitted during a job run is correlated.

Usage:
    log = get_logger(__name__)
    job_log = log.bind(job_id=str(job.id))
    job_log.info("scene_submitted", scene_index=0, task_id="...")
"""

import json
import logging
import sys
from typing import Any


class StructuredLogger:
    """Wrapper around a stdlib Logger that emits JSON entries.

    Attributes:
        context: Key/value pairs merged into every entry.
    """

    def __init__(self, logger: logging.Logger, context: dict[str, Any] | None = None):
        self._logger = logger
        self.context: dict[str, Any] = dict(context or {})

    def bind(self, **kwargs: Any) -> "StructuredLogger":
        """Return a new logger with additional bound context."""
        return StructuredLogger(self._logger, {**self.context, **kwargs})

    def _format_json(self, event: str, **kwargs: Any) -> str:
        log_entry = {"event": event, **self.context, **kwargs}
        return json.dumps(log_entry, default=str)

    def info(self, event: str, **kwargs: Any) -> None:
        self._logger.info(self._format_json(event, **kwargs))

    def error(self, event: str, **kwargs: Any) -> None:
        self._logger.error(self._format_json(event, **kwargs))

    def warning(self, event: str, **kwargs: Any) -> None:
        self._logger.warning(self._format_json(event, **kwargs))

    def debug(self, event: str, **kwargs: Any) -> None:
        self._logger.debug(self._format_json(event, **kwargs))

    def exception(self, event: str, **kwargs: Any) -> None:
        """Log at error level including the active traceback."""
        self._logger.exception(self._format_json(event, **kwargs))


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance for the given module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Configured StructuredLogger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

    return StructuredLogger(logger)
