"""
Structured logging for bqiam.

Diagnostics go to stderr as one JSON object per line; stdout is left to
the CLI for summaries and query rows, so ``bqiam dataset x | ...`` stays
clean. Every record of one invocation shares a ``run_id`` so that the
grants of a batch, or the projects of a crawl, can be picked out of a
shared log afterwards.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from typing import Any


# record attributes copied into the JSON object when set
_CONTEXT_KEYS = ("run_id", "project", "dataset", "operation")


def _new_run_id() -> str:
    return uuid.uuid4().hex[:12]


class StructuredFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_entry.update(
            (key, getattr(record, key))
            for key in _CONTEXT_KEYS
            if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            log_entry["exception"] = f"{type(exc).__name__}: {exc}"
        return json.dumps(log_entry)


class BqiamLogger:
    """Logger carrying the project / dataset / operation of each record.

    Attributes:
        logger: The underlying :class:`logging.Logger`.
        run_id: Correlation id stamped on every record of this process.
    """

    def __init__(self, name: str = "bqiam") -> None:
        self.logger = logging.getLogger(name)
        self.run_id = _new_run_id()
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.INFO)

    def set_verbose(self, verbose: bool) -> None:
        """``--verbose`` turns on the per-dataset debug records."""
        self.logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    def log_operation(
        self,
        level: int,
        message: str,
        *,
        project: str | None = None,
        dataset: str | None = None,
        operation: str | None = None,
        run_id: str | None = None,
        exc_info: bool = False,
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return
        context = {"project": project, "dataset": dataset, "operation": operation}
        extra = {k: v for k, v in context.items() if v is not None}
        extra["run_id"] = run_id or self.run_id
        self.logger.log(level, message, extra=extra, exc_info=exc_info)

    def info(self, message: str, **context: Any) -> None:
        self.log_operation(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self.log_operation(logging.WARNING, message, **context)

    def error(self, message: str, **context: Any) -> None:
        self.log_operation(logging.ERROR, message, **context)

    def debug(self, message: str, **context: Any) -> None:
        self.log_operation(logging.DEBUG, message, **context)


bq_logger = BqiamLogger()
