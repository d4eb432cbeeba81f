"""
Faultgate - Default fault logger.

Delivers dispatched faults to the stdlib ``logging`` system. All loggers
of a process write to one shared sink, opened lazily on first use.
"""

from __future__ import annotations

import sys
import time
import logging
from typing import Any, Optional, Protocol

from .core import Category, Fault, SeverityMask


class Logger(Protocol):
    """Interface the dispatcher delivers faults to."""

    def log_error(
        self,
        fault: Fault,
        trace_offset: int,
        include_scope: bool,
        log_time: float,
    ) -> None:
        ...


FATAL = SeverityMask.of(
    Category.ERROR,
    Category.PARSE,
    Category.CORE_ERROR,
    Category.COMPILE_ERROR,
)
ERRORS = SeverityMask.of(Category.USER_ERROR, Category.RECOVERABLE_ERROR)
WARNINGS = SeverityMask.of(
    Category.WARNING,
    Category.CORE_WARNING,
    Category.COMPILE_WARNING,
    Category.USER_WARNING,
)


def log_level(category: int) -> int:
    """Stdlib logging level for a fault category."""
    if category in FATAL:
        return logging.CRITICAL
    if category in ERRORS:
        return logging.ERROR
    if category in WARNINGS:
        return logging.WARNING
    return logging.INFO


# ============================================================================
# Shared sink
# ============================================================================

_log_file = "stderr"
_sink: Optional[logging.Handler] = None

SINK_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def configure_sink(log_file: str):
    """
    Point the shared sink at ``log_file``.

    ``"stderr"`` and ``"stdout"`` name the standard streams, anything else
    is a file path opened in append mode. An already opened sink is closed
    so the next logger reopens it at the new location.
    """
    global _log_file
    if log_file == _log_file:
        return
    _log_file = log_file
    close_sink()


def open_sink() -> logging.Handler:
    """Return the shared sink, opening it on first use."""
    global _sink
    if _sink is None:
        if _log_file == "stderr":
            _sink = logging.StreamHandler(sys.stderr)
        elif _log_file == "stdout":
            _sink = logging.StreamHandler(sys.stdout)
        else:
            _sink = logging.FileHandler(_log_file, mode="a", encoding="utf-8")
        _sink.setFormatter(logging.Formatter(SINK_FORMAT))
    return _sink


def close_sink():
    """Close the shared sink and detach it from every logger using it."""
    global _sink
    if _sink is None:
        return
    for name in list(logging.root.manager.loggerDict):
        candidate = logging.getLogger(name)
        if _sink in candidate.handlers:
            candidate.removeHandler(_sink)
    _sink.close()
    _sink = None


# ============================================================================
# FaultLogger
# ============================================================================

class FaultLogger:
    """
    Render faults as log records.

    Each fault becomes one record: a headline, then the trace frames
    (skipping the first ``trace_offset`` ones) and, when requested, the
    local scope. Rendering scope values calls ``str()`` on them; if that
    raises, the exception propagates to the dispatcher, which takes care
    of it.

    Args:
        logger: Logger to emit on (``faultgate.errors`` by default)
        sink: Handler to attach (the shared sink by default)
        start_time: Reference time for the ``elapsed`` field
    """

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        *,
        sink: Optional[logging.Handler] = None,
        start_time: Optional[float] = None,
    ):
        self.logger = logger or logging.getLogger("faultgate.errors")
        self.start_time = start_time if start_time is not None else time.time()

        sink = sink if sink is not None else open_sink()
        if sink not in self.logger.handlers:
            self.logger.addHandler(sink)
        self.sink = sink

    def log_error(
        self,
        fault: Fault,
        trace_offset: int,
        include_scope: bool,
        log_time: float,
    ) -> None:
        lines = [str(fault)]

        if fault.trace:
            lines.extend(self._format_trace(fault.trace[max(trace_offset, 0):], include_scope))

        if include_scope and fault.scope:
            lines.append("  scope:")
            lines.extend(self._format_scope(fault.scope, indent="    "))

        self.logger.log(
            log_level(fault.category),
            "\n".join(lines),
            extra={
                "fault": fault.to_dict(),
                "trace_offset": trace_offset,
                "elapsed": round(log_time - self.start_time, 6),
            },
        )

    def _format_trace(self, frames: list[dict[str, Any]], include_scope: bool) -> list[str]:
        lines = []
        for index, frame in enumerate(frames):
            lines.append(
                f"  #{index} {frame.get('function', '?')}() "
                f"{frame.get('file', '?')}:{frame.get('line', 0)}"
            )
            if include_scope and frame.get("locals"):
                lines.extend(self._format_scope(frame["locals"], indent="      "))
        return lines

    @staticmethod
    def _format_scope(scope: dict[str, Any], indent: str) -> list[str]:
        return [
            f"{indent}{name} = {value}"
            for name, value in scope.items()
            if not name.startswith("__")
        ]
