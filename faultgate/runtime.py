"""
Faultgate - Host runtime adapters.

The dispatch engine never talks to the interpreter directly. It goes
through a HostRuntime, which owns:

- the ambient reporting mask
- the native fault/exception hooks
- the record of the last fault that no handler took
- call stack capture

PythonRuntime wires these to CPython: warnings and ``trigger_error()``
are faults, ``sys.excepthook`` receives uncaught exceptions, and
exceptions escaping threads are kept as the last unreported fatal fault.
"""

from __future__ import annotations

import sys
import logging
import threading
import warnings
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

from .core import (
    Category,
    Fault,
    MaskLike,
    SeverityMask,
    category_label,
    exception_location,
    safe_str,
)


FaultHook = Callable[..., bool]
ExceptionHook = Callable[[BaseException], None]


class HostRuntime(ABC):
    """
    Interface the dispatch engine expects from its host.

    Hooks are installed as a stack: uninstalling restores whatever was
    installed before.
    """

    @abstractmethod
    def reporting_mask(self) -> SeverityMask:
        """Currently enabled categories. May change at any time."""

    @abstractmethod
    def install_handlers(
        self,
        on_fault: FaultHook,
        on_exception: ExceptionHook,
        categories: MaskLike = SeverityMask.ALL,
    ):
        """Route faults of ``categories`` and uncaught exceptions to the hooks."""

    @abstractmethod
    def current_handlers(self) -> tuple[Optional[Callable], Optional[Callable]]:
        """The hooks currently bound, as ``(on_fault, on_exception)``."""

    @abstractmethod
    def uninstall_handlers(self) -> tuple[Optional[Callable], Optional[Callable]]:
        """Unbind the current hooks and return them."""

    @abstractmethod
    def last_error(self) -> Optional[Fault]:
        """Last fault that was not taken by a handler, if any."""

    @abstractmethod
    def clear_last_error(self):
        """Forget the last unreported fault."""

    @abstractmethod
    def capture_stack(self, skip: int = 0, include_scope: bool = False) -> list[dict[str, Any]]:
        """Frames of the caller's stack, innermost first."""


# ============================================================================
# CPython adapter
# ============================================================================

WARNING_CATEGORIES: list[tuple[type[Warning], Category]] = [
    (DeprecationWarning, Category.DEPRECATED),
    (PendingDeprecationWarning, Category.STRICT),
    (FutureWarning, Category.USER_DEPRECATED),
    (SyntaxWarning, Category.COMPILE_WARNING),
    (ImportWarning, Category.CORE_WARNING),
    (ResourceWarning, Category.NOTICE),
    (RuntimeWarning, Category.WARNING),
]


def warning_category(warning_class: type[Warning]) -> Category:
    """Map a Python warning class to a fault category."""
    for cls, category in WARNING_CATEGORIES:
        if issubclass(warning_class, cls):
            return category
    return Category.USER_WARNING


@dataclass(frozen=True, slots=True)
class _Hooks:
    on_fault: FaultHook
    on_exception: ExceptionHook
    categories: SeverityMask


class PythonRuntime(HostRuntime):
    """
    CPython host runtime.

    Usage:
        ```python
        runtime = PythonRuntime()
        handler = ErrorHandler(runtime=runtime)
        handler.register()

        runtime.trigger_error("cache is cold", Category.USER_NOTICE)
        with runtime.silenced():
            warnings.warn("ignored unless screamed")
        ```
    """

    def __init__(
        self,
        reporting: MaskLike = SeverityMask.ALL,
        *,
        logger: Optional[logging.Logger] = None,
    ):
        self.reporting = SeverityMask(reporting)
        self.logger = logger or logging.getLogger("faultgate.runtime")

        self._hooks: list[_Hooks] = []
        self._saved: Optional[tuple[Any, Any, Any]] = None
        self._last_error: Optional[Fault] = None

    # ========================================================================
    # Reporting mask
    # ========================================================================

    def reporting_mask(self) -> SeverityMask:
        return self.reporting

    @contextmanager
    def silenced(self, mask: MaskLike = SeverityMask.NONE) -> Iterator[SeverityMask]:
        """Temporarily replace the reporting mask (``NONE`` by default)."""
        previous = self.reporting
        self.reporting = SeverityMask(mask)
        try:
            yield previous
        finally:
            self.reporting = previous

    # ========================================================================
    # Hook management
    # ========================================================================

    def install_handlers(
        self,
        on_fault: FaultHook,
        on_exception: ExceptionHook,
        categories: MaskLike = SeverityMask.ALL,
    ):
        if not self._hooks:
            self._patch()
        self._hooks.append(_Hooks(on_fault, on_exception, SeverityMask(categories)))

    def current_handlers(self) -> tuple[Optional[Callable], Optional[Callable]]:
        if not self._hooks:
            return None, None
        hooks = self._hooks[-1]

        # Someone else may have rebound the interpreter hooks since
        on_fault = hooks.on_fault if warnings.showwarning == self._showwarning else warnings.showwarning
        on_exception = hooks.on_exception if sys.excepthook == self._excepthook else sys.excepthook
        return on_fault, on_exception

    def uninstall_handlers(self) -> tuple[Optional[Callable], Optional[Callable]]:
        if not self._hooks:
            return None, None
        hooks = self._hooks.pop()
        if not self._hooks:
            self._unpatch()
        return hooks.on_fault, hooks.on_exception

    def _patch(self):
        self._saved = (sys.excepthook, warnings.showwarning, threading.excepthook)
        sys.excepthook = self._excepthook
        warnings.showwarning = self._showwarning
        threading.excepthook = self._thread_excepthook

    def _unpatch(self):
        if self._saved is None:
            return
        excepthook, showwarning, thread_excepthook = self._saved
        if sys.excepthook == self._excepthook:
            sys.excepthook = excepthook
        if warnings.showwarning == self._showwarning:
            warnings.showwarning = showwarning
        if threading.excepthook == self._thread_excepthook:
            threading.excepthook = thread_excepthook
        self._saved = None

    # ========================================================================
    # Fault entry points
    # ========================================================================

    def trigger_error(self, message: str, category: MaskLike = Category.USER_NOTICE) -> bool:
        """
        Report a fault from the caller's location.

        The caller's local variables are passed along as the fault scope.

        Returns:
            Whether the fault was logged by a handler
        """
        frame = sys._getframe(1)
        scope = dict(frame.f_locals)
        return self.report(
            category,
            message,
            frame.f_code.co_filename,
            frame.f_lineno,
            scope,
            trace_offset=1,
        )

    def report(
        self,
        category: MaskLike,
        message: str,
        file: str,
        line: int,
        scope: Optional[dict[str, Any]] = None,
        trace_offset: int = 0,
    ) -> bool:
        """
        Hand a fault to the installed handler.

        Faults the handler does not take (no handler, unregistered
        category, or a False return) go through the native path: they
        become the last error and are written to the runtime logger when
        the reporting mask allows.
        """
        if trace_offset >= 0:
            trace_offset += 1

        hooks = self._hooks[-1] if self._hooks else None
        if hooks is not None and category in hooks.categories:
            if hooks.on_fault(category, message, file, line, scope, trace_offset):
                return True

        self._native_report(Fault(int(category), message, file, line))
        return False

    def _native_report(self, fault: Fault):
        self._last_error = fault
        if fault.category in self.reporting:
            self.logger.warning(
                "%s: %s in %s on line %d",
                category_label(fault.category),
                fault.message,
                fault.file,
                fault.line,
                extra={"fault": fault.to_dict()},
            )

    def _showwarning(self, message, category, filename, lineno, file=None, line=None):
        fault_category = warning_category(category)
        depth, frame = self._find_frame(filename, lineno)
        scope = dict(frame.f_locals) if frame is not None else None

        self.report(fault_category, safe_str(message), filename, lineno, scope, depth)

    def _excepthook(self, exc_type, exc, tb):
        hooks = self._hooks[-1] if self._hooks else None
        if hooks is None:
            sys.__excepthook__(exc_type, exc, tb)
            return
        hooks.on_exception(exc)

    def _thread_excepthook(self, args):
        # Thread exceptions cannot reach the main handler: keep them for shutdown
        if args.exc_value is None or issubclass(args.exc_type, SystemExit):
            return
        file, line = exception_location(args.exc_value)
        name = args.thread.name if args.thread is not None else "<unknown>"
        self._last_error = Fault(
            int(Category.ERROR),
            f"Uncaught exception in thread {name}: {safe_str(args.exc_value)}",
            file,
            line,
        )
        if Category.ERROR in self.reporting and self._saved is not None:
            self._saved[2](args)

    @staticmethod
    def _find_frame(filename: str, lineno: int):
        """Locate the frame a warning points at, counting frames on the way."""
        frame = sys._getframe(1)
        depth = 0
        while frame is not None:
            if frame.f_code.co_filename == filename and frame.f_lineno == lineno:
                return depth, frame
            frame = frame.f_back
            depth += 1
        return 0, None

    # ========================================================================
    # Last unreported fault
    # ========================================================================

    def last_error(self) -> Optional[Fault]:
        if self._last_error is None or not self._last_error.message:
            return None
        return self._last_error

    def clear_last_error(self):
        self._last_error = None

    # ========================================================================
    # Stack capture
    # ========================================================================

    def capture_stack(self, skip: int = 0, include_scope: bool = False) -> list[dict[str, Any]]:
        frame = sys._getframe(1)
        for _ in range(skip):
            if frame.f_back is None:
                break
            frame = frame.f_back

        stack = []
        while frame is not None:
            entry: dict[str, Any] = {
                "file": frame.f_code.co_filename,
                "line": frame.f_lineno,
                "function": frame.f_code.co_name,
            }
            if include_scope:
                entry["locals"] = dict(frame.f_locals)
            stack.append(entry)
            frame = frame.f_back
        return stack

    def __repr__(self) -> str:
        return f"PythonRuntime(reporting={self.reporting!r}, handlers={len(self._hooks)})"


# ============================================================================
# Convenience Functions
# ============================================================================

_default_runtime: Optional[PythonRuntime] = None


def get_default_runtime() -> PythonRuntime:
    """
    Get or create the process-wide Python runtime.

    Returns:
        Global PythonRuntime instance
    """
    global _default_runtime
    if _default_runtime is None:
        _default_runtime = PythonRuntime()
    return _default_runtime
