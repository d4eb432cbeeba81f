"""
Faultgate - Error handler.

ErrorHandler is a tunable fault and exception handler. It composes:

- a PolicyEngine with five bit fields (logged, scream, thrown, scoped, traced)
- a DedupCache so repeated faults carry their trace only once
- a StackedQueue for faults raised during unsafe windows
- a Dispatcher running the per-fault pipeline

Faults are logged with a FaultLogger by default, but any object with a
``log_error(fault, trace_offset, include_scope, log_time)`` method can be
injected. Uncaught exceptions are logged as ``ERROR``.

Repeated faults are all logged. Only the first one at a site carries a trace.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from .core import (
    Category,
    Fault,
    MaskLike,
    RecoverableErrorFault,
    SeverityMask,
    exception_location,
    exception_trace,
    safe_str,
)
from .dedup import DedupCache
from .dispatcher import Dispatcher
from .logger import FaultLogger, Logger
from .policy import Levels, PolicyEngine
from .runtime import HostRuntime, get_default_runtime
from .stack import HandlerStack, handler_stack
from .stacked import StackedQueue


class ErrorHandler:
    """
    Tunable error and exception handler.

    Usage:
        ```python
        handler = ErrorHandler()
        handler.set_level(thrown=Category.USER_ERROR | Category.RECOVERABLE_ERROR)
        handler.register()
        ...
        handler.unregister()
        ```
    """

    def __init__(
        self,
        *,
        runtime: Optional[HostRuntime] = None,
        logger: Optional[Logger] = None,
        levels: Optional[Levels] = None,
        stack: HandlerStack = handler_stack,
    ):
        """
        Initialize error handler.

        Args:
            runtime: Host runtime (process-wide PythonRuntime if None)
            logger: Fault logger (FaultLogger on the shared sink if None)
            levels: Initial bit fields
            stack: Handler stack this handler registers on
        """
        self.runtime = runtime or get_default_runtime()
        self.stack = stack
        self._logger = logger

        self.policy = PolicyEngine(levels)
        self.traces = DedupCache()
        self.stacked = StackedQueue(self.policy, self.runtime.reporting_mask)
        self.dispatcher = Dispatcher(self.policy, self.traces, self.runtime, self.get_logger)

        self._deferring = 0
        self._log = logging.getLogger("faultgate")

    # ========================================================================
    # Registration
    # ========================================================================

    def register(self, categories: MaskLike = SeverityMask.ALL):
        """Install this handler for ``categories`` and make it the active one."""
        self.policy.registered = categories
        self.runtime.install_handlers(self.handle_error, self.handle_exception, categories)
        self.stack.push(self)
        self._log.debug(f"Registered error handler for {SeverityMask(categories)!r}")

    def unregister(self) -> bool:
        """
        Uninstall this handler.

        Only the top of the handler stack, still bound to the runtime's
        hooks, can be unregistered. Anything else means the hooks were
        rebound behind our back: the failure is logged and nothing changes.

        Returns:
            Whether the handler was unregistered
        """
        ok = (
            self.stack.is_top(self)
            and self.runtime.current_handlers() == (self.handle_error, self.handle_exception)
        )

        if ok:
            self.stack.pop(self)
            self.runtime.uninstall_handlers()
            self.policy.registered = SeverityMask.NONE
            self._log.debug("Unregistered error handler")
        else:
            self._log.warning("Failed to unregister: the current error or exception handler is not me")

        return ok

    @property
    def is_registered(self) -> bool:
        return self in self.stack

    # ========================================================================
    # Configuration
    # ========================================================================

    def set_level(
        self,
        levels: Optional[Levels] = None,
        *,
        logged: Optional[MaskLike] = None,
        scream: Optional[MaskLike] = None,
        thrown: Optional[MaskLike] = None,
        scoped: Optional[MaskLike] = None,
        traced: Optional[MaskLike] = None,
    ) -> Levels:
        """
        Sets all the bit fields that configure fault logging.

        Returns:
            The previous configuration, usable as a restore point
        """
        return self.policy.set_level(
            levels,
            logged=logged,
            scream=scream,
            thrown=thrown,
            scoped=scoped,
            traced=traced,
        )

    @property
    def levels(self) -> Levels:
        return self.policy.levels

    # ========================================================================
    # Fault entry points
    # ========================================================================

    def handle_error(
        self,
        category: MaskLike,
        message: str,
        file: str = "",
        line: int = 0,
        scope: Optional[dict[str, Any]] = None,
        trace_offset: int = 0,
        log_time: float = 0.0,
    ) -> bool:
        """
        Handles faults by filtering then logging them according to the
        configured bit fields.

        Inside a ``deferred()`` block faults are only stacked.

        Args:
            trace_offset: The number of noisy frames to skip from the
                current trace, or -1 to disable any trace logging
            log_time: The ``time.time()`` when the fault was triggered

        Returns:
            Whether the fault was accepted (logged, stacked or parked)
        """
        if self._deferring:
            return self.stack_error(category, message, file, line, scope, log_time)

        if trace_offset >= 0:
            trace_offset += 1
        return self.dispatcher.dispatch(category, message, file, line, scope, trace_offset, log_time)

    def stack_error(
        self,
        category: MaskLike,
        message: str,
        file: str = "",
        line: int = 0,
        scope: Optional[dict[str, Any]] = None,
        log_time: float = 0.0,
    ) -> bool:
        """
        Stack a fault for delayed handling.

        This minimalistic path never builds exceptions nor touches the
        logger, so it is safe to call while the interpreter is in an
        unusual state.
        """
        fault = Fault(int(category), message, file, line, scope)
        if log_time:
            fault.timestamp = log_time
        return self.stacked.stack(fault)

    def unstack_errors(self, trace_offset: int = 0):
        """
        Unstacks stacked faults and forwards them to the dispatcher.

        Args:
            trace_offset: The number of noisy frames to skip from the
                current trace, or -1 to disable any trace logging
        """
        if trace_offset >= 0:
            trace_offset += 1
        self.stacked.unstack(self.dispatcher.dispatch, trace_offset)

    @contextmanager
    def deferred(self) -> Iterator[StackedQueue]:
        """
        Stack every fault raised inside the block, then replay them.

        Blocks may nest: the replay happens when the outermost one exits.
        When the block raises, the replayed faults are logged but never
        thrown, and the block's own exception propagates.
        """
        self._deferring += 1
        try:
            yield self.stacked
        except BaseException:
            self._deferring -= 1
            if not self._deferring:
                with self.policy.overriding(thrown=SeverityMask.NONE):
                    self.unstack_errors()
            raise
        self._deferring -= 1
        if not self._deferring:
            self.unstack_errors()

    def handle_exception(self, exc: BaseException, log_time: float = 0.0):
        """
        Forwards an uncaught exception to the dispatcher.

        Escalated faults keep their own category, anything else is logged
        as ``ERROR``. Throwing is disabled and scope logging forced on for
        that category while the exception is dispatched; both are restored
        afterwards, whatever happens.

        Args:
            exc: The exception to log
            log_time: The ``time.time()`` when the event was triggered
        """
        if isinstance(exc, RecoverableErrorFault):
            category = int(exc.category)
        else:
            category = int(Category.ERROR)

        file, line = exception_location(exc)
        scope: dict[str, Any] = {}
        if isinstance(exc, RecoverableErrorFault) and exc.scope:
            scope.update(exc.scope)
        scope["exception"] = exc

        with self.policy.overriding(
            thrown=SeverityMask.NONE,
            scoped=self.policy.scoped | category,
        ):
            self.dispatcher.dispatch(
                category,
                f"Uncaught exception: {safe_str(exc)}",
                file,
                line,
                scope,
                -1,
                log_time,
                exception_trace(exc),
            )

    # ========================================================================
    # Logger
    # ========================================================================

    def get_logger(self) -> Logger:
        """Returns the logger used by this error handler."""
        if self._logger is None:
            self._logger = FaultLogger()
        return self._logger

    def __repr__(self) -> str:
        return f"ErrorHandler(levels={self.policy.levels!r})"
