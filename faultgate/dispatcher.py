"""
Faultgate - Dispatcher.

The per-fault pipeline:

    Received → Classified → (Traced?) → Logged?/Screamed? → Thrown?/Returned

1. Received: fault data bound, timestamp defaulted
2. Classified: PolicyEngine decides log / throw / scream
3. Filtered faults stop here without side effects
4. Thrown faults build their RecoverableErrorFault up front
5. Trace gate: DedupCache allows one trace per fault site
6. Logged or screamed faults are composed and delivered to the logger
7. Thrown faults are raised, carrying scope and trace offset
8. The return value tells whether the fault was logged
"""

from __future__ import annotations

import time
import logging
from typing import Any, Callable, Optional

from .core import (
    Category,
    Fault,
    MaskLike,
    RecoverableErrorFault,
    SeverityMask,
    exception_location,
    safe_str,
)
from .dedup import DedupCache, fingerprint
from .logger import Logger
from .policy import PolicyEngine
from .runtime import HostRuntime
from .shutdown import is_shutting_down


logger = logging.getLogger("faultgate")


class Dispatcher:
    """
    Runs faults through classification, trace capture, logging and
    escalation.

    Delivery is not reentrant. A fault dispatched while the logger is busy
    (or an exception raised by the logger itself, typically while turning
    a scope value into a string) is parked in a single slot and processed
    once the current delivery is over. A newer parked fault replaces an
    older one.

    Args:
        policy: Bit field policy
        dedup: Duplicate trace cache
        runtime: Host runtime (reporting mask, stack capture)
        get_logger: Returns the logger to deliver to
    """

    def __init__(
        self,
        policy: PolicyEngine,
        dedup: DedupCache,
        runtime: HostRuntime,
        get_logger: Callable[[], Logger],
    ):
        self.policy = policy
        self.dedup = dedup
        self.runtime = runtime
        self._get_logger = get_logger

        self._delivering = False
        self._draining = False
        self._override: Optional[Fault] = None

    @property
    def pending(self) -> Optional[Fault]:
        """The parked fault awaiting processing, if any."""
        return self._override

    def dispatch(
        self,
        category: MaskLike,
        message: str,
        file: str = "",
        line: int = 0,
        scope: Optional[dict[str, Any]] = None,
        trace_offset: int = 0,
        log_time: float = 0.0,
        trace: Optional[list[dict[str, Any]]] = None,
    ) -> bool:
        """
        Handle one fault.

        Args:
            category: Fault category bit
            message: Fault message
            file: Source file of the fault
            line: Source line of the fault
            scope: Local variables at the fault site
            trace_offset: Number of frames to skip from the trace, or -1
                to disable trace logging
            log_time: ``time.time()`` when the fault was triggered
            trace: Trace already owned by the fault (e.g. an exception's
                traceback), used when no trace is captured

        Returns:
            Whether the fault was accepted: logged now, or parked during
            another delivery to be classified once that delivery ends.

        Raises:
            RecoverableErrorFault: When the category is configured as thrown
        """
        log_time = log_time or time.time()

        if self._delivering:
            self._override = Fault(int(category), message, file, line, scope, timestamp=log_time)
            return True

        if trace_offset >= 0:
            trace_offset += 1

        try:
            return self._process(category, message, file, line, scope, trace_offset, log_time, trace)
        finally:
            if self._override is not None and not self._draining:
                self._drain_override()

    # ========================================================================
    # Pipeline
    # ========================================================================

    def _process(
        self,
        category: MaskLike,
        message: str,
        file: str,
        line: int,
        scope: Optional[dict[str, Any]],
        trace_offset: int,
        log_time: float,
        trace: Optional[list[dict[str, Any]]],
    ) -> bool:
        category = int(category)
        reporting = self.runtime.reporting_mask()
        decision = self.policy.classify(category, reporting, is_shutting_down())

        if decision.filtered:
            return False

        log = decision.log
        throw = None
        if decision.throw:
            # Logged once where it is caught, or at shutdown
            throw = RecoverableErrorFault(
                message,
                category,
                file,
                line,
                trace=self.runtime.capture_stack(),
            )

        if trace_offset >= 0:
            trace_offset += 1

            # For duplicate faults, log the trace only once
            key = fingerprint(category, file, line, message)
            if not self.dedup.should_capture_trace(key, category, self.policy.traced, log):
                trace_offset = -1

        if decision.emits:
            fault = Fault(
                category,
                message,
                file,
                line,
                timestamp=log_time,
                level=f"{category}/{int(reporting)}",
            )
            include_scope = False

            if log:
                if category in self.policy.scoped:
                    if scope is not None:
                        fault.scope = scope
                    if trace_offset >= 0:
                        fault.trace = self.runtime.capture_stack(include_scope=True)
                    include_scope = True
                elif throw is not None and trace_offset >= 0:
                    fault.trace = throw.trace
                elif trace_offset >= 0:
                    fault.trace = self.runtime.capture_stack()

                if fault.trace is None and trace:
                    fault.trace = trace

            self._deliver(fault, trace_offset, include_scope, log_time)

        if throw is not None:
            if category in self.policy.scoped:
                throw.scope = scope
            if not log:
                throw.trace_offset = trace_offset
            raise throw

        return log

    def _deliver(self, fault: Fault, trace_offset: int, include_scope: bool, log_time: float):
        """Hand a composed fault to the logger, at most once."""
        self._delivering = True
        try:
            self._get_logger().log_error(fault, trace_offset, include_scope, log_time)
        except Exception as exc:
            if self._draining:
                logger.error(
                    f"Fault logger failed while delivering a replacement fault: {fault.message}",
                    exc_info=True,
                )
            else:
                self._override = self._fault_from_exception(exc, log_time)
        finally:
            self._delivering = False

    def _drain_override(self):
        """Process the parked fault once, without raising and without a trace."""
        fault = self._override
        self._override = None
        self._draining = True
        try:
            with self.policy.overriding(thrown=SeverityMask.NONE):
                self._process(
                    fault.category,
                    fault.message,
                    fault.file,
                    fault.line,
                    fault.scope,
                    -1,
                    fault.timestamp,
                    None,
                )
        finally:
            self._draining = False

        dropped = self._override
        if dropped is not None:
            self._override = None
            logger.warning(
                f"Dropped fault raised while delivering another one: {dropped.message}",
                extra={"fault": dropped.to_dict()},
            )

    @staticmethod
    def _fault_from_exception(exc: Exception, log_time: float) -> Fault:
        file, line = exception_location(exc)
        return Fault(
            int(Category.ERROR),
            f"Uncaught exception during fault delivery: {type(exc).__name__}: {safe_str(exc)}",
            file,
            line,
            timestamp=log_time,
        )
