"""
Faultgate - Deferred fault queue.

Some windows of a process are unsafe for the full dispatch pipeline (for
instance while imports are still being resolved, when building an
exception or a logger could re-enter the import machinery). Faults raised
there are only buffered, then replayed in arrival order once the window
closes.

The queue never logs and never raises.
"""

from __future__ import annotations

from collections import deque
from typing import Callable, Iterator

from .core import Fault, MaskLike
from .policy import PolicyEngine


DispatchFn = Callable[..., bool]


class StackedQueue:
    """
    Ordered buffer of faults awaiting full processing.

    Args:
        policy: Policy used to drop faults that would be fully discarded
        reporting: Callable returning the host's current reporting mask
    """

    def __init__(self, policy: PolicyEngine, reporting: Callable[[], MaskLike]):
        self.policy = policy
        self._reporting = reporting
        self._faults: deque[Fault] = deque()

    def stack(self, fault: Fault) -> bool:
        """
        Buffer a fault for delayed handling.

        Faults that would neither log, raise nor scream are dropped right
        away. The local scope is only kept for scoped categories.

        Returns:
            Whether the fault would be logged or raised
        """
        decision = self.policy.gate(fault.category, self._reporting())

        if decision.filtered:
            return False

        if fault.category not in self.policy.scoped:
            fault.scope = None
        self._faults.append(fault)

        return decision.log or decision.throw

    def unstack(self, dispatch: DispatchFn, trace_offset: int = 0):
        """
        Forward buffered faults to ``dispatch`` in arrival order.

        Each fault leaves the queue before it is dispatched. When a dispatch
        raises, the remaining faults stay queued for the next drain.

        Args:
            dispatch: Dispatcher entry point
            trace_offset: Frames to skip from the trace, or -1 to disable
                trace logging
        """
        if not self._faults:
            return
        if trace_offset >= 0:
            trace_offset += 1

        while self._faults:
            fault = self._faults.popleft()
            dispatch(
                fault.category,
                fault.message,
                fault.file,
                fault.line,
                fault.scope,
                trace_offset,
                fault.timestamp,
            )

    def __len__(self) -> int:
        return len(self._faults)

    def __iter__(self) -> Iterator[Fault]:
        return iter(tuple(self._faults))

    def clear(self):
        self._faults.clear()
