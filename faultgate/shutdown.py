"""
Faultgate - Shutdown recovery.

Some fatal faults never reach a handler: they are only visible once the
process is exiting. At that point the recovery flushes deferred faults and
forwards the runtime's last unreported fatal fault, once.

The shutdown phase belongs to the process, not to a recovery instance:
any recovery that runs flips it for every dispatcher.
"""

from __future__ import annotations

import atexit
import logging

from .core import FATAL_AT_SHUTDOWN
from .stack import HandlerStack, handler_stack


logger = logging.getLogger("faultgate")

_shutting_down = False


def is_shutting_down() -> bool:
    """Whether the process has entered the shutdown phase."""
    return _shutting_down


class ShutdownRecovery:
    """
    End-of-process fault recovery.

    While ``shutting_down`` is set, thrown faults also scream, since no
    later catch site exists to log them.
    """

    def __init__(self, stack: HandlerStack = handler_stack):
        self.stack = stack
        self._installed = False
        self._done = False

    @property
    def shutting_down(self) -> bool:
        return _shutting_down

    @shutting_down.setter
    def shutting_down(self, value: bool):
        global _shutting_down
        _shutting_down = bool(value)
    def install(self):
        """Register ``run`` to be called at interpreter exit, once."""
        if not self._installed:
            atexit.register(self.run)
            self._installed = True

    def run(self):
        """
        Flush stacked faults and forward the last uncatchable one.

        The last fault is only forwarded when the reporting mask did not
        already let the runtime report it natively. Later calls are no-ops.
        """
        if self._done:
            return
        self._done = True
        self.shutting_down = True

        handler = self.stack.top()
        if handler is None:
            return

        handler.unstack_errors()

        runtime = handler.runtime
        fault = runtime.last_error()
        if fault is None or fault.category not in FATAL_AT_SHUTDOWN:
            return

        logger.debug("Recovering unreported fault at shutdown: %s", fault)
        try:
            if fault.category not in runtime.reporting_mask():
                handler.handle_error(
                    fault.category,
                    fault.message,
                    fault.file,
                    fault.line,
                    None,
                    -1,
                    fault.timestamp,
                )
        finally:
            runtime.clear_last_error()

    def reset(self):
        """Leave the shutdown phase and allow another run."""
        self.shutting_down = False
        self._done = False


recovery = ShutdownRecovery()
