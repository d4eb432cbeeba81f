"""
Faultgate - Process bootstrap.

``start()`` is the one-call setup: it points the shared log sink at a
file, arranges for shutdown recovery to run at exit, and registers a
handler topped to the runtime's current reporting mask.
"""

from __future__ import annotations

from typing import Optional

from .config import HandlerConfig
from .handler import ErrorHandler
from .logger import configure_sink
from .runtime import HostRuntime
from .shutdown import ShutdownRecovery, recovery as default_recovery


def start(
    log_file: str = "stderr",
    handler: Optional[ErrorHandler] = None,
    *,
    runtime: Optional[HostRuntime] = None,
    config: Optional[HandlerConfig] = None,
    recovery: Optional[ShutdownRecovery] = None,
) -> ErrorHandler:
    """
    Install an error handler for the whole process.

    Args:
        log_file: Sink for logged faults (``"stderr"``, ``"stdout"`` or a path)
        handler: Handler to install (a new one if None)
        runtime: Runtime for a new handler
        config: Bit fields, log file and registered mask to apply
        recovery: Shutdown recovery to arm (the process-wide one if None)

    Returns:
        The registered handler
    """
    if handler is None:
        handler = ErrorHandler(runtime=runtime)

    categories = None
    if config is not None:
        handler.set_level(**config.levels())
        if config.log_file:
            log_file = config.log_file
        categories = config.register

    configure_sink(log_file)

    # Some fatal faults can only be detected at shutdown time
    (recovery or default_recovery).install()

    # Register the handler and top it to the current reporting level
    if categories is None:
        categories = handler.runtime.reporting_mask()
    handler.register(categories)

    return handler
