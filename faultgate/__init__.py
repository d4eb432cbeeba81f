"""
Faultgate - Tunable fault interception and logging.

Every fault a process reports (warnings, triggered errors, uncaught
exceptions, fatal faults only visible at exit) is classified by category,
then independently:

- logged, unless silenced by the reporting mask
- screamed, i.e. logged even when silenced
- thrown as a RecoverableErrorFault
- logged with its local scope
- logged with its trace, once per repeated fault site

Core exports:
- Category: Fault category bits
- SeverityMask: Bit-set over categories
- Fault: A single fault record
- ErrorHandler: The tunable handler
- start: One-call process setup
"""

from .core import (
    Category,
    SeverityMask,
    Fault,
    FaultgateError,
    NoHandlerError,
    RecoverableErrorFault,
)

from .policy import (
    Decision,
    Levels,
    PolicyEngine,
)

from .dedup import DedupCache, fingerprint
from .stacked import StackedQueue
from .dispatcher import Dispatcher
from .handler import ErrorHandler
from .stack import HandlerStack, get_handler, handler_stack
from .shutdown import ShutdownRecovery, recovery
from .runtime import HostRuntime, PythonRuntime, get_default_runtime
from .logger import FaultLogger, configure_sink
from .config import ConfigError, ConfigLoader, HandlerConfig, load_config, parse_mask
from .bootstrap import start

__version__ = "0.3.0"

__all__ = [
    # Core types
    "Category",
    "SeverityMask",
    "Fault",
    "FaultgateError",
    "NoHandlerError",
    "RecoverableErrorFault",

    # Policy
    "Decision",
    "Levels",
    "PolicyEngine",

    # Engine
    "DedupCache",
    "fingerprint",
    "StackedQueue",
    "Dispatcher",
    "ErrorHandler",
    "HandlerStack",
    "get_handler",
    "handler_stack",
    "ShutdownRecovery",
    "recovery",

    # Collaborators
    "HostRuntime",
    "PythonRuntime",
    "get_default_runtime",
    "FaultLogger",
    "configure_sink",

    # Configuration
    "ConfigError",
    "ConfigLoader",
    "HandlerConfig",
    "load_config",
    "parse_mask",

    # Bootstrap
    "start",
]
