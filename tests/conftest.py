"""
Shared test fixtures and helpers for the faultgate test suite.
"""

from typing import Any, Callable, List, Optional

import pytest

from faultgate.core import Fault, SeverityMask
from faultgate.handler import ErrorHandler
from faultgate.policy import Levels
from faultgate.runtime import HostRuntime
from faultgate.shutdown import recovery
from faultgate.stack import HandlerStack, handler_stack
from faultgate import logger as logger_module


# ============================================================================
# Collaborator doubles
# ============================================================================


class FakeRuntime(HostRuntime):
    """In-memory host runtime recording hook installs and stack captures."""

    def __init__(self, reporting=SeverityMask.ALL):
        self.reporting = SeverityMask(reporting)
        self.hooks: List[tuple] = []
        self.captures: List[dict] = []
        self.last: Optional[Fault] = None

    def reporting_mask(self) -> SeverityMask:
        return self.reporting

    def install_handlers(self, on_fault, on_exception, categories=SeverityMask.ALL):
        self.hooks.append((on_fault, on_exception, SeverityMask(categories)))

    def current_handlers(self):
        if not self.hooks:
            return None, None
        on_fault, on_exception, _ = self.hooks[-1]
        return on_fault, on_exception

    def uninstall_handlers(self):
        if not self.hooks:
            return None, None
        on_fault, on_exception, _ = self.hooks.pop()
        return on_fault, on_exception

    def last_error(self) -> Optional[Fault]:
        return self.last

    def clear_last_error(self):
        self.last = None

    def capture_stack(self, skip: int = 0, include_scope: bool = False) -> List[dict]:
        self.captures.append({"skip": skip, "include_scope": include_scope})
        frames = [
            {"file": "faultgate/dispatcher.py", "line": 10, "function": "_process"},
            {"file": "faultgate/dispatcher.py", "line": 20, "function": "dispatch"},
            {"file": "app.py", "line": 30, "function": "main"},
        ]
        if include_scope:
            for frame in frames:
                frame["locals"] = {"x": 1}
        return frames[skip:]


class RecordingLogger:
    """Logger double keeping every delivered fault."""

    def __init__(self, side_effect: Optional[Callable[[Fault], Any]] = None):
        self.calls: List[dict] = []
        self.side_effect = side_effect

    def log_error(self, fault: Fault, trace_offset: int, include_scope: bool, log_time: float) -> None:
        self.calls.append({
            "fault": fault,
            "trace_offset": trace_offset,
            "include_scope": include_scope,
            "log_time": log_time,
        })
        if self.side_effect is not None:
            self.side_effect(fault)

    @property
    def faults(self) -> List[Fault]:
        return [call["fault"] for call in self.calls]


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_process_state():
    """Reset process-wide state between tests."""
    handler_stack.clear()
    recovery.reset()
    yield
    handler_stack.clear()
    recovery.reset()
    logger_module.close_sink()
    logger_module.configure_sink("stderr")


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def recorder():
    return RecordingLogger()


@pytest.fixture
def stack():
    return HandlerStack()


@pytest.fixture
def make_handler(runtime, recorder):
    """Factory for handlers wired to the fake runtime and recording logger."""

    def factory(**masks) -> ErrorHandler:
        handler = ErrorHandler(runtime=runtime, logger=recorder, levels=Levels())
        if masks:
            handler.set_level(**masks)
        return handler

    return factory


@pytest.fixture
def handler(make_handler):
    return make_handler()
