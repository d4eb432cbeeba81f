"""
Tests for ErrorHandler: registration, fault entry points, deferral and
uncaught exception handling.
"""

import logging
from unittest.mock import patch

import pytest

from faultgate.core import Category, NoHandlerError, RecoverableErrorFault, SeverityMask
from faultgate.handler import ErrorHandler
from faultgate.logger import FaultLogger
from faultgate.policy import DEFAULT_SCOPED, DEFAULT_THROWN, Levels
from faultgate.stack import get_handler, handler_stack


ALL = SeverityMask.ALL
NONE = SeverityMask.NONE


# ============================================================================
# Registration
# ============================================================================


class TestRegistration:

    def test_register_installs_hooks_and_pushes(self, handler, runtime):
        handler.register(Category.WARNING | Category.NOTICE)

        assert handler.is_registered
        assert get_handler() is handler
        assert handler.policy.registered == Category.WARNING | Category.NOTICE
        assert runtime.current_handlers() == (handler.handle_error, handler.handle_exception)
        assert runtime.hooks[-1][2] == Category.WARNING | Category.NOTICE

    def test_unregister_restores_state(self, handler, runtime):
        handler.register()
        assert handler.unregister() is True

        assert not handler.is_registered
        assert handler.policy.registered == NONE
        assert runtime.hooks == []
        with pytest.raises(NoHandlerError):
            get_handler()

    def test_handlers_unwind_last_in_first_out(self, make_handler, runtime, caplog):
        first = make_handler()
        second = make_handler()
        first.register()
        second.register()

        with caplog.at_level(logging.WARNING, logger="faultgate"):
            assert first.unregister() is False
        assert "not me" in caplog.text
        assert len(handler_stack) == 2
        assert first.policy.registered == ALL

        assert second.unregister() is True
        assert get_handler() is first
        assert first.unregister() is True
        assert len(handler_stack) == 0

    def test_unregister_refused_when_hooks_rebound(self, handler, runtime):
        handler.register()

        def foreign(*args):
            return True

        runtime.hooks.append((foreign, foreign, ALL))
        assert handler.unregister() is False
        assert handler.is_registered

    def test_unregister_without_register(self, handler):
        assert handler.unregister() is False


# ============================================================================
# Configuration
# ============================================================================


class TestSetLevel:

    def test_returns_previous_configuration(self, handler):
        previous = handler.set_level(logged=Category.ERROR)
        assert previous == Levels()
        assert handler.levels.logged == Category.ERROR

    def test_restore_point(self, handler):
        previous = handler.set_level(thrown=NONE, traced=NONE)
        handler.set_level(previous)
        assert handler.levels.thrown == DEFAULT_THROWN


# ============================================================================
# Fault entry points
# ============================================================================


class TestHandleError:

    def test_logs_and_returns_true(self, handler, recorder):
        assert handler.handle_error(Category.NOTICE, "n", "a.py", 1) is True
        assert recorder.faults[0].message == "n"

    def test_trace_offset_includes_entry_frames(self, handler, recorder):
        handler.handle_error(Category.WARNING, "w", "a.py", 1, None, 0)
        # handle_error, dispatch and the pipeline each add their own frame
        assert recorder.calls[0]["trace_offset"] == 3

    def test_thrown(self, handler, recorder):
        with pytest.raises(RecoverableErrorFault):
            handler.handle_error(Category.USER_ERROR, "bad", "a.py", 1)
        assert recorder.calls == []


class TestDeferred:

    def test_faults_are_stacked_then_replayed(self, handler, recorder):
        with handler.deferred() as queue:
            assert handler.handle_error(Category.WARNING, "first", "a.py", 1) is True
            assert handler.handle_error(Category.STRICT, "strict", "a.py", 2) is True
            assert recorder.calls == []
            assert len(queue) == 2

        assert [f.message for f in recorder.faults] == ["first", "strict"]
        assert len(handler.stacked) == 0

    def test_filtered_faults_are_not_stacked(self, handler, runtime):
        runtime.reporting = NONE
        with handler.deferred():
            assert handler.handle_error(Category.NOTICE, "n") is False
            assert len(handler.stacked) == 0

    def test_nested_blocks_replay_on_outermost_exit(self, handler, recorder):
        with handler.deferred():
            with handler.deferred():
                handler.handle_error(Category.NOTICE, "inner")
            assert recorder.calls == []
        assert len(recorder.calls) == 1

    def test_thrown_fault_is_raised_on_replay(self, handler):
        with pytest.raises(RecoverableErrorFault):
            with handler.deferred():
                assert handler.handle_error(Category.USER_ERROR, "late") is True

    def test_block_exception_wins_over_replayed_thrown_fault(self, handler, recorder):
        with pytest.raises(KeyError):
            with handler.deferred():
                handler.handle_error(Category.USER_ERROR, "late")
                raise KeyError("body")

        assert [f.message for f in recorder.faults] == ["late"]
        assert handler.levels.thrown == DEFAULT_THROWN
        assert len(handler.stacked) == 0

    def test_block_exception_in_nested_block_replays_on_outermost_exit(self, handler, recorder):
        with pytest.raises(KeyError):
            with handler.deferred():
                with handler.deferred():
                    handler.handle_error(Category.NOTICE, "inner")
                    raise KeyError("body")
        assert len(recorder.calls) == 1

    def test_stack_error_keeps_timestamp(self, handler, recorder):
        handler.stack_error(Category.NOTICE, "n", "a.py", 1, None, 99.0)
        handler.unstack_errors()
        assert recorder.faults[0].timestamp == 99.0


# ============================================================================
# Uncaught exceptions
# ============================================================================


class TestHandleException:

    def test_plain_exception_is_logged_as_error(self, handler, recorder):
        try:
            raise ValueError("broken")
        except ValueError as e:
            handler.handle_exception(e)

        call = recorder.calls[0]
        fault = call["fault"]
        assert fault.category == Category.ERROR
        assert fault.message == "Uncaught exception: broken"
        assert call["trace_offset"] == -1
        assert call["include_scope"] is True
        assert isinstance(fault.scope["exception"], ValueError)
        assert fault.trace[0]["function"] == "test_plain_exception_is_logged_as_error"

    def test_escalated_fault_keeps_its_category_and_scope(self, handler, recorder):
        with pytest.raises(RecoverableErrorFault) as exc_info:
            handler.handle_error(Category.USER_ERROR, "bad form", "form.py", 9, {"field": "email"})

        handler.handle_exception(exc_info.value)

        fault = recorder.faults[0]
        assert fault.category == Category.USER_ERROR
        assert (fault.file, fault.line) == ("form.py", 9)
        assert fault.scope["field"] == "email"
        assert fault.scope["exception"] is exc_info.value

    def test_escalate_then_log_once(self, make_handler, recorder):
        handler = make_handler(
            logged=ALL,
            scream=Category.ERROR | Category.PARSE | Category.CORE_ERROR | Category.COMPILE_ERROR,
            thrown=Category.RECOVERABLE_ERROR,
            scoped=NONE,
            traced=ALL,
        )
        with pytest.raises(RecoverableErrorFault) as exc_info:
            handler.handle_error(Category.RECOVERABLE_ERROR, "cast failed", "a.py", 3)
        assert recorder.calls == []

        handler.handle_exception(exc_info.value)
        assert len(recorder.calls) == 1
        assert recorder.calls[0]["include_scope"] is True
        assert handler.levels.thrown == Category.RECOVERABLE_ERROR
        assert handler.levels.scoped == NONE

    def test_masks_restored_after_dispatch(self, handler):
        handler.handle_exception(RuntimeError("x"))
        assert handler.levels.thrown == DEFAULT_THROWN
        assert handler.levels.scoped == DEFAULT_SCOPED

    def test_masks_restored_when_dispatch_fails(self, handler):
        with patch.object(handler.dispatcher, "dispatch", side_effect=RuntimeError("internal")):
            with pytest.raises(RuntimeError):
                handler.handle_exception(ValueError("x"))
        assert handler.levels.thrown == DEFAULT_THROWN
        assert handler.levels.scoped == DEFAULT_SCOPED

    def test_silenced_uncaught_error_still_screams(self, handler, runtime, recorder):
        runtime.reporting = NONE
        handler.handle_exception(KeyError("k"))
        assert len(recorder.calls) == 1

    def test_untraced_escalated_fault_is_logged_without_trace(self, make_handler, recorder):
        handler = make_handler(traced=NONE, thrown=Category.USER_ERROR)
        with pytest.raises(RecoverableErrorFault) as exc_info:
            handler.handle_error(Category.USER_ERROR, "bad", "a.py", 1)
        assert exc_info.value.trace_offset == -1

        handler.handle_exception(exc_info.value)

        fault = recorder.faults[0]
        assert fault.message == "bad"
        assert fault.trace is None


# ============================================================================
# Logger
# ============================================================================


class TestGetLogger:

    def test_injected_logger(self, handler, recorder):
        assert handler.get_logger() is recorder

    def test_default_logger_created_lazily(self, runtime):
        handler = ErrorHandler(runtime=runtime)
        assert handler._logger is None
        logger = handler.get_logger()
        assert isinstance(logger, FaultLogger)
        assert handler.get_logger() is logger
