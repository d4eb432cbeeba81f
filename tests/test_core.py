"""
Tests for core types: categories, severity masks, faults and exceptions.
"""

import os

from faultgate.core import (
    Category,
    FATAL_AT_SHUTDOWN,
    Fault,
    RecoverableErrorFault,
    SeverityMask,
    category_label,
    exception_location,
    exception_trace,
    safe_str,
)


# ============================================================================
# SeverityMask
# ============================================================================


class TestSeverityMask:

    def test_membership(self):
        mask = SeverityMask.of(Category.WARNING, Category.NOTICE)
        assert Category.WARNING in mask
        assert Category.NOTICE in mask
        assert Category.ERROR not in mask

    def test_union_and_intersection(self):
        a = SeverityMask(Category.ERROR | Category.WARNING)
        b = SeverityMask(Category.WARNING | Category.NOTICE)
        assert int(a | b) == 0xB
        assert int(a & b) == int(Category.WARNING)

    def test_union_with_plain_int(self):
        mask = 0x1 | SeverityMask(0x2)
        assert isinstance(mask, SeverityMask)
        assert int(mask) == 0x3

    def test_complement_stays_within_all(self):
        assert int(~SeverityMask.NONE) == int(Category.ALL)
        assert int(~SeverityMask.ALL) == 0
        assert Category.ERROR not in ~SeverityMask(Category.ERROR)

    def test_out_of_range_bits_are_masked(self):
        assert int(SeverityMask(0xFFFFF)) == 0x7FFF

    def test_truthiness(self):
        assert not SeverityMask.NONE
        assert SeverityMask(Category.STRICT)

    def test_equality_and_hash(self):
        assert SeverityMask(0x1100) == 0x1100
        assert SeverityMask(0x1100) == SeverityMask(Category.USER_ERROR | Category.RECOVERABLE_ERROR)
        assert hash(SeverityMask(0x3)) == hash(SeverityMask(0x3))

    def test_names_lowest_bit_first(self):
        assert SeverityMask(0x1100).names() == ["USER_ERROR", "RECOVERABLE_ERROR"]

    def test_repr(self):
        assert repr(SeverityMask.ALL) == "SeverityMask(ALL)"
        assert repr(SeverityMask.NONE) == "SeverityMask(NONE)"
        assert repr(SeverityMask(0x3)) == "SeverityMask(ERROR|WARNING)"

    def test_fatal_at_shutdown(self):
        for category in (Category.ERROR, Category.PARSE, Category.CORE_ERROR, Category.COMPILE_WARNING):
            assert category in FATAL_AT_SHUTDOWN
        assert Category.USER_ERROR not in FATAL_AT_SHUTDOWN
        assert Category.WARNING not in FATAL_AT_SHUTDOWN


class TestCategoryLabel:

    def test_single_category(self):
        assert category_label(Category.USER_DEPRECATED) == "USER_DEPRECATED"

    def test_combined_categories(self):
        assert category_label(0x3) == "ERROR|WARNING"

    def test_unknown_value(self):
        assert category_label(0) == "0x0"


# ============================================================================
# Fault
# ============================================================================


class TestFault:

    def test_defaults(self):
        fault = Fault(int(Category.NOTICE), "undefined index")
        assert fault.file == ""
        assert fault.line == 0
        assert fault.scope is None
        assert fault.trace is None
        assert fault.timestamp > 0

    def test_str(self):
        fault = Fault(int(Category.WARNING), "division by zero", "app.py", 12)
        assert str(fault) == "[WARNING] division by zero in app.py:12"

    def test_to_dict_reduces_scope_to_names(self):
        fault = Fault(
            int(Category.ERROR),
            "boom",
            "app.py",
            3,
            scope={"user": object(), "attempt": 2},
            trace=[{"file": "app.py", "line": 3, "function": "main"}],
            level="1/32767",
        )
        data = fault.to_dict()
        assert data["label"] == "ERROR"
        assert data["scope"] == ["attempt", "user"]
        assert data["trace_depth"] == 1
        assert data["level"] == "1/32767"


# ============================================================================
# Exceptions
# ============================================================================


class TestRecoverableErrorFault:

    def test_carries_fault_data(self):
        exc = RecoverableErrorFault("bad input", int(Category.USER_ERROR), "form.py", 40)
        assert str(exc) == "bad input"
        assert exc.category == Category.USER_ERROR
        assert (exc.file, exc.line) == ("form.py", 40)
        assert exc.scope is None
        assert exc.trace_offset == -1
        assert exc.trace == []

    def test_repr_names_category(self):
        exc = RecoverableErrorFault("x", int(Category.RECOVERABLE_ERROR))
        assert "RECOVERABLE_ERROR" in repr(exc)


class TestExceptionHelpers:

    def test_location_of_recoverable_fault_uses_fault_site(self):
        exc = RecoverableErrorFault("x", int(Category.USER_ERROR), "site.py", 7)
        assert exception_location(exc) == ("site.py", 7)

    def test_location_of_raised_exception(self):
        try:
            raise ValueError("nope")
        except ValueError as e:
            file, line = exception_location(e)
        assert os.path.basename(file) == "test_core.py"
        assert line > 0

    def test_location_without_traceback(self):
        assert exception_location(ValueError("never raised")) == ("", 0)

    def test_trace_is_innermost_first(self):
        def inner():
            raise KeyError("k")

        try:
            inner()
        except KeyError as e:
            trace = exception_trace(e)
        assert trace[0]["function"] == "inner"
        assert trace[-1]["function"] == "test_trace_is_innermost_first"

    def test_trace_of_recoverable_fault_skips_offset(self):
        frames = [{"function": name} for name in ("a", "b", "c")]
        exc = RecoverableErrorFault("x", int(Category.USER_ERROR), trace=frames)
        exc.trace_offset = 2
        assert exception_trace(exc) == [{"function": "c"}]

    def test_trace_of_recoverable_fault_with_disabled_offset(self):
        frames = [{"function": "a"}]
        exc = RecoverableErrorFault("x", int(Category.USER_ERROR), trace=frames)
        exc.trace_offset = -1
        assert exception_trace(exc) == []


class TestSafeStr:

    def test_regular_value(self):
        assert safe_str(42) == "42"

    def test_unprintable_value(self):
        class Broken:
            def __str__(self):
                raise RuntimeError("no")

        assert safe_str(Broken()) == "<unprintable Broken>"
