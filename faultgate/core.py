"""
Faultgate - Core types and fault taxonomy.

Defines:
- Category (fault kinds as bit flags)
- SeverityMask (bit-set over categories)
- Fault (a single reportable fault record)
- RecoverableErrorFault (the raisable escalation form)
- Package exceptions
"""

from __future__ import annotations

import time
from enum import IntFlag
from dataclasses import dataclass, field
from typing import Any, Optional, Union


# ============================================================================
# Categories & Masks
# ============================================================================

class Category(IntFlag):
    """
    Fault categories.

    Values are stable bits supplied by the host runtime. They are only ever
    tested by bitwise membership, never iterated structurally.
    """
    ERROR = 0x1
    WARNING = 0x2
    PARSE = 0x4
    NOTICE = 0x8
    CORE_ERROR = 0x10
    CORE_WARNING = 0x20
    COMPILE_ERROR = 0x40
    COMPILE_WARNING = 0x80
    USER_ERROR = 0x100
    USER_WARNING = 0x200
    USER_NOTICE = 0x400
    STRICT = 0x800
    RECOVERABLE_ERROR = 0x1000
    DEPRECATED = 0x2000
    USER_DEPRECATED = 0x4000

    ALL = 0x7FFF


MaskLike = Union["SeverityMask", Category, int]


@dataclass(frozen=True, slots=True)
class SeverityMask:
    """
    Immutable bit-set over fault categories.

    Supports membership (``Category.WARNING in mask``), union (``|``),
    intersection (``&``) and complement within ``ALL`` (``~``).
    """

    bits: int = 0

    def __init__(self, bits: MaskLike = 0):
        if isinstance(bits, SeverityMask):
            bits = bits.bits
        object.__setattr__(self, "bits", int(bits) & int(Category.ALL))

    @classmethod
    def of(cls, *categories: MaskLike) -> SeverityMask:
        """Build a mask from several categories or masks."""
        bits = 0
        for category in categories:
            bits |= int(SeverityMask(category))
        return cls(bits)

    def __int__(self) -> int:
        return self.bits

    def __index__(self) -> int:
        return self.bits

    def __bool__(self) -> bool:
        return self.bits != 0

    def __contains__(self, category: MaskLike) -> bool:
        return bool(self.bits & int(SeverityMask(category)))

    def __or__(self, other: MaskLike) -> SeverityMask:
        return SeverityMask(self.bits | int(SeverityMask(other)))

    __ror__ = __or__

    def __and__(self, other: MaskLike) -> SeverityMask:
        return SeverityMask(self.bits & int(SeverityMask(other)))

    __rand__ = __and__

    def __invert__(self) -> SeverityMask:
        return SeverityMask(~self.bits)

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, (SeverityMask, int)):
            return self.bits == int(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.bits)

    def names(self) -> list[str]:
        """Category names contained in this mask, lowest bit first."""
        return [
            c.name for c in Category
            if c is not Category.ALL and self.bits & c.value
        ]

    def __repr__(self) -> str:
        if self.bits == int(Category.ALL):
            return "SeverityMask(ALL)"
        if not self.bits:
            return "SeverityMask(NONE)"
        return f"SeverityMask({'|'.join(self.names())})"


SeverityMask.NONE = SeverityMask(0)
SeverityMask.ALL = SeverityMask(Category.ALL)

# Categories whose last occurrence can only be picked up at process exit
FATAL_AT_SHUTDOWN = SeverityMask.of(
    Category.ERROR,
    Category.PARSE,
    Category.CORE_ERROR,
    Category.CORE_WARNING,
    Category.COMPILE_ERROR,
    Category.COMPILE_WARNING,
)


def category_label(category: MaskLike) -> str:
    """Human readable label for a category value."""
    names = SeverityMask(category).names()
    if len(names) == 1:
        return names[0]
    return "|".join(names) if names else f"0x{int(category):x}"


# ============================================================================
# Fault - a single reportable event
# ============================================================================

@dataclass(slots=True)
class Fault:
    """
    A single fault occurrence.

    Created when the runtime reports a fault (or when an exception is
    converted to one), consumed once by the dispatcher. Only ``scope`` and
    ``trace`` are attached after creation, before delivery.

    Attributes:
        category: Fault category bit
        message: Fault message
        file: Source file where the fault occurred
        line: Source line where the fault occurred
        scope: Local variables at the fault site
        trace: Captured frames, innermost first
        timestamp: ``time.time()`` when the fault was triggered
        level: ``"<category>/<reporting mask>"`` at dispatch time
    """

    category: int
    message: str
    file: str = ""
    line: int = 0
    scope: Optional[dict[str, Any]] = None
    trace: Optional[list[dict[str, Any]]] = None
    timestamp: float = field(default_factory=time.time)
    level: str = ""

    @property
    def label(self) -> str:
        return category_label(self.category)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize fault to dictionary.

        Scope values are reduced to their names so the result stays
        safe to hand to structured log handlers.
        """
        return {
            "category": int(self.category),
            "label": self.label,
            "message": self.message,
            "file": self.file,
            "line": self.line,
            "level": self.level,
            "timestamp": self.timestamp,
            "scope": sorted(self.scope) if self.scope else None,
            "trace_depth": len(self.trace) if self.trace else 0,
        }

    def __str__(self) -> str:
        return f"[{self.label}] {self.message} in {self.file}:{self.line}"


# ============================================================================
# Exceptions
# ============================================================================

class FaultgateError(Exception):
    """Base class for errors raised by faultgate itself."""


class NoHandlerError(FaultgateError):
    """Raised when no error handler has been registered."""


class RecoverableErrorFault(Exception):
    """
    A fault escalated into a raisable exception.

    Carries the originating category and location. ``scope`` and
    ``trace_offset`` are filled in by the dispatcher so that a later
    uncaught-exception log can reuse them; ``trace`` is captured from the
    frame that built the exception.
    """

    def __init__(
        self,
        message: str,
        category: int,
        file: str = "",
        line: int = 0,
        *,
        trace: Optional[list[dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.file = file
        self.line = line
        self.trace = trace if trace is not None else []
        self.scope: Optional[dict[str, Any]] = None
        self.trace_offset = -1

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"RecoverableErrorFault({self.message!r}, "
            f"category={category_label(self.category)}, "
            f"file={self.file!r}, line={self.line})"
        )


def exception_location(exc: BaseException) -> tuple[str, int]:
    """File and line of the innermost traceback frame of ``exc``."""
    if isinstance(exc, RecoverableErrorFault) and exc.file:
        return exc.file, exc.line
    tb = exc.__traceback__
    if tb is None:
        return "", 0
    while tb.tb_next is not None:
        tb = tb.tb_next
    return tb.tb_frame.f_code.co_filename, tb.tb_lineno


def exception_trace(exc: BaseException) -> list[dict[str, Any]]:
    """Frames of an exception's own traceback, innermost first."""
    if isinstance(exc, RecoverableErrorFault):
        if exc.trace_offset < 0:
            return []
        return exc.trace[exc.trace_offset:]
    frames = []
    tb = exc.__traceback__
    while tb is not None:
        frames.append({
            "file": tb.tb_frame.f_code.co_filename,
            "line": tb.tb_lineno,
            "function": tb.tb_frame.f_code.co_name,
        })
        tb = tb.tb_next
    frames.reverse()
    return frames


def safe_str(value: Any) -> str:
    """``str(value)``, or a placeholder when the conversion itself fails."""
    try:
        return str(value)
    except Exception:
        return f"<unprintable {type(value).__name__}>"

