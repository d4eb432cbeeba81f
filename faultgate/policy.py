"""
Faultgate - Policy engine.

Holds the five bit fields that decide what happens to a fault:

- logged: logged faults, when not silenced by the reporting mask
- scream: never silenced faults
- thrown: faults raised as RecoverableErrorFault, when not silenced
- scoped: faults logged with their local scope
- traced: faults logged with their trace, once per repeated fault
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Iterator, Optional

from .core import MaskLike, SeverityMask


MASK_NAMES = ("logged", "scream", "thrown", "scoped", "traced")

# RECOVERABLE_ERROR | USER_ERROR | ERROR | CORE_ERROR | COMPILE_ERROR
DEFAULT_SCREAM = SeverityMask(0x1151)
# RECOVERABLE_ERROR | USER_ERROR
DEFAULT_THROWN = SeverityMask(0x1100)
# RECOVERABLE_ERROR | USER_ERROR | ERROR | WARNING | USER_WARNING
DEFAULT_SCOPED = SeverityMask(0x1303)
DEFAULT_TRACED = SeverityMask(0x1303)


@dataclass(frozen=True)
class Levels:
    """Snapshot of a handler's bit fields, usable as a restore point."""

    registered: SeverityMask = SeverityMask.NONE
    logged: SeverityMask = SeverityMask.ALL
    scream: SeverityMask = DEFAULT_SCREAM
    thrown: SeverityMask = DEFAULT_THROWN
    scoped: SeverityMask = DEFAULT_SCOPED
    traced: SeverityMask = DEFAULT_TRACED

    def to_dict(self) -> dict[str, int]:
        return {
            "registered": int(self.registered),
            **{name: int(getattr(self, name)) for name in MASK_NAMES},
        }


@dataclass(frozen=True, slots=True)
class Decision:
    """
    Outcome of classifying one fault.

    Attributes:
        log: Deliver through the regular logging path
        throw: Escalate into a RecoverableErrorFault
        scream: Deliver regardless of the reporting mask
        trace: Tracing was requested for this category
    """

    log: bool
    throw: bool
    scream: bool
    trace: bool

    @property
    def emits(self) -> bool:
        """Whether a logger call happens for this pass."""
        return self.log or self.scream

    @property
    def filtered(self) -> bool:
        return not (self.log or self.throw or self.scream)


class PolicyEngine:
    """
    Bit field policy for one error handler.

    Usage:
        ```python
        policy = PolicyEngine()
        previous = policy.set_level(thrown=SeverityMask.NONE)
        ...
        policy.set_level(previous)
        ```
    """

    def __init__(self, levels: Optional[Levels] = None):
        self._levels = levels or Levels()

    # ========================================================================
    # Mask access
    # ========================================================================

    @property
    def levels(self) -> Levels:
        return self._levels

    @property
    def registered(self) -> SeverityMask:
        return self._levels.registered

    @registered.setter
    def registered(self, mask: MaskLike):
        self._levels = replace(self._levels, registered=SeverityMask(mask))

    @property
    def logged(self) -> SeverityMask:
        return self._levels.logged

    @property
    def scream(self) -> SeverityMask:
        return self._levels.scream

    @property
    def thrown(self) -> SeverityMask:
        return self._levels.thrown

    @property
    def scoped(self) -> SeverityMask:
        return self._levels.scoped

    @property
    def traced(self) -> SeverityMask:
        return self._levels.traced

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
        Set the bit fields that configure fault handling.

        Unspecified masks keep their current value. A full ``Levels``
        snapshot may be passed instead to restore a previous configuration
        (its ``registered`` mask is left untouched).

        Returns:
            The previous configuration
        """
        previous = self._levels
        if levels is not None:
            logged = levels.logged if logged is None else logged
            scream = levels.scream if scream is None else scream
            thrown = levels.thrown if thrown is None else thrown
            scoped = levels.scoped if scoped is None else scoped
            traced = levels.traced if traced is None else traced

        changes = {
            name: SeverityMask(value)
            for name, value in (
                ("logged", logged),
                ("scream", scream),
                ("thrown", thrown),
                ("scoped", scoped),
                ("traced", traced),
            )
            if value is not None
        }
        if changes:
            self._levels = replace(previous, **changes)
        return previous

    @contextmanager
    def overriding(self, **masks: MaskLike) -> Iterator[Levels]:
        """
        Temporarily apply masks, restoring exactly those keys afterwards.

        Restoration happens even when the body raises. Masks not named here
        keep whatever value they were given inside the block.
        """
        unknown = set(masks) - set(MASK_NAMES)
        if unknown:
            raise TypeError(f"Unknown mask(s): {', '.join(sorted(unknown))}")
        previous = self.set_level(**masks)
        try:
            yield previous
        finally:
            self.set_level(**{name: getattr(previous, name) for name in masks})

    # ========================================================================
    # Classification
    # ========================================================================

    def classify(
        self,
        category: MaskLike,
        reporting: MaskLike,
        shutting_down: bool = False,
    ) -> Decision:
        """
        Decide what to do with a fault of ``category``.

        ``reporting`` is the host's currently enabled mask. Scream ignores
        it. A thrown fault is not logged at raise time: its log happens
        once, wherever it is caught or at shutdown. During shutdown there
        is no later catch site, so a thrown fault also screams.
        """
        levels = self._levels
        category = SeverityMask(category)
        reported = category & reporting

        log = bool(reported & levels.logged)
        throw = bool(reported & levels.thrown)
        scream = category in levels.scream

        if throw:
            if shutting_down:
                scream = True
            else:
                log = scream = False

        return Decision(
            log=log,
            throw=throw,
            scream=scream,
            trace=category in levels.traced,
        )

    def gate(self, category: MaskLike, reporting: MaskLike) -> Decision:
        """
        Classify without the throw/log interaction.

        Used where faults are only buffered: nothing is logged or raised
        yet, so the raw bits are what matter.
        """
        levels = self._levels
        category = SeverityMask(category)
        reported = category & reporting
        return Decision(
            log=bool(reported & levels.logged),
            throw=bool(reported & levels.thrown),
            scream=category in levels.scream,
            trace=category in levels.traced,
        )

    def __repr__(self) -> str:
        return f"PolicyEngine({self._levels!r})"
