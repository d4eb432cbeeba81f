"""
Faultgate - Process-wide handler stack.

Handlers are installed and removed strictly last-in first-out. The top of
the stack is the active handler.
"""

from __future__ import annotations

from typing import Any, Iterator, Optional

from .core import NoHandlerError


class HandlerStack:
    """Ordered list of installed error handlers."""

    def __init__(self):
        self._handlers: list[Any] = []

    def push(self, handler: Any):
        self._handlers.append(handler)

    def pop(self, handler: Any) -> bool:
        """
        Remove ``handler`` if it is the top of the stack.

        Returns:
            False, leaving the stack unchanged, when ``handler`` is not the top
        """
        if not self._handlers or self._handlers[-1] is not handler:
            return False
        self._handlers.pop()
        return True

    def top(self) -> Optional[Any]:
        return self._handlers[-1] if self._handlers else None

    def is_top(self, handler: Any) -> bool:
        return bool(self._handlers) and self._handlers[-1] is handler

    def clear(self):
        self._handlers.clear()

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, handler: Any) -> bool:
        return any(h is handler for h in self._handlers)

    def __iter__(self) -> Iterator[Any]:
        return iter(tuple(self._handlers))


handler_stack = HandlerStack()


def get_handler() -> Any:
    """
    Returns the currently registered error handler.

    Raises:
        NoHandlerError: When no handler has been registered
    """
    handler = handler_stack.top()
    if handler is None:
        raise NoHandlerError("No error handler has been registered")
    return handler
