"""
Faultgate CLI - output helpers.

Styled output primitives built on Click. All output respects
NO_COLOR / TERM=dumb through ``click.style``.
"""

from __future__ import annotations

import shutil
from typing import Optional

import click


_TERM_WIDTH: Optional[int] = None

_L_H = "\u2500"
_CHECK = "\u2713"
_CROSS = "\u2717"


def _tw() -> int:
    """Terminal width, cached and clamped to a sane range."""
    global _TERM_WIDTH
    if _TERM_WIDTH is None:
        _TERM_WIDTH = max(40, min(shutil.get_terminal_size((80, 24)).columns, 120))
    return _TERM_WIDTH


def success(message: str) -> None:
    """Print success message in green."""
    click.echo(click.style(f"{_CHECK} {message}", fg="green"))


def error(message: str) -> None:
    """Print error message in red, on stderr."""
    click.echo(click.style(f"{_CROSS} {message}", fg="red"), err=True)


def dim(message: str) -> None:
    click.echo(click.style(message, dim=True))


def section(title: str, *, width: Optional[int] = None, fg: str = "cyan") -> None:
    """
    Print a section header with a ruled line.

        ── Levels ─────────────────────────────────
    """
    w = width or _tw()
    dashes = max(4, w - len(title) - 6)
    click.echo(click.style(f"{_L_H}{_L_H} {title} {_L_H * dashes}", fg=fg, bold=True))


def kv(
    key: str,
    value: str,
    *,
    key_width: int = 12,
    indent: int = 2,
    key_fg: str = "white",
    val_fg: str = "cyan",
) -> None:
    """
    Print an aligned key-value pair.

        logged:     ALL
        thrown:     USER_ERROR|RECOVERABLE_ERROR
    """
    prefix = " " * indent
    k = click.style(f"{key}:", fg=key_fg)
    v = click.style(str(value), fg=val_fg)
    padding = " " * max(1, key_width - len(key) - 1)
    click.echo(f"{prefix}{k}{padding}{v}")
