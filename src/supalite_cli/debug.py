"""Verbose tracing, enabled with ``DEBUG=1`` or ``SUPALITE_DEBUG=1``."""

from rich.markup import escape

from .config import is_debug_enabled
from .ui import console


def is_debug() -> bool:
    return is_debug_enabled()


def debug(message: str) -> None:
    """Print a dim trace line when debug mode is on."""
    if is_debug():
        console.print(f"[dim]{escape(message)}[/dim]")


def debug_error(message: str) -> None:
    """Print a red trace line when debug mode is on."""
    if is_debug():
        console.print(f"[red]{escape(message)}[/red]")
