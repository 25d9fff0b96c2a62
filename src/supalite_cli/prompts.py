"""Interactive prompt capability used by the setup flow.

The flow only talks to a :class:`Prompter`; :class:`TerminalPrompter` is the
Rich/readchar implementation used at the command line. Every request raises
:class:`~supalite_cli.errors.SetupCancelled` when the user backs out.
"""

import sys
from contextlib import contextmanager
from typing import Callable, ContextManager, Protocol

import readchar
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.live import Live
from rich.markup import escape

from .errors import SetupCancelled
from .ui import console

Validator = Callable[[str], str | None]


class Prompter(Protocol):
    def request_text(self, message: str, *, default: str | None = None, placeholder: str | None = None, validate: Validator | None = None) -> str: ...

    def request_choice(self, message: str, options: dict, *, default: str | None = None) -> str: ...

    def request_secret(self, message: str, *, validate: Validator | None = None) -> str: ...

    def request_confirmation(self, message: str, *, default: bool = False) -> bool: ...

    def show_progress(self, message: str, done: str | None = None) -> ContextManager: ...


def get_key():
    """Get a single keypress in a cross-platform way using readchar."""
    key = readchar.readkey()

    if key == readchar.key.UP:
        return "up"
    if key == readchar.key.DOWN:
        return "down"
    if key == readchar.key.ENTER:
        return "enter"
    if key == readchar.key.ESC:
        return "escape"
    if key == readchar.key.CTRL_C:
        raise KeyboardInterrupt
    return key


def select_with_arrows(options: dict, prompt_text: str = "Select an option", default_key: str | None = None) -> str:
    """
    Interactive selection using arrow keys with Rich Live display.

    Args:
        options: Dict with option keys as values and descriptions as labels
        prompt_text: Text to show above the options
        default_key: Option highlighted first

    Returns:
        Selected option key

    Raises:
        SetupCancelled: on Esc or Ctrl+C
    """
    option_keys = list(options.keys())
    selected_index = option_keys.index(default_key) if default_key in option_keys else 0

    def create_selection_panel():
        table = Table.grid(padding=(0, 2))
        table.add_column(style="cyan", justify="left", width=3)
        table.add_column(style="white", justify="left")

        for i, key in enumerate(option_keys):
            marker = "▶" if i == selected_index else " "
            table.add_row(marker, f"[cyan]{escape(str(options[key]))}[/cyan]")

        table.add_row("", "")
        table.add_row("", "[dim]Use ↑/↓ to navigate, Enter to select, Esc to cancel[/dim]")

        return Panel(table, title=f"[bold]{prompt_text}[/bold]", border_style="cyan", padding=(1, 2))

    console.print()
    with Live(create_selection_panel(), console=console, transient=True, auto_refresh=False) as live:
        while True:
            try:
                key = get_key()
            except KeyboardInterrupt:
                raise SetupCancelled("Selection cancelled") from None
            if key == "up":
                selected_index = (selected_index - 1) % len(option_keys)
            elif key == "down":
                selected_index = (selected_index + 1) % len(option_keys)
            elif key == "enter":
                break
            elif key == "escape":
                raise SetupCancelled("Selection cancelled")
            live.update(create_selection_panel(), refresh=True)

    selected_key = option_keys[selected_index]
    console.print(f"[cyan]{prompt_text}[/cyan] {escape(str(options[selected_key]))}")
    return selected_key


class TerminalPrompter:
    """Prompter backed by the terminal."""

    def request_text(self, message, *, default=None, placeholder=None, validate=None):
        label = f"[bold]{message}[/bold]"
        if placeholder:
            label += f" [dim]({placeholder})[/dim]"
        while True:
            try:
                value = Prompt.ask(label, default=default, console=console)
            except (KeyboardInterrupt, EOFError):
                raise SetupCancelled("Operation cancelled") from None
            value = (value or "").strip()
            error = validate(value) if validate else None
            if error is None:
                return value
            console.print(f"[red]{error}[/red]")

    def request_choice(self, message, options, *, default=None):
        if not sys.stdin.isatty():
            # No keyboard to pick with: only a caller-supplied default is safe
            if default in options:
                return default
            raise SetupCancelled(f"{message} needs an interactive terminal")
        return select_with_arrows(options, message, default)

    def request_secret(self, message, *, validate=None):
        while True:
            try:
                value = Prompt.ask(f"[bold]{message}[/bold]", password=True, console=console)
            except (KeyboardInterrupt, EOFError):
                raise SetupCancelled("Operation cancelled") from None
            error = validate(value) if validate else None
            if error is None:
                return value
            console.print(f"[red]{error}[/red]")

    def request_confirmation(self, message, *, default=False):
        try:
            return Confirm.ask(f"[bold]{message}[/bold]", default=default, console=console)
        except (KeyboardInterrupt, EOFError):
            raise SetupCancelled("Operation cancelled") from None

    @contextmanager
    def show_progress(self, message, done=None):
        with console.status(f"[cyan]{message}[/cyan]"):
            yield
        if done:
            console.print(f"[green]✓[/green] {done}")
