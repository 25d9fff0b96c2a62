"""Shared Rich console, banner and step tracker."""

from rich.align import Align
from rich.console import Console
from rich.markup import escape
from rich.text import Text
from rich.tree import Tree

console = Console()

BANNER = """
███████╗██╗   ██╗██████╗  █████╗ ██╗     ██╗████████╗███████╗
██╔════╝██║   ██║██╔══██╗██╔══██╗██║     ██║╚══██╔══╝██╔════╝
███████╗██║   ██║██████╔╝███████║██║     ██║   ██║   █████╗  
╚════██║██║   ██║██╔═══╝ ██╔══██║██║     ██║   ██║   ██╔══╝  
███████║╚██████╔╝██║     ██║  ██║███████╗██║   ██║   ███████╗
╚══════╝ ╚═════╝ ╚═╝     ╚═╝  ╚═╝╚══════╝╚═╝   ╚═╝   ╚══════╝
"""

TAGLINE = "Next.js + Supabase starter, provisioned from your terminal"


def show_banner():
    """Display the ASCII art banner."""
    banner_lines = BANNER.strip().split("\n")
    colors = ["bright_green", "green", "cyan", "bright_cyan", "white", "bright_white"]

    styled_banner = Text()
    for i, line in enumerate(banner_lines):
        styled_banner.append(line + "\n", style=colors[i % len(colors)])

    console.print(Align.center(styled_banner))
    console.print(Align.center(Text(TAGLINE, style="italic bright_yellow")))
    console.print()


class StepTracker:
    """Track pipeline steps and render them as a tree.

    A refresh callback can be attached so a surrounding ``rich.live.Live``
    redraws on every status change.
    """

    SYMBOLS = {
        "done": "[green]●[/green]",
        "pending": "[green dim]○[/green dim]",
        "running": "[cyan]○[/cyan]",
        "error": "[red]●[/red]",
        "skipped": "[yellow]○[/yellow]",
    }

    def __init__(self, title: str):
        self.title = title
        self.steps = []  # dicts: {key, label, status, detail}
        self._refresh_cb = None

    def attach_refresh(self, cb):
        self._refresh_cb = cb

    def add(self, key: str, label: str):
        if key not in [s["key"] for s in self.steps]:
            self.steps.append({"key": key, "label": label, "status": "pending", "detail": ""})
            self._maybe_refresh()

    def start(self, key: str, detail: str = ""):
        self._update(key, status="running", detail=detail)

    def complete(self, key: str, detail: str = ""):
        self._update(key, status="done", detail=detail)

    def error(self, key: str, detail: str = ""):
        self._update(key, status="error", detail=detail)

    def skip(self, key: str, detail: str = ""):
        self._update(key, status="skipped", detail=detail)

    def status_of(self, key: str) -> str | None:
        for s in self.steps:
            if s["key"] == key:
                return s["status"]
        return None

    def running_step(self) -> str | None:
        for s in self.steps:
            if s["status"] == "running":
                return s["key"]
        return None

    def _update(self, key: str, status: str, detail: str):
        for s in self.steps:
            if s["key"] == key:
                s["status"] = status
                if detail:
                    s["detail"] = detail
                self._maybe_refresh()
                return
        self.steps.append({"key": key, "label": key, "status": status, "detail": detail})
        self._maybe_refresh()

    def _maybe_refresh(self):
        if self._refresh_cb:
            self._refresh_cb()

    def render(self):
        tree = Tree(f"[cyan]{self.title}[/cyan]", guide_style="grey50")
        for step in self.steps:
            label = step["label"]
            detail = escape(step["detail"].strip()) if step["detail"] else ""
            symbol = self.SYMBOLS.get(step["status"], " ")

            if step["status"] == "pending":
                text = f"{label} ({detail})" if detail else label
                line = f"{symbol} [bright_black]{text}[/bright_black]"
            elif detail:
                line = f"{symbol} [white]{label}[/white] [bright_black]({detail})[/bright_black]"
            else:
                line = f"{symbol} [white]{label}[/white]"
            tree.add(line)
        return tree
