#!/usr/bin/env python3
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "typer",
#     "rich",
#     "readchar",
#     "httpx",
#     "truststore>=0.10.4",
#     "sqlparse",
# ]
# ///
"""
create-supalite - scaffold a Next.js + Supabase starter project

Usage:
    uvx create-supalite <project-name>

Or install globally:
    uv tool install create-supalite
    create-supalite <project-name>

Set DEBUG=1 or SUPALITE_DEBUG=1 for verbose tracing.
"""

import sys
import time
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape
from rich.panel import Panel

from .constants import CLI_NAME, DEFAULT_PORT, MIGRATION_FILE, SUPABASE_AUTH_SETTINGS_URL
from .debug import is_debug
from .flow import SetupFlow, SetupMethod, SetupResult
from .migrations import MigrationOutcome
from .package_managers import PackageManagerDetector, run_script_command
from .project import ProjectReport, create_project
from .prompts import TerminalPrompter
from .runner import ExecContext, ProcessRunner
from .supabase import SupabaseCLI, project_ref_from_url
from .ui import console, show_banner

app = typer.Typer(
    name=CLI_NAME,
    help="Create a Next.js + Supabase project with a linked remote backend",
    add_completion=False,
)


def print_summary(result: SetupResult, report: ProjectReport, duration: int):
    config = result.config

    if report.migration is MigrationOutcome.MANUAL:
        console.print()
        console.print(Panel(
            f"{report.migration_statements} SQL statements still need to be applied.\n"
            f"Please run the SQL in [cyan]{MIGRATION_FILE.as_posix()}[/cyan] in your Supabase dashboard (SQL editor).",
            title="[yellow]Manual Migration Required[/yellow]",
            border_style="yellow",
            padding=(1, 2),
        ))

    if not report.types_generated:
        console.print()
        console.print(Panel(
            f"Run [cyan]{run_script_command(config.package_manager, 'db:types')}[/cyan] to generate types from your schema.",
            title="Type Generation",
            border_style="cyan",
            padding=(1, 2),
        ))

    console.print()
    console.print(Panel(
        "The service role key was used for setup only and was not saved.",
        title="[yellow]Security Note[/yellow]",
        border_style="yellow",
        padding=(1, 2),
    ))

    steps_lines = []
    step_num = 1
    ref = project_ref_from_url(config.supabase_url)
    if result.method is SetupMethod.AUTOMATED and ref:
        callback_url = f"http://localhost:{config.port or DEFAULT_PORT}/api/auth/callback"
        steps_lines.append(f"{step_num}. Add the auth redirect URL (one manual step):")
        steps_lines.append(f"   Open: [cyan]{SUPABASE_AUTH_SETTINGS_URL.format(ref=ref)}[/cyan]")
        steps_lines.append(f"   Add:  [green]{callback_url}[/green]")
        step_num += 1
    steps_lines.append(
        f"{step_num}. Start the dev server: "
        f"[cyan]cd {config.project_name} && {run_script_command(config.package_manager, 'dev')}[/cyan]"
    )

    console.print()
    console.print(Panel("\n".join(steps_lines), title="Next Steps", border_style="cyan", padding=(1, 2)))
    setup_label = "automated with Supabase CLI" if result.method is SetupMethod.AUTOMATED else "manual setup"
    console.print(f"\n[bold green]Done ({duration}s)[/bold green] [dim]({setup_label})[/dim]")


@app.command()
def create(
    project_name: Optional[str] = typer.Argument(None, help="Name for your new project directory and Supabase project"),
):
    """
    Create a new Supalite project.

    This command will:
    1. Check for the Supabase CLI (offering to install it) and your login
    2. Create a new Supabase project, pick an existing one, or take credentials by hand
    3. Copy the Next.js starter template into a new directory
    4. Write .env.local, push the database schema and generate types
    5. Install dependencies with npm, pnpm or bun

    Examples:
        create-supalite my-app
        DEBUG=1 create-supalite my-app
    """
    show_banner()

    runner = ProcessRunner(ExecContext())
    cli = SupabaseCLI(runner)
    flow = SetupFlow(TerminalPrompter(), cli, PackageManagerDetector(runner))

    try:
        result = flow.run(project_name.strip() if project_name else None)
        if result.config is None:
            raise typer.Exit(0)
        start = time.monotonic()
        report = create_project(result.config, cli)
    except typer.Exit:
        raise
    except Exception as e:
        console.print()
        console.print(Panel(f"Setup failed: {escape(str(e))}", title="[red]Failure[/red]", border_style="red", padding=(1, 2)))
        if is_debug():
            _env_pairs = [
                ("Python", sys.version.split()[0]),
                ("Platform", sys.platform),
                ("CWD", str(Path.cwd())),
                ("Error", type(e).__name__),
            ]
            _label_width = max(len(k) for k, _ in _env_pairs)
            env_lines = [f"{k.ljust(_label_width)} → [bright_black]{v}[/bright_black]" for k, v in _env_pairs]
            console.print(Panel("\n".join(env_lines), title="Debug Environment", border_style="magenta"))
        raise typer.Exit(1)

    print_summary(result, report, round(time.monotonic() - start))


def main():
    app()


if __name__ == "__main__":
    main()
