"""Turn a finalized ProjectConfig into a working local project."""

import json
from dataclasses import dataclass
from pathlib import Path

from rich.live import Live

from .config import ProjectConfig, template_dir
from .debug import debug
from .migrations import MigrationOutcome, apply_migrations, generate_types, load_migration
from .package_managers import install_dependencies
from .scaffold import copy_template, set_package_manager, write_env_file
from .supabase import SupabaseCLI
from .ui import StepTracker, console

PIPELINE_STEPS = [
    ("copy", "Copy template"),
    ("package", "Configure package.json"),
    ("env", "Write environment file"),
    ("migrate", "Apply database migrations"),
    ("types", "Generate types"),
    ("install", "Install dependencies"),
]


@dataclass(frozen=True)
class ProjectReport:
    migration: MigrationOutcome
    types_generated: bool
    tracker: StepTracker
    migration_statements: int = 0


def create_project(config: ProjectConfig, cli: SupabaseCLI, template: Path | None = None) -> ProjectReport:
    """Run the materialization pipeline in order.

    Any failure stops the pipeline and propagates, except a manual migration
    outcome and skipped type generation, which are reported instead.
    """
    debug(f"[DEBUG] Config: {json.dumps(config.redacted(), indent=2)}")
    template = template or template_dir()
    target = config.target_dir

    tracker = StepTracker("Create Supalite Project")
    for key, label in PIPELINE_STEPS:
        tracker.add(key, label)

    try:
        with Live(tracker.render(), console=console, refresh_per_second=8, transient=True) as live:
            tracker.attach_refresh(lambda: live.update(tracker.render()))

            tracker.start("copy")
            files = copy_template(template, target)
            tracker.complete("copy", f"{files} files in {target.name}")

            tracker.start("package")
            set_package_manager(target, config.package_manager, config.port)
            tracker.complete("package", f"{config.package_manager}, port {config.port}")

            tracker.start("env")
            write_env_file(target, config.supabase_url, config.anon_key)
            tracker.complete("env", ".env.local")

            tracker.start("migrate")
            statements = load_migration(target)
            migration = apply_migrations(target, config.supabase_url, cli, config.db_password)
            if migration is MigrationOutcome.MANUAL:
                tracker.skip("migrate", f"manual setup required, {len(statements)} statements")
            else:
                tracker.complete("migrate", f"{len(statements)} statements via Supabase CLI")

            tracker.start("types")
            types_generated = generate_types(target, config.supabase_url, cli)
            if types_generated:
                tracker.complete("types")
            else:
                tracker.skip("types", "template includes placeholder")
        tracker.attach_refresh(None)

        tracker.start("install", config.package_manager)
        console.print(f"[cyan]Installing dependencies with {config.package_manager}...[/cyan]")
        install_dependencies(cli.runner, target, config.package_manager)
        tracker.complete("install")
    except Exception as e:
        tracker.attach_refresh(None)
        failed = tracker.running_step()
        if failed:
            tracker.error(failed, str(e))
        console.print(tracker.render())
        raise

    console.print(tracker.render())
    return ProjectReport(
        migration=migration,
        types_generated=types_generated,
        tracker=tracker,
        migration_statements=len(statements),
    )
