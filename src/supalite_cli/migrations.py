"""Schema migration and type generation for a freshly copied project."""

from enum import Enum
from pathlib import Path

import sqlparse

from .constants import (
    MAX_MIGRATION_RETRIES,
    MIGRATION_FILE,
    MIGRATION_RETRY_BASE_DELAY,
    PROVISIONING_ERROR_MARKERS,
    TYPES_FILE,
)
from .debug import debug, debug_error
from .errors import LinkError, MigrationError
from .supabase import SupabaseCLI, project_ref_from_url


class MigrationOutcome(str, Enum):
    CLI = "cli"
    # Reserved: PostgREST cannot run arbitrary SQL, so nothing produces this yet.
    API = "api"
    MANUAL = "manual"


def _has_code(chunk: str) -> bool:
    return any(line.strip() and not line.strip().startswith("--") for line in chunk.splitlines())


def split_sql_statements(sql: str) -> list[str]:
    """Split a migration script into statements, dropping comment-only chunks."""
    return [statement for statement in sqlparse.split(sql) if _has_code(statement)]


def load_migration(target_dir: Path) -> list[str]:
    path = target_dir / MIGRATION_FILE
    sql = path.read_text(encoding="utf-8")
    statements = split_sql_statements(sql)
    debug(f"[DEBUG] Migration SQL loaded from {path} ({len(sql)} chars, {len(statements)} statements)")
    return statements


def is_provisioning_error(stderr: str) -> bool:
    return any(marker in stderr for marker in PROVISIONING_ERROR_MARKERS)


def push_migrations(cli: SupabaseCLI, target_dir: Path, ref: str, db_password: str) -> int:
    """Link ``target_dir`` to ``ref`` and push migrations.

    A push that fails because the new database is still provisioning is retried
    after ``(retry + 1) * MIGRATION_RETRY_BASE_DELAY`` seconds, at most
    ``MAX_MIGRATION_RETRIES`` times; the link is not repeated. Any other
    failure raises immediately. Returns the number of retries used.
    """
    result = cli.link(ref, db_password, target_dir)
    if not result.ok:
        debug_error(f"[DEBUG] Link stderr: {result.stderr}")
        raise LinkError(f"Failed to link project: {(result.stderr or result.stdout).strip()}")

    retry_count = 0
    while True:
        result = cli.db_push(target_dir)
        if result.ok:
            return retry_count

        provisioning = is_provisioning_error(result.stderr)
        debug(f"[DEBUG] Migration push failed (provisioning issue: {provisioning}, retry {retry_count})")
        if not provisioning or retry_count >= MAX_MIGRATION_RETRIES:
            raise MigrationError(result.stderr)

        delay = (retry_count + 1) * MIGRATION_RETRY_BASE_DELAY
        debug(f"[DEBUG] Retrying after {delay}s...")
        cli.ctx.sleep(delay)
        retry_count += 1


def apply_migrations(target_dir: Path, supabase_url: str, cli: SupabaseCLI, db_password: str | None = None) -> MigrationOutcome:
    """Push the bundled migration with the Supabase CLI when possible.

    The CLI path needs both an installed CLI and the database password (only
    known when the project was created during this run). Without them the SQL
    has to be applied by hand from the dashboard.
    """
    ref = project_ref_from_url(supabase_url)
    has_cli = cli.is_installed()

    if has_cli and db_password and ref:
        push_migrations(cli, target_dir, ref, db_password)
        return MigrationOutcome.CLI

    debug(f"[DEBUG] Skipping CLI migration (CLI: {has_cli}, password: {bool(db_password)}, ref: {ref})")
    return MigrationOutcome.MANUAL


def generate_types(target_dir: Path, supabase_url: str, cli: SupabaseCLI) -> bool:
    """Write generated TypeScript types; False when skipped for any reason."""
    ref = project_ref_from_url(supabase_url)
    if not ref or not cli.is_installed():
        return False

    output = cli.gen_types(ref, target_dir)
    if output is None:
        return False

    types_path = target_dir / TYPES_FILE
    try:
        types_path.parent.mkdir(parents=True, exist_ok=True)
        types_path.write_text(output, encoding="utf-8")
    except OSError as e:
        debug_error(f"[DEBUG] Could not write {types_path}: {e}")
        return False
    return True
