"""Setup configuration record, input validators and environment lookups."""

import os
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Mapping

from .constants import (
    DEFAULT_PORT,
    MAX_PORT,
    MIN_DB_PASSWORD_LENGTH,
    MIN_PORT,
    PACKAGE_MANAGERS,
    PROJECT_NAME_PATTERN,
)

DEBUG_ENV_VARS = ("DEBUG", "SUPALITE_DEBUG")
TEMPLATE_DIR_ENV_VAR = "SUPALITE_TEMPLATE_DIR"

_PROJECT_NAME_RE = re.compile(PROJECT_NAME_PATTERN)


def is_debug_enabled(env: Mapping[str, str] | None = None) -> bool:
    env = os.environ if env is None else env
    return any(env.get(name) == "1" for name in DEBUG_ENV_VARS)


def github_token(env: Mapping[str, str] | None = None) -> str | None:
    """Return sanitized GitHub token from GH_TOKEN / GITHUB_TOKEN, or None."""
    env = os.environ if env is None else env
    return ((env.get("GH_TOKEN") or env.get("GITHUB_TOKEN") or "").strip()) or None


def template_dir(env: Mapping[str, str] | None = None) -> Path:
    """Template shipped with the package unless SUPALITE_TEMPLATE_DIR points elsewhere."""
    env = os.environ if env is None else env
    override = env.get(TEMPLATE_DIR_ENV_VAR)
    if override:
        return Path(override).expanduser().resolve()
    return Path(__file__).resolve().parent / "template"


# Validators return an error message, or None when the value is acceptable.

def validate_project_name(value: str) -> str | None:
    if not value:
        return "Project name is required"
    if not _PROJECT_NAME_RE.match(value):
        return "Project name must be lowercase alphanumeric with hyphens"
    return None


def validate_port(value: str) -> str | None:
    try:
        port = int(value)
    except (TypeError, ValueError):
        return "Port must be a number"
    if port < MIN_PORT or port > MAX_PORT:
        return f"Port must be between {MIN_PORT} and {MAX_PORT}"
    return None


def validate_db_password(value: str) -> str | None:
    if not value:
        return "Password is required"
    if len(value) < MIN_DB_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_DB_PASSWORD_LENGTH} characters"
    return None


def validate_supabase_url(value: str) -> str | None:
    if not value:
        return "Supabase URL is required"
    if not value.startswith("https://") or "supabase.co" not in value:
        return "Must be a valid Supabase URL (https://xxxxx.supabase.co)"
    return None


def validate_api_key(value: str, label: str = "API key") -> str | None:
    if not value:
        return f"{label} is required"
    if len(value) < 100:
        return "Key appears invalid (too short)"
    return None


@dataclass(frozen=True)
class ProjectConfig:
    """Finalized setup intent handed from the interactive flow to the materializer.

    ``service_key`` and ``db_password`` are used during setup only; they are
    kept out of ``repr`` and never written to disk.
    """

    project_name: str
    supabase_url: str
    anon_key: str
    service_key: str = field(repr=False)
    target_dir: Path
    package_manager: str
    port: int = DEFAULT_PORT
    db_password: str | None = field(default=None, repr=False)

    def __post_init__(self):
        error = validate_project_name(self.project_name)
        if error:
            raise ValueError(error)
        if self.package_manager not in PACKAGE_MANAGERS:
            raise ValueError(f"Unknown package manager '{self.package_manager}'")
        error = validate_port(str(self.port))
        if error:
            raise ValueError(error)
        if not Path(self.target_dir).is_absolute():
            raise ValueError("target_dir must be an absolute path")

    def redacted(self) -> dict:
        """Dict form safe for debug output."""
        data = asdict(self)
        data["service_key"] = "[REDACTED]"
        data["db_password"] = "[REDACTED]" if self.db_password else None
        data["target_dir"] = str(self.target_dir)
        return data
