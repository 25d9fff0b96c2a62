"""Template copy and generated project files."""

import json
import shutil
from pathlib import Path

from .constants import DEFAULT_PORT, ENV_FILE, TEMPLATE_EXCLUDE_DIRS
from .package_managers import package_manager_spec

ENV_TEMPLATE = """\
# Supabase Configuration
# Get these from https://app.supabase.com/project/_/settings/api
NEXT_PUBLIC_SUPABASE_URL={url}
NEXT_PUBLIC_SUPABASE_ANON_KEY={anon_key}

# Note: Service role key NOT needed for runtime
# Only used during initial setup by create-supalite
"""


def _ignore_build_artifacts(directory, names):
    return [name for name in names if name in TEMPLATE_EXCLUDE_DIRS or name == "__pycache__"]


def copy_template(template_dir: Path, target_dir: Path) -> int:
    """Copy the template tree into ``target_dir``, creating it if needed.

    Existing files are overwritten; build artifact directories are skipped.
    Returns the number of files copied.
    """
    if not template_dir.is_dir():
        raise FileNotFoundError(f"Template directory does not exist: {template_dir}")
    target_dir.mkdir(parents=True, exist_ok=True)
    shutil.copytree(template_dir, target_dir, ignore=_ignore_build_artifacts, dirs_exist_ok=True)
    return sum(1 for p in target_dir.rglob("*") if p.is_file())


def set_package_manager(target_dir: Path, package_manager: str, port: int | None = None):
    """Pin ``packageManager`` in package.json and apply a non-default dev port."""
    package_json_path = target_dir / "package.json"
    package_json = json.loads(package_json_path.read_text(encoding="utf-8"))

    package_json["packageManager"] = package_manager_spec(package_manager)

    if port and port != DEFAULT_PORT:
        scripts = package_json.setdefault("scripts", {})
        scripts["dev"] = f"next dev -p {port}"
        scripts["start"] = f"next start -p {port}"

    package_json_path.write_text(json.dumps(package_json, indent=2) + "\n", encoding="utf-8")


def write_env_file(target_dir: Path, supabase_url: str, anon_key: str) -> Path:
    """Write .env.local with the public URL and anon key only."""
    env_path = target_dir / ENV_FILE
    env_path.write_text(ENV_TEMPLATE.format(url=supabase_url, anon_key=anon_key), encoding="utf-8")
    return env_path
