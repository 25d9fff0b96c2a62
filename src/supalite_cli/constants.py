"""Application-wide constants."""

from pathlib import Path

CLI_NAME = "create-supalite"

# Dev server
DEFAULT_PORT = 3000
MIN_PORT = 1
MAX_PORT = 65535

# Project provisioning (seconds)
MAX_PROJECT_WAIT_TIME = 300
PROJECT_CHECK_INTERVAL = 10

# Migration push retries (seconds)
MIGRATION_RETRY_BASE_DELAY = 10
MAX_MIGRATION_RETRIES = 3

# Database password
MIN_DB_PASSWORD_LENGTH = 12
GENERATED_PASSWORD_LENGTH = 20
PASSWORD_CHARSET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789!@#$%^&*"

# Remote platform
SUPABASE_BIN = "supabase"
SUPABASE_URL_TEMPLATE = "https://{ref}.supabase.co"
SUPABASE_DASHBOARD_URL = "https://supabase.com/dashboard"
SUPABASE_AUTH_SETTINGS_URL = "https://app.supabase.com/project/{ref}/auth/url-configuration"
SUPABASE_RELEASE_URL = "https://github.com/supabase/cli/releases/latest/download/{asset}"
HOMEBREW_INSTALL_HINT = '/bin/bash -c "$(curl -fsSL https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh)"'

DEFAULT_REGION = "us-east-1"
REGIONS = {
    "us-east-1": "US East (North Virginia)",
    "us-west-1": "US West (North California)",
    "ap-southeast-1": "Asia Pacific (Singapore)",
    "ap-northeast-1": "Asia Pacific (Tokyo)",
    "eu-west-1": "Europe (Ireland)",
    "eu-central-1": "Europe (Frankfurt)",
}

# Substrings in `db push` stderr that mean the database is still provisioning
PROVISIONING_ERROR_MARKERS = ("Tenant or user not found", "no route to host")

# Substrings in project creation errors that mean the account hit its project quota
PROJECT_LIMIT_MARKERS = ("maximum limits", "project limit", "free projects")

PROJECT_NAME_PATTERN = r"^[a-z0-9-]+$"

# Generated project layout
MIGRATION_FILE = Path("supabase") / "migrations" / "20250101000000_initial_schema.sql"
TYPES_FILE = Path("lib") / "types" / "database.ts"
ENV_FILE = ".env.local"
TEMPLATE_EXCLUDE_DIRS = {"node_modules", ".next"}

# Package managers: label shown in the picker, priority (lower wins), pinned version
PACKAGE_MANAGERS = {
    "npm": {"label": "npm (default)", "priority": 3, "version": "10.9.2"},
    "pnpm": {"label": "pnpm (fast, efficient)", "priority": 1, "version": "9.15.4"},
    "bun": {"label": "bun (fastest)", "priority": 2, "version": "1.2.0"},
}
