"""Exception hierarchy for the setup flow and project materialization."""


class SupaliteError(Exception):
    """Base class for every error raised by create-supalite."""


class UnavailableError(SupaliteError):
    """The Supabase CLI is missing, unauthenticated, or a listing command failed."""


class ParseError(SupaliteError):
    """CLI output did not have the expected shape."""


class CreationError(SupaliteError):
    """Remote project creation failed. ``detail`` holds the raw CLI diagnostics."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Failed to create project: {detail}")


class CredentialsError(SupaliteError):
    """API keys for a project could not be fetched."""


class LinkError(SupaliteError):
    """`supabase link` failed for the target directory."""


class MigrationError(SupaliteError):
    """`supabase db push` failed for good. ``stderr`` holds the CLI output."""

    def __init__(self, stderr: str):
        self.stderr = stderr
        super().__init__(f"Migration push failed: {stderr}")


class SetupCancelled(SupaliteError):
    """The user backed out of an interactive prompt."""


class FatalError(SupaliteError):
    """Unrecoverable failure; the whole run must stop."""


class NoPackageManagerError(FatalError):
    def __init__(self):
        super().__init__("No package manager found. Please install npm, pnpm, or bun.")


class DependencyInstallError(FatalError):
    pass
