"""Interactive setup flow.

Walks the user from "nothing" to a finalized :class:`ProjectConfig`:

    CLI check -> auth check -> mode (create / existing / manual)
              -> package manager + port -> done

Every decision point can end in a cancelled result, and most can fall back to
entering credentials by hand. The flow only decides; it never writes files.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from rich.markup import escape
from rich.panel import Panel

from .config import (
    ProjectConfig,
    validate_api_key,
    validate_db_password,
    validate_port,
    validate_project_name,
    validate_supabase_url,
)
from .constants import (
    DEFAULT_PORT,
    DEFAULT_REGION,
    MIN_DB_PASSWORD_LENGTH,
    PROJECT_LIMIT_MARKERS,
    REGIONS,
    SUPABASE_DASHBOARD_URL,
)
from .debug import debug, debug_error
from .errors import FatalError, SetupCancelled, SupaliteError, UnavailableError
from .package_managers import PackageManagerDetector, default_package_manager
from .prompts import Prompter
from .supabase import ProjectCredentials, SupabaseCLI, project_ref_from_url
from .ui import console


class SetupMethod(str, Enum):
    AUTOMATED = "automated"
    MANUAL = "manual"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SetupResult:
    config: ProjectConfig | None
    method: SetupMethod

    @classmethod
    def cancelled(cls) -> "SetupResult":
        return cls(None, SetupMethod.CANCELLED)


class Step(Enum):
    CLI = "cli"
    AUTH = "auth"
    MODE = "mode"


def is_project_limit_error(message: str) -> bool:
    return any(marker in message for marker in PROJECT_LIMIT_MARKERS)


def _info(message: str):
    console.print(f"[cyan]{escape(message)}[/cyan]")


def _success(message: str):
    console.print(f"[green]✓ {escape(message)}[/green]")


def _warn(message: str):
    console.print(f"[yellow]{escape(message)}[/yellow]")


def _error(message: str):
    console.print(f"[red]{escape(message)}[/red]")


def _note(body: str, title: str, style: str = "cyan"):
    console.print()
    console.print(Panel(body, title=f"[{style}]{title}[/{style}]", border_style=style, padding=(1, 2)))


class SetupFlow:
    def __init__(self, prompter: Prompter, cli: SupabaseCLI, detector: PackageManagerDetector, cwd: Path | None = None):
        self.prompter = prompter
        self.cli = cli
        self.detector = detector
        self.cwd = (cwd or Path.cwd()).resolve()
        self._approved_target: Path | None = None

    def run(self, project_name: str | None = None) -> SetupResult:
        try:
            return self._run(project_name)
        except SetupCancelled:
            return self._cancel("Operation cancelled")

    def _run(self, project_name: str | None) -> SetupResult:
        self._approved_target = None
        # Asked before any remote work; _finish re-checks whatever name was settled on
        if project_name and not self._confirm_target(project_name):
            return self._cancel("Operation cancelled")

        handlers = {
            Step.CLI: self._check_cli,
            Step.AUTH: self._check_auth,
            Step.MODE: self._choose_mode,
        }
        step = Step.CLI
        while True:
            debug(f"[DEBUG] Setup step: {step.value}")
            outcome = handlers[step](project_name)
            if isinstance(outcome, SetupResult):
                return outcome
            step = outcome

    def _cancel(self, message: str) -> SetupResult:
        _warn(message)
        return SetupResult.cancelled()

    def _confirm_target(self, name: str) -> bool:
        """False when ``name`` exists in cwd and the user won't overwrite it."""
        target = self.cwd / name
        if target == self._approved_target or not target.exists():
            return True
        overwrite = self.prompter.request_confirmation(
            f'Directory "{name}" already exists. Overwrite?', default=False
        )
        if overwrite:
            self._approved_target = target
        return overwrite

    # -- CLI presence ------------------------------------------------------------

    def _check_cli(self, project_name):
        if self.cli.is_installed():
            return Step.AUTH

        choice = self.prompter.request_choice(
            "Supabase CLI not installed. Setup:",
            {
                "install": "Install automatically (recommended)",
                "manual": "Manual credentials",
                "cancel": "Cancel",
            },
        )
        if choice == "cancel":
            return self._cancel("Setup cancelled")
        if choice == "manual":
            return self._manual(project_name)

        if self.cli.install() and self.cli.is_installed():
            _success("Supabase CLI installed successfully!")
            return Step.AUTH

        _error("Failed to install Supabase CLI")
        choice = self.prompter.request_choice(
            "Installation failed. What would you like to do?",
            {
                "install": "Help me install it",
                "manual": "Continue with manual setup",
                "cancel": "Cancel setup",
            },
        )
        if choice == "cancel":
            return self._cancel("Setup cancelled")
        if choice == "manual":
            return self._manual(project_name)

        if self.cli.install() and self.cli.is_installed():
            _success("Supabase CLI installed successfully!")
            return Step.AUTH

        _error("Installation failed")
        _info("You may need to install it manually or continue with manual setup")
        return Step.CLI

    # -- authentication ------------------------------------------------------------

    def _check_auth(self, project_name):
        if self.cli.is_authenticated():
            return Step.MODE

        choice = self.prompter.request_choice(
            "Supabase authentication required:",
            {
                "login": "Login (opens browser)",
                "manual": "Manual credentials",
                "cancel": "Cancel",
            },
        )
        if choice == "cancel":
            return self._cancel("Setup cancelled")
        if choice == "manual":
            return self._manual(project_name)

        if not self.cli.login():
            _error("Login failed")
            choice = self.prompter.request_choice(
                "What would you like to do?",
                {
                    "retry": "Try logging in again",
                    "manual": "Continue with manual setup",
                    "cancel": "Cancel setup",
                },
            )
            if choice == "cancel":
                return self._cancel("Setup cancelled")
            if choice == "manual":
                return self._manual(project_name)
            if not self.cli.login():
                _error("Login failed again")
                return self._manual(project_name)

        _success("Successfully authenticated!")
        return Step.MODE

    # -- project mode --------------------------------------------------------------

    def _choose_mode(self, project_name):
        choice = self.prompter.request_choice(
            "Supabase setup:",
            {
                "create": "Create new project",
                "existing": "Use existing project",
                "manual": "Manual credentials",
            },
        )
        if choice == "manual":
            return self._manual(project_name)

        try:
            if choice == "create":
                return self._create_project(project_name)
            return self._use_existing_project(project_name)
        except (SetupCancelled, FatalError):
            raise
        except SupaliteError as e:
            return self._recover(project_name, e)

    def _recover(self, project_name, error: SupaliteError):
        message = str(error)
        debug_error(f"[DEBUG] Project setup failed: {message}")

        if is_project_limit_error(message):
            _error("Project limit reached")
            _note(
                "No worries! You've reached your free project limit.\n\n"
                "To continue:\n"
                f"1. Open [cyan]{SUPABASE_DASHBOARD_URL}[/cyan]\n"
                "2. Delete, pause, or upgrade a project\n"
                "3. Come back here and confirm to retry",
                "Action Required",
                style="yellow",
            )
            if self.prompter.request_confirmation("Ready to retry? (I've fixed it)", default=True):
                return Step.MODE
            return self._cancel("Setup cancelled")

        _error(f"Error: {message}")
        choice = self.prompter.request_choice(
            "What would you like to do?",
            {"manual": "Manual setup", "cancel": "Cancel"},
        )
        if choice == "cancel":
            return self._cancel("Setup cancelled")
        return self._manual(project_name)

    def _create_project(self, initial_name):
        name = self.prompter.request_text(
            "Project name:", default=initial_name or "my-app", validate=validate_project_name
        )

        try:
            with self.prompter.show_progress("Loading organizations..."):
                orgs = self.cli.list_organizations()
        except SupaliteError as e:
            raise UnavailableError(f"Failed to fetch organizations: {e}") from e

        if not orgs:
            _error("No organizations found. Please create one at https://supabase.com")
            return self._manual(name)

        if len(orgs) == 1:
            org_id = orgs[0].id
            _info(f"Using organization: {orgs[0].name}")
        else:
            org_id = self.prompter.request_choice(
                "Select an organization:", {org.id: org.name for org in orgs}
            )

        region = self.prompter.request_choice(
            "Region:",
            {value: f"{label} ({value})" for value, label in REGIONS.items()},
            default=DEFAULT_REGION,
        )
        password = self.prompter.request_secret(
            f"Database password (min {MIN_DB_PASSWORD_LENGTH} chars):", validate=validate_db_password
        )

        with self.prompter.show_progress("Checking for duplicate project names..."):
            existing = self.cli.list_projects()
        if any(project.name.lower() == name.lower() for project in existing):
            _error(f'A project named "{name}" already exists in your organization.')
            _info("Please delete it from the Supabase dashboard or choose a different name.")
            return SetupResult.cancelled()

        with self.prompter.show_progress("Creating Supabase project...", done="Project created!"):
            project = self.cli.create_project(name, org_id, region, password)

        debug(f"[DEBUG] About to wait for project: {project.id}")
        with self.prompter.show_progress("Waiting for project to be ready (this may take a few minutes)..."):
            ready = self.cli.wait_until_ready(project.id)
        if not ready:
            _warn(f"Project is still provisioning. You can check status at {SUPABASE_DASHBOARD_URL}")
            _info("Please wait a few minutes and run the setup again")
            return SetupResult.cancelled()

        with self.prompter.show_progress("Fetching project credentials...", done="Credentials retrieved!"):
            credentials = self.cli.get_credentials(project.id)

        return self._finish(name, credentials, SetupMethod.AUTOMATED, db_password=password)

    def _use_existing_project(self, initial_name):
        name = self.prompter.request_text(
            "Local project name:", default=initial_name or "my-app", validate=validate_project_name
        )

        try:
            with self.prompter.show_progress("Loading projects..."):
                projects = self.cli.list_projects()
        except SupaliteError as e:
            raise UnavailableError(f"Failed to fetch projects: {e}") from e

        if not projects:
            _warn("No projects found. Create one at https://supabase.com")
            choice = self.prompter.request_choice(
                "What would you like to do?",
                {
                    "create": "Create a new project",
                    "manual": "Enter credentials manually",
                    "cancel": "Cancel setup",
                },
            )
            if choice == "cancel":
                return self._cancel("Setup cancelled")
            if choice == "create":
                return self._create_project(name)
            return self._manual(name)

        project_id = self.prompter.request_choice(
            "Select a Supabase project:",
            {project.id: f"{project.name} ({project.region})" for project in projects},
        )
        debug(f"[DEBUG] Selected existing project ID: {project_id}")

        with self.prompter.show_progress("Loading credentials..."):
            credentials = self.cli.get_credentials(project_id)

        return self._finish(name, credentials, SetupMethod.AUTOMATED)

    # -- manual credentials ----------------------------------------------------------

    def _manual(self, initial_name) -> SetupResult:
        _note(
            "Manual setup requires your Supabase project credentials.\n\n"
            "If you don't have a project yet:\n"
            f"  1. Go to {SUPABASE_DASHBOARD_URL}\n"
            '  2. Click "New project"\n'
            "  3. Fill in the details and create it\n"
            "  4. Come back here with your credentials",
            "Setup Guide",
        )

        name = self.prompter.request_text(
            "Project name (for your local folder):",
            default=initial_name or "my-app",
            validate=validate_project_name,
        )

        _info("Next: find your project URL on the project home page (https://xxxxx.supabase.co)")
        url = self.prompter.request_text(
            "Supabase project URL:", placeholder="https://xxxxx.supabase.co", validate=validate_supabase_url
        )

        _info("Next: copy the anon key, right below the Project URL")
        anon_key = self.prompter.request_text(
            "Supabase anon key (starts with eyJh...):",
            validate=lambda value: validate_api_key(value, "Anon key"),
        )

        ref = project_ref_from_url(url)
        if ref:
            _info(f"Next: open {SUPABASE_DASHBOARD_URL}/project/{ref}/settings/api-keys, "
                  'click the "Legacy API Keys" tab and copy the service_role key')
        else:
            _info('Next: Project Settings > API Keys, "Legacy API Keys" tab, copy the service_role key')
        service_key = self.prompter.request_secret(
            "Supabase service_role key:",
            validate=lambda value: validate_api_key(value, "Service role key"),
        )

        credentials = ProjectCredentials(url=url, anon_key=anon_key, service_key=service_key)
        return self._finish(name, credentials, SetupMethod.MANUAL)

    # -- shared tail -------------------------------------------------------------------

    def _finish(self, name: str, credentials: ProjectCredentials, method: SetupMethod, db_password: str | None = None) -> SetupResult:
        if not self._confirm_target(name):
            return self._cancel("Operation cancelled")

        options = self.detector.detect()
        package_manager = self.prompter.request_choice(
            "Package manager:",
            {option.value: option.label for option in options},
            default=default_package_manager(options),
        )
        port = self.prompter.request_text(
            "Dev server port:", default=str(DEFAULT_PORT), validate=validate_port
        )

        config = ProjectConfig(
            project_name=name,
            supabase_url=credentials.url,
            anon_key=credentials.anon_key,
            service_key=credentials.service_key,
            target_dir=self.cwd / name,
            package_manager=package_manager,
            port=int(port),
            db_password=db_password,
        )
        return SetupResult(config, method)
