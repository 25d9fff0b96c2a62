"""Supabase CLI adapter.

Each operation runs one ``supabase`` subcommand through the process runner and
turns its output into typed records. The CLI's JSON (and, for older releases,
tabular) output is the contract; nothing here talks to the Supabase API
directly.
"""

import json
import os
import platform
import re
import secrets
import shutil
import ssl
import tarfile
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple
from urllib.parse import urlparse

import httpx
import truststore
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

from .config import github_token
from .constants import (
    DEFAULT_REGION,
    GENERATED_PASSWORD_LENGTH,
    HOMEBREW_INSTALL_HINT,
    MAX_PROJECT_WAIT_TIME,
    PASSWORD_CHARSET,
    PROJECT_CHECK_INTERVAL,
    SUPABASE_BIN,
    SUPABASE_RELEASE_URL,
    SUPABASE_URL_TEMPLATE,
)
from .debug import debug, debug_error
from .errors import CreationError, CredentialsError, ParseError, UnavailableError
from .runner import CommandResult, ProcessRunner
from .ui import console

ssl_context = truststore.SSLContext(ssl.PROTOCOL_TLS_CLIENT)


@dataclass(frozen=True)
class Organization:
    id: str
    name: str


@dataclass(frozen=True)
class RemoteProject:
    id: str
    name: str
    organization_id: str = ""
    region: str = ""
    created_at: str = ""


@dataclass(frozen=True)
class ProjectCredentials:
    url: str
    anon_key: str
    service_key: str

    def __repr__(self):
        return f"ProjectCredentials(url={self.url!r}, anon_key=..., service_key=...)"


class OrganizationListing(NamedTuple):
    format: str  # "json" or "table"
    organizations: list


def project_url(ref: str) -> str:
    return SUPABASE_URL_TEMPLATE.format(ref=ref)


def project_ref_from_url(url: str) -> str | None:
    """``https://abcd.supabase.co`` -> ``abcd``; None when the URL has no host."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    if not host:
        return None
    return host.split(".")[0] or None


def generate_password(length: int = GENERATED_PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(PASSWORD_CHARSET) for _ in range(length))


# Organization listing: newer CLI releases honour `--output json`, older ones
# (v2.39 and earlier) print a pipe-delimited table:
#
#     ID                   | NAME
#   ----------------------|----------------
#    azoyksukebdkeaelzlfm | Growth Stories

_TABLE_RULE = re.compile(r"[\s|+-]*")


def _orgs_from_json(output: str) -> list:
    try:
        data = json.loads(output)
    except ValueError:
        return []
    if not isinstance(data, list):
        return []
    return [
        Organization(id=str(item["id"]), name=str(item["name"]))
        for item in data
        if isinstance(item, dict) and item.get("id") and item.get("name")
    ]


def _orgs_from_table(output: str) -> list:
    orgs = []
    for line in output.splitlines():
        if "|" not in line or _TABLE_RULE.fullmatch(line):
            continue
        cells = [cell.strip() for cell in line.split("|")]
        if len(cells) < 2 or not cells[0] or not cells[1]:
            continue
        if cells[0].upper() == "ID" and cells[1].upper() == "NAME":
            continue
        orgs.append(Organization(id=cells[0], name=cells[1]))
    return orgs


ORGANIZATION_PARSERS = (
    ("json", _orgs_from_json),
    ("table", _orgs_from_table),
)


def parse_organizations(output: str) -> OrganizationListing:
    for fmt, parser in ORGANIZATION_PARSERS:
        orgs = parser(output)
        if orgs:
            return OrganizationListing(fmt, orgs)
    if output.strip() == "[]":
        # Account with no organizations yet
        return OrganizationListing("json", [])
    raise ParseError("Failed to parse organizations list")


def _project_from_json(item: dict) -> RemoteProject:
    return RemoteProject(
        id=str(item["id"]),
        name=str(item["name"]),
        organization_id=str(item.get("organization_id") or ""),
        region=str(item.get("region") or ""),
        created_at=str(item.get("created_at") or ""),
    )


def parse_projects(output: str) -> list:
    try:
        data = json.loads(output)
        if not isinstance(data, list):
            raise TypeError("expected a JSON array")
        return [_project_from_json(item) for item in data]
    except (ValueError, TypeError, KeyError) as e:
        raise ParseError(f"Failed to parse projects list: {e}") from e


def parse_credentials(ref: str, output: str) -> ProjectCredentials:
    try:
        keys = json.loads(output)
        if not isinstance(keys, list):
            raise TypeError("expected a JSON array")
    except (ValueError, TypeError) as e:
        raise ParseError(f"Failed to parse project credentials: {e}") from e

    by_name = {k.get("name"): k.get("api_key") for k in keys if isinstance(k, dict)}
    anon_key = by_name.get("anon")
    service_key = by_name.get("service_role")
    debug(f"[DEBUG] Found anon key: {'yes' if anon_key else 'no'}")
    debug(f"[DEBUG] Found service_role key: {'yes' if service_key else 'no'}")
    if not anon_key or not service_key:
        raise CredentialsError("Could not find required API keys")

    url = project_url(ref)
    debug(f"[DEBUG] Constructed URL: {url}")
    return ProjectCredentials(url=url, anon_key=anon_key, service_key=service_key)


class SupabaseCLI:
    def __init__(self, runner: ProcessRunner, client: httpx.Client | None = None):
        self.runner = runner
        self.ctx = runner.ctx
        self._client = client

    def _run(self, *args: str, **kwargs) -> CommandResult:
        return self.runner.run([SUPABASE_BIN, *args], **kwargs)

    # -- presence and auth -------------------------------------------------

    def is_installed(self) -> bool:
        return self._run("--version").ok

    def is_authenticated(self) -> bool:
        debug("[DEBUG] Checking authentication...")
        debug(f"[DEBUG] SUPABASE_ACCESS_TOKEN present: {bool(self.ctx.env.get('SUPABASE_ACCESS_TOKEN'))}")
        result = self._run("projects", "list")
        if not result.ok:
            debug(f"[DEBUG] isAuthenticated stderr: {result.stderr}")
        return result.ok

    def login(self) -> bool:
        console.print("[cyan]Opening browser for authentication...[/cyan]")
        return self.runner.run_interactive([SUPABASE_BIN, "login"])

    # -- installation --------------------------------------------------------

    def install(self) -> bool:
        """Install the CLI for the host OS. Returns True on success."""
        os_name = self.ctx.os_name
        console.print(f"[cyan]Installing Supabase CLI for {os_name}...[/cyan]")
        if os_name == "macos":
            return self._install_with_brew()
        if os_name == "linux":
            return self._install_from_archive()
        if os_name == "windows":
            return self._install_with_powershell()
        console.print("[red]Unsupported operating system[/red]")
        return False

    def _install_with_brew(self) -> bool:
        if not shutil.which("brew", path=self.ctx.env.get("PATH")):
            console.print("[red]Homebrew is not installed. Please install Homebrew first:[/red]")
            console.print(f"  [cyan]{HOMEBREW_INSTALL_HINT}[/cyan]")
            return False
        return self.runner.run_interactive(["brew", "install", "supabase/tap/supabase"])

    def _linux_asset(self) -> str:
        machine = platform.machine().lower()
        arch = "arm64" if machine in ("aarch64", "arm64") else "amd64"
        return f"supabase_linux_{arch}.tar.gz"

    def _install_dir(self) -> Path:
        system_bin = Path("/usr/local/bin")
        if system_bin.is_dir() and os.access(system_bin, os.W_OK):
            return system_bin
        return self.ctx.home / ".local" / "bin"

    def _install_from_archive(self) -> bool:
        asset = self._linux_asset()
        url = SUPABASE_RELEASE_URL.format(asset=asset)
        install_dir = self._install_dir()
        try:
            with tempfile.TemporaryDirectory() as tmp:
                archive = Path(tmp) / asset
                self._download(url, archive)
                binary = self._extract_binary(archive, Path(tmp) / SUPABASE_BIN)
                install_dir.mkdir(parents=True, exist_ok=True)
                target = install_dir / SUPABASE_BIN
                shutil.move(str(binary), str(target))
                target.chmod(0o755)
        except (httpx.HTTPError, tarfile.TarError, OSError, RuntimeError) as e:
            debug_error(f"[DEBUG] Archive install failed: {e}")
            self._print_manual_instructions(url)
            return False

        console.print(f"[green]Installed supabase to {install_dir}[/green]")
        self.ctx.prepend_path(install_dir)
        return True

    def _download(self, url: str, destination: Path):
        token = github_token(self.ctx.env)
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        if self._client is not None:
            self._stream_to(self._client, url, destination, headers)
            return
        with httpx.Client(verify=ssl_context) as client:
            self._stream_to(client, url, destination, headers)

    @staticmethod
    def _stream_to(client: httpx.Client, url: str, destination: Path, headers: dict):
        with client.stream("GET", url, timeout=60, follow_redirects=True, headers=headers) as response:
            if response.status_code != 200:
                raise RuntimeError(f"Download failed with {response.status_code} for {url}")
            total_size = int(response.headers.get("content-length", 0))
            with open(destination, "wb") as f, Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                console=console,
                transient=True,
            ) as progress:
                task = progress.add_task("Downloading Supabase CLI...", total=total_size or None)
                for chunk in response.iter_bytes(chunk_size=8192):
                    f.write(chunk)
                    progress.update(task, advance=len(chunk))

    @staticmethod
    def _extract_binary(archive: Path, destination: Path) -> Path:
        with tarfile.open(archive, "r:gz") as tar:
            member = next(
                (m for m in tar.getmembers() if m.isfile() and Path(m.name).name == SUPABASE_BIN),
                None,
            )
            if member is None:
                raise RuntimeError(f"'{SUPABASE_BIN}' binary not found in {archive.name}")
            source = tar.extractfile(member)
            with source, open(destination, "wb") as out:
                shutil.copyfileobj(source, out)
        return destination

    def _print_manual_instructions(self, url: str):
        console.print(
            Panel(
                "Automatic installation failed. You can install manually:\n\n"
                f"  [cyan]curl -fsSL {url} | tar -xz[/cyan]\n"
                "  [cyan]sudo mv supabase /usr/local/bin/[/cyan]\n\n"
                "Or continue with manual setup below.",
                title="[red]Supabase CLI Install[/red]",
                border_style="red",
                padding=(1, 2),
            )
        )

    def _install_with_powershell(self) -> bool:
        url = SUPABASE_RELEASE_URL.format(asset="supabase_windows_amd64.tar.gz")
        script = " ".join([
            '$ProgressPreference = "SilentlyContinue";',
            f'$url = "{url}";',
            '$tempDir = "$env:TEMP\\supabase-install";',
            '$tarFile = "$tempDir\\supabase.tar.gz";',
            '$installDir = "$env:USERPROFILE\\.local\\bin";',
            'Write-Host "Downloading Supabase CLI...";',
            "New-Item -ItemType Directory -Force -Path $tempDir | Out-Null;",
            "New-Item -ItemType Directory -Force -Path $installDir | Out-Null;",
            "try {",
            "  Invoke-WebRequest -Uri $url -OutFile $tarFile -UseBasicParsing;",
            "  tar -xzf $tarFile -C $tempDir;",
            '  Copy-Item "$tempDir\\supabase.exe" -Destination "$installDir\\supabase.exe" -Force;',
            "  exit 0;",
            "} catch {",
            '  Write-Host "Installation failed: $_";',
            "  exit 1;",
            "}",
        ])
        if not self.runner.run_interactive(["powershell", "-Command", script]):
            debug_error("[DEBUG] Windows installation failed")
            return False
        self.ctx.prepend_path(self.ctx.home / ".local" / "bin")
        return True

    # -- listing ---------------------------------------------------------------

    def list_organizations(self) -> list:
        result = self._run("orgs", "list", "--output", "json")
        if not result.ok:
            raise UnavailableError(f"Failed to get organizations: {result.stderr.strip()}")
        listing = parse_organizations(result.stdout.strip())
        debug(f"[DEBUG] Parsed {len(listing.organizations)} organization(s) from {listing.format} output")
        return listing.organizations

    def list_projects(self) -> list:
        result = self._run("projects", "list", "--output", "json")
        if not result.ok:
            raise UnavailableError(f"Failed to list projects: {result.stderr.strip()}")
        return parse_projects(result.stdout)

    # -- project lifecycle ---------------------------------------------------------

    def create_project(self, name: str, org_id: str, region: str = DEFAULT_REGION, password: str | None = None) -> RemoteProject:
        debug(f"[DEBUG] Creating project: {name} (org {org_id}, region {region})")
        password = password or generate_password()
        result = self._run(
            "projects", "create", name,
            "--org-id", org_id,
            "--db-password", password,
            "--region", region,
            "--output", "json",
            secrets=(password,),
        )
        if not result.ok:
            detail = result.stderr.strip() or result.stdout.strip() or "Unknown error"
            debug_error(f"[DEBUG] Project creation failed: {detail}")
            raise CreationError(detail)

        try:
            project = _project_from_json(json.loads(result.stdout))
        except (ValueError, TypeError, KeyError) as e:
            raise ParseError(f"Failed to parse project creation response: {e}") from e
        debug(f"[DEBUG] Created project ID: {project.id}")
        return project

    def get_credentials(self, ref: str) -> ProjectCredentials:
        debug(f"[DEBUG] Fetching credentials for project ref: {ref}")
        result = self._run("projects", "api-keys", "--project-ref", ref, "--output", "json")
        if not result.ok:
            raise CredentialsError(f"Failed to get project credentials: {(result.stderr or result.stdout).strip()}")
        return parse_credentials(ref, result.stdout)

    def wait_until_ready(self, ref: str, timeout: float = MAX_PROJECT_WAIT_TIME, interval: float = PROJECT_CHECK_INTERVAL) -> bool:
        """Poll until the project's API keys can be listed.

        The platform has no readiness endpoint, so a successful key listing is
        the signal that provisioning finished.
        """
        start = self.ctx.clock()
        checks = 0
        while True:
            self.ctx.sleep(interval)
            checks += 1
            elapsed = self.ctx.clock() - start
            debug(f"[DEBUG] Check #{checks} ({elapsed:.0f}s elapsed)")
            if self._run("projects", "api-keys", "--project-ref", ref).ok:
                debug(f"[DEBUG] Project ready after {elapsed:.0f}s")
                return True
            if elapsed > timeout:
                debug_error(f"[DEBUG] Timeout after {elapsed:.0f}s")
                return False

    # -- local project ---------------------------------------------------------------

    def link(self, ref: str, password: str, cwd: Path) -> CommandResult:
        return self._run("link", "--project-ref", ref, "--password", password, cwd=cwd, secrets=(password,))

    def db_push(self, cwd: Path) -> CommandResult:
        return self._run("db", "push", cwd=cwd)

    def gen_types(self, ref: str, cwd: Path) -> str | None:
        result = self._run("gen", "types", "typescript", "--project-id", ref, cwd=cwd)
        if result.ok and result.stdout:
            return result.stdout
        return None
