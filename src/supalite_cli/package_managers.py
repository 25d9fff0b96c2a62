"""Detect which JavaScript package managers are installed."""

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .constants import PACKAGE_MANAGERS
from .debug import debug
from .errors import DependencyInstallError, NoPackageManagerError
from .runner import ProcessRunner


@dataclass(frozen=True)
class PackageManagerOption:
    value: str
    label: str
    priority: int


class PackageManagerDetector:
    def __init__(self, runner: ProcessRunner, which: Callable | None = None):
        self.runner = runner
        self.ctx = runner.ctx
        self._which = which or shutil.which

    def is_installed(self, name: str) -> bool:
        if self.ctx.is_windows:
            # No `which` on Windows; ask the tool itself
            return self.runner.run([name, "--version"]).ok
        return self._which(name, path=self.ctx.env.get("PATH")) is not None

    def detect(self) -> list:
        """Installed package managers, preferred first."""
        options = []
        for name, meta in PACKAGE_MANAGERS.items():
            # npm ships with Node on Windows, which is how this tool got there
            if (self.ctx.is_windows and name == "npm") or self.is_installed(name):
                options.append(PackageManagerOption(name, meta["label"], meta["priority"]))
        options.sort(key=lambda o: o.priority)
        debug(f"[DEBUG] Package managers found: {[o.value for o in options]}")
        return options


def default_package_manager(options: list) -> str:
    """First of the detected ``options``; there is nothing to fall back to."""
    if not options:
        raise NoPackageManagerError()
    return options[0].value


def package_manager_spec(name: str) -> str:
    """Value for package.json's ``packageManager`` field, e.g. ``pnpm@9.15.4``."""
    return f"{name}@{PACKAGE_MANAGERS[name]['version']}"


def run_script_command(name: str, script: str) -> str:
    return f"npm run {script}" if name == "npm" else f"{name} {script}"


def install_dependencies(runner: ProcessRunner, target_dir: Path, package_manager: str):
    """Run ``<pm> install`` in the project with the terminal attached."""
    if not runner.run_interactive([package_manager, "install"], cwd=target_dir):
        raise DependencyInstallError(f"{package_manager} install failed")
