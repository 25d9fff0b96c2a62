"""Subprocess execution.

Every external command goes through a :class:`ProcessRunner` bound to an
:class:`ExecContext`. The context owns the environment map handed to child
processes, so installing a tool and prepending its directory to PATH is visible
to later commands of the same run without touching ``os.environ``.
"""

import os
import subprocess
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Sequence

from .debug import debug

SPAWN_FAILED = 127


@dataclass
class CommandResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass
class ExecContext:
    env: dict = field(default_factory=lambda: dict(os.environ))
    platform: str = sys.platform
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic

    @property
    def is_windows(self) -> bool:
        return self.platform == "win32"

    @property
    def os_name(self) -> str:
        if self.platform == "darwin":
            return "macos"
        if self.platform.startswith("linux"):
            return "linux"
        if self.platform == "win32":
            return "windows"
        return "unknown"

    @property
    def home(self) -> Path:
        home = self.env.get("USERPROFILE") if self.is_windows else self.env.get("HOME")
        return Path(home) if home else Path.home()

    def prepend_path(self, directory: Path) -> bool:
        """Put ``directory`` first on PATH unless it is already listed."""
        entries = [p for p in self.env.get("PATH", "").split(os.pathsep) if p]
        if str(directory) in entries:
            return False
        self.env["PATH"] = os.pathsep.join([str(directory), *entries])
        debug(f"[DEBUG] Updated PATH to include {directory}")
        return True


def _mask(cmd: Sequence[str], secrets: Iterable[str]) -> str:
    hidden = {s for s in secrets if s}
    return " ".join("****" if part in hidden else part for part in cmd)


class ProcessRunner:
    """Run external commands with the context's environment.

    A spawn failure (executable not found, permission denied) is reported the
    same way as a non-zero exit code.
    """

    def __init__(self, ctx: ExecContext | None = None):
        self.ctx = ctx or ExecContext()

    def _popen_args(self, cmd: Sequence[str]):
        # Windows resolves npm/pnpm/supabase shims only through the shell
        if self.ctx.is_windows:
            return subprocess.list2cmdline(list(cmd)), True
        return list(cmd), False

    def run(self, cmd: Sequence[str], *, cwd: Path | None = None, secrets: Iterable[str] = ()) -> CommandResult:
        """Run a command to completion, capturing stdout and stderr."""
        debug(f"[DEBUG] Running: {_mask(cmd, secrets)}")
        args, shell = self._popen_args(cmd)
        try:
            proc = subprocess.run(
                args,
                cwd=cwd,
                env=self.ctx.env,
                shell=shell,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            debug(f"[DEBUG] Failed to start {cmd[0]}: {e}")
            return CommandResult(SPAWN_FAILED, "", str(e))
        debug(f"[DEBUG] Exit code: {proc.returncode}")
        return CommandResult(proc.returncode, proc.stdout or "", proc.stderr or "")

    def run_interactive(self, cmd: Sequence[str], *, cwd: Path | None = None) -> bool:
        """Run a command attached to the current terminal; True on exit code 0."""
        debug(f"[DEBUG] Running (interactive): {' '.join(cmd)}")
        args, shell = self._popen_args(cmd)
        try:
            proc = subprocess.run(args, cwd=cwd, env=self.ctx.env, shell=shell)
        except OSError as e:
            debug(f"[DEBUG] Failed to start {cmd[0]}: {e}")
            return False
        debug(f"[DEBUG] Exit code: {proc.returncode}")
        return proc.returncode == 0
