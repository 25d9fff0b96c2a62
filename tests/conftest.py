import json
import shutil
from contextlib import contextmanager
from pathlib import Path

import pytest

from supalite_cli.config import template_dir
from supalite_cli.errors import SetupCancelled
from supalite_cli.package_managers import PackageManagerOption
from supalite_cli.runner import CommandResult, ExecContext
from supalite_cli.supabase import SupabaseCLI

# Scripted prompter answers
CANCEL = object()
DEFAULT = object()

ANON_KEY = "anon-" + "a" * 120
SERVICE_KEY = "service-" + "s" * 120


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def __call__(self):
        return self.now


class FakeRunner:
    """Stands in for ProcessRunner: answers commands by longest matching prefix.

    Registering several results for one prefix replays them in order; the
    last one repeats. Unknown commands behave like a missing executable.
    """

    def __init__(self, platform="linux", env=None):
        self.clock = FakeClock()
        self.ctx = ExecContext(
            env=env if env is not None else {"PATH": "/usr/bin", "HOME": "/home/tester"},
            platform=platform,
            sleep=self.clock.sleep,
            clock=self.clock,
        )
        self._results = {}
        self._interactive = {}
        self.calls = []
        self.interactive_calls = []

    def on(self, *prefix, returncode=0, stdout="", stderr=""):
        self._results.setdefault(tuple(prefix), []).append(CommandResult(returncode, stdout, stderr))
        return self

    def replace(self, *prefix, returncode=0, stdout="", stderr=""):
        self._results.pop(tuple(prefix), None)
        return self.on(*prefix, returncode=returncode, stdout=stdout, stderr=stderr)

    def on_interactive(self, *prefix, ok=True):
        self._interactive.setdefault(tuple(prefix), []).append(ok)
        return self

    @staticmethod
    def _lookup(cmd, table):
        matches = [p for p in table if tuple(cmd[: len(p)]) == p]
        if not matches:
            return None
        queue = table[max(matches, key=len)]
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def run(self, cmd, *, cwd=None, secrets=()):
        self.calls.append(list(cmd))
        result = self._lookup(cmd, self._results)
        if result is None:
            return CommandResult(127, "", f"{cmd[0]}: command not found")
        return result

    def run_interactive(self, cmd, *, cwd=None):
        self.interactive_calls.append(list(cmd))
        ok = self._lookup(cmd, self._interactive)
        return bool(ok)

    def called(self, *prefix) -> list:
        return [c for c in self.calls if tuple(c[: len(prefix)]) == prefix]


class ScriptedPrompter:
    """Prompter that replays answers in order and applies validators like the terminal does."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.asked = []
        self.rejected = []
        self.progress = []

    def _next(self, kind, message):
        self.asked.append((kind, message))
        if not self.answers:
            raise AssertionError(f"unexpected {kind} prompt: {message}")
        answer = self.answers.pop(0)
        if answer is CANCEL:
            raise SetupCancelled("Operation cancelled")
        return answer

    def _validated(self, kind, message, default, validate):
        while True:
            answer = self._next(kind, message)
            if answer is DEFAULT:
                answer = default
            error = validate(answer) if validate else None
            if error is None:
                return answer
            self.rejected.append((message, answer, error))

    def request_text(self, message, *, default=None, placeholder=None, validate=None):
        return self._validated("text", message, default, validate)

    def request_secret(self, message, *, validate=None):
        return self._validated("secret", message, None, validate)

    def request_choice(self, message, options, *, default=None):
        answer = self._next("choice", message)
        if answer is DEFAULT:
            answer = default if default is not None else next(iter(options))
        assert answer in options, f"{answer!r} is not one of {list(options)} for {message!r}"
        return answer

    def request_confirmation(self, message, *, default=False):
        answer = self._next("confirm", message)
        return default if answer is DEFAULT else answer

    @contextmanager
    def show_progress(self, message, done=None):
        self.progress.append(message)
        yield

    def messages(self, kind=None):
        return [m for k, m in self.asked if kind is None or k == kind]


class FakeDetector:
    def __init__(self, *names):
        priorities = {"pnpm": 1, "bun": 2, "npm": 3}
        self.options = sorted(
            (PackageManagerOption(n, n, priorities[n]) for n in names), key=lambda o: o.priority
        )

    def detect(self):
        return list(self.options)


def api_keys_json(anon=ANON_KEY, service=SERVICE_KEY):
    keys = []
    if anon:
        keys.append({"name": "anon", "api_key": anon})
    if service:
        keys.append({"name": "service_role", "api_key": service})
    return json.dumps(keys)


def project_json(ref="abcd1234", name="demo-app", org="org-1", region="us-east-1"):
    return {"id": ref, "name": name, "organization_id": org, "region": region, "created_at": "2025-01-01T00:00:00Z"}


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def cli(runner):
    return SupabaseCLI(runner)


@pytest.fixture
def authed_runner(runner):
    runner.on("supabase", "--version", stdout="2.20.0")
    runner.on("supabase", "projects", "list", stdout="")
    return runner


@pytest.fixture
def project_dir(tmp_path) -> Path:
    """A copy of the bundled template, as the materializer leaves it."""
    target = tmp_path / "demo-app"
    shutil.copytree(template_dir(), target)
    return target
