import json

import pytest

from supalite_cli.errors import NoPackageManagerError
from supalite_cli.flow import SetupFlow, SetupMethod, is_project_limit_error
from supalite_cli.supabase import SupabaseCLI

from conftest import ANON_KEY, CANCEL, DEFAULT, SERVICE_KEY, FakeDetector, ScriptedPrompter, api_keys_json, project_json

PASSWORD = "correct-horse-battery"
MANUAL_URL = "https://manual1234.supabase.co"
MANUAL_ANSWERS = (DEFAULT, MANUAL_URL, ANON_KEY, SERVICE_KEY, DEFAULT, DEFAULT)


def make_flow(runner, *answers, detector=None, cwd=None):
    prompter = ScriptedPrompter(*answers)
    flow = SetupFlow(prompter, SupabaseCLI(runner), detector or FakeDetector("pnpm", "npm"), cwd=cwd)
    return flow, prompter


@pytest.fixture
def remote(authed_runner):
    """An authenticated CLI with one organization and no projects yet."""
    authed_runner.on("supabase", "orgs", "list", stdout=json.dumps([{"id": "org-1", "name": "Acme"}]))
    authed_runner.on("supabase", "projects", "list", "--output", "json", stdout="[]")
    authed_runner.on("supabase", "projects", "create", stdout=json.dumps(project_json()))
    authed_runner.on("supabase", "projects", "api-keys", stdout=api_keys_json())
    return authed_runner


def test_create_new_project(remote, tmp_path):
    flow, prompter = make_flow(remote, "create", DEFAULT, DEFAULT, PASSWORD, DEFAULT, DEFAULT, cwd=tmp_path)

    result = flow.run("demo-app")

    assert result.method is SetupMethod.AUTOMATED
    config = result.config
    assert config.project_name == "demo-app"
    assert config.supabase_url == "https://abcd1234.supabase.co"
    assert config.anon_key == ANON_KEY
    assert config.service_key == SERVICE_KEY
    assert config.package_manager == "pnpm"
    assert config.port == 3000
    assert config.db_password == PASSWORD
    assert config.target_dir == tmp_path.resolve() / "demo-app"

    create = remote.called("supabase", "projects", "create")[0]
    assert create[3] == "demo-app"
    assert create[create.index("--org-id") + 1] == "org-1"
    assert create[create.index("--region") + 1] == "us-east-1"
    assert create[create.index("--db-password") + 1] == PASSWORD
    # Single organization is picked without asking
    assert "Select an organization:" not in prompter.messages()
    assert remote.clock.sleeps == [10]


def test_create_asks_for_organization_when_several(remote, tmp_path):
    remote.replace(
        "supabase", "orgs", "list",
        stdout=json.dumps([{"id": "org-1", "name": "Acme"}, {"id": "org-2", "name": "Globex"}]),
    )
    flow, _ = make_flow(remote, "create", DEFAULT, "org-2", "eu-west-1", PASSWORD, "npm", "4000", cwd=tmp_path)

    result = flow.run("demo-app")

    create = remote.called("supabase", "projects", "create")[0]
    assert create[create.index("--org-id") + 1] == "org-2"
    assert create[create.index("--region") + 1] == "eu-west-1"
    assert result.config.package_manager == "npm"
    assert result.config.port == 4000


def test_invalid_names_are_reprompted(remote, tmp_path):
    flow, prompter = make_flow(
        remote, "create", "My App", "my_app", "my-app", DEFAULT, "short", PASSWORD, DEFAULT, "0", "70000", "3001",
        cwd=tmp_path,
    )

    result = flow.run(None)

    assert result.config.project_name == "my-app"
    assert result.config.port == 3001
    assert [answer for _, answer, _ in prompter.rejected] == ["My App", "my_app", "short", "0", "70000"]


def test_project_limit_retries_from_mode_selection(remote, tmp_path):
    remote.replace(
        "supabase", "projects", "create",
        returncode=1, stderr="The following organization members have reached their maximum limits for the number of active free projects",
    )
    remote.on("supabase", "projects", "create", stdout=json.dumps(project_json()))
    flow, prompter = make_flow(
        remote,
        "create", DEFAULT, DEFAULT, PASSWORD,
        DEFAULT,
        "create", DEFAULT, DEFAULT, PASSWORD, DEFAULT, DEFAULT,
        cwd=tmp_path,
    )

    result = flow.run("demo-app")

    assert result.method is SetupMethod.AUTOMATED
    assert len(remote.called("supabase", "projects", "create")) == 2
    assert "Ready to retry? (I've fixed it)" in prompter.messages("confirm")


def test_project_limit_declined_cancels(remote, tmp_path):
    remote.replace("supabase", "projects", "create", returncode=1, stderr="project limit reached")
    flow, _ = make_flow(remote, "create", DEFAULT, DEFAULT, PASSWORD, False, cwd=tmp_path)

    result = flow.run("demo-app")

    assert result.method is SetupMethod.CANCELLED
    assert result.config is None


def test_other_creation_error_offers_manual_setup(remote, tmp_path):
    remote.replace("supabase", "projects", "create", returncode=1, stderr="internal server error")
    flow, _ = make_flow(remote, "create", DEFAULT, DEFAULT, PASSWORD, "manual", *MANUAL_ANSWERS, cwd=tmp_path)

    result = flow.run("demo-app")

    assert result.method is SetupMethod.MANUAL
    assert result.config.supabase_url == MANUAL_URL
    assert result.config.db_password is None


def test_duplicate_project_name_cancels_before_creating(remote, tmp_path):
    remote.replace("supabase", "projects", "list", "--output", "json", stdout=json.dumps([project_json(name="Demo-App")]))
    flow, _ = make_flow(remote, "create", DEFAULT, DEFAULT, PASSWORD, cwd=tmp_path)

    result = flow.run("demo-app")

    assert result.method is SetupMethod.CANCELLED
    assert remote.called("supabase", "projects", "create") == []


def test_provisioning_timeout_cancels(remote, tmp_path):
    remote.replace("supabase", "projects", "api-keys", returncode=1, stderr="not ready")
    flow, _ = make_flow(remote, "create", DEFAULT, DEFAULT, PASSWORD, cwd=tmp_path)

    result = flow.run("demo-app")

    assert result.method is SetupMethod.CANCELLED
    # Polled every 10s until more than 300s had passed
    assert remote.clock.sleeps == [10] * 31


def test_organization_failure_offers_manual_or_cancel(remote, tmp_path):
    remote.replace("supabase", "orgs", "list", returncode=1, stderr="network unreachable")
    flow, prompter = make_flow(remote, "create", DEFAULT, "cancel", cwd=tmp_path)

    result = flow.run("demo-app")

    assert result.method is SetupMethod.CANCELLED
    assert prompter.messages("choice")[-1] == "What would you like to do?"
    assert remote.called("supabase", "projects", "create") == []


def test_use_existing_project(remote, tmp_path):
    remote.replace(
        "supabase", "projects", "list", "--output", "json",
        stdout=json.dumps([project_json(ref="zzzz9999", name="prod"), project_json(ref="abcd1234", name="staging")]),
    )
    flow, _ = make_flow(remote, "existing", DEFAULT, "abcd1234", DEFAULT, DEFAULT, cwd=tmp_path)

    result = flow.run("demo-app")

    assert result.method is SetupMethod.AUTOMATED
    assert result.config.supabase_url == "https://abcd1234.supabase.co"
    assert result.config.db_password is None
    assert remote.called("supabase", "projects", "api-keys", "--project-ref", "abcd1234")


def test_existing_project_with_no_projects(remote, tmp_path):
    flow, prompter = make_flow(remote, "existing", DEFAULT, "cancel", cwd=tmp_path)

    result = flow.run("demo-app")

    assert result.method is SetupMethod.CANCELLED
    assert prompter.messages("choice")[-1] == "What would you like to do?"


def test_manual_mode_validates_credentials(authed_runner, tmp_path):
    flow, prompter = make_flow(
        authed_runner,
        "manual", DEFAULT, "http://example.com", MANUAL_URL, "eyJh-short", ANON_KEY, "tiny", SERVICE_KEY, "bun", DEFAULT,
        detector=FakeDetector("npm", "bun"),
        cwd=tmp_path,
    )

    result = flow.run("demo-app")

    assert result.method is SetupMethod.MANUAL
    assert result.config.package_manager == "bun"
    assert [answer for _, answer, _ in prompter.rejected] == ["http://example.com", "eyJh-short", "tiny"]
    assert authed_runner.called("supabase", "orgs") == []


def test_cli_missing_cancel(runner, tmp_path):
    flow, _ = make_flow(runner, "cancel", cwd=tmp_path)

    result = flow.run("demo-app")

    assert result.method is SetupMethod.CANCELLED
    assert runner.interactive_calls == []


def test_cli_missing_install_then_continue(runner, tmp_path, monkeypatch):
    runner.on("supabase", "--version", returncode=127)
    runner.on("supabase", "--version", stdout="2.20.0")
    runner.on("supabase", "projects", "list")
    flow, _ = make_flow(runner, "install", "manual", *MANUAL_ANSWERS, cwd=tmp_path)
    installs = []
    monkeypatch.setattr(flow.cli, "install", lambda: installs.append(1) or True)

    result = flow.run("demo-app")

    assert installs == [1]
    assert result.method is SetupMethod.MANUAL


def test_failed_help_install_returns_to_cli_check(runner, tmp_path, monkeypatch):
    flow, prompter = make_flow(runner, "install", "install", "cancel", cwd=tmp_path)
    installs = []
    monkeypatch.setattr(flow.cli, "install", lambda: installs.append(1) and False)

    result = flow.run("demo-app")

    assert result.method is SetupMethod.CANCELLED
    assert len(installs) == 2
    assert prompter.messages("choice") == [
        "Supabase CLI not installed. Setup:",
        "Installation failed. What would you like to do?",
        "Supabase CLI not installed. Setup:",
    ]


def test_login_failing_twice_falls_back_to_manual(runner, tmp_path):
    runner.on("supabase", "--version", stdout="2.20.0")
    runner.on("supabase", "projects", "list", returncode=1, stderr="Access token not provided")
    runner.on_interactive("supabase", "login", ok=False)
    flow, _ = make_flow(runner, "login", "retry", *MANUAL_ANSWERS, cwd=tmp_path)

    result = flow.run("demo-app")

    assert result.method is SetupMethod.MANUAL
    assert runner.interactive_calls == [["supabase", "login"], ["supabase", "login"]]


def test_login_success_continues_to_mode(runner, tmp_path):
    runner.on("supabase", "--version", stdout="2.20.0")
    runner.on("supabase", "projects", "list", returncode=1)
    runner.on_interactive("supabase", "login", ok=True)
    flow, prompter = make_flow(runner, "login", "manual", *MANUAL_ANSWERS, cwd=tmp_path)

    result = flow.run("demo-app")

    assert result.method is SetupMethod.MANUAL
    assert "Supabase setup:" in prompter.messages("choice")


def test_existing_directory_declined(runner, tmp_path):
    (tmp_path / "demo-app").mkdir()
    flow, prompter = make_flow(runner, False, cwd=tmp_path)

    result = flow.run("demo-app")

    assert result.method is SetupMethod.CANCELLED
    assert runner.calls == []
    assert prompter.messages("confirm") == ['Directory "demo-app" already exists. Overwrite?']


def test_existing_directory_overwrite_continues(authed_runner, tmp_path):
    (tmp_path / "demo-app").mkdir()
    flow, _ = make_flow(authed_runner, True, "manual", *MANUAL_ANSWERS, cwd=tmp_path)

    result = flow.run("demo-app")

    assert result.method is SetupMethod.MANUAL


def test_overwrite_is_asked_only_once_for_the_same_name(authed_runner, tmp_path):
    (tmp_path / "demo-app").mkdir()
    flow, prompter = make_flow(authed_runner, True, "manual", *MANUAL_ANSWERS, cwd=tmp_path)

    flow.run("demo-app")

    assert len(prompter.messages("confirm")) == 1


def test_prompted_name_of_existing_directory_declined(authed_runner, tmp_path):
    (tmp_path / "my-app").mkdir()
    flow, prompter = make_flow(authed_runner, "manual", DEFAULT, MANUAL_URL, ANON_KEY, SERVICE_KEY, False, cwd=tmp_path)

    result = flow.run(None)

    assert result.method is SetupMethod.CANCELLED
    assert prompter.messages("confirm") == ['Directory "my-app" already exists. Overwrite?']
    assert "Package manager:" not in prompter.messages("choice")


def test_renamed_project_into_existing_directory_is_confirmed(authed_runner, tmp_path):
    (tmp_path / "taken").mkdir()
    flow, prompter = make_flow(
        authed_runner, "manual", "taken", MANUAL_URL, ANON_KEY, SERVICE_KEY, True, DEFAULT, DEFAULT, cwd=tmp_path
    )

    result = flow.run("demo-app")

    assert result.method is SetupMethod.MANUAL
    assert result.config.target_dir == tmp_path.resolve() / "taken"
    assert prompter.messages("confirm") == ['Directory "taken" already exists. Overwrite?']


def test_account_without_organizations_falls_back_to_manual(remote, tmp_path):
    remote.replace("supabase", "orgs", "list", stdout="[]")
    flow, prompter = make_flow(remote, "create", "fresh-app", *MANUAL_ANSWERS, cwd=tmp_path)

    result = flow.run(None)

    assert result.method is SetupMethod.MANUAL
    assert result.config.project_name == "fresh-app"
    assert remote.called("supabase", "projects", "create") == []
    assert "Region:" not in prompter.messages("choice")


def test_cancelling_a_prompt_returns_cancelled(remote, tmp_path):
    flow, _ = make_flow(remote, "create", DEFAULT, CANCEL, cwd=tmp_path)

    result = flow.run("demo-app")

    assert result.method is SetupMethod.CANCELLED
    assert result.config is None


def test_no_package_manager_is_fatal(authed_runner, tmp_path):
    flow, _ = make_flow(
        authed_runner, "manual", DEFAULT, MANUAL_URL, ANON_KEY, SERVICE_KEY,
        detector=FakeDetector(), cwd=tmp_path,
    )

    with pytest.raises(NoPackageManagerError):
        flow.run("demo-app")


@pytest.mark.parametrize("message, expected", [
    ("You have reached the maximum limits of free projects", True),
    ("project limit exceeded", True),
    ("Only 2 free projects allowed", True),
    ("Failed to create project: invalid region", False),
])
def test_is_project_limit_error(message, expected):
    assert is_project_limit_error(message) is expected
