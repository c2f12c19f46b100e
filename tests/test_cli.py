import json
import subprocess
from datetime import datetime, timedelta, timezone

import pytest
import yaml
from click.testing import CliRunner

import cli as cli_module
from cli import cli, resolve_target
from core.plan.repository import SqlitePlanRepository
from core.plan.store import ChangePlanStore
from tests.fakes import make_plan, plan_response_json, wire_change
from utils.errors import DevAgentException
from utils.git import get_origin_slug, parse_github_remote
from utils.logger import setup_logger

PLAN_ID = "plan-octo-app-42-1700000000000-abc123"


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    monkeypatch.setattr(cli_module.console, "width", 200)
    yield
    setup_logger(log_file=None)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "devagent.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "storage": {"database": str(tmp_path / "plans.db"), "cache_dir": str(tmp_path / "cache")},
                "logging": {"level": "WARNING"},
                "plans": {"required_permission": "none"},
            }
        )
    )
    return path


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, config_file, *args):
    return runner.invoke(cli, ["-c", str(config_file), *args])


def seed_plan(tmp_path, created_at=None):
    with SqlitePlanRepository(tmp_path / "plans.db") as repository:
        clock = (lambda: created_at) if created_at else (lambda: datetime.now(timezone.utc))
        store = ChangePlanStore(repository, clock=clock)
        store.create(make_plan(plan_id=PLAN_ID), "octo", "app", 42, 5000, "alice", "/ai-fix-lints")


def stored_status(tmp_path):
    with SqlitePlanRepository(tmp_path / "plans.db") as repository:
        return repository.get_by_id(PLAN_ID)


# Local commands

def test_preflight_passes_valid_files(runner, tmp_path):
    (tmp_path / "a.py").write_text("x = 1\n")
    (tmp_path / "b.json").write_text('{"a": 1}')

    result = runner.invoke(cli, ["preflight", str(tmp_path / "a.py"), str(tmp_path / "b.json")])

    assert result.exit_code == 0, result.output
    assert "2 file(s) passed syntax validation" in result.output


def test_preflight_reports_errors(runner, tmp_path):
    (tmp_path / "bad.py").write_text("def broken(:\n")

    result = runner.invoke(cli, ["preflight", str(tmp_path / "bad.py")])

    assert result.exit_code == 1
    assert "1 syntax error(s) found" in result.output


def test_validate_plan_within_limits(runner, config_file, tmp_path):
    plan_file = tmp_path / "plan.json"
    plan_file.write_text(plan_response_json([wire_change("a.py", "x = 1\n")]))

    result = invoke(runner, config_file, "validate", str(plan_file))

    assert result.exit_code == 0, result.output
    assert "Plan ai-chosen-id is within safety limits" in result.output


def test_validate_plan_over_limits(runner, config_file, tmp_path):
    plan_file = tmp_path / "plan.json"
    plan_file.write_text(plan_response_json([wire_change("a.py", "x = 1\n", risk="high")]))

    result = invoke(runner, config_file, "validate", str(plan_file), "--max-lines", "1")

    assert result.exit_code == 1
    assert "- Plan changes ~2 lines (max: 1)" in result.output
    assert "- 1 high-risk file(s) detected: a.py" in result.output


def test_validate_unparseable_plan(runner, config_file, tmp_path):
    plan_file = tmp_path / "plan.json"
    plan_file.write_text("I could not do it")

    result = invoke(runner, config_file, "validate", str(plan_file))

    assert result.exit_code == 1
    assert "Error:" in result.output


# Stored plans

def test_plans_list_empty(runner, config_file):
    result = invoke(runner, config_file, "plans", "list")

    assert result.exit_code == 0, result.output
    assert "No change plans found." in result.output


def test_plans_list_and_show(runner, config_file, tmp_path):
    seed_plan(tmp_path)

    listed = invoke(runner, config_file, "plans", "list")
    assert listed.exit_code == 0, listed.output
    assert PLAN_ID in listed.output
    assert "pending" in listed.output
    assert "octo/app" in listed.output

    assert "No change plans found." in invoke(runner, config_file, "plans", "list", "--status", "completed").output

    shown = invoke(runner, config_file, "plans", "show", PLAN_ID)
    assert shown.exit_code == 0, shown.output
    assert "Requested by: @alice via /ai-fix-lints" in shown.output
    assert "Fix lint issues" in shown.output

    as_json = invoke(runner, config_file, "plans", "show", PLAN_ID, "--json")
    assert as_json.exit_code == 0, as_json.output
    assert json.loads(as_json.output)["plan"]["totalFiles"] == 1


def test_plans_show_missing(runner, config_file):
    result = invoke(runner, config_file, "plans", "show", "missing")

    assert result.exit_code == 1
    assert "Change plan not found: missing" in result.output


def test_reject(runner, config_file, tmp_path):
    seed_plan(tmp_path)

    result = invoke(runner, config_file, "reject", PLAN_ID, "--user", "carol")

    assert result.exit_code == 0, result.output
    stored = stored_status(tmp_path)
    assert stored.status == "rejected"
    assert stored.error == "Rejected by carol"

    again = invoke(runner, config_file, "reject", PLAN_ID, "--user", "carol")
    assert again.exit_code == 1
    assert "Plan is already rejected" in again.output

    missing = invoke(runner, config_file, "reject", "missing", "--user", "carol")
    assert missing.exit_code == 1


def test_approve_unknown_plan(runner, config_file):
    result = invoke(runner, config_file, "approve", "missing", "--user", "bob")

    assert result.exit_code == 1
    assert "Change plan not found" in result.output


def test_sweep_expires_old_plans(runner, config_file, tmp_path):
    seed_plan(tmp_path, created_at=datetime.now(timezone.utc) - timedelta(hours=30))

    result = invoke(runner, config_file, "sweep")

    assert result.exit_code == 0, result.output
    assert "Expired 1 plan(s)" in result.output
    assert stored_status(tmp_path).error == "Expired after 24 hours"


def test_cache_cleanup(runner, config_file):
    result = invoke(runner, config_file, "cache", "cleanup")

    assert result.exit_code == 0, result.output
    assert "Removed 0 expired cache entries" in result.output


# Targets

def test_context_rejects_bad_target(runner, config_file):
    result = invoke(runner, config_file, "context", "octo", "42")

    assert result.exit_code == 1
    assert "Expected OWNER/REPO, got 'octo'" in result.output


def test_plan_rejects_invalid_issues_file(runner, config_file, tmp_path):
    issues = tmp_path / "issues.json"
    issues.write_text('[{"path": "a.py"}]')

    result = invoke(runner, config_file, "plan", "octo/app", "42", "--issues", str(issues), "--user", "alice")

    assert result.exit_code == 1
    assert "Invalid issues file" in result.output


def test_resolve_target(mocker):
    assert resolve_target(("octo/app", "42")) == ("octo", "app", 42)

    mocker.patch.object(cli_module, "get_origin_slug", return_value=("octo", "app"))
    assert resolve_target(("7",)) == ("octo", "app", 7)

    with pytest.raises(DevAgentException, match="must be an integer"):
        resolve_target(("octo/app", "abc"))
    with pytest.raises(DevAgentException, match="Expected"):
        resolve_target(("octo/app", "1", "2"))


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://github.com/octo/app.git", ("octo", "app")),
        ("https://github.com/octo/app", ("octo", "app")),
        ("git@github.com:octo/app.git\n", ("octo", "app")),
        ("ssh://git@github.com/octo/app/", ("octo", "app")),
        ("https://gitlab.com/octo/app.git", None),
    ],
)
def test_parse_github_remote(url, expected):
    assert parse_github_remote(url) == expected


def test_get_origin_slug(mocker):
    mocker.patch("utils.git.is_git_repository", return_value=True)
    run = mocker.patch(
        "utils.git.subprocess.run",
        return_value=subprocess.CompletedProcess(["git"], 0, stdout="git@github.com:octo/app.git\n", stderr=""),
    )

    assert get_origin_slug() == ("octo", "app")
    assert run.call_args.args[0] == ["git", "remote", "get-url", "origin"]


def test_get_origin_slug_outside_repository(mocker):
    mocker.patch("utils.git.is_git_repository", return_value=False)
    with pytest.raises(DevAgentException, match="Not a Git repository"):
        get_origin_slug()


def test_get_origin_slug_non_github_remote(mocker):
    mocker.patch("utils.git.is_git_repository", return_value=True)
    mocker.patch(
        "utils.git.subprocess.run",
        return_value=subprocess.CompletedProcess(["git"], 0, stdout="https://gitlab.com/octo/app.git\n", stderr=""),
    )
    with pytest.raises(DevAgentException, match="not a GitHub repository"):
        get_origin_slug()
