import pytest
import yaml

from config import logic
from config.loader import load_config
from config.logic import config_sources, deep_merge, find_project_root, load_and_merge_configs
from config.models import SafetyConfig
from config.repo import CONFIG_FILE_NAME, RepoConfig, load_repo_config, parse_repo_config
from core.diff.patterns import DEFAULT_IGNORE_PATTERNS
from tests.fakes import FakeHostingClient
from utils.errors import ConfigError, GitHubAPIError


@pytest.fixture
def project(tmp_path, mocker):
    """A project root with a .git directory and no user-level config."""
    mocker.patch.object(logic, "USER_CONFIG_PATH", tmp_path / "home" / "config.yaml")
    root = tmp_path / "proj"
    (root / ".git").mkdir(parents=True)
    (root / "src").mkdir()
    return root


# Loading YAML

def test_load_config_substitutes_environment_variables(monkeypatch):
    monkeypatch.setenv("DEVAGENT_TEST_TOKEN", "secret")
    monkeypatch.delenv("DEVAGENT_TEST_LEVEL", raising=False)

    data = load_config("github:\n  token: ${DEVAGENT_TEST_TOKEN}\nlogging:\n  level: ${DEVAGENT_TEST_LEVEL:-DEBUG}\n")

    assert data == {"github": {"token": "secret"}, "logging": {"level": "DEBUG"}}


def test_load_config_missing_variable_without_default(monkeypatch):
    monkeypatch.delenv("DEVAGENT_TEST_MISSING", raising=False)
    with pytest.raises(ConfigError, match="DEVAGENT_TEST_MISSING"):
        load_config("github:\n  token: ${DEVAGENT_TEST_MISSING}\n")


@pytest.mark.parametrize("text", ["- a\n- b\n", "just a string", "a: [1, 2\n"])
def test_load_config_rejects_bad_documents(text):
    with pytest.raises(ConfigError):
        load_config(text)


def test_load_config_empty_document():
    assert load_config("") == {}


def test_environment_expansion_does_not_leak_into_safe_load():
    assert yaml.safe_load("value: ${HOME}") == {"value": "${HOME}"}


# Merging

def test_deep_merge_merges_mappings_and_replaces_lists():
    target = {"a": {"x": 1, "y": 2}, "items": [1, 2], "keep": True}
    merged = deep_merge(target, {"a": {"y": 3, "z": 4}, "items": [9]})
    assert merged == {"a": {"x": 1, "y": 3, "z": 4}, "items": [9], "keep": True}


def test_find_project_root(project):
    assert find_project_root(project / "src") == project.resolve()


def test_defaults_only(project):
    config = load_and_merge_configs(start_dir=project)

    assert [p.provider for p in config.providers] == ["openai", "claude"]
    assert config.safety.max_files_per_pr == 10
    assert config.safety.max_lines_changed == 200
    assert config.retry.max_attempts == 4
    assert config.limits.max_total_diff_lines == 5000
    assert config.execution.branch_prefix == "ai-fix"
    assert config.execution.labels == ["ai-generated", "automated", "ready-for-review"]
    assert config.plans.expiry_hours == 24
    assert config_sources(start_dir=project) == [logic.DEFAULT_CONFIG_PATH]


def test_user_and_project_files_are_layered(project):
    logic.USER_CONFIG_PATH.parent.mkdir()
    logic.USER_CONFIG_PATH.write_text("limits:\n  page_size: 50\nsafety:\n  max_files_per_pr: 8\n")
    (project / ".devagent.yaml").write_text(
        "safety:\n  max_files_per_pr: 5\nproviders:\n  - provider: dummy\n    name: scripted\n"
    )

    config = load_and_merge_configs(start_dir=project / "src")

    assert config.limits.page_size == 50
    assert config.limits.max_pages == 30
    assert config.safety.max_files_per_pr == 5
    assert config.safety.max_lines_changed == 200
    assert [(p.provider, p.name) for p in config.providers] == [("dummy", "scripted")]


def test_custom_file_replaces_user_and_project_files(project, tmp_path):
    (project / ".devagent.yaml").write_text("safety:\n  max_files_per_pr: 5\n")
    custom = tmp_path / "custom.yaml"
    custom.write_text("retry:\n  max_attempts: 2\n")

    config = load_and_merge_configs(custom_config_path=str(custom), start_dir=project)

    assert config.retry.max_attempts == 2
    assert config.safety.max_files_per_pr == 10


def test_missing_custom_file(project, tmp_path):
    with pytest.raises(ConfigError, match="Custom config file not found"):
        load_and_merge_configs(custom_config_path=str(tmp_path / "nope.yaml"), start_dir=project)


def test_invalid_values_fail_validation(project):
    (project / ".devagent.yaml").write_text("retry:\n  max_attempts: 0\n")
    with pytest.raises(ConfigError, match="Configuration validation failed"):
        load_and_merge_configs(start_dir=project)


def test_broken_project_file_is_skipped(project):
    (project / ".devagent.yaml").write_text("safety: [\n")
    config = load_and_merge_configs(start_dir=project)
    assert config.safety.max_files_per_pr == 10


# Per-repository configuration

def test_repo_config_camel_case_keys():
    config = parse_repo_config(
        "reviewer:\n  ignorePaths: ['docs/*']\n  maxFilesReviewed: 20\n"
        "devAgent:\n  enabled: true\n  maxFilesPerPR: 3\n  maxLinesChanged: 50\n"
    )
    assert config.reviewer.max_files_reviewed == 20
    assert config.dev_agent.enabled
    assert config.safety_limits().max_files == 3
    assert config.safety_limits().max_lines_changed == 50


def test_repo_config_dev_agent_is_opt_in():
    assert "Dev Agent features are disabled" in RepoConfig().disabled_reason()
    assert "AI PR Reviewer is disabled" in parse_repo_config("enabled: false\ndevAgent:\n  enabled: true\n").disabled_reason()
    assert parse_repo_config("devAgent:\n  enabled: true\n").disabled_reason() is None


def test_repo_config_snake_case_keys():
    config = parse_repo_config("dev_agent:\n  max_files_per_pr: 4\n")
    assert config.dev_agent.max_files_per_pr == 4


@pytest.mark.parametrize(
    "text",
    [
        None,
        "",
        "devAgent: [\n",
        "- not a mapping\n",
        "devAgent:\n  maxFilesPerPR: 50\n",
        "reviewer:\n  maxFilesReviewed: 0\n",
    ],
)
def test_invalid_repo_config_falls_back_to_defaults(text):
    assert parse_repo_config(text) == RepoConfig()


def test_ignore_patterns_extend_the_defaults():
    config = parse_repo_config("reviewer:\n  ignorePaths: ['docs/*', 'yarn.lock']\n")
    assert config.ignore_patterns[: len(DEFAULT_IGNORE_PATTERNS)] == DEFAULT_IGNORE_PATTERNS
    assert config.ignore_patterns.count("yarn.lock") == 1
    assert config.ignore_patterns[-1] == "docs/*"


def test_repo_limits_override_global_safety_only_where_set():
    defaults = SafetyConfig(max_files_per_pr=7, max_lines_changed=150)

    assert RepoConfig().safety_limits(defaults).max_files == 7
    assert RepoConfig().safety_limits(defaults).max_lines_changed == 150

    limits = parse_repo_config("devAgent:\n  maxLinesChanged: 40\n").safety_limits(defaults)
    assert limits.max_files == 7
    assert limits.max_lines_changed == 40

    assert RepoConfig().safety_limits().max_files == 10


@pytest.mark.asyncio
async def test_load_repo_config_reads_the_repository_file():
    client = FakeHostingClient(repo_files={CONFIG_FILE_NAME: "devAgent:\n  maxFilesPerPR: 2\n"})
    config = await load_repo_config(client, "octo", "app", "abc123")

    assert config.dev_agent.max_files_per_pr == 2
    assert ("get_file_content", ("octo", "app", CONFIG_FILE_NAME, "abc123")) in client.calls


@pytest.mark.asyncio
async def test_load_repo_config_defaults_when_missing_or_unreachable():
    assert await load_repo_config(FakeHostingClient(), "octo", "app") == RepoConfig()

    client = FakeHostingClient()
    client.fail_on["get_file_content"] = GitHubAPIError("server error", status_code=500)
    assert await load_repo_config(client, "octo", "app") == RepoConfig()
