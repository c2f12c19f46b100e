"""
Per-repository configuration read from `.ai-pr-reviewer.yml` in the repository.

An invalid or missing file never fails a run; defaults apply and a warning is
logged. Keys may be written in camelCase (`devAgent.maxFilesPerPR`) or
snake_case (`dev_agent.max_files_per_pr`).
"""
from typing import List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from config.models import SafetyConfig
from core.contracts.hosting import GitHostingClient
from core.contracts.plan import SafetyLimits
from core.diff.patterns import DEFAULT_IGNORE_PATTERNS
from utils.errors import GitHubAPIError
from utils.logger import logger

CONFIG_FILE_NAME = ".ai-pr-reviewer.yml"


class ReviewerSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ignore_paths: List[str] = Field(default_factory=list, alias="ignorePaths")
    max_files_reviewed: int = Field(50, ge=1, le=100, alias="maxFilesReviewed")


class DevAgentSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = False
    max_files_per_pr: int = Field(10, ge=1, le=20, alias="maxFilesPerPR")
    max_lines_changed: int = Field(200, ge=1, le=500, alias="maxLinesChanged")


class RepoConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = True
    reviewer: ReviewerSettings = Field(default_factory=ReviewerSettings)
    dev_agent: DevAgentSettings = Field(default_factory=DevAgentSettings, alias="devAgent")

    def disabled_reason(self) -> Optional[str]:
        """Why dev-agent commands are refused for this repository, or None when they are allowed."""
        if not self.enabled:
            return (
                "⚠️ AI PR Reviewer is disabled for this repository. "
                f"To enable, add a `{CONFIG_FILE_NAME}` file with `enabled: true`."
            )
        if not self.dev_agent.enabled:
            return (
                "⚠️ Dev Agent features are disabled for this repository. "
                f"To enable, set `devAgent.enabled: true` in `{CONFIG_FILE_NAME}`."
            )
        return None

    @property
    def ignore_patterns(self) -> List[str]:
        """Default ignore patterns followed by the repository's own."""
        return DEFAULT_IGNORE_PATTERNS + [p for p in self.reviewer.ignore_paths if p not in DEFAULT_IGNORE_PATTERNS]

    def safety_limits(self, defaults: Optional[SafetyConfig] = None) -> SafetyLimits:
        """Limits set in the repository file win; unset ones come from `defaults`."""
        agent = self.dev_agent
        explicit = agent.model_fields_set if "dev_agent" in self.model_fields_set else set()
        max_files = agent.max_files_per_pr
        max_lines = agent.max_lines_changed
        if defaults is not None:
            if "max_files_per_pr" not in explicit:
                max_files = defaults.max_files_per_pr
            if "max_lines_changed" not in explicit:
                max_lines = defaults.max_lines_changed
        return SafetyLimits(max_files=max_files, max_lines_changed=max_lines)


def parse_repo_config(content: Optional[str]) -> RepoConfig:
    """
    Parses the YAML text of a repository configuration file.

    Returns:
        The validated configuration, or the defaults when the text is empty,
        not a mapping, malformed YAML, or fails validation.
    """
    if not content:
        return RepoConfig()
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse repo config YAML, using defaults: {e}")
        return RepoConfig()

    if not isinstance(data, dict):
        return RepoConfig()

    try:
        return RepoConfig.model_validate(data)
    except ValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        logger.warning(f"Invalid repo config, using defaults: {errors}")
        return RepoConfig()


async def load_repo_config(client: GitHostingClient, owner: str, repo: str, ref: str = "HEAD") -> RepoConfig:
    """Fetches and parses the repository configuration file."""
    try:
        content = await client.get_file_content(owner, repo, CONFIG_FILE_NAME, ref)
    except GitHubAPIError as e:
        logger.warning(f"Could not load {CONFIG_FILE_NAME} for {owner}/{repo}, using defaults: {e}")
        return RepoConfig()
    if content is None:
        logger.debug(f"No {CONFIG_FILE_NAME} in {owner}/{repo}, using defaults")
    return parse_repo_config(content)
