from pydantic import BaseModel, Field
from typing import List, Literal, Optional, Dict, Any


class GitHubConfig(BaseModel):
    token: Optional[str] = Field(None, description="API token; falls back to the GITHUB_TOKEN environment variable")
    api_url: str = "https://api.github.com"
    timeout_sec: int = 30


class ModelConfig(BaseModel):
    provider: str = "openai"
    name: str = "gpt-4o-mini"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout_sec: int = 60
    temperature: float = 0.2
    max_tokens: int = 4096
    parameters: Dict[str, Any] = Field(default_factory=dict)


class RetryConfig(BaseModel):
    max_attempts: int = Field(4, ge=1, description="Total attempts per provider call, first try included")
    initial_delay_sec: float = 1.0
    multiplier: float = 2.0
    max_delay_sec: float = 30.0
    jitter_sec: float = Field(0.1, description="Upper bound of the random delay added to every backoff")


class LimitsConfig(BaseModel):
    max_files_per_review: int = 50
    max_diff_lines_per_file: int = 500
    max_diff_chars_per_file: int = 15000
    max_total_diff_lines: int = 5000
    context_cache_ttl_sec: int = 24 * 60 * 60
    page_size: int = 100
    max_pages: int = 30


class SafetyConfig(BaseModel):
    max_files_per_pr: int = 10
    max_lines_changed: int = 200


class ExecutionConfig(BaseModel):
    preflight: bool = True
    impact_analysis: bool = True
    branch_prefix: str = "ai-fix"
    labels: List[str] = Field(default_factory=lambda: ["ai-generated", "automated", "ready-for-review"])
    title_prefix: str = "🤖 AI: "


class PlansConfig(BaseModel):
    expiry_hours: int = 24
    sweep_interval_sec: int = 300
    required_permission: Literal["none", "read", "write", "admin"] = Field(
        "write", description="Repository permission needed to generate, approve, or reject plans"
    )


class StorageConfig(BaseModel):
    database: str = Field("~/.devagent/plans.db", description="SQLite file holding change plans")
    cache_dir: str = Field("~/.cache/devagent", description="Directory of the PR context cache")


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: Optional[str] = None


class Config(BaseModel):
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    providers: List[ModelConfig] = Field(default_factory=lambda: [ModelConfig()], description="AI providers in fallback order")
    retry: RetryConfig = Field(default_factory=RetryConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    plans: PlansConfig = Field(default_factory=PlansConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
