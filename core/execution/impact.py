import json
from typing import List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from core.contracts.provider import LLMProvider
from core.plan.parser import extract_json_text
from utils.errors import ProviderError
from utils.logger import logger

MAX_FILES_IN_PROMPT = 10
MAX_LINES_PER_FILE = 50

IMPACT_SYSTEM_PROMPT = """You are an expert software architect analyzing the impact of code changes.
Identify affected modules, internal and external dependencies, possible breaking changes,
prioritised testing recommendations, deployment considerations and a rollback strategy.

Respond with JSON only, matching this schema:

{
  "summary": "one paragraph",
  "affectedModules": [{"name": "...", "impact": "direct" | "indirect", "description": "..."}],
  "dependencies": {"internal": ["..."], "external": ["..."]},
  "breakingChanges": [{"description": "...", "severity": "low" | "medium" | "high", "mitigation": "..."}],
  "testingRecommendations": [{"area": "...", "priority": "critical" | "high" | "medium" | "low", "reason": "..."}],
  "deploymentConsiderations": ["..."],
  "rollbackStrategy": "..."
}"""


class _Schema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AffectedModule(_Schema):
    name: str
    impact: Literal["direct", "indirect"]
    description: str


class Dependencies(_Schema):
    internal: List[str] = []
    external: List[str] = []


class BreakingChange(_Schema):
    description: str
    severity: Literal["low", "medium", "high"]
    mitigation: Optional[str] = None


class TestingRecommendation(_Schema):
    area: str
    priority: Literal["critical", "high", "medium", "low"]
    reason: str


PRIORITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}


class ImpactAnalysis(_Schema):
    summary: str
    affected_modules: List[AffectedModule] = []
    dependencies: Dependencies = Dependencies()
    breaking_changes: List[BreakingChange] = []
    testing_recommendations: List[TestingRecommendation] = []
    deployment_considerations: List[str] = []
    rollback_strategy: str

    def sorted_testing_recommendations(self) -> List[TestingRecommendation]:
        return sorted(self.testing_recommendations, key=lambda r: PRIORITY_ORDER[r.priority])


class ChangedFileSnapshot(BaseModel):
    path: str
    new_content: str
    change_description: str


class ImpactAnalyzer:
    """Best-effort AI impact analysis of committed files. Never raises."""

    def __init__(self, provider: LLMProvider, temperature: float = 0.3):
        self.provider = provider
        self.temperature = temperature

    def _build_prompt(self, files: Sequence[ChangedFileSnapshot]) -> str:
        parts = [f"Analyze the impact of the following code changes:\n\n## Changed Files ({len(files)})\n"]
        for snapshot in files[:MAX_FILES_IN_PROMPT]:
            lines = snapshot.new_content.split("\n")
            excerpt = "\n".join(lines[:MAX_LINES_PER_FILE])
            if len(lines) > MAX_LINES_PER_FILE:
                excerpt += "\n... (truncated)"
            parts.append(f"### `{snapshot.path}`\n**Change:** {snapshot.change_description}\n\n```\n{excerpt}\n```\n")
        if len(files) > MAX_FILES_IN_PROMPT:
            parts.append(f"*... and {len(files) - MAX_FILES_IN_PROMPT} more files*\n")
        parts.append("Provide a comprehensive impact analysis in the specified JSON format.")
        return "\n".join(parts)

    async def analyze(self, files: Sequence[ChangedFileSnapshot]) -> Optional[ImpactAnalysis]:
        if not files:
            return None
        log = logger.bind(files=len(files))
        log.info("Generating impact analysis")
        try:
            content = await self.provider.generate(
                IMPACT_SYSTEM_PROMPT,
                self._build_prompt(files),
                temperature=self.temperature,
            )
            analysis = ImpactAnalysis.model_validate(json.loads(extract_json_text(content)))
        except (ProviderError, json.JSONDecodeError, ValidationError) as e:
            log.error(f"Failed to generate impact analysis: {e}")
            return None

        log.info(
            f"Impact analysis completed: modules={len(analysis.affected_modules)} "
            f"breaking_changes={len(analysis.breaking_changes)}"
        )
        return analysis
