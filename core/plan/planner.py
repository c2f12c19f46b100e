import random
import string
import time
from collections import defaultdict
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from core.contracts.plan import ChangePlan, ChangePlanResponse, LintIssue, PlanParseOk
from core.contracts.provider import LLMProvider
from core.diff.unified import count_changed_lines, create_unified_diff
from core.plan.parser import parse_plan_response
from utils.errors import ProviderError
from utils.logger import logger

PLANNER_SYSTEM_PROMPT = """You are an expert code refactoring assistant. Your job is to analyze lint issues and propose a structured plan to fix them.

You must respond with valid JSON matching this exact schema:

{
  "canProceed": boolean,
  "reason": "string (if canProceed is false)",
  "plan": {
    "id": "string (use the provided plan ID)",
    "title": "string",
    "summary": "string (2-3 sentence overview)",
    "rationale": "string",
    "files": [
      {
        "filePath": "string",
        "action": "modify" | "create" | "delete",
        "description": "string",
        "proposedContent": "string (complete new file content)",
        "issuesAddressed": ["string"],
        "riskLevel": "low" | "medium" | "high"
      }
    ],
    "totalFiles": number,
    "estimatedLinesChanged": number,
    "riskAssessment": {"overall": "low" | "medium" | "high", "factors": ["string"], "mitigations": ["string"]},
    "testingRecommendations": ["string"],
    "rollbackPlan": "string"
  }
}

Only fix the listed issues, preserve behaviour, keep changes minimal, and give the COMPLETE
proposedContent of every file. If nothing is fixable, set canProceed to false with a reason."""


def generate_plan_id(owner: str, repo: str, pull_number: int, now_ms: Optional[int] = None) -> str:
    """plan-{owner}-{repo}-{pr}-{epoch ms}-{6 random base36 chars}"""
    timestamp = int(time.time() * 1000) if now_ms is None else now_ms
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"plan-{owner}-{repo}-{pull_number}-{timestamp}-{suffix}"


class ChangePlanner:
    """
    Turns lint findings plus file contents into a validated change plan.

    The provider's output is trusted only after strict schema parsing. The
    plan id is always the one generated here.
    """

    def __init__(self, provider: LLMProvider, id_factory: Callable[[str, str, int], str] = generate_plan_id):
        self.provider = provider
        self._id_factory = id_factory

    def _build_prompt(self, plan_id: str, issues: Sequence[LintIssue], files: Mapping[str, str]) -> str:
        by_path: Dict[str, List[LintIssue]] = defaultdict(list)
        for issue in issues:
            by_path[issue.path].append(issue)

        parts = [f"Generate a change plan to fix the following lint issues.\n\n**Plan ID:** {plan_id}\n\n## Lint Issues Found\n"]
        for path, path_issues in by_path.items():
            errors = sum(1 for i in path_issues if i.severity == "error")
            parts.append(f"### `{path}`\nErrors: {errors}, Warnings: {len(path_issues) - errors}\n")
            for issue in path_issues:
                rule = f" ({issue.rule_id})" if issue.rule_id else ""
                fixable = " [FIXABLE]" if issue.fixable else ""
                parts.append(f"- Line {issue.line}: {issue.message}{rule}{fixable}")
            parts.append("")

        parts.append("## File Contents\n")
        for path, content in files.items():
            if path in by_path:
                parts.append(f"### `{path}`\n```\n{content}\n```\n")

        parts.append(
            "## Instructions\n\n"
            "1. Analyze the lint issues above\n"
            "2. For each file with issues, generate the fixed content\n"
            "3. Return a structured change plan in the specified JSON format\n"
            f"4. Use the plan ID: {plan_id}"
        )
        return "\n".join(parts)

    @staticmethod
    def _attach_diffs(plan: ChangePlan, files: Mapping[str, str]) -> ChangePlan:
        """Adds original content and diffs; the line estimate never undercounts the diffs."""
        updated = []
        measured = 0
        for change in plan.files:
            original = files.get(change.file_path)
            if change.action == "modify" and change.proposed_content and original is not None:
                change = change.model_copy(
                    update={
                        "original_content": original,
                        "diff": create_unified_diff(change.file_path, original, change.proposed_content),
                    }
                )
                measured += count_changed_lines(original, change.proposed_content).total
            updated.append(change)
        return plan.model_copy(
            update={"files": updated, "estimated_lines_changed": max(plan.estimated_lines_changed, measured)}
        )

    async def generate_plan(
        self,
        owner: str,
        repo: str,
        pull_number: int,
        issues: Sequence[LintIssue],
        files: Mapping[str, str],
    ) -> ChangePlanResponse:
        """
        Generates a change plan.

        Args:
            owner: Repository owner.
            repo: Repository name.
            pull_number: Pull request the plan is for.
            issues: Lint findings to fix.
            files: Current content of the files, keyed by path.

        Returns:
            A response with `can_proceed` false and a reason when the provider
            failed or its output could not be parsed.
        """
        plan_id = self._id_factory(owner, repo, pull_number)
        log = logger.bind(plan_id=plan_id, owner=owner, repo=repo, pull_number=pull_number)
        log.info(f"Generating change plan: files={len(files)} issues={len(issues)}")

        try:
            content = await self.provider.generate(PLANNER_SYSTEM_PROMPT, self._build_prompt(plan_id, issues, files))
        except ProviderError as e:
            log.error(f"Change plan generation failed: {e}")
            return ChangePlanResponse(can_proceed=False, reason=f"Failed to generate change plan: {e}")

        parsed = parse_plan_response(content, plan_id=plan_id)
        if not isinstance(parsed, PlanParseOk):
            return ChangePlanResponse(can_proceed=False, reason=parsed.reason)

        response = parsed.response
        if response.can_proceed and response.plan is not None:
            response = response.model_copy(update={"plan": self._attach_diffs(response.plan, files)})

        log.info(
            f"Change plan generated: can_proceed={response.can_proceed} "
            f"files={len(response.plan.files) if response.plan else 0}"
        )
        return response
