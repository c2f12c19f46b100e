from pathlib import Path
from typing import Any, List, Optional, Sequence

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from core.contracts.models import PRContext
from core.contracts.plan import ChangePlan
from utils.errors import FormatterError

RISK_EMOJI = {"low": "🟢", "medium": "🟡", "high": "🔴"}
PRIORITY_EMOJI = {"critical": "🔴", "high": "🟠", "medium": "🟡", "low": "🟢"}
ACTION_EMOJI = {"create": "➕", "delete": "➖", "modify": "📝"}


def md_cell(value: Any) -> str:
    """Makes a value safe inside one markdown table cell."""
    return str(value).replace("|", "\\|").replace("\n", " ")


def head_lines(text: str, limit: int) -> str:
    lines = text.split("\n")
    if len(lines) <= limit:
        return text
    return "\n".join(lines[:limit]) + "\n... (truncated)"


class Jinja2Formatter:
    """
    Renders the markdown posted to the hosting platform: plan comments,
    pull request bodies, validation reports, and execution outcomes.
    """

    def __init__(self, template_dir: Optional[str] = None):
        if template_dir is None:
            # Default template directory relative to this file
            template_dir = str(Path(__file__).parent / "templates")

        self.template_dir = template_dir
        try:
            self.env = Environment(
                loader=FileSystemLoader(self.template_dir),
                trim_blocks=True,
                lstrip_blocks=True,
                undefined=StrictUndefined,
            )
        except Exception as e:
            raise FormatterError(f"Failed to initialize Jinja2 environment: {e}") from e
        self.env.filters["md_cell"] = md_cell
        self.env.filters["head_lines"] = head_lines
        self.env.globals.update(risk_emoji=RISK_EMOJI, priority_emoji=PRIORITY_EMOJI, action_emoji=ACTION_EMOJI)

    def render(self, template_name: str, **context: Any) -> str:
        try:
            template = self.env.get_template(template_name)
            return template.render(**context).strip() + "\n"
        except TemplateError as e:
            raise FormatterError(f"Failed to render template {template_name}: {e}") from e

    def plan_comment(self, plan: ChangePlan, dry_run: bool = False) -> str:
        modified = [f for f in plan.files if f.action == "modify" and f.diff]
        return self.render("plan_comment.md.j2", plan=plan, dry_run=dry_run, modified=modified)

    def pr_body(
        self,
        plan: ChangePlan,
        triggered_by: str,
        original_pr: int,
        committed_files: Sequence[str],
        owner: str,
        repo: str,
        impact: Optional[Any] = None,
        original_comment_id: Optional[int] = None,
    ) -> str:
        committed = list(committed_files)
        descriptions = {f.file_path: f.description for f in plan.files}
        not_updated = [f.file_path for f in plan.files if f.action == "modify" and f.file_path not in committed]
        return self.render(
            "pr_body.md.j2",
            plan=plan,
            triggered_by=triggered_by,
            original_pr=original_pr,
            committed=committed,
            descriptions=descriptions,
            not_updated=not_updated,
            owner=owner,
            repo=repo,
            impact=impact,
            original_comment_id=original_comment_id,
        )

    def validation_report(self, report: Any) -> str:
        return self.render("validation_report.md.j2", report=report)

    def impact_section(self, analysis: Any) -> str:
        return self.render("impact.md.j2", impact=analysis)

    def execution_success(self, pr_number: int, pr_url: str, committed_files: List[str]) -> str:
        return self.render("outcome.md.j2", success=True, pr_number=pr_number, pr_url=pr_url, committed=committed_files)

    def execution_failure(self, error: str, rollback_performed: bool, branch_name: Optional[str] = None) -> str:
        return self.render(
            "outcome.md.j2",
            success=False,
            error=error,
            rollback_performed=rollback_performed,
            branch_name=branch_name,
        )

    def large_pr_summary(self, context: PRContext) -> str:
        return self.render("large_pr.md.j2", ctx=context)
