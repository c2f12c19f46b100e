"""
Git execution engine: materialize an approved change plan as a new pull request.

Execution is a saga. Each committed file is a forward step and deleting the
branch is the compensating action. Compensation runs when no file could be
committed or when a later step fails. A partial commit set is an accepted
terminal state, and the files that did not apply are listed in the new pull
request.
"""
import time
from typing import Callable, List, Literal, Optional

from pydantic import BaseModel

from config.models import ExecutionConfig
from core.contracts.hosting import GitHostingClient
from core.contracts.plan import ChangePlan
from core.execution.impact import ChangedFileSnapshot, ImpactAnalysis, ImpactAnalyzer
from core.formatter.jinja_formatter import Jinja2Formatter
from core.preflight.syntax import PreflightReport, validate_files
from utils.logger import logger

ExecutionOutcome = Literal["not_created", "partial", "applied"]


class ExecutionResult(BaseModel):
    success: bool
    branch_name: Optional[str] = None
    pr_number: Optional[int] = None
    pr_url: Optional[str] = None
    committed_files: List[str] = []
    failed_files: List[str] = []
    error: Optional[str] = None
    rollback_performed: bool = False
    validation: Optional[PreflightReport] = None
    impact: Optional[ImpactAnalysis] = None

    @property
    def outcome(self) -> ExecutionOutcome:
        """
        What the run left behind on the hosting platform.

        `not_created`: nothing remains (never created, or rolled back).
        `partial`: something remains but not every file was applied.
        `applied`: a pull request with every planned file.
        """
        if self.success:
            return "partial" if self.failed_files else "applied"
        if self.branch_name is None or self.rollback_performed:
            return "not_created"
        return "partial"

    @property
    def preflight_failed(self) -> bool:
        return self.validation is not None and not self.validation.is_valid


def branch_name_for(plan_id: str, timestamp_ms: int, prefix: str = "ai-fix") -> str:
    """The last two dash-separated parts of the plan id, plus a timestamp."""
    return f"{prefix}/{'-'.join(plan_id.split('-')[-2:])}-{timestamp_ms}"


class GitExecutionEngine:
    """
    Creates a branch, commits each file, and opens a pull request.

    Commits are applied sequentially in plan order. Write operations are not
    retried; a failed file is recorded and skipped.
    """

    def __init__(
        self,
        client: GitHostingClient,
        formatter: Optional[Jinja2Formatter] = None,
        impact_analyzer: Optional[ImpactAnalyzer] = None,
        config: Optional[ExecutionConfig] = None,
        clock_ms: Callable[[], int] = lambda: int(time.time() * 1000),
    ):
        self.client = client
        self.formatter = formatter or Jinja2Formatter()
        self.impact_analyzer = impact_analyzer
        self.config = config or ExecutionConfig()
        self._clock_ms = clock_ms

    def preflight(self, plan: ChangePlan) -> PreflightReport:
        return validate_files([(f.file_path, f.proposed_content) for f in plan.modify_changes()])

    async def execute(
        self,
        owner: str,
        repo: str,
        plan: ChangePlan,
        base_branch: str,
        triggered_by: str,
        original_pr: int,
        original_comment_id: Optional[int] = None,
    ) -> ExecutionResult:
        """
        Runs the full saga for one approved plan.

        Args:
            owner: Repository owner.
            repo: Repository name.
            plan: The approved plan.
            base_branch: Branch the new pull request targets.
            triggered_by: User credited in the pull request body.
            original_pr: Pull request the plan was generated for.
            original_comment_id: Comment the plan was posted under, linked from the body.

        Returns:
            The result. Expected failures are reported here, not raised.
        """
        log = logger.bind(owner=owner, repo=repo, plan_id=plan.id, original_pr=original_pr)
        changes = plan.modify_changes()

        validation: Optional[PreflightReport] = None
        if self.config.preflight:
            log.info("Validating proposed changes")
            validation = self.preflight(plan)
            if not validation.is_valid:
                log.warning(f"Syntax validation failed with {validation.total_errors} error(s)")
                return ExecutionResult(
                    success=False,
                    error=f"Syntax validation failed: {validation.total_errors} error(s) found",
                    validation=validation,
                )
            log.info("Syntax validation passed")

        branch_name: Optional[str] = None
        committed: List[str] = []
        try:
            log.info(f"Getting base branch SHA for {base_branch}")
            base_sha = await self.client.get_branch_sha(owner, repo, base_branch)

            candidate = branch_name_for(plan.id, self._clock_ms(), self.config.branch_prefix)
            log.info(f"Creating feature branch {candidate}")
            await self.client.create_branch(owner, repo, candidate, base_sha)
            branch_name = candidate

            failed: List[str] = []
            for change in changes:
                try:
                    await self.client.create_or_update_file(
                        owner,
                        repo,
                        change.file_path,
                        change.proposed_content,
                        f"fix: {change.description}",
                        branch_name,
                    )
                    committed.append(change.file_path)
                    log.debug(f"Committed {change.file_path}")
                except Exception as e:
                    failed.append(change.file_path)
                    log.error(f"Failed to apply change to {change.file_path}: {e}")

            if not committed:
                log.warning("No files were committed")
                rolled_back = await self._rollback(owner, repo, branch_name)
                return ExecutionResult(
                    success=False,
                    branch_name=branch_name,
                    failed_files=failed,
                    error="No files were successfully committed",
                    rollback_performed=rolled_back,
                    validation=validation,
                )

            impact = await self._analyze_impact(plan, committed)

            log.info("Creating pull request")
            body = self.formatter.pr_body(
                plan,
                triggered_by=triggered_by,
                original_pr=original_pr,
                committed_files=committed,
                owner=owner,
                repo=repo,
                impact=impact,
                original_comment_id=original_comment_id,
            )
            pull = await self.client.create_pull_request(
                owner, repo, f"{self.config.title_prefix}{plan.title}", branch_name, base_branch, body
            )

            if self.config.labels:
                try:
                    await self.client.add_labels(owner, repo, pull["number"], list(self.config.labels))
                except Exception as e:
                    log.warning(f"Failed to add labels: {e}")

            log.info(f"PR #{pull['number']} created with {len(committed)} file(s)")
            return ExecutionResult(
                success=True,
                branch_name=branch_name,
                pr_number=pull["number"],
                pr_url=pull.get("html_url"),
                committed_files=committed,
                failed_files=failed,
                validation=validation,
                impact=impact,
            )
        except Exception as e:
            log.exception(f"Git operation failed: {e}")
            if branch_name is None:
                return ExecutionResult(success=False, error=str(e), committed_files=committed, validation=validation)
            rolled_back = await self._rollback(owner, repo, branch_name)
            return ExecutionResult(
                success=False,
                branch_name=branch_name,
                committed_files=committed,
                error=str(e),
                rollback_performed=rolled_back,
                validation=validation,
            )

    async def _analyze_impact(self, plan: ChangePlan, committed: List[str]) -> Optional[ImpactAnalysis]:
        if not self.config.impact_analysis or self.impact_analyzer is None:
            return None
        snapshots = [
            ChangedFileSnapshot(path=f.file_path, new_content=f.proposed_content or "", change_description=f.description)
            for f in plan.modify_changes()
            if f.file_path in committed
        ]
        try:
            return await self.impact_analyzer.analyze(snapshots)
        except Exception as e:
            logger.warning(f"Impact analysis failed, continuing without it: {e}")
            return None

    async def _rollback(self, owner: str, repo: str, branch_name: str) -> bool:
        logger.info(f"Attempting rollback: deleting branch {branch_name}")
        try:
            await self.client.delete_branch(owner, repo, branch_name)
        except Exception as e:
            logger.error(f"Failed to delete branch {branch_name} during rollback: {e}")
            return False
        logger.info(f"Branch {branch_name} deleted (rollback successful)")
        return True
