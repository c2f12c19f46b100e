from typing import List, Mapping, Optional, Sequence

from pydantic import BaseModel

from config.models import Config
from config.repo import RepoConfig, load_repo_config
from core.contracts.hosting import GitHostingClient
from core.contracts.plan import LintIssue, StoredChangePlan
from core.execution.engine import ExecutionResult, GitExecutionEngine
from core.formatter.jinja_formatter import Jinja2Formatter
from core.plan.permissions import check_permission
from core.plan.planner import ChangePlanner
from core.plan.store import ChangePlanStore
from core.plan.validator import validate_plan
from utils.errors import GitHubAPIError, InvalidTransitionError
from utils.logger import logger, pr_logger

DEFAULT_COMMAND = "/ai-fix-lints"


class PipelineOutcome(BaseModel):
    success: bool
    message: str
    plan_id: Optional[str] = None
    pr_number: Optional[int] = None
    violations: List[str] = []


class ChangePlanPipeline:
    """
    The main pipeline for change plans.
    It orchestrates planning, validation, approval, and execution. Every
    collaborator is passed in; nothing is looked up globally.
    """

    def __init__(
        self,
        client: GitHostingClient,
        store: ChangePlanStore,
        planner: ChangePlanner,
        engine: GitExecutionEngine,
        config: Optional[Config] = None,
        formatter: Optional[Jinja2Formatter] = None,
    ):
        self.client = client
        self.store = store
        self.planner = planner
        self.engine = engine
        self.config = config or Config()
        self.formatter = formatter or Jinja2Formatter()

    async def _repo_config(self, owner: str, repo: str, ref: str = "HEAD") -> RepoConfig:
        return await load_repo_config(self.client, owner, repo, ref)

    async def _authorize(self, owner: str, repo: str, username: str, action: str) -> Optional[PipelineOutcome]:
        """Returns a denial outcome, or None when the user may proceed."""
        check = await check_permission(
            self.client, owner, repo, username, required=self.config.plans.required_permission, action=action
        )
        if check.allowed:
            return None
        logger.warning(f"Permission denied for {username} on {owner}/{repo}: {check.reason}")
        return PipelineOutcome(success=False, message=f"⛔ Permission denied: {check.reason}")

    async def _fetch_files(
        self, owner: str, repo: str, ref: str, paths: Sequence[str]
    ) -> Mapping[str, str]:
        files = {}
        for path in dict.fromkeys(paths):
            content = await self.client.get_file_content(owner, repo, path, ref)
            if content is not None:
                files[path] = content
        return files

    async def generate_plan(
        self,
        owner: str,
        repo: str,
        pull_number: int,
        issues: Sequence[LintIssue],
        triggered_by: str,
        command: str = DEFAULT_COMMAND,
        files: Optional[Mapping[str, str]] = None,
        dry_run: bool = False,
    ) -> PipelineOutcome:
        """
        Generates, validates, posts, and stores a change plan.

        Args:
            owner: Repository owner.
            repo: Repository name.
            pull_number: Pull request the issues were found in.
            issues: Lint findings to fix.
            triggered_by: User who asked for the plan.
            command: The command that triggered it, kept for the audit trail.
            files: File contents keyed by path; fetched at the PR head when omitted.
            dry_run: Post the plan as a preview without storing it.

        Returns:
            The outcome. Safety-limit violations are listed individually.
        """
        log = pr_logger(owner, repo, pull_number, action="generate_plan", triggered_by=triggered_by)

        if not issues:
            return PipelineOutcome(success=True, message="✅ No lint issues found! The code looks clean.")

        denied = await self._authorize(owner, repo, triggered_by, "generate change plans")
        if denied is not None:
            return denied

        try:
            pr = await self.client.get_pull_request(owner, repo, pull_number)
            head_sha = pr["head"]["sha"]
            repo_config = await self._repo_config(owner, repo, head_sha)
            disabled = repo_config.disabled_reason()
            if disabled is not None:
                log.info(f"Refusing change plan: {disabled}")
                return PipelineOutcome(success=False, message=disabled)
            if files is None:
                max_files = min(repo_config.dev_agent.max_files_per_pr, 20)
                paths = list(dict.fromkeys(i.path for i in issues))[:max_files]
                log.info(f"Fetching content of {len(paths)} file(s)")
                files = await self._fetch_files(owner, repo, head_sha, paths)
        except GitHubAPIError as e:
            log.error(f"Failed to prepare change plan: {e}")
            return PipelineOutcome(success=False, message=f"Failed to generate change plan: {e}")

        if not files:
            return PipelineOutcome(success=False, message="Could not fetch content for any files with issues")

        response = await self.planner.generate_plan(owner, repo, pull_number, issues, files)
        if not response.can_proceed or response.plan is None:
            return PipelineOutcome(
                success=False,
                message=f"Could not generate change plan: {response.reason or 'Unknown error'}",
            )
        plan = response.plan

        validation = validate_plan(plan, repo_config.safety_limits(self.config.safety))
        if not validation.valid:
            log.warning(f"Change plan exceeds safety limits: {validation.violations}")
            itemised = "\n".join(f"- {v}" for v in validation.violations)
            return PipelineOutcome(
                success=False,
                message=f"Change plan exceeds safety limits:\n{itemised}",
                plan_id=plan.id,
                violations=validation.violations,
            )

        try:
            comment = await self.client.create_issue_comment(
                owner, repo, pull_number, self.formatter.plan_comment(plan, dry_run=dry_run)
            )
        except GitHubAPIError as e:
            log.error(f"Failed to post change plan: {e}")
            return PipelineOutcome(success=False, message=f"Failed to post change plan: {e}", plan_id=plan.id)

        if dry_run:
            return PipelineOutcome(success=True, message="Dry run preview posted.", plan_id=plan.id)

        self.store.create(plan, owner, repo, pull_number, comment["id"], triggered_by, command)
        log.bind(plan_id=plan.id).info(f"Change plan posted as comment {comment['id']}")
        return PipelineOutcome(
            success=True,
            plan_id=plan.id,
            message=f"Change plan generated! Approve it with `devagent approve {plan.id}`.",
        )

    async def approve(self, plan_id: str, approved_by: str) -> PipelineOutcome:
        """
        Approves a pending plan and executes it.

        Only one approval can move a plan out of `pending`; any later one is
        answered with "Plan is already {status}".
        """
        stored = self.store.get(plan_id)
        if stored is None:
            return PipelineOutcome(success=False, message="Change plan not found", plan_id=plan_id)

        denied = await self._authorize(stored.owner, stored.repo, approved_by, "approve change plans")
        if denied is not None:
            return denied.model_copy(update={"plan_id": plan_id})

        disabled = (await self._repo_config(stored.owner, stored.repo)).disabled_reason()
        if disabled is not None:
            return PipelineOutcome(success=False, message=disabled, plan_id=plan_id)

        try:
            stored = self.store.start_execution(plan_id, approved_by)
        except InvalidTransitionError as e:
            return PipelineOutcome(success=False, message=str(e), plan_id=plan_id)

        log = pr_logger(stored.owner, stored.repo, stored.pull_number, plan_id=plan_id, approved_by=approved_by)
        try:
            base_branch = await self.client.get_default_branch(stored.owner, stored.repo)
            log.info("Executing change plan")
            result = await self.engine.execute(
                stored.owner,
                stored.repo,
                stored.plan,
                base_branch,
                triggered_by=approved_by,
                original_pr=stored.pull_number,
                original_comment_id=stored.comment_id,
            )
        except Exception as e:
            log.exception(f"Failed to execute change plan: {e}")
            self.store.fail(plan_id, str(e))
            return PipelineOutcome(success=False, message=f"Failed to execute plan: {e}", plan_id=plan_id)

        if not result.success:
            return await self._record_failure(stored, result)

        self.store.complete(plan_id, result.pr_number)
        await self._comment(
            stored,
            self.formatter.execution_success(result.pr_number, result.pr_url or "", result.committed_files),
        )
        log.info(f"Change plan executed as PR #{result.pr_number}")
        return PipelineOutcome(
            success=True,
            message=f"PR #{result.pr_number} created successfully",
            plan_id=plan_id,
            pr_number=result.pr_number,
        )

    async def _record_failure(self, stored: StoredChangePlan, result: ExecutionResult) -> PipelineOutcome:
        error = result.error or "Unknown error"
        self.store.fail(stored.id, error)
        logger.bind(plan_id=stored.id).warning(
            f"Change plan execution failed: {error} (rollback_performed={result.rollback_performed})"
        )
        if result.preflight_failed:
            body = self.formatter.validation_report(result.validation)
        else:
            body = self.formatter.execution_failure(error, result.rollback_performed, result.branch_name)
        await self._comment(stored, body)
        return PipelineOutcome(success=False, message=error, plan_id=stored.id)

    async def _comment(self, stored: StoredChangePlan, body: str) -> None:
        try:
            await self.client.create_issue_comment(stored.owner, stored.repo, stored.pull_number, body)
        except GitHubAPIError as e:
            logger.bind(plan_id=stored.id).warning(f"Failed to post outcome comment: {e}")

    async def approve_by_comment(self, comment_id: int, approved_by: str) -> PipelineOutcome:
        stored = self.store.get_by_comment_id(comment_id)
        if stored is None:
            return PipelineOutcome(success=False, message=f"No change plan is linked to comment {comment_id}")
        return await self.approve(stored.id, approved_by)

    async def reject(self, plan_id: str, rejected_by: str) -> PipelineOutcome:
        stored = self.store.get(plan_id)
        if stored is None:
            return PipelineOutcome(success=False, message="Change plan not found", plan_id=plan_id)

        denied = await self._authorize(stored.owner, stored.repo, rejected_by, "reject change plans")
        if denied is not None:
            return denied.model_copy(update={"plan_id": plan_id})

        try:
            self.store.reject(plan_id, f"Rejected by {rejected_by}")
        except InvalidTransitionError as e:
            return PipelineOutcome(success=False, message=str(e), plan_id=plan_id)
        logger.bind(plan_id=plan_id).info(f"Change plan rejected by {rejected_by}")
        return PipelineOutcome(success=True, message="Change plan rejected", plan_id=plan_id)

    async def reject_by_comment(self, comment_id: int, rejected_by: str) -> PipelineOutcome:
        stored = self.store.get_by_comment_id(comment_id)
        if stored is None:
            return PipelineOutcome(success=False, message=f"No change plan is linked to comment {comment_id}")
        return await self.reject(stored.id, rejected_by)

    def sweep_expired(self) -> List[StoredChangePlan]:
        return self.store.expire_old_plans()
