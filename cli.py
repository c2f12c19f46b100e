import asyncio
import functools
from pathlib import Path
from typing import List, Optional, Tuple

import click
from pydantic import TypeAdapter, ValidationError
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

# Import providers to register them
import core.llm.providers

from config.logic import load_and_merge_configs
from config.models import Config
from config.repo import load_repo_config
from core.context.assembler import PRContextAssembler, is_pr_too_large
from core.contracts.models import PRContext
from core.contracts.plan import LintIssue, PlanParseOk, SafetyLimits
from core.execution.engine import GitExecutionEngine
from core.execution.impact import ImpactAnalyzer
from core.formatter.jinja_formatter import Jinja2Formatter
from core.github.client import GitHubClient
from core.llm.router import ProviderChain
from core.pipeline import DEFAULT_COMMAND, ChangePlanPipeline, PipelineOutcome
from core.plan.expiry import PlanExpirySweeper
from core.plan.parser import parse_plan_response
from core.plan.planner import ChangePlanner
from core.plan.repository import SqlitePlanRepository
from core.plan.store import ChangePlanStore
from core.plan.validator import validate_plan
from core.preflight.syntax import validate_files
from utils.cache import FileContextCache
from utils.errors import DevAgentException
from utils.git import get_origin_slug
from utils.logger import logger, setup_logger

console = Console()

STATUS_STYLE = {
    "pending": "yellow",
    "executing": "cyan",
    "completed": "green",
    "failed": "red",
    "rejected": "dim",
}


def handle_errors(func):
    """Prints known errors as one red line and exits with status 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DevAgentException as e:
            logger.error(f"Command failed: {e}")
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise SystemExit(1)

    return wrapper


def get_config(ctx: click.Context) -> Config:
    """Loads the merged configuration once per invocation."""
    if ctx.obj.get("config") is None:
        config = load_and_merge_configs(custom_config_path=ctx.obj.get("config_path"))
        if not ctx.obj.get("verbose"):
            setup_logger(log_level=config.logging.level, log_file=config.logging.file)
        ctx.obj["config"] = config
    return ctx.obj["config"]


def resolve_target(target: Tuple[str, ...]) -> Tuple[str, str, int]:
    """
    Resolves `[OWNER/REPO] PR` arguments.

    Without OWNER/REPO the `origin` remote of the current checkout is used.
    """
    if len(target) == 1:
        owner, repo = get_origin_slug()
        number = target[0]
    elif len(target) == 2:
        slug, number = target
        if slug.count("/") != 1 or not all(slug.split("/")):
            raise DevAgentException(f"Expected OWNER/REPO, got '{slug}'")
        owner, repo = slug.split("/")
    else:
        raise DevAgentException("Expected [OWNER/REPO] PR")
    if not number.isdigit():
        raise DevAgentException(f"Pull request number must be an integer, got '{number}'")
    return owner, repo, int(number)


def open_store(config: Config) -> ChangePlanStore:
    return ChangePlanStore(SqlitePlanRepository(config.storage.database), expiry_hours=config.plans.expiry_hours)


def build_pipeline(config: Config, client: GitHubClient, store: ChangePlanStore) -> ChangePlanPipeline:
    chain = ProviderChain.from_configs(config.providers, retry=config.retry)
    formatter = Jinja2Formatter()
    analyzer = ImpactAnalyzer(chain) if config.execution.impact_analysis else None
    engine = GitExecutionEngine(client, formatter=formatter, impact_analyzer=analyzer, config=config.execution)
    return ChangePlanPipeline(client, store, ChangePlanner(chain), engine, config=config, formatter=formatter)


def print_outcome(outcome: PipelineOutcome) -> None:
    if outcome.success:
        console.print(f"[bold green]✅ {outcome.message}[/bold green]")
        return
    console.print(f"[bold red]❌ {outcome.message}[/bold red]")
    raise SystemExit(1)


async def assemble_context(config: Config, owner: str, repo: str, pull_number: int, use_cache: bool) -> PRContext:
    cache = FileContextCache(config.storage.cache_dir, config.limits.context_cache_ttl_sec)
    async with GitHubClient(config.github) as client:
        repo_config = await load_repo_config(client, owner, repo)
        assembler = PRContextAssembler(client, cache=cache, limits=config.limits)
        return await assembler.fetch_context(
            owner,
            repo,
            pull_number,
            use_cache=use_cache,
            ignore_patterns=repo_config.ignore_patterns,
            max_files=repo_config.reviewer.max_files_reviewed,
        )


@click.group()
@click.option(
    "-c", "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a custom configuration file",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Enable verbose logging for debugging",
)
@click.pass_context
def cli(ctx, config_path: Optional[str], verbose: bool):
    """
    Turns AI-proposed fixes into reviewed, human-approved pull requests.
    """
    if verbose:
        setup_logger(log_level="DEBUG", log_file=None)
    ctx.obj = {"config_path": config_path, "verbose": verbose, "config": None}


@cli.command("context")
@click.argument("target", nargs=-1, required=True)
@click.option("--no-cache", is_flag=True, help="Bypass the PR context cache")
@click.option("--diff", "show_diff", is_flag=True, help="Print the formatted diff")
@click.pass_context
@handle_errors
def context_command(ctx, target: Tuple[str, ...], no_cache: bool, show_diff: bool):
    """
    Assemble and summarise the context of a pull request.

    TARGET is `[OWNER/REPO] PR`.
    """
    config = get_config(ctx)
    owner, repo, pull_number = resolve_target(target)

    with console.status("[bold green]Fetching pull request context...[/bold green]"):
        pr_context = asyncio.run(assemble_context(config, owner, repo, pull_number, use_cache=not no_cache))

    source = " (cached)" if pr_context.from_cache else ""
    console.print(Panel(
        f"[bold]{pr_context.title}[/bold] by @{pr_context.author}\n"
        f"{pr_context.head_branch} → {pr_context.base_branch} at {pr_context.commit_sha[:7]}{source}\n"
        f"Files: {pr_context.total_files} total, {pr_context.reviewed_files} reviewed, "
        f"{pr_context.skipped_files} skipped, {pr_context.truncated_files} truncated "
        f"(+{pr_context.total_additions}/-{pr_context.total_deletions})",
        title=f"[bold cyan]{owner}/{repo}#{pull_number}[/bold cyan]",
        border_style="cyan",
        expand=False,
    ))

    table = Table("File", "Status", "+", "-", "Note")
    for f in pr_context.files:
        note = f.skip_reason if f.skipped else ("truncated" if f.truncated else "")
        table.add_row(f.filename, f.status, str(f.additions), str(f.deletions), note or "")
    console.print(table)

    for warning in pr_context.warnings:
        console.print(f"[yellow]⚠️  {warning}[/yellow]")

    if is_pr_too_large(pr_context, config.limits.max_files_per_review):
        console.print(Markdown(Jinja2Formatter().large_pr_summary(pr_context)))

    if show_diff:
        console.print(pr_context.formatted_diff, markup=False, highlight=False)


@cli.command("validate")
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--max-files", type=click.IntRange(min=1), help="Override the maximum number of files")
@click.option("--max-lines", type=click.IntRange(min=1), help="Override the maximum number of changed lines")
@click.option("--preview", is_flag=True, help="Render the plan comment")
@click.pass_context
@handle_errors
def validate_command(ctx, plan_file: str, max_files: Optional[int], max_lines: Optional[int], preview: bool):
    """
    Parse a change plan response and check it against the safety limits.
    """
    config = get_config(ctx)
    parsed = parse_plan_response(Path(plan_file).read_text(encoding="utf-8"))
    if not isinstance(parsed, PlanParseOk):
        raise DevAgentException(parsed.reason)
    response = parsed.response
    if not response.can_proceed or response.plan is None:
        raise DevAgentException(f"Plan cannot proceed: {response.reason or 'no plan given'}")

    limits = SafetyLimits(
        max_files=max_files or config.safety.max_files_per_pr,
        max_lines_changed=max_lines or config.safety.max_lines_changed,
    )
    plan = response.plan
    if preview:
        console.print(Markdown(Jinja2Formatter().plan_comment(plan, dry_run=True)))

    validation = validate_plan(plan, limits)
    if validation.valid:
        console.print(f"[bold green]✅ Plan {plan.id} is within safety limits[/bold green]")
        return
    console.print("[bold red]❌ Change plan exceeds safety limits:[/bold red]")
    for violation in validation.violations:
        console.print(f"  - {violation}")
    raise SystemExit(1)


@cli.command("preflight")
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@handle_errors
def preflight_command(files: Tuple[str, ...]):
    """
    Syntax-check local files.
    """
    report = validate_files([(path, Path(path).read_text(encoding="utf-8")) for path in files])

    table = Table("File", "Line", "Column", "Error")
    for result in report.files:
        if result.is_valid:
            table.add_row(result.path, "", "", "[green]ok[/green]")
        for issue in result.errors:
            table.add_row(result.path, str(issue.line), str(issue.column), issue.message)
    console.print(table)

    if report.is_valid:
        console.print(f"[bold green]✅ {len(report.files)} file(s) passed syntax validation[/bold green]")
        return
    console.print(f"[bold red]❌ {report.total_errors} syntax error(s) found[/bold red]")
    raise SystemExit(1)


@cli.command("plan")
@click.argument("target", nargs=-1, required=True)
@click.option(
    "--issues", "issues_file",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="JSON list of lint issues (path, line, message, ruleId, severity, fixable)",
)
@click.option("--user", required=True, help="User requesting the plan")
@click.option("--command", default=DEFAULT_COMMAND, show_default=True, help="Command recorded with the plan")
@click.option("--dry-run", is_flag=True, help="Post a preview without storing the plan")
@click.pass_context
@handle_errors
def plan_command(ctx, target: Tuple[str, ...], issues_file: str, user: str, command: str, dry_run: bool):
    """
    Generate a change plan for lint issues and post it for approval.

    TARGET is `[OWNER/REPO] PR`.
    """
    config = get_config(ctx)
    owner, repo, pull_number = resolve_target(target)
    try:
        issues: List[LintIssue] = TypeAdapter(List[LintIssue]).validate_json(
            Path(issues_file).read_text(encoding="utf-8")
        )
    except ValidationError as e:
        raise DevAgentException(f"Invalid issues file: {e}") from e

    async def run() -> PipelineOutcome:
        async with GitHubClient(config.github) as client:
            with SqlitePlanRepository(config.storage.database) as repository:
                store = ChangePlanStore(repository, expiry_hours=config.plans.expiry_hours)
                pipeline = build_pipeline(config, client, store)
                return await pipeline.generate_plan(
                    owner, repo, pull_number, issues, triggered_by=user, command=command, dry_run=dry_run
                )

    with console.status("[bold green]Generating change plan...[/bold green]"):
        outcome = asyncio.run(run())
    print_outcome(outcome)


@cli.group("plans")
def plans_group():
    """Inspect stored change plans."""


@plans_group.command("list")
@click.option(
    "--status",
    type=click.Choice(["pending", "executing", "completed", "failed", "rejected"]),
    help="Only show plans in this status",
)
@click.pass_context
@handle_errors
def plans_list(ctx, status: Optional[str]):
    config = get_config(ctx)
    store = open_store(config)
    try:
        plans = store.list_plans(status)
    finally:
        store.repository.close()

    if not plans:
        console.print("[yellow]No change plans found.[/yellow]")
        return
    table = Table("ID", "Repository", "PR", "Status", "Files", "Created", "By")
    for stored in plans:
        style = STATUS_STYLE.get(stored.status, "")
        table.add_row(
            stored.id,
            f"{stored.owner}/{stored.repo}",
            f"#{stored.pull_number}",
            f"[{style}]{stored.status}[/{style}]",
            str(len(stored.plan.files)),
            stored.created_at.strftime("%Y-%m-%d %H:%M"),
            stored.triggered_by,
        )
    console.print(table)


@plans_group.command("show")
@click.argument("plan_id")
@click.option("--json", "as_json", is_flag=True, help="Print the stored plan as JSON")
@click.pass_context
@handle_errors
def plans_show(ctx, plan_id: str, as_json: bool):
    config = get_config(ctx)
    store = open_store(config)
    try:
        stored = store.require(plan_id)
    finally:
        store.repository.close()

    if as_json:
        console.print_json(stored.model_dump_json(by_alias=True))
        return

    details = [
        f"Status: [{STATUS_STYLE.get(stored.status, '')}]{stored.status}[/]",
        f"Pull request: {stored.owner}/{stored.repo}#{stored.pull_number} (comment {stored.comment_id})",
        f"Requested by: @{stored.triggered_by} via {stored.command}",
    ]
    if stored.approved_by:
        details.append(f"Approved by: @{stored.approved_by}")
    if stored.result_pr_number:
        details.append(f"Result: PR #{stored.result_pr_number}")
    if stored.error:
        details.append(f"Error: {stored.error}")
    console.print(Panel("\n".join(details), title=f"[bold cyan]{stored.id}[/bold cyan]", expand=False))
    console.print(Markdown(Jinja2Formatter().plan_comment(stored.plan, dry_run=True)))


@cli.command("approve")
@click.argument("plan_id")
@click.option("--user", required=True, help="User approving the plan")
@click.pass_context
@handle_errors
def approve_command(ctx, plan_id: str, user: str):
    """
    Approve a pending change plan and open its pull request.
    """
    config = get_config(ctx)

    async def run() -> PipelineOutcome:
        async with GitHubClient(config.github) as client:
            with SqlitePlanRepository(config.storage.database) as repository:
                store = ChangePlanStore(repository, expiry_hours=config.plans.expiry_hours)
                return await build_pipeline(config, client, store).approve(plan_id, user)

    with console.status("[bold green]Executing change plan...[/bold green]"):
        outcome = asyncio.run(run())
    print_outcome(outcome)


@cli.command("reject")
@click.argument("plan_id")
@click.option("--user", required=True, help="User rejecting the plan")
@click.pass_context
@handle_errors
def reject_command(ctx, plan_id: str, user: str):
    """
    Reject a pending change plan.
    """
    config = get_config(ctx)

    async def run() -> PipelineOutcome:
        async with GitHubClient(config.github) as client:
            with SqlitePlanRepository(config.storage.database) as repository:
                store = ChangePlanStore(repository, expiry_hours=config.plans.expiry_hours)
                return await build_pipeline(config, client, store).reject(plan_id, user)

    print_outcome(asyncio.run(run()))


@cli.command("sweep")
@click.option("--watch", is_flag=True, help="Keep sweeping at the configured interval")
@click.pass_context
@handle_errors
def sweep_command(ctx, watch: bool):
    """
    Reject pending plans older than the expiry window.
    """
    config = get_config(ctx)
    store = open_store(config)
    sweeper = PlanExpirySweeper(store, interval_sec=config.plans.sweep_interval_sec)
    try:
        if watch:
            console.print(f"[cyan]Sweeping every {config.plans.sweep_interval_sec}s. Press Ctrl+C to stop.[/cyan]")
            try:
                asyncio.run(sweeper.run())
            except KeyboardInterrupt:
                console.print("\n[yellow]Stopped.[/yellow]")
            return
        expired = sweeper.sweep_once()
    finally:
        store.repository.close()
    console.print(f"[bold green]✅ Expired {len(expired)} plan(s)[/bold green]")


@cli.group("cache")
def cache_group():
    """Manage the PR context cache."""


@cache_group.command("cleanup")
@click.pass_context
@handle_errors
def cache_cleanup(ctx):
    """Delete expired cache entries."""
    config = get_config(ctx)
    cache = FileContextCache(config.storage.cache_dir, config.limits.context_cache_ttl_sec)
    removed = cache.cleanup_expired()
    console.print(f"[bold green]✅ Removed {removed} expired cache entr{'y' if removed == 1 else 'ies'}[/bold green]")


if __name__ == "__main__":
    cli()
