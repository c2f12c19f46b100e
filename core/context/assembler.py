from typing import Any, Dict, List, Optional, Sequence

from config.models import LimitsConfig
from core.contracts.hosting import GitHostingClient
from core.contracts.models import ChangedFile, PRContext
from core.contracts.store import ContextCache
from core.diff.budget import format_diff_for_ai, truncate_across_files, truncate_file
from core.diff.patterns import should_ignore
from utils.logger import pr_logger

SKIP_FILE_LIMIT = "file limit reached"
SKIP_IGNORED = "matches ignore pattern"
SKIP_BINARY = "binary or empty file"
SKIP_TOTAL_DIFF = "total diff limit reached"

_KNOWN_STATUSES = {"added", "removed", "modified", "renamed", "copied", "changed", "unchanged"}


class PRContextAssembler:
    """
    Builds one PRContext per (repository, pull request, head commit).

    Changed files are paginated from the hosting platform, filtered by the
    review quota and ignore patterns, and passed through the per-file and
    cross-file diff budgets. Results are cached by commit SHA.
    """

    def __init__(
        self,
        client: GitHostingClient,
        cache: Optional[ContextCache] = None,
        limits: Optional[LimitsConfig] = None,
    ):
        self.client = client
        self.cache = cache
        self.limits = limits or LimitsConfig()

    async def fetch_context(
        self,
        owner: str,
        repo: str,
        pull_number: int,
        *,
        use_cache: bool = True,
        ignore_patterns: Sequence[str] = (),
        max_files: Optional[int] = None,
    ) -> PRContext:
        """
        Fetch a complete PR context with pagination, truncation, and caching.

        Args:
            owner: Repository owner.
            repo: Repository name.
            pull_number: Pull request number.
            use_cache: Whether to read from and write to the context cache.
            ignore_patterns: Glob patterns of files that are never reviewed.
            max_files: Review quota; defaults to the configured limit.

        Returns:
            The assembled context. `from_cache` tells whether it came from the cache.
        """
        max_files = self.limits.max_files_per_review if max_files is None else max_files
        log = pr_logger(owner, repo, pull_number)

        log.info("Fetching PR metadata")
        pr = await self.client.get_pull_request(owner, repo, pull_number)
        commit_sha = pr["head"]["sha"]

        if use_cache and self.cache is not None:
            cached = self.cache.get(owner, repo, pull_number, commit_sha)
            if cached is not None:
                log.info(f"Using cached PR context for {commit_sha[:7]}")
                return cached.model_copy(update={"from_cache": True})

        log.info(f"Fetching fresh PR context for {commit_sha[:7]}")
        raw_files = await self._fetch_all_files(owner, repo, pull_number)

        processed: List[ChangedFile] = []
        reviewed = skipped = truncated = 0

        for raw in raw_files:
            changed = self._base_file(raw)

            if reviewed >= max_files:
                skip_reason = SKIP_FILE_LIMIT
            elif should_ignore(changed.filename, ignore_patterns):
                skip_reason = SKIP_IGNORED
            elif not raw.get("patch"):
                skip_reason = SKIP_BINARY
            else:
                skip_reason = None

            if skip_reason:
                processed.append(changed.model_copy(update={"skipped": True, "skip_reason": skip_reason}))
                skipped += 1
                continue

            cut = truncate_file(
                raw["patch"],
                self.limits.max_diff_lines_per_file,
                self.limits.max_diff_chars_per_file,
            )
            if cut.truncated:
                truncated += 1
            processed.append(changed.model_copy(update={"patch": cut.content, "truncated": cut.truncated}))
            reviewed += 1

        # Spend the shared line budget over the accepted files, in order.
        accepted = [i for i, f in enumerate(processed) if not f.skipped]
        budgeted = truncate_across_files(
            [(processed[i].filename, processed[i].patch or "") for i in accepted],
            self.limits.max_total_diff_lines,
            self.limits.max_diff_chars_per_file,
        )

        diff_parts: List[str] = []
        for index, result in zip(accepted, budgeted):
            current = processed[index]
            if result.skipped:
                processed[index] = current.model_copy(
                    update={"skipped": True, "skip_reason": SKIP_TOTAL_DIFF, "patch": None}
                )
                skipped += 1
                reviewed -= 1
                continue
            if result.truncated:
                if not current.truncated:
                    truncated += 1
                current = current.model_copy(update={"patch": result.content, "truncated": True})
                processed[index] = current
            diff_parts.append(format_diff_for_ai(current.filename, result.content, current.additions, current.deletions))

        warnings: List[str] = []
        if len(raw_files) > max_files:
            warnings.append(f"PR has {len(raw_files)} files, only reviewing first {max_files}")
        if truncated:
            warnings.append(f"{truncated} file(s) had their diffs truncated due to size")
        if skipped:
            warnings.append(f"{skipped} file(s) were skipped (ignored patterns, binary files, or limits)")

        context = PRContext(
            owner=owner,
            repo=repo,
            pull_number=pull_number,
            commit_sha=commit_sha,
            title=pr.get("title") or "",
            description=pr.get("body") or "",
            author=(pr.get("user") or {}).get("login") or "unknown",
            base_branch=pr["base"]["ref"],
            head_branch=pr["head"]["ref"],
            total_files=len(raw_files),
            reviewed_files=reviewed,
            skipped_files=skipped,
            truncated_files=truncated,
            total_additions=sum(f.get("additions", 0) for f in raw_files),
            total_deletions=sum(f.get("deletions", 0) for f in raw_files),
            files=processed,
            formatted_diff="\n\n---\n\n".join(diff_parts),
            warnings=warnings,
            from_cache=False,
        )

        if use_cache and self.cache is not None:
            log.info("Caching PR context")
            self.cache.put(context, ttl_sec=self.limits.context_cache_ttl_sec)

        log.info(
            f"PR context fetched: total={context.total_files} reviewed={context.reviewed_files} "
            f"skipped={context.skipped_files} truncated={context.truncated_files}"
        )
        return context

    async def _fetch_all_files(self, owner: str, repo: str, pull_number: int) -> List[Dict[str, Any]]:
        per_page = self.limits.page_size
        files: List[Dict[str, Any]] = []
        for page in range(1, self.limits.max_pages + 1):
            batch = await self.client.get_pull_request_files_page(owner, repo, pull_number, page, per_page)
            files.extend(batch)
            if len(batch) < per_page:
                break
        else:
            pr_logger(owner, repo, pull_number).warning(
                f"Hit pagination safety limit ({self.limits.max_pages * per_page} files)"
            )
        return files

    @staticmethod
    def _base_file(raw: Dict[str, Any]) -> ChangedFile:
        status = raw.get("status", "modified")
        return ChangedFile(
            filename=raw["filename"],
            status=status if status in _KNOWN_STATUSES else "changed",
            additions=raw.get("additions", 0),
            deletions=raw.get("deletions", 0),
            changes=raw.get("changes", 0),
            previous_filename=raw.get("previous_filename"),
        )


def is_pr_too_large(context: PRContext, max_files: int) -> bool:
    """A PR is too large for a detailed review when it has more than twice the review quota."""
    return context.total_files > max_files * 2
