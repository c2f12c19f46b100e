"""
Diff budgeting: bound the amount of diff text handed to prompts and comments.

Two independent budgets apply. A per-file budget (lines and characters) and a
shared line budget across every file of a pull request, spent in file order.
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

SKIPPED_FILE_BODY = "... [file skipped - total diff limit reached] ..."
SIZE_TRUNCATION_MARKER = "\n\n... [diff truncated due to size] ..."


def omitted_marker(count: int) -> str:
    return f"... [{count} lines omitted for brevity] ..."


@dataclass(frozen=True)
class DiffTruncation:
    content: str
    truncated: bool
    original_lines: int
    kept_lines: int


@dataclass(frozen=True)
class BudgetedDiff:
    filename: str
    content: str
    truncated: bool
    skipped: bool
    included_lines: int


def count_lines(diff: str) -> int:
    return len(diff.split("\n"))


def truncate_file(diff: str, max_lines: int, max_chars: Optional[int] = None) -> DiffTruncation:
    """
    Truncate a single file's diff.

    Over `max_lines`, the first and last `max_lines // 2` lines are kept around
    a marker naming the number of omitted lines. If the text is still longer
    than `max_chars`, it is hard-cut so that text plus size marker fit in
    `max_chars`.

    Args:
        diff: The patch text of one file.
        max_lines: Line budget for this file.
        max_chars: Character budget for this file, or None for no character limit.

    Returns:
        The (possibly) truncated content with its bookkeeping.
    """
    lines = diff.split("\n")
    original_lines = len(lines)
    kept_lines = original_lines
    truncated = False
    result = diff

    if original_lines > max_lines:
        half = max(max_lines, 0) // 2
        head = lines[:half]
        tail = lines[original_lines - half:] if half else []
        kept_lines = len(head) + len(tail)
        result = "\n".join(head + ["", omitted_marker(original_lines - kept_lines), ""] + tail)
        truncated = True

    if max_chars is not None and len(result) > max_chars:
        room = max_chars - len(SIZE_TRUNCATION_MARKER)
        if room > 0:
            result = result[:room] + SIZE_TRUNCATION_MARKER
        else:
            result = result[:max_chars]
        kept_lines = min(kept_lines, count_lines(result))
        truncated = True

    return DiffTruncation(
        content=result,
        truncated=truncated,
        original_lines=original_lines,
        kept_lines=kept_lines,
    )


def truncate_across_files(
    files: Sequence[Tuple[str, str]],
    max_total_lines: int,
    max_chars: Optional[int] = None,
) -> List[BudgetedDiff]:
    """
    Spend a shared line budget over (filename, diff) pairs in input order.

    A file that fits is kept whole. The file that crosses the budget is cut to
    exactly the remaining lines and exhausts the budget. Every later file is
    skipped and gets a sentinel body.
    """
    used = 0
    results: List[BudgetedDiff] = []

    for filename, diff in files:
        if used >= max_total_lines:
            results.append(BudgetedDiff(filename, SKIPPED_FILE_BODY, truncated=True, skipped=True, included_lines=0))
            continue

        lines = count_lines(diff)
        remaining = max_total_lines - used

        if lines > remaining:
            cut = truncate_file(diff, remaining, max_chars)
            results.append(BudgetedDiff(filename, cut.content, truncated=True, skipped=False, included_lines=cut.kept_lines))
            used = max_total_lines
        else:
            results.append(BudgetedDiff(filename, diff, truncated=False, skipped=False, included_lines=lines))
            used += lines

    return results


def format_diff_for_ai(filename: str, diff: str, additions: int, deletions: int) -> str:
    return f"### File: {filename}\n**Changes:** +{additions} -{deletions}\n\n```diff\n{diff}\n```"
