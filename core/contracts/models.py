from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

FileStatus = Literal["added", "removed", "modified", "renamed", "copied", "changed", "unchanged"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ChangedFile(BaseModel):
    """A single file of a pull request, after ignore rules and diff budgeting."""
    filename: str
    status: FileStatus = "modified"
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    patch: Optional[str] = None
    previous_filename: Optional[str] = None
    truncated: bool = False
    skipped: bool = False
    skip_reason: Optional[str] = None


class PRContext(BaseModel):
    """Size-bounded view of a pull request, cached per head commit."""
    owner: str
    repo: str
    pull_number: int
    commit_sha: str

    title: str = ""
    description: str = ""
    author: str = "unknown"
    base_branch: str = ""
    head_branch: str = ""

    total_files: int = 0
    reviewed_files: int = 0
    skipped_files: int = 0
    truncated_files: int = 0
    total_additions: int = 0
    total_deletions: int = 0

    files: List[ChangedFile] = []
    formatted_diff: str = ""
    warnings: List[str] = []

    from_cache: bool = False
    fetched_at: datetime = Field(default_factory=utc_now)
