from datetime import datetime
from typing import List, Optional, Protocol

from core.contracts.models import PRContext
from core.contracts.plan import PlanStatus, StoredChangePlan


class PlanRepository(Protocol):
    """Persistence for stored change plans. Plans are never deleted."""

    def create(self, plan: StoredChangePlan) -> None: ...

    def get_by_id(self, plan_id: str) -> Optional[StoredChangePlan]: ...

    def get_by_comment_id(self, comment_id: int) -> Optional[StoredChangePlan]: ...

    def get_pending_for_pr(self, owner: str, repo: str, pull_number: int) -> List[StoredChangePlan]: ...

    def list_all(self, status: Optional[PlanStatus] = None) -> List[StoredChangePlan]: ...

    def list_expired(self, cutoff: datetime) -> List[StoredChangePlan]: ...

    def compare_and_set_status(
        self, plan_id: str, expected: PlanStatus, plan: StoredChangePlan
    ) -> bool:
        """Persists `plan` only if the stored status still equals `expected`."""
        ...


class ContextCache(Protocol):
    """Cache of assembled PR contexts keyed by (owner, repo, pull number, commit SHA)."""

    def get(self, owner: str, repo: str, pull_number: int, commit_sha: str) -> Optional[PRContext]: ...

    def put(self, context: PRContext, ttl_sec: Optional[int] = None) -> None: ...

    def invalidate(self, owner: str, repo: str, pull_number: int) -> int: ...

    def cleanup_expired(self) -> int: ...
