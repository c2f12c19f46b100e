"""
Lifecycle of stored change plans.

    pending -> executing -> completed
                         -> failed
    pending -> rejected          (human rejection or expiry)

Every transition is a compare-and-set on the current status, so of two
racing approvals only one moves a plan out of `pending`.
"""
from datetime import datetime, timedelta
from typing import Callable, Dict, FrozenSet, List, Optional

from core.contracts.models import utc_now
from core.contracts.plan import ChangePlan, PlanStatus, StoredChangePlan
from core.contracts.store import PlanRepository
from utils.errors import InvalidTransitionError, PlanNotFoundError
from utils.logger import logger

ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"executing", "rejected"}),
    "executing": frozenset({"completed", "failed"}),
    "completed": frozenset(),
    "failed": frozenset(),
    "rejected": frozenset(),
}

DEFAULT_EXPIRY_HOURS = 24


class ChangePlanStore:
    """
    The only writer of plan status.

    Args:
        repository: Where plans are persisted.
        expiry_hours: Age after which a pending plan is rejected by the sweep.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        repository: PlanRepository,
        expiry_hours: int = DEFAULT_EXPIRY_HOURS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.expiry_hours = expiry_hours
        self._clock = clock

    def create(
        self,
        plan: ChangePlan,
        owner: str,
        repo: str,
        pull_number: int,
        comment_id: int,
        triggered_by: str,
        command: str,
    ) -> StoredChangePlan:
        now = self._clock()
        stored = StoredChangePlan(
            id=plan.id,
            owner=owner,
            repo=repo,
            pull_number=pull_number,
            comment_id=comment_id,
            triggered_by=triggered_by,
            command=command,
            status="pending",
            plan=plan,
            created_at=now,
            updated_at=now,
        )
        self.repository.create(stored)
        logger.bind(plan_id=plan.id).info(f"Change plan stored as pending for {owner}/{repo}#{pull_number}")
        return stored

    def get(self, plan_id: str) -> Optional[StoredChangePlan]:
        return self.repository.get_by_id(plan_id)

    def require(self, plan_id: str) -> StoredChangePlan:
        stored = self.repository.get_by_id(plan_id)
        if stored is None:
            raise PlanNotFoundError(plan_id)
        return stored

    def get_by_comment_id(self, comment_id: int) -> Optional[StoredChangePlan]:
        return self.repository.get_by_comment_id(comment_id)

    def get_pending_for_pr(self, owner: str, repo: str, pull_number: int) -> List[StoredChangePlan]:
        return self.repository.get_pending_for_pr(owner, repo, pull_number)

    def list_plans(self, status: Optional[PlanStatus] = None) -> List[StoredChangePlan]:
        return self.repository.list_all(status)

    def update_status(self, plan_id: str, target: PlanStatus, **fields) -> StoredChangePlan:
        """
        Moves a plan to `target` and records `fields` alongside.

        Raises:
            PlanNotFoundError: If the plan does not exist.
            InvalidTransitionError: If the plan's current status does not allow `target`,
                including when another writer changed it first.
        """
        current = self.require(plan_id)
        if target not in ALLOWED_TRANSITIONS[current.status]:
            raise InvalidTransitionError(plan_id, current.status, target)

        updated = current.model_copy(update={"status": target, "updated_at": self._clock(), **fields})
        if not self.repository.compare_and_set_status(plan_id, current.status, updated):
            latest = self.require(plan_id)
            raise InvalidTransitionError(plan_id, latest.status, target)

        logger.bind(plan_id=plan_id).info(f"Change plan status: {current.status} -> {target}")
        return updated

    def start_execution(self, plan_id: str, approved_by: str) -> StoredChangePlan:
        return self.update_status(plan_id, "executing", approved_by=approved_by, approved_at=self._clock())

    def complete(self, plan_id: str, result_pr_number: int) -> StoredChangePlan:
        return self.update_status(plan_id, "completed", result_pr_number=result_pr_number)

    def fail(self, plan_id: str, error: str) -> StoredChangePlan:
        return self.update_status(plan_id, "failed", error=error)

    def reject(self, plan_id: str, reason: str) -> StoredChangePlan:
        return self.update_status(plan_id, "rejected", error=reason)

    def expire_old_plans(self) -> List[StoredChangePlan]:
        """
        Rejects every plan still pending after the expiry window.

        Returns:
            The plans this sweep expired. Plans that changed status while the
            sweep ran are left alone.
        """
        cutoff = self._clock() - timedelta(hours=self.expiry_hours)
        expired: List[StoredChangePlan] = []
        for stored in self.repository.list_expired(cutoff):
            try:
                expired.append(self.reject(stored.id, f"Expired after {self.expiry_hours} hours"))
            except InvalidTransitionError as e:
                logger.bind(plan_id=stored.id).debug(f"Skipping expiry: {e}")
        if expired:
            logger.info(f"Expired {len(expired)} pending change plan(s)")
        return expired
