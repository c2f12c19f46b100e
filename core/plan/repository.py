"""Durable storage for stored change plans."""
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

from core.contracts.plan import ChangePlan, PlanStatus, StoredChangePlan
from utils.logger import logger


def _as_iso(timestamp: datetime) -> str:
    """Serialise a timestamp to a fixed-width UTC ISO 8601 string, so text order is time order."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SqlitePlanRepository:
    """SQLite-backed plan persistence. Rows are updated, never deleted."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path).expanduser()
        target = str(db_path)
        if target != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(self.db_path)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(target, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._bootstrap()

    def __enter__(self) -> "SqlitePlanRepository":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _bootstrap(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS change_plans (
                id TEXT PRIMARY KEY,
                owner TEXT NOT NULL,
                repo TEXT NOT NULL,
                pull_number INTEGER NOT NULL,
                comment_id INTEGER NOT NULL,
                triggered_by TEXT NOT NULL,
                command TEXT NOT NULL,
                status TEXT NOT NULL,
                plan_json TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                approved_by TEXT,
                approved_at TEXT,
                result_pr_number INTEGER,
                error TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_change_plans_pr
                ON change_plans(owner, repo, pull_number);
            CREATE INDEX IF NOT EXISTS idx_change_plans_status
                ON change_plans(status, created_at);
            CREATE INDEX IF NOT EXISTS idx_change_plans_comment
                ON change_plans(comment_id);
            """
        )
        self._conn.commit()

    @staticmethod
    def _row_to_plan(row: sqlite3.Row) -> StoredChangePlan:
        return StoredChangePlan(
            id=row["id"],
            owner=row["owner"],
            repo=row["repo"],
            pull_number=row["pull_number"],
            comment_id=row["comment_id"],
            triggered_by=row["triggered_by"],
            command=row["command"],
            status=row["status"],
            plan=ChangePlan.model_validate_json(row["plan_json"]),
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
            approved_by=row["approved_by"],
            approved_at=_from_iso(row["approved_at"]),
            result_pr_number=row["result_pr_number"],
            error=row["error"],
        )

    def _query(self, sql: str, params: tuple = ()) -> List[StoredChangePlan]:
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [self._row_to_plan(row) for row in rows]

    def create(self, plan: StoredChangePlan) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO change_plans (
                    id, owner, repo, pull_number, comment_id, triggered_by, command, status,
                    plan_json, created_at, updated_at, approved_by, approved_at, result_pr_number, error
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    plan.id,
                    plan.owner,
                    plan.repo,
                    plan.pull_number,
                    plan.comment_id,
                    plan.triggered_by,
                    plan.command,
                    plan.status,
                    plan.plan.model_dump_json(by_alias=True),
                    _as_iso(plan.created_at),
                    _as_iso(plan.updated_at),
                    plan.approved_by,
                    _as_iso(plan.approved_at) if plan.approved_at else None,
                    plan.result_pr_number,
                    plan.error,
                ),
            )
            self._conn.commit()
        logger.debug(f"Stored change plan {plan.id}")

    def get_by_id(self, plan_id: str) -> Optional[StoredChangePlan]:
        found = self._query("SELECT * FROM change_plans WHERE id = ?", (plan_id,))
        return found[0] if found else None

    def get_by_comment_id(self, comment_id: int) -> Optional[StoredChangePlan]:
        found = self._query(
            "SELECT * FROM change_plans WHERE comment_id = ? ORDER BY created_at DESC LIMIT 1",
            (comment_id,),
        )
        return found[0] if found else None

    def get_pending_for_pr(self, owner: str, repo: str, pull_number: int) -> List[StoredChangePlan]:
        return self._query(
            """
            SELECT * FROM change_plans
            WHERE owner = ? AND repo = ? AND pull_number = ? AND status = 'pending'
            ORDER BY created_at DESC
            """,
            (owner, repo, pull_number),
        )

    def list_all(self, status: Optional[PlanStatus] = None) -> List[StoredChangePlan]:
        if status:
            return self._query("SELECT * FROM change_plans WHERE status = ? ORDER BY created_at DESC", (status,))
        return self._query("SELECT * FROM change_plans ORDER BY created_at DESC")

    def list_expired(self, cutoff: datetime) -> List[StoredChangePlan]:
        return self._query(
            "SELECT * FROM change_plans WHERE status = 'pending' AND created_at < ? ORDER BY created_at",
            (_as_iso(cutoff),),
        )

    def compare_and_set_status(self, plan_id: str, expected: PlanStatus, plan: StoredChangePlan) -> bool:
        with self._lock:
            cursor = self._conn.execute(
                """
                UPDATE change_plans
                SET status = ?, updated_at = ?, approved_by = ?, approved_at = ?,
                    result_pr_number = ?, error = ?
                WHERE id = ? AND status = ?
                """,
                (
                    plan.status,
                    _as_iso(plan.updated_at),
                    plan.approved_by,
                    _as_iso(plan.approved_at) if plan.approved_at else None,
                    plan.result_pr_number,
                    plan.error,
                    plan_id,
                    expected,
                ),
            )
            self._conn.commit()
        return cursor.rowcount == 1


class InMemoryPlanRepository:
    """Process-local plan persistence, used by tests and dry runs."""

    def __init__(self):
        self._plans: Dict[str, StoredChangePlan] = {}
        self._lock = threading.Lock()

    def create(self, plan: StoredChangePlan) -> None:
        with self._lock:
            if plan.id in self._plans:
                raise ValueError(f"Change plan already exists: {plan.id}")
            self._plans[plan.id] = plan.model_copy(deep=True)

    def get_by_id(self, plan_id: str) -> Optional[StoredChangePlan]:
        with self._lock:
            plan = self._plans.get(plan_id)
        return plan.model_copy(deep=True) if plan else None

    def _select(self, predicate) -> List[StoredChangePlan]:
        with self._lock:
            found = [p.model_copy(deep=True) for p in self._plans.values() if predicate(p)]
        return sorted(found, key=lambda p: p.created_at, reverse=True)

    def get_by_comment_id(self, comment_id: int) -> Optional[StoredChangePlan]:
        found = self._select(lambda p: p.comment_id == comment_id)
        return found[0] if found else None

    def get_pending_for_pr(self, owner: str, repo: str, pull_number: int) -> List[StoredChangePlan]:
        return self._select(
            lambda p: (p.owner, p.repo, p.pull_number) == (owner, repo, pull_number) and p.status == "pending"
        )

    def list_all(self, status: Optional[PlanStatus] = None) -> List[StoredChangePlan]:
        return self._select(lambda p: status is None or p.status == status)

    def list_expired(self, cutoff: datetime) -> List[StoredChangePlan]:
        return list(reversed(self._select(lambda p: p.status == "pending" and p.created_at < cutoff)))

    def compare_and_set_status(self, plan_id: str, expected: PlanStatus, plan: StoredChangePlan) -> bool:
        with self._lock:
            current = self._plans.get(plan_id)
            if current is None or current.status != expected:
                return False
            self._plans[plan_id] = plan.model_copy(deep=True)
            return True
