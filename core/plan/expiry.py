import asyncio
from typing import List, Optional

from core.contracts.plan import StoredChangePlan
from core.plan.store import ChangePlanStore
from utils.logger import logger


class PlanExpirySweeper:
    """
    Periodically rejects pending plans past their expiry.

    A plan can stay visibly pending for up to one interval after it expires.
    """

    def __init__(self, store: ChangePlanStore, interval_sec: float = 300):
        self.store = store
        self.interval_sec = interval_sec

    def sweep_once(self) -> List[StoredChangePlan]:
        return self.store.expire_old_plans()

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Sweeps until `stop_event` is set (or forever)."""
        stop_event = stop_event or asyncio.Event()
        logger.info(f"Plan expiry sweeper started (interval {self.interval_sec}s)")
        while not stop_event.is_set():
            try:
                self.sweep_once()
            except Exception as e:
                logger.error(f"Plan expiry sweep failed: {e}")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_sec)
            except asyncio.TimeoutError:
                continue
        logger.info("Plan expiry sweeper stopped")
