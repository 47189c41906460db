from datetime import datetime, timezone
from typing import List

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

from storefront.services.cart_sync import CartSyncEngine
from storefront.utils.logging import get_logger

log = get_logger("sync-scheduler")

JOB_PREFIX = "cart-sync:"


class CartSyncScheduler:
    """
    One interval job per active user. The first pass runs right away, then
    every `interval_seconds`; overlapping runs of the same job are dropped.
    """

    def __init__(self, engine: CartSyncEngine, interval_seconds: int = 30, scheduler=None):
        self.engine = engine
        self.interval_seconds = interval_seconds
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")

    def start(self):
        if not self.scheduler.running:
            self.scheduler.start()

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def _job_id(self, user_id: str) -> str:
        return f"{JOB_PREFIX}{user_id}"

    def activate(self, user_id: str) -> bool:
        """Returns False if the user already had a job."""
        if not user_id:
            raise ValueError("user_id required")
        job_id = self._job_id(user_id)
        if self.scheduler.get_job(job_id):
            return False
        self.scheduler.add_job(
            self.engine.sync_cart,
            "interval",
            seconds=self.interval_seconds,
            args=[user_id],
            id=job_id,
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        log.info("sync activated for user=%s every %ss", user_id, self.interval_seconds)
        return True

    def deactivate(self, user_id: str) -> bool:
        try:
            self.scheduler.remove_job(self._job_id(user_id))
        except JobLookupError:
            return False
        log.info("sync deactivated for user=%s", user_id)
        return True

    def is_active(self, user_id: str) -> bool:
        return self.scheduler.get_job(self._job_id(user_id)) is not None

    def active_users(self) -> List[str]:
        return sorted(
            job.id[len(JOB_PREFIX):]
            for job in self.scheduler.get_jobs()
            if job.id.startswith(JOB_PREFIX)
        )
