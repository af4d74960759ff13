"""Periodic purge of expired and long-read notifications."""

from __future__ import annotations

import logging
from datetime import datetime
from time import perf_counter
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from careerlink.domain.notifications.service import NotificationEngine
from careerlink.obs import metrics as obs_metrics
from careerlink.settings import settings

LOGGER = logging.getLogger(__name__)

JOB_NAME = "notification-retention"


async def purge_notifications(engine: NotificationEngine, *, now: Optional[datetime] = None) -> int:
	"""Delete expired notifications and read ones past the retention window."""
	start = perf_counter()
	try:
		removed = await engine.purge(now=now)
	except Exception:
		obs_metrics.record_job_run(JOB_NAME, result="error", duration_seconds=perf_counter() - start)
		LOGGER.exception("notification_purge_failed")
		raise
	obs_metrics.record_job_run(JOB_NAME, result="ok", duration_seconds=perf_counter() - start)
	LOGGER.info("notification_purge_completed", extra={"removed": removed})
	return removed


class RetentionScheduler:
	"""Minimal wrapper around AsyncIOScheduler for maintenance jobs."""

	def __init__(self) -> None:
		self._scheduler = AsyncIOScheduler(timezone="UTC")
		self._started = False

	@property
	def running(self) -> bool:
		return self._started

	def start(self) -> None:
		if not self._started:
			self._scheduler.start()
			self._started = True

	def shutdown(self) -> None:
		if self._started:
			self._scheduler.shutdown(wait=False)
			self._started = False

	def schedule(self, job_id: str, func: Callable[[], object], *, hours: int) -> None:
		trigger = IntervalTrigger(hours=hours)
		self._scheduler.add_job(func, trigger=trigger, id=job_id, replace_existing=True)

	def job_ids(self) -> list[str]:
		return [job.id for job in self._scheduler.get_jobs()]


def schedule_retention(scheduler: RetentionScheduler, engine: NotificationEngine) -> None:
	async def _run() -> None:
		await purge_notifications(engine)

	scheduler.schedule(JOB_NAME, _run, hours=max(1, settings.retention_interval_hours))


__all__ = ["JOB_NAME", "RetentionScheduler", "purge_notifications", "schedule_retention"]
