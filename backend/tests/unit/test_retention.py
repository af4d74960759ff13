from datetime import datetime, timedelta, timezone

import pytest

from careerlink.domain.notifications.models import NotificationType
from careerlink.maintenance.retention import JOB_NAME, RetentionScheduler, purge_notifications, schedule_retention


@pytest.mark.asyncio
async def test_purge_notifications_removes_expired(gateway):
	await gateway.notifications.create_notification(
		"user-b",
		"recruiter",
		NotificationType.JOB_POSTED,
		{"title": "New Post", "message": "Ana shared a new post", "source_id": "post-1", "source_kind": "Post"},
	)
	later = datetime.now(timezone.utc) + timedelta(days=8)
	assert await purge_notifications(gateway.notifications, now=later) == 1
	assert await purge_notifications(gateway.notifications, now=later) == 0


def test_schedule_retention_registers_interval_job(gateway):
	scheduler = RetentionScheduler()
	schedule_retention(scheduler, gateway.notifications)
	assert scheduler.job_ids() == [JOB_NAME]
	assert scheduler.running is False
