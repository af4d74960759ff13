"""Grouping and expiry rules for notifications."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import FrozenSet, Mapping, Optional

from careerlink.domain.notifications.models import NotificationType
from careerlink.settings import settings


@dataclass(frozen=True, slots=True)
class GroupingPolicy:
	window: timedelta = timedelta(hours=24)
	groupable: FrozenSet[str] = frozenset({NotificationType.POST_LIKED.value, NotificationType.POST_COMMENTED.value})
	expiry: Mapping[str, timedelta] = field(
		default_factory=lambda: {
			NotificationType.CONNECTION_REQUEST.value: timedelta(days=30),
			NotificationType.JOB_POSTED.value: timedelta(days=7),
		}
	)

	@classmethod
	def from_settings(cls) -> "GroupingPolicy":
		return cls(
			window=timedelta(seconds=settings.notification_group_window_seconds),
			groupable=frozenset(settings.notification_groupable_types),
			expiry={name: timedelta(days=days) for name, days in settings.notification_expiry_days.items()},
		)

	def groups(self, type_: NotificationType) -> bool:
		return type_.value in self.groupable

	def window_start(self, now: datetime) -> datetime:
		return now - self.window

	def expires_at(self, type_: NotificationType, now: datetime) -> Optional[datetime]:
		ttl = self.expiry.get(type_.value)
		return now + ttl if ttl is not None else None
