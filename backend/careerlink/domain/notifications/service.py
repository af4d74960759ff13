"""Notification engine: grouping, expiry, persistence and live push."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, List, Mapping, Optional

import ulid
from pydantic import ValidationError

from careerlink.domain.notifications.models import Notification, NotificationType, group_key
from careerlink.domain.notifications.policy import GroupingPolicy
from careerlink.domain.notifications.schemas import NotificationListResponse, NotificationPayload, TypeCount
from careerlink.domain.notifications.store import NotificationStore
from careerlink.domain.realtime import events
from careerlink.domain.realtime.errors import InvalidInput, NotFound, Unauthorized
from careerlink.domain.realtime.presence import PresenceRegistry
from careerlink.infra.keyed_lock import KeyedLock
from careerlink.obs import metrics as obs_metrics
from careerlink.settings import settings

LOGGER = logging.getLogger(__name__)

_MAX_PAGE_SIZE = 100


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


class NotificationEngine:
	def __init__(
		self,
		store: NotificationStore,
		broadcaster: events.Broadcaster | None = None,
		presence: PresenceRegistry | None = None,
		policy: GroupingPolicy | None = None,
		*,
		clock: Callable[[], datetime] = _utcnow,
	) -> None:
		self._store = store
		self._broadcaster = broadcaster
		self._presence = presence
		self._policy = policy or GroupingPolicy.from_settings()
		self._clock = clock
		self._locks = KeyedLock()

	@property
	def policy(self) -> GroupingPolicy:
		return self._policy

	async def create_notification(
		self,
		recipient_id: str,
		sender_id: Optional[str],
		type_: NotificationType | str,
		payload: NotificationPayload | Mapping[str, Any],
	) -> Notification:
		"""Persist a notification, collapsing it into a recent unread one when grouping applies.

		Returns the new or the updated record. A live `notification:new` is pushed to the
		recipient when they are online; push failures are logged only.
		"""
		if not recipient_id:
			raise InvalidInput("recipient_required")
		kind = self._parse_type(type_)
		body = self._parse_payload(payload)
		now = self._clock()
		key = group_key(kind, body.source_id, recipient_id)

		async with self._locks.hold(key):
			notification: Notification | None = None
			if self._policy.groups(kind):
				existing = await self._store.find_groupable(key, recipient_id, self._policy.window_start(now))
				if existing is not None:
					metadata = dict(existing.metadata)
					metadata.update(body.metadata)
					metadata["group_size"] = int(existing.metadata.get("group_size", 1)) + 1
					notification = await self._store.regroup(
						existing.notification_id,
						title=body.title,
						message=body.message,
						sender_id=sender_id,
						metadata=metadata,
						updated_at=now,
					)
					# None when the record was read after lookup; a fresh one is inserted below
					if notification is not None:
						obs_metrics.notification_persisted(kind.value, "grouped")
			if notification is None:
				notification = Notification(
					notification_id=str(ulid.new()),
					recipient_id=recipient_id,
					sender_id=sender_id,
					type=kind,
					title=body.title,
					message=body.message,
					source_id=body.source_id,
					source_kind=body.source_kind,
					action_url=body.action_url,
					image_url=body.image_url,
					group_key=key,
					priority=body.priority,
					metadata=dict(body.metadata),
					created_at=now,
					updated_at=now,
					expires_at=self._policy.expires_at(kind, now),
				)
				await self._store.insert(notification)
				obs_metrics.notification_persisted(kind.value, "created")

		await self._push(notification)
		return notification

	async def create_bulk(
		self,
		recipient_ids: Iterable[str],
		sender_id: Optional[str],
		type_: NotificationType | str,
		payload: NotificationPayload | Mapping[str, Any],
	) -> List[Notification]:
		created: List[Notification] = []
		for recipient_id in dict.fromkeys(recipient_ids):
			if recipient_id and recipient_id != sender_id:
				created.append(await self.create_notification(recipient_id, sender_id, type_, payload))
		return created

	async def mark_read(self, notification_id: str, recipient_id: str) -> Notification:
		notification = await self._owned(notification_id, recipient_id)
		if notification.is_read:
			return notification
		updated = await self._store.mark_read(recipient_id, self._clock(), [notification_id])
		obs_metrics.notification_read("single", updated)
		refreshed = await self._store.get(notification_id)
		return refreshed or notification

	async def mark_many_read(self, recipient_id: str, notification_ids: Iterable[str]) -> int:
		ids = await self._owned_many(notification_ids, recipient_id)
		updated = await self._store.mark_read(recipient_id, self._clock(), ids)
		obs_metrics.notification_read("selected", updated)
		return updated

	async def mark_all_read(self, recipient_id: str) -> int:
		updated = await self._store.mark_read(recipient_id, self._clock())
		obs_metrics.notification_read("all", updated)
		if self._broadcaster is not None:
			await self._broadcaster.to_user(recipient_id, events.NOTIFICATION_ALL_MARKED_READ, {"count": updated})
		return updated

	async def get_unread_count(self, recipient_id: str) -> int:
		return await self._store.count_for(recipient_id, now=self._clock(), unread_only=True)

	async def list_notifications(
		self,
		recipient_id: str,
		*,
		page: int = 1,
		limit: int = 20,
		unread_only: bool = False,
	) -> NotificationListResponse:
		page = max(1, int(page))
		limit = max(1, min(_MAX_PAGE_SIZE, int(limit)))
		now = self._clock()
		items = await self._store.list_for(
			recipient_id, now=now, unread_only=unread_only, offset=(page - 1) * limit, limit=limit
		)
		total = await self._store.count_for(recipient_id, now=now, unread_only=unread_only)
		unread = await self._store.count_for(recipient_id, now=now, unread_only=True)
		return NotificationListResponse(
			items=[item.to_dict(now) for item in items],
			page=page,
			limit=limit,
			total=total,
			unread_count=unread,
			has_more=page * limit < total,
		)

	async def delete_notification(self, notification_id: str, recipient_id: str) -> None:
		await self._owned(notification_id, recipient_id)
		await self._store.delete(recipient_id, [notification_id])

	async def delete_many(self, recipient_id: str, notification_ids: Iterable[str]) -> int:
		ids = await self._owned_many(notification_ids, recipient_id)
		return await self._store.delete(recipient_id, ids)

	async def clear_all(self, recipient_id: str) -> int:
		return await self._store.clear(recipient_id)

	async def type_counts(self, recipient_id: str) -> List[TypeCount]:
		rows = await self._store.type_counts(recipient_id, now=self._clock())
		return [TypeCount(type=NotificationType(name), count=total, unread=unread) for name, total, unread in rows]

	async def purge(self, *, now: Optional[datetime] = None) -> int:
		now = now or self._clock()
		read_before = now - timedelta(days=settings.notification_read_retention_days)
		return await self._store.purge(now=now, read_before=read_before)

	async def _owned(self, notification_id: str, recipient_id: str) -> Notification:
		notification = await self._store.get(notification_id)
		if notification is None:
			raise NotFound("notification_not_found")
		if notification.recipient_id != recipient_id:
			raise Unauthorized("not_notification_recipient")
		return notification

	async def _owned_many(self, notification_ids: Iterable[str], recipient_id: str) -> List[str]:
		ids = [nid for nid in dict.fromkeys(notification_ids) if nid]
		if not ids:
			raise InvalidInput("notification_ids_required")
		found = await self._store.get_many(ids)
		if len(found) != len(ids) or any(n.recipient_id != recipient_id for n in found):
			raise Unauthorized("not_notification_recipient")
		return ids

	async def _push(self, notification: Notification) -> None:
		if self._broadcaster is None:
			return
		if self._presence is not None and not self._presence.is_online(notification.recipient_id):
			obs_metrics.notification_push("offline")
			return
		report = await self._broadcaster.to_user(
			notification.recipient_id, events.NOTIFICATION_NEW, notification.to_dict()
		)
		if report.failed:
			obs_metrics.notification_push("failed")
			LOGGER.warning(
				"notification_push_failed",
				extra={"notification_id": notification.notification_id, "failed": report.failed},
			)
		if report.delivered:
			obs_metrics.notification_push("delivered")

	@staticmethod
	def _parse_type(type_: NotificationType | str) -> NotificationType:
		try:
			return NotificationType(type_)
		except ValueError:
			raise InvalidInput("invalid_notification_type") from None

	@staticmethod
	def _parse_payload(payload: NotificationPayload | Mapping[str, Any]) -> NotificationPayload:
		if isinstance(payload, NotificationPayload):
			return payload
		try:
			return NotificationPayload.model_validate(dict(payload))
		except ValidationError:
			raise InvalidInput("invalid_notification_payload") from None
