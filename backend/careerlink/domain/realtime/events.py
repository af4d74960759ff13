"""Live event names and best-effort delivery to connections."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, Optional, Protocol

from careerlink.obs import metrics as obs_metrics

if TYPE_CHECKING:  # pragma: no cover - typing only
	from careerlink.domain.realtime.channels import ChannelRouter

LOGGER = logging.getLogger(__name__)

NOTIFICATION_NEW = "notification:new"
NOTIFICATION_ALL_MARKED_READ = "notification:all_marked_read"
CHAT_NEW_MESSAGE = "chat:new_message"
CHAT_MESSAGE_EDITED = "chat:message_edited"
CHAT_MESSAGE_DELETED = "chat:message_deleted"
CHAT_MESSAGES_READ = "chat:messages_read"
CHAT_USER_TYPING = "chat:user_typing"
USER_ONLINE = "user:online"
USER_OFFLINE = "user:offline"
USER_TYPING = "user:typing"
POST_UPDATED = "post:updated"
CONNECTION_NEW = "connection:new"
ERROR = "error"


class EventSink(Protocol):
	"""Anything able to push one event to one connection (a Socket.IO namespace)."""

	async def emit(self, event: str, data: Any = None, *, to: Optional[str] = None, **kwargs: Any) -> None:
		...


@dataclass(slots=True)
class DeliveryReport:
	delivered: int = 0
	failed: int = 0

	def merge(self, other: "DeliveryReport") -> "DeliveryReport":
		return DeliveryReport(self.delivered + other.delivered, self.failed + other.failed)


class Broadcaster:
	"""Pushes events to channel members through an EventSink.

	Delivery is best-effort: a failing connection is logged and counted, and the
	remaining connections still receive the event.
	"""

	def __init__(self, router: "ChannelRouter", sink: EventSink | None = None) -> None:
		self._router = router
		self._sink = sink

	def bind(self, sink: EventSink | None) -> None:
		self._sink = sink

	@property
	def router(self) -> "ChannelRouter":
		return self._router

	async def to_connections(
		self,
		connection_ids: Iterable[str],
		event: str,
		payload: Any,
		*,
		exclude: Optional[str] = None,
	) -> DeliveryReport:
		report = DeliveryReport()
		if self._sink is None:
			return report
		for connection_id in connection_ids:
			if connection_id == exclude:
				continue
			try:
				await self._sink.emit(event, payload, to=connection_id)
			except Exception:
				report.failed += 1
				obs_metrics.event_delivery(event, "failed")
				LOGGER.warning(
					"event_delivery_failed",
					extra={"event": event, "connection_id": connection_id},
					exc_info=True,
				)
				continue
			report.delivered += 1
			obs_metrics.event_delivery(event, "delivered")
		return report

	async def to_channel(
		self,
		channel: str,
		event: str,
		payload: Any,
		*,
		exclude: Optional[str] = None,
	) -> DeliveryReport:
		return await self.to_connections(self._router.members(channel), event, payload, exclude=exclude)

	async def to_user(self, user_id: str, event: str, payload: Any) -> DeliveryReport:
		return await self.to_channel(self._router.user_channel(user_id), event, payload)

	async def to_conversation(
		self,
		conversation_id: str,
		event: str,
		payload: Any,
		*,
		exclude: Optional[str] = None,
	) -> DeliveryReport:
		channel = self._router.conversation_channel(conversation_id)
		return await self.to_channel(channel, event, payload, exclude=exclude)

	async def to_everyone(self, event: str, payload: Any, *, exclude: Optional[str] = None) -> DeliveryReport:
		return await self.to_connections(self._router.connections(), event, payload, exclude=exclude)
