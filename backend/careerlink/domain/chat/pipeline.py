"""Message pipeline: validate, persist, fan out, then notify offline participants."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Mapping, Optional

from careerlink.domain.chat import attachments
from careerlink.domain.chat.models import TOMBSTONE, Conversation, Message, MessageKind
from careerlink.domain.chat.reconciliation import ReadReconciler
from careerlink.domain.chat.store import ChatStore
from careerlink.domain.notifications import triggers
from careerlink.domain.realtime import events
from careerlink.domain.realtime.errors import InvalidInput, NotFound, Unauthorized
from careerlink.domain.realtime.presence import PresenceRegistry
from careerlink.infra.keyed_lock import KeyedLock
from careerlink.obs import metrics as obs_metrics
from careerlink.settings import settings

if TYPE_CHECKING:  # pragma: no cover - typing only
	from careerlink.domain.notifications.service import NotificationEngine

LOGGER = logging.getLogger(__name__)


class MessagePipeline:
	def __init__(
		self,
		store: ChatStore,
		broadcaster: events.Broadcaster,
		presence: PresenceRegistry,
		reconciler: ReadReconciler,
		notifications: "NotificationEngine | None" = None,
		*,
		max_length: Optional[int] = None,
	) -> None:
		self._store = store
		self._broadcaster = broadcaster
		self._presence = presence
		self._reconciler = reconciler
		self.notifications = notifications
		self._max_length = max_length or settings.message_max_length
		self._locks = KeyedLock()

	async def send(
		self,
		sender_id: str,
		conversation_id: str,
		content: str,
		kind: MessageKind | str = MessageKind.TEXT,
		file: Mapping[str, object] | None = None,
		reply_to: Optional[str] = None,
		*,
		sender_name: Optional[str] = None,
	) -> Message:
		"""Persist a message and deliver it.

		Once the store accepts the message the call succeeds: live delivery and the
		offline notifications are best-effort and never undo the write.
		"""
		conversation = await self._require_participant(conversation_id, sender_id)
		if not conversation.is_active:
			self._reject("conversation_inactive")
		message_kind = self._parse_kind(kind)
		file_meta = attachments.normalize_file(message_kind, file)
		body = self._validate_content(content, allow_empty=file_meta is not None)
		if reply_to:
			target = await self._store.get_message(reply_to)
			if target is None or target.conversation_id != conversation_id:
				self._reject("invalid_reply_to")

		async with self._locks.hold(conversation_id):
			message = await self._store.create_message(
				conversation_id,
				sender_id=sender_id,
				content=body,
				kind=message_kind,
				file=file_meta,
				reply_to=reply_to or None,
				created_at=datetime.now(timezone.utc),
			)
			obs_metrics.inc_chat_send(message_kind.value)
			self._reconciler.on_message_created(message)
			await self._fan_out(events.CHAT_NEW_MESSAGE, message)
			offline = offline_recipients(conversation, sender_id, self._presence)

		for recipient_id in offline:
			await self._notify_offline(recipient_id, message, sender_name)
		return message

	async def edit(self, editor_id: str, message_id: str, content: str) -> Message:
		message = await self._require_sender(message_id, editor_id)
		if message.is_deleted:
			self._reject("message_deleted")
		body = self._validate_content(content, allow_empty=message.file is not None)
		async with self._locks.hold(message.conversation_id):
			message = await self._reload(message_id)
			if message.is_deleted:
				self._reject("message_deleted")
			if not message.is_edited:
				message.original_content = message.content
			message.content = body
			message.is_edited = True
			message.edited_at = datetime.now(timezone.utc)
			updated = await self._store.update_message(message)
			await self._fan_out(events.CHAT_MESSAGE_EDITED, updated)
		return updated

	async def delete(self, actor_id: str, message_id: str) -> Message:
		message = await self._require_sender(message_id, actor_id)
		if message.is_deleted:
			return message
		async with self._locks.hold(message.conversation_id):
			message = await self._reload(message_id)
			if message.is_deleted:
				return message
			message.content = TOMBSTONE
			message.is_deleted = True
			message.deleted_at = datetime.now(timezone.utc)
			updated = await self._store.update_message(message)
			self._reconciler.invalidate(message.conversation_id)
			await self._fan_out(events.CHAT_MESSAGE_DELETED, updated)
		return updated

	async def _require_participant(self, conversation_id: str, user_id: str) -> Conversation:
		conversation = await self._store.get_conversation(conversation_id)
		if conversation is None:
			obs_metrics.inc_chat_reject("not_found")
			raise NotFound("conversation_not_found")
		if not conversation.is_participant(user_id):
			obs_metrics.inc_chat_reject("not_authorized")
			raise Unauthorized("not_a_participant")
		return conversation

	async def _require_sender(self, message_id: str, user_id: str) -> Message:
		message = await self._store.get_message(message_id)
		if message is None:
			obs_metrics.inc_chat_reject("not_found")
			raise NotFound("message_not_found")
		if message.sender_id != user_id:
			obs_metrics.inc_chat_reject("not_authorized")
			raise Unauthorized("not_message_sender")
		return message

	async def _reload(self, message_id: str) -> Message:
		"""Re-read a message once the conversation lock is held."""
		message = await self._store.get_message(message_id)
		if message is None:
			raise NotFound("message_not_found")
		return message

	def _parse_kind(self, kind: MessageKind | str) -> MessageKind:
		try:
			return MessageKind(kind)
		except ValueError:
			obs_metrics.inc_chat_reject("invalid_kind")
			raise InvalidInput("invalid_kind") from None

	def _validate_content(self, content: Optional[str], *, allow_empty: bool) -> str:
		body = (content or "").strip()
		if not body and not allow_empty:
			self._reject("content_required")
		if len(body) > self._max_length:
			self._reject("content_too_long")
		return body

	@staticmethod
	def _reject(reason: str) -> None:
		obs_metrics.inc_chat_reject(reason)
		raise InvalidInput(reason)

	async def _fan_out(self, event: str, message: Message) -> None:
		report = await self._broadcaster.to_conversation(message.conversation_id, event, message.to_dict())
		if report.delivered:
			obs_metrics.inc_chat_fanout("delivered")
		if report.failed:
			obs_metrics.inc_chat_fanout("failed")

	async def _notify_offline(self, recipient_id: str, message: Message, sender_name: Optional[str]) -> None:
		if self.notifications is None:
			return
		try:
			await triggers.message_received(
				self.notifications,
				recipient_id=recipient_id,
				sender_id=message.sender_id,
				sender_name=sender_name,
				conversation_id=message.conversation_id,
				message_id=message.message_id,
			)
		except Exception:
			# The message is already durable; a missed notification is logged only
			LOGGER.warning(
				"offline_notification_failed",
				extra={"conversation_id": message.conversation_id, "recipient_id": recipient_id},
				exc_info=True,
			)


def offline_recipients(conversation: Conversation, sender_id: str, presence: PresenceRegistry) -> List[str]:
	return [pid for pid in conversation.others(sender_id) if not presence.is_online(pid)]
