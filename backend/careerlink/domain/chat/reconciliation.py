"""Read/unread reconciliation for chat conversations."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Tuple

from careerlink.domain.chat.models import Conversation, Message
from careerlink.domain.chat.store import ChatStore
from careerlink.domain.realtime import events
from careerlink.domain.realtime.errors import NotFound, Unauthorized
from careerlink.obs import metrics as obs_metrics

LOGGER = logging.getLogger(__name__)


class ReadReconciler:
	"""Appends read receipts and serves cached unread counters.

	The counter cache is keyed by (conversation_id, user_id) and dropped for the
	whole conversation on every new message, deletion and mark-read. A per-
	conversation generation guards against a slow count overwriting a newer
	invalidation.
	"""

	def __init__(self, store: ChatStore, broadcaster: events.Broadcaster | None = None) -> None:
		self._store = store
		self._broadcaster = broadcaster
		self._cache: Dict[Tuple[str, str], int] = {}
		self._generations: Dict[str, int] = {}

	def bind(self, broadcaster: events.Broadcaster) -> None:
		self._broadcaster = broadcaster

	async def authorize(self, conversation_id: str, user_id: str) -> Conversation:
		conversation = await self._store.get_conversation(conversation_id)
		if conversation is None:
			raise NotFound("conversation_not_found")
		if not conversation.is_participant(user_id):
			raise Unauthorized("not_a_participant")
		return conversation

	async def mark_conversation_read(self, conversation_id: str, user_id: str) -> List[str]:
		read_at = datetime.now(timezone.utc)
		appended = await self._store.append_read_receipts(conversation_id, user_id, read_at)
		self.invalidate(conversation_id)
		if appended:
			obs_metrics.inc_chat_read(len(appended))
			await self._announce(conversation_id, user_id, appended, read_at)
		return appended

	async def mark_message_read(self, message_id: str, user_id: str) -> bool:
		message = await self._store.get_message(message_id)
		if message is None:
			raise NotFound("message_not_found")
		conversation = await self._store.get_conversation(message.conversation_id)
		if conversation is None or not conversation.is_participant(user_id):
			raise Unauthorized("not_a_participant")
		read_at = datetime.now(timezone.utc)
		appended = await self._store.append_read_receipts(
			message.conversation_id, user_id, read_at, message_ids=[message_id]
		)
		self.invalidate(message.conversation_id)
		if appended:
			obs_metrics.inc_chat_read(len(appended))
			await self._announce(message.conversation_id, user_id, appended, read_at)
		return bool(appended)

	async def unread_count_for(self, conversation_id: str, user_id: str) -> int:
		key = (conversation_id, user_id)
		cached = self._cache.get(key)
		if cached is not None:
			return cached
		generation = self._generations.get(conversation_id, 0)
		count = await self._store.unread_count(conversation_id, user_id)
		if self._generations.get(conversation_id, 0) == generation:
			self._cache[key] = count
		return count

	def on_message_created(self, message: Message) -> None:
		self.invalidate(message.conversation_id)

	def invalidate(self, conversation_id: str) -> None:
		self._generations[conversation_id] = self._generations.get(conversation_id, 0) + 1
		for key in [k for k in self._cache if k[0] == conversation_id]:
			del self._cache[key]

	async def _announce(self, conversation_id: str, user_id: str, message_ids: List[str], read_at: datetime) -> None:
		if self._broadcaster is None:
			return
		try:
			conversation = await self._store.get_conversation(conversation_id)
		except Exception:
			LOGGER.warning("read_receipt_lookup_failed", extra={"conversation_id": conversation_id}, exc_info=True)
			return
		if conversation is None:
			return
		payload = {
			"conversation_id": conversation_id,
			"user_id": user_id,
			"message_ids": message_ids,
			"read_at": read_at.isoformat(),
		}
		for other in conversation.others(user_id):
			await self._broadcaster.to_user(other, events.CHAT_MESSAGES_READ, payload)
