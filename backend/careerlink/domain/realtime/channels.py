"""Channel membership for personal and conversation channels."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Dict, List

from careerlink.domain.chat.models import Conversation
from careerlink.domain.chat.store import ChatStore
from careerlink.domain.realtime.errors import NotFound, Unauthorized

if TYPE_CHECKING:  # pragma: no cover - typing only
	from careerlink.domain.chat.reconciliation import ReadReconciler

LOGGER = logging.getLogger(__name__)


class ChannelRouter:
	"""Tracks which connections are joined to which channels.

	Membership is kept in join order per channel. Conversation joins are checked
	against the durable participant list on every call.
	"""

	def __init__(self, store: ChatStore, reconciler: "ReadReconciler | None" = None) -> None:
		self._store = store
		self.reconciler = reconciler
		self._lock = asyncio.Lock()
		# dicts double as insertion-ordered sets
		self._members: Dict[str, Dict[str, None]] = {}
		self._joined: Dict[str, Dict[str, None]] = {}
		self._owners: Dict[str, str] = {}

	@staticmethod
	def user_channel(user_id: str) -> str:
		return f"user:{user_id}"

	@staticmethod
	def conversation_channel(conversation_id: str) -> str:
		return f"chat:{conversation_id}"

	async def join_user_channel(self, connection_id: str, user_id: str) -> str:
		channel = self.user_channel(user_id)
		async with self._lock:
			self._owners[connection_id] = user_id
			self._add(connection_id, channel)
		return channel

	async def join_conversation(self, connection_id: str, user_id: str, conversation_id: str) -> Conversation:
		if self._owners.get(connection_id) != user_id:
			raise NotFound("connection_not_registered")
		conversation = await self._store.get_conversation(conversation_id)
		if conversation is None:
			raise NotFound("conversation_not_found")
		if not conversation.is_participant(user_id):
			raise Unauthorized("not_a_participant")
		channel = self.conversation_channel(conversation_id)
		async with self._lock:
			# The connection may have gone away while the store was read
			if self._owners.get(connection_id) != user_id:
				raise NotFound("connection_not_registered")
			self._add(connection_id, channel)
		LOGGER.debug("conversation_joined", extra={"conversation_id": conversation_id, "connection_id": connection_id})
		if self.reconciler is not None:
			await self.reconciler.mark_conversation_read(conversation_id, user_id)
		return conversation

	async def leave_conversation(self, connection_id: str, conversation_id: str) -> bool:
		channel = self.conversation_channel(conversation_id)
		async with self._lock:
			return self._remove(connection_id, channel)

	async def leave_all(self, connection_id: str) -> List[str]:
		async with self._lock:
			channels = list(self._joined.pop(connection_id, {}))
			for channel in channels:
				members = self._members.get(channel)
				if members is None:
					continue
				members.pop(connection_id, None)
				if not members:
					del self._members[channel]
			self._owners.pop(connection_id, None)
		return channels

	def _add(self, connection_id: str, channel: str) -> None:
		self._members.setdefault(channel, {})[connection_id] = None
		self._joined.setdefault(connection_id, {})[channel] = None

	def _remove(self, connection_id: str, channel: str) -> bool:
		members = self._members.get(channel)
		if not members or connection_id not in members:
			return False
		del members[connection_id]
		if not members:
			del self._members[channel]
		joined = self._joined.get(connection_id)
		if joined is not None:
			joined.pop(channel, None)
		return True

	def members(self, channel: str) -> List[str]:
		return list(self._members.get(channel, ()))

	def channels_for(self, connection_id: str) -> List[str]:
		return list(self._joined.get(connection_id, ()))

	def connections(self) -> List[str]:
		return list(self._owners)
