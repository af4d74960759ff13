"""Chat operations exposed over REST."""

from __future__ import annotations

from typing import List, Optional

from careerlink.domain.chat.models import Conversation, Message
from careerlink.domain.chat.pipeline import MessagePipeline
from careerlink.domain.chat.reconciliation import ReadReconciler
from careerlink.domain.chat.schemas import (
	ConversationSummary,
	MessageListResponse,
	ReadResponse,
	SendMessageRequest,
)
from careerlink.domain.chat.store import ChatStore
from careerlink.domain.realtime import events
from careerlink.domain.realtime.errors import InvalidInput
from careerlink.domain.realtime.presence import PresenceRegistry
from careerlink.infra.auth import AuthenticatedUser

_MAX_PAGE = 100


class ChatService:
	def __init__(
		self,
		store: ChatStore,
		pipeline: MessagePipeline,
		reconciler: ReadReconciler,
		presence: PresenceRegistry,
		broadcaster: events.Broadcaster,
	) -> None:
		self._store = store
		self._pipeline = pipeline
		self._reconciler = reconciler
		self._presence = presence
		self._broadcaster = broadcaster

	async def start_direct(self, auth_user: AuthenticatedUser, participant_id: str) -> Conversation:
		if str(auth_user.id) == str(participant_id):
			raise InvalidInput("cannot_message_self")
		return await self._store.find_or_create_direct(auth_user.id, participant_id)

	async def list_conversations(self, auth_user: AuthenticatedUser) -> List[ConversationSummary]:
		conversations = await self._store.list_conversations(auth_user.id)
		return [await self._summary(conversation, auth_user.id) for conversation in conversations]

	async def conversation_info(self, auth_user: AuthenticatedUser, conversation_id: str) -> ConversationSummary:
		conversation = await self._reconciler.authorize(conversation_id, auth_user.id)
		return await self._summary(conversation, auth_user.id)

	async def list_messages(
		self,
		auth_user: AuthenticatedUser,
		conversation_id: str,
		*,
		before_seq: Optional[int] = None,
		limit: int = 50,
	) -> MessageListResponse:
		await self._reconciler.authorize(conversation_id, auth_user.id)
		limit = max(1, min(_MAX_PAGE, limit))
		rows = await self._store.list_messages(conversation_id, before_seq=before_seq, limit=limit + 1)
		has_more = len(rows) > limit
		page = rows[-limit:]
		next_before = page[0].seq if has_more and page else None
		return MessageListResponse(items=[m.to_dict() for m in page], next_before_seq=next_before)

	async def send(self, auth_user: AuthenticatedUser, conversation_id: str, payload: SendMessageRequest) -> Message:
		return await self._pipeline.send(
			auth_user.id,
			conversation_id,
			payload.content,
			payload.kind,
			payload.file.model_dump() if payload.file else None,
			payload.reply_to,
			sender_name=auth_user.short_name,
		)

	async def edit(self, auth_user: AuthenticatedUser, message_id: str, content: str) -> Message:
		return await self._pipeline.edit(auth_user.id, message_id, content)

	async def delete(self, auth_user: AuthenticatedUser, message_id: str) -> Message:
		return await self._pipeline.delete(auth_user.id, message_id)

	async def mark_message_read(self, auth_user: AuthenticatedUser, message_id: str) -> bool:
		return await self._reconciler.mark_message_read(message_id, auth_user.id)

	async def mark_all_read(self, auth_user: AuthenticatedUser, conversation_id: str) -> ReadResponse:
		await self._reconciler.authorize(conversation_id, auth_user.id)
		message_ids = await self._reconciler.mark_conversation_read(conversation_id, auth_user.id)
		unread = await self._reconciler.unread_count_for(conversation_id, auth_user.id)
		return ReadResponse(conversation_id=conversation_id, message_ids=message_ids, unread_count=unread)

	async def typing(self, auth_user: AuthenticatedUser, conversation_id: str, is_typing: bool) -> None:
		await self._reconciler.authorize(conversation_id, auth_user.id)
		await self._broadcaster.to_conversation(
			conversation_id,
			events.CHAT_USER_TYPING,
			{
				"conversation_id": conversation_id,
				"user_id": auth_user.id,
				"user_name": auth_user.short_name,
				"is_typing": is_typing,
			},
		)

	async def _summary(self, conversation: Conversation, user_id: str) -> ConversationSummary:
		unread = await self._reconciler.unread_count_for(conversation.conversation_id, user_id)
		online = [pid for pid in conversation.others(user_id) if self._presence.is_online(pid)]
		return ConversationSummary.build(conversation, user_id, unread, online)
