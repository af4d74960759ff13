"""Durable chat state: conversations, messages and read receipts."""

from __future__ import annotations

import asyncio
import copy
import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, Iterable, List, Optional, Protocol, Sequence

import asyncpg
import ulid

from careerlink.domain.chat.models import (
	Conversation,
	ConversationKind,
	FileMeta,
	Message,
	MessageKind,
	ReadReceipt,
	direct_key,
	participants_tuple,
)
from careerlink.domain.realtime.errors import PersistenceFailure
from careerlink.infra.postgres import get_pool


class ChatStore(Protocol):
	async def find_or_create_direct(self, user_one: str, user_two: str) -> Conversation:
		...

	async def create_group(self, participant_ids: Sequence[str]) -> Conversation:
		...

	async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
		...

	async def list_conversations(self, user_id: str) -> List[Conversation]:
		...

	async def deactivate(self, conversation_id: str) -> bool:
		...

	async def create_message(
		self,
		conversation_id: str,
		*,
		sender_id: str,
		content: str,
		kind: MessageKind,
		file: Optional[FileMeta],
		reply_to: Optional[str],
		created_at: datetime,
	) -> Message:
		...

	async def get_message(self, message_id: str) -> Optional[Message]:
		...

	async def list_messages(self, conversation_id: str, *, before_seq: Optional[int], limit: int) -> List[Message]:
		...

	async def update_message(self, message: Message) -> Message:
		...

	async def append_read_receipts(
		self,
		conversation_id: str,
		user_id: str,
		read_at: datetime,
		message_ids: Optional[Iterable[str]] = None,
	) -> List[str]:
		...

	async def unread_count(self, conversation_id: str, user_id: str) -> int:
		...


class InMemoryChatStore:
	"""Process-local store used in tests and when STORE_BACKEND=memory."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._conversations: Dict[str, Conversation] = {}
		self._direct: Dict[str, str] = {}
		self._messages: Dict[str, List[Message]] = {}
		self._index: Dict[str, Message] = {}

	async def find_or_create_direct(self, user_one: str, user_two: str) -> Conversation:
		key = direct_key(user_one, user_two)
		async with self._lock:
			existing_id = self._direct.get(key)
			if existing_id is not None:
				return copy.deepcopy(self._conversations[existing_id])
			conversation = self._new_conversation((user_one, user_two), ConversationKind.DIRECT)
			self._direct[key] = conversation.conversation_id
			return copy.deepcopy(conversation)

	async def create_group(self, participant_ids: Sequence[str]) -> Conversation:
		async with self._lock:
			conversation = self._new_conversation(participant_ids, ConversationKind.GROUP)
			return copy.deepcopy(conversation)

	def _new_conversation(self, participant_ids: Sequence[str], kind: ConversationKind) -> Conversation:
		now = datetime.now(timezone.utc)
		conversation = Conversation(
			conversation_id=str(ulid.new()),
			participant_ids=participants_tuple(participant_ids),
			kind=kind,
			created_at=now,
			last_activity_at=now,
		)
		self._conversations[conversation.conversation_id] = conversation
		self._messages[conversation.conversation_id] = []
		return conversation

	async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
		async with self._lock:
			conversation = self._conversations.get(conversation_id)
			return copy.deepcopy(conversation) if conversation else None

	async def list_conversations(self, user_id: str) -> List[Conversation]:
		async with self._lock:
			items = [
				copy.deepcopy(c)
				for c in self._conversations.values()
				if c.is_active and c.is_participant(user_id)
			]
		items.sort(key=lambda c: c.last_activity_at, reverse=True)
		return items

	async def deactivate(self, conversation_id: str) -> bool:
		async with self._lock:
			conversation = self._conversations.get(conversation_id)
			if conversation is None or not conversation.is_active:
				return False
			conversation.is_active = False
			return True

	async def create_message(
		self,
		conversation_id: str,
		*,
		sender_id: str,
		content: str,
		kind: MessageKind,
		file: Optional[FileMeta],
		reply_to: Optional[str],
		created_at: datetime,
	) -> Message:
		async with self._lock:
			conversation = self._conversations.get(conversation_id)
			if conversation is None:
				raise PersistenceFailure("conversation_missing")
			messages = self._messages.setdefault(conversation_id, [])
			seq = messages[-1].seq + 1 if messages else 1
			message = Message(
				message_id=str(ulid.new()),
				conversation_id=conversation_id,
				seq=seq,
				sender_id=sender_id,
				content=content,
				kind=kind,
				created_at=created_at,
				file=copy.deepcopy(file),
				reply_to=reply_to,
			)
			messages.append(message)
			self._index[message.message_id] = message
			conversation.last_message_id = message.message_id
			conversation.last_activity_at = created_at
			return copy.deepcopy(message)

	async def get_message(self, message_id: str) -> Optional[Message]:
		async with self._lock:
			message = self._index.get(message_id)
			return copy.deepcopy(message) if message else None

	async def list_messages(self, conversation_id: str, *, before_seq: Optional[int], limit: int) -> List[Message]:
		async with self._lock:
			messages = self._messages.get(conversation_id, [])
			if before_seq is not None:
				messages = [m for m in messages if m.seq < before_seq]
			return [copy.deepcopy(m) for m in messages[-limit:]] if limit > 0 else []

	async def update_message(self, message: Message) -> Message:
		async with self._lock:
			stored = self._index.get(message.message_id)
			if stored is None:
				raise PersistenceFailure("message_missing")
			stored.content = message.content
			stored.is_edited = message.is_edited
			stored.edited_at = message.edited_at
			stored.original_content = message.original_content
			stored.is_deleted = message.is_deleted
			stored.deleted_at = message.deleted_at
			return copy.deepcopy(stored)

	async def append_read_receipts(
		self,
		conversation_id: str,
		user_id: str,
		read_at: datetime,
		message_ids: Optional[Iterable[str]] = None,
	) -> List[str]:
		wanted = set(message_ids) if message_ids is not None else None
		appended: List[str] = []
		async with self._lock:
			for message in self._messages.get(conversation_id, []):
				if wanted is not None and message.message_id not in wanted:
					continue
				if not message.counts_as_unread_for(user_id):
					continue
				message.read_by.append(ReadReceipt(user_id=user_id, read_at=read_at))
				appended.append(message.message_id)
		return appended

	async def unread_count(self, conversation_id: str, user_id: str) -> int:
		async with self._lock:
			return sum(1 for m in self._messages.get(conversation_id, []) if m.counts_as_unread_for(user_id))


_CONVERSATION_COLUMNS = "conversation_id, kind, participant_ids, last_message_id, last_activity_at, is_active, created_at"
_MESSAGE_COLUMNS = (
	"message_id, conversation_id, seq, sender_id, content, kind, file, reply_to, created_at, "
	"is_edited, edited_at, original_content, is_deleted, deleted_at"
)


class PostgresChatStore:
	"""asyncpg-backed store; driver failures surface as PersistenceFailure."""

	def __init__(self, pool: asyncpg.pool.Pool | None = None) -> None:
		self._pool = pool

	@asynccontextmanager
	async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
		try:
			pool = self._pool or await get_pool()
			async with pool.acquire() as conn:
				yield conn
		except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as exc:
			raise PersistenceFailure("store_unavailable") from exc

	async def find_or_create_direct(self, user_one: str, user_two: str) -> Conversation:
		now = datetime.now(timezone.utc)
		key = direct_key(user_one, user_two)
		async with self._connection() as conn:
			row = await conn.fetchrow(
				f"""
				INSERT INTO chat_conversations (conversation_id, kind, participant_ids, direct_key, last_activity_at, created_at)
				VALUES ($1, 'direct', $2, $3, $4, $4)
				ON CONFLICT (direct_key) DO NOTHING
				RETURNING {_CONVERSATION_COLUMNS}
				""",
				str(ulid.new()),
				list(participants_tuple((user_one, user_two))),
				key,
				now,
			)
			if row is None:
				row = await conn.fetchrow(
					f"SELECT {_CONVERSATION_COLUMNS} FROM chat_conversations WHERE direct_key = $1",
					key,
				)
			return self._row_to_conversation(row)

	async def create_group(self, participant_ids: Sequence[str]) -> Conversation:
		now = datetime.now(timezone.utc)
		async with self._connection() as conn:
			row = await conn.fetchrow(
				f"""
				INSERT INTO chat_conversations (conversation_id, kind, participant_ids, last_activity_at, created_at)
				VALUES ($1, 'group', $2, $3, $3)
				RETURNING {_CONVERSATION_COLUMNS}
				""",
				str(ulid.new()),
				list(participants_tuple(participant_ids)),
				now,
			)
			return self._row_to_conversation(row)

	async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
		async with self._connection() as conn:
			row = await conn.fetchrow(
				f"SELECT {_CONVERSATION_COLUMNS} FROM chat_conversations WHERE conversation_id = $1",
				conversation_id,
			)
			return self._row_to_conversation(row) if row else None

	async def list_conversations(self, user_id: str) -> List[Conversation]:
		async with self._connection() as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_CONVERSATION_COLUMNS}
				FROM chat_conversations
				WHERE $1 = ANY(participant_ids) AND is_active
				ORDER BY last_activity_at DESC
				""",
				user_id,
			)
			return [self._row_to_conversation(row) for row in rows]

	async def deactivate(self, conversation_id: str) -> bool:
		async with self._connection() as conn:
			result = await conn.execute(
				"UPDATE chat_conversations SET is_active = FALSE WHERE conversation_id = $1 AND is_active",
				conversation_id,
			)
			return result.endswith(" 1")

	async def create_message(
		self,
		conversation_id: str,
		*,
		sender_id: str,
		content: str,
		kind: MessageKind,
		file: Optional[FileMeta],
		reply_to: Optional[str],
		created_at: datetime,
	) -> Message:
		message_id = str(ulid.new())
		async with self._connection() as conn:
			async with conn.transaction():
				seq = await conn.fetchval(
					"""
					UPDATE chat_conversations
					SET last_seq = last_seq + 1, last_message_id = $2, last_activity_at = $3
					WHERE conversation_id = $1
					RETURNING last_seq
					""",
					conversation_id,
					message_id,
					created_at,
				)
				if seq is None:
					raise PersistenceFailure("conversation_missing")
				await conn.execute(
					"""
					INSERT INTO chat_messages (message_id, conversation_id, seq, sender_id, content, kind, file, reply_to, created_at)
					VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
					""",
					message_id,
					conversation_id,
					int(seq),
					sender_id,
					content,
					kind.value,
					json.dumps(file.to_dict()) if file else None,
					reply_to,
					created_at,
				)
		return Message(
			message_id=message_id,
			conversation_id=conversation_id,
			seq=int(seq),
			sender_id=sender_id,
			content=content,
			kind=kind,
			created_at=created_at,
			file=file,
			reply_to=reply_to,
		)

	async def get_message(self, message_id: str) -> Optional[Message]:
		async with self._connection() as conn:
			row = await conn.fetchrow(f"SELECT {_MESSAGE_COLUMNS} FROM chat_messages WHERE message_id = $1", message_id)
			if not row:
				return None
			receipts = await self._receipts(conn, [message_id])
			return self._row_to_message(row, receipts.get(message_id, []))

	async def list_messages(self, conversation_id: str, *, before_seq: Optional[int], limit: int) -> List[Message]:
		params: List[object] = [conversation_id]
		where_clause = ""
		if before_seq is not None:
			params.append(before_seq)
			where_clause = " AND seq < $2"
		params.append(limit)
		query = (
			f"SELECT {_MESSAGE_COLUMNS} FROM chat_messages WHERE conversation_id = $1"
			+ where_clause
			+ f" ORDER BY seq DESC LIMIT ${len(params)}"
		)
		async with self._connection() as conn:
			rows = await conn.fetch(query, *params)
			receipts = await self._receipts(conn, [str(row["message_id"]) for row in rows])
		messages = [self._row_to_message(row, receipts.get(str(row["message_id"]), [])) for row in rows]
		messages.reverse()
		return messages

	async def update_message(self, message: Message) -> Message:
		async with self._connection() as conn:
			result = await conn.execute(
				"""
				UPDATE chat_messages
				SET content = $2, is_edited = $3, edited_at = $4, original_content = $5, is_deleted = $6, deleted_at = $7
				WHERE message_id = $1
				""",
				message.message_id,
				message.content,
				message.is_edited,
				message.edited_at,
				message.original_content,
				message.is_deleted,
				message.deleted_at,
			)
		if not result.endswith(" 1"):
			raise PersistenceFailure("message_missing")
		return message

	async def append_read_receipts(
		self,
		conversation_id: str,
		user_id: str,
		read_at: datetime,
		message_ids: Optional[Iterable[str]] = None,
	) -> List[str]:
		params: List[object] = [conversation_id, user_id, read_at]
		restrict = ""
		if message_ids is not None:
			params.append(list(message_ids))
			restrict = " AND m.message_id = ANY($4::text[])"
		query = (
			"""
			INSERT INTO chat_read_receipts (message_id, user_id, read_at)
			SELECT m.message_id, $2, $3
			FROM chat_messages m
			WHERE m.conversation_id = $1 AND m.sender_id <> $2 AND NOT m.is_deleted
			"""
			+ restrict
			+ " ON CONFLICT (message_id, user_id) DO NOTHING RETURNING message_id"
		)
		async with self._connection() as conn:
			rows = await conn.fetch(query, *params)
		return [str(row["message_id"]) for row in rows]

	async def unread_count(self, conversation_id: str, user_id: str) -> int:
		async with self._connection() as conn:
			value = await conn.fetchval(
				"""
				SELECT COUNT(*)
				FROM chat_messages m
				WHERE m.conversation_id = $1
					AND m.sender_id <> $2
					AND NOT m.is_deleted
					AND NOT EXISTS (
						SELECT 1 FROM chat_read_receipts r
						WHERE r.message_id = m.message_id AND r.user_id = $2
					)
				""",
				conversation_id,
				user_id,
			)
			return int(value or 0)

	async def _receipts(self, conn, message_ids: List[str]) -> Dict[str, List[ReadReceipt]]:
		if not message_ids:
			return {}
		rows = await conn.fetch(
			"""
			SELECT message_id, user_id, read_at
			FROM chat_read_receipts
			WHERE message_id = ANY($1::text[])
			ORDER BY read_at ASC
			""",
			message_ids,
		)
		grouped: Dict[str, List[ReadReceipt]] = {}
		for row in rows:
			grouped.setdefault(str(row["message_id"]), []).append(
				ReadReceipt(user_id=str(row["user_id"]), read_at=row["read_at"])
			)
		return grouped

	@staticmethod
	def _row_to_conversation(row) -> Conversation:
		return Conversation(
			conversation_id=str(row["conversation_id"]),
			participant_ids=tuple(str(pid) for pid in row["participant_ids"]),
			kind=ConversationKind(row["kind"]),
			created_at=row["created_at"],
			last_activity_at=row["last_activity_at"],
			last_message_id=row["last_message_id"],
			is_active=bool(row["is_active"]),
		)

	@staticmethod
	def _row_to_message(row, receipts: List[ReadReceipt]) -> Message:
		file_raw = row["file"]
		if isinstance(file_raw, str):
			file_raw = json.loads(file_raw) if file_raw else None
		return Message(
			message_id=str(row["message_id"]),
			conversation_id=str(row["conversation_id"]),
			seq=int(row["seq"]),
			sender_id=str(row["sender_id"]),
			content=row["content"],
			kind=MessageKind(row["kind"]),
			created_at=row["created_at"],
			file=FileMeta(**file_raw) if file_raw else None,
			reply_to=row["reply_to"],
			read_by=receipts,
			is_edited=bool(row["is_edited"]),
			edited_at=row["edited_at"],
			original_content=row["original_content"],
			is_deleted=bool(row["is_deleted"]),
			deleted_at=row["deleted_at"],
		)
