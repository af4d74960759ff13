"""Domain models for chat conversations and messages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence, Tuple

TOMBSTONE = "This message was deleted"


class MessageKind(str, Enum):
	TEXT = "text"
	FILE = "file"
	IMAGE = "image"
	SYSTEM = "system"


class ConversationKind(str, Enum):
	DIRECT = "direct"
	GROUP = "group"


def direct_key(user_one: str, user_two: str) -> str:
	"""Order-independent key identifying the direct conversation of a pair."""
	first, second = sorted((str(user_one), str(user_two)))
	return f"{first}:{second}"


@dataclass(slots=True)
class FileMeta:
	url: str
	name: str
	size: int | None = None
	media_type: str | None = None

	def to_dict(self) -> dict:
		return {"url": self.url, "name": self.name, "size": self.size, "media_type": self.media_type}


@dataclass(slots=True)
class ReadReceipt:
	user_id: str
	read_at: datetime

	def to_dict(self) -> dict:
		return {"user_id": self.user_id, "read_at": self.read_at.isoformat()}


@dataclass(slots=True)
class Conversation:
	conversation_id: str
	participant_ids: Tuple[str, ...]
	kind: ConversationKind
	created_at: datetime
	last_activity_at: datetime
	last_message_id: Optional[str] = None
	is_active: bool = True

	def is_participant(self, user_id: str) -> bool:
		return str(user_id) in self.participant_ids

	def others(self, user_id: str) -> List[str]:
		return [pid for pid in self.participant_ids if pid != str(user_id)]

	def to_dict(self) -> dict:
		return {
			"conversation_id": self.conversation_id,
			"participant_ids": list(self.participant_ids),
			"kind": self.kind.value,
			"last_message_id": self.last_message_id,
			"last_activity_at": self.last_activity_at.isoformat(),
			"is_active": self.is_active,
			"created_at": self.created_at.isoformat(),
		}


@dataclass(slots=True)
class Message:
	message_id: str
	conversation_id: str
	seq: int
	sender_id: str
	content: str
	kind: MessageKind
	created_at: datetime
	file: Optional[FileMeta] = None
	reply_to: Optional[str] = None
	read_by: List[ReadReceipt] = field(default_factory=list)
	is_edited: bool = False
	edited_at: Optional[datetime] = None
	original_content: Optional[str] = None
	is_deleted: bool = False
	deleted_at: Optional[datetime] = None

	def is_read_by(self, user_id: str) -> bool:
		return any(receipt.user_id == user_id for receipt in self.read_by)

	def counts_as_unread_for(self, user_id: str) -> bool:
		return self.sender_id != user_id and not self.is_deleted and not self.is_read_by(user_id)

	def to_dict(self) -> dict:
		return {
			"message_id": self.message_id,
			"conversation_id": self.conversation_id,
			"seq": self.seq,
			"sender_id": self.sender_id,
			"content": self.content,
			"kind": self.kind.value,
			"file": self.file.to_dict() if self.file else None,
			"reply_to": self.reply_to,
			"read_by": [receipt.to_dict() for receipt in self.read_by],
			"is_edited": self.is_edited,
			"edited_at": self.edited_at.isoformat() if self.edited_at else None,
			"is_deleted": self.is_deleted,
			"deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
			"created_at": self.created_at.isoformat(),
		}


def participants_tuple(raw: Sequence[str]) -> Tuple[str, ...]:
	"""Deduplicate participant ids while keeping their first-seen order."""
	seen: dict[str, None] = {}
	for item in raw:
		value = str(item).strip()
		if value:
			seen.setdefault(value, None)
	return tuple(seen)
