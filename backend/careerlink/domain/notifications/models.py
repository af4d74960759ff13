"""Domain models for user notifications."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class NotificationType(str, Enum):
	CONNECTION_REQUEST = "connection_request"
	CONNECTION_ACCEPTED = "connection_accepted"
	CONNECTION_DECLINED = "connection_declined"
	MESSAGE_RECEIVED = "message_received"
	POST_LIKED = "post_liked"
	POST_COMMENTED = "post_commented"
	POST_SHARED = "post_shared"
	JOB_APPLICATION = "job_application"
	JOB_STATUS_UPDATE = "job_status_update"
	JOB_POSTED = "job_posted"
	COMMENT_LIKED = "comment_liked"
	MENTION = "mention"
	POST_REPORTED = "post_reported"
	SYSTEM = "system"


class Priority(str, Enum):
	LOW = "low"
	MEDIUM = "medium"
	HIGH = "high"
	URGENT = "urgent"


class SourceKind(str, Enum):
	POST = "Post"
	JOB = "Job"
	CONNECTION = "Connection"
	CHAT = "Chat"
	MESSAGE = "Message"
	APPLICATION = "Application"
	USER = "User"


def group_key(type_: NotificationType | str, source_id: str, recipient_id: str) -> str:
	value = type_.value if isinstance(type_, NotificationType) else str(type_)
	return f"{value}_{source_id}_{recipient_id}"


def time_ago(created_at: datetime, now: Optional[datetime] = None) -> str:
	now = now or datetime.now(timezone.utc)
	seconds = max(0, int((now - created_at).total_seconds()))
	minutes = seconds // 60
	hours = seconds // 3600
	days = seconds // 86400
	if minutes < 1:
		return "Just now"
	if minutes < 60:
		return f"{minutes}m ago"
	if hours < 24:
		return f"{hours}h ago"
	if days < 7:
		return f"{days}d ago"
	return created_at.date().isoformat()


@dataclass(slots=True)
class Notification:
	notification_id: str
	recipient_id: str
	type: NotificationType
	title: str
	message: str
	source_id: str
	source_kind: SourceKind
	group_key: str
	created_at: datetime
	updated_at: datetime
	sender_id: Optional[str] = None
	action_url: Optional[str] = None
	image_url: Optional[str] = None
	priority: Priority = Priority.MEDIUM
	metadata: Dict[str, Any] = field(default_factory=dict)
	is_read: bool = False
	read_at: Optional[datetime] = None
	expires_at: Optional[datetime] = None

	def is_expired(self, now: datetime) -> bool:
		return self.expires_at is not None and self.expires_at <= now

	def to_dict(self, now: Optional[datetime] = None) -> dict:
		return {
			"notification_id": self.notification_id,
			"recipient_id": self.recipient_id,
			"sender_id": self.sender_id,
			"type": self.type.value,
			"title": self.title,
			"message": self.message,
			"source_id": self.source_id,
			"source_kind": self.source_kind.value,
			"action_url": self.action_url,
			"image_url": self.image_url,
			"is_read": self.is_read,
			"read_at": self.read_at.isoformat() if self.read_at else None,
			"group_key": self.group_key,
			"priority": self.priority.value,
			"metadata": dict(self.metadata),
			"created_at": self.created_at.isoformat(),
			"updated_at": self.updated_at.isoformat(),
			"expires_at": self.expires_at.isoformat() if self.expires_at else None,
			"time_ago": time_ago(self.created_at, now),
		}
