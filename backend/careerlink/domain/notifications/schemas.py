"""Pydantic schemas for notification payloads and responses."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from careerlink.domain.notifications.models import NotificationType, Priority, SourceKind


class NotificationPayload(BaseModel):
	title: str = Field(..., min_length=1, max_length=200)
	message: str = Field(..., min_length=1, max_length=500)
	source_id: str = Field(..., min_length=1)
	source_kind: SourceKind
	action_url: Optional[str] = None
	image_url: Optional[str] = None
	priority: Priority = Priority.MEDIUM
	metadata: Dict[str, Any] = Field(default_factory=dict)

	@field_validator("title", "message", "source_id")
	@classmethod
	def _strip(cls, value: str) -> str:
		stripped = value.strip()
		if not stripped:
			raise ValueError("must not be blank")
		return stripped


class NotificationListResponse(BaseModel):
	items: List[Dict[str, Any]]
	page: int
	limit: int
	total: int
	unread_count: int
	has_more: bool


class SelectedNotificationsRequest(BaseModel):
	notification_ids: List[str] = Field(..., min_length=1, max_length=500)


class TypeCount(BaseModel):
	type: NotificationType
	count: int
	unread: int


class CreateNotificationRequest(BaseModel):
	recipient_id: str = Field(..., min_length=1)
	sender_id: Optional[str] = None
	type: NotificationType
	payload: NotificationPayload
