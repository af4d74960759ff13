"""Pydantic schemas for chat REST endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field

from careerlink.domain.chat.models import Conversation


class StartConversationRequest(BaseModel):
	participant_id: str = Field(..., min_length=1, validation_alias=AliasChoices("participant_id", "participantId"))


class FileRequest(BaseModel):
	url: str = Field(..., min_length=1)
	name: str = Field(..., min_length=1)
	size: Optional[int] = Field(default=None, ge=0)
	media_type: Optional[str] = None


class SendMessageRequest(BaseModel):
	content: str = Field(default="", max_length=4000)
	kind: Literal["text", "file", "image"] = "text"
	file: Optional[FileRequest] = None
	reply_to: Optional[str] = Field(default=None, validation_alias=AliasChoices("reply_to", "replyTo"))


class EditMessageRequest(BaseModel):
	content: str = Field(..., max_length=4000)


class TypingRequest(BaseModel):
	is_typing: bool = Field(default=True, validation_alias=AliasChoices("is_typing", "isTyping"))


class ConversationSummary(BaseModel):
	conversation: Dict[str, Any]
	unread_count: int
	other_participant_ids: List[str]
	online_participant_ids: List[str]

	@classmethod
	def build(cls, conversation: Conversation, user_id: str, unread_count: int, online: List[str]) -> "ConversationSummary":
		return cls(
			conversation=conversation.to_dict(),
			unread_count=unread_count,
			other_participant_ids=conversation.others(user_id),
			online_participant_ids=online,
		)


class MessageListResponse(BaseModel):
	items: List[Dict[str, Any]]
	next_before_seq: Optional[int] = None


class ReadResponse(BaseModel):
	conversation_id: str
	message_ids: List[str]
	unread_count: int
