"""Typed client commands received over the socket."""

from __future__ import annotations

from typing import Any, ClassVar, Dict, Optional, Type

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

from careerlink.domain.realtime.errors import InvalidInput


def _id_field(*aliases: str):
	return Field(..., min_length=1, max_length=64, validation_alias=AliasChoices(*aliases))


class Command(BaseModel):
	model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

	# Clients may send a bare id instead of an object for single-id commands
	bare: ClassVar[str] = ""

	@model_validator(mode="before")
	@classmethod
	def _wrap_bare_value(cls, data: Any) -> Any:
		if data is None:
			return {}
		if isinstance(data, (str, int)) and cls.bare:
			return {cls.bare: str(data)}
		return data


class JoinConversation(Command):
	bare: ClassVar[str] = "conversation_id"
	conversation_id: str = _id_field("conversation_id", "conversationId", "chatId")


class LeaveConversation(Command):
	bare: ClassVar[str] = "conversation_id"
	conversation_id: str = _id_field("conversation_id", "conversationId", "chatId")


class FilePayload(BaseModel):
	url: str = Field(..., min_length=1)
	name: str = Field(..., min_length=1)
	size: Optional[int] = Field(default=None, ge=0)
	media_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("media_type", "mimeType", "type"))


class SendMessage(Command):
	conversation_id: str = _id_field("conversation_id", "conversationId", "chatId")
	content: str = ""
	kind: str = Field(default="text", pattern="^(text|file|image)$", validation_alias=AliasChoices("kind", "messageType"))
	file: Optional[FilePayload] = None
	reply_to: Optional[str] = Field(default=None, validation_alias=AliasChoices("reply_to", "replyTo"))


class EditMessage(Command):
	message_id: str = _id_field("message_id", "messageId")
	content: str


class DeleteMessage(Command):
	bare: ClassVar[str] = "message_id"
	message_id: str = _id_field("message_id", "messageId")


class ConversationTyping(Command):
	conversation_id: str = _id_field("conversation_id", "conversationId", "chatId")
	is_typing: bool = Field(default=True, validation_alias=AliasChoices("is_typing", "isTyping"))


class MarkConversationRead(Command):
	bare: ClassVar[str] = "conversation_id"
	conversation_id: str = _id_field("conversation_id", "conversationId", "chatId")


class MarkNotificationRead(Command):
	bare: ClassVar[str] = "notification_id"
	notification_id: str = _id_field("notification_id", "notificationId", "id")


class MarkAllNotificationsRead(Command):
	pass


class UserTyping(Command):
	is_typing: bool = Field(default=True, validation_alias=AliasChoices("is_typing", "isTyping"))


class UserActivity(Command):
	pass


COMMANDS: Dict[str, Type[Command]] = {
	"chat:join": JoinConversation,
	"chat:leave": LeaveConversation,
	"chat:message": SendMessage,
	"chat:edit": EditMessage,
	"chat:delete": DeleteMessage,
	"chat:typing": ConversationTyping,
	"chat:mark_read": MarkConversationRead,
	"notification:mark_read": MarkNotificationRead,
	"notification:mark_all_read": MarkAllNotificationsRead,
	"user:typing": UserTyping,
	"user:activity": UserActivity,
}


def parse_command(event: str, data: Any) -> Command:
	model = COMMANDS.get(event)
	if model is None:
		raise InvalidInput("unknown_command")
	try:
		return model.model_validate(data)
	except ValidationError:
		raise InvalidInput("invalid_payload") from None
