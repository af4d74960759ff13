"""FastAPI endpoints for chat conversations and messages."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from careerlink.api.deps import get_gateway
from careerlink.domain.chat.schemas import (
	ConversationSummary,
	EditMessageRequest,
	MessageListResponse,
	ReadResponse,
	SendMessageRequest,
	StartConversationRequest,
	TypingRequest,
)
from careerlink.domain.realtime.gateway import Gateway
from careerlink.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/chat", tags=["chat"])


@router.get("/conversations", response_model=List[ConversationSummary])
async def list_conversations(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> List[ConversationSummary]:
	return await gateway.chat.list_conversations(auth_user)


@router.post("/start")
async def start_conversation(
	payload: StartConversationRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> dict:
	conversation = await gateway.chat.start_direct(auth_user, payload.participant_id)
	return conversation.to_dict()


@router.get("/{conversation_id}/messages", response_model=MessageListResponse)
async def list_messages(
	conversation_id: str,
	before_seq: Optional[int] = Query(default=None, ge=1),
	limit: int = Query(default=50, ge=1, le=100),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> MessageListResponse:
	return await gateway.chat.list_messages(auth_user, conversation_id, before_seq=before_seq, limit=limit)


@router.post("/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_message(
	conversation_id: str,
	payload: SendMessageRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> dict:
	message = await gateway.chat.send(auth_user, conversation_id, payload)
	return message.to_dict()


@router.put("/messages/{message_id}/read")
async def mark_message_read(
	message_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> dict:
	updated = await gateway.chat.mark_message_read(auth_user, message_id)
	return {"message_id": message_id, "updated": updated}


@router.put("/{conversation_id}/mark-all-read", response_model=ReadResponse)
async def mark_all_read(
	conversation_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> ReadResponse:
	return await gateway.chat.mark_all_read(auth_user, conversation_id)


@router.patch("/messages/{message_id}")
async def edit_message(
	message_id: str,
	payload: EditMessageRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> dict:
	message = await gateway.chat.edit(auth_user, message_id, payload.content)
	return message.to_dict()


@router.delete("/messages/{message_id}")
async def delete_message(
	message_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> dict:
	message = await gateway.chat.delete(auth_user, message_id)
	return message.to_dict()


@router.get("/{conversation_id}/info", response_model=ConversationSummary)
async def conversation_info(
	conversation_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> ConversationSummary:
	return await gateway.chat.conversation_info(auth_user, conversation_id)


@router.post("/{conversation_id}/typing")
async def typing(
	conversation_id: str,
	payload: TypingRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> dict:
	await gateway.chat.typing(auth_user, conversation_id, payload.is_typing)
	return {"ok": True}
