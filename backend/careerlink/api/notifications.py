"""FastAPI endpoints for the notification center."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, status

from careerlink.api.deps import get_gateway
from careerlink.domain.notifications.schemas import (
	NotificationListResponse,
	SelectedNotificationsRequest,
	TypeCount,
)
from careerlink.domain.realtime.gateway import Gateway
from careerlink.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
	page: int = Query(default=1, ge=1),
	limit: int = Query(default=20, ge=1, le=100),
	unread_only: bool = Query(default=False, alias="unreadOnly"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> NotificationListResponse:
	return await gateway.notifications.list_notifications(
		auth_user.id, page=page, limit=limit, unread_only=unread_only
	)


@router.get("/unread-count")
async def unread_count(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> dict:
	return {"unread_count": await gateway.notifications.get_unread_count(auth_user.id)}


@router.get("/types", response_model=List[TypeCount])
async def type_counts(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> List[TypeCount]:
	return await gateway.notifications.type_counts(auth_user.id)


@router.put("/mark-all-read")
async def mark_all_read(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> dict:
	return {"updated": await gateway.notifications.mark_all_read(auth_user.id)}


@router.put("/mark-selected-read")
async def mark_selected_read(
	payload: SelectedNotificationsRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> dict:
	updated = await gateway.notifications.mark_many_read(auth_user.id, payload.notification_ids)
	return {"updated": updated}


@router.put("/{notification_id}/read")
async def mark_read(
	notification_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> dict:
	notification = await gateway.notifications.mark_read(notification_id, auth_user.id)
	return notification.to_dict()


@router.delete("/delete-selected")
async def delete_selected(
	payload: SelectedNotificationsRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> dict:
	deleted = await gateway.notifications.delete_many(auth_user.id, payload.notification_ids)
	return {"deleted": deleted}


@router.delete("/clear-all")
async def clear_all(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> dict:
	return {"deleted": await gateway.notifications.clear_all(auth_user.id)}


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
	notification_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	gateway: Gateway = Depends(get_gateway),
) -> None:
	await gateway.notifications.delete_notification(notification_id, auth_user.id)
