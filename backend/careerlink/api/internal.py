"""Internal endpoints through which the job-board API raises domain events."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel, Field

from careerlink.api.deps import get_gateway
from careerlink.domain.notifications import triggers
from careerlink.domain.notifications.models import NotificationType
from careerlink.domain.notifications.schemas import CreateNotificationRequest
from careerlink.domain.realtime.gateway import Gateway
from careerlink.settings import settings

router = APIRouter(prefix="/internal/events", tags=["internal"])


def verify_internal_secret(x_internal_secret: Optional[str] = Header(default=None, alias="X-Internal-Secret")) -> None:
	if not x_internal_secret or x_internal_secret != settings.internal_secret:
		raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="invalid_internal_secret")


class ConnectionRequestEvent(BaseModel):
	recipient_id: str
	requester_id: str
	requester_name: Optional[str] = None
	connection_id: str
	image_url: Optional[str] = None


class ConnectionResponseEvent(BaseModel):
	requester_id: str
	responder_id: str
	responder_name: Optional[str] = None
	connection_id: str
	accepted: bool
	image_url: Optional[str] = None
	connection: Optional[Dict[str, Any]] = None


class PostInteractionEvent(BaseModel):
	type: Literal["post_liked", "post_commented", "post_shared"]
	author_id: str
	actor_id: str
	actor_name: Optional[str] = None
	post_id: str
	image_url: Optional[str] = None


class PostPublishedEvent(BaseModel):
	author_id: str
	author_name: Optional[str] = None
	post_id: str
	connection_ids: List[str] = Field(default_factory=list)
	image_url: Optional[str] = None
	post: Optional[Dict[str, Any]] = None


class PostUpdatedEvent(BaseModel):
	post_id: str
	update: Dict[str, Any] = Field(default_factory=dict)


class JobApplicationEvent(BaseModel):
	recruiter_id: str
	applicant_id: str
	applicant_name: Optional[str] = None
	job_title: str
	application_id: str


class JobStatusEvent(BaseModel):
	applicant_id: str
	recruiter_id: Optional[str] = None
	job_title: str
	status: str
	application_id: str


@router.post("/notifications", status_code=status.HTTP_201_CREATED, dependencies=[Depends(verify_internal_secret)])
async def create_notification(payload: CreateNotificationRequest, gateway: Gateway = Depends(get_gateway)) -> dict:
	notification = await gateway.notifications.create_notification(
		payload.recipient_id, payload.sender_id, payload.type, payload.payload
	)
	return notification.to_dict()


@router.post("/connection-request", status_code=status.HTTP_201_CREATED, dependencies=[Depends(verify_internal_secret)])
async def connection_request(payload: ConnectionRequestEvent, gateway: Gateway = Depends(get_gateway)) -> dict:
	notification = await triggers.connection_request(
		gateway.notifications,
		recipient_id=payload.recipient_id,
		requester_id=payload.requester_id,
		requester_name=payload.requester_name,
		connection_id=payload.connection_id,
		image_url=payload.image_url,
	)
	return notification.to_dict()


@router.post("/connection-response", status_code=status.HTTP_201_CREATED, dependencies=[Depends(verify_internal_secret)])
async def connection_response(payload: ConnectionResponseEvent, gateway: Gateway = Depends(get_gateway)) -> dict:
	notification = await triggers.connection_response(
		gateway.notifications,
		requester_id=payload.requester_id,
		responder_id=payload.responder_id,
		responder_name=payload.responder_name,
		connection_id=payload.connection_id,
		accepted=payload.accepted,
		image_url=payload.image_url,
	)
	if payload.accepted and payload.connection is not None:
		await gateway.notify_new_connection(payload.requester_id, payload.connection)
	return notification.to_dict()


@router.post("/post-interaction", dependencies=[Depends(verify_internal_secret)])
async def post_interaction(payload: PostInteractionEvent, gateway: Gateway = Depends(get_gateway)) -> dict:
	notification = await triggers.post_interaction(
		gateway.notifications,
		NotificationType(payload.type),
		author_id=payload.author_id,
		actor_id=payload.actor_id,
		actor_name=payload.actor_name,
		post_id=payload.post_id,
		image_url=payload.image_url,
	)
	return {"notification": notification.to_dict() if notification else None}


@router.post("/post-published", dependencies=[Depends(verify_internal_secret)])
async def post_published(payload: PostPublishedEvent, gateway: Gateway = Depends(get_gateway)) -> dict:
	created = await triggers.post_published(
		gateway.notifications,
		author_id=payload.author_id,
		author_name=payload.author_name,
		post_id=payload.post_id,
		connection_ids=payload.connection_ids,
		image_url=payload.image_url,
	)
	await gateway.broadcast_post_update(payload.post_id, {"type": "new_post", "post": payload.post})
	return {"notified": len(created)}


@router.post("/post-updated", dependencies=[Depends(verify_internal_secret)])
async def post_updated(payload: PostUpdatedEvent, gateway: Gateway = Depends(get_gateway)) -> dict:
	report = await gateway.broadcast_post_update(payload.post_id, payload.update)
	return {"delivered": report.delivered}


@router.post("/job-application", status_code=status.HTTP_201_CREATED, dependencies=[Depends(verify_internal_secret)])
async def job_application(payload: JobApplicationEvent, gateway: Gateway = Depends(get_gateway)) -> dict:
	notification = await triggers.job_application(
		gateway.notifications,
		recruiter_id=payload.recruiter_id,
		applicant_id=payload.applicant_id,
		applicant_name=payload.applicant_name,
		job_title=payload.job_title,
		application_id=payload.application_id,
	)
	return notification.to_dict()


@router.post("/job-status", status_code=status.HTTP_201_CREATED, dependencies=[Depends(verify_internal_secret)])
async def job_status(payload: JobStatusEvent, gateway: Gateway = Depends(get_gateway)) -> dict:
	notification = await triggers.job_status_update(
		gateway.notifications,
		applicant_id=payload.applicant_id,
		recruiter_id=payload.recruiter_id,
		job_title=payload.job_title,
		status=payload.status,
		application_id=payload.application_id,
	)
	return notification.to_dict()
