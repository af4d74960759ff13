"""Notification builders for domain events raised by the job-board API."""

from __future__ import annotations

from typing import Iterable, List, Optional

from careerlink.domain.notifications.models import Notification, NotificationType, Priority, SourceKind
from careerlink.domain.notifications.schemas import NotificationPayload
from careerlink.domain.notifications.service import NotificationEngine

# Connection fan-out for new posts is capped to avoid notification spam
POST_FANOUT_LIMIT = 50


def _name(value: Optional[str]) -> str:
	return (value or "").strip() or "Someone"


async def message_received(
	engine: NotificationEngine,
	*,
	recipient_id: str,
	sender_id: str,
	sender_name: Optional[str],
	conversation_id: str,
	message_id: str,
) -> Notification:
	payload = NotificationPayload(
		title="New Message",
		message=f"{_name(sender_name)} sent you a message",
		source_id=conversation_id,
		source_kind=SourceKind.CHAT,
		action_url=f"/chat?chatId={conversation_id}",
		metadata={"message_id": message_id},
	)
	return await engine.create_notification(recipient_id, sender_id, NotificationType.MESSAGE_RECEIVED, payload)


async def connection_request(
	engine: NotificationEngine,
	*,
	recipient_id: str,
	requester_id: str,
	requester_name: Optional[str],
	connection_id: str,
	image_url: Optional[str] = None,
) -> Notification:
	payload = NotificationPayload(
		title="New Connection Request",
		message=f"{_name(requester_name)} wants to connect with you",
		source_id=connection_id,
		source_kind=SourceKind.CONNECTION,
		action_url="/connections/requests",
		image_url=image_url,
	)
	return await engine.create_notification(recipient_id, requester_id, NotificationType.CONNECTION_REQUEST, payload)


async def connection_response(
	engine: NotificationEngine,
	*,
	requester_id: str,
	responder_id: str,
	responder_name: Optional[str],
	connection_id: str,
	accepted: bool,
	image_url: Optional[str] = None,
) -> Notification:
	verb = "accepted" if accepted else "declined"
	payload = NotificationPayload(
		title="Connection Accepted" if accepted else "Connection Declined",
		message=f"{_name(responder_name)} {verb} your connection request",
		source_id=connection_id,
		source_kind=SourceKind.CONNECTION,
		action_url=f"/profile/{responder_id}" if accepted else "/connections",
		image_url=image_url,
	)
	type_ = NotificationType.CONNECTION_ACCEPTED if accepted else NotificationType.CONNECTION_DECLINED
	return await engine.create_notification(requester_id, responder_id, type_, payload)


_POST_ACTIONS = {
	NotificationType.POST_LIKED: ("Post Liked", "liked your post"),
	NotificationType.POST_COMMENTED: ("New Comment", "commented on your post"),
	NotificationType.POST_SHARED: ("Post Shared", "shared your post"),
}


async def post_interaction(
	engine: NotificationEngine,
	type_: NotificationType,
	*,
	author_id: str,
	actor_id: str,
	actor_name: Optional[str],
	post_id: str,
	image_url: Optional[str] = None,
) -> Optional[Notification]:
	"""Notify a post's author about a like, comment or share. Own-post activity is skipped."""
	if author_id == actor_id:
		return None
	title, verb = _POST_ACTIONS[type_]
	payload = NotificationPayload(
		title=title,
		message=f"{_name(actor_name)} {verb}",
		source_id=post_id,
		source_kind=SourceKind.POST,
		action_url=f"/post/{post_id}",
		image_url=image_url,
	)
	return await engine.create_notification(author_id, actor_id, type_, payload)


async def post_published(
	engine: NotificationEngine,
	*,
	author_id: str,
	author_name: Optional[str],
	post_id: str,
	connection_ids: Iterable[str],
	image_url: Optional[str] = None,
) -> List[Notification]:
	recipients = [rid for rid in dict.fromkeys(connection_ids) if rid and rid != author_id]
	if not recipients or len(recipients) > POST_FANOUT_LIMIT:
		return []
	payload = NotificationPayload(
		title="New Post",
		message=f"{_name(author_name)} shared a new post",
		source_id=post_id,
		source_kind=SourceKind.POST,
		action_url=f"/post/{post_id}",
		image_url=image_url,
	)
	return await engine.create_bulk(recipients, author_id, NotificationType.JOB_POSTED, payload)


async def job_application(
	engine: NotificationEngine,
	*,
	recruiter_id: str,
	applicant_id: str,
	applicant_name: Optional[str],
	job_title: str,
	application_id: str,
) -> Notification:
	payload = NotificationPayload(
		title="New Application",
		message=f"{_name(applicant_name)} applied for {job_title}",
		source_id=application_id,
		source_kind=SourceKind.APPLICATION,
		action_url="/recruiter/applications",
		priority=Priority.HIGH,
	)
	return await engine.create_notification(recruiter_id, applicant_id, NotificationType.JOB_APPLICATION, payload)


async def job_status_update(
	engine: NotificationEngine,
	*,
	applicant_id: str,
	recruiter_id: Optional[str],
	job_title: str,
	status: str,
	application_id: str,
) -> Notification:
	readable = status.replace("_", " ").strip()
	payload = NotificationPayload(
		title="Application Update",
		message=f"Your application for {job_title} is now {readable}",
		source_id=application_id,
		source_kind=SourceKind.APPLICATION,
		action_url="/applications",
		priority=Priority.HIGH,
		metadata={"status": status},
	)
	return await engine.create_notification(applicant_id, recruiter_id, NotificationType.JOB_STATUS_UPDATE, payload)
