import pytest

from careerlink.domain.realtime import events
from careerlink.settings import settings


def _headers():
	return {"X-Internal-Secret": settings.internal_secret}


@pytest.mark.asyncio
async def test_secret_required(api_client):
	response = await api_client.post(
		"/internal/events/post-updated",
		json={"post_id": "post-1"},
		headers={"X-Internal-Secret": "wrong"},
	)
	assert response.status_code == 403


@pytest.mark.asyncio
async def test_create_notification_event(api_client, gateway):
	response = await api_client.post(
		"/internal/events/notifications",
		json={
			"recipient_id": "user-b",
			"sender_id": "user-a",
			"type": "mention",
			"payload": {
				"title": "Mentioned",
				"message": "Ana mentioned you",
				"source_id": "post-1",
				"source_kind": "Post",
			},
		},
		headers=_headers(),
	)
	assert response.status_code == 201
	assert response.json()["group_key"] == "mention_post-1_user-b"
	assert await gateway.notifications.get_unread_count("user-b") == 1


@pytest.mark.asyncio
async def test_post_likes_group_and_own_likes_skip(api_client, gateway):
	body = {"type": "post_liked", "author_id": "user-b", "actor_id": "user-a", "actor_name": "Ana", "post_id": "post-1"}
	first = (await api_client.post("/internal/events/post-interaction", json=body, headers=_headers())).json()
	body.update(actor_id="user-c", actor_name="Cam")
	second = (await api_client.post("/internal/events/post-interaction", json=body, headers=_headers())).json()

	assert first["notification"]["notification_id"] == second["notification"]["notification_id"]
	assert second["notification"]["message"] == "Cam liked your post"

	body.update(actor_id="user-b")
	own = (await api_client.post("/internal/events/post-interaction", json=body, headers=_headers())).json()
	assert own == {"notification": None}
	assert await gateway.notifications.get_unread_count("user-b") == 1


@pytest.mark.asyncio
async def test_connection_accept_pushes_new_connection(api_client, gateway, sink):
	await gateway.connect("sid-a", token=None, dev_user_id="user-a")
	response = await api_client.post(
		"/internal/events/connection-response",
		json={
			"requester_id": "user-a",
			"responder_id": "user-b",
			"responder_name": "Ben",
			"connection_id": "conn-1",
			"accepted": True,
			"connection": {"user_id": "user-b"},
		},
		headers=_headers(),
	)
	assert response.status_code == 201
	assert response.json()["type"] == "connection_accepted"
	assert sink.events_for("sid-a", events.CONNECTION_NEW) == [{"user_id": "user-b"}]
	assert len(sink.events_for("sid-a", events.NOTIFICATION_NEW)) == 1


@pytest.mark.asyncio
async def test_post_published_broadcasts_and_notifies(api_client, gateway, sink):
	await gateway.connect("sid-c", token=None, dev_user_id="user-c")
	response = await api_client.post(
		"/internal/events/post-published",
		json={"author_id": "user-a", "author_name": "Ana", "post_id": "post-9", "connection_ids": ["user-b", "user-c"]},
		headers=_headers(),
	)
	assert response.json() == {"notified": 2}
	updates = sink.events_for("sid-c", events.POST_UPDATED)
	assert updates == [{"post_id": "post-9", "update": {"type": "new_post", "post": None}}]


@pytest.mark.asyncio
async def test_job_events(api_client, gateway):
	application = await api_client.post(
		"/internal/events/job-application",
		json={
			"recruiter_id": "recruiter",
			"applicant_id": "user-b",
			"applicant_name": "Ben",
			"job_title": "Data Analyst",
			"application_id": "app-1",
		},
		headers=_headers(),
	)
	assert application.json()["message"] == "Ben applied for Data Analyst"

	status_update = await api_client.post(
		"/internal/events/job-status",
		json={"applicant_id": "user-b", "recruiter_id": "recruiter", "job_title": "Data Analyst", "status": "hired", "application_id": "app-1"},
		headers=_headers(),
	)
	assert status_update.json()["priority"] == "high"
	assert await gateway.notifications.get_unread_count("user-b") == 1
