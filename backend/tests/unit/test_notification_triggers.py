import pytest

from careerlink.domain.notifications import triggers
from careerlink.domain.notifications.models import NotificationType, Priority


@pytest.mark.asyncio
async def test_post_interaction_skips_own_post(gateway):
	result = await triggers.post_interaction(
		gateway.notifications,
		NotificationType.POST_LIKED,
		author_id="user-a",
		actor_id="user-a",
		actor_name="Ana",
		post_id="post-1",
	)
	assert result is None
	assert await gateway.notifications.get_unread_count("user-a") == 0


@pytest.mark.asyncio
async def test_comment_notification_targets_author(gateway):
	created = await triggers.post_interaction(
		gateway.notifications,
		NotificationType.POST_COMMENTED,
		author_id="user-a",
		actor_id="user-b",
		actor_name="Ben",
		post_id="post-1",
	)
	assert created is not None
	assert created.recipient_id == "user-a"
	assert created.message == "Ben commented on your post"
	assert created.action_url == "/post/post-1"


@pytest.mark.asyncio
async def test_connection_response_variants(gateway):
	accepted = await triggers.connection_response(
		gateway.notifications,
		requester_id="user-a",
		responder_id="user-b",
		responder_name="Ben",
		connection_id="conn-1",
		accepted=True,
	)
	declined = await triggers.connection_response(
		gateway.notifications,
		requester_id="user-a",
		responder_id="user-c",
		responder_name=None,
		connection_id="conn-2",
		accepted=False,
	)
	assert accepted.type is NotificationType.CONNECTION_ACCEPTED
	assert accepted.action_url == "/profile/user-b"
	assert declined.type is NotificationType.CONNECTION_DECLINED
	assert declined.message == "Someone declined your connection request"


@pytest.mark.asyncio
async def test_post_published_respects_fanout_cap(gateway):
	few = await triggers.post_published(
		gateway.notifications,
		author_id="author",
		author_name="Ana",
		post_id="post-1",
		connection_ids=["user-b", "user-c", "author", "user-b"],
	)
	assert sorted(n.recipient_id for n in few) == ["user-b", "user-c"]

	many = await triggers.post_published(
		gateway.notifications,
		author_id="author",
		author_name="Ana",
		post_id="post-2",
		connection_ids=[f"user-{i}" for i in range(triggers.POST_FANOUT_LIMIT + 1)],
	)
	assert many == []


@pytest.mark.asyncio
async def test_job_status_update_is_high_priority(gateway):
	created = await triggers.job_status_update(
		gateway.notifications,
		applicant_id="user-b",
		recruiter_id="recruiter",
		job_title="Backend Engineer",
		status="under_review",
		application_id="app-1",
	)
	assert created.priority is Priority.HIGH
	assert created.message == "Your application for Backend Engineer is now under review"
	assert created.metadata == {"status": "under_review"}
