import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from careerlink.domain.notifications.models import NotificationType, SourceKind
from careerlink.domain.notifications.policy import GroupingPolicy
from careerlink.domain.notifications.service import NotificationEngine
from careerlink.domain.notifications.store import InMemoryNotificationStore
from careerlink.domain.realtime import events
from careerlink.domain.realtime.errors import InvalidInput, NotFound, Unauthorized

START = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class Clock:
	def __init__(self, now: datetime) -> None:
		self.now = now

	def __call__(self) -> datetime:
		return self.now

	def advance(self, **kwargs) -> None:
		self.now = self.now + timedelta(**kwargs)


def _payload(source_id="post-1", message="Ana liked your post", **extra):
	body = {
		"title": "Post Liked",
		"message": message,
		"source_id": source_id,
		"source_kind": SourceKind.POST,
	}
	body.update(extra)
	return body


@pytest.fixture
def clock():
	return Clock(START)


@pytest.fixture
def engine(clock):
	policy = GroupingPolicy(window=timedelta(hours=24))
	return NotificationEngine(InMemoryNotificationStore(), policy=policy, clock=clock)


@pytest.mark.asyncio
async def test_repeated_likes_collapse_into_latest(engine, clock):
	first = await engine.create_notification("author", "ana", NotificationType.POST_LIKED, _payload())
	clock.advance(hours=2)
	second = await engine.create_notification(
		"author", "ben", "post_liked", _payload(message="Ben liked your post")
	)

	assert second.notification_id == first.notification_id
	listing = await engine.list_notifications("author")
	assert listing.total == 1
	item = listing.items[0]
	assert item["message"] == "Ben liked your post"
	assert item["sender_id"] == "ben"
	assert item["metadata"]["group_size"] == 2


@pytest.mark.asyncio
async def test_grouping_window_boundary(engine, clock):
	await engine.create_notification("author", "ana", NotificationType.POST_LIKED, _payload())
	clock.advance(hours=24, seconds=1)
	await engine.create_notification("author", "ben", NotificationType.POST_LIKED, _payload())

	assert (await engine.list_notifications("author")).total == 2


@pytest.mark.asyncio
async def test_read_notification_is_not_regrouped(engine):
	first = await engine.create_notification("author", "ana", NotificationType.POST_LIKED, _payload())
	await engine.mark_read(first.notification_id, "author")
	second = await engine.create_notification("author", "ben", NotificationType.POST_LIKED, _payload())
	assert second.notification_id != first.notification_id


@pytest.mark.asyncio
async def test_distinct_recipients_never_collapse(engine):
	payload = {
		"title": "New Connection Request",
		"message": "Ana wants to connect with you",
		"source_id": "conn-1",
		"source_kind": "Connection",
	}
	one = await engine.create_notification("user-b", "ana", NotificationType.CONNECTION_REQUEST, payload)
	two = await engine.create_notification("user-c", "ana", NotificationType.CONNECTION_REQUEST, payload)

	assert one.group_key != two.group_key
	assert await engine.get_unread_count("user-b") == 1
	assert await engine.get_unread_count("user-c") == 1


@pytest.mark.asyncio
async def test_non_groupable_type_creates_rows(engine):
	payload = _payload(source_id="conv-1")
	await engine.create_notification("user-b", "ana", NotificationType.MESSAGE_RECEIVED, payload)
	await engine.create_notification("user-b", "ana", NotificationType.MESSAGE_RECEIVED, payload)
	assert await engine.get_unread_count("user-b") == 2


@pytest.mark.asyncio
async def test_expired_notifications_are_hidden_and_purged(engine, clock):
	payload = _payload(source_id="job-1", source_kind="Job")
	created = await engine.create_notification("user-b", "recruiter", NotificationType.JOB_POSTED, payload)
	assert created.expires_at == START + timedelta(days=7)

	clock.advance(days=8)
	assert await engine.get_unread_count("user-b") == 0
	assert await engine.purge() == 1


@pytest.mark.asyncio
async def test_purge_removes_old_read_notifications(engine, clock):
	created = await engine.create_notification("user-b", "ana", NotificationType.POST_SHARED, _payload())
	await engine.mark_read(created.notification_id, "user-b")
	assert await engine.purge() == 0
	clock.advance(days=31)
	assert await engine.purge() == 1


@pytest.mark.asyncio
async def test_mark_read_is_idempotent_and_owned(engine):
	created = await engine.create_notification("user-b", "ana", NotificationType.POST_SHARED, _payload())

	first = await engine.mark_read(created.notification_id, "user-b")
	second = await engine.mark_read(created.notification_id, "user-b")
	assert first.is_read and second.is_read
	assert first.read_at == second.read_at

	with pytest.raises(Unauthorized):
		await engine.mark_read(created.notification_id, "user-c")
	with pytest.raises(NotFound):
		await engine.mark_read("missing", "user-b")


@pytest.mark.asyncio
async def test_mark_many_requires_ownership_of_every_id(engine):
	mine = await engine.create_notification("user-b", "ana", NotificationType.POST_SHARED, _payload())
	theirs = await engine.create_notification("user-c", "ana", NotificationType.POST_SHARED, _payload())

	with pytest.raises(Unauthorized):
		await engine.mark_many_read("user-b", [mine.notification_id, theirs.notification_id])
	assert await engine.get_unread_count("user-b") == 1

	with pytest.raises(InvalidInput):
		await engine.mark_many_read("user-b", [])
	assert await engine.mark_many_read("user-b", [mine.notification_id]) == 1


@pytest.mark.asyncio
async def test_invalid_type_and_payload(engine):
	with pytest.raises(InvalidInput):
		await engine.create_notification("user-b", "ana", "not_a_type", _payload())
	with pytest.raises(InvalidInput):
		await engine.create_notification("user-b", "ana", NotificationType.SYSTEM, {"title": "x"})


@pytest.mark.asyncio
async def test_live_push_only_for_online_recipients(gateway, sink, token_for):
	engine = gateway.notifications
	await engine.create_notification("user-b", "ana", NotificationType.POST_SHARED, _payload())
	assert sink.events_for("sid-b") == []

	await gateway.connect("sid-b", token=token_for("user-b"))
	await engine.create_notification("user-b", "ana", NotificationType.POST_SHARED, _payload(source_id="post-2"))
	pushed = sink.events_for("sid-b", events.NOTIFICATION_NEW)
	assert len(pushed) == 1
	assert pushed[0]["source_id"] == "post-2"

	count = await engine.mark_all_read("user-b")
	assert count == 2
	assert sink.events_for("sid-b", events.NOTIFICATION_ALL_MARKED_READ) == [{"count": 2}]


@pytest.mark.asyncio
async def test_listing_pagination_and_type_counts(engine, clock):
	for index in range(5):
		clock.advance(minutes=1)
		await engine.create_notification(
			"user-b", "ana", NotificationType.POST_SHARED, _payload(source_id=f"post-{index}")
		)
	await engine.create_notification("user-b", "ana", NotificationType.POST_LIKED, _payload())

	page = await engine.list_notifications("user-b", page=1, limit=2)
	assert page.total == 6
	assert page.has_more is True
	assert len(page.items) == 2

	counts = {entry.type: (entry.count, entry.unread) for entry in await engine.type_counts("user-b")}
	assert counts[NotificationType.POST_SHARED] == (5, 5)
	assert counts[NotificationType.POST_LIKED] == (1, 1)

	assert await engine.clear_all("user-b") == 6
	assert await engine.get_unread_count("user-b") == 0


class SlowGroupingStore(InMemoryNotificationStore):
	"""Yields after finding a groupable record, before it is updated."""

	async def find_groupable(self, group_key, recipient_id, since):
		found = await super().find_groupable(group_key, recipient_id, since)
		await asyncio.sleep(0.01)
		return found


@pytest.mark.asyncio
async def test_like_racing_mark_all_read_stays_unread(clock):
	policy = GroupingPolicy(window=timedelta(hours=24))
	engine = NotificationEngine(SlowGroupingStore(), policy=policy, clock=clock)
	first = await engine.create_notification("author", "ana", NotificationType.POST_LIKED, _payload())

	latest, marked = await asyncio.gather(
		engine.create_notification("author", "cam", NotificationType.POST_LIKED, _payload(message="Cam liked your post")),
		engine.mark_all_read("author"),
	)

	assert marked == 1
	assert latest.notification_id != first.notification_id
	assert latest.is_read is False
	assert await engine.get_unread_count("author") == 1
	unread = await engine.list_notifications("author", unread_only=True)
	assert [item["message"] for item in unread.items] == ["Cam liked your post"]


@pytest.mark.asyncio
async def test_regroup_skips_read_records():
	store = InMemoryNotificationStore()
	policy = GroupingPolicy(window=timedelta(hours=24))
	engine = NotificationEngine(store, policy=policy, clock=Clock(START))
	created = await engine.create_notification("author", "ana", NotificationType.POST_LIKED, _payload())
	await engine.mark_read(created.notification_id, "author")

	result = await store.regroup(
		created.notification_id,
		title="Post Liked",
		message="Ben liked your post",
		sender_id="ben",
		metadata={"group_size": 2},
		updated_at=START,
	)

	assert result is None
	stored = await store.get(created.notification_id)
	assert stored.message == "Ana liked your post"
