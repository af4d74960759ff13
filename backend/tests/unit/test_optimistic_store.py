import copy

import pytest

from careerlink.client.optimistic import (
	AddComment,
	DecrementUnread,
	MarkNotificationRead,
	OptimisticStore,
	ToggleLike,
)


def _post():
	return {
		"post_id": "post-1",
		"is_liked": False,
		"like_count": 3,
		"comments": [{"id": "c-1", "content": "first"}],
		"comment_count": 1,
	}


def test_rollback_restores_exact_snapshot():
	store = OptimisticStore()
	store.load("post-1", _post())
	before = store.state("post-1")

	tentative = store.apply_optimistic("post-1", ToggleLike())
	assert tentative.state["is_liked"] is True
	assert tentative.state["like_count"] == 4

	assert store.rollback(tentative.token) is True
	assert store.state("post-1") == before
	assert store.pending("post-1") == 0


def test_rollback_drops_stacked_mutations():
	store = OptimisticStore()
	store.load("post-1", _post())
	before = store.state("post-1")

	first = store.apply_optimistic("post-1", AddComment("hello"))
	second = store.apply_optimistic("post-1", ToggleLike())
	assert second.state["comment_count"] == 2
	assert first.state["comments"][-1]["id"].startswith("temp-")

	store.rollback(first.token)
	assert store.state("post-1") == before
	assert store.commit(second.token, {"is_liked": True, "like_count": 4}) is False


def test_second_toggle_starts_from_first_tentative_state():
	store = OptimisticStore()
	store.load("post-1", _post())

	first = store.apply_optimistic("post-1", ToggleLike())
	second = store.apply_optimistic("post-1", ToggleLike())

	assert first.state["is_liked"] is True
	assert second.state["is_liked"] is False
	assert second.state["like_count"] == 3


def test_last_server_response_wins():
	store = OptimisticStore()
	store.load("post-1", _post())
	first = store.apply_optimistic("post-1", ToggleLike())
	second = store.apply_optimistic("post-1", ToggleLike())

	assert store.commit(second.token, {"is_liked": False, "like_count": 5}) is True
	# the older response arrives late and must not overwrite the newer one
	assert store.commit(first.token, {"is_liked": True, "like_count": 6}) is False

	state = store.state("post-1")
	assert state["is_liked"] is False
	assert state["like_count"] == 5


def test_in_order_commits_replay_pending_mutations():
	store = OptimisticStore()
	store.load("post-1", _post())
	first = store.apply_optimistic("post-1", ToggleLike())
	second = store.apply_optimistic("post-1", ToggleLike())

	store.commit(first.token, {"is_liked": True, "like_count": 10})
	assert store.state("post-1")["like_count"] == 9
	assert store.pending("post-1") == 1

	store.commit(second.token, {"is_liked": False, "like_count": 9})
	assert store.state("post-1")["is_liked"] is False
	assert store.pending("post-1") == 0


def test_comment_commit_replaces_temporary_comment():
	store = OptimisticStore()
	store.load("post-1", _post())
	tentative = store.apply_optimistic("post-1", AddComment("nice post", author_id="user-b"))

	store.commit(tentative.token, {"comment": {"id": "c-2", "content": "nice post"}, "comment_count": 2})

	state = store.state("post-1")
	assert [c["id"] for c in state["comments"]] == ["c-1", "c-2"]
	assert state["comment_count"] == 2


def test_snapshot_is_isolated_from_caller_mutation():
	store = OptimisticStore()
	original = _post()
	store.load("post-1", original)
	tentative = store.apply_optimistic("post-1", AddComment("x"))
	tentative.state["comments"].clear()
	original["comments"].clear()

	store.rollback(tentative.token)
	assert store.state("post-1")["comments"] == [{"id": "c-1", "content": "first"}]


def test_notification_badge_mutations():
	panel = {
		"unread_count": 2,
		"items": [
			{"notification_id": "n-1", "is_read": False},
			{"notification_id": "n-2", "is_read": True},
		],
	}
	store = OptimisticStore()
	store.load("panel", copy.deepcopy(panel))

	read = store.apply_optimistic("panel", MarkNotificationRead("n-1"))
	assert read.state["unread_count"] == 1
	assert read.state["items"][0]["is_read"] is True

	again = store.apply_optimistic("panel", MarkNotificationRead("n-2"))
	assert again.state["unread_count"] == 1

	store.rollback(read.token)
	assert store.state("panel") == panel

	badge = store.apply_optimistic("panel", DecrementUnread(by=5))
	assert badge.state["unread_count"] == 0


@pytest.mark.asyncio
async def test_submit_rolls_back_on_failure():
	store = OptimisticStore()
	store.load("post-1", _post())
	before = store.state("post-1")

	async def _fail():
		raise ConnectionError("offline")

	with pytest.raises(ConnectionError):
		await store.submit("post-1", ToggleLike(), _fail)
	assert store.state("post-1") == before

	async def _ok():
		return {"is_liked": True, "like_count": 4}

	state = await store.submit("post-1", ToggleLike(), _ok)
	assert state["is_liked"] is True and state["like_count"] == 4
