import asyncio

import pytest

from careerlink.domain.realtime.presence import PresenceRegistry


@pytest.mark.asyncio
async def test_user_online_until_last_connection_leaves():
	registry = PresenceRegistry()

	assert await registry.register("user-a", "sid-1") is True
	assert await registry.register("user-a", "sid-2") is False
	assert registry.is_online("user-a")
	assert registry.connections_for("user-a") == frozenset({"sid-1", "sid-2"})

	assert await registry.unregister("sid-1") == ("user-a", False)
	assert registry.is_online("user-a")

	assert await registry.unregister("sid-2") == ("user-a", True)
	assert not registry.is_online("user-a")
	assert registry.connections_for("user-a") == frozenset()


@pytest.mark.asyncio
async def test_unknown_connection_unregister_is_noop():
	registry = PresenceRegistry()
	assert await registry.unregister("sid-missing") == (None, False)
	assert registry.online_users() == []


@pytest.mark.asyncio
async def test_online_matches_connection_count_across_sequences():
	registry = PresenceRegistry()
	live = {}
	steps = [
		("reg", "a", "s1"),
		("reg", "b", "s2"),
		("reg", "a", "s3"),
		("unreg", None, "s1"),
		("reg", "b", "s4"),
		("unreg", None, "s2"),
		("unreg", None, "s3"),
		("unreg", None, "s3"),
		("unreg", None, "s4"),
	]
	for action, user, sid in steps:
		if action == "reg":
			await registry.register(user, sid)
			live[sid] = user
		else:
			await registry.unregister(sid)
			live.pop(sid, None)
		for candidate in ("a", "b"):
			assert registry.is_online(candidate) == (candidate in live.values())


@pytest.mark.asyncio
async def test_concurrent_connects_report_single_online_transition():
	registry = PresenceRegistry()
	results = await asyncio.gather(*(registry.register("user-a", f"sid-{i}") for i in range(10)))
	assert results.count(True) == 1
	assert len(registry.connections_for("user-a")) == 10


@pytest.mark.asyncio
async def test_reregistering_connection_under_new_user_moves_it():
	registry = PresenceRegistry()
	await registry.register("user-a", "sid-1")
	assert await registry.register("user-b", "sid-1") is True
	assert not registry.is_online("user-a")
	assert registry.user_for("sid-1") == "user-b"
