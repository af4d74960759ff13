import pytest

from careerlink.domain.chat.models import TOMBSTONE

A = {"X-User-Id": "user-a", "X-User-Name": "Ana"}
B = {"X-User-Id": "user-b"}
C = {"X-User-Id": "user-c"}


async def _start(api_client) -> str:
	response = await api_client.post("/chat/start", json={"participantId": "user-b"}, headers=A)
	assert response.status_code == 200
	return response.json()["conversation_id"]


@pytest.mark.asyncio
async def test_start_is_idempotent_per_pair(api_client):
	first = await _start(api_client)
	again = await api_client.post("/chat/start", json={"participant_id": "user-a"}, headers=B)
	assert again.json()["conversation_id"] == first

	self_chat = await api_client.post("/chat/start", json={"participantId": "user-a"}, headers=A)
	assert self_chat.status_code == 400
	assert self_chat.json()["detail"] == "cannot_message_self"


@pytest.mark.asyncio
async def test_requires_authentication(api_client):
	response = await api_client.get("/chat/conversations")
	assert response.status_code == 401


@pytest.mark.asyncio
async def test_send_list_and_unread_flow(api_client):
	cid = await _start(api_client)
	for text in ("one", "two", "three"):
		response = await api_client.post(f"/chat/{cid}/messages", json={"content": text}, headers=A)
		assert response.status_code == 201

	conversations = (await api_client.get("/chat/conversations", headers=B)).json()
	assert conversations[0]["unread_count"] == 3
	assert conversations[0]["other_participant_ids"] == ["user-a"]

	page = (await api_client.get(f"/chat/{cid}/messages", params={"limit": 2}, headers=B)).json()
	assert [m["content"] for m in page["items"]] == ["two", "three"]
	assert page["next_before_seq"] == 2
	older = (
		await api_client.get(f"/chat/{cid}/messages", params={"limit": 2, "before_seq": 2}, headers=B)
	).json()
	assert [m["content"] for m in older["items"]] == ["one"]
	assert older["next_before_seq"] is None

	first_id = page["items"][0]["message_id"]
	marked = await api_client.put(f"/chat/messages/{first_id}/read", headers=B)
	assert marked.json() == {"message_id": first_id, "updated": True}

	read = (await api_client.put(f"/chat/{cid}/mark-all-read", headers=B)).json()
	assert len(read["message_ids"]) == 2
	assert read["unread_count"] == 0

	info = (await api_client.get(f"/chat/{cid}/info", headers=B)).json()
	assert info["unread_count"] == 0


@pytest.mark.asyncio
async def test_offline_recipient_gets_notification_over_rest(api_client):
	cid = await _start(api_client)
	await api_client.post(f"/chat/{cid}/messages", json={"content": "hello"}, headers=A)

	count = (await api_client.get("/notifications/unread-count", headers=B)).json()
	assert count == {"unread_count": 1}
	listing = (await api_client.get("/notifications", headers=B)).json()
	assert listing["items"][0]["message"] == "Ana sent you a message"


@pytest.mark.asyncio
async def test_non_participant_is_forbidden(api_client):
	cid = await _start(api_client)
	response = await api_client.get(f"/chat/{cid}/messages", headers=C)
	assert response.status_code == 403
	response = await api_client.post(f"/chat/{cid}/messages", json={"content": "hi"}, headers=C)
	assert response.status_code == 403
	missing = await api_client.get("/chat/missing/info", headers=A)
	assert missing.status_code == 404


@pytest.mark.asyncio
async def test_edit_and_delete(api_client):
	cid = await _start(api_client)
	sent = (await api_client.post(f"/chat/{cid}/messages", json={"content": "draft"}, headers=A)).json()
	mid = sent["message_id"]

	forbidden = await api_client.patch(f"/chat/messages/{mid}", json={"content": "x"}, headers=B)
	assert forbidden.status_code == 403

	edited = (await api_client.patch(f"/chat/messages/{mid}", json={"content": "final"}, headers=A)).json()
	assert edited["content"] == "final"
	assert edited["is_edited"] is True

	deleted = (await api_client.delete(f"/chat/messages/{mid}", headers=A)).json()
	assert deleted["content"] == TOMBSTONE
	assert deleted["is_deleted"] is True

	again = await api_client.patch(f"/chat/messages/{mid}", json={"content": "undo"}, headers=A)
	assert again.status_code == 400
	assert again.json()["detail"] == "message_deleted"


@pytest.mark.asyncio
async def test_invalid_message_body(api_client):
	cid = await _start(api_client)
	empty = await api_client.post(f"/chat/{cid}/messages", json={"content": "  "}, headers=A)
	assert empty.status_code == 400
	assert empty.json()["detail"] == "content_required"
	bad_kind = await api_client.post(f"/chat/{cid}/messages", json={"content": "x", "kind": "system"}, headers=A)
	assert bad_kind.status_code == 422
