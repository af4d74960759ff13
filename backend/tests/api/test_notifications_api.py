import pytest

from careerlink.domain.notifications.models import NotificationType

B = {"X-User-Id": "user-b"}
C = {"X-User-Id": "user-c"}


async def _seed(gateway, recipient="user-b", count=3):
	created = []
	for index in range(count):
		created.append(
			await gateway.notifications.create_notification(
				recipient,
				"user-a",
				NotificationType.POST_SHARED,
				{
					"title": "Post Shared",
					"message": "Ana shared your post",
					"source_id": f"post-{index}",
					"source_kind": "Post",
				},
			)
		)
	return created


@pytest.mark.asyncio
async def test_list_and_unread_only(api_client, gateway):
	created = await _seed(gateway)
	await gateway.notifications.mark_read(created[0].notification_id, "user-b")

	listing = (await api_client.get("/notifications", params={"limit": 2}, headers=B)).json()
	assert listing["total"] == 3
	assert listing["unread_count"] == 2
	assert listing["has_more"] is True
	assert "time_ago" in listing["items"][0]

	unread = (await api_client.get("/notifications", params={"unreadOnly": "true"}, headers=B)).json()
	assert unread["total"] == 2
	assert all(not item["is_read"] for item in unread["items"])


@pytest.mark.asyncio
async def test_mark_read_routes(api_client, gateway):
	created = await _seed(gateway)
	ids = [n.notification_id for n in created]

	single = await api_client.put(f"/notifications/{ids[0]}/read", headers=B)
	assert single.status_code == 200
	assert single.json()["is_read"] is True

	other = await api_client.put(f"/notifications/{ids[1]}/read", headers=C)
	assert other.status_code == 403

	selected = await api_client.put("/notifications/mark-selected-read", json={"notification_ids": ids[:2]}, headers=B)
	assert selected.json() == {"updated": 1}

	everything = await api_client.put("/notifications/mark-all-read", headers=B)
	assert everything.json() == {"updated": 1}
	assert (await api_client.get("/notifications/unread-count", headers=B)).json() == {"unread_count": 0}


@pytest.mark.asyncio
async def test_delete_routes(api_client, gateway):
	created = await _seed(gateway, count=4)
	ids = [n.notification_id for n in created]

	response = await api_client.delete(f"/notifications/{ids[0]}", headers=B)
	assert response.status_code == 204
	missing = await api_client.delete(f"/notifications/{ids[0]}", headers=B)
	assert missing.status_code == 404

	response = await api_client.request("DELETE", "/notifications/delete-selected", json={"notification_ids": ids[1:3]}, headers=B)
	assert response.json() == {"deleted": 2}

	cleared = await api_client.delete("/notifications/clear-all", headers=B)
	assert cleared.json() == {"deleted": 1}


@pytest.mark.asyncio
async def test_type_counts(api_client, gateway):
	await _seed(gateway, count=2)
	response = await api_client.get("/notifications/types", headers=B)
	assert response.json() == [{"type": "post_shared", "count": 2, "unread": 2}]


@pytest.mark.asyncio
async def test_empty_selection_is_rejected(api_client):
	response = await api_client.put("/notifications/mark-selected-read", json={"notification_ids": []}, headers=B)
	assert response.status_code == 422
