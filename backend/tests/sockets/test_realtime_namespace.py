from unittest.mock import AsyncMock

import pytest
import socketio

from careerlink.domain.chat.store import InMemoryChatStore
from careerlink.domain.notifications.store import InMemoryNotificationStore
from careerlink.domain.realtime import events
from careerlink.domain.realtime.gateway import Gateway, RealtimeNamespace
from careerlink.settings import settings


def _scope_with_authorization(token: str) -> dict:
	return {
		"headers": [(b"authorization", f"Bearer {token}".encode())],
	}


@pytest.fixture
def namespace():
	server = socketio.AsyncServer(async_mode="asgi")
	instance = RealtimeNamespace(Gateway(InMemoryChatStore(), InMemoryNotificationStore()))
	server.register_namespace(instance)
	instance.emit = AsyncMock()
	return instance


@pytest.mark.asyncio
async def test_connect_requires_token(namespace):
	settings.environment = "production"
	with pytest.raises(ConnectionRefusedError):
		await namespace.trigger_event("connect", "sid-1", {"asgi.scope": {"headers": []}})


@pytest.mark.asyncio
async def test_connect_with_header_token(namespace, token_for):
	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": _scope_with_authorization(token_for("user-1"))})

	gateway = namespace._gateway
	assert gateway.identity("sid-1").id == "user-1"
	assert gateway.presence.is_online("user-1")
	assert gateway.router.channels_for("sid-1") == ["user:user-1"]


@pytest.mark.asyncio
async def test_connect_with_auth_payload(namespace, token_for):
	await namespace.on_connect("sid-1", {"asgi.scope": {"headers": []}}, {"token": token_for("user-2")})
	assert namespace._gateway.identity("sid-1").id == "user-2"


@pytest.mark.asyncio
async def test_command_ack_and_error_event(namespace, token_for):
	gateway = namespace._gateway
	conversation = await gateway.chat_store.find_or_create_direct("user-1", "user-2")
	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": _scope_with_authorization(token_for("user-1"))})

	ack = await namespace.trigger_event(
		"chat:message", "sid-1", {"chatId": conversation.conversation_id, "content": "hi"}
	)
	assert ack["ok"] is True
	assert ack["message"]["content"] == "hi"

	ack = await namespace.trigger_event("chat:message", "sid-1", {"chatId": conversation.conversation_id, "content": ""})
	assert ack == {"ok": False, "error": {"code": "content_required", "message": "Content required"}}
	namespace.emit.assert_awaited_with(events.ERROR, ack["error"], to="sid-1")


@pytest.mark.asyncio
async def test_unexpected_failure_reports_internal_error(namespace, token_for, monkeypatch):
	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": _scope_with_authorization(token_for("user-1"))})

	async def _boom(*args, **kwargs):
		raise RuntimeError("boom")

	monkeypatch.setattr(namespace._gateway, "handle", _boom)
	ack = await namespace.trigger_event("user:activity", "sid-1", None)
	assert ack["error"]["code"] == "internal_error"


@pytest.mark.asyncio
async def test_disconnect_unregisters(namespace, token_for):
	await namespace.trigger_event("connect", "sid-1", {"asgi.scope": _scope_with_authorization(token_for("user-1"))})
	await namespace.trigger_event("disconnect", "sid-1")

	gateway = namespace._gateway
	assert not gateway.presence.is_online("user-1")
	assert gateway.identity("sid-1") is None
	assert gateway.router.connections() == []
