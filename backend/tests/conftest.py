import os
import sys
from pathlib import Path
from typing import Any, List, Optional, Set, Tuple

# Settings are read at import time, so the test environment must be in place first
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("ENV", "dev")
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef0123456789")
os.environ.setdefault("INTERNAL_SECRET", "internal-test-secret")
os.environ.setdefault("MAINTENANCE_ENABLED", "false")

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from careerlink.domain.chat.store import InMemoryChatStore
from careerlink.domain.notifications.store import InMemoryNotificationStore
from careerlink.domain.realtime.gateway import Gateway
from careerlink.infra import postgres
from careerlink.infra.jwt import encode_access
from careerlink.main import app
from careerlink.settings import settings


class RecordingSink:
	"""EventSink that records every emit; selected connections can be made to fail."""

	def __init__(self) -> None:
		self.sent: List[Tuple[Optional[str], str, Any]] = []
		self.failing: Set[str] = set()

	async def emit(self, event: str, data: Any = None, *, to: Optional[str] = None, **kwargs: Any) -> None:
		if to in self.failing:
			raise ConnectionError("transport closed")
		self.sent.append((to, event, data))

	def events_for(self, connection_id: str, event: Optional[str] = None) -> List[Any]:
		return [data for to, name, data in self.sent if to == connection_id and (event is None or name == event)]

	def names_for(self, connection_id: str) -> List[str]:
		return [name for to, name, _ in self.sent if to == connection_id]

	def clear(self) -> None:
		self.sent.clear()


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from careerlink.infra.redis import redis_client, set_redis_client

	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Dev mode lets API tests authenticate with the X-User-Id header."""
	original_env = settings.environment
	settings.environment = "dev"
	try:
		yield
	finally:
		settings.environment = original_env


@pytest.fixture
def sink() -> RecordingSink:
	return RecordingSink()


@pytest.fixture
def gateway(sink: RecordingSink) -> Gateway:
	instance = Gateway(InMemoryChatStore(), InMemoryNotificationStore())
	instance.bind(sink)
	return instance


@pytest.fixture
def token_for():
	def _token(user_id: str, first_name: Optional[str] = None) -> str:
		claims = {"sub": user_id}
		if first_name:
			claims["firstName"] = first_name
		return encode_access(claims)

	return _token


@pytest_asyncio.fixture
async def api_client(gateway: Gateway):
	original = app.state.gateway
	app.state.gateway = gateway
	transport = ASGITransport(app=app)
	try:
		async with AsyncClient(transport=transport, base_url="http://testserver") as client:
			yield client
	finally:
		app.state.gateway = original
