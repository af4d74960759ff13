"""Last-seen tracking in Redis."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from redis.exceptions import RedisError

from careerlink.infra.redis import redis_client
from careerlink.settings import settings

LOGGER = logging.getLogger(__name__)


def _key(user_id: str) -> str:
	return f"presence:last_seen:{user_id}"


class ActivityTracker:
	"""Stores `last_active` and an `online` flag per user.

	Writes are best-effort: a Redis outage must not break connects or disconnects.
	"""

	def __init__(self, ttl_seconds: Optional[int] = None) -> None:
		self._ttl = ttl_seconds or settings.last_seen_ttl_seconds

	async def touch(self, user_id: str, *, online: Optional[bool] = None) -> Optional[str]:
		now = datetime.now(timezone.utc).isoformat()
		mapping: Dict[str, str] = {"last_active": now}
		if online is not None:
			mapping["online"] = "1" if online else "0"
		key = _key(user_id)
		try:
			async with redis_client.pipeline(transaction=True) as pipe:
				pipe.hset(key, mapping=mapping)
				pipe.expire(key, self._ttl)
				await pipe.execute()
		except RedisError:
			LOGGER.warning("last_seen_write_failed", extra={"user_id": user_id}, exc_info=True)
			return None
		return now

	async def last_seen(self, user_id: str) -> Optional[Dict[str, object]]:
		raw = await redis_client.hgetall(_key(user_id))
		if not raw:
			return None
		return {"last_active": raw.get("last_active"), "online": raw.get("online") == "1"}
