"""Presence registry: which users hold at least one live connection."""

from __future__ import annotations

import asyncio
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from careerlink.obs import metrics as obs_metrics


class PresenceRegistry:
	"""Maps users to their live connection ids.

	A user is online from their first registered connection until their last one
	is unregistered, so several devices can come and go independently.
	"""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._by_user: Dict[str, Set[str]] = {}
		self._by_connection: Dict[str, str] = {}

	async def register(self, user_id: str, connection_id: str) -> bool:
		"""Record a connection; return True when the user just came online."""
		async with self._lock:
			previous = self._by_connection.get(connection_id)
			if previous == user_id:
				return False
			if previous is not None:
				self._detach(previous, connection_id)
			connections = self._by_user.setdefault(user_id, set())
			came_online = not connections
			connections.add(connection_id)
			self._by_connection[connection_id] = user_id
			obs_metrics.presence_online(len(self._by_user))
		if came_online:
			obs_metrics.presence_transition("online")
		return came_online

	async def unregister(self, connection_id: str) -> Tuple[Optional[str], bool]:
		"""Forget a connection; return its user and whether that user went offline."""
		async with self._lock:
			user_id = self._by_connection.pop(connection_id, None)
			if user_id is None:
				return None, False
			went_offline = self._detach(user_id, connection_id)
			obs_metrics.presence_online(len(self._by_user))
		if went_offline:
			obs_metrics.presence_transition("offline")
		return user_id, went_offline

	def _detach(self, user_id: str, connection_id: str) -> bool:
		connections = self._by_user.get(user_id)
		if connections is None:
			return False
		connections.discard(connection_id)
		if connections:
			return False
		del self._by_user[user_id]
		return True

	def is_online(self, user_id: str) -> bool:
		return bool(self._by_user.get(user_id))

	def connections_for(self, user_id: str) -> FrozenSet[str]:
		return frozenset(self._by_user.get(user_id, ()))

	def user_for(self, connection_id: str) -> Optional[str]:
		return self._by_connection.get(connection_id)

	def online_users(self) -> List[str]:
		return list(self._by_user)
