"""Optimistic state merge for client views of posts and notification badges.

Each mutation moves an entity through tentative -> committed | rolled back.
A single deep-copied snapshot is taken before every mutation so that a
rollback restores the prior state exactly. Mutations on the same entity
stack: a second mutation starts from the first one's tentative state.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import ulid

LOGGER = logging.getLogger(__name__)

TEMP_PREFIX = "temp-"


class Mutation:
	"""Base for optimistic mutations. Subclasses edit the state dict in place."""

	name = "mutation"

	def apply(self, state: Dict[str, Any]) -> None:
		raise NotImplementedError

	def merge(self, state: Dict[str, Any], server_state: Dict[str, Any]) -> None:
		state.update(copy.deepcopy(server_state))


@dataclass(slots=True)
class ToggleLike(Mutation):
	name = "toggle_like"

	def apply(self, state: Dict[str, Any]) -> None:
		liked = bool(state.get("is_liked"))
		count = int(state.get("like_count") or 0)
		state["is_liked"] = not liked
		state["like_count"] = max(0, count - 1) if liked else count + 1


@dataclass(slots=True)
class AddComment(Mutation):
	content: str
	author_id: Optional[str] = None
	temp_id: str = field(default_factory=lambda: f"{TEMP_PREFIX}{ulid.new()}")

	name = "add_comment"

	def apply(self, state: Dict[str, Any]) -> None:
		content = self.content.strip()
		if not content:
			raise ValueError("comment content required")
		comments = list(state.get("comments") or [])
		comments.append(
			{
				"id": self.temp_id,
				"content": content,
				"author_id": self.author_id,
				"created_at": datetime.now(timezone.utc).isoformat(),
				"pending": True,
			}
		)
		state["comments"] = comments
		state["comment_count"] = int(state.get("comment_count") or 0) + 1

	def merge(self, state: Dict[str, Any], server_state: Dict[str, Any]) -> None:
		server = copy.deepcopy(server_state)
		comment = server.pop("comment", None)
		if "comments" not in server and comment is not None:
			comments = [c for c in state.get("comments") or [] if c.get("id") != self.temp_id]
			comments.append(comment)
			state["comments"] = comments
		state.update(server)


@dataclass(slots=True)
class DecrementUnread(Mutation):
	by: int = 1

	name = "decrement_unread"

	def apply(self, state: Dict[str, Any]) -> None:
		state["unread_count"] = max(0, int(state.get("unread_count") or 0) - self.by)


@dataclass(slots=True)
class MarkNotificationRead(Mutation):
	"""Mark one notification in a notification panel read and drop the badge count."""

	notification_id: str

	name = "mark_notification_read"

	def apply(self, state: Dict[str, Any]) -> None:
		items = state.get("items") or []
		for item in items:
			if item.get("notification_id") != self.notification_id:
				continue
			if not item.get("is_read"):
				item["is_read"] = True
				state["unread_count"] = max(0, int(state.get("unread_count") or 0) - 1)
			return


@dataclass(slots=True)
class Tentative:
	token: str
	entity_id: str
	state: Dict[str, Any]


@dataclass(slots=True)
class _Pending:
	token: str
	mutation: Mutation
	snapshot: Dict[str, Any]


class OptimisticStore:
	"""Tracks entity states and their pending optimistic mutations."""

	def __init__(self) -> None:
		self._states: Dict[str, Dict[str, Any]] = {}
		self._pending: Dict[str, List[_Pending]] = {}
		self._owners: Dict[str, str] = {}

	def load(self, entity_id: str, state: Dict[str, Any]) -> None:
		"""Seed or replace an entity with server state, discarding pending mutations."""
		for entry in self._pending.pop(entity_id, []):
			self._owners.pop(entry.token, None)
		self._states[entity_id] = copy.deepcopy(state)

	def state(self, entity_id: str) -> Dict[str, Any]:
		return copy.deepcopy(self._states.get(entity_id, {}))

	def pending(self, entity_id: str) -> int:
		return len(self._pending.get(entity_id, []))

	def apply_optimistic(self, entity_id: str, mutation: Mutation) -> Tentative:
		current = self._states.get(entity_id, {})
		snapshot = copy.deepcopy(current)
		updated = copy.deepcopy(current)
		mutation.apply(updated)
		token = str(ulid.new())
		self._pending.setdefault(entity_id, []).append(_Pending(token, mutation, snapshot))
		self._owners[token] = entity_id
		self._states[entity_id] = updated
		return Tentative(token=token, entity_id=entity_id, state=copy.deepcopy(updated))

	def commit(self, token: str, server_state: Dict[str, Any]) -> bool:
		"""Apply an authoritative response.

		Mutations up to and including this one become committed; later pending
		mutations are replayed on top. Returns False for a response whose
		mutation was already superseded or rolled back.
		"""
		entity_id = self._owners.get(token)
		if entity_id is None:
			LOGGER.debug("optimistic_commit_stale", extra={"token": token})
			return False
		queue = self._pending[entity_id]
		index = next(i for i, entry in enumerate(queue) if entry.token == token)
		committed = queue[index]
		base = copy.deepcopy(committed.snapshot)
		committed.mutation.apply(base)
		committed.mutation.merge(base, server_state)
		for entry in queue[: index + 1]:
			self._owners.pop(entry.token, None)
		remaining = queue[index + 1 :]
		state = base
		for entry in remaining:
			entry.snapshot = copy.deepcopy(state)
			entry.mutation.apply(state)
		self._states[entity_id] = state
		if remaining:
			self._pending[entity_id] = remaining
		else:
			del self._pending[entity_id]
		return True

	def rollback(self, token: str) -> bool:
		"""Restore the snapshot taken before this mutation and drop everything stacked on it."""
		entity_id = self._owners.get(token)
		if entity_id is None:
			return False
		queue = self._pending[entity_id]
		index = next(i for i, entry in enumerate(queue) if entry.token == token)
		self._states[entity_id] = copy.deepcopy(queue[index].snapshot)
		for entry in queue[index:]:
			self._owners.pop(entry.token, None)
		if index:
			self._pending[entity_id] = queue[:index]
		else:
			del self._pending[entity_id]
		return True

	async def submit(
		self,
		entity_id: str,
		mutation: Mutation,
		send: Callable[[], Awaitable[Dict[str, Any]]],
	) -> Dict[str, Any]:
		"""Apply a mutation, await the server call, then commit or roll back."""
		tentative = self.apply_optimistic(entity_id, mutation)
		try:
			server_state = await send()
		except Exception:
			self.rollback(tentative.token)
			LOGGER.warning("optimistic_rollback", extra={"entity_id": entity_id, "mutation": mutation.name})
			raise
		self.commit(tentative.token, server_state)
		return self.state(entity_id)


__all__ = [
	"AddComment",
	"DecrementUnread",
	"MarkNotificationRead",
	"Mutation",
	"OptimisticStore",
	"Tentative",
	"ToggleLike",
]
