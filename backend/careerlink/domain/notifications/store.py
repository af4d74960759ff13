"""Durable notification state."""

from __future__ import annotations

import asyncio
import copy
import json
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, Iterable, List, Optional, Protocol, Tuple

import asyncpg

from careerlink.domain.notifications.models import Notification, NotificationType, Priority, SourceKind
from careerlink.domain.realtime.errors import PersistenceFailure
from careerlink.infra.postgres import get_pool


class NotificationStore(Protocol):
	async def insert(self, notification: Notification) -> Notification:
		...

	async def find_groupable(self, group_key: str, recipient_id: str, since: datetime) -> Optional[Notification]:
		...

	async def regroup(
		self,
		notification_id: str,
		*,
		title: str,
		message: str,
		sender_id: Optional[str],
		metadata: dict,
		updated_at: datetime,
	) -> Optional[Notification]:
		"""Update an unread grouped record in place. Returns None when it was read or removed."""
		...

	async def get(self, notification_id: str) -> Optional[Notification]:
		...

	async def get_many(self, notification_ids: Iterable[str]) -> List[Notification]:
		...

	async def list_for(
		self, recipient_id: str, *, now: datetime, unread_only: bool, offset: int, limit: int
	) -> List[Notification]:
		...

	async def count_for(self, recipient_id: str, *, now: datetime, unread_only: bool) -> int:
		...

	async def mark_read(self, recipient_id: str, read_at: datetime, notification_ids: Optional[Iterable[str]] = None) -> int:
		...

	async def delete(self, recipient_id: str, notification_ids: Iterable[str]) -> int:
		...

	async def clear(self, recipient_id: str) -> int:
		...

	async def type_counts(self, recipient_id: str, *, now: datetime) -> List[Tuple[str, int, int]]:
		...

	async def purge(self, *, now: datetime, read_before: datetime) -> int:
		...


class InMemoryNotificationStore:
	"""Process-local store used in tests and when STORE_BACKEND=memory."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._items: Dict[str, Notification] = {}

	async def insert(self, notification: Notification) -> Notification:
		async with self._lock:
			self._items[notification.notification_id] = copy.deepcopy(notification)
			return notification

	async def find_groupable(self, group_key: str, recipient_id: str, since: datetime) -> Optional[Notification]:
		async with self._lock:
			candidates = [
				n
				for n in self._items.values()
				if n.group_key == group_key
				and n.recipient_id == recipient_id
				and not n.is_read
				and n.created_at >= since
			]
			if not candidates:
				return None
			latest = max(candidates, key=lambda n: n.created_at)
			return copy.deepcopy(latest)

	async def regroup(
		self,
		notification_id: str,
		*,
		title: str,
		message: str,
		sender_id: Optional[str],
		metadata: dict,
		updated_at: datetime,
	) -> Optional[Notification]:
		async with self._lock:
			stored = self._items.get(notification_id)
			if stored is None or stored.is_read:
				return None
			stored.title = title
			stored.message = message
			stored.sender_id = sender_id
			stored.metadata = dict(metadata)
			stored.updated_at = updated_at
			return copy.deepcopy(stored)

	async def get(self, notification_id: str) -> Optional[Notification]:
		async with self._lock:
			item = self._items.get(notification_id)
			return copy.deepcopy(item) if item else None

	async def get_many(self, notification_ids: Iterable[str]) -> List[Notification]:
		async with self._lock:
			return [copy.deepcopy(self._items[nid]) for nid in dict.fromkeys(notification_ids) if nid in self._items]

	def _visible(self, recipient_id: str, now: datetime, unread_only: bool) -> List[Notification]:
		items = [
			n
			for n in self._items.values()
			if n.recipient_id == recipient_id and not n.is_expired(now) and (not unread_only or not n.is_read)
		]
		items.sort(key=lambda n: (n.created_at, n.notification_id), reverse=True)
		return items

	async def list_for(
		self, recipient_id: str, *, now: datetime, unread_only: bool, offset: int, limit: int
	) -> List[Notification]:
		async with self._lock:
			items = self._visible(recipient_id, now, unread_only)
			return [copy.deepcopy(n) for n in items[offset : offset + limit]]

	async def count_for(self, recipient_id: str, *, now: datetime, unread_only: bool) -> int:
		async with self._lock:
			return len(self._visible(recipient_id, now, unread_only))

	async def mark_read(self, recipient_id: str, read_at: datetime, notification_ids: Optional[Iterable[str]] = None) -> int:
		wanted = set(notification_ids) if notification_ids is not None else None
		updated = 0
		async with self._lock:
			for item in self._items.values():
				if item.recipient_id != recipient_id or item.is_read:
					continue
				if wanted is not None and item.notification_id not in wanted:
					continue
				item.is_read = True
				item.read_at = read_at
				updated += 1
		return updated

	async def delete(self, recipient_id: str, notification_ids: Iterable[str]) -> int:
		removed = 0
		async with self._lock:
			for nid in set(notification_ids):
				item = self._items.get(nid)
				if item is not None and item.recipient_id == recipient_id:
					del self._items[nid]
					removed += 1
		return removed

	async def clear(self, recipient_id: str) -> int:
		async with self._lock:
			doomed = [nid for nid, n in self._items.items() if n.recipient_id == recipient_id]
			for nid in doomed:
				del self._items[nid]
			return len(doomed)

	async def type_counts(self, recipient_id: str, *, now: datetime) -> List[Tuple[str, int, int]]:
		totals: Dict[str, List[int]] = {}
		async with self._lock:
			for item in self._visible(recipient_id, now, False):
				entry = totals.setdefault(item.type.value, [0, 0])
				entry[0] += 1
				if not item.is_read:
					entry[1] += 1
		return sorted(((name, total, unread) for name, (total, unread) in totals.items()), key=lambda t: -t[1])

	async def purge(self, *, now: datetime, read_before: datetime) -> int:
		async with self._lock:
			doomed = [
				nid
				for nid, n in self._items.items()
				if n.is_expired(now) or (n.is_read and n.created_at < read_before)
			]
			for nid in doomed:
				del self._items[nid]
			return len(doomed)


_COLUMNS = (
	"notification_id, recipient_id, sender_id, type, title, message, source_id, source_kind, action_url, "
	"image_url, is_read, read_at, group_key, priority, metadata, created_at, updated_at, expires_at"
)


def _affected(result: str) -> int:
	try:
		return int(result.rsplit(" ", 1)[-1])
	except (ValueError, IndexError):
		return 0


class PostgresNotificationStore:
	"""asyncpg-backed store; driver failures surface as PersistenceFailure."""

	def __init__(self, pool: asyncpg.pool.Pool | None = None) -> None:
		self._pool = pool

	@asynccontextmanager
	async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
		try:
			pool = self._pool or await get_pool()
			async with pool.acquire() as conn:
				yield conn
		except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as exc:
			raise PersistenceFailure("store_unavailable") from exc

	async def insert(self, notification: Notification) -> Notification:
		async with self._connection() as conn:
			await conn.execute(
				f"""
				INSERT INTO notifications ({_COLUMNS})
				VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17, $18)
				""",
				notification.notification_id,
				notification.recipient_id,
				notification.sender_id,
				notification.type.value,
				notification.title,
				notification.message,
				notification.source_id,
				notification.source_kind.value,
				notification.action_url,
				notification.image_url,
				notification.is_read,
				notification.read_at,
				notification.group_key,
				notification.priority.value,
				json.dumps(notification.metadata),
				notification.created_at,
				notification.updated_at,
				notification.expires_at,
			)
		return notification

	async def find_groupable(self, group_key: str, recipient_id: str, since: datetime) -> Optional[Notification]:
		async with self._connection() as conn:
			row = await conn.fetchrow(
				f"""
				SELECT {_COLUMNS} FROM notifications
				WHERE group_key = $1 AND recipient_id = $2 AND NOT is_read AND created_at >= $3
				ORDER BY created_at DESC
				LIMIT 1
				""",
				group_key,
				recipient_id,
				since,
			)
			return self._row(row) if row else None

	async def regroup(
		self,
		notification_id: str,
		*,
		title: str,
		message: str,
		sender_id: Optional[str],
		metadata: dict,
		updated_at: datetime,
	) -> Optional[Notification]:
		async with self._connection() as conn:
			row = await conn.fetchrow(
				f"""
				UPDATE notifications
				SET title = $2, message = $3, sender_id = $4, metadata = $5, updated_at = $6
				WHERE notification_id = $1 AND NOT is_read
				RETURNING {_COLUMNS}
				""",
				notification_id,
				title,
				message,
				sender_id,
				json.dumps(metadata),
				updated_at,
			)
		return self._row(row) if row else None

	async def get(self, notification_id: str) -> Optional[Notification]:
		async with self._connection() as conn:
			row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM notifications WHERE notification_id = $1", notification_id)
			return self._row(row) if row else None

	async def get_many(self, notification_ids: Iterable[str]) -> List[Notification]:
		ids = list(dict.fromkeys(notification_ids))
		if not ids:
			return []
		async with self._connection() as conn:
			rows = await conn.fetch(
				f"SELECT {_COLUMNS} FROM notifications WHERE notification_id = ANY($1::text[])",
				ids,
			)
			return [self._row(row) for row in rows]

	async def list_for(
		self, recipient_id: str, *, now: datetime, unread_only: bool, offset: int, limit: int
	) -> List[Notification]:
		unread_clause = " AND NOT is_read" if unread_only else ""
		async with self._connection() as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_COLUMNS} FROM notifications
				WHERE recipient_id = $1 AND (expires_at IS NULL OR expires_at > $2){unread_clause}
				ORDER BY created_at DESC, notification_id DESC
				OFFSET $3 LIMIT $4
				""",
				recipient_id,
				now,
				offset,
				limit,
			)
			return [self._row(row) for row in rows]

	async def count_for(self, recipient_id: str, *, now: datetime, unread_only: bool) -> int:
		unread_clause = " AND NOT is_read" if unread_only else ""
		async with self._connection() as conn:
			value = await conn.fetchval(
				f"""
				SELECT COUNT(*) FROM notifications
				WHERE recipient_id = $1 AND (expires_at IS NULL OR expires_at > $2){unread_clause}
				""",
				recipient_id,
				now,
			)
			return int(value or 0)

	async def mark_read(self, recipient_id: str, read_at: datetime, notification_ids: Optional[Iterable[str]] = None) -> int:
		params: List[object] = [recipient_id, read_at]
		restrict = ""
		if notification_ids is not None:
			params.append(list(notification_ids))
			restrict = " AND notification_id = ANY($3::text[])"
		async with self._connection() as conn:
			result = await conn.execute(
				"UPDATE notifications SET is_read = TRUE, read_at = $2 WHERE recipient_id = $1 AND NOT is_read" + restrict,
				*params,
			)
		return _affected(result)

	async def delete(self, recipient_id: str, notification_ids: Iterable[str]) -> int:
		async with self._connection() as conn:
			result = await conn.execute(
				"DELETE FROM notifications WHERE recipient_id = $1 AND notification_id = ANY($2::text[])",
				recipient_id,
				list(notification_ids),
			)
		return _affected(result)

	async def clear(self, recipient_id: str) -> int:
		async with self._connection() as conn:
			result = await conn.execute("DELETE FROM notifications WHERE recipient_id = $1", recipient_id)
		return _affected(result)

	async def type_counts(self, recipient_id: str, *, now: datetime) -> List[Tuple[str, int, int]]:
		async with self._connection() as conn:
			rows = await conn.fetch(
				"""
				SELECT type, COUNT(*) AS total, COUNT(*) FILTER (WHERE NOT is_read) AS unread
				FROM notifications
				WHERE recipient_id = $1 AND (expires_at IS NULL OR expires_at > $2)
				GROUP BY type
				ORDER BY total DESC
				""",
				recipient_id,
				now,
			)
		return [(str(row["type"]), int(row["total"]), int(row["unread"])) for row in rows]

	async def purge(self, *, now: datetime, read_before: datetime) -> int:
		async with self._connection() as conn:
			result = await conn.execute(
				"""
				DELETE FROM notifications
				WHERE (expires_at IS NOT NULL AND expires_at <= $1)
					OR (is_read AND created_at < $2)
				""",
				now,
				read_before,
			)
		return _affected(result)

	@staticmethod
	def _row(row) -> Notification:
		metadata = row["metadata"]
		if isinstance(metadata, str):
			metadata = json.loads(metadata) if metadata else {}
		return Notification(
			notification_id=str(row["notification_id"]),
			recipient_id=str(row["recipient_id"]),
			sender_id=row["sender_id"],
			type=NotificationType(row["type"]),
			title=row["title"],
			message=row["message"],
			source_id=str(row["source_id"]),
			source_kind=SourceKind(row["source_kind"]),
			action_url=row["action_url"],
			image_url=row["image_url"],
			is_read=bool(row["is_read"]),
			read_at=row["read_at"],
			group_key=row["group_key"],
			priority=Priority(row["priority"]),
			metadata=dict(metadata or {}),
			created_at=row["created_at"],
			updated_at=row["updated_at"],
			expires_at=row["expires_at"],
		)
