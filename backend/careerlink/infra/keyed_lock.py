"""Per-key asyncio locks.

Used to serialise work that shares a key (a conversation, a notification group)
while letting unrelated keys proceed concurrently. Entries are dropped once no
task holds or waits on them.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class _Entry:
	__slots__ = ("lock", "refs")

	def __init__(self) -> None:
		self.lock = asyncio.Lock()
		self.refs = 0


class KeyedLock:
	def __init__(self) -> None:
		self._entries: Dict[str, _Entry] = {}

	@asynccontextmanager
	async def hold(self, key: str) -> AsyncIterator[None]:
		entry = self._entries.get(key)
		if entry is None:
			entry = _Entry()
			self._entries[key] = entry
		entry.refs += 1
		try:
			async with entry.lock:
				yield
		finally:
			entry.refs -= 1
			if entry.refs == 0 and self._entries.get(key) is entry:
				del self._entries[key]

	def __len__(self) -> int:
		return len(self._entries)
