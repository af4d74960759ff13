"""File metadata helpers for chat messages."""

from __future__ import annotations

from typing import Mapping

from careerlink.domain.chat.models import FileMeta, MessageKind
from careerlink.domain.realtime.errors import InvalidInput

_ALLOWED_PREFIXES = ("image/", "video/", "audio/", "application/", "text/")
_MAX_FILE_BYTES = 25 * 1024 * 1024


def normalize_file(kind: MessageKind, entry: Mapping[str, object] | None) -> FileMeta | None:
	"""Validate the file block sent with a message.

	Files are uploaded elsewhere; only their metadata travels with the message:
	- url (required)
	- name (required)
	- size (optional, bytes)
	- media_type (optional; image messages must carry an image/* type when given)
	"""

	if kind not in (MessageKind.FILE, MessageKind.IMAGE):
		if entry:
			raise InvalidInput("file_not_allowed")
		return None
	if not entry:
		raise InvalidInput("file_required")
	url = str(entry.get("url") or "").strip()
	name = str(entry.get("name") or "").strip()
	if not url or not name:
		raise InvalidInput("file_incomplete")
	media_type = str(entry.get("media_type") or "").strip().lower() or None
	if media_type and not media_type.startswith(_ALLOWED_PREFIXES):
		raise InvalidInput("unsupported_media_type")
	if kind is MessageKind.IMAGE and media_type and not media_type.startswith("image/"):
		raise InvalidInput("unsupported_media_type")
	size_raw = entry.get("size")
	size: int | None = None
	if size_raw is not None:
		try:
			size = int(size_raw)  # type: ignore[arg-type]
		except (TypeError, ValueError):
			raise InvalidInput("invalid_file_size") from None
		if size < 0 or size > _MAX_FILE_BYTES:
			raise InvalidInput("invalid_file_size")
	return FileMeta(url=url, name=name, size=size, media_type=media_type)
