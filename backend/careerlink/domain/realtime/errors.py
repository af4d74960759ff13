"""Domain-level error taxonomy shared by the realtime, chat and notification layers."""

from __future__ import annotations


class RealtimeError(Exception):
	"""Base class for realtime feature errors."""

	reason: str = "unknown"

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class AuthError(RealtimeError):
	"""Missing, malformed, expired or unknown credential at connection time."""

	reason = "auth_failed"


class Unauthorized(RealtimeError):
	"""Authenticated caller is not allowed to act on the resource."""

	reason = "not_authorized"


class InvalidInput(RealtimeError):
	reason = "invalid_input"


class NotFound(RealtimeError):
	reason = "not_found"


class PersistenceFailure(RealtimeError):
	"""The durable store rejected or failed a write."""

	reason = "persistence_failed"


__all__ = [
	"AuthError",
	"InvalidInput",
	"NotFound",
	"PersistenceFailure",
	"RealtimeError",
	"Unauthorized",
]
