"""Client-side state helpers."""

from careerlink.client.optimistic import (
	AddComment,
	DecrementUnread,
	MarkNotificationRead,
	OptimisticStore,
	Tentative,
	ToggleLike,
)

__all__ = [
	"AddComment",
	"DecrementUnread",
	"MarkNotificationRead",
	"OptimisticStore",
	"Tentative",
	"ToggleLike",
]
