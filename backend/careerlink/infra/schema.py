"""Postgres schema for chat and notification state."""

from __future__ import annotations

import logging

import asyncpg

LOGGER = logging.getLogger(__name__)

_STATEMENTS = (
	"""
	CREATE TABLE IF NOT EXISTS chat_conversations (
		conversation_id TEXT PRIMARY KEY,
		kind TEXT NOT NULL DEFAULT 'direct',
		participant_ids TEXT[] NOT NULL,
		direct_key TEXT UNIQUE,
		last_message_id TEXT,
		last_activity_at TIMESTAMPTZ NOT NULL,
		last_seq BIGINT NOT NULL DEFAULT 0,
		is_active BOOLEAN NOT NULL DEFAULT TRUE,
		created_at TIMESTAMPTZ NOT NULL
	)
	""",
	"CREATE INDEX IF NOT EXISTS idx_chat_conversations_participants ON chat_conversations USING GIN (participant_ids)",
	"""
	CREATE TABLE IF NOT EXISTS chat_messages (
		message_id TEXT PRIMARY KEY,
		conversation_id TEXT NOT NULL REFERENCES chat_conversations(conversation_id),
		seq BIGINT NOT NULL,
		sender_id TEXT NOT NULL,
		content TEXT NOT NULL,
		kind TEXT NOT NULL DEFAULT 'text',
		file JSONB,
		reply_to TEXT,
		created_at TIMESTAMPTZ NOT NULL,
		is_edited BOOLEAN NOT NULL DEFAULT FALSE,
		edited_at TIMESTAMPTZ,
		original_content TEXT,
		is_deleted BOOLEAN NOT NULL DEFAULT FALSE,
		deleted_at TIMESTAMPTZ,
		UNIQUE (conversation_id, seq)
	)
	""",
	"""
	CREATE TABLE IF NOT EXISTS chat_read_receipts (
		message_id TEXT NOT NULL REFERENCES chat_messages(message_id),
		user_id TEXT NOT NULL,
		read_at TIMESTAMPTZ NOT NULL,
		PRIMARY KEY (message_id, user_id)
	)
	""",
	"""
	CREATE TABLE IF NOT EXISTS notifications (
		notification_id TEXT PRIMARY KEY,
		recipient_id TEXT NOT NULL,
		sender_id TEXT,
		type TEXT NOT NULL,
		title TEXT NOT NULL,
		message TEXT NOT NULL,
		source_id TEXT NOT NULL,
		source_kind TEXT NOT NULL,
		action_url TEXT,
		image_url TEXT,
		is_read BOOLEAN NOT NULL DEFAULT FALSE,
		read_at TIMESTAMPTZ,
		group_key TEXT NOT NULL,
		priority TEXT NOT NULL DEFAULT 'medium',
		metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
		created_at TIMESTAMPTZ NOT NULL,
		updated_at TIMESTAMPTZ NOT NULL,
		expires_at TIMESTAMPTZ
	)
	""",
	"CREATE INDEX IF NOT EXISTS idx_notifications_recipient ON notifications (recipient_id, is_read, created_at DESC)",
	"CREATE INDEX IF NOT EXISTS idx_notifications_group ON notifications (group_key, recipient_id)",
	"CREATE INDEX IF NOT EXISTS idx_notifications_expiry ON notifications (expires_at) WHERE expires_at IS NOT NULL",
)


async def ensure_schema(pool: asyncpg.pool.Pool) -> None:
	async with pool.acquire() as conn:
		async with conn.transaction():
			for statement in _STATEMENTS:
				await conn.execute(statement)
	LOGGER.info("schema_ready", extra={"tables": 4})
