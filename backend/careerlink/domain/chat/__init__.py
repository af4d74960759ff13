"""Conversations, messages and read receipts."""
