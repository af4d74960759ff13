"""Notification creation, grouping and delivery."""
