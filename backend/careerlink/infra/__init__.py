"""Shared infrastructure: Redis, Postgres, auth and rate limiting."""
