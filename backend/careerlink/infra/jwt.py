"""JWT helpers for access tokens issued by the job-board API.

Tokens are minted elsewhere; this service only verifies them (HS256 with the
shared secret). Issuer and audience are checked when configured.
"""

from __future__ import annotations

import time
from typing import Any, Dict

import jwt
from jwt import InvalidTokenError

from careerlink.settings import settings


def encode_access(payload: dict[str, object], *, ttl_seconds: int = 3600) -> str:
	"""Encode an access token; used by tests and local tooling only."""
	now = int(time.time())
	body: Dict[str, Any] = {"iat": now, "exp": now + ttl_seconds}
	if settings.jwt_issuer:
		body["iss"] = settings.jwt_issuer
	if settings.jwt_audience:
		body["aud"] = settings.jwt_audience
	body.update(payload)
	return jwt.encode(body, settings.secret_key, algorithm="HS256")


def decode_access(token: str) -> dict[str, object]:
	"""Decode and validate an access token.

	Raises jwt.InvalidTokenError subclasses on failure.
	"""
	required = ["exp"]
	if settings.jwt_issuer:
		required.append("iss")
	if settings.jwt_audience:
		required.append("aud")
	payload = jwt.decode(
		token,
		settings.secret_key,
		algorithms=["HS256"],
		audience=settings.jwt_audience,
		issuer=settings.jwt_issuer,
		leeway=5,
		options={"require": required},
	)
	# The job-board API historically put the user id under "id"
	if not (payload.get("sub") or payload.get("id")):
		raise InvalidTokenError("missing_claim:sub")
	return payload  # type: ignore[return-value]
