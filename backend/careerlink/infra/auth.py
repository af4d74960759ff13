"""Authentication helpers for FastAPI endpoints and socket handshakes.

- Access tokens are HS256 JWTs signed with settings.secret_key.
- Dev headers (X-User-Id) are only respected in development.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from careerlink.domain.realtime.errors import AuthError
from careerlink.infra import jwt as jwt_helper
from careerlink.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	display_name: Optional[str] = None
	first_name: Optional[str] = None
	avatar_url: Optional[str] = None

	@property
	def short_name(self) -> str:
		return self.first_name or self.display_name or "Someone"


_bearer_scheme = HTTPBearer(auto_error=False)


def verify_token(token: Optional[str]) -> AuthenticatedUser:
	"""Decode an access token into an AuthenticatedUser.

	Raises AuthError for a missing, malformed, expired or otherwise invalid token.
	"""
	if not token or not str(token).strip():
		raise AuthError("missing_token")
	raw = str(token).strip()
	if raw.lower().startswith("bearer "):
		raw = raw[7:].strip()
	try:
		payload = jwt_helper.decode_access(raw)
	except Exception:
		# Normalise all decode failures
		raise AuthError("invalid_token") from None

	sub = str(payload.get("sub") or payload.get("id") or "").strip()
	if not sub:
		raise AuthError("invalid_token")
	first_name = payload.get("firstName") or payload.get("first_name")
	display_name = payload.get("name") or payload.get("display_name")
	avatar = payload.get("avatar") or payload.get("avatar_url")
	return AuthenticatedUser(
		id=sub,
		display_name=str(display_name) if display_name is not None else None,
		first_name=str(first_name) if first_name is not None else None,
		avatar_url=str(avatar) if avatar is not None else None,
	)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_name: Optional[str] = Header(default=None, alias="X-User-Name"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user.

	In development we allow simple headers. In all other environments, headers are
	ignored and a valid Bearer JWT is required.
	"""
	if credentials and credentials.scheme.lower() == "bearer":
		try:
			return verify_token(credentials.credentials)
		except AuthError:
			raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	if settings.is_dev() and x_user_id:
		return AuthenticatedUser(id=x_user_id, first_name=x_user_name)

	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
