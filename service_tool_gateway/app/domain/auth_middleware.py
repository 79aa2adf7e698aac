"""
Caller resolution for Gateway requests.
"""

import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt
from fastapi import Request

from shared.logging import get_logger, set_user_context


ANONYMOUS_USER_ID = "0"
SESSION_ALGORITHM = "HS256"
DEFAULT_SESSION_TTL = 24 * 60 * 60


@dataclass(frozen=True)
class Caller:
    """Identity of the party making a request. Anonymous callers share user id "0"."""

    user_id: str = ANONYMOUS_USER_ID
    authenticated: bool = False
    auth_method: str = "anonymous"
    session_id: Optional[str] = None

    @property
    def cache_key(self) -> str:
        return self.user_id if self.authenticated else ANONYMOUS_USER_ID

    @classmethod
    def anonymous(cls) -> "Caller":
        return cls()


class AuthMiddleware:
    """Authentication middleware for Gateway.

    Resolution order: ``X-API-Key`` header, ``Authorization: Bearer``
    session token, then the session cookie. Invalid credentials resolve to
    the anonymous caller; the endpoints decide whether that is enough.
    """

    def __init__(
        self,
        session_secret: str,
        *,
        api_keys: Optional[Dict[str, str]] = None,
        session_cookie: str = "gateway_session",
    ):
        self._session_secret = session_secret
        self.api_keys = dict(api_keys or {})
        self.session_cookie = session_cookie
        self.logger = get_logger("gateway.auth_middleware")

    async def authenticate_request(self, request: Request) -> Caller:
        """Resolve the caller for this request and stash it on request.state."""
        caller = self._resolve(request)

        try:
            request.state.caller = caller
        except AttributeError:
            pass

        if caller.authenticated:
            set_user_context(caller.user_id)
        return caller

    def _resolve(self, request: Request) -> Caller:
        api_key = request.headers.get("X-API-Key")
        if api_key:
            user_id = self.api_keys.get(api_key)
            if user_id is None:
                self.logger.warning("Unknown API key", api_key=api_key[:8] + "...")
                return Caller.anonymous()
            return Caller(user_id=str(user_id), authenticated=True, auth_method="api_key")

        auth_header = request.headers.get("Authorization")
        if auth_header:
            if not auth_header.startswith("Bearer "):
                self.logger.warning("Invalid authorization header format")
                return Caller.anonymous()
            return self._caller_from_session(auth_header[7:], "bearer")

        cookie = request.cookies.get(self.session_cookie)
        if cookie:
            return self._caller_from_session(cookie, "cookie")

        return Caller.anonymous()

    def _caller_from_session(self, token: str, method: str) -> Caller:
        try:
            claims = jwt.decode(
                token,
                self._session_secret,
                algorithms=[SESSION_ALGORITHM],
                options={"require": ["sub", "exp"]},
            )
        except jwt.PyJWTError as exc:
            self.logger.warning("Session token rejected", auth_method=method, error=str(exc))
            return Caller.anonymous()

        return Caller(
            user_id=str(claims["sub"]),
            authenticated=True,
            auth_method=method,
            session_id=claims.get("sid"),
        )

    def issue_session_token(self, user_id: Any, ttl_seconds: int = DEFAULT_SESSION_TTL) -> str:
        """Mint a session token for user_id (host login flows and tests)."""
        now = int(time.time())
        claims = {
            "sub": str(user_id),
            "sid": uuid.uuid4().hex,
            "iat": now,
            "exp": now + ttl_seconds,
        }
        return jwt.encode(claims, self._session_secret, algorithm=SESSION_ALGORITHM)
