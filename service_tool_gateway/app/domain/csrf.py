"""
CSRF nonces scoped to an action and bound to the caller's session.
"""

import time
import uuid

import jwt

from shared.logging import get_logger
from .auth_middleware import Caller


EXECUTE_ACTION = "execute"
NONCE_ALGORITHM = "HS256"


class NonceManager:
    """Issues and verifies short-lived CSRF tokens."""

    def __init__(self, secret: str, ttl_seconds: int = 12 * 60 * 60):
        self._secret = secret
        self.ttl_seconds = ttl_seconds
        self.logger = get_logger("gateway.csrf")

    def create_nonce(self, action: str, caller: Caller) -> str:
        now = int(time.time())
        claims = {
            "act": action,
            "uid": caller.user_id,
            "sid": caller.session_id or "",
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + self.ttl_seconds,
        }
        return jwt.encode(claims, self._secret, algorithm=NONCE_ALGORITHM)

    def verify_nonce(self, token: str, action: str, caller: Caller) -> bool:
        if not token:
            return False

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[NONCE_ALGORITHM],
                options={"require": ["act", "uid", "exp"]},
            )
        except jwt.PyJWTError as exc:
            self.logger.warning("Nonce rejected", action=action, error=str(exc))
            return False

        if claims["act"] != action or claims["uid"] != caller.user_id:
            self.logger.warning("Nonce scope mismatch", action=action, user_id=caller.user_id)
            return False

        if claims.get("sid", "") != (caller.session_id or ""):
            self.logger.warning("Nonce session mismatch", action=action, user_id=caller.user_id)
            return False

        return True
