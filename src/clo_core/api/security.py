# API Security - Bearer session tokens for the local backend
#
# The embedding app obtains a random session token per signed-in user
# from POST /api/session; every vault and integration route resolves the
# caller from the ``Authorization: Bearer <token>`` header.

import secrets
import threading
from typing import Dict, Optional

from fastapi import Header, Request

from ..exceptions import UnauthorizedError


class SessionRegistry:
    """In-memory map of session token -> user id.

    Tokens are 256-bit ``secrets.token_urlsafe`` values and are compared
    in constant time. Nothing is persisted: restarting the backend signs
    everyone out.
    """

    def __init__(self):
        self._sessions: Dict[str, str] = {}
        self._lock = threading.Lock()

    def issue(self, user_id: str) -> str:
        """Create a new session token for ``user_id``."""
        if not user_id:
            raise ValueError("user_id is required")
        token = secrets.token_urlsafe(32)
        with self._lock:
            self._sessions[token] = user_id
        return token

    def resolve(self, token: Optional[str]) -> Optional[str]:
        """Return the user id for ``token``, or None if unknown."""
        if not token:
            return None
        with self._lock:
            for known, user_id in self._sessions.items():
                if secrets.compare_digest(known, token):
                    return user_id
        return None

    def revoke(self, token: str) -> bool:
        with self._lock:
            return self._sessions.pop(token, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> str:
    """
    FastAPI dependency resolving the caller's user id.

    Raises:
        UnauthorizedError: header missing, malformed or token unknown
    """
    token = bearer_token(authorization)
    if token is None:
        raise UnauthorizedError("Missing authorization header")

    user_id = request.app.state.services.sessions.resolve(token)
    if user_id is None:
        raise UnauthorizedError("Invalid token")
    return user_id
