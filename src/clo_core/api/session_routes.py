# API - Session bootstrap
#
# The embedding app (mobile/desktop shell) trades the local bootstrap
# secret for a per-user Bearer session token:
#
#   POST   /api/session   X-Bootstrap-Token: <CLO_BOOTSTRAP_TOKEN>
#                         {"user_id": "..."}  ->  {"token": "..."}
#   DELETE /api/session   Authorization: Bearer <token>   (sign out)
#
# Without a configured bootstrap secret no sessions can be issued over HTTP.

import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field

from ..core import EventSeverity, EventType, get_audit_logger
from ..exceptions import NotConfiguredError, UnauthorizedError
from .security import bearer_token, get_current_user
from .services import Services, get_services

router = APIRouter(prefix="/api/session", tags=["session"])


class SessionRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128, pattern=r"^\S+$")


def _bootstrap_matches(presented: Optional[str], expected: str) -> bool:
    if not presented:
        return False
    # Constant-time comparison to prevent timing attacks
    return secrets.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


@router.post("")
async def issue_session(
    request: SessionRequest,
    x_bootstrap_token: Optional[str] = Header(None),
    services: Services = Depends(get_services),
):
    """
    Issue a session token for ``user_id``.

    Raises:
        NotConfiguredError: no bootstrap secret configured (400)
        UnauthorizedError: missing or wrong X-Bootstrap-Token (401)
    """
    expected = services.settings.bootstrap_token
    if not expected:
        raise NotConfiguredError("Session bootstrap is not configured")

    audit = get_audit_logger()
    if not _bootstrap_matches(x_bootstrap_token, expected):
        audit.log_event(
            EventType.SESSION_DENIED,
            EventSeverity.INVESTIGATE,
            "Session request with invalid bootstrap token",
            details={"user_id": request.user_id},
        )
        raise UnauthorizedError("Invalid bootstrap token")

    token = services.sessions.issue(request.user_id)
    audit.log_event(
        EventType.SESSION_ISSUED,
        EventSeverity.INFO,
        "Session issued",
        details={"user_id": request.user_id},
    )
    return {"success": True, "data": {"token": token, "user_id": request.user_id}}


@router.delete("")
async def revoke_session(
    authorization: Optional[str] = Header(None),
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Sign out: the presented token stops working immediately."""
    services.sessions.revoke(bearer_token(authorization))
    get_audit_logger().log_event(
        EventType.SESSION_REVOKED,
        EventSeverity.INFO,
        "Session revoked",
        details={"user_id": user_id},
    )
    return {"success": True}
