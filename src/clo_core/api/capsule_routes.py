# Capsules API - Create, join and list two-party capsules
#
# Endpoints:
# - POST /api/capsules       create a capsule; the response carries the
#                            one-time invite token for the partner
# - POST /api/capsules/join  join as the second party with an invite token
# - GET  /api/capsules       capsules the caller belongs to

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from .security import get_current_user
from .services import Services, get_services

router = APIRouter(prefix="/api/capsules", tags=["capsules"])


class JoinCapsuleRequest(BaseModel):
    invite_token: str


@router.get("")
async def list_capsules(
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    capsules = services.vault.list_capsules(user_id)
    return {"success": True, "data": [capsule.to_dict() for capsule in capsules]}


@router.post("")
async def create_capsule(
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    capsule = services.vault.create_capsule(user_id)
    return {"success": True, "data": capsule.to_dict()}


@router.post("/join")
async def join_capsule(
    request: JoinCapsuleRequest,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Become the capsule's second party. Each invite works once."""
    capsule = services.vault.join_capsule(request.invite_token, user_id)
    return {"success": True, "data": capsule.to_dict()}
