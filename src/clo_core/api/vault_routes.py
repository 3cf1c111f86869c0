# Vault API - Passcode gate and mutually-approved capsule items
#
# Endpoints:
# - Passcode status/setup/verify and lock, per capsule and party
# - List/upload/approve/delete items (capsule must be unlocked)
# - File upload (base64 body) returning a reference for item upload

import base64
import binascii
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..exceptions import UnauthorizedError, ValidationError, VaultLockedError
from ..vault import FileRef, VaultItemType
from .security import get_current_user
from .services import Services, get_services

router = APIRouter(prefix="/api/vault", tags=["vault"])

MAX_FILE_BYTES = 25 * 1024 * 1024


# Request Models
class PasscodeRequest(BaseModel):
    passcode: str


class FileRefModel(BaseModel):
    url: str = Field(..., min_length=1)
    name: str
    size: int = Field(0, ge=0)
    mime_type: str = "application/octet-stream"
    thumbnail_url: Optional[str] = None


class UploadItemRequest(BaseModel):
    title: str = Field(..., max_length=200)
    content_type: VaultItemType
    content: Optional[str] = None
    file: Optional[FileRefModel] = None


class UploadFileRequest(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    mime_type: str = "application/octet-stream"
    data_base64: str


def _require_unlocked(services: Services, capsule_id: str, user_id: str) -> None:
    if not services.passcodes.is_unlocked(capsule_id, user_id):
        raise VaultLockedError("Vault is locked. Enter your passcode to continue.")


# Endpoints

@router.get("/{capsule_id}/status")
async def get_vault_status(
    capsule_id: str,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """The caller's passcode and unlock state, plus partner readiness."""
    services.vault.require_member(capsule_id, user_id)
    return {
        "success": True,
        "data": {
            "has_local_passcode": services.passcodes.has_local_passcode(capsule_id, user_id),
            "is_unlocked": services.passcodes.is_unlocked(capsule_id, user_id),
            "partner_has_passcode": services.vault.partner_has_passcode(capsule_id, user_id),
        },
    }


@router.post("/{capsule_id}/passcode/setup")
async def setup_passcode(
    capsule_id: str,
    request: PasscodeRequest,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Set (or replace) the caller's passcode for the capsule.

    The capsule is not unlocked by setup; verify afterwards.
    """
    services.vault.require_member(capsule_id, user_id)
    services.passcodes.setup_passcode(capsule_id, user_id, request.passcode)
    return {"success": True}


@router.post("/{capsule_id}/passcode/verify")
async def verify_passcode(
    capsule_id: str,
    request: PasscodeRequest,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    services.vault.require_member(capsule_id, user_id)
    if not services.passcodes.verify_passcode(capsule_id, user_id, request.passcode):
        raise UnauthorizedError("Incorrect passcode")
    return {"success": True, "data": {"is_unlocked": True}}


@router.post("/{capsule_id}/lock")
async def lock_vault(
    capsule_id: str,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    services.vault.require_member(capsule_id, user_id)
    services.passcodes.lock(capsule_id, user_id)
    return {"success": True}


@router.get("/{capsule_id}/items")
async def list_items(
    capsule_id: str,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """List items newest first; pending items carry metadata only."""
    services.vault.require_member(capsule_id, user_id)
    _require_unlocked(services, capsule_id, user_id)
    items = services.vault.list_items(capsule_id, user_id)
    return {"success": True, "data": [item.to_dict() for item in items]}


@router.post("/{capsule_id}/files")
async def upload_file(
    capsule_id: str,
    request: UploadFileRequest,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Store a file and return the reference to attach to a new item."""
    services.vault.require_member(capsule_id, user_id)
    _require_unlocked(services, capsule_id, user_id)
    try:
        data = base64.b64decode(request.data_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("data_base64 is not valid base64") from e
    if len(data) > MAX_FILE_BYTES:
        raise ValidationError("File is too large")

    file_ref = services.vault.upload_file(
        capsule_id, user_id, request.file_name, data, request.mime_type
    )
    return {"success": True, "data": file_ref.to_dict()}


@router.post("/{capsule_id}/items")
async def upload_item(
    capsule_id: str,
    request: UploadItemRequest,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Create an item; it stays pending until the partner approves."""
    services.vault.require_member(capsule_id, user_id)
    _require_unlocked(services, capsule_id, user_id)

    file_ref = None
    if request.file is not None:
        file_ref = FileRef(
            url=request.file.url,
            name=request.file.name,
            size=request.file.size,
            mime_type=request.file.mime_type,
            thumbnail_url=request.file.thumbnail_url,
        )

    item = services.vault.upload_item(
        capsule_id,
        user_id,
        title=request.title,
        content_type=request.content_type,
        content=request.content,
        file_ref=file_ref,
    )
    return {"success": True, "data": item.to_dict()}


@router.post("/{capsule_id}/items/{item_id}/approve")
async def approve_item(
    capsule_id: str,
    item_id: str,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    services.vault.require_member(capsule_id, user_id)
    _require_unlocked(services, capsule_id, user_id)
    # Check the item belongs to this capsule before changing anything
    services.vault.get_item(item_id, user_id, capsule_id=capsule_id)
    item = services.vault.approve_item(item_id, user_id)
    return {"success": True, "data": item.for_viewer().to_dict()}


@router.delete("/{capsule_id}/items/{item_id}")
async def delete_item(
    capsule_id: str,
    item_id: str,
    user_id: str = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    services.vault.require_member(capsule_id, user_id)
    _require_unlocked(services, capsule_id, user_id)
    deleted = services.vault.delete_item(item_id, capsule_id, caller_id=user_id)
    return {"success": True, "data": {"deleted": deleted}}
