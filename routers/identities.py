from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request
from schemas.rooms import IdentityStateResponse, InviteLookupResponse
import constants
from logging_config import get_logger

logger = get_logger(__name__)

identities_router = APIRouter(tags=["identities"])


def require_admin(token: Optional[str]):
    if not constants.ADMIN_TOKEN:
        raise HTTPException(status_code=403, detail="Administration is disabled")
    if token != constants.ADMIN_TOKEN:
        logger.warning("Rejected admin request with a bad token")
        raise HTTPException(status_code=401, detail="Invalid admin token")


@identities_router.get("/invites/{code}", response_model=InviteLookupResponse)
async def lookup_invite(code: str, request: Request):
    identity = request.app.state.chat.directory.resolve_invite(code)
    if identity is None:
        raise HTTPException(status_code=404, detail="Invalid invite code")
    return InviteLookupResponse(identity_id=identity.id, display_name=identity.displayName)


async def _set_active(identity_id: str, active: bool, request: Request, token: Optional[str]):
    require_admin(token)
    directory = request.app.state.chat.directory
    identity = directory.activate(identity_id) if active else directory.deactivate(identity_id)
    if identity is None:
        raise HTTPException(status_code=404, detail="Identity not found")
    request.app.state.chat.mark_dirty()
    return IdentityStateResponse(identity_id=identity.id, display_name=identity.displayName, active=identity.active)


@identities_router.post("/identities/{identity_id}/deactivate", response_model=IdentityStateResponse)
async def deactivate_identity(identity_id: str, request: Request, x_admin_token: Optional[str] = Header(None)):
    return await _set_active(identity_id, False, request, x_admin_token)


@identities_router.post("/identities/{identity_id}/activate", response_model=IdentityStateResponse)
async def activate_identity(identity_id: str, request: Request, x_admin_token: Optional[str] = Header(None)):
    return await _set_active(identity_id, True, request, x_admin_token)
