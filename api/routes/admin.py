"""
api/routes/admin.py -- User moderation endpoints (admin only).

Routes:
  GET    /admin/users             -- list all accounts
  POST   /admin/users/{uid}/ban   -- set or clear the banned flag
  DELETE /admin/users/{uid}       -- permanently remove an account

All routes require a bearer token whose role claim is admin (require_admin).
Banning blocks new sessions only; tokens already issued to the account stay
valid until they expire.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import BanRequest, BanResponse, DeleteUserResponse, UserResponse
from auth.dependencies import require_admin
from auth.models import SessionClaims
from auth.service import AuthService

router = APIRouter()


@router.get("/admin/users", response_model=list[UserResponse])
def list_users(request: Request, admin: SessionClaims = Depends(require_admin)) -> list[UserResponse]:
    service: AuthService = request.app.state.auth_service
    return [UserResponse.from_user(u) for u in service.list_users()]


@router.post("/admin/users/{uid}/ban", response_model=BanResponse)
def ban_user(
    request: Request,
    uid: str,
    body: BanRequest,
    admin: SessionClaims = Depends(require_admin),
) -> BanResponse:
    """Ban or unban an account. Admins cannot ban themselves."""
    service: AuthService = request.app.state.auth_service
    user = service.set_banned(uid, body.banned, acting_uid=admin.uid)
    return BanResponse(uid=user.uid, banned=user.banned)


@router.delete("/admin/users/{uid}", response_model=DeleteUserResponse)
def delete_user(
    request: Request,
    uid: str,
    admin: SessionClaims = Depends(require_admin),
) -> DeleteUserResponse:
    """Delete an account. Admins cannot delete themselves."""
    service: AuthService = request.app.state.auth_service
    user = service.delete_user(uid, acting_uid=admin.uid)
    return DeleteUserResponse(deleted_user=user.username)
