"""
api/routes/v1/admin.py -- Admin login and admin-side account control.

Routes:
  POST  /api/v1/admin/login                       -- allow-listed admin login; sets JWT cookie
  GET   /api/v1/admin                             -- list admins
  GET   /api/v1/admin/{id}                        -- get one admin
  PUT   /api/v1/admin/{id}                        -- update an admin
  DELETE /api/v1/admin/{id}                       -- delete an admin
  PATCH /api/v1/admin/{id}/home                   -- set the admin home description and image
  PATCH /api/v1/admin/{id}/force-logout           -- revoke every session of an admin
  PATCH /api/v1/admin/users/{id}/force-logout     -- revoke every session of a user
  PATCH /api/v1/admin/users/{id}/active           -- activate / deactivate a user

Everything except /admin/login requires require_admin: a valid session whose
role is admin and whose email is in ADMIN_ALLOW_LIST.

Guards:
  An admin cannot deactivate or delete their own account.
  An admin's email can only be changed to another allow-listed address.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from api.limiter import limiter, login_limit
from api.models import (
    ActiveUpdate,
    AdminLoginRequest,
    AdminHomeUpdate,
    AdminLoginResponse,
    AdminResponse,
    AdminUpdate,
    ForceLogoutResponse,
    UserResponse,
)
from auth.dependencies import require_admin
from auth.models import ROLE_ADMIN, ROLE_USER, SessionClaims
from auth.service import AccountService
from auth.tokens import set_auth_cookie

router = APIRouter()


def _accounts(request: Request) -> AccountService:
    return request.app.state.accounts


@limiter.limit(login_limit)
@router.post("/admin/login", response_model=AdminLoginResponse)
def admin_login(request: Request, body: AdminLoginRequest) -> JSONResponse:
    """Authenticate an allow-listed admin.

    403 when the email is not allow-listed or the account is disabled; 401
    for an unknown admin or a wrong password.
    """
    accounts = _accounts(request)
    token, credential = accounts.admin_login(body.identity, body.password)
    expires_in = accounts.issuer.expire_seconds
    resp = JSONResponse(
        content=AdminLoginResponse(
            token=token,
            expires_in=expires_in,
            admin=AdminResponse.from_credential(credential),
        ).model_dump(),
    )
    set_auth_cookie(resp, token, expires_in, secure=request.app.state.settings.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Admin accounts
# ---------------------------------------------------------------------------


@router.get("/admin", response_model=list[AdminResponse])
def list_admins(request: Request, claims: SessionClaims = Depends(require_admin)) -> list[AdminResponse]:
    return [AdminResponse.from_credential(c) for c in _accounts(request).list_accounts(ROLE_ADMIN)]


@router.get("/admin/{admin_id}", response_model=AdminResponse)
def get_admin(request: Request, admin_id: int, claims: SessionClaims = Depends(require_admin)) -> AdminResponse:
    return AdminResponse.from_credential(_accounts(request).get_account(admin_id, ROLE_ADMIN))


@router.put("/admin/{admin_id}", response_model=AdminResponse)
def update_admin(
    request: Request,
    admin_id: int,
    body: AdminUpdate,
    claims: SessionClaims = Depends(require_admin),
) -> AdminResponse:
    """Update an admin. Omitted fields are left unchanged; a new password is hashed."""
    changes = body.model_dump(exclude_unset=True, exclude={"password", "email_username", "dob"})
    if body.email_username is not None:
        changes["email"] = body.email_username
    if body.dob is not None:
        changes["dob"] = body.dob.isoformat()
    updated = _accounts(request).update_account(
        admin_id,
        ROLE_ADMIN,
        changes,
        password=body.password,
        actor_id=claims.user_id,
    )
    return AdminResponse.from_credential(updated)


@router.delete("/admin/{admin_id}", status_code=204)
def delete_admin(request: Request, admin_id: int, claims: SessionClaims = Depends(require_admin)) -> Response:
    _accounts(request).delete_account(admin_id, ROLE_ADMIN, actor_id=claims.user_id)
    return Response(status_code=204)


@router.patch("/admin/{admin_id}/home", response_model=AdminResponse)
def update_admin_home(
    request: Request,
    admin_id: int,
    body: AdminHomeUpdate,
    claims: SessionClaims = Depends(require_admin),
) -> AdminResponse:
    updated = _accounts(request).update_admin_home(admin_id, body.admin_home_desc, body.admin_home_image)
    return AdminResponse.from_credential(updated)


@router.patch("/admin/{admin_id}/force-logout", response_model=ForceLogoutResponse)
def force_logout_admin(
    request: Request,
    admin_id: int,
    claims: SessionClaims = Depends(require_admin),
) -> ForceLogoutResponse:
    """Revoke every session of an admin. Forcing yourself out ends this session too."""
    target = _accounts(request).force_logout(admin_id, role=ROLE_ADMIN)
    return ForceLogoutResponse(
        message="Admin logged out from all devices",
        id=target.id,
        email_address=target.email,
        token_version=target.session_version,
    )


# ---------------------------------------------------------------------------
# User accounts
# ---------------------------------------------------------------------------


@router.patch("/admin/users/{user_id}/force-logout", response_model=ForceLogoutResponse)
def force_logout_user(
    request: Request,
    user_id: int,
    claims: SessionClaims = Depends(require_admin),
) -> ForceLogoutResponse:
    target = _accounts(request).force_logout(user_id, role=ROLE_USER)
    return ForceLogoutResponse(
        message="User logged out from all devices",
        id=target.id,
        email_address=target.email,
        token_version=target.session_version,
    )


@router.patch("/admin/users/{user_id}/active", response_model=UserResponse)
def set_user_active(
    request: Request,
    user_id: int,
    body: ActiveUpdate,
    claims: SessionClaims = Depends(require_admin),
) -> UserResponse:
    """Activate or deactivate a user. A deactivated user's sessions are rejected with 403."""
    return UserResponse.from_credential(_accounts(request).set_active(user_id, body.is_active, role=ROLE_USER))
