"""
api/routes/v1/auth.py -- Signup, login, session and user management REST endpoints.

Routes:
  POST   /api/v1/auth/send-otp        -- email a signup code (public)
  POST   /api/v1/auth/verify-otp      -- trade a signup code for a verify_token (public)
  POST   /api/v1/auth/register        -- create a user with a verify_token (public); 201
  POST   /api/v1/auth/login           -- password login by email or mobile; sets JWT cookie
  POST   /api/v1/auth/logout          -- revokes every session of the caller; clears cookie
  GET    /api/v1/auth/me              -- current session info (requires auth)
  GET    /api/v1/auth/users           -- list users (admin only)
  GET    /api/v1/auth/users/{id}      -- get one user (admin only)
  PUT    /api/v1/auth/users/{id}      -- update a user (admin only)
  DELETE /api/v1/auth/users/{id}      -- delete a user (admin only)

Security:
  POST /login and the OTP send endpoint are rate-limited per IP on top of the
  per-email resend cooldown.
  AccountService.login() goes through authenticate_credential(), which
  equalizes timing between unknown identities and wrong passwords.
  Cache-Control: no-store on every response that carries a token.
  Errors are AuthError subclasses; api/main.py maps them to status codes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from api.limiter import limiter, login_limit, otp_limit
from api.models import (
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    SendOtpRequest,
    UserResponse,
    UserUpdate,
    VerifyOtpRequest,
    VerifyOtpResponse,
)
from auth.dependencies import get_current_claims, require_admin
from auth.models import ROLE_USER, SessionClaims
from auth.service import AccountService
from auth.tokens import set_auth_cookie

# Auth policy:
# - POST   /auth/send-otp, /auth/verify-otp, /auth/register, /auth/login: public
# - POST   /auth/logout, GET /auth/me:   requires auth (get_current_claims)
# - GET/PUT/DELETE /auth/users[/{id}]:   requires admin (require_admin)
router = APIRouter()


def _accounts(request: Request) -> AccountService:
    return request.app.state.accounts


# ---------------------------------------------------------------------------
# Signup
# ---------------------------------------------------------------------------


@limiter.limit(otp_limit)
@router.post("/auth/send-otp", response_model=MessageResponse)
def send_otp(request: Request, body: SendOtpRequest) -> MessageResponse:
    """Email a 6-digit signup code.

    409 if the email is already registered, 429 inside the 30 s resend
    cooldown, 502 if the email could not be delivered (no code stays pending).
    """
    _accounts(request).request_signup_otp(body.email_address)
    return MessageResponse(message="OTP sent successfully")


@router.post("/auth/verify-otp", response_model=VerifyOtpResponse)
def verify_otp(request: Request, body: VerifyOtpRequest) -> JSONResponse:
    """Check a signup code. On success return a single-use verify_token for /register."""
    token = _accounts(request).verify_signup_otp(body.email_address, body.otp)
    resp = JSONResponse(content=VerifyOtpResponse(message="OTP verified", verify_token=token).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Create a user account. The verify_token is spent whether or not the insert succeeds."""
    credential = _accounts(request).register(body.to_credential(), body.password, body.verify_token)
    return RegisterResponse(user=UserResponse.from_credential(credential))


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@limiter.limit(login_limit)
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email or mobile number and password; set JWT cookie.

    Unknown identity and wrong password get the same 401 "Invalid credentials"
    so the response does not reveal which accounts exist.
    """
    accounts = _accounts(request)
    token, credential = accounts.login(body.username, body.password)
    expires_in = accounts.issuer.expire_seconds
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=token,
            expires_in=expires_in,
            user=UserResponse.from_credential(credential),
        ).model_dump(),
    )
    set_auth_cookie(resp, token, expires_in, secure=request.app.state.settings.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, claims: SessionClaims = Depends(get_current_claims)) -> JSONResponse:
    """End every session of the caller (all devices) and clear the cookie."""
    _accounts(request).logout(claims)
    resp = JSONResponse(content=MessageResponse(message="Logged out").model_dump())
    resp.delete_cookie("access_token")
    return resp


@router.get("/auth/me", response_model=MeResponse)
async def me(claims: SessionClaims = Depends(get_current_claims)) -> MeResponse:
    """Return identity information for the current session."""
    return MeResponse(
        user_id=claims.user_id,
        email_address=claims.identity,
        role=claims.role,
        session_version=claims.session_version,
        expires_at=claims.expires_at,
    )


# ---------------------------------------------------------------------------
# User management (admin only)
# ---------------------------------------------------------------------------


@router.get("/auth/users", response_model=list[UserResponse])
def list_users(request: Request, claims: SessionClaims = Depends(require_admin)) -> list[UserResponse]:
    """List all user accounts, newest first. Admin only."""
    return [UserResponse.from_credential(c) for c in _accounts(request).list_accounts(ROLE_USER)]


@router.get("/auth/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: int, claims: SessionClaims = Depends(require_admin)) -> UserResponse:
    return UserResponse.from_credential(_accounts(request).get_account(user_id, ROLE_USER))


@router.put("/auth/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserUpdate,
    claims: SessionClaims = Depends(require_admin),
) -> UserResponse:
    """Update a user's profile, identity or password. Admin only.

    Omitted fields are left unchanged. A new email or mobile number already in
    use returns 409. A new password revokes the user's existing sessions.
    """
    changes = body.model_dump(exclude_unset=True, exclude={"password", "email_address"})
    if body.email_address is not None:
        changes["email"] = body.email_address
    updated = _accounts(request).update_account(user_id, ROLE_USER, changes, password=body.password)
    return UserResponse.from_credential(updated)


@router.delete("/auth/users/{user_id}", status_code=204)
def delete_user(request: Request, user_id: int, claims: SessionClaims = Depends(require_admin)) -> Response:
    _accounts(request).delete_account(user_id, ROLE_USER, actor_id=claims.user_id)
    return Response(status_code=204)
