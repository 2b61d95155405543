"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The session token is read from, in priority order:
  1. Authorization: Bearer <token> header -- mobile and SPA clients.
  2. "access_token" cookie -- set by the login endpoints for browser use.

Both converge on AuthorizationGuard.validate(), which checks signature,
expiry, the session-version stamp and role/allow-list rules. Guard errors are
AuthError subclasses and reach the client through the API's AuthError handler
(401 unauthenticated / session_revoked, 403 forbidden).

get_current_claims() requires any valid session.
require_admin() additionally requires the admin role and an allow-listed email.

Layer rule: auth/dependencies.py may import from fastapi because this module is
part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.guard import AuthorizationGuard
from auth.models import ROLE_ADMIN, SessionClaims


def extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get("access_token") or None


def get_current_claims(request: Request) -> SessionClaims:
    """Require a valid session. Raises Unauthenticated / SessionRevoked / Forbidden.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: SessionClaims = Depends(get_current_claims)): ...
    """
    guard: AuthorizationGuard = request.app.state.guard
    claims = guard.validate(extract_token(request))
    request.state.claims = claims
    return claims


def require_admin(request: Request) -> SessionClaims:
    """Require an allow-listed admin session."""
    guard: AuthorizationGuard = request.app.state.guard
    claims = guard.validate(extract_token(request), required_role=ROLE_ADMIN)
    request.state.claims = claims
    return claims
