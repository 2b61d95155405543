"""
auth/guard.py -- Validates inbound session tokens against the credential store.

Checks, in order:
  1. Token present, signature valid, not expired     -> else Unauthenticated
  2. Identity still exists                          -> else Unauthenticated
  3. Token's sv equals the stored session_version   -> else SessionRevoked
  4. Account active, role claim matches the stored role and the required
     role, admin identities are in the allow-list   -> else Forbidden

The admin allow-list is checked independently of the signed role claim. A
leaked signing key can mint {"role": "admin"} for any identity; it cannot add
that identity to ADMIN_ALLOW_LIST.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from auth.errors import Forbidden, SessionRevoked, Unauthenticated
from auth.identity import normalize_email
from auth.models import ROLE_ADMIN, SessionClaims
from auth.store import CredentialStore
from auth.tokens import SessionTokenIssuer

logger = logging.getLogger("docdesk.guard")


class AuthorizationGuard:
    def __init__(self, store: CredentialStore, issuer: SessionTokenIssuer, admin_allow_list: Iterable[str]) -> None:
        self._store = store
        self._issuer = issuer
        self.admin_allow_list = frozenset(normalize_email(e) for e in admin_allow_list if e)

    def is_allowed_admin(self, email: str) -> bool:
        return normalize_email(email) in self.admin_allow_list

    def validate(self, token: str | None, required_role: str | None = None) -> SessionClaims:
        """Return the claims of a currently valid token or raise.

        required_role, when given, must equal the token's role.
        """
        if not token:
            raise Unauthenticated("Missing token")
        payload = self._issuer.decode(token)
        if payload is None:
            raise Unauthenticated("Invalid or expired token")

        identity = normalize_email(payload.get("sub"))
        role = str(payload.get("role") or "").lower()
        try:
            claims = SessionClaims(
                identity=identity,
                user_id=int(payload["uid"]),
                role=role,
                session_version=int(payload["sv"]),
                expires_at=int(payload["exp"]),
            )
        except (TypeError, ValueError) as exc:
            raise Unauthenticated("Invalid token") from exc

        credential = self._store.find_by_identity(identity) if identity else None
        if credential is None or credential.id != claims.user_id:
            raise Unauthenticated("Invalid token")

        if credential.session_version != claims.session_version:
            logger.info("Stale session rejected for %s", identity)
            raise SessionRevoked("Session has been revoked. Please log in again.")

        if not credential.is_active:
            raise Forbidden("Account is disabled")
        if role != credential.role:
            logger.warning("Role claim %r does not match stored role for %s", role, identity)
            raise Forbidden("Role mismatch")
        if required_role is not None and role != required_role:
            raise Forbidden("Admin only" if required_role == ROLE_ADMIN else "Forbidden")
        if role == ROLE_ADMIN and identity not in self.admin_allow_list:
            logger.warning("Admin token for identity outside the allow-list: %s", identity)
            raise Forbidden("Not allowed")
        return claims
