"""
auth/tokens.py -- Session JWTs and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry the identity (sub), numeric id
       (uid), role and a snapshot of the credential's session_version (sv).
       Decoding returns None on any failure -- the guard turns that into
       Unauthenticated. There is no revocation list: bumping the stored
       session_version makes every older token stale at its next validation.

  Key rotation [K1]: tokens are always signed with the current key. Decoding
       tries the current key first and then each retired key, so tokens
       issued just before a rotation stay valid until they expire.

  Passwords: bcrypt directly (no passlib wrapper). The _DUMMY_HASH constant
       enables timing equalization in authenticate_credential() so response
       time does not reveal whether an identity exists [C1].

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.clock import Clock, SystemClock
from auth.models import Credential

if TYPE_CHECKING:
    from auth.store import CredentialStore

logger = logging.getLogger("docdesk.auth")

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ("sub", "uid", "role", "sv", "exp")

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. The API layer caps
    password fields at 128 characters.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed or non-bcrypt hash in storage.
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("docdesk_timing_dummy")


def authenticate_credential(store: CredentialStore, identity: str, password: str) -> Credential | None:
    """Look up identity (email or mobile) and check the password in constant time.

    Always runs bcrypt whether or not the identity exists:
    - Unknown identity: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the Credential when the password matches, None otherwise. The
    is_active check is left to the caller so a disabled account can be told
    apart from a wrong password after the password has been proven.
    """
    credential = store.find_by_identity(identity)
    if credential is None or not credential.password_hash:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, credential.password_hash):
        return None
    return credential


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


class SessionTokenIssuer:
    """Mints and decodes session JWTs stamped with a session version.

    Usage:
        issuer = SessionTokenIssuer(settings.secret_key, settings.token_expire_seconds)
        token = issuer.issue(credential)
        claims = issuer.decode(token)   # dict or None
    """

    def __init__(
        self,
        secret_key: str,
        expire_seconds: int,
        previous_keys: Iterable[str] = (),
        clock: Clock | None = None,
    ) -> None:
        self._secret_key = secret_key
        self._verification_keys = [secret_key, *[k for k in previous_keys if k and k != secret_key]]
        self.expire_seconds = expire_seconds
        self._clock = clock or SystemClock()

    def issue(self, credential: Credential) -> str:
        """Mint a token for a persisted credential using its current session_version."""
        if credential.id is None:
            raise ValueError("Cannot issue a session token for an unsaved credential.")
        return self.issue_for(credential.email, credential.id, credential.role, credential.session_version)

    def issue_for(self, identity: str, user_id: int, role: str, session_version: int) -> str:
        now = int(self._clock.now())
        payload = {
            "sub": identity,
            "uid": user_id,
            "role": role,
            "sv": session_version,
            "iat": now,
            "exp": now + self.expire_seconds,
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def decode(self, token: str) -> dict | None:
        """Verify signature and expiry. Returns the payload dict or None on any failure.

        Returning None (rather than raising) keeps the caller simple: any invalid
        token is treated as unauthenticated.
        """
        for key in self._verification_keys:
            try:
                payload = jwt.decode(token, key, algorithms=[_ALGORITHM])
            except JWTError:
                continue
            if any(claim not in payload for claim in _REQUIRED_CLAIMS):
                return None
            return payload
        return None


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int, secure: bool = False) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    max_age: matches the JWT expiry so both expire together.
    """
    response.set_cookie(
        "access_token",
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=expire_seconds,
    )
