"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; ledgers, stores and routes do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass

ROLE_USER = "user"
ROLE_ADMIN = "admin"


@dataclass
class Credential:
    """A user or admin identity as persisted by CredentialStore.

    email and mobile_number are both identity keys: login accepts either.
    email is stored normalized (trimmed, lowercase). Admin records may have no
    mobile number.

    session_version is the revocation counter. Every session token carries a
    snapshot of it; bumping the stored value kills all outstanding tokens for
    this identity.
    """

    email: str
    role: str  # "user" or "admin"
    id: int | None = None
    mobile_number: str | None = None
    password_hash: str | None = None
    session_version: int = 0
    is_active: bool = True
    first_name: str | None = None
    last_name: str | None = None
    village_city: str | None = None
    pincode: str | None = None
    state: str | None = None
    district: str | None = None
    taluka: str | None = None
    dob: str | None = None  # ISO date, admins only
    admin_home_desc: str | None = None  # admin landing page text
    admin_home_image: str | None = None  # admin landing page image URL
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


@dataclass
class OtpChallenge:
    """A pending OTP for one email address.

    hashed_code is a bcrypt hash; the raw code only ever exists in the
    outgoing email. Times are epoch seconds from the ledger's clock.
    """

    hashed_code: str
    expires_at: float
    last_issued_at: float
    attempts_used: int = 0


@dataclass
class VerificationToken:
    """Proof that bound_email passed an OTP challenge. Single use."""

    token: str
    bound_email: str
    expires_at: float


@dataclass(frozen=True)
class SessionClaims:
    """Decoded and validated session token contents, request-scoped."""

    identity: str  # normalized email
    user_id: int
    role: str
    session_version: int
    expires_at: int
