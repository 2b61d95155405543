"""
auth/service.py -- Account operations composed from the ledgers, store and issuer.

The HTTP handlers are thin: each one validates its body, calls exactly one
method here, and shapes the response. Every method either returns its result
or raises an AuthError subclass; nothing here knows about status codes beyond
the per-raise overrides the error classes allow.

Two independent OTP flows exist, one for signup and one for password reset.
Each owns its own OtpLedger and VerificationTokenLedger, so a token earned in
the signup flow cannot be spent on a password reset and vice versa.

Session invalidation is always a session_version bump in the store:
  logout           -> the caller's own version
  force_logout     -> any credential, admin-initiated
  reset_password   -> the owner's version, so a stolen session dies with the
                      old password
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.clock import Clock, SystemClock
from auth.errors import Conflict, Forbidden, NotFound, Unauthenticated
from auth.guard import AuthorizationGuard
from auth.identity import normalize_email
from auth.models import ROLE_ADMIN, ROLE_USER, Credential, SessionClaims
from auth.notify import Notifier
from auth.otp import OtpLedger
from auth.store import CredentialStore
from auth.tokens import SessionTokenIssuer, authenticate_credential, hash_password
from auth.verification import VerificationTokenLedger
from core.config import Settings

logger = logging.getLogger("docdesk.accounts")


@dataclass
class OtpFlow:
    """The pair of ledgers backing one OTP-gated operation."""

    challenges: OtpLedger
    tokens: VerificationTokenLedger

    def verify(self, email: str, code: str) -> str:
        """Check the code and, on success, mint the single-use verification token."""
        self.challenges.verify_challenge(email, code)
        return self.tokens.issue(email)

    def purge_expired(self) -> int:
        return self.challenges.purge_expired() + self.tokens.purge_expired()


class AccountService:
    def __init__(
        self,
        store: CredentialStore,
        issuer: SessionTokenIssuer,
        guard: AuthorizationGuard,
        signup: OtpFlow,
        reset: OtpFlow,
    ) -> None:
        self.store = store
        self.issuer = issuer
        self.guard = guard
        self.signup = signup
        self.reset = reset

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def request_signup_otp(self, email: str) -> None:
        email = normalize_email(email)
        if self.store.find_by_identity(email) is not None:
            raise Conflict("Email already registered")
        self.signup.challenges.request_challenge(email)

    def verify_signup_otp(self, email: str, code: str) -> str:
        return self.signup.verify(email, code)

    def register(self, profile: Credential, password: str, verify_token: str) -> Credential:
        """Create a user account for an email that proved ownership.

        The verification token is spent before the insert. If the insert then
        hits a duplicate email or mobile number the token is gone and the user
        has to verify again; a token never survives the attempt it was used for.
        """
        email = normalize_email(profile.email)
        self.signup.tokens.consume(verify_token, email)
        profile.email = email
        profile.role = ROLE_USER
        profile.password_hash = hash_password(password)
        profile.session_version = 0
        profile.is_active = True
        return self.store.create(profile)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def request_reset_otp(self, email: str) -> None:
        email = normalize_email(email)
        if self.store.find_by_identity(email) is None:
            raise NotFound("Email not found")
        self.reset.challenges.request_challenge(email)

    def verify_reset_otp(self, email: str, code: str) -> str:
        return self.reset.verify(email, code)

    def reset_password(self, email: str, new_password: str, verify_token: str) -> None:
        email = normalize_email(email)
        self.reset.tokens.consume(verify_token, email)
        if not self.store.update_password_hash(email, hash_password(new_password)):
            raise NotFound("Email not found")
        self.store.increment_session_version(email)
        logger.info("Password reset for %s; existing sessions revoked", email)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def login(self, username: str, password: str) -> tuple[str, Credential]:
        """Password login by email or mobile number. Returns (token, credential)."""
        credential = authenticate_credential(self.store, username, password)
        if credential is None:
            raise Unauthenticated("Invalid credentials")
        if not credential.is_active:
            raise Forbidden("Account is disabled")
        return self.issuer.issue(credential), credential

    def admin_login(self, email: str, password: str) -> tuple[str, Credential]:
        email = normalize_email(email)
        if not self.guard.is_allowed_admin(email):
            raise Forbidden("This email is not allowed as admin")
        credential = authenticate_credential(self.store, email, password)
        if credential is None or credential.role != ROLE_ADMIN:
            raise Unauthenticated("Invalid credentials")
        if not credential.is_active:
            raise Forbidden("Admin account is disabled")
        logger.info("Admin login: %s", email)
        return self.issuer.issue(credential), credential

    def logout(self, claims: SessionClaims) -> int:
        """Revoke every session of the caller, including the one making the request."""
        version = self.store.increment_session_version(claims.identity)
        if version is None:
            raise Unauthenticated("Account no longer exists")
        return version

    def force_logout(self, credential_id: int, role: str | None = None) -> Credential:
        """Revoke every session of another account. Returns the updated credential."""
        target = self.store.get_by_id(credential_id)
        if target is None or (role is not None and target.role != role):
            raise NotFound("Admin not found" if role == ROLE_ADMIN else "User not found")
        self.store.increment_session_version(target.email)
        logger.info("Force logout: credential id=%s role=%s", target.id, target.role)
        refreshed = self.store.get_by_id(credential_id)
        return refreshed if refreshed is not None else target

    def set_active(self, credential_id: int, active: bool, role: str | None = None) -> Credential:
        target = self.store.get_by_id(credential_id)
        if target is None or (role is not None and target.role != role):
            raise NotFound("User not found")
        self.store.set_active(target.email, active)
        logger.info("Credential id=%s %s", target.id, "activated" if active else "deactivated")
        return self.store.get_by_id(credential_id) or target

    # ------------------------------------------------------------------
    # Account management (admin-only at the HTTP layer)
    # ------------------------------------------------------------------

    def list_accounts(self, role: str) -> list[Credential]:
        return self.store.list_credentials(role)

    def get_account(self, credential_id: int, role: str) -> Credential:
        target = self.store.get_by_id(credential_id)
        if target is None or target.role != role:
            raise NotFound("Admin not found" if role == ROLE_ADMIN else "User not found")
        return target

    def update_account(
        self,
        credential_id: int,
        role: str,
        changes: dict,
        password: str | None = None,
        actor_id: int | None = None,
    ) -> Credential:
        """Apply a partial profile update to one account of the given role.

        A new admin email must be allow-listed. A new email or mobile number
        already used by another account raises Conflict. A password change
        revokes the account's existing sessions.
        """
        target = self.get_account(credential_id, role)
        changes = {k: v for k, v in changes.items() if v is not None}
        if changes.get("is_active") is False and actor_id == credential_id:
            raise Forbidden("You cannot deactivate your own account")
        if "email" in changes:
            changes["email"] = normalize_email(changes["email"])
            if role == ROLE_ADMIN and not self.guard.is_allowed_admin(changes["email"]):
                raise Forbidden("This email is not allowed as admin")
        if self.store.identity_taken(changes.get("email"), changes.get("mobile_number"), exclude_id=credential_id):
            raise Conflict("Email or Mobile already exists")
        if password:
            changes["password_hash"] = hash_password(password)
        if not changes:
            return target

        updated = self.store.update_profile(credential_id, **changes)
        if updated is None:
            raise NotFound("Admin not found" if role == ROLE_ADMIN else "User not found")
        if password:
            self.store.increment_session_version(updated.email)
            updated = self.store.get_by_id(credential_id) or updated
        logger.info("Credential id=%s updated (%s)", credential_id, ", ".join(sorted(changes)))
        return updated

    def update_admin_home(self, admin_id: int, description: str | None, image: str | None) -> Credential:
        """Replace both admin home fields. A missing value clears that field."""
        self.get_account(admin_id, ROLE_ADMIN)
        updated = self.store.update_profile(admin_id, admin_home_desc=description, admin_home_image=image)
        if updated is None:
            raise NotFound("Admin not found")
        logger.info("Admin home updated for credential id=%s", admin_id)
        return updated

    def delete_account(self, credential_id: int, role: str, actor_id: int | None = None) -> None:
        target = self.get_account(credential_id, role)
        if actor_id == target.id:
            raise Forbidden("You cannot delete your own account")
        self.store.delete(credential_id)
        logger.info("Credential id=%s role=%s deleted", target.id, target.role)

    # ------------------------------------------------------------------
    # Admin bootstrap
    # ------------------------------------------------------------------

    def create_admin(self, profile: Credential, password: str) -> Credential:
        """Create an admin account. The email must be in the allow-list."""
        email = normalize_email(profile.email)
        if not self.guard.is_allowed_admin(email):
            raise Forbidden("Admin email must be in ADMIN_ALLOW_LIST")
        profile.email = email
        profile.role = ROLE_ADMIN
        profile.password_hash = hash_password(password)
        return self.store.create(profile)

    def purge_expired(self) -> int:
        return self.signup.purge_expired() + self.reset.purge_expired()


def build_account_service(
    settings: Settings,
    store: CredentialStore,
    notifier: Notifier,
    clock: Clock | None = None,
) -> AccountService:
    """Wire a fresh AccountService (with empty ledgers) from settings."""
    clock = clock or SystemClock()

    def _flow(purpose: str) -> OtpFlow:
        return OtpFlow(
            challenges=OtpLedger(
                notifier,
                ttl_seconds=settings.otp_ttl_seconds,
                max_attempts=settings.otp_max_attempts,
                cooldown_seconds=settings.otp_resend_cooldown_seconds,
                clock=clock,
                purpose=purpose,
                app_name=settings.app_name,
            ),
            tokens=VerificationTokenLedger(ttl_seconds=settings.verify_token_ttl_seconds, clock=clock, purpose=purpose),
        )

    issuer = SessionTokenIssuer(
        settings.secret_key,
        settings.token_expire_seconds,
        previous_keys=settings.previous_secret_keys,
        clock=clock,
    )
    guard = AuthorizationGuard(store, issuer, settings.admin_allow_list)
    return AccountService(store, issuer, guard, signup=_flow("signup"), reset=_flow("password_reset"))
