"""
tests/test_session_guard.py -- Unit tests for auth/tokens.py and auth/guard.py.

Covers:
  - Password hashing and timing-equalized authentication
  - Session token claims, expiry, tampering and key rotation
  - Guard ordering: Unauthenticated -> SessionRevoked -> Forbidden
  - Session-version bumps revoke all outstanding tokens
  - Admin allow-list enforced independently of the signed role claim
"""

from __future__ import annotations

import time

import pytest
from jose import jwt

from auth.errors import Forbidden, SessionRevoked, Unauthenticated
from auth.guard import AuthorizationGuard
from auth.models import ROLE_ADMIN, ROLE_USER, Credential
from auth.store import CredentialStore
from auth.tokens import (
    SessionTokenIssuer,
    authenticate_credential,
    hash_password,
    verify_password,
)

KEY = "k" * 40
OLD_KEY = "o" * 40


@pytest.fixture
def issuer() -> SessionTokenIssuer:
    return SessionTokenIssuer(KEY, 3600)


@pytest.fixture
def guard(store: CredentialStore, issuer: SessionTokenIssuer) -> AuthorizationGuard:
    return AuthorizationGuard(store, issuer, ["Admin@Example.com"])


def _user(store: CredentialStore, email: str = "u@example.com", mobile: str = "9000000001") -> Credential:
    return store.create(
        Credential(email=email, role=ROLE_USER, mobile_number=mobile, password_hash=hash_password("pw123456"))
    )


def _admin(store: CredentialStore, email: str = "admin@example.com") -> Credential:
    return store.create(Credential(email=email, role=ROLE_ADMIN, password_hash=hash_password("adminpw1")))


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


class TestPasswords:
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("s3cret!")
        assert hashed != "s3cret!"
        assert verify_password("s3cret!", hashed)
        assert not verify_password("wrong", hashed)

    def test_malformed_hash_is_false(self) -> None:
        assert verify_password("anything", "not-a-bcrypt-hash") is False

    def test_authenticate_by_email_or_mobile(self, store: CredentialStore) -> None:
        user = _user(store)
        assert authenticate_credential(store, "U@Example.com", "pw123456").id == user.id
        assert authenticate_credential(store, "9000000001", "pw123456").id == user.id

    def test_authenticate_failures_return_none(self, store: CredentialStore) -> None:
        _user(store)
        assert authenticate_credential(store, "u@example.com", "nope") is None
        assert authenticate_credential(store, "ghost@example.com", "pw123456") is None


# ---------------------------------------------------------------------------
# Issuer
# ---------------------------------------------------------------------------


class TestIssuer:
    def test_issue_carries_identity_and_version(self, store: CredentialStore, issuer: SessionTokenIssuer) -> None:
        user = _user(store)
        payload = issuer.decode(issuer.issue(user))
        assert payload["sub"] == "u@example.com"
        assert payload["uid"] == user.id
        assert payload["role"] == ROLE_USER
        assert payload["sv"] == 0
        assert payload["exp"] - payload["iat"] == 3600

    def test_unsaved_credential_rejected(self, issuer: SessionTokenIssuer) -> None:
        with pytest.raises(ValueError):
            issuer.issue(Credential(email="x@example.com", role=ROLE_USER))

    def test_wrong_key_fails(self, issuer: SessionTokenIssuer) -> None:
        token = SessionTokenIssuer("z" * 40, 3600).issue_for("a@example.com", 1, ROLE_USER, 0)
        assert issuer.decode(token) is None

    def test_expired_token_fails(self, issuer: SessionTokenIssuer) -> None:
        now = int(time.time())
        token = jwt.encode(
            {"sub": "a@example.com", "uid": 1, "role": ROLE_USER, "sv": 0, "iat": now - 100, "exp": now - 10},
            KEY,
            algorithm="HS256",
        )
        assert issuer.decode(token) is None

    def test_missing_claim_fails(self, issuer: SessionTokenIssuer) -> None:
        token = jwt.encode({"sub": "a@example.com", "exp": int(time.time()) + 60}, KEY, algorithm="HS256")
        assert issuer.decode(token) is None

    def test_garbage_fails(self, issuer: SessionTokenIssuer) -> None:
        assert issuer.decode("not.a.jwt") is None

    def test_previous_key_still_verifies(self) -> None:
        old_token = SessionTokenIssuer(OLD_KEY, 3600).issue_for("a@example.com", 1, ROLE_USER, 0)
        rotated = SessionTokenIssuer(KEY, 3600, previous_keys=[OLD_KEY])
        assert rotated.decode(old_token)["sub"] == "a@example.com"
        # New tokens are signed with the current key only.
        new_token = rotated.issue_for("a@example.com", 1, ROLE_USER, 0)
        assert SessionTokenIssuer(OLD_KEY, 3600).decode(new_token) is None


# ---------------------------------------------------------------------------
# Guard
# ---------------------------------------------------------------------------


class TestGuard:
    def test_valid_token_returns_claims(
        self, store: CredentialStore, issuer: SessionTokenIssuer, guard: AuthorizationGuard
    ) -> None:
        user = _user(store)
        claims = guard.validate(issuer.issue(user))
        assert claims.identity == "u@example.com"
        assert claims.user_id == user.id
        assert claims.session_version == 0

    def test_missing_token(self, guard: AuthorizationGuard) -> None:
        with pytest.raises(Unauthenticated):
            guard.validate(None)
        with pytest.raises(Unauthenticated):
            guard.validate("")

    def test_bad_signature(self, guard: AuthorizationGuard) -> None:
        with pytest.raises(Unauthenticated):
            guard.validate("abc.def.ghi")

    def test_deleted_identity(
        self, store: CredentialStore, issuer: SessionTokenIssuer, guard: AuthorizationGuard
    ) -> None:
        user = _user(store)
        token = issuer.issue(user)
        store.delete(user.id)
        with pytest.raises(Unauthenticated):
            guard.validate(token)

    def test_version_bump_revokes_every_token(
        self, store: CredentialStore, issuer: SessionTokenIssuer, guard: AuthorizationGuard
    ) -> None:
        user = _user(store)
        first, second = issuer.issue(user), issuer.issue(user)
        assert store.increment_session_version(user.email) == 1
        for token in (first, second):
            with pytest.raises(SessionRevoked):
                guard.validate(token)
        fresh = issuer.issue(store.get_by_id(user.id))
        assert guard.validate(fresh).session_version == 1

    def test_revoked_takes_precedence_over_forbidden(
        self, store: CredentialStore, issuer: SessionTokenIssuer, guard: AuthorizationGuard
    ) -> None:
        user = _user(store)
        token = issuer.issue(user)
        store.increment_session_version(user.email)
        store.set_active(user.email, False)
        with pytest.raises(SessionRevoked):
            guard.validate(token)

    def test_inactive_account_forbidden(
        self, store: CredentialStore, issuer: SessionTokenIssuer, guard: AuthorizationGuard
    ) -> None:
        user = _user(store)
        token = issuer.issue(user)
        store.set_active(user.email, False)
        with pytest.raises(Forbidden):
            guard.validate(token)

    def test_user_cannot_pass_admin_requirement(
        self, store: CredentialStore, issuer: SessionTokenIssuer, guard: AuthorizationGuard
    ) -> None:
        token = issuer.issue(_user(store))
        with pytest.raises(Forbidden) as excinfo:
            guard.validate(token, required_role=ROLE_ADMIN)
        assert excinfo.value.message == "Admin only"

    def test_allow_listed_admin_passes(
        self, store: CredentialStore, issuer: SessionTokenIssuer, guard: AuthorizationGuard
    ) -> None:
        admin = _admin(store)
        assert guard.validate(issuer.issue(admin), required_role=ROLE_ADMIN).role == ROLE_ADMIN
        assert guard.is_allowed_admin(" ADMIN@example.com")

    def test_admin_outside_allow_list_forbidden(
        self, store: CredentialStore, issuer: SessionTokenIssuer, guard: AuthorizationGuard
    ) -> None:
        rogue = _admin(store, email="rogue@example.com")
        with pytest.raises(Forbidden) as excinfo:
            guard.validate(issuer.issue(rogue), required_role=ROLE_ADMIN)
        assert excinfo.value.message == "Not allowed"

    def test_forged_admin_role_claim_forbidden(
        self, store: CredentialStore, issuer: SessionTokenIssuer, guard: AuthorizationGuard
    ) -> None:
        user = _user(store)
        forged = issuer.issue_for(user.email, user.id, ROLE_ADMIN, user.session_version)
        with pytest.raises(Forbidden):
            guard.validate(forged, required_role=ROLE_ADMIN)

    def test_token_for_other_id_rejected(
        self, store: CredentialStore, issuer: SessionTokenIssuer, guard: AuthorizationGuard
    ) -> None:
        user = _user(store)
        token = issuer.issue_for(user.email, user.id + 100, ROLE_USER, 0)
        with pytest.raises(Unauthenticated):
            guard.validate(token)
