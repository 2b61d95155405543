"""
auth/verification.py -- Single-use tokens proving an email passed an OTP challenge.

A successful verify-OTP call mints one of these; registration and password
reset consume it. The token is 24 random bytes (48 hex chars) from the
secrets module and is bound to the normalized email it was issued for.

consume() checks and deletes under the ledger lock in one step, so the same
token can never authorize two registrations or two resets, even when the
requests race. A token presented for the wrong email is refused but kept:
the rightful owner can still use it.
"""

from __future__ import annotations

import logging
import secrets
import threading

from auth.clock import Clock, SystemClock
from auth.errors import Expired, Mismatch, NotFound
from auth.identity import normalize_email
from auth.models import VerificationToken

logger = logging.getLogger("docdesk.verification")

DEFAULT_TTL_SECONDS = 15 * 60


def make_token() -> str:
    return secrets.token_hex(24)


class VerificationTokenLedger:
    def __init__(
        self,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Clock | None = None,
        purpose: str = "verification",
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock or SystemClock()
        self.purpose = purpose
        self._lock = threading.Lock()
        self._tokens: dict[str, VerificationToken] = {}

    def issue(self, email: str) -> str:
        """Create a token bound to email and return the opaque token string."""
        bound = normalize_email(email)
        if not bound:
            raise ValueError("email is required")
        with self._lock:
            token = make_token()
            while token in self._tokens:
                token = make_token()
            self._tokens[token] = VerificationToken(
                token=token,
                bound_email=bound,
                expires_at=self._clock.now() + self.ttl_seconds,
            )
        return token

    def consume(self, token: str, expected_email: str) -> None:
        """Spend token for expected_email.

        Raises NotFound (unknown or already used), Expired (deleted), or
        Mismatch (bound to another email). Returns None once the token has
        been removed.
        """
        expected = normalize_email(expected_email)
        with self._lock:
            record = self._tokens.get(token)
            if record is None:
                raise NotFound("Invalid verify_token. Verify email again.", status_code=401)
            if self._clock.now() > record.expires_at:
                del self._tokens[token]
                raise Expired("verify_token expired. Verify email again.", status_code=401)
            if record.bound_email != expected:
                logger.warning("verify_token presented for a different email (%s)", self.purpose)
                raise Mismatch("verify_token does not match email")
            del self._tokens[token]

    def purge_expired(self) -> int:
        """Delete every expired token. Returns the number removed."""
        now = self._clock.now()
        with self._lock:
            expired = [t for t, r in self._tokens.items() if now > r.expires_at]
            for t in expired:
                del self._tokens[t]
        return len(expired)

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._tokens

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
