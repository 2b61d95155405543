"""
auth/otp.py -- In-memory ledger of pending OTP challenges, one per email.

Lifecycle of a challenge:
  request_challenge()  -> created (or replaced once the resend cooldown passed)
  verify_challenge()   -> attempts_used += 1 per call
                       -> removed on success, expiry, or an exhausted budget

Concurrency: the mapping is guarded by one threading.Lock. Every read-modify-
write of a challenge happens inside it, so two requests for the same email
cannot both spend the last attempt or both succeed. bcrypt work runs outside
the lock; a matching code only counts if the very same challenge object is
still in the ledger when the lock is retaken.

Only the bcrypt hash of a code is stored. Raw codes go to the notifier and
nowhere else -- not to the caller, not to the log.

Expired challenges are dropped whenever they are looked up. purge_expired()
sweeps the rest and is called from the API's background purge loop.
"""

from __future__ import annotations

import logging
import math
import secrets
import threading

import bcrypt

from auth.clock import Clock, SystemClock
from auth.errors import Expired, InvalidCode, NotFound, RateLimited, TooManyAttempts
from auth.identity import normalize_email
from auth.models import OtpChallenge
from auth.notify import Notifier, render_otp_email

logger = logging.getLogger("docdesk.otp")

DEFAULT_TTL_SECONDS = 10 * 60
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_COOLDOWN_SECONDS = 30

# Codes live for minutes, not years; a lighter work factor than passwords.
_CODE_HASH_ROUNDS = 10


def generate_code() -> str:
    """Return a uniformly random 6-digit code (100000-999999)."""
    return str(100000 + secrets.randbelow(900000))


def _hash_code(code: str) -> str:
    return bcrypt.hashpw(code.encode("utf-8"), bcrypt.gensalt(rounds=_CODE_HASH_ROUNDS)).decode("utf-8")


def _code_matches(code: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(str(code).encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


class OtpLedger:
    """Pending OTP challenges keyed by normalized email.

    Usage:
        ledger = OtpLedger(notifier, purpose="signup")
        ledger.request_challenge("a@example.com")       # emails the code
        ledger.verify_challenge("a@example.com", "123456")  # raises on failure
    """

    def __init__(
        self,
        notifier: Notifier,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS,
        clock: Clock | None = None,
        purpose: str = "verification",
        app_name: str = "DocDesk",
    ) -> None:
        self._notifier = notifier
        self.ttl_seconds = ttl_seconds
        self.max_attempts = max_attempts
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock or SystemClock()
        self.purpose = purpose
        self._app_name = app_name
        self._lock = threading.Lock()
        self._challenges: dict[str, OtpChallenge] = {}

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def request_challenge(self, email: str) -> None:
        """Record a fresh challenge for email and dispatch its code.

        Raises RateLimited inside the resend cooldown. If the notifier fails,
        the challenge recorded by this call is withdrawn and the error
        propagates, so the ledger never claims a code was sent when it was not.
        """
        key = normalize_email(email)
        if not key:
            raise ValueError("email is required")

        # Cheap check first so a throttled request does not pay for bcrypt.
        with self._lock:
            self._raise_if_cooling_down(key, self._clock.now())

        code = generate_code()
        hashed = _hash_code(code)

        with self._lock:
            now = self._clock.now()
            self._raise_if_cooling_down(key, now)
            challenge = OtpChallenge(
                hashed_code=hashed,
                expires_at=now + self.ttl_seconds,
                last_issued_at=now,
            )
            self._challenges[key] = challenge

        subject, body = render_otp_email(code, max(1, self.ttl_seconds // 60), self._app_name)
        try:
            self._notifier.send(key, subject, body)
        except Exception:
            with self._lock:
                if self._challenges.get(key) is challenge:
                    del self._challenges[key]
            logger.warning("OTP dispatch failed for %s (%s); challenge withdrawn", key, self.purpose)
            raise
        logger.info("OTP issued for %s (%s)", key, self.purpose)

    def _raise_if_cooling_down(self, key: str, now: float) -> None:
        previous = self._challenges.get(key)
        if previous is None:
            return
        elapsed = now - previous.last_issued_at
        if elapsed < self.cooldown_seconds:
            retry_after = math.ceil(self.cooldown_seconds - elapsed)
            raise RateLimited("Please wait before resending OTP", retry_after=retry_after)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify_challenge(self, email: str, code: str) -> None:
        """Check code against the live challenge for email.

        Returns None on success, after removing the challenge; the caller
        mints the verification token. Raises NotFound, Expired,
        TooManyAttempts, or InvalidCode otherwise. A wrong code keeps the
        challenge so the remaining attempts can be used.
        """
        key = normalize_email(email)
        with self._lock:
            challenge = self._challenges.get(key)
            if challenge is None:
                raise NotFound("OTP not found. Send OTP again.", status_code=400)
            if self._clock.now() > challenge.expires_at:
                del self._challenges[key]
                raise Expired("OTP expired. Send OTP again.")
            if challenge.attempts_used >= self.max_attempts:
                del self._challenges[key]
                logger.info("OTP attempt budget exhausted for %s (%s)", key, self.purpose)
                raise TooManyAttempts("Too many attempts. Send OTP again.")
            challenge.attempts_used += 1
            hashed = challenge.hashed_code

        if not _code_matches(code, hashed):
            raise InvalidCode("Invalid OTP")

        with self._lock:
            if self._challenges.get(key) is not challenge:
                # Consumed by a concurrent request, or replaced by a newer code.
                raise NotFound("OTP not found. Send OTP again.", status_code=400)
            del self._challenges[key]
        logger.info("OTP verified for %s (%s)", key, self.purpose)

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def peek(self, email: str) -> OtpChallenge | None:
        """Return the live challenge for email, or None. Drops it if expired."""
        key = normalize_email(email)
        with self._lock:
            challenge = self._challenges.get(key)
            if challenge is not None and self._clock.now() > challenge.expires_at:
                del self._challenges[key]
                return None
            return challenge

    def purge_expired(self) -> int:
        """Delete every expired challenge. Returns the number removed."""
        now = self._clock.now()
        with self._lock:
            expired = [key for key, c in self._challenges.items() if now > c.expires_at]
            for key in expired:
                del self._challenges[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._challenges)
