"""
auth/identity.py -- Identity key normalization shared by ledgers, store and API models.

Emails are compared case-insensitively and without surrounding whitespace
everywhere: the OTP ledger keys on the normalized form, the verification
token binds to it, and the store persists it. Normalizing in one place keeps
"A@Example.com " and "a@example.com" the same identity at every step.
"""

from __future__ import annotations

import re

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
MOBILE_PATTERN = r"^[0-9]{10}$"
PINCODE_PATTERN = r"^[0-9]{6}$"
OTP_PATTERN = r"^[0-9]{6}$"

_EMAIL_RE = re.compile(EMAIL_PATTERN)


def normalize_email(email: str | None) -> str:
    return str(email or "").strip().lower()


def is_valid_email(email: str | None) -> bool:
    return bool(_EMAIL_RE.match(str(email or "").strip()))


def is_email_identity(key: str) -> bool:
    """Login usernames containing '@' are emails; anything else is a mobile number."""
    return "@" in key
