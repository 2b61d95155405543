"""
auth/clock.py -- Injectable time source for TTL and cooldown checks.

The ledgers and the token issuer take any object with a now() method that
returns epoch seconds as a float. Production code uses SystemClock; tests pass
a clock they can advance by hand so expiry paths run without sleeping.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float: ...


class SystemClock:
    """Wall-clock time (time.time). Shared freely; holds no state."""

    def now(self) -> float:
        return time.time()
