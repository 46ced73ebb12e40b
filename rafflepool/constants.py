"""Fixed parameters of the raffle lifecycle."""

from __future__ import annotations

from datetime import timedelta

ORACLE_TIMEOUT_SECONDS = 604800  # 7 days
ORACLE_TIMEOUT = timedelta(seconds=ORACLE_TIMEOUT_SECONDS)
"""Delay after a randomness request before the fallback path opens."""

MAX_WINNERS = 10
"""Winner cap applied to every raffle regardless of participant count."""

MAX_RAFFLE_ID_LENGTH = 50

RANDOM_VALUE_LENGTH = 32
"""Size in bytes of a settled random value and of a contact hash."""

__all__ = [
    "MAX_RAFFLE_ID_LENGTH",
    "MAX_WINNERS",
    "ORACLE_TIMEOUT",
    "ORACLE_TIMEOUT_SECONDS",
    "RANDOM_VALUE_LENGTH",
]
