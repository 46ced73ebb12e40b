"""Deterministic winner selection keyed by a settled random value.

The winner set of a raffle is a partial Fisher-Yates shuffle of the roster
indices ``[0, total_participants)``. The shuffle draws from a SHA-256 counter
stream keyed by the full 32-byte random value, so every byte of the value
influences the outcome and anyone who knows the roster size, the winner cap
and the settled value can recompute the same winners.

Stream layout
-------------
Block ``k`` is ``SHA-256(random_value || k.to_bytes(8, "big"))``. Each block
is split into four big-endian 64-bit words, consumed in order. A bounded draw
``below(n)`` rejects words ``w >= (2**64 // n) * n`` and returns ``w % n``.
"""

from __future__ import annotations

import hashlib
from typing import Iterator

from ..constants import MAX_WINNERS, RANDOM_VALUE_LENGTH

_WORD_BYTES = 8
_WORD_SPACE = 1 << 64


class _KeyedWordStream:
    """Iterator of 64-bit words derived from ``random_value``."""

    def __init__(self, random_value: bytes) -> None:
        self._key = random_value
        self._counter = 0
        self._words: Iterator[int] = iter(())

    def _refill(self) -> None:
        block = hashlib.sha256(
            self._key + self._counter.to_bytes(8, "big")
        ).digest()
        self._counter += 1
        self._words = iter(
            int.from_bytes(block[i : i + _WORD_BYTES], "big")
            for i in range(0, len(block), _WORD_BYTES)
        )

    def next_word(self) -> int:
        word = next(self._words, None)
        if word is None:
            self._refill()
            word = next(self._words)
        return word

    def below(self, bound: int) -> int:
        """Return an unbiased integer in ``[0, bound)``."""
        if bound <= 0:
            raise ValueError("bound must be positive")
        limit = (_WORD_SPACE // bound) * bound
        while True:
            word = self.next_word()
            if word < limit:
                return word % bound


def _validate_random_value(random_value: bytes) -> bytes:
    if not isinstance(random_value, (bytes, bytearray, memoryview)):
        raise TypeError("random_value must be bytes")
    value = bytes(random_value)
    if len(value) != RANDOM_VALUE_LENGTH:
        raise ValueError(
            f"random_value must be exactly {RANDOM_VALUE_LENGTH} bytes, got {len(value)}"
        )
    return value


def winners_count(total_participants: int, max_winners: int = MAX_WINNERS) -> int:
    """Return how many roster entries win: ``min(total_participants, max_winners)``."""
    if total_participants < 0:
        raise ValueError("total_participants must be non-negative")
    if max_winners < 1:
        raise ValueError("max_winners must be at least 1")
    return min(total_participants, max_winners)


def select_winner_indices(
    random_value: bytes,
    total_participants: int,
    max_winners: int = MAX_WINNERS,
) -> list[int]:
    """Return the winning roster indices in draw order.

    Parameters
    ----------
    random_value : bytes
        Settled 32-byte random value of the raffle.
    total_participants : int
        Number of registered participants. Must be at least 1.
    max_winners : int, default: MAX_WINNERS
        Winner cap of the raffle.

    Returns
    -------
    list[int]
        Exactly ``min(total_participants, max_winners)`` distinct indices.

    Raises
    ------
    ValueError
        If the random value has the wrong length or the counts are invalid.
    """
    value = _validate_random_value(random_value)
    if total_participants < 1:
        raise ValueError("total_participants must be at least 1")
    count = winners_count(total_participants, max_winners)

    stream = _KeyedWordStream(value)
    # Only the prefix that gets swapped is ever materialised.
    swapped: dict[int, int] = {}
    selected: list[int] = []
    for i in range(count):
        j = i + stream.below(total_participants - i)
        at_i = swapped.get(i, i)
        at_j = swapped.get(j, j)
        swapped[i] = at_j
        swapped[j] = at_i
        selected.append(at_j)
    return selected


def winner_set(
    random_value: bytes,
    total_participants: int,
    max_winners: int = MAX_WINNERS,
) -> frozenset[int]:
    """Return the winning indices as a set."""
    return frozenset(
        select_winner_indices(random_value, total_participants, max_winners)
    )


def is_winner(
    random_value: bytes,
    participant_index: int,
    total_participants: int,
    max_winners: int = MAX_WINNERS,
) -> bool:
    """Decide whether ``participant_index`` is among the winners.

    This is a pure function of its arguments. It is the only source of truth
    for a participant's winner status; any stored flag is a cache of it.

    Raises
    ------
    ValueError
        If ``participant_index`` is outside ``[0, total_participants)`` or the
        other inputs are invalid.
    """
    if total_participants < 1:
        raise ValueError("total_participants must be at least 1")
    if not 0 <= participant_index < total_participants:
        raise ValueError(
            f"participant_index {participant_index} is outside [0, {total_participants})"
        )
    return participant_index in winner_set(
        random_value, total_participants, max_winners
    )


__all__ = [
    "is_winner",
    "select_winner_indices",
    "winner_set",
    "winners_count",
]
