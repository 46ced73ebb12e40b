"""Two-phase acquisition of a raffle's random value.

The oracle path records a handle on request and later reads the resolved
value behind it. If the oracle never resolves, the owner can settle from
chain-local entropy once :data:`~rafflepool.constants.ORACLE_TIMEOUT` has
elapsed since the request. Both paths converge on the same 32-byte value and
settle exactly once; fallback-settled raffles are flagged with
``uses_fallback`` because that entropy is knowable slightly in advance by
whoever produces blocks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Mapping, Optional

import requests

from ..constants import RANDOM_VALUE_LENGTH
from ..db.utils import ensure_utc
from ..models import Raffle
from .errors import (
    AlreadyDistributedError,
    DeadlineNotReachedError,
    NoParticipantsError,
    OracleDataError,
    RaffleInactiveError,
    RandomnessAlreadyRequestedError,
    RandomnessAlreadySettledError,
    RandomnessNotRequestedError,
    RandomnessNotResolvedError,
    TooEarlyForFallbackError,
)
from .guards import require_not_closed, require_owner

if TYPE_CHECKING:
    from ..blockchain.api import ChainClient

logger = logging.getLogger(__name__)

_U64_MASK = (1 << 64) - 1
_PENDING_STATUSES = frozenset({"requested", "pending"})


@dataclass(frozen=True)
class ChainClock:
    """Snapshot of the chain-local clock used to mix fallback entropy."""

    slot: int
    unix_timestamp: int

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ChainClock":
        try:
            return cls(
                slot=int(payload["slot"]),
                unix_timestamp=int(payload["unix_timestamp"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed chain clock payload: {payload!r}") from exc

    @property
    def as_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.unix_timestamp, tz=timezone.utc)


def _decode_value(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        text = value.strip().lower()
        if text.startswith("0x"):
            text = text[2:]
        try:
            raw = bytes.fromhex(text)
        except ValueError as exc:
            raise OracleDataError("Oracle value is not valid hex") from exc
    elif isinstance(value, list) and all(
        isinstance(b, int) and 0 <= b <= 255 for b in value
    ):
        raw = bytes(value)
    else:
        raise OracleDataError(f"Unsupported oracle value type: {type(value).__name__}")
    if len(raw) != RANDOM_VALUE_LENGTH:
        raise OracleDataError(
            f"Oracle value must be {RANDOM_VALUE_LENGTH} bytes, got {len(raw)}"
        )
    return raw


def decode_oracle_payload(payload: Any) -> bytes:
    """Return the resolved 32-byte value carried by an oracle payload.

    Parameters
    ----------
    payload : Any
        Response of :meth:`ChainClient.get_randomness`. Expected to be a dict
        with a ``status`` and, once resolved, a ``value`` given as hex, raw
        bytes or a list of byte integers.

    Raises
    ------
    RandomnessNotResolvedError
        If the oracle accepted the request but has not produced a value yet.
    OracleDataError
        If the payload cannot be decoded into a resolved value.
    """
    if not isinstance(payload, Mapping):
        raise OracleDataError(f"Unexpected oracle payload: {payload!r}")
    status = str(payload.get("status", "")).lower()
    if status in _PENDING_STATUSES:
        raise RandomnessNotResolvedError()
    if status != "resolved":
        raise OracleDataError(f"Unknown oracle status '{status}'")
    if payload.get("value") is None:
        raise OracleDataError("Resolved oracle payload has no value")
    return _decode_value(payload["value"])


def generate_fallback_seed(slot: int, timestamp: int, raffle_id: str) -> bytes:
    """Deterministically mix slot, timestamp and raffle id into 32 bytes.

    This is the last-resort entropy when no slot hash is available. It is
    predictable to whoever controls transaction timing.

    All arithmetic wraps at 64 bits: ``seed = slot``, then ``seed * 31 +
    timestamp``, then ``seed * 31 + byte`` for each UTF-8 byte of the id. The
    output is the little-endian words ``seed * 1`` .. ``seed * 4``.
    """
    seed = slot & _U64_MASK
    seed = (seed * 31 + (timestamp & _U64_MASK)) & _U64_MASK
    for byte in raffle_id.encode("utf-8"):
        seed = (seed * 31 + byte) & _U64_MASK

    return b"".join(
        ((seed * (i + 1)) & _U64_MASK).to_bytes(8, "little") for i in range(4)
    )


def derive_fallback_randomness(
    raffle_id: str,
    clock: ChainClock,
    slot_hash: Optional[bytes] = None,
) -> bytes:
    """Return fallback entropy: a recent slot hash when usable, else the seed mix."""
    if slot_hash is not None and len(slot_hash) >= RANDOM_VALUE_LENGTH:
        return bytes(slot_hash[:RANDOM_VALUE_LENGTH])
    return generate_fallback_seed(clock.slot, clock.unix_timestamp, raffle_id)


def _mark_settled(
    raffle: Raffle, random_value: bytes, now: datetime, *, fallback: bool
) -> None:
    raffle.random_value = random_value
    raffle.randomness_settled = True
    raffle.uses_fallback = fallback
    raffle.is_distributed = True
    raffle.is_active = False
    raffle.settled_at = now


class RandomnessCoordinator:
    """Drive a raffle from closed entries to a settled random value."""

    def __init__(self, client: Optional["ChainClient"] = None) -> None:
        self._client = client

    @property
    def client(self) -> "ChainClient":
        if self._client is None:
            from ..blockchain.api import ChainClient

            self._client = ChainClient()
        return self._client

    def request(
        self,
        raffle: Raffle,
        caller: str,
        handle: str,
        now: Optional[datetime] = None,
    ) -> None:
        """Record the oracle resource the raffle will settle from."""
        now = ensure_utc(now or datetime.now(timezone.utc))
        require_owner(raffle, caller)
        require_not_closed(raffle)
        if not raffle.is_active:
            raise RaffleInactiveError()
        if not raffle.deadline_reached(now):
            raise DeadlineNotReachedError()
        if raffle.is_distributed:
            raise AlreadyDistributedError()
        if raffle.randomness_requested:
            raise RandomnessAlreadyRequestedError()
        if raffle.participant_count <= 0:
            raise NoParticipantsError()
        if not isinstance(handle, str) or not handle.strip():
            raise ValueError("oracle handle must be a non-empty string")

        raffle.randomness_handle = handle.strip()
        raffle.randomness_requested = True
        raffle.randomness_request_time = now
        logger.info(
            "Randomness requested for raffle %s at %s",
            raffle.raffle_id,
            now.isoformat(),
        )

    def _require_settleable(self, raffle: Raffle, caller: str) -> None:
        require_owner(raffle, caller)
        require_not_closed(raffle)
        if not raffle.randomness_requested:
            raise RandomnessNotRequestedError()
        if raffle.randomness_settled:
            raise RandomnessAlreadySettledError()
        if raffle.is_distributed:
            raise AlreadyDistributedError()

    def settle(
        self,
        raffle: Raffle,
        caller: str,
        now: Optional[datetime] = None,
    ) -> bytes:
        """Read the oracle resolution and commit it as the raffle's value.

        Raises
        ------
        RandomnessNotResolvedError
            If the oracle has not resolved yet; retry later.
        OracleDataError
            If the oracle payload is malformed.
        """
        now = ensure_utc(now or datetime.now(timezone.utc))
        self._require_settleable(raffle, caller)
        assert raffle.randomness_handle is not None

        payload = self.client.get_randomness(raffle.randomness_handle)
        random_value = decode_oracle_payload(payload)

        _mark_settled(raffle, random_value, now, fallback=False)
        logger.info(
            "Randomness settled from oracle for raffle %s (%d participants)",
            raffle.raffle_id,
            raffle.participant_count,
        )
        return random_value

    def fallback(
        self,
        raffle: Raffle,
        caller: str,
        now: Optional[datetime] = None,
    ) -> bytes:
        """Settle from chain-local entropy after the oracle timed out.

        The clock and slot hash are always read from the chain so that the
        caller has no say in the entropy.

        Raises
        ------
        TooEarlyForFallbackError
            If called before ``randomness_request_time + ORACLE_TIMEOUT``.
        """
        now = ensure_utc(now or datetime.now(timezone.utc))
        self._require_settleable(raffle, caller)
        available_at = raffle.fallback_available_at
        if available_at is None or now < available_at:
            raise TooEarlyForFallbackError()

        clock = ChainClock.from_payload(self.client.get_clock())
        slot_hash = self._recent_slot_hash()
        random_value = derive_fallback_randomness(raffle.raffle_id, clock, slot_hash)

        _mark_settled(raffle, random_value, now, fallback=True)
        source = (
            "slot hash"
            if slot_hash is not None and len(slot_hash) >= RANDOM_VALUE_LENGTH
            else "slot/timestamp mix"
        )
        logger.warning(
            "Emergency fallback settled raffle %s from %s; fallback randomness is "
            "lower assurance than the oracle",
            raffle.raffle_id,
            source,
        )
        return random_value

    def _recent_slot_hash(self) -> Optional[bytes]:
        try:
            slot_hash_hex = self.client.get_recent_slot_hash()
        except requests.RequestException as exc:
            logger.warning("Slot hash unavailable, using slot/timestamp mix: %s", exc)
            return None
        if not slot_hash_hex:
            return None
        try:
            return bytes.fromhex(slot_hash_hex.removeprefix("0x"))
        except ValueError:
            logger.warning("Ignoring malformed slot hash from chain: %r", slot_hash_hex)
            return None


__all__ = [
    "ChainClock",
    "RandomnessCoordinator",
    "decode_oracle_payload",
    "derive_fallback_randomness",
    "generate_fallback_seed",
]
