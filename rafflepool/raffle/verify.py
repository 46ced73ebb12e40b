"""Public audit record of a settled raffle and its independent re-check."""

from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy.orm import Session

from ..constants import MAX_WINNERS
from ..models import Raffle
from .errors import RandomnessNotSettledError
from .roster import roster
from .selection import select_winner_indices


def export_audit(session: Session, raffle: Raffle) -> dict[str, Any]:
    """Build the public data needed to recompute the winners of ``raffle``."""
    if not raffle.randomness_settled or raffle.random_value is None:
        raise RandomnessNotSettledError()

    entrants = [
        {"participant_index": p.participant_index, "wallet": p.wallet}
        for p in roster(session, raffle)
    ]
    winners = select_winner_indices(
        raffle.random_value, raffle.participant_count, MAX_WINNERS
    )
    return {
        "metadata": {
            "raffle_id": raffle.raffle_id,
            "random_value": raffle.random_value.hex(),
            "uses_fallback": raffle.uses_fallback,
            "participant_count": raffle.participant_count,
            "max_winners": MAX_WINNERS,
            "prize_amount": raffle.prize_amount,
        },
        "all_entrants": entrants,
        "winner_indices": winners,
        "winners": [entrants[i]["wallet"] for i in winners],
    }


def verify_audit(audit: Mapping[str, Any]) -> dict[str, Any]:
    """Recompute the winners of an exported audit record.

    Raises
    ------
    RuntimeError
        If the winner cap differs from ``MAX_WINNERS``, the roster is not
        dense, or the recorded winners do not match the recomputation.
    """
    meta = audit["metadata"]
    random_value = bytes.fromhex(meta["random_value"])
    participant_count = int(meta["participant_count"])
    max_winners = int(meta["max_winners"])
    if max_winners != MAX_WINNERS:
        raise RuntimeError(
            f"Winner cap mismatch: audit={max_winners} expected={MAX_WINNERS}"
        )

    entrants = sorted(audit["all_entrants"], key=lambda e: int(e["participant_index"]))
    indices = [int(e["participant_index"]) for e in entrants]
    if indices != list(range(participant_count)):
        raise RuntimeError(
            f"Roster indices are not dense: expected 0..{participant_count - 1}"
        )

    recomputed = select_winner_indices(random_value, participant_count, max_winners)
    expected = [int(i) for i in audit["winner_indices"]]
    if recomputed != expected:
        raise RuntimeError(
            f"Winner mismatch: audit={expected} recomputed={recomputed}"
        )

    wallets = [entrants[i]["wallet"] for i in recomputed]
    if "winners" in audit and list(audit["winners"]) != wallets:
        raise RuntimeError(
            f"Winner wallet mismatch: audit={audit['winners']} recomputed={wallets}"
        )

    return {
        "ok": True,
        "raffle_id": meta.get("raffle_id"),
        "uses_fallback": bool(meta.get("uses_fallback", False)),
        "winner_indices": recomputed,
        "winners": wallets,
    }


__all__ = ["export_audit", "verify_audit"]
