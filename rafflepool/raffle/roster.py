"""Append-only participant roster of a raffle."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.utils import ensure_utc
from ..models import Participant, Raffle
from .errors import (
    AlreadyRegisteredError,
    DeadlinePassedError,
    MaxParticipantsReachedError,
)
from .guards import require_open_for_changes

logger = logging.getLogger(__name__)


def register(
    session: Session,
    raffle: Raffle,
    wallet: str,
    contact_hash: bytes | str,
    now: Optional[datetime] = None,
) -> Participant:
    """Register ``wallet`` and assign it the next dense index.

    The N-th registrant receives ``participant_index = N - 1``. The caller
    must hold the raffle row lock (see :meth:`Raffle.get_by_raffle_id`) so the
    read-increment-write of ``participant_count`` is atomic; the
    ``(raffle, participant_index)`` unique constraint backs this up.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    raffle : Raffle
        Persisted raffle that accepts entries.
    wallet : str
        Registrant identity.
    contact_hash : bytes | str
        One-way hash of off-chain contact info; 32 bytes or 64 hex chars.
    now : Optional[datetime], default: None
        Registration time. Defaults to the current UTC time.

    Returns
    -------
    Participant
        The flushed participant row.

    Raises
    ------
    RaffleError
        If the raffle is closed, inactive, distributed, past its deadline,
        full, or the wallet already holds an entry.
    ValueError
        If ``wallet`` is empty or ``contact_hash`` is malformed.
    """
    if raffle.id is None:
        raise ValueError("Raffle must be persisted before registering participants")
    if not isinstance(wallet, str) or not wallet.strip():
        raise ValueError("wallet must be a non-empty string")
    wallet = wallet.strip()
    now = ensure_utc(now or datetime.now(timezone.utc))

    require_open_for_changes(raffle)
    if raffle.deadline_reached(now):
        raise DeadlinePassedError()
    if raffle.participant_count >= raffle.max_participants:
        raise MaxParticipantsReachedError()
    if Participant.get_for_wallet(session, raffle, wallet) is not None:
        raise AlreadyRegisteredError()

    participant = Participant(
        wallet=wallet,
        contact_hash=contact_hash,
        participant_index=raffle.participant_count,
        registered_at=now,
    )
    participant.raffle = raffle
    session.add(participant)
    raffle.participant_count += 1
    session.flush()

    logger.info(
        "Participant #%d registered for raffle %s: %s",
        participant.participant_index,
        raffle.raffle_id,
        wallet,
    )
    return participant


def roster(session: Session, raffle: Raffle) -> list[Participant]:
    """Return the raffle's participants in registration order."""
    stmt = (
        select(Participant)
        .where(Participant.raffle_pk == raffle.id)
        .order_by(Participant.participant_index.asc())
    )
    return list(session.scalars(stmt).all())


__all__ = ["register", "roster"]
