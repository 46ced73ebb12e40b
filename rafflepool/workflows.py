"""Caller-facing raffle operations.

Each function runs inside the caller's SQLAlchemy session and either applies
all of its field updates or raises a :class:`~rafflepool.raffle.errors.RaffleError`
without touching the raffle. Mutating operations lock the raffle row first so
that operations on one raffle are serialized; operations on different
raffles share no state.
"""

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy.orm import Session

from .db.utils import ensure_utc
from .models import Participant, Raffle
from .raffle.roster import register as register_entry
from .raffle.distributor import PrizeDistributor, evaluate_winner
from .raffle.errors import (
    CannotCloseError,
    ParticipantNotFoundError,
    PrizePoolFilledError,
    RaffleAlreadyExistsError,
    RaffleNotFoundError,
)
from .raffle.guards import require_not_closed, require_open_for_changes, require_owner
from .raffle.ledger import move_funds
from .raffle.randomness import RandomnessCoordinator

if TYPE_CHECKING:
    from .blockchain.api import ChainClient

logger = logging.getLogger(__name__)


def _now(now: Optional[datetime]) -> datetime:
    return ensure_utc(now or datetime.now(timezone.utc))


def _default_client(client: Optional["ChainClient"]) -> "ChainClient":
    if client is None:
        from .blockchain.api import ChainClient

        client = ChainClient()
    return client


def _load_raffle(session: Session, raffle_id: str, *, for_update: bool = True) -> Raffle:
    raffle = Raffle.get_by_raffle_id(session, raffle_id, for_update=for_update)
    if raffle is None:
        raise RaffleNotFoundError(f"Raffle '{raffle_id}' not found")
    return raffle


def _load_participant(session: Session, raffle: Raffle, wallet: str) -> Participant:
    participant = Participant.get_for_wallet(session, raffle, wallet)
    if participant is None:
        raise ParticipantNotFoundError(
            f"Wallet '{wallet}' is not registered for raffle '{raffle.raffle_id}'"
        )
    return participant


def _require_positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer")
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return value


def create_raffle(
    session: Session,
    owner: str,
    raffle_id: str,
    prize_pool: int,
    deadline: datetime,
    max_participants: int,
    *,
    custody_account: Optional[str] = None,
) -> Raffle:
    """Create a raffle owned by ``owner`` with an empty pool.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    owner : str
        Wallet of the sponsor; the only caller allowed owner-only operations.
    raffle_id : str
        Human-assigned identifier, unique, at most 50 characters.
    prize_pool : int
        Funding target in ledger base units.
    deadline : datetime
        Registration closes when the clock reaches this instant. Naive values
        are taken as UTC.
    max_participants : int
        Roster capacity.
    custody_account : Optional[str], default: None
        Ledger account holding the pool. Defaults to a label derived from
        ``raffle_id``.

    Returns
    -------
    Raffle
        The flushed raffle row.

    Raises
    ------
    ValueError, TypeError
        If an argument is malformed.
    RaffleAlreadyExistsError
        If ``raffle_id`` is already taken.
    """
    if not isinstance(owner, str) or not owner.strip():
        raise ValueError("owner must be a non-empty string")
    _require_positive_int("prize_pool", prize_pool)
    _require_positive_int("max_participants", max_participants)
    if not isinstance(deadline, datetime):
        raise TypeError("deadline must be a datetime")
    if not isinstance(raffle_id, str):
        raise TypeError("raffle_id must be a string")

    raffle = Raffle(
        raffle_id=raffle_id,
        owner=owner.strip(),
        prize_pool=prize_pool,
        deadline=deadline,
        max_participants=max_participants,
        custody_account=custody_account,
    )
    if Raffle.get_by_raffle_id(session, raffle.raffle_id) is not None:
        raise RaffleAlreadyExistsError(f"Raffle '{raffle.raffle_id}' already exists")

    session.add(raffle)
    session.flush()
    logger.info("Raffle initialized: %s", raffle.raffle_id)
    return raffle


def fund_raffle(
    session: Session,
    raffle_id: str,
    caller: str,
    amount: Optional[int] = None,
    *,
    client: Optional["ChainClient"] = None,
) -> int:
    """Deposit into the raffle's custody, never beyond ``prize_pool``.

    With ``amount=None`` the whole remainder is deposited. A larger
    ``amount`` is clamped to the remainder, so repeated funding calls can
    never push ``collected_amount`` past the target.

    Returns
    -------
    int
        The amount actually deposited.

    Raises
    ------
    UnauthorizedError
        If ``caller`` is not the owner.
    PrizePoolFilledError
        If the pool is already fully funded.
    LedgerTransferError
        If the ledger does not confirm the deposit.
    """
    raffle = _load_raffle(session, raffle_id)
    require_owner(raffle, caller)
    require_open_for_changes(raffle)
    if raffle.collected_amount >= raffle.prize_pool:
        raise PrizePoolFilledError()
    if amount is not None:
        _require_positive_int("amount", amount)

    remaining = raffle.remaining_to_fund
    deposit_amount = remaining if amount is None else min(amount, remaining)

    move_funds(
        session,
        _default_client(client),
        raffle,
        kind="deposit",
        source=caller,
        destination=raffle.custody_account,
        amount=deposit_amount,
    )
    raffle.collected_amount += deposit_amount
    session.flush()
    logger.info(
        "Prize deposited: %d into raffle %s (%d/%d)",
        deposit_amount,
        raffle.raffle_id,
        raffle.collected_amount,
        raffle.prize_pool,
    )
    return deposit_amount


def register_participant(
    session: Session,
    raffle_id: str,
    wallet: str,
    contact_hash: bytes | str,
    *,
    now: Optional[datetime] = None,
) -> Participant:
    """Register ``wallet`` for ``raffle_id`` before the deadline.

    See :func:`rafflepool.raffle.roster.register` for the guards applied.
    """
    raffle = _load_raffle(session, raffle_id)
    return register_entry(session, raffle, wallet, contact_hash, now=_now(now))


def request_randomness(
    session: Session,
    raffle_id: str,
    caller: str,
    oracle_handle: str,
    *,
    now: Optional[datetime] = None,
) -> Raffle:
    """Record the oracle handle after the deadline (owner only, once)."""
    raffle = _load_raffle(session, raffle_id)
    RandomnessCoordinator().request(raffle, caller, oracle_handle, now=_now(now))
    session.flush()
    return raffle


def settle_randomness(
    session: Session,
    raffle_id: str,
    caller: str,
    *,
    client: Optional["ChainClient"] = None,
    now: Optional[datetime] = None,
) -> Raffle:
    """Settle from the oracle resolution; winners become claimable.

    Raises ``RandomnessNotResolvedError`` while the oracle is still pending,
    in which case the caller retries later.
    """
    raffle = _load_raffle(session, raffle_id)
    RandomnessCoordinator(client).settle(raffle, caller, now=_now(now))
    session.flush()
    return raffle


def emergency_fallback(
    session: Session,
    raffle_id: str,
    caller: str,
    *,
    client: Optional["ChainClient"] = None,
    now: Optional[datetime] = None,
) -> Raffle:
    """Settle from chain-local entropy once the oracle timeout has elapsed.

    The raffle is flagged ``uses_fallback`` so consumers can treat the
    outcome as lower assurance. The entropy comes from the chain clock and
    slot hash read through ``client``; callers cannot supply it.
    """
    raffle = _load_raffle(session, raffle_id)
    RandomnessCoordinator(client).fallback(raffle, caller, now=_now(now))
    session.flush()
    return raffle


def check_winner(session: Session, raffle_id: str, wallet: str) -> bool:
    """Return whether ``wallet`` won; anyone may call this after settlement.

    The participant's cached ``is_winner`` flag is refreshed as a side effect.
    """
    raffle = _load_raffle(session, raffle_id)
    participant = _load_participant(session, raffle, wallet)
    won = evaluate_winner(raffle, participant)
    session.flush()
    if won:
        logger.info(
            "Participant #%d is a winner of raffle %s",
            participant.participant_index,
            raffle.raffle_id,
        )
    return won


def claim_prize(
    session: Session,
    raffle_id: str,
    claimant: str,
    *,
    client: Optional["ChainClient"] = None,
    now: Optional[datetime] = None,
) -> int:
    """Pay ``claimant`` its share if it is an unclaimed winner.

    Returns
    -------
    int
        Amount paid out.
    """
    raffle = _load_raffle(session, raffle_id)
    participant = _load_participant(session, raffle, claimant)
    distributor = PrizeDistributor(session, client)
    return distributor.claim(raffle, participant, claimant, now=_now(now))


def close_raffle(
    session: Session,
    raffle_id: str,
    caller: str,
    *,
    client: Optional["ChainClient"] = None,
    now: Optional[datetime] = None,
) -> int:
    """Close the raffle and refund whatever custody still holds to the owner.

    Only legal when nobody registered or after distribution. Claims are
    rejected afterwards.

    Returns
    -------
    int
        Amount refunded to the owner.
    """
    raffle = _load_raffle(session, raffle_id)
    require_owner(raffle, caller)
    require_not_closed(raffle)
    if not (raffle.participant_count == 0 or raffle.is_distributed):
        raise CannotCloseError()

    refund = raffle.custody_balance
    if refund > 0:
        move_funds(
            session,
            _default_client(client),
            raffle,
            kind="refund",
            source=raffle.custody_account,
            destination=raffle.owner,
            amount=refund,
        )
        raffle.disbursed_amount += refund

    raffle.is_closed = True
    raffle.is_active = False
    raffle.closed_at = _now(now)
    session.flush()
    logger.info("Raffle %s closed; refunded %d to owner", raffle.raffle_id, refund)
    return refund


def get_raffle_status(
    session: Session, raffle_id: str, *, now: Optional[datetime] = None
) -> dict[str, Any]:
    """Return the public view of a raffle, including its lifecycle state."""
    raffle = _load_raffle(session, raffle_id, for_update=False)
    return raffle.to_json(now=_now(now))
