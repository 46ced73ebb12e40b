"""Database model for a single funded raffle."""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Integer,
    LargeBinary,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates

from ..constants import MAX_RAFFLE_ID_LENGTH, MAX_WINNERS, ORACLE_TIMEOUT
from ..db.utils import dt_iso, ensure_utc
from .base import Base
from .types import AMOUNT_TYPE, ID_TYPE, UTCDateTime

if TYPE_CHECKING:
    from .chain import LedgerTransaction
    from .participant import Participant


class RaffleState(str, enum.Enum):
    """Lifecycle phase of a raffle, derived from its flags and the clock."""

    OPEN = "open"
    CLOSED = "closed"
    RANDOMNESS_REQUESTED = "randomness_requested"
    RANDOMNESS_SETTLED = "randomness_settled"
    DISTRIBUTED = "distributed"
    FINALIZED = "finalized"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Raffle(Base):
    """A prize pool, its entry window, and its randomness outcome.

    The randomness sub-state lives on the same row because it shares the
    raffle's lifecycle one-to-one.
    """

    __tablename__ = "raffles"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Surrogate primary key."""

    raffle_id: Mapped[str] = mapped_column(
        String(MAX_RAFFLE_ID_LENGTH), nullable=False, index=True
    )
    """Human-assigned identifier chosen by the owner."""

    owner: Mapped[str] = mapped_column(String(100), nullable=False)
    """Wallet identity of the owner; the only caller allowed owner-only operations."""

    custody_account: Mapped[str] = mapped_column(String(255), nullable=False)
    """Ledger account holding the pool while the raffle runs."""

    prize_pool: Mapped[int] = mapped_column(AMOUNT_TYPE, nullable=False)
    """Funding target in ledger base units."""

    collected_amount: Mapped[int] = mapped_column(
        AMOUNT_TYPE, nullable=False, default=0
    )
    """Amount funded so far; never exceeds ``prize_pool``."""

    disbursed_amount: Mapped[int] = mapped_column(
        AMOUNT_TYPE, nullable=False, default=0
    )
    """Amount moved out of custody by payouts and the closing refund."""

    deadline: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    """Registration closes once the clock reaches this instant."""

    max_participants: Mapped[int] = mapped_column(Integer, nullable=False)
    participant_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    claims_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_distributed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    is_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    randomness_requested: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    randomness_settled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    uses_fallback: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    """``True`` when the value came from the timeout fallback instead of the oracle."""

    randomness_request_time: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True
    )
    randomness_handle: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    """Opaque oracle resource the settlement reads from."""

    random_value: Mapped[Optional[bytes]] = mapped_column(
        LargeBinary(32), nullable=True
    )
    """Settled 32-byte random value."""

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )
    settled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    participants: Mapped[list["Participant"]] = relationship(
        back_populates="raffle",
        cascade="all, delete-orphan",
        order_by="Participant.participant_index",
    )
    ledger_transactions: Mapped[list["LedgerTransaction"]] = relationship(
        back_populates="raffle",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("raffle_id", name="uq_raffles_raffle_id"),
        CheckConstraint("prize_pool > 0", name="prize_pool_positive"),
        CheckConstraint(
            "collected_amount >= 0 AND collected_amount <= prize_pool",
            name="collected_within_pool",
        ),
        CheckConstraint(
            "disbursed_amount >= 0 AND disbursed_amount <= collected_amount",
            name="disbursed_within_collected",
        ),
        CheckConstraint("max_participants > 0", name="max_participants_positive"),
        CheckConstraint(
            "participant_count >= 0 AND participant_count <= max_participants",
            name="participants_within_cap",
        ),
        CheckConstraint(
            "NOT (uses_fallback AND NOT randomness_settled)",
            name="fallback_implies_settled",
        ),
    )

    def __init__(
        self,
        *,
        raffle_id: str,
        owner: str,
        prize_pool: int,
        deadline: datetime,
        max_participants: int,
        custody_account: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.raffle_id = raffle_id
        self.owner = owner
        self.custody_account = custody_account or custody_account_for(raffle_id)
        self.prize_pool = prize_pool
        self.collected_amount = 0
        self.disbursed_amount = 0
        self.deadline = ensure_utc(deadline)
        self.max_participants = max_participants
        self.participant_count = 0
        self.claims_count = 0
        self.is_active = True
        self.is_distributed = False
        self.is_closed = False
        self.randomness_requested = False
        self.randomness_settled = False
        self.uses_fallback = False
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<Raffle(id={self.id}, raffle_id='{self.raffle_id}', owner='{self.owner}', "
            f"participants={self.participant_count}/{self.max_participants}, "
            f"distributed={self.is_distributed}, closed={self.is_closed})>"
        )

    @validates("raffle_id")
    def _normalize_raffle_id(self, _key: str, value: str) -> str:
        if not isinstance(value, str):
            raise TypeError("raffle_id must be a string")
        normalized = value.strip()
        if not normalized:
            raise ValueError("raffle_id must not be empty")
        if len(normalized) > MAX_RAFFLE_ID_LENGTH:
            raise ValueError(
                f"raffle_id must be at most {MAX_RAFFLE_ID_LENGTH} characters"
            )
        return normalized

    @classmethod
    def get_by_raffle_id(
        cls, session: Session, raffle_id: str, *, for_update: bool = False
    ) -> Optional["Raffle"]:
        """Return the raffle with ``raffle_id``, optionally locking its row.

        ``for_update`` issues ``SELECT ... FOR UPDATE`` so that concurrent
        operations on the same raffle are serialized by the database.
        """
        stmt = select(cls).where(cls.raffle_id == raffle_id.strip())
        if for_update:
            stmt = stmt.with_for_update()
        return session.scalar(stmt)

    # -------- derived values --------
    @property
    def winners_count(self) -> int:
        """Number of winners once randomness is settled."""
        return min(self.participant_count, MAX_WINNERS)

    @property
    def prize_amount(self) -> int:
        """Per-winner share; the integer-division remainder stays in custody."""
        if self.winners_count == 0:
            return 0
        return self.collected_amount // self.winners_count

    @property
    def custody_balance(self) -> int:
        return self.collected_amount - self.disbursed_amount

    @property
    def remaining_to_fund(self) -> int:
        return self.prize_pool - self.collected_amount

    @property
    def fallback_available_at(self) -> Optional[datetime]:
        if self.randomness_request_time is None:
            return None
        return ensure_utc(self.randomness_request_time) + ORACLE_TIMEOUT

    @property
    def random_value_hex(self) -> Optional[str]:
        return self.random_value.hex() if self.random_value is not None else None

    def deadline_reached(self, now: datetime) -> bool:
        return ensure_utc(now) >= ensure_utc(self.deadline)

    def state(self, now: Optional[datetime] = None) -> RaffleState:
        """Return the lifecycle phase at ``now`` (defaults to the current time)."""
        now = now or _utcnow()
        if self.is_closed:
            return RaffleState.FINALIZED
        if self.is_distributed:
            if self.claims_count >= self.winners_count:
                return RaffleState.FINALIZED
            return RaffleState.DISTRIBUTED
        if self.randomness_settled:
            return RaffleState.RANDOMNESS_SETTLED
        if self.randomness_requested:
            return RaffleState.RANDOMNESS_REQUESTED
        if self.deadline_reached(now):
            return RaffleState.CLOSED
        return RaffleState.OPEN

    def to_json(self, now: Optional[datetime] = None) -> dict[str, Any]:
        """Serialize the publicly observable raffle fields."""
        return {
            "raffle_id": self.raffle_id,
            "owner": self.owner,
            "custody_account": self.custody_account,
            "state": self.state(now).value,
            "prize_pool": self.prize_pool,
            "collected_amount": self.collected_amount,
            "disbursed_amount": self.disbursed_amount,
            "deadline": dt_iso(self.deadline),
            "max_participants": self.max_participants,
            "participant_count": self.participant_count,
            "winners_count": self.winners_count,
            "prize_amount": self.prize_amount,
            "claims_count": self.claims_count,
            "is_active": self.is_active,
            "is_distributed": self.is_distributed,
            "is_closed": self.is_closed,
            "randomness_requested": self.randomness_requested,
            "randomness_settled": self.randomness_settled,
            "uses_fallback": self.uses_fallback,
            "randomness_request_time": dt_iso(self.randomness_request_time),
            "fallback_available_at": dt_iso(self.fallback_available_at),
            "randomness_handle": self.randomness_handle,
            "random_value": self.random_value_hex,
            "settled_at": dt_iso(self.settled_at),
            "closed_at": dt_iso(self.closed_at),
        }


def custody_account_for(raffle_id: str) -> str:
    """Return the default custody account label for ``raffle_id``."""
    return f"raffle-custody:{raffle_id.strip()}"


__all__ = ["Raffle", "RaffleState", "custody_account_for"]
