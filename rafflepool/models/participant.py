from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from ..constants import RANDOM_VALUE_LENGTH
from ..db.utils import dt_iso
from .base import Base
from .types import ID_TYPE, UTCDateTime

if TYPE_CHECKING:
    from .chain import LedgerTransaction
    from .raffle import Raffle


def normalize_contact_hash(contact_hash: bytes | str) -> bytes:
    """Return ``contact_hash`` as 32 raw bytes.

    Accepts raw bytes or a 64-character hex string (an optional ``0x`` prefix
    is ignored). The value is an opaque one-way hash; it is never decoded.
    """
    if isinstance(contact_hash, str):
        text = contact_hash.strip().lower()
        if text.startswith("0x"):
            text = text[2:]
        try:
            value = bytes.fromhex(text)
        except ValueError as exc:
            raise ValueError("contact_hash must be valid hex") from exc
    elif isinstance(contact_hash, (bytes, bytearray, memoryview)):
        value = bytes(contact_hash)
    else:
        raise TypeError("contact_hash must be bytes or a hex string")
    if len(value) != RANDOM_VALUE_LENGTH:
        raise ValueError(f"contact_hash must be {RANDOM_VALUE_LENGTH} bytes")
    return value


class Participant(Base):
    """A registered entrant of one raffle.

    ``participant_index`` is the registration-order rank (the N-th registrant
    gets N-1). Winner status is recomputed from the raffle's random value;
    ``is_winner`` only caches the last computation.
    """

    __tablename__ = "participants"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    raffle_pk: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("raffles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    wallet: Mapped[str] = mapped_column(String(100), nullable=False)
    contact_hash: Mapped[bytes] = mapped_column(LargeBinary(32), nullable=False)
    participant_index: Mapped[int] = mapped_column(Integer, nullable=False)
    is_winner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    registered_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    claimed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    raffle: Mapped["Raffle"] = relationship(back_populates="participants")
    ledger_transactions: Mapped[list["LedgerTransaction"]] = relationship(
        back_populates="participant"
    )

    __table_args__ = (
        UniqueConstraint("raffle_pk", "wallet", name="uq_participant_wallet"),
        UniqueConstraint(
            "raffle_pk", "participant_index", name="uq_participant_index"
        ),
        CheckConstraint("participant_index >= 0", name="index_non_negative"),
    )

    def __init__(
        self,
        *,
        wallet: str,
        contact_hash: bytes | str,
        participant_index: int,
        raffle: Optional["Raffle"] = None,
        registered_at: Optional[datetime] = None,
    ) -> None:
        if raffle is not None:
            self.raffle = raffle
        self.wallet = wallet
        self.contact_hash = normalize_contact_hash(contact_hash)
        self.participant_index = participant_index
        self.is_winner = False
        self.claimed = False
        if registered_at is not None:
            self.registered_at = registered_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<Participant(id={self.id}, raffle_pk={self.raffle_pk}, wallet='{self.wallet}', "
            f"index={self.participant_index}, claimed={self.claimed})>"
        )

    @classmethod
    def get_for_wallet(
        cls, session: Session, raffle: "Raffle", wallet: str
    ) -> Optional["Participant"]:
        """Return the participant record of ``wallet`` in ``raffle`` if any."""
        return session.scalar(
            select(cls).where(cls.raffle_pk == raffle.id, cls.wallet == wallet)
        )

    @classmethod
    def get_by_index(
        cls, session: Session, raffle: "Raffle", participant_index: int
    ) -> Optional["Participant"]:
        return session.scalar(
            select(cls).where(
                cls.raffle_pk == raffle.id,
                cls.participant_index == participant_index,
            )
        )

    def to_json(self) -> dict[str, Any]:
        # contact_hash stays out of the public view
        return {
            "wallet": self.wallet,
            "participant_index": self.participant_index,
            "is_winner": self.is_winner,
            "claimed": self.claimed,
            "registered_at": dt_iso(self.registered_at),
            "claimed_at": dt_iso(self.claimed_at),
        }


__all__ = ["Participant", "normalize_contact_hash"]
