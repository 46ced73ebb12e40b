from datetime import datetime, timezone
import json
from typing import TYPE_CHECKING, Any, Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
)
from .base import Base
from .types import AMOUNT_TYPE, ID_TYPE, UTCDateTime

if TYPE_CHECKING:
    from .participant import Participant
    from .raffle import Raffle


class LedgerTransaction(Base):
    """Value movement performed on the external ledger for a raffle.

    Stores request and response payloads for deposits into custody, prize
    payouts to winners, and the closing refund to the owner.
    """

    __tablename__ = "ledger_transactions"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    raffle_pk: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("raffles.id", ondelete="CASCADE"), nullable=False
    )
    participant_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("participants.id", ondelete="SET NULL"), nullable=True
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    source: Mapped[str] = mapped_column(String(255), nullable=False)
    destination: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[int] = mapped_column(AMOUNT_TYPE, nullable=False)
    tx_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, unique=True)
    request_payload_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    response_payload_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    raffle: Mapped["Raffle"] = relationship(back_populates="ledger_transactions")
    participant: Mapped[Optional["Participant"]] = relationship(
        back_populates="ledger_transactions"
    )

    __table_args__ = (
        CheckConstraint("kind IN ('deposit','payout','refund')", name="kind_enum"),
        CheckConstraint("status IN ('confirmed','failed')", name="status_enum"),
        CheckConstraint("amount > 0", name="amount_positive"),
        Index("ix_ledger_raffle_kind", "raffle_pk", "kind"),
        Index("ix_ledger_participant", "participant_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerTransaction(id={self.id}, raffle_pk={self.raffle_pk}, kind='{self.kind}', "
            f"amount={self.amount}, status='{self.status}', tx_hash={self.tx_hash})>"
        )

    @classmethod
    def confirmed(
        cls,
        *,
        raffle: "Raffle",
        kind: str,
        source: str,
        destination: str,
        amount: int,
        request_payload: dict[str, Any],
        response_payload: dict[str, Any],
        participant: Optional["Participant"] = None,
    ) -> "LedgerTransaction":
        """Build a confirmed record from a successful ledger response."""
        now = datetime.now(timezone.utc)
        tx = cls(
            kind=kind,
            status="confirmed",
            source=source,
            destination=destination,
            amount=amount,
            tx_hash=response_payload.get("tx_hash"),
            request_payload_json=json.dumps(request_payload, sort_keys=True),
            response_payload_json=json.dumps(response_payload, sort_keys=True, default=str),
            created_at=now,
            confirmed_at=now,
        )
        tx.raffle = raffle
        if participant is not None:
            tx.participant = participant
        return tx
