"""create raffle tables

Revision ID: 4b1e7c0a9d21
Revises:
Create Date: 2026-10-19 09:12:04.318552

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from rafflepool.models.types import AMOUNT_TYPE, ID_TYPE, UTCDateTime


# revision identifiers, used by Alembic.
revision: str = "4b1e7c0a9d21"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "raffles",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("raffle_id", sa.String(length=50), nullable=False),
        sa.Column("owner", sa.String(length=100), nullable=False),
        sa.Column("custody_account", sa.String(length=255), nullable=False),
        sa.Column("prize_pool", AMOUNT_TYPE, nullable=False),
        sa.Column("collected_amount", AMOUNT_TYPE, nullable=False),
        sa.Column("disbursed_amount", AMOUNT_TYPE, nullable=False),
        sa.Column("deadline", UTCDateTime(), nullable=False),
        sa.Column("max_participants", sa.Integer(), nullable=False),
        sa.Column("participant_count", sa.Integer(), nullable=False),
        sa.Column("claims_count", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_distributed", sa.Boolean(), nullable=False),
        sa.Column("is_closed", sa.Boolean(), nullable=False),
        sa.Column("randomness_requested", sa.Boolean(), nullable=False),
        sa.Column("randomness_settled", sa.Boolean(), nullable=False),
        sa.Column("uses_fallback", sa.Boolean(), nullable=False),
        sa.Column("randomness_request_time", UTCDateTime(), nullable=True),
        sa.Column("randomness_handle", sa.String(length=255), nullable=True),
        sa.Column("random_value", sa.LargeBinary(length=32), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=False),
        sa.Column("settled_at", UTCDateTime(), nullable=True),
        sa.Column("closed_at", UTCDateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_raffles"),
        sa.UniqueConstraint("raffle_id", name="uq_raffles_raffle_id"),
        sa.CheckConstraint("prize_pool > 0", name="ck_raffles_prize_pool_positive"),
        sa.CheckConstraint(
            "collected_amount >= 0 AND collected_amount <= prize_pool",
            name="ck_raffles_collected_within_pool",
        ),
        sa.CheckConstraint(
            "disbursed_amount >= 0 AND disbursed_amount <= collected_amount",
            name="ck_raffles_disbursed_within_collected",
        ),
        sa.CheckConstraint(
            "max_participants > 0", name="ck_raffles_max_participants_positive"
        ),
        sa.CheckConstraint(
            "participant_count >= 0 AND participant_count <= max_participants",
            name="ck_raffles_participants_within_cap",
        ),
        sa.CheckConstraint(
            "NOT (uses_fallback AND NOT randomness_settled)",
            name="ck_raffles_fallback_implies_settled",
        ),
    )
    op.create_index("ix_raffles_raffle_id", "raffles", ["raffle_id"])

    op.create_table(
        "participants",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("raffle_pk", ID_TYPE, nullable=False),
        sa.Column("wallet", sa.String(length=100), nullable=False),
        sa.Column("contact_hash", sa.LargeBinary(length=32), nullable=False),
        sa.Column("participant_index", sa.Integer(), nullable=False),
        sa.Column("is_winner", sa.Boolean(), nullable=False),
        sa.Column("claimed", sa.Boolean(), nullable=False),
        sa.Column("registered_at", UTCDateTime(), nullable=False),
        sa.Column("claimed_at", UTCDateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_participants"),
        sa.ForeignKeyConstraint(
            ["raffle_pk"],
            ["raffles.id"],
            name="fk_participants_raffle_pk_raffles",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("raffle_pk", "wallet", name="uq_participant_wallet"),
        sa.UniqueConstraint(
            "raffle_pk", "participant_index", name="uq_participant_index"
        ),
        sa.CheckConstraint(
            "participant_index >= 0", name="ck_participants_index_non_negative"
        ),
    )
    op.create_index("ix_participants_raffle_pk", "participants", ["raffle_pk"])

    op.create_table(
        "ledger_transactions",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("raffle_pk", ID_TYPE, nullable=False),
        sa.Column("participant_id", ID_TYPE, nullable=True),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("source", sa.String(length=255), nullable=False),
        sa.Column("destination", sa.String(length=255), nullable=False),
        sa.Column("amount", AMOUNT_TYPE, nullable=False),
        sa.Column("tx_hash", sa.String(length=255), nullable=True),
        sa.Column("request_payload_json", sa.Text(), nullable=True),
        sa.Column("response_payload_json", sa.Text(), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("confirmed_at", UTCDateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_ledger_transactions"),
        sa.ForeignKeyConstraint(
            ["raffle_pk"],
            ["raffles.id"],
            name="fk_ledger_transactions_raffle_pk_raffles",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["participant_id"],
            ["participants.id"],
            name="fk_ledger_transactions_participant_id_participants",
            ondelete="SET NULL",
        ),
        sa.UniqueConstraint("tx_hash", name="uq_ledger_transactions_tx_hash"),
        sa.CheckConstraint(
            "kind IN ('deposit','payout','refund')",
            name="ck_ledger_transactions_kind_enum",
        ),
        sa.CheckConstraint(
            "status IN ('confirmed','failed')",
            name="ck_ledger_transactions_status_enum",
        ),
        sa.CheckConstraint(
            "amount > 0", name="ck_ledger_transactions_amount_positive"
        ),
    )
    op.create_index(
        "ix_ledger_raffle_kind", "ledger_transactions", ["raffle_pk", "kind"]
    )
    op.create_index(
        "ix_ledger_participant", "ledger_transactions", ["participant_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_ledger_participant", table_name="ledger_transactions")
    op.drop_index("ix_ledger_raffle_kind", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")
    op.drop_index("ix_participants_raffle_pk", table_name="participants")
    op.drop_table("participants")
    op.drop_index("ix_raffles_raffle_id", table_name="raffles")
    op.drop_table("raffles")
