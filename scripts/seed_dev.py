import hashlib
import logging
import uuid
from datetime import datetime, timedelta, timezone

from rafflepool.blockchain.api import ChainClient
from rafflepool.db.engine import get_sessionmaker, make_engine
from rafflepool.models import Base
from rafflepool.workflows import (
    create_raffle,
    fund_raffle,
    get_raffle_status,
    register_participant,
)


class LocalLedger(ChainClient):
    """Ledger stand-in that confirms every movement without any network."""

    def __init__(self):
        self.timeout = 0

    def _confirm(self, source, destination, amount):
        return {"status": "success", "tx_hash": uuid.uuid4().hex, "amount": amount}

    deposit = _confirm
    transfer = _confirm


def main() -> None:
    """Reset the development database and seed one funded, open raffle."""
    logging.basicConfig(level=logging.INFO)
    engine = make_engine()

    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        Base.metadata.drop_all(bind=conn)
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")
    Base.metadata.create_all(engine)

    Session = get_sessionmaker(engine)
    now = datetime.now(timezone.utc)
    ledger = LocalLedger()

    with Session.begin() as session:
        create_raffle(
            session,
            owner="sponsor-wallet",
            raffle_id="dev-raffle-001",
            prize_pool=1_000,
            deadline=now + timedelta(days=3),
            max_participants=50,
        )
        fund_raffle(session, "dev-raffle-001", "sponsor-wallet", client=ledger)

        for n in range(12):
            wallet = f"player-{n:02d}"
            register_participant(
                session,
                "dev-raffle-001",
                wallet,
                hashlib.sha256(f"{wallet}@example.com".encode()).digest(),
                now=now,
            )

        print(get_raffle_status(session, "dev-raffle-001", now=now))


if __name__ == "__main__":
    main()
