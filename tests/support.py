"""Shared fixtures for the raffle test suites."""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from rafflepool.blockchain.api import ChainClient
from rafflepool.models import Base

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
DEADLINE = T0 + timedelta(days=1)
AFTER_DEADLINE = T0 + timedelta(days=2)
OWNER = "sponsor-wallet"


def contact_hash(label: str) -> bytes:
    return hashlib.sha256(f"{label}@example.com".encode()).digest()


def value_of(label: str) -> bytes:
    """Deterministic 32-byte random value for tests."""
    return hashlib.sha256(label.encode()).digest()


class FakeChainClient(ChainClient):
    """ChainClient that records calls instead of talking to the network."""

    def __init__(
        self,
        *,
        randomness: Optional[dict] = None,
        clock: Optional[dict] = None,
        slot_hash: Optional[str] = None,
    ):
        self.timeout = 0
        self.deposits: list[tuple[str, str, int]] = []
        self.transfers: list[tuple[str, str, int]] = []
        self.fail_next = False
        self.randomness = randomness
        self.clock = clock or {"slot": 1, "unix_timestamp": 2}
        self.slot_hash = slot_hash
        self.randomness_reads: list[str] = []
        self._tx = 0

    def _confirm(self, log: list, source: str, destination: str, amount: int) -> dict:
        if self.fail_next:
            self.fail_next = False
            return {"status": "error", "message": "insufficient funds"}
        log.append((source, destination, amount))
        self._tx += 1
        return {"status": "success", "tx_hash": f"tx-{self._tx:04d}"}

    def deposit(self, source: str, destination: str, amount: int) -> dict:
        return self._confirm(self.deposits, source, destination, amount)

    def transfer(self, source: str, destination: str, amount: int) -> dict:
        return self._confirm(self.transfers, source, destination, amount)

    def get_randomness(self, handle: str) -> Any:
        self.randomness_reads.append(handle)
        return self.randomness

    def get_clock(self) -> dict:
        return self.clock

    def get_recent_slot_hash(self) -> Optional[str]:
        return self.slot_hash


def resolved(value: bytes) -> dict:
    return {"status": "resolved", "value": value.hex()}


class InMemoryDatabase:
    """Mixin creating a fresh in-memory schema for each test."""

    def setUp(self) -> None:
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self) -> None:
        self.engine.dispose()
