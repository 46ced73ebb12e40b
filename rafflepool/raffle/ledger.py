"""Custody movements executed through the external ledger."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from sqlalchemy.orm import Session

from ..models import LedgerTransaction, Participant, Raffle
from .errors import LedgerTransferError

if TYPE_CHECKING:
    from ..blockchain.api import ChainClient

logger = logging.getLogger(__name__)


def move_funds(
    session: Session,
    client: "ChainClient",
    raffle: Raffle,
    *,
    kind: str,
    source: str,
    destination: str,
    amount: int,
    participant: Optional[Participant] = None,
) -> LedgerTransaction:
    """Ask the ledger to move ``amount`` and record the confirmed movement.

    Deposits go through :meth:`ChainClient.deposit`; payouts and refunds
    through :meth:`ChainClient.transfer`. No raffle field is touched here:
    callers update their balances only after this returns.

    Raises
    ------
    ValueError
        If ``amount`` is not positive or ``kind`` is unknown.
    LedgerTransferError
        If the ledger response is not a confirmed success.
    """
    if amount <= 0:
        raise ValueError("amount must be positive")
    if kind == "deposit":
        call = client.deposit
    elif kind in ("payout", "refund"):
        call = client.transfer
    else:
        raise ValueError(f"Unknown ledger movement kind '{kind}'")

    request_payload = {"source": source, "destination": destination, "amount": amount}
    response = call(source, destination, amount)

    if not isinstance(response, dict):
        raise LedgerTransferError(f"Unexpected ledger response: {response!r}")
    if response.get("status") != "success":
        message = response.get("message")
        raise LedgerTransferError(
            f"Ledger {kind} failed" + (f": {message}" if message else ".")
        )

    tx = LedgerTransaction.confirmed(
        raffle=raffle,
        kind=kind,
        source=source,
        destination=destination,
        amount=amount,
        request_payload=request_payload,
        response_payload=response,
        participant=participant,
    )
    session.add(tx)
    logger.info(
        "Ledger %s of %d confirmed for raffle %s (tx=%s)",
        kind,
        amount,
        raffle.raffle_id,
        tx.tx_hash,
    )
    return tx
