"""Prize shares and the one-claim-per-winner rule."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy.orm import Session

from ..constants import MAX_WINNERS
from ..db.utils import ensure_utc
from ..models import Participant, Raffle
from .errors import (
    AlreadyClaimedError,
    NotAWinnerError,
    NotDistributedError,
    RandomnessNotSettledError,
    UnauthorizedError,
)
from .guards import require_not_closed
from .ledger import move_funds
from .selection import is_winner

if TYPE_CHECKING:
    from ..blockchain.api import ChainClient

logger = logging.getLogger(__name__)


def evaluate_winner(raffle: Raffle, participant: Participant) -> bool:
    """Recompute ``participant``'s winner status and refresh the cached flag.

    Anyone may call this once randomness is settled.

    Raises
    ------
    RandomnessNotSettledError
        If the raffle has no settled random value yet.
    NotDistributedError
        If distribution has not opened.
    """
    if not raffle.randomness_settled or raffle.random_value is None:
        raise RandomnessNotSettledError()
    if not raffle.is_distributed:
        raise NotDistributedError()
    if participant.raffle_pk != raffle.id:
        raise ValueError("Participant does not belong to this raffle")

    won = is_winner(
        raffle.random_value,
        participant.participant_index,
        raffle.participant_count,
        MAX_WINNERS,
    )
    participant.is_winner = won
    return won


class PrizeDistributor:
    """Authorize claims against the settled outcome and pay winners."""

    def __init__(self, session: Session, client: Optional["ChainClient"] = None) -> None:
        self._session = session
        self._client = client

    @property
    def client(self) -> "ChainClient":
        if self._client is None:
            from ..blockchain.api import ChainClient

            self._client = ChainClient()
        return self._client

    def claim(
        self,
        raffle: Raffle,
        participant: Participant,
        claimant: str,
        now: Optional[datetime] = None,
    ) -> int:
        """Pay ``participant`` its share and mark the claim.

        ``prize_amount = collected_amount // winners_count``; the remainder is
        left in custody until the owner closes the raffle.

        Returns
        -------
        int
            The amount paid out.

        Raises
        ------
        RaffleClosedError, NotDistributedError
            If the raffle is closed or not yet distributed.
        UnauthorizedError
            If ``claimant`` is not the participant's registered wallet.
        NotAWinnerError, AlreadyClaimedError
            If the participant did not win or already claimed.
        LedgerTransferError
            If the ledger does not confirm the payout; nothing is marked.
        """
        now = ensure_utc(now or datetime.now(timezone.utc))
        require_not_closed(raffle)
        if not raffle.is_distributed:
            raise NotDistributedError()
        if claimant != participant.wallet:
            raise UnauthorizedError(
                "Claimant is not the registered wallet for this participant"
            )
        if not evaluate_winner(raffle, participant):
            raise NotAWinnerError()
        if participant.claimed:
            raise AlreadyClaimedError()

        prize_amount = raffle.prize_amount
        if prize_amount > 0:
            move_funds(
                self._session,
                self.client,
                raffle,
                kind="payout",
                source=raffle.custody_account,
                destination=participant.wallet,
                amount=prize_amount,
                participant=participant,
            )
        else:
            logger.warning(
                "Raffle %s has nothing to pay out; recording claim of #%d without a transfer",
                raffle.raffle_id,
                participant.participant_index,
            )

        participant.claimed = True
        participant.claimed_at = now
        raffle.claims_count += 1
        raffle.disbursed_amount += prize_amount
        self._session.flush()

        logger.info(
            "Prize claimed: %d to %s (raffle %s, participant #%d)",
            prize_amount,
            participant.wallet,
            raffle.raffle_id,
            participant.participant_index,
        )
        return prize_amount


__all__ = ["PrizeDistributor", "evaluate_winner"]
