"""Reusable precondition checks shared by raffle operations."""

from __future__ import annotations

from ..models import Raffle
from .errors import (
    AlreadyDistributedError,
    RaffleClosedError,
    RaffleInactiveError,
    UnauthorizedError,
)


def require_owner(raffle: Raffle, caller: str) -> None:
    """Reject ``caller`` unless it is the raffle owner."""
    if caller != raffle.owner:
        raise UnauthorizedError()


def require_not_closed(raffle: Raffle) -> None:
    if raffle.is_closed:
        raise RaffleClosedError()


def require_open_for_changes(raffle: Raffle) -> None:
    """Reject once the raffle is closed, inactive or distributed."""
    require_not_closed(raffle)
    if not raffle.is_active:
        raise RaffleInactiveError()
    if raffle.is_distributed:
        raise AlreadyDistributedError()

