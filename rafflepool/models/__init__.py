from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .raffle import Raffle, RaffleState  # noqa: F401
from .participant import Participant  # noqa: F401
from .chain import LedgerTransaction  # noqa: F401

__all__ = [
    "Base",
    "Raffle",
    "RaffleState",
    "Participant",
    "LedgerTransaction",
]
