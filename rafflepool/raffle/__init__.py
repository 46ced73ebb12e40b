"""Core raffle logic: roster, randomness acquisition, selection and payouts."""

from .distributor import PrizeDistributor, evaluate_winner
from .randomness import (
    ChainClock,
    RandomnessCoordinator,
    decode_oracle_payload,
    derive_fallback_randomness,
    generate_fallback_seed,
)
from .roster import register, roster
from .selection import is_winner, select_winner_indices, winner_set, winners_count
from .verify import export_audit, verify_audit

__all__ = [
    "ChainClock",
    "PrizeDistributor",
    "RandomnessCoordinator",
    "decode_oracle_payload",
    "derive_fallback_randomness",
    "evaluate_winner",
    "export_audit",
    "generate_fallback_seed",
    "is_winner",
    "register",
    "roster",
    "select_winner_indices",
    "verify_audit",
    "winner_set",
    "winners_count",
]
