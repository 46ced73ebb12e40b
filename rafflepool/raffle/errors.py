"""Exception hierarchy raised by raffle operations.

Every rejected operation raises exactly one :class:`RaffleError` subclass
before touching any raffle field, so callers can retry once the guard is
satisfied. The intermediate classes group errors by kind:

* :class:`StateGateError` - wrong lifecycle phase for the operation.
* :class:`CapacityError` - pool already funded or roster full.
* :class:`AuthorizationError` - caller is not the owner or not the registrant.
* :class:`RandomnessSourceError` - oracle unresolved, fallback too early,
  or re-settlement.
* :class:`OutcomeError` - non-winner claim or repeated claim.
"""

from __future__ import annotations


class RaffleError(Exception):
    """Base class for rejected raffle operations."""

    code = "raffle_error"
    default_message = "The raffle operation was rejected."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class StateGateError(RaffleError):
    code = "state_gate"


class CapacityError(RaffleError):
    code = "capacity"


class AuthorizationError(RaffleError):
    code = "authorization"


class RandomnessSourceError(RaffleError):
    code = "randomness_source"


class OutcomeError(RaffleError):
    code = "outcome"


# -------- lookup / registration --------


class RaffleNotFoundError(RaffleError):
    code = "raffle_not_found"
    default_message = "Raffle not found"


class RaffleAlreadyExistsError(RaffleError):
    code = "raffle_already_exists"
    default_message = "A raffle with this id already exists"


class ParticipantNotFoundError(RaffleError):
    code = "participant_not_found"
    default_message = "Participant not found"


class AlreadyRegisteredError(RaffleError):
    code = "already_registered"
    default_message = "Wallet is already registered for this raffle"


# -------- state gates --------


class RaffleInactiveError(StateGateError):
    code = "raffle_inactive"
    default_message = "Raffle is not active"


class RaffleClosedError(StateGateError):
    code = "raffle_closed"
    default_message = "Raffle has been closed"


class AlreadyDistributedError(StateGateError):
    code = "already_distributed"
    default_message = "Prizes already distributed"


class DeadlinePassedError(StateGateError):
    code = "deadline_passed"
    default_message = "Deadline has passed"


class DeadlineNotReachedError(StateGateError):
    code = "deadline_not_reached"
    default_message = "Deadline has not been reached yet"


class NotDistributedError(StateGateError):
    code = "not_distributed"
    default_message = "Prizes not distributed yet"


class RandomnessNotRequestedError(StateGateError):
    code = "randomness_not_requested"
    default_message = "Randomness not yet requested"


class RandomnessNotSettledError(StateGateError):
    code = "randomness_not_settled"
    default_message = "Randomness not settled yet"


class RandomnessAlreadyRequestedError(StateGateError):
    code = "randomness_already_requested"
    default_message = "Randomness already requested"


class NoParticipantsError(StateGateError):
    code = "no_participants"
    default_message = "No participants to distribute to"


class CannotCloseError(StateGateError):
    code = "cannot_close"
    default_message = "Cannot close raffle with active participants"


# -------- capacity / funding --------


class PrizePoolFilledError(CapacityError):
    code = "prize_pool_filled"
    default_message = "Prize pool already filled"


class MaxParticipantsReachedError(CapacityError):
    code = "max_participants_reached"
    default_message = "Maximum participants reached"


# -------- authorization --------


class UnauthorizedError(AuthorizationError):
    code = "unauthorized"
    default_message = "Unauthorized"


# -------- randomness source --------


class RandomnessNotResolvedError(RandomnessSourceError):
    code = "randomness_not_resolved"
    default_message = "Randomness not yet resolved"


class OracleDataError(RandomnessSourceError):
    code = "oracle_data_error"
    default_message = "Randomness oracle payload could not be decoded"


class TooEarlyForFallbackError(RandomnessSourceError):
    code = "too_early_for_fallback"
    default_message = "Too early for emergency fallback (wait 7 days after request)"


class RandomnessAlreadySettledError(RandomnessSourceError):
    code = "randomness_already_settled"
    default_message = "Randomness already settled"


# -------- outcome --------


class NotAWinnerError(OutcomeError):
    code = "not_a_winner"
    default_message = "Participant is not a winner"


class AlreadyClaimedError(OutcomeError):
    code = "already_claimed"
    default_message = "Prize already claimed"


# -------- ledger --------


class LedgerTransferError(RuntimeError):
    """Raised when the ledger does not confirm a value movement."""

    def __init__(self, message: str = "Ledger transfer was not confirmed"):
        self.message = message
        super().__init__(self.message)


__all__ = [
    "AlreadyClaimedError",
    "AlreadyDistributedError",
    "AlreadyRegisteredError",
    "AuthorizationError",
    "CannotCloseError",
    "CapacityError",
    "DeadlineNotReachedError",
    "DeadlinePassedError",
    "LedgerTransferError",
    "MaxParticipantsReachedError",
    "NoParticipantsError",
    "NotAWinnerError",
    "NotDistributedError",
    "OracleDataError",
    "OutcomeError",
    "ParticipantNotFoundError",
    "PrizePoolFilledError",
    "RaffleAlreadyExistsError",
    "RaffleClosedError",
    "RaffleError",
    "RaffleInactiveError",
    "RaffleNotFoundError",
    "RandomnessAlreadyRequestedError",
    "RandomnessAlreadySettledError",
    "RandomnessNotRequestedError",
    "RandomnessNotResolvedError",
    "RandomnessNotSettledError",
    "RandomnessSourceError",
    "StateGateError",
    "TooEarlyForFallbackError",
    "UnauthorizedError",
]
