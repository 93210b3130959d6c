"""
Exception hierarchy for the StakePool engine.

Exception classes:
- StakePoolError: Base exception
- InvalidInputError: Structurally invalid arguments (NaN, odds <= 1, stake <= 0)
- InvariantViolation: Data breaks a ledger invariant (orphan hedge, re-settlement)
- WagerNotFoundError, ParticipantNotFoundError: Lookup by id found nothing
- ClosureError: Day closure failed and was rolled back (retryable)
- ConcurrentClosureError: Another operator closed the same wagers first

An infeasible hedge request is NOT an error: calculators return
``feasible=False`` instead.  Likewise an empty closure is a successful no-op.
"""


class StakePoolError(Exception):
    """Base exception for all StakePool failures."""


class InvalidInputError(StakePoolError, ValueError):
    """Raised when a calculator or service receives structurally invalid input."""


class InvariantViolation(StakePoolError):
    """Raised when persisted data would break a money or pairing invariant."""


class WagerNotFoundError(StakePoolError, LookupError):
    """Raised when a wager or wager group does not exist."""


class ClosureError(StakePoolError):
    """
    Day closure failed; nothing from the attempt was retained.

    The operator may retry: closure is idempotent on already-settled wagers.
    """

    def __init__(self, message: str, day=None):
        super().__init__(message)
        self.day = day


class ConcurrentClosureError(ClosureError):
    """Another closer flipped the settled flag between selection and commit."""


class ParticipantNotFoundError(StakePoolError, LookupError):
    """Raised when a participant id does not exist."""
