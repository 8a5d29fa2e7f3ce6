# ballotbox/errors.py
"""Error kinds raised by the record store and the election lifecycle.

Every public operation raises one of these to its direct caller. Callers are
expected to report the kind and retry or abort; nothing here is retried
internally.

Exception hierarchy:
- BallotBoxError: Base class for all store/lifecycle failures
  - DuplicateEmailError: Email already registered
  - AdminLimitExceededError: A second admin account was requested
  - NotFoundError: Unknown id or email (also a LookupError)
  - InvalidCredentialError: Password, PIN or account state rejected login
  - UnauthorizedError: Missing session or wrong role
  - PhaseViolationError: Operation not legal in the election's current phase
  - InvalidChoiceError: Candidate index out of range
  - AlreadyVotedError: Voter already has a vote in this election
  - InvalidInputError: Malformed email, candidate list or field (also a ValueError)
  - AllocationError: Index or collection could not grow (also a MemoryError)
  - StorageIOError: Snapshot read/write failed (also an OSError)
"""


class BallotBoxError(Exception):
    """Base class for all ballotbox failures."""
    kind = "BallotBoxError"


class DuplicateEmailError(BallotBoxError):
    kind = "DuplicateEmail"


class AdminLimitExceededError(BallotBoxError):
    kind = "AdminLimitExceeded"


class NotFoundError(BallotBoxError, LookupError):
    kind = "NotFound"


class InvalidCredentialError(BallotBoxError):
    kind = "InvalidCredential"


class UnauthorizedError(BallotBoxError):
    kind = "Unauthorized"


class PhaseViolationError(BallotBoxError):
    kind = "PhaseViolation"


class InvalidChoiceError(BallotBoxError):
    kind = "InvalidChoice"


class AlreadyVotedError(BallotBoxError):
    kind = "AlreadyVoted"


class InvalidInputError(BallotBoxError, ValueError):
    kind = "InvalidInput"


class AllocationError(BallotBoxError, MemoryError):
    kind = "AllocationFailure"


class StorageIOError(BallotBoxError, OSError):
    kind = "IOFailure"
