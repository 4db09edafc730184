"""
Exception taxonomy for squadlink.

Local validation errors are raised before anything touches the network.
Submission errors are translated from program error codes returned by the
Squads program (or the runtime) and carry the raw code and logs.
"""

from typing import List, Optional


class SquadlinkError(Exception):
    """Base exception for squadlink errors."""
    pass


class ConfigError(SquadlinkError):
    """Raised when the configuration or settings cannot be used."""
    pass


class InvalidThreshold(SquadlinkError):
    """The approval threshold does not fit the member list."""
    pass


class NameUnavailable(SquadlinkError):
    """The referral member name is already registered."""
    pass


class AccountNotFound(SquadlinkError):
    """An expected on-chain account does not exist."""
    pass


class ConfirmationTimeout(SquadlinkError):
    """The transaction was not confirmed before its blockhash expired."""

    def __init__(self, message: str, signature: Optional[str] = None):
        super().__init__(message)
        self.signature = signature


class SubmissionError(SquadlinkError):
    """The network rejected a submitted transaction."""

    def __init__(self, message: str, code: Optional[int] = None, logs: Optional[List[str]] = None):
        super().__init__(message)
        self.code = code
        self.logs = logs or []


class InsufficientApprovals(SubmissionError):
    """Execution was attempted before the proposal reached its threshold."""
    pass


class StaleIndex(SubmissionError):
    """The transaction index is stale or not the next one."""
    pass


class AlreadyApproved(SubmissionError):
    pass


class NotAMember(SubmissionError):
    pass


class Unauthorized(SubmissionError):
    pass


class AccountAlreadyExists(SubmissionError):
    """The account being created is already in use (e.g. a reused create key)."""
    pass


class RpcError(SquadlinkError):
    """A raw JSON-RPC request returned an error object."""
    pass
