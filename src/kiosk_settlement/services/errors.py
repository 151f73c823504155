"""Exception taxonomy for settlement operations.

Input and authorization errors are raised before any state is mutated.
Remote failures are normally captured into the owning record and returned as
structured results; they only surface as exceptions from adapters.
"""


class SettlementError(RuntimeError):
    """Base exception for all settlement-related failures."""


class InputError(SettlementError, ValueError):
    """Raised for a bad chain key, a non-positive amount or an unresolved destination."""


class NotFoundError(SettlementError):
    """Raised when a session or record does not exist or is not in a usable state."""


class AuthorizationError(SettlementError):
    """Raised when a PIN does not authorize a claim."""


class RemoteTransientError(SettlementError):
    """Raised when an accounting or bridge call fails or times out."""


class TerminalError(SettlementError):
    """Raised when a record in a terminal state would be changed."""


class ConcurrentUpdateError(SettlementError):
    """Raised when another writer changed a record after it was read."""


class ClaimInProgressError(ConcurrentUpdateError):
    """Raised when another claim or sweep already holds the record."""
