"""
Exception classes for the domain watch system.

All exceptions inherit from DomainWatchError and carry a machine-readable
code, a human-readable message and optional structured details.
"""

from typing import Optional


class DomainWatchError(Exception):
    """Base exception for all domain watch errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DomainWatchError):
    """Raised when user input (domain name, limits) is malformed."""

    pass


class DuplicateWatchError(ValidationError):
    """Raised when a user already watches the requested domain."""

    pass


class StoreUnavailable(DomainWatchError):
    """Raised when the persistence layer cannot be reached."""

    pass


class ProbeFailure(DomainWatchError):
    """Raised inside a prober for transport or response failures.

    Never escapes the probe boundary; see prober.probe_safely.
    """

    pass


class PersistenceFailure(DomainWatchError):
    """Raised when a read or write against the store fails."""

    pass


class ConflictError(PersistenceFailure):
    """Raised when a write violates a unique key."""

    pass


class TamperingError(PersistenceFailure):
    """Raised when HMAC validation of the state file fails."""

    pass


class NotificationDispatchFailure(DomainWatchError):
    """Raised when notification delivery fails."""

    pass
