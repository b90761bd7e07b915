"""
Enumeration types for the domain watch system.

These enums provide type-safe constants for domain status values, probe
error codes and logging levels.
"""

from enum import Enum


class DomainStatus(Enum):
    """Status of a watched domain or of a single check record."""

    PENDING = "pending"
    AVAILABLE = "available"
    TAKEN = "taken"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value) -> "DomainStatus":
        """Coerce a stored value to a DomainStatus, defaulting to UNKNOWN."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNKNOWN


# Statuses a probe is allowed to report
PROBE_STATUSES = frozenset(
    {DomainStatus.AVAILABLE, DomainStatus.TAKEN, DomainStatus.UNKNOWN}
)


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _LEVEL_RANKS[self]


_LEVEL_RANKS = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARN: 30,
    LogLevel.ERROR: 40,
}


class ProbeErrorCode(Enum):
    """Error codes carried in the details of an unknown probe result."""

    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    BAD_RESPONSE = "bad_response"
    PARSE_ERROR = "parse_error"
    INTERNAL_ERROR = "internal_error"


class DomainValidationErrorCode(Enum):
    """Error codes for domain validation failures."""

    EMPTY_INPUT = "empty_input"
    FORBIDDEN_CHARS = "forbidden_chars"
    IDNA_ERROR = "idna_error"
    INVALID_SYNTAX = "invalid_syntax"
    DUPLICATE_WATCH = "duplicate_watch"
