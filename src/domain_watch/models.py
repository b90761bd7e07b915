"""
Data models for the domain watch system.

This module defines the rows persisted in the store (watched domains, check
records, profiles) and the value objects passed between the selector, the
prober, the orchestrator and the notification trigger.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .enums import DomainStatus


# Table names, shared by every store backend
DOMAINS_TABLE = "domains"
CHECKS_TABLE = "domain_checks"
PROFILES_TABLE = "profiles"


def utc_now() -> str:
    """Current time as an ISO 8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class WatchedDomain:
    """A domain on a user's watchlist."""

    id: int
    user_id: str
    domain: str  # Normalized name
    status: DomainStatus = DomainStatus.PENDING
    last_checked: Optional[str] = None
    notify_if_available: bool = True
    notes: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, row: dict) -> "WatchedDomain":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            domain=row["domain"],
            status=DomainStatus.parse(row.get("status", "pending")),
            last_checked=row.get("last_checked"),
            notify_if_available=bool(row.get("notify_if_available", True)),
            notes=row.get("notes"),
            created_at=row.get("created_at") or "",
            updated_at=row.get("updated_at") or "",
        )

    def to_row(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "domain": self.domain,
            "status": self.status.value,
            "last_checked": self.last_checked,
            "notify_if_available": self.notify_if_available,
            "notes": self.notes,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class CheckRecord:
    """One entry of the append-only check history of a domain."""

    id: int
    domain_id: int
    status: DomainStatus
    check_date: str
    details: Optional[Any] = None
    created_at: str = ""

    @classmethod
    def from_row(cls, row: dict) -> "CheckRecord":
        return cls(
            id=row["id"],
            domain_id=row["domain_id"],
            status=DomainStatus.parse(row.get("status")),
            check_date=row.get("check_date") or "",
            details=row.get("details"),
            created_at=row.get("created_at") or "",
        )


@dataclass
class UserPreference:
    """Notification preference of a user, read from the profile."""

    user_id: str
    email: str
    notifications_enabled: bool = True


@dataclass
class Profile:
    """A user profile row."""

    id: str
    email: str
    full_name: Optional[str] = None
    notifications_enabled: bool = True
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, row: dict) -> "Profile":
        return cls(
            id=row["id"],
            email=row.get("email") or "",
            full_name=row.get("full_name"),
            notifications_enabled=bool(row.get("notifications_enabled", True)),
            created_at=row.get("created_at") or "",
            updated_at=row.get("updated_at") or "",
        )

    @property
    def preference(self) -> UserPreference:
        return UserPreference(
            user_id=self.id,
            email=self.email,
            notifications_enabled=self.notifications_enabled,
        )


@dataclass
class ProbeResult:
    """Outcome of a single availability probe."""

    status: DomainStatus
    details: dict = field(default_factory=dict)


@dataclass
class DomainCheckResult:
    """Per-domain outcome of a check cycle."""

    domain: str
    status: DomainStatus
    checked_at: str
    persisted: bool = True
    notified: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "domain": self.domain,
            "status": self.status.value,
            "checkedAt": self.checked_at,
        }
        if not self.persisted:
            data["persisted"] = False
            data["error"] = self.error
        return data


@dataclass
class CycleReport:
    """Result of one check cycle, as returned by the trigger surface."""

    results: list[DomainCheckResult] = field(default_factory=list)
    skipped: int = 0
    message: str = "Domain checks completed"

    @property
    def checked(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> list[DomainCheckResult]:
        return [r for r in self.results if not r.persisted]

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "checked": self.checked,
            "results": [r.to_dict() for r in self.results],
        }
