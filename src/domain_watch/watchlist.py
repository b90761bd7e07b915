"""
Domain Record Store.

Owner-facing operations on the ``domains`` table (watch, list, update
preferences, delete) plus the service-side status write used by the check
orchestrator. Every owner operation filters on ``user_id``.
"""

from typing import Optional

from .domain_validator import DomainValidator
from .enums import DomainStatus, DomainValidationErrorCode
from .exceptions import ConflictError, DuplicateWatchError, PersistenceFailure
from .identity import Principal
from .models import DOMAINS_TABLE, WatchedDomain, utc_now
from .store import Order, Store


def _clean_notes(notes: Optional[str]) -> Optional[str]:
    return notes.strip() or None if notes else None


class DomainRepository:
    """Reads and writes watched domain rows."""

    def __init__(
        self, store: Store, validator: Optional[DomainValidator] = None
    ) -> None:
        self._store = store
        self._validator = validator or DomainValidator()

    async def watch(
        self,
        principal: Principal,
        raw_domain: str,
        notes: Optional[str] = None,
        notify_if_available: bool = True,
    ) -> WatchedDomain:
        """
        Add a domain to the principal's watchlist.

        Raises:
            ValidationError: If the name is malformed
            DuplicateWatchError: If the principal already watches it
        """
        domain = self._validator.normalize(raw_domain)

        existing = await self.find(principal.id, domain)
        if existing is not None:
            raise self._duplicate(domain)

        now = utc_now()
        row = {
            "user_id": principal.id,
            "domain": domain,
            "status": DomainStatus.PENDING.value,
            "last_checked": None,
            "notify_if_available": notify_if_available,
            "notes": _clean_notes(notes),
            "created_at": now,
            "updated_at": now,
        }
        try:
            inserted = await self._store.insert(DOMAINS_TABLE, row)
        except ConflictError as e:
            # A concurrent request won the insert
            raise self._duplicate(domain) from e
        return WatchedDomain.from_row(inserted)

    async def find(self, user_id: str, domain: str) -> Optional[WatchedDomain]:
        rows = await self._store.select(
            DOMAINS_TABLE, {"user_id": user_id, "domain": domain}, limit=1
        )
        return WatchedDomain.from_row(rows[0]) if rows else None

    async def get(self, user_id: str, domain_id: int) -> Optional[WatchedDomain]:
        rows = await self._store.select(
            DOMAINS_TABLE, {"id": domain_id, "user_id": user_id}, limit=1
        )
        return WatchedDomain.from_row(rows[0]) if rows else None

    async def list_for_user(self, user_id: str) -> list[WatchedDomain]:
        """The user's watchlist, newest first."""
        rows = await self._store.select(
            DOMAINS_TABLE,
            {"user_id": user_id},
            order=[Order("created_at", ascending=False), Order("id", ascending=False)],
        )
        return [WatchedDomain.from_row(row) for row in rows]

    async def set_notify(self, user_id: str, domain_id: int, enabled: bool) -> bool:
        return await self._owner_update(
            user_id, domain_id, {"notify_if_available": enabled}
        )

    async def set_notes(self, user_id: str, domain_id: int, notes: Optional[str]) -> bool:
        return await self._owner_update(user_id, domain_id, {"notes": _clean_notes(notes)})

    async def remove(self, user_id: str, domain_id: int) -> bool:
        """Delete a watch; its check history is left in place."""
        count = await self._store.delete(
            DOMAINS_TABLE, {"id": domain_id, "user_id": user_id}
        )
        return count > 0

    async def record_status(
        self, domain: WatchedDomain, status: DomainStatus, checked_at: str
    ) -> None:
        """
        Store the outcome of a check on the domain row.

        The write is scoped to (id, user_id) so it can never touch another
        tenant's row.

        Raises:
            PersistenceFailure: If the row no longer exists or the write fails
        """
        count = await self._store.update(
            DOMAINS_TABLE,
            {"id": domain.id, "user_id": domain.user_id},
            {"status": status.value, "last_checked": checked_at, "updated_at": checked_at},
        )
        if count == 0:
            raise PersistenceFailure(
                code="row_missing",
                message=f"Domain row {domain.id} ({domain.domain}) no longer exists",
                details={"domain_id": domain.id, "domain": domain.domain},
            )

    async def _owner_update(self, user_id: str, domain_id: int, patch: dict) -> bool:
        patch = dict(patch, updated_at=utc_now())
        count = await self._store.update(
            DOMAINS_TABLE, {"id": domain_id, "user_id": user_id}, patch
        )
        return count > 0

    @staticmethod
    def _duplicate(domain: str) -> DuplicateWatchError:
        return DuplicateWatchError(
            code=DomainValidationErrorCode.DUPLICATE_WATCH.value,
            message=f"You are already watching {domain}",
            details={"domain": domain},
        )
