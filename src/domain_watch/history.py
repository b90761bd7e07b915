"""
Check History Log.

Append-only per-domain record of check outcomes in the ``domain_checks``
table. Reads are most recent first and paginated; nothing here updates or
deletes a record.
"""

from typing import Any, Optional

from .enums import DomainStatus
from .models import CHECKS_TABLE, CheckRecord, utc_now
from .store import Order, Store


MOST_RECENT_FIRST = (
    Order("check_date", ascending=False),
    Order("id", ascending=False),
)


class CheckHistory:
    """Appends and reads check records."""

    def __init__(self, store: Store) -> None:
        self._store = store

    async def append(
        self,
        domain_id: int,
        status: DomainStatus,
        details: Optional[Any] = None,
        check_date: Optional[str] = None,
    ) -> CheckRecord:
        check_date = check_date or utc_now()
        row = await self._store.insert(
            CHECKS_TABLE,
            {
                "domain_id": domain_id,
                "status": status.value,
                "check_date": check_date,
                "details": details,
                "created_at": check_date,
            },
        )
        return CheckRecord.from_row(row)

    async def recent(
        self, domain_id: int, limit: Optional[int] = 20, offset: int = 0
    ) -> list[CheckRecord]:
        """Records of a domain, most recent first."""
        rows = await self._store.select(
            CHECKS_TABLE,
            {"domain_id": domain_id},
            order=MOST_RECENT_FIRST,
            limit=limit,
            offset=offset,
        )
        return [CheckRecord.from_row(row) for row in rows]

    async def previous_status(self, domain_id: int) -> Optional[DomainStatus]:
        """
        Status of the record before the most recent one.

        Meant to be called right after a record was appended. Returns None
        when the domain has fewer than two records.
        """
        records = await self.recent(domain_id, limit=2)
        if len(records) < 2:
            return None
        return records[1].status
