"""
Scheduler / Selector.

Chooses the watched domains a check cycle should probe. Domains that were
never checked come first, then the least recently checked; ties keep
insertion order, so the selection is fully determined by store state.
"""

from typing import TYPE_CHECKING, Optional

from .domain_validator import DomainValidator
from .exceptions import PersistenceFailure, StoreUnavailable, ValidationError
from .models import DOMAINS_TABLE, WatchedDomain
from .store import Order, Store

if TYPE_CHECKING:
    from .audit_logger import AuditLogger


DEFAULT_BATCH_LIMIT = 50

DUE_ORDER = (
    Order("last_checked", ascending=True, nulls_first=True),
    Order("id", ascending=True),
)


class DomainSelector:
    """Selects candidate domains for a check cycle."""

    def __init__(
        self,
        store: Store,
        validator: Optional[DomainValidator] = None,
        logger: Optional["AuditLogger"] = None,
    ) -> None:
        self._store = store
        self._validator = validator or DomainValidator()
        self._logger = logger

    async def select(
        self,
        domain: Optional[str] = None,
        limit: int = DEFAULT_BATCH_LIMIT,
        user_id: Optional[str] = None,
    ) -> list[WatchedDomain]:
        """
        Return the candidates for this cycle.

        Args:
            domain: Check only this domain name (first matching row)
            limit: Batch size when no domain is given
            user_id: Restrict a single-domain lookup to this owner

        Raises:
            ValidationError: If the domain name or limit is invalid
            StoreUnavailable: If the store cannot be read
        """
        if domain is not None:
            name = self._validator.normalize(domain)
            filters = {"domain": name}
            if user_id is not None:
                filters["user_id"] = user_id
            rows = await self._read(filters, (Order("id"),), 1)
        else:
            if limit is None or limit < 1:
                raise ValidationError(
                    code="invalid_limit",
                    message=f"Batch limit must be a positive integer, got {limit!r}",
                    details={"limit": limit},
                )
            rows = await self._read(None, DUE_ORDER, limit)

        candidates = [WatchedDomain.from_row(row) for row in rows]
        if self._logger:
            self._logger.debug(
                "DomainSelector",
                f"Selected {len(candidates)} domain(s) for checking",
                {"domain": domain, "limit": limit, "user_id": user_id},
            )
        return candidates

    async def _read(self, filters, order, limit) -> list[dict]:
        try:
            return await self._store.select(
                DOMAINS_TABLE, filters, order=order, limit=limit
            )
        except StoreUnavailable:
            raise
        except PersistenceFailure as e:
            raise StoreUnavailable(
                code="store_unavailable",
                message=f"Could not read watched domains: {e.message}",
                details=e.details,
            ) from e
