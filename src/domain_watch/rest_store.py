"""
PostgREST store backend.

Talks to a Supabase-style REST endpoint (``{base_url}/rest/v1/{table}``)
using a service key, so scheduled cycles may read and write across users.
Equality filters become ``column=eq.value`` query parameters and orderings
become ``order=column.asc.nullsfirst``.
"""

from typing import Any, Optional, Sequence

import httpx

from .exceptions import ConflictError, PersistenceFailure, StoreUnavailable
from .store import Order


def encode_filter_value(value: Any) -> str:
    """Encode a filter value as a PostgREST operator expression."""
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{'true' if value else 'false'}"
    return f"eq.{value}"


def encode_order(order: Sequence[Order]) -> Optional[str]:
    """Encode orderings as a PostgREST ``order`` parameter."""
    if not order:
        return None
    parts = []
    for spec in order:
        direction = "asc" if spec.ascending else "desc"
        nulls = "nullsfirst" if spec.nulls_first else "nullslast"
        parts.append(f"{spec.column}.{direction}.{nulls}")
    return ",".join(parts)


class RestStore:
    """
    Async Store implementation over PostgREST.

    Transport errors and 5xx responses raise StoreUnavailable; 409 raises
    ConflictError; other non-success responses raise PersistenceFailure. A
    success response whose body is not a JSON row list raises
    StoreUnavailable.
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._service_key = service_key
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "RestStore":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self._base_url}/rest/v1",
                headers={
                    "apikey": self._service_key,
                    "Authorization": f"Bearer {self._service_key}",
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def select(
        self,
        table: str,
        filters: Optional[dict] = None,
        order: Sequence[Order] = (),
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict]:
        params = self._filter_params(filters)
        params["select"] = "*"
        order_param = encode_order(order)
        if order_param:
            params["order"] = order_param
        if limit is not None:
            params["limit"] = str(limit)
        if offset:
            params["offset"] = str(offset)
        return await self._request("GET", table, params=params)

    async def insert(self, table: str, row: dict) -> dict:
        rows = await self._request(
            "POST",
            table,
            json=row,
            headers={"Prefer": "return=representation"},
        )
        return self._first_row(rows, table)

    async def update(self, table: str, filters: dict, patch: dict) -> int:
        rows = await self._request(
            "PATCH",
            table,
            params=self._filter_params(filters),
            json=patch,
            headers={"Prefer": "return=representation"},
        )
        return len(rows)

    async def delete(self, table: str, filters: dict) -> int:
        rows = await self._request(
            "DELETE",
            table,
            params=self._filter_params(filters),
            headers={"Prefer": "return=representation"},
        )
        return len(rows)

    async def upsert(self, table: str, row: dict, key: str = "id") -> dict:
        rows = await self._request(
            "POST",
            table,
            params={"on_conflict": key},
            json=row,
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        return self._first_row(rows, table)

    @staticmethod
    def _filter_params(filters: Optional[dict]) -> dict[str, str]:
        return {
            column: encode_filter_value(value)
            for column, value in (filters or {}).items()
        }

    @staticmethod
    def _first_row(rows: list[dict], table: str) -> dict:
        if not rows:
            raise PersistenceFailure(
                code="empty_response",
                message=f"Write to {table} returned no row",
                details={"table": table},
            )
        return rows[0]

    async def _request(self, method: str, table: str, **kwargs) -> list[dict]:
        """Send a request and return the decoded row list."""
        client = self._ensure_client()
        try:
            response = await client.request(method, f"/{table}", **kwargs)
        except httpx.HTTPError as e:
            raise StoreUnavailable(
                code="store_unavailable",
                message=f"Store request failed: {e}",
                details={"table": table, "method": method},
            ) from e

        if response.status_code >= 500:
            raise StoreUnavailable(
                code="store_unavailable",
                message=f"Store returned HTTP {response.status_code}",
                details={"table": table, "method": method, "status_code": response.status_code},
            )
        if response.status_code == 409:
            raise ConflictError(
                code="unique_violation",
                message=f"Duplicate key in {table}",
                details={"table": table, "body": response.text},
            )
        if response.status_code >= 400:
            raise PersistenceFailure(
                code="store_error",
                message=f"Store rejected {method} on {table}: HTTP {response.status_code}",
                details={"table": table, "status_code": response.status_code, "body": response.text},
            )

        try:
            rows = response.json()
        except ValueError as e:
            raise StoreUnavailable(
                code="invalid_response",
                message=f"Store returned a non-JSON body for {method} on {table}",
                details={"table": table, "method": method, "body": response.text[:500]},
            ) from e
        if not isinstance(rows, list):
            raise StoreUnavailable(
                code="invalid_response",
                message=f"Store returned an unexpected body for {method} on {table}",
                details={"table": table, "method": method, "body": response.text[:500]},
            )
        return rows
