"""
Store interface and local backends.

The core talks to its relational store through a small async interface
(select, insert, update, delete, upsert) over named tables with equality
filters. Two local backends are provided here:

- MemoryStore: process-local tables, used for tests and one-off runs
- JsonFileStore: MemoryStore persisted to a JSON file protected by an
  HMAC-SHA256 over its contents, so tampering is detected on load

A PostgREST-backed store lives in rest_store.py.
"""

import copy
import hashlib
import hmac
import json
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from .exceptions import (
    ConflictError,
    PersistenceFailure,
    StoreUnavailable,
    TamperingError,
)
from .models import CHECKS_TABLE, DOMAINS_TABLE, PROFILES_TABLE, utc_now


@dataclass(frozen=True)
class Order:
    """Ordering on one column."""

    column: str
    ascending: bool = True
    nulls_first: bool = False


@runtime_checkable
class Store(Protocol):
    """Async table store consumed by the repositories."""

    async def select(
        self,
        table: str,
        filters: Optional[dict] = None,
        order: Sequence[Order] = (),
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict]:
        ...

    async def insert(self, table: str, row: dict) -> dict:
        ...

    async def update(self, table: str, filters: dict, patch: dict) -> int:
        ...

    async def delete(self, table: str, filters: dict) -> int:
        ...

    async def upsert(self, table: str, row: dict, key: str = "id") -> dict:
        ...


# Columns that must be unique together, per table
UNIQUE_KEYS: dict[str, list[tuple[str, ...]]] = {
    DOMAINS_TABLE: [("user_id", "domain")],
    PROFILES_TABLE: [("id",)],
}

# Tables whose ids are assigned by the store
AUTO_ID_TABLES = frozenset({DOMAINS_TABLE, CHECKS_TABLE})


def _matches(row: dict, filters: Optional[dict]) -> bool:
    if not filters:
        return True
    return all(row.get(column) == value for column, value in filters.items())


def _sort_rows(rows: list[dict], order: Sequence[Order]) -> list[dict]:
    # Stable sorts applied from the last key to the first
    for spec in reversed(list(order)):
        present = [r for r in rows if r.get(spec.column) is not None]
        missing = [r for r in rows if r.get(spec.column) is None]
        present.sort(key=lambda r: r[spec.column], reverse=not spec.ascending)
        rows = missing + present if spec.nulls_first else present + missing
    return rows


class MemoryStore:
    """
    In-process implementation of the Store interface.

    Rows are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self, tables: Optional[dict[str, list[dict]]] = None) -> None:
        self._tables: dict[str, list[dict]] = copy.deepcopy(tables or {})
        self._next_ids: dict[str, int] = {}
        for table, rows in self._tables.items():
            ids = [r["id"] for r in rows if isinstance(r.get("id"), int)]
            self._next_ids[table] = max(ids, default=0) + 1
        self.available = True

    def _check_available(self) -> None:
        if not self.available:
            raise StoreUnavailable(
                code="store_unavailable",
                message="Store is not reachable",
                details={},
            )

    def _rows(self, table: str) -> list[dict]:
        return self._tables.setdefault(table, [])

    async def select(
        self,
        table: str,
        filters: Optional[dict] = None,
        order: Sequence[Order] = (),
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict]:
        self._check_available()
        rows = [r for r in self._rows(table) if _matches(r, filters)]
        rows = _sort_rows(rows, order)
        end = offset + limit if limit is not None else None
        return copy.deepcopy(rows[offset:end])

    async def insert(self, table: str, row: dict) -> dict:
        self._check_available()
        new_row = copy.deepcopy(row)
        now = utc_now()
        new_row.setdefault("created_at", now)
        if table in AUTO_ID_TABLES and new_row.get("id") is None:
            new_row["id"] = self._next_ids.get(table, 1)
        self._check_unique(table, new_row)

        self._rows(table).append(new_row)
        if isinstance(new_row.get("id"), int):
            self._next_ids[table] = max(self._next_ids.get(table, 1), new_row["id"] + 1)
        self._after_write()
        return copy.deepcopy(new_row)

    async def update(self, table: str, filters: dict, patch: dict) -> int:
        self._check_available()
        count = 0
        for row in self._rows(table):
            if _matches(row, filters):
                row.update(copy.deepcopy(patch))
                count += 1
        if count:
            self._after_write()
        return count

    async def delete(self, table: str, filters: dict) -> int:
        self._check_available()
        rows = self._rows(table)
        kept = [r for r in rows if not _matches(r, filters)]
        count = len(rows) - len(kept)
        self._tables[table] = kept
        if count:
            self._after_write()
        return count

    async def upsert(self, table: str, row: dict, key: str = "id") -> dict:
        self._check_available()
        for existing in self._rows(table):
            if existing.get(key) == row.get(key):
                existing.update(copy.deepcopy(row))
                self._after_write()
                return copy.deepcopy(existing)
        return await self.insert(table, row)

    def _check_unique(self, table: str, row: dict) -> None:
        keys = list(UNIQUE_KEYS.get(table, []))
        if table in AUTO_ID_TABLES:
            keys.append(("id",))
        for columns in keys:
            values = tuple(row.get(c) for c in columns)
            for existing in self._rows(table):
                if tuple(existing.get(c) for c in columns) == values:
                    raise ConflictError(
                        code="unique_violation",
                        message=f"Duplicate key ({', '.join(columns)}) in {table}",
                        details={"table": table, "columns": list(columns)},
                    )

    def _after_write(self) -> None:
        """Hook for persistent subclasses."""

    def snapshot(self) -> dict[str, list[dict]]:
        """Deep copy of all tables."""
        return copy.deepcopy(self._tables)


class JsonFileStore(MemoryStore):
    """
    MemoryStore persisted to disk with HMAC protection.

    The file holds ``{"version", "tables", "last_updated", "hmac"}``; the
    HMAC covers everything except itself. Every successful write rewrites
    the file. A write whose rewrite fails leaves the in-memory tables as
    they were before it.
    """

    VERSION = 1

    def __init__(self, file_path: Path, hmac_secret: str) -> None:
        self._file_path = Path(file_path)
        self._hmac_secret = hmac_secret.encode("utf-8")
        super().__init__(self._load())

    @property
    def file_path(self) -> Path:
        return self._file_path

    async def insert(self, table: str, row: dict) -> dict:
        with self._rollback_on_failure():
            return await super().insert(table, row)

    async def update(self, table: str, filters: dict, patch: dict) -> int:
        with self._rollback_on_failure():
            return await super().update(table, filters, patch)

    async def delete(self, table: str, filters: dict) -> int:
        with self._rollback_on_failure():
            return await super().delete(table, filters)

    async def upsert(self, table: str, row: dict, key: str = "id") -> dict:
        with self._rollback_on_failure():
            return await super().upsert(table, row, key)

    @contextmanager
    def _rollback_on_failure(self):
        tables = copy.deepcopy(self._tables)
        next_ids = dict(self._next_ids)
        try:
            yield
        except PersistenceFailure:
            self._tables = tables
            self._next_ids = next_ids
            raise

    def _load(self) -> dict[str, list[dict]]:
        """
        Read and verify the state file.

        Raises:
            TamperingError: If HMAC validation fails
            PersistenceFailure: If the file cannot be read or parsed
        """
        if not self._file_path.exists():
            return {}

        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                raw_data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceFailure(
                code="parse_error",
                message=f"Failed to parse state file: {e}",
                details={"file_path": str(self._file_path)},
            ) from e
        except OSError as e:
            raise PersistenceFailure(
                code="io_error",
                message=f"Failed to read state file: {e}",
                details={"file_path": str(self._file_path)},
            ) from e

        if not isinstance(raw_data, dict) or not isinstance(raw_data.get("tables", {}), dict):
            raise PersistenceFailure(
                code="parse_error",
                message="State file does not contain a state object",
                details={"file_path": str(self._file_path)},
            )

        stored_hmac = str(raw_data.get("hmac", ""))
        computed_hmac = self.compute_hmac({
            "version": raw_data.get("version"),
            "tables": raw_data.get("tables", {}),
            "last_updated": raw_data.get("last_updated"),
        })
        if not hmac.compare_digest(stored_hmac, computed_hmac):
            raise TamperingError(
                code="hmac_mismatch",
                message="HMAC validation failed - state file may have been tampered with",
                details={"file_path": str(self._file_path)},
            )
        return raw_data.get("tables", {})

    def _after_write(self) -> None:
        payload: dict[str, Any] = {
            "version": self.VERSION,
            "tables": self._tables,
            "last_updated": utc_now(),
        }
        payload["hmac"] = self.compute_hmac(payload)

        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._file_path.with_suffix(self._file_path.suffix + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
            tmp_path.replace(self._file_path)
        except OSError as e:
            raise PersistenceFailure(
                code="io_error",
                message=f"Failed to write state file: {e}",
                details={"file_path": str(self._file_path)},
            ) from e

    def compute_hmac(self, data: dict) -> str:
        """HMAC-SHA256 over the canonical JSON form of ``data``."""
        serialized = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hmac.new(
            self._hmac_secret, serialized.encode("utf-8"), hashlib.sha256
        ).hexdigest()
