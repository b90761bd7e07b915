"""
Property-based tests for the Store backends.

Covers ordering and pagination of MemoryStore, unique keys, and the
persistence and tamper detection of JsonFileStore.
"""

import asyncio
import json
import tempfile
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_watch.exceptions import (
    ConflictError,
    PersistenceFailure,
    StoreUnavailable,
    TamperingError,
)
from domain_watch.models import CHECKS_TABLE, DOMAINS_TABLE, PROFILES_TABLE
from domain_watch.selector import DUE_ORDER
from domain_watch.store import JsonFileStore, MemoryStore, Order, Store


def run_async(coro):
    """Helper to run async code in tests."""
    return asyncio.new_event_loop().run_until_complete(coro)


@st.composite
def timestamp_strategy(draw) -> str:
    """Generate valid ISO format timestamps."""
    day = draw(st.integers(min_value=1, max_value=28))
    hour = draw(st.integers(min_value=0, max_value=23))
    minute = draw(st.integers(min_value=0, max_value=59))
    return f"2024-05-{day:02d}T{hour:02d}:{minute:02d}:00+00:00"


def domain_rows(last_checked: list) -> list[dict]:
    return [
        {
            "id": i + 1,
            "user_id": "user-1",
            "domain": f"d{i + 1}.com",
            "status": "pending",
            "last_checked": value,
        }
        for i, value in enumerate(last_checked)
    ]


class TestMemoryStoreOrdering:
    """Ordering, nulls placement and pagination of MemoryStore.select."""

    def test_nulls_first_then_ascending(self) -> None:
        store = MemoryStore({
            DOMAINS_TABLE: domain_rows([
                None,
                "2024-05-01T00:00:00+00:00",
                None,
                "2024-05-02T00:00:00+00:00",
            ])
        })

        rows = run_async(store.select(DOMAINS_TABLE, order=DUE_ORDER))

        assert [r["id"] for r in rows] == [1, 3, 2, 4]

    @given(
        values=st.lists(st.one_of(st.none(), timestamp_strategy()), max_size=15),
        limit=st.integers(min_value=1, max_value=20),
        offset=st.integers(min_value=0, max_value=5),
    )
    @settings(max_examples=100)
    def test_due_order_with_pagination(self, values, limit, offset) -> None:
        """
        *For any* set of rows, a page SHALL be the matching slice of the
        full ordering: never-checked rows by id, then oldest check first.
        """
        store = MemoryStore({DOMAINS_TABLE: domain_rows(values)})

        page = run_async(
            store.select(DOMAINS_TABLE, order=DUE_ORDER, limit=limit, offset=offset)
        )

        rows = domain_rows(values)
        expected = [r for r in rows if r["last_checked"] is None] + sorted(
            (r for r in rows if r["last_checked"] is not None),
            key=lambda r: (r["last_checked"], r["id"]),
        )
        assert [r["id"] for r in page] == [r["id"] for r in expected[offset:offset + limit]]

    def test_descending_nulls_last(self) -> None:
        store = MemoryStore({
            DOMAINS_TABLE: domain_rows([None, "2024-05-01T00:00:00+00:00", "2024-05-03T00:00:00+00:00"])
        })

        rows = run_async(
            store.select(DOMAINS_TABLE, order=[Order("last_checked", ascending=False)])
        )

        assert [r["id"] for r in rows] == [3, 2, 1]

    def test_equality_filters(self) -> None:
        store = MemoryStore({DOMAINS_TABLE: domain_rows([None, None])})

        rows = run_async(store.select(DOMAINS_TABLE, {"domain": "d2.com"}))

        assert [r["id"] for r in rows] == [2]


class TestMemoryStoreWrites:
    """Id assignment, unique keys and isolation of MemoryStore writes."""

    def test_memory_store_satisfies_protocol(self) -> None:
        assert isinstance(MemoryStore(), Store)

    @given(count=st.integers(min_value=1, max_value=20))
    @settings(max_examples=30)
    def test_ids_are_unique_and_increasing(self, count: int) -> None:
        """*For any* number of inserts, assigned ids SHALL strictly increase."""
        store = MemoryStore()

        async def insert_all():
            return [
                await store.insert(CHECKS_TABLE, {"domain_id": 1, "status": "taken"})
                for _ in range(count)
            ]

        rows = run_async(insert_all())
        ids = [r["id"] for r in rows]
        assert ids == sorted(ids)
        assert len(set(ids)) == count

    def test_duplicate_user_domain_rejected(self) -> None:
        store = MemoryStore()
        row = {"user_id": "u1", "domain": "example.com"}

        async def insert_twice():
            await store.insert(DOMAINS_TABLE, row)
            await store.insert(DOMAINS_TABLE, dict(row))

        with pytest.raises(ConflictError):
            run_async(insert_twice())

    def test_same_domain_for_different_users_allowed(self) -> None:
        store = MemoryStore()

        async def insert_both():
            await store.insert(DOMAINS_TABLE, {"user_id": "u1", "domain": "example.com"})
            await store.insert(DOMAINS_TABLE, {"user_id": "u2", "domain": "example.com"})
            return await store.select(DOMAINS_TABLE)

        assert len(run_async(insert_both())) == 2

    def test_returned_rows_are_copies(self) -> None:
        store = MemoryStore()

        async def scenario():
            inserted = await store.insert(DOMAINS_TABLE, {"user_id": "u1", "domain": "a.com"})
            inserted["domain"] = "mutated.com"
            selected = await store.select(DOMAINS_TABLE)
            selected[0]["domain"] = "mutated.com"
            return await store.select(DOMAINS_TABLE)

        assert run_async(scenario())[0]["domain"] == "a.com"

    def test_update_and_delete_report_counts(self) -> None:
        store = MemoryStore({DOMAINS_TABLE: domain_rows([None, None, None])})

        async def scenario():
            updated = await store.update(DOMAINS_TABLE, {"user_id": "user-1"}, {"status": "taken"})
            missing = await store.update(DOMAINS_TABLE, {"id": 99}, {"status": "taken"})
            deleted = await store.delete(DOMAINS_TABLE, {"id": 2})
            return updated, missing, deleted, await store.select(DOMAINS_TABLE)

        updated, missing, deleted, rows = run_async(scenario())
        assert (updated, missing, deleted) == (3, 0, 1)
        assert [r["id"] for r in rows] == [1, 3]
        assert all(r["status"] == "taken" for r in rows)

    def test_upsert_merges_existing_row(self) -> None:
        store = MemoryStore({
            PROFILES_TABLE: [{"id": "u1", "email": "old@example.com", "notifications_enabled": False}]
        })

        row = run_async(store.upsert(PROFILES_TABLE, {"id": "u1", "email": "new@example.com"}))

        assert row["email"] == "new@example.com"
        assert row["notifications_enabled"] is False

    def test_unavailable_store_raises(self) -> None:
        store = MemoryStore()
        store.available = False

        with pytest.raises(StoreUnavailable):
            run_async(store.select(DOMAINS_TABLE))
        with pytest.raises(StoreUnavailable):
            run_async(store.insert(DOMAINS_TABLE, {"user_id": "u", "domain": "a.com"}))


class TestJsonFileStore:
    """Persistence round trip and tamper detection of the JSON state file."""

    def test_missing_file_starts_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = JsonFileStore(Path(tmpdir) / "state.json", "secret")

            assert run_async(store.select(DOMAINS_TABLE)) == []
            assert not store.file_path.exists()

    @given(domains=st.lists(
        st.text(alphabet="abcdefghij", min_size=1, max_size=8),
        min_size=1, max_size=8, unique=True,
    ))
    @settings(max_examples=30)
    def test_writes_survive_reload(self, domains: list[str]) -> None:
        """*For any* rows written, a fresh store on the same file SHALL read them back."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nested" / "state.json"
            store = JsonFileStore(path, "secret")

            async def write_all():
                for name in domains:
                    await store.insert(DOMAINS_TABLE, {"user_id": "u1", "domain": f"{name}.com"})

            run_async(write_all())
            reloaded = JsonFileStore(path, "secret")

            rows = run_async(reloaded.select(DOMAINS_TABLE, order=[Order("id")]))
            assert [r["domain"] for r in rows] == [f"{n}.com" for n in domains]

    def test_ids_continue_after_reload(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "state.json"
            run_async(JsonFileStore(path, "secret").insert(DOMAINS_TABLE, {"user_id": "u", "domain": "a.com"}))

            row = run_async(
                JsonFileStore(path, "secret").insert(DOMAINS_TABLE, {"user_id": "u", "domain": "b.com"})
            )

            assert row["id"] == 2

    def test_modified_file_detected(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "state.json"
            run_async(JsonFileStore(path, "secret").insert(DOMAINS_TABLE, {"user_id": "u", "domain": "a.com"}))

            data = json.loads(path.read_text(encoding="utf-8"))
            data["tables"][DOMAINS_TABLE][0]["user_id"] = "attacker"
            path.write_text(json.dumps(data), encoding="utf-8")

            with pytest.raises(TamperingError):
                JsonFileStore(path, "secret")

    def test_wrong_secret_detected(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "state.json"
            run_async(JsonFileStore(path, "secret").insert(DOMAINS_TABLE, {"user_id": "u", "domain": "a.com"}))

            with pytest.raises(TamperingError):
                JsonFileStore(path, "other-secret")

    @pytest.mark.parametrize("content", ["[]", '"state"', '{"tables": []}'])
    def test_non_object_state_rejected(self, content: str) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "state.json"
            path.write_text(content, encoding="utf-8")

            with pytest.raises(PersistenceFailure) as exc_info:
                JsonFileStore(path, "secret")
            assert exc_info.value.code == "parse_error"


def block_rewrite(path: Path) -> Path:
    """Make the temporary rewrite target unwritable by putting a directory there."""
    blocker = path.with_suffix(path.suffix + ".tmp")
    blocker.mkdir()
    return blocker


class TestJsonFileStoreFailedWrites:
    """A write whose file rewrite fails leaves no trace."""

    def test_failed_insert_is_rolled_back(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "state.json"
            store = JsonFileStore(path, "secret")
            run_async(store.insert(DOMAINS_TABLE, {"user_id": "u", "domain": "a.com"}))
            blocker = block_rewrite(path)

            with pytest.raises(PersistenceFailure):
                run_async(store.insert(DOMAINS_TABLE, {"user_id": "u", "domain": "b.com"}))

            rows = run_async(store.select(DOMAINS_TABLE))
            assert [r["domain"] for r in rows] == ["a.com"]

            blocker.rmdir()
            row = run_async(store.insert(DOMAINS_TABLE, {"user_id": "u", "domain": "b.com"}))
            assert row["id"] == 2
            reloaded = run_async(JsonFileStore(path, "secret").select(DOMAINS_TABLE, order=[Order("id")]))
            assert [r["domain"] for r in reloaded] == ["a.com", "b.com"]

    def test_failed_update_and_delete_are_rolled_back(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "state.json"
            store = JsonFileStore(path, "secret")
            run_async(store.insert(DOMAINS_TABLE, {"user_id": "u", "domain": "a.com", "status": "pending"}))
            before = run_async(store.select(DOMAINS_TABLE))
            block_rewrite(path)

            with pytest.raises(PersistenceFailure):
                run_async(store.update(DOMAINS_TABLE, {"id": 1}, {"status": "taken"}))
            with pytest.raises(PersistenceFailure):
                run_async(store.delete(DOMAINS_TABLE, {"id": 1}))
            with pytest.raises(PersistenceFailure):
                run_async(store.upsert(PROFILES_TABLE, {"id": "u", "email": "u@example.com"}))

            assert run_async(store.select(DOMAINS_TABLE)) == before
            assert run_async(store.select(PROFILES_TABLE)) == []
