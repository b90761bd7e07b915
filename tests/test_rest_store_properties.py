"""
Tests for the PostgREST store backend.

Requests are served by httpx.MockTransport so the encoding of filters,
orderings and headers and the mapping of HTTP failures can be checked
without a server.
"""

import asyncio
import json

import httpx
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_watch.exceptions import (
    ConflictError,
    PersistenceFailure,
    StoreUnavailable,
)
from domain_watch.history import MOST_RECENT_FIRST
from domain_watch.rest_store import RestStore, encode_filter_value, encode_order
from domain_watch.selector import DUE_ORDER, DomainSelector
from domain_watch.store import Store


BASE_URL = "https://project.supabase.test"


def run_async(coro):
    """Helper to run async code in tests."""
    return asyncio.new_event_loop().run_until_complete(coro)


class RecordingHandler:
    """MockTransport handler that records requests and replays a response."""

    def __init__(self, status_code: int = 200, body=None, error: Exception = None):
        self.status_code = status_code
        self.body = body if body is not None else []
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json=self.body)


def make_store(handler: RecordingHandler) -> RestStore:
    return RestStore(BASE_URL, "service-key", transport=httpx.MockTransport(handler))


async def run_and_close(store: RestStore, coro_factory):
    async with store:
        return await coro_factory(store)


class TestEncoding:
    """Query parameter encoding."""

    @given(value=st.one_of(st.integers(), st.text(min_size=1, max_size=20)))
    @settings(max_examples=100)
    def test_scalar_filters_use_eq(self, value) -> None:
        """*For any* non-null scalar, the filter SHALL be an eq expression."""
        assert encode_filter_value(value) == f"eq.{value}"

    def test_null_and_boolean_filters(self) -> None:
        assert encode_filter_value(None) == "is.null"
        assert encode_filter_value(True) == "eq.true"
        assert encode_filter_value(False) == "eq.false"

    def test_due_order(self) -> None:
        assert encode_order(DUE_ORDER) == "last_checked.asc.nullsfirst,id.asc.nullslast"

    def test_history_order(self) -> None:
        assert encode_order(MOST_RECENT_FIRST) == "check_date.desc.nullslast,id.desc.nullslast"
        assert encode_order(()) is None


class TestRequests:
    """Shape of the HTTP requests issued for each operation."""

    def test_rest_store_satisfies_protocol(self) -> None:
        assert isinstance(RestStore(BASE_URL, "key"), Store)

    def test_select_sends_filters_order_and_limit(self) -> None:
        handler = RecordingHandler(body=[{"id": 1, "domain": "a.com"}])

        rows = run_async(run_and_close(
            make_store(handler),
            lambda s: s.select("domains", {"user_id": "u1"}, order=DUE_ORDER, limit=3, offset=2),
        ))

        assert rows == [{"id": 1, "domain": "a.com"}]
        request = handler.requests[0]
        assert request.method == "GET"
        assert request.url.path == "/rest/v1/domains"
        assert request.url.params["user_id"] == "eq.u1"
        assert request.url.params["order"] == "last_checked.asc.nullsfirst,id.asc.nullslast"
        assert request.url.params["limit"] == "3"
        assert request.url.params["offset"] == "2"
        assert request.headers["apikey"] == "service-key"
        assert request.headers["authorization"] == "Bearer service-key"

    def test_insert_returns_representation(self) -> None:
        handler = RecordingHandler(status_code=201, body=[{"id": 7, "domain": "a.com"}])

        row = run_async(run_and_close(
            make_store(handler), lambda s: s.insert("domains", {"domain": "a.com"})
        ))

        assert row["id"] == 7
        request = handler.requests[0]
        assert request.method == "POST"
        assert json.loads(request.content) == {"domain": "a.com"}
        assert "return=representation" in request.headers["prefer"]

    def test_update_counts_returned_rows(self) -> None:
        handler = RecordingHandler(body=[{"id": 1}, {"id": 2}])

        count = run_async(run_and_close(
            make_store(handler),
            lambda s: s.update("domains", {"id": 1, "user_id": "u1"}, {"status": "taken"}),
        ))

        assert count == 2
        request = handler.requests[0]
        assert request.method == "PATCH"
        assert request.url.params["id"] == "eq.1"
        assert request.url.params["user_id"] == "eq.u1"

    def test_delete_counts_returned_rows(self) -> None:
        handler = RecordingHandler(body=[])

        count = run_async(run_and_close(
            make_store(handler), lambda s: s.delete("domains", {"id": 5})
        ))

        assert count == 0
        assert handler.requests[0].method == "DELETE"

    def test_upsert_merges_on_conflict_key(self) -> None:
        handler = RecordingHandler(status_code=201, body=[{"id": "u1", "email": "a@b.c"}])

        row = run_async(run_and_close(
            make_store(handler), lambda s: s.upsert("profiles", {"id": "u1", "email": "a@b.c"})
        ))

        assert row["email"] == "a@b.c"
        request = handler.requests[0]
        assert request.url.params["on_conflict"] == "id"
        assert "resolution=merge-duplicates" in request.headers["prefer"]


class TestErrorMapping:
    """HTTP and transport failures map onto the store error types."""

    @pytest.mark.parametrize("status_code", [500, 502, 503])
    def test_server_errors_are_unavailable(self, status_code: int) -> None:
        handler = RecordingHandler(status_code=status_code, body={"message": "down"})

        with pytest.raises(StoreUnavailable):
            run_async(run_and_close(make_store(handler), lambda s: s.select("domains")))

    def test_transport_error_is_unavailable(self) -> None:
        handler = RecordingHandler(error=httpx.ConnectError("connection refused"))

        with pytest.raises(StoreUnavailable):
            run_async(run_and_close(make_store(handler), lambda s: s.select("domains")))

    def test_conflict_maps_to_conflict_error(self) -> None:
        handler = RecordingHandler(status_code=409, body={"code": "23505"})

        with pytest.raises(ConflictError):
            run_async(run_and_close(
                make_store(handler), lambda s: s.insert("domains", {"domain": "a.com"})
            ))

    def test_client_error_is_persistence_failure(self) -> None:
        handler = RecordingHandler(status_code=400, body={"message": "bad column"})

        with pytest.raises(PersistenceFailure) as exc_info:
            run_async(run_and_close(make_store(handler), lambda s: s.select("domains")))
        assert exc_info.value.details["status_code"] == 400

    def test_empty_write_response_is_persistence_failure(self) -> None:
        handler = RecordingHandler(status_code=201, body=[])

        with pytest.raises(PersistenceFailure):
            run_async(run_and_close(
                make_store(handler), lambda s: s.insert("domains", {"domain": "a.com"})
            ))

    @pytest.mark.parametrize("body", ["<html>maintenance</html>", "", '{"rows": []}'])
    def test_success_without_row_list_is_unavailable(self, body: str) -> None:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, text=body)

        store = RestStore(BASE_URL, "service-key", transport=httpx.MockTransport(handler))

        with pytest.raises(StoreUnavailable) as exc_info:
            run_async(run_and_close(store, lambda s: DomainSelector(s).select()))
        assert exc_info.value.code == "invalid_response"
        assert exc_info.value.details["body"] == body
        assert len(requests) == 1
