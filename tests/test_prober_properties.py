"""
Property-based tests for the availability probers.

The HTTP and RDAP probers run against httpx.MockTransport; probe_safely is
exercised with probers that hang, raise or misbehave.
"""

import asyncio

import httpx
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_watch.enums import DomainStatus, ProbeErrorCode
from domain_watch.exceptions import ProbeFailure
from domain_watch.models import ProbeResult
from domain_watch.prober import (
    AvailabilityProber,
    HttpAvailabilityProber,
    RDAPAvailabilityProber,
    probe_safely,
)


ENDPOINT = "https://lookup.test/check"
RDAP_ENDPOINT = "https://rdap.test/"


def run_async(coro):
    """Helper to run async code in tests."""
    return asyncio.new_event_loop().run_until_complete(coro)


def transport_for(status_code: int = 200, json_body=None, text: str = None, error=None):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if error is not None:
            raise error
        if text is not None:
            return httpx.Response(status_code, text=text)
        return httpx.Response(status_code, json=json_body)

    transport = httpx.MockTransport(handler)
    transport.requests = requests
    return transport


async def probe_once(prober, domain: str = "example.com") -> ProbeResult:
    async with prober:
        return await prober.probe(domain)


class SlowProber:
    """Prober that never answers in time."""

    async def probe(self, domain: str) -> ProbeResult:
        await asyncio.sleep(5)
        return ProbeResult(status=DomainStatus.TAKEN)


class RaisingProber:
    """Prober that raises the given exception."""

    def __init__(self, error: BaseException) -> None:
        self._error = error

    async def probe(self, domain: str) -> ProbeResult:
        raise self._error


class FixedProber:
    """Prober that returns a fixed value."""

    def __init__(self, result) -> None:
        self._result = result

    async def probe(self, domain: str):
        return self._result


class TestHttpProber:
    """Lookup service responses map onto domain statuses."""

    def test_available_response(self) -> None:
        transport = transport_for(json_body={"available": True, "registrar": None})
        prober = HttpAvailabilityProber(ENDPOINT, transport=transport)

        result = run_async(probe_once(prober, "example-unlikely-12345.com"))

        assert result.status == DomainStatus.AVAILABLE
        assert result.details == {"available": True, "registrar": None}
        request = transport.requests[0]
        assert request.url.params["domain"] == "example-unlikely-12345.com"

    @given(body=st.fixed_dictionaries(
        {"available": st.one_of(st.just(False), st.none(), st.integers(), st.text())}
    ))
    @settings(max_examples=50)
    def test_anything_but_true_is_taken(self, body: dict) -> None:
        """*For any* JSON object whose available flag is not true, the status SHALL be taken."""
        prober = HttpAvailabilityProber(ENDPOINT, transport=transport_for(json_body=body))

        result = run_async(probe_once(prober))

        assert result.status == DomainStatus.TAKEN

    @given(status_code=st.integers(min_value=300, max_value=599))
    @settings(max_examples=50)
    def test_non_success_is_unknown(self, status_code: int) -> None:
        """*For any* non-2xx reply, the result SHALL be unknown with the status code."""
        prober = HttpAvailabilityProber(
            ENDPOINT, transport=transport_for(status_code, json_body={"error": "x"})
        )

        result = run_async(probe_once(prober))

        assert result.status == DomainStatus.UNKNOWN
        assert result.details["error"] == "API call failed"
        assert result.details["status_code"] == status_code

    def test_non_json_body_is_unknown(self) -> None:
        prober = HttpAvailabilityProber(ENDPOINT, transport=transport_for(text="<html>"))

        result = run_async(probe_once(prober))

        assert result.status == DomainStatus.UNKNOWN
        assert result.details["error_code"] == ProbeErrorCode.PARSE_ERROR.value

    def test_network_error_is_unknown(self) -> None:
        transport = transport_for(error=httpx.ConnectError("refused"))
        prober = HttpAvailabilityProber(ENDPOINT, transport=transport)

        result = run_async(probe_once(prober))

        assert result.status == DomainStatus.UNKNOWN
        assert result.details["error_code"] == ProbeErrorCode.NETWORK_ERROR.value

    def test_transport_timeout_is_unknown(self) -> None:
        transport = transport_for(error=httpx.ReadTimeout("slow"))
        prober = HttpAvailabilityProber(ENDPOINT, transport=transport)

        result = run_async(probe_once(prober))

        assert result.status == DomainStatus.UNKNOWN
        assert result.details["error_code"] == ProbeErrorCode.TIMEOUT.value


class TestRdapProber:
    """RDAP responses map onto domain statuses."""

    def test_not_found_is_available(self) -> None:
        transport = transport_for(404, json_body={"errorCode": 404})
        prober = RDAPAvailabilityProber(RDAP_ENDPOINT, transport=transport)

        result = run_async(probe_once(prober, "example.com"))

        assert result.status == DomainStatus.AVAILABLE
        assert transport.requests[0].url.path == "/domain/example.com"

    def test_domain_object_is_taken(self) -> None:
        body = {"objectClassName": "domain", "ldhName": "EXAMPLE.COM", "status": ["active"]}
        prober = RDAPAvailabilityProber(RDAP_ENDPOINT, transport=transport_for(json_body=body))

        result = run_async(probe_once(prober))

        assert result.status == DomainStatus.TAKEN
        assert result.details["ldhName"] == "EXAMPLE.COM"

    def test_error_object_with_200_is_available(self) -> None:
        prober = RDAPAvailabilityProber(
            RDAP_ENDPOINT, transport=transport_for(json_body={"errorCode": 404})
        )

        assert run_async(probe_once(prober)).status == DomainStatus.AVAILABLE

    @pytest.mark.parametrize("status_code", [429, 500, 503])
    def test_rate_limit_and_server_errors_are_unknown(self, status_code: int) -> None:
        prober = RDAPAvailabilityProber(
            RDAP_ENDPOINT, transport=transport_for(status_code, json_body={})
        )

        result = run_async(probe_once(prober))

        assert result.status == DomainStatus.UNKNOWN
        assert result.details["status_code"] == status_code

    def test_unexpected_body_is_unknown(self) -> None:
        prober = RDAPAvailabilityProber(
            RDAP_ENDPOINT, transport=transport_for(json_body={"objectClassName": "entity"})
        )

        result = run_async(probe_once(prober))

        assert result.status == DomainStatus.UNKNOWN
        assert result.details["error_code"] == ProbeErrorCode.PARSE_ERROR.value


class TestProbeBoundary:
    """probe_safely never raises and never reports an invalid status."""

    def test_probers_satisfy_protocol(self) -> None:
        assert isinstance(HttpAvailabilityProber(ENDPOINT), AvailabilityProber)
        assert isinstance(RDAPAvailabilityProber(RDAP_ENDPOINT), AvailabilityProber)

    def test_timeout_becomes_unknown(self) -> None:
        result = run_async(probe_safely(SlowProber(), "example.com", timeout=0.01))

        assert result.status == DomainStatus.UNKNOWN
        assert result.details["error_code"] == ProbeErrorCode.TIMEOUT.value

    @given(message=st.text(max_size=50), error_type=st.sampled_from(
        [RuntimeError, ValueError, KeyError, OSError, ZeroDivisionError]
    ))
    @settings(max_examples=100)
    def test_any_exception_becomes_unknown(self, message: str, error_type) -> None:
        """*For any* exception a prober raises, the outcome SHALL be unknown."""
        result = run_async(probe_safely(RaisingProber(error_type(message)), "example.com"))

        assert result.status == DomainStatus.UNKNOWN
        assert result.details["error_code"] == ProbeErrorCode.INTERNAL_ERROR.value
        assert error_type.__name__ in result.details["error"]

    def test_probe_failure_keeps_its_code(self) -> None:
        error = ProbeFailure(code="timeout", message="too slow", details={"status_code": 504})

        result = run_async(probe_safely(RaisingProber(error), "example.com"))

        assert result.details == {"error": "too slow", "error_code": "timeout", "status_code": 504}

    @pytest.mark.parametrize("value", [
        None,
        "available",
        ProbeResult(status=DomainStatus.PENDING),
    ])
    def test_invalid_result_becomes_unknown(self, value) -> None:
        result = run_async(probe_safely(FixedProber(value), "example.com"))

        assert result.status == DomainStatus.UNKNOWN
        assert result.details["error_code"] == ProbeErrorCode.BAD_RESPONSE.value

    def test_valid_result_passes_through(self) -> None:
        expected = ProbeResult(status=DomainStatus.TAKEN, details={"source": "test"})

        assert run_async(probe_safely(FixedProber(expected), "example.com")) is expected
