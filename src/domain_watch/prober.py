"""
Availability probers.

A prober answers "is this domain registered?" for one name. Two HTTP-based
implementations are provided:

- HttpAvailabilityProber: a registry lookup service answering
  ``GET {endpoint}?domain=<name>`` with JSON ``{"available": bool, ...}``
- RDAPAvailabilityProber: an RDAP server, where 404 means unregistered and
  a domain object means registered

Probers never raise past probe_safely: transport errors, timeouts and bad
responses become an UNKNOWN result whose details carry the cause. There is
no retry here; the next scheduled cycle checks the domain again.
"""

import asyncio
from abc import abstractmethod
from typing import Optional, Protocol, runtime_checkable

import httpx

from .enums import DomainStatus, PROBE_STATUSES, ProbeErrorCode
from .exceptions import ProbeFailure
from .models import ProbeResult


@runtime_checkable
class AvailabilityProber(Protocol):
    """Protocol for availability lookups."""

    @abstractmethod
    async def probe(self, domain: str) -> ProbeResult:
        """
        Look up one domain.

        Args:
            domain: Canonical domain name

        Returns:
            ProbeResult with status available, taken or unknown
        """
        ...


_PROBE_CODES = {code.value for code in ProbeErrorCode}


def unknown_result(
    code: ProbeErrorCode, message: str, status_code: Optional[int] = None
) -> ProbeResult:
    """Build an UNKNOWN result with a diagnostic cause."""
    details: dict = {"error": message, "error_code": code.value}
    if status_code is not None:
        details["status_code"] = status_code
    return ProbeResult(status=DomainStatus.UNKNOWN, details=details)


async def probe_safely(
    prober: AvailabilityProber, domain: str, timeout: Optional[float] = None
) -> ProbeResult:
    """
    Run a probe at the failure boundary.

    Applies the probe timeout and turns any escaping exception, or a result
    with a status a probe may not report, into UNKNOWN.
    """
    try:
        if timeout is not None:
            result = await asyncio.wait_for(prober.probe(domain), timeout=timeout)
        else:
            result = await prober.probe(domain)
    except asyncio.TimeoutError:
        return unknown_result(
            ProbeErrorCode.TIMEOUT, f"Probe timed out after {timeout}s"
        )
    except ProbeFailure as e:
        return unknown_result(
            ProbeErrorCode(e.code) if e.code in _PROBE_CODES else ProbeErrorCode.NETWORK_ERROR,
            e.message,
            e.details.get("status_code"),
        )
    except Exception as e:
        return unknown_result(
            ProbeErrorCode.INTERNAL_ERROR, f"{type(e).__name__}: {e}"
        )

    if not isinstance(result, ProbeResult) or result.status not in PROBE_STATUSES:
        return unknown_result(
            ProbeErrorCode.BAD_RESPONSE, f"Prober returned an invalid result: {result!r}"
        )
    return result


class _HttpProber:
    """Shared httpx client handling for the HTTP probers."""

    def __init__(
        self,
        timeout: float = 10.0,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._headers = dict(headers or {})
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=True,
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                headers=self._headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _get(self, url: str, **kwargs) -> httpx.Response:
        """GET that raises ProbeFailure on transport problems."""
        try:
            return await self._ensure_client().get(url, **kwargs)
        except httpx.TimeoutException as e:
            raise ProbeFailure(
                code=ProbeErrorCode.TIMEOUT.value,
                message=f"Lookup timed out after {self._timeout}s",
                details={"url": url},
            ) from e
        except httpx.HTTPError as e:
            raise ProbeFailure(
                code=ProbeErrorCode.NETWORK_ERROR.value,
                message=f"Connection error: {e}",
                details={"url": url},
            ) from e


class HttpAvailabilityProber(_HttpProber):
    """Prober backed by a JSON registry lookup service."""

    def __init__(
        self,
        endpoint: str,
        timeout: float = 10.0,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(timeout=timeout, headers=headers, transport=transport)
        self._endpoint = endpoint

    async def probe(self, domain: str) -> ProbeResult:
        try:
            response = await self._get(
                self._endpoint,
                params={"domain": domain},
                headers={"Accept": "application/json"},
            )
        except ProbeFailure as e:
            return unknown_result(ProbeErrorCode(e.code), e.message)

        if not response.is_success:
            return unknown_result(
                ProbeErrorCode.BAD_RESPONSE, "API call failed", response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            return unknown_result(
                ProbeErrorCode.PARSE_ERROR,
                f"Lookup response is not JSON: {e}",
                response.status_code,
            )
        if not isinstance(data, dict):
            return unknown_result(
                ProbeErrorCode.PARSE_ERROR,
                "Lookup response is not a JSON object",
                response.status_code,
            )

        status = DomainStatus.AVAILABLE if data.get("available") is True else DomainStatus.TAKEN
        return ProbeResult(status=status, details=data)


class RDAPAvailabilityProber(_HttpProber):
    """
    Prober backed by an RDAP server.

    404 maps to available; 200 with a domain object maps to taken; rate
    limiting, server errors and unparseable bodies map to unknown.
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = 10.0,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(timeout=timeout, headers=headers, transport=transport)
        self._endpoint = endpoint.rstrip("/")

    async def probe(self, domain: str) -> ProbeResult:
        url = f"{self._endpoint}/domain/{domain}"
        try:
            response = await self._get(
                url, headers={"Accept": "application/rdap+json, application/json"}
            )
        except ProbeFailure as e:
            return unknown_result(ProbeErrorCode(e.code), e.message)

        if response.status_code == 404:
            return ProbeResult(
                status=DomainStatus.AVAILABLE,
                details={"source": "rdap", "status_code": 404},
            )

        if response.status_code != 200:
            return unknown_result(
                ProbeErrorCode.BAD_RESPONSE,
                f"RDAP server returned HTTP {response.status_code}",
                response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            return unknown_result(
                ProbeErrorCode.PARSE_ERROR, f"Failed to parse RDAP response: {e}", 200
            )

        if isinstance(data, dict) and data.get("objectClassName") == "domain":
            return ProbeResult(
                status=DomainStatus.TAKEN,
                details={
                    "source": "rdap",
                    "status_code": 200,
                    "ldhName": data.get("ldhName"),
                    "status": data.get("status", []),
                },
            )
        if isinstance(data, dict) and data.get("errorCode") == 404:
            return ProbeResult(
                status=DomainStatus.AVAILABLE,
                details={"source": "rdap", "status_code": 200, "errorCode": 404},
            )
        return unknown_result(
            ProbeErrorCode.PARSE_ERROR,
            "Response does not contain a domain object",
            200,
        )
