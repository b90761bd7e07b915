"""
Check Orchestrator for the domain watch system.

Drives one bounded check cycle:
- select the candidate domains
- probe each one (timeouts and errors become UNKNOWN)
- store the new status on the domain row and append a check record
- compare with the previous record and let the notification trigger decide

Each candidate is processed independently and concurrently, bounded by a
semaphore. A failure for one domain is logged and recorded on that domain's
result; the rest of the batch carries on. Only an unreachable store during
selection aborts the cycle.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .enums import LogLevel
from .history import CheckHistory
from .models import CycleReport, DomainCheckResult, WatchedDomain, utc_now
from .notifications import NotificationTrigger
from .prober import AvailabilityProber, probe_safely
from .selector import DEFAULT_BATCH_LIMIT, DomainSelector
from .store import Store
from .watchlist import DomainRepository

if TYPE_CHECKING:
    from .audit_logger import AuditLogger


@dataclass
class CycleBudget:
    """Limits after which a cycle stops launching new probes."""

    max_seconds: Optional[float] = None
    max_checks: Optional[int] = None

    @property
    def unlimited(self) -> bool:
        return self.max_seconds is None and self.max_checks is None


class CheckOrchestrator:
    """
    Runs check cycles over watched domains.

    Acts with service privilege: selection and status writes span all users,
    but every write is scoped to the (id, user_id) of the row being checked.
    """

    async def __aenter__(self) -> "CheckOrchestrator":
        enter = getattr(self._prober, "__aenter__", None)
        if enter is not None:
            await enter()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        close = getattr(self._prober, "close", None)
        if close is not None:
            await close()

    def __init__(
        self,
        store: Store,
        prober: AvailabilityProber,
        trigger: Optional[NotificationTrigger] = None,
        logger: Optional["AuditLogger"] = None,
        probe_timeout: Optional[float] = 10.0,
        max_concurrency: int = 10,
        default_limit: int = DEFAULT_BATCH_LIMIT,
        budget: Optional[CycleBudget] = None,
    ) -> None:
        """
        Args:
            store: Store holding domains and check history
            prober: Availability prober
            trigger: Notification trigger; None disables notifications
            logger: Optional audit logger
            probe_timeout: Seconds before a probe counts as UNKNOWN
            max_concurrency: Upper bound on probes in flight
            default_limit: Batch size when the caller gives none
            budget: Default budget applied to every cycle
        """
        self._store = store
        self._prober = prober
        self._trigger = trigger
        self._logger = logger
        self._probe_timeout = probe_timeout
        self._max_concurrency = max(1, max_concurrency)
        self._default_limit = default_limit
        self._budget = budget

        self._selector = DomainSelector(store, logger=logger)
        self._domains = DomainRepository(store)
        self._history = CheckHistory(store)

    @property
    def selector(self) -> DomainSelector:
        return self._selector

    @property
    def history(self) -> CheckHistory:
        return self._history

    async def check_domains(
        self,
        domain: Optional[str] = None,
        limit: Optional[int] = None,
        user_id: Optional[str] = None,
        budget: Optional[CycleBudget] = None,
    ) -> CycleReport:
        """
        Select due domains and run one cycle over them.

        With no arguments this is the scheduled job: the default batch of
        least recently checked domains across all users.

        Raises:
            ValidationError: If ``domain`` or ``limit`` is invalid
            StoreUnavailable: If the candidates cannot be read
        """
        candidates = await self._selector.select(
            domain=domain,
            limit=limit if limit is not None else self._default_limit,
            user_id=user_id,
        )
        return await self.run_cycle(candidates, budget)

    async def run_cycle(
        self,
        candidates: list[WatchedDomain],
        budget: Optional[CycleBudget] = None,
    ) -> CycleReport:
        """
        Check every candidate, concurrently and independently.

        Once the budget is spent no further probes are started; probes
        already running finish and persist. Results keep candidate order.
        """
        if not candidates:
            self._log(LogLevel.INFO, "No domains to check", {})
            return CycleReport(message="No domains to check")

        budget = budget or self._budget
        semaphore = asyncio.Semaphore(min(self._max_concurrency, len(candidates)))
        started = time.monotonic()
        launched = 0

        def budget_spent() -> bool:
            if budget is None:
                return False
            if budget.max_checks is not None and launched >= budget.max_checks:
                return True
            return (
                budget.max_seconds is not None
                and time.monotonic() - started >= budget.max_seconds
            )

        async def run_one(domain: WatchedDomain) -> Optional[DomainCheckResult]:
            nonlocal launched
            async with semaphore:
                if budget_spent():
                    return None
                launched += 1
                result = await self._probe_and_persist(domain)
            # delivery retries must not hold a probe slot
            await self._notify(domain, result)
            return result

        self._log(
            LogLevel.INFO,
            f"Starting check cycle for {len(candidates)} domain(s)",
            {"candidates": len(candidates)},
        )
        outcomes = await asyncio.gather(*(run_one(d) for d in candidates))
        results = [r for r in outcomes if r is not None]

        report = CycleReport(results=results, skipped=len(candidates) - len(results))
        self._log(
            LogLevel.INFO,
            "Check cycle completed",
            {
                "checked": report.checked,
                "failed": len(report.failed),
                "skipped": report.skipped,
                "duration_s": round(time.monotonic() - started, 3),
            },
        )
        return report

    async def check_one(self, domain: WatchedDomain) -> DomainCheckResult:
        """Probe, persist and notify for a single domain. Never raises."""
        result = await self._probe_and_persist(domain)
        await self._notify(domain, result)
        return result

    async def _probe_and_persist(self, domain: WatchedDomain) -> DomainCheckResult:
        probe = await probe_safely(self._prober, domain.domain, self._probe_timeout)
        checked_at = utc_now()
        result = DomainCheckResult(
            domain=domain.domain, status=probe.status, checked_at=checked_at
        )

        try:
            await self._domains.record_status(domain, probe.status, checked_at)
            await self._history.append(
                domain.id, probe.status, probe.details, check_date=checked_at
            )
        except Exception as e:
            result.persisted = False
            result.error = str(e)
            self._log_error(
                f"Failed to persist check of {domain.domain}", e,
                {"domain": domain.domain, "domain_id": domain.id},
            )
            return result

        self._log(
            LogLevel.INFO,
            f"Checked {domain.domain}: {probe.status.value}",
            {"domain": domain.domain, "status": probe.status.value, "details": probe.details},
        )
        return result

    async def _notify(self, domain: WatchedDomain, result: DomainCheckResult) -> None:
        if self._trigger is None or not result.persisted:
            return
        try:
            previous = await self._history.previous_status(domain.id)
            result.notified = await self._trigger.maybe_notify(
                domain, previous, result.status
            )
        except Exception as e:
            self._log_error(
                f"Notification step failed for {domain.domain}", e,
                {"domain": domain.domain},
            )

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "CheckOrchestrator", message, data)

    def _log_error(self, message: str, error: Exception, data: dict) -> None:
        if self._logger:
            self._logger.log_error("CheckOrchestrator", message, error, data)
