"""
Notification trigger and dispatchers for the domain watch system.

The trigger decides, from a domain's previous and new status plus the
owner's preferences, whether a "became available" message is due, and hands
it to a dispatcher with retry and exponential backoff. Delivery failures are
logged and never undo the status and history writes of the check.

Dispatchers:
- EmailDispatcher: SMTP with STARTTLS
- WebhookDispatcher: JSON POST via httpx
- LogDispatcher: writes the message to the audit log
"""

import asyncio
import smtplib
import ssl
from abc import abstractmethod
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

import httpx

from .config import EmailConfig, RetryConfig, WebhookConfig
from .enums import DomainStatus, LogLevel
from .exceptions import NotificationDispatchFailure
from .i18n import get_message
from .models import UserPreference, WatchedDomain, utc_now
from .profiles import ProfileRepository

if TYPE_CHECKING:
    from .audit_logger import AuditLogger


def format_timestamp(iso_timestamp: str, language: str = "en") -> str:
    """Format an ISO timestamp for humans; returns the input if unparseable."""
    try:
        dt = datetime.fromisoformat(iso_timestamp.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return iso_timestamp
    if language == "de":
        return dt.strftime("%d.%m.%Y, %H:%M Uhr")
    return dt.strftime("%b %d, %Y, %I:%M %p")


@dataclass
class NotificationMessage:
    """A "domain became available" message addressed to one user."""

    to_address: str
    domain: str
    status: str
    timestamp: str
    language: str = "en"

    @property
    def subject(self) -> str:
        return get_message(
            "notification.subject_available", self.language, domain=self.domain
        )

    @property
    def body(self) -> str:
        return get_message(
            "notification.body_available",
            self.language,
            domain=self.domain,
            time=format_timestamp(self.timestamp, self.language),
        )


@runtime_checkable
class NotificationDispatcher(Protocol):
    """Delivery collaborator for notification messages."""

    @abstractmethod
    async def send(self, message: NotificationMessage) -> bool:
        """Deliver a message; True on success."""
        ...

    @abstractmethod
    def get_name(self) -> str:
        ...


class EmailDispatcher:
    """Email delivery over SMTP."""

    def __init__(self, config: EmailConfig) -> None:
        self._config = config

    async def send(self, message: NotificationMessage) -> bool:
        # smtplib blocks; keep it off the event loop
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._send_sync, message)

    def _send_sync(self, message: NotificationMessage) -> bool:
        try:
            with smtplib.SMTP(
                self._config.smtp_host,
                self._config.smtp_port,
                timeout=self._config.timeout_seconds,
            ) as server:
                if self._config.use_starttls:
                    server.starttls(context=ssl.create_default_context())
                if self._config.username:
                    server.login(self._config.username, self._config.password)
                server.sendmail(
                    self._config.from_address,
                    [message.to_address],
                    self.format_email(message).as_string(),
                )
            return True
        except (smtplib.SMTPException, OSError):
            return False

    def format_email(self, message: NotificationMessage) -> MIMEMultipart:
        msg = MIMEMultipart()
        msg["From"] = self._config.from_address
        msg["To"] = message.to_address
        msg["Subject"] = message.subject
        msg.attach(MIMEText(message.body, "plain", "utf-8"))
        return msg

    def get_name(self) -> str:
        return "email"


class WebhookDispatcher:
    """Generic webhook delivery using HTTP POST."""

    def __init__(
        self,
        config: WebhookConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = config.url
        self._headers = dict(config.headers)
        self._transport = transport

    async def send(self, message: NotificationMessage) -> bool:
        headers = {"Content-Type": "application/json"}
        headers.update(self._headers)
        data = {
            "to": message.to_address,
            "domain": message.domain,
            "status": message.status,
            "timestamp": message.timestamp,
            "subject": message.subject,
            "body": message.body,
        }
        async with httpx.AsyncClient(transport=self._transport) as client:
            try:
                response = await client.post(
                    self._url, json=data, headers=headers, timeout=30.0
                )
            except httpx.HTTPError:
                return False
        return response.is_success

    def get_name(self) -> str:
        return "webhook"


class LogDispatcher:
    """Writes messages to the audit log instead of delivering them."""

    def __init__(self, logger: Optional["AuditLogger"] = None) -> None:
        self._logger = logger
        self.sent: list[NotificationMessage] = []

    async def send(self, message: NotificationMessage) -> bool:
        self.sent.append(message)
        if self._logger:
            self._logger.info(
                "LogDispatcher",
                f"Notification for {message.domain} to {message.to_address}",
                {"subject": message.subject, "domain": message.domain},
            )
        return True

    def get_name(self) -> str:
        return "log"


class NotificationTrigger:
    """
    Decides whether a check result warrants a notification and sends it.

    A notification fires only on a transition into AVAILABLE, for a domain
    whose owner asked to be notified and has notifications enabled.
    """

    def __init__(
        self,
        profiles: ProfileRepository,
        dispatcher: Optional[NotificationDispatcher],
        retry_config: Optional[RetryConfig] = None,
        logger: Optional["AuditLogger"] = None,
        language: str = "en",
        notify_on_first_check: bool = True,
    ) -> None:
        """
        Args:
            profiles: Source of the owner's notification preference
            dispatcher: Delivery collaborator; None disables delivery
            retry_config: Retry behaviour for delivery
            logger: Optional audit logger
            language: Language of the message text
            notify_on_first_check: Whether a domain with no earlier check
                record counts as a transition when it is found available
        """
        self._profiles = profiles
        self._dispatcher = dispatcher
        self._retry_config = retry_config or RetryConfig()
        self._logger = logger
        self._language = language
        self._notify_on_first_check = notify_on_first_check

    def is_transition(
        self, previous_status: Optional[DomainStatus], new_status: DomainStatus
    ) -> bool:
        """True when ``new_status`` is a genuine move into AVAILABLE."""
        if new_status != DomainStatus.AVAILABLE:
            return False
        if previous_status is None:
            return self._notify_on_first_check
        return previous_status != DomainStatus.AVAILABLE

    def should_notify(
        self,
        domain: WatchedDomain,
        previous_status: Optional[DomainStatus],
        new_status: DomainStatus,
        preference: Optional[UserPreference],
    ) -> bool:
        if not self.is_transition(previous_status, new_status):
            return False
        if not domain.notify_if_available:
            return False
        if preference is None or not preference.notifications_enabled:
            return False
        return bool(preference.email)

    async def maybe_notify(
        self,
        domain: WatchedDomain,
        previous_status: Optional[DomainStatus],
        new_status: DomainStatus,
    ) -> bool:
        """
        Notify the owner of ``domain`` if this check is a transition.

        Returns:
            True if a notification was delivered
        """
        # Cheap checks first; the profile is only read for real transitions
        if not self.is_transition(previous_status, new_status):
            return False
        if not domain.notify_if_available:
            return False

        try:
            preference = await self._profiles.get_preference(domain.user_id)
        except Exception as e:
            self._log_error(
                f"Could not read notification preference for {domain.domain}",
                e,
                {"domain": domain.domain, "user_id": domain.user_id},
            )
            return False

        if not self.should_notify(domain, previous_status, new_status, preference):
            return False

        if self._dispatcher is None:
            self._log(
                LogLevel.WARN,
                f"{domain.domain} became available but no dispatcher is configured",
                {"domain": domain.domain},
            )
            return False

        message = NotificationMessage(
            to_address=preference.email,
            domain=domain.domain,
            status=new_status.value,
            timestamp=utc_now(),
            language=self._language,
        )
        try:
            await self._send_with_retry(message)
        except NotificationDispatchFailure as e:
            self._log_error(
                f"Notification for {domain.domain} could not be delivered", e,
                {"domain": domain.domain},
            )
            return False

        self._log(
            LogLevel.INFO,
            f"Notified {preference.email} that {domain.domain} is available",
            {"domain": domain.domain, "channel": self._dispatcher.get_name()},
        )
        return True

    async def _send_with_retry(self, message: NotificationMessage) -> int:
        """
        Deliver with exponential backoff.

        Returns:
            The number of attempts made

        Raises:
            NotificationDispatchFailure: When every attempt failed
        """
        assert self._dispatcher is not None
        max_attempts = self._retry_config.max_retries + 1
        errors: list[str] = []

        for attempt in range(1, max_attempts + 1):
            try:
                if await self._dispatcher.send(message):
                    return attempt
                errors.append("Dispatcher returned failure")
            except Exception as e:
                errors.append(f"{type(e).__name__}: {e}")

            if attempt < max_attempts:
                await asyncio.sleep(self._calculate_delay(attempt - 1))

        raise NotificationDispatchFailure(
            code="dispatch_failed",
            message=f"All {max_attempts} delivery attempts via "
            f"'{self._dispatcher.get_name()}' failed",
            details={
                "channel": self._dispatcher.get_name(),
                "domain": message.domain,
                "attempts": errors,
            },
        )

    def _calculate_delay(self, attempt: int) -> float:
        delay = self._retry_config.base_delay_seconds * (2 ** attempt)
        return min(delay, self._retry_config.max_delay_seconds)

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "NotificationTrigger", message, data)

    def _log_error(self, message: str, error: Exception, data: dict) -> None:
        if self._logger:
            self._logger.log_error("NotificationTrigger", message, error, data)
