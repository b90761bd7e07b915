"""
Configuration dataclasses for the domain watch system.

This module defines all configuration structures used throughout the system:
the availability prober, the store backend, retry behaviour for
notification delivery, notification channels, check cycle limits and logging.
It also loads and saves configuration files and applies environment
overrides.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .exceptions import ValidationError


DEFAULT_CONFIG_PATH = Path.home() / ".domain_watch" / "config.json"
DEFAULT_STATE_PATH = Path.home() / ".domain_watch" / "state.json"
DEFAULT_HMAC_SECRET = "default-secret-change-me"

ENV_PREFIX = "DOMAIN_WATCH_"


@dataclass
class ProberConfig:
    """Availability prober configuration."""

    kind: str = "http"  # 'http' (lookup service) or 'rdap'
    endpoint: str = "https://whois-api.example.com/check"
    timeout_seconds: float = 10.0
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class StoreConfig:
    """Store backend configuration."""

    kind: str = "json"  # 'memory', 'json' or 'rest'
    state_file_path: Path = DEFAULT_STATE_PATH
    hmac_secret: str = DEFAULT_HMAC_SECRET
    rest_url: Optional[str] = None
    service_key: Optional[str] = None
    timeout_seconds: float = 10.0


@dataclass
class RetryConfig:
    """Retry behaviour for notification delivery."""

    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0


@dataclass
class EmailConfig:
    """SMTP delivery configuration."""

    smtp_host: str
    smtp_port: int = 587
    username: str = ""
    password: str = ""
    from_address: str = ""
    use_starttls: bool = True
    timeout_seconds: float = 30.0


@dataclass
class WebhookConfig:
    """Generic webhook delivery configuration."""

    url: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class NotificationConfig:
    """Notification delivery configuration."""

    email: Optional[EmailConfig] = None
    webhook: Optional[WebhookConfig] = None
    notify_on_first_check: bool = True


@dataclass
class CycleConfig:
    """Limits for a single check cycle."""

    default_limit: int = 50
    max_concurrency: int = 10
    max_seconds: Optional[float] = None
    max_checks: Optional[int] = None


@dataclass
class LoggingConfig:
    """Logging and audit configuration."""

    level: str = "info"
    audit_mode: bool = False
    audit_signing_key: Optional[str] = None
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    prober: ProberConfig = field(default_factory=ProberConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    cycle: CycleConfig = field(default_factory=CycleConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    language: str = "en"  # 'de' or 'en'


def create_default_config(
    language: str = "en",
    state_file: Optional[Path] = None,
    hmac_secret: str = DEFAULT_HMAC_SECRET,
) -> SystemConfig:
    """
    Create a default system configuration.

    Args:
        language: Output language ('de' or 'en')
        state_file: Path to the JSON state file
        hmac_secret: Secret for HMAC protection of the state file

    Returns:
        SystemConfig with default settings
    """
    return SystemConfig(
        store=StoreConfig(
            kind="json",
            state_file_path=state_file or DEFAULT_STATE_PATH,
            hmac_secret=hmac_secret,
        ),
        language=language,
    )


def config_from_dict(data: dict) -> SystemConfig:
    """
    Build a SystemConfig from a parsed JSON document.

    Missing sections fall back to defaults.

    Raises:
        ValidationError: If a section has the wrong shape
    """
    try:
        prober_data = data.get("prober") or {}
        prober = ProberConfig(
            kind=prober_data.get("kind", "http"),
            endpoint=prober_data.get("endpoint", ProberConfig.endpoint),
            timeout_seconds=float(prober_data.get("timeout_seconds", 10.0)),
            headers=dict(prober_data.get("headers") or {}),
        )

        store_data = data.get("store") or {}
        state_file = store_data.get("state_file_path")
        store = StoreConfig(
            kind=store_data.get("kind", "json"),
            state_file_path=Path(state_file) if state_file else DEFAULT_STATE_PATH,
            hmac_secret=store_data.get("hmac_secret", DEFAULT_HMAC_SECRET),
            rest_url=store_data.get("rest_url"),
            service_key=store_data.get("service_key"),
            timeout_seconds=float(store_data.get("timeout_seconds", 10.0)),
        )

        retry_data = data.get("retry") or {}
        retry = RetryConfig(
            max_retries=int(retry_data.get("max_retries", 3)),
            base_delay_seconds=float(retry_data.get("base_delay_seconds", 1.0)),
            max_delay_seconds=float(retry_data.get("max_delay_seconds", 60.0)),
        )

        notifications_data = data.get("notifications") or {}
        notifications = NotificationConfig(
            notify_on_first_check=bool(
                notifications_data.get("notify_on_first_check", True)
            ),
        )

        email_data = notifications_data.get("email") or {}
        if email_data.get("enabled") and email_data.get("smtp_host"):
            notifications.email = EmailConfig(
                smtp_host=email_data["smtp_host"],
                smtp_port=int(email_data.get("smtp_port", 587)),
                username=email_data.get("username", ""),
                password=email_data.get("password", ""),
                from_address=email_data.get("from_address", ""),
                use_starttls=bool(email_data.get("use_starttls", True)),
                timeout_seconds=float(email_data.get("timeout_seconds", 30.0)),
            )

        webhook_data = notifications_data.get("webhook") or {}
        if webhook_data.get("enabled") and webhook_data.get("url"):
            notifications.webhook = WebhookConfig(
                url=webhook_data["url"],
                headers=dict(webhook_data.get("headers") or {}),
            )

        cycle_data = data.get("cycle") or {}
        cycle = CycleConfig(
            default_limit=int(cycle_data.get("default_limit", 50)),
            max_concurrency=int(cycle_data.get("max_concurrency", 10)),
            max_seconds=cycle_data.get("max_seconds"),
            max_checks=cycle_data.get("max_checks"),
        )

        logging_data = data.get("logging") or {}
        logging_config = LoggingConfig(
            level=logging_data.get("level", "info"),
            audit_mode=bool(logging_data.get("audit_mode", False)),
            audit_signing_key=logging_data.get("audit_signing_key"),
            output_format=logging_data.get("output_format", "text"),
        )
    except (AttributeError, TypeError, ValueError) as e:
        raise ValidationError(
            code="invalid_config",
            message=f"Invalid configuration: {e}",
            details={"error": str(e)},
        ) from e

    return SystemConfig(
        prober=prober,
        store=store,
        retry=retry,
        notifications=notifications,
        cycle=cycle,
        logging=logging_config,
        language=data.get("language", "en"),
    )


def config_to_dict(config: SystemConfig) -> dict:
    """Serialize a SystemConfig to a JSON-compatible dictionary."""
    notifications: dict = {
        "notify_on_first_check": config.notifications.notify_on_first_check,
    }
    email = config.notifications.email
    if email:
        notifications["email"] = {
            "enabled": True,
            "smtp_host": email.smtp_host,
            "smtp_port": email.smtp_port,
            "username": email.username,
            "password": email.password,
            "from_address": email.from_address,
            "use_starttls": email.use_starttls,
            "timeout_seconds": email.timeout_seconds,
        }
    webhook = config.notifications.webhook
    if webhook:
        notifications["webhook"] = {
            "enabled": True,
            "url": webhook.url,
            "headers": webhook.headers,
        }

    return {
        "prober": {
            "kind": config.prober.kind,
            "endpoint": config.prober.endpoint,
            "timeout_seconds": config.prober.timeout_seconds,
            "headers": config.prober.headers,
        },
        "store": {
            "kind": config.store.kind,
            "state_file_path": str(config.store.state_file_path),
            "hmac_secret": config.store.hmac_secret,
            "rest_url": config.store.rest_url,
            "service_key": config.store.service_key,
            "timeout_seconds": config.store.timeout_seconds,
        },
        "retry": {
            "max_retries": config.retry.max_retries,
            "base_delay_seconds": config.retry.base_delay_seconds,
            "max_delay_seconds": config.retry.max_delay_seconds,
        },
        "notifications": notifications,
        "cycle": {
            "default_limit": config.cycle.default_limit,
            "max_concurrency": config.cycle.max_concurrency,
            "max_seconds": config.cycle.max_seconds,
            "max_checks": config.cycle.max_checks,
        },
        "logging": {
            "level": config.logging.level,
            "audit_mode": config.logging.audit_mode,
            "audit_signing_key": config.logging.audit_signing_key,
            "output_format": config.logging.output_format,
        },
        "language": config.language,
    }


def load_config_from_file(config_path: Path) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Args:
        config_path: Path to the configuration file

    Returns:
        SystemConfig if the file exists, None otherwise

    Raises:
        ValidationError: If the file is not valid JSON or has a bad shape
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except json.JSONDecodeError as e:
        raise ValidationError(
            code="invalid_config",
            message=f"Configuration file is not valid JSON: {e}",
            details={"path": str(config_path)},
        ) from e

    if not isinstance(data, dict):
        raise ValidationError(
            code="invalid_config",
            message="Configuration root must be an object",
            details={"path": str(config_path)},
        )
    return config_from_dict(data)


def save_config_to_file(config: SystemConfig, config_path: Path) -> None:
    """Save configuration to a JSON file, creating parent directories."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(config_to_dict(config), f, indent=2, ensure_ascii=False)


def apply_env_overrides(
    config: SystemConfig,
    environ: Optional[dict] = None,
    dotenv_path: Optional[Path] = None,
) -> SystemConfig:
    """
    Override configuration values from DOMAIN_WATCH_* environment variables.

    When ``environ`` is not given, a ``.env`` file is loaded first and the
    process environment is used.
    """
    if environ is None:
        load_dotenv(dotenv_path=dotenv_path)
        environ = dict(os.environ)

    def get(name: str) -> Optional[str]:
        value = environ.get(ENV_PREFIX + name)
        return value.strip() if value and value.strip() else None

    if get("PROBER_KIND"):
        config.prober.kind = get("PROBER_KIND")
    if get("PROBER_ENDPOINT"):
        config.prober.endpoint = get("PROBER_ENDPOINT")
    if get("PROBER_TIMEOUT"):
        config.prober.timeout_seconds = _as_float("PROBER_TIMEOUT", get("PROBER_TIMEOUT"))

    if get("STORE_KIND"):
        config.store.kind = get("STORE_KIND")
    if get("STATE_FILE"):
        config.store.state_file_path = Path(get("STATE_FILE"))
    if get("HMAC_SECRET"):
        config.store.hmac_secret = get("HMAC_SECRET")
    if get("REST_URL"):
        config.store.rest_url = get("REST_URL")
    if get("SERVICE_KEY"):
        config.store.service_key = get("SERVICE_KEY")

    if get("DEFAULT_LIMIT"):
        config.cycle.default_limit = int(_as_float("DEFAULT_LIMIT", get("DEFAULT_LIMIT")))
    if get("MAX_CONCURRENCY"):
        config.cycle.max_concurrency = int(
            _as_float("MAX_CONCURRENCY", get("MAX_CONCURRENCY"))
        )

    if get("LOG_LEVEL"):
        config.logging.level = get("LOG_LEVEL").lower()
    if get("LANGUAGE"):
        config.language = get("LANGUAGE").lower()

    return config


def _as_float(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError as e:
        raise ValidationError(
            code="invalid_config",
            message=f"{ENV_PREFIX}{name} must be numeric, got {value!r}",
            details={"variable": ENV_PREFIX + name},
        ) from e
