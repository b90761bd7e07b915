"""
Domain Watch - watchlist-driven domain availability monitoring.

Users keep a watchlist of domain names. A periodic check cycle probes the
least recently checked domains, records every result in a check history and
notifies owners when a watched domain becomes available.
"""

__version__ = "0.1.0"
__author__ = "Domain Watch Team"

from domain_watch.exceptions import (
    DomainWatchError,
    ValidationError,
    DuplicateWatchError,
    StoreUnavailable,
    ProbeFailure,
    PersistenceFailure,
    ConflictError,
    TamperingError,
    NotificationDispatchFailure,
)
from domain_watch.enums import (
    DomainStatus,
    LogLevel,
    ProbeErrorCode,
    DomainValidationErrorCode,
)
from domain_watch.domain_validator import (
    DomainValidator,
    DomainValidationResult,
    DomainValidationError,
    normalize_domain,
)
from domain_watch.config import (
    ProberConfig,
    StoreConfig,
    RetryConfig,
    EmailConfig,
    WebhookConfig,
    NotificationConfig,
    CycleConfig,
    LoggingConfig,
    SystemConfig,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
    apply_env_overrides,
)
from domain_watch.models import (
    WatchedDomain,
    CheckRecord,
    Profile,
    UserPreference,
    ProbeResult,
    DomainCheckResult,
    CycleReport,
)
from domain_watch.store import (
    Order,
    Store,
    MemoryStore,
    JsonFileStore,
)
from domain_watch.rest_store import RestStore
from domain_watch.identity import (
    Principal,
    IdentityProvider,
    StaticIdentityProvider,
    EnvIdentityProvider,
)
from domain_watch.profiles import ProfileRepository
from domain_watch.watchlist import DomainRepository
from domain_watch.history import CheckHistory
from domain_watch.selector import DomainSelector
from domain_watch.prober import (
    AvailabilityProber,
    HttpAvailabilityProber,
    RDAPAvailabilityProber,
    probe_safely,
)
from domain_watch.audit_logger import (
    AuditLogger,
    LogEntry,
)
from domain_watch.notifications import (
    NotificationMessage,
    NotificationDispatcher,
    EmailDispatcher,
    WebhookDispatcher,
    LogDispatcher,
    NotificationTrigger,
)
from domain_watch.i18n import (
    get_message,
    get_missing_translations,
    TRANSLATIONS,
    SUPPORTED_LANGUAGES,
    DEFAULT_LANGUAGE,
)
from domain_watch.orchestrator import (
    CheckOrchestrator,
    CycleBudget,
)
from domain_watch.cli import (
    main as cli_main,
    create_parser,
)

__all__ = [
    # Exceptions
    "DomainWatchError",
    "ValidationError",
    "DuplicateWatchError",
    "StoreUnavailable",
    "ProbeFailure",
    "PersistenceFailure",
    "ConflictError",
    "TamperingError",
    "NotificationDispatchFailure",
    # Enums
    "DomainStatus",
    "LogLevel",
    "ProbeErrorCode",
    "DomainValidationErrorCode",
    # Domain Validator
    "DomainValidator",
    "DomainValidationResult",
    "DomainValidationError",
    "normalize_domain",
    # Configuration
    "ProberConfig",
    "StoreConfig",
    "RetryConfig",
    "EmailConfig",
    "WebhookConfig",
    "NotificationConfig",
    "CycleConfig",
    "LoggingConfig",
    "SystemConfig",
    "create_default_config",
    "load_config_from_file",
    "save_config_to_file",
    "apply_env_overrides",
    # Models
    "WatchedDomain",
    "CheckRecord",
    "Profile",
    "UserPreference",
    "ProbeResult",
    "DomainCheckResult",
    "CycleReport",
    # Store
    "Order",
    "Store",
    "MemoryStore",
    "JsonFileStore",
    "RestStore",
    # Identity and repositories
    "Principal",
    "IdentityProvider",
    "StaticIdentityProvider",
    "EnvIdentityProvider",
    "ProfileRepository",
    "DomainRepository",
    "CheckHistory",
    "DomainSelector",
    # Prober
    "AvailabilityProber",
    "HttpAvailabilityProber",
    "RDAPAvailabilityProber",
    "probe_safely",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    # Notifications
    "NotificationMessage",
    "NotificationDispatcher",
    "EmailDispatcher",
    "WebhookDispatcher",
    "LogDispatcher",
    "NotificationTrigger",
    # I18n
    "get_message",
    "get_missing_translations",
    "TRANSLATIONS",
    "SUPPORTED_LANGUAGES",
    "DEFAULT_LANGUAGE",
    # Orchestrator
    "CheckOrchestrator",
    "CycleBudget",
    # CLI
    "cli_main",
    "create_parser",
]
