"""
Command-line interface for the domain watch system.

Commands:
- check: run one check cycle (the scheduled job, or a single domain)
- watch: add, list, remove and update watched domains
- history: show the check history of a watched domain
- config: configuration management
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .audit_logger import AuditLogger
from .config import (
    DEFAULT_CONFIG_PATH,
    SystemConfig,
    apply_env_overrides,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
)
from .domain_validator import normalize_domain
from .exceptions import DomainWatchError, StoreUnavailable, ValidationError
from .history import CheckHistory
from .i18n import get_message
from .identity import EnvIdentityProvider, IdentityProvider, Principal, StaticIdentityProvider
from .notifications import (
    EmailDispatcher,
    LogDispatcher,
    NotificationDispatcher,
    NotificationTrigger,
    WebhookDispatcher,
)
from .orchestrator import CheckOrchestrator, CycleBudget
from .profiles import ProfileRepository
from .prober import AvailabilityProber, HttpAvailabilityProber, RDAPAvailabilityProber
from .rest_store import RestStore
from .store import JsonFileStore, MemoryStore, Store
from .watchlist import DomainRepository


EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID = 2


def create_store(config: SystemConfig) -> Store:
    """
    Create the store backend named in the configuration.

    Raises:
        ValidationError: If the backend is unknown or incompletely configured
        PersistenceFailure: If the JSON state file cannot be loaded
    """
    kind = config.store.kind
    if kind == "memory":
        return MemoryStore()
    if kind == "json":
        return JsonFileStore(
            config.store.state_file_path, config.store.hmac_secret
        )
    if kind == "rest":
        if not config.store.rest_url or not config.store.service_key:
            raise ValidationError(
                code="invalid_config",
                message="The rest store needs store.rest_url and store.service_key",
            )
        return RestStore(
            config.store.rest_url,
            config.store.service_key,
            timeout=config.store.timeout_seconds,
        )
    raise ValidationError(
        code="invalid_config", message=f"Unknown store kind: {kind!r}"
    )


def create_prober(config: SystemConfig) -> AvailabilityProber:
    """Create the availability prober named in the configuration."""
    prober_config = config.prober
    if prober_config.kind == "http":
        return HttpAvailabilityProber(
            prober_config.endpoint,
            timeout=prober_config.timeout_seconds,
            headers=prober_config.headers,
        )
    if prober_config.kind == "rdap":
        return RDAPAvailabilityProber(
            prober_config.endpoint,
            timeout=prober_config.timeout_seconds,
            headers=prober_config.headers,
        )
    raise ValidationError(
        code="invalid_config", message=f"Unknown prober kind: {prober_config.kind!r}"
    )


def create_dispatcher(
    config: SystemConfig, logger: Optional[AuditLogger] = None
) -> NotificationDispatcher:
    """Email if configured, else webhook, else the audit log."""
    notifications = config.notifications
    if notifications.email:
        return EmailDispatcher(notifications.email)
    if notifications.webhook:
        return WebhookDispatcher(notifications.webhook)
    return LogDispatcher(logger)


def create_orchestrator(
    config: SystemConfig,
    store: Store,
    logger: Optional[AuditLogger] = None,
    prober: Optional[AvailabilityProber] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> CheckOrchestrator:
    """Wire an orchestrator and its notification trigger from configuration."""
    trigger = NotificationTrigger(
        profiles=ProfileRepository(store),
        dispatcher=dispatcher or create_dispatcher(config, logger),
        retry_config=config.retry,
        logger=logger,
        language=config.language,
        notify_on_first_check=config.notifications.notify_on_first_check,
    )
    budget = CycleBudget(
        max_seconds=config.cycle.max_seconds,
        max_checks=config.cycle.max_checks,
    )
    return CheckOrchestrator(
        store=store,
        prober=prober or create_prober(config),
        trigger=trigger,
        logger=logger,
        probe_timeout=config.prober.timeout_seconds,
        max_concurrency=config.cycle.max_concurrency,
        default_limit=config.cycle.default_limit,
        budget=None if budget.unlimited else budget,
    )


def load_config(args: argparse.Namespace) -> SystemConfig:
    """Load the config file (if any), apply env overrides and CLI flags."""
    config = None
    if getattr(args, "config", None):
        config = load_config_from_file(Path(args.config))
        if config is None:
            raise ValidationError(
                code="invalid_config",
                message=f"Could not load config from {args.config}",
            )
    elif DEFAULT_CONFIG_PATH.exists():
        config = load_config_from_file(DEFAULT_CONFIG_PATH)

    config = apply_env_overrides(config or create_default_config())
    if getattr(args, "language", None):
        config.language = args.language
    if getattr(args, "verbose", False):
        config.logging.level = "debug"
    return config


def identity_from_args(args: argparse.Namespace) -> IdentityProvider:
    if getattr(args, "user_id", None):
        return StaticIdentityProvider(Principal(id=args.user_id, email=args.email or ""))
    return EnvIdentityProvider()


async def _close(store: Store) -> None:
    close = getattr(store, "close", None)
    if close is not None:
        await close()


async def run_check(args: argparse.Namespace, config: SystemConfig) -> int:
    if args.user_id and not args.domain:
        raise ValidationError(
            code="invalid_arguments",
            message="--user-id only applies to a single-domain check; pass --domain as well",
            details={"user_id": args.user_id},
        )
    logger = AuditLogger.from_config(config.logging)
    store = create_store(config)
    budget = None
    if args.max_seconds is not None or args.max_checks is not None:
        budget = CycleBudget(max_seconds=args.max_seconds, max_checks=args.max_checks)

    try:
        async with create_orchestrator(config, store, logger) as orchestrator:
            report = await orchestrator.check_domains(
                domain=args.domain,
                limit=args.limit,
                user_id=args.user_id,
                budget=budget,
            )
    finally:
        await _close(store)

    output = json.dumps(report.to_dict(), indent=2, ensure_ascii=False)
    if args.output:
        Path(args.output).write_text(output + "\n", encoding="utf-8")
    else:
        print(output)
    if not report.results:
        print(get_message("cli.no_domains", config.language), file=sys.stderr)
        return EXIT_OK
    print(
        get_message(
            "cli.cycle_summary", config.language,
            checked=report.checked, failed=len(report.failed),
        ),
        file=sys.stderr,
    )
    return EXIT_OK


async def run_watch(args: argparse.Namespace, config: SystemConfig) -> int:
    language = config.language
    principal = identity_from_args(args).current_principal()
    store = create_store(config)
    domains = DomainRepository(store)

    try:
        await ProfileRepository(store).ensure_profile(principal)

        if args.action == "add":
            watched = await domains.watch(
                principal,
                args.domain,
                notes=args.notes,
                notify_if_available=not args.no_notify,
            )
            print(get_message("cli.watch_added", language, domain=watched.domain, id=watched.id))
            return EXIT_OK

        if args.action == "list":
            watched_list = await domains.list_for_user(principal.id)
            if not watched_list:
                print(get_message("cli.watchlist_empty", language))
            for watched in watched_list:
                status = get_message(f"status.{watched.status.value}", language)
                checked = watched.last_checked or get_message("cli.never_checked", language)
                bell = "" if watched.notify_if_available else " (muted)"
                notes = f"  # {watched.notes}" if watched.notes else ""
                print(f"{watched.id:>5}  {watched.domain:<40} {status:<12} {checked}{bell}{notes}")
            return EXIT_OK

        if args.action == "remove":
            changed = await domains.remove(principal.id, args.id)
            key = "cli.watch_removed"
        elif args.action == "notify":
            changed = await domains.set_notify(principal.id, args.id, args.state == "on")
            key = "cli.watch_updated"
        else:
            changed = await domains.set_notes(principal.id, args.id, args.text)
            key = "cli.watch_updated"

        if not changed:
            print(get_message("cli.watch_not_found", language, id=args.id), file=sys.stderr)
            return EXIT_ERROR
        print(get_message(key, language, id=args.id))
        return EXIT_OK
    finally:
        await _close(store)


async def run_history(args: argparse.Namespace, config: SystemConfig) -> int:
    language = config.language
    principal = identity_from_args(args).current_principal()
    store = create_store(config)

    try:
        watched = await DomainRepository(store).find(
            principal.id, normalize_domain(args.domain)
        )
        if watched is None:
            print(get_message("cli.history_empty", language, domain=args.domain))
            return EXIT_ERROR

        records = await CheckHistory(store).recent(
            watched.id, limit=args.limit, offset=args.offset
        )
        if not records:
            print(get_message("cli.history_empty", language, domain=watched.domain))
        for record in records:
            status = get_message(f"status.{record.status.value}", language)
            print(f"{record.check_date}  {status}")
        return EXIT_OK
    finally:
        await _close(store)


def cmd_check(args: argparse.Namespace) -> int:
    """Handle the 'check' command."""
    return asyncio.run(run_check(args, load_config(args)))


def cmd_watch(args: argparse.Namespace) -> int:
    """Handle the 'watch' command."""
    return asyncio.run(run_watch(args, load_config(args)))


def cmd_history(args: argparse.Namespace) -> int:
    """Handle the 'history' command."""
    return asyncio.run(run_history(args, load_config(args)))


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.path) if args.path else DEFAULT_CONFIG_PATH

    if args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return EXIT_ERROR
        save_config_to_file(create_default_config(language=args.language or "en"), config_path)
        print(f"Configuration created at: {config_path}")
        return EXIT_OK

    config = load_config_from_file(config_path)
    if config is None:
        print(f"No configuration found at: {config_path}")
        print("Use 'config init' to create a default configuration.")
        return EXIT_ERROR

    if args.action == "show":
        print(f"Configuration from: {config_path}")
        print(f"  Language: {config.language}")
        print(f"  Prober: {config.prober.kind} ({config.prober.endpoint})")
        print(f"  Store: {config.store.kind}")
        print(f"  Batch limit: {config.cycle.default_limit}")
        print(f"  Max concurrency: {config.cycle.max_concurrency}")
        print(f"  Log level: {config.logging.level}")
        return EXIT_OK

    print(f"Configuration at {config_path} is valid.")
    return EXIT_OK


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", "-c", help="Path to configuration file")
    common.add_argument(
        "--language", "-l", choices=["de", "en"], help="Output language"
    )
    common.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    identity = argparse.ArgumentParser(add_help=False)
    identity.add_argument("--user-id", help="Acting user id (default: DOMAIN_WATCH_USER_ID)")
    identity.add_argument("--email", help="Acting user email")

    parser = argparse.ArgumentParser(
        prog="domain-watch",
        description="Watch domain names and get notified when they become available",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # 'check' command
    check_parser = subparsers.add_parser(
        "check", parents=[common], help="Run one check cycle"
    )
    check_parser.add_argument("--domain", "-d", help="Check only this domain")
    check_parser.add_argument(
        "--limit", "-n", type=int, help="Batch size (default from config, 50)"
    )
    check_parser.add_argument(
        "--user-id", help="Restrict a single-domain check to this owner (requires --domain)"
    )
    check_parser.add_argument(
        "--max-seconds", type=float, help="Stop starting new probes after this many seconds"
    )
    check_parser.add_argument(
        "--max-checks", type=int, help="Stop starting new probes after this many checks"
    )
    check_parser.add_argument("--output", "-o", help="Write the JSON result to a file")
    check_parser.set_defaults(func=cmd_check)

    # 'watch' command
    watch_parser = subparsers.add_parser("watch", help="Manage your watchlist")
    watch_actions = watch_parser.add_subparsers(dest="action", required=True)

    add_parser = watch_actions.add_parser(
        "add", parents=[common, identity], help="Watch a domain"
    )
    add_parser.add_argument("domain", help="Domain to watch (e.g., example.com)")
    add_parser.add_argument("--notes", help="Free-text notes")
    add_parser.add_argument(
        "--no-notify", action="store_true", help="Do not notify when available"
    )

    watch_actions.add_parser(
        "list", parents=[common, identity], help="List watched domains"
    )

    remove_parser = watch_actions.add_parser(
        "remove", parents=[common, identity], help="Stop watching a domain"
    )
    remove_parser.add_argument("id", type=int, help="Id of the watched domain")

    notify_parser = watch_actions.add_parser(
        "notify", parents=[common, identity], help="Turn notifications on or off"
    )
    notify_parser.add_argument("id", type=int, help="Id of the watched domain")
    notify_parser.add_argument("state", choices=["on", "off"])

    notes_parser = watch_actions.add_parser(
        "notes", parents=[common, identity], help="Replace the notes of a domain"
    )
    notes_parser.add_argument("id", type=int, help="Id of the watched domain")
    notes_parser.add_argument("text", nargs="?", default=None, help="New notes (omit to clear)")
    watch_parser.set_defaults(func=cmd_watch)

    # 'history' command
    history_parser = subparsers.add_parser(
        "history", parents=[common, identity], help="Show check history of a domain"
    )
    history_parser.add_argument("domain", help="Watched domain")
    history_parser.add_argument("--limit", "-n", type=int, default=20)
    history_parser.add_argument("--offset", type=int, default=0)
    history_parser.set_defaults(func=cmd_history)

    # 'config' command
    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_parser.add_argument("action", choices=["show", "init", "validate"])
    config_parser.add_argument("--path", "-p", help="Path to configuration file")
    config_parser.add_argument(
        "--force", "-f", action="store_true", help="Overwrite existing configuration"
    )
    config_parser.add_argument(
        "--language", "-l", choices=["de", "en"], help="Language for new configuration"
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Returns:
        Exit code: 0 on success, 1 on runtime errors, 2 on invalid input
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    language = getattr(args, "language", None)
    try:
        return args.func(args)
    except ValidationError as e:
        print(get_message("cli.error", language, message=e.message), file=sys.stderr)
        return EXIT_INVALID
    except StoreUnavailable as e:
        print(get_message("cli.error", language, message=e.message), file=sys.stderr)
        return EXIT_ERROR
    except DomainWatchError as e:
        print(get_message("cli.error", language, message=e.message), file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
