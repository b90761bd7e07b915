"""
Message catalogue for user-facing text in German (de) and English (en).
"""

from typing import Optional


SUPPORTED_LANGUAGES = frozenset({"de", "en"})
DEFAULT_LANGUAGE = "en"


# Structure: {message_key: {language_code: message}}
TRANSLATIONS: dict[str, dict[str, str]] = {
    "status.pending": {
        "de": "Ausstehend",
        "en": "Pending",
    },
    "status.available": {
        "de": "Verfügbar",
        "en": "Available",
    },
    "status.taken": {
        "de": "Belegt",
        "en": "Taken",
    },
    "status.unknown": {
        "de": "Unbekannt",
        "en": "Unknown",
    },

    "notification.subject_available": {
        "de": "Domain {domain} ist verfügbar!",
        "en": "Domain {domain} is available!",
    },
    "notification.body_available": {
        "de": (
            "Gute Nachrichten: Die Domain {domain} auf Ihrer Beobachtungsliste "
            "ist jetzt verfügbar.\n\nGeprüft: {time}\n"
        ),
        "en": (
            "Good news: the domain {domain} on your watchlist is now "
            "available.\n\nChecked: {time}\n"
        ),
    },

    "cli.no_domains": {
        "de": "Keine Domains zu prüfen",
        "en": "No domains to check",
    },
    "cli.cycle_summary": {
        "de": "{checked} Domain(s) geprüft, {failed} fehlgeschlagen",
        "en": "Checked {checked} domain(s), {failed} failed",
    },
    "cli.watch_added": {
        "de": "{domain} wird jetzt beobachtet (ID {id})",
        "en": "Now watching {domain} (id {id})",
    },
    "cli.watch_removed": {
        "de": "Domain mit ID {id} entfernt",
        "en": "Removed domain with id {id}",
    },
    "cli.watch_updated": {
        "de": "Domain mit ID {id} aktualisiert",
        "en": "Updated domain with id {id}",
    },
    "cli.watch_not_found": {
        "de": "Keine Domain mit ID {id} auf Ihrer Liste",
        "en": "No domain with id {id} on your watchlist",
    },
    "cli.watchlist_empty": {
        "de": "Ihre Beobachtungsliste ist leer",
        "en": "Your watchlist is empty",
    },
    "cli.never_checked": {
        "de": "nie geprüft",
        "en": "never checked",
    },
    "cli.history_empty": {
        "de": "Noch keine Prüfungen für {domain}",
        "en": "No checks recorded for {domain} yet",
    },
    "cli.error": {
        "de": "Fehler: {message}",
        "en": "Error: {message}",
    },
}


def get_message(key: str, language: Optional[str] = None, **kwargs) -> str:
    """
    Look up a message and format it.

    Unknown languages fall back to the default language; unknown keys are
    returned unchanged. Formatting errors leave the template unformatted.
    """
    translations = TRANSLATIONS.get(key)
    if translations is None:
        return key

    message = translations.get(language or DEFAULT_LANGUAGE)
    if message is None:
        message = translations.get(DEFAULT_LANGUAGE, key)

    if kwargs:
        try:
            message = message.format(**kwargs)
        except (KeyError, IndexError):
            pass
    return message


def get_missing_translations(language: str) -> set[str]:
    """Message keys without a translation for ``language``."""
    return {key for key, t in TRANSLATIONS.items() if language not in t}
