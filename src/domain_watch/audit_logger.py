"""
Audit Logger module for the domain watch system.

Provides structured logging with JSON and/or human-readable text output,
minimum-level filtering, masking of secrets and optional HMAC signing of
every entry.
"""

import hashlib
import hmac
import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, TextIO

from .config import LoggingConfig
from .enums import LogLevel


@dataclass
class LogEntry:
    """A single structured log entry."""

    timestamp: str
    level: LogLevel
    component: str
    message: str
    data: dict = field(default_factory=dict)
    signature: Optional[str] = None

    def signable(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "component": self.component,
            "message": self.message,
            "data": self.data,
        }


class AuditLogger:
    """
    Structured logger used by every component.

    Entries below the configured minimum level are dropped before they are
    formatted. Values under sensitive keys are replaced by a mask, at any
    nesting depth. In audit mode each entry carries an HMAC-SHA256 signature
    over its canonical JSON form.
    """

    SENSITIVE_KEYS = frozenset({
        "token", "secret", "password", "api_key", "apikey",
        "service_key", "authorization", "credential", "private_key",
    })

    MASK_VALUE = "***MASKED***"

    OUTPUT_FORMATS = ("json", "text", "both")

    def __init__(
        self,
        output_format: str = "text",
        output_stream: Optional[TextIO] = None,
        min_level: LogLevel = LogLevel.DEBUG,
    ):
        if output_format not in self.OUTPUT_FORMATS:
            raise ValueError(f"Invalid output_format: {output_format}")

        self._output_format = output_format
        self._output_stream = output_stream
        self._min_level = min_level
        self._signing_key: Optional[bytes] = None
        self._entries: list[LogEntry] = []

    @classmethod
    def from_config(
        cls, config: LoggingConfig, output_stream: Optional[TextIO] = None
    ) -> "AuditLogger":
        """Build a logger from the logging section of the configuration."""
        try:
            min_level = LogLevel(config.level.lower())
        except ValueError:
            min_level = LogLevel.INFO

        logger = cls(
            output_format=config.output_format,
            output_stream=output_stream,
            min_level=min_level,
        )
        if config.audit_mode and config.audit_signing_key:
            logger.enable_audit_mode(config.audit_signing_key)
        return logger

    @property
    def output_format(self) -> str:
        return self._output_format

    @property
    def audit_mode(self) -> bool:
        return self._signing_key is not None

    @property
    def entries(self) -> list[LogEntry]:
        """Entries logged so far (copy)."""
        return self._entries.copy()

    def enable_audit_mode(self, signing_key: str) -> None:
        if not signing_key:
            raise ValueError("Signing key cannot be empty")
        self._signing_key = signing_key.encode("utf-8")

    def disable_audit_mode(self) -> None:
        self._signing_key = None

    def log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Log an entry in the configured format(s).

        Returns:
            The created LogEntry, or None if it was below the minimum level
        """
        if level.rank < self._min_level.rank:
            return None

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            component=component,
            message=message,
            data=self.mask_sensitive_data(data or {}),
        )
        if self._signing_key:
            entry.signature = self._sign(entry)

        self._entries.append(entry)
        self._write(entry)
        return entry

    def debug(self, component: str, message: str, data: Optional[dict] = None):
        return self.log(LogLevel.DEBUG, component, message, data)

    def info(self, component: str, message: str, data: Optional[dict] = None):
        return self.log(LogLevel.INFO, component, message, data)

    def warn(self, component: str, message: str, data: Optional[dict] = None):
        return self.log(LogLevel.WARN, component, message, data)

    def log_error(
        self,
        component: str,
        message: str,
        error: Optional[BaseException] = None,
        additional_data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Log an error with its exception context.

        Structured errors contribute their code and details.
        """
        data = dict(additional_data or {})
        if error is not None:
            data["error_type"] = type(error).__name__
            data["error_message"] = str(error)
            code = getattr(error, "code", None)
            if code is not None:
                data["error_code"] = code
            details = getattr(error, "details", None)
            if details:
                data["error_details"] = details
        return self.log(LogLevel.ERROR, component, message, data)

    def mask_sensitive_data(self, data):
        """Return a copy of ``data`` with sensitive values masked."""
        if isinstance(data, list):
            return [self.mask_sensitive_data(item) for item in data]
        if not isinstance(data, dict):
            return data

        masked = {}
        for key, value in data.items():
            key_lower = str(key).lower()
            if any(sensitive in key_lower for sensitive in self.SENSITIVE_KEYS):
                masked[key] = self.MASK_VALUE
            else:
                masked[key] = self.mask_sensitive_data(value)
        return masked

    def verify_signature(self, entry: LogEntry) -> bool:
        if not entry.signature or not self._signing_key:
            return False
        return hmac.compare_digest(entry.signature, self._sign(entry))

    def format_json(self, entry: LogEntry) -> str:
        obj = entry.signable()
        if entry.signature:
            obj["signature"] = entry.signature
        return json.dumps(obj, ensure_ascii=False, default=str)

    def format_text(self, entry: LogEntry) -> str:
        # [TIMESTAMP] LEVEL [COMPONENT] MESSAGE {data}
        parts = [
            f"[{entry.timestamp}]",
            entry.level.value.upper(),
            f"[{entry.component}]",
            entry.message,
        ]
        if entry.data:
            parts.append(json.dumps(entry.data, ensure_ascii=False, default=str))
        text = " ".join(parts)
        if entry.signature:
            text += f" [sig:{entry.signature[:16]}...]"
        return text

    def clear_entries(self) -> None:
        self._entries.clear()

    def _sign(self, entry: LogEntry) -> str:
        content = json.dumps(
            entry.signable(), sort_keys=True, ensure_ascii=False, default=str
        )
        return hmac.new(
            self._signing_key, content.encode("utf-8"), hashlib.sha256
        ).hexdigest()

    def _write(self, entry: LogEntry) -> None:
        # Resolved per write so redirected stderr is honoured
        stream = self._output_stream or sys.stderr
        if self._output_format in ("json", "both"):
            stream.write(self.format_json(entry) + "\n")
        if self._output_format in ("text", "both"):
            stream.write(self.format_text(entry) + "\n")
        stream.flush()
