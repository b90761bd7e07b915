"""
Domain validation and normalization module.

Names submitted by users are normalized to a canonical form (lowercase,
no scheme, no leading ``www.``, IDNA-encoded) and checked against DNS label
syntax before they are stored.
"""

import re
from dataclasses import dataclass
from typing import Optional

import idna

from .enums import DomainValidationErrorCode
from .exceptions import ValidationError


SCHEME_PREFIX = re.compile(r"^https?://", re.IGNORECASE)

# Characters that can never appear in a host name, checked before IDNA
FORBIDDEN_CHARS_PATTERN = re.compile(
    r'[\x00-\x1f\x7f\s!@#$%^&*()+=\[\]{}|\\:;"\'<>,?`~]'
)

# One or more labels followed by a final label; each label is 1-63
# characters of [a-z0-9] with hyphens only between them
DOMAIN_PATTERN = re.compile(
    r"^(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+"
    r"[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$"
)

MAX_DOMAIN_LENGTH = 253


@dataclass
class DomainValidationError:
    """Structured error information for domain validation failures."""

    code: DomainValidationErrorCode
    message: str
    details: dict


@dataclass
class DomainValidationResult:
    """Result of domain validation operation."""

    valid: bool
    canonical_domain: Optional[str]
    error: Optional[DomainValidationError]

    def raise_for_error(self) -> str:
        """Return the canonical domain or raise ValidationError."""
        if self.valid and self.canonical_domain:
            return self.canonical_domain
        assert self.error is not None
        raise ValidationError(
            code=self.error.code.value,
            message=self.error.message,
            details=self.error.details,
        )


class DomainValidator:
    """
    Validates and normalizes domain names.

    Handles:
    - Lowercasing and whitespace trimming
    - Removal of a leading http:// or https:// scheme and any path
    - Removal of a leading www. label
    - IDNA encoding for international characters
    - Label syntax validation
    """

    def validate(self, raw_domain: str) -> DomainValidationResult:
        """
        Validate and normalize a domain string.

        Args:
            raw_domain: The raw domain string to validate

        Returns:
            DomainValidationResult with validation status and canonical form or error
        """
        if not raw_domain or not raw_domain.strip():
            return self._failure(
                DomainValidationErrorCode.EMPTY_INPUT,
                "Domain input is empty",
                {"raw_input": raw_domain},
            )

        host = self.strip_decorations(raw_domain)

        forbidden = FORBIDDEN_CHARS_PATTERN.findall(host)
        if forbidden:
            return self._failure(
                DomainValidationErrorCode.FORBIDDEN_CHARS,
                "Domain contains forbidden characters",
                {"raw_input": raw_domain, "forbidden_chars": forbidden},
            )

        try:
            canonical = self.normalize_to_canonical(host)
        except ValidationError as e:
            return self._failure(
                DomainValidationErrorCode.IDNA_ERROR, e.message, e.details
            )

        if len(canonical) > MAX_DOMAIN_LENGTH or not DOMAIN_PATTERN.match(canonical):
            return self._failure(
                DomainValidationErrorCode.INVALID_SYNTAX,
                f"'{raw_domain.strip()}' is not a valid domain name",
                {"raw_input": raw_domain, "canonical": canonical},
            )

        return DomainValidationResult(
            valid=True, canonical_domain=canonical, error=None
        )

    def normalize(self, raw_domain: str) -> str:
        """
        Normalize and validate, raising on failure.

        Raises:
            ValidationError: If the name is empty or malformed
        """
        return self.validate(raw_domain).raise_for_error()

    @staticmethod
    def strip_decorations(raw_domain: str) -> str:
        """Lowercase and remove scheme, path and a leading www. label."""
        host = raw_domain.strip().lower()
        host = SCHEME_PREFIX.sub("", host)
        host = host.split("/", 1)[0]
        if host.startswith("www."):
            host = host[len("www."):]
        return host.rstrip(".")

    def normalize_to_canonical(self, host: str) -> str:
        """
        Convert a host to its ASCII form (IDNA for international names).

        Raises:
            ValidationError: If IDNA encoding fails
        """
        if all(ord(c) < 128 for c in host):
            return host
        try:
            return idna.encode(host, uts46=True).decode("ascii")
        except idna.IDNAError as e:
            raise ValidationError(
                code=DomainValidationErrorCode.IDNA_ERROR.value,
                message=f"IDNA encoding failed: {e}",
                details={"domain": host, "idna_error": str(e)},
            ) from e

    @staticmethod
    def _failure(
        code: DomainValidationErrorCode, message: str, details: dict
    ) -> DomainValidationResult:
        return DomainValidationResult(
            valid=False,
            canonical_domain=None,
            error=DomainValidationError(code=code, message=message, details=details),
        )


_default_validator = DomainValidator()


def normalize_domain(raw_domain: str) -> str:
    """Normalize a user-submitted domain name; raises ValidationError."""
    return _default_validator.normalize(raw_domain)
