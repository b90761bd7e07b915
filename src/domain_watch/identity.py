"""
Identity providers.

The core trusts the id of the current principal for scoping every
interactive read and write.
"""

import os
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from .exceptions import ValidationError


@dataclass(frozen=True)
class Principal:
    """The authenticated user on whose behalf an operation runs."""

    id: str
    email: str


@runtime_checkable
class IdentityProvider(Protocol):
    """Exposes the currently authenticated principal."""

    def current_principal(self) -> Principal:
        ...


class StaticIdentityProvider:
    """Identity provider returning a fixed principal."""

    def __init__(self, principal: Principal) -> None:
        self._principal = principal

    def current_principal(self) -> Principal:
        return self._principal


class EnvIdentityProvider:
    """Reads the principal from DOMAIN_WATCH_USER_ID / DOMAIN_WATCH_USER_EMAIL."""

    def __init__(self, environ: Optional[dict] = None) -> None:
        self._environ = environ if environ is not None else os.environ

    def current_principal(self) -> Principal:
        user_id = (self._environ.get("DOMAIN_WATCH_USER_ID") or "").strip()
        email = (self._environ.get("DOMAIN_WATCH_USER_EMAIL") or "").strip()
        if not user_id:
            raise ValidationError(
                code="missing_principal",
                message="No user id given (set DOMAIN_WATCH_USER_ID or pass --user-id)",
            )
        return Principal(id=user_id, email=email)
