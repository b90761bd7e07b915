"""
Profile access for the domain watch core.

The core only reads notification preferences; profile rows are created by
an idempotent upsert keyed by user id so concurrent first logins cannot
race each other into duplicate rows.
"""

from typing import Optional

from .identity import Principal
from .models import PROFILES_TABLE, Profile, UserPreference, utc_now
from .store import Store


class ProfileRepository:
    """Reads and upserts rows of the ``profiles`` table."""

    def __init__(self, store: Store) -> None:
        self._store = store

    async def get(self, user_id: str) -> Optional[Profile]:
        rows = await self._store.select(PROFILES_TABLE, {"id": user_id}, limit=1)
        return Profile.from_row(rows[0]) if rows else None

    async def get_preference(self, user_id: str) -> Optional[UserPreference]:
        """Notification preference of a user, or None without a profile."""
        profile = await self.get(user_id)
        return profile.preference if profile else None

    async def ensure_profile(
        self, principal: Principal, full_name: Optional[str] = None
    ) -> Profile:
        """
        Create the profile of ``principal`` if missing.

        Existing preferences are preserved; only the email (when known) and
        the name (when given) are refreshed.
        """
        now = utc_now()
        row = {"id": principal.id, "updated_at": now}
        if principal.email:
            row["email"] = principal.email
        if full_name is not None:
            row["full_name"] = full_name

        existing = await self.get(principal.id)
        if existing is None:
            row.setdefault("email", principal.email)
            row.setdefault("full_name", None)
            row["notifications_enabled"] = True
            row["created_at"] = now
        return Profile.from_row(await self._store.upsert(PROFILES_TABLE, row, key="id"))

    async def set_notifications_enabled(self, user_id: str, enabled: bool) -> bool:
        count = await self._store.update(
            PROFILES_TABLE,
            {"id": user_id},
            {"notifications_enabled": enabled, "updated_at": utc_now()},
        )
        return count > 0
