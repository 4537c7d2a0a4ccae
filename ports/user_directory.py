"""Port interface for account lookups (roles, names, email, preferences)."""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from domain.models import NotificationPreferences, UserAccount


@runtime_checkable
class UserDirectoryPort(Protocol):
    """Read-only view of user accounts."""

    def get_account(self, user_id: str) -> Optional[UserAccount]:
        """Account for *user_id*, or None if unknown."""
        ...

    def get_notification_preferences(self, user_id: str) -> NotificationPreferences:
        """Stored preferences merged over defaults."""
        ...
