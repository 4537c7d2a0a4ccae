"""
In-memory user directory and identity adapters.

Used for local development (``STORAGE_BACKEND=memory``) and tests.
NOT for production use.
"""

from __future__ import annotations

import threading
from typing import Dict, Optional

from domain.models import NotificationPreferences, UserAccount
from ports.identity import IdentityPort  # noqa: F401 (runtime_checkable)
from ports.user_directory import UserDirectoryPort  # noqa: F401 (runtime_checkable)


class InMemoryUserDirectoryAdapter:
    """Dict of accounts plus optional per-user preferences."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._accounts: Dict[str, UserAccount] = {}
        self._preferences: Dict[str, NotificationPreferences] = {}

    def add_account(
        self,
        account: UserAccount,
        preferences: Optional[NotificationPreferences] = None,
    ) -> None:
        with self._lock:
            self._accounts[account.user_id] = account
            if preferences is not None:
                self._preferences[account.user_id] = preferences

    def get_account(self, user_id: str) -> Optional[UserAccount]:
        with self._lock:
            return self._accounts.get(user_id)

    def get_notification_preferences(self, user_id: str) -> NotificationPreferences:
        with self._lock:
            return self._preferences.get(user_id) or NotificationPreferences()


class StaticTokenIdentityAdapter:
    """Token → user id map. Any unknown token is rejected."""

    def __init__(self, tokens: Optional[Dict[str, str]] = None) -> None:
        self._tokens: Dict[str, str] = dict(tokens or {})

    def register(self, token: str, user_id: str) -> None:
        self._tokens[token] = user_id

    def authenticate(self, token: str) -> Optional[str]:
        return self._tokens.get(token)
