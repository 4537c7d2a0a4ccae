"""Port interface for request authentication."""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class IdentityPort(Protocol):
    """Resolves a bearer token to the acting user's id."""

    def authenticate(self, token: str) -> Optional[str]:
        """Return the user id for a valid token, None otherwise."""
        ...
