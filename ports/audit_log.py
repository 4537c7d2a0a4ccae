"""Port interface for the admin audit log."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from domain.models import AdminAuditEntry


@runtime_checkable
class AuditLogPort(Protocol):
    """Append-only record of privileged actions."""

    def record(self, entry: AdminAuditEntry) -> None:
        ...
