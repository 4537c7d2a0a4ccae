"""
In-memory notification channels and audit log.

Each adapter records what it was asked to deliver so tests (and local
development) can inspect it. NOT for production use.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, List

from domain.models import AdminAuditEntry, Notification
from ports.audit_log import AuditLogPort  # noqa: F401 (runtime_checkable)
from ports.notification_channels import (  # noqa: F401 (runtime_checkable)
    EmailSenderPort,
    InAppNotificationPort,
    OperationsChannelPort,
)
from shared_utils.logging_utils import ContextualLogger
from shared_utils.constants import LogScope


logger = ContextualLogger(scope=LogScope.ADAPTER)


class InMemoryNotificationStoreAdapter:
    """Keeps in-app notifications in a list."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.notifications: List[Notification] = []

    def create_notification(self, notification: Notification) -> None:
        with self._lock:
            self.notifications.append(notification)

    def for_user(self, user_id: str) -> List[Notification]:
        with self._lock:
            return [n for n in self.notifications if n.user_id == user_id]


class RecordingEmailSenderAdapter:
    """Logs and records emails instead of sending them."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.sent: List[Dict[str, str]] = []

    def send_email(self, to_address: str, subject: str, body: str) -> None:
        with self._lock:
            self.sent.append({"to": to_address, "subject": subject, "body": body})
        logger.info("memory_email_recorded", to=to_address, subject=subject)


class RecordingOperationsChannelAdapter:
    """Logs and records escalations instead of publishing them."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.published: List[Dict[str, Any]] = []

    def publish(self, kind: str, title: str, message: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self.published.append(
                {"kind": kind, "title": title, "message": message, "data": data}
            )
        logger.warning("memory_escalation_recorded", kind=kind, title=title)


class InMemoryAuditLogAdapter:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.entries: List[AdminAuditEntry] = []

    def record(self, entry: AdminAuditEntry) -> None:
        with self._lock:
            self.entries.append(entry)
