"""
Port interfaces for notification delivery channels.

The engine never calls these directly; it goes through
services.notification_emitter.NotificationEmitter.
"""

from __future__ import annotations

from typing import Any, Dict, Protocol, runtime_checkable

from domain.models import Notification


@runtime_checkable
class InAppNotificationPort(Protocol):
    """Persists notifications shown inside the app."""

    def create_notification(self, notification: Notification) -> None:
        ...


@runtime_checkable
class EmailSenderPort(Protocol):
    """Sends a rendered email."""

    def send_email(self, to_address: str, subject: str, body: str) -> None:
        ...


@runtime_checkable
class OperationsChannelPort(Protocol):
    """Internal escalation channel watched by operations / admins."""

    def publish(self, kind: str, title: str, message: str, data: Dict[str, Any]) -> None:
        ...
