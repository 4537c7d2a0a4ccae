"""
NotificationEmitter: single entry point for every side-effecting notice.

Wraps the in-app, email and operations channels behind one interface used
by the resolution, response and review services. Delivery is best-effort:
the emitter never raises; every channel failure is logged and reported
through the boolean return value so callers can record it.

Channel selection honours the recipient's notification preferences
(category × channel). System notices are always delivered in-app.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

from domain.models import (
    Notification,
    NotificationChannel,
    NotificationKind,
    NotificationPreferences,
)
from ports.notification_channels import (
    EmailSenderPort,
    InAppNotificationPort,
    OperationsChannelPort,
)
from ports.user_directory import UserDirectoryPort
from services.notification_templates import category_for, render_email
from shared_utils.constants import Defaults, LogScope
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.NOTIFICATIONS)


class NotificationEmitter:
    """Fan-out to in-app / email / operations channels, never raising."""

    def __init__(
        self,
        *,
        in_app: InAppNotificationPort,
        email_sender: EmailSenderPort,
        operations: OperationsChannelPort,
        user_directory: UserDirectoryPort,
        app_url: str,
    ) -> None:
        self._in_app = in_app
        self._email = email_sender
        self._operations = operations
        self._directory = user_directory
        self._app_url = app_url

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def notify(
        self,
        user_id: str,
        kind: NotificationKind,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        email_template: Optional[str] = None,
        email_data: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Deliver one notice to one user.

        Returns:
            False if any attempted channel failed, True otherwise
            (including when a channel was skipped by preference).
        """
        category = category_for(kind)
        preferences = self._preferences_for(user_id)
        delivered = True

        if preferences.allows(category, NotificationChannel.INAPP):
            try:
                self._in_app.create_notification(
                    Notification(
                        notification_id=str(uuid.uuid4()),
                        user_id=user_id,
                        kind=kind,
                        title=title,
                        message=message,
                        data=data or {},
                    )
                )
                logger.info("notification_created", user_id=user_id, kind=kind.value)
            except Exception as exc:
                delivered = False
                logger.error(
                    "notification_delivery_failed",
                    channel=NotificationChannel.INAPP.value,
                    user_id=user_id,
                    kind=kind.value,
                    error=str(exc),
                )
        else:
            logger.debug("notification_skipped_by_preference", user_id=user_id, kind=kind.value)

        if email_template:
            if preferences.allows(category, NotificationChannel.EMAIL):
                delivered = self._send_email(user_id, kind, email_template, email_data or {}) and delivered
            else:
                logger.debug("email_skipped_by_preference", user_id=user_id, kind=kind.value)

        return delivered

    def escalate(
        self,
        kind: NotificationKind,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Publish a review-needed notice to the operations channel."""
        try:
            self._operations.publish(kind.value, title, message, data or {})
            logger.info("escalation_published", kind=kind.value)
            return True
        except Exception as exc:
            logger.error(
                "notification_delivery_failed",
                channel="operations",
                kind=kind.value,
                error=str(exc),
            )
            return False

    def recipient_name(self, user_id: str, full: bool = False) -> str:
        """First (or full) name for greetings; falls back to a generic name."""
        try:
            account = self._directory.get_account(user_id)
        except Exception as exc:
            logger.warning("recipient_lookup_failed", user_id=user_id, error=str(exc))
            return Defaults.FALLBACK_RECIPIENT_NAME
        if account is None:
            return Defaults.FALLBACK_RECIPIENT_NAME
        name = account.full_name if full else (account.first_name or "")
        return name or Defaults.FALLBACK_RECIPIENT_NAME

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _preferences_for(self, user_id: str) -> NotificationPreferences:
        try:
            return self._directory.get_notification_preferences(user_id)
        except Exception as exc:
            logger.warning("preferences_lookup_failed", user_id=user_id, error=str(exc))
            return NotificationPreferences()

    def _send_email(
        self,
        user_id: str,
        kind: NotificationKind,
        template: str,
        email_data: Dict[str, Any],
    ) -> bool:
        try:
            account = self._directory.get_account(user_id)
            if account is None or not account.email:
                logger.info("email_skipped_no_address", user_id=user_id, kind=kind.value)
                return True

            values = {
                "recipientName": account.first_name or Defaults.FALLBACK_RECIPIENT_NAME,
                **email_data,
            }
            subject, body = render_email(template, values, self._app_url)
            self._email.send_email(account.email, subject, body)
            logger.info("email_sent", user_id=user_id, template=template)
            return True
        except Exception as exc:
            logger.error(
                "notification_delivery_failed",
                channel=NotificationChannel.EMAIL.value,
                user_id=user_id,
                kind=kind.value,
                template=template,
                error=str(exc),
            )
            return False
