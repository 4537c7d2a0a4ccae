"""
Dependency injection container for managing application dependencies.
Centralizes adapter/service creation and lifecycle management.

Adapters are chosen by ``STORAGE_BACKEND``: ``memory`` wires the in-memory
adapters (local development), ``dynamodb`` wires the boto3 adapters.
Email and the operations channel fall back to recording adapters when
their SES sender / SNS topic are not configured.
"""

from typing import Dict, Optional
import logging

from shared_utils.config_loader import get_settings
from shared_utils.constants import Environment, LogScope, StorageBackend
from shared_utils.error_handler import ConfigurationError


logger = logging.getLogger(__name__)


def _parse_dev_tokens(raw: str) -> Dict[str, str]:
    """``"token:user,token2:user2"`` → {token: user_id}."""
    tokens: Dict[str, str] = {}
    for pair in raw.split(","):
        token, _, user_id = pair.strip().partition(":")
        if token and user_id:
            tokens[token] = user_id
    return tokens


class DIContainer:
    """Singleton dependency injection container."""

    _instance: Optional['DIContainer'] = None

    # adapter singletons
    _meeting_store: Optional[object] = None
    _credit_ledger: Optional[object] = None
    _user_directory: Optional[object] = None
    _identity: Optional[object] = None
    _notification_store: Optional[object] = None
    _email_sender: Optional[object] = None
    _operations_channel: Optional[object] = None
    _audit_log: Optional[object] = None

    # service singletons
    _emitter: Optional[object] = None
    _match_service: Optional[object] = None
    _response_aggregator: Optional[object] = None
    _resolution_coordinator: Optional[object] = None
    _review_service: Optional[object] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def reset(self):
        """Reset container (useful for testing)."""
        self._meeting_store = None
        self._credit_ledger = None
        self._user_directory = None
        self._identity = None
        self._notification_store = None
        self._email_sender = None
        self._operations_channel = None
        self._audit_log = None
        self._emitter = None
        self._match_service = None
        self._response_aggregator = None
        self._resolution_coordinator = None
        self._review_service = None

    def validate_configuration(self) -> bool:
        """Fail fast on configurations the engine must not run with.

        Raises:
            ConfigurationError: In-memory storage selected for production.
        """
        settings = get_settings()
        if (
            settings.environment == Environment.PRODUCTION.value
            and settings.storage_backend == StorageBackend.MEMORY.value
        ):
            raise ConfigurationError(
                "In-memory storage cannot be used in production",
                {"environment": settings.environment, "storage_backend": settings.storage_backend},
            )
        logger.info(
            "Configuration validated",
            extra={"scope": LogScope.CONFIG, "storage_backend": settings.storage_backend},
        )
        return True

    @staticmethod
    def _use_dynamodb() -> bool:
        return get_settings().storage_backend == StorageBackend.DYNAMODB.value

    # ------------------------------------------------------------------
    # Adapter accessors
    # ------------------------------------------------------------------

    def get_meeting_store(self):
        """Get or create the meeting store adapter (lazy singleton)."""
        if self._meeting_store is None:
            settings = get_settings()
            if self._use_dynamodb():
                from adapters.dynamo_meeting_store import DynamoMeetingStoreAdapter

                self._meeting_store = DynamoMeetingStoreAdapter(
                    meetings_table=settings.dynamodb_meetings_table,
                    responses_table=settings.dynamodb_responses_table,
                    matches_table=settings.dynamodb_matches_table,
                    region=settings.aws_region,
                    endpoint_url=settings.aws_endpoint_url,
                )
                logger.info("Initialized DynamoMeetingStoreAdapter")
            else:
                from adapters.in_memory_meeting_store import InMemoryMeetingStoreAdapter

                self._meeting_store = InMemoryMeetingStoreAdapter()
                logger.info("Initialized InMemoryMeetingStoreAdapter (local dev)")
        return self._meeting_store

    def get_credit_ledger(self):
        """Get or create the credit ledger adapter (lazy singleton)."""
        if self._credit_ledger is None:
            settings = get_settings()
            if self._use_dynamodb():
                from adapters.dynamo_credit_ledger import DynamoCreditLedgerAdapter

                self._credit_ledger = DynamoCreditLedgerAdapter(
                    credits_table=settings.dynamodb_credits_table,
                    transactions_table=settings.dynamodb_wallet_transactions_table,
                    region=settings.aws_region,
                    endpoint_url=settings.aws_endpoint_url,
                )
                logger.info("Initialized DynamoCreditLedgerAdapter")
            else:
                from adapters.in_memory_credit_ledger import InMemoryCreditLedgerAdapter

                self._credit_ledger = InMemoryCreditLedgerAdapter()
                logger.info("Initialized InMemoryCreditLedgerAdapter (local dev)")
        return self._credit_ledger

    def get_user_directory(self):
        """Get or create the user directory adapter (lazy singleton)."""
        if self._user_directory is None:
            settings = get_settings()
            if self._use_dynamodb():
                from adapters.dynamo_user_directory import DynamoUserDirectoryAdapter

                self._user_directory = DynamoUserDirectoryAdapter(
                    accounts_table=settings.dynamodb_accounts_table,
                    region=settings.aws_region,
                    endpoint_url=settings.aws_endpoint_url,
                )
                logger.info("Initialized DynamoUserDirectoryAdapter")
            else:
                from adapters.in_memory_directory import InMemoryUserDirectoryAdapter

                self._user_directory = InMemoryUserDirectoryAdapter()
                logger.info("Initialized InMemoryUserDirectoryAdapter (local dev)")
        return self._user_directory

    def get_identity(self):
        """Get or create the identity adapter (lazy singleton).

        Uses static dev tokens with the memory backend and Cognito otherwise.
        """
        if self._identity is None:
            settings = get_settings()
            if self._use_dynamodb():
                from adapters.cognito_identity import CognitoIdentityAdapter

                self._identity = CognitoIdentityAdapter(
                    region=settings.aws_region,
                    endpoint_url=settings.aws_endpoint_url,
                )
                logger.info("Initialized CognitoIdentityAdapter")
            else:
                from adapters.in_memory_directory import StaticTokenIdentityAdapter

                self._identity = StaticTokenIdentityAdapter(
                    _parse_dev_tokens(settings.dev_auth_tokens)
                )
                logger.info("Initialized StaticTokenIdentityAdapter (local dev)")
        return self._identity

    def get_notification_store(self):
        """Get or create the in-app notification adapter (lazy singleton)."""
        if self._notification_store is None:
            settings = get_settings()
            if self._use_dynamodb():
                from adapters.dynamo_notification_store import DynamoNotificationStoreAdapter

                self._notification_store = DynamoNotificationStoreAdapter(
                    notifications_table=settings.dynamodb_notifications_table,
                    region=settings.aws_region,
                    endpoint_url=settings.aws_endpoint_url,
                )
                logger.info("Initialized DynamoNotificationStoreAdapter")
            else:
                from adapters.in_memory_notification_channels import InMemoryNotificationStoreAdapter

                self._notification_store = InMemoryNotificationStoreAdapter()
                logger.info("Initialized InMemoryNotificationStoreAdapter (local dev)")
        return self._notification_store

    def get_email_sender(self):
        """Get or create the email sender (SES when a sender address is set)."""
        if self._email_sender is None:
            settings = get_settings()
            if settings.ses_sender_address:
                from adapters.ses_email_sender import SesEmailSenderAdapter

                self._email_sender = SesEmailSenderAdapter(
                    sender_address=settings.ses_sender_address,
                    region=settings.aws_region,
                    endpoint_url=settings.aws_endpoint_url,
                )
                logger.info("Initialized SesEmailSenderAdapter")
            else:
                from adapters.in_memory_notification_channels import RecordingEmailSenderAdapter

                self._email_sender = RecordingEmailSenderAdapter()
                logger.info("Initialized RecordingEmailSenderAdapter (local dev)")
        return self._email_sender

    def get_operations_channel(self):
        """Get or create the operations channel (SNS when a topic is set)."""
        if self._operations_channel is None:
            settings = get_settings()
            if settings.ops_sns_topic_arn:
                from adapters.sns_operations_channel import SnsOperationsChannelAdapter

                self._operations_channel = SnsOperationsChannelAdapter(
                    topic_arn=settings.ops_sns_topic_arn,
                    region=settings.aws_region,
                    endpoint_url=settings.aws_endpoint_url,
                )
                logger.info("Initialized SnsOperationsChannelAdapter")
            else:
                from adapters.in_memory_notification_channels import RecordingOperationsChannelAdapter

                self._operations_channel = RecordingOperationsChannelAdapter()
                logger.info("Initialized RecordingOperationsChannelAdapter (local dev)")
        return self._operations_channel

    def get_audit_log(self):
        """Get or create the admin audit log adapter (lazy singleton)."""
        if self._audit_log is None:
            settings = get_settings()
            if self._use_dynamodb():
                from adapters.dynamo_audit_log import DynamoAuditLogAdapter

                self._audit_log = DynamoAuditLogAdapter(
                    admin_logs_table=settings.dynamodb_admin_logs_table,
                    region=settings.aws_region,
                    endpoint_url=settings.aws_endpoint_url,
                )
                logger.info("Initialized DynamoAuditLogAdapter")
            else:
                from adapters.in_memory_notification_channels import InMemoryAuditLogAdapter

                self._audit_log = InMemoryAuditLogAdapter()
                logger.info("Initialized InMemoryAuditLogAdapter (local dev)")
        return self._audit_log

    # ------------------------------------------------------------------
    # Service accessors
    # ------------------------------------------------------------------

    def get_emitter(self):
        """Get or create NotificationEmitter (lazy singleton)."""
        if self._emitter is None:
            from services.notification_emitter import NotificationEmitter

            self._emitter = NotificationEmitter(
                in_app=self.get_notification_store(),
                email_sender=self.get_email_sender(),
                operations=self.get_operations_channel(),
                user_directory=self.get_user_directory(),
                app_url=get_settings().app_url,
            )
            logger.info("Initialized NotificationEmitter")
        return self._emitter

    def get_match_service(self):
        """Get or create MatchFormationService (lazy singleton)."""
        if self._match_service is None:
            from services.match_service import MatchFormationService

            self._match_service = MatchFormationService(
                meeting_store=self.get_meeting_store(),
                emitter=self.get_emitter(),
            )
            logger.info("Initialized MatchFormationService")
        return self._match_service

    def get_response_aggregator(self):
        """Get or create ResponseAggregator (lazy singleton)."""
        if self._response_aggregator is None:
            from services.response_service import ResponseAggregator

            self._response_aggregator = ResponseAggregator(
                meeting_store=self.get_meeting_store(),
                user_directory=self.get_user_directory(),
                match_service=self.get_match_service(),
                emitter=self.get_emitter(),
            )
            logger.info("Initialized ResponseAggregator")
        return self._response_aggregator

    def get_resolution_coordinator(self):
        """Get or create MeetingResolutionCoordinator (lazy singleton)."""
        if self._resolution_coordinator is None:
            from services.resolution_service import MeetingResolutionCoordinator

            self._resolution_coordinator = MeetingResolutionCoordinator(
                meeting_store=self.get_meeting_store(),
                credit_ledger=self.get_credit_ledger(),
                user_directory=self.get_user_directory(),
                emitter=self.get_emitter(),
            )
            logger.info("Initialized MeetingResolutionCoordinator")
        return self._resolution_coordinator

    def get_review_service(self):
        """Get or create ReviewService (lazy singleton)."""
        if self._review_service is None:
            from services.review_service import ReviewService

            self._review_service = ReviewService(
                meeting_store=self.get_meeting_store(),
                credit_ledger=self.get_credit_ledger(),
                user_directory=self.get_user_directory(),
                audit_log=self.get_audit_log(),
                emitter=self.get_emitter(),
            )
            logger.info("Initialized ReviewService")
        return self._review_service


# Global singleton instance
_container = DIContainer()


def get_di_container() -> DIContainer:
    """Get global DI container instance."""
    return _container
