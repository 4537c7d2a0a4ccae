"""
Constants management.
Centralized configuration for magic values, enum value sets, and defaults.
"""

from enum import Enum
from typing import Final


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class StorageBackend(str, Enum):
    """Supported persistence backends."""
    MEMORY = "memory"
    DYNAMODB = "dynamodb"


# Default values
class Defaults:
    """Defaults shared by config, adapters and services."""
    AWS_REGION: Final[str] = "eu-west-2"
    LOG_LEVEL: Final[str] = "INFO"
    CREDIT_REFUND_AMOUNT: Final[int] = 1
    CREDIT_UPDATE_ATTEMPTS: Final[int] = 3
    FALLBACK_RECIPIENT_NAME: Final[str] = "User"
    FALLBACK_PARTNER_NAME: Final[str] = "Your Partner"
    REVIEW_WINDOW: Final[str] = "1-2 business days"
    MAX_NOTES_LENGTH: Final[int] = 4000
    MEETING_REF_LENGTH: Final[int] = 8


# DynamoDB attribute / table conventions
class TableKeys:
    """Key attribute names for the DynamoDB tables."""
    MEETING_ID: Final[str] = "meeting_id"
    USER_ID: Final[str] = "user_id"
    NOTIFICATION_ID: Final[str] = "notification_id"
    TRANSACTION_ID: Final[str] = "transaction_id"
    LOG_ID: Final[str] = "log_id"
    CONDITIONAL_CHECK_FAILED: Final[str] = "ConditionalCheckFailedException"


# Logging scopes
class LogScope:
    """Standardized logging scope names."""
    CONFIG = "config_loader"
    API = "api"
    VALIDATION = "validation"
    ERROR_HANDLER = "error_handler"
    ADAPTER = "adapter"
    SETTLEMENT = "settlement"
    RESPONSES = "responses"
    MATCHING = "matching"
    RESOLUTION = "resolution"
    REVIEW = "review"
    NOTIFICATIONS = "notifications"
    SCRIPTS = "scripts"


# API endpoints and paths
class APIEndpoints:
    """API route definitions."""
    HEALTH = "/health"
    FINALIZE = "/api/meetings/finalize"
    RESPONSE = "/api/meetings/response"
    ADMIN_RESOLVE = "/api/admin/meetings/resolve"


# Error codes
class ErrorCode(str, Enum):
    """Machine-readable error kinds returned to callers."""
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    ALREADY_FINALIZED = "ALREADY_FINALIZED"
    INCONSISTENT_STATE = "INCONSISTENT_STATE"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    INVALID_CONFIG = "INVALID_CONFIG"
