from pydantic_settings import BaseSettings
from pydantic import field_validator, ConfigDict
from functools import lru_cache

from shared_utils.constants import Defaults, Environment, LogScope, StorageBackend
from shared_utils.logging_utils import configure_logging, get_scoped_logger

logger = get_scoped_logger(LogScope.CONFIG)


class Settings(BaseSettings):
    """Application configuration with environment variable precedence.

    Precedence: 1) Environment Variables > 2) .env file > 3) Class defaults

    Every field has a local-development default so the engine boots with
    in-memory adapters when nothing is configured.
    """
    # Application metadata
    app_name: str = "Meeting Resolution Engine"
    app_version: str = "1.0.0"
    app_description: str = "Post-meeting response matching and charge settlement"

    # API Base URL Configuration
    api_host: str = "localhost"
    api_port: int = 8000
    api_protocol: str = "http"  # "http" or "https"

    # Public web app, used for dashboard links in emails
    app_url: str = "http://localhost:3000"

    # Environment
    environment: str = Environment.DEVELOPMENT.value
    storage_backend: str = StorageBackend.MEMORY.value

    # AWS
    aws_region: str = Defaults.AWS_REGION
    aws_endpoint_url: str = ""  # LocalStack override

    # DynamoDB tables
    dynamodb_meetings_table: str = "Meetings"
    dynamodb_responses_table: str = "MeetingResponses"
    dynamodb_matches_table: str = "UserMatches"
    dynamodb_accounts_table: str = "Accounts"
    dynamodb_credits_table: str = "Credits"
    dynamodb_wallet_transactions_table: str = "WalletTransactions"
    dynamodb_notifications_table: str = "Notifications"
    dynamodb_admin_logs_table: str = "AdminLogs"

    # Delivery channels (empty → in-memory channel for local dev)
    ses_sender_address: str = ""
    ops_sns_topic_arn: str = ""

    # Local-dev bearer tokens for the memory backend: "token:user_id,..."
    dev_auth_tokens: str = ""

    # Rate limits (slowapi syntax)
    finalize_rate_limit: str = "30/minute"
    response_rate_limit: str = "30/minute"

    model_config = ConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is recognized."""
        valid_envs = {e.value for e in Environment}
        if v.lower() not in valid_envs:
            raise ValueError(f"environment must be one of {sorted(valid_envs)}, got {v}")
        return v.lower()

    @field_validator('storage_backend')
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        """Validate storage backend is supported."""
        valid_backends = {b.value for b in StorageBackend}
        if v.lower() not in valid_backends:
            raise ValueError(f"storage_backend must be one of {sorted(valid_backends)}, got {v}")
        return v.lower()

    def get_api_base_url(self) -> str:
        """Get full API base URL constructed from host, port and protocol.

        Returns:
            Full API base URL (e.g., "http://localhost:8000")
        """
        # Don't add port if it's standard (80 for http, 443 for https)
        port_str = "" if (
            (self.api_protocol == "http" and self.api_port == 80) or
            (self.api_protocol == "https" and self.api_port == 443)
        ) else f":{self.api_port}"

        return f"{self.api_protocol}://{self.api_host}{port_str}"

    def table_names(self) -> dict:
        """Map of logical table → configured DynamoDB table name."""
        return {
            "meetings": self.dynamodb_meetings_table,
            "responses": self.dynamodb_responses_table,
            "matches": self.dynamodb_matches_table,
            "accounts": self.dynamodb_accounts_table,
            "credits": self.dynamodb_credits_table,
            "wallet_transactions": self.dynamodb_wallet_transactions_table,
            "notifications": self.dynamodb_notifications_table,
            "admin_logs": self.dynamodb_admin_logs_table,
        }


@lru_cache()
def get_settings() -> Settings:
    """Load and cache application settings.

    Returns:
        Validated Settings instance

    Raises:
        ValueError: If settings are invalid
    """
    settings = Settings()
    configure_logging(settings.environment)

    logger.info(
        "configuration_loaded",
        environment=settings.environment,
        storage_backend=settings.storage_backend,
        aws_region=settings.aws_region,
        email_enabled=bool(settings.ses_sender_address),
        ops_channel_enabled=bool(settings.ops_sns_topic_arn),
    )

    return settings
