"""
Amazon Cognito identity adapter.

Implements IdentityPort by exchanging a bearer access token for the user's
``sub`` attribute via ``cognito-idp:GetUser``.
"""

from __future__ import annotations

from typing import Optional

import boto3
from botocore.exceptions import ClientError

from ports.identity import IdentityPort  # noqa: F401 (runtime_checkable)
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import ExternalServiceError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ADAPTER)

# Token problems mean "not authenticated", not "service down"
_INVALID_TOKEN_CODES = {"NotAuthorizedException", "UserNotFoundException"}


class CognitoIdentityAdapter:
    """Resolves Cognito access tokens to user ids."""

    def __init__(
        self,
        region: str = Defaults.AWS_REGION,
        endpoint_url: str = "",
        cognito_client: Optional[object] = None,
    ) -> None:
        client_kwargs: dict = {"region_name": region}
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url
        self._client = cognito_client or boto3.client("cognito-idp", **client_kwargs)

    def authenticate(self, token: str) -> Optional[str]:
        if not token:
            return None
        try:
            response = self._client.get_user(AccessToken=token)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in _INVALID_TOKEN_CODES:
                logger.info("cognito_token_rejected", code=code)
                return None
            logger.error("cognito_get_user_failed", error=str(exc))
            raise ExternalServiceError("Cognito", f"Failed to resolve token: {exc}") from exc

        attributes = {a["Name"]: a["Value"] for a in response.get("UserAttributes", [])}
        return attributes.get("sub") or response.get("Username")
