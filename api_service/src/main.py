"""
FastAPI backend for the Meeting Resolution Engine.

Endpoints:
    GET  /health                        Health check
    POST /api/meetings/finalize         Host/admin finalize (outcome, fault, charge decision)
    POST /api/meetings/response         Participant yes/no response
    GET  /api/meetings/response         Responses for a meeting
    GET  /api/admin/meetings/resolve    Admin review queue
    POST /api/admin/meetings/resolve    Resolve an investigation

Every endpoint except /health requires ``Authorization: Bearer <token>``.
"""

from typing import Optional
from fastapi import FastAPI, status, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
import uvicorn

from shared_utils.config_loader import get_settings
from shared_utils.logging_utils import ContextualLogger
from shared_utils.constants import LogScope, APIEndpoints
from shared_utils.error_handler import (
    AppException, AuthenticationError, handle_error
)
from shared_utils.validation import InputValidator
from shared_utils.di_container import get_di_container
from domain.models import ChargeStatus


# ---------------------------------------------------------------------------
# Application bootstrap
# ---------------------------------------------------------------------------

settings = get_settings()
logger = ContextualLogger(scope=LogScope.API)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=settings.app_description,
)

limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Validate configuration once at startup so we fail fast
try:
    _container = get_di_container()
    _container.validate_configuration()
    logger.info(
        "api_initialized",
        environment=settings.environment,
        storage_backend=settings.storage_backend,
    )
except Exception as e:
    logger.error("api_initialization_failed", error=str(e))
    raise


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _authenticate(request: Request) -> str:
    """Resolve the bearer token to the acting user's id.

    Raises:
        AuthenticationError: Missing, malformed or rejected token.
    """
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError()

    actor_id = get_di_container().get_identity().authenticate(token.strip())
    if not actor_id:
        raise AuthenticationError()
    return actor_id


def _error_response(e: Exception, event: str) -> JSONResponse:
    """AppException → its own status; anything else → 500."""
    if isinstance(e, AppException):
        logger.warning(event, error_code=e.error_code, message=e.message)
        return JSONResponse(status_code=e.http_status, content=e.to_dict())
    error_response = handle_error(e, scope=LogScope.API)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response,
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@app.get(APIEndpoints.HEALTH)
def health_check() -> dict:
    """Health check endpoint."""
    logger.debug("health_check_requested")
    return {
        "status": "healthy",
        "environment": settings.environment,
        "storage_backend": settings.storage_backend,
    }


# ======================================================================
# Meeting endpoints
# ======================================================================

@app.post(APIEndpoints.FINALIZE)
@limiter.limit(settings.finalize_rate_limit)
def finalize_meeting(request: Request, body: dict) -> JSONResponse:
    """Finalize a meeting's outcome and charge settlement.

    Body JSON:
        meeting_id (str), outcome (str), fault (str),
        charge_decision (str), notes (str, optional).
    """
    try:
        actor_id = _authenticate(request)
        coordinator = get_di_container().get_resolution_coordinator()
        result = coordinator.finalize(
            meeting_id=body.get("meeting_id"),
            actor_id=actor_id,
            outcome=body.get("outcome"),
            fault=body.get("fault"),
            charge_decision=body.get("charge_decision"),
            notes=body.get("notes"),
        )
        return JSONResponse(
            content={
                "success": True,
                "message": "Meeting finalized successfully",
                **result.model_dump(mode="json"),
            }
        )
    except Exception as e:
        return _error_response(e, "finalize_error")


@app.post(APIEndpoints.RESPONSE)
@limiter.limit(settings.response_rate_limit)
def submit_response(request: Request, body: dict) -> JSONResponse:
    """Record a participant's yes/no decision.

    Body JSON:
        meeting_id (str), response ("yes" | "no"), partner_name (str).
    """
    try:
        actor_id = _authenticate(request)
        aggregator = get_di_container().get_response_aggregator()
        result = aggregator.submit_response(
            meeting_id=body.get("meeting_id"),
            actor_id=actor_id,
            decision=body.get("response"),
            partner_name=body.get("partner_name"),
        )

        if result.matched:
            message = "It's a match! Messaging is now enabled."
        elif result.complete and result.matched is None:
            message = "Response recorded. Match status could not be confirmed."
        else:
            message = "Response recorded successfully"

        return JSONResponse(
            content={
                "success": True,
                "message": message,
                "complete": result.complete,
                "matched": result.matched,
            }
        )
    except Exception as e:
        return _error_response(e, "response_error")


@app.get(APIEndpoints.RESPONSE)
def list_responses(request: Request, meeting_id: Optional[str] = None) -> JSONResponse:
    """Responses recorded for a meeting."""
    try:
        actor_id = _authenticate(request)
        aggregator = get_di_container().get_response_aggregator()
        responses = aggregator.list_responses(meeting_id=meeting_id, actor_id=actor_id)
        return JSONResponse(
            content={"responses": [r.model_dump(mode="json") for r in responses]}
        )
    except Exception as e:
        return _error_response(e, "list_responses_error")


# ======================================================================
# Admin endpoints
# ======================================================================

@app.get(APIEndpoints.ADMIN_RESOLVE)
def list_review_cases(request: Request, status: Optional[str] = None) -> JSONResponse:
    """Admin review queue (defaults to meetings pending review)."""
    try:
        actor_id = _authenticate(request)
        charge_status = (
            InputValidator.validate_choice(status, ChargeStatus, "status")
            if status
            else ChargeStatus.PENDING_REVIEW
        )
        cases = get_di_container().get_review_service().list_review_cases(
            actor_id=actor_id, charge_status=charge_status
        )
        return JSONResponse(
            content={
                "meetings": [c.model_dump(mode="json") for c in cases],
                "count": len(cases),
            }
        )
    except Exception as e:
        return _error_response(e, "list_review_cases_error")


@app.post(APIEndpoints.ADMIN_RESOLVE)
@limiter.limit(settings.finalize_rate_limit)
def resolve_investigation(request: Request, body: dict) -> JSONResponse:
    """Resolve a meeting under investigation.

    Body JSON:
        meeting_id (str), resolution (str), admin_notes (str, optional).
    """
    try:
        actor_id = _authenticate(request)
        outcome = get_di_container().get_review_service().resolve(
            meeting_id=body.get("meeting_id"),
            actor_id=actor_id,
            resolution=body.get("resolution"),
            admin_notes=body.get("admin_notes"),
        )
        return JSONResponse(
            content={
                "success": True,
                "message": "Investigation resolved successfully",
                "resolution": outcome.resolution.value,
                "charge_status": outcome.charge_status.value,
                "refund_issued": outcome.refund_issued,
            }
        )
    except Exception as e:
        return _error_response(e, "resolve_investigation_error")


if __name__ == "__main__":
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.api_port,
        log_level="info"
    )
