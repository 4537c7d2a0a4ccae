import inspect

import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock, patch

from api_service.src.main import app, limiter
from domain.models import ChargeStatus, MeetingStatus
from shared_utils.constants import APIEndpoints

from conftest import MEETING_ID, REQUESTER_ID, make_meeting

client = TestClient(app)

ALICE = {"Authorization": "Bearer tok-alice"}
BOB = {"Authorization": "Bearer tok-bob"}
CAROL = {"Authorization": "Bearer tok-carol"}
HOST = {"Authorization": "Bearer tok-host"}
ADMIN = {"Authorization": "Bearer tok-admin"}

FINALIZE_BODY = {
    "meeting_id": MEETING_ID,
    "outcome": "no_show",
    "fault": "accepter_fault",
    "charge_decision": "refund",
}


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def container(identity, coordinator, aggregator, review_service):
    mock = MagicMock()
    mock.get_identity.return_value = identity
    mock.get_resolution_coordinator.return_value = coordinator
    mock.get_response_aggregator.return_value = aggregator
    mock.get_review_service.return_value = review_service
    with patch('api_service.src.main.get_di_container', return_value=mock):
        yield mock


def test_health_check():
    response = client.get(APIEndpoints.HEALTH)
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "storage_backend" in response.json()


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("headers", [{}, {"Authorization": "tok-host"}, {"Authorization": "Bearer nope"}])
def test_finalize_requires_authentication(container, headers):
    response = client.post(APIEndpoints.FINALIZE, json=FINALIZE_BODY, headers=headers)
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


# ---------------------------------------------------------------------------
# Finalize
# ---------------------------------------------------------------------------

def test_finalize_success(container, credit_ledger):
    response = client.post(APIEndpoints.FINALIZE, json=FINALIZE_BODY, headers=HOST)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["charge_status"] == "refunded"
    assert data["refund_issued"] is True
    assert data["outcome"] == "no_show"
    assert credit_ledger.used_credits(REQUESTER_ID) == 1


def test_finalize_twice_returns_conflict_with_state(container):
    client.post(APIEndpoints.FINALIZE, json=FINALIZE_BODY, headers=HOST)
    response = client.post(
        APIEndpoints.FINALIZE, json={**FINALIZE_BODY, "charge_decision": "capture"}, headers=HOST
    )

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "ALREADY_FINALIZED"
    assert error["context"]["charge_status"] == "refunded"


def test_finalize_validation_error(container):
    response = client.post(
        APIEndpoints.FINALIZE, json={**FINALIZE_BODY, "outcome": "great"}, headers=HOST
    )
    assert response.status_code == 400
    assert response.json()["error"]["context"]["field"] == "outcome"


def test_finalize_forbidden_for_participant(container):
    response = client.post(APIEndpoints.FINALIZE, json=FINALIZE_BODY, headers=ALICE)
    assert response.status_code == 403


def test_finalize_unknown_meeting(container):
    response = client.post(
        APIEndpoints.FINALIZE, json={**FINALIZE_BODY, "meeting_id": "nope"}, headers=HOST
    )
    assert response.status_code == 404


def test_finalize_cancelled_meeting(container, meeting_store):
    meeting_store.put_meeting(make_meeting(status=MeetingStatus.CANCELLED))
    response = client.post(APIEndpoints.FINALIZE, json=FINALIZE_BODY, headers=HOST)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_STATE"


def test_unexpected_error_is_500(container):
    broken = MagicMock()
    broken.finalize.side_effect = RuntimeError("boom")
    container.get_resolution_coordinator.return_value = broken

    response = client.post(APIEndpoints.FINALIZE, json=FINALIZE_BODY, headers=HOST)

    assert response.status_code == 500
    assert response.json()["error"]["message"] == "An unexpected error occurred"


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

def test_submit_responses_until_match(container):
    first = client.post(
        APIEndpoints.RESPONSE,
        json={"meeting_id": MEETING_ID, "response": "yes", "partner_name": "Bob"},
        headers=ALICE,
    )
    second = client.post(
        APIEndpoints.RESPONSE,
        json={"meeting_id": MEETING_ID, "response": "yes", "partner_name": "Alice"},
        headers=BOB,
    )

    assert first.status_code == 200
    assert first.json()["complete"] is False
    assert second.json()["complete"] is True
    assert second.json()["matched"] is True
    assert "match" in second.json()["message"]


def test_later_no_after_match_reports_no_match(container):
    for headers, partner in ((ALICE, "Bob"), (BOB, "Alice")):
        client.post(
            APIEndpoints.RESPONSE,
            json={"meeting_id": MEETING_ID, "response": "yes", "partner_name": partner},
            headers=headers,
        )

    response = client.post(
        APIEndpoints.RESPONSE,
        json={"meeting_id": MEETING_ID, "response": "no", "partner_name": "Alice"},
        headers=BOB,
    )

    assert response.status_code == 200
    assert response.json()["complete"] is True
    assert response.json()["matched"] is False
    assert response.json()["message"] == "Response recorded successfully"


def test_submit_response_invalid_decision(container):
    response = client.post(
        APIEndpoints.RESPONSE,
        json={"meeting_id": MEETING_ID, "response": "maybe"},
        headers=ALICE,
    )
    assert response.status_code == 400
    assert response.json()["error"]["context"]["field"] == "response"


def test_list_responses(container):
    client.post(
        APIEndpoints.RESPONSE,
        json={"meeting_id": MEETING_ID, "response": "no", "partner_name": "Bob"},
        headers=ALICE,
    )

    response = client.get(APIEndpoints.RESPONSE, params={"meeting_id": MEETING_ID}, headers=BOB)
    assert response.status_code == 200
    assert [r["decision"] for r in response.json()["responses"]] == ["no"]

    forbidden = client.get(APIEndpoints.RESPONSE, params={"meeting_id": MEETING_ID}, headers=CAROL)
    assert forbidden.status_code == 403


def test_list_responses_requires_meeting_id(container):
    response = client.get(APIEndpoints.RESPONSE, headers=ALICE)
    assert response.status_code == 400


# ---------------------------------------------------------------------------
# Admin review
# ---------------------------------------------------------------------------

def _put_under_review(meeting_store):
    meeting_store.put_meeting(
        make_meeting(charge_status=ChargeStatus.PENDING_REVIEW, finalized_at=make_meeting().scheduled_at)
    )


def test_review_queue(container, meeting_store):
    _put_under_review(meeting_store)

    response = client.get(APIEndpoints.ADMIN_RESOLVE, headers=ADMIN)

    assert response.status_code == 200
    assert response.json()["count"] == 1
    assert response.json()["meetings"][0]["meeting"]["meeting_id"] == MEETING_ID


def test_review_queue_invalid_status(container):
    response = client.get(APIEndpoints.ADMIN_RESOLVE, params={"status": "lost"}, headers=ADMIN)
    assert response.status_code == 400
    assert response.json()["error"]["context"]["field"] == "status"


def test_review_queue_forbidden_for_host(container):
    response = client.get(APIEndpoints.ADMIN_RESOLVE, headers=HOST)
    assert response.status_code == 403


def test_resolve_investigation(container, meeting_store):
    _put_under_review(meeting_store)

    response = client.post(
        APIEndpoints.ADMIN_RESOLVE,
        json={"meeting_id": MEETING_ID, "resolution": "refund_requester", "admin_notes": "ok"},
        headers=ADMIN,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["resolution"] == "refund_requester"
    assert data["charge_status"] == "refunded"
    assert data["refund_issued"] is True

    again = client.post(
        APIEndpoints.ADMIN_RESOLVE,
        json={"meeting_id": MEETING_ID, "resolution": "split"},
        headers=ADMIN,
    )
    assert again.status_code == 409


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "path,method",
    [
        (APIEndpoints.FINALIZE, "POST"),
        (APIEndpoints.RESPONSE, "POST"),
        (APIEndpoints.RESPONSE, "GET"),
        (APIEndpoints.ADMIN_RESOLVE, "GET"),
        (APIEndpoints.ADMIN_RESOLVE, "POST"),
    ],
)
def test_store_backed_handlers_run_in_threadpool(path, method):
    route = next(
        r for r in app.routes
        if getattr(r, "path", None) == path and method in getattr(r, "methods", ())
    )
    assert not inspect.iscoroutinefunction(route.endpoint)
