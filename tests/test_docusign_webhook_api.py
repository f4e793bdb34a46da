from uuid import uuid4

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.main import app
from app.models.loan import Loan
from conftest import FakeResult, make_loan

WEBHOOK_URL = "/api/v1/docusign/webhook"


def test_completed_event_signs_loan(client, fake_db) -> None:
    loan = make_loan(status="review", docusign_envelope_id="E1")
    fake_db.on_execute_return(FakeResult(scalar=loan))

    response = client.post(
        WEBHOOK_URL,
        json={"data": {"envelopeId": "E1", "envelopeSummary": {"status": "completed"}}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Webhook processed successfully"
    assert body["loanId"] == str(loan.id)
    assert body["docusignStatus"] == "signed"
    assert body["loanStatus"] == "signed"
    assert "timestamp" in body
    assert loan.docusign_status == "signed"
    assert loan.status == "signed"
    assert fake_db.committed


def test_declined_event_moves_loan_to_review(client, fake_db) -> None:
    loan = make_loan(status="signed", docusign_envelope_id="E2")
    fake_db.on_execute_return(FakeResult(scalar=loan))

    response = client.post(WEBHOOK_URL, json={"envelopeId": "E2", "status": "declined"})

    assert response.status_code == 200
    assert response.json()["loanStatus"] == "review"
    assert loan.docusign_status == "declined"
    assert loan.status == "review"


def test_custom_field_fallback_resolves_loan(client, fake_db) -> None:
    loan = make_loan(status="approved")
    fake_db.on_get(Loan, loan.id, loan)

    response = client.post(
        WEBHOOK_URL,
        json={
            "envelopeId": "E-unknown",
            "status": "delivered",
            "customFields": {"loan_id": str(loan.id)},
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["loanId"] == str(loan.id)
    assert body["docusignStatus"] == "delivered"
    assert body["loanStatus"] == "approved"


def test_unknown_loan_returns_404(client, fake_db) -> None:
    response = client.post(WEBHOOK_URL, json={"envelopeId": "E404", "status": "completed"})

    assert response.status_code == 404
    assert response.json()["error"] == "Loan not found"
    assert not fake_db.committed


def test_unknown_loan_id_custom_field_returns_404(client, fake_db) -> None:
    response = client.post(
        WEBHOOK_URL,
        json={"envelopeId": "E404", "status": "completed", "customFields": {"loan_id": str(uuid4())}},
    )

    assert response.status_code == 404


def test_unknown_payload_format_returns_400(client) -> None:
    response = client.post(WEBHOOK_URL, json={"event": "envelope-sent"})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid webhook payload format"


def test_missing_status_returns_400(client) -> None:
    response = client.post(WEBHOOK_URL, json={"envelopeId": "E1"})

    assert response.status_code == 400
    assert response.json()["error"] == "Missing envelope ID or status"


def test_invalid_json_returns_400(client) -> None:
    response = client.post(
        WEBHOOK_URL,
        content=b"{not json",
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid webhook payload format"


def test_update_failure_returns_500(client, fake_db) -> None:
    loan = make_loan(docusign_envelope_id="E1")
    fake_db.on_execute_return(FakeResult(scalar=loan))
    fake_db.fail_commit_with(OperationalError("UPDATE", {}, Exception("down")))

    response = client.post(WEBHOOK_URL, json={"envelopeId": "E1", "status": "completed"})

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to update loan"


def test_unexpected_failure_returns_structured_500(override_deps, fake_db) -> None:
    def _boom(_stmt):
        raise RuntimeError("boom")

    fake_db.on_execute(_boom)
    client = TestClient(app, raise_server_exceptions=False)

    response = client.post(
        WEBHOOK_URL,
        json={"envelopeId": "E1", "status": "completed"},
    )

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to process webhook"


def test_challenge_is_echoed_verbatim(client) -> None:
    token = "abc123+/=?token"

    response = client.get(WEBHOOK_URL, params={"challenge": token})

    assert response.status_code == 200
    assert response.text == token
    assert response.headers["content-type"].startswith("text/plain")


def test_get_without_challenge_describes_endpoint(client) -> None:
    response = client.get(WEBHOOK_URL)

    assert response.status_code == 200
    assert response.json() == {"message": "DocuSign webhook endpoint"}


def test_response_carries_request_id(client) -> None:
    response = client.get(WEBHOOK_URL, headers={"x-request-id": "req-42"})

    assert response.headers["x-request-id"] == "req-42"
