"""HTTP surface: auth, error bodies and a few end-to-end flows."""

from datetime import datetime

from billing.models import Fee, FeeStatus, SubscriptionStatus
from tests.helpers import auth_headers, cron_headers

API = "/api/v1"


def test_root(client):
    assert client.get("/").status_code == 200


def test_missing_token_is_unauthorized(client):
    response = client.get(f"{API}/fees")

    assert response.status_code == 401


def test_garbage_token_is_unauthorized(client):
    response = client.get(f"{API}/fees", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


def test_billing_error_body(client, other_admin, make_fee):
    fee = make_fee(datetime(2026, 6, 1))

    response = client.put(f"{API}/fees/{fee.id}", json={"title": "x"}, headers=auth_headers(other_admin))

    assert response.status_code == 404
    assert response.json() == {"detail": "Fee not found", "error": "not_found"}


def test_validation_error_body(client, admin):
    response = client.post(f"{API}/fees", json={"title": "Books"}, headers=auth_headers(admin))

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "invalid_input"
    assert isinstance(body["detail"], list)


def test_fee_lifecycle_over_http(client, db, admin, student, parent):
    created = client.post(
        f"{API}/fees",
        json={
            "student_id": str(student.id),
            "title": "June tuition",
            "amount": "120.00",
            "due_date": "2026-06-15T00:00:00",
        },
        headers=auth_headers(admin),
    )
    assert created.status_code == 201
    fee_id = created.json()["id"]
    assert created.json()["status"] == "pending"

    paid = client.post(
        f"{API}/fees/{fee_id}/pay",
        json={"amount": "120.00", "payment_details": "transfer #81"},
        headers=auth_headers(parent),
    )
    assert paid.status_code == 200
    assert paid.json()["status"] == "processing"

    again = client.post(f"{API}/fees/{fee_id}/pay", json={"amount": "120.00"}, headers=auth_headers(student))
    assert again.status_code == 409
    assert again.json()["error"] == "invalid_state"

    verified = client.post(f"{API}/fees/{fee_id}/verify", json={"approve": True}, headers=auth_headers(admin))
    assert verified.status_code == 200
    assert verified.json()["status"] == "paid"

    assert [f["id"] for f in client.get(f"{API}/fees", headers=auth_headers(parent)).json()] == [fee_id]
    db.expire_all()
    assert db.query(Fee).one().status == FeeStatus.paid


def test_parent_cannot_verify(client, parent, make_fee):
    fee = make_fee(datetime(2026, 6, 1))

    response = client.post(f"{API}/fees/{fee.id}/verify", json={"approve": True}, headers=auth_headers(parent))

    assert response.status_code == 403


def test_issue_advance_response(client, admin, teacher):
    response = client.post(
        f"{API}/advances/issue",
        json={"teacher_id": str(teacher.id), "principal": "300", "installments": 3},
        headers=auth_headers(admin),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["kind"] == "issued"
    assert body["status"] == "active"
    assert body["installment_amount"] == "100.00"
    assert body["repayments"] == []

    listed = client.get(f"{API}/advances", headers=auth_headers(teacher)).json()
    assert [a["kind"] for a in listed] == ["issued"]


def test_reject_without_reason_is_invalid_input(client, admin, teacher):
    requested = client.post(
        f"{API}/advances/request", json={"amount": "100", "repayment_months": 2}, headers=auth_headers(teacher)
    )
    assert requested.status_code == 201
    assert requested.json()["kind"] == "requested"

    response = client.post(
        f"{API}/advances/{requested.json()['id']}/reject", json={"reason": " "}, headers=auth_headers(admin)
    )

    assert response.status_code == 422
    assert response.json()["error"] == "invalid_input"


def test_locked_out_admin_can_still_renew(client, db, admin, make_subscription):
    make_subscription(status=SubscriptionStatus.expired, end_date=datetime(2026, 1, 31))
    admin.is_active = False
    db.commit()

    assert client.get(f"{API}/fees", headers=auth_headers(admin)).status_code == 403
    response = client.post(
        f"{API}/subscriptions/renewals",
        json={"plan": "monthly", "amount": "49"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 201
    assert response.json()["status"] == "processing"


def test_batch_requires_api_key(client):
    assert client.post(f"{API}/batch/generate-monthly-fees").status_code == 401
    assert client.post(f"{API}/batch/generate-monthly-fees", headers=cron_headers("wrong")).status_code == 401


def test_batch_generates_fees(client, assignment):
    first = client.post(f"{API}/batch/generate-monthly-fees", headers=cron_headers())
    second = client.post(f"{API}/batch/generate-monthly-fees", headers=cron_headers())

    assert first.status_code == 200
    assert first.json()["created"] == 1
    assert second.json() == {"created": 0, "skipped": 1, "updated": 0, "errors": []}


def test_batch_dispatches_notifications(client, admin, student, parent):
    client.post(
        f"{API}/fees",
        json={"student_id": str(student.id), "title": "Books", "amount": "20", "due_date": "2026-07-01T00:00:00"},
        headers=auth_headers(admin),
    )

    response = client.post(f"{API}/batch/dispatch-notifications", headers=cron_headers())

    assert response.status_code == 200
    assert response.json()["updated"] == 1

    inbox = client.get(f"{API}/notifications", headers=auth_headers(parent)).json()
    assert len(inbox) == 1
    read = client.post(f"{API}/notifications/{inbox[0]['id']}/read", headers=auth_headers(parent))
    assert read.json()["is_read"] is True
