import pytest

from eventcare.models.escrow import EscrowStatus

from conftest import bearer, contract_job, make_user


@pytest.fixture
def contracted(seed):
    def setup(svc):
        from eventcare.extensions import db

        organizer = make_user(db.session, "organizer")
        nurse = make_user(db.session, "nurse")
        admin = make_user(db.session, "admin")
        job, _ = contract_job(svc, organizer, nurse)
        return {
            "job_id": job.id,
            "organizer": organizer.api_token,
            "nurse": nurse.api_token,
            "admin": admin.api_token,
        }
    return seed(setup)


def test_fee_preview_is_public(client):
    resp = client.get("/escrow?amount=10000&paymentMethod=instant")
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert (data["platformFee"], data["paymentFee"], data["netAmount"]) == (1000, 270, 8730)


def test_fee_preview_validates(client):
    resp = client.get("/escrow?amount=abc")
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["success"] is False
    assert body["error"]["type"] == "VALIDATION"

    assert client.get("/escrow?amount=100&paymentMethod=wire").status_code == 400
    assert client.get("/escrow?amount=100.5").status_code == 400


def test_create_requires_auth(client, contracted):
    resp = client.post("/escrow", json={"jobId": contracted["job_id"]})
    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "UNAUTHORIZED"


def test_create_and_process(client, contracted):
    headers = bearer(contracted["organizer"])
    resp = client.post("/escrow", json={"jobId": contracted["job_id"], "amount": 10000, "platformFee": 1000},
                       headers=headers)
    assert resp.status_code == 201
    escrow = resp.get_json()["data"]
    assert escrow["status"] == EscrowStatus.AWAITING.value
    assert escrow["platformFee"] == 1000

    dup = client.post("/escrow", json={"jobId": contracted["job_id"]}, headers=headers)
    assert dup.status_code == 409
    assert dup.get_json()["error"]["code"] == "ESCROW_ALREADY_EXISTS"

    processed = client.post(f"/escrow/{escrow['id']}/process", headers=headers)
    assert processed.status_code == 200
    data = processed.get_json()["data"]
    assert data["success"] is True
    assert data["transactionId"].startswith("mock_tx_")
    assert data["escrow"]["status"] == "HOLDING"

    again = client.post(f"/escrow/{escrow['id']}/process", headers=headers)
    assert again.status_code == 409


def test_create_with_wrong_amount(client, contracted):
    resp = client.post("/escrow", json={"jobId": contracted["job_id"], "amount": 5000},
                       headers=bearer(contracted["organizer"]))
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "AMOUNT_MISMATCH"


def test_create_for_missing_job(client, contracted):
    resp = client.post("/escrow", json={"jobId": 424242}, headers=bearer(contracted["organizer"]))
    assert resp.status_code == 404
    assert resp.get_json()["error"]["type"] == "NOT_FOUND"


def test_nurse_cannot_create_or_process(client, contracted):
    nurse = bearer(contracted["nurse"])
    assert client.post("/escrow", json={"jobId": contracted["job_id"]}, headers=nurse).status_code == 403

    escrow = client.post("/escrow", json={"jobId": contracted["job_id"]},
                         headers=bearer(contracted["organizer"])).get_json()["data"]
    resp = client.post(f"/escrow/{escrow['id']}/process", headers=nurse)
    assert resp.status_code == 403


def test_declined_capture_is_502_and_retryable(app, client, contracted):
    headers = bearer(contracted["organizer"])
    escrow = client.post("/escrow", json={"jobId": contracted["job_id"]}, headers=headers).get_json()["data"]

    app.config["PAYMENT_GATEWAY_FAIL"] = True
    resp = client.post(f"/escrow/{escrow['id']}/process", headers=headers)
    assert resp.status_code == 502
    assert resp.get_json()["error"]["code"] == "PAYMENT_CAPTURE_FAILED"

    app.config["PAYMENT_GATEWAY_FAIL"] = False
    resp = client.post(f"/escrow/{escrow['id']}/process", headers=headers)
    assert resp.status_code == 200


def test_view_and_refund(client, contracted):
    organizer = bearer(contracted["organizer"])
    escrow = client.post("/escrow", json={"jobId": contracted["job_id"]}, headers=organizer).get_json()["data"]
    client.post(f"/escrow/{escrow['id']}/process", headers=organizer)

    nurse = bearer(contracted["nurse"])
    admin = bearer(contracted["admin"])
    assert client.get(f"/escrow/{escrow['id']}", headers=nurse).status_code == 200

    # funded and not yet worked: nobody can cancel, not even through a refund
    for headers in (organizer, admin):
        resp = client.post(f"/jobs/{contracted['job_id']}/cancel", json={}, headers=headers)
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "INVALID_STATE_TRANSITION"
    resp = client.post(f"/escrow/{escrow['id']}/refund", json={"reason": "event cancelled"}, headers=admin)
    assert resp.status_code == 409
    assert client.get(f"/escrow/{escrow['id']}", headers=admin).get_json()["data"]["status"] == "HOLDING"

    client.post(f"/jobs/{contracted['job_id']}/check-in", headers=nurse)
    assert client.post(f"/escrow/{escrow['id']}/refund", json={"reason": "mid-shift"},
                       headers=admin).status_code == 409
    client.post(f"/jobs/{contracted['job_id']}/complete", headers=organizer)

    # organizer cannot pull held funds back on their own
    assert client.post(f"/escrow/{escrow['id']}/refund", json={"reason": "changed my mind"},
                       headers=organizer).status_code == 403
    resp = client.post(f"/jobs/{contracted['job_id']}/cancel", json={}, headers=organizer)
    assert resp.status_code == 403
    assert resp.get_json()["error"]["code"] == "REFUND_REQUIRES_ADMIN"

    resp = client.post(f"/escrow/{escrow['id']}/refund", json={"reason": "no-show dispute"}, headers=admin)
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["escrow"]["status"] == "REFUNDED"
    assert data["job"]["status"] == "CANCELLED"


def test_refund_needs_reason(client, contracted):
    resp = client.post("/escrow/1/refund", json={}, headers=bearer(contracted["admin"]))
    assert resp.status_code == 400
    assert "reason" in resp.get_json()["error"]["details"]["fields"]
