from datetime import timedelta

import pytest

from eventcare.clock import utcnow

from conftest import bearer, make_user


@pytest.fixture
def people(seed):
    def setup(svc):
        from eventcare.extensions import db

        organizer = make_user(db.session, "organizer")
        nurse = make_user(db.session, "nurse")
        admin = make_user(db.session, "admin")
        return {
            "organizer": organizer.api_token,
            "nurse": nurse.api_token,
            "nurse_id": nurse.id,
            "admin": admin.api_token,
        }
    return seed(setup)


def _iso(dt):
    return dt.strftime("%Y-%m-%dT%H:%M:%S")


def _job_body(**overrides):
    now = utcnow()
    body = {
        "title": "Summer festival medical tent",
        "description": "Two-day outdoor festival.",
        "compensation": 10000,
        "startAt": _iso(now + timedelta(days=3)),
        "endAt": _iso(now + timedelta(days=3, hours=6)),
        "deadline": _iso(now + timedelta(days=2)),
    }
    body.update(overrides)
    return body


def test_health(client):
    assert client.get("/health").get_json()["data"]["status"] == "ok"


def test_unknown_route_uses_error_envelope(client):
    resp = client.get("/no-such-thing")
    assert resp.status_code == 404
    body = resp.get_json()
    assert body["success"] is False
    assert body["error"]["type"] == "NOT_FOUND"
    assert body["error"]["code"] == "NOT_FOUND"


def test_job_validation(client, people):
    organizer = bearer(people["organizer"])
    resp = client.post("/jobs", json=_job_body(title=""), headers=organizer)
    assert resp.status_code == 400
    assert "title" in resp.get_json()["error"]["details"]["fields"]

    now = utcnow()
    resp = client.post("/jobs", json=_job_body(startAt=_iso(now + timedelta(days=3)),
                                               endAt=_iso(now + timedelta(days=2))), headers=organizer)
    assert resp.status_code == 400
    assert "end_at" in resp.get_json()["error"]["details"]["fields"]


@pytest.mark.parametrize("compensation", [10000.99, True, "10k"])
def test_compensation_must_be_whole_number(client, people, compensation):
    resp = client.post("/jobs", json=_job_body(compensation=compensation), headers=bearer(people["organizer"]))
    assert resp.status_code == 400
    assert "compensation" in resp.get_json()["error"]["details"]["fields"]


def test_compensation_as_digit_string(client, people):
    resp = client.post("/jobs", json=_job_body(compensation="12000"), headers=bearer(people["organizer"]))
    assert resp.status_code == 201
    assert resp.get_json()["data"]["compensation"] == 12000


def test_nurse_cannot_post_jobs(client, people):
    resp = client.post("/jobs", json=_job_body(), headers=bearer(people["nurse"]))
    assert resp.status_code == 403


def test_illegal_transition_is_409(client, people):
    organizer = bearer(people["organizer"])
    job = client.post("/jobs", json=_job_body(), headers=organizer).get_json()["data"]
    resp = client.post(f"/jobs/{job['id']}/complete", headers=organizer)
    assert resp.status_code == 409
    error = resp.get_json()["error"]
    assert error["code"] == "INVALID_STATE_TRANSITION"
    assert error["details"] == {"from": "DRAFT", "to": "REVIEW_PENDING"}


def test_full_job_journey(client, people):
    organizer, nurse, admin = (bearer(people[r]) for r in ("organizer", "nurse", "admin"))

    job = client.post("/jobs", json=_job_body(), headers=organizer).get_json()["data"]
    assert job["status"] == "DRAFT"
    assert client.post(f"/jobs/{job['id']}/publish", headers=organizer).get_json()["data"]["status"] == "OPEN"

    applied = client.post(f"/jobs/{job['id']}/applications", json={"message": "RN, 8 years ER"},
                          headers=nurse)
    assert applied.status_code == 201
    application = applied.get_json()["data"]
    assert client.get(f"/jobs/{job['id']}/applications", headers=nurse).status_code == 403

    accepted = client.post(f"/applications/{application['id']}/accept", headers=organizer)
    assert accepted.get_json()["data"]["status"] == "ACCEPTED"

    escrow = client.post("/escrow", json={"jobId": job["id"]}, headers=organizer).get_json()["data"]
    assert client.post(f"/escrow/{escrow['id']}/process", headers=organizer).status_code == 200

    assert client.post(f"/jobs/{job['id']}/check-in", headers=nurse).get_json()["data"]["status"] == "IN_PROGRESS"
    assert client.post(f"/jobs/{job['id']}/complete", headers=organizer).get_json()["data"]["status"] \
        == "REVIEW_PENDING"

    activity = client.post("/reports/nurse-activity", json={
        "jobId": job["id"],
        "overallSummary": "Three minor cases, all resolved on site.",
        "participantCount": 1200,
        "incidents": [{"time": "14:20", "description": "Heat exhaustion", "actionTaken": "Fluids, shade",
                       "severity": "medium"}],
        "equipmentUsed": ["AED", "ice packs"],
    }, headers=nurse)
    assert activity.status_code == 201
    assert activity.get_json()["data"]["equipmentUsed"] == ["AED", "ice packs"]

    feedback = client.post("/reports/organizer-feedback", json={
        "jobId": job["id"], "punctuality": 5, "professionalism": 5, "communication": 4, "skillLevel": 5,
        "eventSummary": "Smooth day.",
    }, headers=organizer)
    assert feedback.status_code == 201
    assert feedback.get_json()["data"]["wouldRecommend"] is True

    reports = client.get(f"/jobs/{job['id']}/reports", headers=organizer).get_json()["data"]
    assert len(reports["activityReports"]) == 1
    assert len(reports["organizerFeedback"]) == 1

    review = client.post("/reviews", json={"jobId": job["id"], "targetId": people["nurse_id"], "rating": 5,
                                           "tags": ["calm"]}, headers=organizer)
    assert review.status_code == 201
    edited = client.patch(f"/reviews/{review.get_json()['data']['id']}", json={"tags": []}, headers=organizer)
    assert edited.get_json()["data"]["tags"] == []

    organizer_id = job["organizerId"]
    client.post("/reviews", json={"jobId": job["id"], "targetId": organizer_id, "rating": 4}, headers=nurse)
    assert client.get(f"/jobs/{job['id']}", headers=organizer).get_json()["data"]["status"] == "READY_TO_PAY"

    listed = client.get(f"/reviews?jobId={job['id']}&minRating=5", headers=admin).get_json()["data"]
    assert [r["rating"] for r in listed] == [5]
    stats = client.get(f"/reviews/stats/{people['nurse_id']}", headers=nurse).get_json()["data"]
    assert stats["totalReviews"] == 1

    payout = client.post("/payouts", json={"escrowId": escrow["id"], "nurseId": people["nurse_id"],
                                           "paymentMethod": "instant"}, headers=admin)
    assert payout.get_json()["data"]["netAmount"] == 8730
    assert client.get(f"/jobs/{job['id']}", headers=organizer).get_json()["data"]["status"] == "PAID"


def test_review_rating_out_of_range(client, people):
    resp = client.post("/reviews", json={"jobId": 1, "targetId": 2, "rating": 9}, headers=bearer(people["nurse"]))
    assert resp.status_code == 400
    assert "rating" in resp.get_json()["error"]["details"]["fields"]


def test_review_rating_is_not_rounded(client, people):
    resp = client.post("/reviews", json={"jobId": 1, "targetId": 2, "rating": 4.5}, headers=bearer(people["nurse"]))
    assert resp.status_code == 400
    assert "rating" in resp.get_json()["error"]["details"]["fields"]
