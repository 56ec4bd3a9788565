"""Tests for draft generation, status polling and the paid draft view."""

import uuid

from scidraft.database import Draft, Notification, Payment, Report
from scidraft.limits import PAID_SESSION_COOKIE, sign_paid_session

from conftest import SAMPLE_DRAFT


# ============================================================================
# Generation
# ============================================================================

def test_generate_draft_success(client, db, manual, session_id, fake_llm):
    calls = fake_llm()

    response = client.post("/api/generate-draft", json={"sessionId": session_id, "images": [{"name": "setup.png"}]})

    assert response.status_code == 200
    assert response.json() == {"success": True, "sessionId": session_id, "data": {"status": "completed"}}
    assert "setup.png" in calls[0]
    assert manual.parsed_text in calls[0]

    db.expire_all()
    draft = db.query(Draft).filter(Draft.session_id == session_id).one()
    assert draft.status == "completed"
    assert draft.draft["title"] == SAMPLE_DRAFT["title"]
    assert draft.draft["objectives"] == SAMPLE_DRAFT["Aims"]

    report = db.query(Report).filter(Report.session_id == session_id).one()
    assert report.status == "draft"
    assert report.title == SAMPLE_DRAFT["title"]
    assert report.results_json == {"results": manual.results, "images": ["setup.png"]}
    assert report.details["cost_usd"] == 0.0012
    assert db.query(Notification).filter(Notification.type == "draft").count() == 1


def test_generate_draft_accepts_ai_data_wrapper(client, manual, session_id, fake_llm):
    fake_llm()

    response = client.post("/api/generate-draft", json={"aiData": {"sessionId": session_id}})
    assert response.status_code == 200


def test_regenerating_keeps_one_row_per_session(client, db, manual, session_id, fake_llm):
    fake_llm()

    for _ in range(3):
        assert client.post("/api/generate-draft", json={"sessionId": session_id}).status_code == 200

    assert db.query(Draft).filter(Draft.session_id == session_id).count() == 1
    assert db.query(Report).filter(Report.session_id == session_id).count() == 1


def test_generate_draft_rejects_invalid_session_id(client, fake_llm):
    calls = fake_llm()

    response = client.post("/api/generate-draft", json={"sessionId": "not-a-uuid"})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["errorType"] == "validation_error"
    assert "sessionId" in body["error"]
    assert calls == []


def test_generate_draft_without_manual_marks_failed(client, db, session_id, fake_llm):
    fake_llm()

    response = client.post("/api/generate-draft", json={"sessionId": session_id})

    assert response.status_code == 400
    assert response.json()["error"] == "Manual template not found for this session"

    db.expire_all()
    assert db.query(Draft).filter(Draft.session_id == session_id).one().status == "failed"


def test_generate_draft_without_results(client, db, manual, session_id, fake_llm):
    manual.results = None
    db.commit()
    fake_llm()

    response = client.post("/api/generate-draft", json={"sessionId": session_id})

    assert response.status_code == 400
    assert "Please complete previous steps" in response.json()["error"]


def test_generate_draft_unparseable_output(client, db, manual, session_id, fake_llm):
    fake_llm("I'm sorry, I can't write that report.")

    response = client.post("/api/generate-draft", json={"sessionId": session_id})

    assert response.status_code == 422
    assert response.json()["errorType"] == "parsing_error"
    db.expire_all()
    assert db.query(Draft).filter(Draft.session_id == session_id).one().status == "failed"


def test_generate_draft_incomplete_output(client, manual, session_id, fake_llm):
    fake_llm({"title": "Titration of vinegar", "introduction": "Intro only"})

    response = client.post("/api/generate-draft", json={"sessionId": session_id})

    assert response.status_code == 422
    assert response.json()["errorType"] == "validation_error"


def test_generate_draft_without_api_key(client, db, manual, session_id):
    response = client.post("/api/generate-draft", json={"sessionId": session_id})

    assert response.status_code == 500
    assert response.json()["errorType"] == "configuration_error"


# ============================================================================
# Status
# ============================================================================

def test_draft_status(client, db, session_id):
    assert client.get("/api/drafts/status").status_code == 400

    response = client.get("/api/drafts/status", params={"sessionId": session_id})
    assert response.status_code == 404
    assert response.json()["error"] == "Draft not found"

    db.add(Draft(session_id=session_id, status="processing"))
    db.commit()

    response = client.get("/api/drafts/status", params={"sessionId": session_id})
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "processing"


# ============================================================================
# Paid view
# ============================================================================

def _completed_draft(db, session_id):
    db.add(Draft(session_id=session_id, status="completed", draft={"title": SAMPLE_DRAFT["title"]}))
    db.commit()


def test_view_requires_payment(client, db, session_id):
    _completed_draft(db, session_id)

    response = client.get("/api/drafts/view", params={"sessionId": session_id})
    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "Payment required"}


def test_view_missing_draft_is_not_found_before_payment(client, session_id):
    response = client.get("/api/drafts/view", params={"sessionId": session_id})

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Draft not found"}


def test_view_with_recent_successful_payment(client, db, session_id):
    _completed_draft(db, session_id)
    db.add(Payment(session_id=session_id, amount=50, status="success", checkout_request_id="ws_CO_1", mpesa_code="QKT1"))
    db.commit()

    response = client.get("/api/drafts/view", params={"sessionId": session_id})
    assert response.status_code == 200
    assert response.json()["data"]["draft"]["title"] == SAMPLE_DRAFT["title"]


def test_view_with_paid_cookie(client, db, session_id):
    _completed_draft(db, session_id)
    client.cookies.set(PAID_SESSION_COOKIE, sign_paid_session(session_id))

    assert client.get("/api/drafts/view", params={"sessionId": session_id}).status_code == 200


def test_paid_cookie_does_not_unlock_other_sessions(client, db, session_id):
    other = str(uuid.uuid4())
    _completed_draft(db, other)
    client.cookies.set(PAID_SESSION_COOKIE, sign_paid_session(session_id))

    assert client.get("/api/drafts/view", params={"sessionId": other}).status_code == 403


def test_pending_payment_does_not_unlock(client, db, session_id):
    _completed_draft(db, session_id)
    db.add(Payment(session_id=session_id, amount=50, status="pending", checkout_request_id="ws_CO_2"))
    db.commit()

    assert client.get("/api/drafts/view", params={"sessionId": session_id}).status_code == 403


def test_view_is_rate_limited(client, db, session_id):
    _completed_draft(db, session_id)
    other = str(uuid.uuid4())

    statuses = [client.get("/api/drafts/view", params={"sessionId": session_id}).status_code for _ in range(21)]

    assert statuses[:20] == [403] * 20
    assert statuses[20] == 429
    assert client.get("/api/drafts/status", params={"sessionId": other}).status_code == 404
