"""Tests for full report generation, user report lists, templates and feedback."""

import asyncio
import time

import httpx
import pytest

from scidraft.api import app
from scidraft.database import AdminManualTemplate, Feedback, Payment, Report, User, get_session
from scidraft.routers.reports import FALLBACK_WARNING
from scidraft.schemas import STUDENT_INPUT_REQUIRED


@pytest.fixture
def paid(db, session_id):
    db.add(Payment(session_id=session_id, amount=50, status="success", checkout_request_id="ws_CO_1", mpesa_code="QKT1"))
    db.commit()


@pytest.fixture
def signed_in(monkeypatch, client):
    """Resolve the bearer token 'student-token' to a confirmed user."""

    def fake_fetch_auth_user(token):
        if token != "student-token":
            return None
        return {
            "id": "user-1",
            "email": "student@uni.ac.ke",
            "email_confirmed_at": "2026-01-10T08:00:00Z",
            "last_sign_in_at": "2026-10-19T09:00:00Z",
        }

    monkeypatch.setattr("scidraft.auth.fetch_auth_user", fake_fetch_auth_user)
    client.headers["Authorization"] = "Bearer student-token"
    return client


# ============================================================================
# Full report
# ============================================================================

def test_full_report_requires_payment(client, manual, session_id):
    response = client.post("/api/generate-full-report", json={"sessionId": session_id})
    assert response.status_code == 403


def test_full_report_requires_session_id(client):
    response = client.post("/api/generate-full-report", json={})
    assert response.status_code == 400
    assert response.json()["error"] == "Session ID is required for tracking"


def test_full_report_fallback_without_api_key(client, db, manual, paid, session_id):
    response = client.post("/api/generate-full-report", json={"sessionId": session_id, "subject": "Chemistry"})

    assert response.status_code == 200
    body = response.json()
    assert body["warning"] == FALLBACK_WARNING
    assert body["metadata"]["aiService"] == "fallback"
    assert body["content"]["title"] == "Chemistry Lab Report"
    assert body["content"]["procedures"] == manual.parsed_text

    db.expire_all()
    report = db.query(Report).filter(Report.session_id == session_id).one()
    assert report.status == "completed"
    assert report.content["title"] == "Chemistry Lab Report"


def test_full_report_with_llm(client, manual, paid, session_id, monkeypatch, fake_llm):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    fake_llm({
        "title": "Acetic acid in vinegar",
        "introduction": "Intro",
        "objectives": ["Determine molarity"],
        "materials": "Burette",
        "procedures": "Titrate",
        "results": "21.4 mL",
        "discussion": "Good agreement",
        "conclusion": "0.86 M",
        "recommendations": ["Use a pH meter"],
        "references": [{"author": "Vogel", "year": 1989, "title": "Quantitative Chemical Analysis"}],
    })

    response = client.post("/api/generate-full-report", json={"sessionId": session_id})

    body = response.json()
    assert response.status_code == 200
    assert "warning" not in body
    assert body["metadata"]["aiService"] == "openai"
    assert body["content"]["materials"] == ["Burette"]
    assert body["content"]["references"][0]["author"] == "Vogel"


def test_full_report_unparseable_output_uses_placeholder(client, manual, paid, session_id, monkeypatch, fake_llm):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    fake_llm("not json")

    response = client.post("/api/generate-full-report", json={"sessionId": session_id, "subject": "Physics"})

    content = response.json()["content"]
    assert content["title"] == "Physics Lab Report"
    assert content["introduction"] == STUDENT_INPUT_REQUIRED


def test_full_report_missing_manual(client, paid, session_id):
    response = client.post("/api/generate-full-report", json={"sessionId": session_id})
    assert response.status_code == 400


# ============================================================================
# User reports
# ============================================================================

def test_my_reports_requires_auth(client):
    response = client.get("/api/reports")
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_my_reports_lists_only_own_live_reports(signed_in, db):
    db.add_all([
        Report(session_id="s-1", user_id="user-1", title="Mine", status="completed", admin_notes="internal"),
        Report(session_id="s-2", user_id="user-1", title="Removed", status="deleted"),
        Report(session_id="s-3", user_id="user-2", title="Someone else's"),
    ])
    db.commit()

    response = signed_in.get("/api/reports")

    assert response.status_code == 200
    data = response.json()["data"]
    assert [r["title"] for r in data] == ["Mine"]
    assert "admin_notes" not in data[0]
    assert db.query(User).filter(User.id == "user-1").one().email == "student@uni.ac.ke"


def test_slow_auth_lookups_do_not_block_other_requests(monkeypatch, file_session_factory):
    auth_delay = 0.5

    def slow_fetch_auth_user(token):
        time.sleep(auth_delay)
        return {"id": "user-1", "email": "student@uni.ac.ke", "email_confirmed_at": "2026-01-10T08:00:00Z"}

    monkeypatch.setattr("scidraft.auth.fetch_auth_user", slow_fetch_auth_user)

    seed = file_session_factory()
    seed.add(User(id="user-1", email="student@uni.ac.ke"))
    seed.commit()
    seed.close()

    def override_get_session():
        session = file_session_factory()
        try:
            yield session
        finally:
            session.close()

    async def list_reports_concurrently(count):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
            return await asyncio.gather(*[
                http.get("/api/reports", headers={"Authorization": "Bearer student-token"})
                for _ in range(count)
            ])

    app.dependency_overrides[get_session] = override_get_session
    try:
        started = time.perf_counter()
        responses = asyncio.run(list_reports_concurrently(3))
        elapsed = time.perf_counter() - started
    finally:
        app.dependency_overrides.clear()

    assert [r.status_code for r in responses] == [200, 200, 200]
    assert elapsed < auth_delay * 2.5


def test_invalid_token_is_rejected(signed_in):
    signed_in.headers["Authorization"] = "Bearer expired"
    assert signed_in.get("/api/reports").status_code == 401


def test_unconfirmed_email_is_rejected(client, monkeypatch):
    monkeypatch.setattr(
        "scidraft.auth.fetch_auth_user",
        lambda token: {"id": "user-9", "email": "new@uni.ac.ke", "email_confirmed_at": None},
    )
    client.cookies.set("sb-access-token", "token")

    response = client.get("/api/reports")
    assert response.status_code == 401
    assert response.json()["error"] == "Email not confirmed"


# ============================================================================
# Templates
# ============================================================================

@pytest.fixture
def catalog(db):
    db.add_all([
        AdminManualTemplate(unit_name="Analytical Chemistry", unit_code="CHEM101", practical_title="Acid-base titration", year=1, practical_content="..."),
        AdminManualTemplate(unit_name="Analytical Chemistry", unit_code="CHEM201", practical_title="Redox titration", year=2, practical_content="..."),
        AdminManualTemplate(unit_name="Cell Biology", unit_code="BIO110", practical_title="Osmosis", year=1, practical_content="..."),
    ])
    db.commit()


def test_templates_search(client, catalog):
    response = client.get("/api/templates", params={"q": "TITRATION"})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert {t["practical_title"] for t in body["data"]} == {"Acid-base titration", "Redox titration"}
    assert "practical_content" not in body["data"][0]


def test_templates_year_filter_and_paging(client, catalog):
    body = client.get("/api/templates", params={"year": 1, "pageSize": 1}).json()
    assert body["total"] == 2
    assert len(body["data"]) == 1

    assert client.get("/api/templates", params={"q": "bio110"}).json()["total"] == 1


def test_templates_results_are_cached(client, db, catalog):
    assert client.get("/api/templates", params={"q": "osmosis"}).json()["total"] == 1

    db.add(AdminManualTemplate(unit_name="Plant Biology", practical_title="Osmosis in onion cells", practical_content="..."))
    db.commit()

    # Served from cache until the entry expires
    assert client.get("/api/templates", params={"q": "Osmosis "}).json()["total"] == 1


def test_templates_invalid_page(client):
    assert client.get("/api/templates", params={"page": 0}).status_code == 400


# ============================================================================
# Feedback
# ============================================================================

def test_submit_feedback(client, db):
    response = client.post("/api/feedback", json={"rating": 5, "comment": "  Saved me hours  "})

    assert response.status_code == 200
    feedback = db.query(Feedback).one()
    assert feedback.rating == 5
    assert feedback.comment == "Saved me hours"
    assert feedback.user_id is None


@pytest.mark.parametrize("rating", [0, 6, 4.5, "5", None, True])
def test_submit_feedback_invalid_rating(client, rating):
    response = client.post("/api/feedback", json={"rating": rating})
    assert response.status_code == 400
    assert "between 1 and 5" in response.json()["error"]


def test_submit_feedback_comment_too_long(client):
    response = client.post("/api/feedback", json={"rating": 4, "comment": "x" * 2001})
    assert response.status_code == 400
