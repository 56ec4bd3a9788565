"""Shared fixtures: in-memory database, API client and external service fakes."""

import json
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from scidraft.admin_auth import ADMIN_SESSION_COOKIE, encode_admin_session, hash_password
from scidraft.api import app
from scidraft.database import Base, get_session, Admin, AdminManualTemplate, ManualTemplate
from scidraft.limits import limiter
from scidraft.services.cache import clear_template_cache


SAMPLE_DRAFT = {
    "title": "Determination of Acetic Acid Concentration by Titration",
    "introduction": "Titration is a quantitative technique used to determine concentration.",
    "Aims": "To determine the molarity of acetic acid in vinegar.",
    "Materials & Reagents": ["Burette", "Pipette", "0.1 M NaOH", "Phenolphthalein"],
    "Procedure": "Pipette 25 mL of diluted vinegar and titrate against NaOH.",
    "results": "Mean titre was 21.4 mL.",
    "discussion": "The endpoint was sharp and repeatable.",
    "conclusion": "The vinegar contained 0.86 M acetic acid.",
    "references": [{"author": "Vogel", "year": 1989, "title": "Quantitative Chemical Analysis"}],
}


@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Deterministic settings for every test."""
    monkeypatch.setenv("COOKIE_SECRET", "test-cookie-secret")
    monkeypatch.setenv("SD_COOKIE_SECURE", "false")
    monkeypatch.setenv("SD_ADMIN_EMAILS", "")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    for name in (
        "MPESA_CONSUMER_KEY", "MPESA_CONSUMER_SECRET", "MPESA_SHORTCODE", "MPESA_PASSKEY", "MPESA_CALLBACK_URL",
        "CONSUMER_KEY", "CONSUMER_SECRET", "BUSINESS_SHORT_CODE", "PASSKEY", "CALLBACK_URL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def engine():
    """In-memory SQLite engine shared across connections."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    """Session used by tests to seed and inspect data."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def file_session_factory(tmp_path):
    """Sessions on a file-backed SQLite database; each thread gets its own connection."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'scidraft.db'}",
        connect_args={"check_same_thread": False, "timeout": 10},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def client(session_factory):
    """API client bound to the in-memory database."""

    def override_get_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_session] = override_get_session
    limiter.reset()
    clear_template_cache()

    yield TestClient(app)

    app.dependency_overrides.clear()


# ============================================================================
# Seed helpers
# ============================================================================

@pytest.fixture
def session_id():
    return str(uuid.uuid4())


@pytest.fixture
def manual(db, session_id):
    """A session whose manual text and results are ready for drafting."""
    row = ManualTemplate(
        session_id=session_id,
        manual_url="https://storage.example/manuals/titration.pdf",
        parsed_text="Titrate 25 mL of vinegar against 0.1 M NaOH using phenolphthalein.",
        results="Titres: 21.3, 21.5, 21.4 mL",
        practical_title="Acid-base titration",
        practical_number=3,
        unit_code="CHEM101",
        subject="Chemistry",
    )
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def admin_template(db):
    row = AdminManualTemplate(
        unit_name="Analytical Chemistry",
        unit_code="CHEM101",
        practical_title="Acid-base titration",
        practical_number=3,
        year=2,
        subject="Chemistry",
        practical_content="Step 1:\r\n\r\n\r\n\tPipette   25 mL of vinegar.\r\nStep 2: Titrate.   ",
    )
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def make_admin(db):
    """Create an admin account; bcrypt cost is kept low for speed."""

    def _make(email="admin@scidraft.com", role="admin", password="correct-horse"):
        admin = Admin(
            email=email,
            role=role,
            name=f"{role.title()} User",
            password_hash=hash_password(password, rounds=4),
        )
        db.add(admin)
        db.commit()
        return admin

    return _make


@pytest.fixture
def login_as(client):
    """Attach a signed admin-session cookie for the given role."""

    def _login(role="admin", email=None):
        email = email or f"{role}@scidraft.com"
        # Drop refreshed cookies issued for a previous role
        client.cookies.clear()
        client.cookies.set(ADMIN_SESSION_COOKIE, encode_admin_session(email, role))
        return client

    return _login


@pytest.fixture
def fake_llm(monkeypatch):
    """Replace the OpenAI call with a canned JSON response."""
    calls = []

    def _install(payload=SAMPLE_DRAFT, cost=0.0012):
        def fake_call_llm(prompt, **kwargs):
            calls.append(prompt)
            text = payload if isinstance(payload, str) else json.dumps(payload)
            return text, cost

        monkeypatch.setattr("scidraft.llm.call_llm", fake_call_llm)
        return calls

    return _install


@pytest.fixture
def mpesa_env(monkeypatch):
    monkeypatch.setenv("MPESA_CONSUMER_KEY", "key")
    monkeypatch.setenv("MPESA_CONSUMER_SECRET", "secret")
    monkeypatch.setenv("MPESA_SHORTCODE", "174379")
    monkeypatch.setenv("MPESA_PASSKEY", "passkey")
    monkeypatch.setenv("MPESA_CALLBACK_URL", "https://scidraft.example/api/payments/mpesa/callback")
