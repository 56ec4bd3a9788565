"""Tests for admin session cookies and role checks."""

import base64
import json
import time

import pytest

from scidraft.admin_auth import (
    ADMIN_SESSION_COOKIE,
    AdminRole,
    decode_admin_session,
    encode_admin_session,
    hash_password,
    role_satisfies,
    verify_password,
)


def test_encode_decode_round_trip():
    value = encode_admin_session("admin@scidraft.com", "admin", timestamp=1700000000000)

    assert "=" not in value
    session = decode_admin_session(value)
    assert session.email == "admin@scidraft.com"
    assert session.role == "admin"
    assert session.timestamp == 1700000000000


def test_decode_rejects_tampered_role():
    value = encode_admin_session("mod@scidraft.com", "moderator", timestamp=1700000000000)
    padded = value + "=" * (-len(value) % 4)
    payload = json.loads(base64.urlsafe_b64decode(padded))
    payload["role"] = "super_admin"
    forged = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode().rstrip("=")

    with pytest.raises(ValueError):
        decode_admin_session(forged)


@pytest.mark.parametrize("value", ["", "not base64!", base64.urlsafe_b64encode(b"[1, 2]").decode()])
def test_decode_rejects_malformed(value):
    with pytest.raises(ValueError):
        decode_admin_session(value)


@pytest.mark.parametrize("role,required,allowed", [
    ("moderator", AdminRole.MODERATOR, True),
    ("moderator", AdminRole.ADMIN, False),
    ("admin", AdminRole.ADMIN, True),
    ("admin", AdminRole.SUPER_ADMIN, False),
    ("super_admin", AdminRole.MODERATOR, True),
    ("SUPER_ADMIN", AdminRole.SUPER_ADMIN, True),
    ("owner", AdminRole.MODERATOR, False),
    (None, AdminRole.MODERATOR, False),
])
def test_role_satisfies(role, required, allowed):
    assert role_satisfies(role, required) is allowed


def test_password_hashing():
    hashed = hash_password("correct-horse", rounds=4)
    assert verify_password("correct-horse", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("correct-horse", "not-a-bcrypt-hash")


# ============================================================================
# Session validation through the API
# ============================================================================

def test_session_endpoint_without_cookie(client):
    response = client.get("/api/admin/auth/session")
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "No admin session found"}


def test_fresh_session_is_accepted_and_refreshed(client, login_as):
    login_as("admin")

    response = client.get("/api/admin/auth/session")
    assert response.status_code == 200
    assert response.json()["admin"]["email"] == "admin@scidraft.com"
    assert ADMIN_SESSION_COOKIE in response.headers["set-cookie"]


def test_expired_session_is_rejected_and_cleared(client):
    stale = int(time.time() * 1000) - 121_000
    client.cookies.set(ADMIN_SESSION_COOKIE, encode_admin_session("admin@scidraft.com", "admin", timestamp=stale))

    response = client.get("/api/admin/stats")
    assert response.status_code == 401
    assert response.json()["error"] == "Admin session expired"
    assert "expires=Thu, 01 Jan 1970 00:00:00 GMT" in response.headers["set-cookie"]


def test_session_just_inside_timeout_is_accepted(client):
    recent = int(time.time() * 1000) - 100_000
    client.cookies.set(ADMIN_SESSION_COOKIE, encode_admin_session("admin@scidraft.com", "moderator", timestamp=recent))

    assert client.get("/api/admin/stats").status_code == 200


def test_forged_cookie_is_rejected(client):
    client.cookies.set(ADMIN_SESSION_COOKIE, "eyJlbWFpbCI6ImFAYi5jb20ifQ")

    response = client.get("/api/admin/stats")
    assert response.status_code == 401
    assert response.json()["error"] == "Admin session validation failed"


def test_insufficient_role_is_403_not_401(client, login_as):
    login_as("admin")

    response = client.delete("/api/admin/users/some-user-id")
    assert response.status_code == 403
    assert response.json()["error"] == "Insufficient permissions. Required: super_admin, User: admin"


def test_admin_responses_carry_security_headers(client):
    response = client.get("/api/admin/auth/session")
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert "no-store" in response.headers["Cache-Control"]


def test_public_responses_have_no_admin_headers(client):
    response = client.post("/api/auth/login")
    assert "X-Frame-Options" not in response.headers
