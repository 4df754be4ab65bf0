# tests/test_auth.py
import json
from urllib.parse import parse_qs, unquote, urlparse

import pytest

from healthcomm import models
from healthcomm.main import app
from healthcomm.security import resolve_admin, resolve_user
from healthcomm.token_codec import StructuralTokenCodec

from conftest import ADMIN_PASSWORD, USER_PASSWORD, make_user


# --- Session validation ---

def test_resolve_user_with_valid_credential(db, admin_user):
    codec = StructuralTokenCodec()
    user, error = resolve_user(db, codec.encode(admin_user.id, "admin"), codec)
    assert error is None
    assert user.id == admin_user.id


def test_resolve_user_invalid_token(db):
    user, error = resolve_user(db, "garbage", StructuralTokenCodec())
    assert user is None
    assert error == "invalid token"


def test_resolve_user_unknown_user(db):
    user, error = resolve_user(db, "no-such-user-id:admin:1", StructuralTokenCodec())
    assert user is None
    assert error == "user not found"


def test_resolve_admin_uses_stored_role_not_claimed_role(db, regular_user):
    codec = StructuralTokenCodec()
    forged = f"{regular_user.id}:admin:1700000000000"
    user, error = resolve_admin(db, forged, codec)
    assert user is None
    assert error == "admin access required"


def test_resolve_admin_accepts_admin(db, admin_user):
    codec = StructuralTokenCodec()
    user, error = resolve_admin(db, codec.encode(admin_user.id, "admin"), codec)
    assert error is None
    assert user.username == "admin"


# --- Login / logout / validate ---

def test_login_success_sets_both_cookies(client, admin_user):
    response = client.post("/api/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Login successful"
    assert body["user"]["username"] == "admin"
    assert body["user"]["role"] == "admin"
    assert "password" not in json.dumps(body["user"]).lower()
    assert body["token"]

    set_cookies = response.headers.get_list("set-cookie")
    auth_cookie = next(c for c in set_cookies if c.startswith("auth-token="))
    session_cookie = next(c for c in set_cookies if c.startswith("user-session="))
    assert "HttpOnly" in auth_cookie
    assert "HttpOnly" not in session_cookie
    for cookie in (auth_cookie, session_cookie):
        assert "Path=/" in cookie
        assert "Max-Age=604800" in cookie
        assert "SameSite=lax" in cookie

    session_value = session_cookie.split(";", 1)[0].split("=", 1)[1]
    session = json.loads(unquote(session_value))
    assert session["username"] == "admin"
    assert "passwordHash" not in session


def test_login_wrong_password_and_unknown_user_are_indistinguishable(client, admin_user):
    wrong_password = client.post("/api/auth/login", json={"username": "admin", "password": "nope"})
    unknown_user = client.post("/api/auth/login", json={"username": "ghost", "password": "nope"})
    assert wrong_password.status_code == unknown_user.status_code == 401
    assert wrong_password.json() == unknown_user.json() == {"error": "Invalid username or password"}
    assert "auth-token" not in wrong_password.cookies


def test_login_requires_username_and_password(client):
    response = client.post("/api/auth/login", json={"username": "admin"})
    assert response.status_code == 400
    assert "error" in response.json()


def test_login_writes_audit_entry(client, db, admin_user):
    client.post("/api/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD})
    entries = db.query(models.AuditLog).filter(models.AuditLog.action == models.AuditAction.LOGIN).all()
    assert len(entries) == 1
    assert entries[0].username == "admin"


def test_validate_returns_current_user(admin_client):
    response = admin_client.get("/api/auth/validate")
    assert response.status_code == 200
    assert response.json()["valid"] is True
    assert response.json()["user"]["username"] == "admin"


def test_validate_accepts_bearer_header(client, admin_user):
    token = client.post(
        "/api/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD}
    ).json()["token"]
    client.cookies.clear()
    response = client.get("/api/auth/validate", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200


def test_validate_rejects_invalid_credential(client, db):
    client.cookies.set("auth-token", "not-a-real-token-value")
    response = client.get("/api/auth/validate")
    assert response.status_code == 401
    assert response.json() == {"error": "invalid token"}


def test_logout_clears_cookies(admin_client):
    response = admin_client.post("/api/auth/logout")
    assert response.status_code == 200
    assert response.json() == {"message": "Logged out successfully"}
    set_cookies = response.headers.get_list("set-cookie")
    assert any(c.startswith("auth-token=") and "Max-Age=0" in c for c in set_cookies)
    assert any(c.startswith("user-session=") and "Max-Age=0" in c for c in set_cookies)

    assert admin_client.get("/api/patients").status_code == 401


def test_deleted_user_credential_is_rejected(client, db):
    user = make_user(db, "temp", USER_PASSWORD)
    client.post("/api/auth/login", json={"username": "temp", "password": USER_PASSWORD})
    db.delete(user)
    db.commit()
    response = client.get("/api/patients")
    assert response.status_code == 401
    assert response.json() == {"error": "user not found"}


# --- Middleware gate ---

def test_protected_api_without_credential_is_401(client):
    for path in ("/api/patients", "/api/communications", "/api/settings", "/api/analytics", "/api/users"):
        response = client.get(path)
        assert response.status_code == 401, path
        assert response.json() == {"error": "Authentication required"}


def test_protected_page_redirects_to_login_with_original_path(client):
    response = client.get("/dashboard", follow_redirects=False)
    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    assert location.path == "/login"
    assert parse_qs(location.query) == {"redirect": ["/dashboard"]}


def test_public_paths_need_no_credential(client):
    assert client.get("/").status_code == 200
    assert client.get("/login").status_code == 200
    assert client.get("/api/health").status_code == 200


def test_login_page_redirects_authenticated_caller(admin_client):
    response = admin_client.get("/login", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "/dashboard"


def test_security_headers_on_every_response(client):
    for path in ("/", "/api/health", "/api/patients"):
        response = client.get(path)
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
        assert response.headers["X-XSS-Protection"] == "1; mode=block"


def test_cors_headers_reflect_origin_on_api_only(client):
    api = client.get("/api/health", headers={"Origin": "https://portal.example.com"})
    assert api.headers["Access-Control-Allow-Origin"] == "https://portal.example.com"
    assert api.headers["Access-Control-Allow-Credentials"] == "true"

    page = client.get("/", headers={"Origin": "https://portal.example.com"})
    assert "Access-Control-Allow-Origin" not in page.headers


def test_cors_preflight_is_answered_without_credential(client):
    response = client.options("/api/patients", headers={
        "Origin": "https://portal.example.com",
        "Access-Control-Request-Method": "POST",
        "Access-Control-Request-Headers": "Authorization",
    })
    assert response.status_code == 200
    assert response.headers["Access-Control-Allow-Origin"] == "https://portal.example.com"
    assert response.headers["Access-Control-Allow-Methods"] == "GET, POST, PUT, DELETE, OPTIONS"
    assert "Authorization" in response.headers["Access-Control-Allow-Headers"]
    assert response.headers["X-Frame-Options"] == "DENY"


@pytest.fixture
def failing_route():
    def explode():
        raise RuntimeError("boom")

    app.add_api_route("/api/explode", explode)
    yield "/api/explode"
    app.router.routes.pop()


def test_unhandled_error_keeps_security_and_cors_headers(client, failing_route):
    response = client.get(failing_route, headers={"Origin": "https://portal.example.com"})
    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["Access-Control-Allow-Origin"] == "https://portal.example.com"
