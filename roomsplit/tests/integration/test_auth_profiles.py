"""
tests/integration/test_auth_profiles.py — Auth and profile endpoints.

Endpoints covered:
  POST /auth/register, POST /auth/login, GET /auth/me
  GET /profiles, GET/PATCH /profiles/me, GET /profiles/:id
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt

from .conftest import auth_headers, pid, register


def test_register_returns_token_and_profile(client):
    data = register(client, "Asha", upi_id="asha@okaxis")

    assert data["access_token"]
    assert data["profile"]["name"] == "Asha"
    assert data["profile"]["email"] == "asha@test.com"
    assert data["profile"]["upi_id"] == "asha@okaxis"
    assert "password_hash" not in data["profile"]


def test_register_duplicate_email(client):
    register(client, "Asha")
    resp = client.post(
        "/api/v1/auth/register",
        json={"name": "Other", "email": "ASHA@test.com", "password": "Password1"},
    )
    assert resp.status_code == 409
    assert resp.get_json()["error"]["code"] == "DUPLICATE_EMAIL"


def test_register_missing_field(client):
    resp = client.post("/api/v1/auth/register", json={"name": "Asha", "password": "Password1"})
    body = resp.get_json()
    assert resp.status_code == 400
    assert body["error"]["code"] == "MISSING_FIELD"
    assert body["error"]["field"] == "email"


def test_login_and_me(client):
    register(client, "Asha")

    resp = client.post("/api/v1/auth/login", json={"email": "asha@test.com", "password": "Password1"})
    assert resp.status_code == 200
    token = resp.get_json()["data"]["access_token"]

    me = client.get("/api/v1/auth/me", headers=auth_headers(token))
    assert me.status_code == 200
    assert me.get_json()["data"]["name"] == "Asha"


def test_login_wrong_password(client):
    register(client, "Asha")
    resp = client.post("/api/v1/auth/login", json={"email": "asha@test.com", "password": "Wrong1234"})
    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "INVALID_CREDENTIALS"


def test_missing_and_bad_tokens(client):
    assert client.get("/api/v1/auth/me").get_json()["error"]["code"] == "TOKEN_MISSING"

    resp = client.get("/api/v1/auth/me", headers=auth_headers("nope"))
    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"


def test_roommates_exclude_caller(client):
    asha = register(client, "Asha")
    register(client, "Bilal")
    register(client, "Chen")

    resp = client.get("/api/v1/profiles", headers=auth_headers(asha["access_token"]))
    names = [p["name"] for p in resp.get_json()["data"]]
    assert names == ["Bilal", "Chen"]


def test_update_own_profile(client):
    asha = register(client, "Asha")
    headers = auth_headers(asha["access_token"])

    resp = client.patch("/api/v1/profiles/me", json={"name": "Asha K", "upi_id": "asha@okhdfc"}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["upi_id"] == "asha@okhdfc"

    resp = client.patch("/api/v1/profiles/me", json={"upi_id": None}, headers=headers)
    assert resp.get_json()["data"]["upi_id"] is None

    me = client.get("/api/v1/profiles/me", headers=headers).get_json()["data"]
    assert me["name"] == "Asha K"


def test_update_profile_bad_upi(client):
    asha = register(client, "Asha")
    resp = client.patch(
        "/api/v1/profiles/me",
        json={"upi_id": "nope"},
        headers=auth_headers(asha["access_token"]),
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "INVALID_UPI_ID"


def test_get_other_profile_hides_email(client):
    asha = register(client, "Asha")
    bilal = register(client, "Bilal", upi_id="bilal@okaxis")

    resp = client.get(f"/api/v1/profiles/{pid(bilal)}", headers=auth_headers(asha["access_token"]))
    data = resp.get_json()["data"]
    assert data["name"] == "Bilal"
    assert data["upi_id"] == "bilal@okaxis"
    assert "email" not in data


def test_get_missing_profile(client):
    asha = register(client, "Asha")
    resp = client.get("/api/v1/profiles/99999", headers=auth_headers(asha["access_token"]))
    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "PROFILE_NOT_FOUND"


def _token(app, **claims) -> str:
    return jwt.encode(claims, app.config["JWT_SECRET_KEY"], algorithm="HS256")


def test_expired_token(app, client):
    asha = register(client, "Asha")
    token = _token(app, sub=str(pid(asha)), exp=datetime.now(timezone.utc) - timedelta(minutes=1))

    resp = client.get("/api/v1/auth/me", headers=auth_headers(token))
    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "TOKEN_EXPIRED"


def test_token_without_subject(app, client):
    token = _token(app, exp=datetime.now(timezone.utc) + timedelta(minutes=1))

    resp = client.get("/api/v1/auth/me", headers=auth_headers(token))
    assert resp.status_code == 401
    assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"
