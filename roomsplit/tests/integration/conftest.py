"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing"), which
    points at TEST_DATABASE_URL or an in-memory SQLite database.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.

Helper functions (not fixtures) are provided for common operations:
  - register(client, ...)      → dict with profile + access_token
  - auth_headers(token)        → {"Authorization": "Bearer <token>"}
  - make_expense(...)          → HTTP response
  - settle(...)                → HTTP response
  - get_balances(...)          → data dict of GET /balances

These are plain functions so they can be called with arbitrary arguments.
"""

from __future__ import annotations

import pytest
from sqlalchemy import text

from roomsplit.app import create_app
from roomsplit.app.extensions import db as _db


@pytest.fixture(scope="session")
def app():
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows after every test, children before parents."""
    yield

    with app.app_context():
        _db.session.rollback()
        for table in (
            "notifications",
            "settlements",
            "expense_participants",
            "expenses",
            "profiles",
        ):
            _db.session.execute(text(f"DELETE FROM {table}"))
        _db.session.commit()


@pytest.fixture
def client(app):
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def register(
    client,
    name: str = "alice",
    email: str | None = None,
    password: str = "Password1",
    upi_id: str | None = None,
) -> dict:
    """
    Registers a profile and returns the response data dict.
    Returns: {"profile": {...}, "access_token": "..."}
    """
    if email is None:
        email = f"{name.lower()}@test.com"
    payload = {"name": name, "email": email, "password": password}
    if upi_id is not None:
        payload["upi_id"] = upi_id
    resp = client.post("/api/v1/auth/register", json=payload)
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()["data"]


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def pid(user: dict) -> int:
    """Profile id of a register() result."""
    return user["profile"]["id"]


def make_expense(
    client,
    buyer: dict,
    amount: str,
    participants: list[dict],
    title: str = "Groceries",
    category: str = "food",
):
    """Creates an expense bought by `buyer` and returns the HTTP response."""
    return client.post(
        "/api/v1/expenses",
        json={
            "title": title,
            "amount": amount,
            "category": category,
            "participant_ids": [pid(p) for p in participants],
        },
        headers=auth_headers(buyer["access_token"]),
    )


def settle(client, caller: dict, expense_id: int, participant: dict):
    """Individual settlement of `participant`'s share, performed by `caller`."""
    return client.post(
        f"/api/v1/expenses/{expense_id}/participants/{pid(participant)}/settle",
        headers=auth_headers(caller["access_token"]),
    )


def get_balances(client, user: dict) -> dict:
    resp = client.get("/api/v1/balances", headers=auth_headers(user["access_token"]))
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["data"]


def balance_with(balances: dict, other: dict) -> dict | None:
    """The caller's balance row against `other`, or None if it was dropped."""
    for row in balances["balances"]:
        if row["counterparty_id"] == pid(other):
            return row
    return None
