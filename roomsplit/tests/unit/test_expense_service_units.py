"""
tests/unit/test_expense_service_units.py — Unit tests for expense_service.

MagicMock session; no database, no Flask app.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from roomsplit.app.errors import AuthorizationError, ErrorCode, NotFoundError, ValidationError
from roomsplit.app.models.expense import Category, Expense
from roomsplit.app.models.notification import NotificationType
from roomsplit.app.models.participant import ExpenseParticipant
from roomsplit.app.services import expense_service

A, B, C = 1, 2, 3


def _session_with_profiles(*profile_ids) -> MagicMock:
    session = MagicMock()
    session.execute.return_value.scalars.return_value.all.return_value = list(profile_ids)
    return session


def _row(participant_id: int, settled: bool = False) -> MagicMock:
    r = MagicMock()
    r.participant_id = participant_id
    r.settlement_status = settled
    return r


# ── _normalize_participants ────────────────────────────────────────────────

def test_empty_participants_rejected():
    with pytest.raises(ValidationError) as exc_info:
        expense_service._normalize_participants(A, [])
    assert exc_info.value.code == ErrorCode.EMPTY_PARTICIPANTS
    assert exc_info.value.http_status == 422


def test_buyer_and_duplicates_removed():
    assert expense_service._normalize_participants(A, [B, A, C, B]) == [B, C]


def test_buyer_only_selection_is_allowed():
    assert expense_service._normalize_participants(A, [A]) == []


# ── create_expense ─────────────────────────────────────────────────────────

def test_create_expense_rejects_non_positive_amount():
    with pytest.raises(ValidationError):
        expense_service.create_expense(
            A,
            {"title": "Milk", "amount": Decimal("0"), "participant_ids": [B]},
            MagicMock(),
        )


def test_create_expense_unknown_participant():
    session = _session_with_profiles(B)

    with pytest.raises(NotFoundError) as exc_info:
        expense_service.create_expense(
            A,
            {"title": "Milk", "amount": Decimal("30.00"), "participant_ids": [B, 99]},
            session,
        )

    assert exc_info.value.code == ErrorCode.PROFILE_NOT_FOUND
    session.add.assert_not_called()


def test_create_expense_writes_rows_and_notifies():
    session = _session_with_profiles(B, C)

    expense, notifications = expense_service.create_expense(
        A,
        {
            "title": "  Groceries ",
            "amount": Decimal("300.00"),
            "category": Category.FOOD,
            "participant_ids": [A, B, C],
        },
        session,
    )

    added = [c.args[0] for c in session.add.call_args_list]
    assert isinstance(added[0], Expense)
    assert added[0] is expense
    assert expense.title == "Groceries"
    assert expense.buyer_id == A
    assert expense.category == Category.FOOD

    rows = [obj for obj in added if isinstance(obj, ExpenseParticipant)]
    assert [r.participant_id for r in rows] == [B, C]
    assert all(r.settlement_status is False for r in rows)

    session.commit.assert_not_called()
    assert [n["recipient_id"] for n in notifications] == [B, C]
    assert all(n["type"] == NotificationType.EXPENSE_CREATED for n in notifications)
    assert all(n["amount"] == Decimal("100") for n in notifications)


def test_buyer_only_expense_sends_no_notifications():
    session = _session_with_profiles()

    _, notifications = expense_service.create_expense(
        A,
        {"title": "Plant", "amount": Decimal("12.00"), "participant_ids": [A]},
        session,
    )

    assert notifications == []


# ── get_expense ────────────────────────────────────────────────────────────

def test_get_expense_missing():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(NotFoundError) as exc_info:
        expense_service.get_expense(5, A, session)
    assert exc_info.value.code == ErrorCode.EXPENSE_NOT_FOUND


def test_get_expense_rejects_outsider():
    expense = MagicMock()
    expense.id = 5
    expense.buyer_id = A
    session = MagicMock()
    session.get.return_value = expense

    with patch(
        "roomsplit.app.services.balance_service.get_participants",
        return_value={5: [_row(B)]},
    ):
        with pytest.raises(AuthorizationError):
            expense_service.get_expense(5, C, session)


# ── serialize_expense ──────────────────────────────────────────────────────

def _expense(amount: str = "300.00") -> MagicMock:
    e = MagicMock()
    e.id = 1
    e.title = "Groceries"
    e.amount = Decimal(amount)
    e.category = Category.FOOD
    e.buyer_id = A
    e.created_at = None
    return e


def test_serialize_counts_non_buyer_participants():
    data = expense_service.serialize_expense(
        _expense(),
        [_row(B, settled=True), _row(C)],
        [],
        {A: "Asha", B: "Bilal", C: "Chen"},
    )

    assert data["participant_count"] == 3
    assert data["share"] == "100.00"
    assert data["settled_count"] == 1
    assert data["total_count"] == 2
    assert data["is_fully_settled"] is False
    assert data["participants"][0] == {
        "participant_id": A,
        "name": "Asha",
        "role": "buyer",
        "settled": True,
        "share": "100.00",
    }


def test_serialize_buyer_only_is_fully_settled():
    data = expense_service.serialize_expense(_expense("80.00"), [], [], {A: "Asha"})

    assert data["participant_count"] == 1
    assert data["share"] == "80.00"
    assert data["settled_count"] == 0
    assert data["total_count"] == 0
    assert data["is_fully_settled"] is True
