"""
tests/unit/test_settlement_service_units.py — Unit tests for settlement_service.

Covers the guard clauses and the write path of both settlement actions with a
MagicMock session. Row loading (balance_service) and profile lookups are
patched, so no database and no Flask app are needed.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlsplit

import pytest
from sqlalchemy.exc import OperationalError

from roomsplit.app.errors import (
    AppError,
    AuthorizationError,
    ConsistencyError,
    ErrorCode,
    NotFoundError,
    ValidationError,
    WarningCode,
)
from roomsplit.app.models.notification import NotificationType
from roomsplit.app.models.settlement import Settlement, SettlementType
from roomsplit.app.services import settlement_service

A, B, C, D = 1, 2, 3, 4

_PARTICIPANTS = "roomsplit.app.services.balance_service.get_participants"
_SETTLEMENTS = "roomsplit.app.services.balance_service.get_settlements_for_expenses"
_LEDGER = "roomsplit.app.services.balance_service.load_ledger"
_PROFILE = "roomsplit.app.services.settlement_service.get_profile_or_404"


def _expense(expense_id: int, buyer_id: int, amount: str, title: str = "Groceries") -> MagicMock:
    e = MagicMock()
    e.id = expense_id
    e.buyer_id = buyer_id
    e.amount = Decimal(amount)
    e.title = title
    return e


def _row(participant_id: int, settled: bool = False) -> MagicMock:
    r = MagicMock()
    r.participant_id = participant_id
    r.settlement_status = settled
    return r


def _profile(profile_id: int, name: str, upi_id: str | None = None) -> MagicMock:
    p = MagicMock()
    p.id = profile_id
    p.name = name
    p.upi_id = upi_id
    return p


def _session_with(*expenses) -> MagicMock:
    by_id = {e.id: e for e in expenses}
    session = MagicMock()
    session.get.side_effect = lambda model, key: by_id.get(key)
    return session


def _added(session) -> list:
    return [c.args[0] for c in session.add.call_args_list]


# ═══════════════════════════════════════════════════════════════════════════
# settle_participant
# ═══════════════════════════════════════════════════════════════════════════

def test_settle_participant_missing_expense():
    session = _session_with()

    with pytest.raises(NotFoundError) as exc_info:
        settlement_service.settle_participant(99, B, B, session)

    assert exc_info.value.code == ErrorCode.EXPENSE_NOT_FOUND
    assert exc_info.value.http_status == 404


def test_settle_participant_rejects_outsider():
    session = _session_with(_expense(1, A, "300.00"))

    with pytest.raises(AuthorizationError) as exc_info:
        settlement_service.settle_participant(1, B, C, session)

    assert exc_info.value.http_status == 403
    session.add.assert_not_called()


def test_settle_participant_rejects_buyer_share():
    session = _session_with(_expense(1, A, "300.00"))

    with pytest.raises(ValidationError) as exc_info:
        settlement_service.settle_participant(1, A, A, session)

    assert exc_info.value.code == ErrorCode.BUYER_ALWAYS_SETTLED


def test_settle_participant_missing_row():
    session = _session_with(_expense(1, A, "300.00"))

    with patch(_PARTICIPANTS, return_value={1: [_row(C)]}):
        with pytest.raises(NotFoundError) as exc_info:
            settlement_service.settle_participant(1, B, A, session)

    assert exc_info.value.code == ErrorCode.PARTICIPANT_NOT_FOUND


def test_participant_settles_own_share():
    expense = _expense(1, A, "300.00")
    row_b = _row(B)
    session = _session_with(expense)

    with patch(_PARTICIPANTS, return_value={1: [row_b, _row(C)]}), \
            patch(_SETTLEMENTS, return_value={}):
        settlement, warnings, notifications = settlement_service.settle_participant(1, B, B, session)

    assert warnings == []
    assert row_b.settlement_status is True

    assert isinstance(settlement, Settlement)
    assert _added(session) == [settlement]
    assert settlement.payer_id == B
    assert settlement.payee_id == A
    assert settlement.amount == Decimal("100.00")
    assert settlement.expense_id == 1
    assert settlement.settlement_type == SettlementType.INDIVIDUAL
    assert settlement.is_settled is True
    session.flush.assert_called_once()
    session.commit.assert_not_called()

    assert len(notifications) == 1
    assert notifications[0]["type"] == NotificationType.INDIVIDUAL_SETTLEMENT
    assert notifications[0]["recipient_id"] == A
    assert notifications[0]["sender_id"] == B


def test_buyer_marks_participant_paid():
    session = _session_with(_expense(1, A, "300.00"))

    with patch(_PARTICIPANTS, return_value={1: [_row(B), _row(C)]}), \
            patch(_SETTLEMENTS, return_value={}):
        _, _, notifications = settlement_service.settle_participant(1, C, A, session)

    assert notifications[0]["type"] == NotificationType.PAYMENT_RECEIVED
    assert notifications[0]["recipient_id"] == C


def test_share_is_stored_to_the_cent():
    session = _session_with(_expense(1, A, "100.00"))

    with patch(_PARTICIPANTS, return_value={1: [_row(B), _row(C)]}), \
            patch(_SETTLEMENTS, return_value={}):
        settlement, _, _ = settlement_service.settle_participant(1, B, B, session)

    assert settlement.amount == Decimal("33.33")


def test_second_click_is_a_no_op():
    session = _session_with(_expense(1, A, "300.00"))
    existing = MagicMock()
    existing.payer_id = B
    existing.payee_id = A
    existing.is_settled = True
    existing.settlement_type = SettlementType.INDIVIDUAL

    with patch(_PARTICIPANTS, return_value={1: [_row(B, settled=True)]}), \
            patch(_SETTLEMENTS, return_value={1: [existing]}):
        settlement, warnings, notifications = settlement_service.settle_participant(1, B, B, session)

    assert settlement is existing
    assert [w["code"] for w in warnings] == [WarningCode.ALREADY_SETTLED]
    assert notifications == []
    session.add.assert_not_called()
    session.flush.assert_not_called()


def test_write_failure_rolls_back():
    session = _session_with(_expense(1, A, "300.00"))
    session.flush.side_effect = OperationalError("INSERT", {}, Exception("disk full"))

    with patch(_PARTICIPANTS, return_value={1: [_row(B)]}), \
            patch(_SETTLEMENTS, return_value={}):
        with pytest.raises(ConsistencyError) as exc_info:
            settlement_service.settle_participant(1, B, B, session)

    assert exc_info.value.http_status == 500
    assert exc_info.value.code == ErrorCode.LEDGER_WRITE_FAILED
    session.rollback.assert_called_once()


# ═══════════════════════════════════════════════════════════════════════════
# settle_balance
# ═══════════════════════════════════════════════════════════════════════════

def _profiles():
    profiles = {
        A: _profile(A, "Asha", "asha@okaxis"),
        D: _profile(D, "Dee", "dee@okaxis"),
    }

    def lookup(profile_id, session):
        if profile_id not in profiles:
            raise NotFoundError(ErrorCode.PROFILE_NOT_FOUND, "missing")
        return profiles[profile_id]

    return lookup


def _three_expenses():
    """
    A bought 400 and 200 shared with D; D bought 100 shared with A.
    From A's side: D owes 200 + 100, A owes 50 → net -250.
    """
    expenses = [
        _expense(1, A, "400.00", title="Rent top-up"),
        _expense(2, A, "200.00", title="Internet"),
        _expense(3, D, "100.00", title="Snacks"),
    ]
    rows = {1: [_row(D)], 2: [_row(D)], 3: [_row(A)]}
    return expenses, rows


def _payload(net: str = "-250.00", **overrides) -> dict:
    data = {
        "counterparty_id": D,
        "expenses": [
            {"expense_id": 1, "share_amount": Decimal("200.00")},
            {"expense_id": 2, "share_amount": Decimal("100.00")},
            {"expense_id": 3, "share_amount": Decimal("50.00")},
        ],
        "net_amount": Decimal(net),
    }
    data.update(overrides)
    return data


def _run_balance(data, expenses, rows, profiles=None, settlements=None, ledger_expenses=None):
    """
    Runs settle_balance as A. `ledger_expenses` is everything A is involved
    in; it defaults to the listed expenses.
    """
    session = _session_with(*expenses)
    loaded = (
        expenses if ledger_expenses is None else ledger_expenses,
        rows,
        settlements or {},
        {},
    )
    with patch(_PROFILE, side_effect=profiles or _profiles()), \
            patch(_LEDGER, return_value=loaded):
        result = settlement_service.settle_balance(A, data, session)
    return session, result


def _without_upi(profile_id_to_clear):
    lookup = _profiles()

    def without_upi(profile_id, session):
        p = lookup(profile_id, session)
        if profile_id == profile_id_to_clear:
            p.upi_id = None
        return p

    return without_upi


def _link_params(link: str) -> dict:
    return parse_qs(urlsplit(link).query)


def test_complete_settlement_happy_path():
    expenses, rows = _three_expenses()

    session, (settlement, link, notifications) = _run_balance(_payload(), expenses, rows)

    assert _added(session) == [settlement]
    assert settlement.settlement_type == SettlementType.COMPLETE
    assert settlement.expense_id is None
    assert settlement.payer_id == D
    assert settlement.payee_id == A
    assert settlement.amount == Decimal("250.00")
    assert [d["expense_id"] for d in settlement.expense_details] == [1, 2, 3]
    assert settlement.expense_details[2] == {
        "expense_id": 3,
        "amount": "50.00",
        "expense_title": "Snacks",
    }

    assert len(notifications) == 1
    assert notifications[0]["type"] == NotificationType.BALANCE_SETTLEMENT
    assert notifications[0]["recipient_id"] == D
    assert notifications[0]["metadata"] == {"expense_count": 3, "payer_id": D, "payee_id": A}


def test_creditor_caller_gets_link_to_own_address():
    # A is owed 250, so D pays A.
    expenses, rows = _three_expenses()

    _, (_, link, _) = _run_balance(_payload(), expenses, rows)

    assert link.startswith("upi://pay?")
    assert _link_params(link) == {
        "pa": ["asha@okaxis"],
        "pn": ["Asha"],
        "am": ["250.00"],
        "cu": ["INR"],
        "tn": ["RoomSplit settlement (3 expenses)"],
    }


def test_caller_pays_when_net_is_positive():
    expenses = [_expense(1, D, "100.00")]
    rows = {1: [_row(A)]}
    data = _payload(
        net="50.00",
        expenses=[{"expense_id": 1, "share_amount": Decimal("50.00")}],
    )

    _, (settlement, link, _) = _run_balance(data, expenses, rows)

    assert settlement.payer_id == A
    assert settlement.payee_id == D
    params = _link_params(link)
    assert params["pa"] == ["dee@okaxis"]
    assert params["tn"] == ["RoomSplit settlement (1 expense)"]


def test_complete_settlement_rejects_self():
    with pytest.raises(ValidationError) as exc_info:
        settlement_service.settle_balance(A, _payload(counterparty_id=A), MagicMock())
    assert exc_info.value.code == ErrorCode.SELF_SETTLEMENT


def test_complete_settlement_unknown_counterparty():
    expenses, rows = _three_expenses()
    with pytest.raises(NotFoundError) as exc_info:
        _run_balance(_payload(counterparty_id=42), expenses, rows)
    assert exc_info.value.code == ErrorCode.PROFILE_NOT_FOUND


def test_debtor_caller_needs_counterparty_address():
    expenses = [_expense(1, D, "100.00")]
    rows = {1: [_row(A)]}
    data = _payload(
        net="50.00",
        expenses=[{"expense_id": 1, "share_amount": Decimal("50.00")}],
    )

    with pytest.raises(ValidationError) as exc_info:
        _run_balance(data, expenses, rows, profiles=_without_upi(D))
    assert exc_info.value.code == ErrorCode.PAYMENT_ADDRESS_MISSING
    assert exc_info.value.field == "counterparty_id"


def test_creditor_caller_needs_own_address():
    expenses, rows = _three_expenses()

    with pytest.raises(ValidationError) as exc_info:
        _run_balance(_payload(), expenses, rows, profiles=_without_upi(A))
    assert exc_info.value.code == ErrorCode.PAYMENT_ADDRESS_MISSING
    assert exc_info.value.field is None


def test_counterparty_address_not_needed_when_caller_is_owed():
    expenses, rows = _three_expenses()

    session, _ = _run_balance(_payload(), expenses, rows, profiles=_without_upi(D))
    assert len(_added(session)) == 1


def test_complete_settlement_empty_list():
    with pytest.raises(ValidationError) as exc_info:
        _run_balance(_payload(expenses=[]), [], {})
    assert exc_info.value.code == ErrorCode.NOTHING_TO_SETTLE


def test_complete_settlement_duplicate_expense():
    expenses, rows = _three_expenses()
    data = _payload(expenses=[
        {"expense_id": 1, "share_amount": Decimal("200.00")},
        {"expense_id": 1, "share_amount": Decimal("200.00")},
    ])
    with pytest.raises(ValidationError) as exc_info:
        _run_balance(data, expenses, rows)
    assert exc_info.value.code == ErrorCode.DUPLICATE_EXPENSE_ENTRY


def test_complete_settlement_missing_expense():
    expenses, rows = _three_expenses()
    data = _payload(expenses=[{"expense_id": 77, "share_amount": Decimal("1.00")}])
    with pytest.raises(NotFoundError) as exc_info:
        _run_balance(data, expenses, rows)
    assert exc_info.value.code == ErrorCode.EXPENSE_NOT_FOUND


def test_complete_settlement_rejects_settled_leg():
    expenses, _ = _three_expenses()
    rows = {1: [_row(D, settled=True)], 2: [_row(D)], 3: [_row(A)]}
    with pytest.raises(ValidationError) as exc_info:
        _run_balance(_payload(), expenses, rows)
    assert exc_info.value.code == ErrorCode.NO_OUTSTANDING_SHARE


def test_complete_settlement_must_cover_every_outstanding_expense():
    expenses, rows = _three_expenses()
    data = _payload(
        net="-300.00",
        expenses=[
            {"expense_id": 1, "share_amount": Decimal("200.00")},
            {"expense_id": 2, "share_amount": Decimal("100.00")},
        ],
    )

    with pytest.raises(ValidationError) as exc_info:
        _run_balance(data, expenses[:2], rows, ledger_expenses=expenses)

    assert exc_info.value.code == ErrorCode.INCOMPLETE_SETTLEMENT
    assert "[3]" in exc_info.value.message


def test_unrelated_expenses_do_not_block_complete_settlement():
    expenses, rows = _three_expenses()
    other = _expense(4, A, "90.00")
    rows = {**rows, 4: [_row(C)]}

    session, _ = _run_balance(
        _payload(), expenses, rows, ledger_expenses=[*expenses, other],
    )
    assert len(_added(session)) == 1


def test_complete_settlement_rejects_wrong_share():
    expenses, rows = _three_expenses()
    data = _payload()
    data["expenses"][0]["share_amount"] = Decimal("199.00")
    with pytest.raises(ValidationError) as exc_info:
        _run_balance(data, expenses, rows)
    assert exc_info.value.code == ErrorCode.SHARE_MISMATCH


def test_complete_settlement_rejects_wrong_net():
    expenses, rows = _three_expenses()
    with pytest.raises(ValidationError) as exc_info:
        _run_balance(_payload(net="-350.00"), expenses, rows)
    assert exc_info.value.code == ErrorCode.NET_AMOUNT_MISMATCH


def test_complete_settlement_cancelling_legs():
    expenses = [_expense(1, A, "100.00"), _expense(2, D, "100.00")]
    rows = {1: [_row(D)], 2: [_row(A)]}
    data = _payload(
        net="0.00",
        expenses=[
            {"expense_id": 1, "share_amount": Decimal("50.00")},
            {"expense_id": 2, "share_amount": Decimal("50.00")},
        ],
    )
    with pytest.raises(ValidationError) as exc_info:
        _run_balance(data, expenses, rows)
    assert exc_info.value.code == ErrorCode.NOTHING_TO_SETTLE


def test_all_guards_are_app_errors():
    # Routes rely on the global AppError handler for every guard above.
    assert issubclass(ValidationError, AppError)
    assert issubclass(NotFoundError, AppError)
    assert issubclass(ConsistencyError, AppError)
