"""
services/balance_service.py — Loading ledger rows and building balance views.

The arithmetic lives in services/ledger.py. This module owns the queries
that feed it; expense, analytics and settlement services load rows through
the helpers below so that every view is built from the same data.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Receives user ids (int) and a SQLAlchemy Session as arguments.
  - Returns plain Python dicts and lists; amounts serialized as strings.
"""

from __future__ import annotations

from collections import defaultdict

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from roomsplit.app.models.expense import Expense
from roomsplit.app.models.participant import ExpenseParticipant
from roomsplit.app.models.settlement import Settlement, SettlementType
from roomsplit.app.services import ledger
from roomsplit.app.services.profile_service import get_names, get_profile_or_404


# ── Data access helpers ────────────────────────────────────────────────────

def get_user_expenses(user_id: int, session: Session) -> list[Expense]:
    """
    Expenses where the user is the buyer or a listed participant,
    newest first.
    """
    participant_expense_ids = (
        select(ExpenseParticipant.expense_id)
        .where(ExpenseParticipant.participant_id == user_id)
    )
    stmt = (
        select(Expense)
        .where(
            or_(
                Expense.buyer_id == user_id,
                Expense.id.in_(participant_expense_ids),
            )
        )
        .order_by(Expense.created_at.desc(), Expense.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def get_participants(
        expense_ids: list[int],
        session: Session,
) -> dict[int, list[ExpenseParticipant]]:
    """Participant rows grouped by expense_id."""
    grouped: dict[int, list[ExpenseParticipant]] = defaultdict(list)
    if not expense_ids:
        return grouped
    stmt = (
        select(ExpenseParticipant)
        .where(ExpenseParticipant.expense_id.in_(expense_ids))
        .order_by(ExpenseParticipant.id)
    )
    for row in session.execute(stmt).scalars().all():
        grouped[row.expense_id].append(row)
    return grouped


def get_settlements_for_expenses(
        expenses: list[Expense],
        session: Session,
) -> dict[int, list[Settlement]]:
    """
    Ledger rows covering each expense, grouped by expense_id.

    Individual rows are matched on expense_id. Complete rows carry their
    expenses in a JSON breakdown, and one side of every leg they settle is
    that expense's buyer, so they are loaded by buyer and matched in Python.
    """
    grouped: dict[int, list[Settlement]] = defaultdict(list)
    if not expenses:
        return grouped

    expense_ids = [e.id for e in expenses]
    buyer_ids = {e.buyer_id for e in expenses}

    stmt = select(Settlement).where(
        or_(
            Settlement.expense_id.in_(expense_ids),
            and_(
                Settlement.settlement_type == SettlementType.COMPLETE,
                or_(
                    Settlement.payer_id.in_(buyer_ids),
                    Settlement.payee_id.in_(buyer_ids),
                ),
            ),
        )
    ).order_by(Settlement.settled_at, Settlement.id)
    settlements = list(session.execute(stmt).scalars().all())

    for expense_id in expense_ids:
        covering = ledger.settlements_covering(expense_id, settlements)
        if covering:
            grouped[expense_id] = covering
    return grouped


def load_ledger(user_id: int, session: Session) -> tuple[list, dict, dict, dict]:
    """
    Everything the accounting functions need for one user's view:
    (expenses, participants_by_expense, settlements_by_expense, names).
    """
    expenses = get_user_expenses(user_id, session)
    participants = get_participants([e.id for e in expenses], session)
    settlements = get_settlements_for_expenses(expenses, session)

    profile_ids = {user_id}
    for e in expenses:
        profile_ids.add(e.buyer_id)
    for rows in participants.values():
        profile_ids.update(r.participant_id for r in rows)
    names = get_names(profile_ids, session)

    return expenses, participants, settlements, names


# ── Views ──────────────────────────────────────────────────────────────────

def _serialize_balance(balance: dict) -> dict:
    return {
        "counterparty_id": balance["counterparty_id"],
        "counterparty_name": balance["counterparty_name"],
        "net_amount": str(ledger.to_cents(balance["net_amount"])),
        "amount": str(ledger.to_cents(balance["amount"])),
        "direction": balance["direction"].value,
        "breakdown": [
            {
                "expense_id": item["expense_id"],
                "title": item["title"],
                "category": item["category"],
                "created_at": item["created_at"].isoformat() if item["created_at"] else None,
                "total": str(ledger.to_cents(item["total"])),
                "share": str(ledger.to_cents(item["share"])),
                "paid_by_id": item["paid_by_id"],
                "paid_by_name": item["paid_by_name"],
            }
            for item in balance["breakdown"]
        ],
    }


def compute_user_balances(user_id: int, session: Session) -> list[dict]:
    """Raw (unserialized) balances of `user_id` against every counterparty."""
    expenses, participants, settlements, names = load_ledger(user_id, session)
    return ledger.aggregate_balances(user_id, expenses, participants, settlements, names)


def get_balance_response(user_id: int, session: Session) -> dict:
    """
    Builds the payload for GET /balances.

    Raises:
        NotFoundError(PROFILE_NOT_FOUND) — the caller's profile is gone.
    """
    get_profile_or_404(user_id, session)

    balances = compute_user_balances(user_id, session)
    summary = ledger.summarize_balances(balances)

    return {
        "user_id": user_id,
        "balances": [_serialize_balance(b) for b in balances],
        "total_owed": str(ledger.to_cents(summary["total_owed"])),
        "total_owe": str(ledger.to_cents(summary["total_owe"])),
        "net": str(ledger.to_cents(summary["net"])),
    }
