"""
services/expense_service.py — Expense business logic.

Rules enforced here:
  - The caller is always the buyer of the expense they create.
  - participant_ids must be non-empty (EMPTY_PARTICIPANTS, 422). The buyer
    may be listed; they are removed from the stored rows, so an expense
    whose only participant is the buyer has N = 1 and is fully settled.
  - Every participant must be an existing profile (PROFILE_NOT_FOUND, 404).
  - Only the buyer or a participant may read an expense (FORBIDDEN, 403).

Expenses are immutable: there is no edit or delete operation.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Receives plain ints and dicts; returns ORM objects / dicts or raises.
  - Commits are the route's responsibility — only flush here.
  - Notifications are returned as messages for the route to dispatch
    after its commit.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from roomsplit.app.errors import (
    AuthorizationError,
    ErrorCode,
    NotFoundError,
    ValidationError,
)
from roomsplit.app.models.expense import Category, Expense
from roomsplit.app.models.notification import NotificationType
from roomsplit.app.models.participant import ExpenseParticipant
from roomsplit.app.models.profile import Profile
from roomsplit.app.services import balance_service, ledger
from roomsplit.app.services.profile_service import get_names
from roomsplit.app.services.settlement_service import serialize_settlement

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def get_expense_or_404(expense_id: int, session: Session) -> Expense:
    """Returns the Expense or raises EXPENSE_NOT_FOUND (404)."""
    expense = session.get(Expense, expense_id)
    if expense is None:
        raise NotFoundError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
        )
    return expense


def _normalize_participants(buyer_id: int, participant_ids: list[int]) -> list[int]:
    """
    Deduplicates participant ids, keeps first-seen order, drops the buyer.

    Raises EMPTY_PARTICIPANTS (422) when nothing was selected at all.
    """
    if not participant_ids:
        raise ValidationError(
            ErrorCode.EMPTY_PARTICIPANTS,
            "Select at least one participant.",
            field="participant_ids",
        )

    normalized: list[int] = []
    for pid in participant_ids:
        if pid != buyer_id and pid not in normalized:
            normalized.append(pid)
    return normalized


def _require_profiles_exist(profile_ids: list[int], session: Session) -> None:
    """Raises PROFILE_NOT_FOUND (404) for the first id with no profile."""
    if not profile_ids:
        return
    found = set(
        session.execute(
            select(Profile.id).where(Profile.id.in_(profile_ids))
        ).scalars().all()
    )
    for pid in profile_ids:
        if pid not in found:
            raise NotFoundError(
                ErrorCode.PROFILE_NOT_FOUND,
                f"Profile {pid} does not exist.",
                field="participant_ids",
            )


def _require_involved(expense: Expense, participant_rows: list, caller_id: int) -> None:
    if caller_id == expense.buyer_id:
        return
    if any(r.participant_id == caller_id for r in participant_rows):
        return
    raise AuthorizationError(f"You are not part of expense {expense.id}.")


def serialize_expense(
        expense: Expense,
        participant_rows: list,
        settlements: list,
        names: dict[int, str],
) -> dict:
    """
    Expense with its resolved participant list.

    Counts cover the non-buyer participants only: settled_count of
    total_count have paid their share. A buyer-only expense is 0 of 0 and
    fully settled.
    """
    resolved = ledger.resolve_participants(expense, participant_rows, settlements)
    others = [p for p in resolved if p.role == ledger.Role.PARTICIPANT]
    settled_count = sum(1 for p in others if p.settled)
    share = ledger.share_for(expense, participant_rows)

    return {
        "id": expense.id,
        "title": expense.title,
        "amount": str(expense.amount),
        "category": expense.category.value,
        "buyer_id": expense.buyer_id,
        "buyer_name": names.get(expense.buyer_id, f"user_{expense.buyer_id}"),
        "created_at": expense.created_at.isoformat() if expense.created_at else None,
        "participant_count": len(resolved),
        "share": str(ledger.to_cents(share)),
        "participants": [
            {
                "participant_id": p.participant_id,
                "name": names.get(p.participant_id, f"user_{p.participant_id}"),
                "role": p.role.value,
                "settled": p.settled,
                "share": str(ledger.to_cents(p.share)),
            }
            for p in resolved
        ],
        "settled_count": settled_count,
        "total_count": len(others),
        "is_fully_settled": settled_count == len(others),
    }


# ── Public service functions ───────────────────────────────────────────────

def create_expense(
        caller_id: int,
        data: dict,
        session: Session,
) -> tuple[Expense, list[dict]]:
    """
    Records a new expense bought by the caller.

    Args:
        caller_id: The authenticated profile (from flask.g); becomes buyer.
        data:      Validated dict from CreateExpenseSchema.
                   Keys: title, amount (Decimal), category, participant_ids.

    Returns:
        (Expense, notifications) — one expense_created message per
        non-buyer participant, to be dispatched after commit.
    """
    amount: Decimal = data["amount"]
    if amount <= 0:
        raise ValidationError(
            ErrorCode.INVALID_FIELD,
            "Amount must be greater than zero.",
            field="amount",
        )

    participant_ids = _normalize_participants(caller_id, data.get("participant_ids") or [])
    _require_profiles_exist(participant_ids, session)

    expense = Expense(
        title=data["title"].strip(),
        amount=amount,
        category=data.get("category", Category.MISC),
        buyer_id=caller_id,
    )
    session.add(expense)
    session.flush()  # populate expense.id before the participant rows

    for pid in participant_ids:
        session.add(ExpenseParticipant(
            expense_id=expense.id,
            participant_id=pid,
            settlement_status=False,
        ))
    session.flush()
    session.refresh(expense)

    share = ledger.compute_share(amount, 1 + len(participant_ids))
    logger.info(
        "Expense %s created by %s: %s split %d ways",
        expense.id, caller_id, amount, 1 + len(participant_ids),
    )

    notifications = [
        {
            "type": NotificationType.EXPENSE_CREATED,
            "recipient_id": pid,
            "sender_id": caller_id,
            "expense_id": expense.id,
            "amount": share,
            "metadata": {"title": expense.title},
        }
        for pid in participant_ids
    ]
    return expense, notifications


def describe_expense(expense: Expense, session: Session) -> dict:
    """Serialized view of a single expense, loading its rows."""
    participants = balance_service.get_participants([expense.id], session)
    settlements = balance_service.get_settlements_for_expenses([expense], session)
    rows = participants.get(expense.id, [])
    names = get_names({expense.buyer_id, *(r.participant_id for r in rows)}, session)
    return serialize_expense(expense, rows, settlements.get(expense.id, []), names)


def list_expenses(user_id: int, session: Session) -> list[dict]:
    """Every expense the user bought or shares, newest first."""
    expenses, participants, settlements, names = balance_service.load_ledger(user_id, session)
    return [
        serialize_expense(
            e,
            participants.get(e.id, []),
            settlements.get(e.id, []),
            names,
        )
        for e in expenses
    ]


def get_expense(expense_id: int, caller_id: int, session: Session) -> dict:
    """
    Expense detail including its ledger rows.

    Raises:
      NotFoundError(EXPENSE_NOT_FOUND) — no such expense.
      AuthorizationError(FORBIDDEN)    — caller is neither buyer nor participant.
    """
    expense = get_expense_or_404(expense_id, session)
    participants = balance_service.get_participants([expense.id], session)
    rows = participants.get(expense.id, [])
    _require_involved(expense, rows, caller_id)

    settlements = balance_service.get_settlements_for_expenses([expense], session)
    covering = settlements.get(expense.id, [])

    ids = {expense.buyer_id, *(r.participant_id for r in rows)}
    for s in covering:
        ids.update((s.payer_id, s.payee_id))
    names = get_names(ids, session)

    result = serialize_expense(expense, rows, covering, names)
    result["settlements"] = [serialize_settlement(s, names) for s in covering]
    return result
