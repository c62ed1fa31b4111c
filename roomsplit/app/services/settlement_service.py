"""
services/settlement_service.py — Individual and complete settlement actions.

Both actions write two things: participant flags and one ledger row.
They happen in ONE transaction: the service flushes both writes together
and the route commits once. If the flush fails, the session is rolled back
and ConsistencyError (500) is raised, so the flag and the ledger can never
disagree after a partial write.

Rules enforced here:
  Individual settlement (settle_participant)
    EXPENSE_NOT_FOUND (404)      — expense does not exist
    FORBIDDEN (403)              — caller is neither the buyer nor the
                                   participant being settled
    BUYER_ALWAYS_SETTLED (422)   — the buyer has no share to settle
    PARTICIPANT_NOT_FOUND (404)  — no participant row for that profile
    ALREADY_SETTLED (warning)    — second click: nothing written, the
                                   existing ledger row is returned

  Complete settlement (settle_balance)
    SELF_SETTLEMENT (422)         — counterparty is the caller
    PROFILE_NOT_FOUND (404)       — counterparty does not exist
    EXPENSE_NOT_FOUND (404)       — a listed expense does not exist
    NOTHING_TO_SETTLE (422)       — empty list or |net| below one cent
    DUPLICATE_EXPENSE_ENTRY (422) — an expense listed twice
    NO_OUTSTANDING_SHARE (422)    — listed expense has no unsettled leg
                                    between the two people
    SHARE_MISMATCH (422)          — supplied share differs from the
                                    computed one by a cent or more
    INCOMPLETE_SETTLEMENT (422)   — another expense still holds an
                                    unsettled leg between the two people
    NET_AMOUNT_MISMATCH (422)     — supplied net differs from the signed
                                    sum of the legs by a cent or more
    PAYMENT_ADDRESS_MISSING (422) — whoever receives the money has no
                                    upi_id

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from roomsplit.app.errors import (
    AuthorizationError,
    ConsistencyError,
    ErrorCode,
    NotFoundError,
    ValidationError,
    WarningCode,
)
from roomsplit.app.models.expense import Expense
from roomsplit.app.models.notification import NotificationType
from roomsplit.app.models.participant import ExpenseParticipant
from roomsplit.app.models.settlement import Settlement, SettlementType
from roomsplit.app.services import balance_service, ledger
from roomsplit.app.services.payment_link import build_upi_link
from roomsplit.app.services.profile_service import get_names, get_profile_or_404

logger = logging.getLogger(__name__)


# ── Serialization ──────────────────────────────────────────────────────────

def serialize_settlement(s: Settlement, names: dict[int, str]) -> dict:
    """Converts a Settlement ORM object to a plain dict for JSON output."""
    return {
        "id": s.id,
        "expense_id": s.expense_id,
        "payer_id": s.payer_id,
        "payer_name": names.get(s.payer_id, f"user_{s.payer_id}"),
        "payee_id": s.payee_id,
        "payee_name": names.get(s.payee_id, f"user_{s.payee_id}"),
        "amount": str(s.amount),
        "is_settled": s.is_settled,
        "settlement_type": SettlementType(s.settlement_type).value,
        "settled_at": s.settled_at.isoformat() if s.settled_at else None,
        "expense_details": list(s.expense_details or []),
    }


def describe_settlement(s: Settlement | None, session: Session) -> dict | None:
    """serialize_settlement() with payer and payee names loaded."""
    if s is None:
        return None
    return serialize_settlement(s, get_names({s.payer_id, s.payee_id}, session))


# ── Private helpers ────────────────────────────────────────────────────────

def _get_expense_or_404(expense_id: int, session: Session) -> Expense:
    expense = session.get(Expense, expense_id)
    if expense is None:
        raise NotFoundError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
        )
    return expense


def _ledger_amount(value: Decimal) -> Decimal:
    """Ledger rows are stored to the cent and never below one cent."""
    return max(ledger.to_cents(value), ledger.CENT)


def _mark_participant_settled(
        expense_id: int,
        participant_id: int,
        session: Session,
) -> int:
    """
    Sets settlement_status = true on the (expense, participant) row, if any.
    Returns the number of rows changed. Only flushes.
    """
    rows = session.execute(
        select(ExpenseParticipant).where(
            ExpenseParticipant.expense_id == expense_id,
            ExpenseParticipant.participant_id == participant_id,
        )
    ).scalars().all()
    for row in rows:
        row.settlement_status = True
    return len(rows)


def _append_settlement(session: Session, **columns) -> Settlement:
    """Adds one ledger row. Ledger rows are never updated afterwards."""
    settlement = Settlement(
        is_settled=True,
        settled_at=datetime.now(timezone.utc),
        **columns,
    )
    session.add(settlement)
    return settlement


def _existing_settlement_for(participant_id: int, covering: list) -> Settlement | None:
    """The ledger row that already settles this participant, if there is one."""
    for s in covering:
        if not s.is_settled:
            continue
        if s.payer_id == participant_id:
            return s
        if s.settlement_type == SettlementType.COMPLETE and s.payee_id == participant_id:
            return s
    return None


def _flush_or_raise(session: Session, what: str) -> None:
    try:
        session.flush()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Ledger write failed during %s; rolled back", what, exc_info=True)
        raise ConsistencyError(
            f"The {what} could not be recorded. Nothing was saved; please try again."
        ) from exc


# ── Individual settlement ──────────────────────────────────────────────────

def settle_participant(
        expense_id: int,
        participant_id: int,
        caller_id: int,
        session: Session,
) -> tuple[Settlement | None, list[dict], list[dict]]:
    """
    Marks one participant's share of one expense as paid.

    Only the participant themself or the expense's buyer may do this.

    Returns:
        (settlement, warnings, notifications)
        On a repeated call the existing ledger row is returned with an
        ALREADY_SETTLED warning and no notifications; settlement may be
        None if the share was only flagged, never recorded.
    """
    expense = _get_expense_or_404(expense_id, session)

    if caller_id not in (expense.buyer_id, participant_id):
        raise AuthorizationError(
            "You can only settle your own share, or shares of an expense you bought."
        )

    if participant_id == expense.buyer_id:
        raise ValidationError(
            ErrorCode.BUYER_ALWAYS_SETTLED,
            "The buyer's own share is always settled.",
            field="participant_id",
        )

    rows = balance_service.get_participants([expense.id], session).get(expense.id, [])
    row = next((r for r in rows if r.participant_id == participant_id), None)
    if row is None:
        raise NotFoundError(
            ErrorCode.PARTICIPANT_NOT_FOUND,
            f"Profile {participant_id} is not a participant of expense {expense_id}.",
            field="participant_id",
        )

    covering = balance_service.get_settlements_for_expenses([expense], session).get(expense.id, [])

    if ledger.resolve_settled(participant_id, row.settlement_status, covering):
        existing = _existing_settlement_for(participant_id, covering)
        warnings = [{
            "code": WarningCode.ALREADY_SETTLED,
            "message": (
                f"Profile {participant_id} has already settled expense {expense_id}. "
                f"Nothing was recorded."
            ),
        }]
        return existing, warnings, []

    share = ledger.share_for(expense, rows)

    row.settlement_status = True
    settlement = _append_settlement(
        session,
        expense_id=expense.id,
        payer_id=participant_id,
        payee_id=expense.buyer_id,
        amount=_ledger_amount(share),
        settlement_type=SettlementType.INDIVIDUAL,
        expense_details=[],
    )
    _flush_or_raise(session, "settlement")

    logger.info(
        "Expense %s: participant %s settled %s with %s (by %s)",
        expense.id, participant_id, settlement.amount, expense.buyer_id, caller_id,
    )

    if caller_id == participant_id:
        notification = {
            "type": NotificationType.INDIVIDUAL_SETTLEMENT,
            "recipient_id": expense.buyer_id,
            "sender_id": caller_id,
        }
    else:
        notification = {
            "type": NotificationType.PAYMENT_RECEIVED,
            "recipient_id": participant_id,
            "sender_id": caller_id,
        }
    notification.update({
        "expense_id": expense.id,
        "settlement_id": settlement.id,
        "amount": settlement.amount,
        "metadata": {"title": expense.title},
    })

    return settlement, [], [notification]


# ── Complete settlement ────────────────────────────────────────────────────

def settle_balance(
        caller_id: int,
        data: dict,
        session: Session,
        currency: str = "INR",
) -> tuple[Settlement, str, list[dict]]:
    """
    Settles the whole outstanding balance between the caller and one
    counterparty in a single ledger row.

    Args:
        caller_id: The authenticated profile (from flask.g).
        data:      Validated dict from CompleteSettlementSchema.
                   Keys: counterparty_id, expenses [{expense_id, share_amount}],
                   net_amount (signed from the caller's side: > 0 means the
                   caller owes).
        currency:  Currency code for the payment link.

    The write is trust-based: the client calls this once the user confirms
    they have paid (or been paid). Nothing verifies the payment itself.

    Returns:
        (settlement, payment_link, notifications)
        The link always pays the creditor: it asks the counterparty to pay
        the caller when the caller is owed.
    """
    counterparty_id: int = data["counterparty_id"]
    entries: list[dict] = data.get("expenses") or []
    net_amount: Decimal = data["net_amount"]

    if counterparty_id == caller_id:
        raise ValidationError(
            ErrorCode.SELF_SETTLEMENT,
            "A settlement cannot be made with yourself.",
            field="counterparty_id",
        )

    caller = get_profile_or_404(caller_id, session)
    counterparty = get_profile_or_404(counterparty_id, session)

    if not entries:
        raise ValidationError(
            ErrorCode.NOTHING_TO_SETTLE,
            "No expenses were given to settle.",
            field="expenses",
        )

    expense_ids = [e["expense_id"] for e in entries]
    if len(set(expense_ids)) != len(expense_ids):
        raise ValidationError(
            ErrorCode.DUPLICATE_EXPENSE_ENTRY,
            "The same expense appears more than once.",
            field="expenses",
        )

    expenses = [_get_expense_or_404(eid, session) for eid in expense_ids]
    user_expenses, participants, settlements, _ = balance_service.load_ledger(caller_id, session)
    pair = {caller_id, counterparty_id}

    def pair_leg(expense):
        legs = ledger.unsettled_legs(
            expense,
            participants.get(expense.id, []),
            settlements.get(expense.id, []),
        )
        return next((l for l in legs if {l.debtor_id, l.creditor_id} == pair), None)

    signed_total = Decimal("0")
    details: list[dict] = []
    for entry, expense in zip(entries, expenses):
        leg = pair_leg(expense)
        if leg is None:
            raise ValidationError(
                ErrorCode.NO_OUTSTANDING_SHARE,
                f"Expense {expense.id} has nothing outstanding between you and "
                f"profile {counterparty_id}.",
                field="expenses",
            )
        if abs(leg.share - entry["share_amount"]) >= ledger.SETTLED_THRESHOLD:
            raise ValidationError(
                ErrorCode.SHARE_MISMATCH,
                f"Share for expense {expense.id} is {ledger.to_cents(leg.share)}, "
                f"not {entry['share_amount']}.",
                field="expenses",
            )

        signed_total += leg.share if leg.debtor_id == caller_id else -leg.share
        details.append({
            "expense_id": expense.id,
            "amount": str(ledger.to_cents(leg.share)),
            "expense_title": expense.title,
        })

    # A complete settlement clears the whole balance with the counterparty.
    outstanding = {e.id for e in user_expenses if pair_leg(e) is not None}
    missing = sorted(outstanding - set(expense_ids))
    if missing:
        raise ValidationError(
            ErrorCode.INCOMPLETE_SETTLEMENT,
            f"Expenses {missing} are also outstanding with profile {counterparty_id} "
            f"and must be included.",
            field="expenses",
        )

    if abs(signed_total - net_amount) >= ledger.SETTLED_THRESHOLD:
        raise ValidationError(
            ErrorCode.NET_AMOUNT_MISMATCH,
            f"Outstanding balance is {ledger.to_cents(signed_total)}, not {net_amount}.",
            field="net_amount",
        )

    if abs(signed_total) < ledger.SETTLED_THRESHOLD:
        raise ValidationError(
            ErrorCode.NOTHING_TO_SETTLE,
            "These expenses cancel out; there is nothing to pay.",
            field="net_amount",
        )

    if signed_total > 0:
        payer, payee = caller, counterparty
    else:
        payer, payee = counterparty, caller

    # The link is paid by the debtor, so it needs the creditor's address.
    if not payee.upi_id:
        raise ValidationError(
            ErrorCode.PAYMENT_ADDRESS_MISSING,
            f"{payee.name} has not added a UPI id yet.",
            field="counterparty_id" if payee is counterparty else None,
        )

    # Both sides on every contributing expense, whichever of them bought it.
    for expense_id in expense_ids:
        for profile_id in (caller_id, counterparty_id):
            _mark_participant_settled(expense_id, profile_id, session)

    settlement = _append_settlement(
        session,
        expense_id=None,
        payer_id=payer.id,
        payee_id=payee.id,
        amount=_ledger_amount(abs(signed_total)),
        settlement_type=SettlementType.COMPLETE,
        expense_details=details,
    )
    _flush_or_raise(session, "complete settlement")

    logger.info(
        "Complete settlement %s: %s paid %s %s across %d expense(s)",
        settlement.id, payer.id, payee.id, settlement.amount, len(details),
    )

    noun = "expense" if len(details) == 1 else "expenses"
    payment_link = build_upi_link(
        payee_address=payee.upi_id,
        payee_name=payee.name,
        amount=abs(signed_total),
        note=f"RoomSplit settlement ({len(details)} {noun})",
        currency=currency,
    )

    notifications = [{
        "type": NotificationType.BALANCE_SETTLEMENT,
        "recipient_id": counterparty_id,
        "sender_id": caller_id,
        "settlement_id": settlement.id,
        "amount": settlement.amount,
        "metadata": {
            "expense_count": len(details),
            "payer_id": payer.id,
            "payee_id": payee.id,
        },
    }]
    return settlement, payment_link, notifications
