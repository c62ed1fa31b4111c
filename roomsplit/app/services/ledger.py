"""
services/ledger.py — Expense settlement accounting.

This module is the SINGLE SOURCE OF TRUTH for shares, effective settlement
state and pairwise net balances. Every read path (expense list, expense
detail, balances, analytics) goes through these functions so the views
can never disagree about who has settled.

Layer rules:
  - No Flask imports, no SQLAlchemy queries.
  - Receives already-loaded rows (ORM objects or anything with the same
    attributes) and returns plain Python values.
  - All money is Decimal. Shares are exact quotients; rounding to cents
    happens only when a value is persisted to the ledger or serialized.

Sign convention for net balances (from the caller's point of view):
  net > 0  → the caller owes the counterparty   (direction "owe")
  net < 0  → the counterparty owes the caller   (direction "owed")
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from roomsplit.app.models.settlement import SettlementType


# |net| below this is rounding noise, not an obligation.
SETTLED_THRESHOLD = Decimal("0.01")

CENT = Decimal("0.01")


class Role(str, enum.Enum):
    BUYER       = "buyer"
    PARTICIPANT = "participant"


class Direction(str, enum.Enum):
    OWE  = "owe"
    OWED = "owed"


@dataclass(frozen=True)
class ResolvedParticipant:
    participant_id: int
    role: Role
    settled: bool
    share: Decimal


@dataclass(frozen=True)
class Leg:
    """One unsettled share: debtor owes creditor `share` on `expense_id`."""
    expense_id: int
    debtor_id: int
    creditor_id: int
    share: Decimal


# ── Share calculator ───────────────────────────────────────────────────────

def compute_share(amount: Decimal, participant_count: int) -> Decimal:
    """
    Equal per-person share of an expense: amount / participant_count.

    No rounding is applied. A count below 1 is treated as 1 so that an
    expense with no recorded participants never divides by zero.
    """
    count = participant_count if participant_count >= 1 else 1
    return Decimal(amount) / Decimal(count)


def to_cents(value: Decimal) -> Decimal:
    """Rounds a money value half-up to two decimal places."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def participant_ids_of(expense, participant_rows: Iterable) -> list[int]:
    """
    Distinct non-buyer participant ids, in row order.

    The buyer is implicit. A stray row naming the buyer (or a duplicate row)
    does not change the participant count.
    """
    seen: list[int] = []
    for row in participant_rows:
        pid = row.participant_id
        if pid == expense.buyer_id or pid in seen:
            continue
        seen.append(pid)
    return seen


def share_for(expense, participant_rows: Iterable) -> Decimal:
    """Share of `expense` given its participant rows (buyer counted once)."""
    return compute_share(expense.amount, 1 + len(participant_ids_of(expense, participant_rows)))


# ── Settlement state resolver ──────────────────────────────────────────────

def settlements_covering(expense_id: int, settlements: Iterable) -> list:
    """
    Ledger rows that settle something on `expense_id`: individual rows by
    expense_id, complete rows by their expense_details breakdown.
    """
    covering = []
    for s in settlements:
        if s.expense_id == expense_id:
            covering.append(s)
        elif any(d.get("expense_id") == expense_id for d in (s.expense_details or [])):
            covering.append(s)
    return covering


def resolve_settled(participant_id: int, flag: bool, settlements: Iterable) -> bool:
    """
    Effective settled state of one participant on one expense.

    `settlements` are the ledger rows covering that expense. The participant
    is settled if the stored flag says so OR a settled ledger row exists
    with them as payer. Complete settlements flip both sides of the
    balance, so they also count for their payee.
    """
    if flag:
        return True
    for s in settlements:
        if not s.is_settled:
            continue
        if s.payer_id == participant_id:
            return True
        if s.settlement_type == SettlementType.COMPLETE and s.payee_id == participant_id:
            return True
    return False


def resolve_participants(
        expense,
        participant_rows: list,
        settlements: list,
) -> list[ResolvedParticipant]:
    """
    Full participant view of an expense, buyer first.

    The buyer is always settled. Every other participant's state comes from
    resolve_settled() over the ledger rows covering this expense.
    """
    share = share_for(expense, participant_rows)
    covering = settlements_covering(expense.id, settlements)

    resolved = [
        ResolvedParticipant(
            participant_id=expense.buyer_id,
            role=Role.BUYER,
            settled=True,
            share=share,
        )
    ]
    flags = {}
    for row in participant_rows:
        flags[row.participant_id] = flags.get(row.participant_id, False) or bool(row.settlement_status)

    for pid in participant_ids_of(expense, participant_rows):
        resolved.append(
            ResolvedParticipant(
                participant_id=pid,
                role=Role.PARTICIPANT,
                settled=resolve_settled(pid, flags[pid], covering),
                share=share,
            )
        )
    return resolved


def unsettled_legs(expense, participant_rows: list, settlements: list) -> list[Leg]:
    """Every non-buyer share of `expense` that is still outstanding."""
    return [
        Leg(
            expense_id=expense.id,
            debtor_id=p.participant_id,
            creditor_id=expense.buyer_id,
            share=p.share,
        )
        for p in resolve_participants(expense, participant_rows, settlements)
        if p.role == Role.PARTICIPANT and not p.settled
    ]


# ── Balance aggregator ─────────────────────────────────────────────────────

def direction_for(net_amount: Decimal) -> Direction | None:
    if net_amount > 0:
        return Direction.OWE
    if net_amount < 0:
        return Direction.OWED
    return None


def aggregate_balances(
        user_id: int,
        expenses: Iterable,
        participants_by_expense: dict[int, list],
        settlements_by_expense: dict[int, list],
        names: dict[int, str],
) -> list[dict]:
    """
    Net balance between `user_id` and every counterparty.

    Algorithm:
      1. For each expense, collect its unsettled legs. Settled legs are
         filtered out here and never reach the sum.
      2. A leg where the user is the creditor moves the balance with the
         debtor down by the share (the user is owed).
         A leg where the user is the debtor moves the balance with the
         creditor up by the share (the user owes).
         Legs between two other people are ignored.
      3. Counterparties whose |net| < SETTLED_THRESHOLD are dropped.

    Returns one dict per counterparty, largest magnitude first:
      {counterparty_id, counterparty_name, net_amount, amount, direction,
       breakdown: [{expense_id, title, category, created_at, total, share,
                    paid_by_id, paid_by_name}]}
    """
    running: dict[int, dict] = {}

    for expense in expenses:
        rows = participants_by_expense.get(expense.id, [])
        settlements = settlements_by_expense.get(expense.id, [])

        for leg in unsettled_legs(expense, rows, settlements):
            if leg.creditor_id == user_id:
                counterparty_id = leg.debtor_id
                delta = -leg.share
            elif leg.debtor_id == user_id:
                counterparty_id = leg.creditor_id
                delta = leg.share
            else:
                continue

            entry = running.setdefault(
                counterparty_id,
                {"net": Decimal("0"), "breakdown": []},
            )
            entry["net"] += delta
            entry["breakdown"].append({
                "expense_id": expense.id,
                "title": expense.title,
                "category": getattr(expense.category, "value", expense.category),
                "created_at": expense.created_at,
                "total": Decimal(expense.amount),
                "share": leg.share,
                "paid_by_id": expense.buyer_id,
                "paid_by_name": names.get(expense.buyer_id, f"user_{expense.buyer_id}"),
            })

    balances = []
    for counterparty_id, entry in running.items():
        net = entry["net"]
        if abs(net) < SETTLED_THRESHOLD:
            continue
        balances.append({
            "counterparty_id": counterparty_id,
            "counterparty_name": names.get(counterparty_id, f"user_{counterparty_id}"),
            "net_amount": net,
            "amount": abs(net),
            "direction": direction_for(net),
            "breakdown": entry["breakdown"],
        })

    balances.sort(key=lambda b: (-b["amount"], b["counterparty_id"]))
    return balances


def summarize_balances(balances: list[dict]) -> dict[str, Decimal]:
    """Caller-level totals: what others owe me, what I owe, and the net."""
    total_owed = sum(
        (b["amount"] for b in balances if b["direction"] == Direction.OWED),
        Decimal("0"),
    )
    total_owe = sum(
        (b["amount"] for b in balances if b["direction"] == Direction.OWE),
        Decimal("0"),
    )
    return {
        "total_owed": total_owed,
        "total_owe": total_owe,
        "net": total_owed - total_owe,
    }
