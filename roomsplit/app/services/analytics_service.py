"""
services/analytics_service.py — Spending analytics for one user.

Computed over every expense the user bought or participates in, using the
same loaders and share arithmetic as the balance view.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal

from sqlalchemy.orm import Session

from roomsplit.app.services import balance_service, ledger

MONTHS_SHOWN = 6
TOP_PARTNERS = 5

# Insight thresholds
TREND_CHANGE_PCT = Decimal("20")
DOMINANT_CATEGORY_PCT = Decimal("50")
HIGH_AVERAGE = Decimal("1000")


def _money(value: Decimal) -> str:
    return str(ledger.to_cents(value))


def _monthly_spending(expenses: list) -> list[dict]:
    totals: dict[str, Decimal] = defaultdict(Decimal)
    for e in expenses:
        if e.created_at is None:
            continue
        totals[e.created_at.strftime("%Y-%m")] += Decimal(e.amount)
    months = sorted(totals)[-MONTHS_SHOWN:]
    return [{"month": m, "amount": totals[m]} for m in months]


def _category_breakdown(expenses: list) -> list[dict]:
    totals: dict[str, Decimal] = defaultdict(Decimal)
    for e in expenses:
        totals[getattr(e.category, "value", e.category)] += Decimal(e.amount)
    return sorted(
        ({"category": c, "amount": a} for c, a in totals.items()),
        key=lambda item: (-item["amount"], item["category"]),
    )


def _top_partners(user_id: int, expenses: list, participants: dict, names: dict) -> list[dict]:
    """Everyone the user shares expenses with, by number of shared expenses."""
    partners: dict[int, dict] = {}
    for e in expenses:
        rows = participants.get(e.id, [])
        share = ledger.share_for(e, rows)
        members = [e.buyer_id, *ledger.participant_ids_of(e, rows)]
        for pid in members:
            if pid == user_id:
                continue
            entry = partners.setdefault(pid, {"count": 0, "amount": Decimal("0")})
            entry["count"] += 1
            entry["amount"] += share

    ranked = sorted(partners.items(), key=lambda kv: (-kv[1]["count"], kv[0]))
    return [
        {
            "profile_id": pid,
            "name": names.get(pid, f"user_{pid}"),
            "count": entry["count"],
            "amount": entry["amount"],
        }
        for pid, entry in ranked[:TOP_PARTNERS]
    ]


def _settlement_ratio(expenses: list, participants: dict, settlements: dict) -> Decimal:
    """Settled non-buyer legs over all non-buyer legs. No legs counts as 1."""
    total = settled = 0
    for e in expenses:
        for p in ledger.resolve_participants(e, participants.get(e.id, []), settlements.get(e.id, [])):
            if p.role != ledger.Role.PARTICIPANT:
                continue
            total += 1
            settled += 1 if p.settled else 0
    if total == 0:
        return Decimal("1.00")
    return ledger.to_cents(Decimal(settled) / Decimal(total))


def build_insights(
        monthly: list[dict],
        categories: list[dict],
        total: Decimal,
        average: Decimal,
        partners: list[dict],
) -> list[dict]:
    """Short observations shown under the charts."""
    insights = []

    if len(monthly) >= 2 and monthly[-2]["amount"] > 0:
        last, prev = monthly[-1]["amount"], monthly[-2]["amount"]
        change = (last - prev) / prev * 100
        if change > TREND_CHANGE_PCT:
            insights.append({
                "type": "warning",
                "message": f"Your spending increased by {round(change)}% last month",
            })
        elif change < -TREND_CHANGE_PCT:
            insights.append({
                "type": "positive",
                "message": f"Great! You reduced spending by {round(abs(change))}% last month",
            })

    if categories and total > 0:
        top = categories[0]
        pct = top["amount"] / total * 100
        if pct > DOMINANT_CATEGORY_PCT:
            insights.append({
                "type": "info",
                "message": f"{top['category'].capitalize()} accounts for {round(pct)}% of your expenses",
            })

    if average > HIGH_AVERAGE:
        insights.append({
            "type": "info",
            "message": f"Your average expense is {round(average)}",
        })

    if partners:
        best = partners[0]
        insights.append({
            "type": "positive",
            "message": f"You split most expenses with {best['name']} ({best['count']} expenses)",
        })

    return insights


def get_analytics(user_id: int, session: Session) -> dict:
    """Builds the payload for GET /analytics."""
    expenses, participants, settlements, names = balance_service.load_ledger(user_id, session)

    total = sum((Decimal(e.amount) for e in expenses), Decimal("0"))
    count = len(expenses)
    average = total / count if count else Decimal("0")

    monthly = _monthly_spending(expenses)
    categories = _category_breakdown(expenses)
    partners = _top_partners(user_id, expenses, participants, names)
    ratio = _settlement_ratio(expenses, participants, settlements)
    insights = build_insights(monthly, categories, total, average, partners)

    return {
        "total_expenses": _money(total),
        "expense_count": count,
        "average_expense": _money(average),
        "monthly_spending": [{"month": m["month"], "amount": _money(m["amount"])} for m in monthly],
        "category_breakdown": [
            {"category": c["category"], "amount": _money(c["amount"])} for c in categories
        ],
        "top_partners": [{**p, "amount": _money(p["amount"])} for p in partners],
        "insights": insights,
        "settlement_ratio": str(ratio),
    }
