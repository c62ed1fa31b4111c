"""
services/history_service.py — Settlement history for one user.

Filters:
  type          "individual" | "complete"
  counterparty  profile id on the other side of the row
  range         "week" (7 days) | "month" (1 calendar month) | "quarter" (3 months)
  q             case-insensitive text search over payer name, payee name,
                expense title and the titles inside a complete settlement

The text search runs in Python after the SQL filters, because complete
settlements keep their titles in a JSON column.

Layer rules:
  - No Flask imports.
  - Read only: never flushes or commits.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta, timezone

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from roomsplit.app.models.expense import Expense
from roomsplit.app.models.settlement import Settlement, SettlementType
from roomsplit.app.services.profile_service import get_names
from roomsplit.app.services.settlement_service import serialize_settlement

RANGES = ("week", "month", "quarter")


def _months_before(moment: datetime, months: int) -> datetime:
    """Same day-of-month `months` earlier, clamped to the month's length."""
    year, month = moment.year, moment.month - months
    while month < 1:
        month += 12
        year -= 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def range_start(range_name: str, now: datetime | None = None) -> datetime:
    """Earliest settled_at included by a named range."""
    now = now or datetime.now(timezone.utc)
    if range_name == "week":
        return now - timedelta(days=7)
    if range_name == "month":
        return _months_before(now, 1)
    if range_name == "quarter":
        return _months_before(now, 3)
    raise ValueError(f"Unknown range: {range_name}")


def _matches(item: dict, needle: str) -> bool:
    haystack = [
        item["payer_name"],
        item["payee_name"],
        item.get("expense_title") or "",
        *(d.get("expense_title") or "" for d in item["expense_details"]),
    ]
    return any(needle in text.lower() for text in haystack)


def list_history(
        user_id: int,
        session: Session,
        settlement_type: SettlementType | None = None,
        counterparty_id: int | None = None,
        range_name: str | None = None,
        q: str | None = None,
        now: datetime | None = None,
) -> list[dict]:
    """
    Settled ledger rows where the user is payer or payee, newest first.

    Each item is serialize_settlement() plus `expense_title` (null for
    complete settlements, whose titles are in expense_details).
    """
    stmt = select(Settlement).where(
        Settlement.is_settled.is_(True),
        or_(Settlement.payer_id == user_id, Settlement.payee_id == user_id),
    )

    if settlement_type is not None:
        stmt = stmt.where(Settlement.settlement_type == settlement_type)

    if counterparty_id is not None:
        stmt = stmt.where(
            or_(
                Settlement.payer_id == counterparty_id,
                Settlement.payee_id == counterparty_id,
            )
        )

    if range_name:
        stmt = stmt.where(Settlement.settled_at >= range_start(range_name, now))

    stmt = stmt.order_by(Settlement.settled_at.desc(), Settlement.id.desc())
    rows = list(session.execute(stmt).scalars().all())
    if not rows:
        return []

    ids = set()
    expense_ids = set()
    for s in rows:
        ids.update((s.payer_id, s.payee_id))
        if s.expense_id is not None:
            expense_ids.add(s.expense_id)
    names = get_names(ids, session)

    titles: dict[int, str] = {}
    if expense_ids:
        for expense_id, title in session.execute(
            select(Expense.id, Expense.title).where(Expense.id.in_(expense_ids))
        ).all():
            titles[expense_id] = title

    items = []
    for s in rows:
        item = serialize_settlement(s, names)
        item["expense_title"] = titles.get(s.expense_id) if s.expense_id else None
        items.append(item)

    if q and q.strip():
        needle = q.strip().lower()
        items = [item for item in items if _matches(item, needle)]

    return items
