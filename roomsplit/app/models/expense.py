"""
models/expense.py — Expense table definition.

No business logic. No imports from services or routes.

Key design points:
  - `amount` uses Numeric(12, 2), never Float.
  - Expenses are immutable once created; there is no edit or delete flow.
  - The buyer is NOT stored as a participant row. Participant rows exist
    only for the non-buyer people sharing the expense; the buyer's own
    share is always settled.
  - Category is a Python enum so services and schemas share one list.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomsplit.app.extensions import db


class Category(str, enum.Enum):
    FOOD      = "food"
    TRAVEL    = "travel"
    RENT      = "rent"
    UTILITIES = "utilities"
    MISC      = "misc"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'food'), not names ('FOOD')."""
    return [member.value for member in enum_cls]


class Expense(db.Model):
    __tablename__ = "expenses"

    __table_args__ = (
        # Also enforced by the marshmallow schema; the schema is the primary gate.
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        CheckConstraint(
            "LENGTH(TRIM(title)) > 0",
            name="ck_expenses_title_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    category: Mapped[Category] = mapped_column(
        Enum(
            Category,
            name="category_enum",
            native_enum=False,
            length=20,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=Category.MISC,
        server_default=Category.MISC.value,
    )

    # ON DELETE RESTRICT — cannot delete a profile that has bought expenses.
    buyer_id: Mapped[int] = mapped_column(
        ForeignKey("profiles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    buyer: Mapped["Profile"] = relationship(  # noqa: F821
        "Profile",
        back_populates="expenses_bought",
        foreign_keys=[buyer_id],
    )

    participants: Mapped[list["ExpenseParticipant"]] = relationship(  # noqa: F821
        "ExpenseParticipant",
        back_populates="expense",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def participant_count(self) -> int:
        """Buyer plus every stored (non-buyer) participant."""
        return 1 + len(self.participants)

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Expense id={self.id} "
            f"buyer_id={self.buyer_id} "
            f"amount={self.amount}>"
        )
