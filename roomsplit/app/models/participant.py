"""
models/participant.py — ExpenseParticipant association table.

One row per non-buyer participant of an expense, written together with the
expense. `settlement_status` only ever moves false → true; no unsettle
operation exists. It mirrors the settlement ledger and is written in the
same transaction as the ledger row, never on its own.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, UniqueConstraint, false, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomsplit.app.extensions import db


class ExpenseParticipant(db.Model):
    __tablename__ = "expense_participants"

    __table_args__ = (
        UniqueConstraint(
            "expense_id",
            "participant_id",
            name="uq_expense_participants_expense_participant",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # ON DELETE CASCADE — participant rows are owned by their expense.
    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    participant_id: Mapped[int] = mapped_column(
        ForeignKey("profiles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    settlement_status: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    expense: Mapped["Expense"] = relationship(  # noqa: F821
        "Expense",
        back_populates="participants",
    )

    participant: Mapped["Profile"] = relationship(  # noqa: F821
        "Profile",
        back_populates="participations",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ExpenseParticipant expense_id={self.expense_id} "
            f"participant_id={self.participant_id} "
            f"settled={self.settlement_status}>"
        )
