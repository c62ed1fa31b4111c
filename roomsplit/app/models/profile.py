"""
models/profile.py — Profile table definition.

One row per roommate. No business logic. No imports from services or routes.

`upi_id` is the optional payment address used to build the upi://pay link
for complete settlements; a counterparty without one cannot be settled
in bulk.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomsplit.app.extensions import db


class Profile(db.Model):
    __tablename__ = "profiles"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_profiles_name_nonempty",
        ),
        CheckConstraint(
            "email LIKE '%@%'",
            name="ck_profiles_email_format",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # e.g. "alice@okaxis". NULL until the user completes profile setup.
    upi_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    expenses_bought: Mapped[list["Expense"]] = relationship(  # noqa: F821
        "Expense",
        back_populates="buyer",
        foreign_keys="[Expense.buyer_id]",
    )

    participations: Mapped[list["ExpenseParticipant"]] = relationship(  # noqa: F821
        "ExpenseParticipant",
        back_populates="participant",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Profile id={self.id} name={self.name!r}>"
