"""
models/settlement.py — Settlement ledger table.

Append-only: rows are inserted by settlement_service and never updated or
deleted. No business logic. No imports from services or routes.

Key design points:
  - settlement_type "individual": one participant's share of one expense;
    expense_id is set, expense_details is empty.
  - settlement_type "complete": a whole net balance between two people;
    expense_id is NULL and expense_details lists the contributing
    {expense_id, amount, expense_title} legs.
  - payer_id <> payee_id is enforced here and in the service.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    func,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomsplit.app.extensions import db


class SettlementType(str, enum.Enum):
    INDIVIDUAL = "individual"
    COMPLETE   = "complete"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Settlement(db.Model):
    __tablename__ = "settlements"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        CheckConstraint(
            "payer_id <> payee_id",
            name="ck_settlements_no_self_settlement",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # NULL for complete settlements.
    expense_id: Mapped[int | None] = mapped_column(
        ForeignKey("expenses.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    payer_id: Mapped[int] = mapped_column(
        ForeignKey("profiles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    payee_id: Mapped[int] = mapped_column(
        ForeignKey("profiles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Shares are exact quotients; the ledger stores them to the cent.
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    is_settled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=true(),
    )

    settlement_type: Mapped[SettlementType] = mapped_column(
        Enum(
            SettlementType,
            name="settlement_type_enum",
            native_enum=False,
            length=20,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=SettlementType.INDIVIDUAL,
    )

    settled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    expense_details: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    expense: Mapped["Expense"] = relationship("Expense")  # noqa: F821

    payer: Mapped["Profile"] = relationship(  # noqa: F821
        "Profile",
        foreign_keys=[payer_id],
    )

    payee: Mapped["Profile"] = relationship(  # noqa: F821
        "Profile",
        foreign_keys=[payee_id],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Settlement id={self.id} "
            f"type={self.settlement_type} "
            f"from={self.payer_id} "
            f"to={self.payee_id} "
            f"amount={self.amount}>"
        )
