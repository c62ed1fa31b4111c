"""
models/notification.py — Notification table definition.

Rows are written by notification_service after an accounting write has
committed. Only `is_read` is ever updated.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomsplit.app.extensions import db


class NotificationType(str, enum.Enum):
    EXPENSE_CREATED       = "expense_created"
    INDIVIDUAL_SETTLEMENT = "individual_settlement"
    BALANCE_SETTLEMENT    = "balance_settlement"
    PAYMENT_RECEIVED      = "payment_received"


class Notification(db.Model):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Stored as the plain enum value.
    type: Mapped[str] = mapped_column(String(40), nullable=False)

    recipient_id: Mapped[int] = mapped_column(
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    sender_id: Mapped[int] = mapped_column(
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
    )

    expense_id: Mapped[int | None] = mapped_column(
        ForeignKey("expenses.id", ondelete="SET NULL"),
        nullable=True,
    )

    settlement_id: Mapped[int | None] = mapped_column(
        ForeignKey("settlements.id", ondelete="SET NULL"),
        nullable=True,
    )

    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    # `metadata` is reserved on declarative classes.
    meta: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)

    is_read: Mapped[bool] = mapped_column(
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

    sender: Mapped["Profile"] = relationship(  # noqa: F821
        "Profile",
        foreign_keys=[sender_id],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Notification id={self.id} type={self.type} "
            f"to={self.recipient_id} read={self.is_read}>"
        )
