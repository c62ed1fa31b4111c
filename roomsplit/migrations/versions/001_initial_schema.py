"""Initial schema — profiles, expenses, participants, settlements, notifications.

Revision: 001_initial_schema
Created:  2026-10-17

Append-only: this file must never be edited after it has been applied to
any database. Schema changes go in a NEW migration file.

Creation order follows FK dependencies:
  profiles → expenses → expense_participants → settlements → notifications

Enums are stored as VARCHAR with the enum's values (native_enum=False on
the models), so no CREATE TYPE statements are needed and the same
migration runs on SQLite.

ON DELETE policies:
  expenses.buyer_id                   → RESTRICT
  expense_participants.expense_id     → CASCADE   (rows owned by the expense)
  expense_participants.participant_id → RESTRICT
  settlements.*                       → RESTRICT  (the ledger is append-only)
  notifications.recipient/sender      → CASCADE
  notifications.expense/settlement    → SET NULL
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:

    # ── profiles ───────────────────────────────────────────────────────────
    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("upi_id", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_profiles"),
        sa.UniqueConstraint("email", name="uq_profiles_email"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_profiles_name_nonempty"),
        sa.CheckConstraint("email LIKE '%@%'", name="ck_profiles_email_format"),
    )

    # ── expenses ───────────────────────────────────────────────────────────
    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "category",
            sa.String(20),
            nullable=False,
            server_default="misc",
        ),
        sa.Column(
            "buyer_id",
            sa.Integer(),
            sa.ForeignKey("profiles.id", ondelete="RESTRICT", name="fk_expenses_buyer"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_expenses"),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        sa.CheckConstraint("LENGTH(TRIM(title)) > 0", name="ck_expenses_title_nonempty"),
        sa.CheckConstraint(
            "category IN ('food', 'travel', 'rent', 'utilities', 'misc')",
            name="ck_expenses_category_valid",
        ),
    )
    op.create_index("ix_expenses_buyer_id", "expenses", ["buyer_id"])
    op.create_index("ix_expenses_created_at", "expenses", ["created_at"])

    # ── expense_participants ───────────────────────────────────────────────
    op.create_table(
        "expense_participants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey("expenses.id", ondelete="CASCADE", name="fk_expense_participants_expense"),
            nullable=False,
        ),
        sa.Column(
            "participant_id",
            sa.Integer(),
            sa.ForeignKey("profiles.id", ondelete="RESTRICT", name="fk_expense_participants_profile"),
            nullable=False,
        ),
        sa.Column(
            "settlement_status",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_expense_participants"),
        sa.UniqueConstraint(
            "expense_id",
            "participant_id",
            name="uq_expense_participants_expense_participant",
        ),
    )
    op.create_index("ix_expense_participants_expense_id", "expense_participants", ["expense_id"])
    op.create_index("ix_expense_participants_participant_id", "expense_participants", ["participant_id"])

    # ── settlements ────────────────────────────────────────────────────────
    op.create_table(
        "settlements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey("expenses.id", ondelete="RESTRICT", name="fk_settlements_expense"),
            nullable=True,
        ),
        sa.Column(
            "payer_id",
            sa.Integer(),
            sa.ForeignKey("profiles.id", ondelete="RESTRICT", name="fk_settlements_payer"),
            nullable=False,
        ),
        sa.Column(
            "payee_id",
            sa.Integer(),
            sa.ForeignKey("profiles.id", ondelete="RESTRICT", name="fk_settlements_payee"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "is_settled",
            sa.Boolean(),
            nullable=False,
            server_default=sa.true(),
        ),
        sa.Column("settlement_type", sa.String(20), nullable=False),
        sa.Column(
            "settled_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("expense_details", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_settlements"),
        sa.CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        sa.CheckConstraint("payer_id <> payee_id", name="ck_settlements_no_self_settlement"),
        sa.CheckConstraint(
            "settlement_type IN ('individual', 'complete')",
            name="ck_settlements_type_valid",
        ),
    )
    op.create_index("ix_settlements_expense_id", "settlements", ["expense_id"])
    op.create_index("ix_settlements_payer_id", "settlements", ["payer_id"])
    op.create_index("ix_settlements_payee_id", "settlements", ["payee_id"])
    op.create_index("ix_settlements_settled_at", "settlements", ["settled_at"])

    # ── notifications ──────────────────────────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(40), nullable=False),
        sa.Column(
            "recipient_id",
            sa.Integer(),
            sa.ForeignKey("profiles.id", ondelete="CASCADE", name="fk_notifications_recipient"),
            nullable=False,
        ),
        sa.Column(
            "sender_id",
            sa.Integer(),
            sa.ForeignKey("profiles.id", ondelete="CASCADE", name="fk_notifications_sender"),
            nullable=False,
        ),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey("expenses.id", ondelete="SET NULL", name="fk_notifications_expense"),
            nullable=True,
        ),
        sa.Column(
            "settlement_id",
            sa.Integer(),
            sa.ForeignKey("settlements.id", ondelete="SET NULL", name="fk_notifications_settlement"),
            nullable=True,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column(
            "is_read",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_notifications"),
    )
    op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])
    op.create_index(
        "ix_notifications_recipient_unread",
        "notifications",
        ["recipient_id", "is_read"],
    )


def downgrade() -> None:
    """Drops everything in reverse dependency order."""
    op.drop_index("ix_notifications_recipient_unread", table_name="notifications")
    op.drop_index("ix_notifications_recipient_id", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_settlements_settled_at", table_name="settlements")
    op.drop_index("ix_settlements_payee_id", table_name="settlements")
    op.drop_index("ix_settlements_payer_id", table_name="settlements")
    op.drop_index("ix_settlements_expense_id", table_name="settlements")
    op.drop_table("settlements")

    op.drop_index("ix_expense_participants_participant_id", table_name="expense_participants")
    op.drop_index("ix_expense_participants_expense_id", table_name="expense_participants")
    op.drop_table("expense_participants")

    op.drop_index("ix_expenses_created_at", table_name="expenses")
    op.drop_index("ix_expenses_buyer_id", table_name="expenses")
    op.drop_table("expenses")

    op.drop_table("profiles")
