"""
schemas/settlement_schema.py — Marshmallow schemas for settlement endpoints.

Validation responsibility:
  - This file: field types, decimal precision, request shape.
  - services/settlement_service.py: everything that needs the ledger
    (SHARE_MISMATCH, NET_AMOUNT_MISMATCH, NO_OUTSTANDING_SHARE,
    DUPLICATE_EXPENSE_ENTRY, NOTHING_TO_SETTLE, PAYMENT_ADDRESS_MISSING,
    SELF_SETTLEMENT).

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate

from roomsplit.app.errors import ErrorCode
from roomsplit.app.models.settlement import SettlementType


def _validate_precision(value: Decimal) -> None:
    """At most 2 decimal places. Sign is not checked: net_amount may be negative."""
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


class SettlementEntrySchema(Schema):
    """One expense inside a complete settlement, with the share the client saw."""

    expense_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="expense_id must be a positive integer."),
    )

    share_amount = fields.Decimal(
        required=True,
        validate=[
            validate.Range(min=Decimal("0"), min_inclusive=False, error="share_amount must be positive."),
        ],
    )


class CompleteSettlementSchema(Schema):
    """
    POST /settlements/complete

    net_amount is signed from the caller's side: positive when the caller
    owes the counterparty, negative when the counterparty owes the caller.
    It must match the server's own sum within one cent.
    """

    counterparty_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="counterparty_id must be a positive integer."),
    )

    expenses = fields.List(
        fields.Nested(SettlementEntrySchema),
        required=True,
    )

    net_amount = fields.Decimal(
        required=True,
        validate=_validate_precision,
    )


class HistoryQuerySchema(Schema):
    """GET /settlements/history query string."""

    type = fields.Enum(
        SettlementType,
        by_value=True,
        load_default=None,
    )

    counterparty_id = fields.Int(
        load_default=None,
        validate=validate.Range(min=1),
    )

    range = fields.Str(
        load_default=None,
        validate=validate.OneOf(("week", "month", "quarter")),
    )

    q = fields.Str(
        load_default=None,
        validate=validate.Length(max=100),
    )
