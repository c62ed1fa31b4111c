"""
schemas/expense_schema.py — Marshmallow schema for expense creation.

Validation responsibility:
  - This file:
      - Field types, lengths, enum values, decimal precision
      - Non-empty-after-trim enforcement for title
  - services/expense_service.py:
      - EMPTY_PARTICIPANTS (422)  — the list may be non-empty here and still
                                    contain only the buyer
      - PROFILE_NOT_FOUND (404)   — requires a DB lookup

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate

from roomsplit.app.errors import ErrorCode
from roomsplit.app.models.expense import Category


def validate_monetary_amount(value: Decimal) -> None:
    """
    Strictly positive, at most 2 decimal places.

    More than 2 decimal places is REJECTED with INVALID_AMOUNT_PRECISION,
    never rounded. The route error handler recognises the code.
    """
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")

    # Decimal("10.123").as_tuple().exponent == -3  → 3 dp → reject
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


class CreateExpenseSchema(Schema):
    """
    POST /expenses

    The caller is the buyer; there is no buyer field. participant_ids may
    include the caller, who is dropped by the service.
    """

    title = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=255, error="Title must be between 1 and 255 characters."),
            _validate_non_empty_after_trim,
        ],
    )

    amount = fields.Decimal(
        required=True,
        validate=validate_monetary_amount,
    )

    category = fields.Enum(
        Category,
        load_default=Category.MISC,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_CATEGORY},
    )

    participant_ids = fields.List(
        fields.Int(
            strict=True,
            validate=validate.Range(min=1, error="participant_ids must be positive integers."),
        ),
        required=True,
    )
