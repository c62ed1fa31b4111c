"""
schemas/profile_schema.py — Marshmallow schema for PATCH /profiles/me.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates

from roomsplit.app.errors import ErrorCode

# handle@bank, e.g. "alice.k@okaxis"
UPI_ID_PATTERN = r"^[\w.\-]{2,256}@[a-zA-Z]{2,64}$"


class PatchProfileSchema(Schema):
    """
    All fields optional. Email and password are not editable here.
    upi_id may be sent as null to clear it.
    """

    name = fields.Str(
        validate=validate.Length(min=1, max=100, error="Name must be between 1 and 100 characters."),
    )

    upi_id = fields.Str(
        allow_none=True,
        validate=validate.Regexp(UPI_ID_PATTERN, error=ErrorCode.INVALID_UPI_ID),
    )

    @validates("name")
    def validate_name(self, value: str, **kwargs) -> None:
        if not value.strip():
            raise ValidationError("Name must not be blank.")
