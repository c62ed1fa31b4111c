"""
schemas/notification_schema.py — Output schema for notifications.

This is the one response schema in the project and the one place that
uses ma.Schema: it is only ever dumped inside a request, so the app
context flask-marshmallow needs is always present. Request (load) schemas
stay on plain marshmallow.Schema; see extensions.py.
"""

from __future__ import annotations

from marshmallow import fields

from roomsplit.app.extensions import ma


class NotificationSchema(ma.Schema):

    id            = fields.Int()
    type          = fields.Str()
    recipient_id  = fields.Int()
    sender_id     = fields.Int()
    sender_name   = fields.Method("get_sender_name")
    expense_id    = fields.Int(allow_none=True)
    settlement_id = fields.Int(allow_none=True)
    amount        = fields.Decimal(as_string=True, places=2, allow_none=True)
    metadata      = fields.Dict(attribute="meta")
    is_read       = fields.Bool()
    created_at    = fields.DateTime()

    def get_sender_name(self, obj) -> str | None:
        return obj.sender.name if obj.sender is not None else None
