"""
routes/notifications.py — Notification route handlers.

Endpoints (url_prefix=/api/v1/notifications):
  GET  /notifications               → 200  newest first (?unread=true)
  GET  /notifications/unread-count  → 200
  POST /notifications/:id/read      → 200  recipient only
  POST /notifications/read-all      → 200
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from roomsplit.app.extensions import db
from roomsplit.app.middleware.auth_middleware import require_auth
from roomsplit.app.schemas.notification_schema import NotificationSchema
from roomsplit.app.services import notification_service

notifications_bp = Blueprint("notifications", __name__)


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes"}


@notifications_bp.route("", methods=["GET"])
@require_auth
def list_notifications():
    notifications = notification_service.list_notifications(
        recipient_id=g.user_id,
        session=db.session,
        unread_only=_flag(request.args.get("unread")),
    )
    return jsonify({
        "data": NotificationSchema(many=True).dump(notifications),
        "warnings": [],
    }), 200


@notifications_bp.route("/unread-count", methods=["GET"])
@require_auth
def unread_count():
    count = notification_service.unread_count(g.user_id, db.session)
    return jsonify({"data": {"unread": count}, "warnings": []}), 200


@notifications_bp.route("/<int:notification_id>/read", methods=["POST"])
@require_auth
def mark_read(notification_id: int):
    notification = notification_service.mark_read(notification_id, g.user_id, db.session)
    db.session.commit()
    return jsonify({"data": NotificationSchema().dump(notification), "warnings": []}), 200


@notifications_bp.route("/read-all", methods=["POST"])
@require_auth
def mark_all_read():
    updated = notification_service.mark_all_read(g.user_id, db.session)
    db.session.commit()
    return jsonify({"data": {"updated": updated}, "warnings": []}), 200
