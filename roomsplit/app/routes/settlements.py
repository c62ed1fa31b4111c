"""
routes/settlements.py — Complete settlement and history route handlers.

Endpoints (url_prefix=/api/v1/settlements):
  POST /settlements/complete  → 201  settle everything with one counterparty
  GET  /settlements/history   → 200  settled rows involving the caller

Query params for /history:
  ?type=individual|complete  ?counterparty_id=<id>
  ?range=week|month|quarter  ?q=<text>
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from roomsplit.app.extensions import db
from roomsplit.app.middleware.auth_middleware import require_auth
from roomsplit.app.schemas.settlement_schema import CompleteSettlementSchema, HistoryQuerySchema
from roomsplit.app.services import history_service, notification_service, settlement_service

settlements_bp = Blueprint("settlements", __name__)


@settlements_bp.route("/complete", methods=["POST"])
@require_auth
def complete_settlement():
    """
    POST /settlements/complete

    The client calls this once the user confirms the UPI payment. The
    response carries the upi://pay link for the counterparty.
    """
    data = CompleteSettlementSchema().load(request.get_json(force=True) or {})
    settlement, payment_link, notifications = settlement_service.settle_balance(
        caller_id=g.user_id,
        data=data,
        session=db.session,
        currency=current_app.config.get("PAYMENT_CURRENCY", "INR"),
    )
    db.session.commit()

    result = {
        "settlement": settlement_service.describe_settlement(settlement, db.session),
        "payment_link": payment_link,
    }
    notification_service.dispatch(notifications, db.session)
    return jsonify({"data": result, "warnings": []}), 201


@settlements_bp.route("/history", methods=["GET"])
@require_auth
def history():
    params = HistoryQuerySchema().load(request.args.to_dict())
    result = history_service.list_history(
        user_id=g.user_id,
        session=db.session,
        settlement_type=params.get("type"),
        counterparty_id=params.get("counterparty_id"),
        range_name=params.get("range"),
        q=params.get("q"),
    )
    return jsonify({"data": result, "warnings": []}), 200
