"""
routes/balances.py — Balance and analytics route handlers.

Endpoints (url_prefix=/api/v1):
  GET /balances   → 200  net balance against every counterparty
  GET /analytics  → 200  spending totals, trends and insights
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from roomsplit.app.extensions import db
from roomsplit.app.middleware.auth_middleware import require_auth
from roomsplit.app.services import analytics_service, balance_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/balances", methods=["GET"])
@require_auth
def get_balances():
    """
    GET /balances

    Positive net_amount: the caller owes (direction "owe").
    Negative net_amount: the caller is owed (direction "owed").
    Counterparties within one cent of zero are omitted.
    """
    result = balance_service.get_balance_response(g.user_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200


@balances_bp.route("/analytics", methods=["GET"])
@require_auth
def get_analytics():
    result = analytics_service.get_analytics(g.user_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200
