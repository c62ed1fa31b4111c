"""
routes/expenses.py — Expense and individual settlement route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - Notifications returned by the service are dispatched AFTER the commit.
  - No business logic. No DB queries. No bare SQL.

Endpoints (url_prefix=/api/v1):
  POST   /expenses                                   → 201  create expense
  GET    /expenses                                   → 200  caller's expenses
  GET    /expenses/:id                               → 200  detail + settlements
  POST   /expenses/:id/participants/:pid/settle      → 201  settle one share
                                                       200  already settled
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from roomsplit.app.extensions import db
from roomsplit.app.middleware.auth_middleware import require_auth
from roomsplit.app.schemas.expense_schema import CreateExpenseSchema
from roomsplit.app.services import expense_service, notification_service, settlement_service

expenses_bp = Blueprint("expenses", __name__)


@expenses_bp.route("/expenses", methods=["POST"])
@require_auth
def create_expense():
    """POST /expenses — Record an expense bought by the caller, split equally."""
    data = CreateExpenseSchema().load(request.get_json(force=True) or {})
    expense, notifications = expense_service.create_expense(
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()

    result = expense_service.describe_expense(expense, db.session)
    notification_service.dispatch(notifications, db.session)
    return jsonify({"data": result, "warnings": []}), 201


@expenses_bp.route("/expenses", methods=["GET"])
@require_auth
def list_expenses():
    """GET /expenses — Every expense the caller bought or shares, newest first."""
    result = expense_service.list_expenses(g.user_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>", methods=["GET"])
@require_auth
def get_expense(expense_id: int):
    result = expense_service.get_expense(
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@expenses_bp.route(
    "/expenses/<int:expense_id>/participants/<int:participant_id>/settle",
    methods=["POST"],
)
@require_auth
def settle_participant(expense_id: int, participant_id: int):
    """
    POST /expenses/:id/participants/:pid/settle

    Marks one share paid. A repeated call returns 200 with an
    ALREADY_SETTLED warning and writes nothing.
    """
    settlement, warnings, notifications = settlement_service.settle_participant(
        expense_id=expense_id,
        participant_id=participant_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()

    result = settlement_service.describe_settlement(settlement, db.session)
    notification_service.dispatch(notifications, db.session)
    status = 200 if warnings else 201
    return jsonify({"data": result, "warnings": warnings}), status
