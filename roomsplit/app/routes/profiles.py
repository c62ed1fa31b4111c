"""
routes/profiles.py — Profile route handlers.

Endpoints (url_prefix=/api/v1/profiles):
  GET    /profiles        → 200  every other profile (roommates)
  GET    /profiles/me     → 200  own profile, with email
  PATCH  /profiles/me     → 200  update name / upi_id
  GET    /profiles/:id    → 200  one profile, without email
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from roomsplit.app.extensions import db
from roomsplit.app.middleware.auth_middleware import require_auth
from roomsplit.app.schemas.profile_schema import PatchProfileSchema
from roomsplit.app.services import profile_service

profiles_bp = Blueprint("profiles", __name__)


@profiles_bp.route("", methods=["GET"])
@require_auth
def list_profiles():
    result = profile_service.list_roommates(g.user_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200


@profiles_bp.route("/me", methods=["GET"])
@require_auth
def get_me():
    result = profile_service.get_my_profile(g.user_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200


@profiles_bp.route("/me", methods=["PATCH"])
@require_auth
def update_me():
    """PATCH /profiles/me — Only name and upi_id are editable."""
    data = PatchProfileSchema().load(request.get_json(force=True) or {})
    result = profile_service.update_profile(g.user_id, data, db.session)
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@profiles_bp.route("/<int:profile_id>", methods=["GET"])
@require_auth
def get_profile(profile_id: int):
    result = profile_service.get_profile(profile_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200
