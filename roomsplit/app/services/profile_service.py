"""
services/profile_service.py — Profile lookups and profile setup.

Layer rules:
  - No Flask imports.
  - Receives plain ints and dicts; returns dicts or ORM objects, or raises
    AppError subclasses.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from roomsplit.app.errors import ErrorCode, NotFoundError
from roomsplit.app.models.profile import Profile


def serialize_profile(profile: Profile, include_email: bool = False) -> dict:
    """Plain dict for JSON output. Email is only shown to its owner."""
    data = {
        "id": profile.id,
        "name": profile.name,
        "upi_id": profile.upi_id,
        "created_at": profile.created_at.isoformat() if profile.created_at else None,
    }
    if include_email:
        data["email"] = profile.email
    return data


def get_profile_or_404(profile_id: int, session: Session) -> Profile:
    """Returns the Profile or raises PROFILE_NOT_FOUND (404)."""
    profile = session.get(Profile, profile_id)
    if profile is None:
        raise NotFoundError(
            ErrorCode.PROFILE_NOT_FOUND,
            f"Profile {profile_id} does not exist.",
        )
    return profile


def get_names(profile_ids: Iterable[int], session: Session) -> dict[int, str]:
    """Returns {profile_id: name} for the given ids. Unknown ids are omitted."""
    ids = set(profile_ids)
    if not ids:
        return {}
    rows = session.execute(
        select(Profile.id, Profile.name).where(Profile.id.in_(ids))
    ).all()
    return {pid: name for pid, name in rows}


def get_my_profile(profile_id: int, session: Session) -> dict:
    return serialize_profile(get_profile_or_404(profile_id, session), include_email=True)


def get_profile(profile_id: int, session: Session) -> dict:
    return serialize_profile(get_profile_or_404(profile_id, session))


def list_roommates(caller_id: int, session: Session) -> list[dict]:
    """Every other profile, by name. Used to pick expense participants."""
    stmt = (
        select(Profile)
        .where(Profile.id != caller_id)
        .order_by(Profile.name, Profile.id)
    )
    return [serialize_profile(p) for p in session.execute(stmt).scalars().all()]


def update_profile(profile_id: int, data: dict, session: Session) -> dict:
    """
    Applies a validated PatchProfileSchema payload.

    Only `name` and `upi_id` are editable. Sending upi_id=null clears the
    payment address.
    """
    profile = get_profile_or_404(profile_id, session)

    if "name" in data:
        profile.name = data["name"].strip()
    if "upi_id" in data:
        profile.upi_id = data["upi_id"]

    session.flush()
    return serialize_profile(profile, include_email=True)
