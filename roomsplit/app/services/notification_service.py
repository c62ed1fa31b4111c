"""
services/notification_service.py — Persisted in-app notifications.

Dispatch contract:
  Notifications are fire-and-forget. They are written AFTER the accounting
  write they describe has been committed, in their own commit, so a failed
  notification can never roll back an expense or a settlement.
  dispatch() logs and swallows database errors; nothing else in this
  module swallows anything.

Layer rules:
  - No Flask imports.
  - notify() only flushes. dispatch() is the one place that commits,
    because it runs after the route's own commit.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from roomsplit.app.errors import AuthorizationError, ErrorCode, NotFoundError
from roomsplit.app.models.notification import Notification, NotificationType
from roomsplit.app.services.ledger import to_cents

logger = logging.getLogger(__name__)


def notify(
        type: NotificationType,
        recipient_id: int,
        sender_id: int,
        session: Session,
        expense_id: int | None = None,
        settlement_id: int | None = None,
        amount: Decimal | None = None,
        metadata: dict | None = None,
) -> Notification:
    """Adds one notification row and flushes it."""
    notification = Notification(
        type=NotificationType(type).value,
        recipient_id=recipient_id,
        sender_id=sender_id,
        expense_id=expense_id,
        settlement_id=settlement_id,
        amount=to_cents(amount) if amount is not None else None,
        meta=metadata or {},
        is_read=False,
    )
    session.add(notification)
    session.flush()
    return notification


def dispatch(messages: list[dict], session: Session) -> int:
    """
    Writes and commits a batch of notifications built by a service call.

    Each message is the keyword arguments for notify() minus the session.
    Must be called after the accounting commit. On a database error the
    batch is rolled back, logged, and dropped.

    Returns the number of notifications written.
    """
    if not messages:
        return 0
    try:
        for message in messages:
            notify(session=session, **message)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.warning(
            "Dropped %d notification(s) after a database error",
            len(messages),
            exc_info=True,
        )
        return 0
    return len(messages)


def list_notifications(
        recipient_id: int,
        session: Session,
        unread_only: bool = False,
        limit: int = 50,
) -> list[Notification]:
    """The recipient's notifications, newest first."""
    stmt = select(Notification).where(Notification.recipient_id == recipient_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    return list(session.execute(stmt).scalars().all())


def unread_count(recipient_id: int, session: Session) -> int:
    return session.execute(
        select(func.count(Notification.id)).where(
            Notification.recipient_id == recipient_id,
            Notification.is_read.is_(False),
        )
    ).scalar_one()


def mark_read(notification_id: int, caller_id: int, session: Session) -> Notification:
    """
    Marks one notification read.

    Raises:
      NotFoundError(NOTIFICATION_NOT_FOUND) — no such notification.
      AuthorizationError(FORBIDDEN)         — caller is not the recipient.
    """
    notification = session.get(Notification, notification_id)
    if notification is None:
        raise NotFoundError(
            ErrorCode.NOTIFICATION_NOT_FOUND,
            f"Notification {notification_id} does not exist.",
        )
    if notification.recipient_id != caller_id:
        raise AuthorizationError("You can only update your own notifications.")

    notification.is_read = True
    session.flush()
    return notification


def mark_all_read(recipient_id: int, session: Session) -> int:
    """Marks every unread notification of the recipient read. Returns the count."""
    result = session.execute(
        update(Notification)
        .where(
            Notification.recipient_id == recipient_id,
            Notification.is_read.is_(False),
        )
        .values(is_read=True)
    )
    session.flush()
    return result.rowcount or 0
