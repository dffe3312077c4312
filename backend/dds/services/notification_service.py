# Overview: Event sink for distribution notifications (fire-and-forget).

"""
The workflow engine queues events on the current session while a
transition runs. Routes call dispatch_pending() after a successful commit
and discard_pending() after a rollback, so an event is only ever emitted
for an action that was actually persisted.

Delivery to browsers/email is out of scope: events are persisted as
Notification rows that a delivery service picks up. Dispatch failures are
logged and never reach the caller.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Distribution, Notification, User
from dds.time_utils import utcnow


PENDING_EVENTS_KEY = "distribution_events"

EVENT_SENT = "distribution.sent"
EVENT_RECEIVED = "distribution.received"
EVENT_VERIFIED_BY_RECEIVER = "distribution.verified_by_receiver"
EVENT_COMPLETED = "distribution.completed"

_TITLES = {
    EVENT_SENT: "Incoming distribution {number}",
    EVENT_RECEIVED: "Distribution {number} received",
    EVENT_VERIFIED_BY_RECEIVER: "Distribution {number} verified by receiver",
    EVENT_COMPLETED: "Distribution {number} completed",
}


def queue_event(distribution: Distribution, event_type: str, *, actor_id: int | None, data: dict | None = None) -> None:
    """Remember an event until the surrounding transaction commits."""
    events = db.session.info.setdefault(PENDING_EVENTS_KEY, [])
    events.append({
        "type": event_type,
        "distribution_id": distribution.id,
        "distribution_number": distribution.distribution_number,
        "origin_department_id": distribution.origin_department_id,
        "destination_department_id": distribution.destination_department_id,
        "created_by": distribution.created_by,
        "has_discrepancies": bool(distribution.has_discrepancies),
        "actor_id": actor_id,
        "data": data or {},
    })


def pending_events() -> list[dict]:
    return list(db.session.info.get(PENDING_EVENTS_KEY, []))


def discard_pending() -> None:
    db.session.info.pop(PENDING_EVENTS_KEY, None)


def _recipients(event: dict) -> list[int]:
    if event["type"] == EVENT_SENT:
        rows = (
            db.session.query(User.id)
            .filter_by(department_id=event["destination_department_id"], is_active=True)
            .all()
        )
        user_ids = [r[0] for r in rows]
    else:
        user_ids = [event["created_by"]]
    return [uid for uid in user_ids if uid and uid != event["actor_id"]]


def _message(event: dict) -> str:
    if event["type"] == EVENT_VERIFIED_BY_RECEIVER and event["has_discrepancies"]:
        return "Receiver reported missing or damaged documents."
    if event["type"] == EVENT_SENT:
        return "A distribution is on its way to your department."
    return f"Distribution status changed ({event['type'].split('.', 1)[1]})."


def dispatch_pending() -> int:
    """
    Persist queued events as notifications and commit.

    Returns the number of notifications written; 0 when disabled or on failure.
    """
    events = db.session.info.pop(PENDING_EVENTS_KEY, [])
    if not events or not current_app.config.get("NOTIFICATIONS_ENABLED", True):
        return 0

    written = 0
    try:
        for event in events:
            for user_id in _recipients(event):
                db.session.add(Notification(
                    user_id=user_id,
                    type=event["type"],
                    title=_TITLES[event["type"]].format(number=event["distribution_number"]),
                    message=_message(event),
                    data={
                        "distribution_id": event["distribution_id"],
                        "distribution_number": event["distribution_number"],
                        "has_discrepancies": event["has_discrepancies"],
                        **event["data"],
                    },
                ))
                written += 1
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to dispatch distribution notifications")
        return 0
    return written


def list_for_user(user_id: int, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    query = db.session.query(Notification).filter_by(user_id=user_id)
    if unread_only:
        query = query.filter(Notification.read_at.is_(None))
    limit = max(1, min(limit, 200))
    return query.order_by(Notification.id.desc()).limit(limit).all()


def mark_read(notification_id: int, user_id: int) -> Notification | None:
    notification = db.session.query(Notification).filter_by(id=notification_id, user_id=user_id).first()
    if notification and notification.read_at is None:
        notification.read_at = utcnow()
        db.session.flush()
    return notification
