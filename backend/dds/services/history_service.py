# Overview: Service-layer operations for the distribution audit trail.

from __future__ import annotations

from ..extensions import db
from ..models import DistributionHistory
"""
Distribution History invariants

- Append-only: rows are never updated or deleted (ORM guards on the model).
- Written inside the same DB transaction as the action they record, so a
  rejected action leaves no row behind.
- One row per business action; receiver discrepancies add one row per
  flagged document.
"""


ACTION_CREATED = "created"
ACTION_VERIFIED_BY_SENDER = "verified_by_sender"
ACTION_SENT = "sent"
ACTION_RECEIVED = "received"
ACTION_VERIFIED_BY_RECEIVER = "verified_by_receiver"
ACTION_DISCREPANCY = "discrepancy"
ACTION_COMPLETED = "completed"
ACTION_UPDATED = "updated"
ACTION_ATTACHED = "attached"
ACTION_DETACHED = "detached"
ACTION_DELETED = "deleted"

VALID_ACTIONS = {
    ACTION_CREATED,
    ACTION_VERIFIED_BY_SENDER,
    ACTION_SENT,
    ACTION_RECEIVED,
    ACTION_VERIFIED_BY_RECEIVER,
    ACTION_DISCREPANCY,
    ACTION_COMPLETED,
    ACTION_UPDATED,
    ACTION_ATTACHED,
    ACTION_DETACHED,
    ACTION_DELETED,
}


def record(
    *,
    distribution_id: int,
    action: str,
    user_id: int | None,
    notes: str | None = None,
    metadata: dict | None = None,
) -> DistributionHistory:
    """Append one history row. Flushes, never commits."""
    if action not in VALID_ACTIONS:
        raise ValueError(f"Unknown history action '{action}'")

    entry = DistributionHistory(
        distribution_id=distribution_id,
        action=action,
        user_id=user_id,
        notes=notes,
        action_metadata=metadata,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_for(distribution_id: int) -> list[DistributionHistory]:
    return (
        db.session.query(DistributionHistory)
        .filter_by(distribution_id=distribution_id)
        .order_by(DistributionHistory.id.asc())
        .all()
    )
