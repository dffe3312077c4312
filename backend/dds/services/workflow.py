# Overview: Distribution status constants and transition rules.

"""
Distribution lifecycle

================================================================================
STATE MACHINE (single linear path):
    draft -> verified_by_sender -> sent -> received -> verified_by_receiver -> completed
================================================================================

RULES:
1. Cannot skip states (draft -> sent is forbidden)
2. Cannot reverse states
3. completed is terminal and immutable
4. Soft-deleted distributions accept no further operations
5. Document edits (update, attach, detach, delete) only while draft
"""

from __future__ import annotations
from typing import Literal

from .errors import PreconditionError, ValidationError


STATUS_DRAFT = "draft"
STATUS_VERIFIED_BY_SENDER = "verified_by_sender"
STATUS_SENT = "sent"
STATUS_RECEIVED = "received"
STATUS_VERIFIED_BY_RECEIVER = "verified_by_receiver"
STATUS_COMPLETED = "completed"

STATUS_ORDER = (
    STATUS_DRAFT,
    STATUS_VERIFIED_BY_SENDER,
    STATUS_SENT,
    STATUS_RECEIVED,
    STATUS_VERIFIED_BY_RECEIVER,
    STATUS_COMPLETED,
)
VALID_STATUSES = set(STATUS_ORDER)
DistributionStatus = Literal[
    "draft", "verified_by_sender", "sent", "received", "verified_by_receiver", "completed"
]

# operation name -> (required current status, resulting status)
TRANSITIONS = {
    "verify-sender": (STATUS_DRAFT, STATUS_VERIFIED_BY_SENDER),
    "send": (STATUS_VERIFIED_BY_SENDER, STATUS_SENT),
    "receive": (STATUS_SENT, STATUS_RECEIVED),
    "verify-receiver": (STATUS_RECEIVED, STATUS_VERIFIED_BY_RECEIVER),
    "complete": (STATUS_VERIFIED_BY_RECEIVER, STATUS_COMPLETED),
}

VERIFICATION_VERIFIED = "verified"
VERIFICATION_MISSING = "missing"
VERIFICATION_DAMAGED = "damaged"
VALID_VERIFICATION_STATUSES = {VERIFICATION_VERIFIED, VERIFICATION_MISSING, VERIFICATION_DAMAGED}
DISCREPANCY_STATUSES = {VERIFICATION_MISSING, VERIFICATION_DAMAGED}


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(STATUS_ORDER)}"
        )


def status_rank(status: DistributionStatus) -> int:
    validate_status(status)
    return STATUS_ORDER.index(status)


def can_transition(from_status: DistributionStatus, to_status: DistributionStatus) -> bool:
    """Only the immediate successor in STATUS_ORDER is reachable."""
    return status_rank(to_status) == status_rank(from_status) + 1


def require_transition(distribution, operation: str) -> str:
    """
    Check that operation may run against distribution's current status.

    Returns the target status.

    Raises:
        PreconditionError: wrong status, or the distribution is soft-deleted
    """
    required, target = TRANSITIONS[operation]
    if distribution.deleted_at is not None:
        raise PreconditionError(f"Distribution {distribution.id} has been deleted")
    if distribution.status != required:
        raise PreconditionError(
            f"Cannot {operation} distribution {distribution.distribution_number}: "
            f"current status is '{distribution.status}', must be '{required}'"
        )
    return target


def require_draft(distribution, operation: str) -> None:
    if distribution.deleted_at is not None:
        raise PreconditionError(f"Distribution {distribution.id} has been deleted")
    if distribution.status != STATUS_DRAFT:
        raise PreconditionError(
            f"Cannot {operation} distribution {distribution.distribution_number}: "
            f"only draft distributions can be changed (current status '{distribution.status}')"
        )
