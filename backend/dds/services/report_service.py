# Overview: Read models for a single distribution (discrepancy summary, transmittal).

from __future__ import annotations

from ..models import Distribution, DistributionDocument, DistributionHistory
from dds.time_utils import to_utc_z
from . import history_service, location_service
from .distribution_service import get_distribution
from .workflow import DISCREPANCY_STATUSES


def _document_detail(row: DistributionDocument) -> dict:
    locator = location_service.get_locator(row.document_type)
    document = locator.load(row.document_id)
    detail = locator.describe(document) if document else {
        "document_type": row.document_type,
        "document_id": row.document_id,
        "document_number": None,
        "cur_loc": None,
    }
    detail.update({
        "is_companion": row.is_companion,
        "parent_document_id": row.parent_document_id,
        "sender_verification_status": row.sender_verification_status,
        "sender_verification_notes": row.sender_verification_notes,
        "receiver_verification_status": row.receiver_verification_status,
        "receiver_verification_notes": row.receiver_verification_notes,
    })
    return detail


def discrepancy_summary(distribution_id: int) -> dict:
    """
    Summarize sender/receiver discrepancies of one distribution.

    A document counts as a receiver discrepancy when it was marked missing
    or damaged at the destination; sender-side flags are reported separately.
    """
    distribution = get_distribution(distribution_id, include_deleted=True)

    sender_flags = []
    receiver_flags = []
    verified = 0
    for row in distribution.documents:
        if row.sender_verification_status in DISCREPANCY_STATUSES:
            sender_flags.append(_document_detail(row))
        if row.receiver_verification_status in DISCREPANCY_STATUSES:
            receiver_flags.append(_document_detail(row))
        elif row.receiver_verified:
            verified += 1

    return {
        "distribution_id": distribution.id,
        "distribution_number": distribution.distribution_number,
        "status": distribution.status,
        "has_discrepancies": distribution.has_discrepancies,
        "total_documents": len(distribution.documents),
        "receiver_verified_documents": verified,
        "missing_count": sum(1 for d in receiver_flags if d["receiver_verification_status"] == "missing"),
        "damaged_count": sum(1 for d in receiver_flags if d["receiver_verification_status"] == "damaged"),
        "sender_discrepancies": sender_flags,
        "receiver_discrepancies": receiver_flags,
    }


def _first_history_entry(distribution: Distribution, action: str):
    entry = next(
        (h for h in history_service.list_for(distribution.id) if h.action == action),
        None,
    )
    return entry


def transmittal_report(distribution_id: int) -> dict:
    """
    Transmittal slip data: header, parties, document list and sign-offs.

    Rendering (PDF/print) is left to the caller.
    """
    distribution = get_distribution(distribution_id)
    sent_entry: DistributionHistory | None = _first_history_entry(distribution, history_service.ACTION_SENT)
    received_entry = _first_history_entry(distribution, history_service.ACTION_RECEIVED)

    def _party(user, at):
        return {"user_id": user.id, "name": user.name, "at": to_utc_z(at)} if user else None

    documents = [_document_detail(row) for row in distribution.documents]
    return {
        "distribution_number": distribution.distribution_number,
        "status": distribution.status,
        "type": distribution.type.to_dict() if distribution.type else None,
        "document_type": distribution.document_type,
        "origin": distribution.origin_department.to_dict(),
        "destination": distribution.destination_department.to_dict(),
        "notes": distribution.notes,
        "created_by": _party(distribution.creator, distribution.created_at),
        "sender_verification": _party(distribution.sender_verifier, distribution.sender_verified_at),
        "sent_by": _party(sent_entry.user, sent_entry.created_at) if sent_entry else None,
        "received_by": _party(received_entry.user, received_entry.created_at) if received_entry else None,
        "receiver_verification": _party(distribution.receiver_verifier, distribution.receiver_verified_at),
        "has_discrepancies": distribution.has_discrepancies,
        "document_count": len(documents),
        "companion_count": sum(1 for d in documents if d["is_companion"]),
        "documents": documents,
    }
