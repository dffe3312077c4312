# backend/dds/services/distribution_service.py
"""
Distribution workflow service.

WHY: Move a batch of invoices / supporting documents from one department to
another with sender and receiver verification, physical relocation on
receipt and a permanent audit trail.

LIFECYCLE:
1. draft: created by the origin department, documents can be attached/detached
2. verified_by_sender: origin confirmed each document (verified/missing/damaged)
3. sent: handed over to the destination department
4. received: destination took delivery; every document now located there
5. verified_by_receiver: destination confirmed each document
6. completed: terminal, immutable

Every function here flushes but never commits. Routes commit on success and
roll back on any error, so a rejected operation leaves Distribution,
DistributionDocument, document locations and history untouched.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Department, Distribution, DistributionDocument, DistributionType, User
from dds.time_utils import utcnow
from . import history_service, location_service, notification_service, verification_service
from .concurrency import flush_or_conflict, lock_for_update
from .errors import (
    ConcurrencyConflict,
    DiscrepancyConfirmationRequired,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from .sequence_service import next_distribution_number
from .workflow import (
    STATUS_COMPLETED,
    STATUS_DRAFT,
    require_draft,
    require_transition,
    validate_status,
)


UPDATABLE_FIELDS = {"type_id", "destination_department_id", "notes"}


# =============================================================================
# Helpers
# =============================================================================

def _get_actor(actor_id: int) -> User:
    actor = db.session.get(User, actor_id) if actor_id else None
    if not actor or not actor.is_active:
        raise PreconditionError(f"User {actor_id} not found or inactive")
    if not actor.department_id:
        raise PreconditionError(f"User {actor.username} is not assigned to a department")
    return actor


def _require_department(actor: User, department_id: int, side: str) -> None:
    if actor.department_id != department_id:
        raise PreconditionError(
            f"User {actor.username} does not belong to the {side} department of this distribution"
        )


def _load_for_update(distribution_id: int, expected_version: int | None = None) -> Distribution:
    distribution = lock_for_update(
        db.session.query(Distribution).filter_by(id=distribution_id)
    ).first()
    if not distribution:
        raise NotFoundError(f"Distribution {distribution_id} not found")
    if expected_version is not None and distribution.version_id != expected_version:
        raise ConcurrencyConflict(
            f"Distribution {distribution.distribution_number} changed since it was loaded "
            f"(version {expected_version}, now {distribution.version_id})"
        )
    return distribution


def _require_int(value, field: str) -> int:
    if value is None or value == "":
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    return value


def _get_destination(destination_department_id, origin_department_id: int) -> Department:
    destination_department_id = _require_int(destination_department_id, "destination_department_id")
    destination = db.session.get(Department, destination_department_id)
    if not destination or not destination.is_active:
        raise ValidationError(f"Destination department {destination_department_id} not found")
    if destination.id == origin_department_id:
        raise ValidationError("Destination department must differ from the origin department")
    return destination


def _get_type(type_id) -> DistributionType:
    type_id = _require_int(type_id, "type_id")
    dist_type = db.session.get(DistributionType, type_id)
    if not dist_type:
        raise ValidationError(f"Distribution type {type_id} not found")
    return dist_type


def _in_live_distribution(kind: str, document_id: int, exclude_distribution_id: int | None = None):
    """Return the number of another in-flight distribution holding this document, if any."""
    query = (
        db.session.query(Distribution.distribution_number)
        .join(DistributionDocument, DistributionDocument.distribution_id == Distribution.id)
        .filter(
            DistributionDocument.document_type == kind,
            DistributionDocument.document_id == document_id,
            Distribution.status != STATUS_COMPLETED,
            Distribution.deleted_at.is_(None),
        )
    )
    if exclude_distribution_id is not None:
        query = query.filter(Distribution.id != exclude_distribution_id)
    row = query.first()
    return row[0] if row else None


def _parse_refs(documents, kind: str) -> list[int]:
    if not documents or not isinstance(documents, list):
        raise ValidationError("documents must be a non-empty list")

    ids: list[int] = []
    for ref in documents:
        if isinstance(ref, dict):
            ref_kind = location_service.normalize_kind(ref.get("document_type") or kind)
            if ref_kind != kind:
                raise ValidationError(
                    f"All documents on this distribution must be of type '{kind}', got '{ref_kind}'"
                )
            ref = ref.get("document_id")
        if isinstance(ref, bool) or not isinstance(ref, int):
            raise ValidationError(f"Invalid document reference {ref!r}")
        if ref in ids:
            raise ValidationError(f"Document {kind} {ref} listed more than once")
        ids.append(ref)
    return ids


def _resolve_documents(
    *,
    kind: str,
    documents,
    origin_code: str,
    existing_keys: set[tuple[str, int]] | None = None,
    distribution_id: int | None = None,
) -> tuple[list[dict], list[str]]:
    """
    Validate requested documents and expand companions.

    Requested documents must exist, sit at origin_code and not be on another
    in-flight distribution. Companions failing those checks are left out
    with a warning instead.

    Returns:
        (rows to create, warnings)
    """
    existing_keys = existing_keys or set()
    locator = location_service.get_locator(kind)
    requested = _parse_refs(documents, kind)

    rows: list[dict] = []
    planned: set[tuple[str, int]] = set()
    primaries = []
    for document_id in requested:
        if (kind, document_id) in existing_keys:
            raise ValidationError(f"{kind} {document_id} is already attached to this distribution")
        document = locator.load(document_id)
        if document is None:
            raise ValidationError(f"{kind} {document_id} not found")
        location = locator.locate(document)
        if location != origin_code:
            raise PreconditionError(
                f"{kind} {locator.number_of(document)} is located at '{location}', "
                f"not at origin '{origin_code}'"
            )
        other = _in_live_distribution(kind, document_id, distribution_id)
        if other:
            raise PreconditionError(
                f"{kind} {locator.number_of(document)} is already on distribution {other}"
            )
        rows.append({"document_type": kind, "document_id": document_id, "is_companion": False, "parent_document_id": None})
        planned.add((kind, document_id))
        primaries.append(document)

    warnings: list[str] = []
    for parent in primaries:
        for companion_kind, companion in locator.companions(parent):
            key = (companion_kind, companion.id)
            if key in planned or key in existing_keys:
                continue
            companion_locator = location_service.get_locator(companion_kind)
            label = f"{companion_kind} {companion_locator.number_of(companion)}"
            location = companion_locator.locate(companion)
            if location != origin_code:
                warnings.append(
                    f"{label} linked to {locator.number_of(parent)} is located at '{location}', "
                    f"not at origin '{origin_code}'; excluded"
                )
                continue
            other = _in_live_distribution(companion_kind, companion.id, distribution_id)
            if other:
                warnings.append(f"{label} is already on distribution {other}; excluded")
                continue
            rows.append({
                "document_type": companion_kind,
                "document_id": companion.id,
                "is_companion": True,
                "parent_document_id": parent.id,
            })
            planned.add(key)

    for warning in warnings:
        current_app.logger.warning("Companion document skipped: %s", warning)
    return rows, warnings


def _describe_rows(rows) -> list[dict]:
    described = []
    for row in rows:
        if isinstance(row, dict):
            kind, document_id = row["document_type"], row["document_id"]
            is_companion = row["is_companion"]
        else:
            kind, document_id, is_companion = row.document_type, row.document_id, row.is_companion
        locator = location_service.get_locator(kind)
        document = locator.load(document_id)
        described.append({
            "document_type": kind,
            "document_id": document_id,
            "document_number": locator.number_of(document) if document else None,
            "is_companion": is_companion,
        })
    return described


def _log_transition(distribution: Distribution, action: str, actor: User) -> None:
    current_app.logger.info(
        "Distribution %s %s by user %s", distribution.distribution_number, action, actor.id
    )


# =============================================================================
# CREATE / DRAFT EDITING
# =============================================================================

def create_distribution(
    *,
    actor_id: int,
    type_id: int,
    destination_department_id: int,
    documents: list,
    document_type: str = location_service.KIND_INVOICE,
    origin_department_id: int | None = None,
    notes: str | None = None,
) -> tuple[Distribution, list[str]]:
    """
    Create a draft distribution from the actor's department.

    Args:
        actor_id: User creating the distribution (must belong to the origin)
        type_id: DistributionType id
        destination_department_id: Receiving department
        documents: Document ids (or {document_type, document_id} objects)
        document_type: invoice | additional_document
        origin_department_id: Defaults to the actor's department
        notes: Free text

    Returns:
        (distribution, warnings about excluded companion documents)

    Raises:
        ValidationError: bad type/destination/documents
        PreconditionError: actor outside origin, document not at origin or
            already on another in-flight distribution
    """
    actor = _get_actor(actor_id)
    origin_department_id = origin_department_id or actor.department_id
    _require_department(actor, origin_department_id, "origin")

    kind = location_service.normalize_kind(document_type)
    origin = db.session.get(Department, origin_department_id)
    destination = _get_destination(destination_department_id, origin_department_id)
    _get_type(type_id)

    rows, warnings = _resolve_documents(
        kind=kind,
        documents=documents,
        origin_code=origin.location_code,
    )
    actor_pk, destination_pk = actor.id, destination.id

    number, year, sequence = next_distribution_number(department_id=origin_department_id, type_id=type_id)

    distribution = Distribution(
        distribution_number=number,
        year=year,
        sequence=sequence,
        type_id=type_id,
        document_type=kind,
        origin_department_id=origin_department_id,
        destination_department_id=destination_pk,
        status=STATUS_DRAFT,
        notes=notes,
        created_by=actor_pk,
    )
    db.session.add(distribution)
    db.session.flush()

    for row in rows:
        db.session.add(DistributionDocument(distribution_id=distribution.id, **row))
    db.session.flush()

    history_service.record(
        distribution_id=distribution.id,
        action=history_service.ACTION_CREATED,
        user_id=actor_pk,
        notes=notes,
        metadata={"documents": _describe_rows(rows), "warnings": warnings},
    )

    current_app.logger.info(
        "Distribution %s created by user %s with %d document(s)", number, actor_pk, len(rows)
    )
    return distribution, warnings


def update_distribution(distribution_id: int, *, actor_id: int, changes: dict, expected_version: int | None = None) -> Distribution:
    """
    Update type, destination or notes of a draft distribution.

    The distribution number keeps the type code it was allocated with.
    A history row is written only when something actually changed.
    """
    if not isinstance(changes, dict) or not changes:
        raise ValidationError("No changes supplied")
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(
            f"Cannot update field(s): {', '.join(sorted(unknown))}. "
            f"Allowed: {', '.join(sorted(UPDATABLE_FIELDS))}"
        )

    actor = _get_actor(actor_id)
    distribution = _load_for_update(distribution_id, expected_version)
    require_draft(distribution, "update")
    _require_department(actor, distribution.origin_department_id, "origin")

    if "type_id" in changes:
        _get_type(changes["type_id"])
    if "destination_department_id" in changes:
        _get_destination(changes["destination_department_id"], distribution.origin_department_id)
    if changes.get("notes") is not None and not isinstance(changes["notes"], str):
        raise ValidationError("notes must be a string")

    diff = {}
    for field, value in changes.items():
        current = getattr(distribution, field)
        if current != value:
            diff[field] = {"from": current, "to": value}
            setattr(distribution, field, value)

    if diff:
        flush_or_conflict("Distribution")
        history_service.record(
            distribution_id=distribution.id,
            action=history_service.ACTION_UPDATED,
            user_id=actor.id,
            metadata={"changes": diff},
        )
        _log_transition(distribution, "updated", actor)

    return distribution


def delete_distribution(distribution_id: int, *, actor_id: int, expected_version: int | None = None) -> Distribution:
    """
    Soft-delete a draft distribution.

    Removes its DistributionDocument rows; history is kept. The number it
    was allocated is never reused.
    """
    actor = _get_actor(actor_id)
    distribution = _load_for_update(distribution_id, expected_version)
    require_draft(distribution, "delete")
    _require_department(actor, distribution.origin_department_id, "origin")

    removed = _describe_rows(distribution.documents)
    distribution.documents.clear()
    distribution.deleted_at = utcnow()
    flush_or_conflict("Distribution")

    history_service.record(
        distribution_id=distribution.id,
        action=history_service.ACTION_DELETED,
        user_id=actor.id,
        metadata={"documents": removed},
    )
    _log_transition(distribution, "deleted", actor)
    return distribution


def attach_documents(
    distribution_id: int,
    *,
    actor_id: int,
    documents: list,
    expected_version: int | None = None,
) -> tuple[Distribution, list[str]]:
    """Attach more documents to a draft, under the same location and companion rules as create."""
    actor = _get_actor(actor_id)
    distribution = _load_for_update(distribution_id, expected_version)
    require_draft(distribution, "attach documents to")
    _require_department(actor, distribution.origin_department_id, "origin")

    rows, warnings = _resolve_documents(
        kind=distribution.document_type,
        documents=documents,
        origin_code=distribution.origin_department.location_code,
        existing_keys={doc.key for doc in distribution.documents},
        distribution_id=distribution.id,
    )
    for row in rows:
        distribution.documents.append(DistributionDocument(**row))
    distribution.updated_at = utcnow()
    flush_or_conflict("Distribution")

    history_service.record(
        distribution_id=distribution.id,
        action=history_service.ACTION_ATTACHED,
        user_id=actor.id,
        metadata={"documents": _describe_rows(rows), "warnings": warnings},
    )
    _log_transition(distribution, "attached documents", actor)
    return distribution, warnings


def detach_document(
    distribution_id: int,
    *,
    actor_id: int,
    document_type: str,
    document_id: int,
    expected_version: int | None = None,
) -> Distribution:
    """
    Remove one document from a draft.

    Companions pulled in by the detached document leave with it. The last
    document of a distribution cannot be detached (delete the draft instead).
    """
    kind = location_service.normalize_kind(document_type)
    actor = _get_actor(actor_id)
    distribution = _load_for_update(distribution_id, expected_version)
    require_draft(distribution, "detach documents from")
    _require_department(actor, distribution.origin_department_id, "origin")

    target = next((d for d in distribution.documents if d.key == (kind, document_id)), None)
    if target is None:
        raise ValidationError(f"{kind} {document_id} is not attached to this distribution")

    removed = [target]
    if not target.is_companion:
        removed += [
            d for d in distribution.documents
            if d.is_companion and d.parent_document_id == document_id and d is not target
        ]
    if len(removed) >= len(distribution.documents):
        raise PreconditionError("Cannot detach the last document; delete the distribution instead")

    described = _describe_rows(removed)
    for row in removed:
        distribution.documents.remove(row)
    distribution.updated_at = utcnow()
    flush_or_conflict("Distribution")

    history_service.record(
        distribution_id=distribution.id,
        action=history_service.ACTION_DETACHED,
        user_id=actor.id,
        metadata={"documents": described},
    )
    _log_transition(distribution, "detached documents", actor)
    return distribution


# =============================================================================
# TRANSITIONS
# =============================================================================

def verify_sender(
    distribution_id: int,
    *,
    actor_id: int,
    verifications,
    notes: str | None = None,
    expected_version: int | None = None,
) -> Distribution:
    """draft -> verified_by_sender. One verification entry per attached document."""
    actor = _get_actor(actor_id)
    distribution = _load_for_update(distribution_id, expected_version)
    target = require_transition(distribution, "verify-sender")
    _require_department(actor, distribution.origin_department_id, "origin")
    if not distribution.documents:
        raise PreconditionError("Cannot verify a distribution with no documents")

    entries = verification_service.parse_entries(distribution, verifications)
    applied = verification_service.apply_sender_verifications(distribution, entries)

    distribution.status = target
    distribution.sender_verified_at = utcnow()
    distribution.sender_verified_by = actor.id
    distribution.sender_verification_notes = notes
    flush_or_conflict("Distribution")

    history_service.record(
        distribution_id=distribution.id,
        action=history_service.ACTION_VERIFIED_BY_SENDER,
        user_id=actor.id,
        notes=notes,
        metadata={"verifications": applied},
    )
    _log_transition(distribution, "verified by sender", actor)
    return distribution


def send_distribution(distribution_id: int, *, actor_id: int, expected_version: int | None = None) -> Distribution:
    """verified_by_sender -> sent. No document is touched."""
    actor = _get_actor(actor_id)
    distribution = _load_for_update(distribution_id, expected_version)
    target = require_transition(distribution, "send")
    _require_department(actor, distribution.origin_department_id, "origin")

    distribution.status = target
    distribution.sent_at = utcnow()
    flush_or_conflict("Distribution")

    history_service.record(
        distribution_id=distribution.id,
        action=history_service.ACTION_SENT,
        user_id=actor.id,
    )
    notification_service.queue_event(distribution, notification_service.EVENT_SENT, actor_id=actor.id)
    _log_transition(distribution, "sent", actor)
    return distribution


def receive_distribution(distribution_id: int, *, actor_id: int, expected_version: int | None = None) -> Distribution:
    """
    sent -> received.

    Relocates every document on the distribution (companions included) to
    the destination department's location code, in the same transaction as
    the status change and the history row.
    """
    actor = _get_actor(actor_id)
    distribution = _load_for_update(distribution_id, expected_version)
    target = require_transition(distribution, "receive")
    _require_department(actor, distribution.destination_department_id, "destination")

    destination_code = distribution.destination_department.location_code
    for row in distribution.documents:
        location_service.load_document(row.document_type, row.document_id)

    moves = [
        location_service.relocate(row.document_type, row.document_id, destination_code)
        for row in distribution.documents
    ]

    distribution.status = target
    distribution.received_at = utcnow()
    flush_or_conflict("Distribution")

    history_service.record(
        distribution_id=distribution.id,
        action=history_service.ACTION_RECEIVED,
        user_id=actor.id,
        metadata={"moves": moves},
    )
    notification_service.queue_event(distribution, notification_service.EVENT_RECEIVED, actor_id=actor.id)
    _log_transition(distribution, "received", actor)
    return distribution


def verify_receiver(
    distribution_id: int,
    *,
    actor_id: int,
    verifications,
    notes: str | None = None,
    force_complete_with_discrepancies: bool = False,
    expected_version: int | None = None,
) -> Distribution:
    """
    received -> verified_by_receiver.

    Documents marked missing or damaged require force_complete_with_discrepancies
    to be exactly True (a truthy string does not count);
    without it DiscrepancyConfirmationRequired is raised and nothing changes.
    With it, one extra discrepancy history row is written per flagged document.
    """
    actor = _get_actor(actor_id)
    distribution = _load_for_update(distribution_id, expected_version)
    target = require_transition(distribution, "verify-receiver")
    _require_department(actor, distribution.destination_department_id, "destination")

    entries = verification_service.parse_entries(distribution, verifications)
    discrepancies = verification_service.discrepancies_in(entries)
    for item in discrepancies:
        locator = location_service.get_locator(item["document_type"])
        document = locator.load(item["document_id"])
        item["document_number"] = locator.number_of(document) if document else None

    confirmed = force_complete_with_discrepancies is True
    if discrepancies and not confirmed:
        raise DiscrepancyConfirmationRequired(
            f"{len(discrepancies)} document(s) reported missing or damaged; "
            f"confirm to complete verification with discrepancies",
            discrepancies=discrepancies,
        )

    applied = verification_service.apply_receiver_verifications(distribution, entries)

    distribution.status = target
    distribution.receiver_verified_at = utcnow()
    distribution.receiver_verified_by = actor.id
    distribution.receiver_verification_notes = notes
    distribution.has_discrepancies = bool(discrepancies)
    flush_or_conflict("Distribution")

    history_service.record(
        distribution_id=distribution.id,
        action=history_service.ACTION_VERIFIED_BY_RECEIVER,
        user_id=actor.id,
        notes=notes,
        metadata={
            "verifications": applied,
            "has_discrepancies": bool(discrepancies),
            "confirmed_discrepancies": bool(discrepancies) and confirmed,
        },
    )
    for item in discrepancies:
        history_service.record(
            distribution_id=distribution.id,
            action=history_service.ACTION_DISCREPANCY,
            user_id=actor.id,
            notes=item["notes"],
            metadata=item,
        )

    notification_service.queue_event(
        distribution,
        notification_service.EVENT_VERIFIED_BY_RECEIVER,
        actor_id=actor.id,
        data={"discrepancy_count": len(discrepancies)},
    )
    if discrepancies:
        current_app.logger.warning(
            "Distribution %s verified by receiver with %d discrepancy(ies)",
            distribution.distribution_number, len(discrepancies),
        )
    else:
        _log_transition(distribution, "verified by receiver", actor)
    return distribution


def complete_distribution(distribution_id: int, *, actor_id: int, expected_version: int | None = None) -> Distribution:
    """verified_by_receiver -> completed. Either department may close it out."""
    actor = _get_actor(actor_id)
    distribution = _load_for_update(distribution_id, expected_version)
    target = require_transition(distribution, "complete")
    if actor.department_id not in {distribution.origin_department_id, distribution.destination_department_id}:
        raise PreconditionError(
            f"User {actor.username} belongs to neither department of this distribution"
        )

    distribution.status = target
    distribution.completed_at = utcnow()
    flush_or_conflict("Distribution")

    history_service.record(
        distribution_id=distribution.id,
        action=history_service.ACTION_COMPLETED,
        user_id=actor.id,
    )
    notification_service.queue_event(distribution, notification_service.EVENT_COMPLETED, actor_id=actor.id)
    _log_transition(distribution, "completed", actor)
    return distribution


# =============================================================================
# READS
# =============================================================================

def get_distribution(distribution_id: int, *, include_deleted: bool = False) -> Distribution:
    distribution = db.session.get(Distribution, distribution_id)
    if not distribution or (distribution.deleted_at is not None and not include_deleted):
        raise NotFoundError(f"Distribution {distribution_id} not found")
    return distribution


def list_distributions(
    *,
    status: str | None = None,
    department_id: int | None = None,
    origin_department_id: int | None = None,
    destination_department_id: int | None = None,
    user_id: int | None = None,
    type_id: int | None = None,
    document_type: str | None = None,
    from_date=None,
    to_date=None,
    search: str | None = None,
    include_deleted: bool = False,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Distribution], int]:
    """
    List distributions with common filters, newest first.

    department_id matches either side (origin or destination).
    """
    query = db.session.query(Distribution)

    if not include_deleted:
        query = query.filter(Distribution.deleted_at.is_(None))
    if status:
        validate_status(status)
        query = query.filter(Distribution.status == status)
    if department_id:
        query = query.filter(or_(
            Distribution.origin_department_id == department_id,
            Distribution.destination_department_id == department_id,
        ))
    if origin_department_id:
        query = query.filter(Distribution.origin_department_id == origin_department_id)
    if destination_department_id:
        query = query.filter(Distribution.destination_department_id == destination_department_id)
    if user_id:
        query = query.filter(Distribution.created_by == user_id)
    if type_id:
        query = query.filter(Distribution.type_id == type_id)
    if document_type:
        query = query.filter(Distribution.document_type == location_service.normalize_kind(document_type))
    if from_date:
        query = query.filter(Distribution.created_at >= from_date)
    if to_date:
        query = query.filter(Distribution.created_at <= to_date)
    if search:
        query = query.filter(Distribution.distribution_number.ilike(f"%{search.strip()}%"))

    total = query.count()

    if offset < 0:
        offset = 0
    if limit < 1:
        limit = 1
    if limit > 500:
        limit = 500

    rows = query.order_by(Distribution.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def get_history(distribution_id: int) -> list:
    get_distribution(distribution_id, include_deleted=True)
    return history_service.list_for(distribution_id)
