# Overview: Service-layer operations for per-document sender/receiver verification.

"""
Document verification

Input to verify-sender / verify-receiver is one entry per associated
document:

    {"document_type": "invoice", "document_id": 12, "status": "verified", "notes": "..."}

document_type defaults to the distribution's document kind. A mapping of
{document_id: {"status": ..., "notes": ...}} is accepted as shorthand.

The entries must cover exactly the documents on the distribution. All
entries are validated before any is applied, so a bad entry leaves every
document untouched.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..models import Distribution, DistributionDocument
from .errors import PreconditionError, ValidationError
from .location_service import normalize_kind
from .workflow import DISCREPANCY_STATUSES, VALID_VERIFICATION_STATUSES, VERIFICATION_VERIFIED


@dataclass(frozen=True)
class VerificationEntry:
    document_type: str
    document_id: int
    status: str
    notes: str | None = None

    @property
    def key(self) -> tuple[str, int]:
        return (self.document_type, self.document_id)

    @property
    def is_discrepancy(self) -> bool:
        return self.status in DISCREPANCY_STATUSES


def _coerce_document_id(value) -> int:
    if isinstance(value, bool):
        raise ValidationError("document_id must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(f"document_id must be an integer, got {value!r}")


def _normalize_entries(raw, default_kind: str) -> list[dict]:
    if isinstance(raw, dict):
        items = []
        for document_id, value in raw.items():
            value = value if isinstance(value, dict) else {"status": value}
            items.append({**value, "document_id": document_id})
        return [{"document_type": default_kind, **item} for item in items]
    if isinstance(raw, list):
        return raw
    raise ValidationError("verifications must be a list of {document_id, status, notes} entries")


def parse_entries(distribution: Distribution, raw) -> list[VerificationEntry]:
    """
    Validate verification input against the distribution's documents.

    Raises:
        ValidationError: malformed entry, invalid status, duplicate entry,
            documents not covered, or entries for documents not on the
            distribution.
    """
    if raw is None:
        raise ValidationError("verifications are required")

    entries: list[VerificationEntry] = []
    seen: set[tuple[str, int]] = set()
    for index, item in enumerate(_normalize_entries(raw, distribution.document_type)):
        if not isinstance(item, dict):
            raise ValidationError(f"Verification entry {index} must be an object")
        if "document_id" not in item:
            raise ValidationError(f"Verification entry {index} is missing document_id")

        kind = normalize_kind(item.get("document_type") or distribution.document_type)
        document_id = _coerce_document_id(item["document_id"])
        raw_status = item.get("status")
        if raw_status is not None and not isinstance(raw_status, str):
            raise ValidationError(f"Verification status for {kind} {document_id} must be a string, got {raw_status!r}")
        status = (raw_status or "").strip().lower()
        if status not in VALID_VERIFICATION_STATUSES:
            raise ValidationError(
                f"Invalid verification status '{item.get('status')}' for {kind} {document_id}. "
                f"Must be one of: {', '.join(sorted(VALID_VERIFICATION_STATUSES))}"
            )
        notes = item.get("notes")
        if notes is not None and not isinstance(notes, str):
            raise ValidationError(f"notes for {kind} {document_id} must be a string")

        entry = VerificationEntry(kind, document_id, status, notes or None)
        if entry.key in seen:
            raise ValidationError(f"Duplicate verification entry for {kind} {document_id}")
        seen.add(entry.key)
        entries.append(entry)

    associated = {doc.key for doc in distribution.documents}
    missing = sorted(associated - seen)
    extra = sorted(seen - associated)
    if missing or extra:
        parts = []
        if missing:
            parts.append("missing verification for " + ", ".join(f"{k} {i}" for k, i in missing))
        if extra:
            parts.append("documents not on this distribution: " + ", ".join(f"{k} {i}" for k, i in extra))
        raise ValidationError(
            "Verification must cover exactly the distribution's documents: " + "; ".join(parts),
            details={
                "missing": [{"document_type": k, "document_id": i} for k, i in missing],
                "unexpected": [{"document_type": k, "document_id": i} for k, i in extra],
            },
        )

    return entries


def _rows_by_key(distribution: Distribution) -> dict[tuple[str, int], DistributionDocument]:
    return {doc.key: doc for doc in distribution.documents}


def apply_sender_verifications(distribution: Distribution, entries: list[VerificationEntry]) -> list[dict]:
    """Write sender fields on every DistributionDocument. Entries must come from parse_entries()."""
    rows = _rows_by_key(distribution)
    for entry in entries:
        if rows[entry.key].sender_verification_status is not None:
            raise PreconditionError(f"Sender verification for {entry.document_type} {entry.document_id} is already recorded")

    applied = []
    for entry in entries:
        row = rows[entry.key]
        row.sender_verified = entry.status == VERIFICATION_VERIFIED
        row.sender_verification_status = entry.status
        row.sender_verification_notes = entry.notes
        applied.append({"document_type": entry.document_type, "document_id": entry.document_id, "status": entry.status})
    return applied


def apply_receiver_verifications(distribution: Distribution, entries: list[VerificationEntry]) -> list[dict]:
    """Write receiver fields on every DistributionDocument. Entries must come from parse_entries()."""
    rows = _rows_by_key(distribution)
    for entry in entries:
        if rows[entry.key].receiver_verification_status is not None:
            raise PreconditionError(f"Receiver verification for {entry.document_type} {entry.document_id} is already recorded")

    applied = []
    for entry in entries:
        row = rows[entry.key]
        row.receiver_verified = entry.status == VERIFICATION_VERIFIED
        row.receiver_verification_status = entry.status
        row.receiver_verification_notes = entry.notes
        applied.append({"document_type": entry.document_type, "document_id": entry.document_id, "status": entry.status})
    return applied


def discrepancies_in(entries: list[VerificationEntry]) -> list[dict]:
    return [
        {
            "document_type": entry.document_type,
            "document_id": entry.document_id,
            "status": entry.status,
            "notes": entry.notes,
        }
        for entry in entries
        if entry.is_discrepancy
    ]
