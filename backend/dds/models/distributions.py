from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from dds.time_utils import to_utc_z


class Distribution(db.Model):
    """
    One workflow instance moving a batch of documents between two departments.

    LIFECYCLE (linear, never regresses):
    1. draft: created by the origin department, documents editable
    2. verified_by_sender: origin confirmed every document
    3. sent: handed over to the destination
    4. received: destination took delivery, documents relocated
    5. verified_by_receiver: destination confirmed every document
    6. completed: terminal, immutable

    Soft delete (deleted_at) is allowed only while draft.
    version_id guards against two requests advancing the same row.
    """
    __tablename__ = "distributions"
    __table_args__ = (
        db.Index("ix_distributions_origin_status_created", "origin_department_id", "status", "created_at"),
        db.Index("ix_distributions_destination_status", "destination_department_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number, e.g. "25/DEPTA/NRM/0001"
    distribution_number = db.Column(db.String(64), nullable=False, unique=True, index=True)
    year = db.Column(db.Integer, nullable=False)
    sequence = db.Column(db.Integer, nullable=False)

    type_id = db.Column(db.Integer, db.ForeignKey("distribution_types.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)  # invoice | additional_document

    origin_department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=False, index=True)
    destination_department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=False, index=True)

    status = db.Column(db.String(32), nullable=False, default="draft", index=True)
    notes = db.Column(db.Text, nullable=True)

    # Sender verification
    sender_verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sender_verified_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    sender_verification_notes = db.Column(db.Text, nullable=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Receiver verification
    receiver_verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    receiver_verified_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    receiver_verification_notes = db.Column(db.Text, nullable=True)
    has_discrepancies = db.Column(db.Boolean, nullable=False, default=False)

    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    type = db.relationship("DistributionType")
    origin_department = db.relationship("Department", foreign_keys=[origin_department_id])
    destination_department = db.relationship("Department", foreign_keys=[destination_department_id])
    creator = db.relationship("User", foreign_keys=[created_by])
    sender_verifier = db.relationship("User", foreign_keys=[sender_verified_by])
    receiver_verifier = db.relationship("User", foreign_keys=[receiver_verified_by])
    documents = db.relationship(
        "DistributionDocument",
        backref="distribution",
        cascade="all, delete-orphan",
        order_by="DistributionDocument.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dict(self, include_documents: bool = False) -> dict:
        data = {
            "id": self.id,
            "distribution_number": self.distribution_number,
            "year": self.year,
            "sequence": self.sequence,
            "type_id": self.type_id,
            "type_code": self.type.code if self.type else None,
            "document_type": self.document_type,
            "origin_department_id": self.origin_department_id,
            "destination_department_id": self.destination_department_id,
            "status": self.status,
            "notes": self.notes,
            "sender_verified_at": to_utc_z(self.sender_verified_at),
            "sender_verified_by": self.sender_verified_by,
            "sender_verification_notes": self.sender_verification_notes,
            "sent_at": to_utc_z(self.sent_at),
            "received_at": to_utc_z(self.received_at),
            "receiver_verified_at": to_utc_z(self.receiver_verified_at),
            "receiver_verified_by": self.receiver_verified_by,
            "receiver_verification_notes": self.receiver_verification_notes,
            "has_discrepancies": self.has_discrepancies,
            "completed_at": to_utc_z(self.completed_at),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
            "version_id": self.version_id,
        }
        if include_documents:
            data["documents"] = [d.to_dict() for d in self.documents]
        return data


class DistributionDocument(db.Model):
    """
    Association between a Distribution and one concrete document.

    (document_type, document_id) is a polymorphic reference resolved through
    location_service.DOCUMENT_KINDS. Companion rows are supporting documents
    pulled in automatically because they are linked to an invoice on the
    same distribution (parent_document_id).
    """
    __tablename__ = "distribution_documents"
    __table_args__ = (
        db.UniqueConstraint(
            "distribution_id", "document_type", "document_id",
            name="uq_distribution_documents_ref",
        ),
        db.Index("ix_distribution_documents_ref", "document_type", "document_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    distribution_id = db.Column(db.Integer, db.ForeignKey("distributions.id"), nullable=False, index=True)

    document_type = db.Column(db.String(32), nullable=False)
    document_id = db.Column(db.Integer, nullable=False)

    is_companion = db.Column(db.Boolean, nullable=False, default=False)
    parent_document_id = db.Column(db.Integer, nullable=True)

    sender_verified = db.Column(db.Boolean, nullable=False, default=False)
    sender_verification_status = db.Column(db.String(16), nullable=True)  # verified, missing, damaged
    sender_verification_notes = db.Column(db.Text, nullable=True)

    receiver_verified = db.Column(db.Boolean, nullable=False, default=False)
    receiver_verification_status = db.Column(db.String(16), nullable=True)
    receiver_verification_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def key(self) -> tuple[str, int]:
        return (self.document_type, self.document_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "distribution_id": self.distribution_id,
            "document_type": self.document_type,
            "document_id": self.document_id,
            "is_companion": self.is_companion,
            "parent_document_id": self.parent_document_id,
            "sender_verified": self.sender_verified,
            "sender_verification_status": self.sender_verification_status,
            "sender_verification_notes": self.sender_verification_notes,
            "receiver_verified": self.receiver_verified,
            "receiver_verification_status": self.receiver_verification_status,
            "receiver_verification_notes": self.receiver_verification_notes,
            "created_at": to_utc_z(self.created_at),
        }


class DistributionHistory(db.Model):
    """
    Append-only audit row, one per business action.

    Discrepancies add one extra row per flagged document. Rows survive a
    soft delete of their distribution.
    """
    __tablename__ = "distribution_histories"
    __table_args__ = (
        db.Index("ix_distribution_histories_dist_created", "distribution_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    distribution_id = db.Column(db.Integer, db.ForeignKey("distributions.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    action = db.Column(db.String(32), nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)
    action_metadata = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "distribution_id": self.distribution_id,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "action": self.action,
            "notes": self.notes,
            "metadata": self.action_metadata,
            "created_at": to_utc_z(self.created_at),
        }


class DistributionSequence(db.Model):
    """
    Atomic counter per (year, origin department, distribution type).

    last_number only ever grows; numbers of soft-deleted distributions are
    never handed out again.
    """
    __tablename__ = "distribution_sequences"
    __table_args__ = (
        db.UniqueConstraint("year", "department_id", "type_id", name="uq_distribution_sequences_scope"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    year = db.Column(db.Integer, nullable=False)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=False, index=True)
    type_id = db.Column(db.Integer, db.ForeignKey("distribution_types.id"), nullable=False, index=True)
    last_number = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "year": self.year,
            "department_id": self.department_id,
            "type_id": self.type_id,
            "last_number": self.last_number,
            "updated_at": to_utc_z(self.updated_at),
        }


@event.listens_for(DistributionHistory, "before_update")
def prevent_history_update(mapper, connection, target):
    """History rows are append-only."""
    from ..services.errors import PreconditionError
    raise PreconditionError(f"Distribution history {target.id} is immutable -- cannot modify")


@event.listens_for(DistributionHistory, "before_delete")
def prevent_history_delete(mapper, connection, target):
    from ..services.errors import PreconditionError
    raise PreconditionError(f"Distribution history {target.id} is immutable -- cannot delete")
