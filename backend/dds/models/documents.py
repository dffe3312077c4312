from __future__ import annotations

from ..extensions import db
from dds.time_utils import to_utc_z


# Supporting documents already linked to an invoice; these ride along as
# companions when the invoice is distributed.
invoice_additional_documents = db.Table(
    "invoice_additional_documents",
    db.Column("invoice_id", db.Integer, db.ForeignKey("invoices.id"), primary_key=True),
    db.Column("additional_document_id", db.Integer, db.ForeignKey("additional_documents.id"), primary_key=True),
)


class Invoice(db.Model):
    """
    Supplier invoice.

    cur_loc is owned by the distribution engine: it is written only by
    location_service.relocate() during the receive transition.
    """
    __tablename__ = "invoices"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(64), nullable=False, index=True)
    supplier_name = db.Column(db.String(255), nullable=True)
    invoice_date = db.Column(db.Date, nullable=True)
    amount = db.Column(db.Numeric(18, 2), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="IDR")

    # Current location code (Department.location_code)
    cur_loc = db.Column(db.String(32), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    additional_documents = db.relationship(
        "AdditionalDocument",
        secondary=invoice_additional_documents,
        backref=db.backref("invoices", lazy=True),
        lazy=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "supplier_name": self.supplier_name,
            "invoice_date": self.invoice_date.isoformat() if self.invoice_date else None,
            "amount": str(self.amount) if self.amount is not None else None,
            "currency": self.currency,
            "cur_loc": self.cur_loc,
            "additional_document_ids": [d.id for d in self.additional_documents],
            "created_at": to_utc_z(self.created_at),
        }


class AdditionalDocument(db.Model):
    """Supporting document (ITO, BAST, delivery order, ...)."""
    __tablename__ = "additional_documents"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    document_date = db.Column(db.Date, nullable=True)

    cur_loc = db.Column(db.String(32), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "document_type": self.document_type,
            "document_date": self.document_date.isoformat() if self.document_date else None,
            "cur_loc": self.cur_loc,
            "created_at": to_utc_z(self.created_at),
        }
