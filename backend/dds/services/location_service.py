# Overview: Service-layer operations for document locations; the only writer of cur_loc.

"""
Location Tracker.

A distribution references documents polymorphically as (document_type,
document_id). Each document kind registers a locator in DOCUMENT_KINDS that
knows how to load, locate and relocate that kind, and which companion
documents travel with it.

relocate() is the single write path for a document's current location and
is only called by the receive transition.
"""

from __future__ import annotations

from ..extensions import db
from ..models import AdditionalDocument, Invoice
from .errors import NotFoundError, ValidationError


KIND_INVOICE = "invoice"
KIND_ADDITIONAL_DOCUMENT = "additional_document"

_KIND_ALIASES = {
    "invoice": KIND_INVOICE,
    "invoices": KIND_INVOICE,
    "additional_document": KIND_ADDITIONAL_DOCUMENT,
    "additional-document": KIND_ADDITIONAL_DOCUMENT,
    "additional_documents": KIND_ADDITIONAL_DOCUMENT,
    "supporting_document": KIND_ADDITIONAL_DOCUMENT,
    "supporting-document": KIND_ADDITIONAL_DOCUMENT,
}


class DocumentLocator:
    """Capability interface for one document kind."""

    kind: str = ""
    model = None
    number_attr: str = "id"

    def load(self, document_id: int):
        return db.session.get(self.model, document_id)

    def locate(self, document) -> str | None:
        return document.cur_loc

    def relocate(self, document, new_location_code: str) -> tuple[str | None, str]:
        previous = document.cur_loc
        document.cur_loc = new_location_code
        return previous, new_location_code

    def companions(self, document) -> list[tuple[str, object]]:
        return []

    def number_of(self, document) -> str | None:
        return getattr(document, self.number_attr, None)

    def describe(self, document) -> dict:
        return {
            "document_type": self.kind,
            "document_id": document.id,
            "document_number": self.number_of(document),
            "cur_loc": document.cur_loc,
        }


class InvoiceLocator(DocumentLocator):
    kind = KIND_INVOICE
    model = Invoice
    number_attr = "invoice_number"

    def companions(self, document) -> list[tuple[str, object]]:
        return [(KIND_ADDITIONAL_DOCUMENT, doc) for doc in document.additional_documents]

    def describe(self, document) -> dict:
        data = super().describe(document)
        data.update({
            "supplier_name": document.supplier_name,
            "invoice_date": document.invoice_date.isoformat() if document.invoice_date else None,
            "amount": str(document.amount) if document.amount is not None else None,
            "currency": document.currency,
        })
        return data


class AdditionalDocumentLocator(DocumentLocator):
    kind = KIND_ADDITIONAL_DOCUMENT
    model = AdditionalDocument
    number_attr = "document_number"

    def describe(self, document) -> dict:
        data = super().describe(document)
        data.update({
            "additional_document_type": document.document_type,
            "document_date": document.document_date.isoformat() if document.document_date else None,
        })
        return data


DOCUMENT_KINDS: dict[str, DocumentLocator] = {
    KIND_INVOICE: InvoiceLocator(),
    KIND_ADDITIONAL_DOCUMENT: AdditionalDocumentLocator(),
}


def normalize_kind(kind: str | None) -> str:
    if kind is not None and not isinstance(kind, str):
        raise ValidationError(f"Document type must be a string, got {kind!r}")
    normalized = _KIND_ALIASES.get((kind or "").strip().lower())
    if not normalized:
        raise ValidationError(
            f"Invalid document type '{kind}'. Must be one of: {', '.join(sorted(DOCUMENT_KINDS))}"
        )
    return normalized


def get_locator(kind: str) -> DocumentLocator:
    return DOCUMENT_KINDS[normalize_kind(kind)]


def load_document(kind: str, document_id: int):
    locator = get_locator(kind)
    document = locator.load(document_id)
    if document is None:
        raise NotFoundError(f"{locator.kind} {document_id} not found")
    return document


def current_location_of(kind: str, document_id: int) -> str | None:
    locator = get_locator(kind)
    return locator.locate(load_document(kind, document_id))


def relocate(kind: str, document_id: int, new_location_code: str) -> dict:
    """
    Move a document to new_location_code.

    Returns the from/to detail recorded in the receive history row.
    """
    if not new_location_code:
        raise ValidationError("new_location_code is required")

    locator = get_locator(kind)
    document = load_document(kind, document_id)
    previous, current = locator.relocate(document, new_location_code)
    return {
        "document_type": locator.kind,
        "document_id": document_id,
        "document_number": locator.number_of(document),
        "from": previous,
        "to": current,
    }
