# Overview: Pytest coverage for per-document verification input.

"""
Verification Coverage Tests

Verification entries must cover exactly the documents on the distribution:
no missing documents, no extras, no duplicates, only verified/missing/damaged.
A rejected verification leaves every document and the status untouched.
"""

import pytest

from dds.services import distribution_service
from dds.services.errors import ValidationError
from dds.services.verification_service import discrepancies_in, parse_entries


@pytest.fixture
def two_invoice_draft(db_session, dept_a, dept_b, user_a, normal_type, make_invoice):
    first = make_invoice("INV-1", dept_a)
    second = make_invoice("INV-2", dept_a)
    distribution, _ = distribution_service.create_distribution(
        actor_id=user_a.id,
        type_id=normal_type.id,
        destination_department_id=dept_b.id,
        documents=[first.id, second.id],
    )
    db_session.commit()
    return distribution, first, second


class TestParseEntries:

    def test_exact_coverage(self, db_session, two_invoice_draft):
        distribution, first, second = two_invoice_draft
        entries = parse_entries(distribution, [
            {"document_id": first.id, "status": "verified"},
            {"document_id": second.id, "status": "Damaged", "notes": "torn"},
        ])

        assert [e.key for e in entries] == [("invoice", first.id), ("invoice", second.id)]
        assert entries[1].status == "damaged"
        assert entries[1].is_discrepancy
        assert discrepancies_in(entries) == [
            {"document_type": "invoice", "document_id": second.id, "status": "damaged", "notes": "torn"}
        ]

    def test_mapping_shorthand(self, db_session, two_invoice_draft):
        distribution, first, second = two_invoice_draft
        entries = parse_entries(distribution, {
            str(first.id): {"status": "verified"},
            str(second.id): "missing",
        })
        assert {e.key: e.status for e in entries} == {
            ("invoice", first.id): "verified",
            ("invoice", second.id): "missing",
        }

    def test_subset_is_rejected(self, db_session, two_invoice_draft):
        distribution, first, second = two_invoice_draft
        with pytest.raises(ValidationError) as exc_info:
            parse_entries(distribution, [{"document_id": first.id, "status": "verified"}])
        assert exc_info.value.details["missing"] == [{"document_type": "invoice", "document_id": second.id}]
        assert exc_info.value.details["unexpected"] == []

    def test_superset_is_rejected(self, db_session, two_invoice_draft):
        distribution, first, second = two_invoice_draft
        with pytest.raises(ValidationError) as exc_info:
            parse_entries(distribution, [
                {"document_id": first.id, "status": "verified"},
                {"document_id": second.id, "status": "verified"},
                {"document_id": 99999, "status": "verified"},
            ])
        assert exc_info.value.details["unexpected"] == [{"document_type": "invoice", "document_id": 99999}]

    def test_duplicate_is_rejected(self, db_session, two_invoice_draft):
        distribution, first, second = two_invoice_draft
        with pytest.raises(ValidationError):
            parse_entries(distribution, [
                {"document_id": first.id, "status": "verified"},
                {"document_id": first.id, "status": "missing"},
                {"document_id": second.id, "status": "verified"},
            ])

    @pytest.mark.parametrize("status", ["lost", "", None, "VERIFIED!"])
    def test_invalid_status(self, db_session, two_invoice_draft, status):
        distribution, first, second = two_invoice_draft
        with pytest.raises(ValidationError):
            parse_entries(distribution, [
                {"document_id": first.id, "status": status},
                {"document_id": second.id, "status": "verified"},
            ])

    @pytest.mark.parametrize("raw", [None, "verified", 42, [["not", "an", "object"]], [{"status": "verified"}]])
    def test_malformed_input(self, db_session, two_invoice_draft, raw):
        distribution, _, _ = two_invoice_draft
        with pytest.raises(ValidationError):
            parse_entries(distribution, raw)


    @pytest.mark.parametrize("field,value", [
        ("status", 1),
        ("status", ["verified"]),
        ("status", {"value": "verified"}),
        ("document_type", 7),
        ("document_type", ["invoice"]),
    ])
    def test_non_string_fields(self, db_session, two_invoice_draft, field, value):
        distribution, first, second = two_invoice_draft
        entry = {"document_id": first.id, "status": "verified", field: value}
        with pytest.raises(ValidationError):
            parse_entries(distribution, [entry, {"document_id": second.id, "status": "verified"}])


class TestRejectedVerificationChangesNothing:

    def test_sender_subset(self, db_session, two_invoice_draft, user_a):
        distribution, first, _ = two_invoice_draft
        with pytest.raises(ValidationError):
            distribution_service.verify_sender(
                distribution.id,
                actor_id=user_a.id,
                verifications=[{"document_id": first.id, "status": "verified"}],
            )
        db_session.rollback()

        assert distribution.status == "draft"
        assert all(doc.sender_verification_status is None for doc in distribution.documents)
        assert [h.action for h in distribution_service.get_history(distribution.id)] == ["created"]

    def test_sender_records_flags(self, db_session, two_invoice_draft, user_a):
        distribution, first, second = two_invoice_draft
        distribution_service.verify_sender(
            distribution.id,
            actor_id=user_a.id,
            verifications=[
                {"document_id": first.id, "status": "verified"},
                {"document_id": second.id, "status": "damaged", "notes": "coffee stain"},
            ],
        )
        db_session.commit()

        rows = {doc.document_id: doc for doc in distribution.documents}
        assert rows[first.id].sender_verified is True
        assert rows[second.id].sender_verified is False
        assert rows[second.id].sender_verification_status == "damaged"
        assert rows[second.id].sender_verification_notes == "coffee stain"
