# Overview: Pytest coverage for the distribution lifecycle.

"""
Distribution Workflow Tests

The lifecycle is strictly linear:
draft -> verified_by_sender -> sent -> received -> verified_by_receiver -> completed

These tests verify that:
1. Each transition only runs from its required status and never goes back
2. Each successful transition writes exactly one history row (plus one
   discrepancy row per flagged document on receiver verification)
3. A rejected operation changes nothing
4. Department rules: origin for draft/send steps, destination for receive steps
5. Draft-only editing (update, attach, detach, delete)
"""

import pytest

from dds.extensions import db
from dds.models import DistributionHistory
from dds.services import distribution_service, notification_service, report_service
from dds.services.errors import (
    ConcurrencyConflict,
    DiscrepancyConfirmationRequired,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from dds.services.workflow import STATUS_ORDER, can_transition, status_rank
from dds.time_utils import utcnow


def _create(user, destination, dist_type, documents, **kwargs):
    distribution, warnings = distribution_service.create_distribution(
        actor_id=user.id,
        type_id=dist_type.id,
        destination_department_id=destination.id,
        documents=documents,
        **kwargs,
    )
    db.session.commit()
    return distribution, warnings


def _entries(distribution, status="verified", overrides=None):
    overrides = overrides or {}
    return [
        {
            "document_type": doc.document_type,
            "document_id": doc.document_id,
            "status": overrides.get(doc.key, status),
        }
        for doc in distribution.documents
    ]


def _history_actions(distribution_id):
    rows = (
        db.session.query(DistributionHistory)
        .filter_by(distribution_id=distribution_id)
        .order_by(DistributionHistory.id)
        .all()
    )
    return [h.action for h in rows]


def _advance_to_received(distribution, sender, receiver):
    distribution_service.verify_sender(distribution.id, actor_id=sender.id, verifications=_entries(distribution))
    db.session.commit()
    distribution_service.send_distribution(distribution.id, actor_id=sender.id)
    db.session.commit()
    distribution_service.receive_distribution(distribution.id, actor_id=receiver.id)
    db.session.commit()


class TestStatusOrder:

    def test_only_immediate_successor_is_reachable(self):
        for index, status in enumerate(STATUS_ORDER[:-1]):
            assert can_transition(status, STATUS_ORDER[index + 1])
            assert not can_transition(status, status)
            if index > 0:
                assert not can_transition(status, STATUS_ORDER[index - 1])

    def test_completed_is_terminal(self):
        assert not any(can_transition("completed", s) for s in STATUS_ORDER)

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            status_rank("archived")


class TestEndToEnd:

    def test_full_lifecycle_with_confirmed_discrepancy(
        self, db_session, dept_a, dept_b, user_a, user_b, normal_type, make_invoice, make_additional_document
    ):
        """Create, verify, send, receive, verify with a missing companion, complete."""
        ito = make_additional_document("ITO-1", dept_a)
        invoice = make_invoice("INV-1", dept_a, companions=[ito])

        distribution, warnings = _create(user_a, dept_b, normal_type, [invoice.id], notes="Month end")
        assert warnings == []
        assert distribution.status == "draft"
        assert distribution.distribution_number == f"{utcnow().year % 100:02d}/DEPTA/NRM/0001"
        assert {doc.key for doc in distribution.documents} == {
            ("invoice", invoice.id),
            ("additional_document", ito.id),
        }

        distribution_service.verify_sender(
            distribution.id, actor_id=user_a.id, verifications=_entries(distribution), notes="All present"
        )
        db_session.commit()
        assert distribution.status == "verified_by_sender"
        assert distribution.sender_verified_by == user_a.id
        assert all(doc.sender_verified for doc in distribution.documents)

        distribution_service.send_distribution(distribution.id, actor_id=user_a.id)
        db_session.commit()
        assert distribution.status == "sent"
        assert distribution.sent_at is not None
        assert invoice.cur_loc == "DEPTA"

        distribution_service.receive_distribution(distribution.id, actor_id=user_b.id)
        db_session.commit()
        assert distribution.status == "received"
        assert invoice.cur_loc == "DEPTB"
        assert ito.cur_loc == "DEPTB"

        flagged = _entries(distribution, overrides={("additional_document", ito.id): "missing"})
        with pytest.raises(DiscrepancyConfirmationRequired) as exc_info:
            distribution_service.verify_receiver(distribution.id, actor_id=user_b.id, verifications=flagged)
        db_session.rollback()
        assert exc_info.value.discrepancies[0]["document_id"] == ito.id
        assert exc_info.value.discrepancies[0]["document_number"] == "ITO-1"
        assert distribution.status == "received"
        assert all(doc.receiver_verification_status is None for doc in distribution.documents)

        distribution_service.verify_receiver(
            distribution.id,
            actor_id=user_b.id,
            verifications=flagged,
            force_complete_with_discrepancies=True,
        )
        db_session.commit()
        assert distribution.status == "verified_by_receiver"
        assert distribution.has_discrepancies is True
        statuses = {doc.key: doc.receiver_verification_status for doc in distribution.documents}
        assert statuses[("additional_document", ito.id)] == "missing"
        assert statuses[("invoice", invoice.id)] == "verified"

        distribution_service.complete_distribution(distribution.id, actor_id=user_a.id)
        db_session.commit()
        assert distribution.status == "completed"
        assert distribution.completed_at is not None

        assert _history_actions(distribution.id) == [
            "created",
            "verified_by_sender",
            "sent",
            "received",
            "verified_by_receiver",
            "discrepancy",
            "completed",
        ]

        summary = report_service.discrepancy_summary(distribution.id)
        assert summary["missing_count"] == 1
        assert summary["damaged_count"] == 0
        assert summary["receiver_verified_documents"] == 1

    def test_clean_receiver_verification_needs_no_confirmation(
        self, db_session, dept_a, dept_b, user_a, user_b, normal_type, make_invoice
    ):
        invoice = make_invoice("INV-1", dept_a)
        distribution, _ = _create(user_a, dept_b, normal_type, [invoice.id])
        _advance_to_received(distribution, user_a, user_b)

        distribution_service.verify_receiver(
            distribution.id, actor_id=user_b.id, verifications=_entries(distribution)
        )
        db_session.commit()

        assert distribution.status == "verified_by_receiver"
        assert distribution.has_discrepancies is False
        assert "discrepancy" not in _history_actions(distribution.id)

    def test_completed_document_can_travel_again(
        self, db_session, dept_a, dept_b, dept_c, user_a, user_b, normal_type, make_invoice
    ):
        """Once completed, a document is free for a new distribution from its new location."""
        invoice = make_invoice("INV-1", dept_a)
        distribution, _ = _create(user_a, dept_b, normal_type, [invoice.id])
        _advance_to_received(distribution, user_a, user_b)
        distribution_service.verify_receiver(distribution.id, actor_id=user_b.id, verifications=_entries(distribution))
        distribution_service.complete_distribution(distribution.id, actor_id=user_b.id)
        db_session.commit()

        onward, _ = _create(user_b, dept_c, normal_type, [invoice.id])
        assert onward.distribution_number.endswith("/DEPTB/NRM/0001")


class TestCreate:

    def test_missing_companion_location_is_a_warning(
        self, db_session, dept_a, dept_b, user_a, normal_type, make_invoice, make_additional_document
    ):
        elsewhere = make_additional_document("ITO-9", dept_b)
        invoice = make_invoice("INV-1", dept_a, companions=[elsewhere])

        distribution, warnings = _create(user_a, dept_b, normal_type, [invoice.id])

        assert len(warnings) == 1
        assert "ITO-9" in warnings[0]
        assert [doc.key for doc in distribution.documents] == [("invoice", invoice.id)]

    def test_document_not_at_origin(self, db_session, dept_a, dept_b, user_a, normal_type, make_invoice):
        invoice = make_invoice("INV-1", dept_b)
        with pytest.raises(PreconditionError):
            _create(user_a, dept_b, normal_type, [invoice.id])

    def test_document_already_in_flight(self, db_session, dept_a, dept_b, dept_c, user_a, normal_type, make_invoice):
        invoice = make_invoice("INV-1", dept_a)
        first, _ = _create(user_a, dept_b, normal_type, [invoice.id])

        with pytest.raises(PreconditionError) as exc_info:
            _create(user_a, dept_c, normal_type, [invoice.id])
        assert first.distribution_number in str(exc_info.value)

    def test_destination_must_differ(self, db_session, dept_a, user_a, normal_type, make_invoice):
        invoice = make_invoice("INV-1", dept_a)
        with pytest.raises(ValidationError):
            _create(user_a, dept_a, normal_type, [invoice.id])

    def test_actor_outside_origin(self, db_session, dept_a, dept_b, user_a, normal_type, make_invoice):
        invoice = make_invoice("INV-1", dept_b)
        with pytest.raises(PreconditionError):
            _create(user_a, dept_a, normal_type, [invoice.id], origin_department_id=dept_b.id)

    @pytest.mark.parametrize("documents", [None, [], "1", [True]])
    def test_bad_document_list(self, db_session, dept_a, dept_b, user_a, normal_type, documents):
        with pytest.raises(ValidationError):
            _create(user_a, dept_b, normal_type, documents)

    def test_unknown_invoice(self, db_session, dept_a, dept_b, user_a, normal_type):
        with pytest.raises(ValidationError):
            _create(user_a, dept_b, normal_type, [99999])

    def test_unknown_document_type(self, db_session, dept_a, dept_b, user_a, normal_type, make_invoice):
        invoice = make_invoice("INV-1", dept_a)
        with pytest.raises(ValidationError):
            _create(user_a, dept_b, normal_type, [invoice.id], document_type="receipt")

    @pytest.mark.parametrize("document_type", [7, ["invoice"], {"kind": "invoice"}])
    def test_non_string_document_type(self, db_session, dept_a, dept_b, user_a, normal_type, make_invoice, document_type):
        invoice = make_invoice("INV-1", dept_a)
        with pytest.raises(ValidationError):
            _create(user_a, dept_b, normal_type, [{"document_type": document_type, "document_id": invoice.id}])
        db_session.rollback()
        with pytest.raises(ValidationError):
            _create(user_a, dept_b, normal_type, [invoice.id], document_type=document_type)

    def test_additional_documents_as_primary_kind(
        self, db_session, dept_a, dept_b, user_a, normal_type, make_additional_document
    ):
        ito = make_additional_document("ITO-1", dept_a)
        distribution, _ = _create(user_a, dept_b, normal_type, [ito.id], document_type="supporting-document")
        assert distribution.document_type == "additional_document"
        assert distribution.documents[0].is_companion is False

    def test_failed_create_consumes_no_number(self, db_session, dept_a, dept_b, user_a, normal_type, make_invoice):
        invoice = make_invoice("INV-1", dept_b)
        with pytest.raises(PreconditionError):
            _create(user_a, dept_b, normal_type, [invoice.id])
        db_session.rollback()

        valid = make_invoice("INV-2", dept_a)
        distribution, _ = _create(user_a, dept_b, normal_type, [valid.id])
        assert distribution.sequence == 1


class TestTransitionRules:

    @pytest.fixture
    def draft(self, db_session, dept_a, dept_b, user_a, normal_type, make_invoice):
        invoice = make_invoice("INV-1", dept_a)
        distribution, _ = _create(user_a, dept_b, normal_type, [invoice.id])
        return distribution

    def test_send_requires_sender_verification(self, db_session, draft, user_a):
        with pytest.raises(PreconditionError):
            distribution_service.send_distribution(draft.id, actor_id=user_a.id)
        db_session.rollback()

        assert draft.status == "draft"
        assert _history_actions(draft.id) == ["created"]

    def test_receive_requires_sent(self, db_session, draft, user_b):
        with pytest.raises(PreconditionError):
            distribution_service.receive_distribution(draft.id, actor_id=user_b.id)

    def test_verify_sender_twice(self, db_session, draft, user_a):
        distribution_service.verify_sender(draft.id, actor_id=user_a.id, verifications=_entries(draft))
        db_session.commit()

        with pytest.raises(PreconditionError):
            distribution_service.verify_sender(draft.id, actor_id=user_a.id, verifications=_entries(draft))
        db_session.rollback()
        assert _history_actions(draft.id) == ["created", "verified_by_sender"]

    def test_completed_rejects_everything(self, db_session, draft, user_a, user_b):
        _advance_to_received(draft, user_a, user_b)
        distribution_service.verify_receiver(draft.id, actor_id=user_b.id, verifications=_entries(draft))
        distribution_service.complete_distribution(draft.id, actor_id=user_a.id)
        db_session.commit()

        with pytest.raises(PreconditionError):
            distribution_service.complete_distribution(draft.id, actor_id=user_a.id)
        with pytest.raises(PreconditionError):
            distribution_service.send_distribution(draft.id, actor_id=user_a.id)
        with pytest.raises(PreconditionError):
            distribution_service.update_distribution(draft.id, actor_id=user_a.id, changes={"notes": "late"})
        db_session.rollback()
        assert draft.status == "completed"

    def test_sender_steps_need_origin_department(self, db_session, draft, user_b):
        with pytest.raises(PreconditionError):
            distribution_service.verify_sender(draft.id, actor_id=user_b.id, verifications=_entries(draft))
        db_session.rollback()
        assert draft.status == "draft"

    def test_receive_needs_destination_department(self, db_session, draft, user_a):
        distribution_service.verify_sender(draft.id, actor_id=user_a.id, verifications=_entries(draft))
        distribution_service.send_distribution(draft.id, actor_id=user_a.id)
        db_session.commit()

        with pytest.raises(PreconditionError):
            distribution_service.receive_distribution(draft.id, actor_id=user_a.id)
        db_session.rollback()
        assert draft.status == "sent"

    def test_complete_by_uninvolved_department(self, db_session, draft, user_a, user_b, user_c):
        _advance_to_received(draft, user_a, user_b)
        distribution_service.verify_receiver(draft.id, actor_id=user_b.id, verifications=_entries(draft))
        db_session.commit()

        with pytest.raises(PreconditionError):
            distribution_service.complete_distribution(draft.id, actor_id=user_c.id)

    def test_stale_version_is_a_conflict(self, db_session, draft, user_a):
        stale = draft.version_id
        distribution_service.update_distribution(draft.id, actor_id=user_a.id, changes={"notes": "first"})
        db_session.commit()

        with pytest.raises(ConcurrencyConflict):
            distribution_service.verify_sender(
                draft.id, actor_id=user_a.id, verifications=_entries(draft), expected_version=stale
            )
        db_session.rollback()
        assert draft.status == "draft"

    def test_events_wait_for_commit(self, db_session, draft, user_a):
        distribution_service.verify_sender(draft.id, actor_id=user_a.id, verifications=_entries(draft))
        distribution_service.send_distribution(draft.id, actor_id=user_a.id)

        events = notification_service.pending_events()
        assert [e["type"] for e in events] == ["distribution.sent"]
        assert events[0]["distribution_number"] == draft.distribution_number

        db_session.rollback()
        notification_service.discard_pending()
        assert notification_service.pending_events() == []
        assert draft.status == "draft"

    def test_status_never_moves_backwards(self, db_session, draft, user_a, user_b):
        seen = [draft.status]
        distribution_service.verify_sender(draft.id, actor_id=user_a.id, verifications=_entries(draft))
        seen.append(draft.status)
        distribution_service.send_distribution(draft.id, actor_id=user_a.id)
        seen.append(draft.status)
        distribution_service.receive_distribution(draft.id, actor_id=user_b.id)
        seen.append(draft.status)
        db_session.commit()

        ranks = [status_rank(s) for s in seen]
        assert ranks == sorted(ranks)
        assert ranks == list(range(4))


class TestDraftEditing:

    def test_update_records_changes(self, db_session, dept_a, dept_b, dept_c, user_a, normal_type, make_invoice):
        invoice = make_invoice("INV-1", dept_a)
        distribution, _ = _create(user_a, dept_b, normal_type, [invoice.id])

        distribution_service.update_distribution(
            distribution.id, actor_id=user_a.id, changes={"destination_department_id": dept_c.id}
        )
        db_session.commit()

        assert distribution.destination_department_id == dept_c.id
        history = distribution_service.get_history(distribution.id)
        assert history[-1].action == "updated"
        assert history[-1].action_metadata["changes"]["destination_department_id"] == {
            "from": dept_b.id,
            "to": dept_c.id,
        }

    def test_noop_update_writes_no_history(self, db_session, dept_a, dept_b, user_a, normal_type, make_invoice):
        invoice = make_invoice("INV-1", dept_a)
        distribution, _ = _create(user_a, dept_b, normal_type, [invoice.id])

        distribution_service.update_distribution(
            distribution.id, actor_id=user_a.id, changes={"type_id": normal_type.id}
        )
        db_session.commit()
        assert _history_actions(distribution.id) == ["created"]

    def test_update_rejects_unknown_fields(self, db_session, dept_a, dept_b, user_a, normal_type, make_invoice):
        invoice = make_invoice("INV-1", dept_a)
        distribution, _ = _create(user_a, dept_b, normal_type, [invoice.id])

        with pytest.raises(ValidationError):
            distribution_service.update_distribution(
                distribution.id, actor_id=user_a.id, changes={"status": "completed"}
            )

    @pytest.mark.parametrize("field", ["type_id", "destination_department_id"])
    @pytest.mark.parametrize("make_value", [str, lambda pk: True, float])
    def test_update_rejects_non_integer_ids(
        self, db_session, dept_a, dept_b, dept_c, user_a, normal_type, urgent_type, make_invoice, field, make_value
    ):
        invoice = make_invoice("INV-1", dept_a)
        distribution, _ = _create(user_a, dept_b, normal_type, [invoice.id])
        target = urgent_type.id if field == "type_id" else dept_c.id

        with pytest.raises(ValidationError):
            distribution_service.update_distribution(
                distribution.id, actor_id=user_a.id, changes={field: make_value(target)}
            )
        db_session.rollback()

        assert distribution.type_id == normal_type.id
        assert distribution.destination_department_id == dept_b.id
        assert _history_actions(distribution.id) == ["created"]

    def test_create_rejects_string_ids(self, db_session, dept_a, dept_b, user_a, normal_type, make_invoice):
        invoice = make_invoice("INV-1", dept_a)
        with pytest.raises(ValidationError):
            distribution_service.create_distribution(
                actor_id=user_a.id,
                type_id=str(normal_type.id),
                destination_department_id=dept_b.id,
                documents=[invoice.id],
            )
        with pytest.raises(ValidationError):
            distribution_service.create_distribution(
                actor_id=user_a.id,
                type_id=normal_type.id,
                destination_department_id=str(dept_b.id),
                documents=[invoice.id],
            )

    def test_attach_and_detach(
        self, db_session, dept_a, dept_b, user_a, normal_type, make_invoice, make_additional_document
    ):
        first = make_invoice("INV-1", dept_a)
        ito = make_additional_document("ITO-2", dept_a)
        second = make_invoice("INV-2", dept_a, companions=[ito])
        distribution, _ = _create(user_a, dept_b, normal_type, [first.id])

        distribution_service.attach_documents(distribution.id, actor_id=user_a.id, documents=[second.id])
        db_session.commit()
        assert len(distribution.documents) == 3

        with pytest.raises(ValidationError):
            distribution_service.attach_documents(distribution.id, actor_id=user_a.id, documents=[second.id])
        db_session.rollback()

        distribution_service.detach_document(
            distribution.id, actor_id=user_a.id, document_type="invoice", document_id=second.id
        )
        db_session.commit()
        assert [doc.key for doc in distribution.documents] == [("invoice", first.id)]

        with pytest.raises(PreconditionError):
            distribution_service.detach_document(
                distribution.id, actor_id=user_a.id, document_type="invoice", document_id=first.id
            )
        db_session.rollback()
        assert _history_actions(distribution.id) == ["created", "attached", "detached"]

    def test_soft_delete(self, db_session, dept_a, dept_b, user_a, normal_type, make_invoice):
        invoice = make_invoice("INV-1", dept_a)
        distribution, _ = _create(user_a, dept_b, normal_type, [invoice.id])

        distribution_service.delete_distribution(distribution.id, actor_id=user_a.id)
        db_session.commit()

        with pytest.raises(NotFoundError):
            distribution_service.get_distribution(distribution.id)
        kept = distribution_service.get_distribution(distribution.id, include_deleted=True)
        assert kept.is_deleted
        assert kept.documents == []
        assert _history_actions(distribution.id) == ["created", "deleted"]

        # The released invoice can go on a new draft
        again, _ = _create(user_a, dept_b, normal_type, [invoice.id])
        assert again.sequence == 2

        with pytest.raises(PreconditionError):
            distribution_service.verify_sender(distribution.id, actor_id=user_a.id, verifications=[])

    def test_delete_after_verification(self, db_session, dept_a, dept_b, user_a, normal_type, make_invoice):
        invoice = make_invoice("INV-1", dept_a)
        distribution, _ = _create(user_a, dept_b, normal_type, [invoice.id])
        distribution_service.verify_sender(distribution.id, actor_id=user_a.id, verifications=_entries(distribution))
        db_session.commit()

        with pytest.raises(PreconditionError):
            distribution_service.delete_distribution(distribution.id, actor_id=user_a.id)


class TestListing:

    def test_filters(self, db_session, dept_a, dept_b, dept_c, user_a, user_b, normal_type, make_invoice):
        to_b, _ = _create(user_a, dept_b, normal_type, [make_invoice("INV-1", dept_a).id])
        to_c, _ = _create(user_a, dept_c, normal_type, [make_invoice("INV-2", dept_a).id])
        deleted, _ = _create(user_a, dept_b, normal_type, [make_invoice("INV-3", dept_a).id])
        distribution_service.delete_distribution(deleted.id, actor_id=user_a.id)
        db_session.commit()

        rows, total = distribution_service.list_distributions()
        assert total == 2
        assert [d.id for d in rows] == [to_c.id, to_b.id]

        rows, total = distribution_service.list_distributions(department_id=dept_b.id)
        assert [d.id for d in rows] == [to_b.id]

        rows, total = distribution_service.list_distributions(include_deleted=True)
        assert total == 3

        rows, total = distribution_service.list_distributions(search=to_c.distribution_number)
        assert [d.id for d in rows] == [to_c.id]

        rows, total = distribution_service.list_distributions(status="sent")
        assert total == 0

        with pytest.raises(ValidationError):
            distribution_service.list_distributions(status="archived")
