from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from civil_registry.cemetery.audit import DatabaseAuditSink, WorkflowEvent
from civil_registry.cemetery.kinds import kind_spec
from civil_registry.cemetery.payments import PaymentProof
from civil_registry.cemetery.repository import SubmissionRepository
from civil_registry.cemetery.transitions import Action
from civil_registry.cemetery.workflow import APPROVAL_REMARKS, Workflow
from civil_registry.core.errors import (
    AlreadyPaidError,
    ConcurrentModificationError,
    IncompleteSubmissionError,
    InvalidOptionError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    WorkflowError,
)
from civil_registry.core.extensions import db
from civil_registry.core.models import (
    AuditLog,
    PaymentMethod,
    PaymentProofType,
    PaymentTransaction,
    SubmissionKind,
    SubmissionStatus,
)

DR = SubmissionKind.DEATH_REGISTRATION


def _submit(workflow, actors, intake_payload, kind=DR, **overrides):
    result = workflow.perform(kind, None, Action.SUBMIT, actors["citizen"], intake_payload(kind, **overrides))
    assert result.ok, result.error
    return result.submission


def _approve(workflow, actors, submission, kind=DR):
    return workflow.perform(kind, submission.id, Action.APPROVE, actors["employee"]).unwrap()


def _pay(workflow, actors, submission, proof=None, kind=DR, actor="citizen"):
    return workflow.perform(
        kind,
        submission.id,
        Action.PAY,
        actors[actor],
        {"proof": proof or PaymentProof.receipt("OR-1")},
    )


def test_regular_death_registration_end_to_end(workflow, actors, intake_payload):
    submission = _submit(workflow, actors, intake_payload)
    assert submission.status == SubmissionStatus.PENDING_VERIFICATION
    assert submission.fee == Decimal("50.00")
    assert submission.order_of_payment is None
    assert submission.owner_user_id == actors["citizen"].user_id

    approved = _approve(workflow, actors, submission)
    assert approved.status == SubmissionStatus.APPROVED_FOR_PAYMENT
    assert approved.order_of_payment.startswith("OR-")
    assert approved.fee == Decimal("50.00")
    assert approved.remarks == APPROVAL_REMARKS
    assert approved.processed_by_user_id == actors["employee"].user_id
    order_of_payment = approved.order_of_payment

    paid = _pay(workflow, actors, submission).unwrap()
    assert paid.status == SubmissionStatus.PAYMENT_SUBMITTED
    assert paid.payment_proof_type == PaymentProofType.RECEIPT

    confirmed = workflow.perform(DR, submission.id, Action.CONFIRM_PAYMENT, actors["employee"]).unwrap()
    assert confirmed.status == SubmissionStatus.READY_FOR_PICKUP
    assert confirmed.payment_proof == "OR-1"
    assert confirmed.payment_confirmed_at is not None

    completed = workflow.perform(DR, submission.id, Action.COMPLETE, actors["admin"]).unwrap()
    assert completed.status == SubmissionStatus.COMPLETED
    assert completed.completed_at is not None
    assert completed.order_of_payment == order_of_payment
    assert completed.version == 5

    actions = [row.action for row in AuditLog.query.order_by(AuditLog.id.asc()).all()]
    assert actions == [
        "DEATH_REGISTRATION_SUBMITTED",
        "DEATH_REGISTRATION_APPROVED",
        "PAYMENT_SUBMITTED",
        "PAYMENT_CONFIRMED",
        "DEATH_REGISTRATION_COMPLETED",
    ]


@pytest.mark.parametrize(
    ("kind", "fee", "transaction_type"),
    [
        (SubmissionKind.DEATH_REGISTRATION, Decimal("50.00"), "DEATH_REGISTRATION_FEE"),
        (SubmissionKind.BURIAL_PERMIT, Decimal("1600.00"), "BURIAL_PERMIT_FEE"),
        (SubmissionKind.CREMATION_PERMIT, Decimal("100.00"), "CREMATION_PERMIT_FEE"),
        (SubmissionKind.EXHUMATION_PERMIT, Decimal("100.00"), "EXHUMATION_PERMIT_FEE"),
        (SubmissionKind.CERTIFICATE_REQUEST, Decimal("150.00"), "DEATH_CERTIFICATE_FEE"),
    ],
)
def test_every_kind_shares_the_lifecycle(workflow, actors, intake_payload, kind, fee, transaction_type):
    submission = _submit(workflow, actors, intake_payload, kind=kind)
    assert submission.fee == fee
    _approve(workflow, actors, submission, kind=kind)
    proof = PaymentProof.file(f"{kind_spec(kind).storage_folder}/1/proof_of_payment.png")
    _pay(workflow, actors, submission, proof=proof, kind=kind).unwrap()
    workflow.perform(kind, submission.id, Action.CONFIRM_PAYMENT, actors["employee"]).unwrap()

    transaction = PaymentTransaction.query.filter_by(entity_id=submission.id).one()
    assert transaction.transaction_type == transaction_type
    assert transaction.amount == fee
    assert transaction.payment_method == PaymentMethod.ONLINE
    assert transaction.entity_type == kind_spec(kind).entity_type
    assert transaction.confirmed_by_user_id == actors["employee"].user_id

    completed = workflow.perform(kind, submission.id, Action.COMPLETE, actors["employee"]).unwrap()
    assert completed.status == SubmissionStatus.COMPLETED


def test_citizen_cannot_approve(workflow, actors, intake_payload):
    submission = _submit(workflow, actors, intake_payload)
    result = workflow.perform(DR, submission.id, Action.APPROVE, actors["citizen"])

    assert not result.ok
    assert isinstance(result.error, PermissionDeniedError)
    assert isinstance(result.error, InvalidTransitionError)
    reloaded = SubmissionRepository(db.session).get(DR, submission.id)
    assert reloaded.status == SubmissionStatus.PENDING_VERIFICATION
    assert reloaded.order_of_payment is None
    assert reloaded.version == 1


def test_rejected_payment_clears_proof(workflow, actors, intake_payload):
    submission = _submit(workflow, actors, intake_payload)
    _approve(workflow, actors, submission)
    _pay(workflow, actors, submission).unwrap()

    missing_remarks = workflow.perform(DR, submission.id, Action.REJECT_PAYMENT, actors["employee"])
    assert isinstance(missing_remarks.error, IncompleteSubmissionError)

    rejected = workflow.perform(
        DR,
        submission.id,
        Action.REJECT_PAYMENT,
        actors["employee"],
        {"remarks": "blurry receipt"},
    ).unwrap()
    assert rejected.status == SubmissionStatus.APPROVED_FOR_PAYMENT
    assert rejected.payment_proof is None
    assert rejected.payment_proof_type is None
    assert rejected.remarks == "Payment rejected: blurry receipt"
    assert rejected.order_of_payment is not None

    retry = _pay(workflow, actors, submission, proof=PaymentProof.receipt("OR-2")).unwrap()
    assert retry.payment_proof == "OR-2"


def test_paying_twice_fails(workflow, actors, intake_payload):
    submission = _submit(workflow, actors, intake_payload)
    _approve(workflow, actors, submission)
    _pay(workflow, actors, submission).unwrap()

    again = _pay(workflow, actors, submission, proof=PaymentProof.receipt("OR-9"))
    assert isinstance(again.error, AlreadyPaidError)
    assert SubmissionRepository(db.session).get(DR, submission.id).payment_proof == "OR-1"


def test_pay_before_approval_is_invalid(workflow, actors, intake_payload):
    submission = _submit(workflow, actors, intake_payload)
    result = _pay(workflow, actors, submission)
    assert isinstance(result.error, InvalidTransitionError)
    assert SubmissionRepository(db.session).get(DR, submission.id).payment_proof is None


def test_only_owner_can_pay(workflow, actors, intake_payload):
    submission = _submit(workflow, actors, intake_payload)
    _approve(workflow, actors, submission)
    result = _pay(workflow, actors, submission, actor="citizen2")
    assert isinstance(result.error, PermissionDeniedError)


def test_terminal_submissions_stay_put(workflow, actors, intake_payload):
    submission = _submit(workflow, actors, intake_payload)
    workflow.perform(DR, submission.id, Action.REJECT, actors["employee"], {"remarks": "Not our jurisdiction"}).unwrap()

    for action, actor in [
        (Action.APPROVE, "employee"),
        (Action.RETURN, "employee"),
        (Action.COMPLETE, "admin"),
        (Action.RESUBMIT, "citizen"),
    ]:
        result = workflow.perform(DR, submission.id, action, actors[actor], {"remarks": "again"})
        assert isinstance(result.error, InvalidTransitionError)
    reloaded = SubmissionRepository(db.session).get(DR, submission.id)
    assert reloaded.status == SubmissionStatus.REJECTED
    assert reloaded.remarks == "Not our jurisdiction"


def test_intake_requires_fields_and_documents(workflow, actors, intake_payload):
    payload = intake_payload(DR)
    payload["documents"].pop("informant_valid_id")
    result = workflow.perform(DR, None, Action.SUBMIT, actors["citizen"], payload)
    assert isinstance(result.error, IncompleteSubmissionError)
    assert "informant_valid_id" in str(result.error)

    result = workflow.perform(DR, None, Action.SUBMIT, actors["citizen"], intake_payload(DR, informant_name=""))
    assert isinstance(result.error, IncompleteSubmissionError)

    result = workflow.perform(
        SubmissionKind.BURIAL_PERMIT,
        None,
        Action.SUBMIT,
        actors["citizen"],
        intake_payload(SubmissionKind.BURIAL_PERMIT, niche_type=""),
    )
    assert isinstance(result.error, InvalidOptionError)
    assert SubmissionRepository(db.session).list_for_owner(DR, actors["citizen"].user_id) == []


def test_intake_rejects_non_text_and_oversized_values(workflow, actors, intake_payload):
    result = workflow.perform(DR, None, Action.SUBMIT, actors["citizen"], intake_payload(DR, deceased_date_of_death=20260930))
    assert isinstance(result.error, WorkflowError)
    assert "deceased_date_of_death" in str(result.error)

    result = workflow.perform(DR, None, Action.SUBMIT, actors["citizen"], intake_payload(DR, informant_name="M" * 121))
    assert isinstance(result.error, InvalidOptionError)
    assert "informant_name" in str(result.error)

    assert SubmissionRepository(db.session).list_for_owner(DR, actors["citizen"].user_id) == []


def test_staff_remarks_must_be_text_that_fits(workflow, actors, intake_payload):
    submission = _submit(workflow, actors, intake_payload)

    result = workflow.perform(DR, submission.id, Action.RETURN, actors["employee"], {"remarks": 123})
    assert isinstance(result.error, IncompleteSubmissionError)

    result = workflow.perform(DR, submission.id, Action.REJECT, actors["employee"], {"remarks": "x" * 501})
    assert isinstance(result.error, InvalidOptionError)
    assert SubmissionRepository(db.session).get(DR, submission.id).status == SubmissionStatus.PENDING_VERIFICATION

    _approve(workflow, actors, submission)
    _pay(workflow, actors, submission).unwrap()
    result = workflow.perform(DR, submission.id, Action.REJECT_PAYMENT, actors["employee"], {"remarks": "x" * 490})
    assert isinstance(result.error, InvalidOptionError)
    reloaded = SubmissionRepository(db.session).get(DR, submission.id)
    assert reloaded.status == SubmissionStatus.PAYMENT_SUBMITTED
    assert reloaded.payment_proof == "OR-1"


def test_payment_proof_must_fit_the_column():
    with pytest.raises(InvalidOptionError):
        PaymentProof.receipt("9" * 256)
    with pytest.raises(InvalidOptionError):
        PaymentProof(PaymentProofType.RECEIPT, 12345)
    with pytest.raises(InvalidOptionError):
        PaymentProof.from_form(7, receipt_number="OR-1")
    assert PaymentProof.receipt(12345).value == "12345"
    assert PaymentProof.from_form(" Receipt ", receipt_number=" OR-7 ").value == "OR-7"


def test_delayed_registration_needs_extra_documents(workflow, actors, intake_payload):
    result = workflow.perform(DR, None, Action.SUBMIT, actors["citizen"], intake_payload(DR, registration_type="DELAYED"))
    assert isinstance(result.error, IncompleteSubmissionError)
    assert "affidavit_of_delayed" in str(result.error)


def test_delayed_registration_gets_processing_deadline(app, actors, intake_payload):
    friday = datetime(2026, 10, 16, 10, 0, tzinfo=timezone.utc)
    workflow = Workflow(SubmissionRepository(db.session), DatabaseAuditSink(db.session), clock=lambda: friday)
    payload = intake_payload(DR, registration_type="DELAYED")
    payload["documents"].update(
        {
            "affidavit_of_delayed": "death-registrations/1/affidavit.pdf",
            "burial_certificate": "death-registrations/1/burial.pdf",
            "funeral_certificate": "death-registrations/1/funeral.pdf",
            "psa_no_record": "death-registrations/1/psa.pdf",
        }
    )
    submission = workflow.perform(DR, None, Action.SUBMIT, actors["citizen"], payload).unwrap()
    assert submission.fee == Decimal("150.00")
    _approve(workflow, actors, submission)
    _pay(workflow, actors, submission).unwrap()
    confirmed = workflow.perform(DR, submission.id, Action.CONFIRM_PAYMENT, actors["employee"]).unwrap()

    assert confirmed.processing_deadline.replace(tzinfo=None) == datetime(2026, 11, 2, 10, 0)
    transaction = PaymentTransaction.query.filter_by(entity_id=submission.id).one()
    assert transaction.transaction_type == "DELAYED_DEATH_REGISTRATION_FEE"
    assert transaction.payment_method == PaymentMethod.CASH
    assert transaction.reference_number == "OR-1"


def test_return_and_resubmit_recomputes_fee(workflow, actors, intake_payload):
    kind = SubmissionKind.CERTIFICATE_REQUEST
    submission = _submit(workflow, actors, intake_payload, kind=kind)
    assert submission.fee == Decimal("150.00")

    returned = workflow.perform(
        kind,
        submission.id,
        Action.RETURN,
        actors["employee"],
        {"remarks": "ID is expired"},
    ).unwrap()
    assert returned.status == SubmissionStatus.RETURNED_FOR_CORRECTION
    assert returned.remarks == "ID is expired"

    resubmitted = workflow.perform(
        kind,
        submission.id,
        Action.RESUBMIT,
        actors["citizen"],
        {"number_of_copies": "1", "documents": {"valid_id": "death-certificate-requests/1/new_id.jpg"}},
    ).unwrap()
    assert resubmitted.status == SubmissionStatus.PENDING_VERIFICATION
    assert resubmitted.fee == Decimal("50.00")
    assert resubmitted.remarks is None
    assert resubmitted.purpose == "Insurance claim"
    assert resubmitted.documents["valid_id"] == "death-certificate-requests/1/new_id.jpg"


def test_order_of_payment_is_generated_once(workflow, actors, intake_payload):
    submission = _submit(workflow, actors, intake_payload)
    approved = _approve(workflow, actors, submission)
    order_of_payment = approved.order_of_payment

    again = workflow.perform(DR, submission.id, Action.APPROVE, actors["admin"])
    assert isinstance(again.error, InvalidTransitionError)
    assert SubmissionRepository(db.session).get(DR, submission.id).order_of_payment == order_of_payment


def test_unknown_submission_and_action(workflow, actors):
    missing = workflow.perform(DR, "does-not-exist", Action.APPROVE, actors["employee"])
    assert isinstance(missing.error, NotFoundError)
    with pytest.raises(NotFoundError):
        missing.unwrap()

    unknown = workflow.perform(DR, "does-not-exist", "ARCHIVE", actors["employee"])
    assert isinstance(unknown.error, InvalidOptionError)


class RacingRepository(SubmissionRepository):
    """Lets a second staff member reject the row between our read and our write."""

    raced = False

    def update(self, kind, submission_id, expected_status, expected_version, values):
        if not self.raced:
            self.raced = True
            super().update(
                kind,
                submission_id,
                expected_status,
                expected_version,
                {"status": SubmissionStatus.REJECTED, "remarks": "Duplicate application"},
            )
            self.session.commit()
        return super().update(kind, submission_id, expected_status, expected_version, values)


def test_concurrent_staff_actions_do_not_both_win(workflow, actors, intake_payload):
    submission = _submit(workflow, actors, intake_payload)
    racing = Workflow(RacingRepository(db.session))

    result = racing.perform(DR, submission.id, Action.APPROVE, actors["employee"])

    assert isinstance(result.error, ConcurrentModificationError)
    reloaded = SubmissionRepository(db.session).get(DR, submission.id)
    assert reloaded.status == SubmissionStatus.REJECTED
    assert reloaded.order_of_payment is None
    assert reloaded.version == 2


def test_stale_version_is_refused(workflow, actors, intake_payload):
    submission = _submit(workflow, actors, intake_payload)
    repository = SubmissionRepository(db.session)
    _approve(workflow, actors, submission)

    with pytest.raises(ConcurrentModificationError):
        repository.update(DR, submission.id, SubmissionStatus.PENDING_VERIFICATION, 1, {"remarks": "late"})
    repository.rollback()


class _BrokenSession:
    rolled_back = False

    def add(self, _obj):
        pass

    def commit(self):
        raise SQLAlchemyError("audit table is locked")

    def rollback(self):
        self.rolled_back = True


def test_audit_failures_are_swallowed():
    session = _BrokenSession()
    DatabaseAuditSink(session).record(WorkflowEvent("PAYMENT_CONFIRMED", "BurialPermit", "abc", 1))
    assert session.rolled_back


def test_custom_audit_sink_receives_events(app, actors, intake_payload):
    events = []

    class ListSink:
        def record(self, event):
            events.append(event)

    workflow = Workflow(SubmissionRepository(db.session), ListSink())
    submission = _submit(workflow, actors, intake_payload)
    workflow.perform(DR, submission.id, Action.RETURN, actors["employee"], {"remarks": "Blurry form"})

    assert [event.action for event in events] == ["DEATH_REGISTRATION_SUBMITTED", "DEATH_REGISTRATION_RETURNED"]
    assert events[1].details == {
        "kind": "DEATH_REGISTRATION",
        "from": "PENDING_VERIFICATION",
        "to": "RETURNED_FOR_CORRECTION",
        "remarks": "Blurry form",
    }
