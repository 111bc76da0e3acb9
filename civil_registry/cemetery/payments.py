"""Payment proof handling for approved submissions."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from civil_registry.core.errors import (
    AlreadyPaidError,
    IncompleteSubmissionError,
    InvalidOptionError,
    InvalidTransitionError,
)
from civil_registry.core.models import PaymentMethod, PaymentProofType, PaymentTransaction
from civil_registry.core.permissions import Actor

from .transitions import PAYMENT_PROOF_STATES, TRANSITIONS, Action, check_actor, stored_remarks, validate_transition

# Length of the payment_proof column.
MAX_PROOF_LENGTH = 255

UPLOAD_MODES = {
    "file": PaymentProofType.FILE,
    "receipt": PaymentProofType.RECEIPT,
    "or": PaymentProofType.RECEIPT,
}


@dataclass(frozen=True)
class PaymentProof:
    type: PaymentProofType
    value: str

    def __post_init__(self):
        if self.value is not None and not isinstance(self.value, str):
            raise InvalidOptionError("Payment proof must be text")
        if self.value and len(self.value) > MAX_PROOF_LENGTH:
            raise InvalidOptionError(f"Payment proof must be at most {MAX_PROOF_LENGTH} characters")
        if not (self.value or "").strip():
            if self.type == PaymentProofType.FILE:
                raise IncompleteSubmissionError("Proof of payment file is required")
            raise IncompleteSubmissionError("Receipt number is required")

    @classmethod
    def file(cls, reference: str) -> "PaymentProof":
        return cls(PaymentProofType.FILE, reference)

    @classmethod
    def receipt(cls, number: str) -> "PaymentProof":
        return cls(PaymentProofType.RECEIPT, str(number).strip() if number is not None else "")

    @classmethod
    def from_form(
        cls,
        mode: str | None,
        file_reference: str | None = None,
        receipt_number: str | None = None,
    ) -> "PaymentProof":
        proof_type = UPLOAD_MODES.get(str(mode or "file").strip().lower())
        if proof_type is None:
            raise InvalidOptionError(f"Unknown upload mode: {mode}")
        if proof_type == PaymentProofType.FILE:
            return cls.file(file_reference or "")
        return cls.receipt(receipt_number or "")

    @classmethod
    def from_submission(cls, submission) -> "PaymentProof | None":
        if submission.payment_proof_type is None or not submission.payment_proof:
            return None
        return cls(submission.payment_proof_type, submission.payment_proof)

    @property
    def method(self) -> PaymentMethod:
        if self.type == PaymentProofType.RECEIPT:
            return PaymentMethod.CASH
        return PaymentMethod.ONLINE

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type.value, "value": self.value}


def has_unresolved_proof(submission) -> bool:
    return PaymentProof.from_submission(submission) is not None and submission.status in PAYMENT_PROOF_STATES


def submit_payment(submission, proof: PaymentProof | None, actor: Actor, now: datetime) -> dict[str, Any]:
    """Column values for a PAY action.

    Ownership is checked before the duplicate-proof check so a stranger never
    learns whether a payment exists.
    """
    check_actor(TRANSITIONS[Action.PAY], actor, submission.owner_user_id)
    if has_unresolved_proof(submission):
        raise AlreadyPaidError("Payment proof already submitted")
    transition = validate_transition(Action.PAY, submission.status, actor, submission.owner_user_id)
    if not submission.order_of_payment:
        raise InvalidTransitionError("Order of payment has not been generated")
    if proof is None:
        raise IncompleteSubmissionError("Proof of payment is required")
    return {
        "status": transition.target,
        "payment_proof_type": proof.type,
        "payment_proof": proof.value,
        "payment_submitted_at": now,
    }


def confirm_payment(submission, actor: Actor, now: datetime) -> dict[str, Any]:
    transition = validate_transition(Action.CONFIRM_PAYMENT, submission.status, actor, submission.owner_user_id)
    if PaymentProof.from_submission(submission) is None:
        raise IncompleteSubmissionError("No payment proof to confirm")
    return {
        "status": transition.target,
        "payment_confirmed_at": now,
        "processed_by_user_id": actor.user_id,
        "processed_at": now,
    }


def reject_payment(submission, actor: Actor, remarks: str | None, now: datetime) -> dict[str, Any]:
    transition = validate_transition(
        Action.REJECT_PAYMENT,
        submission.status,
        actor,
        submission.owner_user_id,
        remarks=remarks,
    )
    return {
        "status": transition.target,
        "payment_proof_type": None,
        "payment_proof": None,
        "payment_submitted_at": None,
        "remarks": stored_remarks(transition, remarks),
        "processed_by_user_id": actor.user_id,
        "processed_at": now,
    }


def build_transaction(spec, submission, actor: Actor, now: datetime) -> PaymentTransaction:
    proof = PaymentProof.from_submission(submission)
    return PaymentTransaction(
        user_id=submission.owner_user_id,
        transaction_type=spec.transaction_type(submission),
        amount=submission.fee,
        order_of_payment=submission.order_of_payment,
        payment_method=proof.method,
        reference_number=proof.value,
        status="CONFIRMED",
        confirmed_by_user_id=actor.user_id,
        confirmed_at=now,
        entity_type=spec.entity_type,
        entity_id=submission.id,
        remarks=spec.transaction_remarks(submission),
    )
