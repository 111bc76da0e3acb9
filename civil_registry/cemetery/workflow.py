"""Workflow orchestrator: the only way request handlers change a submission.

``Workflow.perform`` validates the action against the transition table,
computes the new column values with the fee, order and payment helpers,
persists them through the repository in one transaction and records an
audit event once the change is committed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping

from sqlalchemy.exc import SQLAlchemyError

from civil_registry.core.errors import InvalidOptionError, InvalidTransitionError, WorkflowError
from civil_registry.core.models import SubmissionKind, utcnow
from civil_registry.core.permissions import Actor

from .audit import AuditSink, DatabaseAuditSink, WorkflowEvent, audit_action
from .fees import compute_fee
from .kinds import KindSpec, collect_documents, kind_spec, parse_subject_fields
from .orders import generate_reference
from .payments import build_transaction, confirm_payment, reject_payment, submit_payment
from .repository import SubmissionRepository
from .transitions import Action, stored_remarks, validate_transition

logger = logging.getLogger(__name__)

APPROVAL_REMARKS = "Application approved. Please proceed to payment."


@dataclass
class WorkflowResult:
    submission: Any = None
    error: WorkflowError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self):
        if self.error is not None:
            raise self.error
        return self.submission


class Workflow:
    def __init__(
        self,
        repository: SubmissionRepository,
        audit_sink: AuditSink | None = None,
        clock: Callable[[], datetime] = utcnow,
        reference_generator: Callable[..., str] = generate_reference,
    ):
        self.repository = repository
        self.audit_sink = audit_sink
        self.clock = clock
        self.reference_generator = reference_generator

    @classmethod
    def for_session(cls, session) -> "Workflow":
        return cls(SubmissionRepository(session), DatabaseAuditSink(session))

    def perform(
        self,
        kind: SubmissionKind | str,
        submission_id: str | None,
        action: Action | str,
        actor: Actor,
        payload: Mapping[str, Any] | None = None,
    ) -> WorkflowResult:
        payload = payload or {}
        try:
            spec = kind_spec(kind)
            try:
                action = Action(action)
            except ValueError as exc:
                raise InvalidOptionError(f"Unknown action: {action}") from exc
            submission, event = self._apply(spec, submission_id, action, actor, payload)
            self.repository.commit()
        except WorkflowError as exc:
            self.repository.rollback()
            logger.info("Rejected %s on %s %s: %s", action, kind, submission_id, exc)
            return WorkflowResult(error=exc)
        except SQLAlchemyError:
            self.repository.rollback()
            logger.exception("Database error during %s on %s %s", action, kind, submission_id)
            raise
        logger.info("%s %s -> %s", event.action, event.entity_id, event.details.get("to"))
        if self.audit_sink is not None:
            self.audit_sink.record(event)
        return WorkflowResult(submission=submission)

    def _apply(
        self,
        spec: KindSpec,
        submission_id: str | None,
        action: Action,
        actor: Actor,
        payload: Mapping[str, Any],
    ) -> tuple[Any, WorkflowEvent]:
        now = self.clock()
        if action == Action.SUBMIT:
            submission = self._intake(spec, actor, payload, now)
            details = {"kind": spec.kind.value, "to": submission.status.value, "fee": str(submission.fee)}
            return submission, self._event(spec, action, submission, actor, details)

        submission = self.repository.get(spec.kind, submission_id)
        previous_status = submission.status
        values = self._values_for(spec, submission, action, actor, payload, now)
        updated = self.repository.update(spec.kind, submission.id, previous_status, submission.version, values)
        if action == Action.CONFIRM_PAYMENT:
            self.repository.add_transaction(build_transaction(spec, updated, actor, now))

        details = {"kind": spec.kind.value, "from": previous_status.value, "to": updated.status.value}
        if action == Action.APPROVE:
            details["order_of_payment"] = updated.order_of_payment
        if action in (Action.RESUBMIT, Action.CONFIRM_PAYMENT):
            details["fee"] = str(updated.fee)
        if action in (Action.RETURN, Action.REJECT, Action.REJECT_PAYMENT):
            details["remarks"] = updated.remarks
        if action == Action.PAY:
            details["proof_type"] = updated.payment_proof_type.value
        return updated, self._event(spec, action, updated, actor, details)

    def _intake(self, spec: KindSpec, actor: Actor, payload: Mapping[str, Any], now: datetime):
        transition = validate_transition(Action.SUBMIT, None, actor, None)
        fields = parse_subject_fields(spec, payload)
        documents = collect_documents(spec, fields, payload.get("documents"))
        fee = compute_fee(spec.kind, spec.fee_options(fields))
        submission = spec.model(
            **fields,
            documents=documents,
            fee=fee,
            status=transition.target,
            owner_user_id=actor.user_id,
            version=1,
            created_at=now,
            updated_at=now,
        )
        return self.repository.add(submission)

    def _values_for(
        self,
        spec: KindSpec,
        submission,
        action: Action,
        actor: Actor,
        payload: Mapping[str, Any],
        now: datetime,
    ) -> dict[str, Any]:
        remarks = payload.get("remarks")
        if action == Action.PAY:
            return submit_payment(submission, payload.get("proof"), actor, now)
        if action == Action.CONFIRM_PAYMENT:
            values = confirm_payment(submission, actor, now)
            if spec.on_payment_confirmed is not None:
                values.update(spec.on_payment_confirmed(submission, now))
            return values
        if action == Action.REJECT_PAYMENT:
            return reject_payment(submission, actor, remarks, now)

        transition = validate_transition(action, submission.status, actor, submission.owner_user_id, remarks=remarks)
        staff_values = {"status": transition.target, "processed_by_user_id": actor.user_id, "processed_at": now}
        if action == Action.APPROVE:
            if submission.order_of_payment:
                raise InvalidTransitionError("Order of payment already generated")
            return {
                **staff_values,
                "order_of_payment": self.reference_generator(submission, now),
                "remarks": APPROVAL_REMARKS,
            }
        if action in (Action.RETURN, Action.REJECT):
            return {**staff_values, "remarks": stored_remarks(transition, remarks)}
        if action == Action.COMPLETE:
            return {**staff_values, "completed_at": now}
        if action == Action.RESUBMIT:
            fields = parse_subject_fields(spec, payload, previous=spec.subject_values(submission))
            documents = collect_documents(spec, fields, payload.get("documents"), previous=submission.documents)
            return {
                **fields,
                "documents": documents,
                "fee": compute_fee(spec.kind, spec.fee_options(fields)),
                "status": transition.target,
                "remarks": None,
            }
        raise InvalidTransitionError(f"Unsupported action {action.value}")

    @staticmethod
    def _event(spec: KindSpec, action: Action, submission, actor: Actor, details: dict[str, Any]) -> WorkflowEvent:
        return WorkflowEvent(
            action=audit_action(spec, action),
            entity_type=spec.entity_type,
            entity_id=submission.id,
            user_id=actor.user_id,
            details=details,
        )
