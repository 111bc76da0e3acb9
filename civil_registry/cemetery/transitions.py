"""Submission lifecycle: the single table of legal transitions.

``TRANSITIONS`` is the only place where source/target states and the side
(citizen or staff) allowed to trigger an action are declared.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from civil_registry.core.errors import (
    IncompleteSubmissionError,
    InvalidOptionError,
    InvalidTransitionError,
    PermissionDeniedError,
)
from civil_registry.core.models import SubmissionStatus
from civil_registry.core.permissions import Actor


class Action(str, Enum):
    SUBMIT = "SUBMIT"
    APPROVE = "APPROVE"
    RETURN = "RETURN"
    REJECT = "REJECT"
    RESUBMIT = "RESUBMIT"
    PAY = "PAY"
    CONFIRM_PAYMENT = "CONFIRM_PAYMENT"
    REJECT_PAYMENT = "REJECT_PAYMENT"
    COMPLETE = "COMPLETE"


class Side(str, Enum):
    CITIZEN = "CITIZEN"
    STAFF = "STAFF"


@dataclass(frozen=True)
class Transition:
    action: Action
    sources: frozenset[SubmissionStatus]
    target: SubmissionStatus
    side: Side
    requires_remarks: bool = False
    remarks_prefix: str = ""


# Length of the remarks column on every submission table.
MAX_REMARKS_LENGTH = 500

TERMINAL_STATES = frozenset({SubmissionStatus.REJECTED, SubmissionStatus.COMPLETED})

ORDER_OF_PAYMENT_STATES = frozenset(
    {
        SubmissionStatus.APPROVED_FOR_PAYMENT,
        SubmissionStatus.PAYMENT_SUBMITTED,
        SubmissionStatus.PAYMENT_CONFIRMED,
        SubmissionStatus.READY_FOR_PICKUP,
        SubmissionStatus.COMPLETED,
    }
)

PAYMENT_PROOF_STATES = frozenset(
    {
        SubmissionStatus.PAYMENT_SUBMITTED,
        SubmissionStatus.PAYMENT_CONFIRMED,
        SubmissionStatus.READY_FOR_PICKUP,
        SubmissionStatus.COMPLETED,
    }
)

TRANSITIONS: dict[Action, Transition] = {
    Action.SUBMIT: Transition(
        Action.SUBMIT,
        frozenset(),
        SubmissionStatus.PENDING_VERIFICATION,
        Side.CITIZEN,
    ),
    Action.APPROVE: Transition(
        Action.APPROVE,
        frozenset({SubmissionStatus.PENDING_VERIFICATION}),
        SubmissionStatus.APPROVED_FOR_PAYMENT,
        Side.STAFF,
    ),
    Action.RETURN: Transition(
        Action.RETURN,
        frozenset({SubmissionStatus.PENDING_VERIFICATION}),
        SubmissionStatus.RETURNED_FOR_CORRECTION,
        Side.STAFF,
        requires_remarks=True,
    ),
    Action.REJECT: Transition(
        Action.REJECT,
        frozenset({SubmissionStatus.PENDING_VERIFICATION}),
        SubmissionStatus.REJECTED,
        Side.STAFF,
        requires_remarks=True,
    ),
    Action.RESUBMIT: Transition(
        Action.RESUBMIT,
        frozenset({SubmissionStatus.RETURNED_FOR_CORRECTION}),
        SubmissionStatus.PENDING_VERIFICATION,
        Side.CITIZEN,
    ),
    Action.PAY: Transition(
        Action.PAY,
        frozenset({SubmissionStatus.APPROVED_FOR_PAYMENT}),
        SubmissionStatus.PAYMENT_SUBMITTED,
        Side.CITIZEN,
    ),
    # Confirmation lands directly on READY_FOR_PICKUP; payment_confirmed_at
    # records that the payment itself was confirmed.
    Action.CONFIRM_PAYMENT: Transition(
        Action.CONFIRM_PAYMENT,
        frozenset({SubmissionStatus.PAYMENT_SUBMITTED}),
        SubmissionStatus.READY_FOR_PICKUP,
        Side.STAFF,
    ),
    Action.REJECT_PAYMENT: Transition(
        Action.REJECT_PAYMENT,
        frozenset({SubmissionStatus.PAYMENT_SUBMITTED}),
        SubmissionStatus.APPROVED_FOR_PAYMENT,
        Side.STAFF,
        requires_remarks=True,
        remarks_prefix="Payment rejected: ",
    ),
    Action.COMPLETE: Transition(
        Action.COMPLETE,
        frozenset({SubmissionStatus.PAYMENT_CONFIRMED, SubmissionStatus.READY_FOR_PICKUP}),
        SubmissionStatus.COMPLETED,
        Side.STAFF,
    ),
}


def allowed_targets(status: SubmissionStatus) -> set[SubmissionStatus]:
    return {t.target for t in TRANSITIONS.values() if status in t.sources}


def check_actor(transition: Transition, actor: Actor, owner_user_id: int | None) -> None:
    if transition.side == Side.STAFF:
        if not actor.is_staff:
            raise PermissionDeniedError(f"Only staff can perform {transition.action.value}")
        return
    if owner_user_id is not None and actor.user_id != owner_user_id:
        raise PermissionDeniedError(f"Only the owner can perform {transition.action.value}")


def validate_transition(
    action: Action | str,
    current: SubmissionStatus | None,
    actor: Actor,
    owner_user_id: int | None,
    remarks: str | None = None,
) -> Transition:
    """Return the transition for ``action`` or raise without side effects.

    ``current`` is ``None`` only for intake. Role and ownership are checked
    before the state so a citizen calling a staff action always gets
    ``PermissionDeniedError``.
    """
    transition = TRANSITIONS[Action(action)]
    check_actor(transition, actor, owner_user_id)
    if transition.action == Action.SUBMIT:
        if current is not None:
            raise InvalidTransitionError("Submission already exists")
        return transition
    if current is None:
        raise InvalidTransitionError(f"{transition.action.value} requires an existing submission")
    if current in TERMINAL_STATES:
        raise InvalidTransitionError(f"Submission is {current.value} and cannot change")
    if current not in transition.sources:
        raise InvalidTransitionError(
            f"Invalid transition: {current.value} -> {transition.target.value} ({transition.action.value})"
        )
    if transition.requires_remarks:
        stored_remarks(transition, remarks)
    return transition


def stored_remarks(transition: Transition, remarks) -> str:
    """Remarks as written to the submission, prefix included."""
    if remarks is not None and not isinstance(remarks, str):
        raise IncompleteSubmissionError("Remarks must be text")
    text = (remarks or "").strip()
    if not text:
        raise IncompleteSubmissionError(f"Remarks are required to {transition.action.value.lower().replace('_', ' ')}")
    text = f"{transition.remarks_prefix}{text}"
    if len(text) > MAX_REMARKS_LENGTH:
        raise InvalidOptionError(f"Remarks must be at most {MAX_REMARKS_LENGTH - len(transition.remarks_prefix)} characters")
    return text


def available_actions(current: SubmissionStatus, actor: Actor, owner_user_id: int) -> list[Action]:
    actions = []
    for transition in TRANSITIONS.values():
        if current not in transition.sources:
            continue
        if transition.side == Side.STAFF and not actor.is_staff:
            continue
        if transition.side == Side.CITIZEN and actor.user_id != owner_user_id:
            continue
        actions.append(transition.action)
    return actions
