from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from civil_registry.core.models import AuditLog

from .transitions import Action

logger = logging.getLogger(__name__)

_PAYMENT_ACTIONS = {
    Action.PAY: "PAYMENT_SUBMITTED",
    Action.CONFIRM_PAYMENT: "PAYMENT_CONFIRMED",
    Action.REJECT_PAYMENT: "PAYMENT_REJECTED",
}

_ACTION_SUFFIXES = {
    Action.SUBMIT: "SUBMITTED",
    Action.APPROVE: "APPROVED",
    Action.RETURN: "RETURNED",
    Action.REJECT: "REJECTED",
    Action.RESUBMIT: "RESUBMITTED",
    Action.COMPLETE: "COMPLETED",
}


@dataclass(frozen=True)
class WorkflowEvent:
    action: str
    entity_type: str
    entity_id: str | None
    user_id: int | None
    details: dict[str, Any] = field(default_factory=dict)


class AuditSink(Protocol):
    def record(self, event: WorkflowEvent) -> None: ...


def audit_action(spec, action: Action) -> str:
    if action in _PAYMENT_ACTIONS:
        return _PAYMENT_ACTIONS[action]
    return f"{spec.audit_prefix}_{_ACTION_SUFFIXES[action]}"


class DatabaseAuditSink:
    """Writes events to ``audit_log``.

    Runs after the workflow change is committed; a failure here is logged and
    never undoes or fails the action.
    """

    def __init__(self, session: Session):
        self.session = session

    def record(self, event: WorkflowEvent) -> None:
        try:
            self.session.add(
                AuditLog(
                    user_id=event.user_id,
                    action=event.action,
                    entity_type=event.entity_type,
                    entity_id=event.entity_id,
                    details=event.details or None,
                )
            )
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("Could not record audit event %s for %s %s", event.action, event.entity_type, event.entity_id)


def recent_audit_logs(
    session: Session,
    entity_type: str | None = None,
    action: str | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    stmt = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if entity_type:
        stmt = stmt.where(AuditLog.entity_type == entity_type)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    return list(session.scalars(stmt.limit(limit)))
