from __future__ import annotations

import logging
from typing import Any, Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from civil_registry.core.errors import ConcurrentModificationError, NotFoundError
from civil_registry.core.models import PaymentTransaction, SubmissionKind, SubmissionStatus

from .kinds import kind_spec

logger = logging.getLogger(__name__)


class SubmissionRepository:
    """Persistence for every submission kind.

    Writes after intake go through :meth:`update`, a single conditional UPDATE
    on ``(status, version)``. A writer that read a stale row updates nothing and
    gets ``ConcurrentModificationError`` instead of overwriting the winner.
    """

    def __init__(self, session: Session):
        self.session = session

    def get(self, kind: SubmissionKind | str, submission_id: str):
        model = kind_spec(kind).model
        submission = self.session.get(model, submission_id)
        if submission is None:
            raise NotFoundError(f"{kind_spec(kind).entity_type} {submission_id} not found")
        return submission

    def add(self, submission):
        self.session.add(submission)
        self.session.flush()
        return submission

    def update(
        self,
        kind: SubmissionKind | str,
        submission_id: str,
        expected_status: SubmissionStatus,
        expected_version: int,
        values: dict[str, Any],
    ):
        model = kind_spec(kind).model
        stmt = (
            update(model)
            .where(
                model.id == submission_id,
                model.status == expected_status,
                model.version == expected_version,
            )
            .values(**values, version=model.version + 1)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount != 1:
            exists = self.session.scalar(select(model.id).where(model.id == submission_id))
            if exists is None:
                raise NotFoundError(f"{kind_spec(kind).entity_type} {submission_id} not found")
            logger.warning(
                "Lost update on %s %s (expected %s v%s)",
                kind_spec(kind).entity_type,
                submission_id,
                expected_status.value,
                expected_version,
            )
            raise ConcurrentModificationError("Submission was modified by another request, reload and retry")
        return self.session.get(model, submission_id, populate_existing=True)

    def list_for_owner(self, kind: SubmissionKind | str, user_id: int) -> list:
        model = kind_spec(kind).model
        stmt = select(model).where(model.owner_user_id == user_id).order_by(model.created_at.desc())
        return list(self.session.scalars(stmt))

    def list_by_status(self, kind: SubmissionKind | str, statuses: Iterable[SubmissionStatus] | None = None) -> list:
        model = kind_spec(kind).model
        stmt = select(model).order_by(model.created_at.desc())
        statuses = list(statuses or [])
        if statuses:
            stmt = stmt.where(model.status.in_(statuses))
        return list(self.session.scalars(stmt))

    def add_transaction(self, transaction: PaymentTransaction) -> PaymentTransaction:
        self.session.add(transaction)
        return transaction

    def list_transactions(self, limit: int = 100) -> list[PaymentTransaction]:
        stmt = select(PaymentTransaction).order_by(PaymentTransaction.confirmed_at.desc()).limit(limit)
        return list(self.session.scalars(stmt))

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
