from __future__ import annotations

from datetime import datetime

from civil_registry.core.models import utcnow

ORDER_OF_PAYMENT_PREFIX = "OR"


def generate_reference(submission, now: datetime | None = None) -> str:
    """Order of Payment number for an approved submission.

    ``OR-<epoch ms>-<first 8 chars of the submission id>``. Submission ids are
    random uuids, so two references collide only if two ids share a prefix and
    are approved in the same millisecond.
    """
    moment = now or utcnow()
    millis = int(moment.timestamp() * 1000)
    return f"{ORDER_OF_PAYMENT_PREFIX}-{millis}-{str(submission.id)[:8].upper()}"
