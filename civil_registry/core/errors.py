"""Domain errors raised by the submission workflow.

All of them derive from ``ValueError`` so request handlers can keep catching
``ValueError`` for user-facing validation problems.
"""
from __future__ import annotations


class WorkflowError(ValueError):
    http_status = 400


class InvalidOptionError(WorkflowError):
    """A fee option is missing or has an unknown value."""


class IncompleteSubmissionError(WorkflowError):
    """Required input is missing: subject fields, documents, proof or staff remarks."""


class InvalidTransitionError(WorkflowError):
    http_status = 409


class PermissionDeniedError(InvalidTransitionError):
    """The actor's role or ownership does not allow the action."""

    http_status = 403


class NotFoundError(WorkflowError):
    http_status = 404


class AlreadyPaidError(WorkflowError):
    http_status = 409


class ConcurrentModificationError(WorkflowError):
    http_status = 409
