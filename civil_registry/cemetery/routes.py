from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from flask import abort, jsonify, request, send_file
from flask_login import login_required

from civil_registry.cemetery import cemetery_bp
from civil_registry.cemetery.audit import recent_audit_logs
from civil_registry.cemetery.fees import compute_fee, fee_breakdown
from civil_registry.cemetery.kinds import KindSpec, kind_spec_for_slug
from civil_registry.cemetery.payments import PaymentProof
from civil_registry.cemetery.repository import SubmissionRepository
from civil_registry.cemetery.transitions import Action, available_actions
from civil_registry.cemetery.workflow import Workflow, WorkflowResult
from civil_registry.core.errors import WorkflowError
from civil_registry.core.extensions import db
from civil_registry.core.models import PaymentProofType, Role, SubmissionStatus
from civil_registry.core.permissions import Actor, current_actor, require_role, require_staff
from civil_registry.core.storage import LocalDocumentStore
from civil_registry.core.utils import money

VERIFICATION_ACTIONS = {
    "approve": Action.APPROVE,
    "return": Action.RETURN,
    "reject": Action.REJECT,
}


def _jsonable(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def _spec_or_404(slug: str) -> KindSpec:
    spec = kind_spec_for_slug(slug)
    if spec is None:
        abort(404)
    return spec


def _error_response(exc: ValueError):
    status = getattr(exc, "http_status", 400)
    return jsonify({"error": str(exc), "type": type(exc).__name__}), status


def _serialize(spec: KindSpec, submission, actor: Actor) -> dict[str, object]:
    store = LocalDocumentStore.from_app()
    proof = PaymentProof.from_submission(submission)
    payment_proof = None
    if proof is not None:
        payment_proof = proof.to_dict()
        if proof.type == PaymentProofType.FILE:
            payment_proof["url"] = store.resolve(proof.value)
    data = {
        "id": submission.id,
        "kind": spec.kind.value,
        "owner_user_id": submission.owner_user_id,
        "status": submission.status.value,
        "fee": str(submission.fee),
        "fee_display": money(submission.fee),
        "order_of_payment": submission.order_of_payment,
        "payment_proof": payment_proof,
        "payment_submitted_at": _jsonable(submission.payment_submitted_at),
        "payment_confirmed_at": _jsonable(submission.payment_confirmed_at),
        "remarks": submission.remarks,
        "processed_by_user_id": submission.processed_by_user_id,
        "processed_at": _jsonable(submission.processed_at),
        "completed_at": _jsonable(submission.completed_at),
        "created_at": _jsonable(submission.created_at),
        "updated_at": _jsonable(submission.updated_at),
        "version": submission.version,
        "fields": {name: _jsonable(value) for name, value in spec.subject_values(submission).items()},
        "documents": {
            name: {"reference": reference, "url": store.resolve(reference)}
            for name, reference in (submission.documents or {}).items()
        },
        "available_actions": [a.value for a in available_actions(submission.status, actor, submission.owner_user_id)],
    }
    if hasattr(submission, "processing_deadline"):
        data["processing_deadline"] = _jsonable(submission.processing_deadline)
    return data


def _result_response(spec: KindSpec, result: WorkflowResult, actor: Actor, status: int = 200):
    if not result.ok:
        return _error_response(result.error)
    return jsonify({"submission": _serialize(spec, result.submission, actor)}), status


def _visible_submission(spec: KindSpec, submission_id: str, actor: Actor):
    try:
        submission = SubmissionRepository(db.session).get(spec.kind, submission_id)
    except WorkflowError:
        abort(404)
    if not actor.is_staff and submission.owner_user_id != actor.user_id:
        abort(404)
    return submission


def _form_payload() -> dict[str, object]:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return dict(data)
    return request.form.to_dict()


def _discard(references) -> None:
    store = LocalDocumentStore.from_app()
    for reference in references:
        if reference:
            store.discard(reference)


def _store_documents(spec: KindSpec, actor: Actor) -> dict[str, str]:
    store = LocalDocumentStore.from_app()
    documents: dict[str, str] = {}
    try:
        for name in spec.known_documents:
            upload = request.files.get(name)
            if upload and upload.filename:
                documents[name] = store.store(upload, spec.storage_folder, actor.user_id, name)
    except ValueError:
        _discard(documents.values())
        raise
    return documents


@cemetery_bp.get("/transactions")
@login_required
@require_staff
def list_transactions():
    limit = request.args.get("limit", default=100, type=int)
    rows = SubmissionRepository(db.session).list_transactions(limit=limit)
    return jsonify(
        {
            "transactions": [
                {
                    "id": row.id,
                    "user_id": row.user_id,
                    "transaction_type": row.transaction_type,
                    "amount": str(row.amount),
                    "amount_display": money(row.amount),
                    "order_of_payment": row.order_of_payment,
                    "payment_method": row.payment_method.value,
                    "reference_number": row.reference_number,
                    "status": row.status,
                    "confirmed_by_user_id": row.confirmed_by_user_id,
                    "confirmed_at": _jsonable(row.confirmed_at),
                    "entity_type": row.entity_type,
                    "entity_id": row.entity_id,
                    "remarks": row.remarks,
                }
                for row in rows
            ]
        }
    )


@cemetery_bp.get("/audit-logs")
@login_required
@require_role(Role.ADMIN)
def list_audit_logs():
    rows = recent_audit_logs(
        db.session,
        entity_type=(request.args.get("entity_type") or "").strip() or None,
        action=(request.args.get("action") or "").strip().upper() or None,
        limit=request.args.get("limit", default=100, type=int),
    )
    return jsonify(
        {
            "audit_logs": [
                {
                    "id": row.id,
                    "user_id": row.user_id,
                    "action": row.action,
                    "entity_type": row.entity_type,
                    "entity_id": row.entity_id,
                    "details": row.details,
                    "created_at": _jsonable(row.created_at),
                }
                for row in rows
            ]
        }
    )


@cemetery_bp.get("/documents/<path:reference>")
@login_required
def view_document(reference: str):
    actor = current_actor()
    store = LocalDocumentStore.from_app()
    if not actor.is_staff and store.uploader_of(reference) != actor.user_id:
        abort(404)
    try:
        path = store.path_for(reference)
    except ValueError:
        abort(404)
    return send_file(path)


@cemetery_bp.get("/<slug>/fee")
@login_required
def fee_quote(slug: str):
    spec = _spec_or_404(slug)
    options = spec.fee_options(request.args)
    try:
        lines = fee_breakdown(spec.kind, options)
        total = compute_fee(spec.kind, options)
    except ValueError as exc:
        return _error_response(exc)
    return jsonify(
        {
            "kind": spec.kind.value,
            "lines": [{"label": line.label, "amount": str(line.amount)} for line in lines],
            "fee": str(total),
            "fee_display": money(total),
        }
    )


@cemetery_bp.post("/<slug>")
@login_required
def submit(slug: str):
    spec = _spec_or_404(slug)
    actor = current_actor()
    try:
        documents = _store_documents(spec, actor)
    except ValueError as exc:
        return _error_response(exc)
    payload = {**_form_payload(), "documents": documents}
    result = Workflow.for_session(db.session).perform(spec.kind, None, Action.SUBMIT, actor, payload)
    if not result.ok:
        _discard(documents.values())
    return _result_response(spec, result, actor, status=201)


@cemetery_bp.get("/<slug>")
@login_required
def list_submissions(slug: str):
    spec = _spec_or_404(slug)
    actor = current_actor()
    repository = SubmissionRepository(db.session)
    if actor.is_staff:
        try:
            statuses = [SubmissionStatus(value.strip().upper()) for value in request.args.getlist("status") if value.strip()]
        except ValueError:
            return jsonify({"error": "Unknown status filter"}), 400
        rows = repository.list_by_status(spec.kind, statuses)
    else:
        rows = repository.list_for_owner(spec.kind, actor.user_id)
    return jsonify({"submissions": [_serialize(spec, row, actor) for row in rows]})


@cemetery_bp.get("/<slug>/<submission_id>")
@login_required
def submission_detail(slug: str, submission_id: str):
    spec = _spec_or_404(slug)
    actor = current_actor()
    submission = _visible_submission(spec, submission_id, actor)
    return jsonify({"submission": _serialize(spec, submission, actor)})


@cemetery_bp.post("/<slug>/<submission_id>/resubmit")
@login_required
def resubmit(slug: str, submission_id: str):
    spec = _spec_or_404(slug)
    actor = current_actor()
    _visible_submission(spec, submission_id, actor)
    try:
        documents = _store_documents(spec, actor)
    except ValueError as exc:
        return _error_response(exc)
    payload = {**_form_payload(), "documents": documents}
    result = Workflow.for_session(db.session).perform(spec.kind, submission_id, Action.RESUBMIT, actor, payload)
    if not result.ok:
        _discard(documents.values())
    return _result_response(spec, result, actor)


@cemetery_bp.post("/<slug>/<submission_id>/verification/<decision>")
@login_required
def verify(slug: str, submission_id: str, decision: str):
    spec = _spec_or_404(slug)
    action = VERIFICATION_ACTIONS.get(decision)
    if action is None:
        abort(404)
    actor = current_actor()
    _visible_submission(spec, submission_id, actor)
    payload = {"remarks": _form_payload().get("remarks")}
    result = Workflow.for_session(db.session).perform(spec.kind, submission_id, action, actor, payload)
    return _result_response(spec, result, actor)


@cemetery_bp.post("/<slug>/<submission_id>/submit-payment")
@login_required
def submit_payment(slug: str, submission_id: str):
    spec = _spec_or_404(slug)
    actor = current_actor()
    _visible_submission(spec, submission_id, actor)
    form = _form_payload()
    mode = str(form.get("upload_mode") or "file").strip().lower()
    file_reference = None
    try:
        if mode == "file":
            upload = request.files.get("proof_of_payment")
            if upload and upload.filename:
                file_reference = LocalDocumentStore.from_app().store(
                    upload, spec.storage_folder, actor.user_id, "proof_of_payment"
                )
        proof = PaymentProof.from_form(mode, file_reference=file_reference, receipt_number=form.get("receipt_number"))
    except ValueError as exc:
        _discard([file_reference])
        return _error_response(exc)
    result = Workflow.for_session(db.session).perform(spec.kind, submission_id, Action.PAY, actor, {"proof": proof})
    if not result.ok:
        _discard([file_reference])
    return _result_response(spec, result, actor)


@cemetery_bp.post("/<slug>/<submission_id>/confirm-payment")
@login_required
def confirm_payment(slug: str, submission_id: str):
    spec = _spec_or_404(slug)
    actor = current_actor()
    _visible_submission(spec, submission_id, actor)
    result = Workflow.for_session(db.session).perform(spec.kind, submission_id, Action.CONFIRM_PAYMENT, actor)
    return _result_response(spec, result, actor)


@cemetery_bp.post("/<slug>/<submission_id>/reject-payment")
@login_required
def reject_payment(slug: str, submission_id: str):
    spec = _spec_or_404(slug)
    actor = current_actor()
    _visible_submission(spec, submission_id, actor)
    payload = {"remarks": _form_payload().get("remarks")}
    result = Workflow.for_session(db.session).perform(spec.kind, submission_id, Action.REJECT_PAYMENT, actor, payload)
    return _result_response(spec, result, actor)


@cemetery_bp.post("/<slug>/<submission_id>/complete")
@login_required
def complete(slug: str, submission_id: str):
    spec = _spec_or_404(slug)
    actor = current_actor()
    _visible_submission(spec, submission_id, actor)
    result = Workflow.for_session(db.session).perform(spec.kind, submission_id, Action.COMPLETE, actor)
    return _result_response(spec, result, actor)
