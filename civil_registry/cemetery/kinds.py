"""Per-kind strategy registry.

Every submission kind shares one lifecycle; what differs between them is
declared here: the table, subject fields, documents, fee options and the
hooks used when payment is confirmed.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Mapping

from civil_registry.core.errors import IncompleteSubmissionError, InvalidOptionError, WorkflowError
from civil_registry.core.models import (
    BurialPermit,
    BurialType,
    CremationPermit,
    DeathCertificateRequest,
    DeathRegistration,
    ExhumationPermit,
    NicheType,
    RegistrationType,
    SubmissionKind,
)
from civil_registry.core.utils import add_working_days

DELAYED_PROCESSING_WORKING_DAYS = 11


@dataclass(frozen=True)
class FieldSpec:
    name: str
    parser: str = "text"
    required: bool = False
    enum: type[Enum] | None = None
    default: Any = None
    fee_option: bool = False


@dataclass(frozen=True)
class KindSpec:
    kind: SubmissionKind
    model: type
    slug: str
    entity_type: str
    audit_prefix: str
    storage_folder: str
    fields: tuple[FieldSpec, ...]
    required_documents: tuple[str, ...]
    optional_documents: tuple[str, ...] = ()
    conditional_documents: tuple[str, ...] = ()
    needs_conditional_documents: Callable[[Mapping[str, Any]], bool] | None = None
    transaction_type: Callable[[Any], str] | None = None
    transaction_remarks: Callable[[Any], str] | None = None
    on_payment_confirmed: Callable[[Any, datetime], dict[str, Any]] | None = None

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    @property
    def fee_option_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields if f.fee_option)

    def documents_required_for(self, values: Mapping[str, Any]) -> tuple[str, ...]:
        if self.needs_conditional_documents and self.needs_conditional_documents(values):
            return self.required_documents + self.conditional_documents
        return self.required_documents

    @property
    def known_documents(self) -> tuple[str, ...]:
        return self.required_documents + self.conditional_documents + self.optional_documents

    def fee_options(self, source: Any) -> dict[str, Any]:
        if isinstance(source, Mapping):
            return {name: source.get(name) for name in self.fee_option_names}
        return {name: getattr(source, name) for name in self.fee_option_names}

    def subject_values(self, submission: Any) -> dict[str, Any]:
        return {name: getattr(submission, name) for name in self.field_names}

    def max_length(self, name: str) -> int | None:
        return getattr(self.model.__table__.c[name].type, "length", None)


def _parse_text(spec: FieldSpec, raw: Any) -> str | None:
    value = (str(raw) if raw is not None else "").strip()
    return value or None


def _parse_date(spec: FieldSpec, raw: Any) -> date | None:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise WorkflowError(f"Invalid date format for {spec.name}")
    value = raw.strip()
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError as exc:
        raise WorkflowError(f"Invalid date format for {spec.name}") from exc


def _parse_bool(spec: FieldSpec, raw: Any) -> bool | None:
    if isinstance(raw, bool):
        return raw
    value = (str(raw) if raw is not None else "").strip().lower()
    if not value:
        return None
    return value in {"1", "true", "yes", "on"}


def _parse_int(spec: FieldSpec, raw: Any) -> int | None:
    if isinstance(raw, bool):
        raise InvalidOptionError(f"Invalid value for {spec.name}")
    if isinstance(raw, int):
        return raw
    value = (str(raw) if raw is not None else "").strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise InvalidOptionError(f"Invalid value for {spec.name}") from exc


def _parse_enum(spec: FieldSpec, raw: Any) -> Enum | None:
    if isinstance(raw, spec.enum):
        return raw
    value = (str(raw) if raw is not None else "").strip().upper()
    if not value:
        return None
    try:
        return spec.enum(value)
    except ValueError as exc:
        raise InvalidOptionError(f"Unknown {spec.name}: {value}") from exc


_PARSERS: dict[str, Callable[[FieldSpec, Any], Any]] = {
    "text": _parse_text,
    "date": _parse_date,
    "bool": _parse_bool,
    "int": _parse_int,
    "enum": _parse_enum,
}


def parse_subject_fields(
    spec: KindSpec,
    payload: Mapping[str, Any],
    previous: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Parse the subject fields of ``spec`` out of a form-like payload.

    With ``previous`` (resubmission) fields absent from the payload keep their
    previous value.
    """
    values: dict[str, Any] = {}
    missing: list[str] = []
    for field_spec in spec.fields:
        if field_spec.name in payload:
            value = _PARSERS[field_spec.parser](field_spec, payload.get(field_spec.name))
            limit = spec.max_length(field_spec.name)
            if isinstance(value, str) and limit and len(value) > limit:
                raise InvalidOptionError(f"{field_spec.name} must be at most {limit} characters")
        elif previous is not None:
            value = previous.get(field_spec.name)
        else:
            value = None
        if value is None:
            value = field_spec.default
        if value is None and field_spec.required:
            missing.append(field_spec.name)
        values[field_spec.name] = value
    if missing:
        raise IncompleteSubmissionError(f"Missing required fields: {', '.join(missing)}")
    return values


def collect_documents(
    spec: KindSpec,
    values: Mapping[str, Any],
    documents: Mapping[str, str] | None,
    previous: Mapping[str, str] | None = None,
) -> dict[str, str]:
    merged = dict(previous or {})
    for name, reference in (documents or {}).items():
        if name in spec.known_documents and reference:
            merged[name] = reference
    missing = [name for name in spec.documents_required_for(values) if not merged.get(name)]
    if missing:
        raise IncompleteSubmissionError(f"Required documents missing: {', '.join(missing)}")
    return merged


def _requester_fields() -> tuple[FieldSpec, ...]:
    return (
        FieldSpec("requester_name", required=True),
        FieldSpec("requester_relation"),
        FieldSpec("requester_contact_number"),
        FieldSpec("requester_address"),
    )


def _is_delayed_registration(values: Mapping[str, Any]) -> bool:
    return values.get("registration_type") == RegistrationType.DELAYED


def _death_registration_transaction_type(submission) -> str:
    if submission.registration_type == RegistrationType.DELAYED:
        return "DELAYED_DEATH_REGISTRATION_FEE"
    return "DEATH_REGISTRATION_FEE"


def _death_registration_remarks(submission) -> str:
    if submission.registration_type == RegistrationType.DELAYED:
        return f"Delayed death registration certificate fee ({DELAYED_PROCESSING_WORKING_DAYS} working days)"
    return "Death registration certificate fee"


def _death_registration_confirmed(submission, confirmed_at: datetime) -> dict[str, Any]:
    if submission.registration_type != RegistrationType.DELAYED:
        return {}
    return {"processing_deadline": add_working_days(confirmed_at, DELAYED_PROCESSING_WORKING_DAYS)}


def _certificate_remarks(submission) -> str:
    copies = submission.number_of_copies
    return f"Death certificate request - {copies} {'copies' if copies > 1 else 'copy'}"


KIND_SPECS: dict[SubmissionKind, KindSpec] = {
    SubmissionKind.DEATH_REGISTRATION: KindSpec(
        kind=SubmissionKind.DEATH_REGISTRATION,
        model=DeathRegistration,
        slug="death-registration",
        entity_type="DeathRegistration",
        audit_prefix="DEATH_REGISTRATION",
        storage_folder="death-registrations",
        fields=(
            FieldSpec("deceased_first_name", required=True),
            FieldSpec("deceased_middle_name"),
            FieldSpec("deceased_last_name", required=True),
            FieldSpec("deceased_date_of_birth", parser="date"),
            FieldSpec("deceased_date_of_death", parser="date"),
            FieldSpec("deceased_place_of_death"),
            FieldSpec("deceased_cause_of_death"),
            FieldSpec("deceased_gender"),
            FieldSpec("informant_name", required=True),
            FieldSpec("informant_relation"),
            FieldSpec("informant_contact_number"),
            FieldSpec("informant_address"),
            FieldSpec(
                "registration_type",
                parser="enum",
                enum=RegistrationType,
                default=RegistrationType.REGULAR,
                fee_option=True,
            ),
        ),
        required_documents=("municipal_form_103", "informant_valid_id"),
        optional_documents=("swab_test_result",),
        conditional_documents=("affidavit_of_delayed", "burial_certificate", "funeral_certificate", "psa_no_record"),
        needs_conditional_documents=_is_delayed_registration,
        transaction_type=_death_registration_transaction_type,
        transaction_remarks=_death_registration_remarks,
        on_payment_confirmed=_death_registration_confirmed,
    ),
    SubmissionKind.BURIAL_PERMIT: KindSpec(
        kind=SubmissionKind.BURIAL_PERMIT,
        model=BurialPermit,
        slug="burial-permit",
        entity_type="BurialPermit",
        audit_prefix="BURIAL_PERMIT",
        storage_folder="burial-permits",
        fields=(
            FieldSpec("deceased_name", required=True),
            FieldSpec("deceased_date_of_death", parser="date"),
            *_requester_fields(),
            FieldSpec("burial_type", parser="enum", enum=BurialType, required=True, fee_option=True),
            FieldSpec("niche_type", parser="enum", enum=NicheType, fee_option=True),
            FieldSpec("cemetery_location"),
            FieldSpec("is_from_another_lgu", parser="bool", default=False),
        ),
        required_documents=("death_certificate", "burial_form", "valid_id"),
        optional_documents=("transfer_permit", "affidavit_of_undertaking"),
        transaction_type=lambda submission: "BURIAL_PERMIT_FEE",
        transaction_remarks=lambda submission: "Burial permit fee",
    ),
    SubmissionKind.CREMATION_PERMIT: KindSpec(
        kind=SubmissionKind.CREMATION_PERMIT,
        model=CremationPermit,
        slug="cremation-permit",
        entity_type="CremationPermit",
        audit_prefix="CREMATION_PERMIT",
        storage_folder="cremation-permits",
        fields=(
            FieldSpec("deceased_name", required=True),
            FieldSpec("deceased_date_of_death", parser="date"),
            *_requester_fields(),
            FieldSpec("funeral_home_name"),
            FieldSpec("funeral_home_contact"),
        ),
        required_documents=("death_certificate", "cremation_form", "valid_id"),
        optional_documents=("transfer_permit",),
        transaction_type=lambda submission: "CREMATION_PERMIT_FEE",
        transaction_remarks=lambda submission: "Cremation permit fee",
    ),
    SubmissionKind.EXHUMATION_PERMIT: KindSpec(
        kind=SubmissionKind.EXHUMATION_PERMIT,
        model=ExhumationPermit,
        slug="exhumation-permit",
        entity_type="ExhumationPermit",
        audit_prefix="EXHUMATION_PERMIT",
        storage_folder="exhumation-permits",
        fields=(
            FieldSpec("deceased_name", required=True),
            FieldSpec("deceased_date_of_death", parser="date"),
            FieldSpec("deceased_date_of_burial", parser="date"),
            FieldSpec("deceased_place_of_burial"),
            *_requester_fields(),
            FieldSpec("reason_for_exhumation"),
        ),
        required_documents=("exhumation_letter", "death_certificate", "valid_id"),
        transaction_type=lambda submission: "EXHUMATION_PERMIT_FEE",
        transaction_remarks=lambda submission: "Exhumation permit fee",
    ),
    SubmissionKind.CERTIFICATE_REQUEST: KindSpec(
        kind=SubmissionKind.CERTIFICATE_REQUEST,
        model=DeathCertificateRequest,
        slug="death-certificate-request",
        entity_type="DeathCertificateRequest",
        audit_prefix="DEATH_CERTIFICATE_REQUEST",
        storage_folder="death-certificate-requests",
        fields=(
            FieldSpec("deceased_full_name", required=True),
            FieldSpec("deceased_date_of_death", parser="date", required=True),
            FieldSpec("deceased_place_of_death", required=True),
            FieldSpec("requester_name", required=True),
            FieldSpec("requester_relation", required=True),
            FieldSpec("requester_contact_number", required=True),
            FieldSpec("requester_address", required=True),
            FieldSpec("purpose", required=True),
            FieldSpec("number_of_copies", parser="int", default=1, fee_option=True),
        ),
        required_documents=("valid_id",),
        optional_documents=("authorization_letter",),
        transaction_type=lambda submission: "DEATH_CERTIFICATE_FEE",
        transaction_remarks=_certificate_remarks,
    ),
}

_SPECS_BY_SLUG: dict[str, KindSpec] = {spec.slug: spec for spec in KIND_SPECS.values()}


def kind_spec(kind: SubmissionKind | str) -> KindSpec:
    try:
        return KIND_SPECS[SubmissionKind(kind)]
    except ValueError as exc:
        raise InvalidOptionError(f"Unknown submission kind: {kind}") from exc


def kind_spec_for_slug(slug: str) -> KindSpec | None:
    return _SPECS_BY_SLUG.get(slug)
