from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Mapping

from civil_registry.core.errors import InvalidOptionError
from civil_registry.core.models import BurialType, NicheType, RegistrationType, SubmissionKind

CENT = Decimal("0.01")

DEATH_REGISTRATION_FEES: dict[RegistrationType, Decimal] = {
    RegistrationType.REGULAR: Decimal("50.00"),
    RegistrationType.DELAYED: Decimal("150.00"),
}
BURIAL_PERMIT_FEE = Decimal("100.00")
NICHE_FEES: dict[NicheType, Decimal] = {
    NicheType.CHILD: Decimal("750.00"),
    NicheType.ADULT: Decimal("1500.00"),
}
CREMATION_PERMIT_FEE = Decimal("100.00")
EXHUMATION_PERMIT_FEE = Decimal("100.00")
CERTIFICATE_FIRST_COPY_FEE = Decimal("50.00")
CERTIFICATE_ADDITIONAL_COPY_FEE = Decimal("50.00")
MAX_CERTIFICATE_COPIES = 100


@dataclass(frozen=True)
class FeeLine:
    label: str
    amount: Decimal


def _enum_option(options: Mapping[str, Any], key: str, enum_cls: type[Enum], default: Enum | None = None) -> Enum:
    raw = options.get(key)
    if isinstance(raw, enum_cls):
        return raw
    value = str(raw).strip().upper() if raw is not None else ""
    if not value:
        if default is None:
            raise InvalidOptionError(f"Missing fee option {key}")
        return default
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise InvalidOptionError(f"Unknown {key}: {value}") from exc


def _copies_option(options: Mapping[str, Any]) -> int:
    raw = options.get("number_of_copies")
    if raw is None or raw == "":
        return 1
    if isinstance(raw, bool):
        raise InvalidOptionError("number_of_copies must be a whole number")
    try:
        copies = int(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidOptionError("number_of_copies must be a whole number") from exc
    if isinstance(raw, float) and raw != copies:
        raise InvalidOptionError("number_of_copies must be a whole number")
    if copies < 1:
        raise InvalidOptionError("number_of_copies must be at least 1")
    if copies > MAX_CERTIFICATE_COPIES:
        raise InvalidOptionError(f"number_of_copies must be at most {MAX_CERTIFICATE_COPIES}")
    return copies


def _death_registration_lines(options: Mapping[str, Any]) -> list[FeeLine]:
    registration_type = _enum_option(options, "registration_type", RegistrationType, RegistrationType.REGULAR)
    return [FeeLine(f"{registration_type.value.lower()} registration", DEATH_REGISTRATION_FEES[registration_type])]


def _burial_permit_lines(options: Mapping[str, Any]) -> list[FeeLine]:
    burial_type = _enum_option(options, "burial_type", BurialType)
    lines = [FeeLine("permit", BURIAL_PERMIT_FEE)]
    if burial_type == BurialType.NICHE:
        niche_type = _enum_option(options, "niche_type", NicheType)
        lines.append(FeeLine(f"{niche_type.value.lower()} niche", NICHE_FEES[niche_type]))
    return lines


def _cremation_permit_lines(options: Mapping[str, Any]) -> list[FeeLine]:
    return [FeeLine("permit", CREMATION_PERMIT_FEE)]


def _exhumation_permit_lines(options: Mapping[str, Any]) -> list[FeeLine]:
    return [FeeLine("permit", EXHUMATION_PERMIT_FEE)]


def _certificate_request_lines(options: Mapping[str, Any]) -> list[FeeLine]:
    copies = _copies_option(options)
    lines = [FeeLine("first copy", CERTIFICATE_FIRST_COPY_FEE)]
    if copies > 1:
        lines.append(FeeLine("additional copies", CERTIFICATE_ADDITIONAL_COPY_FEE * (copies - 1)))
    return lines


_FEE_RULES: dict[SubmissionKind, Callable[[Mapping[str, Any]], list[FeeLine]]] = {
    SubmissionKind.DEATH_REGISTRATION: _death_registration_lines,
    SubmissionKind.BURIAL_PERMIT: _burial_permit_lines,
    SubmissionKind.CREMATION_PERMIT: _cremation_permit_lines,
    SubmissionKind.EXHUMATION_PERMIT: _exhumation_permit_lines,
    SubmissionKind.CERTIFICATE_REQUEST: _certificate_request_lines,
}


def fee_breakdown(kind: SubmissionKind | str, options: Mapping[str, Any] | None = None) -> list[FeeLine]:
    try:
        rule = _FEE_RULES[SubmissionKind(kind)]
    except ValueError as exc:
        raise InvalidOptionError(f"Unknown submission kind: {kind}") from exc
    return rule(options or {})


def compute_fee(kind: SubmissionKind | str, options: Mapping[str, Any] | None = None) -> Decimal:
    total = sum((line.amount for line in fee_breakdown(kind, options)), Decimal("0.00")).quantize(CENT)
    if total <= 0:
        raise InvalidOptionError("Computed fee must be positive")
    return total
