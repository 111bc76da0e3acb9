from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from flask_login import UserMixin
from sqlalchemy import Enum as SAEnum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship
from werkzeug.security import generate_password_hash

from civil_registry.core.extensions import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_submission_id() -> str:
    return str(uuid.uuid4())


class Role(str, Enum):
    USER = "USER"
    EMPLOYEE = "EMPLOYEE"
    ADMIN = "ADMIN"


STAFF_ROLES = frozenset({Role.EMPLOYEE, Role.ADMIN})


class SubmissionKind(str, Enum):
    DEATH_REGISTRATION = "DEATH_REGISTRATION"
    BURIAL_PERMIT = "BURIAL_PERMIT"
    CREMATION_PERMIT = "CREMATION_PERMIT"
    EXHUMATION_PERMIT = "EXHUMATION_PERMIT"
    CERTIFICATE_REQUEST = "CERTIFICATE_REQUEST"


class SubmissionStatus(str, Enum):
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    APPROVED_FOR_PAYMENT = "APPROVED_FOR_PAYMENT"
    RETURNED_FOR_CORRECTION = "RETURNED_FOR_CORRECTION"
    REJECTED = "REJECTED"
    PAYMENT_SUBMITTED = "PAYMENT_SUBMITTED"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    COMPLETED = "COMPLETED"


class PaymentProofType(str, Enum):
    FILE = "FILE"
    RECEIPT = "RECEIPT"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    ONLINE = "ONLINE"


class RegistrationType(str, Enum):
    REGULAR = "REGULAR"
    DELAYED = "DELAYED"


class BurialType(str, Enum):
    BURIAL = "BURIAL"
    ENTRANCE = "ENTRANCE"
    NICHE = "NICHE"


class NicheType(str, Enum):
    CHILD = "CHILD"
    ADULT = "ADULT"


class User(UserMixin, db.Model):
    __tablename__ = "user_account"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    role: Mapped[Role] = mapped_column(SAEnum(Role, name="user_role"), nullable=False, default=Role.USER)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


class SubmissionMixin:
    """Columns shared by every submission table.

    ``status``, ``fee``, payment and processing columns are written only through
    the workflow repository; subject columns are declared per kind.
    """

    id: Mapped[str] = mapped_column(db.String(36), primary_key=True, default=new_submission_id)
    status: Mapped[SubmissionStatus] = mapped_column(
        SAEnum(SubmissionStatus, name="submission_status"),
        nullable=False,
        default=SubmissionStatus.PENDING_VERIFICATION,
        index=True,
    )
    fee: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False)
    order_of_payment: Mapped[str | None] = mapped_column(db.String(40), nullable=True, unique=True)
    payment_proof_type: Mapped[PaymentProofType | None] = mapped_column(
        SAEnum(PaymentProofType, name="payment_proof_type"),
        nullable=True,
    )
    payment_proof: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    payment_submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    payment_confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    remarks: Mapped[str | None] = mapped_column(db.String(500), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    documents: Mapped[dict] = mapped_column(db.JSON, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    @declared_attr
    def owner_user_id(cls) -> Mapped[int]:
        return mapped_column(ForeignKey("user_account.id"), nullable=False, index=True)

    @declared_attr
    def processed_by_user_id(cls) -> Mapped[int | None]:
        return mapped_column(ForeignKey("user_account.id"), nullable=True)

    @declared_attr
    def owner(cls):
        return relationship("User", foreign_keys=f"{cls.__name__}.owner_user_id")

    @declared_attr
    def processed_by(cls):
        return relationship("User", foreign_keys=f"{cls.__name__}.processed_by_user_id")


class DeathRegistration(SubmissionMixin, db.Model):
    __tablename__ = "death_registration"
    kind = SubmissionKind.DEATH_REGISTRATION

    deceased_first_name: Mapped[str] = mapped_column(db.String(80), nullable=False)
    deceased_middle_name: Mapped[str | None] = mapped_column(db.String(80), nullable=True)
    deceased_last_name: Mapped[str] = mapped_column(db.String(80), nullable=False)
    deceased_date_of_birth: Mapped[date | None] = mapped_column(nullable=True)
    deceased_date_of_death: Mapped[date | None] = mapped_column(nullable=True)
    deceased_place_of_death: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    deceased_cause_of_death: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    deceased_gender: Mapped[str | None] = mapped_column(db.String(20), nullable=True)
    informant_name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    informant_relation: Mapped[str | None] = mapped_column(db.String(60), nullable=True)
    informant_contact_number: Mapped[str | None] = mapped_column(db.String(40), nullable=True)
    informant_address: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    registration_type: Mapped[RegistrationType] = mapped_column(
        SAEnum(RegistrationType, name="registration_type"),
        nullable=False,
        default=RegistrationType.REGULAR,
    )
    processing_deadline: Mapped[datetime | None] = mapped_column(nullable=True)


class BurialPermit(SubmissionMixin, db.Model):
    __tablename__ = "burial_permit"
    kind = SubmissionKind.BURIAL_PERMIT

    deceased_name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    deceased_date_of_death: Mapped[date | None] = mapped_column(nullable=True)
    requester_name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    requester_relation: Mapped[str | None] = mapped_column(db.String(60), nullable=True)
    requester_contact_number: Mapped[str | None] = mapped_column(db.String(40), nullable=True)
    requester_address: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    burial_type: Mapped[BurialType] = mapped_column(SAEnum(BurialType, name="burial_type"), nullable=False)
    niche_type: Mapped[NicheType | None] = mapped_column(SAEnum(NicheType, name="niche_type"), nullable=True)
    cemetery_location: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    is_from_another_lgu: Mapped[bool] = mapped_column(nullable=False, default=False)


class CremationPermit(SubmissionMixin, db.Model):
    __tablename__ = "cremation_permit"
    kind = SubmissionKind.CREMATION_PERMIT

    deceased_name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    deceased_date_of_death: Mapped[date | None] = mapped_column(nullable=True)
    requester_name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    requester_relation: Mapped[str | None] = mapped_column(db.String(60), nullable=True)
    requester_contact_number: Mapped[str | None] = mapped_column(db.String(40), nullable=True)
    requester_address: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    funeral_home_name: Mapped[str | None] = mapped_column(db.String(160), nullable=True)
    funeral_home_contact: Mapped[str | None] = mapped_column(db.String(80), nullable=True)


class ExhumationPermit(SubmissionMixin, db.Model):
    __tablename__ = "exhumation_permit"
    kind = SubmissionKind.EXHUMATION_PERMIT

    deceased_name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    deceased_date_of_death: Mapped[date | None] = mapped_column(nullable=True)
    deceased_date_of_burial: Mapped[date | None] = mapped_column(nullable=True)
    deceased_place_of_burial: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    requester_name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    requester_relation: Mapped[str | None] = mapped_column(db.String(60), nullable=True)
    requester_contact_number: Mapped[str | None] = mapped_column(db.String(40), nullable=True)
    requester_address: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    reason_for_exhumation: Mapped[str | None] = mapped_column(db.String(500), nullable=True)


class DeathCertificateRequest(SubmissionMixin, db.Model):
    __tablename__ = "death_certificate_request"
    kind = SubmissionKind.CERTIFICATE_REQUEST

    deceased_full_name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    deceased_date_of_death: Mapped[date] = mapped_column(nullable=False)
    deceased_place_of_death: Mapped[str] = mapped_column(db.String(255), nullable=False)
    requester_name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    requester_relation: Mapped[str] = mapped_column(db.String(60), nullable=False)
    requester_contact_number: Mapped[str] = mapped_column(db.String(40), nullable=False)
    requester_address: Mapped[str] = mapped_column(db.String(255), nullable=False)
    purpose: Mapped[str] = mapped_column(db.String(255), nullable=False)
    number_of_copies: Mapped[int] = mapped_column(nullable=False, default=1)


class AuditLog(db.Model):
    __tablename__ = "audit_log"
    __table_args__ = (Index("ix_audit_log_entity", "entity_type", "entity_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True, index=True)
    action: Mapped[str] = mapped_column(db.String(80), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(db.String(40), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(db.String(36), nullable=True)
    details: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False, index=True)

    user = relationship("User")


class PaymentTransaction(db.Model):
    __tablename__ = "payment_transaction"
    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", name="uq_payment_transaction_entity"),
        Index("ix_payment_transaction_confirmed_at", "confirmed_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False, index=True)
    transaction_type: Mapped[str] = mapped_column(db.String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(db.Numeric(10, 2), nullable=False)
    order_of_payment: Mapped[str] = mapped_column(db.String(40), nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(SAEnum(PaymentMethod, name="payment_method"), nullable=False)
    reference_number: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    status: Mapped[str] = mapped_column(db.String(20), nullable=False, default="CONFIRMED")
    confirmed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    confirmed_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    entity_type: Mapped[str] = mapped_column(db.String(40), nullable=False)
    entity_id: Mapped[str] = mapped_column(db.String(36), nullable=False)
    remarks: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")

    user = relationship("User", foreign_keys=[user_id])
    confirmed_by = relationship("User", foreign_keys=[confirmed_by_user_id])


DEMO_USERS: tuple[tuple[str, str, str, Role], ...] = (
    ("citizen@registry.local", "Maria Santos", "citizen123", Role.USER),
    ("citizen2@registry.local", "Jose Reyes", "citizen123", Role.USER),
    ("employee@registry.local", "Registry Clerk", "employee123", Role.EMPLOYEE),
    ("admin@registry.local", "Civil Registrar", "admin123", Role.ADMIN),
)


def seed_demo_data(session) -> None:
    for email, full_name, password, role in DEMO_USERS:
        session.add(
            User(
                email=email,
                full_name=full_name,
                password_hash=generate_password_hash(password),
                role=role,
            )
        )
    session.commit()
