"""civil registry submissions, payments and audit log

Revision ID: 4f8a2c6d1e90
Revises:
Create Date: 2026-10-19 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "4f8a2c6d1e90"
down_revision = None
branch_labels = None
depends_on = None

ENUM_TYPES = {
    "user_role": ("USER", "EMPLOYEE", "ADMIN"),
    "submission_status": (
        "PENDING_VERIFICATION",
        "APPROVED_FOR_PAYMENT",
        "RETURNED_FOR_CORRECTION",
        "REJECTED",
        "PAYMENT_SUBMITTED",
        "PAYMENT_CONFIRMED",
        "READY_FOR_PICKUP",
        "COMPLETED",
    ),
    "payment_proof_type": ("FILE", "RECEIPT"),
    "payment_method": ("CASH", "ONLINE"),
    "registration_type": ("REGULAR", "DELAYED"),
    "burial_type": ("BURIAL", "ENTRANCE", "NICHE"),
    "niche_type": ("CHILD", "ADULT"),
}

SUBMISSION_TABLES = (
    "death_registration",
    "burial_permit",
    "cremation_permit",
    "exhumation_permit",
    "death_certificate_request",
)


def _enum(name: str):
    # Types are shared between tables; they are created once in upgrade().
    return postgresql.ENUM(*ENUM_TYPES[name], name=name, create_type=False)


def _submission_columns() -> list:
    return [
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("status", _enum("submission_status"), nullable=False),
        sa.Column("fee", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("order_of_payment", sa.String(length=40), nullable=True),
        sa.Column("payment_proof_type", _enum("payment_proof_type"), nullable=True),
        sa.Column("payment_proof", sa.String(length=255), nullable=True),
        sa.Column("payment_submitted_at", sa.DateTime(), nullable=True),
        sa.Column("payment_confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("remarks", sa.String(length=500), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("documents", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("owner_user_id", sa.Integer(), nullable=False),
        sa.Column("processed_by_user_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["owner_user_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["processed_by_user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_of_payment"),
    ]


def _requester_columns(required: bool = False) -> list:
    return [
        sa.Column("requester_name", sa.String(length=120), nullable=False),
        sa.Column("requester_relation", sa.String(length=60), nullable=not required),
        sa.Column("requester_contact_number", sa.String(length=40), nullable=not required),
        sa.Column("requester_address", sa.String(length=255), nullable=not required),
    ]


def upgrade():
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name, values in ENUM_TYPES.items():
            postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "user_account",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=120), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", _enum("user_role"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "death_registration",
        *_submission_columns(),
        sa.Column("deceased_first_name", sa.String(length=80), nullable=False),
        sa.Column("deceased_middle_name", sa.String(length=80), nullable=True),
        sa.Column("deceased_last_name", sa.String(length=80), nullable=False),
        sa.Column("deceased_date_of_birth", sa.Date(), nullable=True),
        sa.Column("deceased_date_of_death", sa.Date(), nullable=True),
        sa.Column("deceased_place_of_death", sa.String(length=255), nullable=True),
        sa.Column("deceased_cause_of_death", sa.String(length=255), nullable=True),
        sa.Column("deceased_gender", sa.String(length=20), nullable=True),
        sa.Column("informant_name", sa.String(length=120), nullable=False),
        sa.Column("informant_relation", sa.String(length=60), nullable=True),
        sa.Column("informant_contact_number", sa.String(length=40), nullable=True),
        sa.Column("informant_address", sa.String(length=255), nullable=True),
        sa.Column("registration_type", _enum("registration_type"), nullable=False),
        sa.Column("processing_deadline", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "burial_permit",
        *_submission_columns(),
        sa.Column("deceased_name", sa.String(length=160), nullable=False),
        sa.Column("deceased_date_of_death", sa.Date(), nullable=True),
        *_requester_columns(),
        sa.Column("burial_type", _enum("burial_type"), nullable=False),
        sa.Column("niche_type", _enum("niche_type"), nullable=True),
        sa.Column("cemetery_location", sa.String(length=255), nullable=True),
        sa.Column("is_from_another_lgu", sa.Boolean(), nullable=False),
    )

    op.create_table(
        "cremation_permit",
        *_submission_columns(),
        sa.Column("deceased_name", sa.String(length=160), nullable=False),
        sa.Column("deceased_date_of_death", sa.Date(), nullable=True),
        *_requester_columns(),
        sa.Column("funeral_home_name", sa.String(length=160), nullable=True),
        sa.Column("funeral_home_contact", sa.String(length=80), nullable=True),
    )

    op.create_table(
        "exhumation_permit",
        *_submission_columns(),
        sa.Column("deceased_name", sa.String(length=160), nullable=False),
        sa.Column("deceased_date_of_death", sa.Date(), nullable=True),
        sa.Column("deceased_date_of_burial", sa.Date(), nullable=True),
        sa.Column("deceased_place_of_burial", sa.String(length=255), nullable=True),
        *_requester_columns(),
        sa.Column("reason_for_exhumation", sa.String(length=500), nullable=True),
    )

    op.create_table(
        "death_certificate_request",
        *_submission_columns(),
        sa.Column("deceased_full_name", sa.String(length=160), nullable=False),
        sa.Column("deceased_date_of_death", sa.Date(), nullable=False),
        sa.Column("deceased_place_of_death", sa.String(length=255), nullable=False),
        *_requester_columns(required=True),
        sa.Column("purpose", sa.String(length=255), nullable=False),
        sa.Column("number_of_copies", sa.Integer(), nullable=False),
    )

    for table in SUBMISSION_TABLES:
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.create_index(batch_op.f(f"ix_{table}_status"), ["status"], unique=False)
            batch_op.create_index(batch_op.f(f"ix_{table}_owner_user_id"), ["owner_user_id"], unique=False)

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=40), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("audit_log", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_audit_log_user_id"), ["user_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_audit_log_action"), ["action"], unique=False)
        batch_op.create_index(batch_op.f("ix_audit_log_created_at"), ["created_at"], unique=False)
        batch_op.create_index("ix_audit_log_entity", ["entity_type", "entity_id"], unique=False)

    op.create_table(
        "payment_transaction",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(length=50), nullable=False),
        sa.Column("amount", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("order_of_payment", sa.String(length=40), nullable=False),
        sa.Column("payment_method", _enum("payment_method"), nullable=False),
        sa.Column("reference_number", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("confirmed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(), nullable=False),
        sa.Column("entity_type", sa.String(length=40), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("remarks", sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(["confirmed_by_user_id"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("entity_type", "entity_id", name="uq_payment_transaction_entity"),
    )
    with op.batch_alter_table("payment_transaction", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_payment_transaction_user_id"), ["user_id"], unique=False)
        batch_op.create_index("ix_payment_transaction_confirmed_at", ["confirmed_at"], unique=False)


def downgrade():
    with op.batch_alter_table("payment_transaction", schema=None) as batch_op:
        batch_op.drop_index("ix_payment_transaction_confirmed_at")
        batch_op.drop_index(batch_op.f("ix_payment_transaction_user_id"))
    op.drop_table("payment_transaction")

    with op.batch_alter_table("audit_log", schema=None) as batch_op:
        batch_op.drop_index("ix_audit_log_entity")
        batch_op.drop_index(batch_op.f("ix_audit_log_created_at"))
        batch_op.drop_index(batch_op.f("ix_audit_log_action"))
        batch_op.drop_index(batch_op.f("ix_audit_log_user_id"))
    op.drop_table("audit_log")

    for table in reversed(SUBMISSION_TABLES):
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.drop_index(batch_op.f(f"ix_{table}_owner_user_id"))
            batch_op.drop_index(batch_op.f(f"ix_{table}_status"))
        op.drop_table(table)

    op.drop_table("user_account")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name, values in ENUM_TYPES.items():
            postgresql.ENUM(*values, name=name).drop(bind, checkfirst=True)
