from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from civil_registry import create_app
from civil_registry.cemetery.workflow import Workflow
from civil_registry.core.config import Config
from civil_registry.core.extensions import db
from civil_registry.core.models import Role, SubmissionKind, User, seed_demo_data
from civil_registry.core.permissions import Actor


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"


INTAKE_PAYLOADS = {
    SubmissionKind.DEATH_REGISTRATION: {
        "deceased_first_name": "Juan",
        "deceased_last_name": "Dela Cruz",
        "deceased_date_of_death": "2026-09-30",
        "informant_name": "Maria Santos",
        "informant_relation": "Daughter",
        "registration_type": "REGULAR",
        "documents": {
            "municipal_form_103": "death-registrations/1/municipal_form_103.pdf",
            "informant_valid_id": "death-registrations/1/informant_valid_id.jpg",
        },
    },
    SubmissionKind.BURIAL_PERMIT: {
        "deceased_name": "Juan Dela Cruz",
        "requester_name": "Maria Santos",
        "burial_type": "NICHE",
        "niche_type": "ADULT",
        "documents": {
            "death_certificate": "burial-permits/1/death_certificate.pdf",
            "burial_form": "burial-permits/1/burial_form.pdf",
            "valid_id": "burial-permits/1/valid_id.jpg",
        },
    },
    SubmissionKind.CREMATION_PERMIT: {
        "deceased_name": "Juan Dela Cruz",
        "requester_name": "Maria Santos",
        "funeral_home_name": "St. Peter Chapels",
        "documents": {
            "death_certificate": "cremation-permits/1/death_certificate.pdf",
            "cremation_form": "cremation-permits/1/cremation_form.pdf",
            "valid_id": "cremation-permits/1/valid_id.jpg",
        },
    },
    SubmissionKind.EXHUMATION_PERMIT: {
        "deceased_name": "Juan Dela Cruz",
        "requester_name": "Maria Santos",
        "reason_for_exhumation": "Transfer to family mausoleum",
        "documents": {
            "exhumation_letter": "exhumation-permits/1/exhumation_letter.pdf",
            "death_certificate": "exhumation-permits/1/death_certificate.pdf",
            "valid_id": "exhumation-permits/1/valid_id.jpg",
        },
    },
    SubmissionKind.CERTIFICATE_REQUEST: {
        "deceased_full_name": "Juan Dela Cruz",
        "deceased_date_of_death": "2026-09-30",
        "deceased_place_of_death": "Municipal Hospital",
        "requester_name": "Maria Santos",
        "requester_relation": "Daughter",
        "requester_contact_number": "09171234567",
        "requester_address": "Poblacion",
        "purpose": "Insurance claim",
        "number_of_copies": "3",
        "documents": {"valid_id": "death-certificate-requests/1/valid_id.jpg"},
    },
}


@pytest.fixture
def app(tmp_path):
    app = create_app(TestConfig)
    app.config["DOCUMENT_STORAGE_DIR"] = str(tmp_path / "storage")
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _actor(email: str) -> Actor:
    user = User.query.filter_by(email=email).first()
    return Actor(user_id=user.id, role=Role(user.role))


@pytest.fixture
def actors(app):
    return {
        "citizen": _actor("citizen@registry.local"),
        "citizen2": _actor("citizen2@registry.local"),
        "employee": _actor("employee@registry.local"),
        "admin": _actor("admin@registry.local"),
    }


@pytest.fixture
def workflow(app):
    return Workflow.for_session(db.session)


@pytest.fixture
def intake_payload():
    def _payload(kind: SubmissionKind, **overrides):
        payload = {**INTAKE_PAYLOADS[kind], **overrides}
        payload["documents"] = dict(payload.get("documents") or {})
        return payload

    return _payload


def _login_as(client, email: str, password: str):
    def _login():
        return client.post("/auth/login", data={"email": email, "password": password})

    return _login


@pytest.fixture
def login_citizen(client):
    return _login_as(client, "citizen@registry.local", "citizen123")


@pytest.fixture
def login_citizen2(client):
    return _login_as(client, "citizen2@registry.local", "citizen123")


@pytest.fixture
def login_employee(client):
    return _login_as(client, "employee@registry.local", "employee123")


@pytest.fixture
def login_admin(client):
    return _login_as(client, "admin@registry.local", "admin123")
