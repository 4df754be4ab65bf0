# tests/conftest.py
import os

# Settings are read when healthcomm is first imported, so the environment goes first
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-at-least-32-characters"
os.environ["ENVIRONMENT"] = "testing"
os.environ["MESSAGING_MODE"] = "demo"
os.environ["TOKEN_FORMAT"] = "signed"
os.environ["ENV_FILE"] = "/nonexistent/healthcomm-test.env"
os.environ["ADMIN_DEFAULT_PASSWORD"] = ""
for _name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER", "PUBLIC_BASE_URL"):
    os.environ[_name] = ""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from healthcomm import models
from healthcomm.config import get_settings
from healthcomm.database import SessionLocal, create_tables, drop_tables
from healthcomm.main import app
from healthcomm.security import get_password_hash
from healthcomm.services.messaging import MessagingDispatcher, get_dispatcher
from healthcomm.services.transport import DeliveryResult, MessagingConfig

ADMIN_PASSWORD = "admin-password-123"
USER_PASSWORD = "user-password-123"


class FakeTransport:
    """Records every send and answers with a scripted result."""

    def __init__(self, success=True, message_id="SM0000000001", error=None):
        self.success = success
        self.message_id = message_id
        self.error = error
        self.calls = []

    def send(self, comm_type, to, content):
        self.calls.append({"type": comm_type, "to": to, "content": content})
        message_id = self.message_id
        if message_id and len(self.calls) > 1:
            message_id = f"{message_id}-{len(self.calls)}"
        return DeliveryResult(success=self.success, message_id=message_id, error=self.error)


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def db():
    create_tables()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        drop_tables()


def make_user(db, username, password, role=models.UserRole.user):
    user = models.User(username=username, password_hash=get_password_hash(password), role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_patient(db, **overrides):
    data = {
        "first_name": "Jane",
        "last_name": "Doe",
        "phone_number": "+15551234567",
        "email": "jane.doe@example.com",
    }
    data.update(overrides)
    patient = models.Patient(**data)
    db.add(patient)
    db.commit()
    db.refresh(patient)
    return patient


def make_appointment(db, patient, **overrides):
    data = {
        "patient_id": patient.id,
        "title": "Annual Checkup",
        "description": "Regular health checkup",
        "appointment_date": datetime(2025, 6, 23, 14, 30),
    }
    data.update(overrides)
    appointment = models.Appointment(**data)
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment


@pytest.fixture
def admin_user(db):
    return make_user(db, "admin", ADMIN_PASSWORD, models.UserRole.admin)


@pytest.fixture
def regular_user(db):
    return make_user(db, "staff", USER_PASSWORD, models.UserRole.user)


@pytest.fixture
def patient(db):
    return make_patient(db)


@pytest.fixture
def client(db):
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _login(client, username, password):
    response = client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return response


@pytest.fixture
def admin_client(client, admin_user):
    _login(client, "admin", ADMIN_PASSWORD)
    return client


@pytest.fixture
def user_client(client, regular_user):
    _login(client, "staff", USER_PASSWORD)
    return client


@pytest.fixture
def fake_transport():
    transport = FakeTransport()
    config = MessagingConfig(mode="demo")
    app.dependency_overrides[get_dispatcher] = lambda: MessagingDispatcher(
        config,
        transport=transport,
        clinic_defaults={"clinicName": "HealthComm Clinic", "providerName": "Dr. Smith"},
    )
    yield transport
    app.dependency_overrides.pop(get_dispatcher, None)
