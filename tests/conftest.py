import os
import tempfile

# Settings are read once at import time, so the environment is set first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_PROVISION"] = "false"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="bodyshop-uploads-")
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "admin"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.exc import SQLAlchemyError  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from bodyshop.database import get_db  # noqa: E402
from bodyshop.database_models import StaffSmsSetting  # noqa: E402
from bodyshop.provisioning import provision  # noqa: E402
from bodyshop.services.sms import GatewayResult, get_sms_gateway  # noqa: E402
from bodyshop.services.storage import FileStore, get_file_store  # noqa: E402
from main import app  # noqa: E402


class FakeGateway:
    """Records outgoing messages instead of calling Twilio."""

    def __init__(self, configured=True, fail=False):
        self.configured = configured
        self.fail = fail
        self.from_number = "+15550000000"
        self.sent = []

    def send(self, to, body):
        if self.fail:
            return GatewayResult(success=False, error="Gateway unavailable")
        self.sent.append((to, body))
        return GatewayResult(success=True, sid=f"SM{len(self.sent):04d}")


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    provision(bind=engine, session_factory=factory)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fail_writes(session_factory):
    """Makes any flush that adds or changes an instance of the given model raise."""
    listeners = []

    def fail_on(model, message="database is unavailable"):
        def before_flush(session, flush_context, instances):
            touched = list(session.new) + list(session.dirty)
            if any(isinstance(obj, model) for obj in touched):
                raise SQLAlchemyError(message)

        event.listen(session_factory, "before_flush", before_flush)
        listeners.append(before_flush)

    yield fail_on
    for listener in listeners:
        event.remove(session_factory, "before_flush", listener)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def file_store(tmp_path):
    return FileStore(tmp_path / "uploads")


@pytest.fixture
def client(session_factory, gateway, file_store):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sms_gateway] = lambda: gateway
    app.dependency_overrides[get_file_store] = lambda: file_store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def staff_client(client):
    response = client.post("/login", data={"username": "admin", "password": "admin"})
    assert response.status_code == 200
    return client


@pytest.fixture
def staff_recipient(db):
    setting = StaffSmsSetting(
        staff_name="Front Desk",
        phone_number="5559990000",
        notify_new_appointments=True,
        notify_urgent_ros=True,
    )
    db.add(setting)
    db.commit()
    return setting


def make_appointment(client, **overrides):
    data = {
        "customer_name": "Maria De La Cruz",
        "customer_phone": "(555) 123-4567",
        "service_type": "collision",
        "customer_email": "maria@example.com",
        "vehicle_info": "2019 Honda Civic",
        "damage_description": "Rear bumper dented",
        "appointment_date": "2024-03-01",
        "appointment_time": "10:00",
    }
    data.update(overrides)
    response = client.post("/appointments", data=data)
    assert response.status_code == 200, response.text
    return response.json()["appointment"]


def repair_order_payload(**overrides):
    payload = {
        "customer_first_name": "John",
        "customer_last_name": "Smith",
        "customer_phone": "(555) 222-3333",
        "customer_email": "john@example.com",
        "vehicle_year": 2020,
        "vehicle_make": "Toyota",
        "vehicle_model": "Camry",
        "vehicle_vin": "4T1B11HK5LU123456",
        "damage_description": "Front end collision",
    }
    payload.update(overrides)
    return payload
