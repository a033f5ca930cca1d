from pathlib import Path

from bodyshop.config import settings
from bodyshop.database_models import AppointmentFile, SmsLog
from bodyshop.services.storage import sanitize_filename
from conftest import make_appointment


# --- INTAKE ---

def test_create_appointment_starts_pending(client):
    appointment = make_appointment(client)

    assert appointment["status"] == "pending"
    assert appointment["customer_phone"] == "5551234567"
    assert appointment["archived"] is False


def test_missing_required_fields(client):
    response = client.post("/appointments", data={"customer_name": "Ann Lee"})

    assert response.status_code == 400
    assert response.json()["fields"] == ["customer_phone", "service_type"]


def test_phone_must_have_ten_digits(client):
    response = client.post("/appointments", data={
        "customer_name": "Ann Lee", "customer_phone": "555-1234", "service_type": "paint",
    })

    assert response.status_code == 400
    assert response.json()["error"] == "Phone number must be 10 digits"


def test_intake_with_files(client, file_store):
    response = client.post(
        "/appointments",
        data={"customer_name": "Ann Lee", "customer_phone": "5551234567", "service_type": "paint"},
        files=[
            ("files", ("Front Door.JPG", b"photo-bytes", "image/jpeg")),
            ("files", ("estimate.pdf", b"%PDF-1.4", "application/pdf")),
        ],
    )

    assert response.status_code == 200
    body = response.json()
    assert body["file_errors"] == []
    names = sorted(f["file_name"] for f in body["uploaded_files"])
    assert names == ["Front Door.JPG", "estimate.pdf"]
    for f in body["uploaded_files"]:
        assert f["public_url"].startswith("/uploads/appointments/")
        assert (Path(file_store.root) / f["storage_path"]).exists()


def test_new_appointment_notifies_staff(client, gateway, staff_recipient, db):
    appointment = make_appointment(client)

    assert len(gateway.sent) == 1
    to, body = gateway.sent[0]
    assert to == "5559990000"
    assert "Maria De La Cruz" in body
    assert "2019 Honda Civic" in body
    log = db.query(SmsLog).one()
    assert (log.message_type, log.related_appointment_id) == ("staff_notification", appointment["id"])


def test_no_staff_recipients_is_not_an_error(client, gateway):
    response = client.post("/appointments", data={
        "customer_name": "Ann Lee", "customer_phone": "5551234567", "service_type": "paint",
    })

    assert response.json()["side_effects"]["failed"] == 0
    assert gateway.sent == []


# --- LOOKUP ---

def test_lookup_by_phone_in_any_format(client):
    make_appointment(client, customer_phone="555-123-4567")
    make_appointment(client, customer_phone="5559998888")

    response = client.get("/appointments", params={"phone": "(555) 123 4567"})

    assert response.status_code == 200
    appointments = response.json()["appointments"]
    assert len(appointments) == 1
    assert appointments[0]["customer_phone"] == "5551234567"
    assert appointments[0]["files"] == []


def test_lookup_requires_phone(client):
    response = client.get("/appointments")

    assert response.status_code == 400
    assert response.json()["fields"] == ["phone"]


# --- UPLOAD ---

def test_upload_to_existing_appointment(client, db):
    appointment = make_appointment(client)

    response = client.post(
        "/appointments/upload",
        data={"appointment_id": str(appointment["id"])},
        files=[("files", ("dent.png", b"png-bytes", "image/png"))],
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["errors"] == []
    assert db.query(AppointmentFile).filter(AppointmentFile.appointment_id == appointment["id"]).count() == 1

    files = client.get("/appointments", params={"phone": "5551234567"}).json()["appointments"][0]["files"]
    assert [f["file_name"] for f in files] == ["dent.png"]


def test_oversized_file_is_rejected_per_file(client, monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 10)
    appointment = make_appointment(client)

    response = client.post(
        "/appointments/upload",
        data={"appointment_id": str(appointment["id"])},
        files=[
            ("files", ("small.txt", b"tiny", "text/plain")),
            ("files", ("large.txt", b"x" * 100, "text/plain")),
        ],
    )

    body = response.json()
    assert [f["file_name"] for f in body["uploaded_files"]] == ["small.txt"]
    assert len(body["errors"]) == 1
    assert body["errors"][0].startswith("large.txt: File too large")


def test_upload_requires_appointment_id(client):
    response = client.post("/appointments/upload", files=[("files", ("a.txt", b"a", "text/plain"))])

    assert response.status_code == 400
    assert response.json()["fields"] == ["appointment_id"]


def test_upload_to_unknown_appointment(client):
    response = client.post(
        "/appointments/upload",
        data={"appointment_id": "999"},
        files=[("files", ("a.txt", b"a", "text/plain"))],
    )

    assert response.status_code == 404


def test_sanitize_filename():
    assert sanitize_filename("My Photo (1).JPG") == "my-photo-1-.jpg"
    assert sanitize_filename("../../etc/passwd") == "passwd"
    assert sanitize_filename("") == "file"


# --- ARCHIVE / RESTORE ---

def test_archive_and_restore_appointment(client):
    appointment = make_appointment(client)

    archived = client.post("/appointments/archive", json={"appointment_id": appointment["id"]})
    assert archived.status_code == 200
    assert archived.json()["appointment"]["archived"] is True
    assert archived.json()["appointment"]["archived_by"] == "Staff"

    restored = client.put("/appointments/archive", json={"appointment_id": appointment["id"]}).json()
    assert restored["appointment"]["archived"] is False
    assert restored["appointment"]["archived_at"] is None
    assert restored["appointment"]["archived_by"] is None


def test_archive_unknown_appointment(client):
    response = client.post("/appointments/archive", json={"appointment_id": 999})

    assert response.status_code == 404
    assert response.json()["error"] == "Appointment not found"
