from conftest import make_appointment


def test_login_and_logout(client):
    bad = client.post("/login", data={"username": "admin", "password": "wrong"})
    assert bad.status_code == 401
    assert bad.json()["error"] == "Invalid username or password"

    good = client.post("/login", data={"username": "admin", "password": "admin"})
    assert good.status_code == 200
    assert good.json()["user"]["username"] == "admin"
    assert "password_hash" not in good.json()["user"]
    assert client.get("/staff/appointments").status_code == 200

    client.post("/logout")
    assert client.get("/staff/appointments").status_code == 401


def test_dashboard_requires_login(client):
    response = client.get("/staff/appointments")

    assert response.status_code == 401
    assert response.json()["error"] == "Staff login required"


def test_dashboard_lists_active_or_archived(staff_client):
    keep = make_appointment(staff_client)
    gone = make_appointment(staff_client, customer_phone="5550009999")
    staff_client.post("/appointments/archive", json={"appointment_id": gone["id"]})

    active = staff_client.get("/staff/appointments").json()["appointments"]
    archived = staff_client.get("/staff/appointments", params={"archived": "true"}).json()["appointments"]

    assert [a["id"] for a in active] == [keep["id"]]
    assert [a["id"] for a in archived] == [gone["id"]]
    assert archived[0]["archived_by"] == "admin"


def test_status_change(staff_client):
    appointment = make_appointment(staff_client)

    response = staff_client.patch(f"/staff/appointments/{appointment['id']}/status", json={"status": "confirmed"})

    assert response.status_code == 200
    assert response.json()["appointment"]["status"] == "confirmed"


def test_invalid_status_is_a_field_error(staff_client):
    appointment = make_appointment(staff_client)

    response = staff_client.patch(f"/staff/appointments/{appointment['id']}/status", json={"status": "lost"})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid value for field: status"


def test_repair_case_is_created_then_updated(staff_client):
    appointment_id = make_appointment(staff_client)["id"]
    url = f"/staff/appointments/{appointment_id}/repair-case"

    first = staff_client.put(url, json={"insurance_carrier": "Acme", "vehicle_vin": "VIN1"}).json()["repair_case"]
    second = staff_client.put(url, json={"vehicle_vin": "VIN2"}).json()["repair_case"]

    assert first["id"] == second["id"]
    assert second["insurance_carrier"] == "Acme"
    assert second["vehicle_vin"] == "VIN2"


def test_repair_case_for_unknown_appointment(staff_client):
    assert staff_client.put("/staff/appointments/999/repair-case", json={}).status_code == 404
