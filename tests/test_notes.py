from conftest import make_appointment


def _add(client, appointment_id, text="Customer called back", staff="Dana"):
    return client.post("/appointments/notes", json={
        "appointment_id": appointment_id, "note_text": text, "staff_name": staff,
    })


def test_note_lifecycle(client):
    appointment_id = make_appointment(client)["id"]

    created = _add(client, appointment_id, text="  Customer called back  ")
    assert created.status_code == 201
    note = created.json()["note"]
    assert note["note_text"] == "Customer called back"
    assert note["staff_name"] == "Dana"

    listed = client.get("/appointments/notes", params={"appointment_id": appointment_id}).json()["notes"]
    assert [n["id"] for n in listed] == [note["id"]]

    updated = client.put("/appointments/notes", json={"note_id": note["id"], "note_text": "Left voicemail"})
    assert updated.status_code == 200
    assert updated.json()["note"]["note_text"] == "Left voicemail"

    deleted = client.delete("/appointments/notes", params={"note_id": note["id"]})
    assert deleted.status_code == 200
    assert client.get("/appointments/notes", params={"appointment_id": appointment_id}).json()["notes"] == []


def test_blank_note_is_rejected(client):
    appointment_id = make_appointment(client)["id"]

    response = _add(client, appointment_id, text="   ")

    assert response.status_code == 400
    assert response.json()["error"] == "Note text cannot be empty"


def test_missing_fields_are_named(client):
    response = client.post("/appointments/notes", json={"note_text": "hello"})

    assert response.status_code == 400
    assert response.json()["fields"] == ["appointment_id", "staff_name"]


def test_note_on_unknown_appointment(client):
    response = _add(client, 999)

    assert response.status_code == 404


def test_list_requires_appointment_id(client):
    assert client.get("/appointments/notes").status_code == 400


def test_update_and_delete_unknown_note(client):
    assert client.put("/appointments/notes", json={"note_id": 999, "note_text": "x"}).status_code == 404
    assert client.delete("/appointments/notes", params={"note_id": 999}).status_code == 404
    assert client.delete("/appointments/notes").status_code == 400
