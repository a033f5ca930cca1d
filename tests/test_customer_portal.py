from conftest import make_appointment

PROFILE = {
    "auth_user_id": "auth0|abc123",
    "email": "Maria@Example.com",
    "full_name": "Maria De La Cruz",
    "phone": "(555) 123-4567",
}


def test_register(client):
    response = client.post("/customer/register", json=PROFILE)

    assert response.status_code == 201
    customer = response.json()["customer"]
    assert customer["email"] == "maria@example.com"
    assert customer["phone"] == "5551234567"
    assert customer["is_active"] is True


def test_register_twice_is_a_conflict(client):
    client.post("/customer/register", json=PROFILE)

    response = client.post("/customer/register", json=PROFILE)

    assert response.status_code == 409
    assert response.json()["error"] == "Customer profile already exists"


def test_register_requires_every_field(client):
    response = client.post("/customer/register", json={"auth_user_id": "auth0|x"})

    assert response.status_code == 400
    assert response.json()["fields"] == ["email", "full_name", "phone"]


def test_appointments_match_account_or_phone(client):
    account = client.post("/customer/register", json=PROFILE).json()["customer"]
    by_phone = make_appointment(client)
    by_account = make_appointment(client, customer_phone="5550001111", customer_user_id=str(account["id"]))
    make_appointment(client, customer_phone="5559998888")

    response = client.get("/customer/appointments", params={"auth_user_id": "auth0|abc123"})

    assert response.status_code == 200
    body = response.json()
    assert body["customer"]["id"] == account["id"]
    assert sorted(a["id"] for a in body["appointments"]) == sorted([by_phone["id"], by_account["id"]])


def test_unknown_account(client):
    response = client.get("/customer/appointments", params={"auth_user_id": "nobody"})

    assert response.status_code == 404


def test_status_endpoint(client):
    assert client.get("/status").json()["status"] == "ok"
