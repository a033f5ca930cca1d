import httpx
import pytest
from jinja2.exceptions import SecurityError

from bodyshop.database_models import CustomerSmsPreference, SmsLog, SmsTemplate
from bodyshop.services import sms
from bodyshop.services.sms import TwilioGateway, format_e164, render_template
from conftest import FakeGateway


@pytest.mark.parametrize("raw, expected", [
    ("(555) 123-4567", "+15551234567"),
    ("1-555-123-4567", "+15551234567"),
    ("+44 20 7946 0958", "+44 20 7946 0958"),
    ("12345", "+112345"),
])
def test_format_e164(raw, expected):
    assert format_e164(raw) == expected


def test_manual_send_is_logged(client, gateway, db):
    response = client.post("/sms/send", json={"to": "555-123-4567", "message": "Hello", "sentBy": "Dana"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "SMS sent successfully", "twilioSid": "SM0001"}
    log = db.query(SmsLog).one()
    assert (log.status, log.message_type, log.sent_by, log.twilio_sid) == ("sent", "manual", "Dana", "SM0001")


def test_send_requires_to_and_message(client):
    response = client.post("/sms/send", json={"message": "Hello"})

    assert response.status_code == 400
    assert response.json()["fields"] == ["to"]


def test_opted_out_customer_is_not_texted(client, gateway, db):
    db.add(CustomerSmsPreference(phone_number="5551234567", opted_in=False))
    db.commit()

    response = client.post("/sms/send", json={
        "to": "(555) 123-4567", "message": "Your car is ready", "messageType": "customer_update",
    })

    assert response.status_code == 400
    assert response.json()["error"] == "Customer has opted out of SMS notifications"
    assert gateway.sent == []
    log = db.query(SmsLog).one()
    assert (log.status, log.error_message) == ("failed", "Customer opted out")


def test_opt_out_does_not_block_staff_messages(client, gateway, db):
    db.add(CustomerSmsPreference(phone_number="5551234567", opted_in=False))
    db.commit()

    response = client.post("/sms/send", json={
        "to": "5551234567", "message": "Shift change", "messageType": "staff_notification",
    })

    assert response.status_code == 200
    assert len(gateway.sent) == 1


def test_unconfigured_gateway(client):
    from main import app

    app.dependency_overrides[sms.get_sms_gateway] = lambda: FakeGateway(configured=False)
    response = client.post("/sms/send", json={"to": "5551234567", "message": "Hello"})

    assert response.status_code == 500
    assert response.json()["error"].startswith("SMS service not configured")


def test_gateway_failure_is_logged(client, db):
    from main import app

    app.dependency_overrides[sms.get_sms_gateway] = lambda: FakeGateway(fail=True)
    response = client.post("/sms/send", json={"to": "5551234567", "message": "Hello"})

    assert response.status_code == 500
    assert response.json()["error"] == "Gateway unavailable"
    log = db.query(SmsLog).one()
    assert (log.status, log.error_message) == ("failed", "Gateway unavailable")


def test_logs_filtered_by_related_ids(client):
    client.post("/sms/send", json={"to": "5551234567", "message": "a", "relatedAppointmentId": 1})
    client.post("/sms/send", json={"to": "5551234567", "message": "b", "relatedRoId": 7})
    client.post("/sms/send", json={"to": "5551234567", "message": "c", "relatedRoId": 7})

    by_ro = client.get("/sms/logs", params={"ro_id": 7}).json()["logs"]
    by_appointment = client.get("/sms/logs", params={"appointment_id": 1}).json()["logs"]
    limited = client.get("/sms/logs", params={"limit": 1}).json()["logs"]

    assert [log["message_body"] for log in by_ro] == ["c", "b"]
    assert [log["message_body"] for log in by_appointment] == ["a"]
    assert len(limited) == 1


def test_templates_are_seeded_and_blank_values_render_as_na(db):
    assert db.query(SmsTemplate).count() == len(sms.DEFAULT_TEMPLATES)

    message = render_template(db, "ro_status_parts_ordered", {"vehicle_info": "", "ro_number": "RO-00003"})

    assert message == "Parts have been ordered for your N/A (RO-00003)."


def test_inactive_template_renders_nothing(db):
    template = db.query(SmsTemplate).filter(SmsTemplate.template_name == "ro_status_completed").one()
    template.is_active = False
    db.commit()

    assert render_template(db, "ro_status_completed", {"ro_number": "RO-00001"}) is None


def test_twilio_gateway_posts_form_data(monkeypatch):
    captured = {}

    def fake_post(url, data=None, auth=None, timeout=None):
        captured.update(url=url, data=data, auth=auth, timeout=timeout)
        return httpx.Response(201, json={"sid": "SM123"})

    monkeypatch.setattr(sms.httpx, "post", fake_post)
    gateway = TwilioGateway("AC1", "token", "5550000000", timeout=3.0)

    result = gateway.send("555-123-4567", "Hi")

    assert result.success is True
    assert result.sid == "SM123"
    assert captured["url"] == "https://api.twilio.com/2010-04-01/Accounts/AC1/Messages.json"
    assert captured["data"] == {"To": "+15551234567", "From": "+15550000000", "Body": "Hi"}
    assert captured["auth"] == ("AC1", "token")


def test_twilio_gateway_reports_api_errors(monkeypatch):
    monkeypatch.setattr(
        sms.httpx, "post",
        lambda *args, **kwargs: httpx.Response(400, json={"message": "Invalid 'To' number"}),
    )
    gateway = TwilioGateway("AC1", "token", "5550000000")

    result = gateway.send("123", "Hi")

    assert result.success is False
    assert result.error == "Invalid 'To' number"


def test_twilio_gateway_is_unconfigured_without_credentials():
    assert TwilioGateway("", "", "").configured is False


def test_templates_cannot_reach_python_internals(db):
    template = db.query(SmsTemplate).filter(SmsTemplate.template_name == "ro_status_completed").one()
    template.message_template = "{{ ro_number.__class__.__mro__ }}"
    db.commit()

    with pytest.raises(SecurityError):
        render_template(db, "ro_status_completed", {"ro_number": "RO-00001"})
