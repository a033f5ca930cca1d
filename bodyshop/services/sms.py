"""
Outbound SMS: gateway client, opt-out check, delivery log, and the templated
notifications sent to staff and customers.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from jinja2.sandbox import SandboxedEnvironment
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bodyshop.config import settings
from bodyshop.database_models import (
    Appointment,
    CustomerSmsPreference,
    RepairOrder,
    SmsLog,
    SmsTemplate,
    StaffSmsSetting,
)
from bodyshop.errors import BodyshopError, UpstreamError, ValidationFailed
from bodyshop.models.sms import SendSmsRequest, SmsMessageType
from bodyshop.services.crm import normalize_phone

logger = logging.getLogger(__name__)

# Customer status texts go out only for these stages
NOTIFY_STATUSES = ("estimate_approval", "parts_ordered", "in_repair", "ready_pickup", "completed")

DEFAULT_TEMPLATES = {
    "new_appointment_staff": (
        "New appointment: {{ customer_name }} ({{ customer_phone }}) - {{ service_type }} "
        "on {{ appointment_date }} at {{ appointment_time }}. Vehicle: {{ vehicle_info }}"
    ),
    "urgent_ro_staff": (
        "URGENT {{ ro_number }}: {{ vehicle_info }} for {{ customer_name }}. {{ damage_description }}"
    ),
    "ro_status_estimate_approval": (
        "Your estimate for your {{ vehicle_info }} ({{ ro_number }}) is ready: ${{ estimate_amount }}. "
        "Please call us to approve it."
    ),
    "ro_status_parts_ordered": "Parts have been ordered for your {{ vehicle_info }} ({{ ro_number }}).",
    "ro_status_in_repair": (
        "Repairs have started on your {{ vehicle_info }} ({{ ro_number }}). "
        "Estimated completion: {{ estimated_completion }}."
    ),
    "ro_status_ready_pickup": "Good news! Your {{ vehicle_info }} ({{ ro_number }}) is ready for pickup.",
    "ro_status_completed": "Repair order {{ ro_number }} is complete. Thank you for choosing us!",
}

# Templates are editable rows, so they render sandboxed
_templates = SandboxedEnvironment(autoescape=False)


# --- GATEWAY ---

@dataclass
class GatewayResult:
    success: bool
    sid: Optional[str] = None
    error: Optional[str] = None


class TwilioGateway:
    """Sends messages through the Twilio REST API."""

    def __init__(self, account_sid: str, auth_token: str, from_number: str,
                 api_url: str = "https://api.twilio.com/2010-04-01", timeout: float = 10.0):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def send(self, to: str, body: str) -> GatewayResult:
        url = f"{self.api_url}/Accounts/{self.account_sid}/Messages.json"
        data = {"To": format_e164(to), "From": format_e164(self.from_number), "Body": body}
        try:
            response = httpx.post(
                url,
                data=data,
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout,
            )
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Twilio API error: %s", e)
            return GatewayResult(success=False, error=str(e) or "Failed to send SMS")

        if response.status_code >= 400:
            return GatewayResult(success=False, error=payload.get("message") or "Failed to send SMS")
        return GatewayResult(success=True, sid=payload.get("sid"))


def get_sms_gateway() -> TwilioGateway:
    return TwilioGateway(
        account_sid=settings.TWILIO_ACCOUNT_SID,
        auth_token=settings.TWILIO_AUTH_TOKEN,
        from_number=settings.TWILIO_PHONE_NUMBER,
        api_url=settings.TWILIO_API_URL,
        timeout=settings.SMS_TIMEOUT_SECONDS,
    )


def format_e164(phone: str) -> str:
    """US-centric E.164: 10 digits get +1, 11 digits starting with 1 get +."""
    cleaned = normalize_phone(phone)
    if len(cleaned) == 10:
        return f"+1{cleaned}"
    if len(cleaned) == 11 and cleaned.startswith("1"):
        return f"+{cleaned}"
    if phone.startswith("+"):
        return phone
    return f"+1{cleaned}"


# --- SEND + LOG ---

def is_opted_in(db: Session, phone: str) -> bool:
    """Customers without a preference row are opted in. Lookup errors count as opted in."""
    try:
        preference = (
            db.query(CustomerSmsPreference)
            .filter(CustomerSmsPreference.phone_number == normalize_phone(phone))
            .first()
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("SMS opt-out lookup failed for %s: %s", phone, e)
        return True
    return preference.opted_in if preference else True


def log_sms(db: Session, gateway: TwilioGateway, request: SendSmsRequest, status: str,
            sid: Optional[str] = None, error: Optional[str] = None) -> None:
    try:
        db.add(SmsLog(
            to_phone=request.to,
            from_phone=gateway.from_number,
            message_body=request.message,
            message_type=request.message_type.value,
            status=status,
            twilio_sid=sid,
            error_message=error,
            related_appointment_id=request.related_appointment_id,
            related_ro_id=request.related_ro_id,
            sent_by=request.sent_by,
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to write SMS log for %s: %s", request.to, e)


def send_sms(db: Session, gateway: TwilioGateway, request: SendSmsRequest) -> Dict[str, Any]:
    if not request.to or not request.message:
        missing = [name for name in ("to", "message") if not getattr(request, name)]
        raise ValidationFailed("Phone number and message are required", fields=missing)

    if not gateway.configured:
        raise UpstreamError(
            "SMS service not configured. Please add Twilio credentials to environment variables."
        )

    if request.message_type == SmsMessageType.CUSTOMER_UPDATE and not is_opted_in(db, request.to):
        log_sms(db, gateway, request, "failed", error="Customer opted out")
        raise BodyshopError("Customer has opted out of SMS notifications", status_code=400)

    result = gateway.send(request.to, request.message)
    if not result.success:
        log_sms(db, gateway, request, "failed", error=result.error)
        raise UpstreamError(result.error or "Failed to send SMS")

    log_sms(db, gateway, request, "sent", sid=result.sid)
    return {"success": True, "message": "SMS sent successfully", "twilioSid": result.sid}


# --- TEMPLATES + NOTIFICATIONS ---

def render_template(db: Session, template_name: str, variables: Dict[str, Any]) -> Optional[str]:
    """Active template filled with ``variables``; blanks render as N/A."""
    template = (
        db.query(SmsTemplate)
        .filter(SmsTemplate.template_name == template_name, SmsTemplate.is_active == True)
        .first()
    )
    if not template:
        return None
    values = {key: value if value not in (None, "") else "N/A" for key, value in variables.items()}
    return _templates.from_string(template.message_template).render(**values)


def staff_phones(db: Session, urgent_ros: bool = False) -> List[str]:
    column = StaffSmsSetting.notify_urgent_ros if urgent_ros else StaffSmsSetting.notify_new_appointments
    rows = (
        db.query(StaffSmsSetting.phone_number)
        .filter(StaffSmsSetting.is_active == True, column == True)
        .all()
    )
    return [row.phone_number for row in rows]


def _send_to_staff(db: Session, gateway: TwilioGateway, phones: List[str], message: str,
                   related_appointment_id: Optional[int] = None, related_ro_id: Optional[int] = None) -> int:
    failures = []
    for phone in phones:
        request = SendSmsRequest(
            to=phone,
            message=message,
            message_type=SmsMessageType.STAFF_NOTIFICATION,
            related_appointment_id=related_appointment_id,
            related_ro_id=related_ro_id,
        )
        try:
            send_sms(db, gateway, request)
        except BodyshopError as e:
            failures.append(f"{phone}: {e.error}")

    if failures:
        raise UpstreamError(f"{len(failures)} of {len(phones)} staff messages failed", details=failures)
    return len(phones)


def vehicle_label(ro: RepairOrder) -> str:
    return " ".join(str(part) for part in (ro.vehicle_year, ro.vehicle_make, ro.vehicle_model) if part) or "your vehicle"


def notify_staff_new_appointment(db: Session, gateway: TwilioGateway, appointment: Appointment) -> int:
    message = render_template(db, "new_appointment_staff", {
        "customer_name": appointment.customer_name,
        "customer_phone": appointment.customer_phone,
        "service_type": appointment.service_type,
        "appointment_date": appointment.appointment_date or "Not specified",
        "appointment_time": appointment.appointment_time or "Not specified",
        "vehicle_info": appointment.vehicle_info or "Not specified",
    })
    if message is None:
        logger.warning("Template not found: new_appointment_staff")
        return 0

    phones = staff_phones(db)
    if not phones:
        logger.info("No staff members configured for appointment notifications")
        return 0
    sent = _send_to_staff(db, gateway, phones, message, related_appointment_id=appointment.id)
    logger.info("Sent appointment notification to %d staff members", sent)
    return sent


def notify_staff_urgent_ro(db: Session, gateway: TwilioGateway, ro: RepairOrder) -> int:
    message = render_template(db, "urgent_ro_staff", {
        "ro_number": ro.ro_number,
        "vehicle_info": vehicle_label(ro),
        "customer_name": f"{ro.customer_first_name or ''} {ro.customer_last_name or ''}".strip(),
        "damage_description": ro.damage_description,
    })
    if message is None:
        logger.warning("Template not found: urgent_ro_staff")
        return 0

    phones = staff_phones(db, urgent_ros=True)
    if not phones:
        return 0
    return _send_to_staff(db, gateway, phones, message, related_ro_id=ro.id)


def notify_customer_ro_status_change(db: Session, gateway: TwilioGateway, ro: RepairOrder, new_status: str) -> bool:
    if new_status not in NOTIFY_STATUSES:
        return False

    template_name = f"ro_status_{new_status}"
    message = render_template(db, template_name, {
        "vehicle_info": vehicle_label(ro),
        "estimate_amount": f"{ro.estimated_total_cost:.2f}" if ro.estimated_total_cost is not None else "0.00",
        "estimated_completion": ro.estimated_completion.strftime("%m/%d/%Y") if ro.estimated_completion else "TBD",
        "ro_number": ro.ro_number,
    })
    if message is None:
        logger.info("Template not found: %s", template_name)
        return False

    if not ro.customer_phone:
        logger.info("No customer phone number for RO %s", ro.ro_number)
        return False

    send_sms(db, gateway, SendSmsRequest(
        to=ro.customer_phone,
        message=message,
        message_type=SmsMessageType.CUSTOMER_UPDATE,
        related_ro_id=ro.id,
    ))
    logger.info("Sent status update SMS to customer for RO %s", ro.ro_number)
    return True
