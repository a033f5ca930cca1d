from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SmsMessageType(str, Enum):
    STAFF_NOTIFICATION = "staff_notification"
    CUSTOMER_UPDATE = "customer_update"
    MANUAL = "manual"


class SendSmsRequest(BaseModel):
    # The dashboard posts camelCase keys
    model_config = ConfigDict(populate_by_name=True)

    to: Optional[str] = None
    message: Optional[str] = None
    message_type: SmsMessageType = Field(SmsMessageType.MANUAL, alias="messageType")
    related_appointment_id: Optional[int] = Field(None, alias="relatedAppointmentId")
    related_ro_id: Optional[int] = Field(None, alias="relatedRoId")
    sent_by: Optional[str] = Field(None, alias="sentBy")


class SmsLog(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    to_phone: str
    from_phone: Optional[str] = None
    message_body: str
    message_type: str
    status: str
    twilio_sid: Optional[str] = None
    error_message: Optional[str] = None
    related_appointment_id: Optional[int] = None
    related_ro_id: Optional[int] = None
    sent_by: Optional[str] = None
    created_at: datetime
