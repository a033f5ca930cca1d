from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ----------------------------------------------------
# 1. STATUS ENUM
# Lifecycle of a public appointment request.
# ----------------------------------------------------
class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# ----------------------------------------------------
# 2. READ MODELS
# ----------------------------------------------------
class AppointmentFile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    appointment_id: int
    file_name: str
    file_type: str
    file_size: int
    storage_path: str
    public_url: str
    created_at: datetime


class AppointmentNote(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    appointment_id: int
    note_text: str
    staff_name: str
    created_at: datetime
    updated_at: datetime


class RepairCase(BaseModel):
    """Insurance and vehicle detail staff attach to an appointment."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    appointment_id: Optional[int] = None

    insurance_carrier: Optional[str] = None
    insurance_policy_number: Optional[str] = None
    insurance_claim_number: Optional[str] = None
    insurance_adjuster_name: Optional[str] = None
    insurance_adjuster_phone: Optional[str] = None
    insurance_adjuster_email: Optional[str] = None

    vehicle_year: Optional[int] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_vin: Optional[str] = None
    vehicle_license_plate: Optional[str] = None
    vehicle_mileage: Optional[int] = Field(None, ge=0)

    incident_description: Optional[str] = None


class Appointment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    service_type: str
    vehicle_info: Optional[str] = None
    damage_description: Optional[str] = None
    appointment_date: Optional[str] = None
    appointment_time: Optional[str] = None
    status: AppointmentStatus
    staff_notes: Optional[str] = None
    customer_user_id: Optional[int] = None
    archived: bool = False
    archived_at: Optional[datetime] = None
    archived_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class AppointmentWithFiles(Appointment):
    files: List[AppointmentFile] = []


# ----------------------------------------------------
# 3. REQUEST BODIES
# ----------------------------------------------------
class NoteCreate(BaseModel):
    appointment_id: Optional[int] = None
    note_text: Optional[str] = None
    staff_name: Optional[str] = None


class NoteUpdate(BaseModel):
    note_id: Optional[int] = None
    note_text: Optional[str] = None


class AppointmentArchiveRequest(BaseModel):
    appointment_id: Optional[int] = None
    archived_by: Optional[str] = None


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus
