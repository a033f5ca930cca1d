from datetime import date, datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from bodyshop.models.customer import Customer
from bodyshop.models.vehicle import Vehicle


# ----------------------------------------------------
# 1. ENUMS
# The RO lifecycle is a closed, ordered set of stages.
# ----------------------------------------------------
class RepairOrderStatus(str, Enum):
    INTAKE = "intake"
    INSURANCE = "insurance"
    ESTIMATE_APPROVAL = "estimate_approval"
    BLUEPRINTING = "blueprinting"
    PARTS_ORDERED = "parts_ordered"
    IN_REPAIR = "in_repair"
    PAINTING = "painting"
    QUALITY_CONTROL = "quality_control"
    READY_PICKUP = "ready_pickup"
    COMPLETED = "completed"


class RepairOrderPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# ----------------------------------------------------
# 2. REQUEST BODIES
# ----------------------------------------------------
class PartIn(BaseModel):
    part_name: str
    part_number: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=1)
    estimated_cost: Optional[float] = Field(None, ge=0.0)
    notes: Optional[str] = None


class RepairOrderCreate(BaseModel):
    """
    Staff-entered repair order. Mandatory fields are checked by the service
    so the error can name every missing field at once.
    """

    # Customer info
    customer_first_name: Optional[str] = None
    customer_last_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    customer_email: Optional[str] = None

    # Vehicle info
    vehicle_year: Optional[Union[int, str]] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_vin: Optional[str] = None
    vehicle_color: Optional[str] = None
    vehicle_license_plate: Optional[str] = None
    vehicle_mileage: Optional[int] = Field(None, ge=0)

    # Insurance info (optional)
    insurance_carrier: Optional[str] = None
    insurance_claim_number: Optional[str] = None
    insurance_contact_name: Optional[str] = None
    insurance_contact_phone: Optional[str] = None
    insurance_contact_email: Optional[str] = None
    insurance_policy_number: Optional[str] = None

    # Repair order details
    damage_description: Optional[str] = None
    estimated_total_cost: Optional[float] = Field(None, ge=0.0)
    estimated_duration_days: Optional[int] = Field(None, ge=0)
    planned_start_date: Optional[date] = None
    priority: RepairOrderPriority = RepairOrderPriority.MEDIUM

    parts_list: List[PartIn] = []


class RepairOrderUpdate(BaseModel):
    """Partial update. Only the fields actually sent are applied."""

    status: Optional[RepairOrderStatus] = None
    priority: Optional[RepairOrderPriority] = None
    damage_description: Optional[str] = None

    customer_first_name: Optional[str] = None
    customer_last_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    customer_address: Optional[str] = None

    vehicle_year: Optional[Union[int, str]] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_vin: Optional[str] = None

    insurance_carrier: Optional[str] = None
    insurance_claim_number: Optional[str] = None
    insurance_contact_name: Optional[str] = None
    insurance_contact_phone: Optional[str] = None
    insurance_contact_email: Optional[str] = None

    estimated_total_cost: Optional[float] = Field(None, ge=0.0)
    final_total_cost: Optional[float] = Field(None, ge=0.0)
    estimated_duration_days: Optional[int] = Field(None, ge=0)
    planned_start_date: Optional[date] = None
    planned_completion_date: Optional[date] = None
    estimated_completion: Optional[datetime] = None

    edited_by: Optional[str] = None


class RepairOrderArchiveRequest(BaseModel):
    ro_id: Optional[int] = None
    archived_by: Optional[str] = None


class ConvertAppointmentRequest(BaseModel):
    appointment_id: Optional[int] = None


# ----------------------------------------------------
# 3. READ MODELS
# ----------------------------------------------------
class PartsListItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    repair_order_id: int
    part_name: str
    part_number: Optional[str] = None
    quantity: int
    estimated_cost: Optional[float] = None
    notes: Optional[str] = None
    status: str


class Document(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    repair_order_id: int
    document_type: str
    document_name: str
    document_url: str
    description: Optional[str] = None
    created_at: datetime


class RepairOrderEdit(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    repair_order_id: int
    field_name: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    edited_by: str
    edited_at: datetime


class RepairOrder(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ro_number: str
    customer_id: int
    vehicle_id: int
    source_appointment_id: Optional[int] = None
    source_repair_case_id: Optional[int] = None

    status: RepairOrderStatus
    priority: RepairOrderPriority
    date_received: datetime
    damage_description: str

    customer_first_name: Optional[str] = None
    customer_last_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    customer_address: Optional[str] = None

    vehicle_year: Optional[str] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_vin: Optional[str] = None

    insurance_carrier: Optional[str] = None
    insurance_claim_number: Optional[str] = None
    insurance_contact_name: Optional[str] = None
    insurance_contact_phone: Optional[str] = None
    insurance_contact_email: Optional[str] = None

    estimated_total_cost: Optional[float] = None
    final_total_cost: Optional[float] = None
    estimated_duration_days: Optional[int] = None
    planned_start_date: Optional[date] = None
    planned_completion_date: Optional[date] = None
    estimated_completion: Optional[datetime] = None

    archived: bool = False
    archived_at: Optional[datetime] = None
    archived_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class RepairOrderDetail(RepairOrder):
    customer: Optional[Customer] = None
    vehicle: Optional[Vehicle] = None
    parts: List[PartsListItem] = []
