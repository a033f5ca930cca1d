from datetime import datetime, timezone

from sqlalchemy import (
    TEXT,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from .database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# 1. Staff accounts
class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255))


# 2. Public intake
class Appointment(Base):
    __tablename__ = "appointments"
    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_name = Column(String(255), nullable=False)
    customer_phone = Column(String(20), nullable=False, index=True)  # digits only
    customer_email = Column(String(255))
    service_type = Column(String(100), nullable=False)
    vehicle_info = Column(String(255))
    damage_description = Column(TEXT)
    appointment_date = Column(String(20))
    appointment_time = Column(String(20))
    status = Column(String(20), nullable=False, default="pending")
    staff_notes = Column(TEXT)

    # Portal account that booked it, if any
    customer_user_id = Column(Integer, ForeignKey("customer_users.id"), nullable=True)

    archived = Column(Boolean, nullable=False, default=False)
    archived_at = Column(DateTime)
    archived_by = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    files = relationship(
        "AppointmentFile",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentFile.created_at.desc()",
    )
    notes = relationship(
        "AppointmentNote",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentNote.created_at.desc()",
    )
    repair_case = relationship(
        "RepairCase",
        back_populates="appointment",
        uselist=False,
        cascade="all, delete-orphan",
    )


class AppointmentFile(Base):
    __tablename__ = "appointment_files"
    id = Column(Integer, primary_key=True, autoincrement=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    file_type = Column(String(100), nullable=False, default="application/octet-stream")
    file_size = Column(Integer, nullable=False, default=0)
    storage_path = Column(String(500), nullable=False)
    public_url = Column(String(500), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    appointment = relationship("Appointment", back_populates="files")


class AppointmentNote(Base):
    __tablename__ = "appointment_notes"
    id = Column(Integer, primary_key=True, autoincrement=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    note_text = Column(TEXT, nullable=False)
    staff_name = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    appointment = relationship("Appointment", back_populates="notes")


# Richer insurance/vehicle detail gathered by staff for an appointment
class RepairCase(Base):
    __tablename__ = "repair_cases"
    id = Column(Integer, primary_key=True, autoincrement=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), unique=True, nullable=False)

    insurance_carrier = Column(String(255))
    insurance_policy_number = Column(String(100))
    insurance_claim_number = Column(String(100))
    insurance_adjuster_name = Column(String(255))
    insurance_adjuster_phone = Column(String(50))
    insurance_adjuster_email = Column(String(255))

    vehicle_year = Column(Integer)
    vehicle_make = Column(String(100))
    vehicle_model = Column(String(100))
    vehicle_vin = Column(String(50))
    vehicle_license_plate = Column(String(20))
    vehicle_mileage = Column(Integer)

    incident_description = Column(TEXT)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    appointment = relationship("Appointment", back_populates="repair_case")


# 3. CRM
class Customer(Base):
    __tablename__ = "crm_customers"
    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    phone = Column(String(20), unique=True, nullable=False, index=True)  # digits only
    email = Column(String(255))
    address = Column(String(500))

    insurance_company = Column(String(255))
    policy_number = Column(String(100))
    insurance_claim_number = Column(String(100))
    insurance_adjuster_name = Column(String(255))
    insurance_adjuster_phone = Column(String(50))
    insurance_adjuster_email = Column(String(255))

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    vehicles = relationship("Vehicle", back_populates="owner")
    repair_orders = relationship("RepairOrder", back_populates="customer")


class Vehicle(Base):
    __tablename__ = "crm_vehicles"
    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("crm_customers.id"), nullable=False)
    year = Column(String(10), nullable=False, default="")
    make = Column(String(100), nullable=False, default="")
    model = Column(String(100), nullable=False, default="")
    vin = Column(String(50), unique=True, nullable=False, index=True)
    color = Column(String(50), default="")
    license_plate = Column(String(20))
    mileage = Column(Integer)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    owner = relationship("Customer", back_populates="vehicles")
    repair_orders = relationship("RepairOrder", back_populates="vehicle")


class RepairOrder(Base):
    __tablename__ = "crm_repair_orders"
    id = Column(Integer, primary_key=True, autoincrement=True)
    ro_number = Column(String(20), unique=True, nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("crm_customers.id"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("crm_vehicles.id"), nullable=False)

    # One RO per appointment, enforced by the unique index
    source_appointment_id = Column(Integer, ForeignKey("appointments.id"), unique=True, nullable=True)
    source_repair_case_id = Column(Integer, ForeignKey("repair_cases.id"), nullable=True)

    status = Column(String(30), nullable=False, default="intake", index=True)
    priority = Column(String(10), nullable=False, default="medium")
    date_received = Column(DateTime, nullable=False, default=utcnow)
    damage_description = Column(TEXT, nullable=False)

    # Customer snapshot at creation time
    customer_first_name = Column(String(100))
    customer_last_name = Column(String(100))
    customer_phone = Column(String(20))
    customer_email = Column(String(255))
    customer_address = Column(String(500))

    # Vehicle snapshot
    vehicle_year = Column(String(10))
    vehicle_make = Column(String(100))
    vehicle_model = Column(String(100))
    vehicle_vin = Column(String(50))

    # Insurance snapshot
    insurance_carrier = Column(String(255))
    insurance_claim_number = Column(String(100))
    insurance_contact_name = Column(String(255))
    insurance_contact_phone = Column(String(50))
    insurance_contact_email = Column(String(255))

    # Estimates and planning
    estimated_total_cost = Column(Float)
    final_total_cost = Column(Float)
    estimated_duration_days = Column(Integer)
    planned_start_date = Column(Date)
    planned_completion_date = Column(Date)
    estimated_completion = Column(DateTime)

    archived = Column(Boolean, nullable=False, default=False)
    archived_at = Column(DateTime)
    archived_by = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    customer = relationship("Customer", back_populates="repair_orders")
    vehicle = relationship("Vehicle", back_populates="repair_orders")
    parts = relationship("PartsListItem", back_populates="repair_order", cascade="all, delete-orphan")
    documents = relationship("Document", back_populates="repair_order", cascade="all, delete-orphan")
    edits = relationship("RepairOrderEdit", back_populates="repair_order", cascade="all, delete-orphan")


class RepairOrderEdit(Base):
    __tablename__ = "crm_repair_order_edits"
    id = Column(Integer, primary_key=True, autoincrement=True)
    repair_order_id = Column(Integer, ForeignKey("crm_repair_orders.id"), nullable=False, index=True)
    field_name = Column(String(100), nullable=False)
    old_value = Column(TEXT)
    new_value = Column(TEXT)
    edited_by = Column(String(255), nullable=False)
    edited_at = Column(DateTime, nullable=False, default=utcnow)

    repair_order = relationship("RepairOrder", back_populates="edits")


class PartsListItem(Base):
    __tablename__ = "crm_repair_order_parts_list"
    id = Column(Integer, primary_key=True, autoincrement=True)
    repair_order_id = Column(Integer, ForeignKey("crm_repair_orders.id"), nullable=False, index=True)
    part_name = Column(String(255), nullable=False)
    part_number = Column(String(100))
    quantity = Column(Integer, nullable=False, default=1)
    estimated_cost = Column(Float)
    notes = Column(TEXT)
    status = Column(String(30), nullable=False, default="required")

    repair_order = relationship("RepairOrder", back_populates="parts")


class Document(Base):
    __tablename__ = "crm_documents"
    id = Column(Integer, primary_key=True, autoincrement=True)
    repair_order_id = Column(Integer, ForeignKey("crm_repair_orders.id"), nullable=False, index=True)
    document_type = Column(String(20), nullable=False)  # photo | other
    document_name = Column(String(255), nullable=False)
    document_url = Column(String(500), nullable=False)
    description = Column(TEXT)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    repair_order = relationship("RepairOrder", back_populates="documents")


# Named counter for RO numbers, incremented in place
class RONumberSequence(Base):
    __tablename__ = "ro_number_sequence"
    name = Column(String(50), primary_key=True)
    last_value = Column(Integer, nullable=False)


# 4. Customer portal
class CustomerUser(Base):
    __tablename__ = "customer_users"
    id = Column(Integer, primary_key=True, autoincrement=True)
    auth_user_id = Column(String(100), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


# 5. SMS
class CustomerSmsPreference(Base):
    __tablename__ = "customer_sms_preferences"
    id = Column(Integer, primary_key=True, autoincrement=True)
    phone_number = Column(String(20), unique=True, nullable=False, index=True)  # digits only
    opted_in = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow)


class SmsLog(Base):
    __tablename__ = "sms_logs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    to_phone = Column(String(20), nullable=False)
    from_phone = Column(String(20))
    message_body = Column(TEXT, nullable=False)
    message_type = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False)  # sent | failed
    twilio_sid = Column(String(64))
    error_message = Column(TEXT)
    related_appointment_id = Column(Integer, index=True)
    related_ro_id = Column(Integer, index=True)
    sent_by = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=utcnow)


class SmsTemplate(Base):
    __tablename__ = "sms_templates"
    id = Column(Integer, primary_key=True, autoincrement=True)
    template_name = Column(String(100), unique=True, nullable=False)
    message_template = Column(TEXT, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class StaffSmsSetting(Base):
    __tablename__ = "staff_sms_settings"
    id = Column(Integer, primary_key=True, autoincrement=True)
    staff_name = Column(String(255), nullable=False)
    phone_number = Column(String(20), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    notify_new_appointments = Column(Boolean, nullable=False, default=True)
    notify_urgent_ros = Column(Boolean, nullable=False, default=False)
