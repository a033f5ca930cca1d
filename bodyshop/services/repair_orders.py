"""
Repair order workflow: manual creation, appointment conversion, audited
updates and archive/restore.

Each step commits on its own. A failure in the customer, vehicle or RO write
aborts the operation; document copies, parts lists, audit rows, appointment
annotations and SMS are best-effort and reported through ``SideEffectReport``.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from bodyshop.database_models import (
    Appointment,
    Document,
    PartsListItem,
    RepairOrder,
    RepairOrderEdit,
    utcnow,
)
from bodyshop.errors import (
    Conflict,
    NotFound,
    ROAllocationError,
    SideEffectReport,
    UpstreamError,
    ValidationFailed,
)
from bodyshop.models.repair_order import RepairOrderCreate, RepairOrderPriority, RepairOrderUpdate
from bodyshop.services import sms
from bodyshop.services.crm import (
    create_placeholder_vehicle,
    normalize_phone,
    split_customer_name,
    upsert_customer,
    upsert_vehicle,
)
from bodyshop.services.ro_numbers import allocate_ro_number

logger = logging.getLogger(__name__)

INITIAL_STATUS = "intake"
DEFAULT_PRIORITY = "medium"
PLACEHOLDER_DAMAGE = "Appointment conversion - details pending"
MAX_NUMBER_ATTEMPTS = 3

# Fields that may never be cleared by an update
REQUIRED_ON_UPDATE = ("status", "priority", "damage_description")


def _find_by_source_appointment(db: Session, appointment_id: int) -> Optional[RepairOrder]:
    return db.query(RepairOrder).filter(RepairOrder.source_appointment_id == appointment_id).first()


def _insert_repair_order(db: Session, values: Dict[str, Any]) -> RepairOrder:
    """
    Allocates a number and inserts the RO. A unique violation on the number
    means another request took it, so allocate again.
    """
    source_appointment_id = values.get("source_appointment_id")
    last_error = None
    for attempt in range(MAX_NUMBER_ATTEMPTS):
        ro_number = allocate_ro_number(db)
        repair_order = RepairOrder(ro_number=ro_number, **values)
        try:
            db.add(repair_order)
            db.commit()
            db.refresh(repair_order)
            return repair_order
        except IntegrityError as e:
            db.rollback()
            last_error = e
            if source_appointment_id is not None:
                existing = _find_by_source_appointment(db, source_appointment_id)
                if existing:
                    raise Conflict(
                        "Appointment already converted to repair order",
                        repair_order={"id": existing.id, "ro_number": existing.ro_number},
                    )
            logger.warning("RO number %s already taken (attempt %d)", ro_number, attempt + 1)
        except SQLAlchemyError as e:
            db.rollback()
            raise UpstreamError("Failed to create repair order", details=str(e))

    raise ROAllocationError("Failed to allocate a unique RO number", details=str(last_error))


# ----------------------------------------------------
# MANUAL CREATION
# ----------------------------------------------------

def validate_new_repair_order(data: RepairOrderCreate) -> None:
    """Rejects missing mandatory fields before anything is written."""
    groups = (
        ("Customer first name, last name, and phone are required",
         ("customer_first_name", "customer_last_name", "customer_phone")),
        ("Vehicle year, make, model, and VIN are required",
         ("vehicle_year", "vehicle_make", "vehicle_model", "vehicle_vin")),
        ("Damage description is required", ("damage_description",)),
    )
    for message, fields in groups:
        missing = [name for name in fields if getattr(data, name) in (None, "")]
        if missing:
            raise ValidationFailed(message, fields=missing)

    if not normalize_phone(data.customer_phone):
        raise ValidationFailed("Customer phone must contain digits", fields=["customer_phone"])


def planned_completion(start, duration_days: Optional[int]):
    if start and duration_days:
        return start + timedelta(days=duration_days)
    return None


def create_repair_order(db: Session, data: RepairOrderCreate, gateway=None) -> Dict[str, Any]:
    validate_new_repair_order(data)
    phone = normalize_phone(data.customer_phone)

    # 1. Customer
    customer = upsert_customer(db, {
        "first_name": data.customer_first_name,
        "last_name": data.customer_last_name,
        "phone": phone,
        "email": data.customer_email,
        "address": data.customer_address,
        "insurance_company": data.insurance_carrier,
        "policy_number": data.insurance_policy_number,
        "insurance_claim_number": data.insurance_claim_number,
        "insurance_adjuster_name": data.insurance_contact_name,
        "insurance_adjuster_phone": data.insurance_contact_phone,
        "insurance_adjuster_email": data.insurance_contact_email,
    })

    # 2. Vehicle
    vehicle = upsert_vehicle(db, {
        "customer_id": customer.id,
        "year": str(data.vehicle_year),
        "make": data.vehicle_make,
        "model": data.vehicle_model,
        "vin": data.vehicle_vin,
        "color": data.vehicle_color,
        "license_plate": data.vehicle_license_plate,
        "mileage": data.vehicle_mileage,
    })

    # 3. Planning dates
    completion_date = planned_completion(data.planned_start_date, data.estimated_duration_days)

    # 4. Number + insert
    repair_order = _insert_repair_order(db, {
        "customer_id": customer.id,
        "vehicle_id": vehicle.id,
        "status": INITIAL_STATUS,
        "priority": data.priority.value,
        "date_received": utcnow(),
        "damage_description": data.damage_description,
        "customer_first_name": data.customer_first_name,
        "customer_last_name": data.customer_last_name,
        "customer_phone": phone,
        "customer_email": data.customer_email,
        "customer_address": data.customer_address,
        "vehicle_year": vehicle.year,
        "vehicle_make": vehicle.make,
        "vehicle_model": vehicle.model,
        "vehicle_vin": vehicle.vin,
        "insurance_carrier": data.insurance_carrier,
        "insurance_claim_number": data.insurance_claim_number,
        "insurance_contact_name": data.insurance_contact_name,
        "insurance_contact_phone": data.insurance_contact_phone,
        "insurance_contact_email": data.insurance_contact_email,
        "estimated_total_cost": data.estimated_total_cost,
        "estimated_duration_days": data.estimated_duration_days,
        "planned_start_date": data.planned_start_date,
        "planned_completion_date": completion_date,
        "estimated_completion": (
            datetime.combine(completion_date, datetime.min.time()) if completion_date else None
        ),
    })

    side_effects = SideEffectReport()

    # 5. Parts list (optional)
    if data.parts_list:
        side_effects.run(
            "parts list",
            lambda: _insert_parts(db, repair_order.id, data.parts_list),
            on_error=db.rollback,
        )

    if gateway is not None and repair_order.priority == RepairOrderPriority.URGENT.value:
        side_effects.run("urgent RO staff SMS", lambda: sms.notify_staff_urgent_ro(db, gateway, repair_order))

    return {
        "repair_order": repair_order,
        "customer": customer,
        "vehicle": vehicle,
        "side_effects": side_effects,
        "message": f"Successfully created Repair Order {repair_order.ro_number}",
    }


def _insert_parts(db: Session, repair_order_id: int, parts) -> int:
    db.add_all([
        PartsListItem(
            repair_order_id=repair_order_id,
            part_name=part.part_name,
            part_number=part.part_number,
            quantity=part.quantity or 1,
            estimated_cost=part.estimated_cost,
            notes=part.notes,
            status="required",
        )
        for part in parts
    ])
    db.commit()
    return len(parts)


# ----------------------------------------------------
# APPOINTMENT CONVERSION
# ----------------------------------------------------

def convert_appointment(db: Session, appointment_id: Optional[int]) -> Dict[str, Any]:
    if not appointment_id:
        raise ValidationFailed("appointment_id is required", fields=["appointment_id"])

    # 1. Load the appointment (and its repair case, if any)
    appointment = (
        db.query(Appointment)
        .options(joinedload(Appointment.repair_case), selectinload(Appointment.files))
        .filter(Appointment.id == appointment_id)
        .first()
    )
    if not appointment:
        raise NotFound("Appointment not found")

    # 2. One RO per appointment
    existing = _find_by_source_appointment(db, appointment.id)
    if existing:
        raise Conflict(
            "Appointment already converted to repair order",
            repair_order={"id": existing.id, "ro_number": existing.ro_number},
        )

    # 3. Name split
    first_name, last_name = split_customer_name(appointment.customer_name)
    repair_case = appointment.repair_case

    # 4. Customer, with the repair case's insurance data taking precedence
    customer = upsert_customer(db, {
        "first_name": first_name,
        "last_name": last_name,
        "phone": appointment.customer_phone,
        "email": appointment.customer_email,
        "insurance_company": repair_case.insurance_carrier if repair_case else None,
        "policy_number": repair_case.insurance_policy_number if repair_case else None,
        "insurance_claim_number": repair_case.insurance_claim_number if repair_case else None,
        "insurance_adjuster_name": repair_case.insurance_adjuster_name if repair_case else None,
        "insurance_adjuster_phone": repair_case.insurance_adjuster_phone if repair_case else None,
        "insurance_adjuster_email": repair_case.insurance_adjuster_email if repair_case else None,
    })

    # 5. Vehicle, or a placeholder when the repair case has no VIN
    if repair_case and repair_case.vehicle_vin:
        vehicle = upsert_vehicle(db, {
            "customer_id": customer.id,
            "year": str(repair_case.vehicle_year) if repair_case.vehicle_year else None,
            "make": repair_case.vehicle_make,
            "model": repair_case.vehicle_model,
            "vin": repair_case.vehicle_vin,
            "license_plate": repair_case.vehicle_license_plate,
            "mileage": repair_case.vehicle_mileage,
        })
    else:
        vehicle = create_placeholder_vehicle(db, customer.id)

    # 6 + 7. Number + insert
    damage = (
        (repair_case.incident_description if repair_case else None)
        or appointment.damage_description
        or PLACEHOLDER_DAMAGE
    )
    repair_order = _insert_repair_order(db, {
        "customer_id": customer.id,
        "vehicle_id": vehicle.id,
        "source_appointment_id": appointment.id,
        "source_repair_case_id": repair_case.id if repair_case else None,
        "status": INITIAL_STATUS,
        "priority": DEFAULT_PRIORITY,
        "date_received": utcnow(),
        "damage_description": damage,
        "customer_first_name": first_name,
        "customer_last_name": last_name,
        "customer_phone": customer.phone,
        "customer_email": appointment.customer_email,
        "customer_address": customer.address or "",
        "vehicle_year": vehicle.year,
        "vehicle_make": vehicle.make,
        "vehicle_model": vehicle.model,
        "vehicle_vin": vehicle.vin,
        "insurance_carrier": customer.insurance_company,
        "insurance_claim_number": customer.insurance_claim_number,
        "insurance_contact_name": customer.insurance_adjuster_name,
        "insurance_contact_phone": customer.insurance_adjuster_phone,
        "insurance_contact_email": customer.insurance_adjuster_email,
    })

    side_effects = SideEffectReport()

    # 8. Attachments become RO documents
    if repair_case and appointment.files:
        side_effects.run(
            "document copy",
            lambda: _copy_documents(db, repair_order.id, appointment),
            on_error=db.rollback,
        )

    # 9. Leave a trace on the appointment; its status stays as it is
    ro_number = repair_order.ro_number
    side_effects.run(
        "appointment annotation",
        lambda: _annotate_appointment(db, appointment.id, ro_number),
        on_error=db.rollback,
    )

    return {
        "repair_order": repair_order,
        "customer": customer,
        "vehicle": vehicle,
        "side_effects": side_effects,
        "message": f"Successfully created Repair Order {ro_number}",
    }


def _copy_documents(db: Session, repair_order_id: int, appointment: Appointment) -> int:
    documents = [
        Document(
            repair_order_id=repair_order_id,
            document_type="photo" if (f.file_type or "").startswith("image/") else "other",
            document_name=f.file_name,
            document_url=f.public_url,
            description=f"Transferred from appointment {appointment.id}",
        )
        for f in appointment.files
    ]
    db.add_all(documents)
    db.commit()
    return len(documents)


def _annotate_appointment(db: Session, appointment_id: int, ro_number: str) -> None:
    appointment = db.get(Appointment, appointment_id)
    appointment.staff_notes = f"Converted to Repair Order {ro_number}"
    appointment.updated_at = utcnow()
    db.commit()


# ----------------------------------------------------
# READS
# ----------------------------------------------------

def list_repair_orders(db: Session, status: Optional[str] = None, ro_number: Optional[str] = None,
                       archived: Optional[bool] = None) -> List[RepairOrder]:
    query = db.query(RepairOrder).options(
        joinedload(RepairOrder.customer),
        joinedload(RepairOrder.vehicle),
        selectinload(RepairOrder.parts),
    )
    if status:
        query = query.filter(RepairOrder.status == status)
    if ro_number:
        query = query.filter(RepairOrder.ro_number == ro_number)
    if archived is not None:
        query = query.filter(RepairOrder.archived == archived)
    return query.order_by(RepairOrder.date_received.desc(), RepairOrder.id.desc()).all()


def get_repair_order(db: Session, ro_id: int) -> RepairOrder:
    repair_order = (
        db.query(RepairOrder)
        .options(
            joinedload(RepairOrder.customer),
            joinedload(RepairOrder.vehicle),
            selectinload(RepairOrder.parts),
        )
        .filter(RepairOrder.id == ro_id)
        .first()
    )
    if not repair_order:
        raise NotFound("Repair order not found")
    return repair_order


def list_edits(db: Session, ro_id: int) -> List[RepairOrderEdit]:
    get_repair_order(db, ro_id)
    return (
        db.query(RepairOrderEdit)
        .filter(RepairOrderEdit.repair_order_id == ro_id)
        .order_by(RepairOrderEdit.edited_at.desc(), RepairOrderEdit.id.desc())
        .all()
    )


# ----------------------------------------------------
# UPDATE + AUDIT TRAIL
# ----------------------------------------------------

def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "value"):  # enums
        value = value.value
    return str(value)


def _normalize_update(data: RepairOrderUpdate) -> Dict[str, Any]:
    changes = data.model_dump(exclude_unset=True, exclude={"edited_by"})
    for key in REQUIRED_ON_UPDATE:
        if key in changes and changes[key] in (None, ""):
            raise ValidationFailed(f"{key} cannot be empty", fields=[key])
    for key, value in list(changes.items()):
        if hasattr(value, "value"):
            changes[key] = value.value
        elif isinstance(value, datetime) and value.tzinfo is not None:
            # Stored timestamps are naive UTC
            changes[key] = value.astimezone(timezone.utc).replace(tzinfo=None)
    if changes.get("vehicle_year") is not None:
        changes["vehicle_year"] = str(changes["vehicle_year"])
    return changes


def update_repair_order(db: Session, ro_id: int, data: RepairOrderUpdate, edited_by: str,
                        gateway=None) -> Dict[str, Any]:
    changes = _normalize_update(data)

    repair_order = db.get(RepairOrder, ro_id)
    if not repair_order:
        raise NotFound("Repair order not found")

    # Snapshot before the overwrite
    previous = {key: getattr(repair_order, key) for key in changes}

    try:
        for key, value in changes.items():
            setattr(repair_order, key, value)
        repair_order.updated_at = utcnow()
        db.commit()
        db.refresh(repair_order)
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamError("Failed to update repair order", details=str(e))

    side_effects = SideEffectReport()

    edits = [
        RepairOrderEdit(
            repair_order_id=repair_order.id,
            field_name=key,
            old_value=_as_text(previous[key]),
            new_value=_as_text(value),
            edited_by=edited_by,
        )
        for key, value in changes.items()
        if key != "updated_at" and previous[key] != value
    ]
    if edits:
        side_effects.run("edit history", lambda: _insert_edits(db, edits), on_error=db.rollback)

    status_changed = "status" in changes and previous["status"] != changes["status"]
    if gateway is not None and status_changed:
        side_effects.run(
            "customer status SMS",
            lambda: sms.notify_customer_ro_status_change(db, gateway, repair_order, changes["status"]),
        )

    return {
        "repair_order": repair_order,
        "changed_fields": [edit.field_name for edit in edits],
        "side_effects": side_effects,
        "message": "Repair order updated successfully",
    }


def _insert_edits(db: Session, edits: List[RepairOrderEdit]) -> int:
    db.add_all(edits)
    db.commit()
    return len(edits)


# ----------------------------------------------------
# ARCHIVE / RESTORE (appointments and repair orders)
# ----------------------------------------------------

def set_archived(db: Session, model, entity_id: Optional[int], archived: bool,
                 actor: Optional[str] = None, label: str = "Record"):
    """Soft delete or restore. Archive stamps time and actor; restore clears both."""
    entity = db.get(model, entity_id)
    if not entity:
        raise NotFound(f"{label} not found")

    try:
        entity.archived = archived
        entity.archived_at = utcnow() if archived else None
        entity.archived_by = (actor or "Staff") if archived else None
        db.commit()
        db.refresh(entity)
    except SQLAlchemyError as e:
        db.rollback()
        action = "archive" if archived else "unarchive"
        raise UpstreamError(f"Failed to {action} {label.lower()}", details=str(e))
    return entity
