import logging
import re
import time
import uuid
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bodyshop.database_models import Customer, Vehicle, utcnow
from bodyshop.errors import UpstreamError

logger = logging.getLogger(__name__)

NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: Optional[str]) -> str:
    """Strips every non-digit. The result is the customer dedup key."""
    return NON_DIGITS.sub("", phone or "")


def split_customer_name(full_name: Optional[str]) -> Tuple[str, str]:
    """'Maria De La Cruz' -> ('Maria', 'De La Cruz')."""
    parts = (full_name or "").split(" ")
    first_name = parts[0] if parts else ""
    last_name = " ".join(parts[1:])
    return first_name, last_name


def _has_value(value: Any) -> bool:
    return value is not None and value != ""


def merge_fields(entity, values: Dict[str, Any]) -> None:
    """New non-empty values win; missing ones keep what is stored."""
    for key, value in values.items():
        if _has_value(value):
            setattr(entity, key, value)
    entity.updated_at = utcnow()


def upsert_customer(db: Session, values: Dict[str, Any]) -> Customer:
    """Find by normalized phone and merge, or create."""
    values = dict(values)
    values["phone"] = normalize_phone(values.get("phone"))

    try:
        customer = db.query(Customer).filter(Customer.phone == values["phone"]).first()
        if customer:
            merge_fields(customer, values)
        else:
            customer = Customer(**{k: v for k, v in values.items() if v is not None})
            db.add(customer)
        db.commit()
        db.refresh(customer)
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamError("Failed to create customer", details=str(e))
    return customer


def upsert_vehicle(db: Session, values: Dict[str, Any]) -> Vehicle:
    """Find by VIN (exactly as supplied) and merge, or create."""
    vin = values["vin"]
    try:
        vehicle = db.query(Vehicle).filter(Vehicle.vin == vin).first()
        if vehicle:
            merge_fields(vehicle, values)
        else:
            vehicle = Vehicle(**{k: v for k, v in values.items() if v is not None})
            db.add(vehicle)
        db.commit()
        db.refresh(vehicle)
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamError("Failed to create vehicle", details=str(e))
    return vehicle


def create_placeholder_vehicle(db: Session, customer_id: int) -> Vehicle:
    """Stands in when no vehicle data exists yet; the RO needs a vehicle id."""
    vehicle = Vehicle(
        customer_id=customer_id,
        year="Unknown",
        make="Unknown",
        model="Unknown",
        vin=f"PENDING-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}",
        color="",
    )
    try:
        db.add(vehicle)
        db.commit()
        db.refresh(vehicle)
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamError("Failed to create vehicle placeholder", details=str(e))
    logger.info("Created placeholder vehicle %s for customer %s", vehicle.vin, customer_id)
    return vehicle
