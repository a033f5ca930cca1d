from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from bodyshop.auth_utils import resolve_actor
from bodyshop.database import get_db
from bodyshop.database_models import RepairOrder
from bodyshop.errors import ValidationFailed
from bodyshop.models import repair_order as schemas
from bodyshop.models.customer import Customer
from bodyshop.models.repair_order import RepairOrderStatus
from bodyshop.models.vehicle import Vehicle
from bodyshop.services import repair_orders as service
from bodyshop.services.sms import get_sms_gateway

router = APIRouter(tags=["repair orders"])


def _created_response(result: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "success": True,
        "repair_order": schemas.RepairOrder.model_validate(result["repair_order"]),
        "customer": Customer.model_validate(result["customer"]),
        "vehicle": Vehicle.model_validate(result["vehicle"]),
        "side_effects": result["side_effects"].to_dict(),
        "message": result["message"],
    }


# --- CREATE + LIST ---

@router.post("/repair-orders", name="create_repair_order", status_code=201)
def create_repair_order(data: schemas.RepairOrderCreate, db: Session = Depends(get_db),
                        gateway=Depends(get_sms_gateway)):
    return _created_response(service.create_repair_order(db, data, gateway=gateway))


@router.get("/repair-orders", name="list_repair_orders")
def list_repair_orders(
    status: Optional[RepairOrderStatus] = None,
    ro_number: Optional[str] = None,
    archived: Optional[bool] = None,
    db: Session = Depends(get_db),
):
    repair_orders = service.list_repair_orders(
        db,
        status=status.value if status else None,
        ro_number=ro_number,
        archived=archived,
    )
    return {"repair_orders": [schemas.RepairOrderDetail.model_validate(ro) for ro in repair_orders]}


# --- ARCHIVE / RESTORE ---
# Declared before /repair-orders/{ro_id} so "archive" is not read as an id

def _require_id(data: schemas.RepairOrderArchiveRequest) -> int:
    if not data.ro_id:
        raise ValidationFailed("Repair order ID is required", fields=["ro_id"])
    return data.ro_id


@router.post("/repair-orders/archive", name="archive_repair_order")
def archive_repair_order(request: Request, data: schemas.RepairOrderArchiveRequest,
                         db: Session = Depends(get_db)):
    repair_order = service.set_archived(
        db, RepairOrder, _require_id(data), True,
        actor=resolve_actor(data.archived_by, request), label="Repair order",
    )
    return {
        "success": True,
        "message": "Repair order archived successfully",
        "repair_order": schemas.RepairOrder.model_validate(repair_order),
    }


@router.put("/repair-orders/archive", name="unarchive_repair_order")
def unarchive_repair_order(data: schemas.RepairOrderArchiveRequest, db: Session = Depends(get_db)):
    repair_order = service.set_archived(db, RepairOrder, _require_id(data), False, label="Repair order")
    return {
        "success": True,
        "message": "Repair order unarchived successfully",
        "repair_order": schemas.RepairOrder.model_validate(repair_order),
    }


# --- SINGLE REPAIR ORDER ---

@router.get("/repair-orders/{ro_id}", name="get_repair_order")
def get_repair_order(ro_id: int, db: Session = Depends(get_db)):
    repair_order = service.get_repair_order(db, ro_id)
    return {"repair_order": schemas.RepairOrderDetail.model_validate(repair_order)}


@router.put("/repair-orders/{ro_id}", name="update_repair_order")
def update_repair_order(ro_id: int, request: Request, data: schemas.RepairOrderUpdate,
                        db: Session = Depends(get_db), gateway=Depends(get_sms_gateway)):
    result = service.update_repair_order(
        db, ro_id, data, resolve_actor(data.edited_by, request), gateway=gateway,
    )
    return {
        "success": True,
        "repair_order": schemas.RepairOrder.model_validate(result["repair_order"]),
        "changed_fields": result["changed_fields"],
        "side_effects": result["side_effects"].to_dict(),
        "message": result["message"],
    }


@router.delete("/repair-orders/{ro_id}", name="delete_repair_order")
def delete_repair_order(ro_id: int, request: Request, archived_by: Optional[str] = None,
                        db: Session = Depends(get_db)):
    """Soft delete: the RO is archived, never removed."""
    repair_order = service.set_archived(
        db, RepairOrder, ro_id, True,
        actor=resolve_actor(archived_by, request), label="Repair order",
    )
    return {
        "success": True,
        "message": "Repair order archived successfully",
        "repair_order": schemas.RepairOrder.model_validate(repair_order),
    }


@router.get("/repair-orders/{ro_id}/edits", name="list_repair_order_edits")
def list_repair_order_edits(ro_id: int, db: Session = Depends(get_db)):
    edits = service.list_edits(db, ro_id)
    return {"edits": [schemas.RepairOrderEdit.model_validate(e) for e in edits]}


# --- CONVERSION ---

@router.post("/convert-appointment-to-ro", name="convert_appointment_to_ro")
def convert_appointment_to_ro(data: schemas.ConvertAppointmentRequest, db: Session = Depends(get_db)):
    result = service.convert_appointment(db, data.appointment_id)
    return _created_response(result)
