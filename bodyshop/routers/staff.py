from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bodyshop.auth_utils import get_current_user
from bodyshop.database import get_db
from bodyshop.models import appointment as schemas
from bodyshop.services import appointments as service

# Every route here needs a logged-in staff user
router = APIRouter(prefix="/staff", tags=["staff"], dependencies=[Depends(get_current_user)])


@router.get("/appointments", name="staff_appointments")
def staff_appointments(archived: Optional[bool] = False, db: Session = Depends(get_db)):
    """Dashboard list. ``archived`` defaults to the active view."""
    return {"appointments": service.list_for_staff(db, archived=archived)}


@router.patch("/appointments/{appointment_id}/status", name="update_appointment_status")
def update_appointment_status(appointment_id: int, data: schemas.AppointmentStatusUpdate,
                              db: Session = Depends(get_db)):
    appointment = service.update_status(db, appointment_id, data.status)
    return {"appointment": schemas.Appointment.model_validate(appointment)}


@router.put("/appointments/{appointment_id}/repair-case", name="save_repair_case")
def save_repair_case(appointment_id: int, data: schemas.RepairCase, db: Session = Depends(get_db)):
    repair_case = service.save_repair_case(db, appointment_id, data)
    return {"repair_case": schemas.RepairCase.model_validate(repair_case)}
