from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from sqlalchemy.orm import Session

from bodyshop.auth_utils import resolve_actor
from bodyshop.config import settings
from bodyshop.database import get_db
from bodyshop.database_models import Appointment
from bodyshop.errors import ValidationFailed
from bodyshop.models import appointment as schemas
from bodyshop.services import appointments as service
from bodyshop.services.repair_orders import set_archived
from bodyshop.services.sms import get_sms_gateway
from bodyshop.services.storage import FileStore, get_file_store

router = APIRouter(prefix="/appointments", tags=["appointments"])


# --- PUBLIC INTAKE ---

@router.post("", name="create_appointment")
def create_appointment(
    customer_name: Optional[str] = Form(None),
    customer_phone: Optional[str] = Form(None),
    service_type: Optional[str] = Form(None),
    customer_email: Optional[str] = Form(None),
    vehicle_info: Optional[str] = Form(None),
    damage_description: Optional[str] = Form(None),
    appointment_date: Optional[str] = Form(None),
    appointment_time: Optional[str] = Form(None),
    customer_user_id: Optional[int] = Form(None),
    files: List[UploadFile] = File(default=[]),
    db: Session = Depends(get_db),
    store: FileStore = Depends(get_file_store),
    gateway=Depends(get_sms_gateway),
):
    result = service.create_appointment(
        db,
        store,
        settings.MAX_UPLOAD_BYTES,
        customer_name=customer_name,
        customer_phone=customer_phone,
        service_type=service_type,
        customer_email=customer_email,
        vehicle_info=vehicle_info,
        damage_description=damage_description,
        appointment_date=appointment_date,
        appointment_time=appointment_time,
        customer_user_id=customer_user_id,
        files=files,
        gateway=gateway,
    )
    return {
        "success": True,
        "appointment": schemas.Appointment.model_validate(result["appointment"]),
        "uploaded_files": [schemas.AppointmentFile.model_validate(f) for f in result["uploaded_files"]],
        "file_errors": result["file_errors"],
        "side_effects": result["side_effects"].to_dict(),
    }


@router.get("", name="find_appointments")
def find_appointments(phone: Optional[str] = None, db: Session = Depends(get_db)):
    """Customer lookup: every appointment booked with this phone, newest first."""
    return {"appointments": service.find_by_phone(db, phone)}


@router.post("/upload", name="upload_appointment_files")
def upload_appointment_files(
    appointment_id: Optional[int] = Form(None),
    files: List[UploadFile] = File(default=[]),
    db: Session = Depends(get_db),
    store: FileStore = Depends(get_file_store),
):
    uploaded, errors = service.upload_files(db, store, appointment_id, files, settings.MAX_UPLOAD_BYTES)
    return {
        "success": bool(uploaded),
        "uploaded_files": [schemas.AppointmentFile.model_validate(f) for f in uploaded],
        "errors": errors,
        "message": f"Uploaded {len(uploaded)} of {len(uploaded) + len(errors)} file(s)",
    }


# --- NOTES ---

@router.get("/notes", name="list_notes")
def list_notes(appointment_id: Optional[int] = None, db: Session = Depends(get_db)):
    notes = service.list_notes(db, appointment_id)
    return {"notes": [schemas.AppointmentNote.model_validate(n) for n in notes]}


@router.post("/notes", name="create_note", status_code=201)
def create_note(data: schemas.NoteCreate, db: Session = Depends(get_db)):
    note = service.add_note(db, data.appointment_id, data.note_text, data.staff_name)
    return {"note": schemas.AppointmentNote.model_validate(note)}


@router.put("/notes", name="update_note")
def update_note(data: schemas.NoteUpdate, db: Session = Depends(get_db)):
    note = service.edit_note(db, data.note_id, data.note_text)
    return {"note": schemas.AppointmentNote.model_validate(note)}


@router.delete("/notes", name="delete_note")
def delete_note(note_id: Optional[int] = None, db: Session = Depends(get_db)):
    service.delete_note(db, note_id)
    return {"success": True}


# --- ARCHIVE / RESTORE ---

def _require_id(data: schemas.AppointmentArchiveRequest) -> int:
    if not data.appointment_id:
        raise ValidationFailed("Appointment ID is required", fields=["appointment_id"])
    return data.appointment_id


@router.post("/archive", name="archive_appointment")
def archive_appointment(request: Request, data: schemas.AppointmentArchiveRequest,
                        db: Session = Depends(get_db)):
    appointment = set_archived(
        db, Appointment, _require_id(data), True,
        actor=resolve_actor(data.archived_by, request), label="Appointment",
    )
    return {
        "success": True,
        "message": "Appointment archived successfully",
        "appointment": schemas.Appointment.model_validate(appointment),
    }


@router.put("/archive", name="unarchive_appointment")
def unarchive_appointment(data: schemas.AppointmentArchiveRequest, db: Session = Depends(get_db)):
    appointment = set_archived(db, Appointment, _require_id(data), False, label="Appointment")
    return {
        "success": True,
        "message": "Appointment unarchived successfully",
        "appointment": schemas.Appointment.model_validate(appointment),
    }
