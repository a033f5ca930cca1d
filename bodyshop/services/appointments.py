import logging
from typing import Any, Dict, List, Optional, Sequence

from fastapi import UploadFile
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bodyshop.database_models import (
    Appointment,
    AppointmentFile,
    AppointmentNote,
    CustomerUser,
    RepairCase,
    utcnow,
)
from bodyshop.errors import NotFound, SideEffectReport, UpstreamError, ValidationFailed
from bodyshop.models import appointment as schemas
from bodyshop.models.appointment import AppointmentStatus
from bodyshop.services import sms
from bodyshop.services.crm import normalize_phone
from bodyshop.services.storage import FileStore

logger = logging.getLogger(__name__)


# ----------------------------------------------------
# INTAKE
# ----------------------------------------------------

def create_appointment(db: Session, store: FileStore, max_bytes: int, *, customer_name: Optional[str],
                       customer_phone: Optional[str], service_type: Optional[str],
                       customer_email: Optional[str] = None, vehicle_info: Optional[str] = None,
                       damage_description: Optional[str] = None, appointment_date: Optional[str] = None,
                       appointment_time: Optional[str] = None, customer_user_id: Optional[int] = None,
                       files: Sequence[UploadFile] = (), gateway=None) -> Dict[str, Any]:
    phone = normalize_phone(customer_phone)

    missing = [name for name, value in (
        ("customer_name", customer_name),
        ("customer_phone", phone),
        ("service_type", service_type),
    ) if not value]
    if missing:
        raise ValidationFailed(
            "Missing required fields: name, phone, and service type are required", fields=missing
        )
    if len(phone) != 10:
        raise ValidationFailed("Phone number must be 10 digits", fields=["customer_phone"])

    appointment = Appointment(
        customer_name=customer_name.strip(),
        customer_phone=phone,
        customer_email=customer_email or "",
        service_type=service_type,
        vehicle_info=vehicle_info or "",
        damage_description=damage_description or "",
        appointment_date=appointment_date or "",
        appointment_time=appointment_time or "",
        status=AppointmentStatus.PENDING.value,
        customer_user_id=customer_user_id,
    )
    try:
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamError("Failed to create appointment", details=str(e))

    logger.info("Appointment %s created for %s", appointment.id, phone)

    uploaded, errors = store_files(db, store, appointment.id, files, max_bytes)

    side_effects = SideEffectReport()
    if gateway is not None:
        side_effects.run("staff SMS", lambda: sms.notify_staff_new_appointment(db, gateway, appointment))

    return {
        "appointment": appointment,
        "uploaded_files": uploaded,
        "file_errors": errors,
        "side_effects": side_effects,
    }


def store_files(db: Session, store: FileStore, appointment_id: int, files: Sequence[UploadFile],
                max_bytes: int):
    """Saves each file and its metadata. One bad file never stops the others."""
    uploaded: List[AppointmentFile] = []
    errors: List[str] = []

    for upload in files or ():
        if not upload or not upload.filename:
            continue
        try:
            stored = store.save(appointment_id, upload.filename, upload.file)
        except OSError as e:
            logger.error("File upload error for %s: %s", upload.filename, e)
            errors.append(f"{upload.filename}: {e}")
            continue

        if stored.size > max_bytes:
            store.delete(stored.storage_path)
            errors.append(f"{upload.filename}: File too large (max {max_bytes // (1024 * 1024)}MB)")
            continue

        record = AppointmentFile(
            appointment_id=appointment_id,
            file_name=upload.filename,
            file_type=upload.content_type or "application/octet-stream",
            file_size=stored.size,
            storage_path=stored.storage_path,
            public_url=stored.public_url,
        )
        try:
            db.add(record)
            db.commit()
            db.refresh(record)
            uploaded.append(record)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("File metadata insert error for %s: %s", upload.filename, e)
            errors.append(f"{upload.filename}: {e}")

    return uploaded, errors


def upload_files(db: Session, store: FileStore, appointment_id: Optional[int], files: Sequence[UploadFile],
                 max_bytes: int):
    if not appointment_id:
        raise ValidationFailed("Appointment ID is required", fields=["appointment_id"])
    if not [f for f in files or () if f and f.filename]:
        raise ValidationFailed("No files provided", fields=["files"])
    if not db.get(Appointment, appointment_id):
        raise NotFound("Appointment not found")

    logger.info("Processing %d file(s) for appointment %s", len(files), appointment_id)
    return store_files(db, store, appointment_id, files, max_bytes)


# ----------------------------------------------------
# LOOKUPS
# ----------------------------------------------------

def _files_for(db: Session, appointment: Appointment) -> List[AppointmentFile]:
    try:
        return (
            db.query(AppointmentFile)
            .filter(AppointmentFile.appointment_id == appointment.id)
            .order_by(AppointmentFile.created_at.desc())
            .all()
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Failed to fetch files for appointment %s: %s", appointment.id, e)
        return []


def with_files(db: Session, appointments: List[Appointment]) -> List[schemas.AppointmentWithFiles]:
    """Attaches files to each appointment; a failed fetch yields an empty list."""
    results = []
    for appointment in appointments:
        base = schemas.Appointment.model_validate(appointment)
        files = [schemas.AppointmentFile.model_validate(f) for f in _files_for(db, appointment)]
        results.append(schemas.AppointmentWithFiles(**base.model_dump(), files=files))
    return results


def find_by_phone(db: Session, phone: Optional[str]) -> List[schemas.AppointmentWithFiles]:
    normalized = normalize_phone(phone)
    if not normalized:
        raise ValidationFailed("Phone number is required", fields=["phone"])

    appointments = (
        db.query(Appointment)
        .filter(Appointment.customer_phone == normalized)
        .order_by(Appointment.created_at.desc(), Appointment.id.desc())
        .all()
    )
    return with_files(db, appointments)


def list_for_staff(db: Session, archived: Optional[bool] = False) -> List[schemas.AppointmentWithFiles]:
    query = db.query(Appointment)
    if archived is not None:
        query = query.filter(Appointment.archived == archived)
    appointments = query.order_by(Appointment.created_at.desc(), Appointment.id.desc()).all()
    return with_files(db, appointments)


def list_for_customer(db: Session, account: CustomerUser) -> List[Appointment]:
    return (
        db.query(Appointment)
        .filter(or_(
            Appointment.customer_user_id == account.id,
            Appointment.customer_phone == normalize_phone(account.phone),
        ))
        .order_by(Appointment.created_at.desc(), Appointment.id.desc())
        .all()
    )


# ----------------------------------------------------
# STAFF EDITS
# ----------------------------------------------------

def _get(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if not appointment:
        raise NotFound("Appointment not found")
    return appointment


def update_status(db: Session, appointment_id: int, status: AppointmentStatus) -> Appointment:
    appointment = _get(db, appointment_id)
    try:
        appointment.status = status.value
        appointment.updated_at = utcnow()
        db.commit()
        db.refresh(appointment)
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamError("Failed to update appointment", details=str(e))
    return appointment


def save_repair_case(db: Session, appointment_id: int, data: schemas.RepairCase) -> RepairCase:
    appointment = _get(db, appointment_id)
    values = data.model_dump(exclude={"id", "appointment_id"}, exclude_unset=True)

    try:
        repair_case = appointment.repair_case
        if repair_case is None:
            repair_case = RepairCase(appointment_id=appointment.id, **values)
            db.add(repair_case)
        else:
            for key, value in values.items():
                setattr(repair_case, key, value)
            repair_case.updated_at = utcnow()
        db.commit()
        db.refresh(repair_case)
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamError("Failed to save repair case", details=str(e))
    return repair_case


# ----------------------------------------------------
# NOTES
# ----------------------------------------------------

def _clean_note_text(note_text: Optional[str]) -> str:
    text = (note_text or "").strip()
    if not text:
        raise ValidationFailed("Note text cannot be empty", fields=["note_text"])
    return text


def list_notes(db: Session, appointment_id: Optional[int]) -> List[AppointmentNote]:
    if not appointment_id:
        raise ValidationFailed("Appointment ID is required", fields=["appointment_id"])
    return (
        db.query(AppointmentNote)
        .filter(AppointmentNote.appointment_id == appointment_id)
        .order_by(AppointmentNote.created_at.desc(), AppointmentNote.id.desc())
        .all()
    )


def add_note(db: Session, appointment_id: Optional[int], note_text: Optional[str],
             staff_name: Optional[str]) -> AppointmentNote:
    missing = [name for name, value in (
        ("appointment_id", appointment_id),
        ("note_text", note_text),
        ("staff_name", staff_name),
    ) if not value]
    if missing:
        raise ValidationFailed(
            "Missing required fields: appointment_id, note_text, staff_name", fields=missing
        )
    text = _clean_note_text(note_text)
    _get(db, appointment_id)

    now = utcnow()
    note = AppointmentNote(
        appointment_id=appointment_id,
        note_text=text,
        staff_name=staff_name,
        created_at=now,
        updated_at=now,
    )
    try:
        db.add(note)
        db.commit()
        db.refresh(note)
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamError("Failed to create note", details=str(e))
    return note


def edit_note(db: Session, note_id: Optional[int], note_text: Optional[str]) -> AppointmentNote:
    if not note_id or not note_text:
        missing = [name for name, value in (("note_id", note_id), ("note_text", note_text)) if not value]
        raise ValidationFailed("Missing required fields: note_id, note_text", fields=missing)
    text = _clean_note_text(note_text)

    note = db.get(AppointmentNote, note_id)
    if not note:
        raise NotFound("Note not found")
    try:
        note.note_text = text
        note.updated_at = utcnow()
        db.commit()
        db.refresh(note)
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamError("Failed to update note", details=str(e))
    return note


def delete_note(db: Session, note_id: Optional[int]) -> None:
    if not note_id:
        raise ValidationFailed("Note ID is required", fields=["note_id"])

    note = db.get(AppointmentNote, note_id)
    if not note:
        raise NotFound("Note not found")
    try:
        db.delete(note)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamError("Failed to delete note", details=str(e))
