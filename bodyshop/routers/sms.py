from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bodyshop.database import get_db
from bodyshop.database_models import SmsLog
from bodyshop.models import sms as schemas
from bodyshop.services import sms as service

router = APIRouter(prefix="/sms", tags=["sms"])


@router.post("/send", name="send_sms")
def send_sms(data: schemas.SendSmsRequest, db: Session = Depends(get_db),
             gateway=Depends(service.get_sms_gateway)):
    return service.send_sms(db, gateway, data)


@router.get("/logs", name="sms_logs")
def sms_logs(
    appointment_id: Optional[int] = None,
    ro_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Delivery log, newest first."""
    query = db.query(SmsLog)
    if appointment_id:
        query = query.filter(SmsLog.related_appointment_id == appointment_id)
    if ro_id:
        query = query.filter(SmsLog.related_ro_id == ro_id)
    logs = query.order_by(SmsLog.created_at.desc(), SmsLog.id.desc()).limit(limit).all()
    return {"logs": [schemas.SmsLog.model_validate(log) for log in logs]}
