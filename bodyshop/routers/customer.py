from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bodyshop.database import get_db
from bodyshop.models import appointment as appointment_schemas
from bodyshop.models.customer import CustomerUser, CustomerUserRegister
from bodyshop.services import appointments as appointment_service
from bodyshop.services import customers as service

router = APIRouter(prefix="/customer", tags=["customer portal"])


@router.post("/register", name="register_customer", status_code=201)
def register_customer(data: CustomerUserRegister, db: Session = Depends(get_db)):
    account = service.register_customer(db, data)
    return {"success": True, "customer": CustomerUser.model_validate(account)}


@router.get("/appointments", name="customer_appointments")
def customer_appointments(auth_user_id: Optional[str] = None, db: Session = Depends(get_db)):
    """The portal account and every appointment it booked or that carries its phone."""
    account = service.get_account(db, auth_user_id)
    appointments = appointment_service.list_for_customer(db, account)
    return {
        "customer": CustomerUser.model_validate(account),
        "appointments": appointment_service.with_files(db, appointments),
    }
