import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from bodyshop.database_models import CustomerUser
from bodyshop.errors import Conflict, NotFound, UpstreamError, ValidationFailed
from bodyshop.models.customer import CustomerUserRegister
from bodyshop.services.crm import normalize_phone

logger = logging.getLogger(__name__)

ALREADY_REGISTERED = "Customer profile already exists"


def register_customer(db: Session, data: CustomerUserRegister) -> CustomerUser:
    """Links a portal profile to an identity issued by the external auth provider."""
    missing = [name for name in ("auth_user_id", "email", "full_name", "phone") if not getattr(data, name)]
    if missing:
        raise ValidationFailed("Missing required fields", fields=missing)

    if db.query(CustomerUser).filter(CustomerUser.auth_user_id == data.auth_user_id).first():
        raise Conflict(ALREADY_REGISTERED, status_code=409)

    account = CustomerUser(
        auth_user_id=data.auth_user_id,
        email=data.email.strip().lower(),
        full_name=data.full_name.strip(),
        phone=normalize_phone(data.phone),
    )
    try:
        db.add(account)
        db.commit()
        db.refresh(account)
    except IntegrityError:
        db.rollback()
        raise Conflict(ALREADY_REGISTERED, status_code=409)
    except SQLAlchemyError as e:
        db.rollback()
        raise UpstreamError("Failed to create customer profile", details=str(e))

    logger.info("Customer profile %s registered", account.id)
    return account


def get_account(db: Session, auth_user_id: Optional[str]) -> CustomerUser:
    if not auth_user_id:
        raise ValidationFailed("auth_user_id is required", fields=["auth_user_id"])
    account = db.query(CustomerUser).filter(CustomerUser.auth_user_id == auth_user_id).first()
    if not account:
        raise NotFound("Customer profile not found")
    return account
