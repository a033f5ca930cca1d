from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Customer(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None

    insurance_company: Optional[str] = None
    policy_number: Optional[str] = None
    insurance_claim_number: Optional[str] = None
    insurance_adjuster_name: Optional[str] = None
    insurance_adjuster_phone: Optional[str] = None
    insurance_adjuster_email: Optional[str] = None

    created_at: datetime
    updated_at: datetime


# Portal account linked to an externally authenticated identity
class CustomerUserRegister(BaseModel):
    auth_user_id: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None


class CustomerUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    auth_user_id: str
    email: str
    full_name: str
    phone: str
    is_active: bool
    email_verified: bool
    created_at: datetime
