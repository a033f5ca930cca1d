from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Vehicle(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int  # Foreign key to the CRM customer
    year: str
    make: str
    model: str
    vin: str
    color: Optional[str] = None
    license_plate: Optional[str] = None
    mileage: Optional[int] = None
    created_at: datetime
    updated_at: datetime
