from datetime import datetime
from typing import Optional
from enum import Enum

from pydantic import BaseModel


class EquipmentStatus(str, Enum):
    operational = "operational"
    maintenance = "maintenance"
    out_of_service = "out_of_service"
    repair = "repair"


class EquipmentResponse(BaseModel):
    id: int
    name: str
    code: str
    type_id: Optional[int] = None
    status: EquipmentStatus
    location: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
