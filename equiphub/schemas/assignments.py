from datetime import datetime
from typing import Optional
from enum import Enum

from pydantic import BaseModel, field_validator


# Enums
class AssignmentStatus(str, Enum):
    assigned = "assigned"
    in_use = "in_use"
    returned = "returned"


class AuthorizationReason(str, Enum):
    no_conflict = "no_conflict"
    shared_authorized = "shared_authorized"
    shared_code_invalid = "shared_code_invalid"
    exclusive_conflict = "exclusive_conflict"


def _blank_to_none(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


# Assignment Schemas
class AssignmentRequest(BaseModel):
    """Body of POST /projects/{project_id}/equipment"""
    equipment_id: int
    is_shared: bool = False
    authorization_code: Optional[str] = None  # required if is_shared or joining a shared assignment
    assigned_by: Optional[int] = None  # admins only; defaults to the caller
    expected_return_at: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("authorization_code")
    @classmethod
    def _strip_code(cls, v):
        # surrounding whitespace is never part of a code; comparison stays case-sensitive
        return _blank_to_none(v)


class AssignmentCommand(AssignmentRequest):
    """AssignmentRequest resolved against its project and caller"""
    project_id: int
    assigned_by: int


class AssignmentDraft(BaseModel):
    """What the ledger inserts"""
    equipment_id: int
    project_id: int
    assigned_by: int
    is_shared: bool = False
    authorization_code: Optional[str] = None
    assigned_at: Optional[datetime] = None
    expected_return_at: Optional[datetime] = None
    notes: Optional[str] = None


class AssignmentUpdate(BaseModel):
    expected_return_at: Optional[datetime] = None
    notes: Optional[str] = None
    status: Optional[AssignmentStatus] = None


class AssignmentReturn(BaseModel):
    actual_return_at: Optional[datetime] = None
    notes: Optional[str] = None


class AssignmentResponse(BaseModel):
    # authorization_code is never echoed back
    id: int
    equipment_id: int
    project_id: int
    assigned_at: datetime
    expected_return_at: Optional[datetime] = None
    actual_return_at: Optional[datetime] = None
    assigned_by: int
    is_shared: bool
    notes: Optional[str] = None
    status: AssignmentStatus
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

