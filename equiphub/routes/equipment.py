from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import require_permissions
from ..schemas.assignments import AssignmentResponse
from ..schemas.equipment import EquipmentResponse
from ..services.ledger import ledger
from ..services.registry import registry

router = APIRouter(prefix="/equipment", tags=["equipment"])


@router.get("/available", response_model=List[EquipmentResponse])
def list_available_equipment(
    db: Session = Depends(get_db),
    _=Depends(require_permissions("equipment:read"))
):
    """Equipment not held exclusively by any project (shared items included)"""
    return list(registry.list_available(db))


@router.get("/{equipment_id}", response_model=EquipmentResponse)
def get_equipment(
    equipment_id: int,
    db: Session = Depends(get_db),
    _=Depends(require_permissions("equipment:read"))
):
    return registry.get_status(db, equipment_id)


@router.get("/{equipment_id}/assignments/current", response_model=List[AssignmentResponse])
def get_current_assignments(
    equipment_id: int,
    db: Session = Depends(get_db),
    _=Depends(require_permissions("equipment:read"))
):
    """Active assignments for an item"""
    registry.get_status(db, equipment_id)
    return ledger.find_active_assignments(db, equipment_id)


@router.get("/{equipment_id}/assignments", response_model=List[AssignmentResponse])
def get_assignment_history(
    equipment_id: int,
    db: Session = Depends(get_db),
    _=Depends(require_permissions("equipment:read"))
):
    """Assignment history for an item, newest first"""
    registry.get_status(db, equipment_id)
    return ledger.history(db, equipment_id)
