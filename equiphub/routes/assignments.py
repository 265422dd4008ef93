from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import is_admin, require_permissions
from ..models.models import User
from ..schemas.assignments import (
    AssignmentCommand,
    AssignmentRequest,
    AssignmentResponse,
    AssignmentReturn,
    AssignmentUpdate,
)
from ..services.coordinator import coordinator
from ..services.directory import projects
from ..services.ledger import ledger

router = APIRouter(tags=["assignments"])


def _require_project_manager(db: Session, user: User, project_id: int) -> None:
    if is_admin(user):
        return
    if not projects.is_manager(db, project_id, user.id):
        raise HTTPException(status_code=403, detail="Only project managers can manage project equipment")


def _require_project_member(db: Session, user: User, project_id: int) -> None:
    if is_admin(user):
        return
    if not projects.is_member(db, project_id, user.id):
        raise HTTPException(status_code=403, detail="Not a member of this project")


# ---------- PROJECT EQUIPMENT ----------
@router.get("/projects/{project_id}/equipment", response_model=List[AssignmentResponse])
def list_project_equipment(
    project_id: int,
    active_only: bool = Query(False),
    db: Session = Depends(get_db),
    user=Depends(require_permissions("equipment:read"))
):
    """Equipment assigned to a project"""
    projects.get(db, project_id)
    _require_project_member(db, user, project_id)
    return ledger.list_for_project(db, project_id, active_only=active_only)


@router.post("/projects/{project_id}/equipment", response_model=AssignmentResponse, status_code=201)
def assign_equipment(
    project_id: int,
    request: AssignmentRequest,
    db: Session = Depends(get_db),
    user=Depends(require_permissions("equipment:assign"))
):
    """Assign equipment to a project; 409 with a conflict report if another project holds it"""
    projects.get(db, project_id)
    _require_project_manager(db, user, project_id)
    # only admins may record an assignment on behalf of someone else
    assigned_by = request.assigned_by if is_admin(user) and request.assigned_by else user.id
    command = AssignmentCommand(
        **request.model_dump(exclude={"assigned_by"}),
        project_id=project_id,
        assigned_by=assigned_by,
    )
    return coordinator.request_assignment(db, command)


@router.get("/project-equipment/{assignment_id}", response_model=AssignmentResponse)
def get_project_equipment(
    assignment_id: int,
    db: Session = Depends(get_db),
    user=Depends(require_permissions("equipment:read"))
):
    assignment = ledger.get(db, assignment_id)
    _require_project_member(db, user, assignment.project_id)
    return assignment


@router.put("/project-equipment/{assignment_id}", response_model=AssignmentResponse)
def update_project_equipment(
    assignment_id: int,
    changes: AssignmentUpdate,
    db: Session = Depends(get_db),
    user=Depends(require_permissions("equipment:assign"))
):
    """Update notes, expected return date or status of an active assignment"""
    assignment = ledger.get(db, assignment_id)
    _require_project_manager(db, user, assignment.project_id)
    return coordinator.update_assignment(db, assignment_id, changes, user_id=user.id)


@router.put("/project-equipment/{assignment_id}/return", response_model=AssignmentResponse)
def return_project_equipment(
    assignment_id: int,
    return_data: AssignmentReturn,
    db: Session = Depends(get_db),
    user=Depends(require_permissions("equipment:assign"))
):
    """Return equipment (close the assignment)"""
    assignment = ledger.get(db, assignment_id)
    _require_project_manager(db, user, assignment.project_id)
    return coordinator.release_assignment(
        db,
        assignment_id,
        actual_return_at=return_data.actual_return_at,
        notes=return_data.notes,
        user_id=user.id,
    )
