"""
Assignment ledger: the only writer of ProjectEquipment rows.

``create`` and ``close`` run under a per-equipment mutual-exclusion scope:
an in-process keyed lock, a row lock on the equipment row (PostgreSQL), and
the partial unique index on active exclusive assignments. Within that scope
the active set is re-read and exclusivity and shared-code rules are
checked again before insert.
"""
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import Equipment, ProjectEquipment
from ..schemas.assignments import AssignmentDraft, AssignmentStatus, AssignmentUpdate
from .authorization import codes_match
from .errors import AlreadyClosed, ConflictError, InvalidRequest, NotFound, RaceLost
from .locks import KeyedLock, equipment_locks

logger = structlog.get_logger(__name__)


class AssignmentLedger:
    def __init__(self, locks: KeyedLock = equipment_locks, lock_timeout: Optional[float] = None):
        self.locks = locks
        self.lock_timeout = lock_timeout

    @property
    def _timeout(self) -> float:
        return self.lock_timeout if self.lock_timeout is not None else settings.assignment_lock_timeout_s

    # ---------- READS ----------
    def get(self, db: Session, assignment_id: int) -> ProjectEquipment:
        record = db.get(ProjectEquipment, assignment_id)
        if record is None:
            raise NotFound("assignment", assignment_id)
        return record

    def _active_query(self, db: Session, equipment_id: int):
        return db.query(ProjectEquipment).filter(
            ProjectEquipment.equipment_id == equipment_id,
            ProjectEquipment.actual_return_at.is_(None),
        ).order_by(ProjectEquipment.assigned_at.desc(), ProjectEquipment.id.desc())

    def find_active_assignments(self, db: Session, equipment_id: int) -> List[ProjectEquipment]:
        """Active assignments for an item, most recent first (several only when all are shared)."""
        return self._active_query(db, equipment_id).populate_existing().all()

    def history(self, db: Session, equipment_id: int) -> List[ProjectEquipment]:
        return db.query(ProjectEquipment).filter(
            ProjectEquipment.equipment_id == equipment_id
        ).order_by(ProjectEquipment.assigned_at.desc(), ProjectEquipment.id.desc()).all()

    def list_for_project(self, db: Session, project_id: int, active_only: bool = False) -> List[ProjectEquipment]:
        query = db.query(ProjectEquipment).filter(ProjectEquipment.project_id == project_id)
        if active_only:
            query = query.filter(ProjectEquipment.actual_return_at.is_(None))
        return query.order_by(ProjectEquipment.assigned_at.desc(), ProjectEquipment.id.desc()).all()

    # ---------- WRITES ----------
    def create(self, db: Session, draft: AssignmentDraft, supplied_code: Optional[str] = None) -> ProjectEquipment:
        """
        Insert a new assignment after re-checking exclusivity atomically.

        ``supplied_code`` is the code presented to join an existing shared
        assignment. A joining record adopts the group's stored code.

        Raises ConflictError when the re-check fails and RaceLost when the
        equipment lock could not be acquired in time.
        """
        with self.locks.hold(draft.equipment_id, timeout=self._timeout) as acquired:
            if not acquired:
                logger.warning("assignment_lock_timeout", equipment_id=draft.equipment_id)
                raise RaceLost(draft.equipment_id, f"Timed out waiting for equipment {draft.equipment_id}")
            try:
                equipment = db.query(Equipment).filter(
                    Equipment.id == draft.equipment_id
                ).with_for_update().first()
                if equipment is None:
                    raise NotFound("equipment", draft.equipment_id)

                active = self.find_active_assignments(db, draft.equipment_id)
                code = self._validate(draft, active, supplied_code)

                record = ProjectEquipment(
                    equipment_id=draft.equipment_id,
                    project_id=draft.project_id,
                    assigned_by=draft.assigned_by,
                    assigned_at=draft.assigned_at or datetime.now(timezone.utc),
                    expected_return_at=draft.expected_return_at,
                    notes=draft.notes,
                    is_shared=draft.is_shared,
                    authorization_code=code,
                    status=AssignmentStatus.assigned.value,
                )
                db.add(record)
                db.commit()
            except IntegrityError:
                db.rollback()
                raise ConflictError(
                    "exclusive_conflict",
                    f"Equipment {draft.equipment_id} already has an active exclusive assignment",
                    equipment_id=draft.equipment_id,
                )
            except Exception:
                db.rollback()
                raise
        db.refresh(record)
        return record

    def _validate(self, draft: AssignmentDraft, active: List[ProjectEquipment], supplied_code: Optional[str]) -> Optional[str]:
        """Check ``draft`` against the active set; return the code to store."""
        if not draft.is_shared:
            if active:
                holder = active[0]
                raise ConflictError(
                    "exclusive_conflict",
                    f"Equipment {draft.equipment_id} is assigned to project {holder.project_id}",
                    conflicting_assignment_id=holder.id,
                    conflicting_project_id=holder.project_id,
                )
            return None

        if not active:
            if not draft.authorization_code:
                raise InvalidRequest("authorization_code_required", "Shared assignments need an authorization code")
            return draft.authorization_code

        for record in active:
            if record.project_id == draft.project_id:
                raise ConflictError(
                    "duplicate_assignment",
                    f"Project {draft.project_id} already holds equipment {draft.equipment_id}",
                    conflicting_assignment_id=record.id,
                    conflicting_project_id=record.project_id,
                )
            if not record.is_shared:
                raise ConflictError(
                    "exclusive_conflict",
                    f"Equipment {draft.equipment_id} is assigned exclusively to project {record.project_id}",
                    conflicting_assignment_id=record.id,
                    conflicting_project_id=record.project_id,
                )

        holder = active[0]
        if not codes_match(supplied_code, holder.authorization_code):
            raise ConflictError(
                "shared_code_invalid",
                f"Authorization code does not match the shared assignment of project {holder.project_id}",
                conflicting_assignment_id=holder.id,
                conflicting_project_id=holder.project_id,
            )
        return holder.authorization_code

    def close(
        self,
        db: Session,
        assignment_id: int,
        actual_return_at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> ProjectEquipment:
        record = self.get(db, assignment_id)
        with self.locks.hold(record.equipment_id, timeout=self._timeout) as acquired:
            if not acquired:
                raise RaceLost(record.equipment_id, f"Timed out waiting for equipment {record.equipment_id}")
            try:
                record = db.query(ProjectEquipment).filter(
                    ProjectEquipment.id == assignment_id
                ).with_for_update().populate_existing().one()
                if record.actual_return_at is not None:
                    raise AlreadyClosed(assignment_id, record.actual_return_at)

                now = datetime.now(timezone.utc)
                record.actual_return_at = actual_return_at or now
                record.status = AssignmentStatus.returned.value
                record.updated_at = now
                if notes:
                    record.notes = (record.notes or "") + f"\nReturn notes: {notes}"
                db.commit()
            except Exception:
                db.rollback()
                raise
        db.refresh(record)
        return record

    def update(self, db: Session, assignment_id: int, changes: AssignmentUpdate) -> ProjectEquipment:
        """Edit notes, expected return and assigned/in_use status of an active assignment."""
        data = changes.model_dump(exclude_unset=True)
        if data.get("status") == AssignmentStatus.returned:
            raise InvalidRequest("use_return", "Return an assignment through the return operation")

        record = self.get(db, assignment_id)
        with self.locks.hold(record.equipment_id, timeout=self._timeout) as acquired:
            if not acquired:
                raise RaceLost(record.equipment_id, f"Timed out waiting for equipment {record.equipment_id}")
            try:
                # the identity map may hold a copy from before a concurrent close
                record = db.query(ProjectEquipment).filter(
                    ProjectEquipment.id == assignment_id
                ).with_for_update().populate_existing().one()
                if record.actual_return_at is not None:
                    raise AlreadyClosed(assignment_id, record.actual_return_at)

                for key, value in data.items():
                    if key == "status":
                        if value is None:
                            continue
                        value = AssignmentStatus(value).value
                    setattr(record, key, value)
                record.updated_at = datetime.now(timezone.utc)
                db.commit()
            except Exception:
                db.rollback()
                raise
        db.refresh(record)
        return record


ledger = AssignmentLedger()
