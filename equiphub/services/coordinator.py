"""
Assignment coordinator.

Runs one assignment request through
Received -> Checked -> Authorized -> Committed, or Checked -> Denied -> Reported.
Both terminal states are final; a request that loses the race at commit time
is reported as RaceLost and never retried here.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from ..models.models import EquipmentLog, ProjectEquipment
from ..schemas.assignments import (
    AssignmentCommand,
    AssignmentDraft,
    AssignmentUpdate,
    AuthorizationReason,
)
from .authorization import AuthorizationDecision, AuthorizationGate, codes_match
from .directory import ProjectDirectory, UserDirectory, projects as project_directory, users as user_directory
from .errors import ConflictError, ConflictReport, InvalidRequest, RaceLost
from .ledger import AssignmentLedger, ledger as default_ledger
from .registry import EquipmentRegistry, registry as default_registry

logger = structlog.get_logger(__name__)


class RequestState(str, Enum):
    received = "received"
    checked = "checked"
    authorized = "authorized"
    committed = "committed"
    denied = "denied"
    reported = "reported"


class AssignmentCoordinator:
    def __init__(
        self,
        registry: EquipmentRegistry = default_registry,
        ledger: AssignmentLedger = default_ledger,
        gate: Optional[AuthorizationGate] = None,
        projects: ProjectDirectory = project_directory,
        users: UserDirectory = user_directory,
    ):
        self.registry = registry
        self.ledger = ledger
        self.gate = gate or AuthorizationGate(ledger)
        self.projects = projects
        self.users = users

    def request_assignment(self, db: Session, command: AssignmentCommand) -> ProjectEquipment:
        """
        Assign ``command.equipment_id`` to ``command.project_id``.

        Returns the committed assignment (or the requesting project's existing
        one, updated in place). Raises NotFound, InvalidRequest, ConflictError
        carrying a ConflictReport, or RaceLost.
        """
        log = logger.bind(equipment_id=command.equipment_id, project_id=command.project_id)

        # Received
        log.debug("assignment_received", state=RequestState.received.value, is_shared=command.is_shared)
        self.registry.get_status(db, command.equipment_id)
        self.projects.get(db, command.project_id)
        self.users.require(db, command.assigned_by)
        if command.is_shared and not command.authorization_code:
            raise InvalidRequest(
                "authorization_code_required",
                "An authorization code is required to share equipment",
            )

        # Checked
        decision = self.gate.evaluate(db, command.equipment_id, command.project_id, command.authorization_code)
        log.debug("assignment_checked", state=RequestState.checked.value, reason=decision.reason.value)

        if not decision.allowed:
            log.debug("assignment_denied_check", state=RequestState.denied.value)
            report = self._report(db, decision)
            log.info(
                "assignment_denied",
                state=RequestState.reported.value,
                reason=report.reason,
                conflicting_project_id=report.conflicting_project_id,
            )
            raise ConflictError(report.reason, self._denial_message(report), report=report)

        if decision.own_assignment is not None:
            return self._update_in_place(db, command, decision.own_assignment)

        # Authorized: joining a shared group always yields a shared record
        log.debug("assignment_authorized", state=RequestState.authorized.value)
        is_shared = command.is_shared or decision.reason == AuthorizationReason.shared_authorized
        draft = AssignmentDraft(
            equipment_id=command.equipment_id,
            project_id=command.project_id,
            assigned_by=command.assigned_by,
            is_shared=is_shared,
            authorization_code=command.authorization_code if is_shared else None,
            expected_return_at=command.expected_return_at,
            notes=command.notes,
        )
        try:
            record = self.ledger.create(db, draft, supplied_code=command.authorization_code)
        except ConflictError as exc:
            log.warning("assignment_race_lost", state=RequestState.reported.value, reason=exc.reason)
            raise RaceLost(command.equipment_id) from exc

        self._append_log(
            db,
            record,
            "assignment",
            command.assigned_by,
            f"Equipment assigned to project {record.project_id}" + (" (shared)" if record.is_shared else ""),
        )
        log.info(
            "assignment_committed",
            state=RequestState.committed.value,
            assignment_id=record.id,
            is_shared=record.is_shared,
            reason=decision.reason.value,
        )
        return record

    def release_assignment(
        self,
        db: Session,
        assignment_id: int,
        actual_return_at: Optional[datetime] = None,
        notes: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> ProjectEquipment:
        record = self.ledger.close(db, assignment_id, actual_return_at, notes)
        self._append_log(db, record, "return", user_id, f"Equipment returned from project {record.project_id}")
        logger.info(
            "assignment_released",
            assignment_id=record.id,
            equipment_id=record.equipment_id,
            project_id=record.project_id,
        )
        return record

    def update_assignment(
        self,
        db: Session,
        assignment_id: int,
        changes: AssignmentUpdate,
        user_id: Optional[int] = None,
    ) -> ProjectEquipment:
        record = self.ledger.update(db, assignment_id, changes)
        fields = ", ".join(sorted(changes.model_dump(exclude_unset=True))) or "nothing"
        self._append_log(db, record, "update", user_id, f"Assignment updated ({fields})")
        logger.info("assignment_updated", assignment_id=record.id, equipment_id=record.equipment_id)
        return record

    # ---------- helpers ----------
    def _update_in_place(self, db: Session, command: AssignmentCommand, own: ProjectEquipment) -> ProjectEquipment:
        # A matching group code counts as a shared request, as when the project joined
        wants_shared = command.is_shared or (
            own.is_shared and codes_match(command.authorization_code, own.authorization_code)
        )
        if wants_shared != own.is_shared:
            # Share mode only changes through release + a new request
            raise InvalidRequest(
                "share_mode_change_requires_release",
                f"Project {own.project_id} already holds equipment {own.equipment_id}; "
                "release it and request again to change sharing",
                assignment_id=own.id,
            )
        changes = AssignmentUpdate(
            **{
                key: value
                for key, value in (("expected_return_at", command.expected_return_at), ("notes", command.notes))
                if value is not None
            }
        )
        return self.update_assignment(db, own.id, changes, user_id=command.assigned_by)

    def _report(self, db: Session, decision: AuthorizationDecision) -> ConflictReport:
        conflicting = decision.conflicting_assignment
        return ConflictReport(
            conflicting_project_id=conflicting.project_id,
            conflicting_project_name=self.projects.name_of(db, conflicting.project_id),
            is_shared=conflicting.is_shared,
            expected_return_at=conflicting.expected_return_at,
            reason=decision.reason.value,
        )

    @staticmethod
    def _denial_message(report: ConflictReport) -> str:
        name = report.conflicting_project_name or f"project {report.conflicting_project_id}"
        if report.reason == AuthorizationReason.shared_code_invalid.value:
            return f"Equipment is shared by {name}; the authorization code is missing or incorrect"
        return f"Equipment is in use by {name} (exclusive)"

    @staticmethod
    def _append_log(db: Session, record: ProjectEquipment, log_type: str, user_id: Optional[int], description: str) -> None:
        db.add(EquipmentLog(
            equipment_id=record.equipment_id,
            log_type=log_type,
            user_id=user_id,
            project_id=record.project_id,
            assignment_id=record.id,
            description=description,
        ))
        db.commit()


coordinator = AssignmentCoordinator()
