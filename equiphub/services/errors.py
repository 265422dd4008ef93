"""
Structured errors raised by the assignment services.

Every error carries a machine-readable ``kind`` and ``reason`` plus a context
dict, so HTTP handlers and UIs can branch without string matching.
"""
from datetime import datetime
from typing import Any, Dict, Optional


class AssignmentError(Exception):
    kind = "assignment_error"
    status_code = 400

    def __init__(self, reason: str, message: Optional[str] = None, **context: Any):
        self.reason = reason
        self.context = context
        super().__init__(message or reason)

    def to_dict(self) -> Dict[str, Any]:
        data = {"kind": self.kind, "reason": self.reason, "message": str(self)}
        for key, value in self.context.items():
            data[key] = value.isoformat() if isinstance(value, datetime) else value
        return data


class NotFound(AssignmentError):
    kind = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            f"{entity}_not_found",
            f"{entity.replace('_', ' ').capitalize()} {entity_id} not found",
            entity=entity,
            entity_id=entity_id,
        )


class ConflictError(AssignmentError):
    """Another project holds the equipment.

    ``reason`` is ``exclusive_conflict`` or ``shared_code_invalid``. When raised
    by the coordinator, ``report`` describes the blocking assignment.
    """
    kind = "conflict"
    status_code = 409

    def __init__(self, reason: str, message: Optional[str] = None, report: Optional["ConflictReport"] = None, **context: Any):
        self.report = report
        if report is not None:
            details = report.to_dict()
            details.pop("reason")
            context = {**details, **context}
        super().__init__(reason, message, **context)


class RaceLost(AssignmentError):
    """The ledger's serialized re-check rejected a request the gate had approved."""
    kind = "race_lost"
    status_code = 409

    def __init__(self, equipment_id: int, message: Optional[str] = None):
        super().__init__(
            "race_lost",
            message or f"Equipment {equipment_id} was assigned concurrently; re-issue the request",
            equipment_id=equipment_id,
        )


class AlreadyClosed(AssignmentError):
    kind = "already_closed"
    status_code = 409

    def __init__(self, assignment_id: int, actual_return_at: Optional[datetime] = None):
        super().__init__(
            "already_closed",
            f"Assignment {assignment_id} has already been returned",
            assignment_id=assignment_id,
            actual_return_at=actual_return_at,
        )


class InvalidRequest(AssignmentError):
    kind = "invalid_request"
    status_code = 422


class ConflictReport:
    """What the caller is shown when an assignment request is denied."""

    def __init__(
        self,
        conflicting_project_id: int,
        conflicting_project_name: Optional[str],
        is_shared: bool,
        expected_return_at: Optional[datetime],
        reason: str,
    ):
        self.conflicting_project_id = conflicting_project_id
        self.conflicting_project_name = conflicting_project_name
        self.is_shared = is_shared
        self.expected_return_at = expected_return_at
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conflicting_project_id": self.conflicting_project_id,
            "conflicting_project_name": self.conflicting_project_name,
            "is_shared": self.is_shared,
            "expected_return_at": self.expected_return_at,
            "reason": self.reason,
        }

    def __repr__(self) -> str:
        return f"ConflictReport(project={self.conflicting_project_id}, reason={self.reason})"
