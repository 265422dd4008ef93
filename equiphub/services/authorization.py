"""
Authorization gate for assignment requests.

Decides, from the ledger's view of an item's active assignments, whether a
project may take the item. Pure: it reads and never writes.
"""
import hmac
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from ..models.models import ProjectEquipment
from ..schemas.assignments import AuthorizationReason


def codes_match(supplied: Optional[str], stored: Optional[str]) -> bool:
    """Exact, case-sensitive comparison; an absent code never matches."""
    if not supplied or not stored:
        return False
    return hmac.compare_digest(supplied.encode("utf-8"), stored.encode("utf-8"))


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    reason: AuthorizationReason
    conflicting_assignment: Optional[ProjectEquipment] = None
    # Set when the requesting project already holds the item (update in place)
    own_assignment: Optional[ProjectEquipment] = None


class AuthorizationGate:
    def __init__(self, ledger):
        self.ledger = ledger

    def evaluate(
        self,
        db: Session,
        equipment_id: int,
        requested_by: int,
        supplied_code: Optional[str] = None,
    ) -> AuthorizationDecision:
        active = self.ledger.find_active_assignments(db, equipment_id)
        if not active:
            return AuthorizationDecision(True, AuthorizationReason.no_conflict)

        own = next((a for a in active if a.project_id == requested_by), None)
        if own is not None:
            return AuthorizationDecision(True, AuthorizationReason.no_conflict, own_assignment=own)

        # An exclusive holder blocks outright; otherwise the most recent shared record decides
        exclusive = next((a for a in active if not a.is_shared), None)
        if exclusive is not None:
            return AuthorizationDecision(False, AuthorizationReason.exclusive_conflict, conflicting_assignment=exclusive)

        conflicting = active[0]
        if codes_match(supplied_code, conflicting.authorization_code):
            return AuthorizationDecision(True, AuthorizationReason.shared_authorized, conflicting_assignment=conflicting)
        return AuthorizationDecision(False, AuthorizationReason.shared_code_invalid, conflicting_assignment=conflicting)
