"""
Equipment registry: read-only view of equipment items and their status.
"""
from typing import Iterator
from sqlalchemy import and_, exists
from sqlalchemy.orm import Session

from ..models.models import Equipment, ProjectEquipment
from .errors import NotFound


class EquipmentRegistry:
    def get_status(self, db: Session, equipment_id: int) -> Equipment:
        equipment = db.get(Equipment, equipment_id)
        if equipment is None:
            raise NotFound("equipment", equipment_id)
        return equipment

    def get_by_code(self, db: Session, code: str) -> Equipment:
        equipment = db.query(Equipment).filter(Equipment.code == code).first()
        if equipment is None:
            raise NotFound("equipment", code)
        return equipment

    def list_available(self, db: Session) -> Iterator[Equipment]:
        """
        Yield equipment with no active exclusive assignment.

        Items held only by shared assignments are included. Every call runs a
        fresh query.
        """
        held_exclusively = exists().where(
            and_(
                ProjectEquipment.equipment_id == Equipment.id,
                ProjectEquipment.actual_return_at.is_(None),
                ProjectEquipment.is_shared.is_(False),
            )
        )
        query = db.query(Equipment).filter(~held_exclusively).order_by(Equipment.name, Equipment.id)
        for equipment in query:
            yield equipment


registry = EquipmentRegistry()
