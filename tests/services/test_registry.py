"""
Equipment registry: status lookups and the available-equipment listing.
"""
import pytest

from equiphub.schemas.assignments import AssignmentDraft
from equiphub.services.errors import NotFound
from equiphub.services.ledger import ledger
from equiphub.services.registry import registry


def test_get_status_returns_item(db_session, equipment_factory):
    equipment = equipment_factory(status="repair")
    found = registry.get_status(db_session, equipment.id)
    assert found.id == equipment.id
    assert found.status == "repair"


def test_get_status_unknown_raises_not_found(db_session):
    with pytest.raises(NotFound) as excinfo:
        registry.get_status(db_session, 9999)
    assert excinfo.value.kind == "not_found"
    assert excinfo.value.context == {"entity": "equipment", "entity_id": 9999}


def test_get_by_code(db_session, equipment_factory):
    equipment = equipment_factory()
    assert registry.get_by_code(db_session, equipment.code).id == equipment.id
    with pytest.raises(NotFound):
        registry.get_by_code(db_session, "NOPE")


def test_list_available_skips_exclusively_held_items(db_session, equipment_factory, project_factory, admin_user):
    free = equipment_factory("Free")
    held = equipment_factory("Held")
    shared = equipment_factory("Shared")
    project = project_factory("North")

    ledger.create(db_session, AssignmentDraft(equipment_id=held.id, project_id=project.id, assigned_by=admin_user.id))
    ledger.create(db_session, AssignmentDraft(
        equipment_id=shared.id, project_id=project.id, assigned_by=admin_user.id,
        is_shared=True, authorization_code="ABC123",
    ))

    available = {e.id for e in registry.list_available(db_session)}
    assert available == {free.id, shared.id}


def test_list_available_is_recomputed_on_each_call(db_session, equipment_factory, project_factory, admin_user):
    equipment = equipment_factory()
    project = project_factory()

    before = [e.id for e in registry.list_available(db_session)]
    record = ledger.create(db_session, AssignmentDraft(equipment_id=equipment.id, project_id=project.id, assigned_by=admin_user.id))
    during = [e.id for e in registry.list_available(db_session)]
    ledger.close(db_session, record.id)
    after = [e.id for e in registry.list_available(db_session)]

    assert before == [equipment.id]
    assert during == []
    assert after == [equipment.id]


def test_status_is_independent_of_assignment(db_session, equipment_factory, project_factory, admin_user):
    equipment = equipment_factory(status="maintenance")
    project = project_factory()
    ledger.create(db_session, AssignmentDraft(equipment_id=equipment.id, project_id=project.id, assigned_by=admin_user.id))
    assert registry.get_status(db_session, equipment.id).status == "maintenance"
