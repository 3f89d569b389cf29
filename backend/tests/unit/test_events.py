import json

import pytest
from sqlalchemy.orm import sessionmaker

from garmentflow.models.audit_log import AuditLog
from garmentflow.models.notification import Notification
from garmentflow.utils.events import (
    AuditLogHandler,
    DomainEvent,
    EntityCreatedEvent,
    EventBus,
    NotificationHandler,
    NotificationRequestedEvent,
    StageTaskStatusChangedEvent,
    StatusChangedEvent,
)


@pytest.fixture
def session_factory(db):
    return sessionmaker(bind=db.get_bind())


def _boom(event):
    raise RuntimeError("handler down")


def test_bus_dispatches_by_event_hierarchy() -> None:
    bus = EventBus()
    seen = []
    bus.subscribe(StatusChangedEvent, lambda e: seen.append(("status", e.new_status)))
    bus.subscribe_all(lambda e: seen.append(("any", e.event_type)))

    bus.publish(StageTaskStatusChangedEvent(entity_type="SewingTask", entity_id="t1", new_status="COMPLETED"))
    bus.publish(DomainEvent(entity_type="X", entity_id=None))

    assert ("status", "COMPLETED") in seen
    assert ("any", "StageTaskStatusChangedEvent") in seen
    assert ("any", "DomainEvent") in seen
    assert len(seen) == 3


def test_global_bus_swallows_handler_errors() -> None:
    bus = EventBus(name="global")
    after = []
    bus.subscribe_all(_boom)
    bus.subscribe_all(lambda e: after.append(e))

    bus.publish(DomainEvent(entity_type="X", entity_id="1"))
    assert len(after) == 1


def test_local_bus_propagates_handler_errors() -> None:
    bus = EventBus(name="reconciler", raise_errors=True)
    bus.subscribe_all(_boom)
    with pytest.raises(RuntimeError):
        bus.publish(DomainEvent(entity_type="X", entity_id="1"))


def test_audit_handler_writes_row(db, owner, session_factory) -> None:
    handler = AuditLogHandler(session_factory)
    handler(EntityCreatedEvent(entity_type="ProductionBatch", entity_id="b1", user_id=owner.id, new_values={"sku": "S"}))
    handler(StatusChangedEvent(entity_type="ProductionBatch", entity_id="b1", old_status="A", new_status="B"))

    rows = db.query(AuditLog).order_by(AuditLog.created_at).all()
    assert [r.action for r in rows] == ["CREATE", "STATUS_CHANGE"]
    assert json.loads(rows[1].new_values) == {"status": "B"}


def test_notification_handler_fans_out_to_role(db, users, session_factory) -> None:
    NotificationHandler(session_factory)(
        NotificationRequestedEvent(
            entity_type="SubBatch",
            entity_id="s1",
            notification_type="VERIFICATION_NEEDED",
            title="Check",
            message="Awaiting warehouse",
            recipient_role="KEPALA_GUDANG",
        )
    )
    rows = db.query(Notification).all()
    assert len(rows) == 1
    assert rows[0].type == "VERIFICATION_NEEDED"
