"""
Event Bus — Observer Pattern

Services publish domain events; handlers react without the publisher knowing
about them. Two kinds of bus are used:

- a service-local bus, published to inside an open transaction, whose
  subscribers (the batch reconciler) write through the same session;
- the process-wide bus returned by get_event_bus(), published to after
  commit, whose handlers (logging, audit, notifications) are fire-and-forget.

Handler failures are logged and never reach the publisher.
"""
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Type

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DomainEvent:
    entity_type: str
    entity_id: Optional[str]
    user_id: Optional[str] = None
    occurred_at: datetime = field(default_factory=_utcnow, init=False)

    @property
    def event_type(self) -> str:
        return type(self).__name__


@dataclass
class EntityCreatedEvent(DomainEvent):
    new_values: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EntityUpdatedEvent(DomainEvent):
    old_values: Dict[str, Any] = field(default_factory=dict)
    new_values: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EntityDeletedEvent(DomainEvent):
    old_values: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StatusChangedEvent(DomainEvent):
    old_status: Optional[str] = None
    new_status: Optional[str] = None


@dataclass
class StageTaskStatusChangedEvent(StatusChangedEvent):
    batch_id: Optional[str] = None
    stage: Optional[str] = None


@dataclass
class SubBatchStatusChangedEvent(StatusChangedEvent):
    batch_id: Optional[str] = None
    source: Optional[str] = None


@dataclass
class NotificationRequestedEvent(DomainEvent):
    notification_type: str = ""
    title: str = ""
    message: str = ""
    recipient_id: Optional[str] = None
    recipient_role: Optional[str] = None


Handler = Callable[[DomainEvent], None]


class EventBus:
    def __init__(self, name: str = "default", raise_errors: bool = False):
        self.name = name
        self._raise_errors = raise_errors
        self._handlers: Dict[Type[DomainEvent], List[Handler]] = {}

    def subscribe(self, event_type: Type[DomainEvent], handler: Handler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        self.subscribe(DomainEvent, handler)

    def clear(self) -> None:
        self._handlers.clear()

    def handlers_for(self, event: DomainEvent) -> List[Handler]:
        matched: List[Handler] = []
        for event_type, handlers in self._handlers.items():
            if isinstance(event, event_type):
                matched.extend(handlers)
        return matched

    def publish(self, event: DomainEvent) -> None:
        for handler in self.handlers_for(event):
            try:
                handler(event)
            except Exception:
                if self._raise_errors:
                    raise
                logger.exception(
                    "event_handler_failed bus=%s event=%s entity=%s id=%s",
                    self.name,
                    event.event_type,
                    event.entity_type,
                    event.entity_id,
                )

    def publish_all(self, events: List[DomainEvent]) -> None:
        for event in events:
            self.publish(event)


def _to_json(values: Dict[str, Any]) -> Optional[str]:
    if not values:
        return None
    return json.dumps(values, default=str, sort_keys=True)


class LoggingHandler:
    def __call__(self, event: DomainEvent) -> None:
        payload = {k: v for k, v in asdict(event).items() if k not in {"old_values", "new_values"}}
        logger.info("domain_event %s", event.event_type, extra={"event": payload})


class AuditLogHandler:
    """Persists entity lifecycle events as AuditLog rows in their own session."""

    ACTIONS = {
        EntityCreatedEvent: "CREATE",
        EntityUpdatedEvent: "UPDATE",
        EntityDeletedEvent: "DELETE",
        StatusChangedEvent: "STATUS_CHANGE",
    }

    def __init__(self, db_session_factory: Callable):
        self._session_factory = db_session_factory

    def _action_for(self, event: DomainEvent) -> Optional[str]:
        for event_type in type(event).__mro__:
            if event_type in self.ACTIONS:
                return self.ACTIONS[event_type]
        return None

    def __call__(self, event: DomainEvent) -> None:
        from garmentflow.models.audit_log import AuditLog

        action = self._action_for(event)
        if action is None:
            return
        old_values = getattr(event, "old_values", None) or {}
        new_values = getattr(event, "new_values", None) or {}
        if isinstance(event, StatusChangedEvent):
            old_values = {"status": event.old_status}
            new_values = {"status": event.new_status}

        db = self._session_factory()
        try:
            db.add(
                AuditLog(
                    user_id=event.user_id,
                    action=action,
                    entity=event.entity_type,
                    entity_id=event.entity_id,
                    old_values=_to_json(old_values),
                    new_values=_to_json(new_values),
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class NotificationHandler:
    """Notification sink: one Notification row per recipient, own session."""

    def __init__(self, db_session_factory: Callable):
        self._session_factory = db_session_factory

    def __call__(self, event: DomainEvent) -> None:
        if not isinstance(event, NotificationRequestedEvent):
            return
        from garmentflow.models.notification import Notification
        from garmentflow.models.user import User

        db = self._session_factory()
        try:
            if event.recipient_id:
                recipients = [event.recipient_id]
            else:
                recipients = [
                    u.id
                    for u in db.query(User).filter(User.role == event.recipient_role, User.is_active.is_(True)).all()
                ]
            for user_id in recipients:
                db.add(
                    Notification(
                        user_id=user_id,
                        type=event.notification_type,
                        title=event.title,
                        message=event.message,
                    )
                )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


_event_bus = EventBus(name="global")


def get_event_bus() -> EventBus:
    return _event_bus


def configure_event_bus(db_session_factory: Callable) -> EventBus:
    """Register the process-wide handlers. Safe to call more than once."""
    _event_bus.clear()
    _event_bus.subscribe_all(LoggingHandler())
    _event_bus.subscribe(EntityCreatedEvent, AuditLogHandler(db_session_factory))
    _event_bus.subscribe(EntityUpdatedEvent, AuditLogHandler(db_session_factory))
    _event_bus.subscribe(EntityDeletedEvent, AuditLogHandler(db_session_factory))
    _event_bus.subscribe(StatusChangedEvent, AuditLogHandler(db_session_factory))
    _event_bus.subscribe(NotificationRequestedEvent, NotificationHandler(db_session_factory))
    return _event_bus
