"""
Shared plumbing for the production workflow services: batch lookup, batch
transitions through BATCH_MACHINE, the in-transaction reconciler bus and the
post-commit event queue.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy.orm import Session

from garmentflow.core.exceptions import (
    EntityNotFoundException,
    InvalidStateTransitionException,
    RoleMismatchException,
)
from garmentflow.core.state_machine import BATCH_MACHINE, DELETED, Role, StateMachine
from garmentflow.database import transaction
from garmentflow.models.production_batch import ProductionBatch
from garmentflow.models.user import User
from garmentflow.repositories.base import BaseRepository
from garmentflow.repositories.production_batch_repository import (
    BatchTimelineRepository,
    ProductionBatchRepository,
)
from garmentflow.services.batch_reconciler import BatchAggregateReconciler
from garmentflow.utils.events import (
    DomainEvent,
    EventBus,
    NotificationRequestedEvent,
    StatusChangedEvent,
    get_event_bus,
)

logger = logging.getLogger(__name__)


class WorkflowService:
    def __init__(self, db: Session):
        self._db = db
        self._batches = ProductionBatchRepository(db)
        self._timeline = BatchTimelineRepository(db)
        self._users = BaseRepository(User, db)
        self._bus = get_event_bus()
        self._reconciler = BatchAggregateReconciler(db)
        self._local_bus = self._reconciler.attach(EventBus(name="reconciler", raise_errors=True))
        self._pending: List[DomainEvent] = []

    # ── lookups ──────────────────────────────────────────────────────────────

    def _get_batch(self, batch_id: str, fresh: bool = True) -> ProductionBatch:
        batch = self._batches.get_by_id(batch_id)
        if not batch:
            raise EntityNotFoundException("ProductionBatch", batch_id)
        if fresh:
            self._db.refresh(batch)
        return batch

    def _get_user_with_role(self, user_id: str, role: Role) -> User:
        user = self._users.get_by_id(user_id)
        if not user or not user.is_active:
            raise EntityNotFoundException("User", user_id)
        if user.role != role.value:
            raise RoleMismatchException(user_id, role.value, user.role)
        return user

    # ── batch transitions ────────────────────────────────────────────────────

    def _transition_batch(
        self,
        batch: ProductionBatch,
        action: str,
        actor: User,
        details: Optional[str] = None,
        values: Optional[Dict[str, Any]] = None,
        strict: bool = True,
    ) -> bool:
        """
        Fire ``action`` on the batch. With ``strict=False`` an action that is
        not available from the current status is skipped (the batch is already
        past it or a sibling stage moved it); with ``strict=True`` it raises.
        """
        old_status = batch.status
        if strict:
            new_status = BATCH_MACHINE.fire(old_status, action)
        else:
            new_status = BATCH_MACHINE.peek(old_status, action)
            if new_status is None:
                logger.debug("batch_transition_skipped batch=%s status=%s action=%s", batch.id, old_status, action)
                return False

        if not self._batches.compare_and_set_status(batch, [old_status], new_status, values):
            self._db.refresh(batch)
            if strict:
                raise InvalidStateTransitionException("ProductionBatch", batch.status, action, [old_status])
            return False

        self._timeline.append(batch.id, new_status, details, actor.id)
        if old_status != new_status:
            self._defer(
                StatusChangedEvent(
                    entity_type="ProductionBatch",
                    entity_id=batch.id,
                    user_id=actor.id,
                    old_status=old_status,
                    new_status=new_status,
                )
            )
        logger.info("batch_transition batch=%s action=%s from=%s to=%s", batch.id, action, old_status, new_status)
        return True

    # ── child transitions ────────────────────────────────────────────────────

    def _fire(
        self,
        repo: BaseRepository,
        obj,
        machine: StateMachine,
        action: str,
        values: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Resolve ``action`` through ``machine`` and write the new status only
        if the stored row still holds the status that was read. A rejection
        (DELETED) claims the row without moving it; the caller deletes it.
        Returns the machine's target status.
        """
        old_status = obj.status
        new_status = machine.fire(old_status, action)
        written = old_status if new_status == DELETED else new_status
        if not repo.compare_and_set_status(obj, [old_status], written, values):
            current = repo.current_status(obj.id)
            if current is None:
                raise EntityNotFoundException(machine.entity, obj.id)
            logger.warning(
                "transition_conflict entity=%s id=%s action=%s read=%s stored=%s",
                machine.entity,
                obj.id,
                action,
                old_status,
                current,
            )
            raise InvalidStateTransitionException(machine.entity, current, action, [old_status])
        return new_status

    # ── events ───────────────────────────────────────────────────────────────

    def _emit(self, event: DomainEvent) -> None:
        """In-transaction event: the reconciler reacts before commit."""
        self._local_bus.publish(event)
        self._defer(event)

    def _defer(self, event: DomainEvent) -> None:
        self._pending.append(event)

    def _notify(
        self,
        notification_type: str,
        title: str,
        message: str,
        entity_type: str,
        entity_id: str,
        recipient_id: Optional[str] = None,
        recipient_role: Optional[Role] = None,
    ) -> None:
        self._defer(
            NotificationRequestedEvent(
                entity_type=entity_type,
                entity_id=entity_id,
                notification_type=notification_type,
                title=title,
                message=message,
                recipient_id=recipient_id,
                recipient_role=recipient_role.value if recipient_role else None,
            )
        )

    def _publish_pending(self) -> None:
        """Call after commit. Handlers are fire-and-forget."""
        events = self._pending + self._reconciler.changes
        self._pending = []
        self._reconciler.changes = []
        self._bus.publish_all(events)

    def _discard_pending(self) -> None:
        self._pending = []
        self._reconciler.changes = []

    @contextmanager
    def _unit_of_work(self) -> Iterator[None]:
        """One transaction per operation; events go out only after a successful commit."""
        try:
            with transaction(self._db):
                yield
        except Exception:
            self._discard_pending()
            raise
        self._publish_pending()
