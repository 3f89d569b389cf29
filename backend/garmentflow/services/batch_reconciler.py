"""
Batch Aggregate Reconciler

Subscribes to sub-batch and stage-task transitions on a service-local event
bus and derives the parent batch status from the state of its children. Runs
inside the publishing service's transaction and only ever moves a batch
forward.
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from garmentflow.core.state_machine import BATCH_MACHINE, BatchStatus, SubBatchSource, SubBatchStatus, TaskStatus
from garmentflow.models.production_batch import ProductionBatch
from garmentflow.models.stage_task import FinishingTask, SewingTask
from garmentflow.repositories.production_batch_repository import (
    BatchTimelineRepository,
    ProductionBatchRepository,
)
from garmentflow.repositories.stage_task_repository import StageTaskRepository
from garmentflow.repositories.sub_batch_repository import SubBatchRepository
from garmentflow.utils.events import (
    DomainEvent,
    EventBus,
    StageTaskStatusChangedEvent,
    StatusChangedEvent,
    SubBatchStatusChangedEvent,
)

logger = logging.getLogger(__name__)

DONE = {TaskStatus.COMPLETED.value, TaskStatus.VERIFIED.value}
WORKING = {TaskStatus.IN_PROGRESS.value, TaskStatus.REJECTED.value}
AT_WAREHOUSE = {
    SubBatchStatus.SUBMITTED_TO_WAREHOUSE.value,
    SubBatchStatus.WAREHOUSE_VERIFIED.value,
    SubBatchStatus.COMPLETED.value,
}
WAREHOUSE_DONE = {SubBatchStatus.WAREHOUSE_VERIFIED.value, SubBatchStatus.COMPLETED.value}

# Batch actions the children can drive, in lifecycle order.
DERIVED_ACTIONS = (
    "start_sewing",
    "complete_sewing",
    "assign_finishing",
    "start_finishing",
    "complete_finishing",
    "submit_to_warehouse",
    "warehouse_verify",
)


class BatchAggregateReconciler:
    def __init__(self, db: Session):
        self._db = db
        self._batches = ProductionBatchRepository(db)
        self._timeline = BatchTimelineRepository(db)
        self._sewing = StageTaskRepository(db, SewingTask)
        self._finishing = StageTaskRepository(db, FinishingTask)
        self._sub_batches = SubBatchRepository(db)
        self.changes: List[DomainEvent] = []

    def attach(self, bus: EventBus) -> EventBus:
        bus.subscribe(SubBatchStatusChangedEvent, self.on_child_changed)
        bus.subscribe(StageTaskStatusChangedEvent, self.on_child_changed)
        return bus

    def on_child_changed(self, event: DomainEvent) -> None:
        batch_id = getattr(event, "batch_id", None)
        if batch_id:
            self.reconcile(batch_id, user_id=event.user_id)

    def derive_status(self, batch: ProductionBatch) -> Optional[BatchStatus]:
        """Status implied by the sewing/finishing children, or None when they imply nothing."""
        sewing = self._sewing.get_for_batch(batch.id)
        finishing = self._finishing.get_for_batch(batch.id)
        if sewing is None or finishing is None or sewing.status not in DONE:
            return None
        if finishing.status in WORKING:
            return BatchStatus.IN_FINISHING
        if finishing.status not in DONE:
            return BatchStatus.ASSIGNED_TO_FINISHING

        # Warehouse promotion also waits for the finishing task itself to be done.
        deliveries = self._sub_batches.list_filtered(batch_id=batch.id, source=SubBatchSource.FINISHING.value)
        if deliveries and all(s.status in WAREHOUSE_DONE for s in deliveries):
            return BatchStatus.WAREHOUSE_VERIFIED
        if deliveries and all(s.status in AT_WAREHOUSE for s in deliveries):
            return BatchStatus.SUBMITTED_TO_WAREHOUSE
        return BatchStatus.FINISHING_COMPLETED

    @staticmethod
    def path_to(current: str, target: BatchStatus) -> List[str]:
        """Batch actions that carry ``current`` towards ``target`` without passing it."""
        actions = []
        for action in DERIVED_ACTIONS:
            if current == target.value:
                break
            step = BATCH_MACHINE.peek(current, action)
            if step is None or step == current or BatchStatus(step).is_past(target):
                continue
            actions.append(action)
            current = step
        return actions

    def reconcile(self, batch_id: str, user_id: Optional[str] = None) -> Optional[str]:
        batch = self._batches.get_by_id(batch_id)
        if batch is None or batch.status == BatchStatus.COMPLETED.value:
            return None
        self._db.flush()
        self._db.refresh(batch)

        target = self.derive_status(batch)
        if target is None:
            return None
        old_status = batch.status
        actions = self.path_to(old_status, target)
        if not actions:
            return None
        new_status = old_status
        for action in actions:
            new_status = BATCH_MACHINE.fire(new_status, action)

        values = {}
        if new_status == BatchStatus.WAREHOUSE_VERIFIED.value:
            good, rejects = self._sub_batches.sum_item_totals(batch.id, SubBatchSource.FINISHING.value)
            values = {"actual_quantity": good, "reject_quantity": rejects}
        if not self._batches.compare_and_set_status(batch, [old_status], new_status, values):
            logger.warning("batch_reconcile_conflict batch=%s expected=%s", batch.id, old_status)
            return None

        self._timeline.append(
            batch.id, new_status, f"Batch status derived: {old_status} -> {new_status} ({', '.join(actions)})", user_id
        )
        self.changes.append(
            StatusChangedEvent(
                entity_type="ProductionBatch",
                entity_id=batch.id,
                user_id=user_id,
                old_status=old_status,
                new_status=new_status,
            )
        )
        logger.info("batch_reconciled batch=%s from=%s to=%s actions=%s", batch.id, old_status, new_status, actions)
        return new_status
