"""
Sub-Batch Service — partial deliveries of sewing and finishing output

Conservation is checked per (size, colour):

- sewing good output never exceeds what was cut;
- finishing output (good plus rejects) never exceeds the sewing good output
  forwarded to finishing.

Rejecting a sub-batch deletes it; an AuditLog row keeps the snapshot.
"""
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from garmentflow.core.authorization import Action, authorize, is_allowed
from garmentflow.core.exceptions import (
    EntityNotFoundException,
    ExceedsAvailableException,
    InvalidStateTransitionException,
    ValidationException,
)
from garmentflow.core.state_machine import (
    DELETED,
    TASK_MACHINE,
    FinishedGoodType,
    NotificationType,
    Role,
    Stage,
    StateMachine,
    SubBatchSource,
    SubBatchStatus,
    TaskStatus,
    sub_batch_machine,
)
from garmentflow.database import utcnow
from garmentflow.models.finished_good import FinishedGood
from garmentflow.models.stage_task import FinishingTask, SewingTask, StageTask
from garmentflow.models.sub_batch import SubBatch, SubBatchItem
from garmentflow.models.user import User
from garmentflow.repositories.audit_log_repository import AuditLogRepository
from garmentflow.repositories.finished_good_repository import FinishedGoodRepository
from garmentflow.repositories.stage_task_repository import CuttingResultRepository, StageTaskRepository
from garmentflow.repositories.sub_batch_repository import SubBatchRepository, SubBatchTimelineRepository
from garmentflow.schemas.sub_batch import (
    FinishingItemIn,
    FinishingSubBatchCreate,
    ForwardToFinishingRequest,
    SewingSubBatchCreate,
    SubBatchRejectionResponse,
    SubBatchVerifyRequest,
    WarehouseVerifyRequest,
)
from garmentflow.services.production_batch_service import next_sequence
from garmentflow.services.workflow_base import WorkflowService
from garmentflow.utils.events import EntityDeletedEvent, SubBatchStatusChangedEvent

logger = logging.getLogger(__name__)

SizeColor = Tuple[str, str]
FORWARDED = (SubBatchStatus.FORWARDED_TO_FINISHING.value, SubBatchStatus.COMPLETED.value)


def _merge(items: Iterable, key=lambda i: (i.product_size, i.color)) -> Dict[SizeColor, list]:
    merged: Dict[SizeColor, list] = {}
    for item in items:
        merged.setdefault(key(item), []).append(item)
    return merged


class SubBatchService(WorkflowService):
    def __init__(self, db: Session):
        super().__init__(db)
        self._sub_batches = SubBatchRepository(db)
        self._sub_batch_timeline = SubBatchTimelineRepository(db)
        self._sewing_tasks = StageTaskRepository(db, SewingTask)
        self._finishing_tasks = StageTaskRepository(db, FinishingTask)
        self._cutting_results = CuttingResultRepository(db)
        self._finished_goods = FinishedGoodRepository(db)
        self._audit = AuditLogRepository(db)

    # ── lookups ──────────────────────────────────────────────────────────────

    def _get(self, sub_batch_id: str) -> SubBatch:
        sub_batch = self._sub_batches.get_by_id(sub_batch_id)
        if not sub_batch:
            raise EntityNotFoundException("SubBatch", sub_batch_id)
        self._db.refresh(sub_batch)
        return sub_batch

    def get(self, sub_batch_id: str, actor: User) -> SubBatch:
        sub_batch = self._get(sub_batch_id)
        task = self._db.get(StageTask, sub_batch.stage_task_id)
        action = Action.SEWING_WORK if sub_batch.source == SubBatchSource.SEWING.value else Action.FINISHING_WORK
        if not (is_allowed(actor, Action.BATCH_VIEW) or is_allowed(actor, action, task)):
            authorize(actor, action, task)
        return sub_batch

    def list_sub_batches(
        self,
        actor: User,
        batch_id: Optional[str] = None,
        source: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[SubBatch]:
        authorize(actor, Action.BATCH_VIEW)
        if batch_id is not None:
            self._get_batch(batch_id, fresh=False)
        return self._sub_batches.list_filtered(batch_id=batch_id, source=source, status=status)

    def _active_task(
        self, repo: StageTaskRepository, batch_id: str, stage: Stage, actor: User, action: Action
    ) -> StageTask:
        """The stage task, authorized for ``actor`` and held IN_PROGRESS for the rest of the transaction."""
        task = repo.get_for_batch(batch_id)
        if task is None:
            raise EntityNotFoundException(f"{stage.value.title()}Task", f"batch:{batch_id}")
        self._db.refresh(task)
        authorize(actor, action, task)
        self._fire(repo, task, TASK_MACHINE, "progress")
        return task

    def _next_sku(self, batch) -> str:
        prefix = f"{batch.batch_sku}-SUB-"
        seq = next_sequence(self._sub_batches.skus_for_batch(batch.id), prefix)
        return f"{prefix}{seq:03d}"

    # ── availability ─────────────────────────────────────────────────────────

    def sewing_available(self, batch_id: str) -> Dict[SizeColor, int]:
        """Cut pieces not yet claimed by a sewing sub-batch."""
        cut = self._cutting_results.pieces_by_size_color(batch_id)
        sewn = self._sub_batches.sewing_good_by_size_color(batch_id)
        return {key: pieces - sewn.get(key, 0) for key, pieces in cut.items()}

    def finishing_available(self, batch_id: str, exclude_sub_batch_id: Optional[str] = None) -> Dict[SizeColor, int]:
        """Forwarded sewing output not yet claimed by a finishing sub-batch."""
        forwarded = self._sub_batches.item_totals_by_size_color(
            batch_id, SubBatchSource.SEWING.value, statuses=FORWARDED
        )
        claimed = self._sub_batches.item_totals_by_size_color(
            batch_id,
            SubBatchSource.FINISHING.value,
            exclude_sub_batch_id=exclude_sub_batch_id,
            include_rejects=True,
        )
        return {key: pieces - claimed.get(key, 0) for key, pieces in forwarded.items()}

    @staticmethod
    def _check_available(requested: Dict[SizeColor, int], available: Dict[SizeColor, int], stage: str) -> None:
        over = [
            {"product_size": size, "color": color, "requested": qty, "available": max(available.get((size, color), 0), 0)}
            for (size, color), qty in requested.items()
            if qty > available.get((size, color), 0)
        ]
        if over:
            listing = "; ".join(f"{o['product_size']}/{o['color']}: {o['requested']} > {o['available']}" for o in over)
            raise ExceedsAvailableException(f"{stage} quantity exceeds available pieces: {listing}", {"items": over})

    # ── creation ─────────────────────────────────────────────────────────────

    def create_sewing_sub_batch(self, batch_id: str, body: SewingSubBatchCreate, actor: User) -> SubBatch:
        with self._unit_of_work():
            batch = self._get_batch(batch_id)
            task = self._active_task(self._sewing_tasks, batch.id, Stage.SEWING, actor, Action.SEWING_WORK)

            requested = {key: sum(i.quantity for i in group) for key, group in _merge(body.items).items()}
            requested = {key: qty for key, qty in requested.items() if qty > 0}
            if not requested:
                raise ValidationException("Sewing sub-batch must contain at least one piece")
            self._check_available(requested, self.sewing_available(batch.id), "Sewing")

            sub_batch = SubBatch(
                sub_batch_sku=self._next_sku(batch),
                batch_id=batch.id,
                source=SubBatchSource.SEWING.value,
                status=SubBatchStatus.CREATED.value,
                stage_task_id=task.id,
                notes=body.notes,
                created_by_id=actor.id,
            )
            sub_batch.items = [
                SubBatchItem(product_size=size, color=color, good_quantity=qty)
                for (size, color), qty in sorted(requested.items())
            ]
            sub_batch.recompute_totals()
            self._sub_batches.add(sub_batch, commit=False)
            self._refresh_sewing_counters(batch.id)
            self._record_created(sub_batch, batch, actor)

        logger.info("sub_batch_created sku=%s source=SEWING pieces=%s", sub_batch.sub_batch_sku, sub_batch.total_quantity)
        return sub_batch

    def create_finishing_sub_batch(self, batch_id: str, body: FinishingSubBatchCreate, actor: User) -> SubBatch:
        with self._unit_of_work():
            batch = self._get_batch(batch_id)
            task = self._active_task(self._finishing_tasks, batch.id, Stage.FINISHING, actor, Action.FINISHING_WORK)

            items = self._finishing_items(body.items)
            self._check_available(
                {key: item.total_quantity for key, item in items.items()},
                self.finishing_available(batch.id),
                "Finishing",
            )

            sub_batch = SubBatch(
                sub_batch_sku=self._next_sku(batch),
                batch_id=batch.id,
                source=SubBatchSource.FINISHING.value,
                status=SubBatchStatus.CREATED.value,
                stage_task_id=task.id,
                notes=body.notes,
                created_by_id=actor.id,
            )
            sub_batch.items = [items[key] for key in sorted(items)]
            sub_batch.recompute_totals()
            self._sub_batches.add(sub_batch, commit=False)
            self._refresh_finishing_counters(batch.id)
            self._record_created(sub_batch, batch, actor)
            self._notify(
                NotificationType.VERIFICATION_NEEDED.value,
                "Finishing sub-batch awaiting check",
                f"{sub_batch.sub_batch_sku}: {sub_batch.finishing_good_output} good, "
                f"{sub_batch.reject_quantity} reject",
                entity_type="SubBatch",
                entity_id=sub_batch.id,
                recipient_role=Role.KEPALA_PRODUKSI,
            )

        logger.info(
            "sub_batch_created sku=%s source=FINISHING good=%s rejects=%s",
            sub_batch.sub_batch_sku,
            sub_batch.finishing_good_output,
            sub_batch.reject_quantity,
        )
        return sub_batch

    @staticmethod
    def _finishing_items(items: List[FinishingItemIn]) -> Dict[SizeColor, SubBatchItem]:
        merged: Dict[SizeColor, SubBatchItem] = {}
        for key, group in _merge(items).items():
            row = SubBatchItem(
                product_size=key[0],
                color=key[1],
                good_quantity=sum(i.good_quantity for i in group),
                reject_kotor=sum(i.reject_kotor for i in group),
                reject_sobek=sum(i.reject_sobek for i in group),
                reject_rusak_jahit=sum(i.reject_rusak_jahit for i in group),
            )
            if row.total_quantity > 0:
                merged[key] = row
        if not merged:
            raise ValidationException("Finishing sub-batch must contain at least one piece")
        return merged

    def update_finishing_items(self, sub_batch_id: str, body: FinishingSubBatchCreate, actor: User) -> SubBatch:
        """Replace the items of a finishing sub-batch still waiting for production check."""
        with self._unit_of_work():
            sub_batch = self._get(sub_batch_id)
            if sub_batch.source != SubBatchSource.FINISHING.value:
                raise InvalidStateTransitionException("SubBatch", sub_batch.source, "edit", [SubBatchSource.FINISHING.value])
            task = self._db.get(StageTask, sub_batch.stage_task_id)
            authorize(actor, Action.FINISHING_WORK, task)
            self._fire(self._sub_batches, sub_batch, sub_batch_machine(sub_batch.source), "edit")

            items = self._finishing_items(body.items)
            self._check_available(
                {key: item.total_quantity for key, item in items.items()},
                self.finishing_available(sub_batch.batch_id, exclude_sub_batch_id=sub_batch.id),
                "Finishing",
            )
            before = sub_batch.total_quantity
            # old rows must be gone before the replacements hit the size/colour unique key
            sub_batch.items.clear()
            self._db.flush()
            sub_batch.items = [items[key] for key in sorted(items)]
            sub_batch.recompute_totals()
            if body.notes is not None:
                sub_batch.notes = body.notes
            self._db.flush()
            self._refresh_finishing_counters(sub_batch.batch_id)
            self._sub_batch_timeline.append(
                sub_batch, "ITEMS_UPDATED", f"{before} -> {sub_batch.total_quantity} pcs", actor.id
            )
        return sub_batch

    def _record_created(self, sub_batch: SubBatch, batch, actor: User) -> None:
        self._sub_batch_timeline.append(sub_batch, "SUB_BATCH_CREATED", f"{sub_batch.total_quantity} pcs", actor.id)
        self._timeline.append(
            batch.id,
            f"{sub_batch.source}_SUB_BATCH_CREATED",
            f"{sub_batch.sub_batch_sku}: {sub_batch.good_quantity} good, {sub_batch.reject_quantity} reject",
            actor.id,
        )
        self._changed(sub_batch, None, actor)

    # ── task counters ────────────────────────────────────────────────────────

    def _refresh_sewing_counters(self, batch_id: str) -> None:
        task = self._sewing_tasks.get_for_batch(batch_id)
        if task is not None:
            good, _ = self._sub_batches.sum_item_totals(batch_id, SubBatchSource.SEWING.value)
            task.pieces_completed = good
        self._db.flush()

    def _refresh_finishing_counters(self, batch_id: str) -> None:
        task = self._finishing_tasks.get_for_batch(batch_id)
        if task is not None:
            task.pieces_received, _ = self._sub_batches.sum_item_totals(
                batch_id, SubBatchSource.SEWING.value, statuses=FORWARDED
            )
            good, rejects = self._sub_batches.sum_item_totals(batch_id, SubBatchSource.FINISHING.value)
            task.pieces_completed = good + rejects
            task.reject_pieces = rejects
        self._db.flush()

    # ── production check ─────────────────────────────────────────────────────

    def verify(self, sub_batch_id: str, body: SubBatchVerifyRequest, actor: User):
        """Approve moves the sub-batch on; reject deletes it and returns a SubBatchRejectionResponse."""
        authorize(actor, Action.SUB_BATCH_VERIFY)
        with self._unit_of_work():
            sub_batch = self._get(sub_batch_id)
            machine = sub_batch_machine(sub_batch.source)
            if machine.fire(sub_batch.status, body.action) == DELETED:
                self._fire(self._sub_batches, sub_batch, machine, body.action)
                result = self._reject(sub_batch, body.notes, actor)
            else:
                result = self._approve(sub_batch, machine, body.action, body.notes, actor)
        return result

    def _approve(
        self, sub_batch: SubBatch, machine: StateMachine, action: str, notes: Optional[str], actor: User
    ) -> SubBatch:
        now = utcnow()
        old_status = sub_batch.status
        values = {"verified_by_prod_id": actor.id, "verified_by_prod_at": now}
        if machine.peek(old_status, action) == SubBatchStatus.SUBMITTED_TO_WAREHOUSE.value:
            values["submitted_to_warehouse_at"] = now
        new_status = self._fire(self._sub_batches, sub_batch, machine, action, values)
        self._sub_batch_timeline.append(sub_batch, "PRODUCTION_APPROVED", notes, actor.id)
        self._timeline.append(sub_batch.batch_id, "SUB_BATCH_APPROVED", f"{sub_batch.sub_batch_sku} -> {new_status}", actor.id)
        self._changed(sub_batch, old_status, actor)
        if sub_batch.source == SubBatchSource.FINISHING.value:
            self._notify(
                NotificationType.VERIFICATION_NEEDED.value,
                "Sub-batch submitted to warehouse",
                f"{sub_batch.sub_batch_sku}: {sub_batch.finishing_good_output} good, "
                f"{sub_batch.reject_quantity} reject awaiting warehouse check",
                entity_type="SubBatch",
                entity_id=sub_batch.id,
                recipient_role=Role.KEPALA_GUDANG,
            )
        logger.info("sub_batch_approved sku=%s status=%s", sub_batch.sub_batch_sku, new_status)
        return sub_batch

    def _reject(self, sub_batch: SubBatch, notes: Optional[str], actor: User) -> SubBatchRejectionResponse:
        snapshot = sub_batch.snapshot()
        if notes:
            snapshot["rejection_notes"] = notes
        response = SubBatchRejectionResponse(
            sub_batch_id=sub_batch.id,
            sub_batch_sku=sub_batch.sub_batch_sku,
            total_quantity=sub_batch.total_quantity,
        )
        batch_id, source = sub_batch.batch_id, sub_batch.source

        self._audit.record("REJECT", "SubBatch", sub_batch.id, actor.id, old_values=snapshot)
        self._sub_batches.delete(sub_batch, commit=False)
        if source == SubBatchSource.SEWING.value:
            self._refresh_sewing_counters(batch_id)
        else:
            self._refresh_finishing_counters(batch_id)
        self._timeline.append(
            batch_id,
            "SUB_BATCH_REJECTED",
            f"{response.sub_batch_sku} rejected ({response.total_quantity} pcs)" + (f": {notes}" if notes else ""),
            actor.id,
        )
        self._defer(
            EntityDeletedEvent(entity_type="SubBatch", entity_id=response.sub_batch_id, user_id=actor.id, old_values=snapshot)
        )
        logger.info("sub_batch_rejected sku=%s pieces=%s", response.sub_batch_sku, response.total_quantity)
        return response

    # ── hand-over ────────────────────────────────────────────────────────────

    def forward_to_finishing(self, sub_batch_id: str, body: ForwardToFinishingRequest, actor: User) -> SubBatch:
        authorize(actor, Action.SUB_BATCH_FORWARD)
        with self._unit_of_work():
            sub_batch = self._get(sub_batch_id)
            if sub_batch.source != SubBatchSource.SEWING.value:
                raise InvalidStateTransitionException("SubBatch", sub_batch.source, "forward", [SubBatchSource.SEWING.value])
            old_status = sub_batch.status
            self._fire(
                self._sub_batches, sub_batch, sub_batch_machine(sub_batch.source), "forward", {"forwarded_at": utcnow()}
            )

            finishing = self._finishing_tasks.get_for_batch(sub_batch.batch_id)
            if finishing is None:
                if not body.assigned_to_id:
                    raise ValidationException(
                        "assigned_to_id is required for the first hand-over to finishing",
                        {"field": "assigned_to_id"},
                    )
                worker = self._get_user_with_role(body.assigned_to_id, Role.FINISHING)
                finishing = self._finishing_tasks.add(
                    FinishingTask(
                        batch_id=sub_batch.batch_id,
                        assigned_to_id=worker.id,
                        status=TaskStatus.PENDING.value,
                    ),
                    commit=False,
                )
                self._notify(
                    NotificationType.BATCH_ASSIGNMENT.value,
                    "New finishing task",
                    f"Sewing output {sub_batch.sub_batch_sku} was forwarded to you for finishing",
                    entity_type="FinishingTask",
                    entity_id=finishing.id,
                    recipient_id=worker.id,
                )
            self._db.flush()
            self._refresh_finishing_counters(sub_batch.batch_id)

            self._sub_batch_timeline.append(sub_batch, "FORWARDED_TO_FINISHING", body.notes, actor.id)
            self._timeline.append(
                sub_batch.batch_id,
                "SUB_BATCH_FORWARDED",
                f"{sub_batch.sub_batch_sku}: {sub_batch.sewing_output} pcs to finishing",
                actor.id,
            )
            self._changed(sub_batch, old_status, actor)
        return sub_batch

    # ── warehouse ────────────────────────────────────────────────────────────

    def verify_warehouse(
        self, sub_batch_id: str, body: WarehouseVerifyRequest, actor: User
    ) -> Tuple[SubBatch, List[FinishedGood]]:
        authorize(actor, Action.SUB_BATCH_VERIFY_WAREHOUSE)
        location = (body.location or "").strip()
        if not location:
            raise ValidationException("Warehouse location is required", {"field": "location"})

        with self._unit_of_work():
            sub_batch = self._get(sub_batch_id)
            old_status = sub_batch.status
            now = utcnow()
            self._fire(
                self._sub_batches,
                sub_batch,
                sub_batch_machine(sub_batch.source),
                "verify_warehouse",
                {"warehouse_verified_by_id": actor.id, "warehouse_verified_at": now},
            )
            if body.notes:
                sub_batch.notes = f"{sub_batch.notes}\n[Warehouse] {body.notes}" if sub_batch.notes else f"[Warehouse] {body.notes}"

            batch = self._get_batch(sub_batch.batch_id)
            goods: List[FinishedGood] = []
            for good_type, quantity in (
                (FinishedGoodType.FINISHED, sub_batch.finishing_good_output),
                (FinishedGoodType.REJECT, sub_batch.reject_quantity),
            ):
                if quantity > 0:
                    goods.append(
                        self._finished_goods.add(
                            FinishedGood(
                                batch_id=batch.id,
                                product_id=batch.product_id,
                                sub_batch_id=sub_batch.id,
                                type=good_type.value,
                                quantity=quantity,
                                location=location,
                                notes=body.notes,
                                verified_by_id=actor.id,
                                verified_at=now,
                            ),
                            commit=False,
                        )
                    )

            self._sub_batch_timeline.append(sub_batch, "WAREHOUSE_VERIFIED", f"Stored at {location}", actor.id)
            self._timeline.append(
                batch.id,
                "SUB_BATCH_WAREHOUSE_VERIFIED",
                f"{sub_batch.sub_batch_sku}: {sub_batch.finishing_good_output} good, "
                f"{sub_batch.reject_quantity} reject at {location}",
                actor.id,
            )
            self._changed(sub_batch, old_status, actor)

        logger.info("sub_batch_warehouse_verified sku=%s location=%s goods=%s", sub_batch.sub_batch_sku, location, len(goods))
        return sub_batch, goods

    def _changed(self, sub_batch: SubBatch, old_status: Optional[str], actor: User) -> None:
        self._emit(
            SubBatchStatusChangedEvent(
                entity_type="SubBatch",
                entity_id=sub_batch.id,
                user_id=actor.id,
                old_status=old_status,
                new_status=sub_batch.status,
                batch_id=sub_batch.batch_id,
                source=sub_batch.source,
            )
        )
