"""
Production Batch Service — root aggregate lifecycle

Creation (SKU generation, requested sizes and materials), read models,
archival, the completion gate and the aggregate reconciliation report.
"""
import logging
import re
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from garmentflow.config import settings
from garmentflow.core.authorization import Action, authorize
from garmentflow.core.exceptions import (
    BusinessRuleViolationException,
    EntityNotFoundException,
    InvalidStateTransitionException,
    ValidationException,
)
from garmentflow.core.state_machine import (
    BATCH_MACHINE,
    BatchStatus,
    Stage,
    SubBatchSource,
    SubBatchStatus,
    TaskStatus,
    sub_batch_machine,
)
from garmentflow.database import utcnow
from garmentflow.models.material import MaterialColorVariant
from garmentflow.models.product import Product
from garmentflow.models.production_batch import (
    BatchMaterialColorAllocation,
    BatchTimeline,
    ProductionBatch,
    SizeColorRequest,
)
from garmentflow.models.stage_task import TASK_MODELS, CuttingTask, FinishingTask, SewingTask
from garmentflow.models.user import User
from garmentflow.repositories.base import BaseRepository
from garmentflow.repositories.stage_task_repository import CuttingResultRepository, StageTaskRepository
from garmentflow.repositories.sub_batch_repository import SubBatchRepository, SubBatchTimelineRepository
from garmentflow.schemas.production_batch import (
    BatchCompletionSummary,
    BatchReconciliationResponse,
    PendingVerificationItem,
    ProductionBatchCreate,
    ProductionStatisticsResponse,
    ReconciliationIssue,
)
from garmentflow.services.workflow_base import WorkflowService
from garmentflow.utils.events import EntityCreatedEvent, SubBatchStatusChangedEvent

logger = logging.getLogger(__name__)

SEWING_READY = {SubBatchStatus.FORWARDED_TO_FINISHING.value, SubBatchStatus.COMPLETED.value}
FINISHING_READY = {SubBatchStatus.WAREHOUSE_VERIFIED.value, SubBatchStatus.COMPLETED.value}


def next_sequence(existing: List[str], prefix: str) -> int:
    """Highest numeric suffix after ``prefix`` among ``existing`` plus one."""
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    highest = 0
    for sku in existing:
        match = pattern.match(sku)
        if match:
            highest = max(highest, int(match.group(1)))
    return highest + 1


class ProductionBatchService(WorkflowService):
    def __init__(self, db: Session):
        super().__init__(db)
        self._products = BaseRepository(Product, db)
        self._variants = BaseRepository(MaterialColorVariant, db)
        self._sub_batches = SubBatchRepository(db)
        self._sub_batch_timeline = SubBatchTimelineRepository(db)
        self._cutting_results = CuttingResultRepository(db)
        self._tasks = {stage: StageTaskRepository(db, model) for stage, model in TASK_MODELS.items()}

    # ── creation ─────────────────────────────────────────────────────────────

    def generate_batch_sku(self) -> str:
        prefix = f"{settings.BATCH_SKU_PREFIX}-{utcnow():%Y%m%d}-"
        seq = next_sequence(self._batches.skus_with_prefix(prefix), prefix)
        return f"{prefix}{seq:0{settings.SKU_SEQUENCE_WIDTH}d}"

    def create_batch(self, body: ProductionBatchCreate, actor: User) -> ProductionBatch:
        authorize(actor, Action.BATCH_CREATE)
        seen = set()
        for req in body.size_color_requests:
            key = (req.product_size, req.color)
            if key in seen:
                raise ValidationException(f"Duplicate size/color request {req.product_size}/{req.color}")
            seen.add(key)

        with self._unit_of_work():
            if not self._products.get_by_id(body.product_id):
                raise EntityNotFoundException("Product", body.product_id)
            for alloc in body.material_allocations:
                if not self._variants.get_by_id(alloc.material_color_variant_id):
                    raise EntityNotFoundException("MaterialColorVariant", alloc.material_color_variant_id)

            status = BatchStatus.PENDING.value
            if body.material_allocations:
                status = BATCH_MACHINE.fire(status, "request_material")
            batch = ProductionBatch(
                batch_sku=self.generate_batch_sku(),
                product_id=body.product_id,
                status=status,
                target_quantity=sum(r.requested_pieces for r in body.size_color_requests),
                total_rolls=sum((a.roll_quantity for a in body.material_allocations), Decimal("0")),
                notes=body.notes,
                created_by_id=actor.id,
            )
            batch.size_color_requests = [
                SizeColorRequest(product_size=r.product_size, color=r.color, requested_pieces=r.requested_pieces)
                for r in body.size_color_requests
            ]
            batch.material_allocations = [
                BatchMaterialColorAllocation(
                    material_color_variant_id=a.material_color_variant_id,
                    allocated_qty=a.allocated_qty,
                    roll_quantity=a.roll_quantity,
                    meter_per_roll=a.meter_per_roll,
                )
                for a in body.material_allocations
            ]
            self._batches.add(batch, commit=False)
            self._timeline.append(
                batch.id,
                "BATCH_CREATED",
                f"Batch {batch.batch_sku} created for {batch.target_quantity} pcs",
                actor.id,
            )
            self._defer(
                EntityCreatedEvent(
                    entity_type="ProductionBatch",
                    entity_id=batch.id,
                    user_id=actor.id,
                    new_values={"batch_sku": batch.batch_sku, "status": batch.status},
                )
            )

        logger.info("batch_created batch=%s sku=%s status=%s", batch.id, batch.batch_sku, batch.status)
        return batch

    # ── queries ──────────────────────────────────────────────────────────────

    def get_batch(self, batch_id: str, actor: User) -> ProductionBatch:
        authorize(actor, Action.BATCH_VIEW)
        return self._get_batch(batch_id, fresh=False)

    def list_batches(
        self,
        actor: User,
        status: Optional[str] = None,
        product_id: Optional[str] = None,
        include_archived: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[ProductionBatch], int]:
        authorize(actor, Action.BATCH_VIEW)
        query = self._batches.list_filtered(status=status, product_id=product_id, include_archived=include_archived)
        return self._batches.list_paginated(page=page, page_size=page_size, query=query)

    def get_timeline(self, batch_id: str, actor: User) -> List[BatchTimeline]:
        authorize(actor, Action.BATCH_VIEW)
        self._get_batch(batch_id, fresh=False)
        return self._timeline.list_for_batch(batch_id)

    def statistics(self, actor: User) -> ProductionStatisticsResponse:
        authorize(actor, Action.BATCH_STATISTICS)
        pending: List[PendingVerificationItem] = []
        for stage, repo in self._tasks.items():
            for task in repo.list_awaiting_verification():
                pending.append(
                    PendingVerificationItem(
                        task_id=task.id,
                        stage=stage.value,
                        batch_id=task.batch_id,
                        batch_sku=task.batch.batch_sku,
                        assigned_to_id=task.assigned_to_id,
                        pieces_completed=task.pieces_completed,
                        completed_at=task.completed_at,
                    )
                )
        sub_counts = self._sub_batches.count_by_status()
        return ProductionStatisticsResponse(
            active_batches=self._batches.count_active(),
            batches_by_status=self._batches.count_by_status(),
            pending_task_verifications=pending,
            sub_batches_awaiting_production_check=sum(
                n for (_, status), n in sub_counts.items() if status == SubBatchStatus.CREATED.value
            ),
            sub_batches_awaiting_warehouse_check=sub_counts.get(
                (SubBatchSource.FINISHING.value, SubBatchStatus.SUBMITTED_TO_WAREHOUSE.value), 0
            ),
        )

    # ── archival ─────────────────────────────────────────────────────────────

    def archive_batch(self, batch_id: str, actor: User) -> ProductionBatch:
        authorize(actor, Action.BATCH_ARCHIVE)
        with self._unit_of_work():
            batch = self._get_batch(batch_id)
            if batch.archived_at is not None:
                raise BusinessRuleViolationException(f"Batch {batch.batch_sku} is already archived")
            batch.archived_at = utcnow()
            self._timeline.append(batch.id, "BATCH_ARCHIVED", None, actor.id)
        return batch

    # ── completion gate ──────────────────────────────────────────────────────

    def complete_batch(self, batch_id: str, actor: User) -> Tuple[ProductionBatch, BatchCompletionSummary]:
        authorize(actor, Action.BATCH_COMPLETE)
        with self._unit_of_work():
            batch = self._get_batch(batch_id)
            BATCH_MACHINE.fire(batch.status, "complete")

            sewing = self._tasks[Stage.SEWING].get_for_batch(batch.id)
            if sewing is None or sewing.status not in (TaskStatus.COMPLETED.value, TaskStatus.VERIFIED.value):
                raise InvalidStateTransitionException(
                    "SewingTask",
                    current=sewing.status if sewing else "MISSING",
                    action="complete batch",
                    expected=[TaskStatus.COMPLETED.value, TaskStatus.VERIFIED.value],
                )

            sub_batches = self._sub_batches.list_filtered(batch_id=batch.id)
            deliveries = [s for s in sub_batches if s.source == SubBatchSource.FINISHING.value]
            if not deliveries:
                raise BusinessRuleViolationException(
                    f"Batch {batch.batch_sku} has no finishing sub-batches to complete"
                )
            offenders = [
                s
                for s in sub_batches
                if s.status not in (SEWING_READY if s.source == SubBatchSource.SEWING.value else FINISHING_READY)
            ]
            if offenders:
                listing = ", ".join(f"{s.sub_batch_sku} ({s.status})" for s in offenders)
                raise BusinessRuleViolationException(
                    f"Sub-batches not yet verified: {listing}",
                    {"offenders": [{"sub_batch_sku": s.sub_batch_sku, "status": s.status} for s in offenders]},
                )

            good, rejects = self._sub_batches.sum_item_totals(batch.id, SubBatchSource.FINISHING.value)
            if good + rejects != sewing.pieces_completed:
                raise BusinessRuleViolationException(
                    f"Quantity mismatch: finishing sub-batches total {good + rejects} pcs "
                    f"({good} good + {rejects} reject) but sewing completed {sewing.pieces_completed} pcs",
                    {"finishing_total": good + rejects, "sewing_completed": sewing.pieces_completed},
                )

            now = utcnow()
            for sub_batch in sub_batches:
                machine = sub_batch_machine(sub_batch.source)
                if sub_batch.status == SubBatchStatus.COMPLETED.value:
                    continue
                old_status = sub_batch.status
                self._fire(self._sub_batches, sub_batch, machine, "complete", {"completed_at": now})
                self._sub_batch_timeline.append(sub_batch, "SUB_BATCH_COMPLETED", None, actor.id)
                self._defer(
                    SubBatchStatusChangedEvent(
                        entity_type="SubBatch",
                        entity_id=sub_batch.id,
                        user_id=actor.id,
                        old_status=old_status,
                        new_status=sub_batch.status,
                        batch_id=batch.id,
                        source=sub_batch.source,
                    )
                )

            self._transition_batch(
                batch,
                "complete",
                actor,
                f"Batch completed: {good} good, {rejects} reject",
                values={"completed_date": now, "actual_quantity": good, "reject_quantity": rejects},
            )
            summary = BatchCompletionSummary(
                sub_batches_completed=len(sub_batches),
                actual_quantity=good,
                reject_quantity=rejects,
                sewing_pieces_completed=sewing.pieces_completed,
            )

        logger.info("batch_completed batch=%s good=%s rejects=%s", batch.id, good, rejects)
        return batch, summary

    # ── reconciliation ───────────────────────────────────────────────────────

    def reconciliation_report(self, batch_id: str, actor: User) -> BatchReconciliationResponse:
        """Compare every stored aggregate of a batch with the sum of its detail rows."""
        authorize(actor, Action.BATCH_VIEW)
        batch = self._get_batch(batch_id, fresh=False)
        issues: List[ReconciliationIssue] = []

        def check(entity: str, entity_id: str, field: str, stored: int, derived: int) -> None:
            if (stored or 0) != derived:
                issues.append(
                    ReconciliationIssue(entity=entity, entity_id=entity_id, field=field, stored=stored or 0, derived=derived)
                )

        sub_batches = self._sub_batches.list_filtered(batch_id=batch.id)
        for sb in sub_batches:
            good = sum(i.good_quantity for i in sb.items)
            good_field = "sewing_output" if sb.source == SubBatchSource.SEWING.value else "finishing_good_output"
            check("SubBatch", sb.id, good_field, getattr(sb, good_field), good)
            for field in ("reject_kotor", "reject_sobek", "reject_rusak_jahit"):
                check("SubBatch", sb.id, field, getattr(sb, field), sum(getattr(i, field) for i in sb.items))

        cutting = self._tasks[Stage.CUTTING].get_for_batch(batch.id)
        if cutting is not None:
            check("CuttingTask", cutting.id, "pieces_completed", cutting.pieces_completed,
                  self._cutting_results.total_pieces(batch.id))

        sewing = self._tasks[Stage.SEWING].get_for_batch(batch.id)
        if sewing is not None:
            sewn, _ = self._sub_batches.sum_item_totals(batch.id, SubBatchSource.SEWING.value)
            check("SewingTask", sewing.id, "pieces_completed", sewing.pieces_completed, sewn)

        finishing = self._tasks[Stage.FINISHING].get_for_batch(batch.id)
        if finishing is not None:
            received, _ = self._sub_batches.sum_item_totals(
                batch.id, SubBatchSource.SEWING.value, statuses=SEWING_READY
            )
            good, rejects = self._sub_batches.sum_item_totals(batch.id, SubBatchSource.FINISHING.value)
            check("FinishingTask", finishing.id, "pieces_received", finishing.pieces_received, received)
            check("FinishingTask", finishing.id, "pieces_completed", finishing.pieces_completed, good + rejects)
            check("FinishingTask", finishing.id, "reject_pieces", finishing.reject_pieces, rejects)

        if batch.status in (BatchStatus.WAREHOUSE_VERIFIED.value, BatchStatus.COMPLETED.value):
            good, rejects = self._sub_batches.sum_item_totals(batch.id, SubBatchSource.FINISHING.value)
            check("ProductionBatch", batch.id, "actual_quantity", batch.actual_quantity, good)
            check("ProductionBatch", batch.id, "reject_quantity", batch.reject_quantity, rejects)

        if issues:
            logger.warning("batch_reconciliation_drift batch=%s issues=%s", batch.id, len(issues))
        return BatchReconciliationResponse(batch_id=batch.id, consistent=not issues, issues=issues)
