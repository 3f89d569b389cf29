"""
Stage Task Service — cutting, sewing and finishing work

One service drives all three stages through TASK_MACHINE. A StageDefinition
names what differs per stage: the worker role, the capability that gates
worker actions and the batch actions fired as the task moves.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from garmentflow.core.authorization import Action, authorize
from garmentflow.core.exceptions import (
    BusinessRuleViolationException,
    EntityNotFoundException,
    InvalidStateTransitionException,
)
from garmentflow.core.state_machine import (
    BATCH_MACHINE,
    TASK_MACHINE,
    NotificationType,
    Role,
    Stage,
    SubBatchSource,
    SubBatchStatus,
    TaskStatus,
)
from garmentflow.database import utcnow
from garmentflow.models.stage_task import TASK_MODELS, CuttingResult, StageTask
from garmentflow.models.user import User
from garmentflow.repositories.stage_task_repository import CuttingResultRepository, StageTaskRepository
from garmentflow.repositories.sub_batch_repository import SubBatchRepository
from garmentflow.schemas.stage_task import CuttingProgressRequest, VerifyRequest
from garmentflow.services.workflow_base import WorkflowService
from garmentflow.utils.events import StageTaskStatusChangedEvent

logger = logging.getLogger(__name__)

FORWARDED = (SubBatchStatus.FORWARDED_TO_FINISHING.value, SubBatchStatus.COMPLETED.value)


@dataclass(frozen=True)
class StageDefinition:
    stage: Stage
    worker_role: Role
    work_action: Action
    assign: str
    start: str
    complete: str
    approve: Optional[str]
    reject: str

    @property
    def label(self) -> str:
        return self.stage.value.lower()


STAGES = {
    Stage.CUTTING: StageDefinition(
        Stage.CUTTING, Role.PEMOTONG, Action.CUTTING_WORK,
        "assign_cutting", "start_cutting", "complete_cutting", "approve_cutting", "reject_cutting",
    ),
    Stage.SEWING: StageDefinition(
        Stage.SEWING, Role.PENJAHIT, Action.SEWING_WORK,
        "assign_sewing", "start_sewing", "complete_sewing", "approve_sewing", "reject_sewing",
    ),
    # Finishing approval leaves the batch where the warehouse flow puts it.
    Stage.FINISHING: StageDefinition(
        Stage.FINISHING, Role.FINISHING, Action.FINISHING_WORK,
        "assign_finishing", "start_finishing", "complete_finishing", None, "reject_finishing",
    ),
}


class StageTaskService(WorkflowService):
    def __init__(self, db: Session, stage: Stage):
        super().__init__(db)
        self.definition = STAGES[Stage(stage)]
        self._tasks = StageTaskRepository(db, TASK_MODELS[self.definition.stage])
        self._cutting_results = CuttingResultRepository(db)
        self._sub_batches = SubBatchRepository(db)

    # ── lookups ──────────────────────────────────────────────────────────────

    def _get_task(self, task_id: str) -> StageTask:
        task = self._tasks.get_by_id(task_id)
        if not task:
            raise EntityNotFoundException(f"{self.definition.stage.value.title()}Task", task_id)
        self._db.refresh(task)
        return task

    def get_task(self, task_id: str, actor: User) -> StageTask:
        task = self._get_task(task_id)
        authorize(actor, self.definition.work_action, task)
        return task

    def get_for_batch(self, batch_id: str, actor: User) -> StageTask:
        authorize(actor, Action.BATCH_VIEW)
        task = self._tasks.get_for_batch(batch_id)
        if not task:
            raise EntityNotFoundException(f"{self.definition.stage.value.title()}Task", f"batch:{batch_id}")
        return task

    def list_my_tasks(self, actor: User, status: Optional[str] = None) -> List[StageTask]:
        authorize(actor, self.definition.work_action)
        return self._tasks.list_for_assignee(actor.id, status=status)

    # ── assignment ───────────────────────────────────────────────────────────

    def assign(self, batch_id: str, assigned_to_id: str, actor: User, notes: Optional[str] = None) -> StageTask:
        authorize(actor, Action.STAGE_ASSIGN)
        d = self.definition
        with self._unit_of_work():
            batch = self._get_batch(batch_id)
            BATCH_MACHINE.fire(batch.status, d.assign)
            worker = self._get_user_with_role(assigned_to_id, d.worker_role)

            task = self._tasks.get_for_batch(batch.id)
            if task is None:
                task = self._tasks.add(
                    TASK_MODELS[d.stage](
                        batch_id=batch.id,
                        assigned_to_id=worker.id,
                        status=TaskStatus.PENDING.value,
                        notes=notes,
                    ),
                    commit=False,
                )
            elif task.status == TaskStatus.PENDING.value:
                task.assigned_to_id = worker.id
                if notes:
                    task.notes = notes
            else:
                raise InvalidStateTransitionException(
                    type(task).__name__, task.status, "reassign", [TaskStatus.PENDING.value]
                )
            task.pieces_received = self._pieces_received(batch)

            self._transition_batch(
                batch, d.assign, actor, f"{d.label.title()} assigned to {worker.name} ({task.pieces_received} pcs)"
            )
            self._notify(
                NotificationType.BATCH_ASSIGNMENT.value,
                f"New {d.label} task",
                f"Batch {batch.batch_sku} is assigned to you for {d.label}",
                entity_type=type(task).__name__,
                entity_id=task.id,
                recipient_id=worker.id,
            )

        logger.info("task_assigned stage=%s task=%s batch=%s worker=%s", d.stage.value, task.id, batch.id, worker.id)
        return task

    def _pieces_received(self, batch) -> int:
        if self.definition.stage == Stage.CUTTING:
            return batch.target_quantity
        if self.definition.stage == Stage.SEWING:
            return self._cutting_results.total_pieces(batch.id)
        good, _ = self._sub_batches.sum_item_totals(batch.id, SubBatchSource.SEWING.value, statuses=FORWARDED)
        return good

    # ── worker actions ───────────────────────────────────────────────────────

    def start(self, task_id: str, actor: User, notes: Optional[str] = None) -> StageTask:
        d = self.definition
        with self._unit_of_work():
            task = self._get_task(task_id)
            authorize(actor, d.work_action, task)
            old_status = task.status
            self._fire(self._tasks, task, TASK_MACHINE, "start", {"started_at": task.started_at or utcnow()})
            if notes:
                task.notes = notes
            self._db.flush()

            batch = self._get_batch(task.batch_id)
            self._transition_batch(batch, d.start, actor, f"{d.label.title()} started", strict=False)
            self._task_changed(task, old_status, actor)
        return task

    def record_cutting_progress(self, task_id: str, body: CuttingProgressRequest, actor: User) -> StageTask:
        """Upsert per size/colour cutting results; pieces_completed follows their sum."""
        if self.definition.stage != Stage.CUTTING:
            raise BusinessRuleViolationException("Per size/colour progress is recorded on cutting tasks only")
        with self._unit_of_work():
            task = self._get_task(task_id)
            authorize(actor, Action.CUTTING_WORK, task)
            self._fire(self._tasks, task, TASK_MACHINE, "progress")

            for result in body.results:
                row = self._cutting_results.get_for(task.batch_id, result.product_size, result.color)
                if row is None:
                    row = CuttingResult(
                        batch_id=task.batch_id,
                        product_size=result.product_size,
                        color=result.color,
                    )
                    self._cutting_results.add(row, commit=False)
                row.actual_pieces = result.actual_pieces
                row.input_by_id = actor.id
                row.is_confirmed = False
                row.confirmed_by_id = None
                row.confirmed_at = None
            self._db.flush()

            task.pieces_completed = self._cutting_results.total_pieces(task.batch_id)
            task.reject_pieces = body.reject_pieces
            if body.waste_qty is not None:
                task.waste_qty = body.waste_qty
            if body.notes:
                task.notes = body.notes
            self._timeline.append(
                task.batch_id, "CUTTING_PROGRESS", f"{task.pieces_completed} pcs cut, {task.reject_pieces} reject", actor.id
            )
        return task

    def complete(self, task_id: str, actor: User, notes: Optional[str] = None) -> StageTask:
        d = self.definition
        with self._unit_of_work():
            task = self._get_task(task_id)
            authorize(actor, d.work_action, task)
            old_status = task.status
            TASK_MACHINE.fire(old_status, "complete")
            if (task.pieces_completed or 0) <= 0:
                raise BusinessRuleViolationException(
                    f"Cannot complete {d.label} task with no completed pieces",
                    {"task_id": task.id, "pieces_completed": task.pieces_completed or 0},
                )
            self._fire(
                self._tasks,
                task,
                TASK_MACHINE,
                "complete",
                {"completed_at": utcnow(), "verified_at": None, "verified_by_id": None},
            )
            if notes:
                task.notes = notes
            self._db.flush()

            batch = self._get_batch(task.batch_id)
            self._transition_batch(
                batch, d.complete, actor, f"{d.label.title()} completed: {task.pieces_completed} pcs", strict=False
            )
            self._task_changed(task, old_status, actor)
            self._notify(
                NotificationType.TASK_COMPLETED.value,
                f"{d.label.title()} completed",
                f"Batch {batch.batch_sku}: {task.pieces_completed} pcs ready for verification",
                entity_type=type(task).__name__,
                entity_id=task.id,
                recipient_role=Role.KEPALA_PRODUKSI,
            )
        return task

    # ── supervisor actions ───────────────────────────────────────────────────

    def verify(self, task_id: str, body: VerifyRequest, actor: User) -> StageTask:
        authorize(actor, Action.STAGE_VERIFY)
        d = self.definition
        with self._unit_of_work():
            task = self._get_task(task_id)
            old_status = task.status
            now = utcnow()
            approved = {"verified_at": now, "verified_by_id": actor.id} if body.action == "approve" else None
            self._fire(self._tasks, task, TASK_MACHINE, body.action, approved)
            if body.notes:
                task.notes = body.notes
            if body.action == "approve":
                if d.stage == Stage.CUTTING:
                    for row in self._cutting_results.list_for_batch(task.batch_id):
                        row.is_confirmed = True
                        row.confirmed_by_id = actor.id
                        row.confirmed_at = now
            self._db.flush()

            batch_action = d.approve if body.action == "approve" else d.reject
            batch = self._get_batch(task.batch_id)
            if batch_action:
                self._transition_batch(
                    batch,
                    batch_action,
                    actor,
                    f"{d.label.title()} {'approved' if body.action == 'approve' else 'rejected'}"
                    + (f": {body.notes}" if body.notes else ""),
                    strict=False,
                )
            self._task_changed(task, old_status, actor)
            self._notify(
                NotificationType.VERIFICATION_RESULT.value,
                f"{d.label.title()} {task.status.lower()}",
                f"Your {d.label} work on batch {batch.batch_sku} was {task.status.lower()}",
                entity_type=type(task).__name__,
                entity_id=task.id,
                recipient_id=task.assigned_to_id,
            )
        logger.info("task_verified stage=%s task=%s result=%s", d.stage.value, task.id, task.status)
        return task

    def confirm_cutting_result(self, result_id: str, actor: User) -> CuttingResult:
        authorize(actor, Action.CUTTING_RESULT_CONFIRM)
        with self._unit_of_work():
            row = self._cutting_results.get_by_id(result_id)
            if not row:
                raise EntityNotFoundException("CuttingResult", result_id)
            row.is_confirmed = True
            row.confirmed_by_id = actor.id
            row.confirmed_at = utcnow()
            self._db.flush()
        return row

    def list_cutting_results(self, batch_id: str, actor: User) -> List[CuttingResult]:
        authorize(actor, Action.BATCH_VIEW)
        self._get_batch(batch_id, fresh=False)
        return self._cutting_results.list_for_batch(batch_id)

    def _task_changed(self, task: StageTask, old_status: str, actor: User) -> None:
        self._emit(
            StageTaskStatusChangedEvent(
                entity_type=type(task).__name__,
                entity_id=task.id,
                user_id=actor.id,
                old_status=old_status,
                new_status=task.status,
                batch_id=task.batch_id,
                stage=self.definition.stage.value,
            )
        )
