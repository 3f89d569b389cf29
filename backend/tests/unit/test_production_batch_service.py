import re

import pytest

from garmentflow.core.exceptions import (
    AuthorizationException,
    BusinessRuleViolationException,
    EntityNotFoundException,
    InvalidStateTransitionException,
    ValidationException,
)
from garmentflow.core.state_machine import Role, Stage
from garmentflow.models.audit_log import AuditLog
from garmentflow.models.stage_task import SewingTask
from garmentflow.schemas.production_batch import ProductionBatchCreate, SizeColorRequestIn
from garmentflow.schemas.sub_batch import SubBatchVerifyRequest, WarehouseVerifyRequest
from garmentflow.services.production_batch_service import ProductionBatchService, next_sequence
from garmentflow.services.stage_task_service import StageTaskService

APPROVE = SubBatchVerifyRequest(action="approve")


def _deliver_to_warehouse(workflow, sub_batch):
    service = workflow.sub_batches()
    service.verify(sub_batch.id, APPROVE, workflow.head)
    service.verify_warehouse(sub_batch.id, WarehouseVerifyRequest(location="Rak A-3"), workflow.users[Role.KEPALA_GUDANG])


def _finish_stage(workflow, stage: Stage, role: Role):
    service = StageTaskService(workflow.db, stage)
    task = service.get_for_batch(workflow.batch.id, workflow.head)
    return service.complete(task.id, workflow.users[role])


def _ready_for_completion(workflow, good=45, rejects=5):
    workflow.to_finishing(sewn=good + rejects)
    sub_batch = workflow.finish([("M", "Red", good, rejects)])
    _deliver_to_warehouse(workflow, sub_batch)
    _finish_stage(workflow, Stage.FINISHING, Role.FINISHING)
    _finish_stage(workflow, Stage.SEWING, Role.PENJAHIT)
    return sub_batch


# ── creation ────────────────────────────────────────────────────────────────


def test_next_sequence() -> None:
    assert next_sequence([], "PROD-20261019-") == 1
    assert next_sequence(["PROD-20261019-001", "PROD-20261019-007", "PROD-20261018-099"], "PROD-20261019-") == 8
    assert next_sequence(["PROD-20261019-abc"], "PROD-20261019-") == 1


def test_create_batch_with_materials(workflow):
    batch = workflow.create_batch(requests=[("M", "Red", 50), ("L", "Red", 30)])

    assert re.fullmatch(r"PROD-\d{8}-001", batch.batch_sku)
    assert batch.status == "MATERIAL_REQUESTED"
    assert batch.target_quantity == 80
    assert len(batch.size_color_requests) == 2
    assert batch.material_allocations[0].status == "REQUESTED"


def test_create_batch_without_materials_is_pending(workflow):
    batch = workflow.create_batch(allocated_qty=None)
    assert batch.status == "PENDING"


def test_batch_skus_are_sequential(workflow):
    first = workflow.create_batch()
    second = workflow.create_batch()
    assert second.batch_sku[:-3] == first.batch_sku[:-3]
    assert int(second.batch_sku[-3:]) == int(first.batch_sku[-3:]) + 1


def test_duplicate_size_colour_request_rejected(workflow):
    with pytest.raises(ValidationException, match="Duplicate"):
        workflow.create_batch(requests=[("M", "Red", 10), ("M", "Red", 5)])


def test_unknown_product_rejected(db, production_head):
    body = ProductionBatchCreate(
        product_id="missing",
        size_color_requests=[SizeColorRequestIn(product_size="M", color="Red", requested_pieces=1)],
    )
    with pytest.raises(EntityNotFoundException):
        ProductionBatchService(db).create_batch(body, production_head)


def test_workers_cannot_create_batches(db, product, sewer):
    body = ProductionBatchCreate(
        product_id=product.id,
        size_color_requests=[SizeColorRequestIn(product_size="M", color="Red", requested_pieces=1)],
    )
    with pytest.raises(AuthorizationException):
        ProductionBatchService(db).create_batch(body, sewer)


def test_creation_is_audited(db, workflow):
    batch = workflow.create_batch()
    rows = db.query(AuditLog).filter(AuditLog.entity == "ProductionBatch", AuditLog.entity_id == batch.id).all()
    assert [r.action for r in rows] == ["CREATE"]


# ── queries ─────────────────────────────────────────────────────────────────


def test_list_batches_filters_and_paginates(db, workflow, production_head):
    workflow.create_batch()
    workflow.create_batch()
    workflow.create_batch(allocated_qty=None)
    service = ProductionBatchService(db)

    items, total = service.list_batches(production_head, page=1, page_size=2)
    assert total == 3
    assert len(items) == 2

    pending, total = service.list_batches(production_head, status="PENDING")
    assert total == 1
    assert pending[0].status == "PENDING"


def test_archived_batches_hidden_by_default(db, workflow, owner, production_head):
    batch = workflow.create_batch()
    service = ProductionBatchService(db)
    archived = service.archive_batch(batch.id, owner)
    assert archived.archived_at is not None

    assert service.list_batches(production_head)[1] == 0
    assert service.list_batches(production_head, include_archived=True)[1] == 1

    with pytest.raises(BusinessRuleViolationException):
        service.archive_batch(batch.id, owner)


def test_only_owner_archives(db, workflow, production_head):
    batch = workflow.create_batch()
    with pytest.raises(AuthorizationException):
        ProductionBatchService(db).archive_batch(batch.id, production_head)


def test_timeline_in_order(db, workflow, production_head):
    workflow.create_batch()
    workflow.allocate()
    events = [t.event for t in ProductionBatchService(db).get_timeline(workflow.batch.id, production_head)]
    assert events[:2] == ["BATCH_CREATED", "MATERIAL_ALLOCATED"]


def test_statistics(db, workflow, production_head):
    workflow.to_sewing()
    workflow.sew([("M", "Red", 20)])
    stats = ProductionBatchService(db).statistics(production_head)

    assert stats.active_batches == 1
    assert stats.batches_by_status == {"IN_SEWING": 1}
    assert stats.sub_batches_awaiting_production_check == 1
    assert stats.sub_batches_awaiting_warehouse_check == 0
    assert stats.pending_task_verifications == []


def test_statistics_lists_tasks_awaiting_verification(db, workflow, production_head):
    workflow.create_batch()
    workflow.allocate()
    workflow.cut(approve=False)
    stats = ProductionBatchService(db).statistics(production_head)

    assert [(p.stage, p.pieces_completed) for p in stats.pending_task_verifications] == [("CUTTING", 80)]


# ── aggregate derivation and completion ─────────────────────────────────────


def test_batch_stays_in_sewing_until_sewing_completes(workflow):
    workflow.to_finishing(sewn=50)
    assert workflow.reload_batch().status == "IN_SEWING"

    _finish_stage(workflow, Stage.SEWING, Role.PENJAHIT)
    assert workflow.reload_batch().status == "IN_FINISHING"


def test_warehouse_verified_batch_carries_quantities(workflow):
    _ready_for_completion(workflow, good=45, rejects=5)
    batch = workflow.reload_batch()

    assert batch.status == "WAREHOUSE_VERIFIED"
    assert batch.actual_quantity == 45
    assert batch.reject_quantity == 5


def test_complete_batch(db, workflow, production_head):
    _ready_for_completion(workflow, good=45, rejects=5)
    batch, summary = ProductionBatchService(db).complete_batch(workflow.batch.id, production_head)

    assert batch.status == "COMPLETED"
    assert batch.completed_date is not None
    assert summary.actual_quantity == 45
    assert summary.reject_quantity == 5
    assert summary.sewing_pieces_completed == 50
    assert summary.sub_batches_completed == 2
    assert {s.status for s in workflow.sub_batches().list_sub_batches(production_head, batch_id=batch.id)} == {
        "COMPLETED"
    }

    with pytest.raises(InvalidStateTransitionException):
        ProductionBatchService(db).complete_batch(workflow.batch.id, production_head)


def test_complete_rejects_unverified_deliveries(db, workflow, production_head):
    workflow.to_finishing(sewn=50)
    sub_batch = workflow.finish([("M", "Red", 50, 0)])
    workflow.sub_batches().verify(sub_batch.id, APPROVE, workflow.head)
    _finish_stage(workflow, Stage.FINISHING, Role.FINISHING)
    _finish_stage(workflow, Stage.SEWING, Role.PENJAHIT)
    assert workflow.reload_batch().status == "SUBMITTED_TO_WAREHOUSE"

    with pytest.raises(BusinessRuleViolationException) as exc_info:
        ProductionBatchService(db).complete_batch(workflow.batch.id, production_head)
    assert exc_info.value.details["offenders"][0]["status"] == "SUBMITTED_TO_WAREHOUSE"


def test_complete_rejects_quantity_mismatch(db, workflow, production_head):
    workflow.to_finishing(sewn=50)
    sub_batch = workflow.finish([("M", "Red", 40, 0)])
    _deliver_to_warehouse(workflow, sub_batch)
    _finish_stage(workflow, Stage.FINISHING, Role.FINISHING)
    _finish_stage(workflow, Stage.SEWING, Role.PENJAHIT)

    with pytest.raises(BusinessRuleViolationException, match="Quantity mismatch"):
        ProductionBatchService(db).complete_batch(workflow.batch.id, production_head)
    assert workflow.reload_batch().status == "WAREHOUSE_VERIFIED"


def test_complete_requires_sewing_done(db, workflow, production_head):
    workflow.to_finishing(sewn=50)
    with pytest.raises(InvalidStateTransitionException):
        ProductionBatchService(db).complete_batch(workflow.batch.id, production_head)


def test_complete_requires_finishing_deliveries(db, workflow, production_head):
    workflow.to_sewing()
    workflow.approve_and_forward(workflow.sew([("M", "Red", 50)]))
    _finish_stage(workflow, Stage.SEWING, Role.PENJAHIT)
    assert workflow.reload_batch().status == "ASSIGNED_TO_FINISHING"

    with pytest.raises(BusinessRuleViolationException, match="no finishing sub-batches"):
        ProductionBatchService(db).complete_batch(workflow.batch.id, production_head)


# ── reconciliation report ───────────────────────────────────────────────────


def test_reconciliation_report_consistent_after_full_flow(db, workflow, production_head):
    _ready_for_completion(workflow)
    report = ProductionBatchService(db).reconciliation_report(workflow.batch.id, production_head)
    assert report.consistent is True
    assert report.issues == []


def test_reconciliation_report_flags_drift(db, workflow, production_head):
    workflow.to_sewing()
    workflow.sew([("M", "Red", 30)])
    task = db.query(SewingTask).filter(SewingTask.batch_id == workflow.batch.id).one()
    task.pieces_completed = 99
    db.commit()

    report = ProductionBatchService(db).reconciliation_report(workflow.batch.id, production_head)
    assert report.consistent is False
    assert [(i.entity, i.field, i.stored, i.derived) for i in report.issues] == [
        ("SewingTask", "pieces_completed", 99, 30)
    ]
