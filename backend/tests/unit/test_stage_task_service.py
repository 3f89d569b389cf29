import pytest
from sqlalchemy.orm import Session

from garmentflow.core.exceptions import (
    AuthorizationException,
    BusinessRuleViolationException,
    InvalidStateTransitionException,
    RoleMismatchException,
)
from garmentflow.core.state_machine import Role, Stage
from garmentflow.models.notification import Notification
from garmentflow.models.stage_task import CuttingResult
from garmentflow.models.user import User
from garmentflow.schemas.stage_task import CuttingProgressRequest, CuttingResultIn, VerifyRequest
from garmentflow.services.stage_task_service import StageTaskService


def _progress(*results, reject_pieces=0):
    return CuttingProgressRequest(
        results=[CuttingResultIn(product_size=s, color=c, actual_pieces=n) for s, c, n in results],
        reject_pieces=reject_pieces,
    )


@pytest.fixture
def cutting(db):
    return StageTaskService(db, Stage.CUTTING)


@pytest.fixture
def allocated(workflow):
    workflow.create_batch(requests=[("M", "Red", 50), ("L", "Red", 30)])
    workflow.allocate()
    return workflow.batch


def test_assign_creates_pending_task_with_target(db, workflow, cutting, allocated, cutter, production_head):
    task = cutting.assign(allocated.id, cutter.id, production_head)

    assert task.status == "PENDING"
    assert task.stage == "CUTTING"
    assert task.pieces_received == 80
    assert workflow.reload_batch().status == "ASSIGNED_TO_CUTTER"

    notes = db.query(Notification).filter(Notification.user_id == cutter.id).all()
    assert [n.type for n in notes] == ["BATCH_ASSIGNMENT"]


def test_assign_requires_worker_role(cutting, allocated, sewer, production_head):
    with pytest.raises(RoleMismatchException) as exc_info:
        cutting.assign(allocated.id, sewer.id, production_head)
    assert exc_info.value.status_code == 422


def test_assign_before_allocation_is_invalid(workflow, cutting, cutter, production_head):
    batch = workflow.create_batch()
    with pytest.raises(InvalidStateTransitionException):
        cutting.assign(batch.id, cutter.id, production_head)


def test_workers_cannot_assign(cutting, allocated, cutter):
    with pytest.raises(AuthorizationException):
        cutting.assign(allocated.id, cutter.id, cutter)


def test_only_assignee_may_start(db, cutting, allocated, cutter, production_head):
    task = cutting.assign(allocated.id, cutter.id, production_head)
    stranger = User(username="pemotong2", name="Pemotong Dua", role=Role.PEMOTONG.value)
    db.add(stranger)
    db.commit()

    with pytest.raises(AuthorizationException, match="not assigned"):
        cutting.start(task.id, stranger)
    assert cutting.start(task.id, cutter).status == "IN_PROGRESS"


def test_supervisor_may_start_on_behalf_of_worker(workflow, cutting, allocated, cutter, production_head):
    task = cutting.assign(allocated.id, cutter.id, production_head)
    started = cutting.start(task.id, production_head)

    assert started.status == "IN_PROGRESS"
    assert started.started_at is not None
    assert workflow.reload_batch().status == "IN_CUTTING"


def test_cutting_progress_upserts_results(db, cutting, allocated, cutter, production_head):
    task = cutting.assign(allocated.id, cutter.id, production_head)
    cutting.start(task.id, cutter)

    cutting.record_cutting_progress(task.id, _progress(("M", "Red", 40)), cutter)
    task = cutting.record_cutting_progress(
        task.id, _progress(("M", "Red", 48), ("L", "Red", 30), reject_pieces=2), cutter
    )

    assert task.pieces_completed == 78
    assert task.reject_pieces == 2
    rows = cutting.list_cutting_results(allocated.id, production_head)
    assert sorted((r.product_size, r.actual_pieces) for r in rows) == [("L", 30), ("M", 48)]
    assert db.query(CuttingResult).count() == 2


def test_progress_requires_task_in_progress(cutting, allocated, cutter, production_head):
    task = cutting.assign(allocated.id, cutter.id, production_head)
    with pytest.raises(InvalidStateTransitionException):
        cutting.record_cutting_progress(task.id, _progress(("M", "Red", 10)), cutter)


def test_progress_is_cutting_only(db, workflow):
    workflow.to_sewing()
    sewing = StageTaskService(db, Stage.SEWING)
    task = sewing.get_for_batch(workflow.batch.id, workflow.head)
    with pytest.raises(BusinessRuleViolationException):
        sewing.record_cutting_progress(task.id, _progress(("M", "Red", 1)), workflow.users[Role.PENJAHIT])


def test_complete_requires_pieces(cutting, allocated, cutter, production_head):
    task = cutting.assign(allocated.id, cutter.id, production_head)
    cutting.start(task.id, cutter)
    with pytest.raises(BusinessRuleViolationException, match="no completed pieces"):
        cutting.complete(task.id, cutter)


def test_complete_notifies_production_heads(db, workflow, cutting, allocated, cutter, production_head):
    task = cutting.assign(allocated.id, cutter.id, production_head)
    cutting.start(task.id, cutter)
    cutting.record_cutting_progress(task.id, _progress(("M", "Red", 50), ("L", "Red", 30)), cutter)
    task = cutting.complete(task.id, cutter)

    assert task.status == "COMPLETED"
    assert task.completed_at is not None
    assert workflow.reload_batch().status == "CUTTING_COMPLETED"
    heads = db.query(Notification).filter(Notification.user_id == production_head.id).all()
    assert [n.type for n in heads] == ["TASK_COMPLETED"]


def test_reject_then_redo_then_approve(workflow, cutting, allocated, cutter, production_head):
    task = cutting.assign(allocated.id, cutter.id, production_head)
    cutting.start(task.id, cutter)
    cutting.record_cutting_progress(task.id, _progress(("M", "Red", 50), ("L", "Red", 20)), cutter)
    cutting.complete(task.id, cutter)

    task = cutting.verify(task.id, VerifyRequest(action="reject", notes="L short by 10"), production_head)
    assert task.status == "REJECTED"
    assert task.verified_at is None
    assert workflow.reload_batch().status == "IN_CUTTING"

    cutting.start(task.id, cutter)
    cutting.record_cutting_progress(task.id, _progress(("L", "Red", 30)), cutter)
    cutting.complete(task.id, cutter)
    task = cutting.verify(task.id, VerifyRequest(action="approve"), production_head)

    assert task.status == "VERIFIED"
    assert task.verified_by_id == production_head.id
    assert task.pieces_completed == 80
    assert workflow.reload_batch().status == "CUTTING_VERIFIED"
    assert all(r.is_confirmed for r in cutting.list_cutting_results(allocated.id, production_head))


def test_verify_requires_completed_task(cutting, allocated, cutter, production_head):
    task = cutting.assign(allocated.id, cutter.id, production_head)
    with pytest.raises(InvalidStateTransitionException):
        cutting.verify(task.id, VerifyRequest(action="approve"), production_head)


def test_reassign_only_while_pending(db, cutting, allocated, cutter, production_head):
    second = User(username="pemotong2", name="Pemotong Dua", role=Role.PEMOTONG.value)
    db.add(second)
    db.commit()

    task = cutting.assign(allocated.id, cutter.id, production_head)
    cutting.start(task.id, cutter)
    with pytest.raises(InvalidStateTransitionException):
        cutting.assign(allocated.id, second.id, production_head)


def test_confirm_single_cutting_result(cutting, allocated, cutter, production_head):
    task = cutting.assign(allocated.id, cutter.id, production_head)
    cutting.start(task.id, cutter)
    cutting.record_cutting_progress(task.id, _progress(("M", "Red", 50)), cutter)
    row = cutting.list_cutting_results(allocated.id, production_head)[0]

    confirmed = cutting.confirm_cutting_result(row.id, production_head)
    assert confirmed.is_confirmed is True
    assert confirmed.confirmed_by_id == production_head.id

    with pytest.raises(AuthorizationException):
        cutting.confirm_cutting_result(row.id, cutter)


def test_sewing_assignment_receives_cut_pieces(db, workflow):
    task = workflow.to_sewing(cut_pieces=64)
    assert task.pieces_received == 64
    assert task.status == "IN_PROGRESS"
    assert workflow.reload_batch().status == "IN_SEWING"


def test_list_my_tasks(db, workflow, cutting, allocated, cutter, production_head):
    cutting.assign(allocated.id, cutter.id, production_head)
    assert len(cutting.list_my_tasks(cutter)) == 1
    assert cutting.list_my_tasks(cutter, status="IN_PROGRESS") == []


def test_stale_verification_loses_to_committed_one(db, cutting, allocated, cutter, production_head, monkeypatch):
    task = cutting.assign(allocated.id, cutter.id, production_head)
    task_id = task.id
    cutting.start(task_id, cutter)
    cutting.record_cutting_progress(task_id, _progress(("M", "Red", 50)), cutter)
    cutting.complete(task_id, cutter)
    stale = cutting._get_task(task_id)
    assert stale.status == "COMPLETED"

    other = Session(bind=db.get_bind())
    try:
        StageTaskService(other, Stage.CUTTING).verify(
            task_id, VerifyRequest(action="approve"), other.get(User, production_head.id)
        )
    finally:
        other.close()

    monkeypatch.setattr(cutting, "_get_task", lambda _id: stale)
    with pytest.raises(InvalidStateTransitionException):
        cutting.verify(task_id, VerifyRequest(action="reject"), production_head)

    db.expire_all()
    assert stale.status == "VERIFIED"
