import pytest

from garmentflow.core.exceptions import InvalidStateTransitionException
from garmentflow.core.state_machine import (
    BATCH_MACHINE,
    DELETED,
    FINISHING_SUB_BATCH_MACHINE,
    SEWING_SUB_BATCH_MACHINE,
    TASK_MACHINE,
    BatchStatus,
    SubBatchSource,
    TaskStatus,
    sub_batch_machine,
)


def test_task_happy_path() -> None:
    status = TaskStatus.PENDING.value
    for action, expected in (
        ("start", TaskStatus.IN_PROGRESS),
        ("progress", TaskStatus.IN_PROGRESS),
        ("complete", TaskStatus.COMPLETED),
        ("approve", TaskStatus.VERIFIED),
    ):
        status = TASK_MACHINE.fire(status, action)
        assert status == expected.value


def test_rejected_task_can_be_restarted_or_completed_again() -> None:
    rejected = TASK_MACHINE.fire(TaskStatus.COMPLETED.value, "reject")
    assert rejected == TaskStatus.REJECTED.value
    assert TASK_MACHINE.fire(rejected, "start") == TaskStatus.IN_PROGRESS.value
    assert TASK_MACHINE.fire(rejected, "complete") == TaskStatus.COMPLETED.value


def test_invalid_task_transition_names_expected_states() -> None:
    with pytest.raises(InvalidStateTransitionException) as exc_info:
        TASK_MACHINE.fire(TaskStatus.PENDING.value, "complete")

    exc = exc_info.value
    assert exc.current == "PENDING"
    assert set(exc.expected) == {"IN_PROGRESS", "REJECTED"}
    assert exc.status_code == 409


def test_verified_task_is_terminal() -> None:
    for action in ("start", "progress", "complete", "approve", "reject"):
        assert not TASK_MACHINE.can_fire(TaskStatus.VERIFIED.value, action)


def test_sub_batch_machines_by_source() -> None:
    assert sub_batch_machine(SubBatchSource.SEWING.value) is SEWING_SUB_BATCH_MACHINE
    assert sub_batch_machine(SubBatchSource.FINISHING) is FINISHING_SUB_BATCH_MACHINE
    assert SEWING_SUB_BATCH_MACHINE.fire("CREATED", "approve") == "SEWING_VERIFIED"
    assert FINISHING_SUB_BATCH_MACHINE.fire("CREATED", "approve") == "SUBMITTED_TO_WAREHOUSE"
    assert FINISHING_SUB_BATCH_MACHINE.fire("CREATED", "reject") == DELETED


def test_finishing_sub_batch_edit_only_while_created() -> None:
    assert FINISHING_SUB_BATCH_MACHINE.can_fire("CREATED", "edit")
    assert not FINISHING_SUB_BATCH_MACHINE.can_fire("SUBMITTED_TO_WAREHOUSE", "edit")
    assert not SEWING_SUB_BATCH_MACHINE.can_fire("CREATED", "verify_warehouse")


def test_batch_forward_path_is_ordered() -> None:
    path = [
        ("allocate", BatchStatus.MATERIAL_ALLOCATED),
        ("assign_cutting", BatchStatus.ASSIGNED_TO_CUTTER),
        ("start_cutting", BatchStatus.IN_CUTTING),
        ("complete_cutting", BatchStatus.CUTTING_COMPLETED),
        ("approve_cutting", BatchStatus.CUTTING_VERIFIED),
        ("assign_sewing", BatchStatus.ASSIGNED_TO_SEWER),
        ("start_sewing", BatchStatus.IN_SEWING),
        ("complete_sewing", BatchStatus.SEWING_COMPLETED),
        ("assign_finishing", BatchStatus.ASSIGNED_TO_FINISHING),
        ("start_finishing", BatchStatus.IN_FINISHING),
        ("complete_finishing", BatchStatus.FINISHING_COMPLETED),
        ("submit_to_warehouse", BatchStatus.SUBMITTED_TO_WAREHOUSE),
        ("warehouse_verify", BatchStatus.WAREHOUSE_VERIFIED),
        ("complete", BatchStatus.COMPLETED),
    ]
    status = BatchStatus.MATERIAL_REQUESTED
    for action, expected in path:
        new_status = BatchStatus(BATCH_MACHINE.fire(status.value, action))
        assert new_status == expected
        assert new_status.is_past(status)
        status = new_status


def test_batch_cannot_complete_before_sewing_is_done() -> None:
    for status in (BatchStatus.PENDING, BatchStatus.IN_CUTTING, BatchStatus.IN_SEWING):
        assert not BATCH_MACHINE.can_fire(status.value, "complete")
    assert not BATCH_MACHINE.can_fire(BatchStatus.COMPLETED.value, "complete")


def test_stage_rejection_returns_batch_to_work() -> None:
    assert BATCH_MACHINE.fire("CUTTING_COMPLETED", "reject_cutting") == "IN_CUTTING"
    assert BATCH_MACHINE.fire("SEWING_COMPLETED", "reject_sewing") == "IN_SEWING"
    assert BATCH_MACHINE.fire("FINISHING_COMPLETED", "reject_finishing") == "IN_FINISHING"
    assert BATCH_MACHINE.peek("IN_SEWING", "reject_sewing") is None
