"""
Closed status enums and explicit transition tables.

Every status change in the workflow is resolved through a StateMachine:
(from_state, action) -> to_state. Anything missing from the table is an
invalid transition.
"""
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from garmentflow.core.exceptions import InvalidStateTransitionException


class Role(str, Enum):
    OWNER = "OWNER"
    KEPALA_PRODUKSI = "KEPALA_PRODUKSI"
    KEPALA_GUDANG = "KEPALA_GUDANG"
    PEMOTONG = "PEMOTONG"
    PENJAHIT = "PENJAHIT"
    FINISHING = "FINISHING"


class BatchStatus(str, Enum):
    PENDING = "PENDING"
    MATERIAL_REQUESTED = "MATERIAL_REQUESTED"
    MATERIAL_ALLOCATED = "MATERIAL_ALLOCATED"
    ASSIGNED_TO_CUTTER = "ASSIGNED_TO_CUTTER"
    IN_CUTTING = "IN_CUTTING"
    CUTTING_COMPLETED = "CUTTING_COMPLETED"
    CUTTING_VERIFIED = "CUTTING_VERIFIED"
    ASSIGNED_TO_SEWER = "ASSIGNED_TO_SEWER"
    IN_SEWING = "IN_SEWING"
    SEWING_COMPLETED = "SEWING_COMPLETED"
    SEWING_VERIFIED = "SEWING_VERIFIED"
    ASSIGNED_TO_FINISHING = "ASSIGNED_TO_FINISHING"
    IN_FINISHING = "IN_FINISHING"
    FINISHING_COMPLETED = "FINISHING_COMPLETED"
    SUBMITTED_TO_WAREHOUSE = "SUBMITTED_TO_WAREHOUSE"
    WAREHOUSE_VERIFIED = "WAREHOUSE_VERIFIED"
    COMPLETED = "COMPLETED"

    @property
    def rank(self) -> int:
        return _BATCH_ORDER.index(self)

    def is_past(self, other: "BatchStatus") -> bool:
        return self.rank > BatchStatus(other).rank


_BATCH_ORDER = list(BatchStatus)


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class Stage(str, Enum):
    CUTTING = "CUTTING"
    SEWING = "SEWING"
    FINISHING = "FINISHING"


class SubBatchSource(str, Enum):
    SEWING = "SEWING"
    FINISHING = "FINISHING"


class SubBatchStatus(str, Enum):
    CREATED = "CREATED"
    SEWING_VERIFIED = "SEWING_VERIFIED"
    FORWARDED_TO_FINISHING = "FORWARDED_TO_FINISHING"
    SUBMITTED_TO_WAREHOUSE = "SUBMITTED_TO_WAREHOUSE"
    WAREHOUSE_VERIFIED = "WAREHOUSE_VERIFIED"
    COMPLETED = "COMPLETED"


class TransactionType(str, Enum):
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"
    RETURN = "RETURN"


class AllocationStatus(str, Enum):
    REQUESTED = "REQUESTED"
    ALLOCATED = "ALLOCATED"


class FinishedGoodType(str, Enum):
    FINISHED = "FINISHED"
    REJECT = "REJECT"


class NotificationType(str, Enum):
    BATCH_ASSIGNMENT = "BATCH_ASSIGNMENT"
    TASK_COMPLETED = "TASK_COMPLETED"
    VERIFICATION_NEEDED = "VERIFICATION_NEEDED"
    VERIFICATION_RESULT = "VERIFICATION_RESULT"


# Terminal marker for a sub-batch rejection: the row is deleted, not moved.
DELETED = "DELETED"


def sql_in(values: Iterable[Enum]) -> str:
    """Render enum values for a CHECK constraint: 'A', 'B', 'C'."""
    return ", ".join(f"'{v.value}'" for v in values)


class StateMachine:
    def __init__(self, entity: str, transitions: Dict[Tuple[str, str], str]):
        self.entity = entity
        self._transitions = {(str(_value(s)), a): str(_value(t)) for (s, a), t in transitions.items()}

    def allowed_from(self, action: str) -> FrozenSet[str]:
        return frozenset(s for (s, a) in self._transitions if a == action)

    def can_fire(self, current: str, action: str) -> bool:
        return (str(_value(current)), action) in self._transitions

    def peek(self, current: str, action: str) -> Optional[str]:
        return self._transitions.get((str(_value(current)), action))

    def fire(self, current: str, action: str) -> str:
        target = self.peek(current, action)
        if target is None:
            raise InvalidStateTransitionException(
                self.entity,
                current=str(_value(current)),
                action=action,
                expected=sorted(self.allowed_from(action)),
            )
        return target


def _value(state) -> str:
    return state.value if isinstance(state, Enum) else state


T = TaskStatus
TASK_MACHINE = StateMachine(
    "StageTask",
    {
        (T.PENDING, "start"): T.IN_PROGRESS,
        (T.REJECTED, "start"): T.IN_PROGRESS,
        (T.IN_PROGRESS, "progress"): T.IN_PROGRESS,
        (T.IN_PROGRESS, "complete"): T.COMPLETED,
        (T.REJECTED, "complete"): T.COMPLETED,
        (T.COMPLETED, "approve"): T.VERIFIED,
        (T.COMPLETED, "reject"): T.REJECTED,
    },
)

S = SubBatchStatus
SEWING_SUB_BATCH_MACHINE = StateMachine(
    "SubBatch",
    {
        (S.CREATED, "approve"): S.SEWING_VERIFIED,
        (S.CREATED, "reject"): DELETED,
        (S.SEWING_VERIFIED, "forward"): S.FORWARDED_TO_FINISHING,
        (S.FORWARDED_TO_FINISHING, "complete"): S.COMPLETED,
    },
)
FINISHING_SUB_BATCH_MACHINE = StateMachine(
    "SubBatch",
    {
        (S.CREATED, "edit"): S.CREATED,
        (S.CREATED, "approve"): S.SUBMITTED_TO_WAREHOUSE,
        (S.CREATED, "reject"): DELETED,
        (S.SUBMITTED_TO_WAREHOUSE, "verify_warehouse"): S.WAREHOUSE_VERIFIED,
        (S.WAREHOUSE_VERIFIED, "complete"): S.COMPLETED,
    },
)


def sub_batch_machine(source: str) -> StateMachine:
    if _value(source) == SubBatchSource.SEWING.value:
        return SEWING_SUB_BATCH_MACHINE
    return FINISHING_SUB_BATCH_MACHINE


B = BatchStatus
_COMPLETABLE_FROM = [
    B.SEWING_COMPLETED,
    B.SEWING_VERIFIED,
    B.ASSIGNED_TO_FINISHING,
    B.IN_FINISHING,
    B.FINISHING_COMPLETED,
    B.SUBMITTED_TO_WAREHOUSE,
    B.WAREHOUSE_VERIFIED,
]
BATCH_MACHINE = StateMachine(
    "ProductionBatch",
    {
        (B.PENDING, "request_material"): B.MATERIAL_REQUESTED,
        (B.PENDING, "allocate"): B.MATERIAL_ALLOCATED,
        (B.MATERIAL_REQUESTED, "allocate"): B.MATERIAL_ALLOCATED,
        (B.MATERIAL_ALLOCATED, "assign_cutting"): B.ASSIGNED_TO_CUTTER,
        (B.ASSIGNED_TO_CUTTER, "start_cutting"): B.IN_CUTTING,
        (B.IN_CUTTING, "complete_cutting"): B.CUTTING_COMPLETED,
        (B.CUTTING_COMPLETED, "approve_cutting"): B.CUTTING_VERIFIED,
        (B.CUTTING_COMPLETED, "reject_cutting"): B.IN_CUTTING,
        (B.CUTTING_VERIFIED, "assign_sewing"): B.ASSIGNED_TO_SEWER,
        (B.ASSIGNED_TO_SEWER, "start_sewing"): B.IN_SEWING,
        (B.IN_SEWING, "complete_sewing"): B.SEWING_COMPLETED,
        (B.SEWING_COMPLETED, "approve_sewing"): B.SEWING_VERIFIED,
        (B.SEWING_COMPLETED, "reject_sewing"): B.IN_SEWING,
        (B.SEWING_COMPLETED, "assign_finishing"): B.ASSIGNED_TO_FINISHING,
        (B.SEWING_VERIFIED, "assign_finishing"): B.ASSIGNED_TO_FINISHING,
        (B.ASSIGNED_TO_FINISHING, "assign_finishing"): B.ASSIGNED_TO_FINISHING,
        (B.ASSIGNED_TO_FINISHING, "start_finishing"): B.IN_FINISHING,
        (B.IN_FINISHING, "complete_finishing"): B.FINISHING_COMPLETED,
        (B.FINISHING_COMPLETED, "reject_finishing"): B.IN_FINISHING,
        (B.FINISHING_COMPLETED, "submit_to_warehouse"): B.SUBMITTED_TO_WAREHOUSE,
        (B.SUBMITTED_TO_WAREHOUSE, "warehouse_verify"): B.WAREHOUSE_VERIFIED,
        **{(s, "complete"): B.COMPLETED for s in _COMPLETABLE_FROM},
    },
)
