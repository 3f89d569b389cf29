"""
Capability gate.

One table maps each workflow action to the roles allowed to perform it.
Services call authorize() once at every state-machine entry point, so the
same rules hold whether the call comes from HTTP, a script or a test.
"""
import logging
from enum import Enum
from typing import Dict, FrozenSet, Optional

from garmentflow.core.exceptions import AuthorizationException
from garmentflow.core.state_machine import Role

logger = logging.getLogger(__name__)


class Action(str, Enum):
    BATCH_CREATE = "batch.create"
    BATCH_VIEW = "batch.view"
    BATCH_STATISTICS = "batch.statistics"
    BATCH_COMPLETE = "batch.complete"
    BATCH_ARCHIVE = "batch.archive"
    ALLOCATION_CONFIRM = "allocation.confirm"
    STOCK_TRANSACT = "stock.transact"
    STAGE_ASSIGN = "stage.assign"
    STAGE_VERIFY = "stage.verify"
    CUTTING_WORK = "cutting.work"
    SEWING_WORK = "sewing.work"
    FINISHING_WORK = "finishing.work"
    CUTTING_RESULT_CONFIRM = "cutting_result.confirm"
    SUB_BATCH_VERIFY = "sub_batch.verify"
    SUB_BATCH_FORWARD = "sub_batch.forward"
    SUB_BATCH_VERIFY_WAREHOUSE = "sub_batch.verify_warehouse"


SUPERVISORS = frozenset({Role.OWNER, Role.KEPALA_PRODUKSI})
WAREHOUSE = frozenset({Role.OWNER, Role.KEPALA_GUDANG})

ACTION_ROLES: Dict[Action, FrozenSet[Role]] = {
    Action.BATCH_CREATE: SUPERVISORS,
    Action.BATCH_VIEW: SUPERVISORS | {Role.KEPALA_GUDANG},
    Action.BATCH_STATISTICS: SUPERVISORS | {Role.KEPALA_GUDANG},
    Action.BATCH_COMPLETE: SUPERVISORS,
    Action.BATCH_ARCHIVE: frozenset({Role.OWNER}),
    Action.ALLOCATION_CONFIRM: WAREHOUSE,
    Action.STOCK_TRANSACT: WAREHOUSE,
    Action.STAGE_ASSIGN: SUPERVISORS,
    Action.STAGE_VERIFY: SUPERVISORS,
    Action.CUTTING_WORK: SUPERVISORS | {Role.PEMOTONG},
    Action.SEWING_WORK: SUPERVISORS | {Role.PENJAHIT},
    Action.FINISHING_WORK: SUPERVISORS | {Role.FINISHING},
    Action.CUTTING_RESULT_CONFIRM: SUPERVISORS,
    Action.SUB_BATCH_VERIFY: SUPERVISORS,
    Action.SUB_BATCH_FORWARD: SUPERVISORS,
    Action.SUB_BATCH_VERIFY_WAREHOUSE: WAREHOUSE,
}

# Workers may only touch tasks assigned to them.
WORKER_ROLES = frozenset({Role.PEMOTONG, Role.PENJAHIT, Role.FINISHING})


def _role_of(actor) -> Optional[str]:
    role = getattr(actor, "role", None)
    return role.value if isinstance(role, Enum) else role


def _denial(actor, action: Action, resource: Optional[object]) -> Optional[AuthorizationException]:
    role = _role_of(actor)
    actor_id = getattr(actor, "id", None)
    allowed = {r.value for r in ACTION_ROLES[action]}
    if actor is None or not getattr(actor, "is_active", True) or role not in allowed:
        return AuthorizationException(
            f"Role {role} may not perform {action.value}",
            {"action": action.value, "allowed_roles": sorted(allowed)},
        )
    if resource is not None and role in {r.value for r in WORKER_ROLES}:
        if getattr(resource, "assigned_to_id", None) != actor_id:
            return AuthorizationException(
                f"User '{actor_id}' is not assigned to this task",
                {"action": action.value, "actor_id": actor_id},
            )
    return None


def is_allowed(actor, action: Action, resource: Optional[object] = None) -> bool:
    return _denial(actor, action, resource) is None


def authorize(actor, action: Action, resource: Optional[object] = None) -> None:
    denial = _denial(actor, action, resource)
    if denial is None:
        return
    logger.warning(
        "authorization_denied action=%s actor=%s role=%s",
        action.value,
        getattr(actor, "id", None),
        _role_of(actor),
    )
    raise denial
