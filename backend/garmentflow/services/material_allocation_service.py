"""
Batch Material Allocator

confirm() deducts every requested material of a batch in one transaction:
all allocations succeed together or none do.
"""
import logging
from decimal import Decimal
from typing import Dict, List

from sqlalchemy.orm import Session

from garmentflow.core.authorization import Action, authorize
from garmentflow.core.exceptions import (
    BelowMinimumStockException,
    InsufficientStockException,
)
from garmentflow.core.state_machine import AllocationStatus, BATCH_MACHINE, TransactionType
from garmentflow.database import utcnow
from garmentflow.models.production_batch import ProductionBatch
from garmentflow.models.user import User
from garmentflow.services.stock_ledger_service import StockLedgerService
from garmentflow.services.workflow_base import WorkflowService

logger = logging.getLogger(__name__)


def _d(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value or 0))


def _describe(rows: List[Dict[str, str]]) -> str:
    return "; ".join(
        f"{r['color']}: need {r['needed']}, available {r['available']}"
        + (f", minimum {r['minimum']}" if "minimum" in r else "")
        for r in rows
    )


class MaterialAllocationService(WorkflowService):
    def __init__(self, db: Session):
        super().__init__(db)
        self._ledger = StockLedgerService(db)

    def confirm(self, batch_id: str, actor: User) -> ProductionBatch:
        authorize(actor, Action.ALLOCATION_CONFIRM)
        with self._unit_of_work():
            batch = self._get_batch(batch_id)
            BATCH_MACHINE.fire(batch.status, "allocate")
            self._check_sufficiency(batch)

            now = utcnow()
            for allocation in batch.material_allocations:
                variant = allocation.color_variant
                allocation.stock_at_allocation = _d(variant.stock)
                allocation.roll_quantity_at_allocation = variant.roll_quantity
                self._ledger.apply(
                    variant.id,
                    TransactionType.OUT,
                    allocation.allocated_qty,
                    user_id=actor.id,
                    batch_id=batch.id,
                    notes=f"Allocation for batch {batch.batch_sku}",
                    floor=_d(variant.minimum_stock),
                )
                allocation.status = AllocationStatus.ALLOCATED.value
                allocation.allocated_at = now

            self._transition_batch(
                batch,
                "allocate",
                actor,
                f"{len(batch.material_allocations)} material allocation(s) deducted from stock",
                values={"start_date": now},
            )

        logger.info("batch_materials_allocated batch=%s sku=%s", batch.id, batch.batch_sku)
        return batch

    def _check_sufficiency(self, batch: ProductionBatch) -> None:
        """Validate every allocation against live stock before any deduction."""
        needed: Dict[str, Decimal] = {}
        for allocation in batch.material_allocations:
            key = allocation.material_color_variant_id
            needed[key] = needed.get(key, Decimal("0")) + _d(allocation.allocated_qty)

        short: List[Dict[str, str]] = []
        below_floor: List[Dict[str, str]] = []
        for variant_id, qty in needed.items():
            variant = self._ledger.get_variant(variant_id)
            self._db.refresh(variant)
            stock = _d(variant.stock)
            row = {"variant_id": variant_id, "color": variant.color_name, "needed": str(qty), "available": str(stock)}
            if stock < qty:
                short.append(row)
            elif stock - qty < _d(variant.minimum_stock):
                row["minimum"] = str(_d(variant.minimum_stock))
                below_floor.append(row)

        if short:
            logger.warning("allocation_rejected batch=%s reason=insufficient_stock", batch.id)
            raise InsufficientStockException(f"Insufficient stock: {_describe(short)}", {"shortfalls": short})
        if below_floor:
            logger.warning("allocation_rejected batch=%s reason=below_minimum_stock", batch.id)
            raise BelowMinimumStockException(
                f"Allocation would breach minimum stock: {_describe(below_floor)}",
                {"shortfalls": below_floor},
            )
