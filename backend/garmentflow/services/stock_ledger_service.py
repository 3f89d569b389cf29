"""
Stock Ledger Service

The only code path that changes MaterialColorVariant.stock. Each apply()
performs one stock mutation and writes exactly one MaterialTransaction in
the caller's transaction.

Note: ADJUSTMENT *sets* stock to the given quantity. It is an override, not
a delta; IN/RETURN add and OUT subtracts.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from garmentflow.core.authorization import Action, authorize
from garmentflow.core.exceptions import (
    BelowMinimumStockException,
    EntityNotFoundException,
    InsufficientStockException,
    ValidationException,
)
from garmentflow.core.state_machine import TransactionType
from garmentflow.database import transaction
from garmentflow.models.material import MaterialColorVariant, MaterialTransaction
from garmentflow.models.user import User
from garmentflow.repositories.material_repository import (
    MaterialColorVariantRepository,
    MaterialTransactionRepository,
)
from garmentflow.schemas.material import StockReconciliationResponse, StockTransactionRequest
from garmentflow.utils.events import EntityUpdatedEvent, get_event_bus

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
_PURCHASE_FIELDS = (
    "roll_quantity",
    "meter_per_roll",
    "purchase_order_number",
    "supplier",
    "purchase_date",
    "purchase_notes",
)


def _d(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value or 0))


@dataclass
class StockMovement:
    variant: MaterialColorVariant
    transaction: MaterialTransaction

    @property
    def new_stock(self) -> Decimal:
        return _d(self.transaction.stock_after)


class StockLedgerService:
    def __init__(self, db: Session):
        self._db = db
        self._variants = MaterialColorVariantRepository(db)
        self._transactions = MaterialTransactionRepository(db)
        self._bus = get_event_bus()

    def get_variant(self, variant_id: str) -> MaterialColorVariant:
        variant = self._variants.get_by_id(variant_id)
        if not variant:
            raise EntityNotFoundException("MaterialColorVariant", variant_id)
        return variant

    def apply(
        self,
        variant_id: str,
        transaction_type: TransactionType,
        quantity,
        user_id: str,
        batch_id: Optional[str] = None,
        notes: Optional[str] = None,
        floor: Decimal = ZERO,
    ) -> StockMovement:
        """
        Mutate stock and append the matching transaction row. Flushes only;
        the caller owns the commit. ``floor`` is the lowest stock an OUT may
        leave behind (minimum stock during allocation).
        """
        transaction_type = TransactionType(transaction_type)
        qty = _d(quantity)
        if qty < 0 or (qty == 0 and transaction_type != TransactionType.ADJUSTMENT):
            raise ValidationException(
                f"Quantity must be positive for {transaction_type.value} (got {qty})",
                {"quantity": str(qty), "type": transaction_type.value},
            )

        variant = self.get_variant(variant_id)
        self._db.flush()
        self._db.refresh(variant)
        before = _d(variant.stock)

        if transaction_type in (TransactionType.IN, TransactionType.RETURN):
            self._variants.increment_stock(variant.id, qty)
        elif transaction_type == TransactionType.OUT:
            if not self._variants.decrement_stock(variant.id, qty, floor=floor):
                self._db.refresh(variant)
                self._raise_shortfall(variant, qty, floor)
        else:
            self._variants.set_stock(variant.id, qty)

        self._db.refresh(variant)
        after = _d(variant.stock)
        # Relative movements take before from the value just written.
        if transaction_type in (TransactionType.IN, TransactionType.RETURN):
            before = after - qty
        elif transaction_type == TransactionType.OUT:
            before = after + qty
        row = MaterialTransaction(
            material_id=variant.material_id,
            material_color_variant_id=variant.id,
            type=transaction_type.value,
            quantity=qty,
            unit=variant.unit,
            stock_before=before,
            stock_after=after,
            batch_id=batch_id,
            user_id=user_id,
            notes=notes,
        )
        self._transactions.add(row, commit=False)
        logger.info(
            "stock_applied variant=%s type=%s qty=%s before=%s after=%s batch=%s",
            variant.id,
            transaction_type.value,
            qty,
            before,
            after,
            batch_id,
        )
        return StockMovement(variant=variant, transaction=row)

    def _raise_shortfall(self, variant: MaterialColorVariant, qty: Decimal, floor: Decimal) -> None:
        current = _d(variant.stock)
        details = {
            "variant_id": variant.id,
            "color": variant.color_name,
            "needed": str(qty),
            "available": str(current),
        }
        if current < qty:
            raise InsufficientStockException(
                f"Insufficient stock for {variant.color_name}: need {qty}, available {current}",
                details,
            )
        details["minimum"] = str(floor)
        raise BelowMinimumStockException(
            f"Taking {qty} of {variant.color_name} leaves {current - qty}, below minimum stock {floor}",
            details,
        )

    def record_transaction(self, variant_id: str, body: StockTransactionRequest, actor: User) -> StockMovement:
        """Manual stock movement (receiving, returns, stock-take adjustments)."""
        authorize(actor, Action.STOCK_TRANSACT)
        with transaction(self._db):
            movement = self.apply(
                variant_id,
                body.type,
                body.quantity,
                user_id=actor.id,
                batch_id=body.batch_id,
                notes=body.notes,
            )
            if body.type == TransactionType.IN:
                updates = {f: getattr(body, f) for f in _PURCHASE_FIELDS if getattr(body, f) is not None}
                if updates:
                    self._variants.update(movement.variant, updates, commit=False)
        self._db.refresh(movement.variant)
        self._bus.publish(
            EntityUpdatedEvent(
                entity_type="MaterialColorVariant",
                entity_id=variant_id,
                user_id=actor.id,
                old_values={"stock": str(movement.transaction.stock_before)},
                new_values={"stock": str(movement.transaction.stock_after), "type": body.type.value},
            )
        )
        return movement

    def list_transactions(
        self,
        actor: User,
        variant_id: Optional[str] = None,
        batch_id: Optional[str] = None,
        transaction_type: Optional[str] = None,
    ) -> List[MaterialTransaction]:
        authorize(actor, Action.STOCK_TRANSACT)
        return self._transactions.list_filtered(
            variant_id=variant_id, batch_id=batch_id, transaction_type=transaction_type
        )

    def view_variant(self, variant_id: str, actor: User) -> MaterialColorVariant:
        authorize(actor, Action.BATCH_VIEW)
        return self.get_variant(variant_id)

    def list_variants(
        self, actor: User, material_id: Optional[str] = None, below_minimum: bool = False
    ) -> List[MaterialColorVariant]:
        authorize(actor, Action.BATCH_VIEW)
        return self._variants.list_filtered(material_id=material_id, below_minimum=below_minimum)

    def reconcile_variant(self, variant_id: str, actor: User) -> StockReconciliationResponse:
        authorize(actor, Action.STOCK_TRANSACT)
        result = self.replay_stock(variant_id)
        if not result.consistent:
            logger.warning(
                "stock_ledger_drift variant=%s stored=%s replayed=%s broken=%s",
                variant_id,
                result.stored_stock,
                result.replayed_stock,
                len(result.broken_links),
            )
        return result

    def replay_stock(self, variant_id: str) -> StockReconciliationResponse:
        """Rebuild stock from the transaction log and compare it to the stored value."""
        variant = self.get_variant(variant_id)
        history = self._transactions.history_for_variant(variant_id)
        stock = _d(history[0].stock_before) if history else _d(variant.stock)
        broken: List[str] = []
        for row in history:
            if _d(row.stock_before) != stock:
                broken.append(row.id)
            qty = _d(row.quantity)
            if row.type in (TransactionType.IN.value, TransactionType.RETURN.value):
                stock += qty
            elif row.type == TransactionType.OUT.value:
                stock -= qty
            else:
                stock = qty
        stored = _d(variant.stock)
        return StockReconciliationResponse(
            variant_id=variant_id,
            stored_stock=stored,
            replayed_stock=stock,
            transaction_count=len(history),
            consistent=stock == stored and not broken,
            broken_links=broken,
        )
