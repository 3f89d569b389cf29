from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from garmentflow.models.material import MaterialColorVariant, MaterialTransaction
from garmentflow.repositories.base import BaseRepository


class MaterialColorVariantRepository(BaseRepository[MaterialColorVariant]):
    def __init__(self, db: Session):
        super().__init__(MaterialColorVariant, db)

    def increment_stock(self, variant_id: str, quantity: Decimal) -> bool:
        updated = (
            self.db.query(MaterialColorVariant)
            .filter(MaterialColorVariant.id == variant_id)
            .update({MaterialColorVariant.stock: MaterialColorVariant.stock + quantity}, synchronize_session=False)
        )
        return bool(updated)

    def decrement_stock(self, variant_id: str, quantity: Decimal, floor: Decimal = Decimal("0")) -> bool:
        """
        Single conditional UPDATE: succeeds only while ``stock - quantity >= floor``.
        Concurrent decrements of the same variant serialize on the row.
        """
        updated = (
            self.db.query(MaterialColorVariant)
            .filter(
                MaterialColorVariant.id == variant_id,
                MaterialColorVariant.stock >= quantity + floor,
            )
            .update({MaterialColorVariant.stock: MaterialColorVariant.stock - quantity}, synchronize_session=False)
        )
        return bool(updated)

    def set_stock(self, variant_id: str, quantity: Decimal) -> bool:
        updated = (
            self.db.query(MaterialColorVariant)
            .filter(MaterialColorVariant.id == variant_id)
            .update({MaterialColorVariant.stock: quantity}, synchronize_session=False)
        )
        return bool(updated)

    def list_filtered(self, material_id: Optional[str] = None, below_minimum: bool = False) -> List[MaterialColorVariant]:
        q = self.db.query(MaterialColorVariant)
        if material_id is not None:
            q = q.filter(MaterialColorVariant.material_id == material_id)
        if below_minimum:
            q = q.filter(MaterialColorVariant.stock < MaterialColorVariant.minimum_stock)
        return q.order_by(MaterialColorVariant.material_id, MaterialColorVariant.color_name).all()


class MaterialTransactionRepository(BaseRepository[MaterialTransaction]):
    def __init__(self, db: Session):
        super().__init__(MaterialTransaction, db)

    def list_filtered(
        self,
        variant_id: Optional[str] = None,
        batch_id: Optional[str] = None,
        transaction_type: Optional[str] = None,
        limit: int = 200,
    ) -> List[MaterialTransaction]:
        q = self.db.query(MaterialTransaction)
        if variant_id is not None:
            q = q.filter(MaterialTransaction.material_color_variant_id == variant_id)
        if batch_id is not None:
            q = q.filter(MaterialTransaction.batch_id == batch_id)
        if transaction_type is not None:
            q = q.filter(MaterialTransaction.type == transaction_type)
        return q.order_by(MaterialTransaction.created_at.desc()).limit(limit).all()

    def history_for_variant(self, variant_id: str) -> List[MaterialTransaction]:
        return (
            self.db.query(MaterialTransaction)
            .filter(MaterialTransaction.material_color_variant_id == variant_id)
            .order_by(MaterialTransaction.created_at)
            .all()
        )
