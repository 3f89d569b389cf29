from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from garmentflow.core.state_machine import BatchStatus
from garmentflow.models.production_batch import BatchTimeline, ProductionBatch
from garmentflow.repositories.base import BaseRepository


class ProductionBatchRepository(BaseRepository[ProductionBatch]):
    def __init__(self, db: Session):
        super().__init__(ProductionBatch, db)

    def list_filtered(
        self,
        status: Optional[str] = None,
        product_id: Optional[str] = None,
        include_archived: bool = False,
    ):
        q = self.db.query(ProductionBatch)
        if status is not None:
            q = q.filter(ProductionBatch.status == status)
        if product_id is not None:
            q = q.filter(ProductionBatch.product_id == product_id)
        if not include_archived:
            q = q.filter(ProductionBatch.archived_at.is_(None))
        return q.order_by(ProductionBatch.created_at.desc())

    def skus_with_prefix(self, prefix: str) -> List[str]:
        rows = (
            self.db.query(ProductionBatch.batch_sku)
            .filter(ProductionBatch.batch_sku.like(f"{prefix}%"))
            .all()
        )
        return [r[0] for r in rows]

    def count_by_status(self) -> Dict[str, int]:
        rows = (
            self.db.query(ProductionBatch.status, func.count(ProductionBatch.id))
            .filter(ProductionBatch.archived_at.is_(None))
            .group_by(ProductionBatch.status)
            .all()
        )
        return {status: count for status, count in rows}

    def count_active(self) -> int:
        return (
            self.db.query(ProductionBatch)
            .filter(
                ProductionBatch.status != BatchStatus.COMPLETED.value,
                ProductionBatch.archived_at.is_(None),
            )
            .count()
        )


class BatchTimelineRepository(BaseRepository[BatchTimeline]):
    """Append-only: exposes no update or delete beyond the base class."""

    def __init__(self, db: Session):
        super().__init__(BatchTimeline, db)

    def append(self, batch_id: str, event: str, details: Optional[str] = None, user_id: Optional[str] = None) -> BatchTimeline:
        return self.add(BatchTimeline(batch_id=batch_id, event=event, details=details, user_id=user_id), commit=False)

    def list_for_batch(self, batch_id: str) -> List[BatchTimeline]:
        return (
            self.db.query(BatchTimeline)
            .filter(BatchTimeline.batch_id == batch_id)
            .order_by(BatchTimeline.created_at)
            .all()
        )
