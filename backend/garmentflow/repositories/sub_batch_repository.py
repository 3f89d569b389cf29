from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from garmentflow.core.state_machine import SubBatchSource
from garmentflow.models.sub_batch import SubBatch, SubBatchItem, SubBatchTimeline
from garmentflow.repositories.base import BaseRepository

SizeColor = Tuple[str, str]


class SubBatchRepository(BaseRepository[SubBatch]):
    def __init__(self, db: Session):
        super().__init__(SubBatch, db)

    def list_filtered(
        self,
        batch_id: Optional[str] = None,
        source: Optional[str] = None,
        status: Optional[str] = None,
        statuses: Optional[Iterable[str]] = None,
    ) -> List[SubBatch]:
        q = self.db.query(SubBatch)
        if batch_id is not None:
            q = q.filter(SubBatch.batch_id == batch_id)
        if source is not None:
            q = q.filter(SubBatch.source == source)
        if status is not None:
            q = q.filter(SubBatch.status == status)
        if statuses is not None:
            q = q.filter(SubBatch.status.in_(list(statuses)))
        return q.order_by(SubBatch.created_at).all()

    def skus_for_batch(self, batch_id: str) -> List[str]:
        return [r[0] for r in self.db.query(SubBatch.sub_batch_sku).filter(SubBatch.batch_id == batch_id).all()]

    def item_totals_by_size_color(
        self,
        batch_id: str,
        source: str,
        statuses: Optional[Iterable[str]] = None,
        exclude_sub_batch_id: Optional[str] = None,
        include_rejects: bool = False,
    ) -> Dict[SizeColor, int]:
        """Sum of item quantities per (size, colour) over the batch's sub-batches of one source."""
        quantity = SubBatchItem.good_quantity
        if include_rejects:
            quantity = quantity + SubBatchItem.reject_kotor + SubBatchItem.reject_sobek + SubBatchItem.reject_rusak_jahit
        q = (
            self.db.query(SubBatchItem.product_size, SubBatchItem.color, func.coalesce(func.sum(quantity), 0))
            .join(SubBatch, SubBatch.id == SubBatchItem.sub_batch_id)
            .filter(SubBatch.batch_id == batch_id, SubBatch.source == source)
        )
        if statuses is not None:
            q = q.filter(SubBatch.status.in_(list(statuses)))
        if exclude_sub_batch_id is not None:
            q = q.filter(SubBatch.id != exclude_sub_batch_id)
        rows = q.group_by(SubBatchItem.product_size, SubBatchItem.color).all()
        return {(size, color): int(total) for size, color, total in rows}

    def sewing_good_by_size_color(self, batch_id: str) -> Dict[SizeColor, int]:
        return self.item_totals_by_size_color(batch_id, SubBatchSource.SEWING.value)

    def sum_item_totals(self, batch_id: str, source: str, statuses: Optional[Iterable[str]] = None) -> Tuple[int, int]:
        """(good, rejects) summed from item rows."""
        q = (
            self.db.query(
                func.coalesce(func.sum(SubBatchItem.good_quantity), 0),
                func.coalesce(
                    func.sum(SubBatchItem.reject_kotor + SubBatchItem.reject_sobek + SubBatchItem.reject_rusak_jahit), 0
                ),
            )
            .join(SubBatch, SubBatch.id == SubBatchItem.sub_batch_id)
            .filter(SubBatch.batch_id == batch_id, SubBatch.source == source)
        )
        if statuses is not None:
            q = q.filter(SubBatch.status.in_(list(statuses)))
        good, rejects = q.one()
        return int(good), int(rejects)

    def count_by_status(self) -> Dict[Tuple[str, str], int]:
        rows = (
            self.db.query(SubBatch.source, SubBatch.status, func.count(SubBatch.id))
            .group_by(SubBatch.source, SubBatch.status)
            .all()
        )
        return {(source, status): count for source, status, count in rows}


class SubBatchTimelineRepository(BaseRepository[SubBatchTimeline]):
    def __init__(self, db: Session):
        super().__init__(SubBatchTimeline, db)

    def append(self, sub_batch: SubBatch, event: str, details: Optional[str] = None, user_id: Optional[str] = None) -> SubBatchTimeline:
        entry = SubBatchTimeline(event=event, details=details, user_id=user_id)
        sub_batch.timeline.append(entry)
        self.db.flush()
        return entry
