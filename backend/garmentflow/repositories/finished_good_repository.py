from typing import List, Optional

from sqlalchemy.orm import Session

from garmentflow.models.finished_good import FinishedGood
from garmentflow.repositories.base import BaseRepository


class FinishedGoodRepository(BaseRepository[FinishedGood]):
    def __init__(self, db: Session):
        super().__init__(FinishedGood, db)

    def list_filtered(
        self,
        batch_id: Optional[str] = None,
        sub_batch_id: Optional[str] = None,
        good_type: Optional[str] = None,
    ) -> List[FinishedGood]:
        q = self.db.query(FinishedGood)
        if batch_id is not None:
            q = q.filter(FinishedGood.batch_id == batch_id)
        if sub_batch_id is not None:
            q = q.filter(FinishedGood.sub_batch_id == sub_batch_id)
        if good_type is not None:
            q = q.filter(FinishedGood.type == good_type)
        return q.order_by(FinishedGood.verified_at).all()
