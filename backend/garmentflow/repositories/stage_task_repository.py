from typing import Dict, List, Optional, Tuple, Type

from sqlalchemy import func
from sqlalchemy.orm import Session

from garmentflow.core.state_machine import TaskStatus
from garmentflow.models.stage_task import CuttingResult, StageTask
from garmentflow.repositories.base import BaseRepository


class StageTaskRepository(BaseRepository[StageTask]):
    """Repository for one stage; ``model`` is CuttingTask, SewingTask or FinishingTask."""

    def __init__(self, db: Session, model: Type[StageTask] = StageTask):
        super().__init__(model, db)

    def get_for_batch(self, batch_id: str) -> Optional[StageTask]:
        return self.db.query(self.model).filter(self.model.batch_id == batch_id).first()

    def list_for_assignee(self, user_id: str, status: Optional[str] = None) -> List[StageTask]:
        q = self.db.query(self.model).filter(self.model.assigned_to_id == user_id)
        if status is not None:
            q = q.filter(self.model.status == status)
        return q.order_by(self.model.created_at.desc()).all()

    def list_awaiting_verification(self, limit: int = 50) -> List[StageTask]:
        return (
            self.db.query(self.model)
            .filter(self.model.status == TaskStatus.COMPLETED.value, self.model.verified_at.is_(None))
            .order_by(self.model.completed_at.desc())
            .limit(limit)
            .all()
        )


SizeColor = Tuple[str, str]


class CuttingResultRepository(BaseRepository[CuttingResult]):
    def __init__(self, db: Session):
        super().__init__(CuttingResult, db)

    def get_for(self, batch_id: str, product_size: str, color: str) -> Optional[CuttingResult]:
        return (
            self.db.query(CuttingResult)
            .filter(
                CuttingResult.batch_id == batch_id,
                CuttingResult.product_size == product_size,
                CuttingResult.color == color,
            )
            .first()
        )

    def list_for_batch(self, batch_id: str) -> List[CuttingResult]:
        return (
            self.db.query(CuttingResult)
            .filter(CuttingResult.batch_id == batch_id)
            .order_by(CuttingResult.product_size, CuttingResult.color)
            .all()
        )

    def pieces_by_size_color(self, batch_id: str) -> Dict[SizeColor, int]:
        return {(r.product_size, r.color): r.actual_pieces for r in self.list_for_batch(batch_id)}

    def total_pieces(self, batch_id: str) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(CuttingResult.actual_pieces), 0))
            .filter(CuttingResult.batch_id == batch_id)
            .scalar()
        )
        return int(total or 0)
