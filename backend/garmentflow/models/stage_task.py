from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from garmentflow.core.state_machine import Stage, TaskStatus, sql_in
from garmentflow.database import Base, new_uuid


class StageTask(Base):
    """
    Work of one stage (cutting, sewing or finishing) for one batch.

    Single-table inheritance: CuttingTask / SewingTask / FinishingTask share
    the stage_tasks table and are told apart by ``stage``.
    """

    __tablename__ = "stage_tasks"
    __table_args__ = (
        UniqueConstraint("batch_id", "stage", name="uq_stage_tasks_batch_stage"),
        CheckConstraint(f"stage IN ({sql_in(Stage)})", name="ck_stage_tasks_stage"),
        CheckConstraint(f"status IN ({sql_in(TaskStatus)})", name="ck_stage_tasks_status"),
        CheckConstraint("pieces_received >= 0", name="ck_stage_tasks_received_non_negative"),
        CheckConstraint("pieces_completed >= 0", name="ck_stage_tasks_completed_non_negative"),
        CheckConstraint("reject_pieces >= 0", name="ck_stage_tasks_reject_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    batch_id = Column(String(36), ForeignKey("production_batches.id"), nullable=False, index=True)
    stage = Column(String(20), nullable=False)
    assigned_to_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=TaskStatus.PENDING.value)

    pieces_received = Column(Integer, nullable=False, default=0)
    pieces_completed = Column(Integer, nullable=False, default=0)
    reject_pieces = Column(Integer, nullable=False, default=0)
    waste_qty = Column(Numeric(12, 2), nullable=True)
    notes = Column(Text, nullable=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    verified_at = Column(DateTime, nullable=True)
    verified_by_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    batch = relationship("ProductionBatch")
    assigned_to = relationship("User", foreign_keys=[assigned_to_id])

    __mapper_args__ = {"polymorphic_on": stage}


class CuttingTask(StageTask):
    __mapper_args__ = {"polymorphic_identity": Stage.CUTTING.value}


class SewingTask(StageTask):
    __mapper_args__ = {"polymorphic_identity": Stage.SEWING.value}


class FinishingTask(StageTask):
    __mapper_args__ = {"polymorphic_identity": Stage.FINISHING.value}


TASK_MODELS = {
    Stage.CUTTING: CuttingTask,
    Stage.SEWING: SewingTask,
    Stage.FINISHING: FinishingTask,
}


class CuttingResult(Base):
    """Pieces cut for one (size, colour) of a batch."""

    __tablename__ = "cutting_results"
    __table_args__ = (
        UniqueConstraint("batch_id", "product_size", "color", name="uq_cutting_results_batch_size_color"),
        CheckConstraint("actual_pieces >= 0", name="ck_cutting_results_pieces_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    batch_id = Column(String(36), ForeignKey("production_batches.id"), nullable=False, index=True)
    product_size = Column(String(20), nullable=False)
    color = Column(String(100), nullable=False)
    actual_pieces = Column(Integer, nullable=False, default=0)
    is_confirmed = Column(Boolean, nullable=False, default=False)
    confirmed_by_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    confirmed_at = Column(DateTime, nullable=True)
    input_by_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)
