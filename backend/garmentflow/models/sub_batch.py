from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from garmentflow.core.state_machine import SubBatchSource, SubBatchStatus, sql_in
from garmentflow.database import Base, new_uuid, utcnow


class SubBatch(Base):
    """
    One partial delivery of sewing or finishing output.

    The aggregate columns are a cache of the item rows: recompute_totals()
    rewrites them on every item change.
    """

    __tablename__ = "sub_batches"
    __table_args__ = (
        CheckConstraint(f"source IN ({sql_in(SubBatchSource)})", name="ck_sub_batches_source"),
        CheckConstraint(f"status IN ({sql_in(SubBatchStatus)})", name="ck_sub_batches_status"),
        Index("ix_sub_batches_batch_source_status", "batch_id", "source", "status"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    sub_batch_sku = Column(String(80), unique=True, nullable=False, index=True)
    batch_id = Column(String(36), ForeignKey("production_batches.id"), nullable=False, index=True)
    source = Column(String(20), nullable=False)
    status = Column(String(32), nullable=False, default=SubBatchStatus.CREATED.value)
    stage_task_id = Column(String(36), ForeignKey("stage_tasks.id"), nullable=False, index=True)

    sewing_output = Column(Integer, nullable=False, default=0)
    finishing_good_output = Column(Integer, nullable=False, default=0)
    reject_kotor = Column(Integer, nullable=False, default=0)
    reject_sobek = Column(Integer, nullable=False, default=0)
    reject_rusak_jahit = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)

    created_by_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    verified_by_prod_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    verified_by_prod_at = Column(DateTime, nullable=True)
    forwarded_at = Column(DateTime, nullable=True)
    submitted_to_warehouse_at = Column(DateTime, nullable=True)
    warehouse_verified_by_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    warehouse_verified_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    items = relationship(
        "SubBatchItem",
        back_populates="sub_batch",
        cascade="all, delete-orphan",
        order_by="SubBatchItem.product_size",
    )
    timeline = relationship(
        "SubBatchTimeline",
        back_populates="sub_batch",
        cascade="all, delete-orphan",
        order_by="SubBatchTimeline.created_at",
    )

    @property
    def good_quantity(self) -> int:
        if self.source == SubBatchSource.SEWING.value:
            return self.sewing_output or 0
        return self.finishing_good_output or 0

    @property
    def reject_quantity(self) -> int:
        return (self.reject_kotor or 0) + (self.reject_sobek or 0) + (self.reject_rusak_jahit or 0)

    @property
    def total_quantity(self) -> int:
        return self.good_quantity + self.reject_quantity

    def recompute_totals(self) -> None:
        good = sum(i.good_quantity or 0 for i in self.items)
        if self.source == SubBatchSource.SEWING.value:
            self.sewing_output = good
            self.finishing_good_output = 0
        else:
            self.sewing_output = 0
            self.finishing_good_output = good
        self.reject_kotor = sum(i.reject_kotor or 0 for i in self.items)
        self.reject_sobek = sum(i.reject_sobek or 0 for i in self.items)
        self.reject_rusak_jahit = sum(i.reject_rusak_jahit or 0 for i in self.items)

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "sub_batch_sku": self.sub_batch_sku,
            "batch_id": self.batch_id,
            "source": self.source,
            "status": self.status,
            "stage_task_id": self.stage_task_id,
            "sewing_output": self.sewing_output,
            "finishing_good_output": self.finishing_good_output,
            "reject_kotor": self.reject_kotor,
            "reject_sobek": self.reject_sobek,
            "reject_rusak_jahit": self.reject_rusak_jahit,
            "notes": self.notes,
            "created_by_id": self.created_by_id,
            "created_at": self.created_at,
            "items": [i.snapshot() for i in self.items],
        }


class SubBatchItem(Base):
    __tablename__ = "sub_batch_items"
    __table_args__ = (
        UniqueConstraint("sub_batch_id", "product_size", "color", name="uq_sub_batch_items_size_color"),
        CheckConstraint("good_quantity >= 0", name="ck_sub_batch_items_good_non_negative"),
        CheckConstraint(
            "reject_kotor >= 0 AND reject_sobek >= 0 AND reject_rusak_jahit >= 0",
            name="ck_sub_batch_items_rejects_non_negative",
        ),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    sub_batch_id = Column(String(36), ForeignKey("sub_batches.id", ondelete="CASCADE"), nullable=False, index=True)
    product_size = Column(String(20), nullable=False)
    color = Column(String(100), nullable=False)
    good_quantity = Column(Integer, nullable=False, default=0)
    reject_kotor = Column(Integer, nullable=False, default=0)
    reject_sobek = Column(Integer, nullable=False, default=0)
    reject_rusak_jahit = Column(Integer, nullable=False, default=0)

    sub_batch = relationship("SubBatch", back_populates="items")

    @property
    def total_quantity(self) -> int:
        return (
            (self.good_quantity or 0)
            + (self.reject_kotor or 0)
            + (self.reject_sobek or 0)
            + (self.reject_rusak_jahit or 0)
        )

    def snapshot(self) -> dict:
        return {
            "product_size": self.product_size,
            "color": self.color,
            "good_quantity": self.good_quantity,
            "reject_kotor": self.reject_kotor,
            "reject_sobek": self.reject_sobek,
            "reject_rusak_jahit": self.reject_rusak_jahit,
        }


class SubBatchTimeline(Base):
    __tablename__ = "sub_batch_timeline"

    id = Column(String(36), primary_key=True, default=new_uuid)
    sub_batch_id = Column(String(36), ForeignKey("sub_batches.id", ondelete="CASCADE"), nullable=False, index=True)
    event = Column(String(50), nullable=False)
    details = Column(Text, nullable=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    sub_batch = relationship("SubBatch", back_populates="timeline")
