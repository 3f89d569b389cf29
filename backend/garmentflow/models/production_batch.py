from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from garmentflow.core.state_machine import AllocationStatus, BatchStatus, sql_in
from garmentflow.database import Base, new_uuid, utcnow


class ProductionBatch(Base):
    """Root aggregate of one production run. Archived, never deleted."""

    __tablename__ = "production_batches"
    __table_args__ = (
        CheckConstraint(f"status IN ({sql_in(BatchStatus)})", name="ck_production_batches_status"),
        CheckConstraint("target_quantity >= 0", name="ck_production_batches_target_non_negative"),
        CheckConstraint("actual_quantity >= 0", name="ck_production_batches_actual_non_negative"),
        CheckConstraint("reject_quantity >= 0", name="ck_production_batches_reject_non_negative"),
        Index("ix_production_batches_status_created", "status", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    batch_sku = Column(String(50), unique=True, nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    status = Column(String(32), nullable=False, default=BatchStatus.PENDING.value)

    target_quantity = Column(Integer, nullable=False, default=0)
    actual_quantity = Column(Integer, nullable=False, default=0)
    reject_quantity = Column(Integer, nullable=False, default=0)
    total_rolls = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    created_by_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    start_date = Column(DateTime, nullable=True)
    completed_date = Column(DateTime, nullable=True)
    archived_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    product = relationship("Product")
    material_allocations = relationship(
        "BatchMaterialColorAllocation", back_populates="batch", order_by="BatchMaterialColorAllocation.created_at"
    )
    size_color_requests = relationship("SizeColorRequest", back_populates="batch")
    timeline = relationship("BatchTimeline", back_populates="batch", order_by="BatchTimeline.created_at")


class BatchMaterialColorAllocation(Base):
    """Material requested for a batch, with the stock snapshot taken at confirmation."""

    __tablename__ = "batch_material_color_allocations"
    __table_args__ = (
        CheckConstraint(f"status IN ({sql_in(AllocationStatus)})", name="ck_batch_allocations_status"),
        CheckConstraint("allocated_qty > 0", name="ck_batch_allocations_qty_positive"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    batch_id = Column(String(36), ForeignKey("production_batches.id"), nullable=False, index=True)
    material_color_variant_id = Column(String(36), ForeignKey("material_color_variants.id"), nullable=False)
    status = Column(String(20), nullable=False, default=AllocationStatus.REQUESTED.value)
    allocated_qty = Column(Numeric(12, 2), nullable=False)
    roll_quantity = Column(Numeric(12, 2), nullable=False, default=0)
    meter_per_roll = Column(Numeric(12, 2), nullable=True)
    stock_at_allocation = Column(Numeric(12, 2), nullable=True)
    roll_quantity_at_allocation = Column(Numeric(12, 2), nullable=True)
    allocated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    batch = relationship("ProductionBatch", back_populates="material_allocations")
    color_variant = relationship("MaterialColorVariant")


class SizeColorRequest(Base):
    __tablename__ = "size_color_requests"
    __table_args__ = (
        UniqueConstraint("batch_id", "product_size", "color", name="uq_size_color_request"),
        CheckConstraint("requested_pieces > 0", name="ck_size_color_requests_pieces_positive"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    batch_id = Column(String(36), ForeignKey("production_batches.id"), nullable=False, index=True)
    product_size = Column(String(20), nullable=False)
    color = Column(String(100), nullable=False)
    requested_pieces = Column(Integer, nullable=False)

    batch = relationship("ProductionBatch", back_populates="size_color_requests")


class BatchTimeline(Base):
    """Append-only event log of a batch."""

    __tablename__ = "batch_timeline"

    id = Column(String(36), primary_key=True, default=new_uuid)
    batch_id = Column(String(36), ForeignKey("production_batches.id"), nullable=False, index=True)
    event = Column(String(50), nullable=False)
    details = Column(Text, nullable=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    batch = relationship("ProductionBatch", back_populates="timeline")
