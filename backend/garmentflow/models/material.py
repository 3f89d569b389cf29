from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from garmentflow.core.state_machine import TransactionType, sql_in
from garmentflow.database import Base, new_uuid, utcnow


class Material(Base):
    __tablename__ = "materials"

    id = Column(String(36), primary_key=True, default=new_uuid)
    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    unit = Column(String(20), nullable=False, default="METER")
    created_at = Column(DateTime, default=func.now(), nullable=False)

    color_variants = relationship("MaterialColorVariant", back_populates="material")


class MaterialColorVariant(Base):
    """Per-colour stock of a material. Stock changes only through the stock ledger."""

    __tablename__ = "material_color_variants"
    __table_args__ = (
        UniqueConstraint("material_id", "color_name", name="uq_material_color_variant"),
        CheckConstraint("stock >= 0", name="ck_material_color_variants_stock_non_negative"),
        CheckConstraint("minimum_stock >= 0", name="ck_material_color_variants_minimum_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    material_id = Column(String(36), ForeignKey("materials.id"), nullable=False, index=True)
    color_name = Column(String(100), nullable=False)
    color_code = Column(String(50), nullable=True)
    stock = Column(Numeric(12, 2), nullable=False, default=0)
    minimum_stock = Column(Numeric(12, 2), nullable=False, default=0)
    unit = Column(String(20), nullable=False, default="METER")

    roll_quantity = Column(Numeric(12, 2), nullable=True)
    meter_per_roll = Column(Numeric(12, 2), nullable=True)
    purchase_order_number = Column(String(100), nullable=True)
    supplier = Column(String(200), nullable=True)
    purchase_date = Column(Date, nullable=True)
    purchase_notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    material = relationship("Material", back_populates="color_variants")


class MaterialTransaction(Base):
    """Append-only stock movement record, one row per ledger apply."""

    __tablename__ = "material_transactions"
    __table_args__ = (
        CheckConstraint(f"type IN ({sql_in(TransactionType)})", name="ck_material_transactions_type"),
        CheckConstraint("quantity >= 0", name="ck_material_transactions_quantity_non_negative"),
        Index("ix_material_transactions_variant_created", "material_color_variant_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    material_id = Column(String(36), ForeignKey("materials.id"), nullable=False, index=True)
    material_color_variant_id = Column(String(36), ForeignKey("material_color_variants.id"), nullable=False)
    type = Column(String(20), nullable=False)
    quantity = Column(Numeric(12, 2), nullable=False)
    unit = Column(String(20), nullable=False)
    stock_before = Column(Numeric(12, 2), nullable=False)
    stock_after = Column(Numeric(12, 2), nullable=False)
    batch_id = Column(String(36), ForeignKey("production_batches.id"), nullable=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
