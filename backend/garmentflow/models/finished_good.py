from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text

from garmentflow.core.state_machine import FinishedGoodType, sql_in
from garmentflow.database import Base, new_uuid, utcnow


class FinishedGood(Base):
    """Warehouse stock produced by a verified sub-batch. Written once, never updated."""

    __tablename__ = "finished_goods"
    __table_args__ = (
        CheckConstraint(f"type IN ({sql_in(FinishedGoodType)})", name="ck_finished_goods_type"),
        CheckConstraint("quantity > 0", name="ck_finished_goods_quantity_positive"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    batch_id = Column(String(36), ForeignKey("production_batches.id"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    sub_batch_id = Column(String(36), ForeignKey("sub_batches.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    quantity = Column(Integer, nullable=False)
    location = Column(String(100), nullable=False)
    notes = Column(Text, nullable=True)
    verified_by_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    verified_at = Column(DateTime, default=utcnow, nullable=False)
