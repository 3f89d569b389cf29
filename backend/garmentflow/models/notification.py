from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, String, Text

from garmentflow.core.state_machine import NotificationType, sql_in
from garmentflow.database import Base, new_uuid, utcnow


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        CheckConstraint(f"type IN ({sql_in(NotificationType)})", name="ck_notifications_type"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(32), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
