from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, String, func

from garmentflow.core.state_machine import Role, sql_in
from garmentflow.database import Base, new_uuid


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(f"role IN ({sql_in(Role)})", name="ck_users_role"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    username = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    role = Column(String(32), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<User {self.username} role={self.role}>"
