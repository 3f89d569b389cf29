import json
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from garmentflow.models.audit_log import AuditLog
from garmentflow.repositories.base import BaseRepository


class AuditLogRepository(BaseRepository[AuditLog]):
    def __init__(self, db: Session):
        super().__init__(AuditLog, db)

    def record(
        self,
        action: str,
        entity: str,
        entity_id: Optional[str],
        user_id: Optional[str],
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        row = AuditLog(
            action=action,
            entity=entity,
            entity_id=entity_id,
            user_id=user_id,
            old_values=json.dumps(old_values, default=str, sort_keys=True) if old_values is not None else None,
            new_values=json.dumps(new_values, default=str, sort_keys=True) if new_values is not None else None,
        )
        return self.add(row, commit=False)

    def list_for_entity(self, entity: str, entity_id: str) -> List[AuditLog]:
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.entity == entity, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.created_at)
            .all()
        )
