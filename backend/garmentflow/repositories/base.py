"""
Base Repository — Repository Pattern (GoF)

Generic data access for one model. Write methods take ``commit``: services
that run several writes in one transaction pass ``commit=False`` and let
``garmentflow.database.transaction`` commit or roll back the whole unit.
"""
from typing import Any, Dict, Generic, Iterable, List, Optional, Tuple, Type, TypeVar

from sqlalchemy.orm import Session

from garmentflow.database import Base

T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T]):
    def __init__(self, model: Type[T], db: Session):
        self.model = model
        self.db = db

    def get_by_id(self, entity_id: Any) -> Optional[T]:
        return self.db.get(self.model, entity_id)

    def get_all(self) -> List[T]:
        return self.db.query(self.model).all()

    def add(self, obj: T, commit: bool = True) -> T:
        self.db.add(obj)
        if commit:
            self.db.commit()
            self.db.refresh(obj)
        else:
            self.db.flush()
        return obj

    def create(self, data: Dict[str, Any], commit: bool = True) -> T:
        return self.add(self.model(**data), commit=commit)

    def update(self, obj: T, data: Dict[str, Any], commit: bool = True) -> T:
        for key, value in data.items():
            setattr(obj, key, value)
        return self.add(obj, commit=commit)

    def delete(self, obj: T, commit: bool = True) -> None:
        self.db.delete(obj)
        if commit:
            self.db.commit()
        else:
            self.db.flush()

    def list_paginated(self, page: int = 1, page_size: int = 20, query=None) -> Tuple[List[T], int]:
        q = query if query is not None else self.db.query(self.model)
        total = q.count()
        items = q.offset((page - 1) * page_size).limit(page_size).all()
        return items, total

    def compare_and_set_status(
        self,
        obj: T,
        expected: Iterable[str],
        new_status: str,
        values: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Atomically move ``obj`` to ``new_status`` only if its stored status is
        still one of ``expected``. Returns False when another writer got there
        first; the caller turns that into an invalid-transition error.
        """
        self.db.flush()
        payload = {"status": new_status, **(values or {})}
        updated = (
            self.db.query(self.model)
            .filter(self.model.id == obj.id, self.model.status.in_(list(expected)))
            .update(payload, synchronize_session=False)
        )
        if updated:
            self.db.refresh(obj)
        return bool(updated)

    def current_status(self, entity_id: Any) -> Optional[str]:
        """Stored status read straight from the table, or None when the row is gone."""
        return self.db.query(self.model.status).filter(self.model.id == entity_id).scalar()
