"""Base CRUD service.

All service classes inherit from this. Provides standard
create/read/update/delete with equality filters and pagination.
"""

from typing import Any, Generic, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.base import BaseModel

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseService(Generic[ModelType]):
    """Generic CRUD service for any SQLAlchemy model.

    Usage:
        class WorkflowService(BaseService[Workflow]):
            def __init__(self, db: AsyncSession):
                super().__init__(Workflow, db)
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    # ─── Read ──────────────────────────────────────────────

    async def get_by_id(self, id: int) -> Optional[ModelType]:
        """Get a single record by ID."""
        result = await self.db.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def list(
        self,
        offset: int = 0,
        limit: int = 50,
        order_by: str = "id",
        order_desc: bool = True,
        filters: Optional[dict[str, Any]] = None,
        conditions: Optional[list] = None,
    ) -> tuple[Sequence[ModelType], int]:
        """List records with pagination, filtering, and sorting.

        ``filters`` are equality (or ``IN`` for lists) matches on columns,
        ``None`` values are ignored. ``conditions`` are extra SQL clauses.

        Returns:
            Tuple of (items, total_count)
        """
        query = select(self.model)
        count_query = select(func.count()).select_from(self.model)

        for field, value in (filters or {}).items():
            if value is None or not hasattr(self.model, field):
                continue
            col = getattr(self.model, field)
            clause = col.in_(value) if isinstance(value, list) else col == value
            query = query.where(clause)
            count_query = count_query.where(clause)

        for clause in conditions or []:
            query = query.where(clause)
            count_query = count_query.where(clause)

        if hasattr(self.model, order_by):
            col = getattr(self.model, order_by)
            query = query.order_by(col.desc() if order_desc else col.asc())

        query = query.offset(offset).limit(limit)

        result = await self.db.execute(query)
        items = result.scalars().all()

        count_result = await self.db.execute(count_query)
        total = count_result.scalar() or 0

        return items, total

    async def exists(self, id: int) -> bool:
        """Check if a record exists."""
        query = select(func.count()).select_from(self.model).where(self.model.id == id)
        result = await self.db.execute(query)
        return (result.scalar() or 0) > 0

    # ─── Create ────────────────────────────────────────────

    async def create(self, data: dict[str, Any]) -> ModelType:
        """Insert a record and return it with its generated id."""
        instance = self.model(**data)
        self.db.add(instance)
        await self.db.flush()
        await self.db.refresh(instance)
        return instance

    # ─── Update ────────────────────────────────────────────

    async def update(self, id: int, data: dict[str, Any]) -> Optional[ModelType]:
        """Update a record by ID and return it.

        Args:
            id: Record id
            data: Dict of fields to update (None values are skipped)

        Returns:
            Updated model instance or None if not found
        """
        update_data = {k: v for k, v in data.items() if v is not None}
        instance = await self.get_by_id(id)
        if not instance:
            return None
        if not update_data:
            return instance

        for key, value in update_data.items():
            if hasattr(instance, key):
                setattr(instance, key, value)

        await self.db.flush()
        await self.db.refresh(instance)
        return instance

    # ─── Delete ────────────────────────────────────────────

    async def delete(self, id: int) -> bool:
        """Permanently delete a record.

        Returns:
            True if deleted, False if not found
        """
        instance = await self.get_by_id(id)
        if not instance:
            return False

        await self.db.delete(instance)
        await self.db.flush()
        return True
