"""Generic async repository over one SQLAlchemy model."""

import logging
from typing import Any, Dict, Generic, Iterable, List, Optional, Type, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.util import identity_key

from placement.core.errors import ConstraintViolation, NotFoundError
from placement.db.base import Base

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=Base)


class AsyncRepository(Generic[ModelType]):
    """Entity-store operations used by the lifecycle services.

    All writes stay inside the caller's transaction; nothing here commits.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def get(self, entity_id: Any, *, for_update: bool = False) -> Optional[ModelType]:
        return await self.session.get(self.model, entity_id, with_for_update=for_update)

    async def get_or_404(self, entity_id: Any, *, for_update: bool = False) -> ModelType:
        instance = await self.get(entity_id, for_update=for_update)
        if instance is None:
            raise NotFoundError(self.model.__name__, entity_id)
        return instance

    async def find_one(self, **filters: Any) -> Optional[ModelType]:
        result = await self.session.execute(select(self.model).filter_by(**filters))
        return result.scalars().first()

    async def find_all(self, *criteria: Any, **filters: Any) -> List[ModelType]:
        stmt = select(self.model).filter_by(**filters)
        if criteria:
            stmt = stmt.where(*criteria)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, **values: Any) -> ModelType:
        """Insert a row, translating duplicate keys into ConstraintViolation.

        The caller's transaction is left to roll back on failure.
        """
        instance = self.model(**values)
        self.session.add(instance)
        try:
            await self.session.flush()
        except IntegrityError as e:
            logger.info(f"Duplicate {self.model.__name__} rejected: {e.orig}")
            raise ConstraintViolation(f"{self.model.__name__} already exists") from e
        return instance

    async def update_where(self, entity_id: Any, expected_status: Any, values: Dict[str, Any]) -> bool:
        """Conditional status write: ``UPDATE ... WHERE id = :id AND status IN :expected``.

        Returns False when zero rows matched, i.e. the row changed concurrently.
        """
        statuses = [expected_status] if isinstance(expected_status, str) else list(expected_status)
        stmt = (
            update(self.model)
            .where(self.model.id == entity_id, self.model.status.in_(statuses))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            return False
        await self._reload(entity_id)
        return True

    async def update_values(self, entity_id: Any, values: Dict[str, Any]) -> bool:
        stmt = (
            update(self.model)
            .where(self.model.id == entity_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            return False
        await self._reload(entity_id)
        return True

    async def bulk_update(self, criteria: Iterable[Any], values: Dict[str, Any]) -> int:
        stmt = (
            update(self.model)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def count(self, *criteria: Any) -> int:
        stmt = select(func.count()).select_from(self.model)
        if criteria:
            stmt = stmt.where(*criteria)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def _reload(self, entity_id: Any) -> None:
        # Refresh an already-loaded instance so callers see the written values
        if self.session.identity_map.get(identity_key(self.model, entity_id)) is not None:
            await self.session.get(self.model, entity_id, populate_existing=True)
