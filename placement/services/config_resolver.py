"""Runtime configuration surface backed by ``system_configs`` and the plan catalog."""

import logging
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from placement.config import Settings, settings as default_settings
from placement.core.cache import MemoryTTLCache
from placement.models import Plan, SystemConfig
from placement.utils.constants import (
    CONFIG_FREE_TIER_MAX_APPLICATIONS,
    CONFIG_SUBSCRIPTION_GRACE_PERIOD_DAYS,
)

logger = logging.getLogger(__name__)

_MISSING = {"__missing__": True}


class ConfigResolver:
    """Reads tunable values with a TTL cache in front of the database."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache=None,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or default_settings
        self.cache = cache if cache is not None else MemoryTTLCache(self.settings.CONFIG_CACHE_TTL)

    @staticmethod
    def _cache_key(key: str) -> str:
        return f"config:{key}"

    async def get_value(self, key: str, default: Any = None, *, session: Optional[AsyncSession] = None) -> Any:
        """Configured value for ``key``, or ``default`` when unset."""
        cached = self.cache.get(self._cache_key(key))
        if cached is not None:
            return default if cached == _MISSING else cached

        if session is not None:
            value = await self._load(session, key)
        else:
            async with self.session_factory() as own_session:
                value = await self._load(own_session, key)

        # Remember misses too so unset keys don't hit the database every call
        self.cache.set(self._cache_key(key), _MISSING if value is None else value, self.settings.CONFIG_CACHE_TTL)
        return default if value is None else value

    async def _load(self, session: AsyncSession, key: str) -> Any:
        result = await session.execute(select(SystemConfig.value).where(SystemConfig.key == key))
        return result.scalar_one_or_none()

    async def set_value(self, key: str, value: Any, description: Optional[str] = None) -> None:
        """Upsert a config value and invalidate its cache entry."""
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(select(SystemConfig).where(SystemConfig.key == key))
                row = result.scalar_one_or_none()
                if row is None:
                    session.add(SystemConfig(key=key, value=value, description=description))
                else:
                    row.value = value
                    if description is not None:
                        row.description = description
        self.cache.delete(self._cache_key(key))
        logger.info(f"System config '{key}' updated")

    async def _int_value(self, key: str, fallback: int, session: Optional[AsyncSession]) -> int:
        value = await self.get_value(key, fallback, session=session)
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"System config '{key}' is not an integer ({value!r}); using {fallback}")
            return fallback

    async def free_tier_limit(self, session: Optional[AsyncSession] = None) -> int:
        return await self._int_value(
            CONFIG_FREE_TIER_MAX_APPLICATIONS, self.settings.FREE_TIER_MAX_APPLICATIONS, session
        )

    async def grace_period_days(self, session: Optional[AsyncSession] = None) -> int:
        return await self._int_value(
            CONFIG_SUBSCRIPTION_GRACE_PERIOD_DAYS, self.settings.SUBSCRIPTION_GRACE_PERIOD_DAYS, session
        )

    async def list_plans(self) -> List[Plan]:
        """Active plans, cheapest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Plan).where(Plan.is_active.is_(True)).order_by(Plan.price.asc(), Plan.name.asc())
            )
            return list(result.scalars().all())

    async def get_plan(self, plan_id: Any, *, session: Optional[AsyncSession] = None) -> Optional[Plan]:
        if session is not None:
            return await session.get(Plan, plan_id)
        async with self.session_factory() as own_session:
            return await own_session.get(Plan, plan_id)
