"""
Persistent key/value configuration table access.
"""

from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from identity_bridge.kernel.models.base import generate_id, utcnow
from identity_bridge.kernel.models.configuration import ConfigEntry

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SqlConfigStore:
    """
    Configuration store backed by the ``configuration`` table.

    Each call runs in its own short transaction so cache refreshes never
    share a session with request handlers.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def load_all(self) -> List[ConfigEntry]:
        async with self.session_factory() as session:
            result = await session.execute(select(ConfigEntry))
            return list(result.scalars().all())

    async def get_entry(self, key: str) -> Optional[ConfigEntry]:
        async with self.session_factory() as session:
            result = await session.execute(select(ConfigEntry).where(ConfigEntry.key == key))
            return result.scalar_one_or_none()

    async def list_entries(self, category: Optional[str] = None) -> List[ConfigEntry]:
        query = select(ConfigEntry).order_by(ConfigEntry.category, ConfigEntry.key)
        if category:
            query = query.where(ConfigEntry.category == category)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def upsert(
        self,
        key: str,
        value: str,
        description: Optional[str] = None,
        category: str = "general",
        is_secret: bool = False,
    ) -> None:
        """Insert or update by unique key; the only writer of updated_at."""
        async with self.session_factory() as session:
            insert = _UPSERT_DIALECTS.get(session.bind.dialect.name)
            if insert is None:
                raise NotImplementedError(f"Upsert not supported for dialect {session.bind.dialect.name}")
            now = utcnow()
            statement = insert(ConfigEntry).values(
                id=generate_id(),
                key=key,
                value=value,
                description=description,
                category=category,
                is_secret=is_secret,
                created_at=now,
                updated_at=now,
            )
            statement = statement.on_conflict_do_update(
                index_elements=[ConfigEntry.key],
                set_={
                    "value": value,
                    "description": description,
                    "category": category,
                    "is_secret": is_secret,
                    "updated_at": now,
                },
            )
            await session.execute(statement)
            await session.commit()

    async def delete(self, key: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(delete(ConfigEntry).where(ConfigEntry.key == key))
            await session.commit()
            return bool(result.rowcount)
