"""SQLAlchemy-backed repository for recommendation state."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from recsys.logging import get_logger
from recsys.storage.db import Base, create_engine, create_session_factory
from recsys.storage.json_utils import safe_json_dumps, safe_json_loads
from recsys.storage.models import StoredRecord

logger = get_logger(__name__)


class SqlRepository:
    """Durable ``Repository`` storing each record as JSON in ``stored_records``."""

    def __init__(
        self,
        database_url: str | None = None,
        log_level: str = "INFO",
        engine: AsyncEngine | None = None,
    ) -> None:
        self._owns_engine = engine is None
        self.engine = engine or create_engine(database_url, log_level)
        self._session_factory: async_sessionmaker[AsyncSession] = create_session_factory(self.engine)

    async def init(self) -> None:
        """Create the records table if it does not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        """Fetch a record.

        Args:
            namespace: Record namespace (e.g., "profiles")
            key: Record key within the namespace

        Returns:
            Decoded record or None if not found
        """
        async with self._session_factory() as session:
            stmt = select(StoredRecord.payload_json).where(
                StoredRecord.namespace == namespace,
                StoredRecord.key == key,
            )
            result = await session.execute(stmt)
            payload = result.scalar_one_or_none()
        if payload is None:
            return None
        return safe_json_loads(payload)

    async def put(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        """Insert or overwrite a record (upsert)."""
        now = datetime.now(timezone.utc)
        payload = safe_json_dumps(value)

        async with self._session_factory() as session:
            if self.engine.dialect.name == "sqlite":
                insert_stmt = sqlite_insert(StoredRecord).values(
                    namespace=namespace,
                    key=key,
                    payload_json=payload,
                    updated_at=now,
                )
                upsert_stmt = insert_stmt.on_conflict_do_update(
                    index_elements=["namespace", "key"],
                    set_={
                        "payload_json": payload,
                        "updated_at": now,
                    },
                )
                await session.execute(upsert_stmt)
            else:
                await session.merge(
                    StoredRecord(namespace=namespace, key=key, payload_json=payload, updated_at=now)
                )
            await session.commit()

    async def delete(self, namespace: str, key: str) -> bool:
        """Delete a record.

        Returns:
            True if a row was removed
        """
        async with self._session_factory() as session:
            stmt = delete(StoredRecord).where(
                StoredRecord.namespace == namespace,
                StoredRecord.key == key,
            )
            result = await session.execute(stmt)
            await session.commit()
        return (result.rowcount or 0) > 0

    async def scan(self, namespace: str) -> list[tuple[str, dict[str, Any]]]:
        """Return every record in a namespace ordered by key."""
        async with self._session_factory() as session:
            stmt = (
                select(StoredRecord.key, StoredRecord.payload_json)
                .where(StoredRecord.namespace == namespace)
                .order_by(StoredRecord.key)
            )
            result = await session.execute(stmt)
            rows = result.all()
        return [(row.key, safe_json_loads(row.payload_json)) for row in rows]

    async def count(self, namespace: str) -> int:
        async with self._session_factory() as session:
            stmt = select(func.count()).select_from(StoredRecord).where(
                StoredRecord.namespace == namespace
            )
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def close(self) -> None:
        """Dispose the engine if this repository created it."""
        if self._owns_engine:
            logger.info("Closing database engine")
            await self.engine.dispose()
