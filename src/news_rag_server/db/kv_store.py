"""
Key-Value Store

Durable key-value storage with per-key expiry and prefix scans. This is the
only persistence primitive the server relies on: articles, cached embeddings,
chat histories and index metadata are all stored through it.

Two implementations share the `KeyValueStore` interface:

- `SqlKeyValueStore`: SQLAlchemy async engine over the `kv_entry` table.
- `InMemoryKeyValueStore`: process-local dictionary with an injectable clock,
  used by tests and by single-process local runs.

Every failure of the backing store is raised as `StorageError`; callers
decide whether to degrade or propagate.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..core.errors import StorageError
from .models import Base, KvEntry
from .session import create_engine_for, create_session_factory

logger = logging.getLogger("newsrag.kv")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class KeyValueStore(ABC):
    """Async key-value store with per-key TTL."""

    async def init(self) -> None:
        """Prepare the backing store (create tables, open connections)."""

    async def close(self) -> None:
        """Release any resources held by the store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the value for `key`, or None if absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """
        Write `value` under `key`, replacing any previous value and expiry.

        `ttl_seconds=None` never expires; a TTL of zero or less is already
        expired when written.
        """

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete the given keys. Returns the number of keys removed."""

    @abstractmethod
    async def scan(self, prefix: str) -> List[str]:
        """Return all unexpired keys starting with `prefix`, sorted."""


# ---------------------------------------------------------------------
# SQL implementation
# ---------------------------------------------------------------------

class SqlKeyValueStore(KeyValueStore):
    """
    Key-value store persisted in a relational database.

    Single-key reads and writes are atomic through the database; no
    cross-key transactions are offered.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        if engine is None:
            if database_url is None:
                raise ValueError("Either database_url or engine is required.")
            engine = create_engine_for(database_url)

        self._engine = engine
        self._session_factory = create_session_factory(engine)

    async def init(self) -> None:
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"Failed to initialise key-value store: {exc}") from exc

        purged = await self.purge_expired()

        logger.info("Key-value store ready (%d expired keys purged)", purged)

    async def close(self) -> None:
        await self._engine.dispose()

    async def get(self, key: str) -> Optional[str]:
        try:
            async with self._session_factory() as session:
                row = (
                    await session.execute(
                        select(KvEntry.value, KvEntry.expires_at).where(KvEntry.key == key)
                    )
                ).first()

                if row is None:
                    return None

                if row.expires_at is not None and row.expires_at <= _utcnow():
                    await session.execute(delete(KvEntry).where(KvEntry.key == key))
                    await session.commit()
                    return None

                return row.value
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"Failed to read key {key!r}: {exc}") from exc

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        expires_at = None if ttl_seconds is None else _utcnow() + timedelta(seconds=ttl_seconds)

        try:
            async with self._session_factory() as session:
                await session.execute(self._upsert_statement(key, value, expires_at))
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"Failed to write key {key!r}: {exc}") from exc

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(KvEntry)
                    .where(KvEntry.key.in_(keys))
                    .where(
                        or_(
                            KvEntry.expires_at.is_(None),
                            KvEntry.expires_at > _utcnow(),
                        )
                    )
                )
                await session.commit()
                return result.rowcount or 0
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"Failed to delete {len(keys)} keys: {exc}") from exc

    async def scan(self, prefix: str) -> List[str]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(KvEntry.key)
                    .where(KvEntry.key.startswith(prefix, autoescape=True))
                    .where(
                        or_(
                            KvEntry.expires_at.is_(None),
                            KvEntry.expires_at > _utcnow(),
                        )
                    )
                    .order_by(KvEntry.key)
                )
                return list(result.scalars())
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"Failed to scan prefix {prefix!r}: {exc}") from exc

    async def purge_expired(self) -> int:
        """Delete every expired row. Returns the number of rows removed."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(KvEntry).where(KvEntry.expires_at <= _utcnow())
                )
                await session.commit()
                return result.rowcount or 0
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"Failed to purge expired keys: {exc}") from exc

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _upsert_statement(self, key: str, value: str, expires_at: Optional[datetime]):
        values = {"key": key, "value": value, "expires_at": expires_at}
        dialect = self._engine.dialect.name

        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            raise StorageError(f"Unsupported database dialect: {dialect}")

        stmt = insert(KvEntry).values(**values)
        return stmt.on_conflict_do_update(
            index_elements=[KvEntry.key],
            set_={"value": stmt.excluded.value, "expires_at": stmt.excluded.expires_at},
        )


# ---------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------

class InMemoryKeyValueStore(KeyValueStore):
    """
    Process-local key-value store with the same expiry semantics as the SQL
    store. The clock is injectable so tests can advance time.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._clock = clock

    def _alive(self, key: str) -> bool:
        entry = self._data.get(key)
        if entry is None:
            return False

        expires_at = entry[1]
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return False

        return True

    async def get(self, key: str) -> Optional[str]:
        if not self._alive(key):
            return None
        return self._data[key][0]

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        expires_at = None if ttl_seconds is None else self._clock() + ttl_seconds
        self._data[key] = (value, expires_at)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._alive(key):
                del self._data[key]
                removed += 1
        return removed

    async def scan(self, prefix: str) -> List[str]:
        return sorted(
            key for key in list(self._data) if key.startswith(prefix) and self._alive(key)
        )

    def __len__(self) -> int:
        return sum(1 for key in list(self._data) if self._alive(key))
