"""Durable key-value stores used by the browser-local transport."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import select

from deskvfs.fs.exceptions import InternalError
from deskvfs.models.storage import StorageEntry

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncEngine

    from deskvfs.models.storage import StorageEntryBase

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """String-keyed, string-valued durable storage."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def keys(self, prefix: str = "") -> list[str]: ...


class MemoryKeyValueStore:
    """Process-local store backed by a dict."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


class SQLKeyValueStore:
    """Store backed by a SQLModel table over an async SQLAlchemy engine.

    Sessions are per-operation: each call commits on success and rolls
    back on failure.  When no engine is supplied one is created from
    *url* and disposed by :meth:`close`.
    """

    def __init__(
        self,
        engine: AsyncEngine | None = None,
        *,
        url: str = "sqlite+aiosqlite://",
        model: type[StorageEntryBase] = StorageEntry,
    ) -> None:
        self._owns_engine = engine is None
        self._engine = engine if engine is not None else create_async_engine(url, echo=False)
        self._model = model
        self._session_factory = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )
        self._ready = False

    async def open(self) -> None:
        """Create the backing table if needed."""
        if self._ready:
            return
        model = self._model
        async with self._engine.begin() as conn:
            await conn.run_sync(
                lambda c: model.__table__.create(c, checkfirst=True)  # type: ignore[attr-defined]
            )
        self._ready = True

    async def close(self) -> None:
        if self._owns_engine:
            await self._engine.dispose()
        self._ready = False

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession]:
        if not self._ready:
            await self.open()
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def get(self, key: str) -> str | None:
        async with self._session() as session:
            row = await session.get(self._model, key)
            return None if row is None else row.value

    async def set(self, key: str, value: str) -> None:
        async with self._session() as session:
            row = await session.get(self._model, key)
            if row is None:
                session.add(self._model(key=key, value=value))
            else:
                row.value = value
                row.updated_at = datetime.now(UTC)
                session.add(row)

    async def delete(self, key: str) -> None:
        async with self._session() as session:
            row = await session.get(self._model, key)
            if row is not None:
                await session.delete(row)

    async def keys(self, prefix: str = "") -> list[str]:
        model = self._model
        async with self._session() as session:
            stmt = select(model.key)
            if prefix:
                stmt = stmt.where(model.key.startswith(prefix))  # type: ignore[attr-defined]
            result = await session.execute(stmt.order_by(model.key))
            return [k for (k,) in result.all()]


async def ensure_open(store: KeyValueStore) -> None:
    """Call ``open()`` on stores that have one."""
    opener = getattr(store, "open", None)
    if opener is None:
        return
    try:
        await opener()
    except Exception as e:
        raise InternalError(f"Cannot open key-value store {store!r}", cause=e) from e
