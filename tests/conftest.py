"""Shared fixtures for deskvfs tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel

from deskvfs.config import MountSpec
from deskvfs.events import EventBus
from deskvfs.fs.mounts import MountManager
from deskvfs.fs.vfs import VFS

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from sqlalchemy.ext.asyncio import AsyncEngine

    from deskvfs.events import VFSEvent


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine with all tables created."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
async def manager(event_bus: EventBus) -> AsyncIterator[MountManager]:
    """Manager with two independent browser-local mounts, ``local://`` and ``home://``."""
    mgr = MountManager(event_bus)
    await mgr.add(MountSpec(name="local", transport="localstorage", root="local:///"))
    await mgr.add(
        MountSpec(name="home", transport="localstorage", root="home:///", options={"namespace": "test/home"})
    )
    yield mgr
    await mgr.close()


@pytest.fixture
def vfs(manager: MountManager, event_bus: EventBus) -> VFS:
    return VFS(manager, event_bus)


@pytest.fixture
def events(vfs: VFS) -> list[VFSEvent]:
    """Events emitted after the fixture mounts were set up."""
    collected: list[VFSEvent] = []
    vfs.event_bus.register_all(collected.append)
    return collected


@pytest.fixture
async def mock_client() -> AsyncIterator[Callable[..., httpx.AsyncClient]]:
    """Factory for httpx clients answered in-process by a request handler."""
    clients: list[httpx.AsyncClient] = []

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.aclose()
