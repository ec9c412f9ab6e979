"""Shared fixtures for BDD feature tests.

Steps drive async code with ``asyncio.run`` so each step gets a fresh event
loop; the engine therefore uses ``NullPool`` and never reuses a connection
across loops.
"""

from __future__ import annotations

import asyncio
import typing as typ

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from spyglass.store import ExplorerStore, init_storage

if typ.TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def feature_store(tmp_path: Path) -> typ.Iterator[ExplorerStore]:
    """Provide an explorer store on a file-backed SQLite database."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'features.db'}", poolclass=NullPool
    )
    asyncio.run(init_storage(engine))
    yield ExplorerStore(async_sessionmaker(engine, expire_on_commit=False))
    asyncio.run(engine.dispose())
