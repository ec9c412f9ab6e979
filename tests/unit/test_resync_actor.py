"""Unit tests for the on-demand resync actor."""

from __future__ import annotations

import asyncio
import typing as typ

import dramatiq
import pytest
from dramatiq.brokers.stub import StubBroker
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from spyglass.store import ExplorerStore, init_storage
from spyglass.sync import actor
from tests.helpers.chain_fakes import FakeChainClient, make_block

if typ.TYPE_CHECKING:
    from pathlib import Path


def _database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'resync.db'}"


async def _inspect(
    database_url: str,
) -> tuple[int | None, list[int], list[str]]:
    """Return the latest height, pending failures and hashes at height 5."""
    engine = create_async_engine(database_url)
    try:
        await init_storage(engine)
        store = ExplorerStore(async_sessionmaker(engine, expire_on_commit=False))
        return (
            await store.latest_block_height(),
            await store.list_pending_failures(),
            await store.get_tx_hashes_for_block(5),
        )
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_resync_persists_block_and_clears_marker(tmp_path: Path) -> None:
    """A successful resync stores the block and deletes its failure row."""
    url = _database_url(tmp_path)
    client = FakeChainClient()
    client.failing.add(5)

    assert await actor.resync_height(url, 5, client) is False
    assert (await _inspect(url))[1] == [5]

    client.failing.clear()
    client.add_block(make_block(5, tx_labels=("a",)))

    assert await actor.resync_height(url, 5, client) is True
    latest, pending, hashes = await _inspect(url)
    assert latest == 5
    assert pending == []
    assert len(hashes) == 1


@pytest.mark.asyncio
async def test_resync_of_unproduced_height_is_queued(tmp_path: Path) -> None:
    """A height past the newest stored block waits for the chain to reach it."""
    url = _database_url(tmp_path)

    assert await actor.resync_height(url, 5, FakeChainClient()) is False

    latest, pending, _ = await _inspect(url)
    assert latest is None
    assert pending == [5]


@pytest.mark.asyncio
async def test_resync_of_unknown_height_below_head_is_abandoned(
    tmp_path: Path,
) -> None:
    """A missing height below a stored block is not queued for retry."""
    url = _database_url(tmp_path)
    client = FakeChainClient()
    client.add_block(make_block(6))
    assert await actor.resync_height(url, 6, client) is True

    assert await actor.resync_height(url, 5, client) is False

    latest, pending, _ = await _inspect(url)
    assert latest == 6
    assert pending == []


def test_actor_uses_client_factory_and_closes_client(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Calling the actor directly runs the resync on a fresh event loop."""
    url = _database_url(tmp_path)
    client = FakeChainClient()
    client.add_block(make_block(5))
    monkeypatch.setattr(actor, "client_factory", lambda: client)

    assert actor.resync_block_job(url, 5) is True
    assert client.closed is True
    assert ("block", 5) in client.calls
    assert asyncio.run(_inspect(url))[0] == 5


def _missing_broker() -> typ.NoReturn:
    message = "No module named 'pika'"
    raise ImportError(message)


def test_configure_broker_returns_existing_broker(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A configured broker is used as is."""
    broker = StubBroker()
    installed: list[object] = []
    monkeypatch.setattr(dramatiq, "get_broker", lambda: broker)
    monkeypatch.setattr(dramatiq, "set_broker", installed.append)

    assert actor.configure_broker(allow_stub=False) is broker
    assert installed == []


def test_configure_broker_installs_stub_when_allowed(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Without a RabbitMQ client a stub broker is installed when allowed."""
    installed: list[object] = []
    monkeypatch.setattr(dramatiq, "get_broker", _missing_broker)
    monkeypatch.setattr(dramatiq, "set_broker", installed.append)
    monkeypatch.setenv(actor.STUB_BROKER_ENV, "yes")

    broker = actor.configure_broker()

    assert isinstance(broker, StubBroker)
    assert installed == [broker]


def test_configure_broker_refuses_stub_when_disallowed(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Production workers fail loudly instead of dropping messages."""
    installed: list[object] = []
    monkeypatch.setattr(dramatiq, "get_broker", _missing_broker)
    monkeypatch.setattr(dramatiq, "set_broker", installed.append)

    with pytest.raises(RuntimeError, match=actor.STUB_BROKER_ENV):
        actor.configure_broker(allow_stub=False)
    assert installed == []
