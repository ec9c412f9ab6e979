"""Dramatiq actor for resyncing a single block height on demand.

Usage
-----
Queue a resync of height 100:

>>> resync_block_job.send(
...     database_url="postgresql+asyncpg://...",
...     height=100,
... )

The actor reads the RPC endpoint from ``SPYGLASS_RPC_URL``. Workers without
a RabbitMQ client fall back to an in-memory broker only when
``SPYGLASS_ALLOW_STUB_BROKER`` is set or the process runs under pytest.
"""

from __future__ import annotations

import asyncio
import os
import sys
import typing as typ

import dramatiq
from dramatiq.brokers.stub import StubBroker
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from spyglass.chain.client import ChainRPCConfig, HTTPChainRPCClient
from spyglass.chain.errors import RecordNotFoundError
from spyglass.chain.fetcher import RawRecordFetcher
from spyglass.logging import get_logger, log_info, log_warning
from spyglass.store import ExplorerStore, init_storage
from spyglass.sync.jobs import BlockSyncJob
from spyglass.sync.observability import SyncEventLogger
from spyglass.sync.retry import FailedBlockTracker, RetryPolicy

if typ.TYPE_CHECKING:
    from spyglass.chain.client import ChainRPCClient

logger = get_logger(__name__)

STUB_BROKER_ENV = "SPYGLASS_ALLOW_STUB_BROKER"

type ClientFactory = typ.Callable[[], ChainRPCClient]


def _stub_broker_allowed() -> bool:
    flag = os.environ.get(STUB_BROKER_ENV, "").strip().lower()
    return flag in {"1", "true", "yes"} or "pytest" in sys.modules


def configure_broker(*, allow_stub: bool | None = None) -> dramatiq.Broker:
    """Return the active Dramatiq broker, installing a stub where permitted.

    ``dramatiq.get_broker`` builds a RabbitMQ broker on first use and raises
    :class:`ImportError` when ``pika`` is missing.

    Parameters
    ----------
    allow_stub
        Whether a :class:`~dramatiq.brokers.stub.StubBroker` may replace the
        missing broker. ``None`` reads ``SPYGLASS_ALLOW_STUB_BROKER``.

    Raises
    ------
    RuntimeError
        If no broker can be built and a stub is not allowed.

    """
    try:
        return dramatiq.get_broker()
    except ImportError as exc:
        if allow_stub is None:
            allow_stub = _stub_broker_allowed()
        if not allow_stub:
            message = (
                "No Dramatiq broker available for the resync actor; install "
                f"dramatiq[rabbitmq] or set {STUB_BROKER_ENV}=1"
            )
            raise RuntimeError(message) from exc
    log_warning(logger, "resync actor is using an in-memory stub broker")
    broker = StubBroker()
    dramatiq.set_broker(broker)
    return broker


def _default_client() -> HTTPChainRPCClient:
    return HTTPChainRPCClient(ChainRPCConfig.from_env())


# Replaced in tests to avoid network access.
client_factory: ClientFactory = _default_client


async def _close_client(client: ChainRPCClient) -> None:
    aclose = getattr(client, "aclose", None)
    if aclose is not None:
        await aclose()


async def resync_height(
    database_url: str, height: int, client: ChainRPCClient
) -> bool:
    """Sync ``height`` once and report whether it is now persisted.

    A height unknown to the node is abandoned when a later block is already
    stored and queued for retry otherwise. Any other failure is recorded for
    the retry job.
    """
    engine = create_async_engine(database_url)
    try:
        await init_storage(engine)
        store = ExplorerStore(async_sessionmaker(engine, expire_on_commit=False))
        events = SyncEventLogger()
        tracker = FailedBlockTracker(store, RetryPolicy(), events=events)
        job = BlockSyncJob(store, RawRecordFetcher(client), tracker, events=events)
        try:
            await job.sync_height(height)
        except RecordNotFoundError as exc:
            events.log_block_not_found(height)
            await tracker.record_not_found(height, exc)
            return False
        except Exception as exc:  # noqa: BLE001 - any failure is queued for retry
            events.log_block_failed(height, exc)
            await tracker.record_failure(height, exc)
            return False
        log_info(logger, "resynced block %d", height)
        return True
    finally:
        await engine.dispose()


configure_broker()


@dramatiq.actor
def resync_block_job(database_url: str, height: int) -> bool:
    """Dramatiq actor that resyncs one block height.

    Parameters
    ----------
    database_url
        SQLAlchemy URL for the explorer database.
    height
        Block height to fetch and persist.

    Returns
    -------
    bool
        ``True`` when the block was persisted and its failure marker cleared.

    """
    client = client_factory()

    async def run() -> bool:
        try:
            return await resync_height(database_url, height, client)
        finally:
            await _close_client(client)

    return asyncio.run(run())
