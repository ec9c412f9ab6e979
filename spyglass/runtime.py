"""Spyglass runtime entrypoint.

Runs the five sync jobs until the process receives SIGINT or SIGTERM.

Configuration is driven by environment variables:

- ``SPYGLASS_DATABASE_URL``: SQLAlchemy async database URL (required)
- ``SPYGLASS_RPC_URL``: Chain node HTTP gateway (required)
- ``SPYGLASS_LOG_LEVEL``: Log level (default ``INFO``)
- ``SPYGLASS_*`` job settings read by :class:`~spyglass.sync.config.SyncConfig`

Run the service directly with ``python -m spyglass.runtime``.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
import typing as typ

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from spyglass.chain.client import ChainRPCConfig, HTTPChainRPCClient
from spyglass.chain.errors import ChainConfigError
from spyglass.chain.fetcher import RawRecordFetcher
from spyglass.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_info,
    log_warning,
)
from spyglass.store import ExplorerStore, init_storage
from spyglass.sync.config import SyncConfig
from spyglass.sync.jobs import (
    AccountSyncJob,
    BlockSyncJob,
    FailedBlockRetryJob,
    GasAggregationJob,
    TransactionSyncJob,
)
from spyglass.sync.observability import SyncEventLogger
from spyglass.sync.retry import FailedBlockTracker, RetryPolicy
from spyglass.sync.scheduler import JobGroup

if typ.TYPE_CHECKING:
    from spyglass.sync.scheduler import SyncTask

__all__ = ["build_jobs", "main", "run"]

logger = get_logger(__name__)


def build_jobs(
    store: ExplorerStore,
    fetcher: RawRecordFetcher,
    config: SyncConfig,
    *,
    events: SyncEventLogger | None = None,
) -> list[SyncTask]:
    """Construct the five sync jobs sharing one store and fetcher."""
    events = events or SyncEventLogger()
    policy = RetryPolicy.from_config(config)
    tracker = FailedBlockTracker(store, policy, events=events)
    block_job = BlockSyncJob(
        store,
        fetcher,
        tracker,
        batch_size=config.block_batch_size,
        start_height=config.start_height,
        cadence=config.block_interval,
        events=events,
    )
    return [
        block_job,
        FailedBlockRetryJob(
            block_job,
            tracker,
            batch_size=config.retry_batch_size,
            cadence=config.retry_interval,
        ),
        TransactionSyncJob(
            store,
            fetcher,
            batch_size=config.tx_batch_size,
            policy=policy,
            cadence=config.tx_interval,
        ),
        GasAggregationJob(
            store, batch_size=config.gas_batch_size, cadence=config.gas_interval
        ),
        AccountSyncJob(
            store,
            batch_size=config.account_batch_size,
            cadence=config.account_interval,
        ),
    ]


def _install_signal_handlers(group: JobGroup) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # add_signal_handler is unavailable on some platforms.
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, group.stop)


async def run(
    database_url: str, rpc_config: ChainRPCConfig, config: SyncConfig
) -> None:
    """Run every sync job until stopped, then release connections."""
    engine = create_async_engine(database_url)
    client = HTTPChainRPCClient(rpc_config)
    try:
        await init_storage(engine)
        store = ExplorerStore(async_sessionmaker(engine, expire_on_commit=False))
        group = JobGroup(max_backoff=config.job_max_backoff)
        _install_signal_handlers(group)
        await group.run(build_jobs(store, RawRecordFetcher(client), config))
    finally:
        await client.aclose()
        await engine.dispose()
        log_info(logger, "Spyglass sync stopped")


def _load_settings() -> tuple[str, ChainRPCConfig, SyncConfig]:
    """Read runtime settings, exiting with status 1 when they are invalid."""
    database_url = os.environ.get("SPYGLASS_DATABASE_URL", "").strip()
    if not database_url:
        log_error(logger, "SPYGLASS_DATABASE_URL is required")
        raise SystemExit(1)
    try:
        rpc_config = ChainRPCConfig.from_env()
        config = SyncConfig.from_env()
    except (ChainConfigError, ValueError) as exc:
        # Validation failures need no traceback.
        log_error(logger, "Invalid configuration: %s", exc)
        raise SystemExit(1) from exc
    return database_url, rpc_config, config


def main() -> None:
    """Start the sync runtime.

    Reads ``SPYGLASS_LOG_LEVEL`` and the database, RPC and job settings from
    the environment, then blocks until every job has stopped.
    """
    log_level_str = os.environ.get("SPYGLASS_LOG_LEVEL", "INFO")
    normalized_level, invalid_level = configure_logging(log_level_str)
    if invalid_level:
        log_warning(
            logger,
            "Invalid SPYGLASS_LOG_LEVEL %r, falling back to %s",
            log_level_str,
            normalized_level,
        )

    database_url, rpc_config, config = _load_settings()
    log_info(
        logger,
        "Starting Spyglass sync against %s (log_level=%s)",
        rpc_config.url,
        normalized_level,
    )
    asyncio.run(run(database_url, rpc_config, config))


if __name__ == "__main__":
    main()
