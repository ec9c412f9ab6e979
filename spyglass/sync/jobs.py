"""The five periodic sync jobs.

Each job exposes ``name``, ``cadence`` and ``run_once()`` so it can be driven
by :class:`~spyglass.sync.scheduler.JobRunner` or called directly. Jobs share
no in-memory state; they coordinate through the store only.

- :class:`BlockSyncJob` walks forward from the last attempted height.
- :class:`FailedBlockRetryJob` re-runs heights whose sync failed.
- :class:`TransactionSyncJob` drains the queue of transaction hashes.
- :class:`GasAggregationJob` materialises per-block gas statistics.
- :class:`AccountSyncJob` records accounts seen in flattened actions.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import typing as typ

from sqlalchemy.exc import SQLAlchemyError

from spyglass.accounts import derive_account_id
from spyglass.chain.errors import (
    ChainResponseShapeError,
    ChainRPCError,
    RecordNotFoundError,
    TransientRPCError,
)
from spyglass.common.time import utcnow
from spyglass.explorer.flatten import flatten_transaction, resolve_publisher
from spyglass.explorer.gas import compute_gas_stats
from spyglass.logging import get_logger, log_warning
from spyglass.store.errors import PersistenceError
from spyglass.store.service import AccountActivity
from spyglass.store.storage import TxSyncState
from spyglass.sync.observability import SyncEventLogger, categorize_error
from spyglass.sync.retry import RetryPolicy

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from spyglass.accounts import AccountIdResolver
    from spyglass.chain.fetcher import RawRecordFetcher
    from spyglass.chain.models import RawBlock
    from spyglass.explorer.models import GasStats
    from spyglass.store import ExplorerStore, PendingTransaction
    from spyglass.sync.retry import FailedBlockTracker

logger = get_logger(__name__)

BLOCK_CURSOR = "blocks"
ACCOUNT_CURSOR = "accounts"

# Failures confined to one height or hash; anything else fails the cycle.
_UNIT_ERRORS: tuple[type[Exception], ...] = (
    ChainRPCError,
    ChainResponseShapeError,
    PersistenceError,
    SQLAlchemyError,
    ValueError,
)

# Retried without an attempt limit.
_TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    TransientRPCError,
    PersistenceError,
    SQLAlchemyError,
)


def _seconds(value: float) -> dt.timedelta:
    return dt.timedelta(seconds=value)


@dataclasses.dataclass(frozen=True, slots=True)
class BlockSyncResult:
    """Outcome of one new-block cycle."""

    synced: int = 0
    failed: int = 0
    head_reached: bool = False
    next_height: int = 0


class BlockSyncJob:
    """Fetch new blocks and queue their transactions.

    The ``blocks`` cursor stores the highest height up to which every block
    is either persisted or marked for retry. A failed height only gets a
    failure marker once a later height in the same walk syncs, which proves
    the failed block exists. Failures after the last synced height are left
    for the next cycle to walk again, so a node outage never moves the
    cursor past the chain head. A height that is not found upstream marks the
    head: the walk stops there without a failure marker.
    """

    def __init__(  # noqa: PLR0913
        self,
        store: ExplorerStore,
        fetcher: RawRecordFetcher,
        tracker: FailedBlockTracker,
        *,
        batch_size: int = 100,
        start_height: int = 0,
        cadence: dt.timedelta | None = None,
        events: SyncEventLogger | None = None,
        name: str = "block-sync",
    ) -> None:
        """Wire the job to its collaborators."""
        self.name = name
        self.cadence = cadence or _seconds(3)
        self._store = store
        self._fetcher = fetcher
        self._tracker = tracker
        self._batch_size = batch_size
        self._start_height = start_height
        self._events = events or SyncEventLogger()

    async def sync_height(self, height: int) -> RawBlock:
        """Fetch and persist the block at ``height``, clearing any failure marker.

        Raises
        ------
        RecordNotFoundError
            If the node has no block at ``height``.

        """
        block = await self._fetcher.fetch_block(height)
        await self._store.upsert_block(block)
        await self._tracker.clear(height)
        return block

    async def _next_height(self) -> int:
        cursor = await self._store.get_cursor(BLOCK_CURSOR)
        if cursor is None:
            return self._start_height
        return max(cursor + 1, self._start_height)

    async def run_once(self) -> BlockSyncResult:
        """Walk forward over at most ``batch_size`` heights.

        Raises
        ------
        ChainRPCError
            The last per-height error when every height in the batch failed,
            so the runner backs off while the node is unavailable. Store and
            decode errors are re-raised the same way.

        """
        start = await self._next_height()
        synced = failed = 0
        head_reached = False
        committed: int | None = None
        unconfirmed: list[tuple[int, Exception]] = []
        for height in range(start, start + self._batch_size):
            try:
                await self.sync_height(height)
            except RecordNotFoundError:
                self._events.log_block_not_found(height)
                head_reached = True
                break
            except _UNIT_ERRORS as exc:
                self._events.log_block_failed(height, exc)
                unconfirmed.append((height, exc))
                continue
            for failed_height, error in unconfirmed:
                await self._tracker.record_failure(failed_height, error)
            failed += len(unconfirmed)
            unconfirmed.clear()
            synced += 1
            committed = height

        if committed is not None:
            await self._store.set_cursor(BLOCK_CURSOR, committed)
        if unconfirmed and synced == 0 and not head_reached:
            raise unconfirmed[-1][1]
        return BlockSyncResult(
            synced=synced,
            failed=failed,
            head_reached=head_reached,
            next_height=committed + 1 if committed is not None else start,
        )


@dataclasses.dataclass(frozen=True, slots=True)
class RetryResult:
    """Outcome of one retry cycle."""

    recovered: int = 0
    failed: int = 0
    abandoned: int = 0


class FailedBlockRetryJob:
    """Retry heights whose previous sync failed, once they are due."""

    def __init__(
        self,
        block_job: BlockSyncJob,
        tracker: FailedBlockTracker,
        *,
        batch_size: int = 20,
        cadence: dt.timedelta | None = None,
        name: str = "block-retry",
    ) -> None:
        """Share the per-height unit of work with ``block_job``."""
        self.name = name
        self.cadence = cadence or _seconds(30)
        self._block_job = block_job
        self._tracker = tracker
        self._batch_size = batch_size

    async def run_once(self) -> RetryResult:
        """Retry every due height; a failure never skips the rest."""
        recovered = failed = abandoned = 0
        for height in await self._tracker.due(limit=self._batch_size):
            try:
                await self._block_job.sync_height(height)
            except RecordNotFoundError as exc:
                outcome = await self._tracker.record_not_found(height, exc)
                if outcome.abandoned:
                    abandoned += 1
                else:
                    failed += 1
            except _UNIT_ERRORS as exc:
                outcome = await self._tracker.record_failure(height, exc)
                if outcome.abandoned:
                    abandoned += 1
                else:
                    failed += 1
            else:
                recovered += 1
        return RetryResult(recovered=recovered, failed=failed, abandoned=abandoned)


@dataclasses.dataclass(frozen=True, slots=True)
class TransactionSyncResult:
    """Outcome of one transaction cycle."""

    processed: int = 0
    flat_records: int = 0
    retried: int = 0
    failed: int = 0


class TransactionSyncJob:
    """Fetch, flatten and persist queued transaction hashes.

    Failed hashes stay queued with exponential backoff from ``policy``.
    Transient node and store errors are retried until they succeed; other
    errors give up after ``policy.max_attempts``. A hash the node does not
    know fails at once.
    """

    def __init__(  # noqa: PLR0913
        self,
        store: ExplorerStore,
        fetcher: RawRecordFetcher,
        *,
        batch_size: int = 200,
        policy: RetryPolicy | None = None,
        resolver: AccountIdResolver = derive_account_id,
        cadence: dt.timedelta | None = None,
        clock: cabc.Callable[[], dt.datetime] = utcnow,
        name: str = "transaction-sync",
    ) -> None:
        """Wire the job to the store, fetcher and account resolver."""
        self.name = name
        self.cadence = cadence or _seconds(3)
        self._store = store
        self._fetcher = fetcher
        self._batch_size = batch_size
        self._policy = policy or RetryPolicy()
        self._resolver = resolver
        self._clock = clock

    async def sync_transaction(self, item: PendingTransaction) -> int:
        """Persist one queued transaction and return its flat record count."""
        tx = await self._fetcher.fetch_transaction(item.tx_hash)
        if tx.block_number != item.block_number:
            # The listing block is authoritative for where a hash lives.
            tx = dataclasses.replace(tx, block_number=item.block_number)
        records = flatten_transaction(tx, self._resolver)
        await self._store.upsert_transaction(
            tx,
            records,
            publisher_account_id=resolve_publisher(tx, self._resolver),
        )
        return len(records)

    def _schedule(
        self, exc: Exception, now: dt.datetime
    ) -> cabc.Callable[[int], dt.datetime | None]:
        policy = self._policy
        if isinstance(exc, _TRANSIENT_ERRORS):
            return lambda attempts: now + policy.delay_for(attempts)
        return lambda attempts: policy.next_attempt_at(attempts, now)

    async def run_once(self) -> TransactionSyncResult:
        """Drain one batch of due hashes, oldest block first."""
        processed = flat_records = retried = failed = 0
        now = self._clock()
        queue = await self._store.list_pending_transactions(self._batch_size, now=now)
        for item in queue:
            try:
                flat_records += await self.sync_transaction(item)
            except RecordNotFoundError as exc:
                await self._store.record_transaction_failure(
                    item.tx_hash,
                    str(exc),
                    schedule=None,
                )
                failed += 1
            except _UNIT_ERRORS as exc:
                log_warning(
                    logger,
                    "transaction %s failed (%s): %s",
                    item.tx_hash,
                    categorize_error(exc),
                    exc,
                )
                state = await self._store.record_transaction_failure(
                    item.tx_hash,
                    f"{type(exc).__name__}: {exc}",
                    schedule=self._schedule(exc, now),
                )
                if state is TxSyncState.FAILED:
                    failed += 1
                else:
                    retried += 1
            else:
                processed += 1
        return TransactionSyncResult(
            processed=processed,
            flat_records=flat_records,
            retried=retried,
            failed=failed,
        )


@dataclasses.dataclass(frozen=True, slots=True)
class GasAggregationResult:
    """Outcome of one gas aggregation cycle."""

    blocks: int = 0


class GasAggregationJob:
    """Materialise gas statistics for blocks whose transactions have settled."""

    def __init__(
        self,
        store: ExplorerStore,
        *,
        batch_size: int = 200,
        cadence: dt.timedelta | None = None,
        name: str = "gas-aggregation",
    ) -> None:
        """Wire the job to the store."""
        self.name = name
        self.cadence = cadence or _seconds(10)
        self._store = store
        self._batch_size = batch_size

    async def _materialise(self, height: int) -> GasStats:
        inputs = await self._store.load_block_gas_inputs(height)
        stats = compute_gas_stats(inputs)
        await self._store.upsert_gas_stats(height, stats, tx_count=len(inputs))
        return stats

    async def recompute(self, heights: cabc.Iterable[int]) -> dict[int, GasStats]:
        """Recompute and store gas statistics for ``heights``."""
        return {height: await self._materialise(height) for height in heights}

    async def run_once(self) -> GasAggregationResult:
        """Aggregate every settled block that has no statistics yet."""
        heights = await self._store.list_blocks_missing_gas_stats(self._batch_size)
        await self.recompute(heights)
        return GasAggregationResult(blocks=len(heights))


@dataclasses.dataclass(frozen=True, slots=True)
class AccountSyncResult:
    """Outcome of one account cycle."""

    rows_scanned: int = 0
    accounts_touched: int = 0


class AccountSyncJob:
    """Record accounts that publish, send or receive in flattened actions."""

    def __init__(
        self,
        store: ExplorerStore,
        *,
        batch_size: int = 500,
        cadence: dt.timedelta | None = None,
        name: str = "account-sync",
    ) -> None:
        """Wire the job to the store."""
        self.name = name
        self.cadence = cadence or _seconds(10)
        self._store = store
        self._batch_size = batch_size

    async def run_once(self) -> AccountSyncResult:
        """Scan flat rows after the ``accounts`` cursor and merge activity."""
        cursor = await self._store.get_cursor(ACCOUNT_CURSOR) or 0
        rows = await self._store.load_flat_transactions_after(cursor, self._batch_size)
        if not rows:
            return AccountSyncResult()

        activity: dict[str, AccountActivity] = {}
        for row in rows:
            for account_id in {row.publisher, row.sender, row.recipient} - {""}:
                seen = activity.get(account_id)
                if seen is None:
                    seen = AccountActivity(
                        first_seen_block=row.block_number,
                        last_seen_block=row.block_number,
                    )
                    activity[account_id] = seen
                seen.first_seen_block = min(seen.first_seen_block, row.block_number)
                seen.last_seen_block = max(seen.last_seen_block, row.block_number)
                seen.action_count += 1

        await self._store.apply_account_activity(
            activity, cursor_name=ACCOUNT_CURSOR, cursor_position=rows[-1].id
        )
        return AccountSyncResult(
            rows_scanned=len(rows), accounts_touched=len(activity)
        )
