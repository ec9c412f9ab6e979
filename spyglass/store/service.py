"""Persistence service shared by the sync jobs and the block listing.

Every write is an idempotent upsert keyed by a natural identifier (block
number, transaction hash, ``(hash, action_index)``, account id), so retries
and overlapping jobs never create duplicate rows. Writes that lose a race
against a concurrent insert are retried once against the now-existing row.
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import typing as typ

from sqlalchemy import delete, exists, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from spyglass.chain.models import RawBlock
from spyglass.common.time import utcnow
from spyglass.explorer.models import GasStats
from spyglass.store.errors import PersistenceError
from spyglass.store.storage import (
    AccountRecord,
    BlockGasStats,
    BlockRecord,
    BlockSyncFailure,
    BlockTransaction,
    FailureState,
    FlatTransaction,
    SyncCursor,
    TransactionRecord,
    TxSyncState,
)

if typ.TYPE_CHECKING:
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from spyglass.chain.models import RawSignature, RawTransaction
    from spyglass.explorer.models import FlatTransactionRecord

    type SessionFactory = async_sessionmaker[AsyncSession]

_WRITE_ATTEMPTS = 2

type RetrySchedule = cabc.Callable[[int], dt.datetime | None]


@dataclasses.dataclass(frozen=True, slots=True)
class PendingTransaction:
    """Transaction hash waiting in the fetch queue."""

    tx_hash: str
    block_number: int
    attempts: int


@dataclasses.dataclass(frozen=True, slots=True)
class SyncFailureState:
    """Failure marker of a block height after an update."""

    height: int
    attempts: int
    state: FailureState
    next_attempt_at: dt.datetime | None


@dataclasses.dataclass(frozen=True, slots=True)
class FlatTransactionRow:
    """Account-relevant columns of a persisted flat transaction."""

    id: int
    block_number: int
    publisher: str
    sender: str
    recipient: str


@dataclasses.dataclass(slots=True)
class AccountActivity:
    """Activity observed for one account within a batch of actions."""

    first_seen_block: int
    last_seen_block: int
    action_count: int = 0


def _signature_payload(signature: RawSignature) -> dict[str, typ.Any]:
    return {
        "algorithm": signature.algorithm,
        "signature": signature.signature,
        "publicKey": signature.public_key,
    }


def _apply_flat_record(row: FlatTransaction, record: FlatTransactionRecord) -> None:
    row.block_number = record.block_number
    row.time = record.time
    row.expiration = record.expiration
    row.gas_price = record.gas_price
    row.gas_limit = record.gas_limit
    row.contract = record.action.contract
    row.action_name = record.action_name
    row.action_data = record.action.data
    row.signer_addresses = list(record.signer_addresses)
    row.signatures = [_signature_payload(sig) for sig in record.signatures]
    row.publisher = record.publisher_account_id
    row.sender = record.sender
    row.recipient = record.recipient
    row.amount = record.amount


def _apply_transaction(
    row: TransactionRecord, tx: RawTransaction, publisher_account_id: str
) -> None:
    row.block_number = tx.block_number
    row.time = tx.time
    row.expiration = tx.expiration
    row.gas_price = tx.gas_price
    row.gas_limit = tx.gas_limit
    row.gas_usage = tx.receipt.gas_usage
    row.successful_action_count = tx.receipt.successful_action_count
    row.status_code = tx.receipt.status_code
    row.status_message = tx.receipt.status_message
    row.action_count = len(tx.actions)
    row.publisher_account_id = publisher_account_id
    row.signer_addresses = list(tx.signer_addresses)
    row.signatures = [_signature_payload(sig) for sig in tx.signatures]
    row.publisher = _signature_payload(tx.publisher_signature)
    row.receipt_entries = [
        {"type": entry.type, "content": entry.content} for entry in tx.receipt.entries
    ]


class ExplorerStore:
    """Idempotent reads and writes over the explorer tables."""

    def __init__(self, session_factory: SessionFactory) -> None:
        """Store the session factory used for all operations."""
        self._session_factory = session_factory

    async def _write[T](
        self,
        operation: str,
        work: cabc.Callable[[AsyncSession], cabc.Awaitable[T]],
    ) -> T:
        """Run ``work`` in its own transaction, retrying once on a lost race.

        Raises
        ------
        PersistenceError
            If the database rejects the write.

        """
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self._session_factory() as session, session.begin():
                    return await work(session)
            except IntegrityError as exc:
                if attempt >= _WRITE_ATTEMPTS:
                    raise PersistenceError.conflict(operation) from exc
            except SQLAlchemyError as exc:
                raise PersistenceError.write_failed(operation, exc) from exc

    # Blocks -----------------------------------------------------------------

    async def upsert_block(self, block: RawBlock) -> None:
        """Persist a block header and queue its transaction hashes."""

        async def _work(session: AsyncSession) -> None:
            record = await session.scalar(
                select(BlockRecord).where(BlockRecord.block_number == block.height)
            )
            if record is None:
                record = BlockRecord(block_number=block.height)
                session.add(record)
            record.block_hash = block.block_hash
            record.parent_hash = block.parent_hash
            record.witness = block.witness
            record.time = block.time
            record.tx_count = len(block.tx_hashes)
            await self._enqueue_transactions(session, block)

        await self._write("upsert_block", _work)

    @staticmethod
    async def _enqueue_transactions(session: AsyncSession, block: RawBlock) -> None:
        if not block.tx_hashes:
            return
        existing = {
            row.tx_hash: row
            for row in await session.scalars(
                select(BlockTransaction).where(
                    BlockTransaction.tx_hash.in_(block.tx_hashes)
                )
            )
        }
        for position, tx_hash in enumerate(block.tx_hashes):
            row = existing.get(tx_hash)
            if row is None:
                session.add(
                    BlockTransaction(
                        tx_hash=tx_hash,
                        block_number=block.height,
                        position=position,
                        sync_state=TxSyncState.PENDING.value,
                    )
                )
                continue
            row.block_number = block.height
            row.position = position

    async def latest_block_height(self) -> int | None:
        """Return the highest persisted block number."""
        async with self._session_factory() as session:
            return await session.scalar(
                select(BlockRecord.block_number)
                .order_by(BlockRecord.block_number.desc())
                .limit(1)
            )

    async def get_block_page(self, offset: int, limit: int) -> list[RawBlock]:
        """Return persisted blocks, newest first.

        The returned blocks carry no transaction hashes; use
        :meth:`get_tx_hashes_for_block` for those.
        """
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(BlockRecord)
                .order_by(BlockRecord.block_number.desc())
                .offset(offset)
                .limit(limit)
            )
            return [
                RawBlock(
                    height=row.block_number,
                    block_hash=row.block_hash,
                    parent_hash=row.parent_hash,
                    witness=row.witness,
                    time=row.time,
                )
                for row in rows
            ]

    async def get_tx_hashes_for_block(self, height: int) -> list[str]:
        """Return the transaction hashes listed by a block, in block order."""
        async with self._session_factory() as session:
            hashes = await session.scalars(
                select(BlockTransaction.tx_hash)
                .where(BlockTransaction.block_number == height)
                .order_by(BlockTransaction.position)
            )
            return list(hashes)

    # Transactions -----------------------------------------------------------

    async def upsert_transaction(
        self,
        tx: RawTransaction,
        records: cabc.Sequence[FlatTransactionRecord],
        *,
        publisher_account_id: str,
    ) -> None:
        """Persist a transaction with its flat records and settle its queue entry.

        The transaction row, its per-action rows and the queue state change
        are written in one database transaction. Gas statistics already
        stored for the block are dropped so they are recomputed.
        """

        async def _work(session: AsyncSession) -> None:
            row = await session.scalar(
                select(TransactionRecord).where(TransactionRecord.hash == tx.hash)
            )
            if row is None:
                row = TransactionRecord(hash=tx.hash)
                session.add(row)
            _apply_transaction(row, tx, publisher_account_id)
            await self._upsert_flat_rows(session, records)
            await session.execute(
                delete(FlatTransaction).where(
                    FlatTransaction.hash == tx.hash,
                    FlatTransaction.action_index >= len(records),
                )
            )
            queued = await session.scalar(
                select(BlockTransaction).where(BlockTransaction.tx_hash == tx.hash)
            )
            if queued is not None:
                queued.sync_state = TxSyncState.PROCESSED.value
                queued.sync_error = None
                queued.next_attempt_at = None
            # Statistics computed without this transaction are stale.
            await session.execute(
                delete(BlockGasStats).where(
                    BlockGasStats.block_number == tx.block_number
                )
            )

        await self._write("upsert_transaction", _work)

    async def upsert_flat_transactions(
        self, records: cabc.Sequence[FlatTransactionRecord]
    ) -> None:
        """Insert or update flat transaction rows keyed by hash and action index."""
        if not records:
            return

        async def _work(session: AsyncSession) -> None:
            await self._upsert_flat_rows(session, records)

        await self._write("upsert_flat_transactions", _work)

    @staticmethod
    async def _upsert_flat_rows(
        session: AsyncSession, records: cabc.Sequence[FlatTransactionRecord]
    ) -> None:
        if not records:
            return
        hashes = {record.hash for record in records}
        existing = {
            (row.hash, row.action_index): row
            for row in await session.scalars(
                select(FlatTransaction).where(FlatTransaction.hash.in_(hashes))
            )
        }
        for record in records:
            row = existing.get((record.hash, record.action_index))
            if row is None:
                row = FlatTransaction(
                    hash=record.hash, action_index=record.action_index
                )
                session.add(row)
            _apply_flat_record(row, record)

    async def list_pending_transactions(
        self, limit: int, *, now: dt.datetime | None = None
    ) -> list[PendingTransaction]:
        """Return queued transaction hashes, oldest block first.

        With ``now`` given, hashes whose next attempt lies in the future are
        skipped.
        """
        query = select(BlockTransaction).where(
            BlockTransaction.sync_state == TxSyncState.PENDING.value
        )
        if now is not None:
            query = query.where(
                or_(
                    BlockTransaction.next_attempt_at.is_(None),
                    BlockTransaction.next_attempt_at <= now,
                )
            )
        async with self._session_factory() as session:
            rows = await session.scalars(
                query
                .order_by(BlockTransaction.block_number, BlockTransaction.position)
                .limit(limit)
            )
            return [
                PendingTransaction(
                    tx_hash=row.tx_hash,
                    block_number=row.block_number,
                    attempts=row.attempts,
                )
                for row in rows
            ]

    async def record_transaction_failure(
        self,
        tx_hash: str,
        error: str,
        *,
        schedule: RetrySchedule | None,
    ) -> TxSyncState:
        """Count a failed fetch for a queued hash and return its new state.

        ``schedule`` receives the updated attempt count and returns when the
        hash should next be fetched. The hash moves to ``FAILED`` when
        ``schedule`` is ``None`` or returns ``None``.
        """

        async def _work(session: AsyncSession) -> TxSyncState:
            row = await session.scalar(
                select(BlockTransaction).where(BlockTransaction.tx_hash == tx_hash)
            )
            if row is None:
                return TxSyncState.FAILED
            row.attempts += 1
            row.sync_error = error
            next_attempt_at = schedule(row.attempts) if schedule else None
            if next_attempt_at is None:
                row.sync_state = TxSyncState.FAILED.value
            row.next_attempt_at = next_attempt_at
            return TxSyncState(row.sync_state)

        return await self._write("record_transaction_failure", _work)

    # Gas statistics ---------------------------------------------------------

    async def list_blocks_missing_gas_stats(self, limit: int) -> list[int]:
        """Return settled blocks that have no gas statistics yet.

        A block is settled once none of its transactions is still queued.
        """
        pending = exists().where(
            BlockTransaction.block_number == BlockRecord.block_number,
            BlockTransaction.sync_state == TxSyncState.PENDING.value,
        )
        computed = exists().where(
            BlockGasStats.block_number == BlockRecord.block_number
        )
        async with self._session_factory() as session:
            heights = await session.scalars(
                select(BlockRecord.block_number)
                .where(~pending, ~computed)
                .order_by(BlockRecord.block_number)
                .limit(limit)
            )
            return list(heights)

    async def load_block_gas_inputs(self, height: int) -> list[tuple[int, int]]:
        """Return ``(gas_limit, gas_price)`` for each persisted transaction."""
        async with self._session_factory() as session:
            rows = await session.execute(
                select(TransactionRecord.gas_limit, TransactionRecord.gas_price)
                .where(TransactionRecord.block_number == height)
                .order_by(TransactionRecord.id)
            )
            return [(gas_limit, gas_price) for gas_limit, gas_price in rows]

    async def upsert_gas_stats(
        self, height: int, stats: GasStats, *, tx_count: int
    ) -> None:
        """Insert or replace the gas statistics of a block."""

        async def _work(session: AsyncSession) -> None:
            row = await session.scalar(
                select(BlockGasStats).where(BlockGasStats.block_number == height)
            )
            if row is None:
                row = BlockGasStats(block_number=height)
                session.add(row)
            row.total_gas_limit = stats.total_gas_limit
            row.avg_gas_price = stats.avg_gas_price
            row.tx_count = tx_count

        await self._write("upsert_gas_stats", _work)

    async def get_gas_stats_by_heights(
        self, heights: cabc.Iterable[int]
    ) -> dict[int, GasStats]:
        """Return stored gas statistics keyed by block number."""
        wanted = list(heights)
        if not wanted:
            return {}
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(BlockGasStats).where(BlockGasStats.block_number.in_(wanted))
            )
            return {
                row.block_number: GasStats(
                    total_gas_limit=row.total_gas_limit,
                    avg_gas_price=row.avg_gas_price,
                )
                for row in rows
            }

    # Sync failures ----------------------------------------------------------

    async def record_sync_failure(
        self,
        height: int,
        error: str,
        *,
        now: dt.datetime,
        schedule: RetrySchedule,
    ) -> SyncFailureState:
        """Record a failed sync of ``height`` and schedule the next attempt.

        ``schedule`` receives the updated attempt count and returns when the
        height should next be retried, or ``None`` to abandon it.
        """

        async def _work(session: AsyncSession) -> SyncFailureState:
            row = await session.scalar(
                select(BlockSyncFailure).where(BlockSyncFailure.block_number == height)
            )
            if row is None:
                row = BlockSyncFailure(
                    block_number=height, attempts=0, first_failed_at=now
                )
                session.add(row)
            row.attempts += 1
            row.last_error = error
            row.last_failed_at = now
            next_attempt_at = schedule(row.attempts)
            if next_attempt_at is None:
                row.state = FailureState.ABANDONED.value
                row.next_attempt_at = None
            else:
                row.state = FailureState.PENDING.value
                row.next_attempt_at = next_attempt_at
            return SyncFailureState(
                height=height,
                attempts=row.attempts,
                state=FailureState(row.state),
                next_attempt_at=row.next_attempt_at,
            )

        return await self._write("record_sync_failure", _work)

    async def abandon_sync_failure(
        self, height: int, reason: str, *, now: dt.datetime
    ) -> None:
        """Stop retrying ``height`` while keeping its failure record."""

        async def _work(session: AsyncSession) -> None:
            row = await session.scalar(
                select(BlockSyncFailure).where(BlockSyncFailure.block_number == height)
            )
            if row is None:
                row = BlockSyncFailure(
                    block_number=height, attempts=0, first_failed_at=now
                )
                session.add(row)
            row.state = FailureState.ABANDONED.value
            row.last_error = reason
            row.last_failed_at = now
            row.next_attempt_at = None

        await self._write("abandon_sync_failure", _work)

    async def clear_sync_failure(self, height: int) -> bool:
        """Delete the failure record of ``height``; return whether one existed."""

        async def _work(session: AsyncSession) -> bool:
            result = await session.execute(
                delete(BlockSyncFailure).where(BlockSyncFailure.block_number == height)
            )
            return bool(result.rowcount)

        return await self._write("clear_sync_failure", _work)

    async def list_pending_failures(self) -> list[int]:
        """Return every height still scheduled for retry, lowest first."""
        async with self._session_factory() as session:
            heights = await session.scalars(
                select(BlockSyncFailure.block_number)
                .where(BlockSyncFailure.state == FailureState.PENDING.value)
                .order_by(BlockSyncFailure.block_number)
            )
            return list(heights)

    async def list_due_failures(self, now: dt.datetime, limit: int) -> list[int]:
        """Return pending heights whose next attempt is due at ``now``."""
        async with self._session_factory() as session:
            heights = await session.scalars(
                select(BlockSyncFailure.block_number)
                .where(
                    BlockSyncFailure.state == FailureState.PENDING.value,
                    BlockSyncFailure.next_attempt_at <= now,
                )
                .order_by(
                    BlockSyncFailure.next_attempt_at, BlockSyncFailure.block_number
                )
                .limit(limit)
            )
            return list(heights)

    # Cursors ----------------------------------------------------------------

    async def get_cursor(self, name: str) -> int | None:
        """Return the stored position of cursor ``name``."""
        async with self._session_factory() as session:
            return await session.scalar(
                select(SyncCursor.position).where(SyncCursor.name == name)
            )

    async def set_cursor(self, name: str, position: int) -> None:
        """Store the position of cursor ``name``."""

        async def _work(session: AsyncSession) -> None:
            await self._save_cursor(session, name, position)

        await self._write("set_cursor", _work)

    @staticmethod
    async def _save_cursor(session: AsyncSession, name: str, position: int) -> None:
        cursor = await session.scalar(select(SyncCursor).where(SyncCursor.name == name))
        if cursor is None:
            session.add(SyncCursor(name=name, position=position))
            return
        cursor.position = position

    # Accounts ---------------------------------------------------------------

    async def load_flat_transactions_after(
        self, after_id: int, limit: int
    ) -> list[FlatTransactionRow]:
        """Return flat transaction rows with ids above ``after_id``."""
        async with self._session_factory() as session:
            rows = await session.execute(
                select(
                    FlatTransaction.id,
                    FlatTransaction.block_number,
                    FlatTransaction.publisher,
                    FlatTransaction.sender,
                    FlatTransaction.recipient,
                )
                .where(FlatTransaction.id > after_id)
                .order_by(FlatTransaction.id)
                .limit(limit)
            )
            return [
                FlatTransactionRow(
                    id=row_id,
                    block_number=block_number,
                    publisher=publisher,
                    sender=sender,
                    recipient=recipient,
                )
                for row_id, block_number, publisher, sender, recipient in rows
            ]

    async def apply_account_activity(
        self,
        activity: cabc.Mapping[str, AccountActivity],
        *,
        cursor_name: str,
        cursor_position: int,
    ) -> None:
        """Merge account activity and advance the cursor atomically."""

        async def _work(session: AsyncSession) -> None:
            rows = await session.scalars(
                select(AccountRecord).where(
                    AccountRecord.account_id.in_(list(activity))
                )
            )
            existing = {row.account_id: row for row in rows}
            for account_id, seen in activity.items():
                row = existing.get(account_id)
                if row is None:
                    session.add(
                        AccountRecord(
                            account_id=account_id,
                            first_seen_block=seen.first_seen_block,
                            last_seen_block=seen.last_seen_block,
                            action_count=seen.action_count,
                            first_seen_at=utcnow(),
                        )
                    )
                    continue
                row.first_seen_block = min(row.first_seen_block, seen.first_seen_block)
                row.last_seen_block = max(row.last_seen_block, seen.last_seen_block)
                row.action_count += seen.action_count
            await self._save_cursor(session, cursor_name, cursor_position)

        await self._write("apply_account_activity", _work)

    async def get_accounts(
        self, account_ids: cabc.Iterable[str]
    ) -> dict[str, AccountRecord]:
        """Return stored accounts keyed by account id."""
        wanted = list(account_ids)
        if not wanted:
            return {}
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(AccountRecord).where(AccountRecord.account_id.in_(wanted))
            )
            return {row.account_id: row for row in rows}
