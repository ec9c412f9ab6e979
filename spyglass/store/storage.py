"""SQLAlchemy models for the explorer store."""

from __future__ import annotations

import datetime as dt
import enum
import typing as typ

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from spyglass.common.time import utcnow
from spyglass.store.errors import TimezoneAwareRequiredError

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine

_HASH_LENGTH = 128
_ACCOUNT_LENGTH = 255


class TxSyncState(enum.IntEnum):
    """Lifecycle of a transaction hash waiting to be fetched and flattened."""

    PENDING = 0
    PROCESSED = 1
    FAILED = 2


class FailureState(enum.IntEnum):
    """Lifecycle of a block height that failed to sync."""

    PENDING = 0
    ABANDONED = 1


class Base(DeclarativeBase):
    """Base declarative class for explorer models."""


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime wrapper that round-trips UTC tzinfo even on SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Force bound datetime values to UTC with tzinfo."""
        if value is None:
            return None
        if value.tzinfo is None:
            raise TimezoneAwareRequiredError("stored datetime")
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Ensure result datetimes are UTC and timezone aware."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


class BlockRecord(Base):
    """Block header as reported by the node."""

    __tablename__ = "blocks"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    block_number: Mapped[int] = mapped_column(BigInteger, unique=True)
    block_hash: Mapped[str] = mapped_column(String(_HASH_LENGTH))
    parent_hash: Mapped[str] = mapped_column(String(_HASH_LENGTH))
    witness: Mapped[str] = mapped_column(String(_ACCOUNT_LENGTH))
    time: Mapped[int] = mapped_column(BigInteger)
    tx_count: Mapped[int] = mapped_column(Integer, default=0)
    synced_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


class BlockTransaction(Base):
    """Transaction hash listed by a block, queued for fetching."""

    __tablename__ = "block_transactions"
    __table_args__ = (
        Index("ix_block_transactions_block", "block_number", "position"),
        Index("ix_block_transactions_state", "sync_state", "block_number"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tx_hash: Mapped[str] = mapped_column(String(_HASH_LENGTH), unique=True)
    block_number: Mapped[int] = mapped_column(BigInteger)
    position: Mapped[int] = mapped_column(Integer)
    sync_state: Mapped[int] = mapped_column(Integer, default=TxSyncState.PENDING.value)
    sync_error: Mapped[str | None] = mapped_column(Text(), default=None)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    next_attempt_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


class TransactionRecord(Base):
    """Transaction merged with its receipt."""

    __tablename__ = "transactions"
    __table_args__ = (Index("ix_transactions_block", "block_number"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    hash: Mapped[str] = mapped_column(String(_HASH_LENGTH), unique=True)
    block_number: Mapped[int] = mapped_column(BigInteger)
    time: Mapped[int] = mapped_column(BigInteger)
    expiration: Mapped[int] = mapped_column(BigInteger)
    gas_price: Mapped[int] = mapped_column(BigInteger)
    gas_limit: Mapped[int] = mapped_column(BigInteger)
    gas_usage: Mapped[int] = mapped_column(BigInteger, default=0)
    successful_action_count: Mapped[int] = mapped_column(Integer, default=0)
    status_code: Mapped[int] = mapped_column(Integer, default=0)
    status_message: Mapped[str] = mapped_column(Text(), default="")
    action_count: Mapped[int] = mapped_column(Integer, default=0)
    publisher_account_id: Mapped[str] = mapped_column(String(_ACCOUNT_LENGTH))
    signer_addresses: Mapped[list[str]] = mapped_column(JSON, default=list)
    signatures: Mapped[list[dict[str, typ.Any]]] = mapped_column(JSON, default=list)
    publisher: Mapped[dict[str, typ.Any]] = mapped_column(JSON, default=dict)
    receipt_entries: Mapped[list[dict[str, typ.Any]]] = mapped_column(
        JSON, default=list
    )
    synced_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


class FlatTransaction(Base):
    """One action of a transaction, denormalised for queries."""

    __tablename__ = "flat_transactions"
    __table_args__ = (
        UniqueConstraint("hash", "action_index", name="uq_flat_transactions_action"),
        Index("ix_flat_transactions_block", "block_number"),
        Index("ix_flat_transactions_publisher", "publisher"),
        Index("ix_flat_transactions_sender", "sender"),
        Index("ix_flat_transactions_recipient", "recipient"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    hash: Mapped[str] = mapped_column(String(_HASH_LENGTH))
    action_index: Mapped[int] = mapped_column(Integer)
    block_number: Mapped[int] = mapped_column(BigInteger)
    time: Mapped[int] = mapped_column(BigInteger)
    expiration: Mapped[int] = mapped_column(BigInteger)
    gas_price: Mapped[int] = mapped_column(BigInteger)
    gas_limit: Mapped[int] = mapped_column(BigInteger)
    contract: Mapped[str] = mapped_column(String(_ACCOUNT_LENGTH))
    action_name: Mapped[str] = mapped_column(String(_ACCOUNT_LENGTH))
    action_data: Mapped[str] = mapped_column(Text())
    signer_addresses: Mapped[list[str]] = mapped_column(JSON, default=list)
    signatures: Mapped[list[dict[str, typ.Any]]] = mapped_column(JSON, default=list)
    publisher: Mapped[str] = mapped_column(String(_ACCOUNT_LENGTH))
    sender: Mapped[str] = mapped_column(String(_ACCOUNT_LENGTH), default="")
    recipient: Mapped[str] = mapped_column(String(_ACCOUNT_LENGTH), default="")
    amount: Mapped[float] = mapped_column(Float, default=0.0)


class BlockGasStats(Base):
    """Materialised gas aggregates for one block."""

    __tablename__ = "block_gas_stats"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    block_number: Mapped[int] = mapped_column(BigInteger, unique=True)
    total_gas_limit: Mapped[int] = mapped_column(BigInteger, default=0)
    avg_gas_price: Mapped[float] = mapped_column(Float, default=0.0)
    tx_count: Mapped[int] = mapped_column(Integer, default=0)
    computed_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


class BlockSyncFailure(Base):
    """A block height whose last sync attempt failed."""

    __tablename__ = "block_sync_failures"
    __table_args__ = (
        Index("ix_block_sync_failures_due", "state", "next_attempt_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    block_number: Mapped[int] = mapped_column(BigInteger, unique=True)
    state: Mapped[int] = mapped_column(Integer, default=FailureState.PENDING.value)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str | None] = mapped_column(Text(), default=None)
    first_failed_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    last_failed_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    next_attempt_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )


class SyncCursor(Base):
    """Named progress marker for a sync job."""

    __tablename__ = "sync_cursors"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), unique=True)
    position: Mapped[int] = mapped_column(BigInteger)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


class AccountRecord(Base):
    """Account discovered in flattened transactions."""

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(String(_ACCOUNT_LENGTH), unique=True)
    first_seen_block: Mapped[int] = mapped_column(BigInteger)
    last_seen_block: Mapped[int] = mapped_column(BigInteger)
    action_count: Mapped[int] = mapped_column(Integer, default=0)
    first_seen_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


async def init_storage(engine: AsyncEngine) -> None:
    """Create all explorer tables if they are absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
