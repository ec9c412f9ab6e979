"""Relational persistence for blocks, transactions and sync bookkeeping."""

from __future__ import annotations

from .errors import PersistenceError, TimezoneAwareRequiredError
from .service import (
    AccountActivity,
    ExplorerStore,
    FlatTransactionRow,
    PendingTransaction,
    SyncFailureState,
)
from .storage import (
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
    init_storage,
)

__all__ = [
    "AccountActivity",
    "AccountRecord",
    "BlockGasStats",
    "BlockRecord",
    "BlockSyncFailure",
    "BlockTransaction",
    "ExplorerStore",
    "FailureState",
    "FlatTransaction",
    "FlatTransactionRow",
    "PendingTransaction",
    "PersistenceError",
    "SyncCursor",
    "SyncFailureState",
    "TimezoneAwareRequiredError",
    "TransactionRecord",
    "TxSyncState",
    "init_storage",
]
