"""Periodic sync jobs, their scheduler and failure bookkeeping."""

from __future__ import annotations

from .config import SyncConfig
from .jobs import (
    AccountSyncJob,
    AccountSyncResult,
    BlockSyncJob,
    BlockSyncResult,
    FailedBlockRetryJob,
    GasAggregationJob,
    GasAggregationResult,
    RetryResult,
    TransactionSyncJob,
    TransactionSyncResult,
)
from .observability import (
    ErrorCategory,
    SyncEventLogger,
    SyncEventType,
    categorize_error,
)
from .retry import FailedBlockTracker, FailureOutcome, RetryPolicy
from .scheduler import JobGroup, JobRunner, SyncTask

__all__ = [
    "AccountSyncJob",
    "AccountSyncResult",
    "BlockSyncJob",
    "BlockSyncResult",
    "ErrorCategory",
    "FailedBlockRetryJob",
    "FailedBlockTracker",
    "FailureOutcome",
    "GasAggregationJob",
    "GasAggregationResult",
    "JobGroup",
    "JobRunner",
    "RetryPolicy",
    "RetryResult",
    "SyncConfig",
    "SyncEventLogger",
    "SyncEventType",
    "SyncTask",
    "TransactionSyncJob",
    "TransactionSyncResult",
    "categorize_error",
]
