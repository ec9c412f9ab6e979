"""Observability primitives for the sync jobs.

Provides structured log events and error categorisation for sync cycles,
per-block failures and retry abandonment. Events are emitted as
``[event.type] key=value`` messages suitable for log aggregators.
"""

from __future__ import annotations

import enum
import typing as typ

from sqlalchemy.exc import SQLAlchemyError

from spyglass.chain.errors import (
    ChainConfigError,
    ChainResponseShapeError,
    ChainRPCError,
    RecordNotFoundError,
    TransientRPCError,
)
from spyglass.explorer.errors import ActionPayloadError
from spyglass.logging import get_logger, log_error, log_info, log_warning
from spyglass.store.errors import PersistenceError

if typ.TYPE_CHECKING:
    import datetime as dt

logger = get_logger(__name__)


class SyncEventType(enum.StrEnum):
    """Structured log event types for sync observability."""

    CYCLE_STARTED = "sync.cycle.started"
    CYCLE_COMPLETED = "sync.cycle.completed"
    CYCLE_FAILED = "sync.cycle.failed"
    BLOCK_FAILED = "sync.block.failed"
    BLOCK_NOT_FOUND = "sync.block.not_found"
    RETRY_ABANDONED = "sync.retry.abandoned"
    JOB_STOPPED = "sync.job.stopped"


class ErrorCategory(enum.StrEnum):
    """Categories for error classification in alerts."""

    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    CLIENT_ERROR = "client_error"
    SCHEMA_DRIFT = "schema_drift"
    MALFORMED_PAYLOAD = "malformed_payload"
    PERSISTENCE = "persistence"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


# Order matters: subclasses precede their bases.
_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (RecordNotFoundError, ErrorCategory.NOT_FOUND),
    (TransientRPCError, ErrorCategory.TRANSIENT),
    (ChainRPCError, ErrorCategory.CLIENT_ERROR),
    (ChainResponseShapeError, ErrorCategory.SCHEMA_DRIFT),
    (ActionPayloadError, ErrorCategory.MALFORMED_PAYLOAD),
    (PersistenceError, ErrorCategory.PERSISTENCE),
    (SQLAlchemyError, ErrorCategory.PERSISTENCE),
    (ChainConfigError, ErrorCategory.CONFIGURATION),
    (TimeoutError, ErrorCategory.TRANSIENT),
)


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorise an exception for alert routing."""
    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(exc, exc_type):
            return category
    return ErrorCategory.UNKNOWN


class SyncEventLogger:
    """Emit structured sync events through femtologging.

    Successful cycles log at INFO, per-item failures at WARNING and failed
    cycles at ERROR.
    """

    def log_cycle_started(self, job: str) -> None:
        """Log the start of one job cycle."""
        log_info(logger, "[%s] job=%s", SyncEventType.CYCLE_STARTED, job)

    def log_cycle_completed(
        self, job: str, result: object, duration: dt.timedelta
    ) -> None:
        """Log a completed cycle with its result summary."""
        log_info(
            logger,
            "[%s] job=%s duration_seconds=%.3f result=%s",
            SyncEventType.CYCLE_COMPLETED,
            job,
            duration.total_seconds(),
            result,
        )

    def log_cycle_failed(
        self,
        job: str,
        error: BaseException,
        consecutive_failures: int,
        backoff: dt.timedelta,
    ) -> None:
        """Log a cycle that raised, with its category and the next pause."""
        log_error(
            logger,
            "[%s] job=%s error_type=%s error_category=%s "
            "consecutive_failures=%d backoff_seconds=%.3f error_message=%s",
            SyncEventType.CYCLE_FAILED,
            job,
            type(error).__name__,
            categorize_error(error),
            consecutive_failures,
            backoff.total_seconds(),
            str(error),
            exc_info=error,
        )

    def log_block_failed(self, height: int, error: BaseException) -> None:
        """Log a height whose sync failed and was queued for retry."""
        log_warning(
            logger,
            "[%s] height=%d error_type=%s error_category=%s error_message=%s",
            SyncEventType.BLOCK_FAILED,
            height,
            type(error).__name__,
            categorize_error(error),
            str(error),
        )

    def log_block_not_found(self, height: int) -> None:
        """Log that the node has no block at ``height`` yet."""
        log_info(logger, "[%s] height=%d", SyncEventType.BLOCK_NOT_FOUND, height)

    def log_retry_abandoned(self, height: int, attempts: int, reason: str) -> None:
        """Log that a failed height will not be retried again."""
        log_warning(
            logger,
            "[%s] height=%d attempts=%d reason=%s",
            SyncEventType.RETRY_ABANDONED,
            height,
            attempts,
            reason,
        )

    def log_job_stopped(self, job: str) -> None:
        """Log that a job loop has exited."""
        log_info(logger, "[%s] job=%s", SyncEventType.JOB_STOPPED, job)
