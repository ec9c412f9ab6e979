"""Failure bookkeeping for block heights that did not sync.

A height moves from unsynced to synced or failed. A failed height is retried
with exponential backoff until it either syncs, in which case its marker is
deleted, or exhausts ``max_attempts`` and is abandoned. Abandoned markers are
kept for operators but never returned as pending.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import typing as typ

from spyglass.common.time import utcnow
from spyglass.store.storage import FailureState
from spyglass.sync.observability import SyncEventLogger

if typ.TYPE_CHECKING:
    from spyglass.store import ExplorerStore
    from spyglass.sync.config import SyncConfig


@dataclasses.dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded exponential backoff for failed heights."""

    max_attempts: int = 8
    base_delay: dt.timedelta = dataclasses.field(
        default_factory=lambda: dt.timedelta(seconds=30)
    )
    max_delay: dt.timedelta = dataclasses.field(
        default_factory=lambda: dt.timedelta(hours=1)
    )

    @classmethod
    def from_config(cls, config: SyncConfig) -> RetryPolicy:
        """Build the policy from the sync configuration."""
        return cls(
            max_attempts=config.retry_max_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
        )

    def delay_for(self, attempts: int) -> dt.timedelta:
        """Return the pause before retry number ``attempts``."""
        exponent = max(attempts - 1, 0)
        return min(self.base_delay * (2**exponent), self.max_delay)

    def next_attempt_at(self, attempts: int, now: dt.datetime) -> dt.datetime | None:
        """Return when to retry after ``attempts`` failures, or ``None`` to give up."""
        if attempts >= self.max_attempts:
            return None
        return now + self.delay_for(attempts)


@dataclasses.dataclass(frozen=True, slots=True)
class FailureOutcome:
    """State of a height after a failure was recorded."""

    height: int
    attempts: int
    abandoned: bool
    next_attempt_at: dt.datetime | None


class FailedBlockTracker:
    """Persisted queue of block heights awaiting a retry."""

    def __init__(
        self,
        store: ExplorerStore,
        policy: RetryPolicy | None = None,
        *,
        events: SyncEventLogger | None = None,
        clock: typ.Callable[[], dt.datetime] = utcnow,
    ) -> None:
        """Bind the tracker to a store and retry policy."""
        self._store = store
        self._policy = policy or RetryPolicy()
        self._events = events or SyncEventLogger()
        self._clock = clock

    @property
    def policy(self) -> RetryPolicy:
        """Return the active retry policy."""
        return self._policy

    async def record_failure(self, height: int, error: BaseException) -> FailureOutcome:
        """Record a failed attempt for ``height`` and schedule the next one."""
        now = self._clock()
        marker = await self._store.record_sync_failure(
            height,
            f"{type(error).__name__}: {error}",
            now=now,
            schedule=lambda attempts: self._policy.next_attempt_at(attempts, now),
        )
        abandoned = marker.state == FailureState.ABANDONED
        if abandoned:
            self._events.log_retry_abandoned(
                height, marker.attempts, "max attempts reached"
            )
        return FailureOutcome(
            height=height,
            attempts=marker.attempts,
            abandoned=abandoned,
            next_attempt_at=marker.next_attempt_at,
        )

    async def record_not_found(
        self, height: int, error: BaseException
    ) -> FailureOutcome:
        """Handle a retried height that the node reports as missing.

        A height above the highest persisted block may not have been produced
        yet, so it is rescheduled like any other failure. Below that block the
        chain has moved past the height and it is abandoned.
        """
        latest = await self._store.latest_block_height()
        if latest is None or height > latest:
            return await self.record_failure(height, error)
        await self.abandon(height, "block not found upstream")
        return FailureOutcome(
            height=height, attempts=0, abandoned=True, next_attempt_at=None
        )

    async def abandon(self, height: int, reason: str) -> None:
        """Stop retrying ``height`` immediately."""
        await self._store.abandon_sync_failure(height, reason, now=self._clock())
        self._events.log_retry_abandoned(height, 0, reason)

    async def clear(self, height: int) -> bool:
        """Delete the failure marker of a height that synced."""
        return await self._store.clear_sync_failure(height)

    async def due(self, now: dt.datetime | None = None, limit: int = 20) -> list[int]:
        """Return pending heights whose next attempt is due."""
        return await self._store.list_due_failures(now or self._clock(), limit)

    async def pending(self) -> list[int]:
        """Return every height still queued for retry."""
        return await self._store.list_pending_failures()
