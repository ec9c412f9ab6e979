"""Periodic execution of sync tasks.

Each :class:`SyncTask` runs in its own :class:`JobRunner` loop. A runner never
overlaps cycles of its task, contains every exception a cycle raises and backs
off after consecutive failures. :class:`JobGroup` supervises a set of runners
with one stop signal per job.

Example:
-------
Run two jobs until a signal handler calls ``group.stop()``::

    group = JobGroup()
    await group.run([block_job, tx_job])

"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import datetime as dt
import time
import typing as typ

from spyglass.sync.observability import SyncEventLogger

if typ.TYPE_CHECKING:
    import collections.abc as cabc

_DEFAULT_MAX_BACKOFF = dt.timedelta(minutes=5)


class SyncTask(typ.Protocol):
    """A unit of periodic work: a name, a cadence and one cycle."""

    name: str
    cadence: dt.timedelta

    async def run_once(self) -> object:
        """Run one cycle and return a result summary."""
        ...


@dataclasses.dataclass(slots=True)
class RunnerStats:
    """Counters kept by a runner across its lifetime."""

    cycles: int = 0
    failures: int = 0
    consecutive_failures: int = 0


class JobRunner:
    """Loop one task until its stop signal is set."""

    def __init__(
        self,
        task: SyncTask,
        *,
        stop_event: asyncio.Event | None = None,
        max_backoff: dt.timedelta = _DEFAULT_MAX_BACKOFF,
        events: SyncEventLogger | None = None,
    ) -> None:
        """Bind the runner to ``task`` and its stop signal."""
        self._task = task
        self._stop_event = stop_event or asyncio.Event()
        self._max_backoff = max_backoff
        self._events = events or SyncEventLogger()
        self.stats = RunnerStats()

    @property
    def name(self) -> str:
        """Return the name of the supervised task."""
        return self._task.name

    @property
    def stop_event(self) -> asyncio.Event:
        """Return the event that stops this runner."""
        return self._stop_event

    def stop(self) -> None:
        """Ask the runner to exit after the current cycle."""
        self._stop_event.set()

    def backoff_for(self, consecutive_failures: int) -> dt.timedelta:
        """Return the pause after ``consecutive_failures`` failed cycles."""
        return min(
            self._task.cadence * (2**consecutive_failures), self._max_backoff
        )

    async def run_cycle(self) -> dt.timedelta:
        """Run one cycle and return the pause before the next one.

        Exceptions raised by the task are logged and absorbed; cancellation
        propagates.
        """
        self._events.log_cycle_started(self.name)
        started = time.monotonic()
        self.stats.cycles += 1
        try:
            result = await self._task.run_once()
        except Exception as exc:  # noqa: BLE001 - contain cycle failures
            self.stats.failures += 1
            self.stats.consecutive_failures += 1
            backoff = self.backoff_for(self.stats.consecutive_failures)
            self._events.log_cycle_failed(
                self.name, exc, self.stats.consecutive_failures, backoff
            )
            return backoff

        self.stats.consecutive_failures = 0
        self._events.log_cycle_completed(
            self.name, result, dt.timedelta(seconds=time.monotonic() - started)
        )
        return self._task.cadence

    async def _sleep(self, pause: dt.timedelta) -> None:
        """Wait for ``pause`` or until the stop signal is set."""
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(
                self._stop_event.wait(), timeout=pause.total_seconds()
            )

    async def run(self) -> None:
        """Run cycles strictly one after another until stopped."""
        try:
            while not self._stop_event.is_set():
                pause = await self.run_cycle()
                if self._stop_event.is_set():
                    break
                await self._sleep(pause)
        finally:
            self._events.log_job_stopped(self.name)


class JobGroup:
    """Supervise one :class:`JobRunner` per task."""

    def __init__(
        self,
        *,
        max_backoff: dt.timedelta = _DEFAULT_MAX_BACKOFF,
        events: SyncEventLogger | None = None,
    ) -> None:
        """Configure the backoff ceiling shared by all runners."""
        self._max_backoff = max_backoff
        self._events = events or SyncEventLogger()
        self._runners: list[JobRunner] = []
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def runners(self) -> tuple[JobRunner, ...]:
        """Return the runners started by this group."""
        return tuple(self._runners)

    def start(self, tasks: cabc.Iterable[SyncTask]) -> None:
        """Launch one asyncio task per sync task, each with its own stop signal."""
        for task in tasks:
            runner = JobRunner(
                task,
                stop_event=asyncio.Event(),
                max_backoff=self._max_backoff,
                events=self._events,
            )
            self._runners.append(runner)
            self._tasks.append(
                asyncio.create_task(runner.run(), name=f"sync:{task.name}")
            )

    def stop(self) -> None:
        """Broadcast the stop signal to every runner."""
        for runner in self._runners:
            runner.stop()

    async def wait(self) -> None:
        """Block until every runner has exited."""
        if self._tasks:
            await asyncio.gather(*self._tasks)

    async def run(self, tasks: cabc.Iterable[SyncTask]) -> None:
        """Start ``tasks`` and wait for all of them to stop."""
        self.start(tasks)
        await self.wait()
