"""Configuration for the sync jobs and their scheduler.

Usage
-----
Create a configuration with defaults:

>>> config = SyncConfig()
>>> config.block_batch_size
100

Or load from environment variables:

>>> import os
>>> os.environ["SPYGLASS_BLOCK_BATCH_SIZE"] = "25"
>>> SyncConfig.from_env().block_batch_size
25

"""

from __future__ import annotations

import dataclasses as dc
import datetime as dt
import os


def _seconds(value: int) -> dt.timedelta:
    return dt.timedelta(seconds=value)


@dc.dataclass(frozen=True, slots=True)
class SyncConfig:
    """Cadences, batch sizes and retry limits for the five sync jobs.

    Attributes
    ----------
    block_interval, retry_interval, tx_interval, gas_interval, account_interval
        Pause between successful cycles of each job.
    block_batch_size
        Maximum heights walked by one new-block cycle.
    tx_batch_size
        Maximum queued transaction hashes fetched per cycle.
    gas_batch_size
        Maximum blocks aggregated per gas cycle.
    account_batch_size
        Maximum flat transaction rows scanned per account cycle.
    retry_batch_size
        Maximum failed heights retried per cycle.
    start_height
        First height synced when no progress has been recorded yet.
    retry_max_attempts
        Failed attempts after which a height or hash is given up on.
    retry_base_delay, retry_max_delay
        Exponential backoff bounds for failed heights.
    job_max_backoff
        Upper bound of the pause after consecutive failed cycles.

    """

    block_interval: dt.timedelta = dc.field(default_factory=lambda: _seconds(3))
    retry_interval: dt.timedelta = dc.field(default_factory=lambda: _seconds(30))
    tx_interval: dt.timedelta = dc.field(default_factory=lambda: _seconds(3))
    gas_interval: dt.timedelta = dc.field(default_factory=lambda: _seconds(10))
    account_interval: dt.timedelta = dc.field(default_factory=lambda: _seconds(10))
    block_batch_size: int = 100
    tx_batch_size: int = 200
    gas_batch_size: int = 200
    account_batch_size: int = 500
    retry_batch_size: int = 20
    start_height: int = 0
    retry_max_attempts: int = 8
    retry_base_delay: dt.timedelta = dc.field(default_factory=lambda: _seconds(30))
    retry_max_delay: dt.timedelta = dc.field(default_factory=lambda: _seconds(3600))
    job_max_backoff: dt.timedelta = dc.field(default_factory=lambda: _seconds(300))

    @staticmethod
    def _parse_int(env_var: str, default: int, *, minimum: int) -> int:
        """Read an integer env var no smaller than ``minimum``."""
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return default
        try:
            value = int(raw)
        except ValueError as exc:
            msg = f"{env_var} must be an integer, got: {raw!r}"
            raise ValueError(msg) from exc
        if value < minimum:
            msg = f"{env_var} must be at least {minimum}, got: {value}"
            raise ValueError(msg)
        return value

    @classmethod
    def _parse_positive_int(cls, env_var: str, default: int) -> int:
        """Read a positive integer env var, falling back to a default."""
        return cls._parse_int(env_var, default, minimum=1)

    @classmethod
    def _parse_interval(cls, env_var: str, default: int) -> dt.timedelta:
        return _seconds(cls._parse_positive_int(env_var, default))

    @classmethod
    def from_env(cls) -> SyncConfig:
        """Create configuration from ``SPYGLASS_*`` environment variables.

        Intervals and delays are whole seconds. ``SPYGLASS_START_HEIGHT`` may
        be zero; every other value must be a positive integer.

        Raises
        ------
        ValueError
            If any variable is set to a non-integer or out-of-range value.

        """
        return cls(
            block_interval=cls._parse_interval("SPYGLASS_BLOCK_SYNC_INTERVAL_S", 3),
            retry_interval=cls._parse_interval("SPYGLASS_RETRY_SYNC_INTERVAL_S", 30),
            tx_interval=cls._parse_interval("SPYGLASS_TX_SYNC_INTERVAL_S", 3),
            gas_interval=cls._parse_interval("SPYGLASS_GAS_SYNC_INTERVAL_S", 10),
            account_interval=cls._parse_interval(
                "SPYGLASS_ACCOUNT_SYNC_INTERVAL_S", 10
            ),
            block_batch_size=cls._parse_positive_int("SPYGLASS_BLOCK_BATCH_SIZE", 100),
            tx_batch_size=cls._parse_positive_int("SPYGLASS_TX_BATCH_SIZE", 200),
            gas_batch_size=cls._parse_positive_int("SPYGLASS_GAS_BATCH_SIZE", 200),
            account_batch_size=cls._parse_positive_int(
                "SPYGLASS_ACCOUNT_BATCH_SIZE", 500
            ),
            retry_batch_size=cls._parse_positive_int("SPYGLASS_RETRY_BATCH_SIZE", 20),
            start_height=cls._parse_int("SPYGLASS_START_HEIGHT", 0, minimum=0),
            retry_max_attempts=cls._parse_positive_int(
                "SPYGLASS_RETRY_MAX_ATTEMPTS", 8
            ),
            retry_base_delay=cls._parse_interval("SPYGLASS_RETRY_BASE_DELAY_S", 30),
            retry_max_delay=cls._parse_interval("SPYGLASS_RETRY_MAX_DELAY_S", 3600),
            job_max_backoff=cls._parse_interval("SPYGLASS_JOB_MAX_BACKOFF_S", 300),
        )
