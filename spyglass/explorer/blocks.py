"""Combine persisted blocks with their side data into display summaries."""

from __future__ import annotations

import typing as typ

from spyglass.common.time import format_age, format_utc_time
from spyglass.explorer.models import BlockSummary
from spyglass.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from spyglass.chain.models import RawBlock
    from spyglass.explorer.models import GasStats

logger = get_logger(__name__)

# The node reports block time in slots of three seconds rather than in
# seconds. Scale once, here, and nowhere upstream.
BLOCK_TIME_SCALE = 3


def block_timestamp(block: RawBlock) -> int:
    """Return the block time corrected to unix seconds."""
    return block.time * BLOCK_TIME_SCALE


def summarize_block(
    block: RawBlock,
    tx_hashes: cabc.Sequence[str],
    gas_stats: GasStats | None,
    *,
    now: dt.datetime | None = None,
) -> BlockSummary:
    """Build the display summary for one block.

    Parameters
    ----------
    block
        Block as persisted by the sync jobs.
    tx_hashes
        Hashes of the transactions contained in the block.
    gas_stats
        Aggregates for the block, or ``None`` when the gas job has not
        materialised them yet. Missing stats are reported as zero.
    now
        Reference time for the ``age`` text; defaults to the current time.

    Returns
    -------
    BlockSummary
        Summary carrying the corrected timestamp and its renderings.

    """
    timestamp = block_timestamp(block)
    if gas_stats is None:
        log_info(logger, "gas stats for block %d not computed yet", block.height)
        total_gas_limit, avg_gas_price = 0, 0.0
    else:
        total_gas_limit = gas_stats.total_gas_limit
        avg_gas_price = gas_stats.avg_gas_price

    return BlockSummary(
        height=block.height,
        parent_hash=block.parent_hash,
        block_hash=block.block_hash,
        witness=block.witness,
        age=format_age(timestamp, now=now),
        utc_time_text=format_utc_time(timestamp),
        timestamp=timestamp,
        tx_hashes=tuple(tx_hashes),
        total_gas_limit=total_gas_limit,
        avg_gas_price=avg_gas_price,
    )
