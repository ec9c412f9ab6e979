"""Unit tests for block summaries."""

from __future__ import annotations

import datetime as dt

from spyglass.chain.models import RawBlock
from spyglass.explorer import (
    BLOCK_TIME_SCALE,
    GasStats,
    block_timestamp,
    summarize_block,
)
from tests.helpers.femtologging_capture import capture_femto_logs

_NOW = dt.datetime(2024, 1, 1, tzinfo=dt.UTC)


def _block(height: int = 100, time: int = 0) -> RawBlock:
    return RawBlock(
        height=height,
        block_hash="bh",
        parent_hash="ph",
        witness="producer",
        time=time,
    )


def test_block_timestamp_scales_node_time() -> None:
    """Node time is scaled exactly once into unix seconds."""
    assert BLOCK_TIME_SCALE == 3
    assert block_timestamp(_block(time=10)) == 30


def test_summary_renders_scaled_timestamp() -> None:
    """Age and UTC text derive from the scaled timestamp."""
    node_time = (int(_NOW.timestamp()) - 12) // 3
    block = _block(time=node_time)

    summary = summarize_block(block, ["t1", "t2"], GasStats(500, 2.5), now=_NOW)

    assert summary.timestamp == node_time * 3
    assert summary.age == "12 secs ago"
    assert summary.utc_time_text == "2023-12-31 23:59:48"
    assert summary.tx_hashes == ("t1", "t2")
    assert (summary.total_gas_limit, summary.avg_gas_price) == (500, 2.5)
    assert (summary.height, summary.block_hash, summary.parent_hash) == (
        100,
        "bh",
        "ph",
    )
    assert summary.witness == "producer"


def test_missing_gas_stats_are_zero_and_logged() -> None:
    """Blocks without gas stats summarise with zeros and an INFO log."""
    with capture_femto_logs("spyglass.explorer.blocks") as capture:
        summary = summarize_block(_block(), [], None, now=_NOW)
        capture.wait_for_count(1)

    assert (summary.total_gas_limit, summary.avg_gas_price) == (0, 0.0)
    assert summary.tx_hashes == ()
    assert "not computed yet" in capture.records[0].message
