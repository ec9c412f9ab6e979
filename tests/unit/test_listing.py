"""Unit tests for the paged block listing."""

from __future__ import annotations

import datetime as dt
import typing as typ

import pytest
from sqlalchemy.exc import OperationalError

from spyglass.chain.models import RawBlock
from spyglass.explorer import GasStats, InvalidPageError, list_blocks
from tests.helpers.femtologging_capture import capture_femto_logs

if typ.TYPE_CHECKING:
    from spyglass.store import ExplorerStore

_NOW = dt.datetime(2024, 1, 1, tzinfo=dt.UTC)


def _block(height: int, tx_hashes: tuple[str, ...] = ()) -> RawBlock:
    return RawBlock(
        height=height,
        block_hash=f"bh-{height}",
        parent_hash=f"ph-{height}",
        witness="producer",
        time=(int(_NOW.timestamp()) - 60) // 3,
        tx_hashes=tx_hashes,
    )


@pytest.mark.asyncio
async def test_block_100_with_two_transactions(store: ExplorerStore) -> None:
    """A persisted block lists its hashes, gas stats and scaled time."""
    await store.upsert_block(_block(100, ("t1", "t2")))
    await store.upsert_gas_stats(100, GasStats(3_000, 150.0), tx_count=2)

    (summary,) = await list_blocks(store, page=1, page_size=10, now=_NOW)

    assert summary.height == 100
    assert summary.tx_hashes == ("t1", "t2")
    assert summary.total_gas_limit == 3_000
    assert summary.avg_gas_price == 150.0
    assert summary.timestamp == _block(100).time * 3
    assert summary.age == "1 min ago"


@pytest.mark.asyncio
async def test_pages_are_newest_first(store: ExplorerStore) -> None:
    """Page numbers are 1-based over descending heights."""
    for height in range(1, 6):
        await store.upsert_block(_block(height))

    first = await list_blocks(store, 1, 2, now=_NOW)
    third = await list_blocks(store, 3, 2, now=_NOW)
    beyond = await list_blocks(store, 4, 2, now=_NOW)

    assert [summary.height for summary in first] == [5, 4]
    assert [summary.height for summary in third] == [1]
    assert beyond == []


@pytest.mark.asyncio
async def test_missing_gas_stats_are_zero(store: ExplorerStore) -> None:
    """Blocks the gas job has not reached list with zero gas."""
    await store.upsert_block(_block(7, ("t1",)))

    (summary,) = await list_blocks(store, 1, 10, now=_NOW)

    assert (summary.total_gas_limit, summary.avg_gas_price) == (0, 0.0)


@pytest.mark.asyncio
async def test_tx_hash_lookup_failure_is_tolerated(
    store: ExplorerStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A failed hash lookup lists the block with no hashes and logs it."""
    await store.upsert_block(_block(7, ("t1",)))

    async def broken(height: int) -> list[str]:
        raise OperationalError("select", {}, Exception("database locked"))

    monkeypatch.setattr(store, "get_tx_hashes_for_block", broken)

    with capture_femto_logs("spyglass.explorer.listing") as capture:
        (summary,) = await list_blocks(store, 1, 10, now=_NOW)
        capture.wait_for_count(1)

    assert summary.tx_hashes == ()
    assert "block 7" in capture.records[0].message


@pytest.mark.asyncio
async def test_gas_stats_failure_is_tolerated(
    store: ExplorerStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A failed gas lookup lists the page with zero gas and logs it."""
    await store.upsert_block(_block(7, ("t1",)))
    await store.upsert_block(_block(8))

    async def broken(heights: list[int]) -> dict[int, object]:
        raise OperationalError("select", {}, Exception("database locked"))

    monkeypatch.setattr(store, "get_gas_stats_by_heights", broken)

    with capture_femto_logs("spyglass.explorer.listing") as capture:
        summaries = await list_blocks(store, 1, 10, now=_NOW)
        message = capture.wait_for_message("gas statistics")

    assert [summary.height for summary in summaries] == [8, 7]
    assert {(s.total_gas_limit, s.avg_gas_price) for s in summaries} == {(0, 0.0)}
    assert summaries[1].tx_hashes != ()
    assert "blocks 7-8" in message


@pytest.mark.parametrize(("page", "page_size"), [(0, 10), (1, 0), (-1, -1)])
@pytest.mark.asyncio
async def test_invalid_page_arguments(
    store: ExplorerStore, page: int, page_size: int
) -> None:
    """Pages and page sizes below one are rejected."""
    with pytest.raises(InvalidPageError):
        await list_blocks(store, page, page_size)
