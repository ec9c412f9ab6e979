"""Behavioural coverage for the block sync pipeline."""

from __future__ import annotations

import asyncio
import datetime as dt
import re
import typing as typ

import pytest
from pytest_bdd import given, parsers, scenario, then, when

from spyglass.chain.fetcher import RawRecordFetcher
from spyglass.explorer import list_blocks
from spyglass.sync import (
    AccountSyncJob,
    BlockSyncJob,
    FailedBlockRetryJob,
    FailedBlockTracker,
    GasAggregationJob,
    RetryPolicy,
    TransactionSyncJob,
)
from spyglass.sync.jobs import BLOCK_CURSOR
from tests.helpers.chain_fakes import (
    FakeChainClient,
    make_block,
    make_transaction,
    wire_transfer,
)

if typ.TYPE_CHECKING:
    from spyglass.explorer import BlockSummary
    from spyglass.store import ExplorerStore

FEATURE = "../block_sync.feature"
START = dt.datetime(2024, 3, 1, 12, 0, tzinfo=dt.UTC)


class SyncContext(typ.TypedDict, total=False):
    """Shared mutable scenario state."""

    store: ExplorerStore
    client: FakeChainClient
    now: list[dt.datetime]
    block_job: BlockSyncJob
    tracker: FailedBlockTracker
    page: list[BlockSummary]


@scenario(
    FEATURE,
    "New blocks are synced up to the chain head and listed newest first",
)
def test_blocks_synced_and_listed() -> None:
    """Wrap the pytest-bdd scenario."""


@scenario(FEATURE, "A failing height is retried until it syncs")
def test_failed_height_is_retried() -> None:
    """Failed heights are recovered by the retry job."""


@scenario(FEATURE, "The chain head leaves no failure marker")
def test_chain_head_is_not_a_failure() -> None:
    """Reaching the head is not recorded as a failure."""


@pytest.fixture
def sync_context(feature_store: ExplorerStore) -> SyncContext:
    """Wire the block job and tracker to a fake node and a manual clock."""
    client = FakeChainClient()
    now = [START]
    tracker = FailedBlockTracker(
        feature_store,
        RetryPolicy(base_delay=dt.timedelta(minutes=1)),
        clock=lambda: now[0],
    )
    block_job = BlockSyncJob(
        feature_store, RawRecordFetcher(client), tracker, start_height=1
    )
    return {
        "store": feature_store,
        "client": client,
        "now": now,
        "tracker": tracker,
        "block_job": block_job,
    }


def _heights(text: str) -> list[int]:
    return [int(value) for value in re.findall(r"\d+", text)]


@given("a chain node with blocks 1 to 3 each holding one transfer")
def chain_with_blocks(sync_context: SyncContext) -> None:
    """Store three blocks whose single transaction moves funds."""
    client = sync_context["client"]
    for height in (1, 2, 3):
        label = f"tx-{height}"
        client.add_block(
            make_block(height, tx_labels=(label,), time=height * 3_000_000_000)
        )
        client.add_transaction(
            label,
            make_transaction(
                block_number=height,
                actions=(wire_transfer("alice", "bob", 1.5),),
            ),
        )


@given("the node cannot serve block 2")
def node_fails_block(sync_context: SyncContext) -> None:
    """Make height 2 fail with a transient error."""
    sync_context["client"].failing.add(2)


@when("the block sync job runs once")
def run_block_job(sync_context: SyncContext) -> None:
    """Run a single new-block cycle."""
    asyncio.run(sync_context["block_job"].run_once())


@when("every sync job runs once")
def run_every_job(sync_context: SyncContext) -> None:
    """Run each job once in pipeline order."""
    store = sync_context["store"]
    fetcher = RawRecordFetcher(sync_context["client"])

    async def _run() -> None:
        await sync_context["block_job"].run_once()
        await TransactionSyncJob(store, fetcher).run_once()
        await GasAggregationJob(store).run_once()
        await AccountSyncJob(store).run_once()

    asyncio.run(_run())


@when("the node recovers and the retry job runs after the backoff")
def recover_and_retry(sync_context: SyncContext) -> None:
    """Clear the fault, move the clock past the backoff and retry."""
    sync_context["client"].failing.clear()
    sync_context["now"][0] = START + dt.timedelta(hours=1)
    job = FailedBlockRetryJob(sync_context["block_job"], sync_context["tracker"])

    result = asyncio.run(job.run_once())

    assert result.recovered == 1


@then(parsers.parse("the block cursor is at height {height:d}"))
def assert_cursor(sync_context: SyncContext, height: int) -> None:
    """The cursor stores the last attempted height."""
    cursor = asyncio.run(sync_context["store"].get_cursor(BLOCK_CURSOR))
    assert cursor == height


@then(parsers.parse("height {height:d} is pending retry"))
def assert_pending(sync_context: SyncContext, height: int) -> None:
    """The failed height has a failure marker."""
    pending = asyncio.run(sync_context["tracker"].pending())
    assert pending == [height]


@then("no height is pending retry")
def assert_nothing_pending(sync_context: SyncContext) -> None:
    """No failure markers remain."""
    assert asyncio.run(sync_context["tracker"].pending()) == []


@then(
    parsers.parse("page {page:d} with page size {size:d} lists heights {heights}")
)
def assert_page(
    sync_context: SyncContext, page: int, size: int, heights: str
) -> None:
    """The listing returns the expected heights in order."""
    summaries = asyncio.run(
        list_blocks(sync_context["store"], page, size, now=START)
    )
    sync_context["page"] = summaries
    assert [summary.height for summary in summaries] == _heights(heights)


@then("each listed block shows one transaction and its gas statistics")
def assert_page_details(sync_context: SyncContext) -> None:
    """Listed blocks carry their hashes and materialised gas statistics."""
    for summary in sync_context["page"]:
        assert len(summary.tx_hashes) == 1
        assert summary.total_gas_limit == 1_000
        assert summary.avg_gas_price == 100.0


@then("the transfer sender and recipient are recorded as accounts")
def assert_accounts(sync_context: SyncContext) -> None:
    """Both sides of the transfer appear with their seen range."""
    accounts = asyncio.run(sync_context["store"].get_accounts(["alice", "bob"]))

    assert set(accounts) == {"alice", "bob"}
    assert accounts["alice"].first_seen_block == 1
    assert accounts["bob"].last_seen_block == 3
    assert accounts["bob"].action_count == 3
