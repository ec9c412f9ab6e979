"""Paged listing of persisted blocks for presentation layers.

Example:
-------
Render the newest ten blocks::

    store = ExplorerStore(session_factory)
    summaries = await list_blocks(store, page=1, page_size=10)

"""

from __future__ import annotations

import typing as typ

from sqlalchemy.exc import SQLAlchemyError

from spyglass.explorer.blocks import summarize_block
from spyglass.explorer.errors import InvalidPageError
from spyglass.logging import get_logger, log_warning

if typ.TYPE_CHECKING:
    import datetime as dt

    from spyglass.explorer.models import BlockSummary, GasStats
    from spyglass.store import ExplorerStore

logger = get_logger(__name__)


async def _tx_hashes_or_empty(store: ExplorerStore, height: int) -> list[str]:
    try:
        return await store.get_tx_hashes_for_block(height)
    except SQLAlchemyError as exc:
        log_warning(
            logger,
            "could not load transaction hashes for block %d: %s",
            height,
            exc,
        )
        return []


async def _gas_stats_or_empty(
    store: ExplorerStore, heights: list[int]
) -> dict[int, GasStats]:
    try:
        return await store.get_gas_stats_by_heights(heights)
    except SQLAlchemyError as exc:
        log_warning(
            logger,
            "could not load gas statistics for blocks %d-%d: %s",
            min(heights),
            max(heights),
            exc,
        )
        return {}


async def list_blocks(
    store: ExplorerStore,
    page: int,
    page_size: int,
    *,
    now: dt.datetime | None = None,
) -> list[BlockSummary]:
    """Return one page of block summaries, newest block first.

    Parameters
    ----------
    store
        Persistence service holding synced blocks.
    page
        1-based page number.
    page_size
        Number of blocks per page.
    now
        Reference time for the ``age`` text.

    Returns
    -------
    list[BlockSummary]
        Summaries enriched with transaction hashes and gas statistics.
        Missing gas statistics are reported as zeros, as are statistics
        that could not be loaded.

    Raises
    ------
    InvalidPageError
        If ``page`` or ``page_size`` is below 1.

    """
    if page < 1:
        raise InvalidPageError("page", page)
    if page_size < 1:
        raise InvalidPageError("page_size", page_size)

    blocks = await store.get_block_page((page - 1) * page_size, page_size)
    if not blocks:
        return []
    gas_by_height = await _gas_stats_or_empty(
        store, [block.height for block in blocks]
    )
    summaries: list[BlockSummary] = []
    for block in blocks:
        tx_hashes = await _tx_hashes_or_empty(store, block.height)
        summaries.append(
            summarize_block(
                block, tx_hashes, gas_by_height.get(block.height), now=now
            )
        )
    return summaries
