"""Unit tests for gas aggregation."""

from __future__ import annotations

from spyglass.explorer import GasStats, compute_gas_stats


def test_empty_block_aggregates_to_zero() -> None:
    """A block without transactions has zero gas statistics."""
    assert compute_gas_stats([]) == GasStats(total_gas_limit=0, avg_gas_price=0.0)


def test_sum_of_limits_and_mean_of_prices() -> None:
    """Gas limits are summed and prices averaged."""
    stats = compute_gas_stats([(1_000, 100), (3_000, 300), (2_000, 200)])

    assert stats.total_gas_limit == 6_000
    assert stats.avg_gas_price == 200.0
