"""Block-level gas aggregation."""

from __future__ import annotations

import typing as typ

from spyglass.explorer.models import GasStats

if typ.TYPE_CHECKING:
    import collections.abc as cabc


def compute_gas_stats(inputs: cabc.Sequence[tuple[int, int]]) -> GasStats:
    """Aggregate ``(gas_limit, gas_price)`` pairs of one block's transactions.

    The total is the sum of gas limits and the average is the arithmetic mean
    of gas prices. A block without transactions aggregates to zeros.
    """
    if not inputs:
        return GasStats()
    total_gas_limit = sum(gas_limit for gas_limit, _ in inputs)
    avg_gas_price = sum(gas_price for _, gas_price in inputs) / len(inputs)
    return GasStats(total_gas_limit=total_gas_limit, avg_gas_price=avg_gas_price)
