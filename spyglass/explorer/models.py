"""Display-ready records produced by the explorer transforms."""

from __future__ import annotations

import dataclasses

from spyglass.chain.models import RawAction, RawSignature  # noqa: TC001


@dataclasses.dataclass(frozen=True, slots=True)
class FlatTransactionRecord:
    """One action of a transaction, denormalised with its transaction fields.

    ``sender``, ``recipient`` and ``amount`` are populated only for
    ``Transfer`` actions whose payload decoded cleanly; otherwise they stay
    ``""``, ``""`` and ``0.0``.
    """

    block_number: int
    time: int
    hash: str
    expiration: int
    gas_price: int
    gas_limit: int
    action: RawAction
    action_index: int
    action_name: str
    signer_addresses: tuple[str, ...]
    signatures: tuple[RawSignature, ...]
    publisher_account_id: str
    sender: str = ""
    recipient: str = ""
    amount: float = 0.0


@dataclasses.dataclass(frozen=True, slots=True)
class GasStats:
    """Block-level gas aggregates."""

    total_gas_limit: int = 0
    avg_gas_price: float = 0.0


@dataclasses.dataclass(frozen=True, slots=True)
class BlockSummary:
    """A persisted block enriched for display."""

    height: int
    parent_hash: str
    block_hash: str
    witness: str
    age: str
    utc_time_text: str
    timestamp: int
    tx_hashes: tuple[str, ...] = ()
    total_gas_limit: int = 0
    avg_gas_price: float = 0.0
