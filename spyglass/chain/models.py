"""Typed raw chain records produced by the fetcher.

Every binary field reported by the node (hashes, signatures, public keys,
signer addresses) is carried here as base58 text.
"""

from __future__ import annotations

import dataclasses


@dataclasses.dataclass(frozen=True, slots=True)
class RawAction:
    """One contract call bundled in a transaction."""

    contract: str
    action_name: str
    data: str


@dataclasses.dataclass(frozen=True, slots=True)
class RawSignature:
    """Signature material with base58-encoded signature and public key."""

    algorithm: int
    signature: str
    public_key: str


@dataclasses.dataclass(frozen=True, slots=True)
class RawReceiptEntry:
    """A single entry of a transaction receipt."""

    type: int
    content: str


@dataclasses.dataclass(frozen=True, slots=True)
class RawTxReceipt:
    """Execution receipt reported for a transaction."""

    gas_usage: int
    successful_action_count: int
    entries: tuple[RawReceiptEntry, ...]
    status_code: int
    status_message: str


@dataclasses.dataclass(frozen=True, slots=True)
class RawTransaction:
    """A transaction merged with its receipt."""

    block_number: int
    time: int
    hash: str
    expiration: int
    gas_price: int
    gas_limit: int
    actions: tuple[RawAction, ...]
    signer_addresses: tuple[str, ...]
    signatures: tuple[RawSignature, ...]
    publisher_signature: RawSignature
    receipt: RawTxReceipt


@dataclasses.dataclass(frozen=True, slots=True)
class RawBlock:
    """A block header together with the hashes of its transactions.

    ``time`` is the value reported by the node, before any unit correction.
    """

    height: int
    block_hash: str
    parent_hash: str
    witness: str
    time: int
    tx_hashes: tuple[str, ...] = ()
