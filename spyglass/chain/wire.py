"""msgspec structs mirroring the node's JSON RPC responses.

The node serialises binary fields as base64 strings and 64-bit integers as
decimal strings. Responses are decoded with ``strict=False`` so both shapes
land in the typed fields below; ``bytes`` fields hold the decoded binary.
"""

from __future__ import annotations

import msgspec


class WireSignature(msgspec.Struct, frozen=True, rename="camel"):
    """Signature as sent by the node."""

    algorithm: int = 0
    sig: bytes = b""
    pub_key: bytes = b""


class WireAction(msgspec.Struct, frozen=True, rename="camel"):
    """Action as sent by the node."""

    contract: str = ""
    action_name: str = ""
    data: str = ""


class WireTxRaw(msgspec.Struct, frozen=True, rename="camel"):
    """Transaction body returned by ``getTxByHash``."""

    time: int = 0
    expiration: int = 0
    gas_price: int = 0
    gas_limit: int = 0
    actions: list[WireAction] = []
    signers: list[bytes] = []
    signs: list[WireSignature] = []
    publisher: WireSignature = msgspec.field(default_factory=WireSignature)


class WireTransaction(msgspec.Struct, frozen=True, rename="camel"):
    """Envelope returned by ``getTxByHash``."""

    tx_raw: WireTxRaw
    hash: bytes = b""
    block_number: int = 0


class WireReceiptStatus(msgspec.Struct, frozen=True):
    """Execution status attached to a receipt."""

    code: int = 0
    message: str = ""


class WireReceiptEntry(msgspec.Struct, frozen=True):
    """One receipt entry."""

    type: int = 0
    content: str = ""


class WireTxReceiptRaw(msgspec.Struct, frozen=True, rename="camel"):
    """Receipt body returned by ``getTxReceiptByTxHash``."""

    tx_hash: bytes = b""
    gas_usage: int = 0
    succ_action_num: int = 0
    receipts: list[WireReceiptEntry] = []
    status: WireReceiptStatus = msgspec.field(default_factory=WireReceiptStatus)


class WireTxReceipt(msgspec.Struct, frozen=True, rename="camel"):
    """Envelope returned by ``getTxReceiptByTxHash``."""

    tx_receipt_raw: WireTxReceiptRaw


class WireBlockHead(msgspec.Struct, frozen=True, rename="camel"):
    """Block header fields consumed by the explorer."""

    number: int
    parent_hash: bytes = b""
    witness: str = ""
    time: int = 0
    version: int = 0


class WireBlock(msgspec.Struct, frozen=True):
    """Envelope returned by ``getBlockByNum``."""

    head: WireBlockHead
    hash: bytes = b""
    txhash: list[bytes] = []
