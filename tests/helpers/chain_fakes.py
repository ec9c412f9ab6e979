"""Fake chain node and wire builders shared by unit and feature tests."""

from __future__ import annotations

import dataclasses
import json

import base58

from spyglass.accounts import derive_account_id
from spyglass.chain.errors import RecordNotFoundError, TransientRPCError
from spyglass.chain.models import (
    RawAction,
    RawSignature,
    RawTransaction,
    RawTxReceipt,
)
from spyglass.chain.wire import (
    WireAction,
    WireBlock,
    WireBlockHead,
    WireSignature,
    WireTransaction,
    WireTxRaw,
    WireTxReceipt,
    WireTxReceiptRaw,
)

PUBLISHER_KEY = bytes(range(1, 33))
PUBLISHER_ACCOUNT = derive_account_id(PUBLISHER_KEY)


def tx_hash_bytes(label: str) -> bytes:
    """Return deterministic hash bytes for a readable label."""
    return label.encode().ljust(32, b"\0")


def tx_hash_text(label: str) -> str:
    """Return the base58 text a block lists for ``label``."""
    return base58.b58encode(tx_hash_bytes(label)).decode("ascii")


def transfer_data(sender: str, recipient: str, amount: float) -> str:
    """Return ``Transfer`` action data as the node encodes it."""
    return json.dumps([sender, recipient, amount])


def make_block(
    height: int, *, tx_labels: tuple[str, ...] = (), time: int = 0
) -> WireBlock:
    """Build a wire block listing transactions by label."""
    return WireBlock(
        head=WireBlockHead(
            number=height,
            parent_hash=f"parent-{height}".encode(),
            witness="producer",
            time=time,
        ),
        hash=f"block-{height}".encode(),
        txhash=[tx_hash_bytes(label) for label in tx_labels],
    )


def make_transaction(
    *,
    block_number: int,
    actions: tuple[WireAction, ...] = (),
    gas_price: int = 100,
    gas_limit: int = 1_000,
    publisher_key: bytes = PUBLISHER_KEY,
) -> WireTransaction:
    """Build a wire transaction with the given actions."""
    return WireTransaction(
        tx_raw=WireTxRaw(
            time=1_700_000_000,
            expiration=1_700_000_090,
            gas_price=gas_price,
            gas_limit=gas_limit,
            actions=list(actions),
            signers=[b"signer-1"],
            signs=[WireSignature(algorithm=2, sig=b"sig", pub_key=b"key")],
            publisher=WireSignature(
                algorithm=2, sig=b"pub-sig", pub_key=publisher_key
            ),
        ),
        block_number=block_number,
    )


def wire_transfer(sender: str, recipient: str, amount: float) -> WireAction:
    """Build a ``token.iost`` transfer action as the node returns it."""
    return WireAction(
        contract="token.iost",
        action_name="Transfer",
        data=transfer_data(sender, recipient, amount),
    )


def make_receipt(gas_usage: int = 300) -> WireTxReceipt:
    """Build a successful wire receipt."""
    return WireTxReceipt(
        tx_receipt_raw=WireTxReceiptRaw(gas_usage=gas_usage, succ_action_num=1)
    )


@dataclasses.dataclass
class FakeChainClient:
    """In-memory :class:`~spyglass.chain.client.ChainRPCClient`.

    Heights or hashes listed in ``failing`` raise
    :class:`~spyglass.chain.errors.TransientRPCError`; anything not stored
    raises :class:`~spyglass.chain.errors.RecordNotFoundError`.
    """

    blocks: dict[int, WireBlock] = dataclasses.field(default_factory=dict)
    transactions: dict[str, WireTransaction] = dataclasses.field(
        default_factory=dict
    )
    receipts: dict[str, WireTxReceipt] = dataclasses.field(default_factory=dict)
    failing: set[int | str] = dataclasses.field(default_factory=set)
    calls: list[tuple[str, int | str]] = dataclasses.field(default_factory=list)
    closed: bool = False

    def add_block(self, block: WireBlock) -> None:
        """Store a block under its head number."""
        self.blocks[block.head.number] = block

    def add_transaction(
        self,
        label: str,
        transaction: WireTransaction,
        receipt: WireTxReceipt | None = None,
    ) -> str:
        """Store a transaction and receipt; return the listed hash text."""
        key = tx_hash_text(label)
        self.transactions[key] = transaction
        self.receipts[key] = receipt or make_receipt()
        return key

    async def get_block_by_height(self, height: int) -> WireBlock:
        """Return a stored block or raise."""
        self.calls.append(("block", height))
        if height in self.failing:
            raise TransientRPCError.unavailable("getBlockByNum", 503)
        try:
            return self.blocks[height]
        except KeyError:
            raise RecordNotFoundError.block(height) from None

    async def get_transaction_by_hash(self, tx_hash: str) -> WireTransaction:
        """Return a stored transaction or raise."""
        self.calls.append(("tx", tx_hash))
        if tx_hash in self.failing:
            raise TransientRPCError.unavailable("getTxByHash", 503)
        try:
            return self.transactions[tx_hash]
        except KeyError:
            raise RecordNotFoundError.transaction(tx_hash) from None

    async def get_receipt_by_hash(self, tx_hash: str) -> WireTxReceipt:
        """Return a stored receipt or raise."""
        self.calls.append(("receipt", tx_hash))
        try:
            return self.receipts[tx_hash]
        except KeyError:
            raise RecordNotFoundError.receipt(tx_hash) from None

    async def aclose(self) -> None:
        """Record that the client was closed."""
        self.closed = True


def raw_transaction(
    tx_hash: str,
    *,
    block_number: int = 100,
    actions: tuple[RawAction, ...] = (),
    gas_price: int = 100,
    gas_limit: int = 1_000,
    publisher_key: bytes = PUBLISHER_KEY,
) -> RawTransaction:
    """Build an already-fetched transaction record."""
    return RawTransaction(
        block_number=block_number,
        time=1_700_000_000,
        hash=tx_hash,
        expiration=1_700_000_090,
        gas_price=gas_price,
        gas_limit=gas_limit,
        actions=actions,
        signer_addresses=("signer-1",),
        signatures=(RawSignature(algorithm=2, signature="sig", public_key="key"),),
        publisher_signature=RawSignature(
            algorithm=2,
            signature="pub-sig",
            public_key=base58.b58encode(publisher_key).decode("ascii"),
        ),
        receipt=RawTxReceipt(
            gas_usage=300,
            successful_action_count=len(actions),
            entries=(),
            status_code=0,
            status_message="",
        ),
    )


def transfer_action(sender: str, recipient: str, amount: float) -> RawAction:
    """Build a ``Transfer`` action record."""
    return RawAction(
        contract="token.iost",
        action_name="Transfer",
        data=transfer_data(sender, recipient, amount),
    )


def contract_action(name: str = "SetCode", data: str = '["code"]') -> RawAction:
    """Build a non-transfer action record."""
    return RawAction(contract="system.iost", action_name=name, data=data)
