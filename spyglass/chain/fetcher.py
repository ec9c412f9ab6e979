"""Raw record fetcher.

Wraps a :class:`~spyglass.chain.client.ChainRPCClient` and turns wire
responses into the immutable records in :mod:`spyglass.chain.models`. Binary
fields never leave this module as bytes: hashes, signatures, public keys and
signer addresses are re-encoded as base58 text.
"""

from __future__ import annotations

import typing as typ

from .encoding import to_base58, to_base58_list
from .models import (
    RawAction,
    RawBlock,
    RawReceiptEntry,
    RawSignature,
    RawTransaction,
    RawTxReceipt,
)

if typ.TYPE_CHECKING:
    from .client import ChainRPCClient
    from .wire import WireBlock, WireSignature, WireTransaction, WireTxReceipt


def convert_signature(signature: WireSignature) -> RawSignature:
    """Return a text-encoded copy of a wire signature."""
    return RawSignature(
        algorithm=signature.algorithm,
        signature=to_base58(signature.sig),
        public_key=to_base58(signature.pub_key),
    )


def convert_receipt(receipt: WireTxReceipt) -> RawTxReceipt:
    """Flatten the receipt envelope into a :class:`RawTxReceipt`."""
    raw = receipt.tx_receipt_raw
    return RawTxReceipt(
        gas_usage=raw.gas_usage,
        successful_action_count=raw.succ_action_num,
        entries=tuple(
            RawReceiptEntry(type=entry.type, content=entry.content)
            for entry in raw.receipts
        ),
        status_code=raw.status.code,
        status_message=raw.status.message,
    )


def convert_transaction(
    tx_hash: str, transaction: WireTransaction, receipt: WireTxReceipt
) -> RawTransaction:
    """Merge a wire transaction and its receipt.

    ``tx_hash`` is the identifier the caller asked for; it is kept verbatim
    as the record identity.
    """
    body = transaction.tx_raw
    return RawTransaction(
        block_number=transaction.block_number,
        time=body.time,
        hash=tx_hash,
        expiration=body.expiration,
        gas_price=body.gas_price,
        gas_limit=body.gas_limit,
        actions=tuple(
            RawAction(
                contract=action.contract,
                action_name=action.action_name,
                data=action.data,
            )
            for action in body.actions
        ),
        signer_addresses=to_base58_list(body.signers),
        signatures=tuple(convert_signature(sign) for sign in body.signs),
        publisher_signature=convert_signature(body.publisher),
        receipt=convert_receipt(receipt),
    )


def convert_block(block: WireBlock) -> RawBlock:
    """Return a text-encoded copy of a wire block."""
    return RawBlock(
        height=block.head.number,
        block_hash=to_base58(block.hash),
        parent_hash=to_base58(block.head.parent_hash),
        witness=block.head.witness,
        time=block.head.time,
        tx_hashes=to_base58_list(block.txhash),
    )


class RawRecordFetcher:
    """Fetch one raw block or one raw transaction from the chain node."""

    def __init__(self, client: ChainRPCClient) -> None:
        """Bind the fetcher to an RPC client."""
        self._client = client

    async def fetch_transaction(self, tx_hash: str) -> RawTransaction:
        """Fetch a transaction and its receipt.

        Raises
        ------
        RecordNotFoundError
            If either the transaction or its receipt is unknown to the node.
        TransientRPCError
            If either call fails at the transport level.

        """
        transaction = await self._client.get_transaction_by_hash(tx_hash)
        receipt = await self._client.get_receipt_by_hash(tx_hash)
        return convert_transaction(tx_hash, transaction, receipt)

    async def fetch_block(self, height: int) -> RawBlock:
        """Fetch the block at ``height``."""
        block = await self._client.get_block_by_height(height)
        return convert_block(block)
