"""Explode transactions into one display record per action."""

from __future__ import annotations

import typing as typ

from spyglass.accounts import derive_account_id
from spyglass.chain.encoding import from_base58
from spyglass.explorer.errors import ActionPayloadError
from spyglass.explorer.models import FlatTransactionRecord
from spyglass.explorer.payloads import TransferPayload, decode_action_payload
from spyglass.logging import get_logger, log_warning

if typ.TYPE_CHECKING:
    from spyglass.accounts import AccountIdResolver
    from spyglass.chain.models import RawAction, RawTransaction

logger = get_logger(__name__)


def resolve_publisher(
    tx: RawTransaction, resolver: AccountIdResolver = derive_account_id
) -> str:
    """Return the account id of the transaction publisher."""
    return resolver(from_base58(tx.publisher_signature.public_key))


def _transfer_fields(tx_hash: str, action: RawAction) -> tuple[str, str, float]:
    """Return ``(sender, recipient, amount)`` for a transfer, or empty values."""
    try:
        payload = decode_action_payload(action)
    except ActionPayloadError as exc:
        log_warning(
            logger,
            "tx %s action %s has malformed payload (%s): %s",
            tx_hash,
            action.action_name,
            exc.reason,
            exc,
        )
        return ("", "", 0.0)

    match payload:
        case TransferPayload(sender=sender, recipient=recipient, amount=amount):
            return (sender, recipient, amount)
        case _:
            return ("", "", 0.0)


def flatten_transaction(
    tx: RawTransaction, resolver: AccountIdResolver = derive_account_id
) -> list[FlatTransactionRecord]:
    """Project ``tx`` into one :class:`FlatTransactionRecord` per action.

    Records keep the on-chain action order and share the transaction hash. A
    transaction without actions yields an empty list. A malformed transfer
    payload leaves that record's transfer fields empty and is logged; it never
    aborts the remaining actions.

    Parameters
    ----------
    tx
        Transaction merged with its receipt.
    resolver
        Maps raw publisher public key bytes to an account id.

    Returns
    -------
    list[FlatTransactionRecord]
        ``len(tx.actions)`` records with ``action_index`` ``0..n-1``.

    """
    if not tx.actions:
        return []

    publisher = resolve_publisher(tx, resolver)
    records: list[FlatTransactionRecord] = []
    for index, action in enumerate(tx.actions):
        sender, recipient, amount = _transfer_fields(tx.hash, action)
        records.append(
            FlatTransactionRecord(
                block_number=tx.block_number,
                time=tx.time,
                hash=tx.hash,
                expiration=tx.expiration,
                gas_price=tx.gas_price,
                gas_limit=tx.gas_limit,
                action=action,
                action_index=index,
                action_name=action.action_name,
                signer_addresses=tx.signer_addresses,
                signatures=tx.signatures,
                publisher_account_id=publisher,
                sender=sender,
                recipient=recipient,
                amount=amount,
            )
        )
    return records
