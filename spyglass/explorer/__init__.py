"""Transforms that turn raw chain records into display-ready records."""

from __future__ import annotations

from .blocks import BLOCK_TIME_SCALE, block_timestamp, summarize_block
from .errors import ActionPayloadError, ActionPayloadReason, InvalidPageError
from .flatten import flatten_transaction, resolve_publisher
from .gas import compute_gas_stats
from .listing import list_blocks
from .models import BlockSummary, FlatTransactionRecord, GasStats
from .payloads import (
    TRANSFER_ACTION,
    ActionPayload,
    OpaquePayload,
    TransferPayload,
    decode_action_payload,
    register_payload,
)

__all__ = [
    "BLOCK_TIME_SCALE",
    "TRANSFER_ACTION",
    "ActionPayload",
    "ActionPayloadError",
    "ActionPayloadReason",
    "BlockSummary",
    "FlatTransactionRecord",
    "GasStats",
    "InvalidPageError",
    "OpaquePayload",
    "TransferPayload",
    "block_timestamp",
    "compute_gas_stats",
    "decode_action_payload",
    "flatten_transaction",
    "list_blocks",
    "register_payload",
    "resolve_publisher",
    "summarize_block",
]
