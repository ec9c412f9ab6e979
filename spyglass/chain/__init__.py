"""Chain RPC client and raw record fetcher."""

from __future__ import annotations

from .client import ChainRPCClient, ChainRPCConfig, HTTPChainRPCClient
from .errors import (
    ChainConfigError,
    ChainResponseShapeError,
    ChainRPCError,
    RecordNotFoundError,
    TransientRPCError,
)
from .fetcher import RawRecordFetcher
from .models import (
    RawAction,
    RawBlock,
    RawReceiptEntry,
    RawSignature,
    RawTransaction,
    RawTxReceipt,
)

__all__ = [
    "ChainConfigError",
    "ChainRPCClient",
    "ChainRPCConfig",
    "ChainRPCError",
    "ChainResponseShapeError",
    "HTTPChainRPCClient",
    "RawAction",
    "RawBlock",
    "RawReceiptEntry",
    "RawRecordFetcher",
    "RawSignature",
    "RawTransaction",
    "RawTxReceipt",
    "RecordNotFoundError",
    "TransientRPCError",
]
