"""Chain node RPC client used by the raw record fetcher."""

from __future__ import annotations

import dataclasses
import os
import typing as typ

import httpx
import msgspec

from .errors import (
    ChainConfigError,
    ChainResponseShapeError,
    ChainRPCError,
    RecordNotFoundError,
    TransientRPCError,
)
from .wire import WireBlock, WireTransaction, WireTxReceipt

_HTTP_NOT_FOUND = 404
_HTTP_CLIENT_ERROR_THRESHOLD = 400
_HTTP_SERVER_ERROR_THRESHOLD = 500
_DEFAULT_TIMEOUT_S = 10.0


class ChainRPCClient(typ.Protocol):
    """Interface for the three node calls the pipeline depends on."""

    async def get_block_by_height(self, height: int) -> WireBlock:
        """Return the block at ``height`` with its transaction hashes."""
        ...

    async def get_transaction_by_hash(self, tx_hash: str) -> WireTransaction:
        """Return the transaction identified by ``tx_hash``."""
        ...

    async def get_receipt_by_hash(self, tx_hash: str) -> WireTxReceipt:
        """Return the receipt of the transaction identified by ``tx_hash``."""
        ...


@dataclasses.dataclass(frozen=True, slots=True)
class ChainRPCConfig:
    """Connection settings for the node's HTTP gateway."""

    url: str
    timeout_s: float = _DEFAULT_TIMEOUT_S
    user_agent: str = "spyglass/0.1"

    @classmethod
    def from_env(cls) -> ChainRPCConfig:
        """Build configuration from ``SPYGLASS_RPC_URL``/``SPYGLASS_RPC_TIMEOUT_S``."""
        url = os.environ.get("SPYGLASS_RPC_URL", "").strip()
        if not url:
            raise ChainConfigError.missing_url()

        raw_timeout = os.environ.get("SPYGLASS_RPC_TIMEOUT_S", "").strip()
        if not raw_timeout:
            return cls(url=url)
        try:
            timeout_s = float(raw_timeout)
        except ValueError as exc:
            raise ChainConfigError.invalid_timeout(raw_timeout) from exc
        if timeout_s <= 0:
            raise ChainConfigError.invalid_timeout(raw_timeout)
        return cls(url=url, timeout_s=timeout_s)


class HTTPChainRPCClient:
    """HTTP gateway implementation of :class:`ChainRPCClient`."""

    def __init__(
        self,
        config: ChainRPCConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the client, creating an ``httpx.AsyncClient`` if none is given."""
        if not config.url.strip():
            raise ChainConfigError.missing_url()

        self._config = config
        self._base_url = config.url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=config.timeout_s,
            headers={
                "User-Agent": config.user_agent,
                "Accept": "application/json",
            },
        )

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def get_block_by_height(self, height: int) -> WireBlock:
        """Fetch a block, including its transaction hash list."""
        return await self._get(
            "getBlockByNum",
            f"/getBlockByNum/{height}/true",
            WireBlock,
            not_found=lambda: RecordNotFoundError.block(height),
        )

    async def get_transaction_by_hash(self, tx_hash: str) -> WireTransaction:
        """Fetch a transaction body."""
        return await self._get(
            "getTxByHash",
            f"/getTxByHash/{tx_hash}",
            WireTransaction,
            not_found=lambda: RecordNotFoundError.transaction(tx_hash),
        )

    async def get_receipt_by_hash(self, tx_hash: str) -> WireTxReceipt:
        """Fetch a transaction receipt."""
        return await self._get(
            "getTxReceiptByTxHash",
            f"/getTxReceiptByTxHash/{tx_hash}",
            WireTxReceipt,
            not_found=lambda: RecordNotFoundError.receipt(tx_hash),
        )

    async def _get[ResponseT](
        self,
        method: str,
        path: str,
        model: type[ResponseT],
        *,
        not_found: typ.Callable[[], RecordNotFoundError],
    ) -> ResponseT:
        """Issue a GET request and decode the body into ``model``."""
        try:
            response = await self._client.get(f"{self._base_url}{path}")
        except httpx.TransportError as exc:
            raise TransientRPCError.transport(method, exc) from exc

        status = response.status_code
        if status == _HTTP_NOT_FOUND:
            raise not_found()
        if status >= _HTTP_SERVER_ERROR_THRESHOLD:
            raise TransientRPCError.unavailable(method, status)
        if status >= _HTTP_CLIENT_ERROR_THRESHOLD:
            raise ChainRPCError.http_error(method, status)

        try:
            return msgspec.json.decode(response.content, type=model, strict=False)
        except msgspec.DecodeError as exc:
            raise ChainResponseShapeError.invalid(method, str(exc)) from exc
