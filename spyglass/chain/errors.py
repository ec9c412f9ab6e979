"""Chain RPC errors."""

from __future__ import annotations


class ChainRPCError(RuntimeError):
    """Raised when the chain node rejects or fails an RPC call."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        """Initialise with a message and optional HTTP status code."""
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(cls, method: str, status_code: int) -> ChainRPCError:
        """Return an error for non-2xx responses that are not retryable."""
        return cls(
            f"chain RPC {method} returned HTTP {status_code}",
            status_code=status_code,
        )


class RecordNotFoundError(ChainRPCError):
    """Raised when a block height or transaction hash does not exist upstream."""

    @classmethod
    def block(cls, height: int) -> RecordNotFoundError:
        """Return an error for a missing block height."""
        return cls(f"block {height} not found", status_code=404)

    @classmethod
    def transaction(cls, tx_hash: str) -> RecordNotFoundError:
        """Return an error for a missing transaction."""
        return cls(f"transaction {tx_hash} not found", status_code=404)

    @classmethod
    def receipt(cls, tx_hash: str) -> RecordNotFoundError:
        """Return an error for a missing transaction receipt."""
        return cls(f"receipt for transaction {tx_hash} not found", status_code=404)


class TransientRPCError(ChainRPCError):
    """Raised for timeouts, transport failures and 5xx responses."""

    @classmethod
    def unavailable(cls, method: str, status_code: int) -> TransientRPCError:
        """Return an error for a server-side failure."""
        return cls(
            f"chain RPC {method} unavailable (HTTP {status_code})",
            status_code=status_code,
        )

    @classmethod
    def transport(cls, method: str, exc: Exception) -> TransientRPCError:
        """Return an error wrapping a transport-level exception."""
        return cls(f"chain RPC {method} transport failure: {exc}")


class ChainResponseShapeError(RuntimeError):
    """Raised when an RPC response does not match the expected shape."""

    @classmethod
    def invalid(cls, method: str, detail: str) -> ChainResponseShapeError:
        """Return an error describing the decoding failure."""
        return cls(f"chain RPC {method} returned an unexpected payload: {detail}")


class ChainConfigError(RuntimeError):
    """Raised when chain RPC configuration is invalid."""

    @classmethod
    def missing_url(cls) -> ChainConfigError:
        """Return an error when no RPC endpoint is configured."""
        return cls("SPYGLASS_RPC_URL is required for the chain RPC client")

    @classmethod
    def invalid_timeout(cls, raw: str) -> ChainConfigError:
        """Return an error for a non-positive or non-numeric timeout."""
        return cls(f"SPYGLASS_RPC_TIMEOUT_S must be a positive number, got: {raw!r}")
