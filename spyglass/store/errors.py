"""Persistence-layer error types."""

from __future__ import annotations


class TimezoneAwareRequiredError(ValueError):
    """Raised when datetime inputs lack timezone information."""

    def __init__(self, context: str) -> None:
        """Attach a consistent message for the failing context."""
        super().__init__(f"{context} must be timezone aware")


class PersistenceError(RuntimeError):
    """Raised when the explorer store cannot complete a write."""

    @classmethod
    def write_failed(cls, operation: str, exc: Exception) -> PersistenceError:
        """Wrap a database error raised while running ``operation``."""
        return cls(f"{operation} failed: {exc}")

    @classmethod
    def conflict(cls, operation: str) -> PersistenceError:
        """Signal repeated unique-constraint conflicts for ``operation``."""
        return cls(f"{operation} kept conflicting with concurrent writers")
