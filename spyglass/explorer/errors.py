"""Explorer transform and listing errors."""

from __future__ import annotations

import enum


class ActionPayloadReason(enum.StrEnum):
    """Machine-readable reasons for payload decode failures."""

    INVALID_JSON = "invalid_json"
    WRONG_SHAPE = "wrong_shape"


class ActionPayloadError(ValueError):
    """Raised when an action's data does not decode as its typed payload."""

    def __init__(
        self,
        message: str,
        *,
        action_name: str,
        reason: ActionPayloadReason,
    ) -> None:
        """Record the action name and failure reason for diagnostics."""
        super().__init__(message)
        self.action_name = action_name
        self.reason = reason

    @classmethod
    def invalid_json(cls, action_name: str, detail: str) -> ActionPayloadError:
        """Create an error for data that is not valid JSON."""
        return cls(
            f"{action_name} payload is not valid JSON: {detail}",
            action_name=action_name,
            reason=ActionPayloadReason.INVALID_JSON,
        )

    @classmethod
    def wrong_shape(cls, action_name: str, detail: str) -> ActionPayloadError:
        """Create an error for JSON that does not match the payload layout."""
        return cls(
            f"{action_name} payload has an unexpected shape: {detail}",
            action_name=action_name,
            reason=ActionPayloadReason.WRONG_SHAPE,
        )


class InvalidPageError(ValueError):
    """Raised when listing arguments are out of range."""

    def __init__(self, name: str, value: int) -> None:
        """Build a consistent error message for the invalid parameter."""
        super().__init__(f"{name} must be at least 1, got {value}")
