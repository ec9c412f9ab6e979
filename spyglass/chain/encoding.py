"""Base58 text encoding for binary chain fields."""

from __future__ import annotations

import typing as typ

import base58


def to_base58(value: bytes) -> str:
    """Encode raw bytes as base58 text."""
    return base58.b58encode(value).decode("ascii")


def from_base58(text: str) -> bytes:
    """Decode base58 text back to raw bytes.

    Raises
    ------
    ValueError
        If ``text`` contains characters outside the base58 alphabet.

    """
    return base58.b58decode(text)


def to_base58_list(values: typ.Iterable[bytes]) -> tuple[str, ...]:
    """Encode each value, preserving order."""
    return tuple(to_base58(value) for value in values)
