"""Unit tests for account id derivation."""

from __future__ import annotations

import base58

from spyglass.accounts import (
    ACCOUNT_ID_PREFIX,
    derive_account_id,
    koopman_crc32,
    parity,
)


def test_koopman_crc32_check_value() -> None:
    """The CRC matches the published CRC-32/Koopman check value."""
    assert koopman_crc32(b"123456789") == 0x2D3DD0AE


def test_koopman_crc32_of_empty_input_is_zero() -> None:
    """An empty input checksums to zero."""
    assert koopman_crc32(b"") == 0


def test_parity_is_little_endian_crc() -> None:
    """The parity suffix is the CRC written little-endian."""
    assert parity(b"123456789") == bytes.fromhex("aed03d2d")


def test_derive_account_id_layout() -> None:
    """Account ids are the prefix plus base58 of key and parity."""
    key = bytes(range(32))

    account_id = derive_account_id(key)

    assert account_id.startswith(ACCOUNT_ID_PREFIX)
    decoded = base58.b58decode(account_id.removeprefix(ACCOUNT_ID_PREFIX))
    assert decoded == key + parity(key)


def test_derive_account_id_is_deterministic() -> None:
    """The same key always yields the same id; different keys differ."""
    key = b"\x01" * 32

    assert derive_account_id(key) == derive_account_id(bytes(key))
    assert derive_account_id(key) != derive_account_id(b"\x02" * 32)
