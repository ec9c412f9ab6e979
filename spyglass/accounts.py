"""Account identifiers derived from publisher public keys.

An account id is ``"IOST"`` followed by the base58 text of the public key
with a four byte parity suffix. The parity is a CRC-32 using the Koopman
polynomial, written little-endian.

Examples
--------
>>> derive_account_id(bytes(32)).startswith("IOST")
True

"""

from __future__ import annotations

import typing as typ

import crcmod

from spyglass.chain.encoding import to_base58

ACCOUNT_ID_PREFIX = "IOST"

AccountIdResolver = typ.Callable[[bytes], str]

# Koopman polynomial 0x741B8CD7, reflected, register preset to all ones.
_koopman = crcmod.mkCrcFun(0x1741B8CD7, initCrc=0, rev=True, xorOut=0xFFFFFFFF)


def koopman_crc32(data: bytes) -> int:
    """Return the CRC-32/Koopman checksum of ``data``."""
    return _koopman(data)


def parity(public_key: bytes) -> bytes:
    """Return the four byte little-endian parity suffix for ``public_key``."""
    return koopman_crc32(public_key).to_bytes(4, "little")


def derive_account_id(public_key: bytes) -> str:
    """Derive the account identifier for a raw public key.

    The derivation is pure: the same key always yields the same identifier.
    """
    return ACCOUNT_ID_PREFIX + to_base58(public_key + parity(public_key))
