from __future__ import annotations

"""
Address helpers. Identities throughout escrowbook are EIP-55 checksummed
20-byte hex strings; these helpers normalize user input into that form and
produce the packed 20-byte encoding used by the release digest.
"""

from typing import Final, Union

from eth_utils import is_address, to_canonical_address, to_checksum_address

from .errors import InvalidAddress

AddressLike = Union[str, bytes, bytearray]

ZERO_ADDRESS: Final[str] = "0x" + "00" * 20


def normalize(addr: AddressLike, *, field: str = "address") -> str:
    """Return the checksummed form of `addr` or raise InvalidAddress."""
    if isinstance(addr, (bytes, bytearray)):
        if len(addr) != 20:
            raise InvalidAddress(f"{field} must be 20 bytes", details={"len": len(addr)})
        return to_checksum_address(bytes(addr))
    if not isinstance(addr, str) or not is_address(addr):
        raise InvalidAddress(f"{field} is not a valid address", details={field: repr(addr)})
    return to_checksum_address(addr)


def to_bytes20(addr: AddressLike) -> bytes:
    return to_canonical_address(normalize(addr))


__all__ = ["AddressLike", "ZERO_ADDRESS", "normalize", "to_bytes20"]
