from __future__ import annotations

"""
escrowbook.signing
==================

Release authorization: canonical digest construction and secp256k1 signer
recovery.

Digest layout
-------------
    message = address20(buyer) || uint256_be(secret)
    message = address20(domain) || address20(buyer) || uint256_be(secret)   # bound
    digest  = keccak256(message)

The digest is then wrapped in the personal-signature envelope used by wallet
tooling (`personal_sign` / `eth_sign`):

    envelope = keccak256(b"\\x19Ethereum Signed Message:\\n" + b"32" + digest)

and the seller's 65-byte `r || s || v` signature over the envelope is recovered
to an address. Domain binding (the custody system's own address) prevents a
signature issued for one deployment from being replayed against another.

Recovery never raises on malformed signatures: any decoding/range failure
returns the zero address, which can never equal a recorded seller.
"""

import logging
from typing import Final, Optional, Union

from Crypto.Hash import keccak as _keccak
from eth_keys import keys
from eth_utils import ValidationError

from .address import ZERO_ADDRESS, AddressLike, to_bytes20
from .registry import check_secret

log = logging.getLogger(__name__)

BytesLike = Union[bytes, bytearray, memoryview]

PERSONAL_PREFIX: Final[bytes] = b"\x19Ethereum Signed Message:\n"
SIGNATURE_LEN: Final[int] = 65


def as_bytes(value: Union[BytesLike, str]) -> bytes:
    """Bytes as-is; hex strings (with or without 0x) decoded; bad hex or any other type -> b""."""
    if isinstance(value, str):
        s = value[2:] if value[:2] in ("0x", "0X") else value
        try:
            return bytes.fromhex(s)
        except ValueError:
            return b""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    return b""


def keccak256(data: BytesLike) -> bytes:
    h = _keccak.new(digest_bits=256)
    h.update(bytes(data))
    return h.digest()


def pack_release(buyer: AddressLike, secret: int, *, domain: Optional[AddressLike] = None) -> bytes:
    """Tightly packed (domain?, buyer, secret) as signed by the seller."""
    check_secret(secret)
    prefix = to_bytes20(domain) if domain is not None else b""
    return prefix + to_bytes20(buyer) + int(secret).to_bytes(32, "big")


def message_digest(buyer: AddressLike, secret: int, *, domain: Optional[AddressLike] = None) -> bytes:
    return keccak256(pack_release(buyer, secret, domain=domain))


def envelope_digest(digest: BytesLike) -> bytes:
    msg = bytes(digest)
    return keccak256(PERSONAL_PREFIX + str(len(msg)).encode("ascii") + msg)


def release_digest(buyer: AddressLike, secret: int, *, domain: Optional[AddressLike] = None) -> bytes:
    """The 32-byte hash a release signature must recover against."""
    return envelope_digest(message_digest(buyer, secret, domain=domain))


def _split(signature: BytesLike):
    sig = bytes(signature)
    if len(sig) != SIGNATURE_LEN:
        return None
    r = int.from_bytes(sig[0:32], "big")
    s = int.from_bytes(sig[32:64], "big")
    v = sig[64]
    if v >= 27:
        v -= 27
    if v not in (0, 1):
        return None
    return v, r, s


def recover(digest: Union[BytesLike, str], signature: Union[BytesLike, str]) -> str:
    """Recover the checksummed signer address; zero address on any failure."""
    try:
        vrs = _split(as_bytes(signature))
        if vrs is None:
            return ZERO_ADDRESS
        msg_hash = as_bytes(digest)
        if len(msg_hash) != 32:
            return ZERO_ADDRESS
        sig = keys.Signature(vrs=vrs)
        pub = sig.recover_public_key_from_msg_hash(msg_hash)
    except Exception as e:  # out-of-range r/s or an unrecoverable point
        log.debug("signature recovery failed: %s", e)
        return ZERO_ADDRESS
    return pub.to_checksum_address()


# Standalone form exposed for off-system verification.
recover2 = recover


def sign_digest(private_key: Union[bytes, str], digest: BytesLike) -> bytes:
    """
    Sign a raw 32-byte hash; returns r || s || v with v in {27, 28}.

    A malformed key (bad hex, wrong length, out of curve range) raises ValueError.
    """
    if isinstance(private_key, str):
        private_key = bytes.fromhex(private_key[2:] if private_key.startswith("0x") else private_key)
    try:
        pk = keys.PrivateKey(private_key)
    except ValidationError as e:
        raise ValueError(f"invalid private key: {e}") from e
    sig = pk.sign_msg_hash(bytes(digest))
    raw = sig.to_bytes()
    return raw[:64] + bytes([raw[64] + 27])


def sign_release(
    private_key: Union[bytes, str],
    buyer: AddressLike,
    secret: int,
    *,
    domain: Optional[AddressLike] = None,
) -> bytes:
    """Seller-side: produce the signature that authorizes release to `buyer`."""
    return sign_digest(private_key, release_digest(buyer, secret, domain=domain))


class SignatureAuthorizer:
    """Binds the digest construction to one deployment's domain setting."""

    def __init__(self, *, domain: Optional[AddressLike] = None) -> None:
        self.domain = domain

    def digest(self, buyer: AddressLike, secret: int) -> bytes:
        return release_digest(buyer, secret, domain=self.domain)

    def signer_of(self, buyer: AddressLike, secret: int, signature: BytesLike) -> str:
        return recover(self.digest(buyer, secret), signature)


__all__ = [
    "PERSONAL_PREFIX",
    "SIGNATURE_LEN",
    "as_bytes",
    "keccak256",
    "pack_release",
    "message_digest",
    "envelope_digest",
    "release_digest",
    "recover",
    "recover2",
    "sign_digest",
    "sign_release",
    "SignatureAuthorizer",
]
