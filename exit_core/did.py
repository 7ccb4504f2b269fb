"""
exit_core/did.py — did:key codec.

Format: did:key:z{base58btc(multicodec_prefix + raw_public_key)}

The multicodec prefix makes the identifier self-describing: the signing
algorithm is recoverable from the string alone, and verifiers MUST check
it against the algorithm implied by a proof's suite type.

    Ed25519  0xed01         -> bytes ed 01   (32-byte key)
    P-256    0x1200 varint  -> bytes 80 24   (33-byte compressed point)

Only did:key is decoded here. Other DID methods are accepted
syntactically (is_did) but never resolved.

Reference: https://w3c-ccg.github.io/did-method-key/
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .crypto import Algorithm, PublicKey, algorithm_of, public_key_from_raw, public_key_to_raw


DID_KEY_PREFIX = "did:key:z"

_MULTICODEC_PREFIXES = {
    Algorithm.ED25519: b"\xed\x01",
    Algorithm.P256: b"\x80\x24",
}

_KEY_LENGTHS = {
    Algorithm.ED25519: 32,
    Algorithm.P256: 33,
}

_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BASE58_INDEX = {c: i for i, c in enumerate(_BASE58_ALPHABET)}

# did:<method>:<method-specific-id> per W3C DID Core §3.1
_DID_PATTERN = re.compile(r"^did:[a-z0-9]+:[A-Za-z0-9._:%-]+$")


@dataclass(frozen=True)
class DecodedDid:
    """Algorithm and raw public key bytes recovered from a did:key."""
    algorithm: Algorithm
    public_key_bytes: bytes

    def public_key(self) -> PublicKey:
        return public_key_from_raw(self.algorithm, self.public_key_bytes)


# ---------------------------------------------------------------------------
# Base58btc
# ---------------------------------------------------------------------------

def base58btc_encode(data: bytes) -> str:
    """Base58btc encoding (Bitcoin alphabet, no multibase prefix)."""
    n = int.from_bytes(data, "big")

    result = []
    while n > 0:
        n, remainder = divmod(n, 58)
        result.append(_BASE58_ALPHABET[remainder])

    for byte in data:
        if byte == 0:
            result.append(_BASE58_ALPHABET[0])
        else:
            break

    return "".join(reversed(result))


def base58btc_decode(encoded: str) -> bytes:
    """Decode a base58btc string (no multibase prefix) to bytes."""
    n = 0
    for char in encoded:
        index = _BASE58_INDEX.get(char)
        if index is None:
            raise ValueError(f"Invalid base58btc character: {char!r}")
        n = n * 58 + index

    leading_zeros = len(encoded) - len(encoded.lstrip("1"))
    raw = n.to_bytes((n.bit_length() + 7) // 8, "big") if n > 0 else b""
    return b"\x00" * leading_zeros + raw


# ---------------------------------------------------------------------------
# Encoding / decoding
# ---------------------------------------------------------------------------

def did_from_public_key(algorithm: Algorithm, public_key_bytes: bytes) -> str:
    """Encode raw public key bytes as a did:key identifier."""
    algorithm = Algorithm(algorithm)
    if len(public_key_bytes) != _KEY_LENGTHS[algorithm]:
        raise ValueError(
            f"{algorithm.value} public key must be {_KEY_LENGTHS[algorithm]} "
            f"bytes, got {len(public_key_bytes)}"
        )
    multicodec_bytes = _MULTICODEC_PREFIXES[algorithm] + public_key_bytes
    return f"{DID_KEY_PREFIX}{base58btc_encode(multicodec_bytes)}"


def did_from_key(public_key: PublicKey) -> str:
    """Encode a public key object as a did:key identifier."""
    return did_from_public_key(algorithm_of(public_key), public_key_to_raw(public_key))


def decode_did(did: str) -> DecodedDid:
    """Recover algorithm and public key bytes from a did:key.

    Raises:
        ValueError: On wrong method, bad base58, unknown multicodec prefix,
                    or a key of the wrong length for its algorithm.
    """
    if not isinstance(did, str) or not did.startswith(DID_KEY_PREFIX):
        raise ValueError(
            f"Invalid did:key format: must start with '{DID_KEY_PREFIX}'"
        )
    decoded = base58btc_decode(did[len(DID_KEY_PREFIX):])

    for algorithm, prefix in _MULTICODEC_PREFIXES.items():
        if decoded.startswith(prefix):
            key_bytes = decoded[len(prefix):]
            if len(key_bytes) != _KEY_LENGTHS[algorithm]:
                raise ValueError(
                    f"Invalid {algorithm.value} key length in did:key: "
                    f"{len(key_bytes)} bytes"
                )
            return DecodedDid(algorithm=algorithm, public_key_bytes=key_bytes)

    raise ValueError(
        f"Unknown multicodec prefix in did:key: 0x{decoded[:2].hex()}"
    )


def algorithm_from_did(did: str) -> Algorithm:
    """Signature algorithm encoded in a did:key."""
    return decode_did(did).algorithm


def multicodec_key_bytes(did: str) -> bytes:
    """Multicodec-tagged key bytes for a did:key (prefix || raw key)."""
    decoded = decode_did(did)
    return _MULTICODEC_PREFIXES[decoded.algorithm] + decoded.public_key_bytes


def is_did(value: object) -> bool:
    """Syntactic DID check (did:<method>:<id>). Does not resolve."""
    return isinstance(value, str) and bool(_DID_PATTERN.match(value))
