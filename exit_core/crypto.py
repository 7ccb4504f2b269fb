"""
exit_core/crypto.py — Cryptographic primitives for Exit Markers.

Uses the Python `cryptography` library exclusively. No custom crypto.
- SHA-256 for content addressing, commitments and Merkle leaves
- Ed25519 and ECDSA P-256 for signing/verification

P-256 signatures are emitted in fixed-width IEEE P1363 form (r || s,
64 bytes) rather than DER, so both algorithms produce a plain byte
string of known length.  P-256 public keys travel as 33-byte SEC1
compressed points; Ed25519 public keys as their raw 32 bytes.

All functions are deterministic apart from key generation and have no
side effects.
"""

from __future__ import annotations

import hashlib
from enum import Enum
from typing import Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)


PrivateKey = Union[Ed25519PrivateKey, ec.EllipticCurvePrivateKey]
PublicKey = Union[Ed25519PublicKey, ec.EllipticCurvePublicKey]

_P256_COORDINATE_BYTES = 32

# Group order of P-256. Signatures are normalized to s <= n/2 so each
# (key, message) pair has exactly one accepted encoding.
P256_ORDER = 0xFFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551
P256_HALF_ORDER = P256_ORDER // 2


class Algorithm(str, Enum):
    """Signature algorithms supported in this protocol version."""
    ED25519 = "Ed25519"
    P256 = "P-256"


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------

def sha256_hex(data: bytes) -> str:
    """Compute SHA-256 hash and return as lowercase hex string."""
    return hashlib.sha256(data).hexdigest()


# ---------------------------------------------------------------------------
# Key management
# ---------------------------------------------------------------------------

def generate_keypair(
    algorithm: Algorithm = Algorithm.ED25519,
) -> tuple[PrivateKey, PublicKey]:
    """Generate a new keypair for the given algorithm."""
    if algorithm == Algorithm.P256:
        private_key = ec.generate_private_key(ec.SECP256R1())
    else:
        private_key = Ed25519PrivateKey.generate()
    return private_key, private_key.public_key()


def algorithm_of(key: Union[PrivateKey, PublicKey]) -> Algorithm:
    """Identify the algorithm of a key object."""
    if isinstance(key, (Ed25519PrivateKey, Ed25519PublicKey)):
        return Algorithm.ED25519
    if isinstance(key, (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey)):
        if not isinstance(key.curve, ec.SECP256R1):
            raise TypeError(f"Unsupported curve: {key.curve.name}")
        return Algorithm.P256
    raise TypeError(f"Unsupported key type: {type(key).__name__}")


def public_key_to_raw(key: PublicKey) -> bytes:
    """Raw public key bytes: 32 bytes (Ed25519) or 33-byte compressed point (P-256)."""
    if algorithm_of(key) == Algorithm.P256:
        return key.public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.CompressedPoint,
        )
    return key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def public_key_from_raw(algorithm: Algorithm, raw: bytes) -> PublicKey:
    """Rebuild a public key object from its raw bytes.

    Raises:
        ValueError: If the bytes are not a valid key for the algorithm.
    """
    if algorithm == Algorithm.P256:
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), raw)
    return Ed25519PublicKey.from_public_bytes(raw)


def private_key_to_pem(key: PrivateKey) -> bytes:
    """Serialize private key to PEM bytes."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def public_key_to_pem(key: PublicKey) -> bytes:
    """Serialize public key to PEM bytes."""
    return key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def private_key_from_pem(pem_data: bytes) -> PrivateKey:
    """Deserialize an Ed25519 or P-256 private key from PEM bytes."""
    key = serialization.load_pem_private_key(pem_data, password=None)
    algorithm_of(key)
    return key


def public_key_from_pem(pem_data: bytes) -> PublicKey:
    """Deserialize an Ed25519 or P-256 public key from PEM bytes."""
    key = serialization.load_pem_public_key(pem_data)
    algorithm_of(key)
    return key


# ---------------------------------------------------------------------------
# Signing and verification
# ---------------------------------------------------------------------------

def sign_bytes(private_key: PrivateKey, data: bytes) -> bytes:
    """Sign data. Returns raw signature bytes (64 bytes for both algorithms).

    P-256 signatures are emitted in low-S form.
    """
    if algorithm_of(private_key) == Algorithm.P256:
        der = private_key.sign(data, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        if s > P256_HALF_ORDER:
            s = P256_ORDER - s
        return (
            r.to_bytes(_P256_COORDINATE_BYTES, "big")
            + s.to_bytes(_P256_COORDINATE_BYTES, "big")
        )
    return private_key.sign(data)


def verify_signature(public_key: PublicKey, data: bytes, signature: bytes) -> bool:
    """Verify a raw signature. Returns True if valid, False otherwise.

    High-S P-256 signatures are rejected.
    """
    try:
        if algorithm_of(public_key) == Algorithm.P256:
            if len(signature) != 2 * _P256_COORDINATE_BYTES:
                return False
            r = int.from_bytes(signature[:_P256_COORDINATE_BYTES], "big")
            s = int.from_bytes(signature[_P256_COORDINATE_BYTES:], "big")
            if s > P256_HALF_ORDER:
                return False
            public_key.verify(
                encode_dss_signature(r, s), data, ec.ECDSA(hashes.SHA256())
            )
        else:
            public_key.verify(signature, data)
        return True
    except (InvalidSignature, ValueError, TypeError):
        return False
