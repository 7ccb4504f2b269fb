"""
exit_core/signer.py — Algorithm-agnostic signer abstraction.

A Signer exposes exactly four things callers rely on:
    algorithm, sign(data), verify(data, signature), did()

Ed25519Signer and P256Signer hold a `cryptography` private key object.
Hardware-backed signers (HSM/TPM) implement the same interface without
holding key material; callers must not assume ordering between
concurrent sign/verify calls on such signers.

Key erasure: destroy() drops this object's reference to the private key
and refuses further signing.  It does NOT guarantee that key material is
wiped from memory — the crypto backend, the Python allocator and any
PEM copies the caller made are outside our control.  Treat it as
residual risk, never as a correctness guarantee.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from .crypto import (
    Algorithm,
    PrivateKey,
    algorithm_of,
    generate_keypair,
    public_key_to_raw,
    sign_bytes,
    verify_signature,
)
from .did import decode_did, did_from_public_key
from .errors import SigningError


# ---------------------------------------------------------------------------
# Suite mapping (closed in this protocol version)
# ---------------------------------------------------------------------------

PROOF_TYPES = {
    Algorithm.ED25519: "Ed25519Signature2020",
    Algorithm.P256: "EcdsaP256Signature2019",
}


def proof_type_for_algorithm(algorithm: Algorithm) -> str:
    """Signature suite name for an algorithm."""
    return PROOF_TYPES[Algorithm(algorithm)]


def algorithm_from_proof_type(proof_type: str) -> Optional[Algorithm]:
    """Algorithm implied by a suite name, or None if the suite is unknown."""
    for algorithm, name in PROOF_TYPES.items():
        if name == proof_type:
            return algorithm
    return None


# ---------------------------------------------------------------------------
# Signer interface
# ---------------------------------------------------------------------------

class Signer(ABC):
    """Abstract signer. Swap implementations without touching callers."""

    algorithm: Algorithm

    @abstractmethod
    def sign(self, data: bytes) -> bytes:
        """Sign data, return raw signature bytes."""

    @abstractmethod
    def public_key_bytes(self) -> bytes:
        """Raw public key bytes for this signer."""

    def did(self) -> str:
        """did:key identifier for this signer's public key."""
        return did_from_public_key(self.algorithm, self.public_key_bytes())

    def verify(
        self,
        data: bytes,
        signature: bytes,
        public_key: Optional[bytes] = None,
    ) -> bool:
        """Verify a signature against this signer's key (or ``public_key``)."""
        raw = public_key if public_key is not None else self.public_key_bytes()
        return verify_with_did(
            did_from_public_key(self.algorithm, raw), data, signature
        )

    def destroy(self) -> None:
        """Best-effort key erasure. No-op for signers without key material."""


class _SoftwareSigner(Signer):
    """Signer backed by an in-process `cryptography` private key."""

    def __init__(self, private_key: PrivateKey) -> None:
        if algorithm_of(private_key) != self.algorithm:
            raise TypeError(
                f"{type(self).__name__} requires a {self.algorithm.value} key"
            )
        self._private_key: Optional[PrivateKey] = private_key
        self._public_key_bytes = public_key_to_raw(private_key.public_key())

    def sign(self, data: bytes) -> bytes:
        if self._private_key is None:
            raise SigningError("Signer has been destroyed; key material unavailable")
        try:
            return sign_bytes(self._private_key, data)
        except Exception as e:
            raise SigningError(f"{self.algorithm.value} signing failed: {e}") from e

    def public_key_bytes(self) -> bytes:
        return self._public_key_bytes

    @property
    def destroyed(self) -> bool:
        return self._private_key is None

    def private_key(self) -> PrivateKey:
        """The underlying key object (for PEM export by key custodians)."""
        if self._private_key is None:
            raise SigningError("Signer has been destroyed; key material unavailable")
        return self._private_key

    def destroy(self) -> None:
        self._private_key = None


class Ed25519Signer(_SoftwareSigner):
    algorithm = Algorithm.ED25519


class P256Signer(_SoftwareSigner):
    algorithm = Algorithm.P256


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

def signer_from_private_key(private_key: PrivateKey) -> Signer:
    """Wrap an existing private key object in the matching Signer."""
    if isinstance(private_key, Ed25519PrivateKey):
        return Ed25519Signer(private_key)
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        return P256Signer(private_key)
    raise TypeError(f"Unsupported private key type: {type(private_key).__name__}")


def generate_signer(algorithm: Algorithm = Algorithm.ED25519) -> Signer:
    """Generate a fresh keypair and return its Signer."""
    private_key, _ = generate_keypair(Algorithm(algorithm))
    return signer_from_private_key(private_key)


def verify_with_did(did: str, data: bytes, signature: bytes) -> bool:
    """Verify a signature with the key encoded in a did:key.

    Returns False (never raises) for undecodable DIDs or bad signatures.
    """
    try:
        public_key = decode_did(did).public_key()
    except ValueError:
        return False
    return verify_signature(public_key, data, signature)
