"""
exit_core/proof.py — Domain-separated proof protocol.

Attach:  payload → drop {proof, id} → canonicalize → prefix domain tag
         → sign → DataIntegrityProof
Verify:  recompute the same bytes, then run every check independently
         and collect all failures.

The same create/check pair signs exit markers (MARKER_DOMAIN), dispute
resolutions (DISPUTE_RESOLUTION_DOMAIN) and key events
(KEY_EVENT_DOMAIN).  A signature made under one tag never verifies
under another, and a protocol version bump changes every tag.

Checks performed by check_proof():
1. proof present
2. proof.type is a known suite
3. verificationMethod == the record's subject identity
   (stops an attacker attributing a record to someone else's DID)
4. algorithm implied by proof.type == algorithm encoded in the DID
   (stops algorithm confusion)
5. proof.created is a valid ISO 8601 timestamp
6. signature verifies against the key decoded from verificationMethod

By default the low-level reason for a failed signature check is
collapsed into one generic message; pass verbose=True to get detail.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .canonical import canonicalize
from .crypto import verify_signature
from .did import decode_did
from .errors import SigningError
from .record import (
    DataIntegrityProof,
    ExitMarker,
    parse_timestamp,
    utc_now_iso,
    validate_record_size,
)
from .signer import Signer, algorithm_from_proof_type, proof_type_for_algorithm


# ---------------------------------------------------------------------------
# Domain tags
# ---------------------------------------------------------------------------

MARKER_DOMAIN = "exit-marker-v1.1:"
DISPUTE_RESOLUTION_DOMAIN = "exit-dispute-resolution-v1.1:"
KEY_EVENT_DOMAIN = "exit-key-event-v1.1:"

GENERIC_SIGNATURE_ERROR = "Signature verification failed"

_EXCLUDED_FIELDS = ("proof", "id")


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class VerificationResult:
    """Outcome of a verification. Never raised; always returned."""
    valid: bool
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "errors": list(self.errors)}


# Schema validator collaborator: record dict -> result with .valid/.errors
SchemaValidator = Callable[[dict], VerificationResult]

Record = Union[BaseModel, Dict[str, Any]]


# ---------------------------------------------------------------------------
# Signable bytes
# ---------------------------------------------------------------------------

def signable_bytes(payload: Dict[str, Any], domain: str) -> bytes:
    """domain tag || canonicalize(payload minus proof/id)."""
    body = {k: v for k, v in payload.items() if k not in _EXCLUDED_FIELDS}
    return domain.encode("utf-8") + canonicalize(body)


def _as_dict(record: Record) -> Dict[str, Any]:
    if isinstance(record, BaseModel):
        return record.to_dict()
    return dict(record)


# ---------------------------------------------------------------------------
# Create / check (shared by markers, disputes, key events)
# ---------------------------------------------------------------------------

def create_proof(
    payload: Dict[str, Any],
    signer: Signer,
    domain: str,
    created: Optional[str] = None,
) -> DataIntegrityProof:
    """Sign a payload under a domain tag and return the proof block.

    Raises:
        SigningError: If the payload cannot be canonicalized or the
                      signing primitive fails.
    """
    try:
        data = signable_bytes(payload, domain)
    except (TypeError, ValueError) as e:
        raise SigningError(f"Payload cannot be canonicalized: {e}") from e

    signature = signer.sign(data)
    return DataIntegrityProof(
        type=proof_type_for_algorithm(signer.algorithm),
        created=created or utc_now_iso(),
        verification_method=signer.did(),
        proof_value=base64.b64encode(signature).decode("ascii"),
    )


def check_proof(
    payload: Dict[str, Any],
    proof: Optional[DataIntegrityProof],
    expected_did: Optional[str],
    domain: str,
    verbose: bool = False,
) -> List[str]:
    """Run every proof check independently. Returns the list of failures."""
    if proof is None:
        return ["Missing proof"]

    errors: List[str] = []

    type_algorithm = algorithm_from_proof_type(proof.type)
    if type_algorithm is None:
        errors.append(f"Unsupported proof type: {proof.type}")

    if not expected_did or proof.verification_method != expected_did:
        errors.append(
            "verificationMethod does not match the record's subject identity"
        )

    decoded = None
    try:
        decoded = decode_did(proof.verification_method)
    except ValueError as e:
        msg = "verificationMethod is not a decodable did:key"
        errors.append(f"{msg}: {e}" if verbose else msg)

    if (
        type_algorithm is not None
        and decoded is not None
        and decoded.algorithm != type_algorithm
    ):
        errors.append(
            f"Algorithm mismatch: proof type {proof.type} implies "
            f"{type_algorithm.value} but verificationMethod encodes "
            f"{decoded.algorithm.value}"
        )

    try:
        parse_timestamp(proof.created)
    except ValueError:
        errors.append(f"Invalid proof.created timestamp: {proof.created!r}")

    if decoded is not None:
        detail = _check_signature(payload, proof, decoded, domain)
        if detail is not None:
            errors.append(
                f"{GENERIC_SIGNATURE_ERROR}: {detail}" if verbose
                else GENERIC_SIGNATURE_ERROR
            )

    return errors


def _check_signature(payload, proof, decoded, domain) -> Optional[str]:
    """Return a failure detail, or None if the signature verifies."""
    try:
        signature = base64.b64decode(proof.proof_value, validate=True)
    except (binascii.Error, ValueError):
        return "proofValue is not valid base64"
    try:
        data = signable_bytes(payload, domain)
    except (TypeError, ValueError) as e:
        return f"record cannot be canonicalized ({e})"
    try:
        public_key = decoded.public_key()
    except ValueError:
        return f"invalid {decoded.algorithm.value} public key"
    if not verify_signature(public_key, data, signature):
        return f"signature does not match {decoded.algorithm.value} key"
    return None


# ---------------------------------------------------------------------------
# Record-level attach / verify
# ---------------------------------------------------------------------------

def attach_proof(
    record: Record,
    signer: Signer,
    *,
    domain: str = MARKER_DOMAIN,
    created: Optional[str] = None,
) -> Record:
    """Sign a record and return a copy with ``proof`` attached.

    The record's ``subject`` must be the signer's DID: a proof that would
    fail subject binding at verify time is never produced.

    Raises:
        SigningError: On subject mismatch or signing failure, or if the
                      signed record exceeds the size cap.
    """
    payload = _as_dict(record)
    signer_did = signer.did()
    if payload.get("subject") != signer_did:
        raise SigningError(
            f"Signer {signer_did} is not the record subject "
            f"{payload.get('subject')!r}"
        )

    proof = create_proof(payload, signer, domain, created)
    if isinstance(record, BaseModel):
        signed = record.model_copy(update={"proof": proof})
    else:
        signed = {**payload, "proof": proof.to_dict()}

    try:
        validate_record_size(signed)
    except ValueError as e:
        raise SigningError(str(e)) from e
    return signed


def verify_proof(
    record: Record,
    *,
    domain: str = MARKER_DOMAIN,
    verbose: bool = False,
    validator: Optional[SchemaValidator] = None,
) -> VerificationResult:
    """Verify a record's proof. Never raises for bad records.

    Args:
        record:    ExitMarker (or any wire model) or its dict form.
        domain:    Domain tag the record was signed under.
        verbose:   Report low-level signature failure detail.
        validator: Optional schema validator run alongside; its errors
                   are merged into the result.
    """
    errors: List[str] = []
    payload = _as_dict(record)

    try:
        validate_record_size(record)
    except (TypeError, ValueError) as e:
        errors.append(str(e))

    if validator is not None:
        schema = validator(payload)
        if not schema.valid:
            errors.extend(schema.errors)

    proof: Optional[DataIntegrityProof] = None
    raw_proof = getattr(record, "proof", None) if isinstance(record, BaseModel) else payload.get("proof")
    if isinstance(raw_proof, DataIntegrityProof):
        proof = raw_proof
    elif raw_proof is not None:
        try:
            proof = DataIntegrityProof.model_validate(raw_proof)
        except PydanticValidationError:
            errors.append("Malformed proof block")
            return VerificationResult(valid=False, errors=errors)

    errors.extend(check_proof(payload, proof, payload.get("subject"), domain, verbose))
    return VerificationResult(valid=not errors, errors=errors)


def verify_marker(
    marker: Union[ExitMarker, Dict[str, Any]],
    verbose: bool = False,
    validator: Optional[SchemaValidator] = None,
) -> VerificationResult:
    """verify_proof() under the exit-marker domain."""
    return verify_proof(marker, domain=MARKER_DOMAIN, verbose=verbose, validator=validator)
