"""
exit_core/record.py — Exit Marker Data Model

Single source of truth for the marker wire format.  JSON Schema is
exported from these Pydantic models, never hand-written separately.

Wire names are camelCase (``exitType``, ``verificationMethod``); Python
attributes are snake_case.  Both are accepted on input.  The canonical
dict form — the one that is hashed and signed — is always
``model_dump(mode="json", by_alias=True, exclude_none=True)``.

Markers are frozen.  Any change is a functional update (``model_copy``)
followed by re-signing; editing a signed marker invalidates its proof,
which is detected at verify time, not prevented here.
"""

# NOTE: `from __future__ import annotations` is intentionally omitted,
# matching the Pydantic v2 models elsewhere in this package.

import json
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .canonical import content_hash


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EXIT_CONTEXT_V1 = "https://cellar-door.dev/exit/v1"
EXIT_SPEC_VERSION = "1.1"

# Markers are meant to be small (~300-500 bytes); anything near this is abuse.
MAX_RECORD_SIZE_BYTES = 32 * 1024

DEFAULT_EXPIRY_DAYS_VOLUNTARY = 730
DEFAULT_EXPIRY_DAYS_INVOLUNTARY = 365


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------

def utc_now_iso() -> str:
    """Current UTC time as ISO 8601 with millisecond precision and 'Z'."""
    return format_timestamp(datetime.now(timezone.utc))


def format_timestamp(dt: datetime) -> str:
    """Format an aware datetime as ISO 8601 UTC with a 'Z' suffix."""
    if dt.tzinfo is None:
        raise ValueError("Timestamp must be timezone-aware")
    return (
        dt.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp. Naive values are rejected.

    Raises:
        ValueError: If the value is not a timezone-aware ISO 8601 string.
    """
    if not isinstance(value, str) or not value:
        raise ValueError("Timestamp must be a non-empty string")
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        raise ValueError(f"Timestamp has no timezone: {value}")
    return dt


def _check_timestamp(value: Optional[str]) -> Optional[str]:
    if value is not None:
        parse_timestamp(value)
    return value


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ExitType(str, Enum):
    """Nature of departure. Changes how downstream systems read the marker."""
    VOLUNTARY = "voluntary"
    FORCED = "forced"
    EMERGENCY = "emergency"
    KEY_COMPROMISE = "keyCompromise"
    PLATFORM_SHUTDOWN = "platform_shutdown"
    DIRECTED = "directed"
    CONSTRUCTIVE = "constructive"
    ACQUISITION = "acquisition"


class ExitStatus(str, Enum):
    """Standing at departure. Subject-attested in the core marker."""
    GOOD_STANDING = "good_standing"
    DISPUTED = "disputed"
    UNVERIFIED = "unverified"


class EmbeddedResolution(str, Enum):
    """How an embedded (module C) dispute ended."""
    SETTLED = "settled"
    EXPIRED = "expired"
    WITHDRAWN = "withdrawn"


# ---------------------------------------------------------------------------
# Base model
# ---------------------------------------------------------------------------

class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python, immutable, closed."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )

    def to_dict(self) -> dict:
        """Canonical dict form (wire names, no None values)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Proof
# ---------------------------------------------------------------------------

class DataIntegrityProof(WireModel):
    """Signature block attached to a signed record.

    ``created`` is kept as a plain string so that a malformed value
    survives parsing and is reported by proof verification instead of
    being rejected before anyone looks at the signature.
    """

    type: str = Field(..., description="Signature suite name.")
    created: str = Field(..., description="ISO 8601 UTC creation time.")
    verification_method: str = Field(..., description="Signer did:key.")
    proof_value: str = Field(..., description="Base64 signature bytes.")


# ---------------------------------------------------------------------------
# Extension modules
# ---------------------------------------------------------------------------

class Lineage(WireModel):
    """Module A: predecessor/successor continuity."""
    predecessor: Optional[str] = None
    successor: Optional[str] = None
    lineage_chain: Optional[List[str]] = None


class StateSnapshot(WireModel):
    """Module B: content hash of state at exit. Never the state itself."""
    state_hash: str = Field(..., min_length=1)
    state_location: Optional[str] = None
    state_schema: Optional[str] = None
    obligations: Optional[List[str]] = None


class EmbeddedDispute(WireModel):
    """A dispute carried inside a marker's dispute bundle."""
    id: str = Field(..., min_length=1)
    challenger: str = Field(..., min_length=1)
    claim: str = Field(..., min_length=1)
    evidence_hash: Optional[str] = None
    filed_at: str
    dispute_expiry: Optional[str] = None
    resolution: Optional[EmbeddedResolution] = None
    arbiter_did: Optional[str] = None

    @field_validator("filed_at", "dispute_expiry")
    @classmethod
    def validate_timestamps(cls, v: Optional[str]) -> Optional[str]:
        return _check_timestamp(v)


class ChallengeWindow(WireModel):
    opens: str
    closes: str
    arbiter: Optional[str] = None

    @field_validator("opens", "closes")
    @classmethod
    def validate_timestamps(cls, v: str) -> str:
        return _check_timestamp(v)


class DisputeBundle(WireModel):
    """Module C: disputes and evidence preserved at exit time."""
    disputes: Optional[List[EmbeddedDispute]] = None
    evidence_hash: Optional[str] = None
    challenge_window: Optional[ChallengeWindow] = None
    origin_status: Optional[ExitStatus] = None


class ExitMetadata(WireModel):
    """Module E: human-readable context."""
    reason: Optional[str] = None
    narrative: Optional[str] = None
    tags: Optional[List[str]] = None
    locale: Optional[str] = None


class ChainAnchor(WireModel):
    chain: str
    tx_hash: str
    block_height: Optional[int] = Field(default=None, ge=0)


class CrossDomain(WireModel):
    """Module F: external anchoring points."""
    anchors: Optional[List[ChainAnchor]] = None
    registry_entries: Optional[List[str]] = None


# ---------------------------------------------------------------------------
# Exit Marker
# ---------------------------------------------------------------------------

class ExitMarker(WireModel):
    """A portable, self-verifying credential attesting departure.

    Core fields: id, subject, origin, timestamp, exitType, status, proof.
    ``proof`` is None until the marker is signed.
    """

    context: str = Field(default=EXIT_CONTEXT_V1, alias="@context")
    spec_version: str = EXIT_SPEC_VERSION
    id: str = ""
    subject: str = Field(..., min_length=1, description="Departing identity (DID).")
    origin: str = Field(..., min_length=1, description="What is being exited (URI).")
    timestamp: str = Field(..., description="ISO 8601 UTC time of exit.")
    exit_type: ExitType
    status: ExitStatus
    self_attested: bool = True
    proof: Optional[DataIntegrityProof] = None

    emergency_justification: Optional[str] = None
    expires: Optional[str] = None
    pre_rotation_commitment: Optional[str] = None
    sequence_number: Optional[int] = Field(default=None, ge=0)

    lineage: Optional[Lineage] = None
    state_snapshot: Optional[StateSnapshot] = None
    dispute: Optional[DisputeBundle] = None
    metadata: Optional[ExitMetadata] = None
    cross_domain: Optional[CrossDomain] = None

    @field_validator("timestamp", "expires")
    @classmethod
    def validate_timestamps(cls, v: Optional[str]) -> Optional[str]:
        return _check_timestamp(v)

    @model_validator(mode="after")
    def validate_emergency_justification(self) -> "ExitMarker":
        if self.exit_type == ExitType.EMERGENCY and not self.emergency_justification:
            raise ValueError(
                "emergency_justification is required when exit_type is 'emergency'"
            )
        return self

    def signable_dict(self) -> dict:
        """Canonical dict minus ``proof`` and ``id`` — what gets signed."""
        d = self.to_dict()
        d.pop("proof", None)
        d.pop("id", None)
        return d

    def to_json(self, indent: int = 2) -> str:
        """Pretty-printed JSON for storage/display, not for hashing."""
        return self.model_dump_json(indent=indent, by_alias=True, exclude_none=True)

    @classmethod
    def from_dict(cls, data: dict) -> "ExitMarker":
        return cls.model_validate(data)


# ---------------------------------------------------------------------------
# Construction helpers
# ---------------------------------------------------------------------------

_DEFAULT_STATUS = {
    ExitType.VOLUNTARY: ExitStatus.GOOD_STANDING,
    ExitType.FORCED: ExitStatus.DISPUTED,
    ExitType.DIRECTED: ExitStatus.DISPUTED,
    ExitType.CONSTRUCTIVE: ExitStatus.DISPUTED,
}


def default_status(exit_type: ExitType) -> ExitStatus:
    """Standing implied by the exit type when the caller gives none."""
    return _DEFAULT_STATUS.get(ExitType(exit_type), ExitStatus.UNVERIFIED)


def compute_id(marker: ExitMarker) -> str:
    """Content-addressed SHA-256 of a marker, excluding proof and id."""
    return content_hash(marker.signable_dict())


def new_marker(
    subject: str,
    origin: str,
    exit_type: ExitType,
    *,
    status: Optional[ExitStatus] = None,
    timestamp: Optional[str] = None,
    expires: Optional[str] = None,
    **fields,
) -> ExitMarker:
    """Build an unsigned marker with defaults and a content-addressed id.

    Defaults: status by exit type; expiry 730 days after the timestamp
    for voluntary exits, 365 days otherwise.

    Raises:
        pydantic.ValidationError: On missing/invalid fields.
    """
    exit_type = ExitType(exit_type)
    timestamp = timestamp or utc_now_iso()
    if expires is None:
        days = (
            DEFAULT_EXPIRY_DAYS_VOLUNTARY
            if exit_type == ExitType.VOLUNTARY
            else DEFAULT_EXPIRY_DAYS_INVOLUNTARY
        )
        expires = format_timestamp(parse_timestamp(timestamp) + timedelta(days=days))

    marker = ExitMarker(
        subject=subject,
        origin=origin,
        timestamp=timestamp,
        exit_type=exit_type,
        status=status or default_status(exit_type),
        expires=expires,
        **fields,
    )
    if marker.id:
        return marker
    return marker.model_copy(update={"id": f"urn:exit:{compute_id(marker)}"})


def validate_record_size(record: Union[BaseModel, dict]) -> None:
    """Reject records whose serialized form exceeds MAX_RECORD_SIZE_BYTES.

    Accepts a model or its wire dict; both are measured as compact JSON.

    Raises:
        ValueError: If the record is too large.
    """
    if isinstance(record, BaseModel):
        serialized = record.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")
    else:
        serialized = json.dumps(record, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    if len(serialized) > MAX_RECORD_SIZE_BYTES:
        raise ValueError(
            f"Record exceeds 32KB limit: {len(serialized)} bytes."
        )


def export_json_schema() -> str:
    """Export the ExitMarker JSON Schema (wire names)."""
    schema = ExitMarker.model_json_schema(by_alias=True)
    return json.dumps(schema, indent=2)


if __name__ == "__main__":
    print(export_json_schema())
