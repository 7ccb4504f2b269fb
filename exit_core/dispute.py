"""
exit_core/dispute.py — Dispute records and arbiter-signed resolutions.

Disputes never block exit: a disputed marker is still valid, just
flagged.  A DisputeRecord is filed against a marker id and names an
arbiter; the arbiter resolves it exactly once by signing

    {disputeId, markerId, outcome, summary, resolvedAt}

under DISPUTE_RESOLUTION_DOMAIN with the ordinary proof protocol.
Re-resolving is a hard error, not an idempotent no-op.

Who qualifies as an arbiter is policy and lives outside this module.

Marker-level dispute status (get_dispute_status) is derived from the
marker's own status field plus its embedded dispute bundle:

    status == disputed                     -> active
    any embedded dispute open, unexpired   -> active
    any embedded dispute open, expired     -> expired
    every embedded dispute resolved        -> resolved
    no embedded disputes                   -> none
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Sequence, Union

from pydantic import Field

from .errors import SigningError, ValidationError
from .did import is_did
from .proof import DISPUTE_RESOLUTION_DOMAIN, check_proof, create_proof
from .record import (
    DataIntegrityProof,
    ExitMarker,
    ExitStatus,
    WireModel,
    parse_timestamp,
    utc_now_iso,
)
from .signer import Signer
from .uuid7 import uuid7


logger = logging.getLogger(__name__)


class ResolutionOutcome(str, Enum):
    UPHELD = "upheld"
    DISMISSED = "dismissed"
    SETTLED = "settled"


class DisputeState(str, Enum):
    NONE = "none"
    ACTIVE = "active"
    RESOLVED = "resolved"
    EXPIRED = "expired"


class DisputeResolution(WireModel):
    """The arbiter's decision and signature over it."""
    outcome: ResolutionOutcome
    summary: str
    resolved_at: str
    proof: DataIntegrityProof


class DisputeRecord(WireModel):
    """A challenge filed against one marker."""
    id: str
    marker_id: str
    filer_did: str
    reason: str
    arbiter_did: str
    filed_at: str
    expires_at: Optional[str] = None
    evidence_refs: List[str] = Field(default_factory=list)
    resolution: Optional[DisputeResolution] = None

    @property
    def is_resolved(self) -> bool:
        return self.resolution is not None


# ---------------------------------------------------------------------------
# Filing
# ---------------------------------------------------------------------------

def create_dispute(
    marker_id: str,
    reason: str,
    arbiter_did: str,
    filer_did: str,
    evidence_refs: Optional[Sequence[str]] = None,
    expires_at: Optional[str] = None,
) -> DisputeRecord:
    """File a dispute against ``marker_id``.

    Raises:
        ValidationError: If any required string is empty, either DID is
                         malformed, or ``expires_at`` is not a timestamp.
    """
    errors = []
    for name, value in (
        ("markerId", marker_id),
        ("reason", reason),
        ("arbiterDid", arbiter_did),
        ("filerDid", filer_did),
    ):
        if not isinstance(value, str) or not value.strip():
            errors.append(f"{name} is required")
    if arbiter_did and not is_did(arbiter_did):
        errors.append("arbiterDid must be a valid DID")
    if filer_did and not is_did(filer_did):
        errors.append("filerDid must be a valid DID")
    if expires_at is not None:
        try:
            parse_timestamp(expires_at)
        except ValueError:
            errors.append(f"expiresAt is not a valid timestamp: {expires_at!r}")
    if errors:
        raise ValidationError(errors, "Invalid dispute")

    dispute = DisputeRecord(
        id=f"urn:dispute:{uuid7()}",
        marker_id=marker_id,
        filer_did=filer_did,
        reason=reason,
        arbiter_did=arbiter_did,
        filed_at=utc_now_iso(),
        expires_at=expires_at,
        evidence_refs=list(evidence_refs or []),
    )
    logger.info("Dispute %s filed against %s", dispute.id, marker_id)
    return dispute


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def resolution_payload(
    dispute: DisputeRecord,
    outcome: ResolutionOutcome,
    summary: str,
    resolved_at: str,
) -> dict:
    """The exact dict the arbiter signs."""
    return {
        "disputeId": dispute.id,
        "markerId": dispute.marker_id,
        "outcome": ResolutionOutcome(outcome).value,
        "summary": summary,
        "resolvedAt": resolved_at,
    }


def resolve_dispute(
    dispute: DisputeRecord,
    outcome: Union[ResolutionOutcome, str],
    summary: str,
    arbiter_signer: Signer,
) -> DisputeRecord:
    """Sign and attach the arbiter's resolution. Returns a new record.

    Raises:
        ValidationError: If the dispute is already resolved.
        SigningError:    If the signer is not the named arbiter, or signing fails.
    """
    if dispute.resolution is not None:
        raise ValidationError(
            [f"Dispute {dispute.id} already has outcome "
             f"{dispute.resolution.outcome.value}"],
            "Dispute is already resolved",
        )
    if arbiter_signer.did() != dispute.arbiter_did:
        raise SigningError(
            f"Signer {arbiter_signer.did()} is not the arbiter {dispute.arbiter_did}"
        )

    outcome = ResolutionOutcome(outcome)
    resolved_at = utc_now_iso()
    proof = create_proof(
        resolution_payload(dispute, outcome, summary, resolved_at),
        arbiter_signer,
        DISPUTE_RESOLUTION_DOMAIN,
        created=resolved_at,
    )
    resolution = DisputeResolution(
        outcome=outcome,
        summary=summary,
        resolved_at=resolved_at,
        proof=proof,
    )
    logger.info("Dispute %s resolved: %s", dispute.id, outcome.value)
    return dispute.model_copy(update={"resolution": resolution})


def dispute_resolution_errors(dispute: DisputeRecord, verbose: bool = False) -> List[str]:
    """Every reason the dispute's resolution fails to verify."""
    if dispute.resolution is None:
        return ["Dispute is not resolved"]
    r = dispute.resolution
    payload = resolution_payload(dispute, r.outcome, r.summary, r.resolved_at)
    return check_proof(
        payload, r.proof, dispute.arbiter_did, DISPUTE_RESOLUTION_DOMAIN, verbose
    )


def verify_dispute_resolution(dispute: DisputeRecord) -> bool:
    """False if unresolved or if the arbiter's signature no longer matches."""
    return not dispute_resolution_errors(dispute)


# ---------------------------------------------------------------------------
# Marker-level status
# ---------------------------------------------------------------------------

def get_dispute_status(
    marker: ExitMarker,
    now: Optional[datetime] = None,
) -> DisputeState:
    """Aggregate dispute state of a marker (see module docstring).

    A naive ``now`` is taken to be UTC.
    """
    if marker.status == ExitStatus.DISPUTED:
        return DisputeState.ACTIVE

    disputes = marker.dispute.disputes if marker.dispute else None
    if not disputes:
        return DisputeState.NONE

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    has_expired = False
    for d in disputes:
        if d.resolution is not None:
            continue
        if d.dispute_expiry and parse_timestamp(d.dispute_expiry) < now:
            has_expired = True
            continue
        return DisputeState.ACTIVE

    return DisputeState.EXPIRED if has_expired else DisputeState.RESOLVED


def is_disputed(marker: ExitMarker, now: Optional[datetime] = None) -> bool:
    return get_dispute_status(marker, now) == DisputeState.ACTIVE
