"""
test/test_dispute.py — Tests for exit_core.dispute

Run:  python test/test_dispute.py
"""

import sys
import os
from datetime import datetime, timedelta, timezone

# Ensure project root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from exit_core.dispute import (
    DisputeRecord,
    DisputeState,
    ResolutionOutcome,
    create_dispute,
    dispute_resolution_errors,
    get_dispute_status,
    is_disputed,
    resolve_dispute,
    verify_dispute_resolution,
)
from exit_core.errors import SigningError, ValidationError
from exit_core.proof import MARKER_DOMAIN, verify_proof
from exit_core.record import (
    DisputeBundle,
    EmbeddedDispute,
    EmbeddedResolution,
    ExitStatus,
    ExitType,
    format_timestamp,
    new_marker,
)
from exit_core.signer import generate_signer
from exit_core.uuid7 import uuid7_timestamp_ms


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_arbiter = generate_signer()
_filer = generate_signer()
_subject = generate_signer()
_NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)

_PASS = 0
_FAIL = 0


def _dispute(**kwargs) -> DisputeRecord:
    return create_dispute(
        "urn:exit:abc123",
        "Departure left unpaid obligations",
        _arbiter.did(),
        _filer.did(),
        **kwargs,
    )


def _embedded(i, resolution=None, expiry=None):
    return EmbeddedDispute(
        id=f"d-{i}",
        challenger=_filer.did(),
        claim="unpaid obligations",
        filed_at=format_timestamp(_NOW - timedelta(days=30)),
        dispute_expiry=format_timestamp(expiry) if expiry else None,
        resolution=resolution,
    )


def _marker_with(disputes, status=ExitStatus.GOOD_STANDING):
    return new_marker(
        _subject.did(),
        "https://platform.example",
        ExitType.VOLUNTARY,
        status=status,
        dispute=DisputeBundle(disputes=disputes) if disputes is not None else None,
    )


def _ok(name: str) -> None:
    global _PASS
    _PASS += 1
    print(f"  PASS: {name}")


def _fail(name: str, err: Exception) -> None:
    global _FAIL
    _FAIL += 1
    print(f"  FAIL: {name} — {err}")


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

def test_create_dispute():
    d = _dispute()
    assert d.id.startswith("urn:dispute:")
    assert uuid7_timestamp_ms(d.id[len("urn:dispute:"):]) > 0
    assert d.evidence_refs == []
    assert d.resolution is None
    assert not d.is_resolved
    assert d.to_dict()["markerId"] == "urn:exit:abc123"

    with_refs = _dispute(evidence_refs=["sha256:deadbeef"], expires_at="2027-01-01T00:00:00Z")
    assert with_refs.evidence_refs == ["sha256:deadbeef"]
    assert with_refs.expires_at == "2027-01-01T00:00:00Z"
    _ok("test_create_dispute")


def test_create_dispute_rejects_bad_input():
    cases = [
        dict(marker_id="", reason="r", arbiter_did=_arbiter.did(), filer_did=_filer.did()),
        dict(marker_id="m", reason="  ", arbiter_did=_arbiter.did(), filer_did=_filer.did()),
        dict(marker_id="m", reason="r", arbiter_did="", filer_did=_filer.did()),
        dict(marker_id="m", reason="r", arbiter_did="arbiter-bob", filer_did=_filer.did()),
        dict(marker_id="m", reason="r", arbiter_did=_arbiter.did(), filer_did="did:"),
        dict(marker_id="m", reason="r", arbiter_did=_arbiter.did(), filer_did=_filer.did(),
             expires_at="next week"),
    ]
    for kwargs in cases:
        try:
            create_dispute(**kwargs)
            assert False, f"Should have raised ValidationError for {kwargs}"
        except ValidationError as e:
            assert e.errors, "ValidationError must carry its error list"
            assert e.code == "VALIDATION_FAILED"
    _ok("test_create_dispute_rejects_bad_input")


def test_resolve_and_verify():
    d = resolve_dispute(_dispute(), ResolutionOutcome.DISMISSED, "No evidence provided", _arbiter)
    assert d.is_resolved
    assert d.resolution.outcome == ResolutionOutcome.DISMISSED
    assert d.resolution.proof.verification_method == _arbiter.did()
    assert d.resolution.proof.created == d.resolution.resolved_at
    assert verify_dispute_resolution(d)
    _ok("test_resolve_and_verify")


def test_resolve_accepts_outcome_string():
    d = resolve_dispute(_dispute(), "settled", "Parties agreed", _arbiter)
    assert d.resolution.outcome == ResolutionOutcome.SETTLED
    assert verify_dispute_resolution(d)
    _ok("test_resolve_accepts_outcome_string")


def test_double_resolution_fails():
    d = resolve_dispute(_dispute(), ResolutionOutcome.UPHELD, "Claim upheld", _arbiter)
    try:
        resolve_dispute(d, ResolutionOutcome.DISMISSED, "Changed my mind", _arbiter)
        assert False, "Should have raised ValidationError"
    except ValidationError as e:
        assert str(e) == "Dispute is already resolved"
    assert d.resolution.outcome == ResolutionOutcome.UPHELD
    _ok("test_double_resolution_fails")


def test_only_named_arbiter_can_resolve():
    impostor = generate_signer()
    try:
        resolve_dispute(_dispute(), ResolutionOutcome.UPHELD, "I decide", impostor)
        assert False, "Should have raised SigningError"
    except SigningError as e:
        assert "not the arbiter" in str(e)
    _ok("test_only_named_arbiter_can_resolve")


def test_unresolved_does_not_verify():
    d = _dispute()
    assert not verify_dispute_resolution(d)
    assert dispute_resolution_errors(d) == ["Dispute is not resolved"]
    _ok("test_unresolved_does_not_verify")


def test_tampered_resolution_fails():
    d = resolve_dispute(_dispute(), ResolutionOutcome.DISMISSED, "No evidence", _arbiter)

    new_summary = d.resolution.model_copy(update={"summary": "Claim upheld in full"})
    assert not verify_dispute_resolution(d.model_copy(update={"resolution": new_summary}))

    new_outcome = d.resolution.model_copy(update={"outcome": ResolutionOutcome.UPHELD})
    assert not verify_dispute_resolution(d.model_copy(update={"resolution": new_outcome}))

    moved = d.model_copy(update={"marker_id": "urn:exit:other"})
    assert not verify_dispute_resolution(moved)

    reassigned = d.model_copy(update={"arbiter_did": generate_signer().did()})
    assert not verify_dispute_resolution(reassigned)
    _ok("test_tampered_resolution_fails")


def test_resolution_signature_is_domain_separated():
    """An arbiter's resolution signature is not a valid marker signature."""
    d = resolve_dispute(_dispute(), ResolutionOutcome.SETTLED, "Settled", _arbiter)
    r = d.resolution
    as_record = {
        "subject": _arbiter.did(),
        "disputeId": d.id,
        "markerId": d.marker_id,
        "outcome": r.outcome.value,
        "summary": r.summary,
        "resolvedAt": r.resolved_at,
        "proof": r.proof.to_dict(),
    }
    assert not verify_proof(as_record, domain=MARKER_DOMAIN).valid
    _ok("test_resolution_signature_is_domain_separated")


def test_status_none():
    assert get_dispute_status(_marker_with(None), _NOW) == DisputeState.NONE
    assert get_dispute_status(_marker_with([]), _NOW) == DisputeState.NONE
    assert not is_disputed(_marker_with(None), _NOW)
    _ok("test_status_none")


def test_status_field_disputed_wins():
    """status=disputed is active even when every embedded dispute is resolved."""
    marker = _marker_with(
        [_embedded(1, resolution=EmbeddedResolution.SETTLED)],
        status=ExitStatus.DISPUTED,
    )
    assert get_dispute_status(marker, _NOW) == DisputeState.ACTIVE
    assert is_disputed(marker, _NOW)
    assert get_dispute_status(_marker_with(None, ExitStatus.DISPUTED), _NOW) == DisputeState.ACTIVE
    _ok("test_status_field_disputed_wins")


def test_status_active_overrides_resolved():
    marker = _marker_with([
        _embedded(1, resolution=EmbeddedResolution.SETTLED),
        _embedded(2, expiry=_NOW + timedelta(days=10)),
    ])
    assert get_dispute_status(marker, _NOW) == DisputeState.ACTIVE
    _ok("test_status_active_overrides_resolved")


def test_status_resolved_and_expired():
    resolved = _marker_with([
        _embedded(1, resolution=EmbeddedResolution.SETTLED),
        _embedded(2, resolution=EmbeddedResolution.WITHDRAWN),
    ])
    assert get_dispute_status(resolved, _NOW) == DisputeState.RESOLVED

    expired = _marker_with([_embedded(1, expiry=_NOW - timedelta(days=1))])
    assert get_dispute_status(expired, _NOW) == DisputeState.EXPIRED

    mixed = _marker_with([
        _embedded(1, resolution=EmbeddedResolution.SETTLED),
        _embedded(2, expiry=_NOW - timedelta(days=1)),
    ])
    assert get_dispute_status(mixed, _NOW) == DisputeState.EXPIRED

    # the same unresolved dispute is active before its expiry
    assert get_dispute_status(expired, _NOW - timedelta(days=2)) == DisputeState.ACTIVE
    _ok("test_status_resolved_and_expired")


def test_status_naive_now_is_utc():
    expired = _marker_with([_embedded(1, expiry=_NOW - timedelta(days=1))])
    naive = _NOW.replace(tzinfo=None)
    assert get_dispute_status(expired, naive) == DisputeState.EXPIRED
    assert get_dispute_status(expired, naive - timedelta(days=2)) == DisputeState.ACTIVE
    assert is_disputed(expired, naive - timedelta(days=2))
    _ok("test_status_naive_now_is_utc")


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    print("=" * 60)
    print("Dispute & Resolution Tests")
    print("=" * 60)

    tests = [
        test_create_dispute,
        test_create_dispute_rejects_bad_input,
        test_resolve_and_verify,
        test_resolve_accepts_outcome_string,
        test_double_resolution_fails,
        test_only_named_arbiter_can_resolve,
        test_unresolved_does_not_verify,
        test_tampered_resolution_fails,
        test_resolution_signature_is_domain_separated,
        test_status_none,
        test_status_field_disputed_wins,
        test_status_active_overrides_resolved,
        test_status_resolved_and_expired,
        test_status_naive_now_is_utc,
    ]

    for t in tests:
        try:
            t()
        except Exception as e:
            _fail(t.__name__, e)

    print("=" * 60)
    if _FAIL == 0:
        print(f"ALL {_PASS} TESTS PASSED")
    else:
        print(f"{_PASS} passed, {_FAIL} FAILED")
        sys.exit(1)
    print("=" * 60)
