"""
test/test_auditor.py — Tests for exit_auditor

Run:  python test/test_auditor.py
"""

import sys
import os

# Ensure project root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from exit_auditor import Auditor, verify_batch, verify_disputes, verify_key_log, verify_markers
from exit_controller import Controller
from exit_core.batch import create_batch_exit
from exit_core.dispute import ResolutionOutcome, create_dispute, resolve_dispute
from exit_core.proof import attach_proof
from exit_core.record import ExitStatus, ExitType, new_marker
from exit_core.signer import generate_signer
from exit_core.storage import Storage


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_ORIGIN = "https://platform.example/agents"

_PASS = 0
_FAIL = 0


def _signed(signer, origin=_ORIGIN):
    return attach_proof(new_marker(signer.did(), origin, ExitType.VOLUNTARY), signer)


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

def test_mixed_markers_are_judged_independently():
    signer = generate_signer()
    good = _signed(signer)
    tampered = _signed(signer).model_copy(update={"status": ExitStatus.DISPUTED})
    unsigned = new_marker(signer.did(), _ORIGIN, ExitType.VOLUNTARY)
    malformed = {"id": "urn:exit:broken", "subject": ""}

    report = verify_markers([good, tampered, unsigned, malformed, good.to_dict()])
    assert report["total"] == 5
    assert report["valid_count"] == 2
    assert not report["all_valid"]

    r = report["results"]
    assert r[0]["valid"] and r[0]["trusted"] and r[0]["errors"] == []
    assert not r[1]["valid"]
    assert r[2]["errors"] == ["Missing proof"]
    assert r[3]["marker_id"] == "urn:exit:broken"
    assert not r[3]["valid"] and r[3]["errors"]
    assert r[4]["valid"]
    assert all("key_standing" not in entry for entry in r)
    _ok("test_mixed_markers_are_judged_independently")


def test_all_valid_report():
    signer = generate_signer()
    report = verify_markers([_signed(signer, f"https://p{i}.example") for i in range(3)])
    assert report["all_valid"]
    assert report["valid_count"] == 3
    _ok("test_all_valid_report")


def test_key_standing_flags():
    store = Storage(":memory:")
    ctrl = Controller.incept(store)
    before_rotation = ctrl.create_marker(_ORIGIN, ExitType.VOLUNTARY)
    ctrl.rotate()
    after_rotation = ctrl.create_marker("https://other.example", ExitType.VOLUNTARY)
    stranger = _signed(generate_signer())

    report = verify_markers([before_rotation, after_rotation, stranger], key_logs=[ctrl.log])
    r = report["results"]
    assert report["all_valid"]
    assert r[0]["key_standing"] == "rotated_out"
    assert r[0]["flags"] == ["KEY_ROTATED_OUT"]
    assert r[0]["trusted"]
    assert r[0]["identifier"] == ctrl.identifier
    assert r[1]["key_standing"] == "current"
    assert r[1]["flags"] == []
    assert r[2]["flags"] == ["KEY_UNKNOWN"]
    assert "identifier" not in r[2]

    ctrl.declare_compromise(reason="key leaked")
    report = verify_markers([before_rotation, after_rotation], key_logs=[ctrl.log.events()])
    r = report["results"]
    assert r[0]["flags"] == ["KEY_ROTATED_OUT"]
    assert r[1]["valid"]
    assert r[1]["flags"] == ["KEY_COMPROMISED"]
    assert not r[1]["trusted"]
    store.close()
    _ok("test_key_standing_flags")


def test_verify_key_log():
    store = Storage(":memory:")
    ctrl = Controller.incept(store)
    ctrl.rotate()

    report = verify_key_log(ctrl.log)
    assert report["log_valid"]
    assert report["identifier"] == ctrl.identifier
    assert report["events_total"] == 2
    assert report["events_applied"] == 2
    assert report["status"] == "rotated"
    assert report["sequence_number"] == 1
    assert report["current_keys"] == [ctrl.current_did]

    events = ctrl.log.events()
    events[1] = events[1].model_copy(update={"timestamp": "2020-01-01T00:00:00.000Z"})
    broken = verify_key_log(events)
    assert not broken["log_valid"]
    assert broken["invalid_at"] == 1
    assert broken["events_applied"] == 1
    assert broken["status"] == "established"
    assert broken["errors"]

    empty = verify_key_log([])
    assert empty["identifier"] is None
    assert empty["status"] == "unborn"
    store.close()
    _ok("test_verify_key_log")


def test_verify_batch():
    signer = generate_signer()
    markers = [_signed(signer, f"https://p{i}.example") for i in range(4)]
    batch = create_batch_exit(markers)

    report = verify_batch(markers, batch)
    assert report["batch_valid"]
    assert report["count_matches"] and report["root_matches"]

    swapped = [markers[1], markers[0], markers[2], markers[3]]
    report = verify_batch(swapped, batch)
    assert not report["batch_valid"]
    assert not report["root_matches"]
    assert report["mismatched_indices"] == [0, 1]

    report = verify_batch(markers[:3], batch)
    assert not report["batch_valid"]
    assert not report["count_matches"]
    _ok("test_verify_batch")


def test_verify_batch_unhashable_marker_is_reported():
    signer = generate_signer()
    markers = [_signed(signer, f"https://p{i}.example") for i in range(3)]
    batch = create_batch_exit(markers)

    broken = markers[1].to_dict()
    broken["sequenceNumber"] = float("nan")
    report = verify_batch([markers[0], broken, markers[2]], batch)
    assert not report["batch_valid"]
    assert not report["root_matches"]
    assert report["mismatched_indices"] == [1]
    assert report["failed_proofs"] == []
    assert any(e.startswith("Marker 1 cannot be hashed") for e in report["errors"])
    _ok("test_verify_batch_unhashable_marker_is_reported")


def test_verify_disputes():
    arbiter, filer = generate_signer(), generate_signer()
    resolved = resolve_dispute(
        create_dispute("urn:exit:m1", "Unpaid", arbiter.did(), filer.did()),
        ResolutionOutcome.UPHELD,
        "Claim upheld",
        arbiter,
    )
    open_dispute = create_dispute("urn:exit:m1", "Data retained", arbiter.did(), filer.did())

    report = verify_disputes([resolved, open_dispute])
    assert report["all_valid"]
    assert report["open"] == 1
    assert report["results"][0]["outcome"] == "upheld"
    assert report["results"][0]["resolution_valid"]
    assert not report["results"][1]["resolved"]

    forged = resolved.model_copy(update={
        "resolution": resolved.resolution.model_copy(update={"outcome": ResolutionOutcome.DISMISSED}),
    })
    report = verify_disputes([forged])
    assert not report["all_valid"]
    assert report["results"][0]["errors"]
    _ok("test_verify_disputes")


def test_auditor_over_storage():
    store = Storage(":memory:")
    alice = Controller.incept(store)
    bob = Controller.incept(store)
    alice.create_marker(_ORIGIN, ExitType.VOLUNTARY)
    alice.rotate()
    alice.create_marker("https://other.example", ExitType.VOLUNTARY)
    bob_marker = bob.create_marker(_ORIGIN, ExitType.VOLUNTARY)

    auditor = Auditor(store)
    everything = auditor.verify_stored_markers()
    assert everything["total"] == 3
    assert everything["all_valid"]
    flags = sorted(f for r in everything["results"] for f in r["flags"])
    assert flags == ["KEY_ROTATED_OUT"]

    bobs = auditor.verify_stored_markers(subject=bob.current_did)
    assert bobs["total"] == 1
    assert bobs["results"][0]["identifier"] == bob.identifier

    assert auditor.verify_identifier(alice.identifier)["log_valid"]
    missing = auditor.verify_identifier("did:keri:nobody")
    assert not missing["log_valid"]
    assert missing["errors"] == ["No key events found for did:keri:nobody"]

    arbiter = generate_signer()
    dispute = create_dispute(bob_marker.id, "Left early", arbiter.did(), alice.current_did)
    store.save_dispute(resolve_dispute(dispute, ResolutionOutcome.SETTLED, "Settled", arbiter))
    disputes = auditor.verify_marker_disputes(bob_marker.id)
    assert disputes["all_valid"]
    assert disputes["open"] == 0
    store.close()
    _ok("test_auditor_over_storage")


def test_schema_validator_applies_to_stored_markers():
    from exit_core.proof import VerificationResult

    def https_only(record):
        origin = record.origin if hasattr(record, "origin") else record.get("origin", "")
        if origin.startswith("https://"):
            return VerificationResult(valid=True, errors=[])
        return VerificationResult(valid=False, errors=["origin must use https"])

    store = Storage(":memory:")
    ctrl = Controller.incept(store)
    ctrl.create_marker("http://insecure.example", ExitType.VOLUNTARY)
    report = Auditor(store, validator=https_only).verify_stored_markers()
    assert not report["all_valid"]
    assert "origin must use https" in report["results"][0]["errors"]
    store.close()
    _ok("test_schema_validator_applies_to_stored_markers")


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    print("=" * 60)
    print("Auditor Tests")
    print("=" * 60)

    tests = [
        test_mixed_markers_are_judged_independently,
        test_all_valid_report,
        test_key_standing_flags,
        test_verify_key_log,
        test_verify_batch,
        test_verify_batch_unhashable_marker_is_reported,
        test_verify_disputes,
        test_auditor_over_storage,
        test_schema_validator_applies_to_stored_markers,
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
