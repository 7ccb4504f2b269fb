"""
exit_auditor — The Auditor Module.

Verification functions for third parties who hold markers, key event
logs, batches or disputes and want to know what they can trust:
- verify_markers():   proof checks over many markers, tolerant of bad ones,
                      with key-standing flags when key event logs are given
- verify_key_log():   replay an identifier's log, report where it breaks
- verify_batch():     recompute a batch root and every inclusion proof
- verify_disputes():  check each dispute's arbiter signature

All of these return result dicts and never raise for bad input; one
malformed record never hides the verdict on the others.

Architecture:
    Auditor → exit_core (proof, keri, batch, dispute) + Storage (read-only)

Key standing flags:
    KEY_COMPROMISED   signer belongs to a generation declared compromised
    KEY_ROTATED_OUT   signer was rotated out before the log's tip
    KEY_UNKNOWN       no supplied log knows the signer
A flag does not make a cryptographically valid proof invalid.  Whether a
marker signed before a compromise declaration is still believed is the
caller's judgement; ``trusted`` is False only for KEY_COMPROMISED.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from exit_core.batch import (
    BatchExit,
    compute_merkle_proof,
    compute_merkle_root,
    leaf_hash,
    verify_batch_membership,
)
from exit_core.dispute import DisputeRecord, dispute_resolution_errors
from exit_core.keri import KeyEventBase, KeyEventLog, KeyStanding, KeyState, key_standing, replay
from exit_core.proof import SchemaValidator, verify_marker
from exit_core.record import ExitMarker
from exit_core.storage import Storage


logger = logging.getLogger(__name__)

FLAG_FOR_STANDING = {
    KeyStanding.COMPROMISED: "KEY_COMPROMISED",
    KeyStanding.ROTATED_OUT: "KEY_ROTATED_OUT",
    KeyStanding.UNKNOWN: "KEY_UNKNOWN",
}


# ---------------------------------------------------------------------------
# Key index
# ---------------------------------------------------------------------------

def _key_index(key_logs: Iterable[Union[KeyEventLog, Sequence[KeyEventBase]]]) -> Dict[str, KeyState]:
    """Map every key ever held by a valid log to that log's tip state."""
    index: Dict[str, KeyState] = {}
    for log in key_logs:
        result = log.replay() if isinstance(log, KeyEventLog) else replay(list(log))
        if result.state is None:
            continue
        if not result.valid:
            logger.warning(
                "Key log for %s is invalid at index %s; using its valid prefix",
                result.state.did, result.invalid_at,
            )
        state = result.state
        for did in (*state.current_keys, *state.retired_keys, *state.compromised_keys):
            index[did] = state
    return index


# ---------------------------------------------------------------------------
# Markers
# ---------------------------------------------------------------------------

def verify_markers(
    markers: Sequence[Union[ExitMarker, dict]],
    key_logs: Optional[Iterable[Union[KeyEventLog, Sequence[KeyEventBase]]]] = None,
    validator: Optional[SchemaValidator] = None,
    verbose: bool = False,
) -> Dict[str, Any]:
    """Verify each marker's proof independently.

    Args:
        markers:   ExitMarker objects or their wire dicts.
        key_logs:  Optional key event logs (KeyEventLog or event lists)
                   for the identifiers that signed the markers.
        validator: Optional schema validator run alongside each proof check.
        verbose:   Report low-level signature failure detail.

    Returns:
        Dict with all_valid, total, valid_count, and one result per marker
        (index, marker_id, valid, trusted, errors, flags).
    """
    index = _key_index(key_logs) if key_logs is not None else None
    results: List[Dict[str, Any]] = []

    for i, raw in enumerate(markers):
        entry: Dict[str, Any] = {
            "index": i,
            "marker_id": None,
            "valid": False,
            "trusted": False,
            "errors": [],
            "flags": [],
        }
        results.append(entry)

        try:
            marker = raw if isinstance(raw, ExitMarker) else ExitMarker.model_validate(raw)
        except PydanticValidationError as e:
            entry["marker_id"] = raw.get("id") if isinstance(raw, dict) else None
            entry["errors"] = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            continue

        entry["marker_id"] = marker.id
        outcome = verify_marker(marker, verbose=verbose, validator=validator)
        entry["valid"] = outcome.valid
        entry["errors"] = list(outcome.errors)

        if index is not None and marker.proof is not None:
            signer = marker.proof.verification_method
            state = index.get(signer)
            standing = key_standing(state, signer) if state else KeyStanding.UNKNOWN
            entry["key_standing"] = standing.value
            if state is not None:
                entry["identifier"] = state.did
            flag = FLAG_FOR_STANDING.get(standing)
            if flag:
                entry["flags"].append(flag)

        entry["trusted"] = entry["valid"] and "KEY_COMPROMISED" not in entry["flags"]

    valid_count = sum(1 for r in results if r["valid"])
    return {
        "all_valid": valid_count == len(results),
        "total": len(results),
        "valid_count": valid_count,
        "results": results,
    }


# ---------------------------------------------------------------------------
# Key event logs
# ---------------------------------------------------------------------------

def verify_key_log(events: Union[KeyEventLog, Sequence[KeyEventBase]]) -> Dict[str, Any]:
    """Replay a key event log from sequence 0.

    Returns:
        Dict with log_valid, identifier, events_total, events_applied,
        invalid_at, errors, and the status/sequence reached.
    """
    event_list = events.events() if isinstance(events, KeyEventLog) else list(events)
    result = replay(event_list)
    state = result.state
    return {
        "log_valid": result.valid,
        "identifier": event_list[0].identifier if event_list else None,
        "events_total": len(event_list),
        "events_applied": result.events_applied,
        "invalid_at": result.invalid_at,
        "errors": list(result.errors),
        "status": state.status.value if state else "unborn",
        "sequence_number": state.sequence_number if state else None,
        "current_keys": list(state.current_keys) if state else [],
    }


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------

def verify_batch(
    markers: Sequence[Union[ExitMarker, dict]],
    batch: BatchExit,
) -> Dict[str, Any]:
    """Check that ``batch`` commits to exactly ``markers``, in order.

    Returns:
        Dict with batch_valid, count_matches, root_matches,
        mismatched_indices (leaf differs from the marker's hash) and
        failed_proofs (inclusion proof does not reach the stated root).
    """
    result: Dict[str, Any] = {
        "batch_valid": False,
        "count_matches": len(markers) == batch.count == len(batch.leaves),
        "root_matches": False,
        "mismatched_indices": [],
        "failed_proofs": [],
    }

    errors: List[str] = []
    leaves: List[Optional[str]] = []
    for i, m in enumerate(markers):
        try:
            leaves.append(leaf_hash(m))
        except (TypeError, ValueError) as e:
            leaves.append(None)
            errors.append(f"Marker {i} cannot be hashed: {e}")

    if leaves and None not in leaves:
        try:
            result["root_matches"] = compute_merkle_root(leaves) == batch.merkle_root
        except ValueError as e:
            errors.append(str(e))
    if errors:
        result["errors"] = errors

    for i, leaf in enumerate(leaves):
        if leaf is None or i >= len(batch.leaves) or batch.leaves[i] != leaf:
            result["mismatched_indices"].append(i)
            continue
        try:
            proof = compute_merkle_proof(batch, i)
        except ValueError:
            result["failed_proofs"].append(i)
            continue
        if not verify_batch_membership(proof, leaf, batch.merkle_root):
            result["failed_proofs"].append(i)

    result["batch_valid"] = (
        result["count_matches"]
        and result["root_matches"]
        and not result["mismatched_indices"]
        and not result["failed_proofs"]
    )
    return result


# ---------------------------------------------------------------------------
# Disputes
# ---------------------------------------------------------------------------

def verify_disputes(
    disputes: Sequence[DisputeRecord],
    verbose: bool = False,
) -> Dict[str, Any]:
    """Check every dispute's resolution signature.

    Unresolved disputes are reported as open, not as failures.
    """
    results: List[Dict[str, Any]] = []
    for d in disputes:
        errors = dispute_resolution_errors(d, verbose) if d.is_resolved else []
        results.append({
            "dispute_id": d.id,
            "marker_id": d.marker_id,
            "resolved": d.is_resolved,
            "outcome": d.resolution.outcome.value if d.resolution else None,
            "resolution_valid": d.is_resolved and not errors,
            "errors": errors,
        })

    return {
        "all_valid": all(r["resolution_valid"] for r in results if r["resolved"]),
        "open": sum(1 for r in results if not r["resolved"]),
        "results": results,
    }


# ---------------------------------------------------------------------------
# Auditor over storage
# ---------------------------------------------------------------------------

class Auditor:
    """Read-only verifier over a Storage backend.

    Args:
        storage:   Storage backend holding markers, key events, disputes.
        validator: Optional schema validator applied to every marker.
    """

    def __init__(
        self,
        storage: Storage,
        validator: Optional[SchemaValidator] = None,
    ) -> None:
        self.storage = storage
        self.validator = validator

    def _stored_logs(self) -> List[KeyEventLog]:
        return [
            KeyEventLog.from_events(self.storage.get_key_events(identifier))
            for identifier in self.storage.list_identifiers()
        ]

    def verify_identifier(self, identifier: str) -> Dict[str, Any]:
        """Replay one identifier's stored key event log."""
        events = self.storage.get_key_events(identifier)
        if not events:
            return {
                "log_valid": False,
                "identifier": identifier,
                "events_total": 0,
                "events_applied": 0,
                "invalid_at": None,
                "errors": [f"No key events found for {identifier}"],
                "status": "unborn",
                "sequence_number": None,
                "current_keys": [],
            }
        return verify_key_log(events)

    def verify_stored_markers(
        self,
        subject: Optional[str] = None,
        verbose: bool = False,
    ) -> Dict[str, Any]:
        """Verify stored markers (optionally one subject's) against stored logs."""
        markers = self.storage.list_markers(subject)
        return verify_markers(
            markers,
            key_logs=self._stored_logs(),
            validator=self.validator,
            verbose=verbose,
        )

    def verify_marker_disputes(self, marker_id: str) -> Dict[str, Any]:
        """Check every stored dispute filed against ``marker_id``."""
        return verify_disputes(self.storage.get_disputes_for_marker(marker_id))
