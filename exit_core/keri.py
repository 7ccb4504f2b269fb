"""
exit_core/keri.py — Key-State Machine (KERI-style pre-rotation)

An identifier's key history is an append-only log of signed events.
Current key state is a pure fold over that log:

    UNBORN ──inception──▶ ESTABLISHED ──rotation──▶ ROTATED(n) ──┐
                              │                        ▲  │      │ rotation
                              │                        └──┘◀─────┘
                              └──────compromise──────▶ COMPROMISED (terminal)

Pre-rotation (commit-reveal):
    Inception publishes keys [k0] and next_key_digests [H(k1)]; k1 itself
    stays private.  A rotation reveals k1 and is accepted only if
    H(k1) matches the committed digest, the event is signed by a key
    authorized at the tip, and it extends exactly the tip (prior_sequence
    and prior_digest).  Stealing k0 therefore does not let an attacker
    rotate the identifier to a key of their choosing.

Compromise:
    A compromise event declares the current key generation compromised,
    optionally naming a successor identifier (a fresh inception).
    History is never rewritten; the generation is simply untrusted from
    that point on, and the log accepts no further events.  The keyCompromise
    marker that links old to new is signed by the successor's current key.

Replay halts at the first event that violates any rule and marks the
log invalid from that index.  Events are never skipped.

Single writer: KeyEventLog serializes its own appends with a lock.
Callers sharing one identifier across processes must serialize
externally (storage enforces a unique (identifier, sequence) key).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Dict, Iterable, List, Literal, Optional, Sequence, Union

from pydantic import Field, TypeAdapter

from .canonical import content_hash
from .crypto import Algorithm, sha256_hex
from .did import is_did, multicodec_key_bytes
from .errors import CeremonyError, VerificationError
from .proof import (
    KEY_EVENT_DOMAIN,
    MARKER_DOMAIN,
    VerificationResult,
    check_proof,
    create_proof,
)
from .record import (
    DataIntegrityProof,
    ExitMarker,
    ExitMetadata,
    ExitStatus,
    ExitType,
    Lineage,
    WireModel,
    new_marker,
    utc_now_iso,
    validate_record_size,
)
from .signer import Signer, generate_signer


logger = logging.getLogger(__name__)

KERI_DID_PREFIX = "did:keri:"


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------

class KeyStatus(str, Enum):
    """Lifecycle of an identifier's key state."""
    UNBORN = "unborn"
    ESTABLISHED = "established"
    ROTATED = "rotated"
    COMPROMISED = "compromised"


class KeyStanding(str, Enum):
    """How a verifier should regard one key of an identifier."""
    CURRENT = "current"
    ROTATED_OUT = "rotated_out"
    COMPROMISED = "compromised"
    UNKNOWN = "unknown"


_TRANSITIONS: Dict[KeyStatus, List[KeyStatus]] = {
    KeyStatus.UNBORN: [KeyStatus.ESTABLISHED],
    KeyStatus.ESTABLISHED: [KeyStatus.ROTATED, KeyStatus.COMPROMISED],
    KeyStatus.ROTATED: [KeyStatus.ROTATED, KeyStatus.COMPROMISED],
    KeyStatus.COMPROMISED: [],
}


# ---------------------------------------------------------------------------
# Commitments
# ---------------------------------------------------------------------------

def digest_key(did: str) -> str:
    """Commitment digest of a public key: SHA-256 of its multicodec-tagged bytes.

    Hashing the tagged bytes (not the bare key) binds the algorithm into
    the commitment.
    """
    return sha256_hex(multicodec_key_bytes(did))


def commit_next_key(did: str) -> str:
    """Commitment to a future key (alias of digest_key)."""
    return digest_key(did)


def verify_next_key_commitment(did: str, commitment: str) -> bool:
    """True if the key's digest equals the commitment."""
    try:
        return digest_key(did) == commitment
    except ValueError:
        return False


def derive_identifier(first_key_did: str) -> str:
    """Self-certifying identifier derived from the inception key."""
    return f"{KERI_DID_PREFIX}{digest_key(first_key_did)[:32]}"


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class KeyEventBase(WireModel):
    identifier: str
    sequence: int = Field(..., ge=0)
    timestamp: str
    proof: Optional[DataIntegrityProof] = None

    def digest(self) -> str:
        """Digest of the full event (including its proof). Chains the log."""
        return content_hash(self.to_dict())


class InceptionEvent(KeyEventBase):
    """Genesis of a key event log."""
    type: Literal["inception"] = "inception"
    keys: List[str] = Field(..., min_length=1)
    next_key_digests: List[str] = Field(default_factory=list)
    non_rotatable: bool = False
    witnesses: Optional[List[str]] = None


class RotationEvent(KeyEventBase):
    """Reveals pre-committed keys and commits to the next ones."""
    type: Literal["rotation"] = "rotation"
    prior_sequence: int = Field(..., ge=0)
    prior_digest: str
    keys: List[str] = Field(..., min_length=1)
    next_key_digests: List[str] = Field(default_factory=list)


class CompromiseEvent(KeyEventBase):
    """Declares the current key generation compromised."""
    type: Literal["compromise"] = "compromise"
    prior_sequence: int = Field(..., ge=0)
    prior_digest: str
    compromised_keys: List[str] = Field(..., min_length=1)
    successor: Optional[str] = None
    reason: Optional[str] = None


KeyEvent = Annotated[
    Union[InceptionEvent, RotationEvent, CompromiseEvent],
    Field(discriminator="type"),
]

_KEY_EVENT_ADAPTER = TypeAdapter(KeyEvent)

_TARGET_STATUS = {
    "inception": KeyStatus.ESTABLISHED,
    "rotation": KeyStatus.ROTATED,
    "compromise": KeyStatus.COMPROMISED,
}


def parse_key_event(data: dict) -> KeyEventBase:
    """Parse a wire dict into the matching event model."""
    return _KEY_EVENT_ADAPTER.validate_python(data)


# ---------------------------------------------------------------------------
# Key state
# ---------------------------------------------------------------------------

class KeyState(WireModel):
    """Key state at the tip of a log."""
    did: str
    current_keys: List[str]
    next_key_digests: List[str]
    sequence_number: int = Field(default=0, ge=0)
    status: KeyStatus = KeyStatus.ESTABLISHED
    non_rotatable: bool = False
    tip_digest: str
    retired_keys: List[str] = Field(default_factory=list)
    compromised_keys: List[str] = Field(default_factory=list)
    successor: Optional[str] = None
    witnesses: Optional[List[str]] = None


def valid_transitions(state: Optional[KeyState]) -> List[KeyStatus]:
    """Statuses reachable from ``state`` (None means UNBORN)."""
    if state is None:
        return list(_TRANSITIONS[KeyStatus.UNBORN])
    allowed = list(_TRANSITIONS[state.status])
    if state.non_rotatable:
        allowed = [s for s in allowed if s != KeyStatus.ROTATED]
    return allowed


def _status_of(state: Optional[KeyState]) -> KeyStatus:
    return KeyStatus.UNBORN if state is None else state.status


# ---------------------------------------------------------------------------
# Event construction
# ---------------------------------------------------------------------------

def _sign_event(event: KeyEventBase, signer: Signer) -> KeyEventBase:
    proof = create_proof(event.to_dict(), signer, KEY_EVENT_DOMAIN, created=event.timestamp)
    return event.model_copy(update={"proof": proof})


def create_inception(
    signer: Signer,
    next_key_digests: Sequence[str],
    *,
    non_rotatable: bool = False,
    additional_keys: Sequence[str] = (),
    witnesses: Optional[Sequence[str]] = None,
    timestamp: Optional[str] = None,
) -> InceptionEvent:
    """Create a signed inception event for ``signer``'s key.

    ``next_key_digests`` are commitments (digest_key) to the keys that
    will replace the current ones.  They must be non-empty unless the
    identifier is declared non-rotatable.
    """
    keys = [signer.did(), *additional_keys]
    event = InceptionEvent(
        identifier=derive_identifier(keys[0]),
        sequence=0,
        timestamp=timestamp or utc_now_iso(),
        keys=keys,
        next_key_digests=list(next_key_digests),
        non_rotatable=non_rotatable,
        witnesses=list(witnesses) if witnesses is not None else None,
    )
    return _sign_event(event, signer)


def create_rotation(
    state: KeyState,
    signer: Signer,
    new_keys: Sequence[str],
    next_key_digests: Sequence[str],
    *,
    timestamp: Optional[str] = None,
) -> RotationEvent:
    """Create a rotation extending ``state``'s tip, signed by ``signer``.

    Nothing is validated here; KeyEventLog.append() accepts or rejects.
    """
    event = RotationEvent(
        identifier=state.did,
        sequence=state.sequence_number + 1,
        prior_sequence=state.sequence_number,
        prior_digest=state.tip_digest,
        timestamp=timestamp or utc_now_iso(),
        keys=list(new_keys),
        next_key_digests=list(next_key_digests),
    )
    return _sign_event(event, signer)


def create_compromise(
    state: KeyState,
    signer: Signer,
    *,
    successor: Optional[str] = None,
    reason: Optional[str] = None,
    timestamp: Optional[str] = None,
) -> CompromiseEvent:
    """Create a compromise declaration for the current key generation."""
    event = CompromiseEvent(
        identifier=state.did,
        sequence=state.sequence_number + 1,
        prior_sequence=state.sequence_number,
        prior_digest=state.tip_digest,
        timestamp=timestamp or utc_now_iso(),
        compromised_keys=list(state.current_keys),
        successor=successor,
        reason=reason,
    )
    return _sign_event(event, signer)


# ---------------------------------------------------------------------------
# Event application (one step of the fold)
# ---------------------------------------------------------------------------

def _signature_errors(event: KeyEventBase, authorized_keys: Iterable[str]) -> List[str]:
    authorized = set(authorized_keys)
    vm = event.proof.verification_method if event.proof is not None else None
    expected = vm if vm in authorized else None
    errors = check_proof(event.to_dict(), event.proof, expected, KEY_EVENT_DOMAIN)
    if event.proof is not None and expected is None:
        errors = [
            "signing key is not authorized at this point in the log"
            if e.startswith("verificationMethod does not match") else e
            for e in errors
        ]
    return errors


def _tip_errors(state: KeyState, event: Union[RotationEvent, CompromiseEvent]) -> List[str]:
    errors = []
    if event.identifier != state.did:
        errors.append(f"event identifier {event.identifier} != log identifier {state.did}")
    if event.prior_sequence != state.sequence_number:
        errors.append(
            f"event extends sequence {event.prior_sequence} but the tip is "
            f"{state.sequence_number}"
        )
    if event.sequence != event.prior_sequence + 1:
        errors.append(
            f"sequence {event.sequence} does not follow prior sequence "
            f"{event.prior_sequence}"
        )
    if event.prior_digest != state.tip_digest:
        errors.append("prior_digest does not match the tip event")
    return errors


def _require_transition(state: Optional[KeyState], event: KeyEventBase) -> KeyStatus:
    target = _TARGET_STATUS[event.type]
    allowed = valid_transitions(state)
    if target not in allowed:
        raise CeremonyError(
            _status_of(state).value,
            target.value,
            [s.value for s in allowed],
        )
    return target


def _apply_inception(event: InceptionEvent) -> KeyState:
    errors = []
    if event.sequence != 0:
        errors.append(f"inception must have sequence 0, got {event.sequence}")
    try:
        if event.identifier != derive_identifier(event.keys[0]):
            errors.append("identifier is not derived from the inception key")
        for key in event.next_key_digests:
            if len(key) != 64:
                errors.append(f"malformed next key digest: {key!r}")
    except ValueError as e:
        errors.append(f"undecodable inception key: {e}")
    if event.non_rotatable and event.next_key_digests:
        errors.append("non-rotatable inception must not commit to next keys")
    if not event.non_rotatable and not event.next_key_digests:
        errors.append("inception must commit to next keys unless declared non-rotatable")
    errors.extend(_signature_errors(event, event.keys))
    if errors:
        raise VerificationError(f"Invalid inception event: {'; '.join(errors)}")

    return KeyState(
        did=event.identifier,
        current_keys=list(event.keys),
        next_key_digests=list(event.next_key_digests),
        sequence_number=0,
        status=KeyStatus.ESTABLISHED,
        non_rotatable=event.non_rotatable,
        tip_digest=event.digest(),
        witnesses=event.witnesses,
    )


def _apply_rotation(state: KeyState, event: RotationEvent) -> KeyState:
    errors = _tip_errors(state, event)

    committed = set(state.next_key_digests)
    for key in event.keys:
        if not any(verify_next_key_commitment(key, c) for c in committed):
            errors.append(f"revealed key {key} does not match a committed digest")
    if len(set(event.keys)) != len(event.keys):
        errors.append("revealed keys contain duplicates")
    if not event.next_key_digests:
        errors.append("rotation must commit to next keys")

    errors.extend(_signature_errors(event, state.current_keys))
    if errors:
        raise VerificationError(
            f"Invalid rotation at sequence {event.sequence}: {'; '.join(errors)}"
        )

    retired = list(state.retired_keys) + [
        k for k in state.current_keys if k not in event.keys
    ]
    return state.model_copy(update={
        "current_keys": list(event.keys),
        "next_key_digests": list(event.next_key_digests),
        "sequence_number": event.sequence,
        "status": KeyStatus.ROTATED,
        "tip_digest": event.digest(),
        "retired_keys": retired,
    })


def _apply_compromise(state: KeyState, event: CompromiseEvent) -> KeyState:
    errors = _tip_errors(state, event)
    if set(event.compromised_keys) != set(state.current_keys):
        errors.append("compromised_keys must be exactly the current key generation")
    if event.successor is not None and not is_did(event.successor):
        errors.append(f"successor is not a DID: {event.successor!r}")
    errors.extend(_signature_errors(event, state.current_keys))
    if errors:
        raise VerificationError(
            f"Invalid compromise declaration at sequence {event.sequence}: "
            f"{'; '.join(errors)}"
        )

    return state.model_copy(update={
        "sequence_number": event.sequence,
        "status": KeyStatus.COMPROMISED,
        "tip_digest": event.digest(),
        "compromised_keys": list(state.current_keys),
        "successor": event.successor,
    })


def apply_event(state: Optional[KeyState], event: KeyEventBase) -> KeyState:
    """Apply one event to a key state (None = UNBORN).

    Raises:
        CeremonyError:     Event type is not a legal transition from here.
        VerificationError: Event breaks a sequence, digest, commitment or
                           signature rule.
    """
    _require_transition(state, event)
    if isinstance(event, InceptionEvent):
        return _apply_inception(event)
    if isinstance(event, RotationEvent):
        return _apply_rotation(state, event)
    if isinstance(event, CompromiseEvent):
        return _apply_compromise(state, event)
    raise TypeError(f"Unknown key event type: {type(event).__name__}")


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------

@dataclass
class ReplayResult:
    """Outcome of folding a log from sequence 0."""
    state: Optional[KeyState]
    valid: bool
    events_applied: int
    invalid_at: Optional[int] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "events_applied": self.events_applied,
            "invalid_at": self.invalid_at,
            "errors": list(self.errors),
            "state": self.state.to_dict() if self.state is not None else None,
        }


def replay(events: Sequence[KeyEventBase]) -> ReplayResult:
    """Fold events in order. Halts at the first violation; never skips.

    ``state`` is the state reached by the valid prefix.
    """
    state: Optional[KeyState] = None
    for index, event in enumerate(events):
        try:
            state = apply_event(state, event)
        except (VerificationError, CeremonyError) as e:
            logger.warning(
                "Key event log invalid at index %d (%s): %s",
                index, getattr(event, "type", "?"), e,
            )
            return ReplayResult(
                state=state,
                valid=False,
                events_applied=index,
                invalid_at=index,
                errors=[str(e)],
            )
    return ReplayResult(state=state, valid=True, events_applied=len(events))


# ---------------------------------------------------------------------------
# Key event log
# ---------------------------------------------------------------------------

class KeyEventLog:
    """Append-only, single-writer log of key events for one identifier.

    append() validates the event against the tip and rejects it (raising)
    if it is out of sequence, wrongly signed, reveals an uncommitted key,
    or is an illegal transition.  Accepted events are never modified or
    removed.
    """

    def __init__(self) -> None:
        self._events: List[KeyEventBase] = []
        self._state: Optional[KeyState] = None
        self._invalid_at: Optional[int] = None
        self._lock = threading.Lock()

    @classmethod
    def from_events(cls, events: Iterable[KeyEventBase]) -> "KeyEventLog":
        """Rebuild a log from persisted events.

        Invalid entries are kept (history is never truncated); the log is
        then marked invalid from the first bad index and refuses appends.
        """
        log = cls()
        log._events = list(events)
        result = replay(log._events)
        log._state = result.state
        log._invalid_at = result.invalid_at
        return log

    @property
    def identifier(self) -> Optional[str]:
        if not self._events:
            return None
        return self._events[0].identifier

    @property
    def tip(self) -> Optional[KeyEventBase]:
        return self._events[-1] if self._events else None

    def append(self, event: KeyEventBase) -> KeyState:
        """Validate ``event`` against the tip and append it.

        Returns the new key state.

        Raises:
            CeremonyError:     Illegal transition (e.g. rotate after compromise).
            VerificationError: Bad sequence/digest/commitment/signature, or
                               the log is already invalid.
        """
        with self._lock:
            if self._invalid_at is not None:
                raise VerificationError(
                    f"Key event log is invalid from index {self._invalid_at}; "
                    f"refusing to append"
                )
            try:
                new_state = apply_event(self._state, event)
            except (VerificationError, CeremonyError) as e:
                logger.warning(
                    "Rejected %s event for %s: %s",
                    event.type, event.identifier, e,
                )
                raise
            self._events.append(event)
            self._state = new_state
            logger.debug(
                "Accepted %s event for %s at sequence %d",
                event.type, event.identifier, event.sequence,
            )
            return new_state

    def events(self) -> List[KeyEventBase]:
        """Copy of all events, in order."""
        return list(self._events)

    def replay(self) -> ReplayResult:
        """Fold the log from sequence 0."""
        return replay(self._events)

    def current_state(self) -> KeyState:
        """Key state at the tip, recomputed by replay.

        Raises:
            VerificationError: If the log is empty or invalid.
        """
        result = self.replay()
        if not result.valid:
            raise VerificationError(
                f"Key event log invalid at index {result.invalid_at}: "
                f"{'; '.join(result.errors)}"
            )
        if result.state is None:
            raise VerificationError("Empty event log")
        return result.state

    @property
    def is_valid(self) -> bool:
        return self._invalid_at is None

    def __len__(self) -> int:
        return len(self._events)


# ---------------------------------------------------------------------------
# Verifier helpers
# ---------------------------------------------------------------------------

def key_standing(state: KeyState, did: str) -> KeyStanding:
    """How a verifier should regard ``did`` given an identifier's key state."""
    if did in state.compromised_keys:
        return KeyStanding.COMPROMISED
    if did in state.current_keys:
        return KeyStanding.CURRENT
    if did in state.retired_keys:
        return KeyStanding.ROTATED_OUT
    return KeyStanding.UNKNOWN


def is_key_compromised(state: KeyState, marker: ExitMarker) -> bool:
    """True if the marker was signed by a key declared compromised."""
    if marker.proof is None:
        return False
    return key_standing(state, marker.proof.verification_method) == KeyStanding.COMPROMISED


# ---------------------------------------------------------------------------
# Pre-rotation helpers
# ---------------------------------------------------------------------------

@dataclass
class PreRotatedKeys:
    """A current signer plus the pre-committed signer that will replace it."""
    current: Signer
    next: Signer
    next_key_digest: str


def generate_pre_rotated_keys(algorithm: Algorithm = Algorithm.ED25519) -> PreRotatedKeys:
    """Generate current keys and commit to the next ones."""
    current = generate_signer(algorithm)
    nxt = generate_signer(algorithm)
    return PreRotatedKeys(current=current, next=nxt, next_key_digest=digest_key(nxt.did()))


def rotate_keys(
    log: KeyEventLog,
    current_signer: Signer,
    next_signer: Signer,
    new_next_key_digest: str,
) -> RotationEvent:
    """Rotate to the pre-committed ``next_signer`` and commit to a new next key.

    Returns the accepted rotation event.
    """
    state = log.current_state()
    event = create_rotation(
        state, current_signer, [next_signer.did()], [new_next_key_digest]
    )
    log.append(event)
    return event


# ---------------------------------------------------------------------------
# Compromise linking
# ---------------------------------------------------------------------------

class CompromiseLink(WireModel):
    """Associates markers signed by a compromised generation with its declaration."""
    identifier: str
    compromise_sequence: int
    compromise_digest: str
    compromised_keys: List[str]
    successor: Optional[str] = None
    affected_marker_ids: List[str]
    timestamp: str


def link_compromised_markers(
    event: CompromiseEvent,
    affected_marker_ids: Iterable[str],
) -> CompromiseLink:
    """Record which markers were signed by the compromised key generation."""
    return CompromiseLink(
        identifier=event.identifier,
        compromise_sequence=event.sequence,
        compromise_digest=event.digest(),
        compromised_keys=list(event.compromised_keys),
        successor=event.successor,
        affected_marker_ids=list(affected_marker_ids),
        timestamp=utc_now_iso(),
    )


def create_compromise_marker(
    compromised_did: str,
    successor: str,
    successor_signer: Signer,
    *,
    origin: str = "did:keri:key-event-log",
    reason: Optional[str] = None,
) -> ExitMarker:
    """Build a keyCompromise marker linking a compromised identity to its successor.

    The marker is signed by the successor's current key, never by the
    compromised one, so its subject and verificationMethod differ.

    Raises:
        SigningError: If the successor signer cannot sign.
    """
    marker = new_marker(
        compromised_did,
        origin,
        ExitType.KEY_COMPROMISE,
        status=ExitStatus.UNVERIFIED,
        lineage=Lineage(predecessor=compromised_did, successor=successor),
        metadata=ExitMetadata(
            reason=reason or "Key compromise declared; identity continues at successor.",
            tags=["key-compromise", "rotation"],
        ),
    )
    proof = create_proof(marker.to_dict(), successor_signer, MARKER_DOMAIN)
    return marker.model_copy(update={"proof": proof})


def _successor_keys(
    successor: str, successor_log: Optional[KeyEventLog]
) -> Optional[List[str]]:
    """Keys allowed to sign for ``successor``, or None if unknown."""
    if successor_log is not None:
        result = successor_log.replay()
        if not result.valid or result.state is None:
            return None
        if successor_log.identifier != successor:
            return None
        return list(result.state.current_keys)
    if successor.startswith("did:key:"):
        return [successor]
    return None


def verify_compromise_recovery(
    marker: ExitMarker,
    log: KeyEventLog,
    successor_log: Optional[KeyEventLog] = None,
    verbose: bool = False,
) -> VerificationResult:
    """Check a keyCompromise marker against the identifier's event log.

    The marker must be of type keyCompromise, its subject must be the
    identifier or one of its compromised keys, and its lineage successor
    must match the successor named in the compromise event.  Its proof
    must verify under the exit-marker domain and be made by one of the
    successor's current keys: the successor itself when it is a did:key,
    otherwise a key from ``successor_log``.
    """
    errors: List[str] = []
    result = log.replay()
    if not result.valid or result.state is None:
        return VerificationResult(valid=False, errors=["Key event log is invalid or empty"])
    state = result.state

    if marker.exit_type != ExitType.KEY_COMPROMISE:
        errors.append(f"Marker exit type is {marker.exit_type.value}, not keyCompromise")
    if state.status != KeyStatus.COMPROMISED:
        errors.append("Key event log contains no compromise declaration")
    if marker.subject != state.did and marker.subject not in state.compromised_keys:
        errors.append("Marker subject is not the compromised identifier or key")
    successor = marker.lineage.successor if marker.lineage else None
    if not successor:
        errors.append("Marker names no successor")
    elif successor != state.successor:
        errors.append("Marker successor does not match the compromise declaration")

    try:
        validate_record_size(marker)
    except ValueError as e:
        errors.append(str(e))

    proof = marker.proof
    if proof is None:
        errors.append("Missing proof")
    else:
        authorized = _successor_keys(successor, successor_log) if successor else None
        if authorized is None:
            errors.append("Successor key state is unavailable; cannot check the signer")
        elif proof.verification_method not in authorized:
            errors.append("Marker is not signed by the successor's current key")
        errors.extend(
            check_proof(
                marker.to_dict(), proof, proof.verification_method, MARKER_DOMAIN, verbose
            )
        )

    return VerificationResult(valid=not errors, errors=errors)
