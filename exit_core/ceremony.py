"""
exit_core/ceremony.py — Exit Ceremony State Machine

A pure, synchronous state machine for one departure.  No I/O and no
storage, just state transitions plus intent, marker and witness
signatures.

Paths:
    Full cooperative:  ALIVE → INTENT → SNAPSHOT → OPEN → FINAL → DEPARTED
    Contested:         ALIVE → INTENT → SNAPSHOT → OPEN → CONTESTED → FINAL → DEPARTED
    Unilateral:        ALIVE → INTENT → SNAPSHOT → FINAL → DEPARTED
    Emergency:         ALIVE → FINAL → DEPARTED

Any other move raises CeremonyError carrying the current state, the
attempted state and the legal next states.

Signatures:
    intent   — the subject signs {subject, origin, timestamp, exitType}
               under INTENT_DOMAIN
    marker   — attach_proof() under MARKER_DOMAIN
    witness  — a third party co-signs the signed marker (proof excluded)
               under WITNESS_DOMAIN
"""

from enum import Enum
import logging
from typing import Dict, List, Optional, Tuple

from .errors import CeremonyError, ValidationError
from .proof import MARKER_DOMAIN, attach_proof, check_proof, create_proof
from .record import DataIntegrityProof, ExitMarker, ExitType, WireModel, utc_now_iso
from .signer import Signer


logger = logging.getLogger(__name__)

INTENT_DOMAIN = "exit-intent-v1.1:"
WITNESS_DOMAIN = "exit-witness-v1.1:"


# ---------------------------------------------------------------------------
# Ceremony state
# ---------------------------------------------------------------------------

class CeremonyState(str, Enum):
    """Lifecycle states of an exit ceremony."""
    ALIVE = "alive"            # nothing declared yet
    INTENT = "intent"          # signed intent published
    SNAPSHOT = "snapshot"      # state hash captured
    OPEN = "open"              # challenge window open
    CONTESTED = "contested"    # a challenge was raised in the window
    FINAL = "final"            # marker signed; witnesses may co-sign
    DEPARTED = "departed"      # terminal


_TRANSITIONS: Dict[CeremonyState, List[CeremonyState]] = {
    CeremonyState.ALIVE: [CeremonyState.INTENT, CeremonyState.FINAL],
    CeremonyState.INTENT: [CeremonyState.SNAPSHOT],
    CeremonyState.SNAPSHOT: [CeremonyState.OPEN, CeremonyState.FINAL],
    CeremonyState.OPEN: [CeremonyState.CONTESTED, CeremonyState.FINAL],
    CeremonyState.CONTESTED: [CeremonyState.FINAL],
    CeremonyState.FINAL: [CeremonyState.DEPARTED],
    CeremonyState.DEPARTED: [],
}


def valid_transitions(state: CeremonyState) -> List[CeremonyState]:
    """Legal next states from ``state``."""
    return list(_TRANSITIONS[CeremonyState(state)])


class ExitIntent(WireModel):
    """Subject-signed declaration that a departure is coming."""
    subject: str
    origin: str
    timestamp: str
    exit_type: ExitType
    proof: Optional[DataIntegrityProof] = None


def verify_intent(intent: ExitIntent) -> List[str]:
    """Errors in an intent's signature (empty list means valid)."""
    return check_proof(intent.to_dict(), intent.proof, intent.subject, INTENT_DOMAIN)


def verify_witness(
    marker: ExitMarker,
    witness_proof: DataIntegrityProof,
    witness_did: Optional[str] = None,
) -> List[str]:
    """Errors in a witness co-signature over ``marker``.

    ``witness_did`` pins the expected witness; by default the proof's own
    verificationMethod is taken as the witness identity.
    """
    expected = witness_did or witness_proof.verification_method
    return check_proof(marker.to_dict(), witness_proof, expected, WITNESS_DOMAIN)


# ---------------------------------------------------------------------------
# Ceremony
# ---------------------------------------------------------------------------

class ExitCeremony:
    """State machine for one subject's departure from one origin.

    Args:
        signer: The departing subject's signer.  Its DID is the subject
                of the intent and of the marker.
    """

    def __init__(self, signer: Signer) -> None:
        self._signer = signer
        self._state = CeremonyState.ALIVE
        self._exit_type: Optional[ExitType] = None
        self._intent: Optional[ExitIntent] = None
        self._marker: Optional[ExitMarker] = None
        self._witnesses: List[DataIntegrityProof] = []
        self._history: List[Tuple[CeremonyState, str]] = [
            (CeremonyState.ALIVE, utc_now_iso())
        ]

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> CeremonyState:
        return self._state

    @property
    def subject(self) -> str:
        return self._signer.did()

    @property
    def intent(self) -> Optional[ExitIntent]:
        return self._intent

    @property
    def marker(self) -> Optional[ExitMarker]:
        return self._marker

    @property
    def witnesses(self) -> List[DataIntegrityProof]:
        """Witness co-signatures collected so far (copy)."""
        return list(self._witnesses)

    @property
    def history(self) -> List[Tuple[CeremonyState, str]]:
        """(state, entered_at) pairs, oldest first."""
        return list(self._history)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def declare_intent(self, origin: str, exit_type: ExitType) -> ExitIntent:
        """Sign an intent to exit ``origin``.

        Emergency exits publish the intent but stay ALIVE; the next step
        is sign_marker(), which jumps straight to FINAL.
        """
        exit_type = ExitType(exit_type)
        if exit_type != ExitType.EMERGENCY:
            self._transition(CeremonyState.INTENT)
        elif self._state != CeremonyState.ALIVE:
            self._reject(CeremonyState.INTENT)

        self._exit_type = exit_type
        unsigned = ExitIntent(
            subject=self.subject,
            origin=origin,
            timestamp=utc_now_iso(),
            exit_type=exit_type,
        )
        proof = create_proof(unsigned.to_dict(), self._signer, INTENT_DOMAIN,
                             created=unsigned.timestamp)
        self._intent = unsigned.model_copy(update={"proof": proof})
        return self._intent

    def snapshot(self) -> None:
        """INTENT → SNAPSHOT."""
        self._transition(CeremonyState.SNAPSHOT)

    def open_challenge(self) -> None:
        """SNAPSHOT → OPEN."""
        self._transition(CeremonyState.OPEN)

    def contest(self) -> None:
        """OPEN → CONTESTED."""
        self._transition(CeremonyState.CONTESTED)

    def sign_marker(self, marker: ExitMarker) -> ExitMarker:
        """Sign the exit marker and move to FINAL.

        Raises:
            CeremonyError:   If FINAL is not reachable from here.
            ValidationError: If the marker does not match the declared intent.
            SigningError:    If the marker subject is not this signer.
        """
        if CeremonyState.FINAL not in _TRANSITIONS[self._state]:
            self._reject(CeremonyState.FINAL)
        # ALIVE → FINAL is the emergency path only
        if self._state == CeremonyState.ALIVE and marker.exit_type != ExitType.EMERGENCY:
            raise CeremonyError(
                self._state.value,
                CeremonyState.FINAL.value,
                [CeremonyState.INTENT.value],
            )

        if self._intent is not None:
            errors = []
            if marker.origin != self._intent.origin:
                errors.append("marker origin differs from the declared intent")
            if marker.exit_type != self._intent.exit_type:
                errors.append("marker exitType differs from the declared intent")
            if errors:
                raise ValidationError(errors, "Marker does not match intent")

        signed = attach_proof(marker, self._signer, domain=MARKER_DOMAIN)
        self._transition(CeremonyState.FINAL)
        self._marker = signed
        return signed

    def witness(self, witness_signer: Signer) -> DataIntegrityProof:
        """Collect a witness co-signature over the signed marker. Stays FINAL."""
        if self._state != CeremonyState.FINAL or self._marker is None:
            raise CeremonyError(
                self._state.value,
                "witness (requires final)",
                [s.value for s in _TRANSITIONS[self._state]],
            )
        proof = create_proof(self._marker.to_dict(), witness_signer, WITNESS_DOMAIN)
        self._witnesses.append(proof)
        logger.debug("Witness %s co-signed %s", proof.verification_method, self._marker.id)
        return proof

    def depart(self) -> ExitMarker:
        """FINAL → DEPARTED. Returns the signed marker."""
        self._transition(CeremonyState.DEPARTED)
        logger.info("Subject %s departed (%s)", self.subject, self._marker.id)
        return self._marker

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _reject(self, to: CeremonyState) -> None:
        raise CeremonyError(
            self._state.value,
            to.value,
            [s.value for s in _TRANSITIONS[self._state]],
        )

    def _transition(self, to: CeremonyState) -> None:
        if to not in _TRANSITIONS[self._state]:
            self._reject(to)
        logger.debug("Ceremony %s: %s → %s", self.subject, self._state.value, to.value)
        self._state = to
        self._history.append((to, utc_now_iso()))
