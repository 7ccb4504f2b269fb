"""
exit_controller — The Key Custodian.

Owns one identifier's keys and is the single writer of its key event
log:
- incept():              Create an identifier with pre-committed next keys
- rotate():              Reveal the committed key, commit to a fresh one
- declare_compromise():  Mark the current key generation compromised
- sign_marker():         Sign and persist an exit marker with the current key

Architecture:
    Caller → Controller (custody + serialization) → exit_core (keri, proof)
                                                  → Storage (persistence)

Every event is validated against the tip before it is persisted, and
persisted before the in-memory log accepts it, so a storage failure
never leaves memory ahead of disk.  An in-process lock serializes
writers; the storage primary key on (identifier, sequence) rejects a
competing writer in another process.
"""

import logging
import threading
from typing import Optional

from exit_core.crypto import Algorithm
from exit_core.errors import SigningError
from exit_core.keri import (
    CompromiseEvent,
    InceptionEvent,
    KeyEventBase,
    KeyEventLog,
    KeyState,
    KeyStatus,
    RotationEvent,
    apply_event,
    create_compromise,
    create_inception,
    create_rotation,
    digest_key,
)
from exit_core.proof import attach_proof
from exit_core.record import ExitMarker, ExitType, new_marker
from exit_core.signer import Signer, generate_signer
from exit_core.storage import Storage


logger = logging.getLogger(__name__)


class Controller:
    """Key custodian and single writer for one identifier.

    Args:
        storage:     Storage backend (SQLite).
        log:         The identifier's key event log (already valid).
        current:     Signer for the key authorized at the tip.
        next_signer: Signer whose digest is committed at the tip, or None
                     for a non-rotatable identifier.
    """

    def __init__(
        self,
        storage: Storage,
        log: KeyEventLog,
        current: Signer,
        next_signer: Optional[Signer],
    ) -> None:
        self.storage = storage
        self._log = log
        self._current = current
        self._next = next_signer
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def incept(
        cls,
        storage: Storage,
        algorithm: Algorithm = Algorithm.ED25519,
        *,
        non_rotatable: bool = False,
    ) -> "Controller":
        """Create a new identifier and persist its inception event."""
        current = generate_signer(algorithm)
        next_signer = None if non_rotatable else generate_signer(algorithm)
        digests = [] if next_signer is None else [digest_key(next_signer.did())]

        event = create_inception(current, digests, non_rotatable=non_rotatable)
        controller = cls(storage, KeyEventLog(), current, next_signer)
        controller._append(event)
        logger.info("Incepted %s with key %s", event.identifier, current.did())
        return controller

    @classmethod
    def load(
        cls,
        storage: Storage,
        identifier: str,
        current: Signer,
        next_signer: Optional[Signer] = None,
    ) -> "Controller":
        """Resume custody of a persisted identifier.

        Raises:
            VerificationError: If the stored log is empty or invalid.
            SigningError:      If ``current`` is not authorized at the tip, or
                               ``next_signer`` does not match the commitment.
        """
        log = KeyEventLog.from_events(storage.get_key_events(identifier))
        state = log.current_state()
        if current.did() not in state.current_keys:
            raise SigningError(
                f"{current.did()} is not a current key of {identifier}"
            )
        if next_signer is not None and digest_key(next_signer.did()) not in state.next_key_digests:
            raise SigningError(
                f"{next_signer.did()} does not match the next-key commitment "
                f"of {identifier}"
            )
        return cls(storage, log, current, next_signer)

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def identifier(self) -> str:
        return self._log.identifier

    @property
    def current_did(self) -> str:
        """did:key of the key currently authorized to sign."""
        return self._current.did()

    @property
    def log(self) -> KeyEventLog:
        return self._log

    def state(self) -> KeyState:
        return self._log.current_state()

    # ------------------------------------------------------------------
    # Key lifecycle
    # ------------------------------------------------------------------

    def rotate(self) -> RotationEvent:
        """Reveal the pre-committed key and commit to a freshly generated one.

        The retired signer is destroyed after the rotation is persisted.

        Raises:
            SigningError:  If no next key is held (non-rotatable or loaded
                           without one).
            CeremonyError: If the identifier is compromised.
        """
        with self._lock:
            if self._next is None:
                raise SigningError(f"No pre-committed next key held for {self.identifier}")
            upcoming = generate_signer(self._next.algorithm)
            event = create_rotation(
                self._log.current_state(),
                self._current,
                [self._next.did()],
                [digest_key(upcoming.did())],
            )
            self._append(event)

            retired = self._current
            self._current, self._next = self._next, upcoming
            retired.destroy()

        logger.info(
            "Rotated %s to %s (sequence %d)",
            self.identifier, self._current.did(), event.sequence,
        )
        return event

    def declare_compromise(
        self,
        successor: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> CompromiseEvent:
        """Declare the current key generation compromised.

        ``successor`` names a fresh identifier (e.g. another Controller's
        identifier) that continues this one.
        """
        with self._lock:
            event = create_compromise(
                self._log.current_state(),
                self._current,
                successor=successor,
                reason=reason,
            )
            self._append(event)
        logger.warning(
            "Key generation of %s declared compromised (successor: %s)",
            self.identifier, successor or "none",
        )
        return event

    # ------------------------------------------------------------------
    # Markers
    # ------------------------------------------------------------------

    def create_marker(self, origin: str, exit_type: ExitType, **fields) -> ExitMarker:
        """Build, sign and persist a marker whose subject is the current key."""
        marker = new_marker(self.current_did, origin, exit_type, **fields)
        return self.sign_marker(marker)

    def sign_marker(self, marker: ExitMarker) -> ExitMarker:
        """Sign ``marker`` with the current key and persist it.

        Raises:
            SigningError: If the identifier is compromised or the marker's
                          subject is not the current key.
        """
        with self._lock:
            if self._log.current_state().status == KeyStatus.COMPROMISED:
                raise SigningError(
                    f"{self.identifier} is compromised; refusing to sign"
                )
            signed = attach_proof(marker, self._current)
            self.storage.save_marker(signed)
        return signed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _append(self, event: KeyEventBase) -> None:
        """Validate against the tip, persist, then accept into memory."""
        state = None if len(self._log) == 0 else self._log.current_state()
        apply_event(state, event)
        self.storage.append_key_event(event)
        self._log.append(event)
