"""
exit_core/errors.py — Error taxonomy for Exit Marker operations.

Every error carries a machine-readable ``code`` so callers can
catch-and-switch without string matching:

    VALIDATION_FAILED    ValidationError    (carries the full error list)
    SIGNING_FAILED       SigningError
    VERIFICATION_FAILED  VerificationError
    INVALID_TRANSITION   CeremonyError      (current / attempted / valid next)
    STORAGE_FAILED       StorageError

Verification functions do NOT raise these for bad signatures — they
return a VerificationResult so batch verification tolerates individual
bad records.  These exceptions are for operations that cannot proceed.
"""

from __future__ import annotations

from typing import Iterable, List, Optional


class ExitError(Exception):
    """Base class for all Exit Marker errors."""

    code = "EXIT_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ExitError):
    """Input or record failed validation. Carries every error found."""

    code = "VALIDATION_FAILED"

    def __init__(self, errors: Iterable[str], message: Optional[str] = None) -> None:
        self.errors: List[str] = list(errors)
        super().__init__(
            message or f"Validation failed: {'; '.join(self.errors)}"
        )


class SigningError(ExitError):
    """Signing precondition or signing primitive failed."""

    code = "SIGNING_FAILED"


class VerificationError(ExitError):
    """Signature or structural verification failed."""

    code = "VERIFICATION_FAILED"


class CeremonyError(ExitError):
    """Illegal state transition.

    Surfaces the current state, the attempted state, and the states that
    would have been legal from here.
    """

    code = "INVALID_TRANSITION"

    def __init__(
        self,
        current_state: str,
        attempted_state: str,
        valid_transitions: Iterable[str],
    ) -> None:
        self.current_state = current_state
        self.attempted_state = attempted_state
        self.valid_transitions: List[str] = list(valid_transitions)
        valid = (
            ", ".join(self.valid_transitions)
            if self.valid_transitions
            else "none (terminal state)"
        )
        super().__init__(
            f"Invalid transition: {current_state} → {attempted_state}. "
            f"Valid transitions from '{current_state}': {valid}"
        )


class StorageError(ExitError):
    """Persistence collaborator failed."""

    code = "STORAGE_FAILED"
