"""
exit_core/anchor.py — Anchor records for external ledgers.

Prepares the minimal hash commitments a chain, timestamp authority or
registry needs.  No network I/O happens here: anything that posts a
hash is an injected AnchorAdapter, and when none is supplied the
anchoring step is simply skipped.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol, Union, runtime_checkable

from pydantic import BaseModel

from .batch import BatchExit, leaf_hash
from .record import ExitMarker, WireModel


logger = logging.getLogger(__name__)


class MinimalAnchorRecord(WireModel):
    """Hash + timestamp. The bare minimum for a ledger."""
    hash: str
    timestamp: str


class AnchorRecord(MinimalAnchorRecord):
    """Hash + minimal public metadata."""
    exit_type: str
    subject_did: str


def compute_anchor_hash(marker: Union[ExitMarker, dict]) -> str:
    """SHA-256 hex of the canonical full marker. Same value as a batch leaf."""
    return leaf_hash(marker)


def _as_marker(marker: Union[ExitMarker, dict]) -> ExitMarker:
    if isinstance(marker, BaseModel):
        return marker
    return ExitMarker.model_validate(marker)


def create_anchor_record(marker: Union[ExitMarker, dict]) -> AnchorRecord:
    m = _as_marker(marker)
    return AnchorRecord(
        hash=compute_anchor_hash(m),
        timestamp=m.timestamp,
        exit_type=m.exit_type.value,
        subject_did=m.subject,
    )


def create_minimal_anchor(marker: Union[ExitMarker, dict]) -> MinimalAnchorRecord:
    m = _as_marker(marker)
    return MinimalAnchorRecord(hash=compute_anchor_hash(m), timestamp=m.timestamp)


def verify_anchor_record(
    record: Union[MinimalAnchorRecord, AnchorRecord],
    marker: Union[ExitMarker, dict],
) -> bool:
    """True if the record's hash (and any metadata it carries) matches the marker."""
    m = _as_marker(marker)
    if record.hash != compute_anchor_hash(m):
        return False
    if isinstance(record, AnchorRecord):
        if record.exit_type != m.exit_type.value:
            return False
        if record.subject_did != m.subject:
            return False
    return True


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------

@runtime_checkable
class AnchorAdapter(Protocol):
    """Posts a precomputed hash somewhere durable and returns an opaque receipt."""

    def anchor(self, anchor_hash: str) -> Dict[str, Any]:
        ...


def anchor_marker(
    marker: Union[ExitMarker, dict],
    adapter: Optional[AnchorAdapter] = None,
) -> Optional[Dict[str, Any]]:
    """Anchor one marker's hash. Returns the receipt, or None without an adapter."""
    if adapter is None:
        return None
    anchor_hash = compute_anchor_hash(marker)
    receipt = adapter.anchor(anchor_hash)
    logger.info("Anchored marker hash %s", anchor_hash)
    return receipt


def anchor_batch(
    batch: BatchExit,
    adapter: Optional[AnchorAdapter] = None,
) -> Optional[Dict[str, Any]]:
    """Anchor a batch root. Returns the receipt, or None without an adapter."""
    if adapter is None:
        return None
    receipt = adapter.anchor(batch.merkle_root)
    logger.info(
        "Anchored batch root %s (%d markers)", batch.merkle_root, batch.count
    )
    return receipt
