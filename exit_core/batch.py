"""
exit_core/batch.py — Merkle batch anchoring.

Mass or coordinated departures are committed to one small hash: each
marker is content-hashed (canonicalize, then SHA-256) into a leaf, and
the leaves are folded pairwise into a binary Merkle root.  Any single
marker's membership can later be proven with a sibling path, without
re-anchoring or revealing the rest of the batch.

Construction (fixed, order-preserving):
    parent = SHA-256(bytes(left) || bytes(right))
    odd level  -> the last node is paired with itself
    one leaf   -> the leaf is the root

Leaf order is significant: reordering markers changes the root.

Note: duplicate-last padding means the trees for [a, b, c] and
[a, b, c, c] share a root (the CVE-2012-2459 shape).  ``count`` on the
BatchExit disambiguates; anchor the count alongside the root when that
matters.
"""

from __future__ import annotations

import binascii
import hashlib
from typing import List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, Field

from .canonical import content_hash
from .record import ExitMarker, WireModel, utc_now_iso


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class MerkleStep(WireModel):
    """One sibling on the path from a leaf to the root."""
    hash: str
    position: Literal["left", "right"]


class MerkleProof(WireModel):
    """Inclusion proof: leaf hash, sibling path (leaf to root), root."""
    leaf: str
    path: List[MerkleStep] = Field(default_factory=list)
    root: str


class BatchExit(WireModel):
    """Ordered marker hashes and their Merkle root."""
    merkle_root: str
    count: int = Field(..., ge=1)
    timestamp: str
    leaves: List[str]


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------

def leaf_hash(marker: Union[ExitMarker, dict]) -> str:
    """Content hash of the full marker (proof included)."""
    if isinstance(marker, BaseModel):
        marker = marker.to_dict()
    return content_hash(marker)


def merkle_parent(left: str, right: str) -> str:
    """SHA-256 over the concatenated raw bytes of two child hashes.

    Raises:
        ValueError: If either child is not valid hex.
    """
    try:
        data = bytes.fromhex(left) + bytes.fromhex(right)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Merkle node is not hex: {e}") from e
    return hashlib.sha256(data).hexdigest()


def _next_level(level: Sequence[str]) -> List[str]:
    parents = []
    for i in range(0, len(level), 2):
        right = level[i + 1] if i + 1 < len(level) else level[i]
        parents.append(merkle_parent(level[i], right))
    return parents


def compute_merkle_root(hashes: Sequence[str]) -> str:
    """Merkle root of an ordered list of hex leaf hashes.

    Raises:
        ValueError: If ``hashes`` is empty.
    """
    if not hashes:
        raise ValueError("Cannot compute Merkle root of empty set")
    level = list(hashes)
    while len(level) > 1:
        level = _next_level(level)
    return level[0]


# ---------------------------------------------------------------------------
# Batch construction
# ---------------------------------------------------------------------------

def create_batch_exit(
    markers: Sequence[Union[ExitMarker, dict]],
    created: Optional[str] = None,
) -> BatchExit:
    """Hash each marker (in order) and build the batch root.

    Raises:
        ValueError: If ``markers`` is empty.
    """
    if not markers:
        raise ValueError("Cannot create batch from empty marker set")
    leaves = [leaf_hash(m) for m in markers]
    return BatchExit(
        merkle_root=compute_merkle_root(leaves),
        count=len(leaves),
        timestamp=created or utc_now_iso(),
        leaves=leaves,
    )


def compute_merkle_proof(
    batch: Union[BatchExit, Sequence[str]],
    index: int,
) -> MerkleProof:
    """Sibling path for the leaf at ``index``, from leaf to root.

    Raises:
        ValueError: If the batch is empty or ``index`` is out of range.
    """
    leaves = list(batch.leaves) if isinstance(batch, BatchExit) else list(batch)
    if not leaves:
        raise ValueError("Cannot compute Merkle proof over empty set")
    if not 0 <= index < len(leaves):
        raise ValueError(f"Index {index} out of range [0, {len(leaves)})")

    path: List[MerkleStep] = []
    level = leaves
    idx = index
    while len(level) > 1:
        if idx % 2 == 0:
            sibling = level[idx + 1] if idx + 1 < len(level) else level[idx]
            path.append(MerkleStep(hash=sibling, position="right"))
        else:
            path.append(MerkleStep(hash=level[idx - 1], position="left"))
        level = _next_level(level)
        idx //= 2

    return MerkleProof(leaf=leaves[index], path=path, root=level[0])


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

def verify_batch_membership(proof: MerkleProof, leaf: str, root: str) -> bool:
    """Fold ``leaf`` with the proof's siblings and compare to ``root``.

    Returns False (never raises) on malformed hex or mismatched input.
    """
    if leaf != proof.leaf:
        return False
    current = leaf
    try:
        for step in proof.path:
            if step.position == "left":
                current = merkle_parent(step.hash, current)
            else:
                current = merkle_parent(current, step.hash)
    except (ValueError, binascii.Error):
        return False
    return current == root


def verify_marker_in_batch(
    marker: Union[ExitMarker, dict],
    proof: MerkleProof,
    root: str,
) -> bool:
    """Hash ``marker`` and check its membership under ``root``."""
    return verify_batch_membership(proof, leaf_hash(marker), root)
