"""
test/test_batch.py — Tests for exit_core.batch and exit_core.anchor

Run:  python test/test_batch.py
"""

import sys
import os
import hashlib

# Ensure project root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from exit_core.anchor import (
    AnchorRecord,
    anchor_batch,
    anchor_marker,
    compute_anchor_hash,
    create_anchor_record,
    create_minimal_anchor,
    verify_anchor_record,
)
from exit_core.batch import (
    MerkleProof,
    MerkleStep,
    compute_merkle_proof,
    compute_merkle_root,
    create_batch_exit,
    leaf_hash,
    merkle_parent,
    verify_batch_membership,
    verify_marker_in_batch,
)
from exit_core.crypto import sha256_hex
from exit_core.proof import attach_proof
from exit_core.record import ExitStatus, ExitType, new_marker
from exit_core.signer import generate_signer


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_signer = generate_signer()

_PASS = 0
_FAIL = 0


def _markers(n: int):
    return [
        attach_proof(
            new_marker(_signer.did(), f"https://platform-{i}.example", ExitType.VOLUNTARY),
            _signer,
        )
        for i in range(n)
    ]


def _leaves(n: int):
    return [sha256_hex(f"leaf-{i}".encode()) for i in range(n)]


def _flip_bit(h: str) -> str:
    return h[:-1] + format(int(h[-1], 16) ^ 1, "x")


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

def test_parent_is_hash_of_raw_bytes():
    a, b = _leaves(2)
    expected = hashlib.sha256(bytes.fromhex(a) + bytes.fromhex(b)).hexdigest()
    assert merkle_parent(a, b) == expected
    assert merkle_parent(b, a) != expected
    _ok("test_parent_is_hash_of_raw_bytes")


def test_single_leaf_is_root():
    (a,) = _leaves(1)
    assert compute_merkle_root([a]) == a
    proof = compute_merkle_proof([a], 0)
    assert proof.path == []
    assert verify_batch_membership(proof, a, a)
    _ok("test_single_leaf_is_root")


def test_odd_level_duplicates_last():
    a, b, c = _leaves(3)
    expected = merkle_parent(merkle_parent(a, b), merkle_parent(c, c))
    assert compute_merkle_root([a, b, c]) == expected
    _ok("test_odd_level_duplicates_last")


def test_order_matters():
    leaves = _leaves(4)
    assert compute_merkle_root(leaves) != compute_merkle_root(list(reversed(leaves)))
    _ok("test_order_matters")


def test_every_index_verifies_and_sibling_flip_fails():
    for n in range(1, 10):
        leaves = _leaves(n)
        root = compute_merkle_root(leaves)
        for i in range(n):
            proof = compute_merkle_proof(leaves, i)
            assert proof.root == root
            assert verify_batch_membership(proof, leaves[i], root), (n, i)
            for level, step in enumerate(proof.path):
                path = list(proof.path)
                path[level] = MerkleStep(hash=_flip_bit(step.hash), position=step.position)
                bad = proof.model_copy(update={"path": path})
                assert not verify_batch_membership(bad, leaves[i], root), (n, i, level)
    _ok("test_every_index_verifies_and_sibling_flip_fails")


def test_wrong_leaf_or_root_fails():
    leaves = _leaves(5)
    root = compute_merkle_root(leaves)
    proof = compute_merkle_proof(leaves, 2)
    assert not verify_batch_membership(proof, leaves[3], root)
    assert not verify_batch_membership(proof, leaves[2], _flip_bit(root))
    _ok("test_wrong_leaf_or_root_fails")


def test_malformed_hex_returns_false():
    leaves = _leaves(4)
    root = compute_merkle_root(leaves)
    proof = compute_merkle_proof(leaves, 0)
    bad = proof.model_copy(update={
        "path": [MerkleStep(hash="zz-not-hex", position="right")] + list(proof.path[1:]),
    })
    assert verify_batch_membership(bad, leaves[0], root) is False
    _ok("test_malformed_hex_returns_false")


def test_empty_and_out_of_range():
    for bad_call in (
        lambda: compute_merkle_root([]),
        lambda: create_batch_exit([]),
        lambda: compute_merkle_proof([], 0),
        lambda: compute_merkle_proof(_leaves(3), 3),
        lambda: compute_merkle_proof(_leaves(3), -1),
    ):
        try:
            bad_call()
            assert False, "Should have raised ValueError"
        except ValueError:
            pass
    _ok("test_empty_and_out_of_range")


def test_five_marker_batch_scenario():
    """Proof for index 3 verifies against its batch, not against a batch missing marker 2."""
    markers = _markers(5)
    batch = create_batch_exit(markers)
    assert batch.count == 5
    assert batch.leaves == [leaf_hash(m) for m in markers]

    proof = compute_merkle_proof(batch, 3)
    assert verify_batch_membership(proof, leaf_hash(markers[3]), batch.merkle_root)
    assert verify_marker_in_batch(markers[3], proof, batch.merkle_root)

    smaller = create_batch_exit([markers[0], markers[1], markers[3], markers[4]])
    assert smaller.merkle_root != batch.merkle_root
    assert not verify_batch_membership(proof, leaf_hash(markers[3]), smaller.merkle_root)
    _ok("test_five_marker_batch_scenario")


def test_tampered_marker_not_in_batch():
    markers = _markers(3)
    batch = create_batch_exit(markers)
    proof = compute_merkle_proof(batch, 1)
    tampered = markers[1].model_copy(update={"status": ExitStatus.DISPUTED})
    assert not verify_marker_in_batch(tampered, proof, batch.merkle_root)
    _ok("test_tampered_marker_not_in_batch")


def test_proof_wire_form():
    leaves = _leaves(3)
    proof = compute_merkle_proof(leaves, 2)
    wire = proof.to_dict()
    assert set(wire) == {"leaf", "path", "root"}
    assert wire["path"][0] == {"hash": leaves[2], "position": "right"}
    restored = MerkleProof.model_validate(wire)
    assert verify_batch_membership(restored, leaves[2], proof.root)
    assert "merkleRoot" in create_batch_exit(_markers(1)).to_dict()
    _ok("test_proof_wire_form")


def test_anchor_records():
    (marker,) = _markers(1)
    record = create_anchor_record(marker)
    assert isinstance(record, AnchorRecord)
    assert record.hash == compute_anchor_hash(marker) == leaf_hash(marker)
    assert record.subject_did == marker.subject
    assert record.exit_type == "voluntary"
    assert verify_anchor_record(record, marker)

    minimal = create_minimal_anchor(marker)
    assert set(minimal.to_dict()) == {"hash", "timestamp"}
    assert verify_anchor_record(minimal, marker)

    altered = marker.model_copy(update={"origin": "https://other.example"})
    assert not verify_anchor_record(record, altered)
    assert not verify_anchor_record(minimal, altered)
    _ok("test_anchor_records")


def test_anchor_batch_adapter_injection():
    batch = create_batch_exit(_markers(2))
    assert anchor_batch(batch) is None

    class RecordingAdapter:
        def __init__(self):
            self.seen = []

        def anchor(self, anchor_hash):
            self.seen.append(anchor_hash)
            return {"receipt": f"tx-{len(self.seen)}"}

    adapter = RecordingAdapter()
    receipt = anchor_batch(batch, adapter)
    assert receipt == {"receipt": "tx-1"}
    assert adapter.seen == [batch.merkle_root]

    marker = _markers(1)[0]
    assert anchor_marker(marker) is None
    assert anchor_marker(marker, adapter) == {"receipt": "tx-2"}
    assert adapter.seen[-1] == compute_anchor_hash(marker)
    _ok("test_anchor_batch_adapter_injection")


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    print("=" * 60)
    print("Merkle Batch & Anchor Tests")
    print("=" * 60)

    tests = [
        test_parent_is_hash_of_raw_bytes,
        test_single_leaf_is_root,
        test_odd_level_duplicates_last,
        test_order_matters,
        test_every_index_verifies_and_sibling_flip_fails,
        test_wrong_leaf_or_root_fails,
        test_malformed_hex_returns_false,
        test_empty_and_out_of_range,
        test_five_marker_batch_scenario,
        test_tampered_marker_not_in_batch,
        test_proof_wire_form,
        test_anchor_records,
        test_anchor_batch_adapter_injection,
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
