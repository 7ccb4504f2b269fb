#!/usr/bin/env python3
"""
Exit Marker Tamper Detection Demo

Demonstrates the core property of an exit marker: it is self-verifying.
Anyone holding the marker can check it, and any edit made without the
subject's key is caught.

Flow:
  1. A controller incepts an identifier and signs a departure marker
  2. Verify the marker (valid)
  3. Tamper with the status field (good_standing → disputed is the
     honest direction; an attacker flips it the other way)
  4. Re-run verification → signature failure
  5. Show the same marker inside a Merkle batch: the tampered copy no
     longer proves membership

Run:
    python examples/demo_tamper.py
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from exit_controller import Controller
from exit_core.batch import compute_merkle_proof, create_batch_exit, verify_marker_in_batch
from exit_core.proof import verify_marker
from exit_core.record import ExitStatus, ExitType
from exit_core.storage import Storage


# ============================================================
# Diff display
# ============================================================

def show_diff(label: str, original: str, tampered: str) -> None:
    """Show original and tampered values side by side."""
    print(f"    Field: {label}")
    print(f"    - Original:  {original}")
    print(f"    + Tampered:  {tampered}")


def show_result(result) -> None:
    if result.valid:
        print("  Status:        ✓ VALID")
        return
    print("  Status:        ✗ INVALID")
    for err in result.errors:
        print(f"    - {err}")


# ============================================================
# Main Demo
# ============================================================

def main():
    print("=" * 72)
    print("  Exit Marker Tamper Detection Demo")
    print("=" * 72)

    storage = Storage(":memory:")
    controller = Controller.incept(storage)
    print(f"\n  Identifier:    {controller.identifier}")
    print(f"  Signing key:   {controller.current_did[:48]}...")

    marker = controller.create_marker(
        "https://platform.example/workspace/42",
        ExitType.FORCED,
        status=ExitStatus.DISPUTED,
    )
    others = [
        controller.create_marker(f"https://platform-{i}.example", ExitType.VOLUNTARY)
        for i in range(4)
    ]

    # --- Step 1: Original marker ---
    print(f"\n{'━' * 72}")
    print("  STEP 1: Original Marker (signed by the subject)")
    print(f"{'━' * 72}")
    print(f"\n  Marker ID:     {marker.id[:48]}...")
    print(f"  Exit type:     {marker.exit_type.value}")
    print(f"  Status:        {marker.status.value}")
    print(f"  Proof type:    {marker.proof.type}")
    show_result(verify_marker(marker))

    # --- Step 2: Tamper ---
    print(f"\n{'━' * 72}")
    print("  STEP 2: TAMPERING — Rewriting the departure as amicable")
    print(f"{'━' * 72}")
    tampered = marker.model_copy(update={
        "exit_type": ExitType.VOLUNTARY,
        "status": ExitStatus.GOOD_STANDING,
    })
    print("\n  Attacker modifies:")
    show_diff("exitType", marker.exit_type.value, tampered.exit_type.value)
    show_diff("status", marker.status.value, tampered.status.value)
    print("\n  The proof block is unchanged: forging a new one needs the subject's key.")

    # --- Step 3: Verify again ---
    print(f"\n{'━' * 72}")
    print("  STEP 3: Verification of the tampered marker")
    print(f"{'━' * 72}\n")
    show_result(verify_marker(tampered))
    print("\n  Verbose detail (opt-in):")
    show_result(verify_marker(tampered, verbose=True))

    # --- Step 4: Batch membership ---
    print(f"\n{'━' * 72}")
    print("  STEP 4: Merkle batch membership")
    print(f"{'━' * 72}")
    batch = create_batch_exit([marker, *others])
    proof = compute_merkle_proof(batch, 0)
    print(f"\n  Batch root:    {batch.merkle_root[:32]}...  ({batch.count} markers)")
    print(f"  Proof steps:   {len(proof.path)}")
    genuine = verify_marker_in_batch(marker, proof, batch.merkle_root)
    forged = verify_marker_in_batch(tampered, proof, batch.merkle_root)
    print(f"  Original in batch:  {'✓ YES' if genuine else '✗ NO'}")
    print(f"  Tampered in batch:  {'✓ YES' if forged else '✗ NO'}")

    print(f"\n{'=' * 72}")
    print("  Tampering detected by signature and by batch membership.")
    print(f"{'=' * 72}")
    storage.close()


if __name__ == "__main__":
    main()
