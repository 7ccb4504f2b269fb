"""
Exit Core — signing, key-state and batch anchoring for Exit Markers.

__version__ is the SDK version. The marker wire format version is
tracked separately in ExitMarker.spec_version and the domain tags.
"""

__version__ = "0.1.0"

from .errors import (
    ExitError,
    ValidationError,
    SigningError,
    VerificationError,
    CeremonyError,
    StorageError,
)
from .uuid7 import uuid7
from .canonical import canonicalize, canonicalize_record, content_hash
from .crypto import (
    Algorithm,
    sha256_hex,
    generate_keypair,
    sign_bytes,
    verify_signature,
    private_key_to_pem,
    public_key_to_pem,
    private_key_from_pem,
    public_key_from_pem,
)
from .did import decode_did, did_from_key, did_from_public_key, is_did
from .signer import (
    Signer,
    Ed25519Signer,
    P256Signer,
    generate_signer,
    signer_from_private_key,
    verify_with_did,
)
from .record import (
    ExitMarker,
    ExitType,
    ExitStatus,
    DataIntegrityProof,
    Lineage,
    StateSnapshot,
    DisputeBundle,
    EmbeddedDispute,
    ExitMetadata,
    CrossDomain,
    MAX_RECORD_SIZE_BYTES,
    new_marker,
    validate_record_size,
    export_json_schema,
)
from .proof import (
    MARKER_DOMAIN,
    DISPUTE_RESOLUTION_DOMAIN,
    KEY_EVENT_DOMAIN,
    VerificationResult,
    attach_proof,
    verify_proof,
    verify_marker,
)
from .keri import (
    KeyStatus,
    KeyStanding,
    KeyState,
    InceptionEvent,
    RotationEvent,
    CompromiseEvent,
    KeyEventLog,
    ReplayResult,
    digest_key,
    create_inception,
    create_rotation,
    create_compromise,
    replay,
    key_standing,
    generate_pre_rotated_keys,
)
from .batch import (
    BatchExit,
    MerkleProof,
    create_batch_exit,
    compute_merkle_proof,
    verify_batch_membership,
    verify_marker_in_batch,
)
from .anchor import create_anchor_record, verify_anchor_record, anchor_batch
from .dispute import (
    DisputeRecord,
    DisputeResolution,
    DisputeState,
    ResolutionOutcome,
    create_dispute,
    resolve_dispute,
    verify_dispute_resolution,
    get_dispute_status,
)
from .ceremony import ExitCeremony, CeremonyState
from .storage import Storage
