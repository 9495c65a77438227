"""provenact trust kernel.

Decides whether a capability policy permits a skill's resource request, and
seals and re-verifies execution receipts and registry snapshots with
tamper-evident content hashes.

Architecture:
    provenact/
    ├── __init__.py       # Package entry, version, public API
    ├── core.py           # Errors, canonical JSON, digests, document loading
    ├── paths.py          # Filesystem/URI normalization and prefix containment
    ├── models.py         # Policy, Capability, Manifest, Receipt, Snapshot
    ├── policy.py         # Capability evaluator
    ├── receipts.py       # Receipt/snapshot hashing and verification
    ├── schema.py         # JSON Schema store
    ├── conformance.py    # Test-vector conformance runner
    ├── config.py         # Tooling configuration
    ├── observability.py  # Structured logging
    └── cli.py            # Command-line interface

The evaluator and verifier are pure functions over immutable values and may
be called concurrently without coordination.
"""

__version__ = "0.3.0"

from provenact.core import (
    CanonicalEncodingFailure,
    HashMismatch,
    InvalidDigestFormat,
    InvalidDocument,
    ProvenactError,
    canonical_json_bytes,
    is_valid_md5_hex,
    is_valid_sha256_prefixed,
    load_document,
    md5_hex,
    parse_json,
    sha256_prefixed,
    validate_md5_hex,
    validate_sha256_prefixed,
)
from provenact.models import (
    Capability,
    CapabilityCeiling,
    CapabilityEvalVector,
    CapabilityKind,
    ExecutionReceipt,
    FsCeiling,
    KvCeiling,
    Manifest,
    Policy,
    QueueCeiling,
    RegistrySnapshot,
    SnapshotEntry,
)
from provenact.paths import (
    is_within_prefix,
    net_uri_allows,
    normalize_fs_path,
    normalize_uri_path,
)
from provenact.policy import (
    CapabilityDecision,
    evaluate_capabilities,
    evaluate_capability,
)
from provenact.receipts import (
    VerificationResult,
    check_receipt,
    check_snapshot,
    compute_manifest_hash,
    compute_policy_hash,
    compute_receipt_hash,
    compute_snapshot_hash,
    seal_receipt,
    seal_snapshot,
    verify_receipt_hash,
    verify_snapshot_hash,
)
from provenact.schema import SchemaStore, SchemaValidationError

__all__ = [
    "__version__",
    "CanonicalEncodingFailure",
    "HashMismatch",
    "InvalidDigestFormat",
    "InvalidDocument",
    "ProvenactError",
    "canonical_json_bytes",
    "is_valid_md5_hex",
    "is_valid_sha256_prefixed",
    "load_document",
    "md5_hex",
    "parse_json",
    "sha256_prefixed",
    "validate_md5_hex",
    "validate_sha256_prefixed",
    "Capability",
    "CapabilityCeiling",
    "CapabilityEvalVector",
    "CapabilityKind",
    "ExecutionReceipt",
    "FsCeiling",
    "KvCeiling",
    "Manifest",
    "Policy",
    "QueueCeiling",
    "RegistrySnapshot",
    "SnapshotEntry",
    "is_within_prefix",
    "net_uri_allows",
    "normalize_fs_path",
    "normalize_uri_path",
    "CapabilityDecision",
    "evaluate_capabilities",
    "evaluate_capability",
    "VerificationResult",
    "check_receipt",
    "check_snapshot",
    "compute_manifest_hash",
    "compute_policy_hash",
    "compute_receipt_hash",
    "compute_snapshot_hash",
    "seal_receipt",
    "seal_snapshot",
    "verify_receipt_hash",
    "verify_snapshot_hash",
    "SchemaStore",
    "SchemaValidationError",
]
