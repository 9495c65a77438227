"""Content hashes for receipts, snapshots, manifests and policies.

Verification of a sealed record is a terminal state machine:

    unverified ──► valid
               └─► invalid(reason)

1. every digest field is format-checked (InvalidDigestFormat names the value)
2. the hash-bearing subset is canonically encoded and digested
3. the result is compared byte-for-byte with the stored hash (HashMismatch)

The first failure is final. There is no soft verification and no retry.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional

from provenact.core import (
    HashMismatch,
    InvalidDigestFormat,
    ProvenactError,
    sha256_of_record,
    validate_md5_hex,
    validate_sha256_prefixed,
)
from provenact.models import (
    ExecutionReceipt,
    Manifest,
    Policy,
    RegistrySnapshot,
    SnapshotEntry,
    freeze_entries,
)
from provenact.observability import LogLayer, get_logger

logger = get_logger("receipts", LogLayer.VERIFY)


# =============================================================================
# RECEIPTS
# =============================================================================

def compute_receipt_hash(receipt: ExecutionReceipt) -> str:
    """Digest of artifact, inputs_hash, outputs_hash, caps_used and timestamp."""
    return sha256_of_record(receipt.hash_payload())


def verify_receipt_hash(receipt: ExecutionReceipt) -> None:
    """Raise InvalidDigestFormat or HashMismatch unless the receipt is intact."""
    validate_sha256_prefixed(receipt.artifact)
    validate_sha256_prefixed(receipt.inputs_hash)
    validate_sha256_prefixed(receipt.outputs_hash)
    validate_sha256_prefixed(receipt.receipt_hash)
    actual = compute_receipt_hash(receipt)
    if actual != receipt.receipt_hash:
        raise HashMismatch(expected=receipt.receipt_hash, actual=actual)
    logger.debug("receipt verified", operation="verify-receipt", receipt_hash=receipt.receipt_hash)


def seal_receipt(
    *,
    artifact: str,
    inputs_hash: str,
    outputs_hash: str,
    caps_used: Iterable[str],
    timestamp: int,
) -> ExecutionReceipt:
    """Build a receipt with its ``receipt_hash`` computed from the other fields."""
    unsealed = ExecutionReceipt(
        artifact=artifact,
        inputs_hash=inputs_hash,
        outputs_hash=outputs_hash,
        caps_used=tuple(caps_used),
        timestamp=timestamp,
        receipt_hash="",
    )
    return replace(unsealed, receipt_hash=compute_receipt_hash(unsealed))


# =============================================================================
# REGISTRY SNAPSHOTS
# =============================================================================

def compute_snapshot_hash(snapshot: RegistrySnapshot) -> str:
    """Digest of timestamp and entries."""
    return sha256_of_record(snapshot.hash_payload())


def verify_snapshot_hash(snapshot: RegistrySnapshot) -> None:
    """Raise InvalidDigestFormat or HashMismatch unless the snapshot is intact.

    Entry digests are checked in key order before the snapshot hash itself.
    """
    for entry in snapshot.entries.values():
        validate_sha256_prefixed(entry.sha256)
        validate_md5_hex(entry.md5)
    validate_sha256_prefixed(snapshot.snapshot_hash)
    actual = compute_snapshot_hash(snapshot)
    if actual != snapshot.snapshot_hash:
        raise HashMismatch(expected=snapshot.snapshot_hash, actual=actual)
    logger.debug(
        "snapshot verified",
        operation="verify-snapshot",
        snapshot_hash=snapshot.snapshot_hash,
        entries=len(snapshot.entries),
    )


def seal_snapshot(*, timestamp: int, entries: Mapping[str, SnapshotEntry]) -> RegistrySnapshot:
    """Build a snapshot with its ``snapshot_hash`` computed."""
    unsealed = RegistrySnapshot(timestamp=timestamp, entries=freeze_entries(entries), snapshot_hash="")
    return replace(unsealed, snapshot_hash=compute_snapshot_hash(unsealed))


# =============================================================================
# MANIFESTS AND POLICIES
# =============================================================================

def compute_manifest_hash(manifest: Manifest) -> str:
    return sha256_of_record(manifest.to_dict())


def compute_policy_hash(policy: Policy) -> str:
    """Digest of the full policy, with defaulted ceiling fields written out."""
    return sha256_of_record(policy.to_dict())


# =============================================================================
# VERIFICATION RESULTS
# =============================================================================

class VerificationStatus(Enum):
    VALID = "valid"
    INVALID = "invalid"


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of verifying one sealed record."""
    status: VerificationStatus
    reason: str = ""
    error: Optional[ProvenactError] = None

    @property
    def is_valid(self) -> bool:
        return self.status is VerificationStatus.VALID

    def raise_if_invalid(self) -> None:
        if self.error is not None:
            raise self.error

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"status": self.status.value}
        if self.reason:
            d["reason"] = self.reason
        if isinstance(self.error, InvalidDigestFormat):
            d["value"] = self.error.value
            d["algorithm"] = self.error.algorithm
        elif isinstance(self.error, HashMismatch):
            d["expected"] = self.error.expected
            d["actual"] = self.error.actual
        return d

    @classmethod
    def from_error(cls, error: ProvenactError) -> "VerificationResult":
        if isinstance(error, InvalidDigestFormat):
            reason = "invalid_digest_format"
        elif isinstance(error, HashMismatch):
            reason = "hash_mismatch"
        else:
            reason = "canonical_encoding_failure"
        return cls(status=VerificationStatus.INVALID, reason=reason, error=error)


_VALID = VerificationResult(status=VerificationStatus.VALID)


def check_receipt(receipt: ExecutionReceipt) -> VerificationResult:
    """Non-raising form of verify_receipt_hash."""
    try:
        verify_receipt_hash(receipt)
    except ProvenactError as e:
        return VerificationResult.from_error(e)
    return _VALID


def check_snapshot(snapshot: RegistrySnapshot) -> VerificationResult:
    """Non-raising form of verify_snapshot_hash."""
    try:
        verify_snapshot_hash(snapshot)
    except ProvenactError as e:
        return VerificationResult.from_error(e)
    return _VALID
