"""Conformance runner over a test-vector tree.

Expected layout under the vector root (directories that do not exist are
skipped):

    skill-manifest/{good,bad}/          schema: skill-manifest
    policy/{valid,invalid}/             schema: policy
    receipt/{good,bad}/                 schema: execution-receipt + hash checks
    registry/snapshot/{good,bad}/       schema: registry-snapshot + hash checks
    capability-eval/*.json              capability-eval vectors

``good`` documents must validate and ``bad`` ones must not, except for
semantic-only negatives (``hash-mismatch.json``), which are
schema-valid and are caught by the hash checks instead.
"""

from __future__ import annotations

import pathlib
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from provenact.core import ProvenactError, list_documents, load_document
from provenact.models import (
    EXPECT_ALLOW,
    EXPECT_DENY,
    CapabilityEvalVector,
    ExecutionReceipt,
    RegistrySnapshot,
)
from provenact.observability import LogLayer, get_logger, timed_operation
from provenact.policy import evaluate_capability
from provenact.receipts import check_receipt, check_snapshot
from provenact.schema import (
    SCHEMA_CAPABILITY_EVAL,
    SCHEMA_MANIFEST,
    SCHEMA_POLICY,
    SCHEMA_RECEIPT,
    SCHEMA_SNAPSHOT,
    SchemaStore,
)

logger = get_logger("runner", LogLayer.CONFORMANCE)

SEMANTIC_NEGATIVE = "hash-mismatch.json"


@dataclass(frozen=True)
class SchemaGroup:
    schema: str
    good_dir: str
    bad_dir: str
    semantic_bad: Tuple[str, ...] = ()


SCHEMA_GROUPS: Tuple[SchemaGroup, ...] = (
    SchemaGroup(SCHEMA_MANIFEST, "skill-manifest/good", "skill-manifest/bad"),
    SchemaGroup(SCHEMA_POLICY, "policy/valid", "policy/invalid"),
    SchemaGroup(SCHEMA_RECEIPT, "receipt/good", "receipt/bad", ("receipt/bad/" + SEMANTIC_NEGATIVE,)),
    SchemaGroup(
        SCHEMA_SNAPSHOT,
        "registry/snapshot/good",
        "registry/snapshot/bad",
        ("registry/snapshot/bad/" + SEMANTIC_NEGATIVE,),
    ),
)

CAPABILITY_EVAL_DIR = "capability-eval"


class ConformanceFailure(ProvenactError):
    """A test vector did not produce its expected outcome."""

    def __init__(self, file: str, message: str):
        self.file = file
        self.message = message
        super().__init__(f"{file}: {message}")


@dataclass
class ConformanceReport:
    """Outcome of a conformance run."""
    root: str
    checks: int = 0
    skipped: List[str] = field(default_factory=list)
    failures: List[ConformanceFailure] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.failures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": self.root,
            "passed": self.passed,
            "checks": self.checks,
            "skipped": list(self.skipped),
            "failures": [{"file": f.file, "message": f.message} for f in self.failures],
        }


class _Run:
    """Mutable bookkeeping for a single runner invocation."""

    def __init__(self, root: pathlib.Path, store: SchemaStore, strict: bool):
        self.root = root
        self.store = store
        self.strict = strict
        self.report = ConformanceReport(root=str(root))

    def rel(self, path: pathlib.Path) -> str:
        return path.relative_to(self.root).as_posix()

    def files(self, rel_dir: str) -> List[pathlib.Path]:
        return list_documents(self.root / rel_dir)

    def passed(self, count: int = 1) -> None:
        self.report.checks += count

    def fail(self, file: str, message: str) -> None:
        failure = ConformanceFailure(file, message)
        logger.warning("conformance check failed", operation="check", file=file, reason=message)
        if self.strict:
            raise failure
        self.report.failures.append(failure)


def _check_schema_group(run: _Run, group: SchemaGroup) -> None:
    for path in run.files(group.good_dir):
        rel = run.rel(path)
        try:
            run.store.validate_file(group.schema, path)
        except ProvenactError as e:
            run.fail(rel, f"expected valid against {group.schema}: {e}")
            continue
        run.passed()

    for path in run.files(group.bad_dir):
        rel = run.rel(path)
        if rel in group.semantic_bad:
            logger.debug("skip semantic-only negative", operation="schema", file=rel)
            run.report.skipped.append(rel)
            continue
        try:
            value = load_document(path)
        except ProvenactError:
            run.passed()
            continue
        if run.store.is_valid(group.schema, value):
            run.fail(rel, f"expected invalid against {group.schema}")
            continue
        run.passed()


def _check_capability_vectors(run: _Run) -> None:
    for path in run.files(CAPABILITY_EVAL_DIR):
        rel = run.rel(path)
        if path.name.endswith("schema.json"):
            continue
        try:
            value = load_document(path)
            run.store.validate_value(SCHEMA_CAPABILITY_EVAL, value)
            vector = CapabilityEvalVector.from_dict(value)
        except ProvenactError as e:
            run.fail(rel, f"unreadable capability vector: {e}")
            continue
        run.passed()

        for case in vector.cases:
            got = EXPECT_ALLOW if evaluate_capability(vector.policy, case.capability) else EXPECT_DENY
            if got != case.expect:
                run.fail(
                    rel,
                    f"capability mismatch for {case.capability.kind}:{case.capability.value} "
                    f"expected={case.expect} actual={got}",
                )
                continue
            run.passed()


def _load_receipt(path: pathlib.Path) -> ExecutionReceipt:
    return ExecutionReceipt.from_dict(load_document(path, "execution receipt"))


def _load_snapshot(path: pathlib.Path) -> RegistrySnapshot:
    return RegistrySnapshot.from_dict(load_document(path, "registry snapshot"))


def _check_hash_semantics(run: _Run) -> None:
    for path in run.files("receipt/good"):
        rel = run.rel(path)
        try:
            result = check_receipt(_load_receipt(path))
        except ProvenactError as e:
            run.fail(rel, f"unreadable receipt: {e}")
            continue
        if not result.is_valid:
            run.fail(rel, f"expected receipt to verify: {result.error}")
            continue
        run.passed()

    for path in run.files("receipt/bad"):
        rel = run.rel(path)
        try:
            result = check_receipt(_load_receipt(path))
        except ProvenactError:
            # A receipt that cannot even be parsed is rejected.
            run.passed()
            continue
        if result.is_valid:
            run.fail(rel, "expected receipt hash verification failure")
            continue
        run.passed()

    for path in run.files("registry/snapshot/good"):
        rel = run.rel(path)
        try:
            result = check_snapshot(_load_snapshot(path))
        except ProvenactError as e:
            run.fail(rel, f"unreadable snapshot: {e}")
            continue
        if not result.is_valid:
            run.fail(rel, f"expected snapshot to verify: {result.error}")
            continue
        run.passed()

    for path in run.files("registry/snapshot/bad"):
        rel = run.rel(path)
        if path.name != SEMANTIC_NEGATIVE:
            # Shape-only negatives are covered by the schema group.
            run.passed()
            continue
        try:
            result = check_snapshot(_load_snapshot(path))
        except ProvenactError as e:
            run.fail(rel, f"unreadable snapshot: {e}")
            continue
        if result.is_valid:
            run.fail(rel, "expected snapshot hash mismatch")
            continue
        run.passed()


@timed_operation(logger, "conformance")
def run_conformance(
    root: pathlib.Path,
    store: Optional[SchemaStore] = None,
    *,
    strict: bool = True,
    groups: Iterable[SchemaGroup] = SCHEMA_GROUPS,
) -> ConformanceReport:
    """Run every conformance check under root.

    In strict mode the first failure raises ConformanceFailure; otherwise
    failures are collected on the returned report.
    """
    run = _Run(pathlib.Path(root), store or SchemaStore.load(), strict)
    for group in groups:
        _check_schema_group(run, group)
    _check_capability_vectors(run)
    _check_hash_semantics(run)
    logger.info(
        "conformance finished",
        operation="conformance",
        checks=run.report.checks,
        failures=len(run.report.failures),
    )
    return run.report
