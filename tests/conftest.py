import json
import os
import pathlib
import sys
from typing import Any

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import provenact`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from provenact.schema import SchemaStore  # noqa: E402


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: exhaustive correctness tests (skipped unless PROVENACT_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    run_slow = _env_flag('PROVENACT_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set PROVENACT_RUN_SLOW=1 to enable'))


def sha(c: str) -> str:
    """A well-formed sha256 digest made of one repeated hex character."""
    return "sha256:" + c * 64


def write_json(path: pathlib.Path, obj: Any) -> pathlib.Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(obj, indent=2) + "\n", encoding="utf-8")
    return path


@pytest.fixture(scope="session")
def schema_store() -> SchemaStore:
    return SchemaStore.load()


@pytest.fixture(autouse=True)
def _reset_provenact_logging():
    yield
    import logging
    root = logging.getLogger("provenact")
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.NOTSET)
    root.propagate = True


PERMISSIVE_POLICY = {
    "version": 1,
    "trusted_signers": ["alice.dev"],
    "capability_ceiling": {
        "fs": {"read": ["/tmp", "/srv/data"], "write": ["/tmp/out"]},
        "net": ["https://api.example.test/v1"],
        "env": ["HOME", "PATH"],
        "kv": {"read": ["*"], "write": ["orders"]},
        "queue": {"publish": ["jobs"], "consume": ["*"]},
        "exec": True,
        "time": True,
        "random": False,
    },
}


def build_vector_tree(root: pathlib.Path) -> pathlib.Path:
    """Write a small, self-consistent conformance tree under root.

    Hash-bearing fixtures are sealed at test time so they always agree with
    the current encoder.
    """
    from provenact.models import SnapshotEntry
    from provenact.receipts import seal_receipt, seal_snapshot

    manifest = {
        "name": "echo",
        "version": "1.0.0",
        "entrypoint": "run",
        "artifact": sha("a"),
        "capabilities": [{"kind": "fs.read", "value": "/tmp"}],
        "signers": ["alice.dev"],
    }
    write_json(root / "skill-manifest/good/echo.json", manifest)
    write_json(root / "skill-manifest/bad/missing-signers.json", {k: v for k, v in manifest.items() if k != "signers"})

    write_json(root / "policy/valid/permissive.json", PERMISSIVE_POLICY)
    (root / "policy/valid/minimal.yaml").write_text("version: 2\ncapability_ceiling:\n  time: true\n", encoding="utf-8")
    write_json(root / "policy/invalid/unknown-field.json", {"version": 1, "extra": True})

    receipt = seal_receipt(
        artifact=sha("a"),
        inputs_hash=sha("b"),
        outputs_hash=sha("c"),
        caps_used=["fs.read", "net.http"],
        timestamp=1700000000,
    )
    write_json(root / "receipt/good/basic.json", receipt.to_dict())
    tampered = receipt.to_dict()
    tampered["timestamp"] += 1
    write_json(root / "receipt/bad/hash-mismatch.json", tampered)
    upper = receipt.to_dict()
    upper["artifact"] = "sha256:" + "A" * 64
    write_json(root / "receipt/bad/uppercase-artifact.json", upper)

    snapshot = seal_snapshot(
        timestamp=1700000000,
        entries={
            "skill-b": SnapshotEntry(sha256=sha("b"), md5="0123456789abcdef0123456789abcdef"),
            "skill-a": SnapshotEntry(sha256=sha("a"), md5="fedcba9876543210fedcba9876543210"),
        },
    )
    write_json(root / "registry/snapshot/good/two-skills.json", snapshot.to_dict())
    mismatch = snapshot.to_dict()
    mismatch["timestamp"] = 1
    write_json(root / "registry/snapshot/bad/hash-mismatch.json", mismatch)
    missing_md5 = snapshot.to_dict()
    del missing_md5["entries"]["skill-a"]["md5"]
    write_json(root / "registry/snapshot/bad/missing-md5.json", missing_md5)

    write_json(root / "capability-eval/basic.json", {
        "name": "basic",
        "policy": PERMISSIVE_POLICY,
        "cases": [
            {"capability": {"kind": "fs.read", "value": "/tmp/report.json"}, "expect": "allow"},
            {"capability": {"kind": "fs.read", "value": "/tmp/./report.json"}, "expect": "deny",
             "note": "dot segments invalidate normalization"},
            {"capability": {"kind": "net.http", "value": "https://api.example.test:443/v1/forecast"}, "expect": "allow"},
            {"capability": {"kind": "env", "value": "home"}, "expect": "deny"},
            {"capability": {"kind": "gpu.compute", "value": "any"}, "expect": "deny"},
        ],
    })
    return root


@pytest.fixture
def vector_tree(tmp_path: pathlib.Path) -> pathlib.Path:
    return build_vector_tree(tmp_path / "vectors")
