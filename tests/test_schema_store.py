import json

import pytest

from conftest import PERMISSIVE_POLICY, sha
from provenact.core import ProvenactError
from provenact.schema import (
    BUNDLED_SCHEMA_ROOT,
    SCHEMA_CAPABILITY_EVAL,
    SCHEMA_MANIFEST,
    SCHEMA_NAMES,
    SCHEMA_POLICY,
    SCHEMA_RECEIPT,
    SCHEMA_SNAPSHOT,
    SchemaStore,
    SchemaValidationError,
)


def test_bundled_store_has_every_schema(schema_store):
    assert schema_store.names() == sorted(SCHEMA_NAMES)
    assert schema_store.root == BUNDLED_SCHEMA_ROOT


def test_every_bundled_schema_file_is_valid_json():
    for path in BUNDLED_SCHEMA_ROOT.glob("*.schema.json"):
        schema = json.loads(path.read_text(encoding="utf-8"))
        assert schema["$schema"].endswith("2020-12/schema"), path.name


def test_unknown_schema_name(schema_store):
    with pytest.raises(ProvenactError, match="unknown schema"):
        schema_store.is_valid("nope", {})


def test_missing_schema_file(tmp_path):
    with pytest.raises(ProvenactError, match="missing schema"):
        SchemaStore.load(tmp_path)


class TestPolicySchema:
    def test_permissive_policy(self, schema_store):
        schema_store.validate_value(SCHEMA_POLICY, PERMISSIVE_POLICY)

    def test_minimal_policy(self, schema_store):
        assert schema_store.is_valid(SCHEMA_POLICY, {"version": 0})

    @pytest.mark.parametrize(
        "doc",
        [
            {},
            {"version": -1},
            {"version": 1, "extra": True},
            {"version": 1, "capability_ceiling": {"env": ["lower"]}},
            {"version": 1, "capability_ceiling": {"net": ["https://h.test/v1?q=1"]}},
            {"version": 1, "capability_ceiling": {"net": ["h.test/v1"]}},
            {"version": 2**64},
            {"version": 1, "capability_ceiling": {"env": ["HOME\n"]}},
            {"version": 1, "capability_ceiling": {"net": ["https://h.test/v1\n"]}},
            {"version": 1, "capability_ceiling": {"net": ["https://h.test/a b"]}},
            {"version": 1, "capability_ceiling": {"fs": {"read": ["/tmp"], "exec": []}}},
        ],
    )
    def test_rejects(self, schema_store, doc):
        assert not schema_store.is_valid(SCHEMA_POLICY, doc)

    def test_errors_carry_json_path(self, schema_store):
        errors = schema_store.errors(SCHEMA_POLICY, {"version": 1, "capability_ceiling": {"exec": "yes"}})
        assert len(errors) == 1
        assert errors[0].startswith("$.capability_ceiling.exec:")

    def test_validate_value_raises_with_messages(self, schema_store):
        with pytest.raises(SchemaValidationError) as exc:
            schema_store.validate_value(SCHEMA_POLICY, {"version": "one"})
        assert exc.value.schema == SCHEMA_POLICY
        assert exc.value.messages


class TestRecordSchemas:
    def test_receipt_digest_patterns(self, schema_store):
        receipt = {
            "artifact": sha("a"),
            "inputs_hash": sha("b"),
            "outputs_hash": sha("c"),
            "caps_used": [],
            "timestamp": 1,
            "receipt_hash": sha("d"),
        }
        assert schema_store.is_valid(SCHEMA_RECEIPT, receipt)
        assert not schema_store.is_valid(SCHEMA_RECEIPT, dict(receipt, artifact="sha256:" + "A" * 64))
        assert not schema_store.is_valid(SCHEMA_RECEIPT, dict(receipt, timestamp=True))
        assert not schema_store.is_valid(SCHEMA_RECEIPT, dict(receipt, artifact=sha("a") + "\n"))
        assert not schema_store.is_valid(SCHEMA_RECEIPT, dict(receipt, timestamp=2**64))
        assert schema_store.is_valid(SCHEMA_RECEIPT, dict(receipt, timestamp=2**64 - 1))

    def test_snapshot_entries(self, schema_store):
        snapshot = {
            "timestamp": 1,
            "entries": {"skill": {"sha256": sha("a"), "md5": "a" * 32}},
            "snapshot_hash": sha("b"),
        }
        assert schema_store.is_valid(SCHEMA_SNAPSHOT, snapshot)
        snapshot["entries"]["skill"]["md5"] = "A" * 32
        assert not schema_store.is_valid(SCHEMA_SNAPSHOT, snapshot)
        snapshot["entries"]["skill"]["md5"] = "a" * 32 + "\n"
        assert not schema_store.is_valid(SCHEMA_SNAPSHOT, snapshot)

    def test_manifest_capabilities_have_kind_and_value(self, schema_store):
        manifest = {
            "name": "echo",
            "version": "1.0.0",
            "entrypoint": "run",
            "artifact": sha("a"),
            "capabilities": [{"kind": "fs.read", "value": "/tmp"}],
            "signers": [],
        }
        assert schema_store.is_valid(SCHEMA_MANIFEST, manifest)
        manifest["capabilities"] = [{"kind": "fs.read"}]
        assert not schema_store.is_valid(SCHEMA_MANIFEST, manifest)

    def test_capability_vector_embeds_policy_schema(self, schema_store):
        vector = {
            "name": "v",
            "policy": {"version": 1},
            "cases": [{"capability": {"kind": "exec", "value": "true"}, "expect": "deny"}],
        }
        assert schema_store.is_valid(SCHEMA_CAPABILITY_EVAL, vector)
        vector["policy"] = {"version": 1, "bogus": 1}
        assert not schema_store.is_valid(SCHEMA_CAPABILITY_EVAL, vector)


def test_validate_file(schema_store, tmp_path):
    path = tmp_path / "policy.yaml"
    path.write_text("version: 1\ncapability_ceiling:\n  env: [HOME]\n", encoding="utf-8")
    assert schema_store.validate_file(SCHEMA_POLICY, path) == {"version": 1, "capability_ceiling": {"env": ["HOME"]}}


def test_store_from_custom_root(tmp_path):
    for name in SCHEMA_NAMES + ("common",):
        src = BUNDLED_SCHEMA_ROOT / f"{name}.schema.json"
        (tmp_path / src.name).write_text(src.read_text(encoding="utf-8"), encoding="utf-8")
    store = SchemaStore.load(tmp_path, names=(SCHEMA_POLICY,))
    assert store.names() == [SCHEMA_POLICY]
    assert store.is_valid(SCHEMA_POLICY, {"version": 1})
