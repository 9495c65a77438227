"""
Command line interface.
"""

import json

import pytest
import yaml

from conftest import PERMISSIVE_POLICY, write_json
from provenact import __version__
from provenact.cli import EXIT_ERROR, EXIT_OK, EXIT_REJECTED, main


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("PROVENACT_SCHEMA_ROOT", "PROVENACT_VECTORS_ROOT", "PROVENACT_CONFORMANCE_STRICT",
                "PROVENACT_LOG_LEVEL", "PROVENACT_LOG_FORMAT"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def policy_file(tmp_path):
    return write_json(tmp_path / "policy.json", PERMISSIVE_POLICY)


def _run(capsys, *argv):
    code = main(list(argv))
    out = capsys.readouterr().out
    return code, (json.loads(out) if out.strip() else None)


class TestEvaluate:
    def test_allow(self, capsys, policy_file):
        code, out = _run(capsys, "evaluate", "--policy", str(policy_file), "--kind", "fs.read", "--value", "/tmp/x")
        assert code == EXIT_OK
        assert out == {"kind": "fs.read", "value": "/tmp/x", "decision": "allow"}

    def test_deny(self, capsys, policy_file):
        code, out = _run(capsys, "evaluate", "-p", str(policy_file), "-k", "fs.read", "-v", "/etc/passwd")
        assert code == EXIT_REJECTED
        assert out["decision"] == "deny"

    def test_unknown_kind_denies(self, capsys, policy_file):
        code, out = _run(capsys, "evaluate", "-p", str(policy_file), "-k", "gpu", "-v", "0")
        assert code == EXIT_REJECTED

    def test_malformed_policy_is_an_error(self, capsys, tmp_path):
        bad = write_json(tmp_path / "bad.json", {"version": 1, "extra": True})
        code = main(["evaluate", "-p", str(bad), "-k", "exec", "-v", "true"])
        assert code == EXIT_ERROR
        assert "unknown field" in capsys.readouterr().err

    def test_yaml_policy_with_integer_key_is_an_error(self, capsys, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("version: 1\n1: x\nextra: 2\n", encoding="utf-8")
        code = main(["evaluate", "-p", str(bad), "-k", "exec", "-v", "true"])
        assert code == EXIT_ERROR
        assert "unknown field(s) 1, extra" in capsys.readouterr().err

    def test_non_utf8_policy_is_an_error(self, capsys, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_bytes(b"\xff\xfe{")
        code = main(["evaluate", "-p", str(bad), "-k", "exec", "-v", "true"])
        assert code == EXIT_ERROR
        assert "invalid utf-8" in capsys.readouterr().err

    def test_missing_policy_file(self, capsys, tmp_path):
        code = main(["--quiet", "evaluate", "-p", str(tmp_path / "none.json"), "-k", "exec", "-v", "true"])
        assert code == EXIT_ERROR
        assert "Error:" not in capsys.readouterr().err


class TestVerify:
    def test_good_receipt(self, capsys, vector_tree):
        code, out = _run(capsys, "verify-receipt", str(vector_tree / "receipt/good/basic.json"))
        assert code == EXIT_OK
        assert out == {"status": "valid"}

    def test_tampered_receipt(self, capsys, vector_tree):
        code, out = _run(capsys, "verify-receipt", str(vector_tree / "receipt/bad/hash-mismatch.json"))
        assert code == EXIT_REJECTED
        assert out["reason"] == "hash_mismatch"
        assert out["expected"] != out["actual"]

    def test_uppercase_receipt(self, capsys, vector_tree):
        code, out = _run(capsys, "verify-receipt", str(vector_tree / "receipt/bad/uppercase-artifact.json"))
        assert code == EXIT_REJECTED
        assert out["reason"] == "invalid_digest_format"
        assert out["value"] == "sha256:" + "A" * 64

    def test_good_snapshot(self, capsys, vector_tree):
        code, out = _run(capsys, "verify-snapshot", str(vector_tree / "registry/snapshot/good/two-skills.json"))
        assert code == EXIT_OK

    def test_snapshot_missing_md5_is_unparseable(self, capsys, vector_tree):
        code = main(["verify-snapshot", str(vector_tree / "registry/snapshot/bad/missing-md5.json")])
        assert code == EXIT_ERROR


class TestHash:
    def test_receipt_hash_matches_stored(self, capsys, vector_tree):
        path = vector_tree / "receipt/good/basic.json"
        stored = json.loads(path.read_text(encoding="utf-8"))["receipt_hash"]
        code, out = _run(capsys, "hash", "receipt", str(path))
        assert code == EXIT_OK
        assert out == {"kind": "receipt", "digest": stored}

    def test_policy_hash_same_for_json_and_yaml(self, capsys, tmp_path, policy_file):
        yaml_file = tmp_path / "policy.yaml"
        yaml_file.write_text(yaml.safe_dump(PERMISSIVE_POLICY), encoding="utf-8")
        _, from_json = _run(capsys, "hash", "policy", str(policy_file))
        _, from_yaml = _run(capsys, "hash", "policy", str(yaml_file))
        assert from_json["digest"] == from_yaml["digest"]
        assert from_json["digest"].startswith("sha256:")


class TestValidate:
    def test_valid(self, capsys, policy_file):
        code, out = _run(capsys, "validate", "policy", str(policy_file))
        assert code == EXIT_OK
        assert out == {"schema": "policy", "valid": True}

    def test_invalid(self, capsys, vector_tree):
        code, out = _run(capsys, "validate", "policy", str(vector_tree / "policy/invalid/unknown-field.json"))
        assert code == EXIT_REJECTED
        assert out["valid"] is False
        assert out["errors"]


class TestConformance:
    def test_passing_tree(self, capsys, vector_tree):
        code, out = _run(capsys, "conformance", str(vector_tree))
        assert code == EXIT_OK
        assert out["passed"] is True
        assert out["checks"] == 21

    def test_root_from_environment(self, capsys, vector_tree, monkeypatch):
        monkeypatch.setenv("PROVENACT_VECTORS_ROOT", str(vector_tree))
        code, out = _run(capsys, "conformance")
        assert code == EXIT_OK
        assert out["root"] == str(vector_tree)

    def test_strict_failure_stops(self, capsys, vector_tree):
        write_json(vector_tree / "policy/valid/zz-broken.json", {"version": "x"})
        code, out = _run(capsys, "conformance", str(vector_tree))
        assert code == EXIT_REJECTED
        assert out["failures"][0]["file"] == "policy/valid/zz-broken.json"
        assert "checks" not in out

    def test_keep_going_collects(self, capsys, vector_tree):
        write_json(vector_tree / "policy/valid/zz-broken.json", {"version": "x"})
        write_json(vector_tree / "policy/invalid/zz-fine.json", {"version": 1})
        code, out = _run(capsys, "conformance", "--keep-going", str(vector_tree))
        assert code == EXIT_REJECTED
        assert [f["file"] for f in out["failures"]] == ["policy/valid/zz-broken.json", "policy/invalid/zz-fine.json"]

    def test_missing_root(self, capsys, tmp_path):
        code = main(["conformance", str(tmp_path / "nowhere")])
        assert code == EXIT_ERROR
        assert "vector root not found" in capsys.readouterr().err


class TestGlobalOptions:
    def test_yaml_output(self, capsys, policy_file):
        code = main(["--output", "yaml", "evaluate", "-p", str(policy_file), "-k", "env", "-v", "HOME"])
        assert code == EXIT_OK
        assert yaml.safe_load(capsys.readouterr().out)["decision"] == "allow"

    def test_text_output(self, capsys, policy_file):
        main(["-o", "text", "evaluate", "-p", str(policy_file), "-k", "env", "-v", "HOME"])
        assert "decision: allow" in capsys.readouterr().out.splitlines()

    def test_config_show_with_overrides(self, capsys, tmp_path):
        cfg = tmp_path / "provenact.yaml"
        cfg.write_text("conformance:\n  vectors_root: /vectors\n", encoding="utf-8")
        code, out = _run(capsys, "--config", str(cfg), "--log-format", "json", "config", "show")
        assert code == EXIT_OK
        assert out["conformance"]["vectors_root"] == "/vectors"
        assert out["observability"]["log_format"] == "json"

    def test_config_validate(self, capsys):
        code, out = _run(capsys, "config", "validate")
        assert code == EXIT_OK
        assert out == {"valid": True, "errors": []}

    def test_bad_log_level_flag(self, capsys):
        assert main(["--log-level", "loud", "config", "show"]) == EXIT_ERROR

    def test_bad_log_level_environment(self, capsys, monkeypatch):
        monkeypatch.setenv("PROVENACT_LOG_LEVEL", "loud")
        assert main(["config", "show"]) == EXIT_ERROR
        assert "invalid logging configuration" in capsys.readouterr().err

    def test_json_logs_go_to_stderr(self, capsys, vector_tree):
        main(["--log-format", "json", "--log-level", "info", "verify-receipt",
              str(vector_tree / "receipt/good/basic.json")])
        captured = capsys.readouterr()
        assert json.loads(captured.out) == {"status": "valid"}
        events = [json.loads(line) for line in captured.err.splitlines()]
        assert any(e["operation"] == "verify-receipt" and e["layer"] == "verify" for e in events)

    def test_no_command_prints_help(self, capsys):
        assert main([]) == EXIT_OK
        assert "usage:" in capsys.readouterr().out

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--version"])
        assert exc.value.code == 0
        assert __version__ in capsys.readouterr().out
