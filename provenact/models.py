"""Typed value objects for policies, capabilities, receipts and snapshots.

Every document type has a strict ``from_dict`` parser that rejects unknown
fields, missing required fields and wrongly typed values with InvalidDocument,
and a ``to_dict`` that returns the plain JSON shape used for hashing.

All objects are frozen once constructed; list fields are stored as tuples and
snapshot entries as a read-only mapping in sorted key order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from provenact.core import InvalidDocument

U64_MAX = 2**64 - 1


# =============================================================================
# STRICT FIELD READERS
# =============================================================================

def _require_mapping(kind: str, data: Any, path: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise InvalidDocument(kind, f"expected object, got {type(data).__name__}", path)
    return data


def _check_fields(
    kind: str,
    data: Mapping[str, Any],
    allowed: FrozenSet[str],
    required: FrozenSet[str],
    path: str,
) -> None:
    # YAML input may carry non-string keys.
    unknown = sorted((k for k in data if k not in allowed), key=str)
    if unknown:
        raise InvalidDocument(kind, f"unknown field(s) {', '.join(map(str, unknown))}", path)
    missing = sorted(required - set(data))
    if missing:
        raise InvalidDocument(kind, f"missing field(s) {', '.join(missing)}", path)


def _str(kind: str, value: Any, path: str) -> str:
    if not isinstance(value, str):
        raise InvalidDocument(kind, f"expected string, got {type(value).__name__}", path)
    return value


def _str_list(kind: str, value: Any, path: str) -> Tuple[str, ...]:
    if not isinstance(value, list):
        raise InvalidDocument(kind, f"expected array, got {type(value).__name__}", path)
    return tuple(_str(kind, item, f"{path}[{i}]") for i, item in enumerate(value))


def _bool(kind: str, value: Any, path: str) -> bool:
    if not isinstance(value, bool):
        raise InvalidDocument(kind, f"expected boolean, got {type(value).__name__}", path)
    return value


def _uint(kind: str, value: Any, path: str) -> int:
    # bool is an int subclass; JSON true is not a number.
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= U64_MAX:
        raise InvalidDocument(kind, f"expected unsigned integer, got {value!r}", path)
    return value


# =============================================================================
# CAPABILITIES
# =============================================================================

class CapabilityKind(Enum):
    """The closed set of capability kinds the evaluator understands."""
    EXEC = "exec"
    EXEC_SAFE = "exec.safe"
    TIME_NOW = "time.now"
    RANDOM_BYTES = "random.bytes"
    ENV = "env"
    NET_HTTP = "net.http"
    FS_READ = "fs.read"
    FS_WRITE = "fs.write"
    KV_READ = "kv.read"
    KV_WRITE = "kv.write"
    QUEUE_PUBLISH = "queue.publish"
    QUEUE_CONSUME = "queue.consume"

    @classmethod
    def parse(cls, tag: Any) -> Optional["CapabilityKind"]:
        """Map a kind tag to its enum member; unknown tags give None."""
        try:
            return cls(tag)
        except ValueError:
            return None


@dataclass(frozen=True)
class Capability:
    """A single requested capability: a kind tag plus a concrete value."""
    kind: str
    value: str

    @property
    def parsed_kind(self) -> Optional[CapabilityKind]:
        return CapabilityKind.parse(self.kind)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "value": self.value}

    @classmethod
    def from_dict(cls, data: Any, path: str = "$") -> "Capability":
        kind = "capability"
        d = _require_mapping(kind, data, path)
        _check_fields(kind, d, frozenset({"kind", "value"}), frozenset({"kind", "value"}), path)
        return cls(
            kind=_str(kind, d["kind"], f"{path}.kind"),
            value=_str(kind, d["value"], f"{path}.value"),
        )


# =============================================================================
# POLICY
# =============================================================================

@dataclass(frozen=True)
class FsCeiling:
    read: Tuple[str, ...] = ()
    write: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"read": list(self.read), "write": list(self.write)}


@dataclass(frozen=True)
class KvCeiling:
    read: Tuple[str, ...] = ()
    write: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"read": list(self.read), "write": list(self.write)}


@dataclass(frozen=True)
class QueueCeiling:
    publish: Tuple[str, ...] = ()
    consume: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"publish": list(self.publish), "consume": list(self.consume)}


def _pair_ceiling(kind: str, data: Any, path: str, names: Tuple[str, str]) -> Dict[str, Tuple[str, ...]]:
    d = _require_mapping(kind, data, path)
    _check_fields(kind, d, frozenset(names), frozenset(), path)
    return {name: _str_list(kind, d[name], f"{path}.{name}") for name in names if name in d}


@dataclass(frozen=True)
class CapabilityCeiling:
    """The maximum grant a policy allows, organized by domain.

    Absent lists are empty and absent booleans are false.
    """
    fs: FsCeiling = field(default_factory=FsCeiling)
    net: Tuple[str, ...] = ()
    env: Tuple[str, ...] = ()
    kv: KvCeiling = field(default_factory=KvCeiling)
    queue: QueueCeiling = field(default_factory=QueueCeiling)
    exec: bool = False
    time: bool = False
    random: bool = False

    _FIELDS = frozenset({"fs", "net", "env", "kv", "queue", "exec", "time", "random"})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fs": self.fs.to_dict(),
            "net": list(self.net),
            "env": list(self.env),
            "kv": self.kv.to_dict(),
            "queue": self.queue.to_dict(),
            "exec": self.exec,
            "time": self.time,
            "random": self.random,
        }

    @classmethod
    def from_dict(cls, data: Any, path: str = "$") -> "CapabilityCeiling":
        kind = "policy"
        d = _require_mapping(kind, data, path)
        _check_fields(kind, d, cls._FIELDS, frozenset(), path)
        kwargs: Dict[str, Any] = {}
        if "fs" in d:
            kwargs["fs"] = FsCeiling(**_pair_ceiling(kind, d["fs"], f"{path}.fs", ("read", "write")))
        if "kv" in d:
            kwargs["kv"] = KvCeiling(**_pair_ceiling(kind, d["kv"], f"{path}.kv", ("read", "write")))
        if "queue" in d:
            kwargs["queue"] = QueueCeiling(
                **_pair_ceiling(kind, d["queue"], f"{path}.queue", ("publish", "consume"))
            )
        for name in ("net", "env"):
            if name in d:
                kwargs[name] = _str_list(kind, d[name], f"{path}.{name}")
        for name in ("exec", "time", "random"):
            if name in d:
                kwargs[name] = _bool(kind, d[name], f"{path}.{name}")
        return cls(**kwargs)


@dataclass(frozen=True)
class Policy:
    """An administrator-defined policy: trusted signers plus a capability ceiling."""
    version: int
    trusted_signers: Tuple[str, ...] = ()
    capability_ceiling: CapabilityCeiling = field(default_factory=CapabilityCeiling)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "trusted_signers": list(self.trusted_signers),
            "capability_ceiling": self.capability_ceiling.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Any, path: str = "$") -> "Policy":
        kind = "policy"
        d = _require_mapping(kind, data, path)
        _check_fields(
            kind, d,
            frozenset({"version", "trusted_signers", "capability_ceiling"}),
            frozenset({"version"}),
            path,
        )
        kwargs: Dict[str, Any] = {"version": _uint(kind, d["version"], f"{path}.version")}
        if "trusted_signers" in d:
            kwargs["trusted_signers"] = _str_list(kind, d["trusted_signers"], f"{path}.trusted_signers")
        if "capability_ceiling" in d:
            kwargs["capability_ceiling"] = CapabilityCeiling.from_dict(
                d["capability_ceiling"], f"{path}.capability_ceiling"
            )
        return cls(**kwargs)


# =============================================================================
# MANIFEST
# =============================================================================

@dataclass(frozen=True)
class Manifest:
    """Describes a skill. Declared capabilities are carried as raw JSON values."""
    name: str
    version: str
    entrypoint: str
    artifact: str
    capabilities: Tuple[Any, ...]
    signers: Tuple[str, ...]

    _FIELDS = frozenset({"name", "version", "entrypoint", "artifact", "capabilities", "signers"})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "entrypoint": self.entrypoint,
            "artifact": self.artifact,
            "capabilities": list(self.capabilities),
            "signers": list(self.signers),
        }

    def declared_capabilities(self) -> List[Capability]:
        """Declared capabilities that have the ``{kind, value}`` request shape."""
        out: List[Capability] = []
        for i, raw in enumerate(self.capabilities):
            try:
                out.append(Capability.from_dict(raw, f"$.capabilities[{i}]"))
            except InvalidDocument:
                continue
        return out

    @classmethod
    def from_dict(cls, data: Any, path: str = "$") -> "Manifest":
        kind = "manifest"
        d = _require_mapping(kind, data, path)
        _check_fields(kind, d, cls._FIELDS, cls._FIELDS, path)
        capabilities = d["capabilities"]
        if not isinstance(capabilities, list):
            raise InvalidDocument(kind, "expected array", f"{path}.capabilities")
        return cls(
            name=_str(kind, d["name"], f"{path}.name"),
            version=_str(kind, d["version"], f"{path}.version"),
            entrypoint=_str(kind, d["entrypoint"], f"{path}.entrypoint"),
            artifact=_str(kind, d["artifact"], f"{path}.artifact"),
            capabilities=tuple(capabilities),
            signers=_str_list(kind, d["signers"], f"{path}.signers"),
        )


# =============================================================================
# EXECUTION RECEIPT
# =============================================================================

@dataclass(frozen=True)
class ExecutionReceipt:
    """Record of one skill run, sealed by ``receipt_hash``."""
    artifact: str
    inputs_hash: str
    outputs_hash: str
    caps_used: Tuple[str, ...]
    timestamp: int
    receipt_hash: str

    _FIELDS = frozenset({"artifact", "inputs_hash", "outputs_hash", "caps_used", "timestamp", "receipt_hash"})

    def hash_payload(self) -> Dict[str, Any]:
        """The fields covered by ``receipt_hash`` (everything but the hash)."""
        return {
            "artifact": self.artifact,
            "inputs_hash": self.inputs_hash,
            "outputs_hash": self.outputs_hash,
            "caps_used": list(self.caps_used),
            "timestamp": self.timestamp,
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.hash_payload()
        d["receipt_hash"] = self.receipt_hash
        return d

    @classmethod
    def from_dict(cls, data: Any, path: str = "$") -> "ExecutionReceipt":
        kind = "execution receipt"
        d = _require_mapping(kind, data, path)
        _check_fields(kind, d, cls._FIELDS, cls._FIELDS, path)
        return cls(
            artifact=_str(kind, d["artifact"], f"{path}.artifact"),
            inputs_hash=_str(kind, d["inputs_hash"], f"{path}.inputs_hash"),
            outputs_hash=_str(kind, d["outputs_hash"], f"{path}.outputs_hash"),
            caps_used=_str_list(kind, d["caps_used"], f"{path}.caps_used"),
            timestamp=_uint(kind, d["timestamp"], f"{path}.timestamp"),
            receipt_hash=_str(kind, d["receipt_hash"], f"{path}.receipt_hash"),
        )


# =============================================================================
# REGISTRY SNAPSHOT
# =============================================================================

@dataclass(frozen=True)
class SnapshotEntry:
    sha256: str
    md5: str

    def to_dict(self) -> Dict[str, Any]:
        return {"sha256": self.sha256, "md5": self.md5}

    @classmethod
    def from_dict(cls, data: Any, path: str = "$") -> "SnapshotEntry":
        kind = "registry snapshot"
        d = _require_mapping(kind, data, path)
        _check_fields(kind, d, frozenset({"sha256", "md5"}), frozenset({"sha256", "md5"}), path)
        return cls(
            sha256=_str(kind, d["sha256"], f"{path}.sha256"),
            md5=_str(kind, d["md5"], f"{path}.md5"),
        )


def freeze_entries(entries: Mapping[str, SnapshotEntry]) -> Mapping[str, SnapshotEntry]:
    """Return a read-only copy of snapshot entries in sorted key order."""
    return MappingProxyType({name: entries[name] for name in sorted(entries)})


@dataclass(frozen=True)
class RegistrySnapshot:
    """Hash-sealed point-in-time view of the skill registry."""
    timestamp: int
    entries: Mapping[str, SnapshotEntry]
    snapshot_hash: str

    def __post_init__(self) -> None:
        if not isinstance(self.entries, MappingProxyType):
            object.__setattr__(self, "entries", freeze_entries(self.entries))

    def hash_payload(self) -> Dict[str, Any]:
        """The fields covered by ``snapshot_hash``."""
        return {
            "timestamp": self.timestamp,
            "entries": {name: entry.to_dict() for name, entry in self.entries.items()},
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.hash_payload()
        d["snapshot_hash"] = self.snapshot_hash
        return d

    @classmethod
    def from_dict(cls, data: Any, path: str = "$") -> "RegistrySnapshot":
        kind = "registry snapshot"
        d = _require_mapping(kind, data, path)
        fields = frozenset({"timestamp", "entries", "snapshot_hash"})
        _check_fields(kind, d, fields, fields, path)
        raw_entries = _require_mapping(kind, d["entries"], f"{path}.entries")
        entries = {
            _str(kind, name, f"{path}.entries"): SnapshotEntry.from_dict(entry, f"{path}.entries.{name}")
            for name, entry in raw_entries.items()
        }
        return cls(
            timestamp=_uint(kind, d["timestamp"], f"{path}.timestamp"),
            entries=entries,
            snapshot_hash=_str(kind, d["snapshot_hash"], f"{path}.snapshot_hash"),
        )


# =============================================================================
# CAPABILITY EVALUATION VECTORS
# =============================================================================

EXPECT_ALLOW = "allow"
EXPECT_DENY = "deny"


@dataclass(frozen=True)
class CapabilityCase:
    capability: Capability
    expect: str
    note: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any, path: str = "$") -> "CapabilityCase":
        kind = "capability vector"
        d = _require_mapping(kind, data, path)
        _check_fields(kind, d, frozenset({"capability", "expect", "note"}), frozenset({"capability", "expect"}), path)
        expect = _str(kind, d["expect"], f"{path}.expect")
        if expect not in (EXPECT_ALLOW, EXPECT_DENY):
            raise InvalidDocument(kind, f"expect must be allow or deny, got {expect!r}", f"{path}.expect")
        note = d.get("note")
        return cls(
            capability=Capability.from_dict(d["capability"], f"{path}.capability"),
            expect=expect,
            note=None if note is None else _str(kind, note, f"{path}.note"),
        )


@dataclass(frozen=True)
class CapabilityEvalVector:
    """A named policy plus capability cases with their expected decisions."""
    name: str
    policy: Policy
    cases: Tuple[CapabilityCase, ...]

    @classmethod
    def from_dict(cls, data: Any, path: str = "$") -> "CapabilityEvalVector":
        kind = "capability vector"
        d = _require_mapping(kind, data, path)
        fields = frozenset({"name", "policy", "cases"})
        _check_fields(kind, d, fields, fields, path)
        cases = d["cases"]
        if not isinstance(cases, list):
            raise InvalidDocument(kind, "expected array", f"{path}.cases")
        return cls(
            name=_str(kind, d["name"], f"{path}.name"),
            policy=Policy.from_dict(d["policy"], f"{path}.policy"),
            cases=tuple(CapabilityCase.from_dict(c, f"{path}.cases[{i}]") for i, c in enumerate(cases)),
        )

