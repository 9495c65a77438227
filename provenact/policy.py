"""Capability evaluation against a policy's capability ceiling.

``evaluate_capability`` is the authorization boundary: it is total, pure and
fail-closed. Malformed values, unparseable identifiers and unknown kinds all
evaluate to deny; nothing here raises or performs I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Sequence, Union

from provenact.models import Capability, CapabilityCeiling, CapabilityKind, Policy
from provenact.paths import (
    is_within_prefix,
    net_uri_within_prefix,
    normalize_fs_path,
    parse_absolute_uri,
)

ENV_NAME_RE = re.compile(r"[_A-Z][_A-Z0-9]*")
WILDCARD = "*"

CeilingLike = Union[Policy, CapabilityCeiling]


def is_valid_env_name(value: str) -> bool:
    """POSIX-style environment variable name: ``^[_A-Z][_A-Z0-9]*$``."""
    return ENV_NAME_RE.fullmatch(value) is not None


def _named_resource_allowed(allowed: Sequence[str], value: str) -> bool:
    return bool(value) and any(item == WILDCARD or item == value for item in allowed)


def _fs_allowed(allowed: Sequence[str], value: str) -> bool:
    requested = normalize_fs_path(value)
    if requested is None:
        return False
    for prefix in allowed:
        normalized = normalize_fs_path(prefix)
        if normalized is not None and is_within_prefix(requested, normalized):
            return True
    return False


def _net_allowed(allowed: Sequence[str], value: str) -> bool:
    requested = parse_absolute_uri(value)
    if requested is None:
        return False
    for entry in allowed:
        prefix = parse_absolute_uri(entry)
        if prefix is not None and net_uri_within_prefix(requested, prefix):
            return True
    return False


_RULES: Dict[CapabilityKind, Callable[[CapabilityCeiling, str], bool]] = {
    CapabilityKind.EXEC: lambda c, v: c.exec and v == "true",
    CapabilityKind.EXEC_SAFE: lambda c, v: c.exec and bool(v),
    CapabilityKind.TIME_NOW: lambda c, v: c.time and bool(v),
    CapabilityKind.RANDOM_BYTES: lambda c, v: c.random and bool(v),
    CapabilityKind.ENV: lambda c, v: is_valid_env_name(v) and v in c.env,
    CapabilityKind.NET_HTTP: lambda c, v: _net_allowed(c.net, v),
    CapabilityKind.FS_READ: lambda c, v: _fs_allowed(c.fs.read, v),
    CapabilityKind.FS_WRITE: lambda c, v: _fs_allowed(c.fs.write, v),
    CapabilityKind.KV_READ: lambda c, v: _named_resource_allowed(c.kv.read, v),
    CapabilityKind.KV_WRITE: lambda c, v: _named_resource_allowed(c.kv.write, v),
    CapabilityKind.QUEUE_PUBLISH: lambda c, v: _named_resource_allowed(c.queue.publish, v),
    CapabilityKind.QUEUE_CONSUME: lambda c, v: _named_resource_allowed(c.queue.consume, v),
}


def _ceiling_of(source: CeilingLike) -> CapabilityCeiling:
    if isinstance(source, Policy):
        return source.capability_ceiling
    return source


def evaluate_capability(source: CeilingLike, capability: Capability) -> bool:
    """Return True iff the ceiling permits this single capability.

    ``source`` may be a Policy or its CapabilityCeiling. Unknown kinds deny.
    """
    kind = CapabilityKind.parse(capability.kind)
    if kind is None or not isinstance(capability.value, str):
        return False
    return bool(_RULES[kind](_ceiling_of(source), capability.value))


@dataclass(frozen=True)
class CapabilityDecision:
    capability: Capability
    allowed: bool

    @property
    def decision(self) -> str:
        return "allow" if self.allowed else "deny"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.capability.kind,
            "value": self.capability.value,
            "decision": self.decision,
        }


def evaluate_capabilities(source: CeilingLike, capabilities: Iterable[Capability]) -> List[CapabilityDecision]:
    """Evaluate each capability independently; there are no partial grants."""
    return [CapabilityDecision(cap, evaluate_capability(source, cap)) for cap in capabilities]


def all_allowed(decisions: Iterable[CapabilityDecision]) -> bool:
    return all(d.allowed for d in decisions)
