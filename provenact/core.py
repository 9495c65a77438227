"""Core primitives for the provenact trust kernel.

This module provides the foundational utilities used by every other layer:
- Error types shared across the kernel
- Canonical JSON serialization (JCS/RFC8785)
- Digest formatting and validation (prefixed SHA-256, bare MD5)
- YAML/JSON loading with consistent encoding

Design principles:
- Pure functions where possible
- No global mutable state
- Explicit error handling
- Type annotations throughout
"""

from __future__ import annotations

import hashlib
import json
import math
import pathlib
from typing import Any, List, Mapping, Optional, Sequence, Union

import yaml

SHA256_PREFIX = "sha256:"
SHA256_HEX_LEN = 64
SHA256_PREFIXED_LEN = len(SHA256_PREFIX) + SHA256_HEX_LEN
MD5_HEX_LEN = 32

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


# =============================================================================
# ERROR TYPES
# =============================================================================

class ProvenactError(Exception):
    """Base exception for all kernel failures."""
    pass


class InvalidDocument(ProvenactError):
    """A document does not have the shape of its data model.

    Raised for unknown fields, missing required fields and wrong value types.
    """

    def __init__(self, kind: str, message: str, path: str = ""):
        self.kind = kind
        self.message = message
        self.path = path
        where = f" at {path}" if path else ""
        super().__init__(f"invalid {kind}{where}: {message}")


class CanonicalEncodingFailure(ProvenactError):
    """A value cannot be represented in canonical JSON."""

    def __init__(self, message: str, path: str = ""):
        self.path = path
        where = f" at {path}" if path else ""
        super().__init__(f"canonical json serialization failed{where}: {message}")


class InvalidDigestFormat(ProvenactError):
    """A digest string is not in its canonical format."""

    def __init__(self, value: str, algorithm: str = "sha256"):
        self.value = value
        self.algorithm = algorithm
        super().__init__(f"invalid {algorithm} format: {value}")


class HashMismatch(ProvenactError):
    """A recomputed digest differs from the stored one."""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"hash mismatch: expected={expected} actual={actual}")


# =============================================================================
# CANONICAL JSON
# =============================================================================

def _format_number(value: Union[int, float], path: str) -> str:
    """Render a number the way RFC 8785 requires (ECMAScript Number.toString)."""
    if isinstance(value, int):
        return str(value)
    if not math.isfinite(value):
        raise CanonicalEncodingFailure(f"non-finite number {value!r}", path)
    if value == 0:
        return "0"

    sign = "-" if value < 0 else ""
    mantissa, _, exp_text = repr(abs(value)).partition("e")
    int_part, _, frac_part = mantissa.partition(".")
    raw_digits = int_part + frac_part
    digits = raw_digits.lstrip("0")
    point = len(int_part) + int(exp_text or 0) - (len(raw_digits) - len(digits))
    digits = digits.rstrip("0")
    k = len(digits)

    if k <= point <= 21:
        text = digits + "0" * (point - k)
    elif 0 < point <= 21:
        text = digits[:point] + "." + digits[point:]
    elif -6 < point <= 0:
        text = "0." + "0" * (-point) + digits
    else:
        exponent = point - 1
        exp_sign = "+" if exponent >= 0 else "-"
        head = digits if k == 1 else digits[0] + "." + digits[1:]
        text = f"{head}e{exp_sign}{abs(exponent)}"
    return sign + text


def _encode_string(value: str, path: str) -> bytes:
    try:
        return json.dumps(value, ensure_ascii=False).encode("utf-8")
    except UnicodeEncodeError as e:
        raise CanonicalEncodingFailure(f"string is not valid unicode ({e.reason})", path) from e


def _utf16_sort_key(key: str) -> bytes:
    # RFC 8785 orders members by UTF-16 code units, not by code point.
    return key.encode("utf-16-be", "surrogatepass")


def _encode(obj: Any, path: str, out: List[bytes]) -> None:
    if obj is None:
        out.append(b"null")
    elif obj is True:
        out.append(b"true")
    elif obj is False:
        out.append(b"false")
    elif isinstance(obj, (int, float)):
        out.append(_format_number(obj, path).encode("ascii"))
    elif isinstance(obj, str):
        out.append(_encode_string(obj, path))
    elif isinstance(obj, Mapping):
        for key in obj:
            if not isinstance(key, str):
                raise CanonicalEncodingFailure(f"object key {key!r} is not a string", path)
        out.append(b"{")
        for i, key in enumerate(sorted(obj, key=_utf16_sort_key)):
            if i:
                out.append(b",")
            out.append(_encode_string(key, f"{path}.{key}"))
            out.append(b":")
            _encode(obj[key], f"{path}.{key}", out)
        out.append(b"}")
    elif isinstance(obj, (list, tuple)):
        out.append(b"[")
        for i, item in enumerate(obj):
            if i:
                out.append(b",")
            _encode(item, f"{path}[{i}]", out)
        out.append(b"]")
    else:
        raise CanonicalEncodingFailure(f"unsupported type {type(obj).__name__}", path)


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize object to canonical JSON bytes (JCS/RFC8785).

    Properties:
    - Keys sorted by UTF-16 code units
    - No whitespace
    - UTF-8 encoded
    - Numbers in ECMAScript shortest form; NaN and infinities rejected

    This ensures byte-for-byte reproducibility for cryptographic commitments.
    """
    out: List[bytes] = []
    _encode(obj, "$", out)
    return b"".join(out)


# =============================================================================
# DIGESTS
# =============================================================================

def sha256_prefixed(data: bytes) -> str:
    """Compute SHA-256 of bytes as ``sha256:<lowercase hex>``."""
    return SHA256_PREFIX + hashlib.sha256(data).hexdigest()


def md5_hex(data: bytes) -> str:
    """Compute MD5 of bytes as a bare lowercase hex string."""
    return hashlib.md5(data).hexdigest()


def _is_lower_hex(text: str) -> bool:
    return all(c in _HEX_DIGITS and not c.isupper() for c in text)


def validate_sha256_prefixed(value: str) -> None:
    """Raise InvalidDigestFormat unless value is ``sha256:`` + 64 lowercase hex.

    Uppercase hex is rejected rather than normalized.
    """
    if (
        not isinstance(value, str)
        or not value.startswith(SHA256_PREFIX)
        or len(value) != SHA256_PREFIXED_LEN
        or not _is_lower_hex(value[len(SHA256_PREFIX):])
    ):
        raise InvalidDigestFormat(str(value), "sha256")


def validate_md5_hex(value: str) -> None:
    """Raise InvalidDigestFormat unless value is 32 lowercase hex characters."""
    if not isinstance(value, str) or len(value) != MD5_HEX_LEN or not _is_lower_hex(value):
        raise InvalidDigestFormat(str(value), "md5")


def is_valid_sha256_prefixed(value: str) -> bool:
    try:
        validate_sha256_prefixed(value)
    except InvalidDigestFormat:
        return False
    return True


def is_valid_md5_hex(value: str) -> bool:
    try:
        validate_md5_hex(value)
    except InvalidDigestFormat:
        return False
    return True


def sha256_of_record(obj: Any) -> str:
    """Digest the canonical encoding of a structured record."""
    return sha256_prefixed(canonical_json_bytes(obj))


# =============================================================================
# DOCUMENT LOADING
# =============================================================================

def _read_text(path: pathlib.Path, kind: Optional[str] = None) -> str:
    p = pathlib.Path(path)
    try:
        return p.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise InvalidDocument(kind or p.name, f"invalid utf-8: {e}") from e


def load_yaml(path: pathlib.Path) -> Any:
    """Load YAML file with UTF-8 encoding."""
    return yaml.safe_load(_read_text(path))


def load_json(path: pathlib.Path) -> Any:
    """Load JSON file with UTF-8 encoding."""
    return json.loads(_read_text(path))


def parse_json(raw: Union[str, bytes], kind: str = "document") -> Any:
    """Parse JSON text, reporting syntax errors as InvalidDocument."""
    try:
        return json.loads(raw)
    except ValueError as e:
        raise InvalidDocument(kind, f"invalid json: {e}") from e


def load_document(path: pathlib.Path, kind: Optional[str] = None) -> Any:
    """Load a JSON or YAML document, choosing the parser by file extension."""
    p = pathlib.Path(path)
    kind = kind or p.name
    try:
        text = _read_text(p, kind)
        if p.suffix in (".yaml", ".yml"):
            return yaml.safe_load(text)
        return parse_json(text, kind)
    except yaml.YAMLError as e:
        raise InvalidDocument(kind, f"invalid yaml: {e}") from e


def list_documents(directory: pathlib.Path, suffixes: Sequence[str] = (".json", ".yaml", ".yml")) -> List[pathlib.Path]:
    """Return the JSON/YAML files directly inside a directory, sorted by name."""
    d = pathlib.Path(directory)
    if not d.is_dir():
        return []
    return sorted(p for p in d.iterdir() if p.is_file() and p.suffix in suffixes)
