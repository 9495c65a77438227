"""Resource identifier normalization and prefix containment.

Filesystem paths and URI paths share one normalization core:

    /tmp//a/b   ->  /tmp/a/b      empty segments dropped
    /tmp/./a    ->  None          '.' is a rejection, not a no-op
    /tmp/../a   ->  None          '..' is always a rejection

URI paths are additionally rejected when they contain a backslash, any
percent-encoded byte, or any character a URI may not carry unencoded
(controls, space, non-ASCII and '"<>^`{|}'). Encoded traversal is never
decoded and then matched.

Every function here is total over attacker-controlled strings: failures come
back as ``None`` or ``False`` and never as exceptions.
"""

from __future__ import annotations

import re
from typing import NamedTuple, Optional
from urllib.parse import urlsplit

DEFAULT_PORTS = {
    "http": 80,
    "https": 443,
    "ws": 80,
    "wss": 443,
    "ftp": 21,
}

_PCT_TRIPLET_RE = re.compile(r"%[0-9A-Fa-f]{2}")
# Anything outside printable ASCII, plus the delimiters RFC 3986 never allows raw.
_RAW_URI_CHAR_RE = re.compile(r'[^\x21-\x7e]|["<>\\^`{|}]')
_AUTHORITY_PREFIX_RE = re.compile(r"[A-Za-z][A-Za-z0-9+.\-]*://")


def normalize_fs_path(path: str) -> Optional[str]:
    """Normalize an absolute filesystem-style path, or return None."""
    if not isinstance(path, str) or not path.startswith("/") or "\0" in path:
        return None
    parts = []
    for segment in path.split("/"):
        if not segment:
            continue
        if segment in (".", ".."):
            return None
        parts.append(segment)
    return "/" + "/".join(parts)


def normalize_uri_path(path: str) -> Optional[str]:
    """Normalize the path component of a URI, or return None."""
    if not isinstance(path, str):
        return None
    raw = path or "/"
    if _RAW_URI_CHAR_RE.search(raw) or _PCT_TRIPLET_RE.search(raw):
        return None
    return normalize_fs_path(raw)


def is_within_prefix(candidate: str, prefix: str) -> bool:
    """Segment-boundary prefix test on normalized paths.

    ``/tmp2`` is not within ``/tmp``; ``/`` contains every absolute path.
    """
    if prefix == "/":
        return candidate.startswith("/")
    return candidate == prefix or candidate.startswith(prefix + "/")


class ParsedUri(NamedTuple):
    """The parts of an absolute URI that network containment compares."""
    scheme: str
    host: str
    port: Optional[int]
    username: str
    password: Optional[str]
    path: str
    has_query: bool
    has_fragment: bool


def parse_absolute_uri(value: str) -> Optional[ParsedUri]:
    """Parse an absolute URI with a non-empty host, or return None.

    ``port`` is the effective port: the explicit one, else the scheme default.
    Values carrying characters a URI may not hold raw are rejected before
    parsing, since urlsplit silently drops tabs and newlines.
    An empty ``?`` or ``#`` still counts as a present query or fragment.
    """
    if not isinstance(value, str) or not _AUTHORITY_PREFIX_RE.match(value):
        return None
    if _RAW_URI_CHAR_RE.search(value):
        return None
    try:
        parts = urlsplit(value)
        explicit_port = parts.port
    except ValueError:
        return None

    scheme = parts.scheme.lower()
    host = parts.hostname
    if not host:
        return None

    fragment_at = value.find("#")
    before_fragment = value if fragment_at < 0 else value[:fragment_at]

    return ParsedUri(
        scheme=scheme,
        host=host,
        port=explicit_port if explicit_port is not None else DEFAULT_PORTS.get(scheme),
        username=parts.username or "",
        password=parts.password or None,
        path=parts.path,
        has_query="?" in before_fragment,
        has_fragment=fragment_at >= 0,
    )


def net_uri_within_prefix(requested: ParsedUri, allowed: ParsedUri) -> bool:
    """True when ``requested`` falls under the policy URI prefix ``allowed``."""
    if requested.scheme != allowed.scheme:
        return False
    if requested.host != allowed.host:
        return False
    if requested.port != allowed.port:
        return False
    if requested.username != allowed.username or requested.password != allowed.password:
        return False
    if requested.has_fragment or allowed.has_query or allowed.has_fragment:
        return False

    requested_path = normalize_uri_path(requested.path)
    allowed_path = normalize_uri_path(allowed.path)
    if requested_path is None or allowed_path is None:
        return False
    return is_within_prefix(requested_path, allowed_path)


def net_uri_allows(requested: str, allowed: str) -> bool:
    """String form of net_uri_within_prefix; unparseable input never matches."""
    req = parse_absolute_uri(requested)
    allow = parse_absolute_uri(allowed)
    if req is None or allow is None:
        return False
    return net_uri_within_prefix(req, allow)
