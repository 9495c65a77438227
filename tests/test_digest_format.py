import pytest

from provenact.core import (
    InvalidDigestFormat,
    is_valid_md5_hex,
    is_valid_sha256_prefixed,
    md5_hex,
    sha256_of_record,
    sha256_prefixed,
    validate_md5_hex,
    validate_sha256_prefixed,
)

EMPTY_SHA256 = "sha256:e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
EMPTY_MD5 = "d41d8cd98f00b204e9800998ecf8427e"


def test_sha256_prefixed_known_answer():
    assert sha256_prefixed(b"") == EMPTY_SHA256
    assert len(sha256_prefixed(b"anything")) == 71


def test_md5_hex_known_answer():
    assert md5_hex(b"") == EMPTY_MD5


def test_sha256_of_record_hashes_canonical_bytes():
    assert sha256_of_record({"b": 1, "a": 2}) == sha256_prefixed(b'{"a":2,"b":1}')


def test_generated_digests_validate():
    validate_sha256_prefixed(sha256_prefixed(b"x"))
    validate_md5_hex(md5_hex(b"x"))


@pytest.mark.parametrize(
    "bad",
    [
        "sha256:" + "a" * 63 + "A",             # uppercase is rejected, not normalized
        "sha256:" + "A" * 64,
        "sha256:" + "a" * 63,                   # short
        "sha256:" + "a" * 65,                   # long
        "SHA256:" + "a" * 64,                   # prefix is case-sensitive
        "md5:" + "f" * 32,
        "a" * 64,                               # bare hex has no prefix
        "sha256:" + "g" * 64,
        "sha256:" + "١" * 64,              # non-ASCII digits
        "sha256:short",
        "",
    ],
)
def test_invalid_sha256_carries_offending_value(bad):
    with pytest.raises(InvalidDigestFormat) as exc:
        validate_sha256_prefixed(bad)
    assert exc.value.value == bad
    assert exc.value.algorithm == "sha256"
    assert not is_valid_sha256_prefixed(bad)


@pytest.mark.parametrize(
    "bad",
    [
        "0123456789abcdef0123456789abcdeF",
        "0123456789abcdef0123456789abcde",
        "0123456789abcdef0123456789abcdef0",
        "0123456789abcdef0123456789abcdez",
        "md5:0123456789abcdef0123456789ab",
        "",
    ],
)
def test_invalid_md5_carries_offending_value(bad):
    with pytest.raises(InvalidDigestFormat) as exc:
        validate_md5_hex(bad)
    assert exc.value.value == bad
    assert exc.value.algorithm == "md5"
    assert not is_valid_md5_hex(bad)


def test_non_string_digest_rejected():
    assert not is_valid_sha256_prefixed(None)
    assert not is_valid_md5_hex(12345)
