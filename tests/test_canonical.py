"""
Claim fingerprinting and canonical JSON tests.

Copyright (c) 2026 Momentum. All rights reserved.
"""

import hashlib

import pytest

from poe.canonical import (
    DEFAULT_ALGORITHM,
    claim_digest,
    claim_hex,
    file_digest,
    jcs_canonicalize,
    normalize_claim,
    parse_claim,
    sha256_hex,
)


class TestDigests:
    """Content fingerprints."""

    def test_default_is_blake2b_256(self):
        digest = claim_digest(b"hello")

        assert DEFAULT_ALGORITHM == "blake2b-256"
        assert digest == hashlib.blake2b(b"hello", digest_size=32).digest()
        assert len(digest) == 32

    def test_sha256(self):
        assert claim_digest(b"hello", "sha256") == hashlib.sha256(b"hello").digest()

    def test_unknown_algorithm(self):
        with pytest.raises(ValueError, match="Unsupported digest algorithm"):
            claim_digest(b"hello", "md5")

    def test_file_digest_matches_content_digest(self, tmp_path):
        data = bytes(range(256)) * 1024
        path = tmp_path / "doc.bin"
        path.write_bytes(data)

        assert file_digest(path) == claim_digest(data)
        assert file_digest(str(path), "sha256") == claim_digest(data, "sha256")


class TestClaimEncoding:
    """Hex form of claims."""

    @pytest.mark.parametrize("text,expected", [
        ("0xabcd", b"\xab\xcd"),
        ("ABCD", b"\xab\xcd"),
        ("0X01", b"\x01"),
        ("0x", b""),
        ("  00ff  ", b"\x00\xff"),
    ])
    def test_parse_claim(self, text, expected):
        assert parse_claim(text) == expected

    @pytest.mark.parametrize("text", ["0xabc", "zz", "0x0g"])
    def test_parse_claim_invalid(self, text):
        with pytest.raises(ValueError, match="Invalid hex claim"):
            parse_claim(text)

    def test_claim_hex(self):
        assert claim_hex(b"\x00\xff") == "0x00ff"
        assert claim_hex(b"") == "0x"

    def test_normalize_claim(self):
        assert normalize_claim(bytearray(b"ab")) == b"ab"
        assert normalize_claim(memoryview(b"ab")) == b"ab"
        with pytest.raises(TypeError):
            normalize_claim("ab")
        with pytest.raises(TypeError):
            normalize_claim(None)


class TestCanonicalJson:
    """JCS-like canonicalization."""

    def test_sorted_compact(self):
        assert jcs_canonicalize({"b": 1, "a": [True, None]}) == b'{"a":[true,null],"b":1}'

    def test_bytes_as_hex(self):
        assert jcs_canonicalize({"claim": b"\x01\x02"}) == b'{"claim":"0x0102"}'

    def test_floats_rejected(self):
        with pytest.raises(ValueError):
            jcs_canonicalize({"x": 1.5})

    def test_sha256_hex(self):
        assert sha256_hex(b"") == hashlib.sha256(b"").hexdigest()

    def test_unicode_preserved(self):
        assert jcs_canonicalize("é") == '"é"'.encode("utf-8")
