"""Tests for script_forge.hasher."""

import hashlib

import pytest

from script_forge.config import ID_DIGEST_LEN
from script_forge.hasher import content_hash, identity_token, truncate


class TestContentHash:
    def test_matches_sha1(self):
        assert content_hash(b"abc") == hashlib.sha1(b"abc").hexdigest()

    def test_parts_are_concatenated(self):
        assert content_hash("ab", "c") == content_hash(b"abc")

    def test_str_is_utf8(self):
        assert content_hash("é") == hashlib.sha1("é".encode("utf-8")).hexdigest()

    def test_deterministic(self):
        assert content_hash("x") == content_hash("x")

    def test_empty(self):
        assert content_hash() == hashlib.sha1().hexdigest()


class TestTruncate:
    def test_default_length(self):
        digest = content_hash("x")
        assert truncate(digest) == digest[:ID_DIGEST_LEN]

    @pytest.mark.parametrize("n", [0, -1, 41])
    def test_out_of_range(self, n):
        with pytest.raises(ValueError):
            truncate(content_hash("x"), n)


class TestIdentityToken:
    def test_length_and_alphabet(self):
        token = identity_token("/home/user/script.rs")
        assert len(token) == ID_DIGEST_LEN
        assert set(token) <= set("0123456789abcdef")

    def test_distinct_inputs(self):
        assert identity_token("a") != identity_token("b")
