"""Tests for sheetsync.utils.hashing."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone

import pytest

from sheetsync.models import OperationKind
from sheetsync.utils.hashing import canonical_bytes, canonical_json, fingerprint, sha256_hash


@dataclass
class _Point:
    x: int
    y: int


class TestCanonicalJson:
    def test_keys_are_sorted_and_compact(self):
        assert canonical_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'

    def test_non_ascii_kept(self):
        assert canonical_json({"t": "Ünïcødé 😀"}) == '{"t":"Ünïcødé 😀"}'

    def test_tuple_same_as_list(self):
        assert canonical_json((1, 2)) == canonical_json([1, 2])

    def test_enum_serialises_to_value(self):
        assert canonical_json({"k": OperationKind.DELETE}) == '{"k":"delete"}'

    def test_datetime_isoformat(self):
        ts = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert canonical_json(ts) == '"2026-01-02T03:04:05+00:00"'

    def test_dataclass_as_dict(self):
        assert canonical_json(_Point(1, 2)) == '{"x":1,"y":2}'

    def test_unsupported_type_raises(self):
        with pytest.raises(TypeError):
            canonical_json(object())


class TestCanonicalBytes:
    def test_exact_utf8_length(self):
        value = {"t": "é"}
        assert canonical_bytes(value) == '{"t":"é"}'.encode()
        assert len(canonical_bytes(value)) == 10


class TestSha256:
    def test_known_digest(self):
        assert sha256_hash("hello") == hashlib.sha256(b"hello").hexdigest()

    def test_bytes_and_str_agree(self):
        assert sha256_hash("abc") == sha256_hash(b"abc")

    def test_length(self):
        assert len(sha256_hash("")) == 64


class TestFingerprint:
    def test_key_order_independent(self):
        assert fingerprint({"a": 1, "b": {"c": 2, "d": 3}}) == fingerprint({"b": {"d": 3, "c": 2}, "a": 1})

    def test_different_content_differs(self):
        assert fingerprint({"a": 1}) != fingerprint({"a": 2})

    def test_type_sensitive(self):
        assert fingerprint({"a": 1}) != fingerprint({"a": "1"})

    def test_matches_hash_of_canonical_bytes(self):
        value = {"requests": [{"updateCells": {"rows": []}}]}
        assert fingerprint(value) == hashlib.sha256(canonical_bytes(value)).hexdigest()
