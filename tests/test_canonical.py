"""Tests for canonical JSON serialization."""

import hashlib
import json

import pytest

from evidence_forensic.utils.canonical import (
    canonical_bytes,
    canonical_json,
    canonical_sha512,
    pretty_json,
)


class TestCanonicalJson:
    """Tests for the signing serializer."""

    def test_compact_separators(self):
        """Test that no incidental whitespace is emitted."""
        assert canonical_json({"a": 1, "b": [1, 2]}) == '{"a":1,"b":[1,2]}'

    def test_insertion_order_preserved(self):
        """Test that keys are not sorted."""
        assert canonical_json({"z": 1, "a": 2}) == '{"z":1,"a":2}'

    def test_non_ascii_emitted_verbatim(self):
        """Test UTF-8 text is not escaped."""
        assert canonical_json({"party": "Société Générale"}) == '{"party":"Société Générale"}'
        assert canonical_bytes({"party": "é"}) == '{"party":"é"}'.encode("utf-8")

    def test_nan_rejected(self):
        """Test that NaN cannot be signed."""
        with pytest.raises(ValueError):
            canonical_json({"score": float("nan")})

    def test_round_trip_through_json_loads_is_stable(self):
        """Test that parse then re-serialize reproduces the same text."""
        payload = {"schema": "s", "stats": {"risk_score": 0.15000000000000002, "keywords": 3}, "ok": True}
        text = canonical_json(payload)
        assert canonical_json(json.loads(text)) == text

    def test_pretty_json_parses_to_same_canonical_form(self):
        """Test that the pretty file form re-canonicalizes identically."""
        payload = {"b": 1.0, "a": {"y": False, "x": None}}
        assert canonical_json(json.loads(pretty_json(payload))) == canonical_json(payload)


class TestCanonicalSha512:
    """Tests for canonical hashing."""

    def test_hash_over_canonical_bytes(self):
        payload = {"a": 1}
        assert canonical_sha512(payload) == hashlib.sha512(b'{"a":1}').hexdigest()

    def test_order_changes_hash(self):
        assert canonical_sha512({"a": 1, "b": 2}) != canonical_sha512({"b": 2, "a": 1})
