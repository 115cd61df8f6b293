"""RFC 8785 canonicalization tests."""

import pytest

from snapnet.canonicaljson import canonicalize, strip_signature
from snapnet.errors import CanonicalizationError


class TestCanonicalization:
    def test_object_member_ordering(self):
        assert canonicalize({"b": 2, "a": 1}) == b'{"a":1,"b":2}'

    def test_whitespace_removal(self):
        result = canonicalize({"z": [3, 2, 1], "a": {"y": True, "x": False}})
        assert result == b'{"a":{"x":false,"y":true},"z":[3,2,1]}'

    def test_nested_key_sorting(self):
        result = canonicalize({"c": {"z": 1, "a": 2}, "a": 1})
        assert result == b'{"a":1,"c":{"a":2,"z":1}}'

    def test_integral_float_serializes_as_integer(self):
        assert canonicalize({"n": 1.0}) == b'{"n":1}'

    def test_null_preserved(self):
        assert canonicalize({"a": None}) == b'{"a":null}'

    def test_arrays_of_objects_keep_order(self):
        parts = [
            {"type": "text", "content": "b"},
            {"content": {"z": 1, "a": 0}, "type": "data"},
        ]
        assert canonicalize({"parts": parts}) == (
            b'{"parts":[{"content":"b","type":"text"},'
            b'{"content":{"a":0,"z":1},"type":"data"}]}'
        )

    def test_non_object_values(self):
        assert canonicalize([3, 1, 2]) == b"[3,1,2]"
        assert canonicalize("x") == b'"x"'
        assert canonicalize(None) == b"null"


class TestDeterminism:
    def test_canonicalization_deterministic(self):
        data = {"z": 1, "a": {"c": 3, "b": 2}}
        assert canonicalize(data) == canonicalize(data)

    def test_key_order_irrelevant(self):
        a = {"z": 1, "a": {"y": [1, {"q": 1, "p": 2}], "x": 2}}
        b = {"a": {"x": 2, "y": [1, {"p": 2, "q": 1}]}, "z": 1}
        assert canonicalize(a) == canonicalize(b)

    def test_array_order_significant(self):
        assert canonicalize({"a": [1, 2]}) != canonicalize({"a": [2, 1]})


class TestRejections:
    @pytest.mark.parametrize(
        "value",
        [
            {"a": {1, 2}},
            {"a": b"bytes"},
            {"a": float("nan")},
            {"a": float("inf")},
            {1: "int key"},
            {"a": object()},
        ],
    )
    def test_non_json_values_rejected(self, value):
        with pytest.raises(CanonicalizationError):
            canonicalize(value)


class TestStripSignature:
    def test_removes_top_level_signature_only(self):
        obj = {"id": "m1", "signature": "sig", "metadata": {"signature": "keep"}}
        assert strip_signature(obj) == {"id": "m1", "metadata": {"signature": "keep"}}
        assert "signature" in obj

    def test_requires_object(self):
        with pytest.raises(CanonicalizationError):
            strip_signature(["signature"])
