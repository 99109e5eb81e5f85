"""Tests for payload envelope generation."""

import json

import pytest

from pty_trafficgen.payload import (
    CHARSET,
    DATA_MARKER,
    encode_payload,
    encode_request,
    make_payload,
    random_string,
)


class TestRandomString:
    def test_length(self):
        assert len(random_string(37)) == 37

    def test_empty(self):
        assert random_string(0) == ""

    def test_printable_charset(self):
        s = random_string(500)
        assert set(s) <= set(CHARSET)

    def test_unique(self):
        values = {random_string(16) for _ in range(100)}
        assert len(values) == 100

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            random_string(-1)


class TestPayload:
    def test_marker_and_length(self):
        p = make_payload(100)
        assert p.startswith(DATA_MARKER)
        assert len(p) == 100

    def test_single_byte_is_marker_only(self):
        assert make_payload(1) == "#"

    def test_zero_size_rejected(self):
        with pytest.raises(ValueError, match="at least 1"):
            make_payload(0)

    def test_envelope_shape(self):
        data = encode_payload(100)
        decoded = json.loads(data)
        assert list(decoded) == ["data"]
        assert decoded["data"][0] == "#"
        assert len(decoded["data"]) == 100

    def test_compact_encoding(self):
        assert encode_request("#ab") == b'{"data":"#ab"}'
        # 11 bytes of framing per envelope
        assert len(encode_payload(100)) == 111
