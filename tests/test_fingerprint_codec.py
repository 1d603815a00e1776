"""Tests for descriptor text encoding."""

import json

import pytest
from hypothesis import given, strategies as st

from faceprint.fingerprint.codec import DESCRIPTOR_FORMAT_VERSION, MalformedDescriptorError, decode, encode
from faceprint.fingerprint.hash import FaceDescriptor

uint64 = st.integers(min_value=0, max_value=(1 << 64) - 1)
descriptors = st.builds(FaceDescriptor, phash=uint64, ahash=uint64, dhash=uint64)


class TestEncode:
    def test_encode_stable_layout(self):
        """Version 1 layout is compact JSON with sorted keys."""
        text = encode(FaceDescriptor(phash=1, ahash=2, dhash=3))

        assert text == '{"ahash":2,"dhash":3,"phash":1,"version":1}'

    def test_encode_carries_version(self):
        data = json.loads(encode(FaceDescriptor(phash=0, ahash=0, dhash=0)))

        assert data["version"] == DESCRIPTOR_FORMAT_VERSION == 1

    @given(descriptor=descriptors)
    def test_round_trip(self, descriptor):
        """For any descriptor, decode(encode(d)) == d."""
        assert decode(encode(descriptor)) == descriptor


class TestDecode:
    def test_decode_legacy_untagged(self):
        """Descriptors written without a version tag decode as version 1."""
        legacy = '{"phash":18446744073709551615,"ahash":0,"dhash":42}'

        assert decode(legacy) == FaceDescriptor(phash=(1 << 64) - 1, ahash=0, dhash=42)

    def test_decode_accepts_bytes(self):
        assert decode(b'{"phash":1,"ahash":2,"dhash":3,"version":1}') == FaceDescriptor(1, 2, 3)

    @pytest.mark.parametrize("text", [
        "not-a-descriptor",
        "",
        "[]",
        "null",
        "42",
        '{"phash":1,"ahash":2}',
        '{"phash":1,"ahash":2,"dhash":3,"version":2}',
        '{"phash":1,"ahash":2,"dhash":3,"version":"1"}',
        '{"phash":1,"ahash":2,"dhash":3,"version":true}',
        '{"phash":1,"ahash":2,"dhash":3,"version":1.0}',
        '{"phash":1,"ahash":2,"dhash":3,"extra":4}',
        '{"phash":-1,"ahash":2,"dhash":3}',
        '{"phash":18446744073709551616,"ahash":2,"dhash":3}',
        '{"phash":1.5,"ahash":2,"dhash":3}',
        '{"phash":"1","ahash":2,"dhash":3}',
        '{"phash":true,"ahash":2,"dhash":3}',
        '{"phash":1,"ahash":2,"dhash":null}',
        '{"phash":1,"ahash":2,"dhash":3',
    ])
    def test_decode_rejects_malformed(self, text):
        with pytest.raises(MalformedDescriptorError):
            decode(text)

    def test_decode_rejects_non_text(self):
        with pytest.raises(MalformedDescriptorError):
            decode(None)
        with pytest.raises(MalformedDescriptorError):
            decode(12345)

    def test_decode_rejects_invalid_utf8(self):
        with pytest.raises(MalformedDescriptorError):
            decode(b"\xff\xfe\x00")

    @given(text=st.text(max_size=40))
    def test_decode_never_raises_other_errors(self, text):
        """Arbitrary text either decodes or raises MalformedDescriptorError."""
        try:
            result = decode(text)
        except MalformedDescriptorError:
            return
        assert isinstance(result, FaceDescriptor)
