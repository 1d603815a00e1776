"""Tests for descriptor similarity scoring."""

import math

import pytest
from hypothesis import given, strategies as st

from faceprint.fingerprint.codec import MalformedDescriptorError, encode
from faceprint.fingerprint.hash import FaceDescriptor
from faceprint.fingerprint.similarity import compare, compare_encoded, field_distances, hamming_distance

ALL_BITS = (1 << 64) - 1

uint64 = st.integers(min_value=0, max_value=ALL_BITS)
descriptors = st.builds(FaceDescriptor, phash=uint64, ahash=uint64, dhash=uint64)


class TestHammingDistance:
    def test_identical(self):
        assert hamming_distance(0xDEADBEEF, 0xDEADBEEF) == 0

    def test_single_bit(self):
        assert hamming_distance(0, 1 << 63) == 1

    def test_all_bits(self):
        assert hamming_distance(0, ALL_BITS) == 64

    @given(a=uint64, b=uint64)
    def test_symmetric(self, a, b):
        assert hamming_distance(a, b) == hamming_distance(b, a)


class TestCompare:
    def test_one_bit_per_field(self):
        """One differing bit in each field averages to distance 1."""
        d1 = FaceDescriptor(phash=0, ahash=0, dhash=0)
        d2 = FaceDescriptor(phash=1, ahash=1 << 20, dhash=1 << 63)

        assert field_distances(d1, d2) == (1, 1, 1)
        assert compare(d1, d2) == 0.984375

    def test_all_bits_differ(self):
        d1 = FaceDescriptor(phash=0, ahash=0, dhash=0)
        d2 = FaceDescriptor(phash=ALL_BITS, ahash=ALL_BITS, dhash=ALL_BITS)

        assert compare(d1, d2) == 0.0

    def test_uneven_fields_are_averaged(self):
        d1 = FaceDescriptor(phash=0, ahash=0, dhash=0)
        d2 = FaceDescriptor(phash=ALL_BITS, ahash=0, dhash=0)

        assert compare(d1, d2) == pytest.approx(1 - (64 / 3) / 64)

    @given(d=descriptors)
    def test_reflexive(self, d):
        assert compare(d, d) == 1.0

    @given(d1=descriptors, d2=descriptors)
    def test_symmetric(self, d1, d2):
        assert compare(d1, d2) == compare(d2, d1)

    @given(d1=descriptors, d2=descriptors)
    def test_bounded(self, d1, d2):
        score = compare(d1, d2)
        assert not math.isnan(score)
        assert 0.0 <= score <= 1.0


class TestCompareEncoded:
    def test_compare_encoded(self):
        d1 = FaceDescriptor(phash=0, ahash=0, dhash=0)
        d2 = FaceDescriptor(phash=1, ahash=1, dhash=1)

        assert compare_encoded(encode(d1), encode(d2)) == 0.984375

    def test_malformed_first(self):
        with pytest.raises(MalformedDescriptorError):
            compare_encoded("not-a-descriptor", encode(FaceDescriptor(0, 0, 0)))

    def test_malformed_second(self):
        with pytest.raises(MalformedDescriptorError):
            compare_encoded(encode(FaceDescriptor(0, 0, 0)), '{"phash":1}')
