"""Similarity scoring between face descriptors."""

from typing import Tuple

from .codec import decode
from .hash import FaceDescriptor, HASH_BITS


def hamming_distance(a: int, b: int) -> int:
    """
    Calculate Hamming distance between two 64-bit hashes.

    Args:
        a: First hash
        b: Second hash

    Returns:
        Hamming distance (number of differing bits)
    """
    return bin(a ^ b).count("1")


def field_distances(d1: FaceDescriptor, d2: FaceDescriptor) -> Tuple[int, int, int]:
    """Per-field distances as (phash, ahash, dhash)."""
    return (
        hamming_distance(d1.phash, d2.phash),
        hamming_distance(d1.ahash, d2.ahash),
        hamming_distance(d1.dhash, d2.dhash),
    )


def compare(d1: FaceDescriptor, d2: FaceDescriptor) -> float:
    """
    Score two descriptors from 0.0 (every bit differs) to 1.0 (identical).

    The three field distances are averaged and normalized by the hash width.
    """
    avg_distance = sum(field_distances(d1, d2)) / 3.0
    similarity = 1.0 - (avg_distance / HASH_BITS)

    # Keep the score in range even if the distance formula changes
    return max(0.0, min(1.0, similarity))


def compare_encoded(text1: str, text2: str) -> float:
    """Decode two stored descriptors and compare them."""
    return compare(decode(text1), decode(text2))
