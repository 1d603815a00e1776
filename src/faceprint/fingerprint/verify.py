"""Match decisions for check-in photos against a stored reference."""

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Union

from PIL import Image

from .codec import decode, encode
from .hash import FaceDescriptor, extract, extract_bytes, extract_path
from .similarity import compare
from ..logging import get_logger

logger = get_logger(__name__)

DEFAULT_THRESHOLD = 0.6

Candidate = Union[bytes, str, Path, Image.Image]
Reference = Union[FaceDescriptor, str]


@dataclass(frozen=True)
class VerificationConfig:
    """Immutable verification settings handed to verify()."""
    threshold: float = DEFAULT_THRESHOLD

    def __post_init__(self) -> None:
        threshold = float(self.threshold)
        if math.isnan(threshold) or not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {self.threshold}")
        object.__setattr__(self, "threshold", threshold)


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of one verification attempt. Unpacks as (is_match, score)."""
    is_match: bool
    score: float

    def __iter__(self) -> Iterator:
        yield self.is_match
        yield self.score


def describe(candidate: Candidate) -> FaceDescriptor:
    """
    Decode a candidate image and extract its descriptor.

    Args:
        candidate: Raw image bytes, a path to an image file, or a decoded image

    Returns:
        The candidate's FaceDescriptor

    Raises:
        ExtractionError: If the image cannot be decoded or hashed
    """
    if isinstance(candidate, Image.Image):
        return extract(candidate)
    if isinstance(candidate, (bytes, bytearray, memoryview)):
        return extract_bytes(bytes(candidate))
    return extract_path(candidate)


def register(candidate: Candidate) -> str:
    """Extract and encode a reference descriptor ready for persistence."""
    return encode(describe(candidate))


def verify(
    candidate: Candidate,
    reference: Reference,
    config: Optional[VerificationConfig] = None,
) -> VerificationResult:
    """
    Compare a candidate image against a reference descriptor.

    A score equal to the threshold counts as a match. Extraction and
    descriptor errors propagate: an image that could not be evaluated is
    never reported as a rejection.

    Args:
        candidate: Check-in image as bytes, path or decoded image
        reference: Stored FaceDescriptor or its encoded text
        config: Threshold settings, defaults to VerificationConfig()

    Returns:
        VerificationResult with the match decision and raw score

    Raises:
        ExtractionError: If the candidate cannot be decoded or hashed
        MalformedDescriptorError: If the encoded reference is corrupt
    """
    config = config or VerificationConfig()

    candidate_descriptor = describe(candidate)

    if not isinstance(reference, FaceDescriptor):
        reference = decode(reference)

    score = compare(candidate_descriptor, reference)
    is_match = score >= config.threshold

    logger.debug(f"Verification score={score:.4f} threshold={config.threshold} match={is_match}")
    return VerificationResult(is_match=is_match, score=score)
