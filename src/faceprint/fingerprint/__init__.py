"""Perceptual-hash fingerprint engine for check-in photos."""

from .hash import FaceDescriptor, FingerprintError, ExtractionError, extract, extract_bytes, extract_path
from .codec import MalformedDescriptorError, encode, decode
from .similarity import hamming_distance, compare, compare_encoded
from .verify import VerificationConfig, VerificationResult, describe, register, verify

__all__ = [
    "FaceDescriptor",
    "FingerprintError",
    "ExtractionError",
    "MalformedDescriptorError",
    "extract",
    "extract_bytes",
    "extract_path",
    "encode",
    "decode",
    "hamming_distance",
    "compare",
    "compare_encoded",
    "VerificationConfig",
    "VerificationResult",
    "describe",
    "register",
    "verify",
]
