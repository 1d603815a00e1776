"""Perceptual fingerprint extraction for check-in photos."""

import io
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Union

import imagehash
import numpy as np
from PIL import Image

from ..logging import get_logger

logger = get_logger(__name__)

HASH_SIZE = 8
HASH_BITS = HASH_SIZE * HASH_SIZE
HASH_LIMIT = 1 << HASH_BITS


class FingerprintError(Exception):
    """Base class for fingerprint engine failures."""


class ExtractionError(FingerprintError):
    """Raised when an image cannot be opened, decoded or hashed."""


@dataclass(frozen=True)
class FaceDescriptor:
    """Three 64-bit perceptual fingerprints of one image.

    Despite the name this describes the whole photo, not a detected face.
    """
    phash: int  # DCT-based perceptual hash
    ahash: int  # average (mean luminance) hash
    dhash: int  # horizontal difference hash

    def __post_init__(self) -> None:
        for name in ("phash", "ahash", "dhash"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"{name} must be an int, got {type(value).__name__}")
            if not 0 <= value < HASH_LIMIT:
                raise ValueError(f"{name} is outside the unsigned 64-bit range: {value}")

    def to_hex(self) -> Dict[str, str]:
        """Fixed-width hex view of each field, for display."""
        return {
            "phash": f"{self.phash:016x}",
            "ahash": f"{self.ahash:016x}",
            "dhash": f"{self.dhash:016x}",
        }


def extract(image: Image.Image) -> FaceDescriptor:
    """
    Compute the perceptual, average and difference hashes of a decoded image.

    Args:
        image: Decoded PIL image of any size and mode

    Returns:
        FaceDescriptor with all three fields populated

    Raises:
        ExtractionError: If any hash cannot be computed
    """
    try:
        # Convert to RGB so every mode goes through the same grayscale path
        if image.mode != 'RGB':
            image = image.convert('RGB')

        phash = imagehash.phash(image, hash_size=HASH_SIZE)
        ahash = _average_hash(image)
        dhash = imagehash.dhash(image, hash_size=HASH_SIZE)

        descriptor = FaceDescriptor(
            phash=_pack_bits(phash),
            ahash=_pack_bits(ahash),
            dhash=_pack_bits(dhash),
        )
    except ExtractionError:
        raise
    except Exception as exc:
        raise ExtractionError(f"Failed to compute hashes: {exc}") from exc

    logger.debug(f"Extracted descriptor {descriptor.to_hex()}")
    return descriptor


def extract_bytes(data: bytes) -> FaceDescriptor:
    """Decode raw image bytes (JPEG, PNG, ...) and extract their descriptor."""
    if not data:
        raise ExtractionError("Image data is empty")
    return _extract_from(io.BytesIO(data), "<bytes>")


def extract_path(image_path: Union[str, Path]) -> FaceDescriptor:
    """Load an image from disk and extract its descriptor."""
    return _extract_from(Path(image_path), str(image_path))


def _extract_from(source, label: str) -> FaceDescriptor:
    try:
        with Image.open(source) as img:
            img.load()
            return extract(img)
    except ExtractionError:
        raise
    except Exception as exc:
        raise ExtractionError(f"Failed to decode image {label}: {exc}") from exc


def _average_hash(image: Image.Image) -> imagehash.ImageHash:
    # Mean-inclusive: a cell exactly at the mean sets its bit.
    gray = image.convert("L").resize((HASH_SIZE, HASH_SIZE), Image.Resampling.LANCZOS)
    pixels = np.asarray(gray, dtype=np.float64)
    return imagehash.ImageHash(pixels >= pixels.mean())


def _pack_bits(image_hash: imagehash.ImageHash) -> int:
    """Pack a boolean hash grid row-major, most significant bit first."""
    bits = np.asarray(image_hash.hash, dtype=bool).flatten()
    if bits.size != HASH_BITS:
        raise ExtractionError(f"Expected a {HASH_BITS}-bit hash, got {bits.size} bits")

    value = 0
    for bit in bits:
        value = (value << 1) | int(bit)
    return value
