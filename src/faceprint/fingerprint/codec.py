"""
Text encoding of face descriptors for storage on employee records.

Version 1 layout is a compact JSON object with sorted keys:

    {"ahash":<int>,"dhash":<int>,"phash":<int>,"version":1}

Objects without a "version" key are the untagged layout written by the
earlier service and decode as version 1. Changing the layout means bumping
DESCRIPTOR_FORMAT_VERSION and migrating stored records.
"""

import json
from typing import Any

from .hash import FaceDescriptor, FingerprintError, HASH_LIMIT

DESCRIPTOR_FORMAT_VERSION = 1

_FIELDS = ("phash", "ahash", "dhash")


class MalformedDescriptorError(FingerprintError):
    """Raised when descriptor text does not parse into three 64-bit fields."""


def encode(descriptor: FaceDescriptor) -> str:
    """Serialize a descriptor to its stable version-1 text form."""
    payload = {
        "version": DESCRIPTOR_FORMAT_VERSION,
        "phash": descriptor.phash,
        "ahash": descriptor.ahash,
        "dhash": descriptor.dhash,
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def decode(text: Any) -> FaceDescriptor:
    """
    Parse descriptor text produced by encode() or by the legacy service.

    Args:
        text: Stored descriptor text

    Returns:
        The decoded FaceDescriptor

    Raises:
        MalformedDescriptorError: If the text is not a valid descriptor
    """
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedDescriptorError("Descriptor is not valid UTF-8") from exc
    if not isinstance(text, str):
        raise MalformedDescriptorError(f"Descriptor must be text, got {type(text).__name__}")

    try:
        data = json.loads(text)
    except ValueError as exc:
        raise MalformedDescriptorError(f"Descriptor is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise MalformedDescriptorError("Descriptor must be a JSON object")

    version = data.get("version", DESCRIPTOR_FORMAT_VERSION)
    if type(version) is not int or version != DESCRIPTOR_FORMAT_VERSION:
        raise MalformedDescriptorError(f"Unsupported descriptor version: {version!r}")

    unexpected = set(data) - set(_FIELDS) - {"version"}
    if unexpected:
        raise MalformedDescriptorError(f"Unexpected descriptor fields: {sorted(unexpected)}")

    values = {}
    for name in _FIELDS:
        if name not in data:
            raise MalformedDescriptorError(f"Descriptor is missing field '{name}'")
        value = data[name]
        if isinstance(value, bool) or not isinstance(value, int):
            raise MalformedDescriptorError(f"Field '{name}' must be an integer")
        if not 0 <= value < HASH_LIMIT:
            raise MalformedDescriptorError(f"Field '{name}' is not an unsigned 64-bit value")
        values[name] = value

    return FaceDescriptor(**values)
