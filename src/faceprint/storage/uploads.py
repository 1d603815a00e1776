"""Upload file handling for reference photos and check-in selfies."""

import uuid
from datetime import datetime
from pathlib import Path
from typing import Union

from ..logging import get_logger

logger = get_logger(__name__)

ALLOWED_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png"})


class InvalidUploadError(Exception):
    """Raised when an uploaded file is rejected before it is stored."""


def save_upload(filename: str, data: bytes, upload_dir: Path) -> Path:
    """
    Save uploaded bytes under a unique name.

    Files are named ``<YYYYmmdd_HHMMSS>_<8 hex>.<ext>``; the extension of the
    original filename is kept, lower-cased.

    Args:
        filename: Client-supplied file name, used only for its extension
        data: File content
        upload_dir: Directory to store the file in (created if missing)

    Returns:
        Path of the stored file

    Raises:
        InvalidUploadError: If the extension is not JPG/JPEG/PNG or data is empty
    """
    ext = Path(filename or "").suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise InvalidUploadError("Invalid file type. Only JPG, JPEG, and PNG are allowed")
    if not data:
        raise InvalidUploadError("Uploaded file is empty")

    upload_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    unique_id = uuid.uuid4().hex[:8]
    file_path = upload_dir / f"{timestamp}_{unique_id}{ext}"

    file_path.write_bytes(data)
    logger.debug(f"Saved upload {filename!r} to {file_path}")
    return file_path


def delete_file(file_path: Union[str, Path]) -> None:
    """Remove a stored upload; a file that is already gone is ignored."""
    Path(file_path).unlink(missing_ok=True)
