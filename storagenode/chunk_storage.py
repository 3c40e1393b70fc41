"""Manages encrypted blob files on disk: one file per blob."""

import os
import re
from pathlib import Path
from typing import List

from common.constants import BLOB_FILE_SUFFIX
from storagenode.config import STORAGE_NODE_DATA_DIR

BLOBS_DIR = Path(STORAGE_NODE_DATA_DIR)

_BLOB_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class InvalidBlobIdError(ValueError):
    """Raised when a blob id could escape the data directory."""
    pass


def ensure_blobs_directory() -> None:
    """Ensure blobs directory exists."""
    BLOBS_DIR.mkdir(parents=True, exist_ok=True)


def validate_blob_id(blob_id: str) -> str:
    if not _BLOB_ID_PATTERN.match(blob_id):
        raise InvalidBlobIdError(f"Invalid blob id: {blob_id!r}")
    return blob_id


def get_blob_path(blob_id: str) -> Path:
    """
    Get file path for a blob.

    Raises:
        InvalidBlobIdError: If blob_id contains anything but letters, digits, '-' and '_'
    """
    return BLOBS_DIR / f"{validate_blob_id(blob_id)}{BLOB_FILE_SUFFIX}"


def write_blob(blob_id: str, data: bytes) -> int:
    """
    Write blob data to disk, replacing any existing blob with the same id.

    Returns:
        Number of bytes written
    """
    ensure_blobs_directory()
    filepath = get_blob_path(blob_id)
    tmp_path = filepath.with_name(filepath.name + ".tmp")
    tmp_path.write_bytes(data)
    os.replace(tmp_path, filepath)
    return len(data)


def read_blob(blob_id: str) -> bytes:
    """
    Read an entire blob.

    Raises:
        FileNotFoundError: If the blob does not exist
    """
    return get_blob_path(blob_id).read_bytes()


def delete_blob(blob_id: str) -> bool:
    """
    Delete a blob file.

    Returns:
        True if file was deleted, False if it didn't exist
    """
    filepath = get_blob_path(blob_id)
    if filepath.exists():
        filepath.unlink()
        return True
    return False


def list_all_blobs() -> List[str]:
    """List all blob ids in the storage directory."""
    if not BLOBS_DIR.exists():
        return []
    return [path.name[:-len(BLOB_FILE_SUFFIX)] for path in BLOBS_DIR.glob(f"*{BLOB_FILE_SUFFIX}")]
