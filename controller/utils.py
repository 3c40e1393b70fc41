"""Utility helper functions for the Controller."""

import math
import uuid
from datetime import datetime, timezone
from typing import Iterator, Optional, Tuple


def generate_uuid() -> str:
    """
    Generate a new UUID4 string.

    Returns:
        UUID4 string
    """
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp column; NULL stays None."""
    if not value:
        return None
    return datetime.fromisoformat(value)


def count_chunks(size: int, chunk_size: int) -> int:
    """
    Number of fixed-size chunks needed for a payload.

    A zero-length payload has zero chunks.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return math.ceil(size / chunk_size)


def split_into_chunks(data: bytes, chunk_size: int) -> Iterator[Tuple[int, bytes]]:
    """
    Yield (chunk_index, chunk_bytes) pairs; the last chunk may be shorter.
    """
    view = memoryview(data)
    for index in range(count_chunks(len(data), chunk_size)):
        start = index * chunk_size
        yield index, bytes(view[start:start + chunk_size])
