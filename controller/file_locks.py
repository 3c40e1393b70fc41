"""Per-file asyncio locks."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Tuple

from common.logging_config import get_logger

logger = get_logger(__name__)


class FileLockRegistry:
    """
    Map of file_id to an asyncio.Lock, guarded by one registry lock.

    Entries are reference counted and dropped once no task holds or waits
    on them, so the map only grows with the number of files in flight.
    """

    def __init__(self):
        self._guard = asyncio.Lock()
        self._locks: Dict[str, Tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def hold(self, file_id: str) -> AsyncIterator[None]:
        """Serialize work on one file."""
        async with self._guard:
            lock, refs = self._locks.get(file_id, (None, 0))
            if lock is None:
                lock = asyncio.Lock()
            self._locks[file_id] = (lock, refs + 1)

        try:
            async with lock:
                yield
        finally:
            async with self._guard:
                lock, refs = self._locks[file_id]
                if refs <= 1:
                    del self._locks[file_id]
                else:
                    self._locks[file_id] = (lock, refs - 1)

    def is_locked(self, file_id: str) -> bool:
        entry = self._locks.get(file_id)
        return entry is not None and entry[0].locked()

    def active_count(self) -> int:
        """Number of files currently held or waited on."""
        return len(self._locks)
