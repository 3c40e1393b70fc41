"""Chunk placement repository: one row per physical replica."""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from common.logging_config import get_logger
from controller.database import get_db_connection, open_connection

logger = get_logger(__name__)

_PLACEMENT_COLUMNS = "placement_id, file_id, chunk_index, node_id, blob_id, checksum, size, created_at"


@dataclass(frozen=True)
class ChunkPlacement:
    placement_id: str
    file_id: str
    chunk_index: int
    node_id: str
    blob_id: str
    checksum: str
    size: int
    created_at: datetime


def _row_to_placement(row) -> ChunkPlacement:
    return ChunkPlacement(
        placement_id=row["placement_id"],
        file_id=row["file_id"],
        chunk_index=row["chunk_index"],
        node_id=row["node_id"],
        blob_id=row["blob_id"],
        checksum=row["checksum"],
        size=row["size"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def group_placements(placements: List[ChunkPlacement]) -> Dict[Tuple[str, int], List[ChunkPlacement]]:
    """Group replicas by (file_id, chunk_index), preserving row order."""
    groups: Dict[Tuple[str, int], List[ChunkPlacement]] = defaultdict(list)
    for placement in placements:
        groups[(placement.file_id, placement.chunk_index)].append(placement)
    return dict(groups)


class PlacementRepository:
    @staticmethod
    def create_placement(placement: ChunkPlacement, conn=None) -> ChunkPlacement:
        should_close = conn is None
        if conn is None:
            conn = open_connection()

        try:
            conn.execute(
                f"INSERT INTO chunk_placements ({_PLACEMENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    placement.placement_id, placement.file_id, placement.chunk_index,
                    placement.node_id, placement.blob_id, placement.checksum,
                    placement.size, placement.created_at.isoformat()
                )
            )
            if should_close:
                conn.commit()
            logger.debug(
                f"Recorded placement {placement.file_id}[{placement.chunk_index}] "
                f"on {placement.node_id} (blob={placement.blob_id})"
            )
            return placement
        finally:
            if should_close:
                conn.close()

    @staticmethod
    def get_by_file(file_id: str) -> List[ChunkPlacement]:
        with get_db_connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {_PLACEMENT_COLUMNS} FROM chunk_placements
                WHERE file_id = ?
                ORDER BY chunk_index, created_at
                """,
                (file_id,)
            ).fetchall()
            return [_row_to_placement(row) for row in rows]

    @staticmethod
    def get_group(file_id: str, chunk_index: int) -> List[ChunkPlacement]:
        with get_db_connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {_PLACEMENT_COLUMNS} FROM chunk_placements
                WHERE file_id = ? AND chunk_index = ?
                ORDER BY created_at
                """,
                (file_id, chunk_index)
            ).fetchall()
            return [_row_to_placement(row) for row in rows]

    @staticmethod
    def get_all() -> List[ChunkPlacement]:
        with get_db_connection() as conn:
            rows = conn.execute(
                f"SELECT {_PLACEMENT_COLUMNS} FROM chunk_placements ORDER BY file_id, chunk_index, created_at"
            ).fetchall()
            return [_row_to_placement(row) for row in rows]

